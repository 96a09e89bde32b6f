"""
Recursive Parser

Extracts per-resource metadata and content from compound documents with
arbitrarily nested embedded resources (archives in archives, documents
inlined in HTML, ...). One Metadata record is produced per resource, each
with its content, its embedded_resource_path, and flags describing limits
hit or failures contained.

Public API surface:
  Orchestrator        — RecursiveParserWrapper, parse_bytes, parse_file
  Records             — Metadata, records_to_dicts
  Content sinks       — BasicContentHandlerFactory, HandlerType
  Digests             — HashlibDigester
  Parsers             — AutoDetectParser, HTMLParser, PackageParser, TextParser,
                        XMLParser, MockParser, ParseContext
  Configuration       — ParserSettings, load_settings
  Error types         — ParseFailure and its taxonomy
"""

# --- Orchestrator ---
from .main import RecursiveParserWrapper, parse_bytes, parse_file

# --- Records ---
from .metadata import Metadata, records_to_dicts

# --- Collaborators ---
from .sink import BasicContentHandlerFactory, ContentHandlerFactory
from .digest import Digester, HashlibDigester
from .parsers import (
    AutoDetectParser,
    HTMLParser,
    PackageParser,
    ParseContext,
    Parser,
    TextParser,
    XMLParser,
)
from .mock_parser import MockParser

# --- Configuration ---
from .schemas import HandlerType, ParserSettings
from .config import load_settings

# --- Exceptions ---
from .exceptions import (
    RecursiveParserError,
    ParseFailure,
    ContentParseFailure,
    IOFailure,
    ResourceLimitExceeded,
    DigestFailure,
)

__version__ = "0.1.0"
__all__ = [
    "RecursiveParserWrapper",
    "parse_bytes",
    "parse_file",
    "Metadata",
    "records_to_dicts",
    "BasicContentHandlerFactory",
    "ContentHandlerFactory",
    "Digester",
    "HashlibDigester",
    "AutoDetectParser",
    "HTMLParser",
    "PackageParser",
    "ParseContext",
    "Parser",
    "TextParser",
    "XMLParser",
    "MockParser",
    "HandlerType",
    "ParserSettings",
    "load_settings",
    "RecursiveParserError",
    "ParseFailure",
    "ContentParseFailure",
    "IOFailure",
    "ResourceLimitExceeded",
    "DigestFailure",
]
