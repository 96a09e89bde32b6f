"""
Pydantic schemas defining the contracts of the recursive parser.

ParserSettings: scalar configuration for one RecursiveParserWrapper
ParseOutcome:   tagged result of parsing one embedded resource

Data flow:
  ParserSettings → RecursiveParserWrapper.from_settings() → wrapper
  embedded resource → _descend() → Success | ContainedFailure
"""

import hashlib
from enum import Enum
from typing import Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .metadata import Metadata

UNLIMITED = -1
DEFAULT_MAX_DEPTH = 64
DEFAULT_DIGEST_MAX_BYTES = 10 * 1024 * 1024


class HandlerType(str, Enum):
    """Kinds of content sink a handler factory can produce."""
    XML = "xml"        # Structured markup, empty elements as <p />
    HTML = "html"      # Structured markup, empty elements as <p></p>
    TEXT = "text"      # Character data only
    IGNORE = "ignore"  # Discard everything, no `content` key


# --- Configuration ---

class ParserSettings(BaseModel):
    """Scalar configuration bundle for a RecursiveParserWrapper."""
    handler_type: HandlerType = HandlerType.TEXT
    write_limit: int = UNLIMITED                  # Max characters per resource; negative = unlimited
    max_embedded: int = UNLIMITED                 # Max embedded resources; negative = unlimited
    catch_embedded_exceptions: bool = True
    max_depth: int = Field(default=DEFAULT_MAX_DEPTH, ge=1)   # Embedding depth guard
    digest_algorithms: list[str] = Field(default_factory=list)  # Empty = no digester
    digest_max_bytes: int = Field(default=DEFAULT_DIGEST_MAX_BYTES, ge=0)

    @field_validator("digest_algorithms", mode="before")
    @classmethod
    def _split_algorithms(cls, value):
        # Environment variables arrive as "md5,sha256"
        if isinstance(value, str):
            return [part.strip() for part in value.split(",") if part.strip()]
        return value

    @field_validator("digest_algorithms")
    @classmethod
    def _known_algorithms(cls, value: list[str]) -> list[str]:
        unknown = [alg for alg in value if alg.lower() not in hashlib.algorithms_available]
        if unknown:
            raise ValueError(f"Unknown digest algorithm(s): {', '.join(unknown)}")
        return [alg.lower() for alg in value]


# --- Outcome of one embedded resource ---

class ParseOutcome(BaseModel):
    """Tagged result of parsing a single embedded resource."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    record: Metadata


class Success(ParseOutcome):
    kind: Literal["success"] = "success"


class ContainedFailure(ParseOutcome):
    kind: Literal["contained_failure"] = "contained_failure"
    failure_type: str       # Taxonomy class name, e.g. "ContentParseFailure"
    trace: str              # Same text stored under `embedded_exception`


Outcome = Union[Success, ContainedFailure]
