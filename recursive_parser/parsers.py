"""
Single-resource parsers.

A parser reads one resource, emits its content into a sink, fills in its
metadata, and reports every embedded resource it finds through
ParseContext.parse_embedded(), synchronously and in document order. Parsers
know nothing about recursion: the RecursiveParserWrapper installs the
callback and decides what happens to each embedded resource.

Built-in parsers:
  TextParser       text/plain
  HTMLParser       text/html (BeautifulSoup + html5lib); data: URIs and
                   iframe srcdoc documents are embedded resources
  XMLParser        application/xml (lxml)
  PackageParser    zip, tar and gzip; each entry is an embedded resource
  EmptyParser      anything unrecognized
  AutoDetectParser picks one of the above via Detector
"""

import base64
import binascii
import gzip
import io
import mimetypes
import tarfile
import zipfile
import zlib
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import BinaryIO, Callable, Optional
from urllib.parse import unquote_to_bytes

from bs4 import BeautifulSoup, Comment, NavigableString, Tag
from lxml import etree

from .metadata import Metadata, CONTENT_TYPE, RESOURCE_NAME
from .sink import ContentSink, XHTMLWriter
from .logger import get_module_logger

logger = get_module_logger("parsers")

EmbeddedHandler = Callable[[BinaryIO, Metadata], None]

OCTET_STREAM = "application/octet-stream"


class ParseContext:
    """
    Per-resource context handed to a parser.

    Carries the discovery callback for embedded resources and the depth of
    the resource being parsed (0 for the container).
    """

    def __init__(self, embedded_handler: Optional[EmbeddedHandler] = None, depth: int = 0):
        self.embedded_handler = embedded_handler
        self.depth = depth

    def parse_embedded(self, stream: BinaryIO, metadata: Metadata) -> None:
        """Report an embedded resource. Without a handler the resource is ignored."""
        if self.embedded_handler is None:
            logger.debug(f"No embedded handler, ignoring {metadata.get(RESOURCE_NAME) or 'unnamed resource'}")
            return
        self.embedded_handler(stream, metadata)


class Parser(ABC):
    """Abstract single-resource parser."""

    supported_types: frozenset = frozenset()

    @abstractmethod
    def parse(
        self,
        stream: BinaryIO,
        sink: ContentSink,
        metadata: Metadata,
        context: ParseContext
    ) -> None:
        """
        Parse one resource.

        Args:
            stream: The resource's raw bytes
            sink: Receives the resource's content events
            metadata: The resource's record, updated in place
            context: Discovery callback for embedded resources
        """
        pass


def _seekable(stream: BinaryIO) -> BinaryIO:
    if stream.seekable():
        return stream
    return io.BytesIO(stream.read())


def _zip_timestamp(info: zipfile.ZipInfo) -> Optional[str]:
    try:
        return datetime(*info.date_time).isoformat()
    except ValueError:
        return None


# --- Plain formats ---

class EmptyParser(Parser):
    """Emits an empty document; used for unrecognized content."""

    def parse(self, stream, sink, metadata, context):
        xhtml = XHTMLWriter(sink, metadata)
        xhtml.start_document()
        xhtml.end_document()


class TextParser(Parser):
    """Decodes the resource as UTF-8 and emits it as one paragraph."""

    supported_types = frozenset({"text/plain"})

    def parse(self, stream, sink, metadata, context):
        text = stream.read().decode("utf-8-sig", errors="replace")
        if CONTENT_TYPE not in metadata:
            metadata.set(CONTENT_TYPE, "text/plain")

        xhtml = XHTMLWriter(sink, metadata)
        xhtml.start_document()
        xhtml.element("p", text)
        xhtml.end_document()


class XMLParser(Parser):
    """Emits the character data of an XML document."""

    supported_types = frozenset({"application/xml", "text/xml"})

    def parse(self, stream, sink, metadata, context):
        # No entity expansion and no network access for untrusted documents
        xml_parser = etree.XMLParser(resolve_entities=False, no_network=True, huge_tree=False)
        root = etree.parse(stream, parser=xml_parser).getroot()

        if CONTENT_TYPE not in metadata:
            metadata.set(CONTENT_TYPE, "application/xml")
        metadata.set("xml_root", etree.QName(root).localname)

        xhtml = XHTMLWriter(sink, metadata)
        xhtml.start_document()
        xhtml.start_element("p")
        for text in root.itertext():
            xhtml.characters(text)
        xhtml.end_element("p")
        xhtml.end_document()


class HTMLParser(Parser):
    """
    Emits the structure and text of an HTML document.

    Embedded resources: data: URIs in <img src>, <embed src> and
    <object data>, and the inline document of <iframe srcdoc>. Malformed
    data: URIs are skipped with a warning.
    """

    supported_types = frozenset({"text/html", "application/xhtml+xml"})

    # Structural elements passed through to the sink; others only contribute text
    STRUCTURE_TAGS = {'p', 'div', 'h1', 'h2', 'h3', 'h4', 'h5', 'h6', 'ul', 'ol',
                      'li', 'table', 'tr', 'td', 'th', 'blockquote', 'pre', 'br',
                      'dl', 'dt', 'dd', 'a'}

    SKIP_TAGS = {'script', 'style', 'noscript', 'template'}

    EMBED_ATTRIBUTES = {'img': 'src', 'embed': 'src', 'object': 'data'}

    def parse(self, stream, sink, metadata, context):
        soup = BeautifulSoup(stream.read(), 'html5lib')

        if CONTENT_TYPE not in metadata:
            metadata.set(CONTENT_TYPE, "text/html")
        if soup.title and soup.title.string:
            metadata.set("title", soup.title.string.strip())
        for meta in soup.find_all("meta"):
            name = meta.get("name")
            content = meta.get("content")
            if name and content is not None:
                metadata.add(f"meta:{name.lower()}", content)

        xhtml = XHTMLWriter(sink, metadata)
        xhtml.start_document()
        if soup.body is not None:
            for child in soup.body.children:
                self._walk(child, xhtml, context)
        xhtml.end_document()

    def _walk(self, node, xhtml: XHTMLWriter, context: ParseContext) -> None:
        if isinstance(node, Comment):
            return
        if isinstance(node, NavigableString):
            xhtml.characters(str(node))
            return
        if not isinstance(node, Tag) or node.name in self.SKIP_TAGS:
            return

        self._report_embedded(node, context)

        structural = node.name in self.STRUCTURE_TAGS
        if structural:
            attrs = {"href": node["href"]} if node.name == "a" and node.get("href") else None
            xhtml.start_element(node.name, attrs)
        for child in node.children:
            self._walk(child, xhtml, context)
        if structural:
            xhtml.end_element(node.name)

    def _report_embedded(self, node: Tag, context: ParseContext) -> None:
        if node.name == "iframe" and node.get("srcdoc"):
            embedded = Metadata({CONTENT_TYPE: "text/html"})
            self._name_from(node, embedded)
            context.parse_embedded(io.BytesIO(node["srcdoc"].encode("utf-8")), embedded)
            return

        attr = self.EMBED_ATTRIBUTES.get(node.name)
        value = node.get(attr) if attr else None
        if not value or not value.startswith("data:"):
            return

        try:
            media_type, payload = decode_data_uri(value)
        except ValueError as e:
            logger.warning(f"Skipping malformed data: URI in <{node.name}>: {e}")
            return

        embedded = Metadata({CONTENT_TYPE: media_type})
        self._name_from(node, embedded)
        context.parse_embedded(io.BytesIO(payload), embedded)

    @staticmethod
    def _name_from(node: Tag, embedded: Metadata) -> None:
        name = node.get("data-filename") or node.get("name")
        if name:
            embedded.set(RESOURCE_NAME, name)


def decode_data_uri(uri: str) -> tuple[str, bytes]:
    """
    Decode an RFC 2397 data: URI.

    Returns:
        Tuple of (media type, payload bytes)

    Raises:
        ValueError: if the URI is malformed
    """
    header, sep, data = uri[len("data:"):].partition(",")
    if not sep:
        raise ValueError("missing ',' separator")

    params = header.split(";")
    is_base64 = params[-1].strip().lower() == "base64"
    if is_base64:
        params = params[:-1]
    media_type = params[0].strip().lower() if params and params[0].strip() else "text/plain"

    if is_base64:
        try:
            return media_type, base64.b64decode(data, validate=True)
        except binascii.Error as e:
            raise ValueError(f"invalid base64 payload: {e}") from e
    return media_type, unquote_to_bytes(data)


# --- Packages ---

class PackageParser(Parser):
    """
    Lists the entries of a zip, tar or gzip package and reports each as an
    embedded resource named by its entry path.

    Entries that cannot be read (bad CRC, truncated data) are skipped with a
    warning; the rest of the package is still processed.
    """

    supported_types = frozenset({"application/zip", "application/x-tar", "application/gzip"})

    READ_ERRORS = (zipfile.BadZipFile, tarfile.TarError, zlib.error, EOFError, OSError)

    def parse(self, stream, sink, metadata, context):
        stream = _seekable(stream)
        start = stream.tell()
        head = stream.read(512)
        stream.seek(start)

        xhtml = XHTMLWriter(sink, metadata)
        xhtml.start_document()
        if head.startswith(Detector.SIG_ZIP) or head.startswith(Detector.SIG_ZIP_EMPTY):
            metadata.set(CONTENT_TYPE, "application/zip")
            self._parse_zip(stream, xhtml, context)
        elif Detector.is_tar(head):
            metadata.set(CONTENT_TYPE, "application/x-tar")
            self._parse_tar(stream, xhtml, context, "r:")
        elif head.startswith(Detector.SIG_GZIP):
            self._parse_gzip(stream, xhtml, metadata, context)
        else:
            raise ValueError("Not a zip, tar or gzip package")
        xhtml.end_document()

    def _entry(self, xhtml: XHTMLWriter, name: str) -> None:
        xhtml.start_element("div", {"class": "package-entry"})
        xhtml.element("h1", name)
        xhtml.end_element("div")

    def _parse_zip(self, stream, xhtml, context):
        with zipfile.ZipFile(stream) as archive:
            for info in archive.infolist():
                if info.is_dir():
                    continue
                self._entry(xhtml, info.filename)
                try:
                    data = archive.read(info)
                except self.READ_ERRORS + (RuntimeError, NotImplementedError) as e:
                    # Encrypted entries raise RuntimeError, unknown compression NotImplementedError
                    logger.warning(f"Skipping unreadable zip entry {info.filename}: {e}")
                    continue

                embedded = Metadata({
                    RESOURCE_NAME: info.filename,
                    "size": info.file_size,
                    "last_modified": _zip_timestamp(info),
                })
                context.parse_embedded(io.BytesIO(data), embedded)

    def _parse_tar(self, stream, xhtml, context, mode):
        with tarfile.open(fileobj=stream, mode=mode) as archive:
            for member in archive:
                if not member.isfile():
                    continue
                self._entry(xhtml, member.name)
                try:
                    handle = archive.extractfile(member)
                    data = handle.read() if handle is not None else b""
                except self.READ_ERRORS as e:
                    logger.warning(f"Skipping unreadable tar entry {member.name}: {e}")
                    continue

                embedded = Metadata({
                    RESOURCE_NAME: member.name,
                    "size": member.size,
                    "last_modified": datetime.fromtimestamp(member.mtime, tz=timezone.utc).isoformat(),
                })
                context.parse_embedded(io.BytesIO(data), embedded)

    def _parse_gzip(self, stream, xhtml, metadata, context):
        start = stream.tell()
        try:
            with tarfile.open(fileobj=stream, mode="r:gz"):
                is_tar = True
        except self.READ_ERRORS:
            is_tar = False
        stream.seek(start)

        if is_tar:
            metadata.set(CONTENT_TYPE, "application/x-tar")
            self._parse_tar(stream, xhtml, context, "r:gz")
            return

        metadata.set(CONTENT_TYPE, "application/gzip")
        data = gzip.GzipFile(fileobj=stream).read()
        embedded = Metadata()
        name = metadata.get(RESOURCE_NAME)
        if name and name.lower().endswith(".gz") and len(name) > 3:
            embedded.set(RESOURCE_NAME, name.rsplit("/", 1)[-1][:-3])
        self._entry(xhtml, embedded.get(RESOURCE_NAME) or "")
        context.parse_embedded(io.BytesIO(data), embedded)


# --- Detection and dispatch ---

class Detector:
    """Content type detection from magic bytes, falling back to the resource name."""

    SIG_ZIP = b"PK\x03\x04"
    SIG_ZIP_EMPTY = b"PK\x05\x06"
    SIG_GZIP = b"\x1f\x8b"

    HEAD_SIZE = 1024

    @staticmethod
    def is_tar(head: bytes) -> bool:
        return len(head) >= 262 and head[257:262] == b"ustar"

    @classmethod
    def detect(cls, head: bytes, name: Optional[str] = None) -> str:
        """
        Detect a content type.

        Args:
            head: The first bytes of the resource (HEAD_SIZE is enough)
            name: Optional resource name used when the bytes are inconclusive

        Returns:
            A MIME type string
        """
        if head.startswith(cls.SIG_ZIP) or head.startswith(cls.SIG_ZIP_EMPTY):
            return "application/zip"
        if head.startswith(cls.SIG_GZIP):
            return "application/gzip"
        if cls.is_tar(head):
            return "application/x-tar"

        stripped = head.lstrip(b"\xef\xbb\xbf \t\r\n").lower()
        if stripped.startswith(b"<!doctype html") or b"<html" in stripped[:256]:
            return "text/html"
        if stripped.startswith(b"<?xml"):
            return "application/xml"

        if name:
            guessed, _ = mimetypes.guess_type(name)
            if guessed:
                return guessed

        if head and b"\x00" not in head:
            try:
                head.decode("utf-8")
                return "text/plain"
            except UnicodeDecodeError as e:
                # A multi-byte character cut off at the end of the head is still text
                if e.start >= len(head) - 3:
                    return "text/plain"
        return OCTET_STREAM


class AutoDetectParser(Parser):
    """
    Detects each resource's type and delegates to the matching parser.

    A content_type already present in the metadata is trusted when a parser
    is registered for it; otherwise it is replaced by the detected type,
    unless detection finds nothing more specific than octet-stream.
    """

    def __init__(self, parsers: Optional[dict[str, Parser]] = None, fallback: Optional[Parser] = None):
        if parsers is None:
            parsers = {}
            for parser in (TextParser(), HTMLParser(), XMLParser(), PackageParser()):
                for media_type in parser.supported_types:
                    parsers[media_type] = parser
        self.parsers = parsers
        self.fallback = fallback or EmptyParser()

    @property
    def supported_types(self) -> frozenset:
        return frozenset(self.parsers)

    def parse(self, stream, sink, metadata, context):
        stream = _seekable(stream)
        content_type = (metadata.get(CONTENT_TYPE) or "").split(";")[0].strip().lower()

        if content_type not in self.parsers:
            start = stream.tell()
            head = stream.read(Detector.HEAD_SIZE)
            stream.seek(start)
            detected = Detector.detect(head, metadata.get(RESOURCE_NAME))
            if detected != OCTET_STREAM or not content_type:
                metadata.set(CONTENT_TYPE, detected)
            content_type = detected

        parser = self.parsers.get(content_type, self.fallback)
        logger.debug(f"{metadata.get(RESOURCE_NAME) or 'resource'}: {content_type} -> {type(parser).__name__}")
        parser.parse(stream, sink, metadata, context)
