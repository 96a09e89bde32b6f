"""
Content capture sinks.

A sink receives the content events a parser emits for one resource
(start_element / characters / end_element) and accumulates them as XML,
HTML, plain text, or nothing at all. Every sink enforces an optional write
limit: once the serialized output reaches `write_limit` characters, further
content is dropped and `is_write_limit_reached` turns True.

Sinks are produced per resource by a ContentHandlerFactory so each embedded
resource captures its own content independently of its parent.
"""

from abc import ABC, abstractmethod
from typing import Optional

from bs4.dammit import EntitySubstitution

from .schemas import HandlerType, UNLIMITED
from .metadata import Metadata

# Elements after which the text sink starts a new line
BLOCK_TAGS = {'p', 'div', 'h1', 'h2', 'h3', 'h4', 'h5', 'h6', 'li', 'tr',
              'blockquote', 'pre', 'title', 'br', 'dt', 'dd', 'table', 'ul', 'ol'}

# HTML elements that never take an end tag
VOID_TAGS = {'area', 'base', 'br', 'col', 'embed', 'hr', 'img', 'input',
             'link', 'meta', 'param', 'source', 'track', 'wbr'}


class ContentSink(ABC):
    """Bounded accumulator for one resource's content events."""

    def __init__(self, write_limit: int = UNLIMITED):
        self.write_limit = write_limit
        self._parts: list[str] = []
        self._written = 0
        self._limit_reached = False

    @property
    def is_write_limit_reached(self) -> bool:
        return self._limit_reached

    @property
    def written(self) -> int:
        """Number of characters captured so far."""
        return self._written

    def _write(self, text: str) -> None:
        """Append serialized output, truncating at the write limit."""
        if not text or self._limit_reached:
            return
        if self.write_limit < 0:
            self._parts.append(text)
            self._written += len(text)
            return

        remaining = self.write_limit - self._written
        if len(text) > remaining:
            if remaining > 0:
                self._parts.append(text[:remaining])
                self._written += remaining
            self._limit_reached = True
            return
        self._parts.append(text)
        self._written += len(text)

    # --- Event API used by parsers ---

    def start_document(self) -> None:
        pass

    def end_document(self) -> None:
        pass

    @abstractmethod
    def start_element(self, name: str, attrs: Optional[dict] = None) -> None:
        pass

    @abstractmethod
    def end_element(self, name: str) -> None:
        pass

    @abstractmethod
    def characters(self, text: str) -> None:
        pass

    def to_string(self) -> Optional[str]:
        """Captured content, or None for sinks that capture nothing."""
        return "".join(self._parts)


class MarkupSink(ContentSink):
    """
    Streams events as XML or HTML markup.

    The start tag of an element stays open until its first child or text
    arrives, so empty elements serialize as <p class="x" /> (XML) or
    <p class="x"></p> (HTML).
    """

    def __init__(self, write_limit: int = UNLIMITED, html: bool = False):
        super().__init__(write_limit)
        self.html = html
        self._pending: Optional[str] = None

    def _close_pending(self) -> None:
        if self._pending is not None:
            self._write(">")
            self._pending = None

    def start_element(self, name: str, attrs: Optional[dict] = None) -> None:
        self._close_pending()
        parts = [f"<{name}"]
        for key, value in (attrs or {}).items():
            quoted = EntitySubstitution.substitute_xml(str(value), make_quoted_attribute=True)
            parts.append(f" {key}={quoted}")
        self._write("".join(parts))
        self._pending = name

    def end_element(self, name: str) -> None:
        if self._pending == name:
            self._pending = None
            if not self.html:
                self._write(" />")
            elif name in VOID_TAGS:
                self._write(">")
            else:
                self._write(f"></{name}>")
            return
        self._close_pending()
        if self.html and name in VOID_TAGS:
            return
        self._write(f"</{name}>")

    def characters(self, text: str) -> None:
        if not text:
            return
        self._close_pending()
        self._write(EntitySubstitution.substitute_xml(text))

    def end_document(self) -> None:
        self._close_pending()


class TextSink(ContentSink):
    """Keeps character data only, with a newline after block-level elements."""

    def start_element(self, name: str, attrs: Optional[dict] = None) -> None:
        pass

    def end_element(self, name: str) -> None:
        if name in BLOCK_TAGS:
            self._write("\n")

    def characters(self, text: str) -> None:
        self._write(text)


class IgnoreSink(ContentSink):
    """Discards all content; never produces a `content` key."""

    def start_element(self, name: str, attrs: Optional[dict] = None) -> None:
        pass

    def end_element(self, name: str) -> None:
        pass

    def characters(self, text: str) -> None:
        pass

    def to_string(self) -> Optional[str]:
        return None


# --- Factories ---

class ContentHandlerFactory(ABC):
    """Produces a fresh sink for every resource."""

    @abstractmethod
    def create(
        self,
        kind: Optional[HandlerType] = None,
        max_chars: Optional[int] = None
    ) -> ContentSink:
        """
        Create a sink.

        Args:
            kind: Sink kind; None uses the factory's configured kind
            max_chars: Write limit; None uses the factory's configured limit,
                       a negative value disables the cutoff

        Returns:
            A new, empty ContentSink
        """
        pass


class BasicContentHandlerFactory(ContentHandlerFactory):
    """Factory for the built-in XML / HTML / TEXT / IGNORE sinks."""

    def __init__(
        self,
        handler_type: HandlerType = HandlerType.TEXT,
        write_limit: int = UNLIMITED
    ):
        self.handler_type = HandlerType(handler_type)
        self.write_limit = write_limit

    def create(
        self,
        kind: Optional[HandlerType] = None,
        max_chars: Optional[int] = None
    ) -> ContentSink:
        kind = HandlerType(kind) if kind is not None else self.handler_type
        limit = self.write_limit if max_chars is None else max_chars

        if kind == HandlerType.XML:
            return MarkupSink(limit, html=False)
        if kind == HandlerType.HTML:
            return MarkupSink(limit, html=True)
        if kind == HandlerType.TEXT:
            return TextSink(limit)
        return IgnoreSink(limit)

    def __repr__(self) -> str:
        return f"BasicContentHandlerFactory({self.handler_type.value}, write_limit={self.write_limit})"


class XHTMLWriter:
    """
    Parser-side helper that wraps a sink in an XHTML document skeleton.

    start_document() emits <html><head><title/></head><body>; end_document()
    closes body and html. Parsers emit their own content in between.
    """

    def __init__(self, sink: ContentSink, metadata: Metadata):
        self.sink = sink
        self.metadata = metadata

    def start_document(self) -> None:
        self.sink.start_document()
        self.sink.start_element("html", {"xmlns": "http://www.w3.org/1999/xhtml"})
        self.sink.start_element("head")
        title = self.metadata.get("title")
        if title:
            self.element("title", title)
        self.sink.end_element("head")
        self.sink.start_element("body")

    def end_document(self) -> None:
        self.sink.end_element("body")
        self.sink.end_element("html")
        self.sink.end_document()

    def start_element(self, name: str, attrs: Optional[dict] = None) -> None:
        self.sink.start_element(name, attrs)

    def end_element(self, name: str) -> None:
        self.sink.end_element(name)

    def characters(self, text: str) -> None:
        self.sink.characters(text)

    def element(self, name: str, text: str = "", attrs: Optional[dict] = None) -> None:
        """Emit a complete element with optional text."""
        self.sink.start_element(name, attrs)
        if text:
            self.sink.characters(text)
        self.sink.end_element(name)
