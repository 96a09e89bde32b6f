"""
Recursive parse orchestrator.

RecursiveParserWrapper drives a single-resource parser over a container and,
through the parser's discovery callback, over every resource embedded in it,
at any depth. The result is one Metadata record per resource, in pre-order:

    [container, /a.zip, /a.zip/b.txt, /c.txt, ...]

Per embedded resource the callback runs:
    limiter check → path assignment → digest → recursive parse → record insert
with failure containment around digest, parse and insert.

Traversal state (result list, counters, synthetic-name counter) lives in a
_Traversal object passed down the recursion; the path stack and depth travel
as arguments, so nothing about the current position is stored on the wrapper.
"""

import io
import logging
import shutil
import tempfile
from contextlib import ExitStack
from functools import partial
from pathlib import Path
from typing import BinaryIO, Optional, Union

from .digest import Digester, HashlibDigester
from .exceptions import (
    DigestFailure,
    ParseFailure,
    RecursiveParserError,
    classify_exception,
    format_exception_trace,
    wrap_exception,
)
from .limits import DepthGuard, EmbeddedResourceLimiter
from .metadata import (
    Metadata,
    CONTENT,
    CONTAINER_EXCEPTION,
    DIGEST_EXCEPTION,
    EMBEDDED_EXCEPTION,
    EMBEDDED_RESOURCE_LIMIT_REACHED,
    EMBEDDED_RESOURCE_PATH,
    RESOURCE_NAME,
    WRITE_LIMIT_REACHED,
)
from .parsers import AutoDetectParser, ParseContext, Parser
from .paths import PathStack, ResourcePathAssigner
from .schemas import (
    ContainedFailure,
    DEFAULT_MAX_DEPTH,
    Outcome,
    ParserSettings,
    Success,
    UNLIMITED,
)
from .sink import BasicContentHandlerFactory, ContentHandlerFactory, ContentSink
from .logger import get_module_logger, resource_logger, setup_logger

logger = get_module_logger("main")

# Non-seekable streams are spooled in memory up to this size, then to disk
SPOOL_MEMORY_LIMIT = 8 * 1024 * 1024


class _Traversal:
    """Mutable state of one logical parse."""

    def __init__(self, parser: Parser, root: Metadata, max_embedded: int):
        self.parser = parser
        self.root = root
        self.results: list[Metadata] = []
        self.failures: list[ContainedFailure] = []
        self.limiter = EmbeddedResourceLimiter(max_embedded)
        self.paths = ResourcePathAssigner()
        # Embedded failure currently propagating with catch_embedded_exceptions off
        self.escaped: Optional[ParseFailure] = None


class RecursiveParserWrapper:
    """
    Parses a container and all of its embedded resources into a record list.

    One instance handles one parse at a time; call reset() before reusing it.
    """

    def __init__(
        self,
        parser: Optional[Parser] = None,
        content_handler_factory: Optional[ContentHandlerFactory] = None,
        catch_embedded_exceptions: bool = True,
        max_embedded: int = UNLIMITED,
        digester: Optional[Digester] = None,
        max_depth: int = DEFAULT_MAX_DEPTH,
        log_level: int = None
    ):
        """
        Args:
            parser: Default single-resource parser (AutoDetectParser if None)
            content_handler_factory: Produces one sink per resource
            catch_embedded_exceptions: Record embedded failures instead of raising
            max_embedded: Max embedded resources to parse; negative = unlimited
            digester: Optional digest adapter applied to every resource
            max_depth: Max embedding depth below the container
            log_level: Optional level for the package logger
        """
        if log_level is not None:
            setup_logger(level=log_level)

        self.parser = parser
        self.content_handler_factory = content_handler_factory or BasicContentHandlerFactory()
        self.catch_embedded_exceptions = catch_embedded_exceptions
        self.max_embedded = max_embedded
        self.digester = digester
        self.depth_guard = DepthGuard(max_depth)
        self._traversal: Optional[_Traversal] = None

    @classmethod
    def from_settings(cls, settings: ParserSettings, parser: Optional[Parser] = None) -> "RecursiveParserWrapper":
        """Build a wrapper from validated ParserSettings."""
        digester = None
        if settings.digest_algorithms:
            digester = HashlibDigester(settings.digest_max_bytes, *settings.digest_algorithms)
        return cls(
            parser=parser,
            content_handler_factory=BasicContentHandlerFactory(settings.handler_type, settings.write_limit),
            catch_embedded_exceptions=settings.catch_embedded_exceptions,
            max_embedded=settings.max_embedded,
            digester=digester,
            max_depth=settings.max_depth
        )

    @property
    def max_depth(self) -> int:
        return self.depth_guard.max_depth

    # --- Public API ---

    def parse(
        self,
        stream: BinaryIO,
        metadata: Optional[Metadata] = None,
        parser: Optional[Parser] = None
    ) -> None:
        """
        Parse a container and everything embedded in it.

        Args:
            stream: The container's bytes; owned by the caller
            metadata: Initial container record (e.g. with resource_name)
            parser: Parser for this call; defaults to the wrapper's parser

        Raises:
            ParseFailure: if the container's parse fails, or an embedded
                resource fails while catch_embedded_exceptions is False.
                get_results() and the failure's partial_result still hold
                every record completed before the failure. The container
                record gets `container_exception` only when the container's
                own parse failed, not when an embedded failure passes through.
            RecursiveParserError: if the wrapper still holds a previous
                parse's results
        """
        if self._traversal is not None:
            raise RecursiveParserError("Wrapper already holds results; call reset() before parsing again")

        parser = parser or self.parser or AutoDetectParser()
        metadata = metadata if metadata is not None else Metadata()
        traversal = self._traversal = _Traversal(parser, metadata, self.max_embedded)
        name = metadata.get(RESOURCE_NAME)
        log = resource_logger(logger)
        log.info(f"Starting recursive parse of {name or 'unnamed container'}")

        sink = self.content_handler_factory.create()
        context = ParseContext(partial(self._handle_embedded, traversal, parent=(), depth=1))
        try:
            with ExitStack() as resources:
                stream = self._digest(stream, metadata, resources, log, contain=True)
                parser.parse(stream, sink, metadata, context)
        except Exception as e:
            # Container failures always propagate; the container record still goes first
            if e is not traversal.escaped:
                metadata.set(CONTAINER_EXCEPTION, format_exception_trace(e))
            failure = wrap_exception(e, name, None)
            failure.partial_result = traversal.results
            log.error(f"Parse of {name or 'unnamed container'} failed: {failure.message}")
            if failure is e:
                raise
            raise failure from e
        finally:
            self._capture(sink, metadata)
            traversal.results.insert(0, metadata)

        log.info(
            f"Complete: {len(traversal.results)} records, "
            f"{len(traversal.failures)} contained failures, "
            f"{traversal.limiter.skipped} skipped"
        )

    def get_results(self) -> list[Metadata]:
        """Records collected by the current parse, container first."""
        if self._traversal is None:
            return []
        return list(self._traversal.results)

    def get_contained_failures(self) -> list[ContainedFailure]:
        """Embedded failures recorded (not raised) by the current parse."""
        if self._traversal is None:
            return []
        return list(self._traversal.failures)

    def reset(self) -> None:
        """Discard all state of the previous parse."""
        self._traversal = None

    # --- Recursion ---

    def _handle_embedded(
        self,
        traversal: _Traversal,
        stream: BinaryIO,
        metadata: Metadata,
        *,
        parent: PathStack,
        depth: int
    ) -> None:
        """Discovery callback installed into every ParseContext."""
        if not traversal.limiter.try_acquire():
            traversal.root.set(EMBEDDED_RESOURCE_LIMIT_REACHED, "true")
            logger.debug(
                f"Embedded resource limit {traversal.limiter.max_embedded} reached, "
                f"skipping {metadata.get(RESOURCE_NAME) or 'unnamed resource'}"
            )
            return

        stack = traversal.paths.assign(parent, metadata)
        outcome = self._descend(traversal, stream, metadata, stack, depth)
        if isinstance(outcome, ContainedFailure):
            traversal.failures.append(outcome)

    def _descend(
        self,
        traversal: _Traversal,
        stream: BinaryIO,
        metadata: Metadata,
        stack: PathStack,
        depth: int
    ) -> Outcome:
        """
        Parse one embedded resource and insert its record.

        The record is inserted at the position the list had when the resource
        was entered, so it precedes the records of its own children.
        """
        slot = len(traversal.results)
        path = metadata.get(EMBEDDED_RESOURCE_PATH)
        log = resource_logger(logger, path, depth)
        log.debug("Parsing")

        sink = self.content_handler_factory.create()
        context = ParseContext(
            partial(self._handle_embedded, traversal, parent=stack, depth=depth + 1),
            depth=depth
        )
        try:
            with ExitStack() as resources:
                self.depth_guard.check(depth, path)
                stream = self._digest(stream, metadata, resources, log, contain=False)
                traversal.parser.parse(stream, sink, metadata, context)
        except Exception as e:
            if not self.catch_embedded_exceptions:
                failure = wrap_exception(e, metadata.get(RESOURCE_NAME), path)
                traversal.escaped = failure
                if failure is e:
                    raise
                raise failure from e

            trace = format_exception_trace(e)
            metadata.set(EMBEDDED_EXCEPTION, trace)
            self._capture(sink, metadata)
            traversal.results.insert(slot, metadata)
            failure_type = classify_exception(e).__name__
            log.warning(f"Contained {failure_type}: {e}")
            return ContainedFailure(record=metadata, failure_type=failure_type, trace=trace)

        self._capture(sink, metadata)
        traversal.results.insert(slot, metadata)
        return Success(record=metadata)

    # --- Helpers ---

    def _digest(
        self,
        stream: BinaryIO,
        metadata: Metadata,
        resources: ExitStack,
        log: logging.LoggerAdapter,
        contain: bool
    ) -> BinaryIO:
        """
        Run the digester and rewind the stream for the parser.

        Non-seekable streams are first copied to a spool file owned by
        `resources`. With `contain` (the container), a DigestFailure is
        recorded under `digest_exception` and the parse goes on; otherwise it
        is raised into the embedded resource's failure handling.
        """
        if self.digester is None:
            return stream

        if not stream.seekable():
            spool = resources.enter_context(tempfile.SpooledTemporaryFile(max_size=SPOOL_MEMORY_LIMIT))
            shutil.copyfileobj(stream, spool)
            spool.seek(0)
            stream = spool

        start = stream.tell()
        try:
            metadata.update(self.digester.digest(stream))
        except DigestFailure as e:
            if not contain:
                raise
            metadata.set(DIGEST_EXCEPTION, format_exception_trace(e))
            log.warning(f"Digest failed, parsing without digest: {e.message}")
        finally:
            stream.seek(start)
        return stream

    @staticmethod
    def _capture(sink: ContentSink, metadata: Metadata) -> None:
        content = sink.to_string()
        if content is not None:
            metadata.set(CONTENT, content)
        if sink.is_write_limit_reached:
            metadata.set(WRITE_LIMIT_REACHED, "true")


# --- Convenience functions ---

def parse_bytes(data: bytes, resource_name: Optional[str] = None, **kwargs) -> list[Metadata]:
    """
    Parse an in-memory document with a fresh wrapper.

    Keyword arguments go to RecursiveParserWrapper. Failures propagate as
    ParseFailure with the collected records in `partial_result`.
    """
    metadata = Metadata()
    if resource_name:
        metadata.set(RESOURCE_NAME, resource_name)
    wrapper = RecursiveParserWrapper(**kwargs)
    wrapper.parse(io.BytesIO(data), metadata)
    return wrapper.get_results()


def parse_file(file_path: Union[str, Path], **kwargs) -> list[Metadata]:
    """Parse a file with a fresh wrapper; its name becomes the container's resource_name."""
    file_path = Path(file_path)
    metadata = Metadata({RESOURCE_NAME: file_path.name})
    wrapper = RecursiveParserWrapper(**kwargs)
    with file_path.open("rb") as stream:
        wrapper.parse(stream, metadata)
    return wrapper.get_results()
