"""
Custom exceptions for the recursive parser.

Error philosophy:
  - Embedded failures   → CONTAINED by default: written to the resource's
                          `embedded_exception` key, traversal continues.
  - Embedded failures   → FAIL FAST when catch_embedded_exceptions=False:
                          wrapped with resource context and re-raised.
  - Container failures  → ALWAYS PROPAGATE, wrapped with context.
  - DigestFailure       → embedded: handled like any embedded failure.
                          container: NON-FATAL, recorded under
                          `digest_exception`, the container is still parsed.

Every failure that leaves the wrapper is a ParseFailure subclass, so callers
catch one type and still get the records collected before the failure via
`partial_result`.
"""

import traceback
from typing import Optional


class RecursiveParserError(Exception):
    """Base exception for all recursive parser errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ParseFailure(RecursiveParserError):
    """
    A classified failure raised while parsing one resource.

    resource_name / resource_path are filled in when the wrapper attaches
    context; partial_result is attached when the failure escapes `parse()`.
    """

    def __init__(
        self,
        message: str,
        resource_name: Optional[str] = None,
        resource_path: Optional[str] = None,
        details: Optional[dict] = None
    ):
        super().__init__(message, details)
        self.resource_name = resource_name
        self.resource_path = resource_path
        self.partial_result: Optional[list] = None

    @property
    def has_context(self) -> bool:
        return self.resource_name is not None

    def to_response(self) -> dict:
        """Convert to a JSON-ready error summary."""
        return {
            "error": type(self).__name__,
            "message": self.message,
            "resource_name": self.resource_name,
            "resource_path": self.resource_path,
            "cause": type(self.__cause__).__name__ if self.__cause__ else None,
            "records_collected": len(self.partial_result or []),
            "details": self.details
        }


# --- Taxonomy ---

class ContentParseFailure(ParseFailure):
    """Malformed or unsupported resource content."""
    pass


class IOFailure(ParseFailure):
    """Reading a resource stream failed."""
    pass


class ResourceLimitExceeded(ParseFailure):
    """Embedding depth exceeded the configured recursion guard."""

    def __init__(
        self,
        message: str,
        limit: Optional[int] = None,
        **kwargs
    ):
        super().__init__(message, **kwargs)
        self.limit = limit


class DigestFailure(ParseFailure):
    """The digester could not compute a digest (e.g. stream too large to buffer)."""

    def __init__(
        self,
        message: str,
        max_bytes: Optional[int] = None,
        **kwargs
    ):
        super().__init__(message, **kwargs)
        self.max_bytes = max_bytes


def classify_exception(exc: BaseException) -> type:
    """
    Map an arbitrary exception onto the failure taxonomy.

    Args:
        exc: Exception raised while parsing a resource

    Returns:
        The ParseFailure subclass that describes it
    """
    if isinstance(exc, ParseFailure):
        return type(exc)
    if isinstance(exc, RecursionError):
        return ResourceLimitExceeded
    if isinstance(exc, OSError):
        return IOFailure
    return ContentParseFailure


def wrap_exception(
    exc: BaseException,
    resource_name: Optional[str],
    resource_path: Optional[str]
) -> ParseFailure:
    """
    Attach resource context to a failure, classifying it if needed.

    A ParseFailure that already carries context is returned unchanged so a
    failure from a deep resource keeps the name and path of where it happened.
    """
    if isinstance(exc, ParseFailure):
        if not exc.has_context:
            exc.resource_name = resource_name
            exc.resource_path = resource_path
        return exc

    failure_cls = classify_exception(exc)
    where = resource_path or resource_name or "<container>"
    wrapped = failure_cls(
        f"{type(exc).__name__} while parsing {where}: {exc}",
        resource_name=resource_name,
        resource_path=resource_path
    )
    wrapped.__cause__ = exc
    return wrapped


def format_exception_trace(exc: BaseException) -> str:
    """
    Render a stack-trace-like description of a caught failure.

    The first line names the taxonomy class; the rest is the Python traceback
    of the original exception (including its chained causes).
    """
    failure_cls = classify_exception(exc)
    trace = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return f"{failure_cls.__name__}: {exc}\n{trace}".rstrip("\n")
