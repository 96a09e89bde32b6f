"""
Per-resource metadata record.

A Metadata record maps string keys to one or more string values. Keys are
unique and keep their insertion order so serialized output is deterministic.
"""

from typing import Iterable, Iterator, Optional, Union

# --- Reserved keys written by the recursive parser ---
CONTENT = "content"
EMBEDDED_RESOURCE_PATH = "embedded_resource_path"
RESOURCE_NAME = "resource_name"
CONTENT_TYPE = "content_type"
WRITE_LIMIT_REACHED = "write_limit_reached"
EMBEDDED_RESOURCE_LIMIT_REACHED = "embedded_resource_limit_reached"
EMBEDDED_EXCEPTION = "embedded_exception"
CONTAINER_EXCEPTION = "container_exception"
DIGEST_EXCEPTION = "digest_exception"
DIGEST_PREFIX = "digest_"


def digest_key(algorithm: str) -> str:
    """Metadata key for a digest algorithm, e.g. 'md5' -> 'digest_md5'."""
    return f"{DIGEST_PREFIX}{algorithm.lower().replace('-', '')}"


class Metadata:
    """Ordered multi-valued string mapping."""

    def __init__(self, values: Optional[dict] = None):
        self._values: dict[str, list[str]] = {}
        if values:
            for name, value in values.items():
                if isinstance(value, (list, tuple)):
                    for item in value:
                        self.add(name, item)
                else:
                    self.set(name, value)

    def get(self, name: str) -> Optional[str]:
        """Return the first value for `name`, or None."""
        values = self._values.get(name)
        return values[0] if values else None

    def get_values(self, name: str) -> list[str]:
        return list(self._values.get(name, []))

    def set(self, name: str, value: Optional[Union[str, int, bool]]) -> None:
        """Replace all values for `name`. Setting None removes the key."""
        if value is None:
            self.remove(name)
            return
        self._values[name] = [self._to_str(value)]

    def add(self, name: str, value: Union[str, int, bool]) -> None:
        """Append a value for `name`, keeping existing ones."""
        self._values.setdefault(name, []).append(self._to_str(value))

    def remove(self, name: str) -> None:
        self._values.pop(name, None)

    def names(self) -> list[str]:
        return list(self._values)

    def is_multi_valued(self, name: str) -> bool:
        return len(self._values.get(name, [])) > 1

    def update(self, values: dict) -> None:
        """Set each key of `values`, replacing existing values."""
        for name, value in values.items():
            self.set(name, value)

    def copy(self) -> "Metadata":
        clone = Metadata()
        for name, values in self._values.items():
            clone._values[name] = list(values)
        return clone

    def to_dict(self) -> dict:
        """Single values become strings, multiple values become lists."""
        return {
            name: values[0] if len(values) == 1 else list(values)
            for name, values in self._values.items()
        }

    @staticmethod
    def _to_str(value: Union[str, int, bool]) -> str:
        if isinstance(value, bool):
            return "true" if value else "false"
        return str(value)

    def __contains__(self, name: object) -> bool:
        return name in self._values

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Metadata):
            return NotImplemented
        return self._values == other._values

    def __repr__(self) -> str:
        return f"Metadata({self.to_dict()!r})"


def records_to_dicts(records: Iterable[Metadata]) -> list[dict]:
    """Convert a result list into JSON-ready dicts."""
    return [record.to_dict() for record in records]
