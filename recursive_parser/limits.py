"""
Resource limits applied during a traversal.

EmbeddedResourceLimiter caps how many embedded resources are parsed;
DepthGuard caps how deep the embedding tree may go.
"""

from .exceptions import ResourceLimitExceeded
from .schemas import UNLIMITED


class EmbeddedResourceLimiter:
    """
    Counts attempted embedded resources and decides whether to parse the next one.

    Any negative max_embedded means unlimited; zero means no embedded
    resource is ever parsed. Skipped resources are not counted.
    """

    def __init__(self, max_embedded: int = UNLIMITED):
        self.max_embedded = max_embedded
        self.embedded_count = 0
        self.skipped = 0

    @property
    def unlimited(self) -> bool:
        return self.max_embedded < 0

    def limit_reached(self) -> bool:
        return not self.unlimited and self.embedded_count >= self.max_embedded

    def try_acquire(self) -> bool:
        """
        Claim a slot for the next embedded resource.

        Returns:
            True if the resource may be parsed, False if it must be skipped
        """
        if self.limit_reached():
            self.skipped += 1
            return False
        self.embedded_count += 1
        return True


class DepthGuard:
    """Rejects resources nested deeper than max_depth levels below the root."""

    def __init__(self, max_depth: int):
        self.max_depth = max_depth

    def check(self, depth: int, resource_path: str) -> None:
        if depth > self.max_depth:
            raise ResourceLimitExceeded(
                f"Embedding depth {depth} exceeds maximum of {self.max_depth} at {resource_path}",
                limit=self.max_depth
            )
