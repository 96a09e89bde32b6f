"""
Digest adapters.

A digester reads a resource's raw bytes and returns metadata keys holding the
digest values. The wrapper rewinds the stream afterwards, so the digester may
consume it freely.
"""

import hashlib
from abc import ABC, abstractmethod
from typing import BinaryIO

from .exceptions import DigestFailure
from .metadata import digest_key
from .logger import get_module_logger

logger = get_module_logger("digest")

CHUNK_SIZE = 65536


class Digester(ABC):
    """Computes digests of a resource's raw byte stream."""

    @abstractmethod
    def digest(self, stream: BinaryIO) -> dict[str, str]:
        """
        Digest the stream from its current position to its end.

        Args:
            stream: Binary stream positioned at the start of the resource

        Returns:
            Mapping of metadata key to digest value

        Raises:
            DigestFailure: if the stream cannot be digested
        """
        pass


class HashlibDigester(Digester):
    """
    hashlib-backed digester for one or more algorithms.

    At most `max_bytes` are read; a longer stream raises DigestFailure rather
    than producing a digest of a prefix.
    """

    def __init__(self, max_bytes: int, *algorithms: str):
        if not algorithms:
            algorithms = ("md5",)
        for algorithm in algorithms:
            # Fail at construction time, not on the first resource
            hashlib.new(algorithm)
        self.max_bytes = max_bytes
        self.algorithms = [alg.lower() for alg in algorithms]

    def digest(self, stream: BinaryIO) -> dict[str, str]:
        hashers = {alg: hashlib.new(alg) for alg in self.algorithms}
        total = 0
        while True:
            chunk = stream.read(CHUNK_SIZE)
            if not chunk:
                break
            total += len(chunk)
            if total > self.max_bytes:
                raise DigestFailure(
                    f"Stream exceeds digest buffer of {self.max_bytes} bytes",
                    max_bytes=self.max_bytes
                )
            for hasher in hashers.values():
                hasher.update(chunk)

        logger.debug(f"Digested {total} bytes with {', '.join(self.algorithms)}")
        return {digest_key(alg): hasher.hexdigest() for alg, hasher in hashers.items()}

    def __repr__(self) -> str:
        return f"HashlibDigester({self.max_bytes}, {', '.join(self.algorithms)})"
