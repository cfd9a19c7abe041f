"""
Deterministic identifiers for chunkvault.

ID Policy:
- chunk hash: hex digest of the uncompressed chunk bytes (sha256 by default)
- filename: relative path from the ingestion root, normalized to forward
  slashes with . and .. resolved, so manifests are portable across platforms
"""

import hashlib
from typing import Callable

import xxhash

from chunkvault.core.errors import HashUnavailable

# Non-cryptographic digests, only suitable for trusted corpora
XXHASH_ALGORITHMS = {
    "xxh64": xxhash.xxh64,
    "xxh128": xxhash.xxh128,
    "xxh3_64": xxhash.xxh3_64,
    "xxh3_128": xxhash.xxh3_128,
}


def normalize_path(rel_path: str) -> str:
    """
    Normalize relative path from the ingestion root.

    - Use forward slashes
    - Resolve . and ..
    - Ensure consistent representation
    """
    # Normalize path separators
    normalized = rel_path.replace("\\", "/")
    # Resolve . and ..
    parts = []
    for part in normalized.split("/"):
        if part in ("", "."):
            continue
        elif part == "..":
            if parts:
                parts.pop()
        else:
            parts.append(part)
    return "/".join(parts)


class Hasher:
    """Content hash used as chunk identity."""

    def __init__(self, algorithm: str = "sha256"):
        """
        Resolve the hash algorithm once.

        Args:
            algorithm: Any name hashlib.new accepts, or one of XXHASH_ALGORITHMS

        Raises:
            HashUnavailable: If the runtime does not provide the algorithm
        """
        self.algorithm = algorithm.lower()
        self._factory = self._resolve(self.algorithm)
        self.digest_size = len(self._factory(b"").hexdigest())

    @staticmethod
    def _resolve(algorithm: str) -> Callable:
        if algorithm in XXHASH_ALGORITHMS:
            return XXHASH_ALGORITHMS[algorithm]

        try:
            probe = hashlib.new(algorithm)
        except (ValueError, TypeError) as e:
            raise HashUnavailable(f"Hash algorithm not available: {algorithm}") from e

        # shake_* digests need an explicit length
        if probe.digest_size == 0:
            raise HashUnavailable(f"Variable-length hash algorithm not supported: {algorithm}")

        return lambda data: hashlib.new(algorithm, data)

    def digest(self, data: bytes) -> str:
        """
        Compute the hex digest of a chunk.

        Args:
            data: Chunk bytes

        Returns:
            Lowercase hex digest
        """
        return self._factory(data).hexdigest()

    def __repr__(self) -> str:
        return f"Hasher({self.algorithm!r})"
