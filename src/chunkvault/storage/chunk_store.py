"""
Content-addressable chunk store for chunkvault.

Stores each unique chunk once, compressed and framed, at a path derived from
its hash, and keeps the chunk index and manifests in a transactional
metadata database.

Layout under the storage root:
- objects/: one framed object per unique hash (optionally sharded by hash prefix)
- metadata.db: chunk index, manifests and pinned store settings
"""

import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import List

from chunkvault.core.contracts import Chunk, Config, StoreStats
from chunkvault.core.errors import (
    ChunkNotFound,
    DecompressionError,
    MetadataError,
    StorageIOError,
)
from chunkvault.core.ids import Hasher
from chunkvault.storage.compression import Compressor, get_codec
from chunkvault.storage.manifest import ManifestIndex
from chunkvault.storage.metadata import MetadataIndex
from chunkvault.storage.schema import PINNED_SETTINGS

logger = logging.getLogger(__name__)


class ChunkStore:
    """
    Deduplicating, compressing chunk store.

    Invariant: every hash in the chunk index has its physical object on
    disk. The index row and the object are created in the same transaction
    as the manifest row that first references them.
    """

    def __init__(self, config: Config):
        """
        Initialize chunk store.

        Args:
            config: Configuration (storage root, codec, hash algorithm, ...)

        Raises:
            HashUnavailable: If the hash algorithm is not available
            CompressionError: If the codec is unknown
        """
        self.config = config.validate()
        self.root = config.storage_root
        self.objects_dir = config.objects_dir

        self.hasher = Hasher(config.hash_algorithm)
        self.compressor = Compressor(get_codec(config.codec, config.zstd_level))
        self.metadata = MetadataIndex(config.metadata_path, timeout=config.busy_timeout)
        self.manifest = ManifestIndex(self.metadata, root=self.root)

    @classmethod
    def open(cls, config: Config, reset: bool = False) -> "ChunkStore":
        """Create a store and initialize its storage root."""
        store = cls(config)
        store.initialize(reset=reset)
        return store

    def initialize(self, reset: bool = False):
        """
        Create the storage root, objects directory and schema.

        Args:
            reset: Clear all metadata and objects first. Must not run while
                any other process or thread uses the store.
        """
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageIOError(f"Cannot create storage root {self.root}") from e

        self.metadata.initialize()

        if reset:
            self.metadata.reset()
            if self.objects_dir.exists():
                shutil.rmtree(self.objects_dir)
            logger.warning(f"Storage root cleared: {self.root}")

        self.objects_dir.mkdir(parents=True, exist_ok=True)
        self._pin_settings()

    def _pin_settings(self):
        """Record codec, hash and layout on first use; refuse to open with different ones."""
        for key in PINNED_SETTINGS:
            current = str(getattr(self.config, key))
            stored = self.metadata.get_info(key)
            if stored is None:
                self.metadata.set_info(key, current)
            elif stored != current:
                raise MetadataError(
                    f"Store at {self.root} was created with {key}={stored}, "
                    f"but the configuration has {key}={current}"
                )

    def relative_path(self, chunk_hash: str) -> str:
        """Object path relative to the storage root, as recorded in the index."""
        shards = [chunk_hash[2 * i : 2 * i + 2] for i in range(self.config.shard_depth)]
        return "/".join(["objects", *shards, chunk_hash])

    def object_path(self, chunk_hash: str) -> Path:
        return self.root / self.relative_path(chunk_hash)

    def put(self, data: bytes, filename: str, sequence_number: int) -> Chunk:
        """
        Store a chunk (once per hash) and append it to a file's manifest.

        Runs as one transaction: the index row, the physical object and the
        manifest row are all created, or none is.

        Args:
            data: Uncompressed chunk bytes
            filename: File the chunk belongs to
            sequence_number: Position of the chunk within the file

        Returns:
            Chunk describing the stored content; created is True when this
            call wrote the physical object

        Raises:
            StorageIOError: If the object cannot be written
            MetadataError: If the transaction fails (for example a duplicate
                (filename, sequence_number))
        """
        chunk_hash = self.hasher.digest(data)
        rel_path = self.relative_path(chunk_hash)
        path = self.root / rel_path
        context = dict(filename=filename, chunk_hash=chunk_hash, sequence_number=sequence_number)

        with self.metadata.transaction() as conn:
            # The primary key decides which caller creates the object
            cursor = conn.execute(
                """INSERT OR IGNORE INTO chunks (hash, physical_path, size, stored_size, ref_count)
                   VALUES (?, ?, ?, 0, 0)""",
                (chunk_hash, rel_path, len(data)),
            )
            created = cursor.rowcount == 1

            written = False
            try:
                if created:
                    framed = self.compressor.frame(data)
                    self._write_object(path, framed, context)
                    written = True
                    conn.execute(
                        "UPDATE chunks SET stored_size = ? WHERE hash = ?",
                        (len(framed), chunk_hash),
                    )
                    logger.debug(f"Stored new chunk {chunk_hash} ({len(data)} -> {len(framed)} bytes)")
                else:
                    logger.debug(f"Deduplicated chunk {chunk_hash} for {filename}#{sequence_number}")

                self.manifest.append(filename, sequence_number, chunk_hash, conn=conn)

                row = conn.execute(
                    "SELECT ref_count, stored_size FROM chunks WHERE hash = ?", (chunk_hash,)
                ).fetchone()
            except BaseException:
                # Still holding the write lock, so nobody else can have claimed this hash
                if written:
                    self._remove_object(path)
                raise

        return Chunk(
            hash=chunk_hash,
            size=len(data),
            location=str(path),
            ref_count=row["ref_count"],
            stored_size=row["stored_size"],
            created=created,
        )

    def _write_object(self, path: Path, framed: bytes, context: dict):
        """Write an object atomically: temp file in the same directory, then rename."""
        tmp_name = None
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
            with os.fdopen(fd, "wb") as f:
                f.write(framed)
            os.replace(tmp_name, path)
        except OSError as e:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            logger.error(f"Failed to write chunk object {path}: {e}")
            raise StorageIOError(f"Cannot write chunk object {path}", **context) from e

    def _remove_object(self, path: Path):
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove rolled-back chunk object {path}: {e}")

    def get(self, chunk_hash: str) -> bytes:
        """
        Load and decompress a chunk.

        Args:
            chunk_hash: Hex digest of the chunk

        Returns:
            Original chunk bytes

        Raises:
            ChunkNotFound: If the hash is not indexed or its object is missing
            DecompressionError: If the object is corrupt
            StorageIOError: If the object cannot be read
        """
        with self.metadata.connection() as conn:
            row = conn.execute(
                "SELECT physical_path FROM chunks WHERE hash = ?", (chunk_hash,)
            ).fetchone()
        if row is None:
            raise ChunkNotFound("Chunk not in index", chunk_hash=chunk_hash)

        path = self.root / row["physical_path"]
        try:
            framed = path.read_bytes()
        except FileNotFoundError as e:
            raise ChunkNotFound(f"Chunk object missing: {path}", chunk_hash=chunk_hash) from e
        except OSError as e:
            raise StorageIOError(f"Cannot read chunk object {path}", chunk_hash=chunk_hash) from e

        try:
            data = self.compressor.unframe(framed)
        except DecompressionError as e:
            raise type(e)(e.message, chunk_hash=chunk_hash) from e

        if self.hasher.digest(data) != chunk_hash:
            raise DecompressionError("Chunk content does not match its hash", chunk_hash=chunk_hash)
        return data

    def stat(self, chunk_hash: str) -> Chunk:
        """Index record of a chunk."""
        with self.metadata.connection() as conn:
            row = conn.execute(
                """SELECT physical_path, size, stored_size, ref_count
                   FROM chunks WHERE hash = ?""",
                (chunk_hash,),
            ).fetchone()
        if row is None:
            raise ChunkNotFound("Chunk not in index", chunk_hash=chunk_hash)

        return Chunk(
            hash=chunk_hash,
            size=row["size"],
            location=str(self.root / row["physical_path"]),
            ref_count=row["ref_count"],
            stored_size=row["stored_size"],
        )

    def contains(self, chunk_hash: str) -> bool:
        with self.metadata.connection() as conn:
            row = conn.execute("SELECT 1 FROM chunks WHERE hash = ?", (chunk_hash,)).fetchone()
        return row is not None

    def stats(self) -> StoreStats:
        """Counts and byte totals across the whole store."""
        with self.metadata.connection() as conn:
            chunks = conn.execute(
                """SELECT COUNT(*) AS n, COALESCE(SUM(size), 0) AS unique_bytes,
                          COALESCE(SUM(stored_size), 0) AS stored_bytes
                   FROM chunks"""
            ).fetchone()
            manifests = conn.execute(
                """SELECT COUNT(*) AS n, COUNT(DISTINCT fc.filename) AS files,
                          COALESCE(SUM(c.size), 0) AS logical_bytes
                   FROM file_chunks fc JOIN chunks c ON fc.chunk_hash = c.hash"""
            ).fetchone()

        return StoreStats(
            unique_chunks=chunks["n"],
            manifest_rows=manifests["n"],
            files=manifests["files"],
            logical_bytes=manifests["logical_bytes"],
            unique_bytes=chunks["unique_bytes"],
            stored_bytes=chunks["stored_bytes"],
        )

    def validate_invariants(self) -> List[str]:
        """
        Validate chunk store invariants.

        Returns:
            List of error messages (empty if all valid)
        """
        errors = []

        with self.metadata.connection() as conn:
            rows = conn.execute(
                """SELECT c.hash, c.physical_path, c.stored_size, c.ref_count,
                          (SELECT COUNT(*) FROM file_chunks fc WHERE fc.chunk_hash = c.hash) AS refs
                   FROM chunks c ORDER BY c.hash"""
            ).fetchall()

        for row in rows:
            path = self.root / row["physical_path"]
            if not path.exists():
                errors.append(f"Chunk {row['hash']}: object missing at {path}")
                continue
            actual_size = path.stat().st_size
            if actual_size != row["stored_size"]:
                errors.append(
                    f"Chunk {row['hash']}: object is {actual_size} bytes, "
                    f"index records {row['stored_size']}"
                )
            if row["ref_count"] != row["refs"]:
                errors.append(
                    f"Chunk {row['hash']}: ref_count {row['ref_count']} "
                    f"but {row['refs']} manifest rows"
                )

        return errors

    def find_orphans(self) -> List[Path]:
        """Object files with no index row (left behind by a failed commit)."""
        if not self.objects_dir.exists():
            return []

        with self.metadata.connection() as conn:
            indexed = {row["hash"] for row in conn.execute("SELECT hash FROM chunks")}

        orphans = []
        for path in sorted(self.objects_dir.rglob("*")):
            if path.is_file() and not path.name.endswith(".tmp") and path.name not in indexed:
                orphans.append(path)
        return orphans

    def __repr__(self) -> str:
        return f"ChunkStore(root={str(self.root)!r}, codec={self.config.codec!r})"
