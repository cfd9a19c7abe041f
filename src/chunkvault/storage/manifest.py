"""
Manifest management: which chunks, in which order, make up each file.
"""

import logging
import sqlite3
from pathlib import Path
from typing import List, Optional

from chunkvault.core.contracts import ManifestEntry
from chunkvault.core.errors import MetadataError
from chunkvault.storage.metadata import MetadataIndex, translate_error

logger = logging.getLogger(__name__)


class ManifestIndex:
    """
    Append-only mapping filename -> ordered chunk hashes.

    Holds hashes only; the bytes belong to the ChunkStore.
    """

    def __init__(self, metadata: MetadataIndex, root: Optional[Path] = None):
        """
        Args:
            metadata: Shared metadata database
            root: Storage root that recorded object paths are relative to
        """
        self.metadata = metadata
        self.root = Path(root) if root is not None else None

    def _location(self, physical_path: str) -> str:
        if self.root is None:
            return physical_path
        return str(self.root / physical_path)

    def append(
        self,
        filename: str,
        sequence_number: int,
        chunk_hash: str,
        conn: Optional[sqlite3.Connection] = None,
    ):
        """
        Record that position sequence_number of filename holds chunk_hash.

        Args:
            filename: Normalized filename
            sequence_number: Zero-based position of the chunk in the file
            chunk_hash: Hash of a chunk already present in the chunk index
            conn: Connection of an open transaction to join; when None the
                append runs in its own transaction

        Raises:
            MetadataError: If the position is already taken or the hash is
                not in the chunk index
        """
        if conn is None:
            with self.metadata.transaction() as own_conn:
                self.append(filename, sequence_number, chunk_hash, conn=own_conn)
            return

        context = dict(filename=filename, chunk_hash=chunk_hash, sequence_number=sequence_number)
        try:
            conn.execute(
                """INSERT INTO file_chunks (filename, chunk_hash, chunk_number)
                   VALUES (?, ?, ?)""",
                (filename, chunk_hash, sequence_number),
            )
            conn.execute(
                "UPDATE chunks SET ref_count = ref_count + 1 WHERE hash = ?",
                (chunk_hash,),
            )
        except sqlite3.IntegrityError as e:
            raise MetadataError(
                f"Manifest position already recorded or chunk unknown: {e}",
                retryable=False,
                **context,
            ) from e
        except sqlite3.Error as e:
            raise translate_error(e, "Manifest append failed", **context) from e

    def list_chunks(self, filename: str) -> List[ManifestEntry]:
        """
        Manifest of a file, ascending by sequence number.

        An empty list means either an unknown filename or a file with no
        chunks; use has_file() to tell them apart where it matters.
        """
        with self.metadata.connection() as conn:
            rows = conn.execute(
                """SELECT fc.chunk_number, fc.chunk_hash, c.physical_path
                   FROM file_chunks fc
                   JOIN chunks c ON fc.chunk_hash = c.hash
                   WHERE fc.filename = ?
                   ORDER BY fc.chunk_number""",
                (filename,),
            ).fetchall()

        if not rows:
            logger.warning(f"No manifest entries for file: {filename}")

        return [
            ManifestEntry(
                filename=filename,
                sequence_number=row["chunk_number"],
                chunk_hash=row["chunk_hash"],
                location=self._location(row["physical_path"]),
            )
            for row in rows
        ]

    def list_files(self, prefix: str = "") -> List[str]:
        """Filenames with at least one manifest row, sorted."""
        with self.metadata.connection() as conn:
            rows = conn.execute(
                """SELECT DISTINCT filename FROM file_chunks
                   WHERE substr(filename, 1, ?) = ?
                   ORDER BY filename""",
                (len(prefix), prefix),
            ).fetchall()
        return [row["filename"] for row in rows]

    def has_file(self, filename: str) -> bool:
        with self.metadata.connection() as conn:
            row = conn.execute(
                "SELECT 1 FROM file_chunks WHERE filename = ? LIMIT 1", (filename,)
            ).fetchone()
        return row is not None

    def mark_complete(self, filename: str, chunk_count: int, total_bytes: int):
        """
        Record that every chunk of filename has been appended.

        Manifests without this marker were left behind by an ingestion that
        failed part way, and rebuild to a truncated file.
        """
        with self.metadata.transaction() as conn:
            conn.execute(
                """INSERT OR REPLACE INTO file_status (filename, chunk_count, total_bytes)
                   VALUES (?, ?, ?)""",
                (filename, chunk_count, total_bytes),
            )

    def is_complete(self, filename: str) -> bool:
        with self.metadata.connection() as conn:
            row = conn.execute(
                "SELECT 1 FROM file_status WHERE filename = ?", (filename,)
            ).fetchone()
        return row is not None

    def incomplete_files(self) -> List[str]:
        """Filenames whose manifest lacks a completion marker or disagrees with it."""
        with self.metadata.connection() as conn:
            rows = conn.execute(
                """SELECT fc.filename
                   FROM file_chunks fc
                   LEFT JOIN file_status fs ON fs.filename = fc.filename
                   GROUP BY fc.filename
                   HAVING MAX(fs.chunk_count) IS NULL OR COUNT(*) != MAX(fs.chunk_count)
                   ORDER BY fc.filename"""
            ).fetchall()
        return [row["filename"] for row in rows]
