"""
File reconstruction from stored chunks.
"""

import logging
import os
import tempfile
import time
from pathlib import Path
from typing import Union

from chunkvault.core.errors import (
    ChunkMissing,
    ChunkNotFound,
    ChunkVaultError,
    NoChunksFound,
    ReconstructionError,
)
from chunkvault.storage.chunk_store import ChunkStore

logger = logging.getLogger(__name__)


class Reconstructor:
    """
    Rebuilds files by replaying their manifests against a ChunkStore.

    Read-only with respect to the store; a failed rebuild only affects its
    own output file.
    """

    def __init__(self, store: ChunkStore, output_root: Union[str, Path], atomic: bool = False):
        """
        Args:
            store: Store holding the chunks and manifests
            output_root: Directory that receives rebuilt files
            atomic: Write to a temporary sibling and rename on success, so a
                failed rebuild leaves no partial file behind
        """
        self.store = store
        self.output_root = Path(output_root)
        self.atomic = atomic

    def output_path(self, filename: str) -> Path:
        """Destination of a rebuilt file; must stay inside output_root."""
        root = self.output_root.resolve()
        path = (root / filename).resolve()
        if path == root or root not in path.parents:
            raise ReconstructionError(
                f"Filename escapes the output directory: {filename}", filename=filename
            )
        return path

    def rebuild(self, filename: str) -> Path:
        """
        Rebuild a file from its chunks.

        Args:
            filename: Name the file was ingested under

        Returns:
            Path of the rebuilt file

        Raises:
            NoChunksFound: If the manifest is empty
            ChunkMissing: If a referenced chunk cannot be loaded; without
                atomic, the output may be left partially written
            ReconstructionError: On any other I/O failure
        """
        start_time = time.perf_counter()
        entries = self.store.manifest.list_chunks(filename)
        if not entries:
            raise NoChunksFound("No chunks found for file", filename=filename)

        output_path = self.output_path(filename)
        try:
            output_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ReconstructionError(
                f"Cannot create output directory {output_path.parent}", filename=filename
            ) from e

        if self.atomic:
            try:
                fd, tmp_name = tempfile.mkstemp(
                    dir=output_path.parent, prefix=f".{output_path.name}.", suffix=".tmp"
                )
                os.close(fd)
            except OSError as e:
                logger.error(f"Cannot create temporary file for {filename}: {e}")
                raise ReconstructionError(
                    f"Cannot create temporary file in {output_path.parent}", filename=filename
                ) from e
            target = Path(tmp_name)
        else:
            target = output_path

        total_bytes = 0
        try:
            with open(target, "wb") as out:
                for entry in entries:
                    try:
                        data = self.store.get(entry.chunk_hash)
                    except ChunkNotFound as e:
                        logger.error(
                            f"Chunk {entry.chunk_hash} (#{entry.sequence_number}) of {filename} missing"
                        )
                        raise ChunkMissing(
                            "Referenced chunk cannot be loaded",
                            filename=filename,
                            chunk_hash=entry.chunk_hash,
                            sequence_number=entry.sequence_number,
                        ) from e
                    except ChunkVaultError as e:
                        raise ReconstructionError(
                            f"Cannot load chunk: {e.message}",
                            filename=filename,
                            chunk_hash=entry.chunk_hash,
                            sequence_number=entry.sequence_number,
                            retryable=e.retryable,
                        ) from e
                    out.write(data)
                    total_bytes += len(data)

            if self.atomic:
                os.replace(target, output_path)
        except OSError as e:
            logger.error(f"Error while rebuilding {filename}: {e}")
            raise ReconstructionError(
                f"I/O error while rebuilding file: {e}", filename=filename
            ) from e
        finally:
            if self.atomic and target.exists():
                target.unlink()

        elapsed_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            f"Rebuilt {filename} from {len(entries)} chunks ({total_bytes} bytes) "
            f"in {elapsed_ms:.0f} ms: {output_path}"
        )
        return output_path
