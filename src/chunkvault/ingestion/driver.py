"""
Ingestion driver: feeds files to the chunker and the chunk store.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Dict, List, Optional, Union

from chunkvault.core.contracts import IngestResult
from chunkvault.core.errors import ChunkVaultError, IngestFailures, InputUnavailable
from chunkvault.core.ids import normalize_path
from chunkvault.ingestion.chunker import Chunker
from chunkvault.storage.chunk_store import ChunkStore

logger = logging.getLogger(__name__)


def ingest_file(
    store: ChunkStore,
    path: Union[str, Path],
    filename: Optional[str] = None,
    chunker: Optional[Chunker] = None,
) -> IngestResult:
    """
    Chunk a file and store every chunk under its sequence number.

    Each chunk is its own transaction; a failure part way leaves the
    manifest of this file incomplete. The file is marked complete only
    after its last chunk, so incomplete manifests show up in
    ManifestIndex.incomplete_files(). Re-ingesting under the same filename
    fails on the first already-recorded position.

    Args:
        store: Target chunk store
        path: File to ingest
        filename: Name to record in the manifest (defaults to the file name)
        chunker: Chunker to use (defaults to one built from store.config)

    Returns:
        IngestResult with the chunk hashes in order
    """
    path = Path(path)
    filename = normalize_path(filename if filename is not None else path.name)
    if not filename:
        raise InputUnavailable(f"Cannot derive a filename for {path}", filename=str(path))
    chunker = chunker or Chunker(store.config)

    start_time = time.perf_counter()
    result = IngestResult(filename=filename)

    try:
        for sequence_number, data in enumerate(chunker.chunk(path)):
            chunk = store.put(data, filename, sequence_number)
            result.chunk_hashes.append(chunk.hash)
            result.total_bytes += chunk.size
            if chunk.created:
                result.new_chunks += 1
    except ChunkVaultError:
        if result.chunk_hashes:
            logger.error(
                f"Ingestion of {filename} stopped after {result.chunk_count} chunks; "
                f"its manifest is incomplete"
            )
        raise

    if result.chunk_hashes:
        store.manifest.mark_complete(filename, result.chunk_count, result.total_bytes)

    result.elapsed_ms = (time.perf_counter() - start_time) * 1000
    logger.info(
        f"Ingested {filename}: {result.chunk_count} chunks, {result.new_chunks} new, "
        f"{result.total_bytes} bytes in {result.elapsed_ms:.0f} ms"
    )
    return result


def iter_files(root: Path) -> List[Path]:
    """Regular files under root, recursively, in sorted order."""
    return sorted(p for p in root.rglob("*") if p.is_file())


def ingest_directory(store: ChunkStore, root: Union[str, Path], workers: int = 1) -> List[IngestResult]:
    """
    Ingest every regular file under a directory.

    Files are named by their path relative to root. Independent files may be
    ingested in parallel; a failing file does not stop the others.

    Args:
        store: Target chunk store
        root: Directory to walk
        workers: Number of threads

    Returns:
        IngestResult per file, in path order

    Raises:
        InputUnavailable: If root is not a directory
        IngestFailures: After all files were attempted, if any failed
    """
    root = Path(root)
    if not root.is_dir():
        raise InputUnavailable(f"Input directory not found: {root}", filename=str(root))

    files = iter_files(root)
    chunker = Chunker(store.config)
    failures: Dict[str, ChunkVaultError] = {}

    def _ingest(path: Path) -> Optional[IngestResult]:
        filename = path.relative_to(root).as_posix()
        try:
            return ingest_file(store, path, filename=filename, chunker=chunker)
        except ChunkVaultError as e:
            logger.error(f"Failed to ingest {filename}: {e}")
            failures[filename] = e
            return None

    if workers > 1:
        with ThreadPoolExecutor(max_workers=workers) as pool:
            outcomes = list(pool.map(_ingest, files))
    else:
        outcomes = [_ingest(path) for path in files]

    results = [r for r in outcomes if r is not None]
    logger.info(f"Ingested {len(results)} of {len(files)} files from {root}")

    if failures:
        ordered = {name: failures[name] for name in sorted(failures)}
        raise IngestFailures(
            f"{len(failures)} of {len(files)} files failed to ingest: {', '.join(ordered)}",
            failures=ordered,
            results=results,
        ) from next(iter(ordered.values()))

    return results
