"""
Content-defined chunking for chunkvault.

Boundaries are placed where the rolling fingerprint of the trailing window
has its low-order bits (selected by the cut mask) all zero, so an insertion
only moves the boundaries next to it; downstream boundaries resynchronize
once the window has slid past the edit.
"""

import io
import logging
import time
from pathlib import Path
from typing import BinaryIO, Iterator, Union

from chunkvault.core.contracts import Config
from chunkvault.core.errors import InputUnavailable, StorageIOError
from chunkvault.ingestion.rolling import RabinFingerprint

logger = logging.getLogger(__name__)

Source = Union[str, Path, BinaryIO]


class Chunker:
    """Rabin-fingerprint content-defined chunker."""

    def __init__(self, config: Config):
        """
        Initialize chunker with configuration.

        Args:
            config: Configuration object with max_chunk_size, cut_mask, etc.
        """
        self.config = config
        self.max_chunk_size = config.max_chunk_size
        self.cut_mask = config.cut_mask
        self.read_buffer_size = config.read_buffer_size

    def new_fingerprint(self) -> RabinFingerprint:
        """Fresh fingerprint state; one per stream so chunkers can be shared by threads."""
        return RabinFingerprint(self.config.polynomial, self.config.window_size)

    def chunk(self, source: Source) -> Iterator[bytes]:
        """
        Split a file or binary stream into content-defined chunks.

        Paths are opened here, before the first chunk is requested, so an
        unreadable input fails immediately rather than on first iteration.

        Args:
            source: Path to a regular file, or a readable binary file object

        Returns:
            Iterator over chunk bytes, in stream order. Consumed once.

        Raises:
            InputUnavailable: If the path does not exist or cannot be opened
        """
        if isinstance(source, (str, Path)):
            path = Path(source)
            if not path.is_file():
                raise InputUnavailable(f"Input is not a readable file: {path}", filename=str(path))
            try:
                stream = open(path, "rb")
            except OSError as e:
                raise InputUnavailable(f"Cannot open input: {path}", filename=str(path)) from e
            return self._iter_chunks(stream, name=str(path), close=True)

        if not hasattr(source, "read"):
            raise InputUnavailable(f"Unsupported input source: {type(source).__name__}")
        return self._iter_chunks(source, name=getattr(source, "name", "<stream>"), close=False)

    def chunk_bytes(self, data: bytes) -> Iterator[bytes]:
        """Chunk an in-memory buffer."""
        return self._iter_chunks(io.BytesIO(data), name="<bytes>", close=False)

    def _iter_chunks(self, stream: BinaryIO, name: str, close: bool) -> Iterator[bytes]:
        start_time = time.perf_counter()
        fingerprint = self.new_fingerprint()
        update = fingerprint.update
        mask = self.cut_mask
        max_size = self.max_chunk_size

        pending = bytearray()
        pending_size = 0
        chunk_count = 0
        total_bytes = 0

        try:
            while True:
                try:
                    block = stream.read(self.read_buffer_size)
                except OSError as e:
                    logger.error(f"Read failed after {total_bytes} bytes of {name}: {e}")
                    raise StorageIOError(f"Read failed while chunking {name}", filename=name) from e
                if not block:
                    break
                total_bytes += len(block)

                start = 0
                for i, byte in enumerate(block):
                    fp = update(byte)
                    pending_size += 1
                    # A zero fingerprint means an all-zero window, which never cuts
                    if ((fp & mask) == 0 and fp != 0) or pending_size >= max_size:
                        pending += block[start : i + 1]
                        chunk_count += 1
                        logger.debug(f"Chunk boundary in {name}: {pending_size} bytes")
                        yield bytes(pending)
                        pending.clear()
                        pending_size = 0
                        fingerprint.reset()
                        start = i + 1
                pending += block[start:]

            if pending:
                chunk_count += 1
                yield bytes(pending)
        finally:
            if close:
                stream.close()

        elapsed_ms = (time.perf_counter() - start_time) * 1000
        logger.info(f"Split {name} into {chunk_count} chunks ({total_bytes} bytes) in {elapsed_ms:.0f} ms")
