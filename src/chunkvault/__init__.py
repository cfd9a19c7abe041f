"""
chunkvault - Content-defined chunking and deduplicating, compressed file storage.
"""

from chunkvault.core import Config
from chunkvault.ingestion import Chunker, ingest_directory, ingest_file
from chunkvault.restore import Reconstructor
from chunkvault.storage import ChunkStore

__version__ = "0.1.0"

__all__ = [
    "Config",
    "Chunker",
    "ChunkStore",
    "Reconstructor",
    "ingest_file",
    "ingest_directory",
]
