"""
Ingestion pipeline: rolling fingerprint, content-defined chunking, and the
file/directory driver.
"""

from chunkvault.ingestion.chunker import Chunker
from chunkvault.ingestion.driver import ingest_directory, ingest_file
from chunkvault.ingestion.rolling import RabinFingerprint

__all__ = [
    "Chunker",
    "RabinFingerprint",
    "ingest_file",
    "ingest_directory",
]
