"""
Reconstruction of ingested files from the chunk store.
"""

from chunkvault.restore.reconstructor import Reconstructor

__all__ = ["Reconstructor"]
