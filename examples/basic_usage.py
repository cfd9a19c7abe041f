"""
Basic usage example for chunkvault.
"""

from chunkvault import ChunkStore, Reconstructor, ingest_directory
from chunkvault.core import Config

# Open (or create) a store
print("Opening store...")
config = Config(storage_root="vault/", codec="zstd", shard_depth=1)
store = ChunkStore.open(config)

# Ingest a directory tree
print("\nIngesting corpus...")
results = ingest_directory(store, "corpus/", workers=4)

for result in results:
    print(f"{result.filename}: {result.chunk_count} chunks ({result.new_chunks} new)")

# Store-wide numbers
stats = store.stats()
print(f"\nUnique chunks: {stats.unique_chunks}")
print(f"Dedup ratio: {stats.dedup_ratio:.2f}")
print(f"Compression ratio: {stats.compression_ratio:.2f}")

# Inspect one manifest
print("\nManifest of the first file...")
for entry in store.manifest.list_chunks(results[0].filename):
    print(f"  #{entry.sequence_number}: {entry.chunk_hash}")

# Rebuild every file
print("\nRebuilding...")
reconstructor = Reconstructor(store, "restored/", atomic=True)
for name in store.manifest.list_files():
    print(f"  {reconstructor.rebuild(name)}")
