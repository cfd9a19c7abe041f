"""Tests for the manifest index."""

import pytest

from chunkvault.core.errors import MetadataError
from chunkvault.storage.manifest import ManifestIndex


def test_entries_ordered_by_sequence_number(store):
    """Manifests list in sequence order regardless of append order."""
    hashes = [store.put(f"chunk {i}".encode(), "scratch", i).hash for i in range(3)]

    manifest = ManifestIndex(store.metadata)
    # Appended out of order on purpose
    for seq in (2, 0, 1):
        manifest.append("doc.txt", seq, hashes[seq])

    entries = manifest.list_chunks("doc.txt")
    assert [e.sequence_number for e in entries] == [0, 1, 2]
    assert [e.chunk_hash for e in entries] == hashes
    assert all(e.filename == "doc.txt" for e in entries)


def test_duplicate_position_rejected(store):
    """A (filename, sequence number) pair is recorded once."""
    chunk = store.put(b"first", "a.txt", 0)

    with pytest.raises(MetadataError) as exc_info:
        store.manifest.append("a.txt", 0, chunk.hash)

    error = exc_info.value
    assert error.retryable is False
    assert error.filename == "a.txt"
    assert error.sequence_number == 0
    assert len(store.manifest.list_chunks("a.txt")) == 1


def test_unknown_hash_rejected(store):
    """Manifest rows must reference an indexed chunk."""
    with pytest.raises(MetadataError):
        store.manifest.append("a.txt", 0, "f" * 64)
    assert not store.manifest.has_file("a.txt")


def test_unknown_file_is_empty(store):
    """An unknown filename has an empty manifest."""
    assert store.manifest.list_chunks("never-ingested") == []
    assert not store.manifest.has_file("never-ingested")


def test_list_files(store):
    """Stored filenames are listed sorted, optionally by prefix."""
    store.put(b"one", "docs/a.txt", 0)
    store.put(b"two", "docs/b.txt", 0)
    store.put(b"three", "other.bin", 0)
    store.put(b"four", "docs/a.txt", 1)

    assert store.manifest.list_files() == ["docs/a.txt", "docs/b.txt", "other.bin"]
    assert store.manifest.list_files("docs/") == ["docs/a.txt", "docs/b.txt"]
    assert store.manifest.has_file("other.bin")


def test_locations_point_into_storage_root(store):
    """Entry locations resolve against the storage root."""
    chunk = store.put(b"located", "a.txt", 0)
    entry = store.manifest.list_chunks("a.txt")[0]

    assert entry.location == chunk.location
    assert entry.location.startswith(str(store.root))


def test_append_increments_ref_count(store):
    """Each manifest row adds one reference."""
    chunk = store.put(b"shared", "a.txt", 0)
    store.manifest.append("b.txt", 0, chunk.hash)

    assert store.stat(chunk.hash).ref_count == 2
    assert store.validate_invariants() == []


def test_completion_marker(store):
    """A manifest is complete only when marked with its actual chunk count."""
    for seq in range(3):
        store.put(f"part {seq}".encode(), "doc.txt", seq)
    assert store.manifest.incomplete_files() == ["doc.txt"]
    assert not store.manifest.is_complete("doc.txt")

    store.manifest.mark_complete("doc.txt", chunk_count=3, total_bytes=18)
    assert store.manifest.is_complete("doc.txt")
    assert store.manifest.incomplete_files() == []

    store.manifest.mark_complete("doc.txt", chunk_count=4, total_bytes=24)
    assert store.manifest.incomplete_files() == ["doc.txt"]
