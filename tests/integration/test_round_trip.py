"""End-to-end: ingest files, rebuild them, compare bytes."""

import hashlib

import pytest

from chunkvault.core.contracts import Config
from chunkvault.core.errors import MetadataError, NoChunksFound
from chunkvault.ingestion import ingest_directory, ingest_file
from chunkvault.restore import Reconstructor
from chunkvault.storage import ChunkStore


def sha256_file(path):
    return hashlib.sha256(path.read_bytes()).hexdigest()


@pytest.mark.parametrize("size", [1, 4095, 4096, 65536, 65537, 10_000_000])
@pytest.mark.parametrize("kind", ["random", "zeros"])
def test_rebuild_is_byte_identical(tmp_path, store, random_bytes, size, kind):
    """Ingest then rebuild gives back the exact bytes."""
    data = random_bytes(size, seed=size) if kind == "random" else bytes(size)
    source = tmp_path / "input.bin"
    source.write_bytes(data)

    result = ingest_file(store, source)
    assert result.total_bytes == size

    output = Reconstructor(store, tmp_path / "out").rebuild("input.bin")
    assert output.read_bytes() == data
    assert store.validate_invariants() == []


def test_repetitive_data_deduplicates(tmp_path, store):
    """Identical chunks within one file are stored once."""
    source = tmp_path / "zeros.bin"
    source.write_bytes(bytes(10 * 65536))

    result = ingest_file(store, source)

    # Ten identical max-size chunks, stored once
    assert result.chunk_count == 10
    assert result.new_chunks == 1
    assert len(set(result.chunk_hashes)) == 1
    assert store.stat(result.chunk_hashes[0]).ref_count == 10

    stats = store.stats()
    assert stats.unique_chunks == 1
    assert stats.manifest_rows == 10
    assert stats.dedup_ratio == 10.0
    assert stats.compression_ratio > 100


def test_same_content_under_two_names(tmp_path, store, random_bytes):
    """Two names for the same bytes share every chunk."""
    data = random_bytes(200_000, seed=21)
    (tmp_path / "a.bin").write_bytes(data)
    (tmp_path / "b.bin").write_bytes(data)

    first = ingest_file(store, tmp_path / "a.bin")
    second = ingest_file(store, tmp_path / "b.bin")

    assert first.chunk_hashes == second.chunk_hashes
    assert second.new_chunks == 0
    assert store.stats().unique_chunks == first.chunk_count

    reconstructor = Reconstructor(store, tmp_path / "out")
    assert reconstructor.rebuild("a.bin").read_bytes() == data
    assert reconstructor.rebuild("b.bin").read_bytes() == data


def test_edited_file_shares_most_chunks(tmp_path, store, random_bytes):
    """A small edit only adds the chunks around it."""
    original = random_bytes(400_000, seed=22)
    edited = original[:150_000] + b"a small edit" + original[150_000:]
    (tmp_path / "v1.bin").write_bytes(original)
    (tmp_path / "v2.bin").write_bytes(edited)

    v1 = ingest_file(store, tmp_path / "v1.bin")
    v2 = ingest_file(store, tmp_path / "v2.bin")

    assert v2.new_chunks <= 3
    assert v2.new_chunks < v1.chunk_count // 10
    out = Reconstructor(store, tmp_path / "out")
    assert out.rebuild("v2.bin").read_bytes() == edited


def test_duplicate_ingest_rejected(tmp_path, store):
    """Ingesting an already-stored filename fails and keeps the original."""
    source = tmp_path / "doc.txt"
    source.write_bytes(b"version one")
    ingest_file(store, source)

    with pytest.raises(MetadataError) as exc_info:
        ingest_file(store, source)
    assert exc_info.value.filename == "doc.txt"
    assert exc_info.value.sequence_number == 0

    # The original manifest is untouched
    output = Reconstructor(store, tmp_path / "out").rebuild("doc.txt")
    assert output.read_bytes() == b"version one"


def test_unknown_file_has_no_chunks(tmp_path, store):
    """Rebuilding an unknown name raises NoChunksFound."""
    with pytest.raises(NoChunksFound) as exc_info:
        Reconstructor(store, tmp_path / "out").rebuild("never-ingested.txt")
    assert exc_info.value.filename == "never-ingested.txt"
    assert not (tmp_path / "out" / "never-ingested.txt").exists()


def test_empty_file_has_no_chunks(tmp_path, store):
    """Empty files record no manifest and cannot be rebuilt."""
    source = tmp_path / "empty.txt"
    source.write_bytes(b"")

    result = ingest_file(store, source)
    assert result.chunk_count == 0
    assert not store.manifest.has_file("empty.txt")

    with pytest.raises(NoChunksFound):
        Reconstructor(store, tmp_path / "out").rebuild("empty.txt")


def test_directory_ingest_and_rebuild(tmp_path, store, random_bytes):
    """Nested directories ingest with relative names and rebuild."""
    source = tmp_path / "tree"
    (source / "nested" / "deeper").mkdir(parents=True)
    files = {
        "top.bin": random_bytes(70_000, seed=23),
        "nested/mid.txt": b"some text\n" * 3000,
        "nested/deeper/leaf.bin": random_bytes(5, seed=24),
    }
    for name, data in files.items():
        (source / name).write_bytes(data)

    results = ingest_directory(store, source, workers=3)

    assert sorted(r.filename for r in results) == sorted(files)
    assert store.manifest.list_files() == sorted(files)

    reconstructor = Reconstructor(store, tmp_path / "out", atomic=True)
    for name, data in files.items():
        assert reconstructor.rebuild(name).read_bytes() == data


@pytest.mark.parametrize("codec", ["zstd", "identity"])
@pytest.mark.parametrize("hash_algorithm", ["sha256", "blake2b", "xxh128"])
def test_codecs_and_hashes(tmp_path, random_bytes, codec, hash_algorithm):
    """Every codec and hash combination round-trips."""
    config = Config(storage_root=tmp_path / "store", codec=codec, hash_algorithm=hash_algorithm)
    store = ChunkStore.open(config)
    data = random_bytes(100_000, seed=25) + bytes(140_000)
    (tmp_path / "mixed.bin").write_bytes(data)

    ingest_file(store, tmp_path / "mixed.bin")
    output = Reconstructor(store, tmp_path / "out").rebuild("mixed.bin")

    assert output.read_bytes() == data
    assert store.validate_invariants() == []


def test_sharded_layout(tmp_path, random_bytes):
    """shard_depth nests objects under hash-prefix directories."""
    config = Config(storage_root=tmp_path / "store", shard_depth=2)
    store = ChunkStore.open(config)

    chunk = store.put(random_bytes(1000, seed=26), "a.bin", 0)

    expected = store.root / "objects" / chunk.hash[:2] / chunk.hash[2:4] / chunk.hash
    assert chunk.location == str(expected)
    assert expected.is_file()
    assert store.get(chunk.hash) == random_bytes(1000, seed=26)


def test_store_reopens_with_existing_data(tmp_path, config):
    """A reopened store sees earlier manifests."""
    source = tmp_path / "doc.txt"
    source.write_bytes(b"persisted " * 100)

    ingest_file(ChunkStore.open(config), source)
    reopened = ChunkStore.open(config)

    assert reopened.manifest.list_files() == ["doc.txt"]
    output = Reconstructor(reopened, tmp_path / "out").rebuild("doc.txt")
    assert output.read_bytes() == b"persisted " * 100


def test_reset_clears_store(tmp_path, config):
    """reset removes every manifest, chunk and object."""
    store = ChunkStore.open(config)
    store.put(b"to be cleared", "a.txt", 0)

    store = ChunkStore.open(config, reset=True)

    assert store.manifest.list_files() == []
    assert store.stats().unique_chunks == 0
    assert list(store.objects_dir.iterdir()) == []
