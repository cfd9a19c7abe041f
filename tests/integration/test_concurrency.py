"""Concurrent writers: each unique chunk is created exactly once."""

import threading
from concurrent.futures import ThreadPoolExecutor

from chunkvault.ingestion import ingest_file
from chunkvault.restore import Reconstructor
from chunkvault.storage import ChunkStore


def test_concurrent_put_same_chunk(store, random_bytes):
    """Racing writers of one chunk create it exactly once."""
    workers = 8
    data = random_bytes(4096, seed=41)
    barrier = threading.Barrier(workers)

    def put(i):
        barrier.wait()
        return store.put(data, f"file-{i}", 0)

    with ThreadPoolExecutor(max_workers=workers) as pool:
        chunks = list(pool.map(put, range(workers)))

    assert sum(chunk.created for chunk in chunks) == 1
    assert len({chunk.hash for chunk in chunks}) == 1

    chunk_hash = chunks[0].hash
    assert store.stat(chunk_hash).ref_count == workers
    assert [p for p in store.objects_dir.rglob("*") if p.is_file()] == [store.object_path(chunk_hash)]
    assert store.get(chunk_hash) == data
    assert store.validate_invariants() == []


def test_concurrent_stores_share_root(config, random_bytes):
    """Separate ChunkStore instances on one root coordinate through the index."""
    workers = 4
    data = random_bytes(4096, seed=42)
    stores = [ChunkStore.open(config) for _ in range(workers)]
    barrier = threading.Barrier(workers)

    def put(i):
        barrier.wait()
        return stores[i].put(data, f"file-{i}", 0)

    with ThreadPoolExecutor(max_workers=workers) as pool:
        created = [chunk.created for chunk in pool.map(put, range(workers))]

    assert created.count(True) == 1
    assert stores[0].stats().unique_chunks == 1
    assert stores[0].stats().manifest_rows == workers


def test_concurrent_ingest_of_overlapping_files(tmp_path, store, random_bytes):
    """Parallel ingestion of overlapping files keeps the store consistent."""
    shared = random_bytes(150_000, seed=43)
    sources = []
    for i in range(6):
        path = tmp_path / f"input-{i}.bin"
        path.write_bytes(shared + random_bytes(20_000, seed=100 + i))
        sources.append(path)

    with ThreadPoolExecutor(max_workers=6) as pool:
        results = list(pool.map(lambda p: ingest_file(store, p), sources))

    assert store.validate_invariants() == []
    assert store.find_orphans() == []

    # Every chunk was created by exactly one of the writers
    total_new = sum(r.new_chunks for r in results)
    assert total_new == store.stats().unique_chunks

    reconstructor = Reconstructor(store, tmp_path / "out")
    for source in sources:
        assert reconstructor.rebuild(source.name).read_bytes() == source.read_bytes()
