"""Tests for Config validation and JSON loading."""

import json
from pathlib import Path

import pytest

from chunkvault.core.contracts import Config, StoreStats
from chunkvault.storage import ChunkStore


def test_defaults():
    """Default configuration is valid."""
    config = Config().validate()
    assert config.max_chunk_size == 65536
    assert config.cut_mask == 0xFFF
    assert config.window_size == 48
    assert config.codec == "zstd"
    assert config.hash_algorithm == "sha256"
    assert config.objects_dir == Path("chunkvault-storage") / "objects"


def test_storage_root_coerced_to_path(tmp_path):
    """String roots become Path objects."""
    config = Config(storage_root=str(tmp_path))
    assert config.storage_root == tmp_path
    assert config.metadata_path == tmp_path / "metadata.db"


@pytest.mark.parametrize(
    "overrides",
    [
        {"max_chunk_size": 0},
        {"window_size": 0},
        {"read_buffer_size": -1},
        {"cut_mask": 0},
        {"cut_mask": 0b1010},
        {"polynomial": 0x1FF},
        {"codec": "brotli"},
        {"shard_depth": -1},
        {"zstd_level": 0},
        {"zstd_level": 23},
    ],
)
def test_invalid_values_rejected(overrides):
    """Out-of-range settings raise ValueError."""
    with pytest.raises(ValueError):
        Config(**overrides).validate()


def test_from_json(tmp_path):
    """JSON values are loaded; None overrides are ignored."""
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"codec": "identity", "shard_depth": 2}))

    config = Config.from_json(path, storage_root=tmp_path / "store", codec=None)

    assert config.codec == "identity"
    assert config.shard_depth == 2
    assert config.storage_root == tmp_path / "store"


def test_from_json_overrides_win(tmp_path):
    """Explicit overrides take precedence over the file."""
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"codec": "identity"}))
    assert Config.from_json(path, codec="zstd").codec == "zstd"


def test_from_json_rejects_unknown_keys(tmp_path):
    """Misspelled keys are reported, not silently dropped."""
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"chunk_size": 512}))

    with pytest.raises(ValueError, match="chunk_size"):
        Config.from_json(path)


def test_store_stats_ratios():
    """Ratios are computed, with 1.0 for an empty store."""
    stats = StoreStats(
        unique_chunks=2,
        manifest_rows=4,
        files=2,
        logical_bytes=2000,
        unique_bytes=1000,
        stored_bytes=250,
    )
    assert stats.dedup_ratio == 2.0
    assert stats.compression_ratio == 4.0

    empty = StoreStats(0, 0, 0, 0, 0, 0)
    assert empty.dedup_ratio == 1.0
    assert empty.compression_ratio == 1.0


def test_out_of_range_level_rejected_before_open(tmp_path):
    """An impossible zstd level fails validation, so no store is opened with it."""
    with pytest.raises(ValueError, match="zstd_level"):
        ChunkStore.open(Config(storage_root=tmp_path / "store", zstd_level=100))
    assert not (tmp_path / "store").exists()
