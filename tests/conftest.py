"""Shared fixtures for chunkvault tests."""

import random

import pytest

from chunkvault.core import Config
from chunkvault.storage import ChunkStore


def make_random_bytes(size: int, seed: int = 0) -> bytes:
    """Deterministic pseudo-random (incompressible) bytes."""
    return random.Random(seed).randbytes(size)


@pytest.fixture
def random_bytes():
    return make_random_bytes


@pytest.fixture
def config(tmp_path):
    return Config(storage_root=tmp_path / "storage")


@pytest.fixture
def store(config):
    return ChunkStore.open(config)
