"""Shared pytest fixtures."""

from __future__ import annotations

import itertools

import pytest

from codemask.config import Settings
from codemask.registry import ChunkRegistry


@pytest.fixture
def registry() -> ChunkRegistry:
    return ChunkRegistry()


@pytest.fixture
def settings() -> Settings:
    return Settings(public_url="http://cdn.codemask.test", log_file="")


@pytest.fixture
def id_factory():
    """Deterministic chunk ids: chunk_0, chunk_1, ..."""
    counter = itertools.count()
    return lambda: f"chunk_{next(counter)}"
