"""Pytest configuration and fixtures for spanpipe tests."""

from __future__ import annotations

import logging
import os
import tempfile
from collections.abc import Generator
from pathlib import Path
from typing import TYPE_CHECKING

import pytest

if TYPE_CHECKING:
    from spanpipe.core.config import ConfigStore
    from spanpipe.core.pipeline import SpanPipeline
    from spanpipe.core.tracing.adapters import InMemorySpanAdapter


@pytest.fixture(autouse=True)
def propagate_spanpipe_logs(monkeypatch) -> None:
    """Keep package log records visible to caplog even after configure_logger ran."""
    monkeypatch.setattr(logging.getLogger("spanpipe"), "propagate", True)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def original_cwd() -> Generator[str, None, None]:
    """Save and restore the current working directory."""
    cwd = os.getcwd()
    yield cwd
    os.chdir(cwd)


@pytest.fixture
def in_memory_adapter() -> InMemorySpanAdapter:
    """Create a fresh InMemorySpanAdapter for testing."""
    from spanpipe.core.tracing.adapters import InMemorySpanAdapter

    return InMemorySpanAdapter()


@pytest.fixture
def config_store() -> ConfigStore:
    """ConfigStore with default settings."""
    from spanpipe.core.config import ConfigStore

    return ConfigStore()


@pytest.fixture
def simple_pipeline(in_memory_adapter: InMemorySpanAdapter) -> Generator[SpanPipeline, None, None]:
    """Started simple-mode pipeline exporting into ``in_memory_adapter``."""
    from spanpipe.core.config import PipelineConfig
    from spanpipe.core.pipeline import SpanPipeline

    pipeline = SpanPipeline(
        PipelineConfig(export_mode="simple", app_name="test-app"),
        adapters=[in_memory_adapter],
    )
    pipeline.start()
    yield pipeline
    pipeline.shutdown()
