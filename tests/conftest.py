"""Pytest configuration helpers for the test suite."""

from __future__ import annotations

import io
from pathlib import Path

import pytest
from rich.console import Console

from recordctl.generator import RecordGenerator
from recordctl.registry import ConstructorRegistry


@pytest.fixture
def registry() -> ConstructorRegistry:
    """Return an empty constructor registry."""
    return ConstructorRegistry()


@pytest.fixture
def console() -> Console:
    """Return a console that records output in memory."""
    return Console(file=io.StringIO(), width=200, color_system=None)


@pytest.fixture
def generator(registry: ConstructorRegistry, console: Console) -> RecordGenerator:
    """Return a generator bound to the in-memory registry and console."""
    return RecordGenerator(registry, console=console)


@pytest.fixture
def cli_env(tmp_path: Path) -> dict[str, str]:
    """Return environment variables isolating CLI state under *tmp_path*."""
    return {
        "RECORDCTL_CONFIG_FILE": str(tmp_path / "config.yml"),
        "RECORDCTL_STATE_DIR": str(tmp_path / "state"),
    }

