"""Shared test fixtures for toolrelay."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from tests.fixtures.gateways import FakeGateway, make_tool

if TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture
def isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Run with no discoverable config files and no credentials."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.delenv("XDG_CONFIG_HOME", raising=False)
    monkeypatch.delenv("TOOLRELAY_CONFIG", raising=False)
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    return tmp_path


@pytest.fixture
def gateway() -> FakeGateway:
    """Gateway exposing a single ``echo`` tool."""
    return FakeGateway([make_tool("echo", "Echo a message", {"message": "text"})])
