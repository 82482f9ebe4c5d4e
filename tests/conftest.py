"""Shared test fixtures for the K-Flow test suite."""

from collections.abc import Callable, Generator
from pathlib import Path

import pytest

from kflow.config.models.realtime import HighlightConfig, RealtimeConfig
from kflow.feed.inmemory import InMemoryChangeFeed
from kflow.realtime.timers import ManualScheduler
from kflow.source.inmemory import InMemoryRecordSource


@pytest.fixture
def test_config_dir(tmp_path: Path) -> Path:
    """Create a temporary config directory for testing."""
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    return config_dir


@pytest.fixture
def mock_toml_files(test_config_dir: Path) -> Callable[[dict[str, str]], None]:
    """Factory fixture to create TOML files in the test config directory.

    Usage:
        def test_something(mock_toml_files):
            mock_toml_files({
                "default.toml": "app_name = 'test'",
                "development.toml": "debug = true",
            })
    """

    def _create_toml_files(files: dict[str, str]) -> None:
        for filename, content in files.items():
            toml_file = test_config_dir / filename
            toml_file.write_text(content, encoding="utf-8")

    return _create_toml_files


@pytest.fixture(autouse=True)
def clear_settings_cache() -> Generator[None, None, None]:
    """Clear the settings cache before and after each test.

    This ensures test isolation for configuration tests.
    """
    from kflow.config import get_settings
    from kflow.config.settings import set_toml_config

    get_settings.cache_clear()
    set_toml_config({})
    yield
    get_settings.cache_clear()
    set_toml_config({})


@pytest.fixture
def scheduler() -> ManualScheduler:
    """Deterministic clock; time moves only on advance()."""
    return ManualScheduler()


@pytest.fixture
def realtime_config() -> RealtimeConfig:
    return RealtimeConfig()


@pytest.fixture
def highlight_config() -> HighlightConfig:
    return HighlightConfig()


@pytest.fixture
def source() -> InMemoryRecordSource:
    return InMemoryRecordSource()


@pytest.fixture
def feed() -> InMemoryChangeFeed:
    return InMemoryChangeFeed()
