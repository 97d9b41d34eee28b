import pytest
from pydantic import ValidationError

from archive_stager.config_manager.config import ConfigManager
from archive_stager.config_manager.upload_config import UploaderConfig
from archive_stager.const import DEFAULT_CHUNK_SIZE, DEFAULT_MAX_CONCURRENCY


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "ARCHIVE_STAGER_CHUNK_SIZE",
        "ARCHIVE_STAGER_MAX_CONCURRENCY",
        "ARCHIVE_STAGER_API_URL",
        "ARCHIVE_STAGER_ACCEPTED_EXTENSIONS",
        "ARCHIVE_STAGER_RETRY_BACKOFF_SECONDS",
    ):
        monkeypatch.delenv(name, raising=False)


def test_defaults_without_overrides():
    config = ConfigManager().resolve_effective_config()

    assert config.chunk_size == DEFAULT_CHUNK_SIZE
    assert config.max_concurrency == DEFAULT_MAX_CONCURRENCY
    assert config.part_max_retries == 2
    assert config.accepted_extensions == [".zip"]


def test_env_overrides_are_parsed(monkeypatch):
    monkeypatch.setenv("ARCHIVE_STAGER_CHUNK_SIZE", "5mb")
    monkeypatch.setenv("ARCHIVE_STAGER_MAX_CONCURRENCY", "8")
    monkeypatch.setenv("ARCHIVE_STAGER_API_URL", "https://uploads.example.com/api")
    monkeypatch.setenv("ARCHIVE_STAGER_ACCEPTED_EXTENSIONS", ".zip, .tar")
    monkeypatch.setenv("ARCHIVE_STAGER_RETRY_BACKOFF_SECONDS", "0.25")

    config = ConfigManager().resolve_effective_config()

    assert config.chunk_size == 5 * 1024**2
    assert config.max_concurrency == 8
    assert config.api_url == "https://uploads.example.com/api"
    assert config.accepted_extensions == [".zip", ".tar"]
    assert config.retry_backoff_seconds == 0.25


def test_unparseable_env_value_is_ignored(monkeypatch):
    monkeypatch.setenv("ARCHIVE_STAGER_MAX_CONCURRENCY", "lots")

    config = ConfigManager().resolve_effective_config()

    assert config.max_concurrency == DEFAULT_MAX_CONCURRENCY


def test_cli_overrides_win_over_env(monkeypatch):
    monkeypatch.setenv("ARCHIVE_STAGER_MAX_CONCURRENCY", "8")

    config = ConfigManager().resolve_effective_config(
        {"max_concurrency": 2, "chunk_size": None}
    )

    assert config.max_concurrency == 2
    assert config.chunk_size == DEFAULT_CHUNK_SIZE


def test_base_config_is_layered_under_overrides():
    base = UploaderConfig(part_max_retries=5, max_concurrency=6)

    config = ConfigManager(base).resolve_effective_config({"max_concurrency": 1})

    assert config.part_max_retries == 5
    assert config.max_concurrency == 1


def test_out_of_range_values_are_rejected():
    with pytest.raises(ValidationError):
        ConfigManager().resolve_effective_config({"max_concurrency": 0})


def test_backoff_delay_is_capped():
    config = UploaderConfig(retry_backoff_seconds=1.0, max_backoff_seconds=5.0)

    assert [config.backoff_delay(n) for n in range(5)] == [1.0, 2.0, 4.0, 5.0, 5.0]
