import logging
from pathlib import Path

import pytest

from books.config import Settings, load_timezone, resolve_log_level


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    for name in ("ENV", "ALLOWED_ORIGINS", "ALLOWED_USERS", "DATA_DIR", "TIMEZONE", "LOG_LEVEL", "USER"):
        monkeypatch.delenv(f"SHARELEDGER_{name}", raising=False)
    monkeypatch.chdir(tmp_path)
    return monkeypatch


def test_defaults(clean_env):
    settings = Settings()

    assert settings.env == "prod"
    assert not settings.is_development
    assert settings.data_dir == Path("data")
    assert settings.origin_list == []
    assert settings.user_allow_list == frozenset()
    assert settings.tz is None
    assert settings.log_level_value == logging.INFO


def test_reads_prefixed_environment(clean_env):
    clean_env.setenv("SHARELEDGER_ENV", "Development")
    clean_env.setenv("SHARELEDGER_ALLOWED_ORIGINS", "https://a.example, ,https://b.example")
    clean_env.setenv("SHARELEDGER_ALLOWED_USERS", "alice,bob")
    clean_env.setenv("SHARELEDGER_DATA_DIR", "/srv/books")
    clean_env.setenv("SHARELEDGER_LOG_LEVEL", "debug")
    clean_env.setenv("SHARELEDGER_USER", "alice")

    settings = Settings()

    assert settings.is_development
    assert settings.origin_list == ["https://a.example", "https://b.example"]
    assert settings.user_allow_list == frozenset({"alice", "bob"})
    assert settings.data_dir == Path("/srv/books")
    assert settings.log_level_value == logging.DEBUG
    assert settings.user == "alice"


def test_empty_values_fall_back_to_defaults(clean_env):
    clean_env.setenv("SHARELEDGER_DATA_DIR", "")
    clean_env.setenv("SHARELEDGER_TIMEZONE", "")

    settings = Settings()

    assert settings.data_dir == Path("data")
    assert settings.tz is None


@pytest.mark.parametrize(
    "name, expected",
    [("DEBUG", logging.DEBUG), ("warning", logging.WARNING), ("LOUD", logging.INFO), (None, logging.INFO)],
)
def test_resolve_log_level(name, expected):
    assert resolve_log_level(name) == expected


def test_unknown_timezone():
    with pytest.raises(ValueError):
        load_timezone("Mars/Olympus_Mons")
