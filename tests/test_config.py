"""Tests for the configuration system."""

import os
import sys
from pathlib import Path

import pytest

from quorum.config import ConfigError, QuorumConfig, load_config


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    """Run every test from an empty directory with no QUORUM_* overrides."""
    monkeypatch.chdir(tmp_path)
    for name in list(os.environ):
        if name.startswith("QUORUM_"):
            monkeypatch.delenv(name)


def test_config_defaults():
    """Config should have sensible defaults."""
    config = load_config()
    assert config.max_retries == 5
    assert config.sandbox_timeout == 10.0
    assert config.similarity_threshold == 0.7
    assert config.window_size == 10
    assert config.summary_trigger_turns == 6
    assert config.python_executable == (sys.executable or "python3")
    assert config.openai.api_key_env == "OPENAI_API_KEY"
    assert config.openrouter.base_url == "https://openrouter.ai/api/v1"
    assert config.providers == []


def test_toml_file_values(tmp_path: Path):
    path = tmp_path / "custom.toml"
    path.write_text(
        "[quorum]\n"
        "max_retries = 3\n"
        "similarity_threshold = 0.85\n"
        "log_format = \"json\"\n"
        "\n"
        "[anthropic]\n"
        "api_key = \"sk-test\"\n"
        "\n"
        "[[providers]]\n"
        "id = \"openai\"\n"
        "name = \"OpenAI\"\n"
        "model = \"gpt-4o\"\n"
        "\n"
        "[[providers]]\n"
        "id = \"local\"\n"
        "model = \"llama3\"\n"
        "base_url = \"http://localhost:11434/v1\"\n"
        "is_custom = true\n",
        encoding="utf-8",
    )
    config = load_config(path)

    assert config.max_retries == 3
    assert config.similarity_threshold == 0.85
    assert config.log_format == "json"
    assert config.anthropic.api_key == "sk-test"
    assert config.anthropic.api_key_env == "ANTHROPIC_API_KEY"
    assert [p.id for p in config.providers] == ["openai", "local"]
    assert config.providers[1].name == "local"
    assert config.providers[1].is_custom is True


def test_default_file_in_working_directory(tmp_path: Path):
    (tmp_path / "quorum.toml").write_text("window_size = 4\n", encoding="utf-8")
    assert load_config().window_size == 4


def test_env_overrides_file(tmp_path: Path, monkeypatch):
    path = tmp_path / "quorum.toml"
    path.write_text("[quorum]\nmax_retries = 3\nchunk_size = 10\n", encoding="utf-8")
    monkeypatch.setenv("QUORUM_MAX_RETRIES", "7")

    config = load_config(path)
    assert config.max_retries == 7
    assert config.chunk_size == 10


def test_config_file_from_env(tmp_path: Path, monkeypatch):
    path = tmp_path / "elsewhere.toml"
    path.write_text("title_max_length = 20\n", encoding="utf-8")
    monkeypatch.setenv("QUORUM_CONFIG_FILE", str(path))
    assert load_config().title_max_length == 20


def test_provider_api_key_env(tmp_path: Path, monkeypatch):
    path = tmp_path / "quorum.toml"
    path.write_text(
        "[[providers]]\nid = \"local\"\nmodel = \"m\"\nbase_url = \"http://x\"\napi_key_env = \"LOCAL_KEY\"\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("LOCAL_KEY", "secret")
    assert load_config(path).providers[0].api_key == "secret"


def test_backend_key_resolution(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "from-env")
    config = QuorumConfig()
    assert config.openai.resolve_api_key() == "from-env"


def test_missing_explicit_file(tmp_path: Path):
    with pytest.raises(ConfigError):
        load_config(tmp_path / "missing.toml")


def test_invalid_toml(tmp_path: Path):
    path = tmp_path / "broken.toml"
    path.write_text("max_retries = = 3\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(path)


@pytest.mark.parametrize(
    "env,value",
    [
        ("QUORUM_MAX_RETRIES", "0"),
        ("QUORUM_SIMILARITY_THRESHOLD", "1.5"),
        ("QUORUM_LOG_FORMAT", "xml"),
    ],
)
def test_invalid_values(monkeypatch, env, value):
    monkeypatch.setenv(env, value)
    with pytest.raises(ConfigError):
        load_config()


def test_config_error_is_runtime_error():
    assert issubclass(ConfigError, RuntimeError)
