"""Tests for the layered purpleiq config loader."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from purpleiq.config import ConfigError, PurpleIQConfig, load_config

_ENV_VARS = (
    "PURPLEIQ_PRIMARY_PROVIDER",
    "PURPLEIQ_EMBEDDING_MODEL",
    "PURPLEIQ_LOG_LEVEL",
    "PURPLEIQ_DATA_DIR",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for var in _ENV_VARS:
        monkeypatch.delenv(var, raising=False)


def _write_yaml(path: Path, data: dict) -> None:
    path.write_text(yaml.dump(data), encoding="utf-8")


def _load(tmp_path: Path, global_path: Path | None = None) -> PurpleIQConfig:
    return load_config(
        project_dir=tmp_path,
        global_config_path=global_path or tmp_path / "nonexistent" / "config.yaml",
    )


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------


def test_defaults_without_files(tmp_path: Path) -> None:
    cfg = _load(tmp_path)

    assert cfg.providers.primary == "openai"
    assert cfg.providers.order == ["openai", "gemini"]
    assert cfg.providers.models["gemini"][0] == "gemini/gemini-2.5-flash"
    assert cfg.retry.max_retries == 3
    assert (cfg.retry.base_delay, cfg.retry.max_delay) == (1.0, 4.0)
    assert cfg.rate_limit.warning_threshold == 50
    assert cfg.rate_limit.auto_switch_threshold == 40
    assert cfg.rate_limit.reset_policy == "sticky"
    assert cfg.cache.ttl_seconds == 300.0
    assert cfg.chunking.target_size == 800
    assert cfg.retrieval.min_similarity == pytest.approx(0.4)
    assert cfg.embedding.batch_size == 5
    assert cfg.fallback.enabled is False
    assert cfg.storage.backend == "json"
    assert cfg.logging.level == "WARNING"


def test_empty_files_keep_defaults(tmp_path: Path) -> None:
    global_cfg = tmp_path / "global.yaml"
    global_cfg.write_text("# nothing here\n", encoding="utf-8")
    (tmp_path / "purpleiq.yaml").write_text("", encoding="utf-8")

    cfg = _load(tmp_path, global_cfg)
    assert cfg.cache.ttl_seconds == 300.0


# ---------------------------------------------------------------------------
# Layering
# ---------------------------------------------------------------------------


def test_project_overrides_global(tmp_path: Path) -> None:
    global_cfg = tmp_path / "global.yaml"
    _write_yaml(global_cfg, {"retrieval": {"top_k": 20, "min_similarity": 0.5}})
    _write_yaml(tmp_path / "purpleiq.yaml", {"retrieval": {"top_k": 8}})

    cfg = _load(tmp_path, global_cfg)
    assert cfg.retrieval.top_k == 8
    assert cfg.retrieval.min_similarity == pytest.approx(0.5)  # global value preserved


def test_provider_models_merge_with_defaults(tmp_path: Path) -> None:
    _write_yaml(
        tmp_path / "purpleiq.yaml",
        {"providers": {"primary": "gemini", "models": {"openai": "openai/gpt-4o", "ollama": ["ollama/llama3"]}}},
    )

    cfg = _load(tmp_path)
    assert cfg.providers.primary == "gemini"
    assert cfg.providers.models["openai"] == ["openai/gpt-4o"]
    assert cfg.providers.models["ollama"] == ["ollama/llama3"]
    assert "gemini" in cfg.providers.models
    assert cfg.providers.order == ["openai", "gemini", "ollama"]
    assert cfg.provider_order() == ["gemini", "openai", "ollama"]


def test_provider_order_with_preference(tmp_path: Path) -> None:
    cfg = _load(tmp_path)
    assert cfg.provider_order() == ["openai", "gemini"]
    assert cfg.provider_order("gemini") == ["gemini", "openai"]
    assert cfg.provider_order("unknown") == ["openai", "gemini"]


def test_logging_level_upper_cased(tmp_path: Path) -> None:
    _write_yaml(tmp_path / "purpleiq.yaml", {"logging": {"level": "debug"}})
    assert _load(tmp_path).logging.level == "DEBUG"


# ---------------------------------------------------------------------------
# Environment overrides
# ---------------------------------------------------------------------------


def test_env_overrides_files(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _write_yaml(tmp_path / "purpleiq.yaml", {"embedding": {"model": "openai/text-embedding-3-small"}})
    monkeypatch.setenv("PURPLEIQ_PRIMARY_PROVIDER", "gemini")
    monkeypatch.setenv("PURPLEIQ_EMBEDDING_MODEL", "ollama/nomic-embed-text")
    monkeypatch.setenv("PURPLEIQ_LOG_LEVEL", "info")
    monkeypatch.setenv("PURPLEIQ_DATA_DIR", "/var/lib/purpleiq")

    cfg = _load(tmp_path)
    assert cfg.providers.primary == "gemini"
    assert cfg.embedding.model == "ollama/nomic-embed-text"
    assert cfg.logging.level == "INFO"
    assert cfg.storage.data_dir == "/var/lib/purpleiq"


# ---------------------------------------------------------------------------
# Forbidden and unknown keys
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("key", ["api_key", "openai_api_key", "token", "client_secret", "password"])
def test_global_config_rejects_credentials(tmp_path: Path, key: str) -> None:
    global_cfg = tmp_path / "global.yaml"
    _write_yaml(global_cfg, {"providers": {key: "sk-abc"}})

    with pytest.raises(ConfigError, match="environment variables"):
        _load(tmp_path, global_cfg)


def test_unknown_key_warns(tmp_path: Path) -> None:
    _write_yaml(tmp_path / "purpleiq.yaml", {"telemetry": {"enabled": True}})

    with pytest.warns(UserWarning, match="Unknown config key 'telemetry'"):
        cfg = _load(tmp_path)
    assert cfg.cache.enabled


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "data, message",
    [
        ({"rate_limit": {"reset_policy": "never"}}, "reset_policy"),
        ({"storage": {"backend": "postgres"}}, "storage.backend"),
        ({"retry": {"max_retries": -1}}, "max_retries"),
        ({"cache": {"ttl_seconds": 0}}, "ttl_seconds"),
        ({"retrieval": {"min_similarity": 1.5}}, "min_similarity"),
        ({"embedding": {"batch_size": 0}}, "batch_size"),
        ({"providers": {"models": {"openai": []}}}, "providers.models.openai"),
    ],
)
def test_invalid_values_rejected(tmp_path: Path, data: dict, message: str) -> None:
    _write_yaml(tmp_path / "purpleiq.yaml", data)
    with pytest.raises(ConfigError, match=message):
        _load(tmp_path)


def test_window_reset_policy_accepted(tmp_path: Path) -> None:
    _write_yaml(tmp_path / "purpleiq.yaml", {"rate_limit": {"reset_policy": "window"}})
    assert _load(tmp_path).rate_limit.reset_policy == "window"
