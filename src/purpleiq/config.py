"""PurpleIQ configuration loader.

Priority (high → low):
  1. CLI flags           (handled at the call site, not in this module)
  2. Environment variables  (PURPLEIQ_PRIMARY_PROVIDER, PURPLEIQ_EMBEDDING_MODEL,
     PURPLEIQ_LOG_LEVEL, PURPLEIQ_DATA_DIR)
  3. Per-project purpleiq.yaml
  4. Global ~/.purpleiq/config.yaml  (defaults only, no API keys)
  5. Hardcoded defaults

Global config must never contain API keys; use environment variables instead.
All YAML reads use yaml.safe_load(), never yaml.load().
"""

from __future__ import annotations

import os
import re
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".purpleiq"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "purpleiq.yaml"

# Fields that suggest an API key; forbidden in global config.
# Does NOT match legitimate config keys like max_tokens or retry_after_cap.
_API_KEY_RE: re.Pattern[str] = re.compile(
    r"api[_\-]?(?:key|secret)"
    r"|_token$"
    r"|^token$"
    r"|_secret$"
    r"|^secret$"
    r"|passw(?:ord|d)"
    r"|credential",
    re.IGNORECASE,
)

_KNOWN_SECTIONS: frozenset[str] = frozenset(
    [
        "providers",
        "retry",
        "rate_limit",
        "cache",
        "chunking",
        "retrieval",
        "embedding",
        "history",
        "workflows",
        "fallback",
        "storage",
        "logging",
    ]
)

_RESET_POLICIES: frozenset[str] = frozenset(["sticky", "window"])
_STORAGE_BACKENDS: frozenset[str] = frozenset(["memory", "json", "sqlite"])


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(ValueError):
    """Raised when a config file contains an invalid or forbidden value."""


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


def _default_models() -> dict[str, list[str]]:
    return {
        "openai": ["openai/gpt-4o-mini"],
        "gemini": [
            "gemini/gemini-2.5-flash",
            "gemini/gemini-2.0-flash",
            "gemini/gemini-2.5-pro",
        ],
    }


@dataclass
class ProvidersCfg:
    """Provider ordering and per-provider model fallback lists (purpleiq.yaml: providers:).

    Attributes:
        primary: Provider tried first when the caller states no preference.
        order: Full provider priority order; ``primary`` is moved to the front.
        models: Ordered model list per provider; earlier models are preferred.
        timeout: Per-call deadline in seconds for generation calls.
        classification_timeout: Per-call deadline for intent classification.
        max_tokens: Output token cap passed to the provider.
        temperature: Sampling temperature.
    """

    primary: str = "openai"
    order: list[str] = field(default_factory=lambda: ["openai", "gemini"])
    models: dict[str, list[str]] = field(default_factory=_default_models)
    timeout: float = 30.0
    classification_timeout: float = 10.0
    max_tokens: int = 4_096
    temperature: float = 0.7


@dataclass
class RetryCfg:
    """Backoff policy for retryable errors (purpleiq.yaml: retry:)."""

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 4.0


@dataclass
class RateLimitCfg:
    """Advisory per-provider call-rate tracking (purpleiq.yaml: rate_limit:).

    Attributes:
        window_seconds: Trailing window used for ``calls_last_minute``.
        warning_threshold: Calls per window at which state becomes ``high``.
        warning_ratio: Fraction of the threshold at which state becomes ``warning``.
        auto_switch_threshold: Calls per window that deprioritize the primary provider.
        reset_policy: ``sticky`` (flag kept until reset) or ``window``
            (flag cleared once traffic falls back under the threshold).
    """

    window_seconds: float = 60.0
    warning_threshold: int = 50
    warning_ratio: float = 0.8
    auto_switch_threshold: int = 40
    reset_policy: str = "sticky"


@dataclass
class CacheCfg:
    """Response cache configuration (purpleiq.yaml: cache:)."""

    enabled: bool = True
    ttl_seconds: float = 300.0
    sweep_interval: float = 60.0
    context_hash_chars: int = 500


@dataclass
class ChunkingCfg:
    """Document chunker configuration (purpleiq.yaml: chunking:)."""

    target_size: int = 800
    overlap: int = 100


@dataclass
class RetrievalCfg:
    """Vector retrieval configuration (purpleiq.yaml: retrieval:)."""

    top_k: int = 5
    min_similarity: float = 0.4
    fallback_top_k: int = 5


@dataclass
class EmbeddingCfg:
    """Embedding model configuration (purpleiq.yaml: embedding:)."""

    model: str = "gemini/text-embedding-004"
    batch_size: int = 5
    batch_delay: float = 0.0


@dataclass
class HistoryCfg:
    """Conversation history bounds (purpleiq.yaml: history:)."""

    max_turns: int = 50
    max_projects: int = 1_000
    context_turns: int = 3


@dataclass
class WorkflowsCfg:
    """Generation workflow validation settings (purpleiq.yaml: workflows:)."""

    max_attempts: int = 3
    min_test_cases: int = 10


@dataclass
class FallbackCfg:
    """Static fallback answers after every provider failed (purpleiq.yaml: fallback:)."""

    enabled: bool = False


@dataclass
class StorageCfg:
    """Vector persistence backend (purpleiq.yaml: storage:).

    Attributes:
        backend: ``memory``, ``json`` (one file per project) or ``sqlite``.
        data_dir: Directory for the json/sqlite backends.
    """

    backend: str = "json"
    data_dir: str = ".purpleiq"


@dataclass
class LoggingCfg:
    """Logging configuration (purpleiq.yaml: logging:)."""

    level: str = "WARNING"


@dataclass
class PurpleIQConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    providers: ProvidersCfg = field(default_factory=ProvidersCfg)
    retry: RetryCfg = field(default_factory=RetryCfg)
    rate_limit: RateLimitCfg = field(default_factory=RateLimitCfg)
    cache: CacheCfg = field(default_factory=CacheCfg)
    chunking: ChunkingCfg = field(default_factory=ChunkingCfg)
    retrieval: RetrievalCfg = field(default_factory=RetrievalCfg)
    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    history: HistoryCfg = field(default_factory=HistoryCfg)
    workflows: WorkflowsCfg = field(default_factory=WorkflowsCfg)
    fallback: FallbackCfg = field(default_factory=FallbackCfg)
    storage: StorageCfg = field(default_factory=StorageCfg)
    logging: LoggingCfg = field(default_factory=LoggingCfg)

    def provider_order(self, preferred: str | None = None) -> list[str]:
        """Return provider names with *preferred* (or the primary) first."""
        head = preferred or self.providers.primary
        rest = [p for p in self.providers.order if p != head]
        if head in self.providers.order or head in self.providers.models:
            return [head, *rest]
        return rest


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _check_no_api_keys(data: dict[str, Any], source: Path) -> None:
    """Raise ConfigError if *data* contains any API-key-like key names."""

    def _scan(obj: Any, path: str) -> None:
        if isinstance(obj, dict):
            for k, v in obj.items():
                full = f"{path}.{k}" if path else k
                if _API_KEY_RE.search(str(k)):
                    raise ConfigError(
                        f"Global config '{source}' contains a forbidden key '{full}'.\n"
                        f"  API keys must be set via environment variables, not config files.\n"
                        f"  Remove '{full}' from {source.name} and use:\n"
                        f"    export {str(k).upper().replace('-', '_')}=<value>"
                    )
                _scan(v, full)

    _scan(data, "")


def _warn_unknown_keys(data: dict[str, Any], source: Path) -> None:
    """Emit a UserWarning for unrecognised top-level keys."""
    for key in data:
        if key not in _KNOWN_SECTIONS:
            warnings.warn(
                f"Unknown config key '{key}' in '{source}', ignored.",
                UserWarning,
                stacklevel=4,
            )


def _validate(cfg: PurpleIQConfig) -> None:
    """Raise ConfigError for values that would break the runtime invariants."""
    if cfg.rate_limit.reset_policy not in _RESET_POLICIES:
        raise ConfigError(
            f"rate_limit.reset_policy must be one of {sorted(_RESET_POLICIES)}, "
            f"got '{cfg.rate_limit.reset_policy}'"
        )
    if cfg.storage.backend not in _STORAGE_BACKENDS:
        raise ConfigError(
            f"storage.backend must be one of {sorted(_STORAGE_BACKENDS)}, "
            f"got '{cfg.storage.backend}'"
        )
    if cfg.retry.max_retries < 0:
        raise ConfigError("retry.max_retries must be >= 0")
    if cfg.cache.ttl_seconds <= 0:
        raise ConfigError("cache.ttl_seconds must be > 0")
    if not 0.0 <= cfg.retrieval.min_similarity <= 1.0:
        raise ConfigError("retrieval.min_similarity must be in [0.0, 1.0]")
    if cfg.embedding.batch_size < 1:
        raise ConfigError("embedding.batch_size must be >= 1")
    for name, models in cfg.providers.models.items():
        if not models:
            raise ConfigError(f"providers.models.{name} must list at least one model")


# ---------------------------------------------------------------------------
# Merge + build
# ---------------------------------------------------------------------------


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return a new dict that is *base* deep-merged with *override*."""
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def _parse_models(raw: Any, defaults: dict[str, list[str]]) -> dict[str, list[str]]:
    if not isinstance(raw, dict):
        return defaults
    models = dict(defaults)
    for name, value in raw.items():
        if isinstance(value, str):
            models[str(name)] = [value]
        else:
            models[str(name)] = [str(m) for m in value or []]
    return models


def _cfg_from_dict(data: dict[str, Any]) -> PurpleIQConfig:
    """Build a *PurpleIQConfig* from a merged raw YAML dict."""
    cfg = PurpleIQConfig()

    if "providers" in data:
        p = data["providers"] or {}
        models = _parse_models(p.get("models"), cfg.providers.models)
        cfg.providers = ProvidersCfg(
            primary=str(p.get("primary", cfg.providers.primary)),
            order=[str(x) for x in p.get("order", list(models))],
            models=models,
            timeout=float(p.get("timeout", cfg.providers.timeout)),
            classification_timeout=float(
                p.get("classification_timeout", cfg.providers.classification_timeout)
            ),
            max_tokens=int(p.get("max_tokens", cfg.providers.max_tokens)),
            temperature=float(p.get("temperature", cfg.providers.temperature)),
        )

    if "retry" in data:
        r = data["retry"] or {}
        cfg.retry = RetryCfg(
            max_retries=int(r.get("max_retries", cfg.retry.max_retries)),
            base_delay=float(r.get("base_delay", cfg.retry.base_delay)),
            max_delay=float(r.get("max_delay", cfg.retry.max_delay)),
        )

    if "rate_limit" in data:
        rl = data["rate_limit"] or {}
        cfg.rate_limit = RateLimitCfg(
            window_seconds=float(rl.get("window_seconds", cfg.rate_limit.window_seconds)),
            warning_threshold=int(
                rl.get("warning_threshold", cfg.rate_limit.warning_threshold)
            ),
            warning_ratio=float(rl.get("warning_ratio", cfg.rate_limit.warning_ratio)),
            auto_switch_threshold=int(
                rl.get("auto_switch_threshold", cfg.rate_limit.auto_switch_threshold)
            ),
            reset_policy=str(rl.get("reset_policy", cfg.rate_limit.reset_policy)),
        )

    if "cache" in data:
        c = data["cache"] or {}
        cfg.cache = CacheCfg(
            enabled=bool(c.get("enabled", cfg.cache.enabled)),
            ttl_seconds=float(c.get("ttl_seconds", cfg.cache.ttl_seconds)),
            sweep_interval=float(c.get("sweep_interval", cfg.cache.sweep_interval)),
            context_hash_chars=int(c.get("context_hash_chars", cfg.cache.context_hash_chars)),
        )

    if "chunking" in data:
        ch = data["chunking"] or {}
        cfg.chunking = ChunkingCfg(
            target_size=int(ch.get("target_size", cfg.chunking.target_size)),
            overlap=int(ch.get("overlap", cfg.chunking.overlap)),
        )

    if "retrieval" in data:
        rt = data["retrieval"] or {}
        cfg.retrieval = RetrievalCfg(
            top_k=int(rt.get("top_k", cfg.retrieval.top_k)),
            min_similarity=float(rt.get("min_similarity", cfg.retrieval.min_similarity)),
            fallback_top_k=int(rt.get("fallback_top_k", cfg.retrieval.fallback_top_k)),
        )

    if "embedding" in data:
        e = data["embedding"] or {}
        cfg.embedding = EmbeddingCfg(
            model=str(e.get("model", cfg.embedding.model)),
            batch_size=int(e.get("batch_size", cfg.embedding.batch_size)),
            batch_delay=float(e.get("batch_delay", cfg.embedding.batch_delay)),
        )

    if "history" in data:
        h = data["history"] or {}
        cfg.history = HistoryCfg(
            max_turns=int(h.get("max_turns", cfg.history.max_turns)),
            max_projects=int(h.get("max_projects", cfg.history.max_projects)),
            context_turns=int(h.get("context_turns", cfg.history.context_turns)),
        )

    if "workflows" in data:
        w = data["workflows"] or {}
        cfg.workflows = WorkflowsCfg(
            max_attempts=int(w.get("max_attempts", cfg.workflows.max_attempts)),
            min_test_cases=int(w.get("min_test_cases", cfg.workflows.min_test_cases)),
        )

    if "fallback" in data:
        f = data["fallback"] or {}
        cfg.fallback = FallbackCfg(enabled=bool(f.get("enabled", cfg.fallback.enabled)))

    if "storage" in data:
        s = data["storage"] or {}
        cfg.storage = StorageCfg(
            backend=str(s.get("backend", cfg.storage.backend)),
            data_dir=str(s.get("data_dir", cfg.storage.data_dir)),
        )

    if "logging" in data:
        lg = data["logging"] or {}
        cfg.logging = LoggingCfg(level=str(lg.get("level", cfg.logging.level)).upper())

    return cfg


def _apply_env_overrides(cfg: PurpleIQConfig) -> PurpleIQConfig:
    """Apply PURPLEIQ_* environment variable overrides."""
    if provider := os.environ.get("PURPLEIQ_PRIMARY_PROVIDER"):
        cfg.providers.primary = provider
    if model := os.environ.get("PURPLEIQ_EMBEDDING_MODEL"):
        cfg.embedding.model = model
    if level := os.environ.get("PURPLEIQ_LOG_LEVEL"):
        cfg.logging.level = level.upper()
    if data_dir := os.environ.get("PURPLEIQ_DATA_DIR"):
        cfg.storage.data_dir = data_dir
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> PurpleIQConfig:
    """Load and return a merged *PurpleIQConfig*.

    Applies layers in order: global → per-project → env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *purpleiq.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Returns:
        Fully merged *PurpleIQConfig* with env var overrides applied.

    Raises:
        ConfigError: If global config contains API-key-like fields, or a value
            is outside its allowed range.
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = project_dir if project_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    # Layer 1: global config
    if global_path.exists():
        raw_global = yaml.safe_load(global_path.read_text(encoding="utf-8")) or {}
        _check_no_api_keys(raw_global, global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    # Layer 2: per-project config
    project_cfg_path = search_dir / _PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        raw_project = yaml.safe_load(project_cfg_path.read_text(encoding="utf-8")) or {}
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    cfg = _cfg_from_dict(merged)

    # Layer 3: env var overrides
    cfg = _apply_env_overrides(cfg)

    _validate(cfg)
    return cfg
