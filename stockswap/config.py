"""
Application configuration management.

Load order (each layer overrides the previous):
  1. ``config/default.toml``      — committed static defaults
  2. ``config/local.toml``        — optional local overrides (gitignored)
  3. ``.env``                     — local secrets and env overrides (gitignored)
  4. Environment variables        — ``STOCKSWAP_*`` prefix, plus ``COHERE_API_KEY``

Entry point: ``load_config(config_path=None) -> AppConfig``

The orchestrator, its clients, the native-messaging host and every CLI command
receive an ``AppConfig`` instance — never raw dicts or individual env var
lookups scattered through the codebase.
"""

from __future__ import annotations

import os
import re
import tomllib
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, field_validator

# ── Sub-config models ─────────────────────────────────────────────────────────


class DatabaseConfig(BaseModel):
    """SQLite database connection settings (credential store, savings history)."""

    model_config = ConfigDict(frozen=True)

    db_path: str = "data/db/stockswap.db"
    wal_mode: bool = True
    busy_timeout_ms: int = 5000


class FinanceApiConfig(BaseModel):
    """Upstream portfolio-simulation API settings and its published limits."""

    model_config = ConfigDict(frozen=True)

    base_url: str = "https://2dcq63co40.execute-api.us-east-1.amazonaws.com/dev"
    timeout_s: float = 5.0
    team_prefix: str = "StockSwap"
    contact_domain: str = "stockswap.com"
    account_name: str = "Student User"
    starting_balance: float = 100_000.0
    max_portfolios: int = 3
    months_ceiling: int = 60
    simulation_months: int = 6
    amount_epsilon: float = 0.01
    operation_retries: int = 1
    delete_delay_s: float = 0.2
    simulation_limit_marker: str = "Cannot simulate for more than 60 months"

    @field_validator("timeout_s")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"timeout_s must be positive, got {v}.")
        return v

    @field_validator("simulation_months", "max_portfolios", "months_ceiling")
    @classmethod
    def validate_positive_int(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"Value must be >= 1, got {v}.")
        return v

    @field_validator("operation_retries")
    @classmethod
    def validate_retries(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"operation_retries must be >= 0, got {v}.")
        return v


class RejectionRule(BaseModel):
    """One "explanatory language" rule applied to raw ticker replies."""

    model_config = ConfigDict(frozen=True)

    name: str
    pattern: str
    ignore_case: bool = False

    @field_validator("pattern")
    @classmethod
    def validate_pattern(cls, v: str) -> str:
        try:
            re.compile(v)
        except re.error as exc:
            raise ValueError(f"Invalid rejection pattern {v!r}: {exc}") from exc
        return v


DEFAULT_REJECTION_RULES: list[RejectionRule] = [
    RejectionRule(name="leading_enumeration", pattern=r"^\d+\."),
    RejectionRule(
        name="narrative_words",
        pattern=r"\b(Here|I|recommend|suggest|Consider|Based|The|For)\b",
        ignore_case=True,
    ),
    RejectionRule(
        name="narrative_verbs",
        pattern=r"\b(are|is|will|should|could)\b",
        ignore_case=True,
    ),
    RejectionRule(name="multiple_sentences", pattern=r"[.!?].*[.!?]"),
]


class TextGenConfig(BaseModel):
    """Text-generation API settings and the ticker-reply validation table."""

    model_config = ConfigDict(frozen=True)

    base_url: str = "https://api.cohere.ai/v1"
    model: str = "command-light"
    api_key: Optional[str] = None
    timeout_s: float = 5.0
    max_attempts: int = 3
    retry_backoff_s: float = 1.0
    ticker_max_tokens: int = 30
    ticker_temperature: float = 0.1
    stop_sequences: list[str] = ["\n", ".", "!", "?"]
    education_max_tokens: int = 100
    education_temperature: float = 0.4
    rejection_rules: list[RejectionRule] = DEFAULT_REJECTION_RULES

    @field_validator("max_attempts")
    @classmethod
    def validate_attempts(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"max_attempts must be >= 1, got {v}.")
        return v

    @field_validator("ticker_temperature", "education_temperature")
    @classmethod
    def validate_temperature(cls, v: float) -> float:
        if not 0.0 <= v <= 5.0:
            raise ValueError(f"temperature must be in [0.0, 5.0], got {v}.")
        return v


class RecommendationConfig(BaseModel):
    """Orchestrator budgets and input defaults."""

    model_config = ConfigDict(frozen=True)

    default_price: float = 50.0
    request_budget_s: float = 20.0
    flow_retries: int = 1

    @field_validator("default_price", "request_budget_s")
    @classmethod
    def validate_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"Value must be positive, got {v}.")
        return v


class SavingsConfig(BaseModel):
    """Avoided-purchase history settings."""

    model_config = ConfigDict(frozen=True)

    history_limit: int = 50


class NativeHostConfig(BaseModel):
    """Native-messaging host settings."""

    model_config = ConfigDict(frozen=True)

    max_workers: int = 4


class LoggingConfig(BaseModel):
    """Logging output settings."""

    model_config = ConfigDict(frozen=True)

    level: str = "INFO"
    log_file: str = "data/logs/stockswap.log"
    json_format: bool = False

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid:
            raise ValueError(f"Log level must be one of {sorted(valid)}, got '{v}'.")
        return v.upper()


class AppConfig(BaseModel):
    """Complete application configuration — the single source of truth.

    Constructed by ``load_config()`` which merges TOML + .env + environment.
    ``AppConfig()`` with no arguments is a valid all-defaults configuration.
    """

    model_config = ConfigDict(frozen=True)

    database: DatabaseConfig = DatabaseConfig()
    finance: FinanceApiConfig = FinanceApiConfig()
    textgen: TextGenConfig = TextGenConfig()
    recommendation: RecommendationConfig = RecommendationConfig()
    savings: SavingsConfig = SavingsConfig()
    native_host: NativeHostConfig = NativeHostConfig()
    logging: LoggingConfig = LoggingConfig()
    debug: bool = False


# ── Loader ────────────────────────────────────────────────────────────────────

_PROJECT_ROOT = Path(__file__).parent.parent


def _find_project_root() -> Path:
    """Walk up from this file to find the project root (contains pyproject.toml)."""
    candidate = Path(__file__).parent
    for _ in range(5):
        if (candidate / "pyproject.toml").exists():
            return candidate
        candidate = candidate.parent
    return _PROJECT_ROOT


def load_config(config_path: Optional[Path] = None) -> AppConfig:
    """Load and merge application configuration.

    Args:
        config_path: Explicit path to a TOML config file. Defaults to
            ``<project_root>/config/default.toml``.

    Returns:
        Fully validated ``AppConfig`` instance.

    Raises:
        FileNotFoundError: If the specified ``config_path`` does not exist.
        pydantic.ValidationError: If merged config values fail validation.
    """
    root = _find_project_root()

    # 1. Load .env file (silently skip if missing)
    load_dotenv(dotenv_path=root / ".env", override=False)

    # 2. Load TOML config
    if config_path is None:
        config_path = root / "config" / "default.toml"

    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Config file not found: {config_path}\n"
            "Create config/default.toml or pass --config."
        )

    with open(config_path, "rb") as f:
        raw: dict[str, Any] = tomllib.load(f)

    local_config_path = config_path.parent / "local.toml"
    if local_config_path.exists():
        with open(local_config_path, "rb") as f:
            local_raw: dict[str, Any] = tomllib.load(f)
        raw = _deep_merge(raw, local_raw)

    # 3. Apply STOCKSWAP_* environment variable overrides
    raw = _apply_env_overrides(raw)

    # 4. Build and validate AppConfig
    return _build_app_config(raw)


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge ``override`` into ``base``."""
    result = dict(base)
    for key, val in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(val, dict):
            result[key] = _deep_merge(result[key], val)
        else:
            result[key] = val
    return result


def _apply_env_overrides(raw: dict[str, Any]) -> dict[str, Any]:
    """Apply environment overrides to the raw config dict.

    Supported overrides:
      STOCKSWAP_DB_PATH           → raw["database"]["db_path"]
      STOCKSWAP_LOG_LEVEL         → raw["logging"]["level"]
      STOCKSWAP_DEBUG             → raw["debug"]
      STOCKSWAP_FINANCE_BASE_URL  → raw["finance"]["base_url"]
      COHERE_API_KEY              → raw["textgen"]["api_key"]
    """
    if db_path := os.environ.get("STOCKSWAP_DB_PATH"):
        raw.setdefault("database", {})["db_path"] = db_path

    if log_level := os.environ.get("STOCKSWAP_LOG_LEVEL"):
        raw.setdefault("logging", {})["level"] = log_level

    if debug := os.environ.get("STOCKSWAP_DEBUG"):
        raw["debug"] = debug.lower() in ("1", "true", "yes")

    if base_url := os.environ.get("STOCKSWAP_FINANCE_BASE_URL"):
        raw.setdefault("finance", {})["base_url"] = base_url

    if api_key := os.environ.get("COHERE_API_KEY"):
        raw.setdefault("textgen", {})["api_key"] = api_key

    return raw


def _build_app_config(raw: dict[str, Any]) -> AppConfig:
    """Map raw TOML dict to ``AppConfig`` model structure."""
    project = raw.pop("project", {})

    return AppConfig(
        database=DatabaseConfig(**raw.get("database", {})),
        finance=FinanceApiConfig(**raw.get("finance", {})),
        textgen=TextGenConfig(**raw.get("textgen", {})),
        recommendation=RecommendationConfig(**raw.get("recommendation", {})),
        savings=SavingsConfig(**raw.get("savings", {})),
        native_host=NativeHostConfig(**raw.get("native_host", {})),
        logging=LoggingConfig(**raw.get("logging", {})),
        debug=raw.get("debug", project.get("debug", False)),
    )
