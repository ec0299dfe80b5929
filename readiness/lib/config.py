"""
Configuration loaders for the readiness service.

Service settings come from readiness.env (overridable by the process
environment). Language-model providers come from providers.yaml, ranked by
list order. Secrets are resolved through SecretsStore and never persisted.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from . import envparse
from .constants import DEFAULT_MAX_SUGGESTIONS, MAX_SUGGESTIONS, MIN_SUGGESTIONS

logger = logging.getLogger(__name__)

SERVICE_ENV_KEYS = [
    "DB_PATH",
    "WORKER_COUNT",
    "DEBOUNCE_SECONDS",
    "STRUCTURE_CACHE_TTL",
    "GITHUB_API_URL",
    "GITHUB_REQUESTS_PER_HOUR",
    "GITHUB_BURST",
    "STRUCTURE_WAIT_SECONDS",
    "HTTP_TIMEOUT_SECONDS",
    "MAX_SUGGESTIONS",
    "LLM_ENRICH_ANALYSIS",
    "PROVIDERS_FILE",
    "SECRETS_FILE",
]


@dataclass
class ServiceConfig:
    """Service-level configuration from readiness.env"""
    db_path: Path = Path("readiness.db")
    worker_count: int = 2
    debounce_seconds: int = 300
    structure_cache_ttl: int = 3600
    github_api_url: str = "https://api.github.com"
    github_requests_per_hour: int = 5000
    github_burst: int = 30
    structure_wait_seconds: float = 10.0
    http_timeout_seconds: float = 20.0
    max_suggestions: int = DEFAULT_MAX_SUGGESTIONS
    llm_enrich_analysis: bool = False
    providers_file: Path = Path("providers.yaml")
    secrets_file: Path | None = None


@dataclass
class ProviderConfig:
    """One language-model provider entry from providers.yaml"""
    name: str
    base_url: str
    model: str
    api_key_secret: str
    timeout: float = 30.0


@dataclass
class ProvidersConfig:
    """Ranked providers. Index 0 is primary."""
    providers: list[ProviderConfig] = field(default_factory=list)


def load_service_config(env_path: Path | None = None) -> ServiceConfig:
    """Load readiness.env and return ServiceConfig.

    A missing file is fine: defaults plus process environment apply.
    """
    env = envparse.load_env_layered(str(env_path) if env_path else None, SERVICE_ENV_KEYS)
    base_dir = env_path.parent if env_path else Path.cwd()

    max_suggestions = envparse.get_int(env, "MAX_SUGGESTIONS", DEFAULT_MAX_SUGGESTIONS)
    if not MIN_SUGGESTIONS <= max_suggestions <= MAX_SUGGESTIONS:
        clamped = min(max(max_suggestions, MIN_SUGGESTIONS), MAX_SUGGESTIONS)
        logger.warning(f"MAX_SUGGESTIONS={max_suggestions} out of range, using {clamped}")
        max_suggestions = clamped

    secrets_file = env.get("SECRETS_FILE")

    return ServiceConfig(
        db_path=base_dir / env.get("DB_PATH", "readiness.db"),
        worker_count=max(1, envparse.get_int(env, "WORKER_COUNT", 2)),
        debounce_seconds=envparse.get_int(env, "DEBOUNCE_SECONDS", 300),
        structure_cache_ttl=envparse.get_int(env, "STRUCTURE_CACHE_TTL", 3600),
        github_api_url=env.get("GITHUB_API_URL", "https://api.github.com").rstrip("/"),
        github_requests_per_hour=envparse.get_int(env, "GITHUB_REQUESTS_PER_HOUR", 5000),
        github_burst=envparse.get_int(env, "GITHUB_BURST", 30),
        structure_wait_seconds=envparse.get_float(env, "STRUCTURE_WAIT_SECONDS", 10.0),
        http_timeout_seconds=envparse.get_float(env, "HTTP_TIMEOUT_SECONDS", 20.0),
        max_suggestions=max_suggestions,
        llm_enrich_analysis=envparse.get_bool(env, "LLM_ENRICH_ANALYSIS", False),
        providers_file=base_dir / env.get("PROVIDERS_FILE", "providers.yaml"),
        secrets_file=base_dir / secrets_file if secrets_file else None,
    )


def load_providers_config(path: Path | None) -> ProvidersConfig:
    """Load providers.yaml and return ProvidersConfig.

    If path is None, the file doesn't exist, or it can't be parsed, returns
    an empty config (which later surfaces as ProviderUnavailable).
    """
    if path is None or not path.exists():
        return ProvidersConfig()

    try:
        data = yaml.safe_load(path.read_text())
    except yaml.YAMLError as e:
        logger.warning(f"Failed to parse {path}: {e}")
        return ProvidersConfig()

    providers = []
    for i, entry in enumerate((data or {}).get("providers") or []):
        if not isinstance(entry, dict):
            logger.warning(f"Skipping provider {i} in {path}: not a mapping")
            continue
        missing = [k for k in ("name", "base_url", "model", "api_key_secret") if not entry.get(k)]
        if missing:
            logger.warning(f"Skipping provider {i} in {path}: missing {missing}")
            continue
        providers.append(ProviderConfig(
            name=str(entry["name"]),
            base_url=str(entry["base_url"]).rstrip("/"),
            model=str(entry["model"]),
            api_key_secret=str(entry["api_key_secret"]),
            timeout=float(entry.get("timeout", 30.0)),
        ))

    return ProvidersConfig(providers=providers)


class SecretsStore:
    """Resolves API keys and tokens by name.

    Process environment first, then an optional secrets.env file.
    """

    def __init__(self, secrets_file: Path | None = None, values: dict[str, str] | None = None):
        self._values: dict[str, str] = {}
        if secrets_file is not None and secrets_file.exists():
            self._values.update(envparse.load_env(str(secrets_file)))
        if values:
            self._values.update(values)

    def get(self, name: str) -> str | None:
        value = os.environ.get(name) or self._values.get(name)
        return value or None

    def has(self, name: str) -> bool:
        return self.get(name) is not None
