"""
Configuration loading, validation, and typed models.

Supports:
  - YAML config file
  - Environment variable overrides for API endpoints and tokens
    (KUBE_API_URL, KUBE_TOKEN, KARMADA_API_URL, KARMADA_TOKEN)
  - CLI argument merging via merge_cli_overrides()
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path

import yaml

from .member_cluster import DEFAULT_CRD_SEARCH_PATHS
from .validation import ValidationError, validate_dns_label

__all__ = [
    "DEFAULT_CONFIG_PATH",
    "PROJECT_ROOT",
    "ConfigError",
    "EndpointConfig",
    "ControllerConfig",
    "AppConfig",
    "load_config",
    "merge_cli_overrides",
]

logger = logging.getLogger(__name__)

# Project root directory (two levels up from the package)
PROJECT_ROOT = os.path.dirname(
    os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
)

DEFAULT_CONFIG_PATH = os.path.join(PROJECT_ROOT, "config", "config.yaml")

# Environment variable names
ENV_API_URL = "KUBE_API_URL"
ENV_API_TOKEN = "KUBE_TOKEN"
ENV_KARMADA_URL = "KARMADA_API_URL"
ENV_KARMADA_TOKEN = "KARMADA_TOKEN"

_PLACEHOLDER_PREFIXES = ("your-", "REPLACE_WITH")


# ---------------------------------------------------------------------------
# Typed configuration models
# ---------------------------------------------------------------------------

class ConfigError(Exception):
    """Raised when the configuration file is missing or invalid."""


@dataclass(frozen=True)
class EndpointConfig:
    url: str
    token: str = ""
    ca_cert: str = ""
    verify_tls: bool = True

    def __repr__(self) -> str:
        """Redact token in repr to prevent accidental logging."""
        return (
            f"EndpointConfig(url={self.url!r}, token='***redacted***', "
            f"ca_cert={self.ca_cert!r}, verify_tls={self.verify_tls!r})"
        )


@dataclass(frozen=True)
class ControllerConfig:
    namespace: str = ""  # empty = all namespaces
    workers: int = 2
    resync_seconds: float = 30.0


@dataclass(frozen=True)
class AppConfig:
    api_server: EndpointConfig
    karmada: EndpointConfig | None
    controller: ControllerConfig = field(default_factory=ControllerConfig)
    crd_search_paths: tuple[str, ...] = DEFAULT_CRD_SEARCH_PATHS
    log_dir: str = ""
    verbose: bool = False


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

def _is_placeholder(value: str) -> bool:
    return value.startswith(_PLACEHOLDER_PREFIXES)


def _read_token(section: dict, env_var: str, label: str) -> str:
    """Token precedence: env var > inline ``token`` > ``token_file``."""
    token = os.environ.get(env_var) or section.get("token") or ""
    if token:
        if _is_placeholder(token):
            raise ConfigError(f"Placeholder value for {label}.token")
        return token.strip()
    token_file = section.get("token_file") or ""
    if not token_file:
        return ""
    try:
        with open(token_file, "r") as f:
            return f.read().strip()
    except OSError as exc:
        raise ConfigError(f"Cannot read {label}.token_file {token_file!r}: {exc}") from exc


def _endpoint(raw: dict, key: str, url_env: str, token_env: str, required: bool) -> EndpointConfig | None:
    section = raw.get(key) or {}
    if not isinstance(section, dict):
        raise ConfigError(f"'{key}' must be a mapping")
    url = os.environ.get(url_env) or section.get("url") or ""
    if not url:
        if required:
            raise ConfigError(f"Missing {key}.url. Set it in config or via {url_env}.")
        return None
    if _is_placeholder(url) or not url.startswith(("http://", "https://")):
        raise ConfigError(f"Invalid {key}.url: {url!r}")
    verify_tls = section.get("verify_tls", True)
    if not isinstance(verify_tls, bool):
        raise ConfigError(f"{key}.verify_tls must be true or false, got {verify_tls!r}")
    return EndpointConfig(
        url=url,
        token=_read_token(section, token_env, key),
        ca_cert=section.get("ca_cert") or "",
        verify_tls=verify_tls,
    )


def load_config(config_path: str) -> AppConfig:
    """Load and validate the YAML configuration file.

    ``api_server`` is required; ``karmada`` is optional and, when absent,
    the controller runs without cross-cluster propagation.

    Raises:
        ConfigError: If the config file is missing or invalid.
    """
    path = Path(config_path)
    if not path.exists():
        raise ConfigError(
            f"Config file not found: {config_path}\n"
            "Copy config/config.yaml.example to config/config.yaml and fill in your values."
        )

    with open(path, "r") as f:
        raw = yaml.safe_load(f) or {}

    if not isinstance(raw, dict):
        raise ConfigError(f"Invalid config file format: expected YAML mapping, got {type(raw).__name__}")

    api_server = _endpoint(raw, "api_server", ENV_API_URL, ENV_API_TOKEN, required=True)
    karmada = _endpoint(raw, "karmada", ENV_KARMADA_URL, ENV_KARMADA_TOKEN, required=False)

    # --- Controller ---
    ctl = raw.get("controller") or {}
    namespace = ctl.get("namespace") or ""
    if namespace:
        try:
            validate_dns_label(namespace, "controller.namespace")
        except ValidationError as e:
            raise ConfigError(str(e)) from e
    try:
        workers = int(ctl.get("workers", 2))
        resync = float(ctl.get("resync_seconds", 30))
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid controller settings: {e}") from e
    if workers < 1:
        raise ConfigError("controller.workers must be >= 1")
    if resync <= 0:
        raise ConfigError("controller.resync_seconds must be > 0")

    # --- CRD search paths ---
    crd_cfg = raw.get("crd") or {}
    search_paths = crd_cfg.get("search_paths") or list(DEFAULT_CRD_SEARCH_PATHS)
    if not isinstance(search_paths, list):
        raise ConfigError("crd.search_paths must be a list")

    # --- Logging ---
    log_dir = (raw.get("logging") or {}).get("log_dir") or ""
    if log_dir and not os.path.isabs(log_dir):
        log_dir = os.path.join(PROJECT_ROOT, log_dir)

    config = AppConfig(
        api_server=api_server,
        karmada=karmada,
        controller=ControllerConfig(namespace=namespace, workers=workers, resync_seconds=resync),
        crd_search_paths=tuple(search_paths),
        log_dir=log_dir,
    )
    logger.debug("Config loaded from %s", config_path)
    return config


# ---------------------------------------------------------------------------
# CLI override merging
# ---------------------------------------------------------------------------

def merge_cli_overrides(cfg: AppConfig, args) -> AppConfig:
    """Merge CLI arguments over loaded config, returning a new AppConfig.

    ``args`` may carry ``workers``, ``namespace`` and ``verbose``; missing
    or None attributes keep the configured value.

    Raises:
        ConfigError: If merged values fail validation.
    """
    ctl = cfg.controller
    workers = getattr(args, "workers", None)
    namespace = getattr(args, "namespace", None)
    if workers is not None and workers < 1:
        raise ConfigError("--workers must be >= 1")
    if namespace:
        try:
            validate_dns_label(namespace, "--namespace")
        except ValidationError as e:
            raise ConfigError(str(e)) from e
    return replace(
        cfg,
        controller=replace(
            ctl,
            workers=workers if workers is not None else ctl.workers,
            namespace=namespace if namespace is not None else ctl.namespace,
        ),
        verbose=bool(getattr(args, "verbose", False)),
    )
