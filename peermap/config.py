"""Configuration: YAML file, environment / .env overlay, required-key checks."""

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, fields
from pathlib import Path

import yaml
from dotenv import dotenv_values

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_DIR = Path.home() / ".peermap"
DEFAULT_CONFIG_PATH = DEFAULT_CONFIG_DIR / "config.yaml"
DEFAULT_ENV_FILE = Path(".env")


@dataclass
class PeermapConfig:
    """Top-level configuration for the peermap service.

    Durations are in seconds.  Only ``daemon_rpc_host`` and
    ``ipinfo_token`` are required; see ``validate()``.

    Attributes:
        daemon_rpc_host: Daemon RPC host, or a full ``host[:port]/path``.
        daemon_rpc_port: Daemon RPC port.
        daemon_rpc_username: RPC user for basic auth.
        daemon_rpc_password: RPC password for basic auth.
        daemon_rpc_ssl: Use HTTPS for RPC.
        daemon_rpc_timeout: RPC request timeout.
        ipinfo_token: ipinfo.io API token.
        cache_refresh_interval: Seconds between aggregation cycles; also
            the lifetime of every cache entry.
        listen_host: HTTP bind address.
        port: HTTP listen port.
        dns_timeout: Upper bound for one reverse DNS lookup.
        max_concurrent_lookups: Addresses enriched at once per cycle.
    """

    daemon_rpc_host: str | None = None
    daemon_rpc_port: int = 8332
    daemon_rpc_username: str | None = None
    daemon_rpc_password: str | None = None
    daemon_rpc_ssl: bool = False
    daemon_rpc_timeout: float = 30.0
    ipinfo_token: str | None = None
    cache_refresh_interval: float = 3600.0
    listen_host: str = "0.0.0.0"
    port: int = 3000
    dns_timeout: float = 5.0
    max_concurrent_lookups: int = 10

    @property
    def rpc_url(self) -> str:
        """Daemon RPC endpoint URL.

        A host that already carries a path is used as-is; otherwise the
        configured port is appended.
        """
        scheme = "https" if self.daemon_rpc_ssl else "http"
        host = self.daemon_rpc_host or "localhost"
        if "/" not in host:
            host = f"{host}:{self.daemon_rpc_port}"
        return f"{scheme}://{host}"

    def validate(self) -> None:
        """Check that settings needed to start the service are present.

        Raises:
            ConfigError: Naming every missing required setting.
        """
        missing = [
            name
            for name in ("daemon_rpc_host", "ipinfo_token")
            if not getattr(self, name)
        ]
        if missing:
            raise ConfigError(
                "Missing required configuration: " + ", ".join(missing)
            )


class ConfigError(Exception):
    """Raised when configuration is malformed or incomplete."""


# Environment variable → (field, converter).  Millisecond values are
# converted to seconds.
_ENV_TO_FIELD: dict[str, tuple[str, str]] = {
    "DAEMON_RPC_HOST": ("daemon_rpc_host", "str"),
    "DAEMON_RPC_PORT": ("daemon_rpc_port", "int"),
    "DAEMON_RPC_USERNAME": ("daemon_rpc_username", "str"),
    "DAEMON_RPC_PASSWORD": ("daemon_rpc_password", "str"),
    "DAEMON_RPC_SSL": ("daemon_rpc_ssl", "bool"),
    "DAEMON_RPC_TIMEOUT": ("daemon_rpc_timeout", "ms"),
    "IPINFO_TOKEN": ("ipinfo_token", "str"),
    "CACHE_REFRESH_INTERVAL": ("cache_refresh_interval", "ms"),
    "PORT": ("port", "int"),
}


def load_config(
    path: Path | str | None = None,
    env: Mapping[str, str] | None = None,
) -> PeermapConfig:
    """Load configuration from a YAML file and the environment.

    Environment variables win over the YAML file.  When *env* is None the
    process environment is used, merged over a ``.env`` file in the
    working directory if one exists.

    Args:
        path: Explicit path to a YAML config file.  If ``None``, the
            default location (``~/.peermap/config.yaml``) is tried and
            silently skipped when absent.
        env: Mapping of environment variables to apply.

    Returns:
        A populated ``PeermapConfig``.  Not validated; call ``validate()``
        before starting the service.

    Raises:
        FileNotFoundError: If an explicit *path* was given but doesn't exist.
        ConfigError: If the YAML is invalid or a value cannot be converted.
    """
    values: dict[str, object] = {}

    resolved = _resolve_path(path)
    if resolved is None:
        logger.debug("No config file found; using defaults")
    else:
        values.update(_read_yaml(resolved))

    if env is None:
        env = _process_env()
    values.update(_from_env(env))

    return PeermapConfig(**values)


# ------------------------------------------------------------------
# Internal helpers
# ------------------------------------------------------------------


def _resolve_path(path: Path | str | None) -> Path | None:
    """Return a concrete ``Path`` to read, or ``None`` if nothing to read.

    Raises:
        FileNotFoundError: If the caller supplied an explicit path that
            doesn't exist on disk.
    """
    if path is not None:
        p = Path(path).expanduser()
        if not p.is_file():
            raise FileNotFoundError(f"Config file not found: {p}")
        return p

    default = DEFAULT_CONFIG_PATH.expanduser()
    if default.is_file():
        return default
    return None


def _read_yaml(source: Path) -> dict[str, object]:
    """Map a YAML file onto ``PeermapConfig`` fields, ignoring unknown keys."""
    logger.debug("Loading config from %s", source)
    text = source.read_text(encoding="utf-8")

    try:
        raw = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {source}: {exc}") from exc

    if raw is None:
        return {}

    if not isinstance(raw, dict):
        raise ConfigError(
            f"Expected a YAML mapping at the top level in {source}, "
            f"got {type(raw).__name__}"
        )

    known = {f.name for f in fields(PeermapConfig)}
    unknown = set(raw) - known
    if unknown:
        logger.warning(
            "Ignoring unknown config keys in %s: %s",
            source,
            ", ".join(sorted(map(str, unknown))),
        )
    return {k: v for k, v in raw.items() if k in known}


def _process_env() -> dict[str, str]:
    merged: dict[str, str] = {}
    if DEFAULT_ENV_FILE.is_file():
        merged.update(
            {k: v for k, v in dotenv_values(DEFAULT_ENV_FILE).items() if v is not None}
        )
        logger.debug("Loaded environment from %s", DEFAULT_ENV_FILE)
    merged.update(os.environ)
    return merged


def _from_env(env: Mapping[str, str]) -> dict[str, object]:
    values: dict[str, object] = {}
    for var, (field_name, kind) in _ENV_TO_FIELD.items():
        raw = env.get(var)
        if raw is None or raw.strip() == "":
            continue
        values[field_name] = _convert(var, raw.strip(), kind)
    return values


def _convert(var: str, raw: str, kind: str) -> object:
    if kind == "str":
        return raw
    if kind == "bool":
        return raw.lower() in ("1", "true", "yes", "on")
    try:
        if kind == "int":
            return int(raw)
        return int(raw) / 1000.0
    except ValueError as exc:
        raise ConfigError(f"{var} must be an integer, got {raw!r}") from exc
