"""Configuration helpers shared by the CLI, sinks and the rule engine."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

logger = logging.getLogger(__name__)

DEFAULT_ENV_FILE = Path("secrets/scanexport.env")
DEFAULT_SERVICE_ACCOUNT_PATHS = [
    Path("secrets/service_account.json"),
    Path("credentials/service_account.json"),
]
_ENV_LOADED = False


def _parse_env_line(raw_line: str) -> Optional[Tuple[str, str]]:
    line = raw_line.strip()
    if line.startswith("export "):
        line = line[len("export "):].lstrip()
    if not line or line.startswith("#") or "=" not in line:
        return None
    key, value = (part.strip() for part in line.split("=", 1))
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
        value = value[1:-1]
    return (key, value) if key else None


def load_env_file(path: Path) -> List[str]:
    """Export ``KEY=value`` lines from ``path`` into ``os.environ``.

    Shell-style ``export`` prefixes and matching quotes are accepted. Keys
    already set in the environment are left alone. Returns the keys that were
    set; a missing or unreadable file sets none.
    """

    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except FileNotFoundError:
        return []
    except OSError as exc:
        logger.warning("Could not read env file %s: %s", path, exc)
        return []

    loaded = []
    for parsed in map(_parse_env_line, lines):
        if parsed is None or parsed[0] in os.environ:
            continue
        os.environ[parsed[0]] = parsed[1]
        loaded.append(parsed[0])
    logger.debug("Loaded %d settings from %s", len(loaded), path)
    return loaded


def _ensure_env() -> None:
    global _ENV_LOADED
    if _ENV_LOADED:
        return
    _ENV_LOADED = True
    load_env_file(Path(os.getenv("SCANEXPORT_ENV_FILE", DEFAULT_ENV_FILE)))


def get_config_value(key: str, default: str = "") -> str:
    """Get a configuration value from the environment, after loading the env file once."""

    _ensure_env()
    return os.getenv(key, default)


def get_int_config(key: str, default: int) -> int:
    raw = get_config_value(key, "")
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer value %r for %s", raw, key)
        return default


def default_service_account_path() -> Optional[Path]:
    explicit = get_config_value("GOOGLE_SHEETS_SERVICE_ACCOUNT")
    if explicit:
        return Path(explicit).expanduser()
    for candidate in DEFAULT_SERVICE_ACCOUNT_PATHS:
        if candidate.exists():
            return candidate
    return None


@dataclass
class ExportSettings:
    """Process-wide settings used to wire default sinks."""

    output_dir: Path = Path("output")
    upload_dir: Optional[Path] = None
    chunk_size: int = 1000
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    smtp_use_tls: bool = True
    email_from_address: str = ""
    service_account_path: Optional[Path] = None
    webhook_timeout: int = 30

    @classmethod
    def from_env(cls) -> "ExportSettings":
        upload_dir = get_config_value("SCANEXPORT_UPLOAD_DIR")
        return cls(
            output_dir=Path(get_config_value("SCANEXPORT_OUTPUT_DIR", "output")),
            upload_dir=Path(upload_dir) if upload_dir else None,
            chunk_size=get_int_config("SCANEXPORT_CHUNK_SIZE", 1000),
            smtp_host=get_config_value("SMTP_HOST"),
            smtp_port=get_int_config("SMTP_PORT", 587),
            smtp_username=get_config_value("SMTP_USERNAME"),
            smtp_password=get_config_value("SMTP_PASSWORD"),
            smtp_use_tls=get_config_value("SMTP_USE_TLS", "1") != "0",
            email_from_address=get_config_value("EMAIL_FROM_ADDRESS"),
            service_account_path=default_service_account_path(),
            webhook_timeout=get_int_config("WEBHOOK_TIMEOUT", 30),
        )
