from __future__ import annotations
"""Application settings persistence helpers."""

from dataclasses import asdict, dataclass
import json
import logging
from pathlib import Path

APP_DIR = Path.home() / ".bucket_browser"
MAX_PAGE_SIZE = 1000
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

LOGGER = logging.getLogger(__name__)


@dataclass
class AppSettings:
    """Simple container for persistent app settings."""

    page_size: int = MAX_PAGE_SIZE
    presign_expires_in: int = 3600
    upload_concurrency: int = 4
    max_attempts: int = 3
    connect_timeout: int = 10
    read_timeout: int = 60
    endpoint_url: str = ""
    log_level: str = "WARNING"


_POSITIVE_INT_FIELDS = (
    "page_size",
    "presign_expires_in",
    "upload_concurrency",
    "max_attempts",
    "connect_timeout",
    "read_timeout",
)


def _positive_int(value: object, default: int) -> int:
    if isinstance(value, bool):
        return default
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return number if number > 0 else default


class SettingsStorage:
    """JSON-backed persistence for :class:`AppSettings`."""

    def __init__(self, storage_path: str | Path | None = None):
        if storage_path is None:
            storage_path = APP_DIR / "settings.json"
        self._path = Path(storage_path)

    def load(self) -> AppSettings:
        if not self._path.exists():
            return AppSettings()
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            LOGGER.warning("Ignoring unreadable settings file %s", self._path)
            return AppSettings()
        if not isinstance(data, dict):
            return AppSettings()

        defaults = AppSettings()
        values = {
            name: _positive_int(data.get(name), getattr(defaults, name))
            for name in _POSITIVE_INT_FIELDS
        }
        values["page_size"] = min(values["page_size"], MAX_PAGE_SIZE)

        endpoint_url = data.get("endpoint_url", "")
        values["endpoint_url"] = endpoint_url.strip() if isinstance(endpoint_url, str) else ""

        log_level = data.get("log_level", defaults.log_level)
        if not isinstance(log_level, str) or log_level.upper() not in LOG_LEVELS:
            log_level = defaults.log_level
        values["log_level"] = log_level.upper()
        return AppSettings(**values)

    def save(self, settings: AppSettings) -> None:
        payload = asdict(settings)
        for name in _POSITIVE_INT_FIELDS:
            payload[name] = max(int(payload[name]), 1)
        payload["page_size"] = min(payload["page_size"], MAX_PAGE_SIZE)
        payload["endpoint_url"] = (settings.endpoint_url or "").strip()
        payload["log_level"] = (
            settings.log_level.upper() if settings.log_level.upper() in LOG_LEVELS else "WARNING"
        )
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        except OSError:
            # Persist best-effort; ignore filesystem issues.
            LOGGER.warning("Unable to write settings to %s", self._path)
            return
