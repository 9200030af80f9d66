"""
Structured JSON logging for the meterwatch service.

Configures the root logger once at startup with a JSON-lines handler on
stderr. Modules log through ``logging.getLogger(__name__)`` and never
configure handlers themselves.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

import json
import logging
import sys
from datetime import UTC, datetime


class JsonFormatter(logging.Formatter):
    """Minimal JSON log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry)


def configure_logging(level: str = "INFO") -> None:
    """Install the JSON handler on the root logger.

    Args:
        level: Root log level name, e.g. ``INFO`` or ``DEBUG``.
    """
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JsonFormatter())
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level.upper())


def log_config_summary(settings: object) -> None:
    """Log the effective configuration at startup, excluding secrets.

    Connection URLs and the notifier token are omitted.
    """
    logger = logging.getLogger("meterwatch")
    logger.info(
        "Config: cooldown_s=%s, silent_plans=%s, billing_tz=%s, duration_cap_h=%.5f, "
        "auto_open=%s, cache_ttl_s=%s, queue_size=%s, notifier=%s",
        getattr(settings, "alert_cooldown_s", None),
        ",".join(sorted(getattr(settings, "silent_plans", ()))),
        getattr(settings, "billing_timezone", None),
        getattr(settings, "duration_cap_h", 0.0),
        getattr(settings, "live_billing_auto_open", None),
        getattr(settings, "realtime_cache_ttl_s", None),
        getattr(settings, "broadcast_queue_size", None),
        "http" if getattr(settings, "notifier_url", None) else "log-only",
    )
