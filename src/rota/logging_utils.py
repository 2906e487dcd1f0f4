"""
Structured logging setup with optional JSON output and redaction.
- Console handler + rotating file handler
- JSON formatter by default; pretty text if ROTA_LOG_JSON=false
- Redacts emails and phone numbers (common in shift notes) if enabled in settings

Example:
    from rota.logging_utils import configure_logging, get_logger
    configure_logging()
    log = get_logger(__name__)
    log.info("series.resolver.update_done", extra={"shift_id": "abc", "scope": "series"})
"""
from __future__ import annotations

import json
import logging
import logging.handlers as handlers
import re
import sys
from datetime import date, datetime, timezone
from typing import Any

from rota.config import settings


EMAIL_RE = re.compile(r"(?i)([a-z0-9._%+-]+)@([a-z0-9.-]+\.[a-z]{2,})")
PHONE_RE = re.compile(r"(?<!\d)(?:\+?\d{1,2}[\s.-]?)?\(?\d{3}\)?[\s.-]?\d{3}[\s.-]?\d{4}(?!\d)")


def redact(text: str) -> str:
    """Replace emails and phone numbers in `text` with placeholders."""
    return PHONE_RE.sub("***PHONE***", EMAIL_RE.sub("***@***", text))


class RedactingFilter(logging.Filter):
    """Redact emails and phone numbers in log messages and extras."""

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        """Mutate the record in-place, replacing sensitive string patterns."""
        if not settings.redact_notes_in_logs:
            return True
        if isinstance(record.msg, str):
            record.msg = redact(record.msg)
        if record.args and isinstance(record.args, tuple):
            record.args = tuple(redact(a) if isinstance(a, str) else a for a in record.args)
        payload = getattr(record, "__dict__", None)
        if isinstance(payload, dict):
            for k, v in payload.items():
                # Ids are hex and may hold a phone-shaped run of digits.
                if k in _STD_ATTRS or k.endswith("_id"):
                    continue
                if isinstance(v, str):
                    payload[k] = redact(v)
        return True


class JsonFormatter(logging.Formatter):
    """Minimal JSON formatter for logs."""

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        """Render a log record as a JSON object string."""
        base: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        # Python logging tucks extras into record.__dict__ beyond standard attrs
        extras = {k: v for k, v in record.__dict__.items() if k not in _STD_ATTRS}
        if extras:
            base.update({k: _safe(v) for k, v in extras.items()})
        if record.exc_info:
            base["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(base, ensure_ascii=False)


class TextFormatter(logging.Formatter):
    """Human-readable single-line formatter for console output."""

    default_msec_format = "%s.%03d"

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        """Render timestamp, level, logger name, message and extras as plain text."""
        ts = datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat()
        msg = record.getMessage()
        extras = " ".join(f"{k}={_safe(v)}" for k, v in record.__dict__.items() if k not in _STD_ATTRS)
        line = f"{ts} | {record.levelname:<7} | {record.name} | {msg}"
        return f"{line} | {extras}" if extras else line


_STD_ATTRS = frozenset(vars(logging.LogRecord("x", 0, "x", 0, "", (), None)).keys()) | {"message", "asctime"}


def _safe(v: Any) -> Any:
    if isinstance(v, (date, datetime)):
        return v.isoformat()
    try:
        json.dumps(v)
        return v
    except (TypeError, ValueError):
        return repr(v)


_configured = False


def configure_logging(force: bool = False, level_name: str | None = None) -> None:
    """Set up console + rotating file handlers, JSON or text based on settings.

    Call once at app startup. Safe to call multiple times with force=True.
    """
    global _configured
    if _configured and not force:
        return

    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)

    level = getattr(logging, (level_name or settings.log_level).upper(), logging.INFO)
    root.setLevel(level)

    filt = RedactingFilter()

    # Console handler
    ch = logging.StreamHandler(sys.stderr)
    ch.addFilter(filt)
    ch.setLevel(level)
    ch.setFormatter(JsonFormatter() if settings.log_json else TextFormatter())
    root.addHandler(ch)

    # File handler (rotating)
    try:
        settings.log_path.parent.mkdir(parents=True, exist_ok=True)
        fh = handlers.RotatingFileHandler(
            settings.log_path, maxBytes=settings.log_max_bytes, backupCount=settings.log_backup_count
        )
        fh.addFilter(filt)
        fh.setLevel(level)
        fh.setFormatter(JsonFormatter())  # Always JSON in file for easier parsing
        root.addHandler(fh)
    except OSError:
        # If filesystem not writable, keep going with console only
        root.warning("file handler disabled (log_path not writable)")

    _configured = True


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a named logger.

    Library modules only fetch loggers; handlers are installed by the CLI (or
    any other entry point) through `configure_logging()`.
    """
    return logging.getLogger(name if name else __name__)
