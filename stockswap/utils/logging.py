"""
Root-logger setup for the CLI and the native-messaging host.

``configure_logging(config)`` runs once per process, from the entry point.
Library modules only ever call ``logging.getLogger(__name__)``.

Two things are specific to StockSwap:

- The native host speaks its wire protocol on stdout, so it hands
  ``stream=sys.stderr`` here and nothing is ever logged to stdout there.
- Upstream error bodies and httpx exception texts are logged verbatim, and
  either can echo a session token. Every handler carries ``_SecretFilter``,
  which masks bearer tokens and ``jwtToken`` values before a line is written.

With ``json_format = true`` each line is one object
(``ts``, ``level``, ``logger``, ``msg``, plus any ``extra=`` fields).
"""

from __future__ import annotations

import json
import logging
import re
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Optional, TextIO

if TYPE_CHECKING:
    from stockswap.config import LoggingConfig

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

_MASK = "***"
_SECRET_PATTERNS = (
    re.compile(r"(Bearer\s+)[A-Za-z0-9._~+/=-]+"),
    re.compile(r"""(["']?jwtToken["']?\s*[:=]\s*["']?)[^"',\s}]+"""),
)

# Attributes every LogRecord carries; anything else came from ``extra=``.
_RESERVED_RECORD_KEYS = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__
) | {"message", "asctime"}


def redact(text: str) -> str:
    """Mask bearer tokens and ``jwtToken`` values in ``text``."""
    for pattern in _SECRET_PATTERNS:
        text = pattern.sub(lambda m: m.group(1) + _MASK, text)
    return text


class _SecretFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        cleaned = redact(message)
        if cleaned != message:
            record.msg, record.args = cleaned, None
        return True


class _JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).strftime(LOG_DATE_FORMAT),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            payload["exc"] = redact(self.formatException(record.exc_info))
        payload.update(
            (key, val) for key, val in record.__dict__.items()
            if key not in _RESERVED_RECORD_KEYS and not key.startswith("_")
        )
        return json.dumps(payload, default=str)


def _handler(handler: logging.Handler, level: int, formatter: logging.Formatter) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    handler.addFilter(_SecretFilter())
    return handler


def configure_logging(config: "LoggingConfig", stream: Optional[TextIO] = None) -> None:
    """Install console (and optional file) handlers on the root logger.

    Args:
        config: ``[logging]`` section of ``AppConfig``.
        stream: Console stream; stdout when omitted.
    """
    level = getattr(logging, config.level.upper(), logging.INFO)
    formatter = (
        _JsonFormatter() if config.json_format
        else logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    )

    handlers = [_handler(logging.StreamHandler(stream or sys.stdout), level, formatter)]
    if config.log_file:
        log_path = Path(config.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            _handler(logging.FileHandler(log_path, encoding="utf-8"), level, formatter)
        )

    logging.basicConfig(level=level, handlers=handlers, force=True)

    # httpx logs every request line at INFO.
    for noisy in ("httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
