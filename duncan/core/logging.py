from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from decimal import Decimal
from logging.handlers import RotatingFileHandler
from typing import Any, Dict, Optional, Type

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class EnhancedJSONEncoder(json.JSONEncoder):
    def default(self, o: Any):  # type: ignore[override]
        if isinstance(o, Decimal):
            return str(o)
        to_dict = getattr(o, "to_dict", None)
        if callable(to_dict):
            return to_dict()
        try:
            return super().default(o)
        except TypeError:
            return str(o)


class NumericJSONEncoder(EnhancedJSONEncoder):
    """Writes finite Decimals as JSON numbers, for command output."""

    def default(self, o: Any):  # type: ignore[override]
        if isinstance(o, Decimal) and o.is_finite():
            return int(o) if o == o.to_integral_value() else float(o)
        return super().default(o)


def dumps(obj: Any, indent: Optional[int] = None, cls: Type[json.JSONEncoder] = EnhancedJSONEncoder) -> str:
    return json.dumps(obj, ensure_ascii=False, indent=indent, cls=cls)


@dataclass
class JsonLogger:
    name: str = "duncan"
    level: int = logging.INFO

    def __post_init__(self) -> None:
        self._logger = logging.getLogger(self.name)
        if "." in self.name:
            # Child loggers hand their records to the application logger.
            return
        self._logger.setLevel(self.level)
        # StreamHandler writes to stderr; stdout is reserved for command output.
        if not self._logger.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(logging.Formatter(LOG_FORMAT))
            self._logger.addHandler(handler)
        self._logger.propagate = False

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    def _format_value(self, value: Any) -> str:
        if isinstance(value, Decimal):
            return str(value)
        if isinstance(value, (dict, list, tuple)) or hasattr(value, "to_dict"):
            try:
                return json.dumps(value, ensure_ascii=False, separators=(",", ":"), cls=EnhancedJSONEncoder)
            except (TypeError, ValueError):
                return str(value)
        return str(value)

    def log(self, level: int, message: str, **fields: Any) -> None:
        if fields:
            extras = " ".join(f"{k}={self._format_value(v)}" for k, v in fields.items())
            line = f"{message} {extras}"
        else:
            line = message
        self._logger.log(level, line)

    def debug(self, message: str, **fields: Any) -> None:
        self.log(logging.DEBUG, message, **fields)

    def info(self, message: str, **fields: Any) -> None:
        self.log(logging.INFO, message, **fields)

    def warn(self, message: str, **fields: Any) -> None:
        self.log(logging.WARNING, message, **fields)

    def error(self, message: str, **fields: Any) -> None:
        self.log(logging.ERROR, message, **fields)


def setup_app_logger(logger_name: str,
                     *,
                     log_level: str = "INFO",
                     log_file: Optional[str] = None,
                     log_max_bytes: Optional[int] = None,
                     log_backup_count: Optional[int] = None,
                     disable_console_logging: Optional[bool] = None) -> Dict[str, Any]:
    """Apply level, rotating file and console settings to a named logger.

    Environment variables (LOG_LEVEL, LOG_FILE, LOG_MAX_BYTES, LOG_BACKUP_COUNT,
    DISABLE_CONSOLE_LOGGING) win over the passed values. No file handler is
    attached unless a log file is configured.
    """
    level_str = os.environ.get("LOG_LEVEL", log_level or "INFO")
    level = getattr(logging, level_str.upper(), logging.INFO)

    file_path = os.environ.get("LOG_FILE", log_file or "")
    max_bytes = int(os.environ.get("LOG_MAX_BYTES", log_max_bytes or 10 * 1024 * 1024))
    backup_count = int(os.environ.get("LOG_BACKUP_COUNT", log_backup_count or 5))

    env_disable = os.environ.get("DISABLE_CONSOLE_LOGGING")
    if env_disable is not None:
        disable_console = env_disable == "1"
    else:
        disable_console = bool(disable_console_logging)

    logger = logging.getLogger(logger_name)
    logger.setLevel(level)
    fmt = logging.Formatter(LOG_FORMAT)

    has_file = False
    has_console = False
    for h in list(logger.handlers):
        if isinstance(h, RotatingFileHandler):
            has_file = True
            h.setFormatter(fmt)
        elif isinstance(h, logging.StreamHandler):
            if disable_console:
                logger.removeHandler(h)
            else:
                has_console = True
                h.setFormatter(fmt)

    if not disable_console and not has_console:
        sh = logging.StreamHandler()
        sh.setFormatter(fmt)
        logger.addHandler(sh)

    if file_path and not has_file:
        d = os.path.dirname(file_path)
        if d:
            os.makedirs(d, exist_ok=True)
        fh = RotatingFileHandler(file_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8")
        fh.setLevel(level)
        fh.setFormatter(fmt)
        logger.addHandler(fh)
    logger.propagate = False

    return {
        "file": file_path or None,
        "level": level_str,
        "max_bytes": max_bytes,
        "backup_count": backup_count,
        "disable_console": disable_console,
    }
