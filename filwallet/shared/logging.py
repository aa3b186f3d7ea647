"""Centralized logging configuration for fil-quick-wallet.

This module provides:
- Configurable log levels (DEBUG for dev, INFO for prod)
- Sensitive data sanitization (private keys, RPC tokens, passwords)
- User-friendly error message mapping
- Structured logging with context fields
"""

from __future__ import annotations

import json
import logging
import os
import re
import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any


class LogLevel(Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


@dataclass
class LoggingConfig:
    log_level: LogLevel = LogLevel.INFO
    log_to_file: bool = False
    log_to_stdout: bool = False
    log_dir: Path | None = None
    log_filename: str = "fil-wallet.log"
    json_format: bool = False
    sanitize_sensitive: bool = True
    include_context: bool = True

    @classmethod
    def from_environment(cls) -> "LoggingConfig":
        env_level = os.getenv("FIL_WALLET_LOG_LEVEL", "INFO").upper()
        try:
            log_level = LogLevel(env_level)
        except ValueError:
            log_level = LogLevel.INFO

        log_to_stdout = os.getenv("FIL_WALLET_LOG_STDOUT", "").lower() in (
            "1",
            "true",
            "yes",
        )
        log_dir = os.getenv("FIL_WALLET_LOG_DIR")

        return cls(
            log_level=log_level,
            log_to_file=bool(log_dir),
            log_to_stdout=log_to_stdout,
            log_dir=Path(log_dir).expanduser() if log_dir else None,
            json_format=os.getenv("FIL_WALLET_LOG_FORMAT", "human").lower() == "json",
        )


SENSITIVE_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (
        re.compile(
            r"(private[_-]?key['\"]?\s*[:=]\s*['\"]?)([A-Za-z0-9+/=]{20,})",
            re.IGNORECASE,
        ),
        r"\1[REDACTED]",
    ),
    (
        re.compile(r"(bearer\s+)([A-Za-z0-9\-_.=]+)", re.IGNORECASE),
        r"\1[REDACTED]",
    ),
    (
        re.compile(
            r"(token['\"]?\s*[:=]\s*['\"]?)([^\s'\",]+)",
            re.IGNORECASE,
        ),
        r"\1[REDACTED]",
    ),
    (
        re.compile(
            r"(password['\"]?\s*[:=]\s*['\"]?)([^\s'\"]+)",
            re.IGNORECASE,
        ),
        r"\1[REDACTED]",
    ),
    (
        re.compile(r"\b[A-Fa-f0-9]{64}\b"),
        "[KEY_REDACTED]",
    ),
]

ADDRESS_PATTERN = re.compile(r"\b[ft][0-4][a-z0-9]{1,90}\b")


def sanitize_message(message: str, preserve_addresses: bool = True) -> str:
    if not message:
        return message

    sanitized = message
    for pattern, replacement in SENSITIVE_PATTERNS:
        sanitized = pattern.sub(replacement, sanitized)

    if not preserve_addresses and ADDRESS_PATTERN.search(sanitized):
        sanitized = ADDRESS_PATTERN.sub("[ADDRESS_REDACTED]", sanitized)

    return sanitized


def sanitize_dict(
    data: dict[str, Any], preserve_addresses: bool = True
) -> dict[str, Any]:
    result = {}
    for key, value in data.items():
        key_lower = key.lower()
        if any(
            sensitive in key_lower
            for sensitive in ["private_key", "privatekey", "password", "secret", "token"]
        ):
            result[key] = "[REDACTED]"
        elif isinstance(value, str):
            result[key] = sanitize_message(value, preserve_addresses)
        elif isinstance(value, dict):
            result[key] = sanitize_dict(value, preserve_addresses)
        elif isinstance(value, list):
            result[key] = [
                sanitize_dict(item, preserve_addresses)
                if isinstance(item, dict)
                else sanitize_message(item, preserve_addresses)
                if isinstance(item, str)
                else item
                for item in value
            ]
        else:
            result[key] = value
    return result


@dataclass
class ErrorMapping:
    error_pattern: str
    user_message: str
    log_level: LogLevel = LogLevel.ERROR
    suggest_action: str | None = None


ERROR_MAPPINGS: list[ErrorMapping] = [
    ErrorMapping(
        error_pattern="timeout|timed out",
        user_message="Connection timed out. The node may be slow or unavailable.",
        log_level=LogLevel.WARNING,
        suggest_action="Try again later or check the node RPC address.",
    ),
    ErrorMapping(
        error_pattern="not confirmed|may still land",
        user_message="The message was submitted but is not confirmed yet.",
        log_level=LogLevel.WARNING,
        suggest_action="Check the message CID again later before resubmitting.",
    ),
    ErrorMapping(
        error_pattern="exit code|exited with",
        user_message="The message was included but failed on chain.",
        log_level=LogLevel.ERROR,
        suggest_action="Inspect the exit code before resubmitting.",
    ),
    ErrorMapping(
        error_pattern="connection refused|cannot connect|connection error",
        user_message="Unable to connect to the node.",
        log_level=LogLevel.WARNING,
        suggest_action="Check your internet connection and the RPC address.",
    ),
    ErrorMapping(
        error_pattern="insufficient funds|not enough funds|insufficient balance",
        user_message="Insufficient balance for this message.",
        log_level=LogLevel.WARNING,
        suggest_action="Ensure the sender holds enough FIL for the value and gas.",
    ),
    ErrorMapping(
        error_pattern="does not match the from address|key address",
        user_message="The signing key does not belong to the sender address.",
        log_level=LogLevel.ERROR,
        suggest_action="Select the key that controls the from address.",
    ),
    ErrorMapping(
        error_pattern="proposal hash|pending transaction|supplied proposal|is not pending",
        user_message="The pending multisig transaction does not match what you are approving.",
        log_level=LogLevel.ERROR,
        suggest_action="Re-check the proposer, destination, value, method and params.",
    ),
    ErrorMapping(
        error_pattern="invalid.*address|address.*invalid",
        user_message="The address provided is not valid.",
        log_level=LogLevel.WARNING,
        suggest_action="Please check the address format and checksum.",
    ),
    ErrorMapping(
        error_pattern="unauthorized|forbidden|401|403",
        user_message="Access denied. Authentication failed.",
        log_level=LogLevel.WARNING,
        suggest_action="Check the RPC token and its permissions.",
    ),
    ErrorMapping(
        error_pattern="nonce|sequence",
        user_message="The message nonce was rejected by the node.",
        log_level=LogLevel.WARNING,
        suggest_action="Wait for pending messages from this sender to confirm.",
    ),
    ErrorMapping(
        error_pattern="gas|fee cap|premium",
        user_message="The message gas parameters were rejected.",
        log_level=LogLevel.WARNING,
        suggest_action="Raise the max fee or let the node estimate gas.",
    ),
    ErrorMapping(
        error_pattern="signature.*invalid|invalid.*signature",
        user_message="Message signature verification failed.",
        log_level=LogLevel.ERROR,
        suggest_action="The message may have been tampered with.",
    ),
    ErrorMapping(
        error_pattern="not found|404",
        user_message="The requested resource was not found.",
        log_level=LogLevel.WARNING,
        suggest_action="The actor may not exist on this network.",
    ),
]


def get_user_friendly_error(error: Exception | str) -> tuple[str, str | None]:
    error_message = str(error) if isinstance(error, Exception) else error
    error_lower = error_message.lower()

    for mapping in ERROR_MAPPINGS:
        if re.search(mapping.error_pattern, error_lower):
            return mapping.user_message, mapping.suggest_action

    return "An unexpected error occurred.", None


class StructuredFormatter(logging.Formatter):
    def __init__(
        self,
        sanitize: bool = True,
        include_context: bool = True,
        preserve_addresses: bool = True,
    ):
        super().__init__()
        self.sanitize = sanitize
        self.include_context = include_context
        self.preserve_addresses = preserve_addresses

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if self.include_context:
            log_data["module"] = record.module
            log_data["function"] = record.funcName
            log_data["line"] = record.lineno

        extra_data = getattr(record, "context", None)
        if extra_data and isinstance(extra_data, dict):
            if self.sanitize:
                extra_data = sanitize_dict(extra_data, self.preserve_addresses)
            log_data["context"] = extra_data

        if record.exc_info:
            exc_text = self.formatException(record.exc_info)
            if self.sanitize:
                exc_text = sanitize_message(exc_text, self.preserve_addresses)
            log_data["exception"] = exc_text

        if self.sanitize:
            log_data["message"] = sanitize_message(
                log_data["message"], self.preserve_addresses
            )

        try:
            return json.dumps(log_data, default=str)
        except (TypeError, ValueError):
            return f"{log_data['timestamp']} - {log_data['logger']} - {log_data['level']} - {log_data['message']}"


class HumanReadableFormatter(logging.Formatter):
    def __init__(
        self,
        sanitize: bool = True,
        preserve_addresses: bool = True,
    ):
        super().__init__(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        self.sanitize = sanitize
        self.preserve_addresses = preserve_addresses

    def format(self, record: logging.LogRecord) -> str:
        if self.sanitize and record.msg:
            record.msg = sanitize_message(str(record.msg), self.preserve_addresses)
            if record.args and isinstance(record.args, tuple):
                record.args = tuple(
                    sanitize_message(arg, self.preserve_addresses)
                    if isinstance(arg, str)
                    else arg
                    for arg in record.args
                )

        return super().format(record)


class ContextAdapter(logging.LoggerAdapter):
    def __init__(
        self,
        logger: logging.Logger,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(logger, context or {})

    def process(
        self,
        msg: str,
        kwargs: dict[str, Any],
    ) -> tuple[str, dict[str, Any]]:
        extra = kwargs.get("extra", {})
        if self.extra:
            context = {**self.extra, **extra.get("context", {})}
            extra = {**extra, "context": context}
        kwargs["extra"] = extra
        return msg, kwargs

    def with_context(self, **kwargs: Any) -> "ContextAdapter":
        new_context = {**self.extra, **kwargs}
        return ContextAdapter(self.logger, new_context)


PACKAGE_LOGGER = "filwallet"
DEFAULT_LOG_DIR = Path.home() / ".fil-quick-wallet"

_logging_initialized = False
# Handlers added by setup_logging; a forced call removes only these.
_installed_handlers: list[logging.Handler] = []


def _build_formatter(config: LoggingConfig) -> logging.Formatter:
    if config.json_format:
        return StructuredFormatter(
            sanitize=config.sanitize_sensitive,
            include_context=config.include_context,
        )
    return HumanReadableFormatter(sanitize=config.sanitize_sensitive)


def _build_handlers(config: LoggingConfig) -> list[logging.Handler]:
    handlers: list[logging.Handler] = []
    if config.log_to_file:
        log_dir = config.log_dir or DEFAULT_LOG_DIR
        log_dir.mkdir(parents=True, exist_ok=True)
        handlers.append(
            logging.FileHandler(log_dir / config.log_filename, mode="a", encoding="utf-8")
        )
    if config.log_to_stdout:
        handlers.append(logging.StreamHandler(sys.stdout))
    for handler in handlers:
        handler.setFormatter(_build_formatter(config))
    return handlers


def setup_logging(
    config: LoggingConfig | None = None, force: bool = False
) -> logging.Logger:
    """Configure the ``filwallet`` logger once per process.

    Without file or stdout output no handler is attached and records
    propagate to whatever the application configured. ``force`` replaces
    the handlers of an earlier call.
    """
    global _logging_initialized

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    if _logging_initialized and not force:
        return package_logger

    if config is None:
        config = LoggingConfig.from_environment()

    for handler in _installed_handlers:
        package_logger.removeHandler(handler)
        handler.close()
    _installed_handlers.clear()

    package_logger.setLevel(getattr(logging, config.log_level.value))
    for handler in _build_handlers(config):
        package_logger.addHandler(handler)
        _installed_handlers.append(handler)

    _logging_initialized = True
    return package_logger


def get_logger(
    name: str,
    context: dict[str, Any] | None = None,
) -> ContextAdapter:
    if not _logging_initialized:
        setup_logging()

    logger = logging.getLogger(name)
    return ContextAdapter(logger, context)


def format_error_for_user(error: Exception | str) -> str:
    user_message, suggestion = get_user_friendly_error(error)
    if suggestion:
        return f"{user_message} {suggestion}"
    return user_message


__all__ = [
    "LogLevel",
    "LoggingConfig",
    "ContextAdapter",
    "StructuredFormatter",
    "HumanReadableFormatter",
    "sanitize_message",
    "sanitize_dict",
    "get_user_friendly_error",
    "setup_logging",
    "get_logger",
    "format_error_for_user",
]
