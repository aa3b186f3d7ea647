"""Shared utilities for fil-quick-wallet."""

from filwallet.shared.logging import (
    ContextAdapter,
    LoggingConfig,
    LogLevel,
    format_error_for_user,
    get_logger,
    get_user_friendly_error,
    sanitize_dict,
    sanitize_message,
    setup_logging,
)
from filwallet.shared.network import (
    NetworkError,
    NetworkErrorType,
    RpcClient,
    TimeoutConfig,
)
from filwallet.shared.validation import (
    AddressValidator,
    AmountValidator,
    ValidationResult,
    format_fil,
)

__all__ = [
    "RpcClient",
    "NetworkError",
    "NetworkErrorType",
    "TimeoutConfig",
    "AddressValidator",
    "AmountValidator",
    "ValidationResult",
    "format_fil",
    "ContextAdapter",
    "LoggingConfig",
    "LogLevel",
    "format_error_for_user",
    "get_logger",
    "get_user_friendly_error",
    "sanitize_dict",
    "sanitize_message",
    "setup_logging",
]
