"""JSON-RPC transport for talking to a Lotus-compatible node.

Every call is a single blocking HTTP POST. Nothing is retried here: a
failed push may already have reached the mempool, so the decision to
resend belongs to the caller.
"""

import itertools
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

import requests
from requests.exceptions import ConnectionError, HTTPError, Timeout

logger = logging.getLogger(__name__)


class NetworkErrorType(Enum):
    TIMEOUT = "timeout"
    CONNECTION_ERROR = "connection_error"
    HTTP_ERROR = "http_error"
    RPC_ERROR = "rpc_error"
    INVALID_RESPONSE = "invalid_response"
    UNKNOWN = "unknown"


@dataclass
class NetworkError(Exception):
    error_type: NetworkErrorType
    message: str
    original_error: Exception | None = None
    status_code: int | None = None
    response_text: str | None = None
    rpc_code: int | None = None

    def __str__(self) -> str:
        return self.message


@dataclass
class TimeoutConfig:
    connect_timeout: float = 5.0
    read_timeout: float = 30.0

    @property
    def request_timeout(self) -> tuple[float, float]:
        return (self.connect_timeout, self.read_timeout)


DEFAULT_TIMEOUT_CONFIG = TimeoutConfig()


def classify_error(error: Exception) -> NetworkErrorType:
    if isinstance(error, Timeout):
        return NetworkErrorType.TIMEOUT
    elif isinstance(error, ConnectionError):
        return NetworkErrorType.CONNECTION_ERROR
    elif isinstance(error, HTTPError):
        return NetworkErrorType.HTTP_ERROR
    return NetworkErrorType.UNKNOWN


def create_network_error(
    error: Exception, rpc_addr: str, context: str = ""
) -> NetworkError:
    error_type = classify_error(error)
    context_prefix = f"{context}: " if context else ""

    if error_type == NetworkErrorType.TIMEOUT:
        message = (
            f"{context_prefix}Connection timeout. Node may be unavailable: {rpc_addr}"
        )
    elif error_type == NetworkErrorType.CONNECTION_ERROR:
        message = (
            f"{context_prefix}Cannot connect to node: {rpc_addr}. "
            "Check your network connection."
        )
    elif error_type == NetworkErrorType.HTTP_ERROR:
        status_code = getattr(error.response, "status_code", None)
        response_text = getattr(error.response, "text", None)
        message = f"{context_prefix}HTTP error {status_code}: {response_text or 'Unknown error'}"
        return NetworkError(
            error_type=error_type,
            message=message,
            original_error=error,
            status_code=status_code,
            response_text=response_text,
        )
    else:
        message = f"{context_prefix}Network error: {str(error)}"

    return NetworkError(
        error_type=error_type,
        message=message,
        original_error=error,
    )


class RpcClient:
    """Minimal JSON-RPC 2.0 client with optional bearer authentication."""

    def __init__(
        self,
        rpc_addr: str,
        token: str | None = None,
        timeout_config: TimeoutConfig | None = None,
        session: requests.Session | None = None,
    ):
        self.rpc_addr = rpc_addr
        self.token = token
        self.timeout_config = timeout_config or DEFAULT_TIMEOUT_CONFIG
        self._session = session
        self._ids = itertools.count(1)

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token and self.token.strip():
            headers["Authorization"] = f"Bearer {self.token.strip()}"
        return headers

    def _post(self, payload: dict[str, Any]) -> requests.Response:
        post = self._session.post if self._session is not None else requests.post
        return post(
            self.rpc_addr,
            json=payload,
            headers=self._headers(),
            timeout=self.timeout_config.request_timeout,
        )

    def call(self, method: str, params: list[Any], context: str = "") -> Any:
        """Invoke ``method`` and return the decoded ``result`` member.

        Raises:
            NetworkError: transport failure, non-2xx status, malformed body
                or an RPC-level ``error`` object.
        """
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params,
            "id": next(self._ids),
        }
        logger.debug("RPC call %s (id=%d)", method, payload["id"])

        try:
            response = self._post(payload)
            response.raise_for_status()
        except (Timeout, ConnectionError, HTTPError) as e:
            raise create_network_error(e, self.rpc_addr, context) from e

        try:
            body = response.json()
        except ValueError as e:
            raise NetworkError(
                error_type=NetworkErrorType.INVALID_RESPONSE,
                message=f"{context or method}: node returned a non-JSON body",
                original_error=e,
                status_code=response.status_code,
                response_text=response.text,
            ) from e

        if not isinstance(body, dict):
            raise NetworkError(
                error_type=NetworkErrorType.INVALID_RESPONSE,
                message=f"{context or method}: unexpected response shape",
                status_code=response.status_code,
            )

        error = body.get("error")
        if error:
            if isinstance(error, dict):
                rpc_message = str(error.get("message", error))
                rpc_code = error.get("code")
            else:
                rpc_message, rpc_code = str(error), None
            raise NetworkError(
                error_type=NetworkErrorType.RPC_ERROR,
                message=f"{context or method}: {rpc_message}",
                status_code=response.status_code,
                rpc_code=rpc_code if isinstance(rpc_code, int) else None,
            )

        return body.get("result")
