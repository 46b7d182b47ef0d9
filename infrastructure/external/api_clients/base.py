"""
Outbound HTTP client base for the notification gateways.

A request is attempted ``max_retries + 1`` times when the gateway times
out, drops the connection or answers 429/5xx. Any other 4xx fails at once.
Every failure surfaces as ``APIError`` carrying the last status code.
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from core.logging_config import get_logger


logger = get_logger(__name__)

RETRY_STATUS_CODES = frozenset({429, 500, 502, 503, 504})


@dataclass
class APIResponse:
    status_code: int
    data: Any
    request_id: Optional[str] = None


class APIError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)

    def __str__(self):
        if self.status_code:
            return f"{self.message} (status {self.status_code})"
        return self.message


class _RetryableStatus(APIError):
    """Gateway answered with a status worth another attempt"""


def _decode(response: httpx.Response) -> Any:
    if "application/json" not in response.headers.get("content-type", ""):
        return None
    try:
        return response.json()
    except ValueError:
        return None


def _error_message(status_code: int, data: Any) -> str:
    if isinstance(data, dict):
        for key in ("message", "error", "detail"):
            if data.get(key):
                return str(data[key])
    return f"gateway answered {status_code}"


def _log_retry(state: RetryCallState) -> None:
    exc = state.outcome.exception() if state.outcome else None
    logger.warning(
        "gateway_request_retry",
        attempt=state.attempt_number,
        error=str(exc) if exc else None,
        next_wait=round(state.next_action.sleep, 3) if state.next_action else None,
    )


class BaseAPIClient:
    """Lazily opened ``httpx.AsyncClient`` with retrying POST."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        max_retries: int = 2,
        retry_delay: float = 0.5,
        auth_token: Optional[str] = None,
        basic_auth: Optional[Tuple[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._basic_auth = basic_auth
        self._transport = transport
        self.headers: Dict[str, str] = {
            "Accept": "application/json",
            "User-Agent": "CourierDispatch/1.0",
        }
        if auth_token:
            self.headers["Authorization"] = f"Bearer {auth_token}"
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url + "/",
                timeout=httpx.Timeout(self.timeout),
                auth=self._basic_auth,
                headers=self.headers,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _send(self, endpoint: str, json_data, data) -> APIResponse:
        response = await self.client.post(endpoint.lstrip("/"), json=json_data, data=data)
        payload = _decode(response)
        if response.status_code in RETRY_STATUS_CODES:
            raise _RetryableStatus(_error_message(response.status_code, payload), response.status_code)
        if response.status_code >= 400:
            raise APIError(_error_message(response.status_code, payload), response.status_code)
        return APIResponse(response.status_code, payload, response.headers.get("x-request-id"))

    async def post(
        self,
        endpoint: str,
        *,
        json_data: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> APIResponse:
        retrying = AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(multiplier=self.retry_delay, max=self.retry_delay * 8),
            retry=retry_if_exception_type((httpx.TimeoutException, httpx.NetworkError, _RetryableStatus)),
            before_sleep=_log_retry,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    return await self._send(endpoint, json_data, data)
        except _RetryableStatus as exc:
            raise APIError(exc.message, exc.status_code) from exc
        except httpx.TimeoutException as exc:
            raise APIError(f"gateway timed out after {self.timeout}s") from exc
        except httpx.NetworkError as exc:
            raise APIError(f"gateway unreachable: {exc}") from exc
