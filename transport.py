import json
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Mapping, Optional

import httpx

from config import get_settings
from session_store import SessionStore

logger = logging.getLogger(__name__)


class TransportError(Exception):
    def __init__(self, status_code: int, message: str, payload: Any = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.payload = payload


class AuthExpiredError(TransportError):
    pass


def _json_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _error_message(payload: Any, status_code: int) -> str:
    if isinstance(payload, dict) and payload.get("message"):
        return str(payload["message"])
    return f"Request failed: {status_code}"


class Transport:
    def __init__(
        self,
        session_store: SessionStore,
        base_url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        settings = get_settings()
        self.session_store = session_store
        self.base_url = (base_url or settings.api_base_url).rstrip("/")
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=settings.http_timeout_secs)

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    def _headers(self, json_body: bool, extra: Optional[Mapping[str, str]]) -> dict[str, str]:
        headers: dict[str, str] = {}
        if json_body:
            headers["Content-Type"] = "application/json"
        token = self.session_store.token
        if token:
            headers["Authorization"] = f"Bearer {token}"
        if extra:
            headers.update({k: str(v) for k, v in extra.items()})
        if not json_body:
            # multipart boundaries are chosen by httpx
            headers.pop("Content-Type", None)
        return headers

    async def request(
        self,
        path: str,
        method: str = "GET",
        body: Any = None,
        raw_body: Optional[bytes] = None,
        files: Optional[Mapping[str, Any]] = None,
        params: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> Any:
        supplied = [x for x in (body, raw_body, files) if x is not None]
        if len(supplied) > 1:
            raise ValueError("Pass at most one of body, raw_body or files")

        is_raw = raw_body is not None or files is not None
        content = raw_body
        if body is not None:
            content = json.dumps(body, default=_json_default).encode("utf-8")

        resp = await self.client.request(
            method,
            f"{self.base_url}{path}",
            headers=self._headers(not is_raw, headers),
            content=content,
            files=files,
            params=params,
        )

        if resp.status_code == 204:
            return None

        try:
            payload = resp.json()
        except ValueError:
            payload = None

        if not resp.is_success:
            message = _error_message(payload, resp.status_code)
            logger.warning(
                f"request_failed: method={method} path={path} status={resp.status_code}"
            )
            if resp.status_code == 401:
                self.session_store.clear_token()
                logger.info("Session credential cleared after 401")
                raise AuthExpiredError(resp.status_code, message, payload)
            raise TransportError(resp.status_code, message, payload)

        return payload
