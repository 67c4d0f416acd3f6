"""
Smart lock controller boundary.

The vendor integration is optional: ``NullLockController`` accepts every call
so the PIN lifecycle holds whether or not a physical lock is wired up.
"""

from __future__ import annotations

from datetime import datetime
import logging
from typing import Any, Dict, Protocol

import httpx
from pydantic import SecretStr

from ..core.config import Settings
from ..core.exceptions import ExternalServiceException

logger = logging.getLogger(__name__)


class LockController(Protocol):
    def grant_access(
        self, lock_id: str, code: str, valid_from: datetime, valid_until: datetime
    ) -> None: ...

    def revoke_access(self, lock_id: str, code: str) -> None: ...


class NullLockController:
    """Accepts every request without contacting hardware."""

    def grant_access(
        self, lock_id: str, code: str, valid_from: datetime, valid_until: datetime
    ) -> None:
        logger.info(
            "lock_grant_skipped",
            extra={"lock_id": lock_id, "valid_until": valid_until.isoformat()},
        )

    def revoke_access(self, lock_id: str, code: str) -> None:
        logger.info("lock_revoke_skipped", extra={"lock_id": lock_id})


class HttpLockController:
    """Thin client for a lock vendor REST API."""

    def __init__(
        self,
        *,
        base_url: str,
        api_key: str | SecretStr,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        secret_value = api_key.get_secret_value() if isinstance(api_key, SecretStr) else api_key
        if not base_url:
            raise ValueError("Lock API base URL must be provided")
        self._base_url = base_url.rstrip("/")
        self._api_key = secret_value
        self._timeout = timeout
        self._transport = transport

    def grant_access(
        self, lock_id: str, code: str, valid_from: datetime, valid_until: datetime
    ) -> None:
        self._request(
            "POST",
            f"/locks/{lock_id}/codes",
            {
                "code": code,
                "valid_from": valid_from.isoformat(),
                "valid_until": valid_until.isoformat(),
            },
        )

    def revoke_access(self, lock_id: str, code: str) -> None:
        self._request("DELETE", f"/locks/{lock_id}/codes/{code}")

    def _request(self, method: str, path: str, json_body: Dict[str, Any] | None = None) -> None:
        headers = {"Accept": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        with httpx.Client(
            base_url=self._base_url,
            timeout=self._timeout,
            transport=self._transport,
            headers=headers,
        ) as client:
            try:
                response = client.request(method, path, json=json_body)
                response.raise_for_status()
            except httpx.TimeoutException as exc:
                logger.error("Lock API timeout for %s %s", method, path)
                raise ExternalServiceException(
                    "lock_controller", "Lock controller timed out", timeout=True
                ) from exc
            except httpx.HTTPStatusError as exc:
                logger.error(
                    "Lock API error %s for %s %s: %s",
                    exc.response.status_code,
                    method,
                    path,
                    exc.response.text[:500],
                )
                raise ExternalServiceException(
                    "lock_controller",
                    f"Lock controller responded with status {exc.response.status_code}",
                ) from exc
            except httpx.RequestError as exc:
                logger.error("Lock API request failure for %s %s: %s", method, path, str(exc))
                raise ExternalServiceException(
                    "lock_controller", "Failed to reach lock controller"
                ) from exc


def build_lock_controller(settings: Settings) -> LockController:
    """Return the controller selected by ``settings.lock_provider``."""
    if settings.lock_provider == "http":
        return HttpLockController(
            base_url=settings.lock_api_base_url,
            api_key=settings.lock_api_key,
            timeout=settings.lock_timeout_seconds,
        )
    return NullLockController()
