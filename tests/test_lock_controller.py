"""Tests for the HTTP lock controller client."""

from datetime import datetime, timezone
import json

import httpx
from httpx import MockTransport, Response
import pytest

from trailer_rental.core.config import Settings
from trailer_rental.core.exceptions import ExternalServiceException
from trailer_rental.integrations.lock_controller import (
    HttpLockController,
    NullLockController,
    build_lock_controller,
)

VALID_FROM = datetime(2030, 3, 1, 10, 0, tzinfo=timezone.utc)
VALID_UNTIL = datetime(2030, 3, 3, 23, 0, tzinfo=timezone.utc)


def _controller(handler) -> HttpLockController:
    return HttpLockController(
        base_url="https://locks.example.com/api/",
        api_key="lk_test",
        transport=MockTransport(handler),
    )


class TestHttpLockController:
    def test_grant_posts_code_with_validity(self):
        captured = {}

        def handler(request):
            captured["method"] = request.method
            captured["url"] = str(request.url)
            captured["authorization"] = request.headers.get("Authorization")
            captured["body"] = json.loads(request.content)
            return Response(201, json={"id": "code_1"})

        _controller(handler).grant_access("lock-001", "4821", VALID_FROM, VALID_UNTIL)

        assert captured["method"] == "POST"
        assert captured["url"] == "https://locks.example.com/api/locks/lock-001/codes"
        assert captured["authorization"] == "Bearer lk_test"
        assert captured["body"] == {
            "code": "4821",
            "valid_from": VALID_FROM.isoformat(),
            "valid_until": VALID_UNTIL.isoformat(),
        }

    def test_revoke_deletes_code(self):
        captured = {}

        def handler(request):
            captured["method"] = request.method
            captured["path"] = request.url.path
            return Response(204)

        _controller(handler).revoke_access("lock-001", "4821")

        assert captured == {"method": "DELETE", "path": "/api/locks/lock-001/codes/4821"}

    def test_server_error_is_external_failure(self):
        def handler(request):
            return Response(500, text="lock firmware busy")

        with pytest.raises(ExternalServiceException) as exc_info:
            _controller(handler).grant_access("lock-001", "4821", VALID_FROM, VALID_UNTIL)

        assert exc_info.value.service == "lock_controller"
        assert exc_info.value.timeout is False
        assert exc_info.value.message == "Lock controller responded with status 500"

    def test_not_found_on_revoke_is_external_failure(self):
        def handler(request):
            return Response(404, json={"error": "unknown code"})

        with pytest.raises(ExternalServiceException) as exc_info:
            _controller(handler).revoke_access("lock-001", "4821")

        assert exc_info.value.message == "Lock controller responded with status 404"

    def test_timeout_is_flagged(self):
        def handler(request):
            raise httpx.ReadTimeout("read timed out", request=request)

        with pytest.raises(ExternalServiceException) as exc_info:
            _controller(handler).grant_access("lock-001", "4821", VALID_FROM, VALID_UNTIL)

        assert exc_info.value.timeout is True
        assert exc_info.value.message == "Lock controller timed out"

    def test_connection_failure(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(ExternalServiceException) as exc_info:
            _controller(handler).revoke_access("lock-001", "4821")

        assert exc_info.value.timeout is False
        assert exc_info.value.message == "Failed to reach lock controller"

    def test_missing_base_url_rejected(self):
        with pytest.raises(ValueError):
            HttpLockController(base_url="", api_key="lk_test")


class TestBuildLockController:
    def test_null_provider_by_default(self):
        settings = Settings(_env_file=None)
        assert isinstance(build_lock_controller(settings), NullLockController)

    def test_http_provider(self):
        settings = Settings(
            _env_file=None,
            lock_provider="http",
            lock_api_base_url="https://locks.example.com/api",
            lock_api_key="lk_test",
        )
        assert isinstance(build_lock_controller(settings), HttpLockController)
