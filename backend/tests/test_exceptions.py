"""Error envelope tests."""

import json

import pytest
from starlette.requests import Request

from harvestchain.middleware.exceptions import (
    FatalCompletionError,
    InvalidStateError,
    error_response,
    harvestchain_exception_handler,
    unhandled_exception_handler,
)


def _request(path="/api/orders/o-1/complete") -> Request:
    return Request({"type": "http", "method": "POST", "path": path, "headers": [], "query_string": b""})


@pytest.mark.unit
class TestErrorEnvelope:

    def test_details_omitted_when_absent(self):
        response = error_response(InvalidStateError("Order was already completed"))

        assert response.status_code == 409
        assert json.loads(response.body) == {
            "error": {"code": "INVALID_STATE", "message": "Order was already completed"},
        }

    async def test_fatal_completion_carries_reconciliation_details(self):
        response = await harvestchain_exception_handler(
            _request(), FatalCompletionError("o-1", "create_child_listing", "0xabc"),
        )

        assert response.status_code == 500
        error = json.loads(response.body)["error"]
        assert error["code"] == "FATAL_COMPLETION"
        assert error["details"] == {
            "order_id": "o-1", "step": "create_child_listing", "ledger_tx_ref": "0xabc",
        }

    async def test_unhandled_error_hides_internals(self, caplog):
        response = await unhandled_exception_handler(
            _request(), RuntimeError("postgres://admin:secret@db/harvest refused"),
        )

        assert response.status_code == 500
        body = response.body.decode()
        assert "secret" not in body
        assert json.loads(body)["error"]["code"] == "INTERNAL_ERROR"
        assert "secret" in caplog.text


@pytest.mark.api
async def test_auth_failure_keeps_challenge_header(client):
    response = await client.get("/api/listings", headers={"Authorization": "Bearer not-a-jwt"})

    assert response.status_code == 401
    assert response.headers["www-authenticate"] == "Bearer"
    assert response.json()["error"]["code"] == "HTTP_401"
