"""Error Handlers — verifies errors escaping outside a controller still leave as envelopes.

Invariants:
    - Malformed JSON bodies → 400 VALIDATION_ERROR envelope
    - StrataError raised by a dependency keeps its own status and code
    - X-Request-ID is set on handler responses too
"""

from strata.api.routes.insights import get_insights_controller
from strata.core.errors import NotFoundError
from strata.main import app
from tests.fakes import ADMIN

BASE = "/api/v1/insights"


async def test_malformed_json_is_validation_envelope(client):
    res = await client.post(
        BASE,
        content=b"{not json",
        headers={**ADMIN, "Content-Type": "application/json"},
    )
    body = res.json()
    assert res.status_code == 400
    assert body["success"] is False
    assert body["error"]["code"] == "VALIDATION_ERROR"
    assert body["error"]["category"] == "validation"
    assert res.headers["X-Request-ID"] == body["request_id"]


async def test_strata_error_from_dependency_keeps_status(client):
    def missing_controller():
        raise NotFoundError("Controller", "insights")

    app.dependency_overrides[get_insights_controller] = missing_controller
    res = await client.get(BASE, headers=ADMIN)
    body = res.json()
    assert res.status_code == 404
    assert body["status_code"] == 404
    assert body["error"]["code"] == "NOT_FOUND"
    assert body["request_id"].startswith("api-")
