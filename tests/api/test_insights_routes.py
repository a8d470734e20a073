"""Insight Routes — verifies the HTTP surface end to end over the in-memory stack.

Invariants:
    - POST creates with 201 and stamps user_id from the caller
    - Every response carries X-Request-ID equal to the envelope request_id
    - No user → 401; viewer writes → 403; editor deletes → 403
    - Malformed bodies → 400 before any write; unknown ids → 404
    - limit above the cap → 400
    - Bulk reports per-id results with 200
"""

from tests.fakes import ADMIN, EDITOR, VIEWER, insight_payload

BASE = "/api/v1/insights"


async def _create(client, headers=ADMIN, **overrides) -> dict:
    res = await client.post(BASE, json=insight_payload(**overrides), headers=headers)
    assert res.status_code == 201, res.text
    return res.json()["data"]


# ─── Create ──────────────────────────────────────────────────────

async def test_create_returns_201_envelope(client):
    res = await client.post(BASE, json=insight_payload(), headers=EDITOR)
    body = res.json()
    assert res.status_code == 201
    assert body["success"] is True
    assert body["status_code"] == 201
    assert body["message"] == "Insight created successfully"
    assert body["data"]["user_id"] == "u-editor"
    assert body["data"]["id"].startswith("id_")


async def test_request_id_header_matches_envelope(client):
    res = await client.post(BASE, json=insight_payload(), headers=ADMIN)
    assert res.headers["X-Request-ID"] == res.json()["request_id"]
    assert res.headers["X-Request-ID"].startswith("InsightsController-")


async def test_create_without_user_is_401(client):
    res = await client.post(BASE, json=insight_payload())
    assert res.status_code == 401
    assert res.json()["error"]["code"] == "AUTHENTICATION_ERROR"


async def test_viewer_cannot_create(client):
    res = await client.post(BASE, json=insight_payload(), headers=VIEWER)
    assert res.status_code == 403
    assert res.json()["error"]["code"] == "AUTHORIZATION_ERROR"


async def test_invalid_body_is_400(client):
    res = await client.post(BASE, json={"title": ""}, headers=ADMIN)
    assert res.status_code == 400
    assert res.json()["error"]["code"] == "VALIDATION_ERROR"

    listing = await client.get(BASE, headers=ADMIN)
    assert listing.json()["data"]["pagination"]["total"] == 0


async def test_invalid_body_rejected_before_authentication(client):
    res = await client.post(BASE, json={"category": "nonsense"})
    assert res.status_code == 400


# ─── Read ────────────────────────────────────────────────────────

async def test_get_by_id(client):
    created = await _create(client)
    res = await client.get(f"{BASE}/{created['id']}", headers=VIEWER)
    assert res.status_code == 200
    assert res.json()["data"] == created


async def test_get_unknown_is_404(client):
    res = await client.get(f"{BASE}/id_missing", headers=VIEWER)
    assert res.status_code == 404
    body = res.json()
    assert body["success"] is False
    assert body["error"]["code"] == "NOT_FOUND"
    assert body["data"] is None


async def test_read_requires_user(client):
    res = await client.get(BASE)
    assert res.status_code == 401


async def test_list_paginates(client):
    for i in range(12):
        await _create(client, title=f"Insight {i}")
    res = await client.get(BASE, params={"page": 2, "limit": 5}, headers=VIEWER)
    pagination = res.json()["data"]["pagination"]
    assert res.status_code == 200
    assert pagination["total"] == 12
    assert pagination["total_pages"] == 3
    assert pagination["has_next"] is True
    assert pagination["has_prev"] is True
    assert len(res.json()["data"]["data"]) == 5


async def test_list_filters(client):
    await _create(client, category="testing")
    await _create(client, category="security")
    res = await client.get(BASE, params={"category": "security"}, headers=VIEWER)
    data = res.json()["data"]["data"]
    assert [i["category"] for i in data] == ["security"]


async def test_limit_above_cap_is_400(client):
    res = await client.get(BASE, params={"limit": 101}, headers=VIEWER)
    assert res.status_code == 400
    assert res.json()["error"]["code"] == "INVALID_PARAMETERS"


async def test_non_numeric_page_is_400(client):
    res = await client.get(BASE, params={"page": "two"}, headers=VIEWER)
    assert res.status_code == 400


async def test_page_zero_is_400(client):
    res = await client.get(BASE, params={"page": 0}, headers=VIEWER)
    assert res.status_code == 400


async def test_search_with_q(client):
    await _create(client, title="Redis caching patterns")
    await _create(client, title="Accessibility audit")
    res = await client.get(BASE, params={"q": "caching"}, headers=VIEWER)
    results = res.json()["data"]
    assert [r["title"] for r in results] == ["Redis caching patterns"]
    assert results[0]["relevance_score"] >= 10


async def test_summary(client):
    await _create(client, category="testing")
    await _create(client, category="testing", priority="high")
    res = await client.get(f"{BASE}/summary", headers=VIEWER)
    summary = res.json()["data"]
    assert res.status_code == 200
    assert summary["total"] == 2
    assert summary["by_category"] == {"testing": 2}


# ─── Update ──────────────────────────────────────────────────────

async def test_patch_updates(client):
    created = await _create(client)
    res = await client.patch(
        f"{BASE}/{created['id']}", json={"status": "active"}, headers=EDITOR,
    )
    assert res.status_code == 200
    assert res.json()["data"]["status"] == "active"
    assert res.json()["message"] == "Insight updated successfully"


async def test_patch_invalid_transition_is_400(client):
    created = await _create(client)
    res = await client.patch(
        f"{BASE}/{created['id']}", json={"status": "approved"}, headers=EDITOR,
    )
    assert res.status_code == 400
    assert "Invalid status transition" in res.json()["error"]["message"]


async def test_patch_unknown_field_is_400(client):
    created = await _create(client)
    res = await client.patch(
        f"{BASE}/{created['id']}", json={"created_at": "1999"}, headers=EDITOR,
    )
    assert res.status_code == 400


async def test_patch_null_required_fields_is_400(client):
    created = await _create(client)
    res = await client.patch(
        f"{BASE}/{created['id']}",
        json={"title": None, "content": None, "tags": None},
        headers=EDITOR,
    )
    assert res.status_code == 400
    assert res.json()["error"]["code"] == "VALIDATION_ERROR"

    stored = (await client.get(f"{BASE}/{created['id']}", headers=VIEWER)).json()["data"]
    assert stored["title"] == created["title"]
    assert stored["tags"] == created["tags"]


async def test_patch_unknown_is_404(client):
    res = await client.patch(f"{BASE}/id_missing", json={"title": "x"}, headers=EDITOR)
    assert res.status_code == 404


# ─── Delete ──────────────────────────────────────────────────────

async def test_delete_requires_admin(client):
    created = await _create(client)
    res = await client.delete(f"{BASE}/{created['id']}", headers=EDITOR)
    assert res.status_code == 403


async def test_delete_then_404(client):
    created = await _create(client)
    res = await client.delete(f"{BASE}/{created['id']}", headers=ADMIN)
    assert res.status_code == 200
    assert res.json()["data"] == {"id": created["id"], "deleted": True, "soft_deleted": False}

    again = await client.delete(f"{BASE}/{created['id']}", headers=ADMIN)
    assert again.status_code == 404


# ─── Bulk ────────────────────────────────────────────────────────

async def test_bulk_archive(client):
    ids = [(await _create(client, title=f"T{i}"))["id"] for i in range(3)]
    res = await client.post(
        f"{BASE}/bulk",
        json={"operation": "archive", "insight_ids": [*ids, "id_missing"]},
        headers=EDITOR,
    )
    body = res.json()["data"]
    assert res.status_code == 200
    assert body["successful"] == 3
    assert body["failed"] == 1
    assert body["errors"][0]["insight_id"] == "id_missing"


async def test_bulk_delete_requires_admin(client):
    created = await _create(client)
    res = await client.post(
        f"{BASE}/bulk",
        json={"operation": "delete", "insight_ids": [created["id"]]},
        headers=EDITOR,
    )
    assert res.status_code == 403


async def test_bulk_missing_argument_is_400(client):
    res = await client.post(
        f"{BASE}/bulk",
        json={"operation": "change-priority", "insight_ids": ["id_1"]},
        headers=ADMIN,
    )
    assert res.status_code == 400


async def test_without_authentication_requirement(controller, client):
    controller.require_authentication = False
    res = await client.post(BASE, json=insight_payload())
    assert res.status_code == 201
    assert "user_id" not in res.json()["data"]
