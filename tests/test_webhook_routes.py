"""Tests for the /api/webhooks management API."""
import pytest

from hookrelay.services.jwt_service import JWTService


def auth(org_id: str, role: str = "admin") -> dict:
    token = JWTService().create_token("user-1", org_id, role=role, email="ops@acme.com")
    return {"Authorization": f"Bearer {token}"}


async def create(api, org_id: str, **overrides) -> dict:
    body = {
        "name": "Primary",
        "url": "https://hooks.acme.com/in",
        "events": ["meeting.ended"],
    }
    body.update(overrides)
    response = await api.post("/api/webhooks/", json=body, headers=auth(org_id))
    assert response.status_code == 201, response.text
    return response.json()


@pytest.mark.asyncio
async def test_requires_token(api):
    assert (await api.get("/api/webhooks/")).status_code in (401, 403)

    bad = {"Authorization": "Bearer not-a-jwt"}
    assert (await api.get("/api/webhooks/", headers=bad)).status_code == 401


@pytest.mark.asyncio
async def test_event_catalogue(api, org):
    response = await api.get("/api/webhooks/events", headers=auth(org.id, role="member"))

    assert response.status_code == 200
    assert "meeting.ended" in response.json()["events"]
    assert "webhook.test" not in response.json()["events"]


@pytest.mark.asyncio
async def test_create_reveals_secret_once(api, org):
    created = await create(api, org.id, headers={"X-Tenant": "acme"})

    assert created["secret"].startswith("whsec_")
    assert len(created["secret"]) == 70
    assert created["status"] == "active"
    assert created["headers"] == {"X-Tenant": "acme"}

    listed = (await api.get("/api/webhooks/", headers=auth(org.id))).json()
    assert len(listed) == 1
    assert listed[0]["secret"] == created["secret"][:12] + "..."

    fetched = (await api.get(f"/api/webhooks/{created['id']}", headers=auth(org.id))).json()
    assert fetched["secret"].endswith("...")


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [
    {"name": "x", "url": "ftp://hooks.acme.com", "events": ["meeting.ended"]},
    {"name": "x", "url": "not a url", "events": ["meeting.ended"]},
    {"name": "x", "url": "https://hooks.acme.com", "events": []},
    {"name": "x", "url": "https://hooks.acme.com", "events": ["meeting.exploded"]},
    {"name": "x", "url": "https://hooks.acme.com", "events": ["meeting.ended"], "headers": {"X-Tenant": "café"}},
    {"name": "x", "url": "https://hooks.acme.com", "events": ["meeting.ended"], "headers": {"X-Tenant": "a\r\nX-Injected: 1"}},
    {"name": "x", "url": "https://hooks.acme.com", "events": ["meeting.ended"], "headers": {"Bad Name": "v"}},
])
async def test_create_validation(api, org, body):
    response = await api.post("/api/webhooks/", json=body, headers=auth(org.id))
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_members_cannot_mutate(api, org):
    response = await api.post(
        "/api/webhooks/",
        json={"name": "x", "url": "https://hooks.acme.com", "events": ["meeting.ended"]},
        headers=auth(org.id, role="member"),
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_other_organisation_cannot_see_endpoint(api, org, other_org):
    created = await create(api, org.id)

    assert (await api.get(f"/api/webhooks/{created['id']}", headers=auth(other_org.id))).status_code == 404
    assert (await api.delete(f"/api/webhooks/{created['id']}", headers=auth(other_org.id))).status_code == 404
    assert (await api.get("/api/webhooks/", headers=auth(other_org.id))).json() == []


@pytest.mark.asyncio
async def test_update(api, org):
    created = await create(api, org.id)

    response = await api.put(
        f"/api/webhooks/{created['id']}",
        json={"name": "Renamed", "events": ["summary.ready", "meeting.ended"], "status": "inactive"},
        headers=auth(org.id),
    )

    assert response.status_code == 200
    updated = response.json()
    assert updated["name"] == "Renamed"
    assert updated["events"] == ["meeting.ended", "summary.ready"]
    assert updated["status"] == "inactive"
    assert updated["url"] == created["url"]


@pytest.mark.asyncio
async def test_update_cannot_set_failed(api, org):
    created = await create(api, org.id)

    response = await api.put(
        f"/api/webhooks/{created['id']}", json={"status": "failed"}, headers=auth(org.id)
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_update_rejects_non_ascii_header(api, org):
    created = await create(api, org.id)

    response = await api.put(
        f"/api/webhooks/{created['id']}", json={"headers": {"X-Tenant": "café"}}, headers=auth(org.id)
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_regenerate_secret(api, org):
    created = await create(api, org.id)

    response = await api.post(f"/api/webhooks/{created['id']}/regenerate-secret", headers=auth(org.id))

    assert response.status_code == 200
    assert response.json()["secret"] != created["secret"]


@pytest.mark.asyncio
async def test_reactivate(api, org):
    created = await create(api, org.id)
    await api.put(f"/api/webhooks/{created['id']}", json={"status": "inactive"}, headers=auth(org.id))

    response = await api.post(f"/api/webhooks/{created['id']}/reactivate", headers=auth(org.id))

    assert response.status_code == 200
    assert response.json()["status"] == "active"
    assert response.json()["failure_count"] == 0


@pytest.mark.asyncio
async def test_delete(api, org):
    created = await create(api, org.id)

    assert (await api.delete(f"/api/webhooks/{created['id']}", headers=auth(org.id))).status_code == 200
    assert (await api.get(f"/api/webhooks/{created['id']}", headers=auth(org.id))).status_code == 404


@pytest.mark.asyncio
async def test_test_delivery_leaves_no_history(api, org):
    created = await create(api, org.id)

    response = await api.post(f"/api/webhooks/{created['id']}/test", headers=auth(org.id))

    assert response.status_code == 200
    result = response.json()
    assert result["success"] is True
    assert result["status_code"] == 200
    assert result["response_body"] == "received"

    history = await api.get(f"/api/webhooks/{created['id']}/deliveries", headers=auth(org.id))
    assert history.status_code == 200
    assert history.json() == []


@pytest.mark.asyncio
async def test_deliveries_limit_capped(api, org):
    created = await create(api, org.id)

    response = await api.get(
        f"/api/webhooks/{created['id']}/deliveries", params={"limit": 500}, headers=auth(org.id)
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_metrics_endpoint(api):
    response = await api.get("/metrics")

    assert response.status_code == 200
    assert "webhook_deliveries" in response.text
