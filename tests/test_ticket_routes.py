from datetime import date
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from swertres.core.config import Settings, get_settings
from swertres.main import build_services, create_app
from swertres.services.qr import QuickChartRenderer
from swertres.services.rate_limit import InMemoryRateLimitStore, RateLimitPolicy
from swertres.tickets.models import Account, Draw, DrawStatus, DrawTime
from swertres.tickets.roles import Role
from swertres.tickets.storage import InMemoryTicketStore

TOKENS = {"agent-token": "agent-1", "other-token": "agent-2", "admin-token": "admin-1"}


def _auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def api():
    settings = Settings(api_tokens=TOKENS)
    store = InMemoryTicketStore()
    store.add_account(
        Account(id="agent-1", username="msantos", full_name="Maria Santos", role=Role.AGENT, phone="0917")
    )
    store.add_account(Account(id="agent-2", username="jreyes", full_name="Jose Reyes", role=Role.AGENT))
    store.add_account(Account(id="admin-1", username="admin", full_name="Head Office", role=Role.ADMIN))
    store.add_draw(Draw(id=1, draw_date=date(2026, 3, 14), draw_time=DrawTime.TWO_PM, status=DrawStatus.OPEN))

    rate_limiter = InMemoryRateLimitStore(
        {"claim": RateLimitPolicy("claim", limit=1, window_seconds=60)}, clock=lambda: 1_000.0
    )
    services = build_services(settings, store, rate_limiter=rate_limiter)

    app = create_app()
    app.dependency_overrides[get_settings] = lambda: settings
    app.state.ticket_store = store
    app.state.rate_limiter = rate_limiter
    app.state.claim_workflow = services.workflow
    app.state.draw_settlement = services.settlement
    app.state.ticket_issuer = services.issuer
    app.state.qr_renderer = QuickChartRenderer()

    client = TestClient(app)
    try:
        yield client
    finally:
        app.dependency_overrides.clear()


def _issue(client: TestClient, combination: str = "427", token: str = "agent-token") -> dict:
    response = client.post(
        "/tickets",
        json={"draw_id": 1, "wagers": [{"bet_type": "standard", "bet_combination": combination, "bet_amount": "10"}]},
        headers=_auth(token),
    )
    assert response.status_code == 201
    return response.json()


def test_ping_is_public(api):
    assert api.get("/ping").json() == {"status": "ok"}


def test_requests_without_token_are_rejected(api):
    assert api.get("/tickets/search/17734806001231234").status_code == 401
    assert api.get("/tickets/search/17734806001231234", headers=_auth("bogus")).status_code == 401


def test_repeated_bad_tokens_are_throttled(api):
    statuses = [api.get("/ping/secure", headers=_auth("guess")).status_code for _ in range(6)]

    assert statuses == [401] * 5 + [429]
    blocked = api.get("/ping/secure", headers=_auth("guess"))
    assert blocked.headers["Retry-After"] == "20"
    assert api.get("/ping/secure", headers=_auth("admin-token")).status_code == 200


def test_secure_ping_requires_supervising_role(api):
    assert api.get("/ping/secure", headers=_auth("agent-token")).status_code == 403
    assert api.get("/ping/secure", headers=_auth("admin-token")).json()["role"] == "admin"


def test_issue_settle_claim_and_approve(api):
    issued = _issue(api)
    number = issued["ticket"]["ticket_number"]
    assert issued["ticket"]["status"] == "issued"
    assert issued["print_payload"]["qr_payload"].startswith(number + "|")

    settled = api.post("/draws/1/settle", json={"winning_number": "427"}, headers=_auth("admin-token"))
    assert settled.status_code == 200
    assert settled.json()["validated"] == [number]
    breakdown = settled.json()["breakdown"]
    assert list(breakdown) == ["straight"]
    assert breakdown["straight"]["count"] == 1
    assert Decimal(breakdown["straight"]["amount"]) == Decimal("4500")

    claimed = api.post(f"/tickets/{number}/claim", headers=_auth("agent-token"))
    assert claimed.status_code == 200
    assert claimed.json()["status"] == "pending_approval"
    assert claimed.json()["claimer_name"] == "Maria Santos"

    forbidden = api.post(f"/claims/{number}/approve", headers=_auth("agent-token"))
    assert forbidden.status_code == 403
    assert forbidden.json()["kind"] == "authorization_error"

    approved = api.post(f"/claims/{number}/approve", headers=_auth("admin-token"))
    assert approved.status_code == 200
    assert approved.json()["status"] == "paid"
    assert Decimal(approved.json()["prize_amount"]) == Decimal("4500")

    trail = api.get(f"/tickets/{number}/audit", headers=_auth("agent-token")).json()
    assert [entry["action"] for entry in trail] == ["issued", "settled", "claim_requested", "claim_approved"]


def test_settle_rejects_malformed_winning_number(api):
    response = api.post("/draws/1/settle", json={"winning_number": "42"}, headers=_auth("admin-token"))

    assert response.status_code == 422


def test_losing_ticket_claim_maps_to_unprocessable(api):
    number = _issue(api, "724")["ticket"]["ticket_number"]
    api.post("/draws/1/settle", json={"winning_number": "427"}, headers=_auth("admin-token"))

    response = api.post(f"/tickets/{number}/claim", headers=_auth("agent-token"))

    assert response.status_code == 422
    assert response.json()["kind"] == "not_winning"


def test_claim_rate_limit_sets_retry_after(api):
    number = _issue(api, "724")["ticket"]["ticket_number"]
    api.post("/draws/1/settle", json={"winning_number": "427"}, headers=_auth("admin-token"))
    api.post(f"/tickets/{number}/claim", headers=_auth("agent-token"))

    response = api.post(f"/tickets/{number}/claim", headers=_auth("agent-token"))

    assert response.status_code == 429
    assert response.json()["kind"] == "rate_limited"
    assert int(response.headers["Retry-After"]) >= 1


def test_search_errors_map_to_status_codes(api):
    malformed = api.get("/tickets/search/12345", headers=_auth("agent-token"))
    missing = api.get("/tickets/search/17734806001231234", headers=_auth("agent-token"))

    assert malformed.status_code == 422
    assert malformed.json()["kind"] == "validation_error"
    assert missing.status_code == 404
    assert missing.json()["kind"] == "not_found"


def test_verify_detects_tampered_payload(api):
    issued = _issue(api)
    payload = issued["print_payload"]["qr_payload"]

    valid = api.post("/tickets/verify", json={"payload": payload}, headers=_auth("agent-token"))
    tampered = api.post("/tickets/verify", json={"payload": payload[:-1] + "x"}, headers=_auth("agent-token"))

    assert valid.status_code == 200
    assert valid.json()["is_winning"] is False
    assert tampered.status_code == 422
    assert tampered.json()["kind"] == "integrity_error"


def test_reprint_is_capped(api):
    number = _issue(api)["ticket"]["ticket_number"]

    counts = [api.post(f"/tickets/{number}/reprint", headers=_auth("agent-token")) for _ in range(3)]

    assert [response.status_code for response in counts] == [200, 200, 409]
    assert counts[1].json()["reprint_count"] == 2
    assert counts[2].json()["kind"] == "reprint_limit_exceeded"


def test_other_agents_cannot_touch_a_ticket(api):
    number = _issue(api)["ticket"]["ticket_number"]

    reprint = api.post(f"/tickets/{number}/reprint", headers=_auth("other-token"))
    audit = api.get(f"/tickets/{number}/audit", headers=_auth("other-token"))

    assert reprint.status_code == 403
    assert audit.status_code == 403


def test_expire_requires_supervising_role(api):
    number = _issue(api)["ticket"]["ticket_number"]

    assert api.post(f"/tickets/{number}/expire", headers=_auth("agent-token")).status_code == 403
    expired = api.post(f"/tickets/{number}/expire", headers=_auth("admin-token"))
    assert expired.json()["status"] == "expired"


def test_qr_route_uses_selected_renderer(api):
    number = _issue(api)["ticket"]["ticket_number"]

    body = api.get(f"/tickets/{number}/qr", headers=_auth("agent-token")).json()

    assert body["renderer"] == "quickchart"
    assert body["qr_payload"].startswith(number)
    assert body["image_url"].startswith("https://quickchart.io/qr?")
