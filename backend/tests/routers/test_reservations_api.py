import json
from typing import Any, Callable, List

import pytest
from conftest import BOOKING_DAY, TODAY
from httpx import AsyncClient
from tablebook.domain.errors import TransientStorageError
from tablebook.usecases.engine import ReservationEngine
from tablebook.utils import audit_log
from tablebook.utils.auth import CAP_READ

AuthHeaders = Callable[..., dict[str, str]]


def _payload(**overrides: Any) -> dict[str, Any]:
    body: dict[str, Any] = {
        "customer_name": "Ana Garcia",
        "email": "ana@example.com",
        "phone": "+34 600 000 000",
        "date": BOOKING_DAY.isoformat(),
        "time": "19:00",
        "guests": 4,
        "special_requests": "Terrace please",
    }
    body.update(overrides)
    return body


@pytest.fixture
def audit_messages(monkeypatch: pytest.MonkeyPatch) -> List[dict[str, Any]]:
    messages: List[dict[str, Any]] = []

    class DummyLogger:
        def info(self, message: str) -> None:
            messages.append(json.loads(message))

    monkeypatch.setattr(audit_log, "_audit_logger", DummyLogger())
    return messages


@pytest.mark.asyncio
async def test_health(client: AsyncClient) -> None:
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}
    assert resp.headers["X-Request-ID"]


@pytest.mark.asyncio
async def test_customer_booking_is_created_pending(
    client: AsyncClient, audit_messages: List[dict[str, Any]]
) -> None:
    resp = await client.post("/reservations", json=_payload())
    assert resp.status_code == 201
    body = resp.json()
    assert body["status"] == "pending"
    assert body["created_by"] == "customer"
    assert body["guests"] == 4
    assert body["date"] == BOOKING_DAY.isoformat()
    assert body["created_at"].endswith("+00:00")
    assert audit_messages[0]["action"] == "reservation.created"
    assert audit_messages[0]["initiator"] == "customer"
    assert audit_messages[0]["reservation_id"] == body["reservation_id"]


@pytest.mark.asyncio
async def test_invalid_fields_are_reported_together(client: AsyncClient) -> None:
    resp = await client.post("/reservations", json=_payload(customer_name="", email="nope", guests=40))
    assert resp.status_code == 422
    detail = resp.json()["detail"]
    assert detail["kind"] == "validation"
    assert detail["code"] == "invalid_field"
    assert set(detail["errors"]) == {"customer_name", "email"}


@pytest.mark.asyncio
async def test_unknown_slot_is_rejected(client: AsyncClient) -> None:
    resp = await client.post("/reservations", json=_payload(time="23:45"))
    assert resp.status_code == 422
    assert resp.json()["detail"]["code"] == "slot_not_found"


@pytest.mark.asyncio
async def test_full_slot_returns_conflict(client: AsyncClient) -> None:
    for guests in (12, 12, 12):
        assert (await client.post("/reservations", json=_payload(guests=guests))).status_code == 201
    resp = await client.post("/reservations", json=_payload(guests=5))
    assert resp.status_code == 409
    detail = resp.json()["detail"]
    assert detail["kind"] == "availability"
    assert detail["code"] == "no_capacity"


@pytest.mark.asyncio
async def test_storage_outage_returns_503(
    client: AsyncClient, engine: ReservationEngine, monkeypatch: pytest.MonkeyPatch
) -> None:
    async def broken(*args: Any, **kwargs: Any) -> Any:
        raise TransientStorageError("down")

    monkeypatch.setattr(engine, "submit_reservation", broken)
    resp = await client.post("/reservations", json=_payload())
    assert resp.status_code == 503
    assert resp.headers["Retry-After"]
    assert resp.json()["detail"]["kind"] == "storage"


@pytest.mark.asyncio
async def test_availability(client: AsyncClient) -> None:
    await client.post("/reservations", json=_payload(guests=12))
    resp = await client.get("/slots/availability", params={"date": BOOKING_DAY.isoformat(), "guests": 2})
    assert resp.status_code == 200
    body = resp.json()
    assert body["guests"] == 2
    slot = next(s for s in body["slots"] if s["time"] == "19:00")
    assert slot == {"time": "19:00", "available": True, "remaining": 28, "max_capacity": 40}


@pytest.mark.asyncio
async def test_availability_rejects_bad_input(client: AsyncClient) -> None:
    resp = await client.get("/slots/availability", params={"date": "tomorrow"})
    assert resp.status_code == 422
    assert resp.json()["detail"]["code"] == "invalid_date"
    resp = await client.get("/slots/availability", params={"date": TODAY.isoformat(), "guests": 30})
    assert resp.status_code == 422
    assert resp.json()["detail"]["code"] == "invalid_guests"


@pytest.mark.asyncio
async def test_staff_routes_require_a_token(client: AsyncClient) -> None:
    resp = await client.get("/staff/reservations", params={"date": BOOKING_DAY.isoformat()})
    assert resp.status_code == 401
    assert resp.headers["WWW-Authenticate"] == "Bearer"
    resp = await client.get(
        "/staff/reservations",
        params={"date": BOOKING_DAY.isoformat()},
        headers={"Authorization": "Bearer not-a-token"},
    )
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_read_only_staff_cannot_change_status(client: AsyncClient, auth_headers: AuthHeaders) -> None:
    created = (await client.post("/reservations", json=_payload())).json()
    headers = auth_headers(capabilities=[CAP_READ])

    resp = await client.get(f"/staff/reservations/{created['reservation_id']}", headers=headers)
    assert resp.status_code == 200

    resp = await client.patch(
        f"/staff/reservations/{created['reservation_id']}/status",
        json={"status": "confirmed"},
        headers=headers,
    )
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_status_changes_are_audited(
    client: AsyncClient, auth_headers: AuthHeaders, audit_messages: List[dict[str, Any]]
) -> None:
    created = (await client.post("/reservations", json=_payload())).json()
    url = f"/staff/reservations/{created['reservation_id']}/status"

    resp = await client.patch(url, json={"status": "confirmed"}, headers=auth_headers())
    assert resp.status_code == 200
    assert resp.json()["status"] == "confirmed"
    assert resp.json()["confirmed_at"] is not None

    resp = await client.patch(url, json={"status": "confirmed"}, headers=auth_headers())
    assert resp.status_code == 200

    resp = await client.patch(url, json={"status": "cancelled"}, headers=auth_headers())
    assert resp.json()["status"] == "cancelled"

    resp = await client.patch(url, json={"status": "pending"}, headers=auth_headers())
    assert resp.status_code == 200
    assert resp.json()["status"] == "cancelled"

    actions = [m["action"] for m in audit_messages]
    assert actions == ["reservation.created", "reservation.confirmed", "reservation.cancelled"]
    assert audit_messages[1]["actor"] == "1"
    assert audit_messages[1]["status_from"] == "pending"


@pytest.mark.asyncio
async def test_unknown_reservation_is_404(client: AsyncClient, auth_headers: AuthHeaders) -> None:
    resp = await client.patch("/staff/reservations/999/status", json={"status": "confirmed"}, headers=auth_headers())
    assert resp.status_code == 404
    assert resp.json()["detail"]["kind"] == "not_found"


@pytest.mark.asyncio
async def test_manual_booking_and_dashboard(client: AsyncClient, auth_headers: AuthHeaders) -> None:
    resp = await client.post(
        "/staff/reservations", json=_payload(time="21:00", email="walkin@example.com"), headers=auth_headers()
    )
    assert resp.status_code == 201
    assert resp.json()["status"] == "confirmed"
    assert resp.json()["created_by"] == "manager"

    await client.post("/reservations", json=_payload(time="12:00", email="lunch@corp.es", guests=2))

    resp = await client.get(
        "/staff/reservations",
        params={"date": BOOKING_DAY.isoformat()},
        headers=auth_headers(capabilities=[CAP_READ]),
    )
    assert resp.status_code == 200
    body = resp.json()
    assert [r["time"] for r in body["reservations"]] == ["12:00", "21:00"]
    assert body["summary"]["total"] == 2
    assert body["summary"]["confirmed"] == 1
    assert body["summary"]["pending"] == 1
    assert body["summary"]["total_guests"] == 6

    resp = await client.get(
        "/staff/reservations",
        params={"date": BOOKING_DAY.isoformat(), "q": "WALKIN", "status": "confirmed"},
        headers=auth_headers(),
    )
    body = resp.json()
    assert [r["email"] for r in body["reservations"]] == ["walkin@example.com"]
    assert body["summary"]["total"] == 1


@pytest.mark.asyncio
async def test_manual_reminder(client: AsyncClient, auth_headers: AuthHeaders) -> None:
    created = (await client.post("/staff/reservations", json=_payload(), headers=auth_headers())).json()
    url = f"/staff/reservations/{created['reservation_id']}/reminder"

    resp = await client.post(url, headers=auth_headers())
    assert resp.status_code == 200
    assert resp.json()["outcome"] == "sent"
    assert resp.json()["reservation"]["reminder_sent"] is True

    resp = await client.post(url, headers=auth_headers())
    assert resp.json()["outcome"] == "skipped"


@pytest.mark.asyncio
async def test_reminder_for_pending_booking_is_rejected(client: AsyncClient, auth_headers: AuthHeaders) -> None:
    created = (await client.post("/reservations", json=_payload())).json()
    resp = await client.post(f"/staff/reservations/{created['reservation_id']}/reminder", headers=auth_headers())
    assert resp.status_code == 422
    assert resp.json()["detail"]["code"] == "not_confirmed"


@pytest.mark.asyncio
async def test_missing_guests_is_rejected(client: AsyncClient) -> None:
    body = _payload()
    del body["guests"]
    resp = await client.post("/reservations", json=body)
    assert resp.status_code == 422
    detail = resp.json()["detail"]
    assert detail["kind"] == "validation"
    assert detail["code"] == "invalid_guests"
    assert set(detail["errors"]) == {"guests"}


@pytest.mark.asyncio
async def test_empty_name_wins_over_malformed_guests(client: AsyncClient) -> None:
    resp = await client.post("/reservations", json=_payload(customer_name="", guests="many"))
    assert resp.status_code == 422
    detail = resp.json()["detail"]
    assert detail["kind"] == "validation"
    assert detail["code"] == "invalid_field"
    assert set(detail["errors"]) == {"customer_name"}


@pytest.mark.asyncio
async def test_null_name_uses_the_error_body(client: AsyncClient) -> None:
    resp = await client.post("/reservations", json=_payload(customer_name=None))
    assert resp.status_code == 422
    detail = resp.json()["detail"]
    assert detail["kind"] == "validation"
    assert detail["errors"] == {"customer_name": "name is required"}


@pytest.mark.asyncio
async def test_range_stats(client: AsyncClient, auth_headers: AuthHeaders) -> None:
    await client.post("/reservations", json=_payload(guests=4))
    await client.post("/reservations", json=_payload(guests=2, time="21:00"))

    resp = await client.get(
        "/staff/reservations/stats",
        params={"start": TODAY.isoformat(), "end": BOOKING_DAY.isoformat()},
        headers=auth_headers(capabilities=[CAP_READ]),
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["start"] == TODAY.isoformat()
    assert body["summary"]["total"] == 2
    assert body["summary"]["pending"] == 2
    assert body["summary"]["total_guests"] == 6

    resp = await client.get(
        "/staff/reservations/stats",
        params={"start": BOOKING_DAY.isoformat(), "end": TODAY.isoformat()},
        headers=auth_headers(),
    )
    assert resp.status_code == 422
    assert resp.json()["detail"]["code"] == "invalid_range"

    resp = await client.get("/staff/reservations/stats", params={"start": "x", "end": "y"})
    assert resp.status_code == 401
