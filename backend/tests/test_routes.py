# Overview: Pytest coverage for the JSON API (locations, sessions, movements, audit).

import pytest
from sqlalchemy.exc import OperationalError

from caisse.extensions import db


def _create_location(client, code="BTQ-01"):
    response = client.post("/api/locations", json={"code": code, "name": "Boutique", "city": "Dakar"})
    assert response.status_code == 201
    return response.json["location"]


def _open(client, location_id, opening=50000):
    return client.post(
        f"/api/locations/{location_id}/sessions/open",
        json={"opening_balance_cents": opening, "notes": "Float", "opened_by": "awa"},
    )


@pytest.fixture
def location_id(client, db_session):
    return _create_location(client)["id"]


@pytest.fixture
def session_id(client, location_id):
    response = _open(client, location_id)
    assert response.status_code == 201
    return response.json["session"]["id"]


class TestHealth:
    def test_health(self, client, db_session):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json["checks"]["database"]["status"] == "healthy"


class TestLocationRoutes:
    def test_create_and_get(self, client, db_session):
        created = _create_location(client, code="btq-9")
        assert created["code"] == "BTQ-9"

        response = client.get(f"/api/locations/{created['id']}")
        assert response.status_code == 200
        assert response.json["current_session"] is None

    def test_duplicate_code(self, client, location_id):
        response = client.post("/api/locations", json={"code": "BTQ-01", "name": "Again"})
        assert response.status_code == 409

    def test_missing_name(self, client, db_session):
        response = client.post("/api/locations", json={"code": "X"})
        assert response.status_code == 400

    def test_unknown_location(self, client, db_session):
        assert client.get("/api/locations/999").status_code == 404

    def test_list_shows_current_session(self, client, session_id, location_id):
        response = client.get("/api/locations")
        assert response.status_code == 200
        [entry] = response.json["locations"]
        assert entry["current_session"]["id"] == session_id

    def test_deactivate_blocked_while_open(self, client, session_id, location_id):
        response = client.post(f"/api/locations/{location_id}/deactivate")
        assert response.status_code == 409

    def test_deactivate(self, client, location_id):
        response = client.post(f"/api/locations/{location_id}/deactivate")
        assert response.status_code == 200
        assert response.json["location"]["is_active"] is False
        assert client.get("/api/locations").json["locations"] == []
        assert len(client.get("/api/locations?include_inactive=true").json["locations"]) == 1


class TestSessionLifecycleRoutes:
    def test_open(self, client, location_id):
        response = _open(client, location_id)
        assert response.status_code == 201
        session = response.json["session"]
        assert session["status"] == "OPEN"
        assert session["opening_balance_cents"] == 50000
        assert session["closed_at"] is None

    def test_second_open_conflicts(self, client, session_id, location_id):
        response = _open(client, location_id, opening=100)
        assert response.status_code == 409
        assert response.json["type"] == "ConflictError"

    def test_open_negative(self, client, location_id):
        assert _open(client, location_id, opening=-1).status_code == 400

    def test_open_missing_balance(self, client, location_id):
        response = client.post(f"/api/locations/{location_id}/sessions/open", json={})
        assert response.status_code == 400

    def test_open_unknown_location(self, client, db_session):
        assert _open(client, 404).status_code == 404

    def test_active_session(self, client, session_id, location_id):
        response = client.get(f"/api/locations/{location_id}/sessions/active")
        assert response.status_code == 200
        assert response.json["session"]["id"] == session_id

    def test_active_session_none(self, client, location_id):
        response = client.get(f"/api/locations/{location_id}/sessions/active")
        assert response.status_code == 200
        assert response.json["session"] is None

    def test_full_day(self, client, session_id, location_id):
        assert client.post(
            f"/api/locations/{location_id}/sales",
            json={"amount_cents": 30000, "payment_method": "cash", "reference_id": "CMD-1"},
        ).status_code == 201
        assert client.post(
            f"/api/sessions/{session_id}/movements",
            json={"kind": "ENTRY", "amount_cents": 5000, "description": "Change"},
        ).status_code == 201
        assert client.post(
            f"/api/sessions/{session_id}/movements",
            json={"kind": "EXIT", "amount_cents": 2000, "description": "Taxi"},
        ).status_code == 201

        stats = client.get(f"/api/sessions/{session_id}/statistics").json["statistics"]
        assert stats["theoretical_balance_cents"] == 83000
        assert stats["sales_by_payment_method"]["cash"] == 30000

        response = client.post(
            f"/api/sessions/{session_id}/close",
            json={"counted_balance_cents": 82500, "notes": "Short 500", "closed_by": "awa"},
        )
        assert response.status_code == 200
        rec = response.json["reconciliation"]
        assert rec["theoretical_balance_cents"] == 83000
        assert rec["variance_cents"] == -500
        assert rec["variance_flag"] == "WITHIN_TOLERANCE"
        assert rec["is_flagged"] is False
        assert response.json["session"]["status"] == "CLOSED"
        assert response.json["session"]["variance_cents"] == -500

        # Terminal state
        again = client.post(f"/api/sessions/{session_id}/close", json={"counted_balance_cents": 83000})
        assert again.status_code == 409
        late = client.post(
            f"/api/sessions/{session_id}/movements",
            json={"kind": "SALE", "amount_cents": 100},
        )
        assert late.status_code == 409
        assert len(client.get(f"/api/sessions/{session_id}/movements").json["movements"]) == 3

        summary = client.get(f"/api/sessions/{session_id}").json
        assert summary["is_closed"] is True
        assert summary["session"]["closing_counted_cents"] == 82500

    def test_close_missing_count(self, client, session_id):
        response = client.post(f"/api/sessions/{session_id}/close", json={})
        assert response.status_code == 400

    def test_close_unknown(self, client, db_session):
        response = client.post("/api/sessions/999/close", json={"counted_balance_cents": 0})
        assert response.status_code == 404

    def test_list_sessions(self, client, session_id, location_id):
        response = client.get(f"/api/sessions?location_id={location_id}&status=OPEN")
        assert response.status_code == 200
        assert [s["id"] for s in response.json["sessions"]] == [session_id]

    def test_list_sessions_bad_date(self, client, db_session):
        assert client.get("/api/sessions?date_from=yesterday").status_code == 400


class TestMovementRoutes:
    def test_zero_amount(self, client, session_id):
        response = client.post(
            f"/api/sessions/{session_id}/movements",
            json={"kind": "SALE", "amount_cents": 0},
        )
        assert response.status_code == 400
        assert client.get(f"/api/sessions/{session_id}/movements").json["movements"] == []

    def test_float_amount(self, client, session_id):
        response = client.post(
            f"/api/sessions/{session_id}/movements",
            json={"kind": "SALE", "amount_cents": 10.5},
        )
        assert response.status_code == 400

    def test_exit_without_description(self, client, session_id):
        response = client.post(
            f"/api/sessions/{session_id}/movements",
            json={"kind": "EXIT", "amount_cents": 100},
        )
        assert response.status_code == 400

    def test_missing_session(self, client, db_session):
        response = client.post("/api/sessions/55/movements", json={"kind": "SALE", "amount_cents": 100})
        assert response.status_code == 404
        assert client.get("/api/sessions/55/movements").status_code == 404

    def test_sale_without_open_session(self, client, location_id):
        response = client.post(f"/api/locations/{location_id}/sales", json={"amount_cents": 100})
        assert response.status_code == 409

    def test_filtered_list(self, client, session_id):
        client.post(f"/api/sessions/{session_id}/movements", json={"kind": "SALE", "amount_cents": 100})
        client.post(
            f"/api/sessions/{session_id}/movements",
            json={"kind": "SALE", "amount_cents": 200, "payment_method": "card"},
        )

        response = client.get(f"/api/sessions/{session_id}/movements?payment_method=card")
        assert [m["amount_cents"] for m in response.json["movements"]] == [200]

        assert client.get(f"/api/sessions/{session_id}/movements?kind=nope").status_code == 400


class TestStorageFailureRoutes:
    def test_append_returns_503(self, client, session_id, monkeypatch):
        def failing(*args, **kwargs):
            raise OperationalError("INSERT INTO cash_movements", {}, Exception("database is locked"))

        monkeypatch.setattr(db.session, "execute", failing)
        response = client.post(
            f"/api/sessions/{session_id}/movements",
            json={"kind": "SALE", "amount_cents": 100},
        )
        monkeypatch.undo()

        assert response.status_code == 503
        assert response.json == {"error": "Storage unavailable, please retry"}
        assert client.get(f"/api/sessions/{session_id}/movements").json["movements"] == []

    def test_close_returns_503_and_session_stays_open(self, client, session_id, monkeypatch):
        def failing(*args, **kwargs):
            raise OperationalError("UPDATE cash_sessions", {}, Exception("could not connect"))

        monkeypatch.setattr(db.session, "execute", failing)
        response = client.post(f"/api/sessions/{session_id}/close", json={"counted_balance_cents": 50000})
        monkeypatch.undo()

        assert response.status_code == 503
        assert client.get(f"/api/sessions/{session_id}").json["session"]["status"] == "OPEN"


class TestAuditRoutes:
    def test_annotation_after_close(self, client, session_id):
        client.post(f"/api/sessions/{session_id}/close", json={"counted_balance_cents": 40000})

        response = client.post(
            f"/api/sessions/{session_id}/annotations",
            json={"note": "Counted twice, confirmed", "actor": "manager"},
        )
        assert response.status_code == 201

        events = client.get(f"/api/sessions/{session_id}/audit").json["events"]
        assert [e["event_type"] for e in events] == ["session.opened", "session.closed", "session.annotated"]

    def test_annotation_requires_note(self, client, session_id):
        response = client.post(f"/api/sessions/{session_id}/annotations", json={})
        assert response.status_code == 400
