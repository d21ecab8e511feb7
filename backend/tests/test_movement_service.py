# Overview: Pytest coverage for the append-only cash movement ledger.

from datetime import timedelta

import pytest
from sqlalchemy import update
from sqlalchemy.exc import OperationalError

from caisse.extensions import db
from caisse.models import CashMovement
from caisse.services import movement_service, session_service, audit_service
from caisse.time_utils import utcnow
from caisse.validation import InvalidStateError, SessionNotFoundError, StorageUnavailableError, ValidationError


def _ledger_size() -> int:
    return db.session.query(CashMovement).count()


class TestRecordMovement:
    def test_sale(self, open_session):
        movement = movement_service.record_movement(
            open_session.id, "SALE", 30000, "cash",
            reference_type="sale", reference_id="CMD-0001", recorded_by="awa",
        )

        assert movement.id is not None
        assert movement.session_id == open_session.id
        assert movement.kind == "SALE"
        assert movement.amount_cents == 30000
        assert movement.payment_method == "cash"
        assert movement.reference_type == "sale"
        assert movement.reference_id == "CMD-0001"
        assert movement.recorded_by == "awa"
        assert movement.created_at is not None

    def test_kind_and_method_are_normalized(self, open_session):
        movement = movement_service.record_movement(open_session.id, "entry", 500, "MOBILE_MONEY", "Top-up")
        assert movement.kind == "ENTRY"
        assert movement.payment_method == "mobile_money"

    def test_amount_as_digit_string(self, open_session):
        movement = movement_service.record_movement(open_session.id, "SALE", "1250", "card")
        assert movement.amount_cents == 1250

    @pytest.mark.parametrize("amount", [0, -1, -2000])
    def test_non_positive_amount_rejected(self, open_session, amount):
        with pytest.raises(ValidationError):
            movement_service.record_movement(open_session.id, "SALE", amount, "cash")
        assert _ledger_size() == 0

    @pytest.mark.parametrize("amount", [12.5, "12.50", "1e3", True, None])
    def test_non_integer_amount_rejected(self, open_session, amount):
        with pytest.raises(ValidationError):
            movement_service.record_movement(open_session.id, "SALE", amount, "cash")
        assert _ledger_size() == 0

    @pytest.mark.parametrize("kind", ["ENTRY", "EXIT"])
    def test_manual_movements_need_description(self, open_session, kind):
        with pytest.raises(ValidationError):
            movement_service.record_movement(open_session.id, kind, 1000, "cash", "   ")
        assert _ledger_size() == 0

    def test_sale_description_optional(self, open_session):
        movement = movement_service.record_movement(open_session.id, "SALE", 1000, "cash")
        assert movement.description is None

    def test_payment_method_required(self, open_session):
        with pytest.raises(ValidationError):
            movement_service.record_movement(open_session.id, "SALE", 1000, None)
        assert _ledger_size() == 0

    def test_unknown_kind_and_method(self, open_session):
        with pytest.raises(ValidationError):
            movement_service.record_movement(open_session.id, "REFUND", 1000, "cash", "x")
        with pytest.raises(ValidationError):
            movement_service.record_movement(open_session.id, "SALE", 1000, "bitcoin")
        with pytest.raises(ValidationError):
            movement_service.record_movement(open_session.id, "SALE", 1000, "cash", reference_type="invoice")

    def test_missing_session(self, db_session):
        with pytest.raises(InvalidStateError) as exc_info:
            movement_service.record_movement(12345, "SALE", 1000, "cash")
        assert isinstance(exc_info.value, SessionNotFoundError)
        assert _ledger_size() == 0

    def test_closed_session_rejected_and_ledger_unchanged(self, open_session):
        movement_service.record_movement(open_session.id, "SALE", 1000, "cash")
        session_service.close_session(open_session.id, 51000)

        with pytest.raises(InvalidStateError) as exc_info:
            movement_service.record_movement(open_session.id, "EXIT", 1000, "cash", "late")

        assert not isinstance(exc_info.value, SessionNotFoundError)
        assert _ledger_size() == 1

    def test_audit_event_per_movement(self, open_session):
        movement = movement_service.record_movement(open_session.id, "EXIT", 700, "cash", "Water", recorded_by="awa")

        events = audit_service.list_audit_events(open_session.id, event_type="movement.recorded")
        assert len(events) == 1
        assert events[0].movement_id == movement.id
        assert events[0].actor == "awa"


class TestRecordSale:
    def test_scoped_to_open_session(self, open_session, location):
        movement = movement_service.record_sale(location.id, 4000, "mobile_money", reference_id="CMD-42")

        assert movement.session_id == open_session.id
        assert movement.kind == "SALE"
        assert movement.reference_type == "sale"
        assert movement.description == "Sale CMD-42"

    def test_no_open_session(self, location):
        with pytest.raises(InvalidStateError):
            movement_service.record_sale(location.id, 4000, "cash")
        assert _ledger_size() == 0

    def test_after_close(self, open_session, location):
        session_service.close_session(open_session.id, 50000)
        with pytest.raises(InvalidStateError):
            movement_service.record_sale(location.id, 4000, "cash")


class TestListMovements:
    def test_ordered_by_insertion(self, open_session):
        ids = [
            movement_service.record_movement(open_session.id, "SALE", amount, "cash").id
            for amount in (100, 200, 300)
        ]
        assert [m.id for m in movement_service.list_movements(open_session.id)] == ids

    def test_is_lazy_and_restartable(self, open_session):
        movement_service.record_movement(open_session.id, "SALE", 100, "cash")
        stream = movement_service.list_movements(open_session.id)
        assert not isinstance(stream, list)
        assert len(list(stream)) == 1

        movement_service.record_movement(open_session.id, "SALE", 200, "cash")
        assert len(list(movement_service.list_movements(open_session.id))) == 2

    def test_filters(self, open_session):
        movement_service.record_movement(open_session.id, "SALE", 100, "cash")
        movement_service.record_movement(open_session.id, "SALE", 200, "card")
        movement_service.record_movement(open_session.id, "ENTRY", 300, "cash", "Top-up")

        sales = list(movement_service.list_movements(open_session.id, kind="SALE"))
        assert [m.amount_cents for m in sales] == [100, 200]

        cash = list(movement_service.list_movements(open_session.id, payment_method="cash"))
        assert [m.amount_cents for m in cash] == [100, 300]

    def test_bad_filter_rejected_eagerly(self, open_session):
        with pytest.raises(ValidationError):
            movement_service.list_movements(open_session.id, kind="REFUND")

    def test_scoped_to_session(self, open_session, other_location):
        other = session_service.open_session(other_location.id, 0)
        movement_service.record_movement(open_session.id, "SALE", 100, "cash")
        movement_service.record_movement(other.id, "SALE", 999, "cash")

        assert [m.amount_cents for m in movement_service.list_movements(open_session.id)] == [100]

    def test_ledger_key_is_created_at_then_id(self, open_session):
        first, second, third = (
            movement_service.record_movement(open_session.id, "SALE", amount, "cash").id
            for amount in (100, 200, 300)
        )

        # A later id stamped earlier (clock order differs from commit order),
        # and a timestamp tie between the first two rows.
        base = utcnow()
        table = CashMovement.__table__
        db.session.execute(update(table).where(table.c.id.in_([first, second])).values(created_at=base))
        db.session.execute(update(table).where(table.c.id == third).values(created_at=base - timedelta(seconds=1)))
        db.session.commit()

        assert [m.id for m in movement_service.list_movements(open_session.id)] == [third, first, second]


def _failing_execute(*args, **kwargs):
    raise OperationalError("INSERT INTO cash_movements", {}, Exception("database is locked"))


class TestStorageFailure:
    def test_append_surfaces_storage_unavailable(self, open_session, monkeypatch):
        monkeypatch.setattr(db.session, "execute", _failing_execute)

        with pytest.raises(StorageUnavailableError):
            movement_service.record_movement(open_session.id, "SALE", 1000, "cash")

        monkeypatch.undo()
        assert _ledger_size() == 0
        assert audit_service.list_audit_events(open_session.id, event_type="movement.recorded") == []

    def test_close_surfaces_storage_unavailable(self, open_session, monkeypatch):
        monkeypatch.setattr(db.session, "execute", _failing_execute)

        with pytest.raises(StorageUnavailableError):
            session_service.close_session(open_session.id, 50000)

        monkeypatch.undo()
        session = session_service.get_session(open_session.id)
        assert session.status == "OPEN"
        assert session.closed_at is None

    def test_not_retried(self, open_session, monkeypatch):
        calls = []

        def failing(*args, **kwargs):
            calls.append(args)
            _failing_execute()

        monkeypatch.setattr(db.session, "execute", failing)
        with pytest.raises(StorageUnavailableError):
            movement_service.record_movement(open_session.id, "SALE", 1000, "cash")
        assert len(calls) == 1
