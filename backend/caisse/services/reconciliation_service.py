"""
Reconciliation Engine

Folds a session's cash ledger into closing statistics and compares the
theoretical balance against the amount counted by the operator.

RULES:
- theoretical = opening + sales + entries - exits
- variance = counted - theoretical
- A variance is never corrected here, only classified:
    BALANCED           variance == 0
    WITHIN_TOLERANCE   0 < |variance| <= tolerance
    EXCEEDS_TOLERANCE  |variance| > tolerance
- Tolerance is an absolute amount in minor units, not a percentage.
- No variance magnitude ever blocks a close.
"""

from __future__ import annotations

from dataclasses import dataclass, field, asdict
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable

from flask import current_app

from ..extensions import db
from ..models import CashSession, CashMovement
from ..models.sessions import (
    MOVEMENT_ENTRY,
    MOVEMENT_EXIT,
    MOVEMENT_SALE,
    PAYMENT_METHODS,
    VARIANCE_BALANCED,
    VARIANCE_WITHIN_TOLERANCE,
    VARIANCE_EXCEEDS_TOLERANCE,
)
from ..validation import SessionNotFoundError, ValidationError
from .movement_service import list_movements


DEFAULT_TOLERANCE_CENTS = 1000


@dataclass(frozen=True)
class ClosureStatistics:
    opening_balance_cents: int
    total_sales_cents: int
    total_entries_cents: int
    total_exits_cents: int
    sales_by_payment_method: dict[str, int] = field(default_factory=dict)
    sales_count: int = 0
    entries_count: int = 0
    exits_count: int = 0
    average_basket_cents: int = 0

    @property
    def theoretical_balance_cents(self) -> int:
        return (
            self.opening_balance_cents
            + self.total_sales_cents
            + self.total_entries_cents
            - self.total_exits_cents
        )

    def to_dict(self) -> dict:
        data = asdict(self)
        data["theoretical_balance_cents"] = self.theoretical_balance_cents
        return data


@dataclass(frozen=True)
class ReconciliationResult:
    statistics: ClosureStatistics
    counted_balance_cents: int
    tolerance_cents: int

    @property
    def theoretical_balance_cents(self) -> int:
        return self.statistics.theoretical_balance_cents

    @property
    def variance_cents(self) -> int:
        return self.counted_balance_cents - self.theoretical_balance_cents

    @property
    def variance_flag(self) -> str:
        return classify_variance(self.variance_cents, self.tolerance_cents)

    @property
    def is_flagged(self) -> bool:
        return self.variance_flag == VARIANCE_EXCEEDS_TOLERANCE

    def to_dict(self) -> dict:
        data = self.statistics.to_dict()
        data.update({
            "counted_balance_cents": self.counted_balance_cents,
            "variance_cents": self.variance_cents,
            "tolerance_cents": self.tolerance_cents,
            "variance_flag": self.variance_flag,
            "is_flagged": self.is_flagged,
        })
        return data


def fold_movements(opening_balance_cents: int, movements: Iterable[CashMovement]) -> ClosureStatistics:
    """
    Pure fold of a ledger into statistics.

    Only sums and counts are accumulated, so the result does not depend on
    the order the movements are supplied in.
    """
    totals = {MOVEMENT_SALE: 0, MOVEMENT_ENTRY: 0, MOVEMENT_EXIT: 0}
    counts = {MOVEMENT_SALE: 0, MOVEMENT_ENTRY: 0, MOVEMENT_EXIT: 0}
    by_method = {method: 0 for method in PAYMENT_METHODS}

    for movement in movements:
        if movement.kind not in totals:
            raise ValidationError(f"Unknown movement kind {movement.kind!r} in ledger")
        totals[movement.kind] += movement.amount_cents
        counts[movement.kind] += 1
        if movement.kind == MOVEMENT_SALE:
            by_method[movement.payment_method] = by_method.get(movement.payment_method, 0) + movement.amount_cents

    return ClosureStatistics(
        opening_balance_cents=opening_balance_cents,
        total_sales_cents=totals[MOVEMENT_SALE],
        total_entries_cents=totals[MOVEMENT_ENTRY],
        total_exits_cents=totals[MOVEMENT_EXIT],
        sales_by_payment_method=by_method,
        sales_count=counts[MOVEMENT_SALE],
        entries_count=counts[MOVEMENT_ENTRY],
        exits_count=counts[MOVEMENT_EXIT],
        average_basket_cents=_average(totals[MOVEMENT_SALE], counts[MOVEMENT_SALE]),
    )


def _average(total_cents: int, count: int) -> int:
    if count == 0:
        return 0
    # Integer division would truncate toward -inf; round half-up instead
    return int((Decimal(total_cents) / Decimal(count)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def compute_statistics(session_id: int) -> ClosureStatistics:
    """
    Live statistics for a session, open or closed.

    Read-only: reads the opening balance and the full ledger, writes nothing.
    """
    session = db.session.get(CashSession, session_id)
    if not session:
        raise SessionNotFoundError(f"Session {session_id} not found")
    return statistics_for(session)


def statistics_for(session: CashSession) -> ClosureStatistics:
    return fold_movements(session.opening_balance_cents, list_movements(session.id))


def classify_variance(variance_cents: int, tolerance_cents: int) -> str:
    if variance_cents == 0:
        return VARIANCE_BALANCED
    if abs(variance_cents) <= tolerance_cents:
        return VARIANCE_WITHIN_TOLERANCE
    return VARIANCE_EXCEEDS_TOLERANCE


def configured_tolerance_cents() -> int:
    return int(current_app.config.get("CAISSE_VARIANCE_TOLERANCE_CENTS", DEFAULT_TOLERANCE_CENTS))


def reconcile(
    session: CashSession,
    counted_balance_cents: int,
    tolerance_cents: int | None = None,
) -> ReconciliationResult:
    """Compare a counted amount with the session's theoretical balance."""
    if tolerance_cents is None:
        tolerance_cents = configured_tolerance_cents()
    if tolerance_cents < 0:
        raise ValidationError("tolerance_cents cannot be negative")

    return ReconciliationResult(
        statistics=statistics_for(session),
        counted_balance_cents=counted_balance_cents,
        tolerance_cents=tolerance_cents,
    )
