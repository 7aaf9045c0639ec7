# Overview: Read-only lookups for payment methods and cancellation reasons.

from __future__ import annotations

from ..extensions import db
from ..models import CancellationReason, PaymentMethod


def list_payment_methods() -> list[dict]:
    """All rows, active or not, ordered by id."""
    rows = db.session.query(PaymentMethod).order_by(PaymentMethod.id.asc()).all()
    return [row.to_dict() for row in rows]


def list_cancellation_reasons() -> list[dict]:
    """All rows, active or not, ordered by id."""
    rows = db.session.query(CancellationReason).order_by(CancellationReason.id.asc()).all()
    return [row.to_dict() for row in rows]
