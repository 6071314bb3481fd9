"""
billing.py
Client balance reconciliation: plan-derived dues against payments received.

Reconciliation is aggregate per client. Payments are not matched to single
enrollments, and plan prices are resolved by name at computation time, so a
later price change also changes what is owed for past enrollments.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from models import (
    ENROLLMENT_CANCELLED,
    PAID_LABEL,
    UNKNOWN_CLIENT,
    UNPAID_LABEL,
    Client,
    Organization,
    Snapshot,
    ValidationFailure,
)
from utils import round_money

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClientBalance:
    client_id: str
    due: float
    paid: float
    settled: bool

    @property
    def outstanding(self) -> float:
        return round_money(max(self.due - self.paid, 0.0))

    @property
    def payment_status(self) -> str:
        return PAID_LABEL if self.settled else UNPAID_LABEL


def paid_by_client(snapshot: Snapshot) -> dict[str, float]:
    """Sum of payment amounts per client id, in order of first payment."""
    totals: dict[str, float] = {}
    for p in snapshot.payments.values():
        totals[p.client_id] = totals.get(p.client_id, 0.0) + p.amount
    return totals


def due_for_client(client_id: str, snapshot: Snapshot) -> float:
    due = 0.0
    for dependent in snapshot.dependents_of(client_id):
        for enrollment in snapshot.enrollments_of(dependent.id):
            if enrollment.status == ENROLLMENT_CANCELLED:
                continue
            plan = snapshot.plan_by_name(enrollment.plan_name)
            if plan is None:
                logger.warning(
                    "Enrollment %s references unknown plan '%s'; counted as 0",
                    enrollment.id,
                    enrollment.plan_name,
                )
                continue
            due += plan.price
    return due


def _balance(client_id: str, snapshot: Snapshot, paid: float) -> ClientBalance:
    due = round_money(due_for_client(client_id, snapshot))
    paid = round_money(paid)
    return ClientBalance(client_id=client_id, due=due, paid=paid, settled=paid >= due)


def compute_client_balance(client_id: str, snapshot: Snapshot) -> ClientBalance | ValidationFailure:
    if client_id not in snapshot.clients:
        return ValidationFailure(UNKNOWN_CLIENT, "Client not found.", client_id)
    paid = sum(p.amount for p in snapshot.payments.values() if p.client_id == client_id)
    return _balance(client_id, snapshot, paid)


def client_balances(snapshot: Snapshot) -> list[ClientBalance]:
    paid = paid_by_client(snapshot)
    return [_balance(cid, snapshot, paid.get(cid, 0.0)) for cid in snapshot.clients]


def unsettled_clients(snapshot: Snapshot) -> list[ClientBalance]:
    return [b for b in client_balances(snapshot) if not b.settled]


# ---------- Client list filtering ----------

def _surname(client: Client) -> str:
    if isinstance(client.identity, Organization):
        return client.identity.company_name or ""
    return client.identity.surname or ""


# sort option -> (key, reverse); clients without a rating sort as 0
SORT_OPTIONS = {
    "cognome-az": (lambda c: _surname(c).lower(), False),
    "cognome-za": (lambda c: _surname(c).lower(), True),
    "rating-desc": (lambda c: c.rating or 0, True),
    "rating-asc": (lambda c: c.rating or 0, False),
}


def filter_balances(
    balances: list[ClientBalance],
    snapshot: Snapshot,
    query: str = "",
    status: str | None = None,
    min_rating: int = 0,
    payment_status: str | None = None,
    sort_by: str | None = None,
) -> list[ClientBalance]:
    """
    Narrow a balance list the way the client list does:
    - query matches the client's name or surname (case-insensitive)
    - status / payment_status must match exactly when given
    - min_rating > 0 drops clients rated lower (unrated counts as 0)
    Unknown sort options keep the input order.
    """
    query = query.strip().lower()
    out = []
    for b in balances:
        client = snapshot.clients.get(b.client_id)
        if client is None:
            continue
        if query and query not in client.display_name.lower():
            continue
        if status and client.status != status:
            continue
        if min_rating > 0 and (client.rating or 0) < min_rating:
            continue
        if payment_status and b.payment_status != payment_status:
            continue
        out.append(b)

    if sort_by in SORT_OPTIONS:
        key, reverse = SORT_OPTIONS[sort_by]
        out.sort(key=lambda b: key(snapshot.clients[b.client_id]), reverse=reverse)
    return out
