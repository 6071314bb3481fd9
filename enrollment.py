"""
enrollment.py
Enrollment rules: capacity, duplicates, plan expiration, cancellation and cascades.

Every function reads a Snapshot and returns plain values; persisting them is the
caller's job. Checks run against the snapshot the caller holds, so two callers
working from different snapshots can both pass the capacity check.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from datetime import date, timedelta

from models import (
    CAPACITY_EXCEEDED,
    DUPLICATE_ENROLLMENT,
    ENROLLMENT_CANCELLED,
    ENROLLMENT_CONFIRMED,
    ENROLLMENT_PENDING,
    EXPIRING_WINDOW_DAYS,
    INVALID_STATUS,
    UNKNOWN_CLIENT,
    UNKNOWN_DEPENDENT,
    UNKNOWN_ENROLLMENT,
    UNKNOWN_PLAN,
    UNKNOWN_SLOT,
    UNKNOWN_SUPPLIER,
    CascadePlan,
    Enrollment,
    Snapshot,
    ValidationFailure,
    WorkshopSlot,
)
from utils import calc_expiration_date

logger = logging.getLogger(__name__)


def effective_capacity(slot: WorkshopSlot, snapshot: Snapshot) -> int | None:
    """Smallest of the slot limit and the venue capacity; None when neither is known."""
    limits = []
    if slot.max_participants:
        limits.append(slot.max_participants)
    venue = snapshot.venues.get(slot.venue_id)
    if venue is not None:
        limits.append(venue.capacity)
    return min(limits) if limits else None


def confirmed_count(slot_id: str, snapshot: Snapshot) -> int:
    return sum(
        1
        for e in snapshot.enrollments.values()
        if e.slot_id == slot_id and e.status == ENROLLMENT_CONFIRMED
    )


def is_duplicate(dependent_id: str, slot_id: str, snapshot: Snapshot) -> bool:
    return any(
        e.dependent_id == dependent_id and e.slot_id == slot_id and e.status != ENROLLMENT_CANCELLED
        for e in snapshot.enrollments.values()
    )


def check_enrollment(dependent_id: str, slot_id: str, plan_id: str, snapshot: Snapshot) -> list[ValidationFailure]:
    """
    All rule violations for a proposed enrollment, in rule order:
    - unknown dependent / slot / plan
    - duplicate (non-cancelled enrollment for the same dependent and slot)
    - slot already at effective capacity (confirmed enrollments only)
    """
    failures: list[ValidationFailure] = []

    if dependent_id not in snapshot.dependents:
        failures.append(ValidationFailure(UNKNOWN_DEPENDENT, "Dependent not found.", dependent_id))
    slot = snapshot.slots.get(slot_id)
    if slot is None:
        failures.append(ValidationFailure(UNKNOWN_SLOT, "Workshop slot not found.", slot_id))
    if plan_id not in snapshot.plans:
        failures.append(ValidationFailure(UNKNOWN_PLAN, "Inscription plan not found.", plan_id))

    if is_duplicate(dependent_id, slot_id, snapshot):
        failures.append(
            ValidationFailure(DUPLICATE_ENROLLMENT, "Dependent is already enrolled in this slot.", slot_id)
        )

    if slot is not None:
        cap = effective_capacity(slot, snapshot)
        if cap is not None and confirmed_count(slot_id, snapshot) >= cap:
            failures.append(
                ValidationFailure(CAPACITY_EXCEEDED, f"Slot has reached its capacity of {cap}.", slot_id)
            )

    return failures


def propose_enrollment(
    dependent_id: str,
    slot_id: str,
    plan_id: str,
    snapshot: Snapshot,
    status: str = ENROLLMENT_CONFIRMED,
    today: date | None = None,
    enrollment_id: str | None = None,
) -> Enrollment | ValidationFailure:
    """
    Build a new Enrollment, or return the first failing rule.
    The expiration date is registration + plan.duration_months (none for 0-month plans).
    """
    if status not in (ENROLLMENT_CONFIRMED, ENROLLMENT_PENDING):
        return ValidationFailure(INVALID_STATUS, f"Cannot create an enrollment with status '{status}'.")

    failures = check_enrollment(dependent_id, slot_id, plan_id, snapshot)
    if failures:
        logger.debug("Enrollment of %s in %s rejected: %s", dependent_id, slot_id, failures[0].code)
        return failures[0]

    plan = snapshot.plans[plan_id]
    registered = (today or date.today()).isoformat()
    return Enrollment(
        id=enrollment_id or uuid.uuid4().hex,
        dependent_id=dependent_id,
        slot_id=slot_id,
        plan_name=plan.name,
        registration_date=registered,
        status=status,
        expiration_date=calc_expiration_date(registered, plan.duration_months),
    )


def cancel_enrollment(enrollment_id: str, snapshot: Snapshot) -> Enrollment | ValidationFailure:
    enrollment = snapshot.enrollments.get(enrollment_id)
    if enrollment is None:
        return ValidationFailure(UNKNOWN_ENROLLMENT, "Enrollment not found.", enrollment_id)
    return replace(enrollment, status=ENROLLMENT_CANCELLED)


def plan_dependent_cascade(dependent_id: str, snapshot: Snapshot) -> CascadePlan | ValidationFailure:
    if dependent_id not in snapshot.dependents:
        return ValidationFailure(UNKNOWN_DEPENDENT, "Dependent not found.", dependent_id)
    return CascadePlan(
        dependent_ids=(dependent_id,),
        enrollment_ids=tuple(e.id for e in snapshot.enrollments_of(dependent_id)),
    )


def plan_client_cascade(client_id: str, snapshot: Snapshot) -> CascadePlan | ValidationFailure:
    """Client -> its dependents -> their enrollments. Payments stay as financial records."""
    if client_id not in snapshot.clients:
        return ValidationFailure(UNKNOWN_CLIENT, "Client not found.", client_id)
    dependent_ids: list[str] = []
    enrollment_ids: list[str] = []
    for dependent in snapshot.dependents_of(client_id):
        dependent_ids.append(dependent.id)
        enrollment_ids.extend(e.id for e in snapshot.enrollments_of(dependent.id))
    return CascadePlan(
        client_ids=(client_id,),
        dependent_ids=tuple(dependent_ids),
        enrollment_ids=tuple(enrollment_ids),
    )


def plan_supplier_cascade(supplier_id: str, snapshot: Snapshot) -> CascadePlan | ValidationFailure:
    """Supplier -> the venues it provides. Slots and costs keep their references."""
    if supplier_id not in snapshot.suppliers:
        return ValidationFailure(UNKNOWN_SUPPLIER, "Supplier not found.", supplier_id)
    return CascadePlan(
        supplier_ids=(supplier_id,),
        venue_ids=tuple(v.id for v in snapshot.venues.values() if v.supplier_id == supplier_id),
    )


def expiring_enrollments(snapshot: Snapshot, today: date | None = None, days: int = EXPIRING_WINDOW_DAYS) -> list[Enrollment]:
    today = today or date.today()
    start, end = today.isoformat(), (today + timedelta(days=days)).isoformat()
    rows = [
        e
        for e in snapshot.enrollments.values()
        if e.status != ENROLLMENT_CANCELLED and e.expiration_date and start <= e.expiration_date <= end
    ]
    return sorted(rows, key=lambda e: e.expiration_date)

