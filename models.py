"""
models.py
Domain records (frozen dataclasses), business constants and the read-only Snapshot.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Iterable, Mapping, Union

# Enrollment lifecycle
ENROLLMENT_CONFIRMED = "confirmed"
ENROLLMENT_PENDING = "pending"
ENROLLMENT_CANCELLED = "cancelled"

# Payment methods with their display labels (order is the report order)
PAYMENT_METHODS = {
    "cash": "Contanti",
    "transfer": "Bonifico",
    "card": "Carta",
}

# Virtual stamp duty on quotes above the threshold
STAMP_DUTY_THRESHOLD = 77.0
STAMP_DUTY_AMOUNT = 2.0

TOP_N = 5
EXPIRING_WINDOW_DAYS = 7

PAID_LABEL = "pagato"
UNPAID_LABEL = "non pagato"

# Invoice statuses with their display labels (order is the report order)
INVOICE_STATUSES = {
    "issued": "Emessa",
    "paid": "Pagata",
    "overdue": "Scaduta",
}

# Failure codes
UNKNOWN_CLIENT = "unknown_client"
UNKNOWN_DEPENDENT = "unknown_dependent"
UNKNOWN_SLOT = "unknown_slot"
UNKNOWN_PLAN = "unknown_plan"
UNKNOWN_ENROLLMENT = "unknown_enrollment"
UNKNOWN_QUOTE = "unknown_quote"
UNKNOWN_SUPPLIER = "unknown_supplier"
MISSING_RECIPIENT = "missing_recipient"
DUPLICATE_ENROLLMENT = "duplicate_enrollment"
CAPACITY_EXCEEDED = "capacity_exceeded"
INVALID_STATUS = "invalid_status"
UNKNOWN_REPORT_TYPE = "unknown_report_type"
MISSING_REPORT_DATE = "missing_report_date"
INVALID_DATE_RANGE = "invalid_date_range"


@dataclass(frozen=True)
class ValidationFailure:
    code: str
    message: str
    entity_id: str | None = None


@dataclass(frozen=True)
class Individual:
    name: str
    surname: str
    tax_code: str | None = None


@dataclass(frozen=True)
class Organization:
    company_name: str
    vat_number: str | None = None


Identity = Union[Individual, Organization]


def identity_name(identity: Identity) -> str:
    if isinstance(identity, Organization):
        return identity.company_name or "Cliente Giuridico"
    return f"{identity.name or ''} {identity.surname or ''}".strip()


@dataclass(frozen=True)
class Client:
    id: str
    identity: Identity
    email: str
    phone: str
    status: str = "prospect"  # active/suspended/prospect/terminated
    rating: int | None = None  # 1..5
    address: str | None = None
    zip_code: str | None = None
    city: str | None = None
    province: str | None = None

    @property
    def kind(self) -> str:
        return "organization" if isinstance(self.identity, Organization) else "individual"

    @property
    def display_name(self) -> str:
        return identity_name(self.identity)


@dataclass(frozen=True)
class PotentialClient:
    """Ad hoc quote recipient that is not (yet) a registered client."""

    identity: Identity
    email: str
    phone: str | None = None
    address: str | None = None
    zip_code: str | None = None
    city: str | None = None
    province: str | None = None

    @property
    def display_name(self) -> str:
        return identity_name(self.identity)


@dataclass(frozen=True)
class Dependent:
    id: str
    parent_id: str
    name: str
    birth_date: str


@dataclass(frozen=True)
class Supplier:
    id: str
    name: str
    vat_number: str | None = None
    contact_person: str | None = None
    email: str | None = None
    phone: str | None = None
    address: str | None = None


@dataclass(frozen=True)
class Venue:
    id: str
    name: str
    capacity: int
    address: str | None = None
    supplier_id: str | None = None


@dataclass(frozen=True)
class WorkshopSlot:
    id: str
    name: str
    venue_id: str
    day_of_week: int  # 0=Monday .. 6=Sunday
    start_time: str  # HH:MM
    end_time: str
    max_participants: int | None = None  # None/0 -> venue capacity only


@dataclass(frozen=True)
class InscriptionPlan:
    id: str
    name: str
    price: float
    duration_months: int = 0  # 0 -> no automatic expiration
    number_of_timeslots: int = 0  # 0 -> not session-counted


@dataclass(frozen=True)
class Enrollment:
    id: str
    dependent_id: str
    slot_id: str
    plan_name: str
    registration_date: str
    status: str = ENROLLMENT_CONFIRMED
    expiration_date: str | None = None


@dataclass(frozen=True)
class Payment:
    id: str
    client_id: str
    amount: float
    payment_date: str
    method: str  # cash/transfer/card
    slot_id: str | None = None
    description: str | None = None


@dataclass(frozen=True)
class OperationalCost:
    id: str
    amount: float
    date: str
    category: str
    description: str = ""
    supplier_id: str | None = None
    slot_id: str | None = None
    cost_type: str = "general"  # general/fuel
    venue_id: str | None = None
    distance_km: float | None = None  # one way
    fuel_cost_per_km: float | None = None
    method: str | None = None


@dataclass(frozen=True)
class Quote:
    id: str
    amount: float
    date: str
    status: str  # sent/approved/rejected
    description: str = ""
    client_id: str | None = None
    potential_client: PotentialClient | None = None
    method: str | None = None


@dataclass(frozen=True)
class Invoice:
    id: str
    client_id: str
    amount: float
    issue_date: str
    status: str = "issued"  # issued/paid/overdue
    slot_id: str | None = None
    sdi_number: str | None = None
    method: str | None = None


@dataclass(frozen=True)
class CompanyProfile:
    company_name: str
    vat_number: str
    address: str
    email: str
    phone: str
    tax_regime: str = ""


@dataclass(frozen=True)
class DateRange:
    """Inclusive ISO date bounds; either end may be open."""

    start: str | None = None
    end: str | None = None

    def contains(self, iso: str | None) -> bool:
        if not iso:
            return False
        day = iso[:10]
        if self.start and day < self.start:
            return False
        if self.end and day > self.end:
            return False
        return True


@dataclass(frozen=True)
class CascadePlan:
    """Records that would be removed with a parent record. Payments are never included."""

    client_ids: tuple[str, ...] = ()
    dependent_ids: tuple[str, ...] = ()
    enrollment_ids: tuple[str, ...] = ()
    supplier_ids: tuple[str, ...] = ()
    venue_ids: tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not (
            self.client_ids or self.dependent_ids or self.enrollment_ids or self.supplier_ids or self.venue_ids
        )


def _index(records: Iterable) -> Mapping:
    return MappingProxyType({r.id: r for r in records})


RECORD_TYPES = {
    "clients": Client,
    "dependents": Dependent,
    "venues": Venue,
    "suppliers": Supplier,
    "slots": WorkshopSlot,
    "plans": InscriptionPlan,
    "enrollments": Enrollment,
    "payments": Payment,
    "costs": OperationalCost,
    "quotes": Quote,
    "invoices": Invoice,
}
COLLECTIONS = tuple(RECORD_TYPES)
COLLECTION_OF = {cls: name for name, cls in RECORD_TYPES.items()}


@dataclass(frozen=True)
class Snapshot:
    """
    Read-only, point-in-time view of every collection (id -> record, insertion ordered).
    Use Snapshot.build(...) to create one from lists of records.
    """

    clients: Mapping[str, Client] = field(default_factory=lambda: MappingProxyType({}))
    dependents: Mapping[str, Dependent] = field(default_factory=lambda: MappingProxyType({}))
    venues: Mapping[str, Venue] = field(default_factory=lambda: MappingProxyType({}))
    suppliers: Mapping[str, Supplier] = field(default_factory=lambda: MappingProxyType({}))
    slots: Mapping[str, WorkshopSlot] = field(default_factory=lambda: MappingProxyType({}))
    plans: Mapping[str, InscriptionPlan] = field(default_factory=lambda: MappingProxyType({}))
    enrollments: Mapping[str, Enrollment] = field(default_factory=lambda: MappingProxyType({}))
    payments: Mapping[str, Payment] = field(default_factory=lambda: MappingProxyType({}))
    costs: Mapping[str, OperationalCost] = field(default_factory=lambda: MappingProxyType({}))
    quotes: Mapping[str, Quote] = field(default_factory=lambda: MappingProxyType({}))
    invoices: Mapping[str, Invoice] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def build(cls, **collections: Iterable) -> "Snapshot":
        unknown = set(collections) - set(COLLECTIONS)
        if unknown:
            raise TypeError(f"Unknown collections: {', '.join(sorted(unknown))}")
        return cls(**{name: _index(records) for name, records in collections.items()})

    def plan_by_name(self, name: str) -> InscriptionPlan | None:
        for plan in self.plans.values():
            if plan.name == name:
                return plan
        return None

    def dependents_of(self, client_id: str) -> list[Dependent]:
        return [d for d in self.dependents.values() if d.parent_id == client_id]

    def enrollments_of(self, dependent_id: str) -> list[Enrollment]:
        return [e for e in self.enrollments.values() if e.dependent_id == dependent_id]

    def counts(self) -> dict[str, int]:
        return {name: len(getattr(self, name)) for name in COLLECTIONS}

    def with_records(self, *records) -> "Snapshot":
        """New snapshot with the records added, or replaced in place when the id exists."""
        collections = {name: dict(getattr(self, name)) for name in COLLECTIONS}
        for record in records:
            collections[COLLECTION_OF[type(record)]][record.id] = record
        return Snapshot(**{name: MappingProxyType(c) for name, c in collections.items()})
