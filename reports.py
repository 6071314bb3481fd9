"""
reports.py
Tabular reports, dashboard KPIs and top-N rankings computed from a Snapshot.

generate_report(report_type, snapshot, date_range) -> Report | ValidationFailure
Each report is a pure function of its inputs: same snapshot, same output.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Callable, Mapping

import pandas as pd

import billing
from enrollment import confirmed_count, effective_capacity, expiring_enrollments
from models import (
    ENROLLMENT_CONFIRMED,
    INVALID_DATE_RANGE,
    INVOICE_STATUSES,
    MISSING_REPORT_DATE,
    PAYMENT_METHODS,
    UNKNOWN_REPORT_TYPE,
    DateRange,
    Snapshot,
    ValidationFailure,
)
from utils import format_eur, in_range, month_bounds, round_money, rows_to_csv_bytes, top_n

logger = logging.getLogger(__name__)

TOTAL_LABEL = "Totale"
UNASSIGNED_LABEL = "Non assegnato"
NO_SUPPLIER_LABEL = "Nessun fornitore"
MISSING = "N/D"

# columns holding euro amounts; rows keep them as numbers
MONEY_HEADERS = frozenset({"Importo", "Dovuto", "Pagato", "Residuo", "Ricavi", "Costi", "Profitto"})


@dataclass(frozen=True)
class Report:
    """
    Rows map header -> raw value; money columns hold plain floats.
    Use to_display_frame() for euro-formatted output.
    """

    title: str
    headers: tuple[str, ...]
    rows: tuple[dict, ...]

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(list(self.rows), columns=list(self.headers))

    def to_display_frame(self) -> pd.DataFrame:
        df = self.to_frame()
        for header in self.headers:
            if header in MONEY_HEADERS:
                df[header] = df[header].map(lambda v: format_eur(v) if pd.notna(v) else "")
        return df

    def to_csv_bytes(self, sep: str = ",") -> bytes:
        return rows_to_csv_bytes(self.headers, self.rows, sep=sep)

    def column_total(self, header: str) -> float:
        return round_money(sum(r[header] for r in self.rows if r.get(header) is not None))


@dataclass(frozen=True)
class QuoteConversion:
    approved: int
    rejected: int
    sent: int

    @property
    def decided(self) -> int:
        return self.approved + self.rejected

    @property
    def rate(self) -> float:
        """Approved share of decided quotes; 0.0 while nothing is decided."""
        if self.decided == 0:
            return 0.0
        return self.approved / self.decided


@dataclass(frozen=True)
class DashboardKpis:
    active_clients: int
    workshop_slots: int
    monthly_enrollments: int
    monthly_income: float
    unsettled_clients: int
    expiring_enrollments: int
    quote_conversion: QuoteConversion
    top_workshops: list[tuple[str, float]]
    top_clients: list[tuple[str, float]]


# ---------- Lookups and grouping ----------

def _name(mapping: Mapping, key: str, empty_label: str = UNASSIGNED_LABEL) -> str:
    if not key:
        return empty_label
    record = mapping.get(key)
    if record is None:
        return f"ID: {key}"
    if hasattr(record, "display_name"):
        return record.display_name
    return record.name


def _group_sum(records: list[dict], key: str = "key", value: str = "amount") -> list[tuple[str, float]]:
    """(key, total) pairs in order of first appearance."""
    df = pd.DataFrame(records, columns=[key, value])
    if df.empty:
        return []
    sums = df.groupby(key, sort=False)[value].sum()
    return [(k, round_money(v)) for k, v in sums.items()]


def _payments(snapshot: Snapshot, rng: DateRange | None):
    return [p for p in snapshot.payments.values() if in_range(p.payment_date, rng)]


def _costs(snapshot: Snapshot, rng: DateRange | None):
    return [c for c in snapshot.costs.values() if in_range(c.date, rng)]


def _quotes(snapshot: Snapshot, rng: DateRange | None):
    return [q for q in snapshot.quotes.values() if in_range(q.date, rng)]


def _invoices(snapshot: Snapshot, rng: DateRange | None):
    return [i for i in snapshot.invoices.values() if in_range(i.issue_date, rng)]


def _amount_rows(pairs, label_header: str, resolve: Callable[[str], str]) -> list[dict]:
    return [{label_header: resolve(k), "Importo": v} for k, v in pairs]


def revenue_by_slot(snapshot: Snapshot, rng: DateRange | None = None) -> list[tuple[str, float]]:
    return _group_sum([{"key": p.slot_id or "", "amount": p.amount} for p in _payments(snapshot, rng)])


def cost_by_slot(snapshot: Snapshot, rng: DateRange | None = None) -> list[tuple[str, float]]:
    return _group_sum([{"key": c.slot_id or "", "amount": c.amount} for c in _costs(snapshot, rng)])


def quote_conversion(snapshot: Snapshot, rng: DateRange | None = None) -> QuoteConversion:
    quotes = _quotes(snapshot, rng)
    return QuoteConversion(
        approved=sum(1 for q in quotes if q.status == "approved"),
        rejected=sum(1 for q in quotes if q.status == "rejected"),
        sent=sum(1 for q in quotes if q.status == "sent"),
    )


# ---------- Listings ----------

def _payments_listing(snapshot, rng):
    headers = ["Data", "Cliente", "Descrizione", "Importo", "Metodo"]
    rows = [
        {
            "Data": p.payment_date,
            "Cliente": _name(snapshot.clients, p.client_id, MISSING),
            "Descrizione": p.description or "",
            "Importo": round_money(p.amount),
            "Metodo": PAYMENT_METHODS.get(p.method, p.method),
        }
        for p in _payments(snapshot, rng)
    ]
    return headers, rows


def _costs_listing(snapshot, rng):
    headers = ["Data", "Descrizione", "Categoria", "Importo", "Fornitore"]
    rows = [
        {
            "Data": c.date,
            "Descrizione": c.description,
            "Categoria": c.category,
            "Importo": round_money(c.amount),
            "Fornitore": _name(snapshot.suppliers, c.supplier_id or "", MISSING),
        }
        for c in _costs(snapshot, rng)
    ]
    return headers, rows


def _enrollments_listing(snapshot, rng):
    headers = ["Data Iscrizione", "Bambino", "Workshop", "Sede", "Tipo Iscrizione", "Scadenza"]
    rows = []
    for e in snapshot.enrollments.values():
        if e.status != ENROLLMENT_CONFIRMED or not in_range(e.registration_date, rng):
            continue
        slot = snapshot.slots.get(e.slot_id)
        dependent = snapshot.dependents.get(e.dependent_id)
        rows.append({
            "Data Iscrizione": e.registration_date,
            "Bambino": dependent.name if dependent else MISSING,
            "Workshop": slot.name if slot else MISSING,
            "Sede": _name(snapshot.venues, slot.venue_id, MISSING) if slot else MISSING,
            "Tipo Iscrizione": e.plan_name,
            "Scadenza": e.expiration_date or MISSING,
        })
    return headers, rows


def _invoices_listing(snapshot, rng):
    headers = ["Data", "Cliente", "Workshop", "Importo", "Stato", "Numero SDI"]
    rows = [
        {
            "Data": i.issue_date,
            "Cliente": _name(snapshot.clients, i.client_id, MISSING),
            "Workshop": _name(snapshot.slots, i.slot_id or ""),
            "Importo": round_money(i.amount),
            "Stato": INVOICE_STATUSES.get(i.status, i.status),
            "Numero SDI": i.sdi_number or "",
        }
        for i in _invoices(snapshot, rng)
    ]
    return headers, rows


# ---------- Partitions and group-bys ----------

def _revenue_by_method(snapshot, rng):
    totals = {m: 0.0 for m in PAYMENT_METHODS}
    for p in _payments(snapshot, rng):
        if p.method not in totals:
            logger.warning("Payment %s has unknown method '%s'", p.id, p.method)
            continue
        totals[p.method] += p.amount
    rows = [{"Metodo": PAYMENT_METHODS[m], "Importo": round_money(v)} for m, v in totals.items()]
    rows.append({"Metodo": TOTAL_LABEL, "Importo": round_money(sum(totals.values()))})
    return ["Metodo", "Importo"], rows


def _invoices_by_status(snapshot, rng):
    totals = {s: [0, 0.0] for s in INVOICE_STATUSES}
    for i in _invoices(snapshot, rng):
        if i.status not in totals:
            logger.warning("Invoice %s has unknown status '%s'", i.id, i.status)
            continue
        totals[i.status][0] += 1
        totals[i.status][1] += i.amount
    headers = ["Stato", "Numero", "Importo"]
    rows = [
        {"Stato": INVOICE_STATUSES[s], "Numero": n, "Importo": round_money(v)}
        for s, (n, v) in totals.items()
    ]
    return headers, rows


def _revenue_by_workshop(snapshot, rng):
    pairs = revenue_by_slot(snapshot, rng)
    return ["Workshop", "Importo"], _amount_rows(pairs, "Workshop", lambda k: _name(snapshot.slots, k))


def _revenue_by_month(snapshot, rng):
    pairs = _group_sum([{"key": p.payment_date[:7], "amount": p.amount} for p in _payments(snapshot, rng)])
    pairs.sort(key=lambda kv: kv[0], reverse=True)
    return ["Mese", "Importo"], [{"Mese": k, "Importo": v} for k, v in pairs]


def _costs_by_supplier(snapshot, rng):
    pairs = _group_sum([{"key": c.supplier_id or "", "amount": c.amount} for c in _costs(snapshot, rng)])
    return ["Fornitore", "Importo"], _amount_rows(
        pairs, "Fornitore", lambda k: _name(snapshot.suppliers, k, NO_SUPPLIER_LABEL)
    )


def _costs_by_category(snapshot, rng):
    pairs = _group_sum([{"key": c.category, "amount": c.amount} for c in _costs(snapshot, rng)])
    return ["Categoria", "Importo"], _amount_rows(pairs, "Categoria", lambda k: k or UNASSIGNED_LABEL)


def _costs_by_workshop(snapshot, rng):
    pairs = cost_by_slot(snapshot, rng)
    return ["Workshop", "Importo"], _amount_rows(pairs, "Workshop", lambda k: _name(snapshot.slots, k))


def _participation_by_workshop(snapshot, rng):
    headers = ["Workshop", "Sede", "Iscritti", "Capienza", "Riempimento %"]
    rows = []
    for slot in snapshot.slots.values():
        count = sum(
            1
            for e in snapshot.enrollments.values()
            if e.slot_id == slot.id and e.status == ENROLLMENT_CONFIRMED and in_range(e.registration_date, rng)
        )
        cap = effective_capacity(slot, snapshot)
        rows.append({
            "Workshop": slot.name,
            "Sede": _name(snapshot.venues, slot.venue_id, MISSING),
            "Iscritti": count,
            "Capienza": cap,
            "Riempimento %": round_money(count / cap * 100) if cap else None,
        })
    return headers, rows


# ---------- Cross-entity statistics ----------

def _slot_profits(snapshot, rng) -> list[dict]:
    revenue = dict(revenue_by_slot(snapshot, rng))
    cost = dict(cost_by_slot(snapshot, rng))
    keys = list(snapshot.slots)
    keys += [k for k in list(revenue) + list(cost) if k and k not in keys]
    out = []
    for k in dict.fromkeys(keys):
        r, c = revenue.get(k, 0.0), cost.get(k, 0.0)
        out.append({
            "slot_id": k,
            "revenue": r,
            "cost": c,
            "profit": round_money(r - c),
            "participants": confirmed_count(k, snapshot),
        })
    return out


def _profit_by_workshop(snapshot, rng):
    headers = ["Workshop", "Ricavi", "Costi", "Profitto", "Iscritti"]
    rows = [
        {
            "Workshop": _name(snapshot.slots, s["slot_id"]),
            "Ricavi": s["revenue"],
            "Costi": s["cost"],
            "Profitto": s["profit"],
            "Iscritti": s["participants"],
        }
        for s in _slot_profits(snapshot, rng)
    ]
    return headers, rows


def _profit_per_participant(snapshot, rng):
    # slots without participants are left out, not counted as zero
    values = [s["profit"] / s["participants"] for s in _slot_profits(snapshot, rng) if s["participants"] > 0]
    if values:
        stats = [min(values), sum(values) / len(values), max(values)]
    else:
        stats = [0.0, 0.0, 0.0]
    rows = [
        {"Statistica": label, "Valore": round_money(v)}
        for label, v in zip(("Minimo", "Media", "Massimo"), stats)
    ]
    rows.append({"Statistica": "Workshop considerati", "Valore": len(values)})
    return ["Statistica", "Valore"], rows


def _client_balances(snapshot, rng):
    headers = ["Cliente", "Dovuto", "Pagato", "Residuo", "Stato"]
    rows = [
        {
            "Cliente": _name(snapshot.clients, b.client_id, MISSING),
            "Dovuto": b.due,
            "Pagato": b.paid,
            "Residuo": b.outstanding,
            "Stato": b.payment_status,
        }
        for b in billing.client_balances(snapshot)
    ]
    return headers, rows


def _quote_conversion(snapshot, rng):
    conv = quote_conversion(snapshot, rng)
    rows = [
        {"Voce": "Approvati", "Valore": conv.approved},
        {"Voce": "Rifiutati", "Valore": conv.rejected},
        {"Voce": "In attesa", "Valore": conv.sent},
        {"Voce": "Tasso di conversione %", "Valore": round_money(conv.rate * 100)},
    ]
    return ["Voce", "Valore"], rows


def _period_summary(snapshot, rng):
    revenue = round_money(sum(p.amount for p in _payments(snapshot, rng)))
    costs = round_money(sum(c.amount for c in _costs(snapshot, rng)))
    rows = [
        {"Voce": "Ricavi", "Importo": revenue},
        {"Voce": "Costi", "Importo": costs},
        {"Voce": "Profitto", "Importo": round_money(revenue - costs)},
    ]
    return ["Voce", "Importo"], rows


# report type -> (title, builder, needs a closed date range)
REPORTS: dict[str, tuple[str, Callable, bool]] = {
    "payments": ("Pagamenti Ricevuti", _payments_listing, False),
    "costs": ("Costi Operativi", _costs_listing, False),
    "enrollments": ("Iscrizioni Confermate", _enrollments_listing, False),
    "invoices": ("Fatture Emesse", _invoices_listing, False),
    "revenue_by_method": ("Incassi per Metodo", _revenue_by_method, False),
    "invoices_by_status": ("Fatture per Stato", _invoices_by_status, False),
    "revenue_by_workshop": ("Incassi per Workshop", _revenue_by_workshop, False),
    "revenue_by_month": ("Incassi per Mese", _revenue_by_month, False),
    "costs_by_supplier": ("Costi per Fornitore", _costs_by_supplier, False),
    "costs_by_category": ("Costi per Categoria", _costs_by_category, False),
    "costs_by_workshop": ("Costi per Workshop", _costs_by_workshop, False),
    "participation_by_workshop": ("Partecipazione per Workshop", _participation_by_workshop, False),
    "profit_by_workshop": ("Profitto per Workshop", _profit_by_workshop, False),
    "profit_per_participant": ("Profitto per Partecipante", _profit_per_participant, False),
    "client_balances": ("Situazione Pagamenti Clienti", _client_balances, False),
    "quote_conversion": ("Conversione Preventivi", _quote_conversion, False),
    "period_summary": ("Riepilogo del Periodo", _period_summary, True),
}


def generate_report(report_type: str, snapshot: Snapshot, date_range: DateRange | None = None) -> Report | ValidationFailure:
    entry = REPORTS.get(report_type)
    if entry is None:
        return ValidationFailure(UNKNOWN_REPORT_TYPE, f"Unknown report type '{report_type}'.")
    title, builder, needs_range = entry

    if needs_range and (date_range is None or not date_range.start or not date_range.end):
        return ValidationFailure(MISSING_REPORT_DATE, "This report requires a start and an end date.")
    if date_range and date_range.start and date_range.end and date_range.start > date_range.end:
        return ValidationFailure(INVALID_DATE_RANGE, "Start date must not be after end date.")

    headers, rows = builder(snapshot, date_range)
    logger.debug("Report %s: %d rows", report_type, len(rows))
    return Report(title=title, headers=tuple(headers), rows=tuple(rows))


def dashboard_kpis(snapshot: Snapshot, today: date | None = None) -> DashboardKpis:
    today = today or date.today()
    month = month_bounds(today)

    monthly_enrollments = sum(
        1
        for e in snapshot.enrollments.values()
        if e.status == ENROLLMENT_CONFIRMED and month.contains(e.registration_date)
    )
    monthly_income = round_money(sum(p.amount for p in _payments(snapshot, month)))

    top_workshops = [
        (_name(snapshot.slots, k), v) for k, v in top_n((k, v) for k, v in revenue_by_slot(snapshot) if k)
    ]
    top_clients = [
        (_name(snapshot.clients, k, MISSING), round_money(v))
        for k, v in top_n(billing.paid_by_client(snapshot).items())
    ]

    return DashboardKpis(
        active_clients=sum(1 for c in snapshot.clients.values() if c.status == "active"),
        workshop_slots=len(snapshot.slots),
        monthly_enrollments=monthly_enrollments,
        monthly_income=monthly_income,
        unsettled_clients=len(billing.unsettled_clients(snapshot)),
        expiring_enrollments=len(expiring_enrollments(snapshot, today)),
        quote_conversion=quote_conversion(snapshot),
        top_workshops=top_workshops,
        top_clients=top_clients,
    )
