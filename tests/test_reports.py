from datetime import date

import pytest

from models import (
    INVALID_DATE_RANGE,
    MISSING_REPORT_DATE,
    UNKNOWN_REPORT_TYPE,
    DateRange,
    Enrollment,
    Invoice,
    OperationalCost,
    Payment,
    Snapshot,
    ValidationFailure,
    WorkshopSlot,
)
from reports import REPORTS, Report, dashboard_kpis, generate_report, quote_conversion

JANUARY = DateRange("2024-01-01", "2024-01-31")
FEBRUARY = DateRange("2024-02-01", "2024-02-29")


def rows_by(report: Report, header: str) -> dict:
    return {r[header]: r for r in report.rows}


def test_revenue_by_method_emits_every_method_and_total(snapshot):
    report = generate_report("revenue_by_method", snapshot)
    assert report.headers == ("Metodo", "Importo")
    assert [(r["Metodo"], r["Importo"]) for r in report.rows] == [
        ("Contanti", 130.0),
        ("Bonifico", 50.0),
        ("Carta", 0.0),
        ("Totale", 180.0),
    ]


def test_revenue_by_method_on_empty_snapshot():
    report = generate_report("revenue_by_method", Snapshot())
    assert [r["Importo"] for r in report.rows] == [0.0, 0.0, 0.0, 0.0]


def test_revenue_by_workshop_partitions_all_payments(snapshot):
    report = generate_report("revenue_by_workshop", snapshot)
    assert [(r["Workshop"], r["Importo"]) for r in report.rows] == [
        ("Robotica", 100.0),
        ("Pittura", 50.0),
        ("Non assegnato", 30.0),
    ]
    assert report.column_total("Importo") == sum(p.amount for p in snapshot.payments.values())


def test_dangling_slot_reference_falls_back_to_id(snapshot):
    snapshot = snapshot.with_records(Payment("pay9", "c1", 5.0, "2024-01-20", "card", slot_id="w404"))
    report = generate_report("revenue_by_workshop", snapshot)
    assert rows_by(report, "Workshop")["ID: w404"]["Importo"] == 5.0


def test_dangling_supplier_reference_falls_back_to_id(snapshot):
    snapshot = snapshot.with_records(OperationalCost("k9", 12.0, "2024-01-20", "materiali", supplier_id="s404"))
    report = generate_report("costs_by_supplier", snapshot)
    assert rows_by(report, "Fornitore")["ID: s404"]["Importo"] == 12.0


def test_revenue_by_month_newest_first(snapshot):
    report = generate_report("revenue_by_month", snapshot)
    assert [(r["Mese"], r["Importo"]) for r in report.rows] == [("2024-02", 80.0), ("2024-01", 100.0)]


def test_costs_groupings(snapshot):
    by_supplier = generate_report("costs_by_supplier", snapshot)
    assert [(r["Fornitore"], r["Importo"]) for r in by_supplier.rows] == [
        ("Palestra Comunale", 20.0),
        ("Nessun fornitore", 15.0),
    ]
    by_category = generate_report("costs_by_category", snapshot)
    assert rows_by(by_category, "Categoria")["trasporto"]["Importo"] == 15.0
    by_workshop = generate_report("costs_by_workshop", snapshot, JANUARY)
    assert [(r["Workshop"], r["Importo"]) for r in by_workshop.rows] == [("Robotica", 20.0)]


def test_listings_filter_on_primary_date(snapshot):
    payments = generate_report("payments", snapshot, JANUARY)
    assert len(payments.rows) == 1
    assert payments.rows[0]["Cliente"] == "Mario Rossi"
    assert payments.rows[0]["Metodo"] == "Contanti"

    costs = generate_report("costs", snapshot, FEBRUARY)
    assert [r["Fornitore"] for r in costs.rows] == ["N/D"]


def test_enrollment_listing_shows_confirmed_only(snapshot):
    snapshot = snapshot.with_records(Enrollment("e3", "d3", "w2", "Open", "2024-01-20", status="pending"))
    report = generate_report("enrollments", snapshot)
    assert [r["Bambino"] for r in report.rows] == ["Luca", "Sofia"]
    first = report.rows[0]
    assert (first["Workshop"], first["Sede"], first["Scadenza"]) == ("Robotica", "Sala Piccola", "2024-02-10")
    assert report.rows[1]["Scadenza"] == "N/D"


def test_participation_by_workshop(snapshot):
    report = rows_by(generate_report("participation_by_workshop", snapshot), "Workshop")
    assert report["Robotica"]["Iscritti"] == 1
    assert report["Robotica"]["Capienza"] == 2
    assert report["Robotica"]["Riempimento %"] == 50.0
    assert report["Pittura"]["Riempimento %"] == 33.33


def test_profit_by_workshop(snapshot):
    report = rows_by(generate_report("profit_by_workshop", snapshot), "Workshop")
    assert report["Robotica"]["Profitto"] == 80.0
    assert report["Pittura"]["Profitto"] == 35.0
    assert report["Pittura"]["Iscritti"] == 1


def test_profit_per_participant_skips_empty_slots(snapshot):
    snapshot = snapshot.with_records(
        WorkshopSlot("w3", "Teatro", "v2", 4, "10:00", "11:00"),
        Payment("pay9", "c3", 500.0, "2024-02-10", "card", slot_id="w3"),
        OperationalCost("k9", 10.0, "2024-02-10", "materiali", slot_id="w3"),
    )
    report = rows_by(generate_report("profit_per_participant", snapshot), "Statistica")
    assert report["Minimo"]["Valore"] == 35.0
    assert report["Media"]["Valore"] == 57.5
    assert report["Massimo"]["Valore"] == 80.0
    assert report["Workshop considerati"]["Valore"] == 2


def test_profit_per_participant_without_participants_is_zero():
    report = generate_report("profit_per_participant", Snapshot())
    assert [r["Valore"] for r in report.rows] == [0.0, 0.0, 0.0, 0]


def test_quote_conversion_excludes_sent_from_rate(snapshot):
    conv = quote_conversion(snapshot)
    assert (conv.approved, conv.rejected, conv.sent) == (3, 1, 2)
    assert conv.rate == 0.75

    report = rows_by(generate_report("quote_conversion", snapshot), "Voce")
    assert report["Tasso di conversione %"]["Valore"] == 75.0
    assert report["In attesa"]["Valore"] == 2


def test_quote_conversion_with_nothing_decided():
    assert quote_conversion(Snapshot()).rate == 0.0


def test_client_balances_report(snapshot):
    report = rows_by(generate_report("client_balances", snapshot), "Cliente")
    mario = report["Mario Rossi"]
    assert (mario["Dovuto"], mario["Pagato"], mario["Residuo"], mario["Stato"]) == (170.0, 100.0, 70.0, "non pagato")
    assert report["Girasole Srl"]["Stato"] == "pagato"


def test_period_summary_requires_both_dates(snapshot):
    assert generate_report("period_summary", snapshot).code == MISSING_REPORT_DATE
    assert generate_report("period_summary", snapshot, DateRange(start="2024-02-01")).code == MISSING_REPORT_DATE

    report = rows_by(generate_report("period_summary", snapshot, FEBRUARY), "Voce")
    assert report["Ricavi"]["Importo"] == 80.0
    assert report["Costi"]["Importo"] == 15.0
    assert report["Profitto"]["Importo"] == 65.0


def test_invalid_requests(snapshot):
    assert generate_report("weather", snapshot).code == UNKNOWN_REPORT_TYPE
    backwards = DateRange("2024-02-01", "2024-01-01")
    assert generate_report("payments", snapshot, backwards).code == INVALID_DATE_RANGE


def test_range_without_matches_is_empty_not_an_error(snapshot):
    report = generate_report("payments", snapshot, DateRange("2030-01-01", "2030-12-31"))
    assert isinstance(report, Report)
    assert report.rows == ()


@pytest.mark.parametrize("report_type", sorted(REPORTS))
def test_reports_are_idempotent(snapshot, report_type):
    rng = JANUARY
    first = generate_report(report_type, snapshot, rng)
    second = generate_report(report_type, snapshot, rng)
    assert not isinstance(first, ValidationFailure)
    assert first == second
    assert all(set(row) == set(first.headers) for row in first.rows)


def test_display_frame_formats_money_columns(snapshot):
    frame = generate_report("revenue_by_method", snapshot).to_display_frame()
    assert list(frame["Metodo"]) == ["Contanti", "Bonifico", "Carta", "Totale"]
    assert list(frame["Importo"]) == ["€130.00", "€50.00", "€0.00", "€180.00"]

    participation = generate_report("participation_by_workshop", snapshot).to_display_frame()
    assert list(participation["Iscritti"]) == [1, 1]


def test_invoice_reports(snapshot):
    snapshot = snapshot.with_records(
        Invoice("i1", "c2", 160.0, "2024-01-12", status="paid", slot_id="w1", sdi_number="SDI0001"),
        Invoice("i2", "c1", 60.0, "2024-02-02"),
        Invoice("i3", "c1", 40.0, "2024-02-20", status="overdue", slot_id="w404"),
    )
    listing = generate_report("invoices", snapshot, FEBRUARY)
    assert [(r["Cliente"], r["Workshop"], r["Stato"]) for r in listing.rows] == [
        ("Mario Rossi", "Non assegnato", "Emessa"),
        ("Mario Rossi", "ID: w404", "Scaduta"),
    ]

    by_status = generate_report("invoices_by_status", snapshot)
    assert [(r["Stato"], r["Numero"], r["Importo"]) for r in by_status.rows] == [
        ("Emessa", 1, 60.0),
        ("Pagata", 1, 160.0),
        ("Scaduta", 1, 40.0),
    ]


def test_report_csv_export(snapshot):
    data = generate_report("revenue_by_method", snapshot).to_csv_bytes(sep=";")
    lines = data.decode("utf-8").splitlines()
    assert lines[0] == '"Metodo";"Importo"'
    assert lines[3] == '"Carta";"0.00"'
    assert lines[4] == '"Totale";"180.00"'


def test_dashboard_kpis(snapshot):
    kpis = dashboard_kpis(snapshot, today=date(2024, 2, 5))
    assert kpis.active_clients == 2
    assert kpis.workshop_slots == 2
    assert kpis.monthly_enrollments == 0
    assert kpis.monthly_income == 80.0
    assert kpis.unsettled_clients == 1
    assert kpis.expiring_enrollments == 1
    assert kpis.quote_conversion.rate == 0.75
    assert kpis.top_workshops == [("Robotica", 100.0), ("Pittura", 50.0)]
    assert kpis.top_clients == [("Mario Rossi", 100.0), ("Girasole Srl", 80.0)]


def test_top_rankings_keep_first_appearance_on_ties():
    slots = [WorkshopSlot(f"w{i}", f"Slot {i}", "v1", 0, "10:00", "11:00") for i in range(7)]
    payments = [Payment(f"p{i}", "c1", 10.0, "2024-01-01", "cash", slot_id=f"w{i}") for i in range(7)]
    payments.append(Payment("p9", "c1", 5.0, "2024-01-02", "cash", slot_id="w6"))
    kpis = dashboard_kpis(Snapshot.build(slots=slots, payments=payments), today=date(2024, 1, 5))
    assert [name for name, _ in kpis.top_workshops] == ["Slot 6", "Slot 0", "Slot 1", "Slot 2", "Slot 3"]
