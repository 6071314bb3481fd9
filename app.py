"""
app.py
Streamlit viewer for workshop enrollments, balances and reports (read-only).
Run: streamlit run app.py
"""

from __future__ import annotations

import logging
import os
from datetime import date

import pandas as pd
import streamlit as st

import db
from billing import SORT_OPTIONS, client_balances, filter_balances
from enrollment import expiring_enrollments
from models import PAID_LABEL, UNPAID_LABEL, DateRange, ValidationFailure
from reports import REPORTS, dashboard_kpis, generate_report
from utils import format_age, format_eur

logging.basicConfig(
    level=os.environ.get("WORKSHOP_LOG_LEVEL", "INFO"),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

st.set_page_config(page_title="Workshop Manager", layout="wide")


def dashboard_page(snapshot):
    st.header("📊 Dashboard")

    kpis = dashboard_kpis(snapshot)
    c1, c2, c3, c4 = st.columns(4)
    c1.metric("Clienti attivi", kpis.active_clients)
    c2.metric("Workshop", kpis.workshop_slots)
    c3.metric("Iscritti del mese", kpis.monthly_enrollments)
    c4.metric("Incassi del mese", format_eur(kpis.monthly_income))

    c5, c6, c7 = st.columns(3)
    c5.metric("Clienti non in regola", kpis.unsettled_clients)
    c6.metric("Iscrizioni in scadenza (7 giorni)", kpis.expiring_enrollments)
    conv = kpis.quote_conversion
    c7.metric("Conversione preventivi", f"{conv.rate * 100:.0f}%", help=f"{conv.sent} in attesa")

    st.divider()

    left, right = st.columns(2)
    with left:
        st.subheader("Top workshop per incassi")
        st.dataframe(pd.DataFrame(kpis.top_workshops, columns=["Workshop", "Importo"]), hide_index=True)
    with right:
        st.subheader("Top clienti per pagamenti")
        st.dataframe(pd.DataFrame(kpis.top_clients, columns=["Cliente", "Importo"]), hide_index=True)


def balances_page(snapshot):
    st.header("💳 Situazione pagamenti")

    c1, c2, c3 = st.columns(3)
    with c1:
        query = st.text_input("Cerca per nome o cognome")
        status = st.selectbox("Stato cliente", ["", "active", "suspended", "prospect", "terminated"])
    with c2:
        min_rating = st.slider("Valutazione minima", 0, 5, 0)
        payment_status = st.selectbox("Stato pagamento", ["", PAID_LABEL, UNPAID_LABEL])
    with c3:
        sort_by = st.selectbox("Ordina per", ["", *SORT_OPTIONS])

    balances = filter_balances(
        client_balances(snapshot),
        snapshot,
        query=query,
        status=status or None,
        min_rating=min_rating,
        payment_status=payment_status or None,
        sort_by=sort_by or None,
    )
    rows = []
    for b in balances:
        client = snapshot.clients[b.client_id]
        children = ", ".join(
            f"{d.name} ({format_age(d.birth_date)})" for d in snapshot.dependents_of(b.client_id)
        )
        rows.append({
            "Cliente": client.display_name,
            "Stato cliente": client.status,
            "Valutazione": "★" * (client.rating or 0),
            "Figli": children,
            "Dovuto": format_eur(b.due),
            "Pagato": format_eur(b.paid),
            "Residuo": format_eur(b.outstanding),
            "Stato": b.payment_status,
        })
    if rows:
        st.dataframe(pd.DataFrame(rows), use_container_width=True, hide_index=True)
    else:
        st.caption("Nessun cliente da mostrare.")


def reminders_page(snapshot):
    st.header("⏰ Iscrizioni in scadenza (prossimi 7 giorni)")

    rows = []
    for e in expiring_enrollments(snapshot):
        dependent = snapshot.dependents.get(e.dependent_id)
        slot = snapshot.slots.get(e.slot_id)
        rows.append({
            "Bambino": dependent.name if dependent else e.dependent_id,
            "Workshop": slot.name if slot else e.slot_id,
            "Piano": e.plan_name,
            "Scadenza": e.expiration_date,
        })
    if rows:
        st.dataframe(pd.DataFrame(rows), use_container_width=True, hide_index=True)
    else:
        st.caption("Nessuna iscrizione in scadenza.")


def reports_page(snapshot):
    st.header("🧾 Report")

    labels = {title: key for key, (title, _, _) in REPORTS.items()}
    report_type = labels[st.selectbox("Tipo di report", list(labels))]

    c1, c2 = st.columns(2)
    with c1:
        start = st.date_input("Data inizio", value=None)
    with c2:
        end = st.date_input("Data fine", value=None)
    rng = None
    if start or end:
        rng = DateRange(start.isoformat() if start else None, end.isoformat() if end else None)

    result = generate_report(report_type, snapshot, rng)
    if isinstance(result, ValidationFailure):
        st.error(result.message)
        return

    st.subheader(result.title)
    if result.rows:
        st.dataframe(result.to_display_frame(), use_container_width=True, hide_index=True)
    else:
        st.caption("Nessun dato per il periodo selezionato.")
    st.download_button(
        f"Scarica {report_type}_report.csv",
        data=result.to_csv_bytes(),
        file_name=f"{report_type}_report.csv",
        mime="text/csv",
    )


def settings_page():
    st.header("⚙️ Impostazioni")

    st.caption(f"Database: {db.DB_FILE}")
    st.subheader("Dati di esempio")
    st.caption("Inserisce due famiglie, una sede, due workshop, piani e pagamenti di prova.")
    if st.button("Inserisci dati di esempio"):
        db.insert_sample_data()
        st.success("Dati di esempio inseriti.")
        st.rerun()


def main_app():
    st.sidebar.title("🎨 Workshop Manager")

    snapshot = db.load_snapshot()
    counts = snapshot.counts()
    st.sidebar.caption(
        f"{counts['clients']} clienti, {counts['slots']} workshop, {counts['payments']} pagamenti"
    )

    pages = ["Dashboard", "Pagamenti", "Scadenze", "Report", "Impostazioni"]
    if "page" not in st.session_state:
        st.session_state.page = "Dashboard"
    st.session_state.page = st.sidebar.radio("Naviga", pages, index=pages.index(st.session_state.page))

    if st.session_state.page == "Dashboard":
        dashboard_page(snapshot)
    elif st.session_state.page == "Pagamenti":
        balances_page(snapshot)
    elif st.session_state.page == "Scadenze":
        reminders_page(snapshot)
    elif st.session_state.page == "Report":
        reports_page(snapshot)
    elif st.session_state.page == "Impostazioni":
        settings_page()


# --------- App entry ---------

def run():
    db.init_db()
    logger.info("Using database %s (today is %s)", db.DB_FILE, date.today().isoformat())
    main_app()


if __name__ == "__main__":
    run()
