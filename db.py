"""
db.py
SQLite-backed record store for the application around the core.
Each collection maps id -> JSON record; load_snapshot() reads everything at once.
"""

from __future__ import annotations

import json
import logging
import os
import sqlite3
from contextlib import contextmanager
from dataclasses import asdict
from datetime import date, timedelta
from pathlib import Path

from enrollment import propose_enrollment
from models import (
    COLLECTION_OF,
    COLLECTIONS,
    RECORD_TYPES,
    CascadePlan,
    Client,
    Dependent,
    Enrollment,
    InscriptionPlan,
    Individual,
    Invoice,
    OperationalCost,
    Organization,
    Payment,
    PotentialClient,
    Quote,
    Snapshot,
    Supplier,
    Venue,
    WorkshopSlot,
)
from utils import fuel_cost

logger = logging.getLogger(__name__)

DB_FILE = Path(os.environ.get("WORKSHOP_DB_FILE", Path(__file__).with_name("workshops.db")))


@contextmanager
def get_conn():
    conn = sqlite3.connect(DB_FILE, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    try:
        yield conn
        conn.commit()
    finally:
        conn.close()


def execute(sql: str, params: tuple = ()) -> int:
    with get_conn() as conn:
        cur = conn.execute(sql, params)
        return cur.lastrowid


def fetch_all(sql: str, params: tuple = ()) -> list[sqlite3.Row]:
    with get_conn() as conn:
        cur = conn.execute(sql, params)
        return cur.fetchall()


def init_db() -> None:
    execute(
        """
        CREATE TABLE IF NOT EXISTS records (
            collection TEXT NOT NULL,
            id TEXT NOT NULL,
            data TEXT NOT NULL,
            PRIMARY KEY (collection, id)
        )
        """
    )


# ---------- Record <-> JSON ----------

def _encode_identity(identity) -> dict:
    data = asdict(identity)
    data["kind"] = "organization" if isinstance(identity, Organization) else "individual"
    return data


def _decode_identity(data: dict):
    data = dict(data)
    if data.pop("kind", "individual") == "organization":
        return Organization(**data)
    return Individual(**data)


def encode(record) -> str:
    data = asdict(record)
    if isinstance(record, Client):
        data["identity"] = _encode_identity(record.identity)
    elif isinstance(record, Quote) and record.potential_client is not None:
        data["potential_client"]["identity"] = _encode_identity(record.potential_client.identity)
    return json.dumps(data)


def decode(collection: str, raw: str):
    data = json.loads(raw)
    if collection == "clients":
        data["identity"] = _decode_identity(data["identity"])
    elif collection == "quotes" and data.get("potential_client"):
        pc = dict(data["potential_client"])
        pc["identity"] = _decode_identity(pc["identity"])
        data["potential_client"] = PotentialClient(**pc)
    return RECORD_TYPES[collection](**data)


# ---------- Store operations ----------

def _upsert(conn: sqlite3.Connection, record) -> None:
    conn.execute(
        """
        INSERT INTO records(collection, id, data) VALUES(?, ?, ?)
        ON CONFLICT(collection, id) DO UPDATE SET data=excluded.data
        """,
        (COLLECTION_OF[type(record)], record.id, encode(record)),
    )


def save(record) -> None:
    """Insert or replace one record returned by the core."""
    with get_conn() as conn:
        _upsert(conn, record)


def save_many(records) -> None:
    with get_conn() as conn:
        for record in records:
            _upsert(conn, record)


def apply_cascade(plan: CascadePlan) -> None:
    """Delete every planned record, children before parents, in one transaction."""
    if plan.is_empty:
        return
    steps = (
        ("enrollments", plan.enrollment_ids),
        ("dependents", plan.dependent_ids),
        ("clients", plan.client_ids),
        ("venues", plan.venue_ids),
        ("suppliers", plan.supplier_ids),
    )
    with get_conn() as conn:
        for collection, ids in steps:
            conn.executemany(
                "DELETE FROM records WHERE collection = ? AND id = ?",
                [(collection, i) for i in ids],
            )
    logger.info(
        "Cascade applied: %d clients, %d dependents, %d enrollments, %d suppliers, %d venues",
        len(plan.client_ids),
        len(plan.dependent_ids),
        len(plan.enrollment_ids),
        len(plan.supplier_ids),
        len(plan.venue_ids),
    )


def load_snapshot() -> Snapshot:
    rows = fetch_all("SELECT collection, id, data FROM records ORDER BY rowid")
    grouped: dict[str, list] = {name: [] for name in COLLECTIONS}
    for r in rows:
        if r["collection"] not in grouped:
            logger.warning("Skipping record %s in unknown collection '%s'", r["id"], r["collection"])
            continue
        grouped[r["collection"]].append(decode(r["collection"], r["data"]))
    return Snapshot.build(**grouped)


def insert_sample_data() -> None:
    """
    Insert two families, one venue with two slots, plans and a few payments/costs/quotes
    (safe to run multiple times: records are upserted by id).
    """
    today = date.today()
    supplier = Supplier("s1", "Palestra Comunale", vat_number="01234567890")
    venue = Venue("v1", "Sala Grande", capacity=12, address="Via Roma 1", supplier_id="s1")
    slots = [
        WorkshopSlot("w1", "Robotica - Lunedì 17:00", "v1", 0, "17:00", "18:30", max_participants=8),
        WorkshopSlot("w2", "Pittura - Mercoledì 16:30", "v1", 2, "16:30", "18:00"),
    ]
    plans = [
        InscriptionPlan("p1", "Mensile", 60.0, duration_months=1, number_of_timeslots=4),
        InscriptionPlan("p2", "Trimestrale", 160.0, duration_months=3, number_of_timeslots=12),
        InscriptionPlan("p3", "Open", 110.0),
    ]
    clients = [
        Client("c1", Individual("Mario", "Rossi", "RSSMRA80A01H501U"), "mario@example.com", "3331112222", status="active", rating=5),
        Client("c2", Organization("Associazione Girasole", "09876543210"), "info@girasole.example", "0612345678", status="active"),
    ]
    dependents = [
        Dependent("d1", "c1", "Luca", (today - timedelta(days=8 * 365)).isoformat()),
        Dependent("d2", "c1", "Sofia", (today - timedelta(days=6 * 365)).isoformat()),
        Dependent("d3", "c2", "Giulia", (today - timedelta(days=10 * 365)).isoformat()),
    ]
    save_many([supplier, venue, *slots, *plans, *clients, *dependents])

    for enrollment_id, dependent_id, slot_id, plan_id in (
        ("e1", "d1", "w1", "p1"),
        ("e2", "d2", "w2", "p3"),
        ("e3", "d3", "w1", "p2"),
    ):
        result = propose_enrollment(dependent_id, slot_id, plan_id, load_snapshot(), enrollment_id=enrollment_id)
        if isinstance(result, Enrollment):
            save(result)
        else:
            logger.info("Sample enrollment %s skipped: %s", enrollment_id, result.message)

    save_many([
        Payment("pay1", "c1", 100.0, today.isoformat(), "cash", slot_id="w1", description="Acconto"),
        Payment("pay2", "c2", 160.0, today.isoformat(), "transfer", slot_id="w1", description="Trimestre"),
        OperationalCost("k1", 45.0, today.isoformat(), "materiali", "Kit robotica", supplier_id="s1", slot_id="w1"),
        OperationalCost(
            "k2", fuel_cost(12.5, 0.3), today.isoformat(), "trasporto", "Carburante",
            cost_type="fuel", venue_id="v1", distance_km=12.5, fuel_cost_per_km=0.3,
        ),
        Quote("q1", 350.0, today.isoformat(), "sent", "Laboratorio estivo", client_id="c2"),
        Quote(
            "q2", 70.0, today.isoformat(), "approved", "Festa di compleanno",
            potential_client=PotentialClient(Individual("Anna", "Bianchi"), "anna@example.com"),
        ),
        Invoice("i1", "c2", 160.0, today.isoformat(), status="paid", slot_id="w1", sdi_number="SDI0001", method="transfer"),
    ])
