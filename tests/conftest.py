import pytest

from models import (
    Client,
    CompanyProfile,
    Dependent,
    Enrollment,
    Individual,
    InscriptionPlan,
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


@pytest.fixture
def snapshot() -> Snapshot:
    """
    Two venues, two slots, two plans, three families.
    - w1: max 5 participants in a venue for 2 -> effective capacity 2, one seat taken
    - c1 owes 60 + 110 and has paid 100
    """
    return Snapshot.build(
        clients=[
            Client("c1", Individual("Mario", "Rossi"), "mario@example.com", "333", status="active", rating=4),
            Client("c2", Organization("Girasole Srl", "0987"), "info@girasole.example", "06", status="active"),
            Client("c3", Individual("Anna", "Verdi"), "anna@example.com", "347", status="prospect"),
        ],
        dependents=[
            Dependent("d1", "c1", "Luca", "2016-05-20"),
            Dependent("d2", "c1", "Sofia", "2018-09-02"),
            Dependent("d3", "c2", "Giulia", "2015-01-31"),
            Dependent("d4", "c3", "Marco", "2017-03-14"),
        ],
        suppliers=[Supplier("s1", "Palestra Comunale")],
        venues=[
            Venue("v1", "Sala Piccola", capacity=2, supplier_id="s1"),
            Venue("v2", "Sala Grande", capacity=10),
        ],
        slots=[
            WorkshopSlot("w1", "Robotica", "v1", 0, "17:00", "18:30", max_participants=5),
            WorkshopSlot("w2", "Pittura", "v2", 2, "16:30", "18:00", max_participants=3),
        ],
        plans=[
            InscriptionPlan("p1", "Mensile", 60.0, duration_months=1, number_of_timeslots=4),
            InscriptionPlan("p2", "Open", 110.0),
        ],
        enrollments=[
            Enrollment("e1", "d1", "w1", "Mensile", "2024-01-10", expiration_date="2024-02-10"),
            Enrollment("e2", "d2", "w2", "Open", "2024-01-15"),
        ],
        payments=[
            Payment("pay1", "c1", 100.0, "2024-01-10", "cash", slot_id="w1"),
            Payment("pay2", "c2", 50.0, "2024-02-01", "transfer", slot_id="w2"),
            Payment("pay3", "c2", 30.0, "2024-02-03", "cash"),
        ],
        costs=[
            OperationalCost("k1", 20.0, "2024-01-05", "materiali", "Kit", supplier_id="s1", slot_id="w1"),
            OperationalCost("k2", 15.0, "2024-02-10", "trasporto", "Carburante", slot_id="w2"),
        ],
        quotes=[
            Quote("q1", 100.0, "2024-01-02", "approved", client_id="c1"),
            Quote("q2", 200.0, "2024-01-03", "approved", client_id="c2"),
            Quote("q3", 50.0, "2024-01-04", "approved", client_id="c2"),
            Quote("q4", 80.0, "2024-01-05", "rejected", client_id="c3"),
            Quote("q5", 90.0, "2024-02-05", "sent", client_id="c3"),
            Quote(
                "q6", 40.0, "2024-02-06", "sent",
                potential_client=PotentialClient(Individual("Paolo", "Neri"), "paolo@example.com"),
            ),
        ],
    )


@pytest.fixture
def profile() -> CompanyProfile:
    return CompanyProfile("Laboratori Creativi", "12345678901", "Via di Esempio 1", "info@example.com", "333 123 4567")
