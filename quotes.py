"""
quotes.py
Resolve a Quote into everything a PDF renderer needs (recipient, stamp duty, total).
"""

from __future__ import annotations

from dataclasses import dataclass

from models import (
    MISSING_RECIPIENT,
    STAMP_DUTY_AMOUNT,
    STAMP_DUTY_THRESHOLD,
    UNKNOWN_CLIENT,
    UNKNOWN_QUOTE,
    Client,
    CompanyProfile,
    PotentialClient,
    Quote,
    Snapshot,
    ValidationFailure,
)
from utils import round_money


@dataclass(frozen=True)
class ResolvedQuote:
    quote: Quote
    recipient: Client | PotentialClient
    profile: CompanyProfile
    stamp_duty: float
    total: float

    @property
    def recipient_name(self) -> str:
        return self.recipient.display_name


def stamp_duty(amount: float) -> float:
    return STAMP_DUTY_AMOUNT if amount > STAMP_DUTY_THRESHOLD else 0.0


def resolve_quote(quote_id: str, snapshot: Snapshot, profile: CompanyProfile) -> ResolvedQuote | ValidationFailure:
    quote = snapshot.quotes.get(quote_id)
    if quote is None:
        return ValidationFailure(UNKNOWN_QUOTE, "Quote not found.", quote_id)

    recipient: Client | PotentialClient | None
    if quote.client_id:
        recipient = snapshot.clients.get(quote.client_id)
        if recipient is None:
            return ValidationFailure(UNKNOWN_CLIENT, "Quote references an unknown client.", quote.client_id)
    else:
        recipient = quote.potential_client
    if recipient is None:
        return ValidationFailure(MISSING_RECIPIENT, "Quote has no client.", quote_id)

    duty = stamp_duty(quote.amount)
    return ResolvedQuote(
        quote=quote,
        recipient=recipient,
        profile=profile,
        stamp_duty=duty,
        total=round_money(quote.amount + duty),
    )
