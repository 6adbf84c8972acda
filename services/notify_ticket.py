# services/notify_ticket.py
from __future__ import annotations
from flask import current_app
from models.ticket import Ticket


def _mask_phone(phone: str) -> str:
    return f"******{phone[-4:]}" if phone else ""


def dispatch_ticket_otp(ticket: Ticket) -> bool:
    """
    Hand the confirmation code of a freshly booked ticket to the SMS gateway.

    There is no gateway wired in; delivery is logged (without the code) so
    operators can see that a code was issued. Callers treat a False return or
    an exception as a warning only: the seat stays reserved either way.
    """
    if ticket.status != "pending" or not ticket.otp:
        current_app.logger.warning("[otp] ticket=%s has no pending code to send", ticket.id)
        return False

    current_app.logger.info(
        "[otp] code issued ticket=%s phone=%s trip=%s date=%s seat=%s",
        ticket.id,
        _mask_phone(ticket.commuter_phone),
        ticket.trip_id,
        ticket.travel_date.isoformat(),
        ticket.seat_number,
    )
    return True
