# utils/time_window.py
"""
Ticket-sale window for a trip on a given travel date.

All datetimes here are naive wall-clock times in the app timezone
(``APP_TIMEZONE``), matching how trip times of day are stored.
"""
from __future__ import annotations

import datetime as dt
from zoneinfo import ZoneInfo

from models.trip import WEEKDAYS


def local_now(tz_name: str) -> dt.datetime:
    return dt.datetime.now(ZoneInfo(tz_name)).replace(tzinfo=None)


def weekday_code(day: dt.date) -> str:
    return WEEKDAYS[day.weekday()]


def runs_on(trip, travel_date: dt.date) -> bool:
    return weekday_code(travel_date) in trip.active_day_list


def departure_at(trip, travel_date: dt.date) -> dt.datetime:
    return dt.datetime.combine(travel_date, trip.departure_time)


def sale_cutoff(trip, travel_date: dt.date, lead_minutes: int) -> dt.datetime:
    """
    Latest moment a seat on ``trip`` for ``travel_date`` may be sold or confirmed.

    An explicit ``ticket_sale_end_time`` later than the departure time of day
    belongs to the evening before (e.g. 23:30 for a 00:15 departure).
    """
    departure = departure_at(trip, travel_date)
    if trip.ticket_sale_end_time is None:
        return departure - dt.timedelta(minutes=lead_minutes)

    cutoff = dt.datetime.combine(travel_date, trip.ticket_sale_end_time)
    if cutoff > departure:
        cutoff -= dt.timedelta(days=1)
    return cutoff


def sale_open(trip, travel_date: dt.date, now: dt.datetime, lead_minutes: int) -> bool:
    return now < sale_cutoff(trip, travel_date, lead_minutes)


def is_expired(trip, travel_date: dt.date, now: dt.datetime, lead_minutes: int) -> bool:
    """A pending ticket expires once its travel date is past or the sale cutoff has passed."""
    if travel_date < now.date():
        return True
    return now >= sale_cutoff(trip, travel_date, lead_minutes)
