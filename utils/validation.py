# utils/validation.py
from __future__ import annotations

import datetime as dt
import re
from typing import Any, Iterable

from flask import request

from services.errors import ValidationFailed

PHONE_RE = re.compile(r"[0-9]{10}")


class ErrorCollector:
    """
    Run several parsers and report every problem at once:

        check = ErrorCollector()
        seat  = check(parse_int, data.get("seatNumber"), "seatNumber", lo=1)
        phone = check(parse_phone, data.get("commuterPhone"))
        check.raise_if_any()
    """

    def __init__(self):
        self.details: list[str] = []

    def __call__(self, fn, *args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except ValidationFailed as e:
            self.details.extend(e.details or [e.message])
            return None

    def raise_if_any(self) -> None:
        if self.details:
            raise ValidationFailed(details=self.details)


def require_fields(data: dict, fields: Iterable[str]) -> None:
    missing = [k for k in fields if data.get(k) in (None, "")]
    if missing:
        raise ValidationFailed(details=[f"{k} is required" for k in missing])


def parse_date(value: Any, field: str) -> dt.date:
    if isinstance(value, dt.date) and not isinstance(value, dt.datetime):
        return value
    try:
        return dt.datetime.strptime(str(value), "%Y-%m-%d").date()
    except ValueError:
        raise ValidationFailed(details=[f"{field} must be YYYY-MM-DD"])


def parse_time(value: Any, field: str) -> dt.time:
    if isinstance(value, dt.time):
        return value
    for fmt in ("%H:%M", "%H:%M:%S"):
        try:
            return dt.datetime.strptime(str(value), fmt).time()
        except ValueError:
            pass
    raise ValidationFailed(details=[f"{field} must be HH:MM"])


def parse_int(value: Any, field: str, *, lo: int | None = None, hi: int | None = None) -> int:
    # bools are ints in Python; reject them along with floats like 2.5
    if isinstance(value, bool) or isinstance(value, float) and not value.is_integer():
        raise ValidationFailed(details=[f"{field} must be an integer"])
    try:
        n = int(value)
    except (TypeError, ValueError):
        raise ValidationFailed(details=[f"{field} must be an integer"])
    if lo is not None and n < lo:
        raise ValidationFailed(details=[f"{field} must be greater than or equal to {lo}"])
    if hi is not None and n > hi:
        raise ValidationFailed(details=[f"{field} must be less than or equal to {hi}"])
    return n


def parse_number(value: Any, field: str, *, lo: float | None = None, hi: float | None = None,
                 exclusive_lo: bool = False) -> float:
    if isinstance(value, bool):
        raise ValidationFailed(details=[f"{field} must be a number"])
    try:
        n = float(value)
    except (TypeError, ValueError):
        raise ValidationFailed(details=[f"{field} must be a number"])
    if lo is not None and (n <= lo if exclusive_lo else n < lo):
        raise ValidationFailed(details=[f"{field} is out of range"])
    if hi is not None and n > hi:
        raise ValidationFailed(details=[f"{field} is out of range"])
    return n


def parse_choice(value: Any, field: str, choices: Iterable[str]) -> str:
    choices = tuple(choices)
    if value not in choices:
        raise ValidationFailed(details=[f"{field} must be one of: {', '.join(choices)}"])
    return value


def parse_phone(value: Any, field: str = "commuterPhone") -> str:
    s = str(value or "").strip()
    if not PHONE_RE.fullmatch(s):
        raise ValidationFailed(details=[f"{field} must be a valid 10-digit number."])
    return s


def clean_str(value: Any, field: str, *, min_len: int = 1, max_len: int | None = None) -> str:
    s = str(value or "").strip()
    if len(s) < min_len:
        raise ValidationFailed(details=[f"{field} must be at least {min_len} characters"])
    if max_len is not None and len(s) > max_len:
        raise ValidationFailed(details=[f"{field} must be at most {max_len} characters"])
    return s


def json_body() -> dict:
    """Request JSON as a dict; a missing body is {}, any non-object body is rejected."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationFailed(details=["request body must be a JSON object"])
    return data
