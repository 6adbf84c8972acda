# utils/otp.py
import hmac
import secrets


def generate_otp(length: int = 4) -> str:
    """Fixed-width numeric code, e.g. '0427' for length=4."""
    return f"{secrets.randbelow(10 ** length):0{length}d}"


def otp_matches(stored: str | None, supplied) -> bool:
    # exact string match; ints from JSON bodies are not coerced ("0427" != 427)
    if not stored or not isinstance(supplied, str):
        return False
    return hmac.compare_digest(stored.encode("utf-8"), supplied.encode("utf-8"))
