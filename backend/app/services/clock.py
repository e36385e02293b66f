"""
Single time source for the auth core.

Lock windows, token expiry and rate-limit windows all read the time from
here so tests can move it forward.
"""
from datetime import datetime


def utcnow() -> datetime:
    """Naive UTC timestamp, matching how the database stores datetimes."""
    return datetime.utcnow()
