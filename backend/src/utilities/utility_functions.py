import logging
from datetime import datetime, timezone
from typing import Optional

from utilities.constants import LOG_FORMAT


def now_ts() -> datetime:
    return datetime.now(timezone.utc)


def configure_logging(debug: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format=LOG_FORMAT,
        force=True,
    )


def parse_session_cookie(value: Optional[str]) -> Optional[int]:
    """Return the session id carried by an ``idx`` cookie, or None when unusable."""
    # plain decimal digits only
    if not value or not (value.isascii() and value.isdigit()):
        return None
    idx = int(value)
    # ids are positive 63-bit integers
    if idx <= 0 or idx >= 1 << 63:
        return None
    return idx


def bearer_matches(authorization: Optional[str], token: str) -> bool:
    """Check an Authorization header against ``Bearer <token>``.

    The scheme is compared case-insensitively, the token exactly.
    """
    if not authorization:
        return False
    parts = authorization.split(" ", 1)
    if len(parts) != 2:
        return False
    scheme, credentials = parts
    return scheme.lower() == "bearer" and credentials == token
