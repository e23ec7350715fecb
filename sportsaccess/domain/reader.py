"""
Reader-side evaluation of access tokens.

Mirrors what the card reader does on its own: decode the token (text or
hex form), then test ``now`` against [start - grace, end + grace] with
inclusive bounds. The embedded epochs are only as trustworthy as the
checksum, which guards against corruption, not forgery.
"""

import logging
from datetime import datetime

import pendulum

from .access_codec import decode_any
from .exceptions import TokenError
from .models import AccessDecision
from .time_window import compute_access_window, is_within_window

logger = logging.getLogger(__name__)


def evaluate_token(value: str, now: datetime, grace_minutes: int) -> AccessDecision:
    """
    Decide whether a presented token grants access at ``now``.

    Unreadable tokens deny access; the decode failure is logged by the codec.
    """
    try:
        token = decode_any(value)
    except TokenError as exc:
        logger.info("Access denied for unreadable token: %s", exc.reason)
        return AccessDecision.DENIED

    start = pendulum.from_timestamp(token.start_epoch)
    end = pendulum.from_timestamp(token.end_epoch)
    window_start, window_end = compute_access_window(start, end, grace_minutes)

    if is_within_window(pendulum.instance(now), window_start, window_end):
        return AccessDecision.ALLOWED
    return AccessDecision.DENIED
