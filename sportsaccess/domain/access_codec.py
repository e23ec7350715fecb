"""
Access token encoding for the card reader.

Token layout (text form):

    UAI|<subjectId>|<classId>|<startEpoch>|<endEpoch>|CS<checksum>

The checksum is the byte sum of everything before ``|CS`` modulo 256,
zero-padded to at least two digits. The hex form is the UTF-8 bytes of the
text form as lowercase hex pairs. The checksum only detects accidental
corruption; it does not protect against forgery.
"""

import binascii
import logging
from datetime import datetime
from typing import NoReturn

import pendulum

from .exceptions import ChecksumMismatch, InvalidField, MalformedToken
from .models import AccessToken, DecodedToken, Reservation

logger = logging.getLogger(__name__)

TOKEN_PREFIX = "UAI"
CHECKSUM_PREFIX = "CS"
SEPARATOR = "|"
FIELD_COUNT = 6


def to_epoch_seconds(instant: datetime) -> int:
    """Whole Unix seconds, dropping any sub-second component."""
    return pendulum.instance(instant).int_timestamp


def compute_checksum(field_string: str) -> int:
    return sum(field_string.encode("utf-8")) % 256


def _field_string(subject_id: str, class_id: str, start_epoch: int, end_epoch: int) -> str:
    return SEPARATOR.join([TOKEN_PREFIX, subject_id, class_id, str(start_epoch), str(end_epoch)])


def _validate_field(name: str, value: str) -> None:
    if not value:
        raise InvalidField(f"{name} must not be empty")
    if SEPARATOR in value:
        raise InvalidField(f"{name} must not contain '{SEPARATOR}': {value!r}")


def encode(subject_id: str, class_id: str, start: datetime, end: datetime) -> AccessToken:
    """
    Encode a reservation's fields into an access token.

    Pure function: identical inputs always produce an identical token.

    Raises:
        InvalidField: If an identifier is empty or contains a pipe
    """
    _validate_field("subject_id", subject_id)
    _validate_field("class_id", class_id)

    start_epoch = to_epoch_seconds(start)
    end_epoch = to_epoch_seconds(end)

    raw = _field_string(subject_id, class_id, start_epoch, end_epoch)
    checksum = compute_checksum(raw)
    text_form = f"{raw}{SEPARATOR}{CHECKSUM_PREFIX}{checksum:02d}"

    return AccessToken(
        subject_id=subject_id,
        class_id=class_id,
        start_epoch=start_epoch,
        end_epoch=end_epoch,
        checksum=checksum,
        text_form=text_form,
        hex_form=text_form.encode("utf-8").hex(),
    )


def encode_reservation(reservation: Reservation) -> AccessToken:
    return encode(reservation.subject_id, reservation.class_id, reservation.start, reservation.end)


def decode(text: str) -> DecodedToken:
    """
    Parse and validate the text form of a token.

    Structure is checked first (field count, checksum segment), then the
    checksum, then the field contents.

    Raises:
        MalformedToken: If the token does not have the expected shape
        ChecksumMismatch: If the embedded checksum disagrees with the fields
    """
    parts = text.split(SEPARATOR)
    if len(parts) != FIELD_COUNT:
        _reject(MalformedToken(f"Expected {FIELD_COUNT} fields, got {len(parts)}"), text)

    checksum_field = parts[-1]
    digits = checksum_field[len(CHECKSUM_PREFIX):]
    if not checksum_field.startswith(CHECKSUM_PREFIX) or not _is_number(digits) or digits != f"{int(digits):02d}":
        _reject(MalformedToken(f"Invalid checksum segment: {checksum_field!r}"), text)

    raw = SEPARATOR.join(parts[:-1])
    expected = compute_checksum(raw)
    if int(digits) != expected:
        _reject(ChecksumMismatch(f"Checksum {digits} does not match computed {expected:02d}"), text)

    prefix, subject_id, class_id, start_field, end_field = parts[:-1]
    if prefix != TOKEN_PREFIX:
        _reject(MalformedToken(f"Unknown token prefix: {prefix!r}"), text)
    if not subject_id or not class_id:
        _reject(MalformedToken("Token identifiers must not be empty"), text)
    if not _is_number(start_field.removeprefix("-")) or not _is_number(end_field.removeprefix("-")):
        _reject(MalformedToken(f"Non-numeric epoch in token: {start_field!r}, {end_field!r}"), text)

    return DecodedToken(subject_id, class_id, int(start_field), int(end_field))


def decode_hex(hex_form: str) -> DecodedToken:
    """Decode the hex form of a token."""
    try:
        text = binascii.unhexlify(hex_form.strip()).decode("utf-8")
    except (binascii.Error, ValueError) as exc:
        _reject(MalformedToken(f"Invalid hex token: {exc}"), hex_form)
    return decode(text)


def decode_any(value: str) -> DecodedToken:
    """Decode either form, as the reader accepts both."""
    value = value.strip()
    if value.startswith(TOKEN_PREFIX + SEPARATOR):
        return decode(value)
    return decode_hex(value)


def _is_number(value: str) -> bool:
    return value.isascii() and value.isdigit()


def _reject(error: Exception, token: str) -> NoReturn:
    # Decode failures are an audit trail for possible tampering.
    logger.warning("Rejected access token (%s): %s token=%r", type(error).__name__, error, token)
    raise error
