"""
Check code generator for the vendor's serial bind call.

The vendor only binds a system serial to an API account when the request
also carries a check code derived from the serial itself. The code is
computed from fixed-width positional fields of the serial:

====================  ==========  ===========================================
Field                 Width       Position
====================  ==========  ===========================================
system code           2           ``sn[0:2]``
supplier code         3           ``sn[2:5]``
firmware version      2           ``sn[5:7]``
year                  2           ``sn[7:9]``
month                 1 or 2      ``sn[9:10]`` for 10-char serials, else
                                  ``sn[9:11]``
suffix                4           ``sn[-4:]`` (last 3 must be numeric)
====================  ==========  ===========================================

Two 32-bit digests are built from weighted character-code sums and the final
code concatenates hex sub-ranges of both.

This is a pure function: no I/O, no clock. Malformed serials yield ``""``,
which callers must treat as "checksum unavailable".

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)

MIN_SERIAL_LENGTH = 10

_FIRST_MULTIPLIER = 527
_YEAR_WEIGHT = 73
_SUFFIX_MULTIPLIER = 19581
_EPOCH_YEAR = 2016
_SECOND_MULTIPLIER = 17


def _first_digest(sys_code: str, sup_code: str, version: str, year: str, suffix: int) -> str:
    """Supplier/firmware digest, zero-padded 8-digit uppercase hex."""
    weighted = (
        ord(sys_code[0]) * 10
        + ord(sys_code[1])
        + ord(sup_code[0]) * 100
        + ord(sup_code[1])
        + ord(version[0]) * 10
        + ord(version[1])
        + ord(sup_code[2])
        + suffix
    )
    year_part = ord(year[0]) * 10 + ord(year[-1]) * _YEAR_WEIGHT
    # Decimal concatenation, not addition.
    combined = int(f"{weighted * _FIRST_MULTIPLIER}{year_part}")
    return f"{combined:08X}"


def _second_digest(year: str, month: str, num: str, suffix: int, version: str) -> str:
    """Date/suffix digest, zero-padded 8-digit uppercase hex."""
    date_part = ord(year[0]) * 10 + ord(year[-1]) + ord(month[0]) * 10 + ord(month[-1])
    value = (
        date_part * _FIRST_MULTIPLIER
        + (ord(num[0]) + suffix) * _SUFFIX_MULTIPLIER
        + ord(version[0]) * 10
        + ord(version[-1])
        + _EPOCH_YEAR
    ) * _SECOND_MULTIPLIER
    return f"{value & 0xFFFFFFFF:08X}"


def generate_check_code(serial: str | None) -> str:
    """Derive the vendor bind check code from a system serial number.

    Args:
        serial: Vendor system serial number (at least 10 characters).

    Returns:
        A 6-character uppercase hex check code, or ``""`` when the serial
        is missing, shorter than 10 characters, or its suffix is not numeric.
    """
    if not serial or len(serial) < MIN_SERIAL_LENGTH:
        return ""

    sys_code = serial[0:2]
    sup_code = serial[2:5]
    version = serial[5:7]
    year = serial[7:9]
    month = serial[9:10] if len(serial) == MIN_SERIAL_LENGTH else serial[9:11]
    num = serial[-4:]

    last3 = num[-3:]
    if not (last3.isascii() and last3.isdigit()):
        logger.debug("Serial '%s': non-numeric suffix, no check code", serial)
        return ""
    suffix = int(last3)

    first = _first_digest(sys_code, sup_code, version, year, suffix)
    second = _second_digest(year, month, num, suffix, version)

    return second[-2:] + first[5:7] + second[-4:-2]
