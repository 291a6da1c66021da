# TripSettle - trip booking settlement engine
# Copyright (C) 2025 TripSettle contributors
#
# This file is part of TripSettle and is dual-licensed:
#
# 1. Under the terms of the GNU Affero General Public License (AGPL) version 3,
#    as published by the Free Software Foundation. You may use, modify, and
#    distribute this file under those terms.
#
# 2. Under a commercial license, allowing use in closed-source or proprietary
#    environments without the obligations of the AGPL.
#
# If you have obtained this file under the AGPL, and you make it available over
# a network, you must also make the complete source code available under the same license.
#
# For more information or to purchase a commercial license, contact the
# TripSettle maintainers listed in pyproject.toml.
#
# SPDX-License-Identifier: AGPL-3.0-or-later OR Proprietary
from __future__ import annotations

import base64
import logging
import re
from typing import TYPE_CHECKING

from django.db.models import Sum

if TYPE_CHECKING:
    from django.db.models import QuerySet

logger = logging.getLogger(__name__)


def get_sum(queryset: QuerySet, field: str = "amount") -> int:
    """Sum a money field from a queryset, returning 0 if empty or None."""
    key = f"{field}__sum"
    aggregation_result = queryset.aggregate(Sum(field))
    # Return 0 if result is None, missing key, or has None value
    if not aggregation_result or key not in aggregation_result or not aggregation_result[key]:
        return 0
    return aggregation_result[key]


def encode_cursor(pk: int) -> str:
    """Encode a primary key as an opaque pagination cursor."""
    return base64.urlsafe_b64encode(f"pk:{pk}".encode()).decode().rstrip("=")


def decode_cursor(cursor: str | None) -> int | None:
    """Decode a pagination cursor, returning None when absent or malformed."""
    if not cursor:
        return None
    padded = cursor + "=" * (-len(cursor) % 4)
    try:
        decoded = base64.urlsafe_b64decode(padded.encode()).decode()
    except (ValueError, UnicodeDecodeError):
        logger.debug("Malformed cursor: %s", cursor)
        return None
    prefix, _, raw_pk = decoded.partition(":")
    if prefix != "pk" or not raw_pk.isdigit():
        return None
    return int(raw_pk)


MONEY_PATTERN = re.compile(r"-?[0-9]+")


def parse_money(value) -> int | None:
    """Parse an integer amount of minor units, returning None for anything else.

    Accepts ints and strings of digits; floats, booleans and fractional strings are refused.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and MONEY_PATTERN.fullmatch(value.strip()):
        return int(value.strip())
    return None


def clamp_money(value) -> int:
    """Coerce a money value to a non-negative integer of minor units."""
    try:
        amount = int(value or 0)
    except (TypeError, ValueError):
        return 0
    return max(0, amount)
