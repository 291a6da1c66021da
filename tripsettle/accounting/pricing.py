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

"""Trip price quotes from the base price and add-on selections."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime

from django.utils import timezone

from tripsettle.models.registration import TripType
from tripsettle.models.trip import AddonKind, Trip
from tripsettle.models.utils import clamp_money
from tripsettle.utils.core.exceptions import InvalidSelectionError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AddonOption:
    name: str
    price: int = 0
    is_twin: bool = False


@dataclass(frozen=True)
class PricingTable:
    """Immutable snapshot of the price inputs of a trip."""

    base_price: int
    early_bird_price: int = 0
    early_bird_deadline: date | None = None
    locations: tuple[AddonOption, ...] = ()
    tiers: tuple[AddonOption, ...] = ()
    room_sharing: tuple[AddonOption, ...] = ()
    sleep: tuple[AddonOption, ...] = ()


@dataclass(frozen=True)
class Selections:
    trip_type: str = TripType.SOLO
    city: str = ""
    tier: str = ""
    room_sharing: str = ""
    sleep_preference: str = ""


@dataclass(frozen=True)
class Quote:
    base: int
    location: int = 0
    tier: int = 0
    room_sharing: int = 0
    sleep: int = 0
    early_bird_active: bool = False
    total: int = field(init=False)

    def __post_init__(self):
        object.__setattr__(self, "total", self.base + self.location + self.tier + self.room_sharing + self.sleep)

    def as_dict(self) -> dict:
        return {
            "base": self.base,
            "location": self.location,
            "tier": self.tier,
            "roomSharing": self.room_sharing,
            "sleep": self.sleep,
            "earlyBirdActive": self.early_bird_active,
            "total": self.total,
        }


def get_trip_pricing(trip: Trip) -> PricingTable:
    """Build the pricing snapshot of a trip from its enabled add-ons.

    Args:
        trip: Trip to snapshot

    Returns:
        PricingTable with add-on options grouped by kind
    """
    grouped = {kind: [] for kind in AddonKind.values}
    for addon in trip.addons.filter(enabled=True).order_by("id"):
        grouped[addon.kind].append(AddonOption(name=addon.name, price=addon.price, is_twin=addon.is_twin))

    return PricingTable(
        base_price=trip.base_price,
        early_bird_price=trip.early_bird_price,
        early_bird_deadline=trip.early_bird_deadline,
        locations=tuple(grouped[AddonKind.LOCATION]),
        tiers=tuple(grouped[AddonKind.TIER]),
        room_sharing=tuple(grouped[AddonKind.ROOM_SHARING]),
        sleep=tuple(grouped[AddonKind.SLEEP]),
    )


def _local_day(now: datetime | date | None) -> date:
    if now is None:
        return timezone.localdate()
    if isinstance(now, datetime):
        if timezone.is_naive(now):
            return now.date()
        return timezone.localdate(now)
    return now


def is_early_bird_active(pricing: PricingTable, now: datetime | date | None = None) -> bool:
    """Check whether the early bird price applies on the local day of now.

    The early bird price must be set, be lower than the base price, and the
    deadline day must not have passed yet (the deadline day itself counts).
    """
    base_price = clamp_money(pricing.base_price)
    early_price = clamp_money(pricing.early_bird_price)
    if not base_price or not early_price or early_price >= base_price:
        return False
    if not pricing.early_bird_deadline:
        return False
    return _local_day(now) <= pricing.early_bird_deadline


def _find_option(options: tuple[AddonOption, ...], field_name: str, value: str) -> AddonOption | None:
    if not value:
        return None
    for option in options:
        if option.name == value:
            return option
    raise InvalidSelectionError(field_name, value)


def quote(pricing: PricingTable, selections: Selections, now: datetime | date | None = None) -> Quote:
    """Compute the price of a set of registration selections.

    Pure: the only time dependency is the early bird deadline comparison, so
    passing the same now always produces the same quote.

    Args:
        pricing: Trip pricing snapshot
        selections: Registration choices
        now: Reference instant, defaults to the current time

    Returns:
        Quote with each component and the total

    Raises:
        InvalidSelectionError: If a selection is unknown or disabled
    """
    early_bird_active = is_early_bird_active(pricing, now)
    base = clamp_money(pricing.early_bird_price if early_bird_active else pricing.base_price)

    location = _find_option(pricing.locations, "city", selections.city)
    tier = _find_option(pricing.tiers, "tier", selections.tier)
    room = _find_option(pricing.room_sharing, "room_sharing", selections.room_sharing)
    sleep = _find_option(pricing.sleep, "sleep_preference", selections.sleep_preference)

    room_price = clamp_money(room.price) if room else 0
    # twin sharing is bundled in the partner price
    if room and room.is_twin and selections.trip_type == TripType.PARTNER:
        room_price = 0

    return Quote(
        base=base,
        location=clamp_money(location.price) if location else 0,
        tier=clamp_money(tier.price) if tier else 0,
        room_sharing=room_price,
        sleep=clamp_money(sleep.price) if sleep else 0,
        early_bird_active=early_bird_active,
    )


def quote_trip(trip: Trip, selections: Selections, now: datetime | date | None = None) -> Quote:
    """Quote selections against the current pricing of a trip."""
    result = quote(get_trip_pricing(trip), selections, now)
    logger.debug("Quoted trip %s: %s", trip.id, result.total)
    return result
