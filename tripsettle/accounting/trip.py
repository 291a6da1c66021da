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

import logging

from django.core.exceptions import ObjectDoesNotExist
from django.db import transaction

from tripsettle.models.trip import AddonKind, Trip, TripAddon
from tripsettle.models.utils import clamp_money
from tripsettle.utils.core.exceptions import InvalidInputError, TripNotFoundError, VersionConflictError

logger = logging.getLogger(__name__)

TRIP_EDITABLE_FIELDS = {
    "name",
    "base_price",
    "early_bird_price",
    "early_bird_deadline",
    "start_date",
    "end_date",
    "total_seats",
}

TRIP_NON_NEGATIVE_FIELDS = {"base_price", "early_bird_price", "total_seats"}


def get_trip(trip_id: int) -> Trip:
    """Load a trip, raising TripNotFoundError when absent or deleted."""
    try:
        return Trip.objects.get(pk=trip_id)
    except (ObjectDoesNotExist, ValueError, TypeError) as err:
        raise TripNotFoundError(tripId=trip_id) from err


def lock_trip(trip_id: int, content_version: int | None) -> Trip:
    """Lock a trip row and check the content version the caller read.

    Must be called inside a transaction.

    Raises:
        TripNotFoundError: If the trip does not exist
        VersionConflictError: If content_version differs from the stored one
    """
    try:
        trip = Trip.objects.select_for_update().get(pk=trip_id)
    except ObjectDoesNotExist as err:
        raise TripNotFoundError(tripId=trip_id) from err

    if content_version is None or int(content_version) != trip.content_version:
        raise VersionConflictError(expected=content_version, current=trip.content_version)
    return trip


def bump_content_version(trip: Trip) -> None:
    trip.content_version += 1
    trip.save(update_fields=["content_version", "updated"])


def update_trip(trip: Trip, content_version: int, **fields) -> Trip:
    """Apply an edit to a trip guarded by optimistic concurrency.

    Args:
        trip: Trip being edited
        content_version: Version token the editor read the trip at
        **fields: Trip fields to update

    Returns:
        The updated trip, carrying the new content version

    Raises:
        InvalidInputError: If an unknown field is passed
        VersionConflictError: If another editor changed the trip meanwhile
    """
    unknown = set(fields) - TRIP_EDITABLE_FIELDS
    if unknown:
        raise InvalidInputError(f"Unknown trip fields: {', '.join(sorted(unknown))}", fields=sorted(unknown))

    with transaction.atomic():
        locked = lock_trip(trip.id, content_version)
        for name, value in fields.items():
            if name in TRIP_NON_NEGATIVE_FIELDS:
                value = clamp_money(value)
            setattr(locked, name, value)
        locked.content_version += 1
        locked.save()

    logger.info("Trip %s updated to version %s", locked.id, locked.content_version)
    return locked


def set_trip_addon(
    trip: Trip,
    content_version: int,
    kind: str,
    name: str,
    *,
    price: int = 0,
    enabled: bool = True,
    is_twin: bool = False,
) -> TripAddon:
    """Create or update an add-on option of a trip, advancing its content version."""
    if kind not in AddonKind.values:
        raise InvalidInputError(f"Unknown add-on kind: {kind}", kind=kind)
    if not name:
        raise InvalidInputError("Add-on name is required")

    with transaction.atomic():
        locked = lock_trip(trip.id, content_version)
        addon, _ = TripAddon.objects.update_or_create(
            trip=locked,
            kind=kind,
            name=name,
            defaults={"price": clamp_money(price), "enabled": enabled, "is_twin": is_twin},
        )
        bump_content_version(locked)

    return addon


def trip_snapshot(trip: Trip) -> dict:
    """Serialize a trip with its add-ons and discount budgets."""
    addons = {kind: [] for kind in AddonKind.values}
    for addon in trip.addons.order_by("id"):
        addons[addon.kind].append(
            {"name": addon.name, "price": addon.price, "enabled": addon.enabled, "isTwin": addon.is_twin}
        )

    return {
        "id": trip.id,
        "name": trip.name,
        "basePrice": trip.base_price,
        "earlyBirdPrice": trip.early_bird_price,
        "earlyBirdDeadline": trip.early_bird_deadline.isoformat() if trip.early_bird_deadline else None,
        "startDate": trip.start_date.isoformat() if trip.start_date else None,
        "endDate": trip.end_date.isoformat() if trip.end_date else None,
        "totalSeats": trip.total_seats,
        "contentVersion": trip.content_version,
        "locations": addons[AddonKind.LOCATION],
        "tiers": addons[AddonKind.TIER],
        "roomSharing": addons[AddonKind.ROOM_SHARING],
        "sleep": addons[AddonKind.SLEEP],
        "discounts": {budget.kind: budget.as_snapshot() for budget in trip.discount_budgets.order_by("id")},
    }
