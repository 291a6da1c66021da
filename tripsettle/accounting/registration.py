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

"""Registration accounting utilities for pricing and amount due."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from django.core.exceptions import ObjectDoesNotExist
from django.db import IntegrityError, transaction
from django.utils import timezone

from tripsettle.accounting.discount import group_discount_feedback, release_discount
from tripsettle.accounting.linking import LinkConflict, find_link_conflicts, resolve_group_links
from tripsettle.accounting.pricing import Quote, Selections, quote_trip
from tripsettle.accounting.trip import get_trip
from tripsettle.models.accounting import Payment, PaymentStatus
from tripsettle.models.member import Member
from tripsettle.models.registration import Registration, RegistrationStatus, TripType
from tripsettle.models.utils import get_sum
from tripsettle.utils.core.exceptions import (
    InvalidInputError,
    RegistrationCancelledError,
    RegistrationLockedError,
    RegistrationNotFoundError,
    VersionConflictError,
)

logger = logging.getLogger(__name__)


@dataclass
class RegistrationInput:
    member: Member
    trip_id: int
    trip_type: str = TripType.SOLO
    members: list[str] | str | None = None
    city: str = ""
    tier: str = ""
    room_sharing: str = ""
    sleep_preference: str = ""
    registration_id: int | None = None
    version: int | None = None

    @property
    def selections(self) -> Selections:
        return Selections(
            trip_type=self.trip_type,
            city=self.city or "",
            tier=self.tier or "",
            room_sharing=self.room_sharing or "",
            sleep_preference=self.sleep_preference or "",
        )


@dataclass
class RegistrationResult:
    registration: Registration
    price: int
    quote: Quote | None = None
    group_discount: dict = field(default_factory=dict)
    link_conflicts: list[LinkConflict] = field(default_factory=list)
    already_registered: bool = False
    payment_status: str | None = None

    def as_dict(self) -> dict:
        return {
            "registrationId": self.registration.id,
            "price": self.price,
            "quote": self.quote.as_dict() if self.quote else None,
            "linkConflicts": [conflict.as_dict() for conflict in self.link_conflicts],
            "groupDiscount": self.group_discount,
            "alreadyRegistered": self.already_registered,
            "paymentStatus": self.payment_status,
            "version": self.registration.version,
        }


def check_version(registration: Registration, expected_version: int | None) -> None:
    """Reject a mutation carrying a version other than the stored one."""
    if expected_version is None:
        return
    if int(expected_version) != registration.version:
        raise VersionConflictError(expected=expected_version, current=registration.version)


def get_active_registration(member: Member, trip_id: int) -> Registration | None:
    return Registration.objects.filter(member=member, trip_id=trip_id, cancelled_at__isnull=True).first()


def get_registration_payment_status(registration: Registration) -> str | None:
    """Return the status of the latest payment of a registration, None without payments."""
    latest = registration.payments.order_by("-id").first()
    return latest.status if latest else None


def get_settled_amount(registration: Registration) -> int:
    """Sum the cash and wallet amounts of the payments that are not rejected."""
    payments = Payment.objects.filter(registration=registration).exclude(status=PaymentStatus.REJECTED)
    return get_sum(payments, "amount") + get_sum(payments, "wallet_amount")


def compute_amount_due(registration: Registration) -> int:
    return max(0, registration.price - get_settled_amount(registration) - registration.discount_applied)


def update_registration_accounting(registration: Registration) -> int:
    """Recompute and store the amount still due on a registration.

    Args:
        registration: Registration to update

    Returns:
        The new amount due
    """
    amount_due = compute_amount_due(registration)
    if amount_due != registration.amount_due:
        registration.amount_due = amount_due
        registration.save(update_fields=["amount_due", "updated"])
        logger.debug("Registration %s amount due set to %s", registration.id, amount_due)
    return amount_due


def _build_result(
    registration: Registration,
    *,
    quote: Quote | None = None,
    conflicts: list[LinkConflict] | None = None,
    already_registered: bool = False,
) -> RegistrationResult:
    if conflicts is None:
        conflicts = find_link_conflicts(registration)
    return RegistrationResult(
        registration=registration,
        price=registration.price,
        quote=quote,
        group_discount=group_discount_feedback(registration),
        link_conflicts=conflicts,
        already_registered=already_registered,
        payment_status=get_registration_payment_status(registration),
    )


def create_or_update_registration(data: RegistrationInput) -> RegistrationResult:
    """Create a registration, or re-price and re-link an existing one.

    A member holds at most one active registration per trip: asking again
    returns the existing one flagged as already registered. Discount
    eligibility is reported but never reserved here.

    Args:
        data: Registration input; registration_id selects the update path

    Returns:
        RegistrationResult with price, link conflicts and group discount feedback

    Raises:
        TripNotFoundError: If the trip does not exist
        InvalidSelectionError: If a selection is not offered by the trip
    """
    if data.trip_type not in TripType.values:
        raise InvalidInputError(f"Unknown trip type: {data.trip_type}", field="tripType", value=data.trip_type)

    trip = get_trip(data.trip_id)
    selections = data.selections

    if data.registration_id:
        return _update_registration(trip.id, data, selections)

    existing = get_active_registration(data.member, trip.id)
    if existing:
        return _build_result(existing, already_registered=True)

    price = quote_trip(trip, selections)
    try:
        with transaction.atomic():
            registration = Registration.objects.create(
                trip=trip,
                member=data.member,
                trip_type=data.trip_type,
                city=selections.city,
                tier=selections.tier,
                room_sharing=selections.room_sharing,
                sleep_preference=selections.sleep_preference,
                price=price.total,
                amount_due=price.total,
                status=RegistrationStatus.NEW,
            )
            resolution = resolve_group_links(registration, data.members)
    except IntegrityError:
        # lost a race against a concurrent signup of the same member
        existing = get_active_registration(data.member, trip.id)
        if existing is None:
            raise
        return _build_result(existing, already_registered=True)

    logger.info("Registration %s created for member %s on trip %s", registration.id, data.member.id, trip.id)
    return _build_result(registration, quote=price, conflicts=resolution.conflicts)


def _update_registration(trip_id: int, data: RegistrationInput, selections: Selections) -> RegistrationResult:
    with transaction.atomic():
        try:
            registration = Registration.objects.select_for_update().get(
                pk=data.registration_id, member=data.member, trip_id=trip_id
            )
        except ObjectDoesNotExist as err:
            raise RegistrationNotFoundError(registrationId=data.registration_id) from err

        if registration.is_cancelled:
            raise RegistrationCancelledError(registrationId=registration.id)
        check_version(registration, data.version)
        if registration.payments.exclude(status=PaymentStatus.REJECTED).exists():
            raise RegistrationLockedError(registrationId=registration.id)

        price = quote_trip(registration.trip, selections)
        registration.trip_type = data.trip_type
        registration.city = selections.city
        registration.tier = selections.tier
        registration.room_sharing = selections.room_sharing
        registration.sleep_preference = selections.sleep_preference
        registration.price = price.total
        registration.bump_version()
        registration.save()

        resolution = resolve_group_links(registration, data.members)
        update_registration_accounting(registration)

    logger.info("Registration %s updated to version %s", registration.id, registration.version)
    return _build_result(registration, quote=price, conflicts=resolution.conflicts)


def get_registration(registration_id: int, member: Member | None = None) -> Registration:
    """Load a registration, optionally restricted to its owner."""
    filters = {"pk": registration_id}
    if member is not None:
        filters["member"] = member
    try:
        return Registration.objects.select_related("trip", "member").get(**filters)
    except (ObjectDoesNotExist, ValueError, TypeError) as err:
        raise RegistrationNotFoundError(registrationId=registration_id) from err


def cancel_registration(registration: Registration, expected_version: int | None = None) -> Registration:
    """Cancel a registration, giving back its discount if it was not confirmed.

    Cancelling twice is a no-op.

    Raises:
        VersionConflictError: If expected_version is stale
    """
    with transaction.atomic():
        locked = Registration.objects.select_for_update().get(pk=registration.pk)
        check_version(locked, expected_version)
        if locked.is_cancelled:
            return locked

        locked.cancelled_at = timezone.now()
        if locked.status != RegistrationStatus.CONFIRMED:
            released = False
            for reservation in locked.discount_reservations.filter(released_at__isnull=True):
                released = release_discount(reservation) or released
            if released:
                locked.discount_type = None
                locked.discount_applied = 0
        locked.bump_version()
        locked.save()
        update_registration_accounting(locked)

    logger.info("Registration %s cancelled", locked.id)
    return locked


def registration_snapshot(registration: Registration) -> dict:
    """Serialize a registration with its settlement state."""
    latest = registration.payments.order_by("-id").first()
    return {
        "id": registration.id,
        "trip": registration.trip_id,
        "member": registration.member_id,
        "tripType": registration.trip_type,
        "members": list(registration.links.order_by("id").values_list("email", flat=True)),
        "city": registration.city,
        "tier": registration.tier,
        "roomSharing": registration.room_sharing,
        "sleepPreference": registration.sleep_preference,
        "price": registration.price,
        "discountType": registration.discount_type,
        "discountApplied": registration.discount_applied,
        "amountDue": registration.amount_due,
        "status": registration.status,
        "cancelledAt": registration.cancelled_at.isoformat() if registration.cancelled_at else None,
        "refundStatus": registration.refund_status,
        "paymentId": {"id": latest.id, "status": latest.status} if latest else None,
        "version": registration.version,
    }
