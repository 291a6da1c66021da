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

"""Discount budget reservations and eligibility."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from django.core.exceptions import ObjectDoesNotExist
from django.db import transaction
from django.utils import timezone

from tripsettle.accounting.linking import get_group_resolution, get_group_size, get_pending_members
from tripsettle.accounting.trip import bump_content_version, lock_trip
from tripsettle.cache.config import get_trip_config
from tripsettle.models.accounting import DiscountReservation
from tripsettle.models.registration import Registration, RegistrationStatus, TripType
from tripsettle.models.trip import DiscountBudget, DiscountKind, Trip
from tripsettle.models.utils import clamp_money
from tripsettle.utils.core.exceptions import BudgetBelowUsageError, InvalidInputError

logger = logging.getLogger(__name__)


class ReservationStatus:
    RESERVED = "reserved"
    EXISTING = "existing"
    BUDGET_EXHAUSTED = "budget_exhausted"
    DISABLED = "disabled"
    LOCKED = "locked"
    NOT_ELIGIBLE = "not_eligible"


class EligibilityStatus:
    ELIGIBLE = "eligible"
    APPLIED = "applied"
    NOT_ELIGIBLE = "not_eligible"
    PENDING_MEMBERS = "pending_members"
    BUDGET_EXHAUSTED = "budget_exhausted"
    DISABLED = "disabled"
    LOCKED = "locked"


@dataclass
class ReservationResult:
    status: str
    kind: str
    amount: int = 0
    reservation: DiscountReservation | None = None

    @property
    def granted(self) -> bool:
        return self.status in (ReservationStatus.RESERVED, ReservationStatus.EXISTING)

    def as_dict(self) -> dict:
        return {"status": self.status, "kind": self.kind, "amount": self.amount, "granted": self.granted}


@dataclass
class Eligibility:
    kind: str
    eligible: bool
    amount: int
    status: str
    group_size: int | None = None
    threshold: int | None = None
    pending_members: list[str] | None = None

    def as_dict(self) -> dict:
        data = {"eligible": self.eligible, "amount": self.amount, "status": self.status}
        if self.group_size is not None:
            data["groupSize"] = self.group_size
            data["threshold"] = self.threshold
        if self.pending_members:
            data["pendingMembers"] = self.pending_members
        return data


def _check_kind(kind: str) -> None:
    if kind not in DiscountKind.values:
        raise InvalidInputError(f"Unknown discount kind: {kind}", field="discountType", value=kind)


def reserve_discount(registration: Registration, kind: str, count: int = 1) -> ReservationResult:
    """Atomically reserve discount units for a registration.

    Locks the registration, then the budget row of its trip, and grants the
    units only if both the count and the value caps stay satisfied. Calling
    it again for the same registration and kind returns the existing
    reservation without touching the budget.

    Args:
        registration: Registration receiving the discount
        kind: Discount kind to reserve
        count: Number of units, 1 per registration

    Returns:
        ReservationResult; business failures are reported in its status
    """
    _check_kind(kind)
    if count < 1:
        raise InvalidInputError("Reservation count must be positive", field="count", value=count)

    with transaction.atomic():
        locked_reg = Registration.objects.select_for_update().get(pk=registration.pk)

        active = locked_reg.discount_reservations.filter(released_at__isnull=True).first()
        if active:
            if active.kind == kind:
                return ReservationResult(ReservationStatus.EXISTING, kind, active.value, active)
            return ReservationResult(ReservationStatus.LOCKED, kind)
        if locked_reg.discount_locked and locked_reg.discount_type != kind:
            return ReservationResult(ReservationStatus.LOCKED, kind)

        try:
            budget = DiscountBudget.objects.select_for_update().get(trip_id=locked_reg.trip_id, kind=kind)
        except ObjectDoesNotExist:
            return ReservationResult(ReservationStatus.DISABLED, kind)

        if not budget.enabled or not budget.amount_per_unit:
            return ReservationResult(ReservationStatus.DISABLED, kind)

        if not budget.can_grant(count):
            logger.info("Discount budget %s exhausted for registration %s", budget.id, locked_reg.id)
            return ReservationResult(ReservationStatus.BUDGET_EXHAUSTED, kind)

        value = count * budget.amount_per_unit
        budget.used_count += count
        budget.used_value += value
        budget.save(update_fields=["used_count", "used_value", "updated"])

        reservation = DiscountReservation.objects.create(
            budget=budget, registration=locked_reg, kind=kind, count=count, value=value
        )

    logger.info("Reserved %s discount %s for registration %s", kind, value, registration.id)
    return ReservationResult(ReservationStatus.RESERVED, kind, value, reservation)


def release_discount(reservation: DiscountReservation) -> bool:
    """Give the units of a reservation back to its budget, exactly once.

    Returns:
        True if the reservation was released now, False if already released
    """
    with transaction.atomic():
        locked = DiscountReservation.objects.select_for_update().get(pk=reservation.pk)
        if locked.released_at:
            return False

        budget = DiscountBudget.objects.select_for_update().get(pk=locked.budget_id)
        budget.used_count = max(0, budget.used_count - locked.count)
        budget.used_value = max(0, budget.used_value - locked.value)
        budget.save(update_fields=["used_count", "used_value", "updated"])

        locked.released_at = timezone.now()
        locked.save(update_fields=["released_at", "updated"])

    reservation.released_at = locked.released_at
    logger.info("Released %s discount reservation %s", locked.kind, locked.id)
    return True


def count_completed_trips(registration: Registration) -> int:
    """Count confirmed trips of the member that ended before this trip starts."""
    trip = registration.trip
    reference_day = trip.start_date or timezone.localdate()
    return (
        Registration.objects.filter(
            member_id=registration.member_id,
            status=RegistrationStatus.CONFIRMED,
            cancelled_at__isnull=True,
            trip__end_date__lt=reference_day,
        )
        .exclude(trip_id=trip.id)
        .count()
    )


def _budget_status(budget: DiscountBudget | None) -> str | None:
    if budget is None or not budget.enabled or not budget.amount_per_unit:
        return EligibilityStatus.DISABLED
    if not budget.can_grant(1):
        return EligibilityStatus.BUDGET_EXHAUSTED
    return None


def check_eligibility(registration: Registration, kind: str, budget: DiscountBudget | None = None) -> Eligibility:
    """Compute whether a registration qualifies for a discount kind.

    Nothing is reserved here: group size can still change before payment.

    Args:
        registration: Registration to check
        kind: Discount kind
        budget: Budget row of the trip for kind, loaded when omitted

    Returns:
        Eligibility with the amount per unit and a status explaining the outcome
    """
    _check_kind(kind)

    if registration.discount_locked:
        if registration.discount_type == kind:
            return Eligibility(kind, True, registration.discount_applied, EligibilityStatus.APPLIED)
        return Eligibility(kind, False, 0, EligibilityStatus.LOCKED)

    if budget is None:
        budget = DiscountBudget.objects.filter(trip_id=registration.trip_id, kind=kind).first()
    amount = budget.amount_per_unit if budget and budget.enabled else 0

    if budget is None or not budget.enabled or not budget.amount_per_unit:
        return Eligibility(kind, False, 0, EligibilityStatus.DISABLED)

    if kind == DiscountKind.SOLO_FEMALE:
        if registration.trip_type != TripType.SOLO or not registration.member.is_female:
            return Eligibility(kind, False, amount, EligibilityStatus.NOT_ELIGIBLE)

    elif kind == DiscountKind.GROUP:
        threshold = get_trip_config(registration.trip_id, "group_discount_threshold", 4)
        if registration.trip_type != TripType.GROUP:
            return Eligibility(kind, False, amount, EligibilityStatus.NOT_ELIGIBLE, 1, threshold)
        resolution = get_group_resolution(registration)
        size = resolution.group_size
        if size < threshold:
            return Eligibility(kind, False, amount, EligibilityStatus.NOT_ELIGIBLE, size, threshold)
        conflicting = {conflict.email for conflict in resolution.conflicts}
        pending = get_pending_members(registration, [e for e in resolution.emails if e not in conflicting])
        if pending:
            return Eligibility(kind, False, amount, EligibilityStatus.PENDING_MEMBERS, size, threshold, pending)
        budget_status = _budget_status(budget)
        if budget_status:
            return Eligibility(kind, False, amount, budget_status, size, threshold)
        return Eligibility(kind, True, amount, EligibilityStatus.ELIGIBLE, size, threshold)

    elif kind == DiscountKind.MUSAFIR:
        min_trips = get_trip_config(registration.trip_id, "musafir_min_trips", 1)
        if count_completed_trips(registration) < min_trips:
            return Eligibility(kind, False, amount, EligibilityStatus.NOT_ELIGIBLE)

    budget_status = _budget_status(budget)
    if budget_status:
        return Eligibility(kind, False, amount, budget_status)
    return Eligibility(kind, True, amount, EligibilityStatus.ELIGIBLE)


def discount_eligibility(registration: Registration) -> dict:
    """Return the eligibility of a registration for every discount kind."""
    budgets = {budget.kind: budget for budget in DiscountBudget.objects.filter(trip_id=registration.trip_id)}
    return {kind: check_eligibility(registration, kind, budgets.get(kind)).as_dict() for kind in DiscountKind.values}


def group_discount_feedback(registration: Registration) -> dict:
    """Summarize the group discount outcome shown after registering."""
    eligibility = check_eligibility(registration, DiscountKind.GROUP)
    group_size = eligibility.group_size
    if group_size is None:
        group_size = get_group_size(registration)
    return {
        "status": eligibility.status,
        "perMember": eligibility.amount,
        "groupSize": group_size,
        "threshold": eligibility.threshold or get_trip_config(registration.trip_id, "group_discount_threshold", 4),
    }


def update_discount_budget(
    trip: Trip,
    kind: str,
    content_version: int,
    *,
    enabled: bool,
    amount_per_unit: int,
    total_count: int,
) -> DiscountBudget:
    """Edit the discount budget of a trip, never below what has been used.

    Args:
        trip: Trip owning the budget
        kind: Discount kind
        content_version: Trip version the editor read
        enabled: Whether the discount is offered
        amount_per_unit: Value of one discount
        total_count: Cap on the number of discounts

    Returns:
        The saved budget

    Raises:
        InvalidInputError: If an enabled entry has a non-positive amount or count
        BudgetBelowUsageError: If the new caps are below the used count or value
        VersionConflictError: If the trip changed since it was read
    """
    _check_kind(kind)
    amount_per_unit = clamp_money(amount_per_unit)
    total_count = clamp_money(total_count)
    if enabled and (amount_per_unit <= 0 or total_count <= 0):
        raise InvalidInputError("Amount and count must be positive when the discount is enabled", kind=kind)

    with transaction.atomic():
        locked_trip = lock_trip(trip.id, content_version)
        budget, _ = DiscountBudget.objects.select_for_update().get_or_create(trip=locked_trip, kind=kind)

        if total_count < budget.used_count or amount_per_unit * total_count < budget.used_value:
            raise BudgetBelowUsageError(kind=kind, usedCount=budget.used_count, usedValue=budget.used_value)

        budget.enabled = enabled
        budget.amount_per_unit = amount_per_unit
        budget.total_count = total_count
        budget.save()
        bump_content_version(locked_trip)

    logger.info("Discount budget %s of trip %s set to %s x %s", kind, trip.id, amount_per_unit, total_count)
    return budget
