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

"""Refund requests and their settlement into the member wallet."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime

from django.core.exceptions import ObjectDoesNotExist
from django.core.paginator import Paginator
from django.db import transaction
from django.utils import timezone

from tripsettle.accounting.registration import check_version
from tripsettle.accounting.wallet import MAX_PAGE_SIZE, credit_wallet
from tripsettle.cache.config import get_trip_config
from tripsettle.models.accounting import Payment, PaymentStatus
from tripsettle.models.member import Member
from tripsettle.models.refund import Refund, RefundGroup, RefundStatus, SettlementStatus
from tripsettle.models.registration import Registration, RegistrationStatus
from tripsettle.models.utils import clamp_money, get_sum
from tripsettle.models.wallet import TransactionType
from tripsettle.utils.core.exceptions import (
    InvalidInputError,
    InvalidTransitionError,
    RefundAlreadyRequestedError,
    RefundNotFoundError,
    RefundRequiresApprovedPaymentError,
    RefundRequiresCancellationError,
    RegistrationNotFoundError,
)

logger = logging.getLogger(__name__)

DEFAULT_REFUND_TIERS = [
    [15, 100, "15 or more days before departure"],
    [10, 50, "10 to 14 days before departure"],
    [5, 30, "5 to 9 days before departure"],
    [0, 0, "Less than 5 days before departure"],
]


@dataclass(frozen=True)
class RefundQuote:
    amount_paid: int
    refund_percent: int
    processing_fee: int
    refund_amount: int
    tier_label: str
    days_before: int | None = None

    def as_dict(self) -> dict:
        return {
            "amountPaid": self.amount_paid,
            "refundPercent": self.refund_percent,
            "processingFee": self.processing_fee,
            "refundAmount": self.refund_amount,
            "tierLabel": self.tier_label,
            "daysBefore": self.days_before,
        }


def get_amount_paid(registration: Registration) -> int:
    """Sum cash and wallet amounts of the approved payments of a registration."""
    approved = Payment.objects.filter(registration=registration, status=PaymentStatus.APPROVED)
    return get_sum(approved, "amount") + get_sum(approved, "wallet_amount")


def _select_tier(tiers: list, days_before: int | None) -> tuple[int, str]:
    ordered = sorted(tiers, key=lambda tier: tier[0], reverse=True)
    if days_before is None:
        return int(ordered[0][1]), str(ordered[0][2])
    for min_days, percent, label in ordered:
        if days_before >= min_days:
            return int(percent), str(label)
    return 0, "After departure"


def refund_quote(registration: Registration, now: datetime | date | None = None) -> RefundQuote:
    """Quote the refund due to a registration given how close departure is.

    Args:
        registration: Registration being refunded
        now: Reference instant, defaults to the current time

    Returns:
        RefundQuote with the paid amount, the tier percent and the net refund
    """
    trip = registration.trip
    amount_paid = get_amount_paid(registration)
    tiers = get_trip_config(trip, "refund_tiers", DEFAULT_REFUND_TIERS) or DEFAULT_REFUND_TIERS
    fee = clamp_money(get_trip_config(trip, "refund_processing_fee", 500))

    if now is None:
        today = timezone.localdate()
    elif isinstance(now, datetime):
        today = timezone.localdate(now) if timezone.is_aware(now) else now.date()
    else:
        today = now
    days_before = (trip.start_date - today).days if trip.start_date else None

    percent, label = _select_tier(tiers, days_before)
    refund_amount = 0
    if percent > 0:
        refund_amount = max(0, amount_paid * percent // 100 - fee)

    return RefundQuote(amount_paid, percent, fee, refund_amount, label, days_before)


def request_refund(
    registration_id: int,
    member: Member,
    bank_details: str = "",
    reason: str = "",
    feedback: str = "",
    rating: int | None = None,
    now: datetime | date | None = None,
) -> Refund:
    """Open a refund request for a cancelled, paid registration.

    The quote is computed now and stored on the request.

    Raises:
        RegistrationNotFoundError: If the registration does not exist for member
        RefundRequiresApprovedPaymentError: If it was never confirmed with an approved payment
        RefundRequiresCancellationError: If it is still active
        RefundAlreadyRequestedError: If an open or cleared refund exists
    """
    if rating not in (None, ""):
        try:
            rating = int(rating)
        except (TypeError, ValueError) as err:
            raise InvalidInputError("Rating must be between 1 and 5", field="rating", value=rating) from err
        if not 1 <= rating <= 5:
            raise InvalidInputError("Rating must be between 1 and 5", field="rating", value=rating)
    else:
        rating = None

    with transaction.atomic():
        try:
            registration = Registration.objects.select_for_update().select_related("trip").get(
                pk=registration_id, member=member
            )
        except (ObjectDoesNotExist, ValueError, TypeError) as err:
            raise RegistrationNotFoundError(registrationId=registration_id) from err

        approved = registration.payments.filter(status=PaymentStatus.APPROVED).exists()
        if registration.status != RegistrationStatus.CONFIRMED or not approved:
            raise RefundRequiresApprovedPaymentError(registrationId=registration.id)
        if not registration.is_cancelled:
            raise RefundRequiresCancellationError(registrationId=registration.id)
        if registration.refunds.filter(status__in=[RefundStatus.PENDING, RefundStatus.CLEARED]).exists():
            raise RefundAlreadyRequestedError(registrationId=registration.id)

        quote = refund_quote(registration, now)
        refund = Refund.objects.create(
            registration=registration,
            member=member,
            bank_details=bank_details or "",
            reason=reason or "",
            feedback=feedback or "",
            rating=rating,
            amount_paid=quote.amount_paid,
            refund_percent=quote.refund_percent,
            processing_fee=quote.processing_fee,
            refund_amount=quote.refund_amount,
            tier_label=quote.tier_label,
        )
        refund.settlement_key = f"refund:{refund.id}"
        refund.save(update_fields=["settlement_key", "updated"])

        registration.refund_status = RefundStatus.PENDING
        registration.save(update_fields=["refund_status", "updated"])

    logger.info("Refund %s requested for registration %s: %s", refund.id, registration.id, quote.refund_amount)
    return refund


def refund_state(refund: Refund) -> str:
    """Return the lifecycle state of a refund, splitting cleared by settlement."""
    if refund.status == RefundStatus.CLEARED:
        return "cleared-credited" if refund.settlement_status == SettlementStatus.POSTED else "cleared-uncredited"
    return refund.status


def _lock_refund(refund) -> tuple[Registration, Refund]:
    """Lock a refund and its registration, registration first."""
    refund_id = getattr(refund, "pk", refund)
    try:
        registration_id = Refund.objects.values_list("registration_id", flat=True).get(pk=refund_id)
    except (ObjectDoesNotExist, ValueError, TypeError) as err:
        raise RefundNotFoundError(refundId=refund_id) from err

    registration = Registration.objects.select_for_update().select_related("trip").get(pk=registration_id)
    locked = Refund.objects.select_for_update().select_related("member").get(pk=refund_id)
    return registration, locked


def _post_credit(registration: Registration, refund: Refund) -> None:
    if refund.refund_amount > 0:
        refund.wallet_transaction = credit_wallet(
            refund.member,
            refund.refund_amount,
            TransactionType.REFUND,
            idempotency_key=refund.settlement_key,
            description=f"Refund for {registration.trip}",
        )
    refund.settlement_status = SettlementStatus.POSTED
    refund.settled_at = timezone.now()


def _clear(refund: Refund, staff: Member | None) -> None:
    refund.status = RefundStatus.CLEARED
    refund.processed_at = timezone.now()
    refund.processed_by = staff


def _save(registration: Registration, refund: Refund) -> None:
    refund.bump_version()
    refund.save()
    registration.refund_status = refund.status
    registration.save(update_fields=["refund_status", "updated"])


def approve_refund_and_credit(refund, staff: Member | None, expected_version: int | None = None) -> Refund:
    """Approve a pending refund and credit the wallet in the same transaction.

    Raises:
        RefundNotFoundError: If the refund does not exist
        InvalidTransitionError: If the refund is not pending
        VersionConflictError: If expected_version is stale
    """
    with transaction.atomic():
        registration, locked = _lock_refund(refund)
        check_version(locked, expected_version)
        if locked.status != RefundStatus.PENDING:
            raise InvalidTransitionError(current=refund_state(locked), action="approve_and_credit")
        _clear(locked, staff)
        _post_credit(registration, locked)
        _save(registration, locked)

    logger.info("Refund %s approved and credited %s", locked.id, locked.refund_amount)
    return locked


def approve_refund_defer_credit(refund, staff: Member | None, expected_version: int | None = None) -> Refund:
    """Approve a pending refund, leaving the wallet credit to a later post.

    Raises:
        RefundNotFoundError: If the refund does not exist
        InvalidTransitionError: If the refund is not pending
    """
    with transaction.atomic():
        registration, locked = _lock_refund(refund)
        check_version(locked, expected_version)
        if locked.status != RefundStatus.PENDING:
            raise InvalidTransitionError(current=refund_state(locked), action="approve_defer_credit")
        _clear(locked, staff)
        _save(registration, locked)

    logger.info("Refund %s approved, credit deferred", locked.id)
    return locked


def post_refund_credit(refund, staff: Member | None = None, expected_version: int | None = None) -> Refund:
    """Post the wallet credit of an approved refund.

    Posting an already credited refund returns it unchanged.

    Raises:
        RefundNotFoundError: If the refund does not exist
        InvalidTransitionError: If the refund was not approved
    """
    with transaction.atomic():
        registration, locked = _lock_refund(refund)
        if locked.is_credited:
            return locked
        check_version(locked, expected_version)
        if locked.status != RefundStatus.CLEARED:
            raise InvalidTransitionError(current=refund_state(locked), action="post_credit")
        if staff is not None and locked.processed_by_id is None:
            locked.processed_by = staff
        _post_credit(registration, locked)
        _save(registration, locked)

    logger.info("Refund %s credited %s", locked.id, locked.refund_amount)
    return locked


def reject_refund(refund, staff: Member | None, reason: str = "", expected_version: int | None = None) -> Refund:
    """Reject a pending refund.

    Raises:
        RefundNotFoundError: If the refund does not exist
        InvalidTransitionError: If the refund is not pending
    """
    with transaction.atomic():
        registration, locked = _lock_refund(refund)
        check_version(locked, expected_version)
        if locked.status != RefundStatus.PENDING:
            raise InvalidTransitionError(current=refund_state(locked), action="reject")
        locked.status = RefundStatus.REJECTED
        locked.processed_at = timezone.now()
        locked.processed_by = staff
        locked.staff_note = reason or ""
        _save(registration, locked)

    logger.info("Refund %s rejected: %s", locked.id, reason)
    return locked


REFUND_GROUP_FILTERS = {
    RefundGroup.PENDING: {"status": RefundStatus.PENDING},
    RefundGroup.APPROVED_NOT_CREDITED: {"status": RefundStatus.CLEARED, "settlement_status": SettlementStatus.NONE},
    RefundGroup.CREDITED: {"status": RefundStatus.CLEARED, "settlement_status": SettlementStatus.POSTED},
    RefundGroup.REJECTED: {"status": RefundStatus.REJECTED},
}


def list_refunds(group: str | None = None, page: int = 1, limit: int = 20) -> dict:
    """List refunds for the admin queue, filtered by lifecycle group."""
    queryset = Refund.objects.select_related("registration", "member").order_by("-id")
    if group:
        if group not in REFUND_GROUP_FILTERS:
            raise InvalidInputError(f"Unknown refund group: {group}", field="group", value=group)
        queryset = queryset.filter(**REFUND_GROUP_FILTERS[group])

    paginator = Paginator(queryset, min(max(1, clamp_money(limit)), MAX_PAGE_SIZE))
    current = paginator.get_page(page)
    return {
        "items": [refund.as_snapshot() for refund in current.object_list],
        "page": current.number,
        "total": paginator.count,
        "hasNext": current.has_next(),
    }
