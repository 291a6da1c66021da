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

"""Payment submission and admin approval of wallet and cash payments."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from django.core.exceptions import ObjectDoesNotExist
from django.db import transaction
from django.utils import timezone

from tripsettle.accounting.discount import (
    ReservationResult,
    ReservationStatus,
    check_eligibility,
    release_discount,
    reserve_discount,
)
from tripsettle.accounting.registration import compute_amount_due, update_registration_accounting
from tripsettle.accounting.wallet import debit_wallet, void_transaction
from tripsettle.models.accounting import Payment, PaymentStatus
from tripsettle.models.member import Member
from tripsettle.models.registration import Registration, RegistrationStatus
from tripsettle.models.trip import DiscountKind
from tripsettle.models.utils import parse_money
from tripsettle.models.wallet import TransactionType
from tripsettle.utils.core.exceptions import (
    AmountExceedsDueError,
    EmptyPaymentError,
    InvalidInputError,
    InvalidTransitionError,
    PaymentAlreadyPendingError,
    PaymentNotFoundError,
    ProofRequiredError,
    RegistrationCancelledError,
    RegistrationNotFoundError,
    WalletUseConflictError,
)

logger = logging.getLogger(__name__)


@dataclass
class PaymentSubmission:
    payment: Payment
    registration: Registration
    discount: ReservationResult | None = None
    replayed: bool = False

    def as_dict(self) -> dict:
        return {
            "paymentId": self.payment.id,
            "status": self.payment.status,
            "pendingApproval": self.payment.status == PaymentStatus.PENDING,
            "amountDue": self.registration.amount_due,
            "discountType": self.registration.discount_type,
            "discountApplied": self.registration.discount_applied,
            "discount": self.discount.as_dict() if self.discount else None,
            "replayed": self.replayed,
        }


def _parse_amount(value, field_name: str) -> int:
    if value in (None, ""):
        return 0
    amount = parse_money(value)
    if amount is None:
        raise InvalidInputError(f"{field_name} must be an integer", field=field_name, value=value)
    if amount < 0:
        raise InvalidInputError(f"{field_name} cannot be negative", field=field_name, value=amount)
    return amount


def _apply_discount(registration: Registration, discount_kind: str) -> ReservationResult:
    """Reserve the selected discount and lock it on the registration when granted."""
    if registration.discount_locked:
        if registration.discount_type == discount_kind:
            return ReservationResult(ReservationStatus.EXISTING, discount_kind, registration.discount_applied)
        return ReservationResult(ReservationStatus.LOCKED, discount_kind)

    eligibility = check_eligibility(registration, discount_kind)
    if not eligibility.eligible:
        return ReservationResult(eligibility.status, discount_kind)

    result = reserve_discount(registration, discount_kind)
    if result.status == ReservationStatus.RESERVED:
        registration.discount_type = discount_kind
        registration.discount_applied = result.amount
    return result


def submit_payment(
    registration_id: int,
    member: Member,
    cash_amount,
    wallet_amount,
    discount_kind: str | None = None,
    proof: str = "",
    wallet_use_id: str | None = None,
) -> PaymentSubmission:
    """Record a payment made of wallet credit plus cash proven by a receipt.

    Discount reservation, wallet debit and payment creation share one
    transaction: a failure leaves no debit, no reservation and no payment.
    A repeated wallet_use_id returns the payment it already created.

    Args:
        registration_id: Registration being paid
        member: Paying member, owner of the registration
        cash_amount: Cash portion
        wallet_amount: Portion taken from the wallet
        discount_kind: Discount to lock in with this payment, if any
        proof: Reference of the transfer receipt, required when cash_amount > 0
        wallet_use_id: Caller idempotency key for safe retries

    Returns:
        PaymentSubmission; an unavailable discount is reported in its discount result

    Raises:
        ProofRequiredError: If cash is paid without proof
        RegistrationNotFoundError: If the registration does not exist for member
        RegistrationCancelledError: If the registration was cancelled
        PaymentAlreadyPendingError: If another payment awaits approval
        AmountExceedsDueError: If wallet plus cash exceeds the amount due
        InsufficientWalletBalanceError: If the wallet cannot cover wallet_amount
        EmptyPaymentError: If nothing is paid and no discount is locked in
        WalletUseConflictError: If wallet_use_id was already used on another registration
    """
    cash = _parse_amount(cash_amount, "amount")
    wallet = _parse_amount(wallet_amount, "walletAmount")
    if discount_kind and discount_kind not in DiscountKind.values:
        raise InvalidInputError(f"Unknown discount kind: {discount_kind}", field="discountType", value=discount_kind)
    if cash > 0 and not proof:
        raise ProofRequiredError()

    with transaction.atomic():
        try:
            registration = Registration.objects.select_for_update().select_related("trip", "member").get(
                pk=registration_id, member=member
            )
        except (ObjectDoesNotExist, ValueError, TypeError) as err:
            raise RegistrationNotFoundError(registrationId=registration_id) from err

        if wallet_use_id:
            replay = Payment.objects.filter(member=member, idempotency_key=wallet_use_id).first()
            if replay:
                if replay.registration_id != registration.id:
                    raise WalletUseConflictError(walletUseId=wallet_use_id, registrationId=replay.registration_id)
                logger.info("Payment %s replayed for wallet use %s", replay.id, wallet_use_id)
                return PaymentSubmission(replay, registration, replayed=True)

        if registration.is_cancelled:
            raise RegistrationCancelledError(registrationId=registration.id)
        if registration.payments.filter(status=PaymentStatus.PENDING).exists():
            raise PaymentAlreadyPendingError(registrationId=registration.id)

        discount_result = None
        reservation = None
        if discount_kind:
            discount_result = _apply_discount(registration, discount_kind)
            if discount_result.status == ReservationStatus.RESERVED:
                reservation = discount_result.reservation

        amount_due = compute_amount_due(registration)
        requested = cash + wallet
        if requested > amount_due:
            raise AmountExceedsDueError(amount_due=amount_due, requested=requested)
        if requested == 0 and reservation is None:
            raise EmptyPaymentError()

        wallet_tx = None
        if wallet > 0:
            wallet_tx = debit_wallet(
                member,
                wallet,
                TransactionType.PAYMENT,
                idempotency_key=f"payment:{member.id}:{wallet_use_id}" if wallet_use_id else None,
                description=f"Payment for {registration.trip}",
            )

        payment = Payment.objects.create(
            registration=registration,
            member=member,
            amount=cash,
            wallet_amount=wallet,
            discount=reservation.value if reservation else 0,
            discount_type=reservation.kind if reservation else None,
            proof=proof or "",
            idempotency_key=wallet_use_id or None,
            wallet_transaction=wallet_tx,
            reservation=reservation,
        )

        if registration.status in (RegistrationStatus.NEW, RegistrationStatus.ONBOARDING):
            registration.status = RegistrationStatus.PAYMENT
        registration.bump_version()
        registration.save()
        update_registration_accounting(registration)

    logger.info(
        "Payment %s submitted for registration %s: cash %s, wallet %s, discount %s",
        payment.id,
        registration.id,
        cash,
        wallet,
        payment.discount,
    )
    return PaymentSubmission(payment, registration, discount_result)


def _lock_payment(payment_id: int) -> tuple[Registration, Payment]:
    """Lock a payment and its registration, registration first."""
    try:
        registration_id = Payment.objects.values_list("registration_id", flat=True).get(pk=payment_id)
    except (ObjectDoesNotExist, ValueError, TypeError) as err:
        raise PaymentNotFoundError(paymentId=payment_id) from err

    registration = Registration.objects.select_for_update().get(pk=registration_id)
    payment = Payment.objects.select_for_update().get(pk=payment_id)
    return registration, payment


def approve_payment(payment_id: int, staff: Member | None) -> Payment:
    """Approve a pending payment and confirm the registration once fully paid.

    Approving an approved payment returns it unchanged.

    Raises:
        PaymentNotFoundError: If the payment does not exist
        InvalidTransitionError: If the payment was rejected
    """
    with transaction.atomic():
        registration, payment = _lock_payment(payment_id)
        if payment.status == PaymentStatus.APPROVED:
            return payment
        if payment.status != PaymentStatus.PENDING:
            raise InvalidTransitionError(current=payment.status, action="approve")

        payment.status = PaymentStatus.APPROVED
        payment.processed_at = timezone.now()
        payment.processed_by = staff
        payment.save()

        amount_due = update_registration_accounting(registration)
        pending = registration.payments.filter(status=PaymentStatus.PENDING).exists()
        if not registration.is_cancelled:
            if amount_due == 0 and not pending:
                registration.status = RegistrationStatus.CONFIRMED
            else:
                registration.status = RegistrationStatus.PAYMENT
        registration.bump_version()
        registration.save()

    logger.info("Payment %s approved, registration %s is %s", payment.id, registration.id, registration.status)
    return payment


def reject_payment(payment_id: int, staff: Member | None, reason: str = "") -> Payment:
    """Reject a pending payment, undoing its wallet debit and discount reservation.

    Rejecting a rejected payment returns it unchanged.

    Raises:
        PaymentNotFoundError: If the payment does not exist
        InvalidTransitionError: If the payment was approved
    """
    with transaction.atomic():
        registration, payment = _lock_payment(payment_id)
        if payment.status == PaymentStatus.REJECTED:
            return payment
        if payment.status != PaymentStatus.PENDING:
            raise InvalidTransitionError(current=payment.status, action="reject")

        payment.status = PaymentStatus.REJECTED
        payment.processed_at = timezone.now()
        payment.processed_by = staff
        payment.reason = reason or ""
        payment.save()

        if payment.reservation_id:
            carried = registration.payments.filter(
                status=PaymentStatus.APPROVED, reservation_id=payment.reservation_id
            ).exists()
            if not carried and release_discount(payment.reservation):
                registration.discount_type = None
                registration.discount_applied = 0

        if payment.wallet_transaction_id:
            void_transaction(payment.wallet_transaction)

        registration.bump_version()
        registration.save()
        update_registration_accounting(registration)

    logger.info("Payment %s rejected: %s", payment.id, reason)
    return payment


def list_payments(status: str | None = None):
    """Return payments newest first, optionally filtered by status."""
    queryset = Payment.objects.select_related("registration", "member").order_by("-id")
    if status:
        if status not in PaymentStatus.values:
            raise InvalidInputError(f"Unknown payment status: {status}", field="status", value=status)
        queryset = queryset.filter(status=status)
    return queryset
