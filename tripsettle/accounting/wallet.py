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

"""Wallet ledger and top-up requests."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from django.core.exceptions import ObjectDoesNotExist
from django.core.paginator import Paginator
from django.db import transaction
from django.utils import timezone

from tripsettle.cache.config import get_trip_config
from tripsettle.models.member import Member
from tripsettle.models.utils import clamp_money, decode_cursor, encode_cursor, get_sum, parse_money
from tripsettle.models.wallet import (
    TopupRequest,
    TopupStatus,
    TransactionDirection,
    TransactionStatus,
    TransactionType,
    Wallet,
    WalletTransaction,
)
from tripsettle.utils.core.exceptions import (
    InsufficientWalletBalanceError,
    InvalidInputError,
    InvalidTopupPackageError,
    InvalidTransitionError,
    TopupNotFoundError,
)

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


@dataclass
class TransactionPage:
    items: list[WalletTransaction] = field(default_factory=list)
    next_cursor: str | None = None

    def as_dict(self) -> dict:
        return {"items": [tx.as_snapshot() for tx in self.items], "nextCursor": self.next_cursor}


def _pk(obj) -> int:
    return getattr(obj, "pk", obj)


def _positive_amount(amount) -> int:
    value = parse_money(amount)
    if value is None:
        raise InvalidInputError("Amount must be an integer", field="amount", value=amount)
    if value <= 0:
        raise InvalidInputError("Amount must be greater than zero", field="amount", value=value)
    return value


def lock_wallet(member: Member) -> Wallet:
    """Lock the wallet row of a member, creating it when missing.

    Must be called inside a transaction.
    """
    wallet, _ = Wallet.objects.select_for_update().get_or_create(member=member)
    return wallet


def get_wallet_balance(member: Member) -> int:
    """Compute the balance from the posted credits and debits of a member.

    Args:
        member: Wallet owner

    Returns:
        Sum of posted credits minus sum of posted debits
    """
    posted = WalletTransaction.objects.filter(member=member, status=TransactionStatus.POSTED)
    credits = get_sum(posted.filter(direction=TransactionDirection.CREDIT))
    debits = get_sum(posted.filter(direction=TransactionDirection.DEBIT))
    return credits - debits


def _existing_transaction(idempotency_key: str | None) -> WalletTransaction | None:
    if not idempotency_key:
        return None
    return WalletTransaction.objects.filter(idempotency_key=idempotency_key).first()


def credit_wallet(
    member: Member,
    amount: int,
    tx_type: str,
    *,
    idempotency_key: str | None = None,
    description: str = "",
    expires_at: datetime | None = None,
) -> WalletTransaction:
    """Add a posted credit to the wallet of a member.

    Credits expire after the configured validity unless expires_at is given.
    A repeated idempotency key returns the transaction already recorded.

    Args:
        member: Wallet owner
        amount: Positive amount to credit
        tx_type: Origin tag of the credit
        idempotency_key: Caller key guarding against double credits
        description: Free text shown in the transaction list
        expires_at: Explicit expiry, overriding the configured validity

    Returns:
        The posted credit transaction
    """
    amount = _positive_amount(amount)

    with transaction.atomic():
        wallet = lock_wallet(member)
        existing = _existing_transaction(idempotency_key)
        if existing:
            logger.debug("Wallet credit %s already recorded as %s", idempotency_key, existing.id)
            return existing

        if expires_at is None:
            validity_days = get_trip_config(None, "wallet_credit_validity_days", 365)
            if validity_days:
                expires_at = timezone.now() + timedelta(days=validity_days)

        wallet_tx = WalletTransaction.objects.create(
            wallet=wallet,
            member=member,
            direction=TransactionDirection.CREDIT,
            amount=amount,
            type=tx_type,
            idempotency_key=idempotency_key,
            description=description,
            expires_at=expires_at,
        )

    logger.info("Wallet of member %s credited %s (%s)", member.id, amount, tx_type)
    return wallet_tx


def debit_wallet(
    member: Member,
    amount: int,
    tx_type: str,
    *,
    idempotency_key: str | None = None,
    description: str = "",
) -> WalletTransaction:
    """Take a posted debit from the wallet of a member.

    The balance check and the debit happen under the wallet lock.

    Raises:
        InsufficientWalletBalanceError: If the balance is lower than amount
    """
    amount = _positive_amount(amount)

    with transaction.atomic():
        wallet = lock_wallet(member)
        existing = _existing_transaction(idempotency_key)
        if existing:
            return existing

        balance = get_wallet_balance(member)
        if balance < amount:
            raise InsufficientWalletBalanceError(balance=balance, requested=amount)

        wallet_tx = WalletTransaction.objects.create(
            wallet=wallet,
            member=member,
            direction=TransactionDirection.DEBIT,
            amount=amount,
            type=tx_type,
            idempotency_key=idempotency_key,
            description=description,
        )

    logger.info("Wallet of member %s debited %s (%s)", member.id, amount, tx_type)
    return wallet_tx


def void_transaction(wallet_tx: WalletTransaction) -> bool:
    """Void a posted transaction, excluding it from the balance.

    Returns:
        True if voided now, False if it was already void

    Raises:
        InsufficientWalletBalanceError: If voiding a credit would make the balance negative
    """
    with transaction.atomic():
        lock_wallet(wallet_tx.member)
        locked = WalletTransaction.objects.select_for_update().get(pk=wallet_tx.pk)
        if locked.status == TransactionStatus.VOID:
            return False

        if locked.direction == TransactionDirection.CREDIT:
            balance = get_wallet_balance(locked.member)
            if balance < locked.amount:
                raise InsufficientWalletBalanceError(balance=balance, requested=locked.amount)

        locked.status = TransactionStatus.VOID
        locked.voided_at = timezone.now()
        locked.save(update_fields=["status", "voided_at", "updated"])

    wallet_tx.status = locked.status
    wallet_tx.voided_at = locked.voided_at
    logger.info("Wallet transaction %s voided", locked.id)
    return True


def list_wallet_transactions(member: Member, cursor: str | None = None, limit: int | None = None) -> TransactionPage:
    """List the transactions of a member, newest first.

    Args:
        member: Wallet owner
        cursor: Opaque cursor from a previous page, None for the first page
        limit: Page size, defaults to the configured wallet page size

    Returns:
        TransactionPage whose next_cursor is None on the last page
    """
    if limit is None:
        limit = get_trip_config(None, "wallet_page_size", 20)
    limit = min(max(1, clamp_money(limit)), MAX_PAGE_SIZE)

    queryset = WalletTransaction.objects.filter(member=member).order_by("-id")
    if cursor:
        after_id = decode_cursor(cursor)
        if after_id is None:
            raise InvalidInputError("Invalid cursor", field="cursor", value=cursor)
        queryset = queryset.filter(id__lt=after_id)

    rows = list(queryset[: limit + 1])
    next_cursor = encode_cursor(rows[limit - 1].id) if len(rows) > limit else None
    return TransactionPage(items=rows[:limit], next_cursor=next_cursor)


def get_topup_packages() -> list[int]:
    return [int(value) for value in get_trip_config(None, "topup_packages", [20000, 35000, 60000])]


def get_wallet_summary(member: Member) -> dict:
    return {
        "balance": get_wallet_balance(member),
        "topupPackages": get_topup_packages(),
        "pendingTopups": TopupRequest.objects.filter(member=member, status=TopupStatus.PENDING).count(),
    }


def request_topup(member: Member, package_amount: int) -> TopupRequest:
    """Record a top-up request for one of the configured packages.

    Raises:
        InvalidTopupPackageError: If the amount is not an offered package
    """
    packages = get_topup_packages()
    try:
        amount = int(package_amount)
    except (TypeError, ValueError) as err:
        raise InvalidTopupPackageError(packages=packages) from err
    if amount not in packages:
        raise InvalidTopupPackageError(packages=packages)

    topup = TopupRequest.objects.create(member=member, package_amount=amount)
    logger.info("Top-up %s of %s requested by member %s", topup.id, amount, member.id)
    return topup


def _lock_topup(topup) -> TopupRequest:
    try:
        return TopupRequest.objects.select_for_update().select_related("member").get(pk=_pk(topup))
    except (ObjectDoesNotExist, ValueError, TypeError) as err:
        raise TopupNotFoundError(topupId=_pk(topup)) from err


def credit_topup(topup, staff: Member | None) -> TopupRequest:
    """Mark a pending top-up as processed and credit the wallet.

    Crediting an already processed top-up returns it unchanged.

    Raises:
        TopupNotFoundError: If the request does not exist
        InvalidTransitionError: If the request was rejected
    """
    with transaction.atomic():
        locked = _lock_topup(topup)
        if locked.status == TopupStatus.PROCESSED:
            return locked
        if locked.status != TopupStatus.PENDING:
            raise InvalidTransitionError(current=locked.status, action="credit")

        wallet_tx = credit_wallet(
            locked.member,
            locked.package_amount,
            TransactionType.TOPUP,
            idempotency_key=f"topup:{locked.id}",
            description="Wallet top-up",
        )
        locked.status = TopupStatus.PROCESSED
        locked.processed_at = timezone.now()
        locked.processed_by = staff
        locked.wallet_transaction = wallet_tx
        locked.save()

    logger.info("Top-up %s credited by %s", locked.id, staff.id if staff else None)
    return locked


def reject_topup(topup, staff: Member | None, reason: str = "") -> TopupRequest:
    """Reject a pending top-up request.

    Raises:
        TopupNotFoundError: If the request does not exist
        InvalidTransitionError: If the request was already processed
    """
    with transaction.atomic():
        locked = _lock_topup(topup)
        if locked.status == TopupStatus.REJECTED:
            return locked
        if locked.status != TopupStatus.PENDING:
            raise InvalidTransitionError(current=locked.status, action="reject")

        locked.status = TopupStatus.REJECTED
        locked.processed_at = timezone.now()
        locked.processed_by = staff
        locked.reason = reason or ""
        locked.save()

    logger.info("Top-up %s rejected: %s", locked.id, reason)
    return locked


def list_topups(status: str | None = None, page: int = 1, limit: int = 20) -> dict:
    queryset = TopupRequest.objects.select_related("member").order_by("-id")
    if status:
        if status not in TopupStatus.values:
            raise InvalidInputError(f"Unknown top-up status: {status}", field="status", value=status)
        queryset = queryset.filter(status=status)

    paginator = Paginator(queryset, min(max(1, clamp_money(limit)), MAX_PAGE_SIZE))
    current = paginator.get_page(page)
    return {
        "items": [topup.as_snapshot() for topup in current.object_list],
        "page": current.number,
        "total": paginator.count,
        "hasNext": current.has_next(),
    }
