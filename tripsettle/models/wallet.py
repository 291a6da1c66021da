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

from django.db import models
from django.utils.translation import gettext_lazy as _

from tripsettle.models.base import BaseModel
from tripsettle.models.member import Member


class Wallet(BaseModel):
    """Per-member lock row; the balance is always derived from the transactions."""

    member = models.OneToOneField(Member, on_delete=models.CASCADE, related_name="wallet")

    def __str__(self):
        return f"Wallet of {self.member}"


class TransactionDirection(models.TextChoices):
    CREDIT = "credit", _("Credit")
    DEBIT = "debit", _("Debit")


class TransactionStatus(models.TextChoices):
    POSTED = "posted", _("Posted")
    VOID = "void", _("Void")


class TransactionType(models.TextChoices):
    TOPUP = "topup", _("Top-up")
    PAYMENT = "payment", _("Payment")
    REFUND = "refund", _("Refund")
    ADJUSTMENT = "adjustment", _("Adjustment")


class WalletTransaction(BaseModel):
    wallet = models.ForeignKey(Wallet, on_delete=models.CASCADE, related_name="transactions")

    member = models.ForeignKey(Member, on_delete=models.CASCADE, related_name="wallet_transactions")

    direction = models.CharField(max_length=10, choices=TransactionDirection.choices)

    amount = models.PositiveIntegerField()

    # free-text origin tag, TransactionType holds the values used internally
    type = models.CharField(max_length=50)

    status = models.CharField(
        max_length=10, choices=TransactionStatus.choices, default=TransactionStatus.POSTED, db_index=True
    )

    expires_at = models.DateTimeField(null=True, blank=True)

    idempotency_key = models.CharField(max_length=150, unique=True, null=True, blank=True)

    description = models.CharField(max_length=500, blank=True)

    voided_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        indexes = [models.Index(fields=["member", "status", "direction"], name="wallettx_member_status_idx")]

    def __str__(self):
        return f"{self.direction} {self.amount} ({self.type}) - {self.member}"

    def as_snapshot(self) -> dict:
        return {
            "id": self.id,
            "direction": self.direction,
            "amount": self.amount,
            "type": self.type,
            "status": self.status,
            "description": self.description,
            "expiresAt": self.expires_at.isoformat() if self.expires_at else None,
            "createdAt": self.created.isoformat(),
        }


class TopupStatus(models.TextChoices):
    PENDING = "pending", _("Pending")
    PROCESSED = "processed", _("Processed")
    REJECTED = "rejected", _("Rejected")


class TopupRequest(BaseModel):
    member = models.ForeignKey(Member, on_delete=models.CASCADE, related_name="topups")

    package_amount = models.PositiveIntegerField()

    status = models.CharField(max_length=10, choices=TopupStatus.choices, default=TopupStatus.PENDING, db_index=True)

    processed_at = models.DateTimeField(null=True, blank=True)

    processed_by = models.ForeignKey(
        Member, on_delete=models.SET_NULL, null=True, blank=True, related_name="topups_processed"
    )

    reason = models.TextField(blank=True)

    wallet_transaction = models.ForeignKey(
        WalletTransaction, on_delete=models.SET_NULL, null=True, blank=True, related_name="topups"
    )

    def __str__(self):
        return f"Top-up {self.package_amount} of {self.member} ({self.status})"

    def as_snapshot(self) -> dict:
        return {
            "id": self.id,
            "member": self.member_id,
            "packageAmount": self.package_amount,
            "status": self.status,
            "processedAt": self.processed_at.isoformat() if self.processed_at else None,
            "processedBy": self.processed_by_id,
            "reason": self.reason,
        }
