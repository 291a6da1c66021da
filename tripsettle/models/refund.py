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
from django.db.models import Q, UniqueConstraint
from django.utils.translation import gettext_lazy as _

from tripsettle.models.base import BaseModel, VersionedMixin
from tripsettle.models.member import Member
from tripsettle.models.registration import Registration
from tripsettle.models.wallet import WalletTransaction


class RefundStatus(models.TextChoices):
    PENDING = "pending", _("Pending")
    CLEARED = "cleared", _("Cleared")
    REJECTED = "rejected", _("Rejected")


class SettlementStatus(models.TextChoices):
    NONE = "none", _("None")
    POSTED = "posted", _("Posted")


class RefundGroup(models.TextChoices):
    PENDING = "pending", _("Pending")
    APPROVED_NOT_CREDITED = "approved_not_credited", _("Approved, not credited")
    CREDITED = "credited", _("Credited")
    REJECTED = "rejected", _("Rejected")


class Refund(VersionedMixin, BaseModel):
    registration = models.ForeignKey(Registration, on_delete=models.CASCADE, related_name="refunds")

    member = models.ForeignKey(Member, on_delete=models.CASCADE, related_name="refunds")

    status = models.CharField(max_length=10, choices=RefundStatus.choices, default=RefundStatus.PENDING, db_index=True)

    bank_details = models.TextField(blank=True)

    reason = models.TextField(blank=True)

    feedback = models.TextField(blank=True)

    rating = models.PositiveSmallIntegerField(null=True, blank=True)

    staff_note = models.TextField(blank=True)

    amount_paid = models.PositiveIntegerField(default=0)

    refund_percent = models.PositiveSmallIntegerField(default=0)

    processing_fee = models.PositiveIntegerField(default=0)

    refund_amount = models.PositiveIntegerField(default=0)

    tier_label = models.CharField(max_length=100, blank=True)

    settlement_status = models.CharField(
        max_length=10, choices=SettlementStatus.choices, default=SettlementStatus.NONE
    )

    settlement_key = models.CharField(max_length=100, unique=True, null=True, blank=True)

    settled_at = models.DateTimeField(null=True, blank=True)

    wallet_transaction = models.ForeignKey(
        WalletTransaction, on_delete=models.SET_NULL, null=True, blank=True, related_name="refunds"
    )

    processed_at = models.DateTimeField(null=True, blank=True)

    processed_by = models.ForeignKey(
        Member, on_delete=models.SET_NULL, null=True, blank=True, related_name="refunds_processed"
    )

    class Meta:
        constraints = [
            UniqueConstraint(
                fields=["registration"],
                condition=Q(deleted=None, status__in=["pending", "cleared"]),
                name="unique_open_refund",
            ),
        ]

    def __str__(self):
        return f"Refund request of {self.member} ({self.status})"

    @property
    def is_credited(self) -> bool:
        return self.status == RefundStatus.CLEARED and self.settlement_status == SettlementStatus.POSTED

    @property
    def group(self) -> str:
        if self.status == RefundStatus.PENDING:
            return RefundGroup.PENDING
        if self.status == RefundStatus.REJECTED:
            return RefundGroup.REJECTED
        if self.settlement_status == SettlementStatus.POSTED:
            return RefundGroup.CREDITED
        return RefundGroup.APPROVED_NOT_CREDITED

    def as_snapshot(self) -> dict:
        return {
            "id": self.id,
            "registration": self.registration_id,
            "member": self.member_id,
            "status": self.status,
            "group": self.group,
            "amountPaid": self.amount_paid,
            "refundPercent": self.refund_percent,
            "processingFee": self.processing_fee,
            "refundAmount": self.refund_amount,
            "tierLabel": self.tier_label,
            "settlement": {
                "status": self.settlement_status,
                "amount": self.refund_amount if self.settlement_status == SettlementStatus.POSTED else 0,
                "method": "wallet_credit",
            },
            "version": self.version,
        }
