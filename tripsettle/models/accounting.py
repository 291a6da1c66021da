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

from tripsettle.models.base import BaseModel
from tripsettle.models.member import Member
from tripsettle.models.registration import Registration
from tripsettle.models.trip import DiscountBudget, DiscountKind
from tripsettle.models.wallet import WalletTransaction


class DiscountReservation(BaseModel):
    budget = models.ForeignKey(DiscountBudget, on_delete=models.CASCADE, related_name="reservations")

    registration = models.ForeignKey(Registration, on_delete=models.CASCADE, related_name="discount_reservations")

    kind = models.CharField(max_length=20, choices=DiscountKind.choices)

    count = models.PositiveIntegerField(default=1)

    value = models.PositiveIntegerField(default=0)

    released_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        constraints = [
            UniqueConstraint(
                fields=["registration"],
                condition=Q(deleted=None, released_at=None),
                name="unique_active_reservation",
            ),
        ]

    def __str__(self):
        return f"{self.kind} reservation for {self.registration} ({self.value})"

    @property
    def is_released(self) -> bool:
        return self.released_at is not None


class PaymentStatus(models.TextChoices):
    PENDING = "pendingApproval", _("Pending approval")
    APPROVED = "approved", _("Approved")
    REJECTED = "rejected", _("Rejected")


class Payment(BaseModel):
    registration = models.ForeignKey(Registration, on_delete=models.CASCADE, related_name="payments")

    member = models.ForeignKey(Member, on_delete=models.CASCADE, related_name="payments")

    amount = models.PositiveIntegerField(default=0, help_text=_("Cash portion, proven by a transfer receipt"))

    wallet_amount = models.PositiveIntegerField(default=0)

    discount = models.PositiveIntegerField(default=0)

    discount_type = models.CharField(max_length=20, choices=DiscountKind.choices, null=True, blank=True)

    status = models.CharField(
        max_length=20, choices=PaymentStatus.choices, default=PaymentStatus.PENDING, db_index=True
    )

    proof = models.CharField(max_length=500, blank=True)

    idempotency_key = models.CharField(max_length=100, null=True, blank=True)

    wallet_transaction = models.ForeignKey(
        WalletTransaction, on_delete=models.SET_NULL, null=True, blank=True, related_name="payments"
    )

    reservation = models.ForeignKey(
        DiscountReservation, on_delete=models.SET_NULL, null=True, blank=True, related_name="payments"
    )

    processed_at = models.DateTimeField(null=True, blank=True)

    processed_by = models.ForeignKey(
        Member, on_delete=models.SET_NULL, null=True, blank=True, related_name="payments_processed"
    )

    reason = models.TextField(blank=True)

    class Meta:
        indexes = [models.Index(fields=["registration", "status"], name="payment_reg_status_idx")]
        constraints = [
            UniqueConstraint(
                fields=["member", "idempotency_key"],
                condition=Q(idempotency_key__isnull=False),
                name="unique_payment_idempotency_key",
            ),
        ]

    def __str__(self):
        return f"Payment {self.amount}+{self.wallet_amount} for {self.registration} ({self.status})"

    @property
    def settled_total(self) -> int:
        return self.amount + self.wallet_amount

    def as_snapshot(self) -> dict:
        return {
            "id": self.id,
            "registration": self.registration_id,
            "amount": self.amount,
            "walletAmount": self.wallet_amount,
            "discount": self.discount,
            "discountType": self.discount_type,
            "status": self.status,
            "proof": self.proof,
            "reason": self.reason,
            "processedAt": self.processed_at.isoformat() if self.processed_at else None,
        }
