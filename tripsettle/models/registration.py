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
from tripsettle.models.trip import DiscountKind, Trip


class TripType(models.TextChoices):
    SOLO = "solo", _("Solo")
    GROUP = "group", _("Group")
    PARTNER = "partner", _("Partner")


class RegistrationStatus(models.TextChoices):
    NEW = "new", _("New")
    ONBOARDING = "onboarding", _("Onboarding")
    PAYMENT = "payment", _("Payment")
    CONFIRMED = "confirmed", _("Confirmed")
    WAITLISTED = "waitlisted", _("Waitlisted")


class Registration(VersionedMixin, BaseModel):
    trip = models.ForeignKey(Trip, on_delete=models.CASCADE, related_name="registrations")

    member = models.ForeignKey(Member, on_delete=models.CASCADE, related_name="registrations")

    trip_type = models.CharField(max_length=10, choices=TripType.choices, default=TripType.SOLO)

    city = models.CharField(max_length=100, blank=True)

    tier = models.CharField(max_length=100, blank=True)

    room_sharing = models.CharField(max_length=100, blank=True)

    sleep_preference = models.CharField(max_length=100, blank=True)

    price = models.PositiveIntegerField(default=0)

    discount_type = models.CharField(max_length=20, choices=DiscountKind.choices, null=True, blank=True)

    discount_applied = models.PositiveIntegerField(default=0)

    amount_due = models.PositiveIntegerField(default=0)

    status = models.CharField(
        max_length=15, choices=RegistrationStatus.choices, default=RegistrationStatus.NEW, db_index=True
    )

    cancelled_at = models.DateTimeField(null=True, blank=True)

    refund_status = models.CharField(max_length=10, blank=True, default="")

    class Meta:
        indexes = [models.Index(fields=["trip", "member"], name="registration_trip_member_idx")]
        constraints = [
            UniqueConstraint(
                fields=["member", "trip"],
                condition=Q(deleted=None, cancelled_at=None),
                name="unique_active_registration",
            ),
        ]

    def __str__(self):
        return f"{self.member} - {self.trip}"

    @property
    def is_cancelled(self) -> bool:
        return self.cancelled_at is not None

    @property
    def discount_locked(self) -> bool:
        return bool(self.discount_type) and self.discount_applied > 0


class GroupLink(BaseModel):
    registration = models.ForeignKey(Registration, on_delete=models.CASCADE, related_name="links")

    trip = models.ForeignKey(Trip, on_delete=models.CASCADE, related_name="group_links")

    email = models.EmailField(db_index=True)

    class Meta:
        indexes = [models.Index(fields=["trip", "email"], name="grouplink_trip_email_idx")]
        constraints = [
            UniqueConstraint(
                fields=["registration", "email"],
                condition=Q(deleted=None),
                name="unique_group_link_without_optional",
            ),
        ]

    def __str__(self):
        return f"{self.registration} -> {self.email}"
