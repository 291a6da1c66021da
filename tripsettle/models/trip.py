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


class Trip(BaseModel):
    name = models.CharField(max_length=150)

    base_price = models.PositiveIntegerField(default=0, help_text=_("Regular price, in minor currency units"))

    early_bird_price = models.PositiveIntegerField(
        default=0, help_text=_("Discounted base price before the deadline (0 disables it)")
    )

    early_bird_deadline = models.DateField(null=True, blank=True)

    start_date = models.DateField(null=True, blank=True)

    end_date = models.DateField(null=True, blank=True)

    total_seats = models.PositiveIntegerField(default=0)

    content_version = models.PositiveIntegerField(default=1)


class AddonKind(models.TextChoices):
    LOCATION = "location", _("Location")
    TIER = "tier", _("Tier")
    ROOM_SHARING = "room_sharing", _("Room sharing")
    SLEEP = "sleep", _("Sleep preference")


class TripAddon(BaseModel):
    trip = models.ForeignKey(Trip, on_delete=models.CASCADE, related_name="addons")

    kind = models.CharField(max_length=20, choices=AddonKind.choices)

    name = models.CharField(max_length=100)

    price = models.PositiveIntegerField(default=0)

    enabled = models.BooleanField(default=True)

    is_twin = models.BooleanField(default=False, help_text=_("Twin room sharing, bundled on partner trips"))

    class Meta:
        constraints = [
            UniqueConstraint(
                fields=["trip", "kind", "name"],
                condition=Q(deleted=None),
                name="unique_trip_addon_without_optional",
            ),
        ]


class TripConfig(BaseModel):
    name = models.CharField(max_length=150)

    value = models.CharField(max_length=1000)

    trip = models.ForeignKey(Trip, on_delete=models.CASCADE, related_name="configs")

    class Meta:
        indexes = [
            models.Index(fields=["trip", "name"], condition=Q(deleted__isnull=True), name="tripconfig_trip_name_act"),
        ]
        constraints = [
            UniqueConstraint(
                fields=["trip", "name"],
                condition=Q(deleted=None),
                name="unique_trip_config_without_optional",
            ),
        ]

    def __str__(self):
        return f"{self.trip} {self.name}"


class DiscountKind(models.TextChoices):
    SOLO_FEMALE = "soloFemale", _("Solo female")
    GROUP = "group", _("Group")
    MUSAFIR = "musafir", _("Musafir")


class DiscountBudget(BaseModel):
    trip = models.ForeignKey(Trip, on_delete=models.CASCADE, related_name="discount_budgets")

    kind = models.CharField(max_length=20, choices=DiscountKind.choices)

    enabled = models.BooleanField(default=False)

    amount_per_unit = models.PositiveIntegerField(default=0)

    total_count = models.PositiveIntegerField(default=0)

    used_count = models.PositiveIntegerField(default=0)

    used_value = models.PositiveIntegerField(default=0)

    class Meta:
        constraints = [
            UniqueConstraint(
                fields=["trip", "kind"],
                condition=Q(deleted=None),
                name="unique_discount_budget_without_optional",
            ),
        ]

    def __str__(self):
        return f"{self.trip} {self.kind} ({self.used_count}/{self.total_count})"

    @property
    def total_value(self) -> int:
        return self.amount_per_unit * self.total_count

    @property
    def remaining_count(self) -> int:
        return max(0, self.total_count - self.used_count)

    @property
    def remaining_value(self) -> int:
        return max(0, self.total_value - self.used_value)

    def can_grant(self, count: int = 1) -> bool:
        """Check whether granting count units keeps both caps satisfied."""
        return (
            self.used_count + count <= self.total_count
            and self.used_value + count * self.amount_per_unit <= self.total_value
        )

    def as_snapshot(self) -> dict:
        return {
            "kind": self.kind,
            "enabled": self.enabled,
            "amountPerUnit": self.amount_per_unit,
            "totalCount": self.total_count,
            "totalValue": self.total_value,
            "usedCount": self.used_count,
            "usedValue": self.used_value,
        }
