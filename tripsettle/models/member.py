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

from django.contrib.auth.models import User
from django.db import models
from django.utils.translation import gettext_lazy as _

from tripsettle.models.base import BaseModel


class GenderChoices(models.TextChoices):
    MALE = "m", _("Male")
    FEMALE = "f", _("Female")
    OTHER = "o", _("Other")


class Member(BaseModel):
    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name="member")

    name = models.CharField(max_length=150, blank=True)

    email = models.EmailField(blank=True, db_index=True)

    gender = models.CharField(max_length=1, choices=GenderChoices.choices, default=GenderChoices.OTHER)

    def __str__(self):
        return self.name or self.email or f"Member {self.pk}"

    @property
    def is_female(self) -> bool:
        return self.gender == GenderChoices.FEMALE

    @property
    def is_staff(self) -> bool:
        return bool(self.user.is_staff)
