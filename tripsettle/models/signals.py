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

import logging

from django.contrib.auth.models import User
from django.db.models.signals import post_delete, post_save, pre_save
from django.dispatch import receiver

from tripsettle.cache.config import clear_config_cache
from tripsettle.models.member import Member
from tripsettle.models.trip import TripConfig
from tripsettle.models.wallet import Wallet

logger = logging.getLogger(__name__)


@receiver(post_save, sender=User)
def post_save_user_member(sender, instance, created, **kwargs):
    if not created:
        return
    Member.objects.get_or_create(
        user=instance, defaults={"email": (instance.email or "").lower(), "name": instance.username}
    )


@receiver(pre_save, sender=Member)
def pre_save_member_email(sender, instance, **kwargs):
    instance.email = (instance.email or "").strip().lower()


@receiver(post_save, sender=Member)
def post_save_member_wallet(sender, instance, created, **kwargs):
    if created:
        Wallet.objects.get_or_create(member=instance)
        logger.debug("Wallet created for member %s", instance.id)


@receiver(post_save, sender=TripConfig)
def post_save_trip_config(sender, instance, **kwargs):
    clear_config_cache(instance.trip_id)


@receiver(post_delete, sender=TripConfig)
def post_delete_trip_config(sender, instance, **kwargs):
    clear_config_cache(instance.trip_id)
