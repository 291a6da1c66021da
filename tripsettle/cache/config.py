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

from __future__ import annotations

import json
import logging
from typing import Any

from django.conf import settings as conf_settings
from django.core.cache import cache

from tripsettle.models.trip import Trip, TripConfig

logger = logging.getLogger(__name__)


def cache_configs_key(trip_id: int) -> str:
    """Generate cache key for per-trip configuration overrides."""
    return f"configs_trip_{trip_id}"


def clear_config_cache(trip_id: int) -> None:
    """Clear the cached overrides of a trip."""
    cache.delete(cache_configs_key(trip_id))


def update_configs(trip_id: int) -> dict[str, str]:
    """Retrieve the raw configuration overrides stored for a trip."""
    return {config.name: config.value for config in TripConfig.objects.filter(trip_id=trip_id)}


def get_trip_configs(trip_id: int) -> dict[str, str]:
    """Get trip configuration overrides from cache or database.

    Args:
        trip_id: The ID of the trip to get configs for

    Returns:
        Dictionary mapping config names to their raw string values
    """
    cache_key = cache_configs_key(trip_id)

    cached_configs = cache.get(cache_key)
    if cached_configs is None:
        cached_configs = update_configs(trip_id)
        cache.set(cache_key, cached_configs, timeout=conf_settings.CACHE_TIMEOUT_1_DAY)
    return cached_configs


def get_policy_defaults() -> dict[str, Any]:
    """Return the project-wide settlement policy from settings."""
    return dict(getattr(conf_settings, "TRIPSETTLE", {}))


def _coerce(raw: str, default: Any) -> Any:
    """Convert a stored string to the type of the settings default."""
    if isinstance(default, bool):
        return raw.strip().lower() in ("1", "true", "yes", "on")
    if isinstance(default, int):
        return int(raw)
    if isinstance(default, (list, tuple, dict)):
        return json.loads(raw)
    return raw


def get_trip_config(trip: Trip | int | None, name: str, default: Any = None) -> Any:
    """Read a policy value, preferring the trip override over the settings default.

    Args:
        trip: Trip instance or id, None to read only the settings default
        name: Policy name, as used in the TRIPSETTLE settings dict
        default: Value returned when neither the trip nor settings define it

    Returns:
        The override converted to the type of the settings default, or the default
    """
    base_value = get_policy_defaults().get(name, default)
    if trip is None:
        return base_value

    trip_id = trip if isinstance(trip, int) else trip.id
    overrides = get_trip_configs(trip_id)
    if name not in overrides:
        return base_value

    try:
        return _coerce(overrides[name], base_value)
    except (TypeError, ValueError):
        logger.warning("Invalid config %s=%r for trip %s, using default", name, overrides[name], trip_id)
        return base_value


def save_single_config(trip: Trip, name: str, value: Any) -> None:
    """Create or update a single configuration override for a trip."""
    if isinstance(value, (list, tuple, dict)):
        value = json.dumps(value)
    TripConfig.objects.update_or_create(defaults={"value": str(value)}, trip=trip, name=name)
