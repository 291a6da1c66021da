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

"""Tests for trip pricing and quote computation"""

from datetime import date, datetime, timedelta

import pytest
from django.utils import timezone

from tripsettle.accounting.pricing import (
    AddonOption,
    PricingTable,
    Selections,
    get_trip_pricing,
    is_early_bird_active,
    quote,
    quote_trip,
)
from tripsettle.models.registration import TripType
from tripsettle.models.trip import AddonKind
from tripsettle.tests.unit.base import BaseTestCase
from tripsettle.utils.core.exceptions import InvalidSelectionError

TODAY = date(2026, 3, 10)


def pricing_table(**kwargs):
    defaults = {
        "base_price": 10000,
        "early_bird_price": 8000,
        "early_bird_deadline": TODAY,
        "locations": (AddonOption("Lahore", 0), AddonOption("Karachi", 2500)),
        "tiers": (AddonOption("Standard", 0), AddonOption("Premium", 4000)),
        "room_sharing": (AddonOption("Quad", 0), AddonOption("Twin", 3000, is_twin=True)),
        "sleep": (AddonOption("Tent", 0), AddonOption("Bed", 1500)),
    }
    defaults.update(kwargs)
    return PricingTable(**defaults)


class TestEarlyBird:
    """Test early bird activation rules"""

    def test_active_until_deadline_day(self):
        """Test the deadline day itself still gets the early price"""
        pricing = pricing_table()

        assert is_early_bird_active(pricing, TODAY)
        assert is_early_bird_active(pricing, TODAY - timedelta(days=5))
        assert not is_early_bird_active(pricing, TODAY + timedelta(days=1))

    def test_expired_deadline_uses_base_price(self):
        """Test base 10000, early 8000 expired yesterday quotes 10000"""
        pricing = pricing_table(early_bird_deadline=TODAY - timedelta(days=1))

        result = quote(pricing, Selections(), TODAY)

        assert not result.early_bird_active
        assert result.base == 10000
        assert result.total == 10000

    def test_early_price_not_lower_than_base(self):
        """Test an early price above the base price is ignored"""
        pricing = pricing_table(early_bird_price=12000)

        assert not is_early_bird_active(pricing, TODAY)
        assert quote(pricing, Selections(), TODAY).base == 10000

    def test_missing_price_or_deadline(self):
        assert not is_early_bird_active(pricing_table(early_bird_price=0), TODAY)
        assert not is_early_bird_active(pricing_table(early_bird_deadline=None), TODAY)

    def test_aware_datetime_uses_local_day(self):
        """Test an aware instant is compared on the local calendar day"""
        pricing = pricing_table()
        local_noon = timezone.make_aware(datetime(2026, 3, 10, 12, 0))

        assert is_early_bird_active(pricing, local_noon)


class TestQuote:
    """Test price composition from selections"""

    def test_sums_all_components(self):
        selections = Selections(
            trip_type=TripType.SOLO, city="Karachi", tier="Premium", room_sharing="Quad", sleep_preference="Bed"
        )

        result = quote(pricing_table(), selections, TODAY)

        assert result.base == 8000
        assert result.location == 2500
        assert result.tier == 4000
        assert result.sleep == 1500
        assert result.total == 8000 + 2500 + 4000 + 0 + 1500

    def test_twin_room_bundled_for_partner(self):
        """Test twin sharing costs nothing on partner trips"""
        pricing = pricing_table()

        solo = quote(pricing, Selections(trip_type=TripType.SOLO, room_sharing="Twin"), TODAY)
        partner = quote(pricing, Selections(trip_type=TripType.PARTNER, room_sharing="Twin"), TODAY)

        assert solo.room_sharing == 3000
        assert partner.room_sharing == 0
        assert partner.total == solo.total - 3000

    def test_adding_selection_never_lowers_total(self):
        """Test totals grow monotonically as selections are added"""
        pricing = pricing_table()
        steps = [
            Selections(),
            Selections(city="Karachi"),
            Selections(city="Karachi", tier="Premium"),
            Selections(city="Karachi", tier="Premium", room_sharing="Twin"),
            Selections(city="Karachi", tier="Premium", room_sharing="Twin", sleep_preference="Bed"),
        ]

        totals = [quote(pricing, selections, TODAY).total for selections in steps]

        assert totals == sorted(totals)

    def test_same_inputs_same_quote(self):
        selections = Selections(city="Karachi", tier="Premium")

        assert quote(pricing_table(), selections, TODAY) == quote(pricing_table(), selections, TODAY)

    @pytest.mark.parametrize(
        "selections,field",
        [
            (Selections(city="Islamabad"), "city"),
            (Selections(tier="Gold"), "tier"),
            (Selections(room_sharing="Single"), "room_sharing"),
            (Selections(sleep_preference="Hammock"), "sleep_preference"),
        ],
    )
    def test_unknown_selection_rejected(self, selections, field):
        with pytest.raises(InvalidSelectionError) as exc_info:
            quote(pricing_table(), selections, TODAY)

        assert exc_info.value.field == field
        assert exc_info.value.as_dict()["error"] == "invalid_selection"

    def test_as_dict_keys(self):
        data = quote(pricing_table(), Selections(city="Karachi"), TODAY).as_dict()

        assert data["total"] == 10500
        assert data["earlyBirdActive"] is True
        assert set(data) == {"base", "location", "tier", "roomSharing", "sleep", "earlyBirdActive", "total"}


class TestTripPricing(BaseTestCase):
    """Test pricing snapshots built from trip add-ons"""

    def test_disabled_addons_not_offered(self):
        """Test disabled add-ons are rejected as selections"""
        trip = self.create_trip()
        self.create_addon(trip, AddonKind.LOCATION, "Lahore", 0)
        self.create_addon(trip, AddonKind.LOCATION, "Quetta", 1200, enabled=False)

        pricing = get_trip_pricing(trip)

        assert [option.name for option in pricing.locations] == ["Lahore"]
        with pytest.raises(InvalidSelectionError):
            quote_trip(trip, Selections(city="Quetta"))

    def test_quote_trip_uses_addon_prices(self):
        trip = self.create_trip(base_price=50000)
        self.create_addon(trip, AddonKind.TIER, "Deluxe", 7000)
        self.create_addon(trip, AddonKind.ROOM_SHARING, "Twin", 6000, is_twin=True)

        result = quote_trip(trip, Selections(trip_type=TripType.PARTNER, tier="Deluxe", room_sharing="Twin"))

        assert result.total == 57000
