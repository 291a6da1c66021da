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

"""Tests for registration creation, updates and cancellation"""

import pytest

from tripsettle.accounting.discount import reserve_discount
from tripsettle.accounting.registration import (
    RegistrationInput,
    cancel_registration,
    compute_amount_due,
    create_or_update_registration,
    get_registration,
    registration_snapshot,
)
from tripsettle.models.accounting import PaymentStatus
from tripsettle.models.registration import Registration, RegistrationStatus, TripType
from tripsettle.models.trip import AddonKind, DiscountBudget, DiscountKind
from tripsettle.tests.unit.base import BaseTestCase
from tripsettle.utils.core.exceptions import (
    InvalidInputError,
    InvalidSelectionError,
    RegistrationCancelledError,
    RegistrationLockedError,
    RegistrationNotFoundError,
    TripNotFoundError,
    VersionConflictError,
)


class TestCreateRegistration(BaseTestCase):
    """Test the create path of registration saves"""

    def test_create_prices_registration(self):
        trip = self.create_trip(base_price=30000)
        self.create_addon(trip, AddonKind.LOCATION, "Karachi", 4000)
        member = self.create_member()

        result = create_or_update_registration(RegistrationInput(member=member, trip_id=trip.id, city="Karachi"))

        registration = result.registration
        assert result.price == 34000
        assert registration.amount_due == 34000
        assert registration.status == RegistrationStatus.NEW
        assert not result.already_registered
        assert result.as_dict()["quote"]["location"] == 4000

    def test_second_create_returns_existing(self):
        """Test a member keeps one active registration per trip"""
        trip = self.create_trip()
        member = self.create_member()

        first = create_or_update_registration(RegistrationInput(member=member, trip_id=trip.id))
        second = create_or_update_registration(RegistrationInput(member=member, trip_id=trip.id))

        assert second.already_registered
        assert second.registration.id == first.registration.id
        assert Registration.objects.filter(member=member, trip=trip).count() == 1

    def test_register_again_after_cancel(self):
        trip = self.create_trip()
        member = self.create_member()
        first = create_or_update_registration(RegistrationInput(member=member, trip_id=trip.id)).registration
        cancel_registration(first)

        second = create_or_update_registration(RegistrationInput(member=member, trip_id=trip.id))

        assert not second.already_registered
        assert second.registration.id != first.id

    def test_group_links_and_feedback(self):
        trip = self.create_trip()
        self.create_budget(trip, DiscountKind.GROUP, amount_per_unit=1500)
        member = self.create_member()

        result = create_or_update_registration(
            RegistrationInput(
                member=member, trip_id=trip.id, trip_type=TripType.GROUP, members="a@example.com, b@example.com"
            )
        )

        assert result.group_discount["groupSize"] == 3
        assert result.group_discount["perMember"] == 1500
        assert result.group_discount["status"] == "not_eligible"

    def test_feedback_without_group_budget(self):
        """Test the group size is still reported when the trip offers no group discount"""
        trip = self.create_trip()

        result = create_or_update_registration(
            RegistrationInput(
                member=self.create_member(), trip_id=trip.id, trip_type=TripType.GROUP, members="a@example.com"
            )
        )

        assert result.group_discount["status"] == "disabled"
        assert result.group_discount["groupSize"] == 2
        assert DiscountBudget.objects.get(trip=trip).used_count == 0

    def test_unknown_trip(self):
        with pytest.raises(TripNotFoundError):
            create_or_update_registration(RegistrationInput(member=self.create_member(), trip_id=999))

    def test_unknown_trip_type(self):
        trip = self.create_trip()

        with pytest.raises(InvalidInputError):
            create_or_update_registration(
                RegistrationInput(member=self.create_member(), trip_id=trip.id, trip_type="vip")
            )

    def test_invalid_selection_creates_nothing(self):
        trip = self.create_trip()

        with pytest.raises(InvalidSelectionError):
            create_or_update_registration(
                RegistrationInput(member=self.create_member(), trip_id=trip.id, tier="Gold")
            )

        assert Registration.objects.count() == 0


class TestUpdateRegistration(BaseTestCase):
    """Test the update path of registration saves"""

    def test_update_reprices_and_bumps_version(self):
        trip = self.create_trip(base_price=20000)
        self.create_addon(trip, AddonKind.TIER, "Premium", 5000)
        member = self.create_member()
        registration = create_or_update_registration(RegistrationInput(member=member, trip_id=trip.id)).registration

        result = create_or_update_registration(
            RegistrationInput(
                member=member,
                trip_id=trip.id,
                tier="Premium",
                registration_id=registration.id,
                version=registration.version,
            )
        )

        assert result.price == 25000
        assert result.registration.version == registration.version + 1
        assert result.registration.amount_due == 25000

    def test_stale_version_rejected(self):
        trip = self.create_trip()
        member = self.create_member()
        registration = create_or_update_registration(RegistrationInput(member=member, trip_id=trip.id)).registration

        with pytest.raises(VersionConflictError):
            create_or_update_registration(
                RegistrationInput(member=member, trip_id=trip.id, registration_id=registration.id, version=7)
            )

    def test_locked_once_paid(self):
        """Test registrations with a live payment cannot be edited"""
        member = self.create_member()
        registration = self.create_registration(member=member)
        self.create_payment(registration, amount=1000, status=PaymentStatus.PENDING)

        with pytest.raises(RegistrationLockedError):
            create_or_update_registration(
                RegistrationInput(member=member, trip_id=registration.trip_id, registration_id=registration.id)
            )

    def test_cancelled_not_editable(self):
        member = self.create_member()
        registration = cancel_registration(self.create_registration(member=member))

        with pytest.raises(RegistrationCancelledError):
            create_or_update_registration(
                RegistrationInput(member=member, trip_id=registration.trip_id, registration_id=registration.id)
            )

    def test_other_member_registration_not_found(self):
        registration = self.create_registration(member=self.create_member())

        with pytest.raises(RegistrationNotFoundError):
            create_or_update_registration(
                RegistrationInput(
                    member=self.create_member(), trip_id=registration.trip_id, registration_id=registration.id
                )
            )


class TestCancelRegistration(BaseTestCase):
    """Test cancellation and discount release"""

    def test_cancel_releases_unconfirmed_discount(self):
        trip = self.create_trip()
        budget = self.create_budget(trip, DiscountKind.GROUP, amount_per_unit=1000)
        registration = self.create_registration(trip=trip, discount_type=DiscountKind.GROUP, discount_applied=1000)
        reserve_discount(registration, DiscountKind.GROUP)

        cancelled = cancel_registration(registration)

        budget.refresh_from_db()
        assert cancelled.is_cancelled
        assert cancelled.discount_type is None
        assert cancelled.discount_applied == 0
        assert budget.used_count == 0

    def test_cancel_keeps_confirmed_discount(self):
        trip = self.create_trip()
        budget = self.create_budget(trip, DiscountKind.GROUP, amount_per_unit=1000)
        registration = self.create_registration(
            trip=trip,
            status=RegistrationStatus.CONFIRMED,
            discount_type=DiscountKind.GROUP,
            discount_applied=1000,
        )
        reserve_discount(registration, DiscountKind.GROUP)

        cancelled = cancel_registration(registration)

        budget.refresh_from_db()
        assert cancelled.discount_applied == 1000
        assert budget.used_count == 1

    def test_cancel_twice_is_noop(self):
        registration = self.create_registration()

        first = cancel_registration(registration)
        second = cancel_registration(registration)

        assert second.cancelled_at == first.cancelled_at
        assert second.version == first.version


class TestRegistrationAccounting(BaseTestCase):
    def test_amount_due_ignores_rejected_payments(self):
        registration = self.create_registration(price=10000, discount_applied=1000)
        self.create_payment(registration, amount=3000)
        self.create_payment(registration, wallet_amount=2000, status=PaymentStatus.PENDING)
        self.create_payment(registration, amount=4000, status=PaymentStatus.REJECTED)

        assert compute_amount_due(registration) == 4000

    def test_amount_due_never_negative(self):
        registration = self.create_registration(price=1000)
        self.create_payment(registration, amount=5000)

        assert compute_amount_due(registration) == 0

    def test_snapshot_and_owner_lookup(self):
        member = self.create_member()
        registration = self.create_registration(member=member)

        snapshot = registration_snapshot(get_registration(registration.id, member))

        assert snapshot["id"] == registration.id
        assert snapshot["paymentId"] is None
        with pytest.raises(RegistrationNotFoundError):
            get_registration(registration.id, self.create_member())
