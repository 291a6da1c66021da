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

"""Tests for refund quotes and the refund settlement lifecycle"""

from datetime import timedelta

import pytest
from django.utils import timezone

from tripsettle.accounting.refund import (
    approve_refund_and_credit,
    approve_refund_defer_credit,
    list_refunds,
    post_refund_credit,
    refund_quote,
    refund_state,
    reject_refund,
    request_refund,
)
from tripsettle.accounting.wallet import get_wallet_balance
from tripsettle.cache.config import save_single_config
from tripsettle.models.accounting import PaymentStatus
from tripsettle.models.refund import RefundGroup, RefundStatus, SettlementStatus
from tripsettle.models.registration import RegistrationStatus
from tripsettle.models.wallet import TransactionType, WalletTransaction
from tripsettle.tests.unit.base import BaseTestCase
from tripsettle.utils.core.exceptions import (
    InvalidInputError,
    InvalidTransitionError,
    RefundAlreadyRequestedError,
    RefundNotFoundError,
    RefundRequiresApprovedPaymentError,
    RefundRequiresCancellationError,
    VersionConflictError,
)


class RefundTestCase(BaseTestCase):
    def paid_registration(self, member=None, paid=10000, cancelled=True):
        """Create a confirmed, fully paid registration, cancelled by default"""
        if member is None:
            member = self.create_member()
        registration = self.create_registration(
            member=member,
            price=paid,
            amount_due=0,
            status=RegistrationStatus.CONFIRMED,
            cancelled_at=timezone.now() if cancelled else None,
        )
        self.create_payment(registration, amount=paid - 2000, wallet_amount=2000)
        return registration


class TestRefundQuote(RefundTestCase):
    """Test the refund tiers"""

    @pytest.mark.parametrize(
        "days_before,percent,amount",
        [
            (30, 100, 9500),
            (15, 100, 9500),
            (14, 50, 4500),
            (10, 50, 4500),
            (9, 30, 2500),
            (5, 30, 2500),
            (4, 0, 0),
            (0, 0, 0),
        ],
    )
    def test_tiers(self, days_before, percent, amount):
        """Test percent minus the 500 processing fee per tier"""
        registration = self.paid_registration()
        start = registration.trip.start_date

        quote = refund_quote(registration, now=start - timedelta(days=days_before))

        assert quote.amount_paid == 10000
        assert quote.refund_percent == percent
        assert quote.refund_amount == amount
        assert quote.days_before == days_before

    def test_after_departure(self):
        registration = self.paid_registration()

        quote = refund_quote(registration, now=registration.trip.start_date + timedelta(days=2))

        assert quote.refund_percent == 0
        assert quote.refund_amount == 0

    def test_fee_never_makes_refund_negative(self):
        registration = self.paid_registration(paid=3000)
        save_single_config(registration.trip, "refund_processing_fee", 5000)

        quote = refund_quote(registration, now=registration.trip.start_date - timedelta(days=20))

        assert quote.processing_fee == 5000
        assert quote.refund_amount == 0

    def test_pending_and_rejected_payments_not_refunded(self):
        registration = self.paid_registration()
        self.create_payment(registration, amount=4000, status=PaymentStatus.PENDING)
        self.create_payment(registration, amount=4000, status=PaymentStatus.REJECTED)

        quote = refund_quote(registration, now=registration.trip.start_date - timedelta(days=20))

        assert quote.amount_paid == 10000

    def test_no_start_date_uses_top_tier(self):
        registration = self.paid_registration()
        registration.trip.start_date = None
        registration.trip.save()

        quote = refund_quote(registration)

        assert quote.refund_percent == 100
        assert quote.days_before is None


class TestRequestRefund(RefundTestCase):
    """Test the preconditions of a refund request"""

    def test_request_stores_quote(self):
        registration = self.paid_registration()

        refund = request_refund(
            registration.id,
            registration.member,
            bank_details="PK00 TEST 0000",
            rating=4,
            now=registration.trip.start_date - timedelta(days=12),
        )

        registration.refresh_from_db()
        assert refund.status == RefundStatus.PENDING
        assert refund.refund_amount == 4500
        assert refund.settlement_key == f"refund:{refund.id}"
        assert registration.refund_status == RefundStatus.PENDING

    def test_requires_approved_payment(self):
        member = self.create_member()
        registration = self.create_registration(member=member, cancelled_at=timezone.now())
        self.create_payment(registration, amount=1000, status=PaymentStatus.PENDING)

        with pytest.raises(RefundRequiresApprovedPaymentError):
            request_refund(registration.id, member)

    def test_requires_cancellation(self):
        registration = self.paid_registration(cancelled=False)

        with pytest.raises(RefundRequiresCancellationError):
            request_refund(registration.id, registration.member)

    def test_single_open_request(self):
        registration = self.paid_registration()
        request_refund(registration.id, registration.member)

        with pytest.raises(RefundAlreadyRequestedError):
            request_refund(registration.id, registration.member)

    def test_new_request_after_rejection(self):
        registration = self.paid_registration()
        refund = request_refund(registration.id, registration.member)
        reject_refund(refund, self.staff(), "Missing bank details")

        second = request_refund(registration.id, registration.member, bank_details="PK00 TEST 0001")

        assert second.id != refund.id

    @pytest.mark.parametrize("rating", [0, 6, "great"])
    def test_rating_range(self, rating):
        registration = self.paid_registration()

        with pytest.raises(InvalidInputError):
            request_refund(registration.id, registration.member, rating=rating)


class TestRefundSettlement(RefundTestCase):
    """Test approval and wallet credit of refunds"""

    def test_approve_and_credit(self):
        registration = self.paid_registration()
        refund = request_refund(registration.id, registration.member)

        settled = approve_refund_and_credit(refund, self.staff(), refund.version)

        assert settled.is_credited
        assert settled.group == RefundGroup.CREDITED
        assert settled.as_snapshot()["settlement"] == {
            "status": SettlementStatus.POSTED,
            "amount": settled.refund_amount,
            "method": "wallet_credit",
        }
        assert get_wallet_balance(registration.member) == settled.refund_amount
        assert WalletTransaction.objects.get(idempotency_key=refund.settlement_key).type == TransactionType.REFUND

    def test_deferred_credit_posted_once(self):
        """Test posting the credit twice never double-credits"""
        registration = self.paid_registration()
        refund = request_refund(registration.id, registration.member)

        approved = approve_refund_defer_credit(refund, self.staff())
        assert refund_state(approved) == "cleared-uncredited"
        assert get_wallet_balance(registration.member) == 0

        post_refund_credit(refund, self.staff())
        credited = post_refund_credit(refund, self.staff())

        assert refund_state(credited) == "cleared-credited"
        assert get_wallet_balance(registration.member) == credited.refund_amount
        assert WalletTransaction.objects.filter(member=registration.member).count() == 1

    def test_rejected_cannot_be_credited(self):
        registration = self.paid_registration()
        refund = request_refund(registration.id, registration.member)
        reject_refund(refund, self.staff(), "Outside policy")

        with pytest.raises(InvalidTransitionError):
            post_refund_credit(refund, self.staff())
        with pytest.raises(InvalidTransitionError):
            approve_refund_and_credit(refund, self.staff())
        assert get_wallet_balance(registration.member) == 0

    def test_pending_cannot_post_credit(self):
        registration = self.paid_registration()
        refund = request_refund(registration.id, registration.member)

        with pytest.raises(InvalidTransitionError):
            post_refund_credit(refund)

    def test_credited_cannot_be_rejected(self):
        registration = self.paid_registration()
        refund = request_refund(registration.id, registration.member)
        approve_refund_and_credit(refund, self.staff())

        with pytest.raises(InvalidTransitionError):
            reject_refund(refund, self.staff())

    def test_stale_version(self):
        registration = self.paid_registration()
        refund = request_refund(registration.id, registration.member)

        with pytest.raises(VersionConflictError):
            approve_refund_and_credit(refund, self.staff(), refund.version + 3)

    def test_zero_refund_settles_without_credit(self):
        registration = self.paid_registration()
        refund = request_refund(
            registration.id, registration.member, now=registration.trip.start_date - timedelta(days=1)
        )

        settled = approve_refund_and_credit(refund, self.staff())

        assert settled.refund_amount == 0
        assert settled.settlement_status == SettlementStatus.POSTED
        assert settled.wallet_transaction is None

    def test_unknown_refund(self):
        with pytest.raises(RefundNotFoundError):
            approve_refund_and_credit(999, self.staff())

    def test_list_by_group(self):
        first = self.paid_registration()
        second = self.paid_registration()
        credited = request_refund(first.id, first.member)
        request_refund(second.id, second.member)
        approve_refund_and_credit(credited, self.staff())

        assert list_refunds(RefundGroup.PENDING)["total"] == 1
        assert list_refunds(RefundGroup.CREDITED)["items"][0]["id"] == credited.id
        assert list_refunds(RefundGroup.APPROVED_NOT_CREDITED)["total"] == 0
        with pytest.raises(InvalidInputError):
            list_refunds("unknown")
