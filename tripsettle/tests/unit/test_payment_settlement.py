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

"""Tests for payment submission, approval and rejection"""

from unittest.mock import patch

import pytest

from tripsettle.accounting.discount import ReservationStatus
from tripsettle.accounting.payment import approve_payment, list_payments, reject_payment, submit_payment
from tripsettle.accounting.wallet import get_wallet_balance
from tripsettle.models.accounting import DiscountReservation, Payment, PaymentStatus
from tripsettle.models.registration import RegistrationStatus
from tripsettle.models.trip import DiscountKind
from tripsettle.models.wallet import TransactionStatus, WalletTransaction
from tripsettle.tests.unit.base import BaseTestCase
from tripsettle.utils.core.exceptions import (
    AmountExceedsDueError,
    EmptyPaymentError,
    InsufficientWalletBalanceError,
    InvalidInputError,
    InvalidTransitionError,
    PaymentAlreadyPendingError,
    PaymentNotFoundError,
    ProofRequiredError,
    RegistrationCancelledError,
    RegistrationNotFoundError,
    WalletUseConflictError,
)


class TestSubmitPayment(BaseTestCase):
    """Test mixed wallet and cash submissions"""

    def test_wallet_and_cash_settle_due(self):
        """Test due 3000 paid with 1000 wallet and 2000 cash"""
        member = self.create_member()
        registration = self.create_registration(member=member, price=3000, amount_due=3000)
        self.fund_wallet(member, 1500)

        submission = submit_payment(registration.id, member, 2000, 1000, proof="receipt.jpg", wallet_use_id="use-1")

        registration.refresh_from_db()
        assert submission.payment.status == PaymentStatus.PENDING
        assert submission.payment.wallet_transaction.amount == 1000
        assert registration.amount_due == 0
        assert registration.status == RegistrationStatus.PAYMENT
        assert get_wallet_balance(member) == 500
        assert submission.as_dict()["pendingApproval"] is True

    def test_second_submission_while_pending(self):
        member = self.create_member()
        registration = self.create_registration(member=member, price=5000, amount_due=5000)
        submit_payment(registration.id, member, 1000, 0, proof="receipt.jpg")

        with pytest.raises(PaymentAlreadyPendingError):
            submit_payment(registration.id, member, 1000, 0, proof="receipt-2.jpg")

    def test_cash_requires_proof(self):
        member = self.create_member()
        registration = self.create_registration(member=member)

        with pytest.raises(ProofRequiredError):
            submit_payment(registration.id, member, 1000, 0)

    def test_wallet_only_needs_no_proof(self):
        member = self.create_member()
        registration = self.create_registration(member=member, price=2000, amount_due=2000)
        self.fund_wallet(member, 2000)

        submission = submit_payment(registration.id, member, 0, 2000)

        assert submission.payment.proof == ""
        assert get_wallet_balance(member) == 0

    def test_amount_exceeding_due_rolls_back(self):
        """Test an oversized payment leaves no debit, reservation or payment"""
        member = self.create_member()
        trip = self.create_trip()
        budget = self.create_budget(trip, DiscountKind.MUSAFIR, amount_per_unit=1000)
        self.confirmed_past_trip(member)
        registration = self.create_registration(member=member, trip=trip, price=3000, amount_due=3000)
        self.fund_wallet(member, 5000)

        with pytest.raises(AmountExceedsDueError) as exc_info:
            submit_payment(registration.id, member, 0, 3000, discount_kind=DiscountKind.MUSAFIR)

        budget.refresh_from_db()
        assert exc_info.value.amount_due == 2000
        assert budget.used_count == 0
        assert get_wallet_balance(member) == 5000
        assert not Payment.objects.filter(registration=registration).exists()
        assert not DiscountReservation.objects.filter(registration=registration).exists()

    def test_insufficient_wallet(self):
        member = self.create_member()
        registration = self.create_registration(member=member, price=3000, amount_due=3000)
        self.fund_wallet(member, 500)

        with pytest.raises(InsufficientWalletBalanceError):
            submit_payment(registration.id, member, 0, 1000)

        assert not Payment.objects.exists()

    def test_empty_payment(self):
        member = self.create_member()
        registration = self.create_registration(member=member)

        with pytest.raises(EmptyPaymentError):
            submit_payment(registration.id, member, 0, 0)

    def test_negative_amount(self):
        member = self.create_member()
        registration = self.create_registration(member=member)

        with pytest.raises(InvalidInputError):
            submit_payment(registration.id, member, -100, 0, proof="receipt.jpg")

    @pytest.mark.parametrize("amount", [2000.9, True, "12.5", "1e3", [1000]])
    def test_non_integer_amount(self, amount):
        """Test fractional, boolean and other non-integer amounts are refused"""
        member = self.create_member()
        registration = self.create_registration(member=member, price=3000, amount_due=3000)

        with pytest.raises(InvalidInputError):
            submit_payment(registration.id, member, amount, 0, proof="receipt.jpg")

        registration.refresh_from_db()
        assert registration.amount_due == 3000
        assert not Payment.objects.exists()

    def test_digit_string_amount(self):
        member = self.create_member()
        registration = self.create_registration(member=member, price=3000, amount_due=3000)

        submission = submit_payment(registration.id, member, " 1500", "0", proof="receipt.jpg")

        assert submission.payment.amount == 1500

    def test_cancelled_registration(self):
        member = self.create_member()
        registration = self.create_registration(member=member, cancelled_at=self.trip().created)

        with pytest.raises(RegistrationCancelledError):
            submit_payment(registration.id, member, 1000, 0, proof="receipt.jpg")

    def test_other_member_registration(self):
        registration = self.create_registration(member=self.create_member())

        with pytest.raises(RegistrationNotFoundError):
            submit_payment(registration.id, self.create_member(), 1000, 0, proof="receipt.jpg")

    def test_replayed_wallet_use_id(self):
        """Test retrying with the same walletUseId returns the first payment"""
        member = self.create_member()
        registration = self.create_registration(member=member, price=3000, amount_due=3000)
        self.fund_wallet(member, 3000)

        first = submit_payment(registration.id, member, 0, 1000, wallet_use_id="retry-1")
        second = submit_payment(registration.id, member, 0, 1000, wallet_use_id="retry-1")

        assert second.replayed
        assert second.payment.id == first.payment.id
        assert get_wallet_balance(member) == 2000
        assert Payment.objects.count() == 1

    def test_wallet_use_id_reused_on_other_registration(self):
        """Test a walletUseId already spent on one registration cannot pay another"""
        member = self.create_member()
        first = self.create_registration(member=member, price=3000, amount_due=3000)
        second = self.create_registration(member=member, trip=self.create_trip(), price=3000, amount_due=3000)
        self.fund_wallet(member, 3000)
        submit_payment(first.id, member, 0, 1000, wallet_use_id="use-9")

        with pytest.raises(WalletUseConflictError) as exc_info:
            submit_payment(second.id, member, 0, 1000, wallet_use_id="use-9")

        second.refresh_from_db()
        assert exc_info.value.as_dict()["registrationId"] == first.id
        assert second.amount_due == 3000
        assert not Payment.objects.filter(registration=second).exists()
        assert get_wallet_balance(member) == 2000


class TestPaymentDiscounts(BaseTestCase):
    """Test discounts locked in with a payment"""

    def test_discount_reserved_with_payment(self):
        member = self.create_member()
        self.confirmed_past_trip(member)
        trip = self.create_trip()
        budget = self.create_budget(trip, DiscountKind.MUSAFIR, amount_per_unit=1000)
        registration = self.create_registration(member=member, trip=trip, price=10000, amount_due=10000)

        submission = submit_payment(
            registration.id, member, 4000, 0, discount_kind=DiscountKind.MUSAFIR, proof="receipt.jpg"
        )

        registration.refresh_from_db()
        budget.refresh_from_db()
        assert submission.discount.status == ReservationStatus.RESERVED
        assert submission.payment.discount == 1000
        assert registration.discount_type == DiscountKind.MUSAFIR
        assert registration.amount_due == 5000
        assert budget.used_count == 1

    def test_discount_only_payment(self):
        """Test a zero amount is accepted when a discount is newly reserved"""
        member = self.create_member()
        self.confirmed_past_trip(member)
        trip = self.create_trip()
        self.create_budget(trip, DiscountKind.MUSAFIR, amount_per_unit=1000)
        registration = self.create_registration(member=member, trip=trip, price=10000, amount_due=10000)

        submission = submit_payment(registration.id, member, 0, 0, discount_kind=DiscountKind.MUSAFIR)

        assert submission.payment.settled_total == 0
        assert submission.registration.amount_due == 9000

    def test_ineligible_discount_reported(self):
        member = self.create_member()
        trip = self.create_trip()
        self.create_budget(trip, DiscountKind.MUSAFIR)
        registration = self.create_registration(member=member, trip=trip)

        submission = submit_payment(
            registration.id, member, 1000, 0, discount_kind=DiscountKind.MUSAFIR, proof="receipt.jpg"
        )

        assert submission.discount.status == "not_eligible"
        assert submission.payment.discount == 0
        assert not DiscountReservation.objects.exists()

    def test_rejection_releases_discount_and_wallet(self):
        member = self.create_member()
        self.confirmed_past_trip(member)
        trip = self.create_trip()
        budget = self.create_budget(trip, DiscountKind.MUSAFIR, amount_per_unit=1000)
        registration = self.create_registration(member=member, trip=trip, price=10000, amount_due=10000)
        self.fund_wallet(member, 2000)
        submission = submit_payment(registration.id, member, 0, 2000, discount_kind=DiscountKind.MUSAFIR)

        reject_payment(submission.payment.id, self.staff(), "Duplicate")

        registration.refresh_from_db()
        budget.refresh_from_db()
        wallet_tx = WalletTransaction.objects.get(pk=submission.payment.wallet_transaction_id)
        assert wallet_tx.status == TransactionStatus.VOID
        assert get_wallet_balance(member) == 2000
        assert registration.discount_type is None
        assert registration.discount_applied == 0
        assert registration.amount_due == 10000
        assert budget.used_count == 0


class TestPaymentApproval(BaseTestCase):
    """Test the admin payment state machine"""

    def test_full_payment_confirms_registration(self):
        member = self.create_member()
        registration = self.create_registration(member=member, price=3000, amount_due=3000)
        submission = submit_payment(registration.id, member, 3000, 0, proof="receipt.jpg")

        payment = approve_payment(submission.payment.id, self.staff())

        registration.refresh_from_db()
        assert payment.status == PaymentStatus.APPROVED
        assert payment.processed_at is not None
        assert registration.status == RegistrationStatus.CONFIRMED

    def test_partial_payment_stays_in_payment(self):
        member = self.create_member()
        registration = self.create_registration(member=member, price=3000, amount_due=3000)
        submission = submit_payment(registration.id, member, 1000, 0, proof="receipt.jpg")

        approve_payment(submission.payment.id, self.staff())

        registration.refresh_from_db()
        assert registration.status == RegistrationStatus.PAYMENT
        assert registration.amount_due == 2000

    def test_approve_twice_is_noop(self):
        member = self.create_member()
        registration = self.create_registration(member=member)
        submission = submit_payment(registration.id, member, 1000, 0, proof="receipt.jpg")

        first = approve_payment(submission.payment.id, self.staff())
        second = approve_payment(submission.payment.id, self.staff())

        assert first.processed_at == second.processed_at

    def test_terminal_states_are_final(self):
        member = self.create_member()
        registration = self.create_registration(member=member)
        submission = submit_payment(registration.id, member, 1000, 0, proof="receipt.jpg")
        reject_payment(submission.payment.id, self.staff(), "Blurry screenshot")

        with pytest.raises(InvalidTransitionError):
            approve_payment(submission.payment.id, self.staff())

        other = submit_payment(registration.id, member, 1000, 0, proof="receipt-2.jpg")
        approve_payment(other.payment.id, self.staff())
        with pytest.raises(InvalidTransitionError):
            reject_payment(other.payment.id, self.staff())

    def test_unknown_payment(self):
        with pytest.raises(PaymentNotFoundError):
            approve_payment(999, self.staff())

    @patch("tripsettle.accounting.payment.logger")
    def test_rejection_logged(self, mock_logger):
        member = self.create_member()
        registration = self.create_registration(member=member)
        submission = submit_payment(registration.id, member, 1000, 0, proof="receipt.jpg")

        reject_payment(submission.payment.id, self.staff(), "Wrong account")

        mock_logger.info.assert_called_with("Payment %s rejected: %s", submission.payment.id, "Wrong account")

    def test_list_payments_by_status(self):
        member = self.create_member()
        registration = self.create_registration(member=member)
        submit_payment(registration.id, member, 1000, 0, proof="receipt.jpg")

        assert list_payments(PaymentStatus.PENDING).count() == 1
        assert list_payments(PaymentStatus.APPROVED).count() == 0
        with pytest.raises(InvalidInputError):
            list_payments("unknown")
