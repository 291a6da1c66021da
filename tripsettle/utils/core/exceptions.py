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

from typing import Any


class ErrorCategory:
    VALIDATION = "validation"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    TRANSIENT = "transient"


class SettlementError(Exception):
    """Base exception for failures that abort a settlement operation.

    Attributes:
        code (str): Stable machine readable identifier of the failure
        message (str): Human readable description
        details (dict): Structured context returned to the caller

    """

    category = ErrorCategory.VALIDATION
    default_code = "settlement_error"
    default_message = "Operation failed"

    def __init__(self, message: str | None = None, code: str | None = None, **details: Any) -> None:
        """Initialize with an optional message, code override and structured details."""
        self.code = code or self.default_code
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def as_dict(self) -> dict:
        return {"error": self.code, "category": self.category, "message": self.message, **self.details}


class NotFoundError(SettlementError):
    """Generic exception for content not found scenarios."""

    category = ErrorCategory.NOT_FOUND
    default_code = "not_found"
    default_message = "Not found"


class TripNotFoundError(NotFoundError):
    default_code = "trip_not_found"
    default_message = "Trip not found"


class RegistrationNotFoundError(NotFoundError):
    default_code = "registration_not_found"
    default_message = "Registration not found"


class PaymentNotFoundError(NotFoundError):
    default_code = "payment_not_found"
    default_message = "Payment not found"


class RefundNotFoundError(NotFoundError):
    default_code = "refund_not_found"
    default_message = "Refund not found"


class TopupNotFoundError(NotFoundError):
    default_code = "topup_not_found"
    default_message = "Top-up request not found"


class InvalidSelectionError(SettlementError):
    """Raised when a registration selects an option the trip does not offer.

    Attributes:
        field (str): Selection field holding the invalid value
        value (str): The rejected value

    """

    default_code = "invalid_selection"
    default_message = "Selected option is not available"

    def __init__(self, field: str, value: str) -> None:
        """Initialize with the offending field and value."""
        super().__init__(f"Option '{value}' is not available for {field}", field=field, value=value)
        self.field = field
        self.value = value


class InvalidInputError(SettlementError):
    default_code = "invalid_input"
    default_message = "Invalid input"


class EmptyPaymentError(SettlementError):
    default_code = "empty_payment"
    default_message = "Payment amount must be greater than zero"


class ProofRequiredError(SettlementError):
    default_code = "proof_required"
    default_message = "Payment screenshot is required for cash payments"


class InvalidTopupPackageError(SettlementError):
    default_code = "invalid_topup_package"
    default_message = "Top-up amount is not one of the available packages"


class PaymentAlreadyPendingError(SettlementError):
    category = ErrorCategory.CONFLICT
    default_code = "payment_already_pending"
    default_message = "A payment is already pending approval"


class AmountExceedsDueError(SettlementError):
    """Raised when a submission is larger than what is still owed.

    Attributes:
        amount_due (int): Remaining due after any discount
        requested (int): Wallet plus cash amount submitted

    """

    category = ErrorCategory.CONFLICT
    default_code = "amount_exceeds_due"
    default_message = "Payment exceeds the amount due"

    def __init__(self, amount_due: int, requested: int) -> None:
        """Initialize with the due and requested amounts."""
        super().__init__(amountDue=amount_due, requested=requested)
        self.amount_due = amount_due
        self.requested = requested


class InsufficientWalletBalanceError(SettlementError):
    """Raised when a wallet debit would make the balance negative.

    Attributes:
        balance (int): Available balance
        requested (int): Requested debit

    """

    category = ErrorCategory.CONFLICT
    default_code = "insufficient_wallet_balance"
    default_message = "Insufficient wallet balance"

    def __init__(self, balance: int, requested: int) -> None:
        """Initialize with the available balance and the requested amount."""
        super().__init__(balance=balance, requested=requested)
        self.balance = balance
        self.requested = requested


class WalletUseConflictError(SettlementError):
    category = ErrorCategory.CONFLICT
    default_code = "wallet_use_conflict"
    default_message = "This walletUseId was already used for another registration"


class RegistrationCancelledError(SettlementError):
    category = ErrorCategory.CONFLICT
    default_code = "registration_cancelled"
    default_message = "Registration has been cancelled"


class RegistrationLockedError(SettlementError):
    category = ErrorCategory.CONFLICT
    default_code = "registration_locked"
    default_message = "Registration cannot be edited once payments have been submitted"


class VersionConflictError(SettlementError):
    """Raised when a mutation carries a stale version token.

    Attributes:
        expected (int): Version supplied by the caller
        current (int): Version currently stored

    """

    category = ErrorCategory.CONFLICT
    default_code = "version_conflict"
    default_message = "The record was modified by someone else, reload and retry"

    def __init__(self, expected: int, current: int) -> None:
        """Initialize with the supplied and stored versions."""
        super().__init__(expected=expected, current=current)
        self.expected = expected
        self.current = current


class BudgetBelowUsageError(SettlementError):
    category = ErrorCategory.CONFLICT
    default_code = "budget_below_usage"
    default_message = "Cannot set total below used discounts"


class InvalidTransitionError(SettlementError):
    """Raised when a state machine move is not allowed from the current state.

    Attributes:
        current (str): Current state
        action (str): Attempted action

    """

    category = ErrorCategory.CONFLICT
    default_code = "invalid_transition"
    default_message = "Transition not allowed"

    def __init__(self, current: str, action: str) -> None:
        """Initialize with the current state and the attempted action."""
        super().__init__(f"Cannot {action} from state {current}", current=current, action=action)
        self.current = current
        self.action = action


class RefundRequiresApprovedPaymentError(SettlementError):
    category = ErrorCategory.CONFLICT
    default_code = "refund_requires_approved_payment"
    default_message = "A refund needs a confirmed registration with an approved payment"


class RefundRequiresCancellationError(SettlementError):
    category = ErrorCategory.CONFLICT
    default_code = "refund_requires_cancellation"
    default_message = "Cancel the registration before requesting a refund"


class RefundAlreadyRequestedError(SettlementError):
    category = ErrorCategory.CONFLICT
    default_code = "refund_already_requested"
    default_message = "A refund has already been requested for this registration"


class StorageUnavailableError(SettlementError):
    category = ErrorCategory.TRANSIENT
    default_code = "storage_unavailable"
    default_message = "Storage temporarily unavailable, retry later"
