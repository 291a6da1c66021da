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

from tripsettle.models.accounting import DiscountReservation, Payment, PaymentStatus
from tripsettle.models.member import GenderChoices, Member
from tripsettle.models.refund import Refund, RefundGroup, RefundStatus, SettlementStatus
from tripsettle.models.registration import GroupLink, Registration, RegistrationStatus, TripType
from tripsettle.models.trip import AddonKind, DiscountBudget, DiscountKind, Trip, TripAddon, TripConfig
from tripsettle.models.wallet import (
    TopupRequest,
    TopupStatus,
    TransactionDirection,
    TransactionStatus,
    TransactionType,
    Wallet,
    WalletTransaction,
)

__all__ = [
    "AddonKind",
    "DiscountBudget",
    "DiscountKind",
    "DiscountReservation",
    "GenderChoices",
    "GroupLink",
    "Member",
    "Payment",
    "PaymentStatus",
    "Refund",
    "RefundGroup",
    "RefundStatus",
    "Registration",
    "RegistrationStatus",
    "SettlementStatus",
    "TopupRequest",
    "TopupStatus",
    "TransactionDirection",
    "TransactionStatus",
    "TransactionType",
    "Trip",
    "TripAddon",
    "TripConfig",
    "TripType",
    "Wallet",
    "WalletTransaction",
]
