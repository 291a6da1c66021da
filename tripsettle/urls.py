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

from django.urls import path, re_path

from tripsettle.views import api

urlpatterns = [
    path("trip/<int:trip_id>", api.trip_detail, name="api_trip"),
    path("registration", api.registration_save, name="api_registration"),
    path("registration/<int:registration_id>", api.registration_detail, name="api_registration_detail"),
    path("registration/<int:registration_id>/cancel", api.registration_cancel, name="api_registration_cancel"),
    path(
        "discount-eligibility/<int:registration_id>",
        api.registration_discount_eligibility,
        name="api_discount_eligibility",
    ),
    path("payment", api.payment_submit, name="api_payment"),
    path("wallet/summary", api.wallet_summary, name="api_wallet_summary"),
    path("wallet/transactions", api.wallet_transactions, name="api_wallet_transactions"),
    path("wallet/topup-request", api.wallet_topup_request, name="api_wallet_topup_request"),
    path("refund-quote/<int:registration_id>", api.registration_refund_quote, name="api_refund_quote"),
    path("refund", api.refund_submit, name="api_refund"),
    re_path(
        r"^admin/payment/(?P<payment_id>\d+)/(?P<action>approve|reject)$",
        api.admin_payment_action,
        name="api_admin_payment_action",
    ),
    path("admin/payments", api.admin_payments, name="api_admin_payments"),
    re_path(
        r"^admin/topup/(?P<topup_id>\d+)/(?P<action>credit|reject)$",
        api.admin_topup_action,
        name="api_admin_topup_action",
    ),
    re_path(
        r"^admin/refund/(?P<refund_id>\d+)/(?P<action>approve_and_credit|approve_defer_credit|post_credit|reject)$",
        api.admin_refund_action,
        name="api_admin_refund_action",
    ),
    path("admin/refunds", api.admin_refunds, name="api_admin_refunds"),
    path("admin/topups", api.admin_topups, name="api_admin_topups"),
    path("admin/trip/<int:trip_id>/group-conflicts", api.admin_group_conflicts, name="api_admin_group_conflicts"),
]
