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
import uuid

from django.core.files.storage import default_storage
from django.http import HttpRequest, JsonResponse
from django.views.decorators.http import require_GET, require_POST

from tripsettle.accounting.discount import discount_eligibility
from tripsettle.accounting.linking import get_trip_group_conflicts
from tripsettle.accounting.payment import approve_payment, list_payments, reject_payment, submit_payment
from tripsettle.accounting.refund import (
    approve_refund_and_credit,
    approve_refund_defer_credit,
    list_refunds,
    post_refund_credit,
    refund_quote,
    reject_refund,
    request_refund,
)
from tripsettle.accounting.registration import (
    RegistrationInput,
    cancel_registration,
    create_or_update_registration,
    get_registration,
    registration_snapshot,
)
from tripsettle.accounting.trip import get_trip, trip_snapshot
from tripsettle.accounting.wallet import (
    credit_topup,
    get_wallet_summary,
    list_topups,
    list_wallet_transactions,
    reject_topup,
    request_topup,
)
from tripsettle.utils.auth import api_login_required, api_staff_required
from tripsettle.utils.core.exceptions import InvalidInputError

logger = logging.getLogger(__name__)


def get_payload(request: HttpRequest) -> dict:
    """Read the request body as JSON, falling back to form data.

    Raises:
        InvalidInputError: If a JSON body cannot be decoded
    """
    if request.content_type == "application/json":
        if not request.body:
            return {}
        try:
            payload = json.loads(request.body)
        except (ValueError, UnicodeDecodeError) as err:
            raise InvalidInputError("Malformed JSON body") from err
        if not isinstance(payload, dict):
            raise InvalidInputError("JSON body must be an object")
        return payload

    payload = {}
    for key in request.POST:
        values = request.POST.getlist(key)
        payload[key] = values if len(values) > 1 else values[0]
    return payload


def _int_param(value, name: str, default: int | None = None) -> int | None:
    if value in (None, ""):
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as err:
        raise InvalidInputError(f"{name} must be an integer", field=name, value=value) from err


def _store_screenshot(request: HttpRequest, payload: dict) -> str:
    """Return the proof reference, saving an uploaded screenshot to storage."""
    upload = request.FILES.get("screenshot")
    if upload is None:
        return str(payload.get("screenshot") or "")
    return default_storage.save(f"payments/{uuid.uuid4().hex}_{upload.name}", upload)


@require_GET
@api_login_required
def trip_detail(request: HttpRequest, trip_id: int) -> JsonResponse:
    return JsonResponse(trip_snapshot(get_trip(trip_id)))


@require_POST
@api_login_required
def registration_save(request: HttpRequest) -> JsonResponse:
    """Create or update the registration of the current member.

    Accepts tripId, tripType, members (list or separated string), the
    selections (city, tier, roomSharing, sleepPreference), and for edits
    registrationId plus the version read.
    """
    payload = get_payload(request)
    selections = payload.get("selections") or payload
    if not isinstance(selections, dict):
        raise InvalidInputError("selections must be an object", field="selections")
    data = RegistrationInput(
        member=request.member,
        trip_id=_int_param(payload.get("tripId"), "tripId"),
        trip_type=payload.get("tripType") or "solo",
        members=payload.get("members"),
        city=selections.get("city") or "",
        tier=selections.get("tier") or "",
        room_sharing=selections.get("roomSharing") or "",
        sleep_preference=selections.get("sleepPreference") or "",
        registration_id=_int_param(payload.get("registrationId"), "registrationId"),
        version=_int_param(payload.get("version"), "version"),
    )
    result = create_or_update_registration(data)
    return JsonResponse(result.as_dict(), status=200 if result.already_registered else 201)


@require_GET
@api_login_required
def registration_detail(request: HttpRequest, registration_id: int) -> JsonResponse:
    registration = get_registration(registration_id, None if request.member.is_staff else request.member)
    return JsonResponse(registration_snapshot(registration))


@require_POST
@api_login_required
def registration_cancel(request: HttpRequest, registration_id: int) -> JsonResponse:
    payload = get_payload(request)
    registration = get_registration(registration_id, request.member)
    registration = cancel_registration(registration, _int_param(payload.get("version"), "version"))
    return JsonResponse(registration_snapshot(registration))


@require_GET
@api_login_required
def registration_discount_eligibility(request: HttpRequest, registration_id: int) -> JsonResponse:
    registration = get_registration(registration_id, None if request.member.is_staff else request.member)
    return JsonResponse(discount_eligibility(registration))


@require_POST
@api_login_required
def payment_submit(request: HttpRequest) -> JsonResponse:
    """Submit a payment for a registration.

    Expects registrationId, amount (cash), walletAmount, walletUseId and
    optionally discountType and screenshot, either as JSON or multipart form
    data with the screenshot uploaded as a file.
    """
    payload = get_payload(request)
    submission = submit_payment(
        registration_id=_int_param(payload.get("registrationId"), "registrationId"),
        member=request.member,
        cash_amount=payload.get("amount"),
        wallet_amount=payload.get("walletAmount"),
        discount_kind=payload.get("discountType") or None,
        proof=_store_screenshot(request, payload),
        wallet_use_id=payload.get("walletUseId") or None,
    )
    return JsonResponse(submission.as_dict(), status=200 if submission.replayed else 201)


@require_GET
@api_login_required
def wallet_summary(request: HttpRequest) -> JsonResponse:
    return JsonResponse(get_wallet_summary(request.member))


@require_GET
@api_login_required
def wallet_transactions(request: HttpRequest) -> JsonResponse:
    page = list_wallet_transactions(
        request.member,
        cursor=request.GET.get("cursor") or None,
        limit=_int_param(request.GET.get("limit"), "limit"),
    )
    return JsonResponse(page.as_dict())


@require_POST
@api_login_required
def wallet_topup_request(request: HttpRequest) -> JsonResponse:
    payload = get_payload(request)
    topup = request_topup(request.member, payload.get("packageAmount"))
    return JsonResponse(topup.as_snapshot(), status=201)


@require_GET
@api_login_required
def registration_refund_quote(request: HttpRequest, registration_id: int) -> JsonResponse:
    registration = get_registration(registration_id, None if request.member.is_staff else request.member)
    return JsonResponse(refund_quote(registration).as_dict())


@require_POST
@api_login_required
def refund_submit(request: HttpRequest) -> JsonResponse:
    payload = get_payload(request)
    refund = request_refund(
        registration_id=_int_param(payload.get("registrationId"), "registrationId"),
        member=request.member,
        bank_details=payload.get("bankDetails") or "",
        reason=payload.get("reason") or "",
        feedback=payload.get("feedback") or "",
        rating=payload.get("rating"),
    )
    return JsonResponse(refund.as_snapshot(), status=201)


@require_POST
@api_staff_required
def admin_payment_action(request: HttpRequest, payment_id: int, action: str) -> JsonResponse:
    payload = get_payload(request)
    if action == "approve":
        payment = approve_payment(payment_id, request.member)
    else:
        payment = reject_payment(payment_id, request.member, payload.get("reason") or "")
    return JsonResponse(payment.as_snapshot())


@require_GET
@api_staff_required
def admin_payments(request: HttpRequest) -> JsonResponse:
    limit = _int_param(request.GET.get("limit"), "limit", 50)
    payments = list_payments(request.GET.get("status") or None)[: max(1, min(limit, 200))]
    return JsonResponse({"items": [payment.as_snapshot() for payment in payments]})


@require_POST
@api_staff_required
def admin_topup_action(request: HttpRequest, topup_id: int, action: str) -> JsonResponse:
    payload = get_payload(request)
    if action == "credit":
        topup = credit_topup(topup_id, request.member)
    else:
        topup = reject_topup(topup_id, request.member, payload.get("reason") or "")
    return JsonResponse(topup.as_snapshot())


REFUND_ACTIONS = {
    "approve_and_credit": approve_refund_and_credit,
    "approve_defer_credit": approve_refund_defer_credit,
    "post_credit": post_refund_credit,
}


@require_POST
@api_staff_required
def admin_refund_action(request: HttpRequest, refund_id: int, action: str) -> JsonResponse:
    payload = get_payload(request)
    version = _int_param(payload.get("version"), "version")
    if action == "reject":
        refund = reject_refund(refund_id, request.member, payload.get("reason") or "", version)
    else:
        refund = REFUND_ACTIONS[action](refund_id, request.member, version)
    return JsonResponse(refund.as_snapshot())


@require_GET
@api_staff_required
def admin_refunds(request: HttpRequest) -> JsonResponse:
    return JsonResponse(
        list_refunds(
            group=request.GET.get("group") or None,
            page=_int_param(request.GET.get("page"), "page", 1),
            limit=_int_param(request.GET.get("limit"), "limit", 20),
        )
    )


@require_GET
@api_staff_required
def admin_topups(request: HttpRequest) -> JsonResponse:
    return JsonResponse(
        list_topups(
            status=request.GET.get("status") or None,
            page=_int_param(request.GET.get("page"), "page", 1),
            limit=_int_param(request.GET.get("limit"), "limit", 20),
        )
    )


@require_GET
@api_staff_required
def admin_group_conflicts(request: HttpRequest, trip_id: int) -> JsonResponse:
    return JsonResponse({"conflicts": get_trip_group_conflicts(get_trip(trip_id))})
