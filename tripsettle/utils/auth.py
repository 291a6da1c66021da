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

from functools import wraps
from typing import TYPE_CHECKING, Callable

from django.http import JsonResponse

from tripsettle.models.member import Member

if TYPE_CHECKING:
    from django.http import HttpRequest, HttpResponse


def get_request_member(request: HttpRequest) -> Member:
    """Return the member of the authenticated user, creating it on first use."""
    member, _ = Member.objects.get_or_create(
        user=request.user, defaults={"email": (request.user.email or "").lower(), "name": request.user.username}
    )
    return member


def api_login_required(view_func: Callable[..., HttpResponse]) -> Callable[..., HttpResponse]:
    """Reject anonymous requests with a JSON 401 and expose request.member."""

    @wraps(view_func)
    def wrapper(request: HttpRequest, *args, **kwargs) -> HttpResponse:
        if not request.user.is_authenticated:
            return JsonResponse({"error": "authentication_required"}, status=401)
        request.member = get_request_member(request)
        return view_func(request, *args, **kwargs)

    return wrapper


def api_staff_required(view_func: Callable[..., HttpResponse]) -> Callable[..., HttpResponse]:
    """Reject anonymous requests with 401 and non-staff users with 403."""

    @wraps(view_func)
    def wrapper(request: HttpRequest, *args, **kwargs) -> HttpResponse:
        if not request.user.is_authenticated:
            return JsonResponse({"error": "authentication_required"}, status=401)
        if not request.user.is_staff:
            return JsonResponse({"error": "permission_denied"}, status=403)
        request.member = get_request_member(request)
        return view_func(request, *args, **kwargs)

    return wrapper
