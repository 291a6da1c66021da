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

import logging
from typing import Optional

from django.db import OperationalError
from django.http import HttpRequest, HttpResponse, JsonResponse

from tripsettle.utils.core.exceptions import ErrorCategory, SettlementError, StorageUnavailableError

logger = logging.getLogger(__name__)

CATEGORY_STATUS = {
    ErrorCategory.VALIDATION: 400,
    ErrorCategory.NOT_FOUND: 404,
    ErrorCategory.CONFLICT: 409,
    ErrorCategory.TRANSIENT: 503,
}


class ExceptionHandlingMiddleware:
    """Turn settlement errors raised by the API views into JSON responses."""

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        return self.get_response(request)

    def process_exception(self, request: HttpRequest, exception: Exception) -> Optional[HttpResponse]:
        """Process Django middleware exceptions and route to appropriate handlers.

        Args:
            request: The HTTP request object that triggered the exception
            exception: The exception instance that was raised

        Returns:
            JsonResponse for handled exceptions, None for unhandled exceptions
        """
        handlers = [
            (SettlementError, self._settlement_response),
            (OperationalError, self._storage_response),
        ]

        for exc_type, handler in handlers:
            if isinstance(exception, exc_type):
                return handler(request, exception)

        return None

    @staticmethod
    def _settlement_response(request: HttpRequest, ex: SettlementError) -> JsonResponse:
        status = CATEGORY_STATUS.get(ex.category, 400)
        logger.info("%s %s failed: %s", request.method, request.path, ex.code)
        return JsonResponse(ex.as_dict(), status=status)

    @staticmethod
    def _storage_response(request: HttpRequest, ex: OperationalError) -> JsonResponse:
        logger.error("Storage unavailable on %s %s: %s", request.method, request.path, ex)
        return JsonResponse(StorageUnavailableError().as_dict(), status=503)
