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

from django.urls import include, path

urlpatterns = [
    path('api/', include('tripsettle.urls')),
]
