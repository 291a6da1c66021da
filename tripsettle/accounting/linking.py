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

"""Resolution of group member links between registrations."""

from __future__ import annotations

import logging
import re
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass, field

from django.core.exceptions import ValidationError
from django.core.validators import validate_email
from django.db import transaction

from tripsettle.models.registration import GroupLink, Registration, TripType
from tripsettle.models.trip import Trip
from tripsettle.utils.core.exceptions import InvalidInputError

logger = logging.getLogger(__name__)

EMAIL_SEPARATORS = re.compile(r"[\s,;]+")


@dataclass(frozen=True)
class LinkConflict:
    email: str
    claimed_by: int

    def as_dict(self) -> dict:
        return {"email": self.email}


@dataclass
class LinkResolution:
    emails: list[str] = field(default_factory=list)
    conflicts: list[LinkConflict] = field(default_factory=list)

    @property
    def group_size(self) -> int:
        conflicting = {conflict.email for conflict in self.conflicts}
        return 1 + len([email for email in self.emails if email not in conflicting])


def normalize_emails(raw: str | Iterable[str] | None) -> list[str]:
    """Split, trim, lowercase and dedupe member emails, preserving order.

    Args:
        raw: A single string with separators, or a list of such strings

    Returns:
        List of unique lowercase emails

    Raises:
        InvalidInputError: If an entry is not a valid email address
    """
    if not raw:
        return []
    chunks = [raw] if isinstance(raw, str) else list(raw)

    emails = []
    for chunk in chunks:
        for part in EMAIL_SEPARATORS.split(str(chunk)):
            email = part.strip().lower()
            if not email or email in emails:
                continue
            try:
                validate_email(email)
            except ValidationError as err:
                raise InvalidInputError(f"Invalid member email: {email}", field="members", value=email) from err
            emails.append(email)
    return emails


def _trim_for_trip_type(trip_type: str, emails: list[str]) -> list[str]:
    if trip_type == TripType.SOLO:
        return []
    if trip_type == TripType.PARTNER:
        return emails[:1]
    return emails


def find_link_conflicts(registration: Registration) -> list[LinkConflict]:
    """Find linked emails already claimed by another group on the same trip.

    An email conflicts when an earlier link of a different, non-cancelled
    registration on the same trip claims it, and that registration is not part
    of this group (neither owner lists the other).

    Args:
        registration: Registration whose stored links are checked

    Returns:
        Conflicts in link order, each naming the registration holding the email
    """
    own_links = {link.email: link.id for link in registration.links.order_by("id")}
    if not own_links:
        return []

    own_email = (registration.member.email or "").lower()
    group_emails = set(own_links) | {own_email}

    claims = list(
        GroupLink.objects.filter(
            trip_id=registration.trip_id,
            email__in=own_links.keys(),
            registration__cancelled_at__isnull=True,
            registration__deleted__isnull=True,
        )
        .exclude(registration_id=registration.id)
        .select_related("registration__member")
        .order_by("id")
    )
    if not claims:
        return []

    other_links = defaultdict(set)
    other_ids = {claim.registration_id for claim in claims}
    for registration_id, email in GroupLink.objects.filter(registration_id__in=other_ids).values_list(
        "registration_id", "email"
    ):
        other_links[registration_id].add(email)

    conflicts = {}
    for claim in claims:
        if claim.email in conflicts or claim.id > own_links[claim.email]:
            continue
        other_owner = (claim.registration.member.email or "").lower()
        # same group when either owner lists the other
        if other_owner in group_emails or own_email in other_links[claim.registration_id]:
            continue
        conflicts[claim.email] = LinkConflict(email=claim.email, claimed_by=claim.registration_id)

    return [conflicts[email] for email in own_links if email in conflicts]


def resolve_group_links(registration: Registration, raw_members: str | Iterable[str] | None) -> LinkResolution:
    """Replace the link set of a registration and report conflicts.

    Partner registrations keep at most one email, solo registrations none, and
    the member's own email is never linked. Links still present keep their
    seniority, links no longer listed are removed.

    Args:
        registration: Registration being linked
        raw_members: Member emails as entered by the user

    Returns:
        LinkResolution with the linked emails and the conflicting ones
    """
    own_email = (registration.member.email or "").lower()
    emails = [email for email in normalize_emails(raw_members) if email != own_email]
    emails = _trim_for_trip_type(registration.trip_type, emails)

    with transaction.atomic():
        existing = {link.email: link for link in registration.links.all()}
        for email, link in existing.items():
            if email not in emails:
                link.delete()
        for email in emails:
            if email not in existing:
                GroupLink.objects.create(registration=registration, trip_id=registration.trip_id, email=email)

    conflicts = find_link_conflicts(registration)
    if conflicts:
        logger.info(
            "Registration %s has link conflicts: %s", registration.id, ", ".join(c.email for c in conflicts)
        )
    return LinkResolution(emails=emails, conflicts=conflicts)


def get_group_resolution(registration: Registration) -> LinkResolution:
    """Build the current link resolution of a registration without changing it."""
    emails = list(registration.links.order_by("id").values_list("email", flat=True))
    return LinkResolution(emails=emails, conflicts=find_link_conflicts(registration))


def get_group_size(registration: Registration) -> int:
    """Return the group size counted for discounts: the member plus non-conflicting links."""
    if registration.trip_type == TripType.SOLO:
        return 1
    return get_group_resolution(registration).group_size


def get_pending_members(registration: Registration, emails: Iterable[str]) -> list[str]:
    """Return linked emails with no active registration on the same trip."""
    emails = list(emails)
    if not emails:
        return []
    registered = set(
        Registration.objects.filter(
            trip_id=registration.trip_id,
            cancelled_at__isnull=True,
            member__email__in=emails,
        ).values_list("member__email", flat=True)
    )
    registered = {email.lower() for email in registered}
    return [email for email in emails if email not in registered]


def get_trip_group_conflicts(trip: Trip) -> list[dict]:
    """List the emails of a trip linked by more than one group.

    Args:
        trip: Trip to inspect

    Returns:
        One entry per conflicting email, with the registration holding it and
        the later registrations that tried to link it
    """
    entries = {}
    registrations = (
        Registration.objects.filter(trip=trip, cancelled_at__isnull=True, links__deleted__isnull=True)
        .exclude(links=None)
        .select_related("member")
        .distinct()
        .order_by("id")
    )
    for registration in registrations:
        for conflict in find_link_conflicts(registration):
            entry = entries.setdefault(
                conflict.email, {"email": conflict.email, "claimedBy": conflict.claimed_by, "registrations": []}
            )
            entry["registrations"].append(registration.id)
    return list(entries.values())
