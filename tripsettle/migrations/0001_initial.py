# Generated manually

import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


def base_fields():
    return [
        ("id", models.AutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
        ("deleted", models.DateTimeField(db_index=True, editable=False, null=True)),
        ("deleted_by_cascade", models.BooleanField(default=False, editable=False)),
        ("created", models.DateTimeField(default=django.utils.timezone.now, editable=False)),
        ("updated", models.DateTimeField(auto_now=True)),
    ]


DISCOUNT_KINDS = [("soloFemale", "Solo female"), ("group", "Group"), ("musafir", "Musafir")]


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Member",
            fields=[
                *base_fields(),
                ("name", models.CharField(blank=True, max_length=150)),
                ("email", models.EmailField(blank=True, db_index=True, max_length=254)),
                (
                    "gender",
                    models.CharField(
                        choices=[("m", "Male"), ("f", "Female"), ("o", "Other")], default="o", max_length=1
                    ),
                ),
                (
                    "user",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="member",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={"ordering": ["-updated"], "abstract": False},
        ),
        migrations.CreateModel(
            name="Trip",
            fields=[
                *base_fields(),
                ("name", models.CharField(max_length=150)),
                ("base_price", models.PositiveIntegerField(default=0)),
                ("early_bird_price", models.PositiveIntegerField(default=0)),
                ("early_bird_deadline", models.DateField(blank=True, null=True)),
                ("start_date", models.DateField(blank=True, null=True)),
                ("end_date", models.DateField(blank=True, null=True)),
                ("total_seats", models.PositiveIntegerField(default=0)),
                ("content_version", models.PositiveIntegerField(default=1)),
            ],
            options={"ordering": ["-updated"], "abstract": False},
        ),
        migrations.CreateModel(
            name="TripAddon",
            fields=[
                *base_fields(),
                (
                    "kind",
                    models.CharField(
                        choices=[
                            ("location", "Location"),
                            ("tier", "Tier"),
                            ("room_sharing", "Room sharing"),
                            ("sleep", "Sleep preference"),
                        ],
                        max_length=20,
                    ),
                ),
                ("name", models.CharField(max_length=100)),
                ("price", models.PositiveIntegerField(default=0)),
                ("enabled", models.BooleanField(default=True)),
                ("is_twin", models.BooleanField(default=False)),
                (
                    "trip",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="addons", to="tripsettle.trip"
                    ),
                ),
            ],
            options={
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("deleted", None)),
                        fields=("trip", "kind", "name"),
                        name="unique_trip_addon_without_optional",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="TripConfig",
            fields=[
                *base_fields(),
                ("name", models.CharField(max_length=150)),
                ("value", models.CharField(max_length=1000)),
                (
                    "trip",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="configs", to="tripsettle.trip"
                    ),
                ),
            ],
            options={
                "indexes": [
                    models.Index(
                        condition=models.Q(("deleted__isnull", True)),
                        fields=["trip", "name"],
                        name="tripconfig_trip_name_act",
                    )
                ],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("deleted", None)),
                        fields=("trip", "name"),
                        name="unique_trip_config_without_optional",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="DiscountBudget",
            fields=[
                *base_fields(),
                ("kind", models.CharField(choices=DISCOUNT_KINDS, max_length=20)),
                ("enabled", models.BooleanField(default=False)),
                ("amount_per_unit", models.PositiveIntegerField(default=0)),
                ("total_count", models.PositiveIntegerField(default=0)),
                ("used_count", models.PositiveIntegerField(default=0)),
                ("used_value", models.PositiveIntegerField(default=0)),
                (
                    "trip",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="discount_budgets",
                        to="tripsettle.trip",
                    ),
                ),
            ],
            options={
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("deleted", None)),
                        fields=("trip", "kind"),
                        name="unique_discount_budget_without_optional",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="Registration",
            fields=[
                *base_fields(),
                ("version", models.PositiveIntegerField(default=1)),
                (
                    "trip_type",
                    models.CharField(
                        choices=[("solo", "Solo"), ("group", "Group"), ("partner", "Partner")],
                        default="solo",
                        max_length=10,
                    ),
                ),
                ("city", models.CharField(blank=True, max_length=100)),
                ("tier", models.CharField(blank=True, max_length=100)),
                ("room_sharing", models.CharField(blank=True, max_length=100)),
                ("sleep_preference", models.CharField(blank=True, max_length=100)),
                ("price", models.PositiveIntegerField(default=0)),
                ("discount_type", models.CharField(blank=True, choices=DISCOUNT_KINDS, max_length=20, null=True)),
                ("discount_applied", models.PositiveIntegerField(default=0)),
                ("amount_due", models.PositiveIntegerField(default=0)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("new", "New"),
                            ("onboarding", "Onboarding"),
                            ("payment", "Payment"),
                            ("confirmed", "Confirmed"),
                            ("waitlisted", "Waitlisted"),
                        ],
                        db_index=True,
                        default="new",
                        max_length=15,
                    ),
                ),
                ("cancelled_at", models.DateTimeField(blank=True, null=True)),
                ("refund_status", models.CharField(blank=True, default="", max_length=10)),
                (
                    "member",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="registrations",
                        to="tripsettle.member",
                    ),
                ),
                (
                    "trip",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="registrations",
                        to="tripsettle.trip",
                    ),
                ),
            ],
            options={
                "indexes": [models.Index(fields=["trip", "member"], name="registration_trip_member_idx")],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("cancelled_at", None), ("deleted", None)),
                        fields=("member", "trip"),
                        name="unique_active_registration",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="GroupLink",
            fields=[
                *base_fields(),
                ("email", models.EmailField(db_index=True, max_length=254)),
                (
                    "registration",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="links",
                        to="tripsettle.registration",
                    ),
                ),
                (
                    "trip",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="group_links",
                        to="tripsettle.trip",
                    ),
                ),
            ],
            options={
                "indexes": [models.Index(fields=["trip", "email"], name="grouplink_trip_email_idx")],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("deleted", None)),
                        fields=("registration", "email"),
                        name="unique_group_link_without_optional",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="Wallet",
            fields=[
                *base_fields(),
                (
                    "member",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE, related_name="wallet", to="tripsettle.member"
                    ),
                ),
            ],
            options={"ordering": ["-updated"], "abstract": False},
        ),
        migrations.CreateModel(
            name="WalletTransaction",
            fields=[
                *base_fields(),
                ("direction", models.CharField(choices=[("credit", "Credit"), ("debit", "Debit")], max_length=10)),
                ("amount", models.PositiveIntegerField()),
                ("type", models.CharField(max_length=50)),
                (
                    "status",
                    models.CharField(
                        choices=[("posted", "Posted"), ("void", "Void")],
                        db_index=True,
                        default="posted",
                        max_length=10,
                    ),
                ),
                ("expires_at", models.DateTimeField(blank=True, null=True)),
                ("idempotency_key", models.CharField(blank=True, max_length=150, null=True, unique=True)),
                ("description", models.CharField(blank=True, max_length=500)),
                ("voided_at", models.DateTimeField(blank=True, null=True)),
                (
                    "member",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="wallet_transactions",
                        to="tripsettle.member",
                    ),
                ),
                (
                    "wallet",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="transactions",
                        to="tripsettle.wallet",
                    ),
                ),
            ],
            options={
                "indexes": [
                    models.Index(fields=["member", "status", "direction"], name="wallettx_member_status_idx")
                ],
            },
        ),
        migrations.CreateModel(
            name="TopupRequest",
            fields=[
                *base_fields(),
                ("package_amount", models.PositiveIntegerField()),
                (
                    "status",
                    models.CharField(
                        choices=[("pending", "Pending"), ("processed", "Processed"), ("rejected", "Rejected")],
                        db_index=True,
                        default="pending",
                        max_length=10,
                    ),
                ),
                ("processed_at", models.DateTimeField(blank=True, null=True)),
                ("reason", models.TextField(blank=True)),
                (
                    "member",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="topups", to="tripsettle.member"
                    ),
                ),
                (
                    "processed_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="topups_processed",
                        to="tripsettle.member",
                    ),
                ),
                (
                    "wallet_transaction",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="topups",
                        to="tripsettle.wallettransaction",
                    ),
                ),
            ],
            options={"ordering": ["-updated"], "abstract": False},
        ),
        migrations.CreateModel(
            name="DiscountReservation",
            fields=[
                *base_fields(),
                ("kind", models.CharField(choices=DISCOUNT_KINDS, max_length=20)),
                ("count", models.PositiveIntegerField(default=1)),
                ("value", models.PositiveIntegerField(default=0)),
                ("released_at", models.DateTimeField(blank=True, null=True)),
                (
                    "budget",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="reservations",
                        to="tripsettle.discountbudget",
                    ),
                ),
                (
                    "registration",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="discount_reservations",
                        to="tripsettle.registration",
                    ),
                ),
            ],
            options={
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("deleted", None), ("released_at", None)),
                        fields=("registration",),
                        name="unique_active_reservation",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="Payment",
            fields=[
                *base_fields(),
                ("amount", models.PositiveIntegerField(default=0)),
                ("wallet_amount", models.PositiveIntegerField(default=0)),
                ("discount", models.PositiveIntegerField(default=0)),
                ("discount_type", models.CharField(blank=True, choices=DISCOUNT_KINDS, max_length=20, null=True)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pendingApproval", "Pending approval"),
                            ("approved", "Approved"),
                            ("rejected", "Rejected"),
                        ],
                        db_index=True,
                        default="pendingApproval",
                        max_length=20,
                    ),
                ),
                ("proof", models.CharField(blank=True, max_length=500)),
                ("idempotency_key", models.CharField(blank=True, max_length=100, null=True)),
                ("processed_at", models.DateTimeField(blank=True, null=True)),
                ("reason", models.TextField(blank=True)),
                (
                    "member",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="payments", to="tripsettle.member"
                    ),
                ),
                (
                    "processed_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="payments_processed",
                        to="tripsettle.member",
                    ),
                ),
                (
                    "registration",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="payments",
                        to="tripsettle.registration",
                    ),
                ),
                (
                    "reservation",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="payments",
                        to="tripsettle.discountreservation",
                    ),
                ),
                (
                    "wallet_transaction",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="payments",
                        to="tripsettle.wallettransaction",
                    ),
                ),
            ],
            options={
                "indexes": [models.Index(fields=["registration", "status"], name="payment_reg_status_idx")],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("idempotency_key__isnull", False)),
                        fields=("member", "idempotency_key"),
                        name="unique_payment_idempotency_key",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="Refund",
            fields=[
                *base_fields(),
                ("version", models.PositiveIntegerField(default=1)),
                (
                    "status",
                    models.CharField(
                        choices=[("pending", "Pending"), ("cleared", "Cleared"), ("rejected", "Rejected")],
                        db_index=True,
                        default="pending",
                        max_length=10,
                    ),
                ),
                ("bank_details", models.TextField(blank=True)),
                ("reason", models.TextField(blank=True)),
                ("feedback", models.TextField(blank=True)),
                ("rating", models.PositiveSmallIntegerField(blank=True, null=True)),
                ("staff_note", models.TextField(blank=True)),
                ("amount_paid", models.PositiveIntegerField(default=0)),
                ("refund_percent", models.PositiveSmallIntegerField(default=0)),
                ("processing_fee", models.PositiveIntegerField(default=0)),
                ("refund_amount", models.PositiveIntegerField(default=0)),
                ("tier_label", models.CharField(blank=True, max_length=100)),
                (
                    "settlement_status",
                    models.CharField(
                        choices=[("none", "None"), ("posted", "Posted")], default="none", max_length=10
                    ),
                ),
                ("settlement_key", models.CharField(blank=True, max_length=100, null=True, unique=True)),
                ("settled_at", models.DateTimeField(blank=True, null=True)),
                ("processed_at", models.DateTimeField(blank=True, null=True)),
                (
                    "member",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="refunds", to="tripsettle.member"
                    ),
                ),
                (
                    "processed_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="refunds_processed",
                        to="tripsettle.member",
                    ),
                ),
                (
                    "registration",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="refunds",
                        to="tripsettle.registration",
                    ),
                ),
                (
                    "wallet_transaction",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="refunds",
                        to="tripsettle.wallettransaction",
                    ),
                ),
            ],
            options={
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("deleted", None), ("status__in", ["pending", "cleared"])),
                        fields=("registration",),
                        name="unique_open_refund",
                    )
                ],
            },
        ),
    ]
