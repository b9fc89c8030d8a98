import uuid

import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

	initial = True

	dependencies = []

	operations = [
		migrations.CreateModel(
			name="User",
			fields=[
				("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
				("email", models.EmailField(max_length=254, unique=True)),
				("display_name", models.CharField(blank=True, max_length=200)),
				("created_at", models.DateTimeField(auto_now_add=True)),
			],
		),
		migrations.CreateModel(
			name="Merchant",
			fields=[
				("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
				("business_name", models.CharField(max_length=200)),
				("status", models.CharField(choices=[("active", "Active"), ("pending", "Pending"), ("suspended", "Suspended")], default="pending", max_length=16)),
				("created_at", models.DateTimeField(auto_now_add=True)),
				("owner", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="merchants", to="core.user")),
			],
		),
		migrations.CreateModel(
			name="MerchantLoyaltyConfig",
			fields=[
				("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
				("issue_rate_per_dollar", models.PositiveSmallIntegerField(default=50)),
				("redeem_cap_percentage", models.PositiveSmallIntegerField(default=20)),
				("point_bank_included", models.BigIntegerField(default=0)),
				("point_bank_purchased", models.BigIntegerField(default=0)),
				("subscription_tier", models.CharField(default="starter", max_length=32)),
				("subscription_status", models.CharField(choices=[("beta-free", "Beta (free)"), ("active", "Active"), ("past-due", "Past due"), ("canceled", "Canceled")], default="beta-free", max_length=16)),
				("version", models.PositiveIntegerField(default=0)),
				("created_at", models.DateTimeField(auto_now_add=True)),
				("updated_at", models.DateTimeField(auto_now=True)),
				("merchant", models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, related_name="loyalty_config", to="core.merchant")),
			],
			options={
				"constraints": [
					models.CheckConstraint(condition=models.Q(point_bank_included__gte=-models.F("point_bank_purchased")), name="loyalty_config_bank_non_negative"),
				],
			},
		),
		migrations.CreateModel(
			name="Wallet",
			fields=[
				("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
				("total_points", models.BigIntegerField(default=0)),
				("version", models.PositiveIntegerField(default=0)),
				("metadata", models.JSONField(blank=True, default=dict)),
				("created_at", models.DateTimeField(auto_now_add=True)),
				("updated_at", models.DateTimeField(auto_now=True)),
				("user", models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, related_name="wallet", to="core.user")),
			],
			options={
				"constraints": [
					models.CheckConstraint(condition=models.Q(total_points__gte=0), name="wallet_total_points_non_negative"),
				],
			},
		),
		migrations.CreateModel(
			name="UserMerchantEarning",
			fields=[
				("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
				("total_earned", models.BigIntegerField(default=0)),
				("version", models.PositiveIntegerField(default=0)),
				("created_at", models.DateTimeField(auto_now_add=True)),
				("updated_at", models.DateTimeField(auto_now=True)),
				("merchant", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="user_earnings", to="core.merchant")),
				("user", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="merchant_earnings", to="core.user")),
			],
			options={
				"constraints": [
					models.UniqueConstraint(fields=("user", "merchant"), name="user_merchant_earning_unique"),
					models.CheckConstraint(condition=models.Q(total_earned__gte=0), name="user_merchant_earning_non_negative"),
				],
			},
		),
		migrations.CreateModel(
			name="LedgerEntry",
			fields=[
				("id", models.BigAutoField(primary_key=True, serialize=False)),
				("created_at", models.DateTimeField(auto_now_add=True)),
				("type", models.CharField(choices=[("mint", "Mint"), ("burn", "Burn")], max_length=8)),
				("points", models.BigIntegerField()),
				("cents_value", models.BigIntegerField(blank=True, null=True)),
				("bucket_used", models.CharField(blank=True, choices=[("Included", "Included"), ("Mixed", "Mixed")], default="", max_length=16)),
				("reference", models.CharField(blank=True, max_length=255, null=True)),
				("metadata", models.JSONField(blank=True, default=dict)),
				("merchant", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="ledger_entries", to="core.merchant")),
				("reversed_of", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="reversals", to="core.ledgerentry")),
				("user", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="ledger_entries", to="core.user")),
			],
			options={
				"ordering": ["-created_at", "-id"],
				"indexes": [
					models.Index(fields=["user", "-created_at"], name="ledger_user_created_idx"),
				],
				"constraints": [
					models.CheckConstraint(condition=models.Q(points__gt=0), name="ledger_points_positive"),
					models.UniqueConstraint(condition=models.Q(reference__isnull=False), fields=("merchant", "type", "reference"), name="ledger_unique_merchant_reference"),
				],
			},
		),
	]
