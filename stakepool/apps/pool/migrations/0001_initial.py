import uuid

from django.db import migrations, models

import stakepool.apps.pool.models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="StakePosition",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("wallet", models.CharField(max_length=44, unique=True)),
                ("staked_amount", models.BigIntegerField(default=0)),
                ("user_reward_index", stakepool.apps.pool.models.U128Field(default=0)),
                ("total_yield_claimed", models.BigIntegerField(default=0)),
                ("last_synced_at", models.DateTimeField(blank=True, null=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
        ),
        migrations.CreateModel(
            name="PoolDeposit",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("wallet", models.CharField(db_index=True, max_length=44)),
                ("token_account", models.CharField(blank=True, default="", max_length=44)),
                ("amount", models.BigIntegerField()),
                ("tx_hash", models.CharField(max_length=128, unique=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
        ),
        migrations.CreateModel(
            name="PoolWithdrawal",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("wallet", models.CharField(db_index=True, max_length=44)),
                ("principal_out", models.BigIntegerField()),
                ("interest_out", models.BigIntegerField(default=0)),
                ("tx_hash", models.CharField(max_length=128, unique=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
        ),
        migrations.CreateModel(
            name="YieldAccrual",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("amount", models.BigIntegerField()),
                ("seconds_elapsed", models.BigIntegerField()),
                ("apy_basis_points", models.IntegerField()),
                ("total_staked", models.BigIntegerField()),
                ("reward_index_before", stakepool.apps.pool.models.U128Field(default=0)),
                ("tx_hash", models.CharField(max_length=128, unique=True)),
                (
                    "trigger",
                    models.CharField(
                        choices=[("scheduler", "Scheduler"), ("manual", "Manual")],
                        db_index=True,
                        default="scheduler",
                        max_length=16,
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
        ),
        migrations.CreateModel(
            name="PoolSnapshot",
            fields=[
                ("at", models.DateTimeField(primary_key=True, serialize=False)),
                ("total_staked", models.BigIntegerField()),
                ("total_yield_earned", models.BigIntegerField()),
                ("total_stakers", models.BigIntegerField()),
                ("reward_index", stakepool.apps.pool.models.U128Field()),
                ("last_yield_update", models.BigIntegerField()),
            ],
        ),
    ]
