import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Product",
            fields=[
                ("product_id", models.CharField(max_length=128, primary_key=True, serialize=False)),
                ("stock", models.PositiveIntegerField(default=0)),
            ],
            options={
                "db_table": "code_ledger_product",
                "ordering": ["product_id"],
            },
        ),
        migrations.CreateModel(
            name="LedgerOrder",
            fields=[
                ("order_id", models.CharField(max_length=128, primary_key=True, serialize=False)),
                ("lines", models.JSONField(default=list)),
                ("delivery_codes", models.JSONField(default=dict)),
                ("synthetic_codes", models.JSONField(default=dict)),
                (
                    "status",
                    models.CharField(
                        choices=[("completed", "Completed"), ("voiding", "Voiding"), ("voided", "Voided")],
                        default="completed",
                        max_length=16,
                    ),
                ),
                ("revealed", models.BooleanField(default=False)),
                ("created_at", models.DateTimeField()),
            ],
            options={
                "db_table": "code_ledger_order",
            },
        ),
        migrations.CreateModel(
            name="Code",
            fields=[
                ("id", models.BigAutoField(primary_key=True, serialize=False)),
                ("code", models.CharField(max_length=512)),
                (
                    "status",
                    models.CharField(
                        choices=[("available", "Available"), ("sold", "Sold")],
                        default="available",
                        max_length=16,
                    ),
                ),
                ("sold_order_id", models.CharField(blank=True, max_length=128, null=True)),
                ("synthetic", models.BooleanField(default=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("sold_at", models.DateTimeField(blank=True, null=True)),
                (
                    "product",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="codes",
                        to="code_ledger.product",
                    ),
                ),
            ],
            options={
                "db_table": "code_ledger_code",
                "ordering": ["id"],
                "indexes": [models.Index(fields=["product", "status"], name="code_ledger_code_pool_idx")],
                "constraints": [
                    models.UniqueConstraint(fields=("product", "code"), name="code_ledger_code_product_code_uq")
                ],
            },
        ),
    ]
