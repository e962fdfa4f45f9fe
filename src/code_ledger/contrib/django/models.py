from django.db import models


class Product(models.Model):
    """
    Stock-bearing side of a catalog product.

    ``stock`` caches the number of AVAILABLE codes. It is rewritten in the
    same transaction as every code mutation and never edited on its own.
    """

    product_id = models.CharField(max_length=128, primary_key=True)
    stock = models.PositiveIntegerField(default=0)

    class Meta:
        db_table = "code_ledger_product"
        ordering = ["product_id"]

    def __str__(self) -> str:
        return f"{self.product_id} ({self.stock})"


class Code(models.Model):
    """One redeemable code. Rows are never deleted."""

    class Status(models.TextChoices):
        AVAILABLE = "available"
        SOLD = "sold"

    id = models.BigAutoField(primary_key=True)
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name="codes")
    code = models.CharField(max_length=512)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.AVAILABLE)
    sold_order_id = models.CharField(max_length=128, null=True, blank=True)
    synthetic = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    sold_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "code_ledger_code"
        ordering = ["id"]
        constraints = [
            models.UniqueConstraint(fields=["product", "code"], name="code_ledger_code_product_code_uq"),
        ]
        indexes = [
            models.Index(fields=["product", "status"], name="code_ledger_code_pool_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.product_id}:{self.status}"


class LedgerOrder(models.Model):
    """Order record holding frozen copies of the delivered code strings."""

    class Status(models.TextChoices):
        COMPLETED = "completed"
        VOIDING = "voiding"
        VOIDED = "voided"

    order_id = models.CharField(max_length=128, primary_key=True)
    lines = models.JSONField(default=list)
    delivery_codes = models.JSONField(default=dict)
    synthetic_codes = models.JSONField(default=dict)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.COMPLETED)
    revealed = models.BooleanField(default=False)
    created_at = models.DateTimeField()

    class Meta:
        db_table = "code_ledger_order"

    def __str__(self) -> str:
        return f"{self.order_id} ({self.status})"
