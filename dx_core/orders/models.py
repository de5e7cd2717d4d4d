# dx_core/orders/models.py
from django.db import models
from dx_core.common.models import ScopedModel
from dx_core.patients.models import Patient


class OrderPriority(models.TextChoices):
    ROUTINE = "ROUTINE", "Routine"
    URGENT = "URGENT", "Urgent"
    STAT = "STAT", "Stat"


class DiagnosticOrder(ScopedModel):
    patient = models.ForeignKey(Patient, on_delete=models.PROTECT, related_name="diagnostic_orders")
    priority = models.CharField(max_length=16, choices=OrderPriority.choices, default=OrderPriority.ROUTINE)
    referring_doctor_name = models.CharField(max_length=255, blank=True, default="")

    class Meta:
        db_table = "orders_diagnostic_order"
        indexes = [
            models.Index(fields=["hospital_id", "patient"]),
        ]


class OrderItem(ScopedModel):
    order = models.ForeignKey(DiagnosticOrder, on_delete=models.CASCADE, related_name="items")
    patient = models.ForeignKey(Patient, on_delete=models.PROTECT, related_name="order_items")

    test_code = models.CharField(max_length=64)       # e.g. "CBC"
    test_category = models.CharField(max_length=64)   # e.g. "BLOOD_TEST"
    test_name = models.CharField(max_length=255, blank=True, default="")

    class Meta:
        db_table = "orders_order_item"
        indexes = [
            models.Index(fields=["hospital_id", "order"]),
            models.Index(fields=["hospital_id", "test_code"]),
        ]
