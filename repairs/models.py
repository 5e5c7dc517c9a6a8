"""
Repairs — Models

Customers, repair orders with their 9-state status machine and money
fields, the insert-only OrderHistory audit chain, and OrderPart, the
consumption link between an order and the products it used.

@file repairs/models.py
"""

from decimal import Decimal

from django.conf import settings
from django.db import models
from django.db.models import Sum
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from core.constants import MONEY_DECIMAL_PLACES, MONEY_MAX_DIGITS
from core.models import BaseModel, InsertOnlyMixin


class RepairStatus(models.TextChoices):
    RECEIVED = 'received', _('Received')
    DIAGNOSING = 'diagnosing', _('Diagnosing')
    WAITING_PARTS = 'waiting_parts', _('Waiting for parts')
    REPAIRING = 'repairing', _('Repairing')
    REPAIRED = 'repaired', _('Repaired')
    UNREPAIRABLE = 'unrepairable', _('Unrepairable')
    WAITING_CUSTOMER = 'waiting_customer', _('Waiting for customer')
    DELIVERED = 'delivered', _('Delivered')
    CANCELLED = 'cancelled', _('Cancelled')


TERMINAL_STATUSES = frozenset({RepairStatus.DELIVERED, RepairStatus.CANCELLED})


def _money_field(verbose_name, **kwargs):
    return models.DecimalField(
        verbose_name,
        max_digits=MONEY_MAX_DIGITS,
        decimal_places=MONEY_DECIMAL_PLACES,
        default=Decimal('0.00'),
        **kwargs,
    )


class Customer(BaseModel):
    """Passive reference data for orders and sales."""

    class StatusChoices(models.TextChoices):
        ACTIVE = 'active', _('Active')
        INACTIVE = 'inactive', _('Inactive')

    first_name = models.CharField(_('first name'), max_length=100)
    last_name = models.CharField(_('last name'), max_length=100, blank=True)
    document_number = models.CharField(
        _('document number'), max_length=30, unique=True, null=True, blank=True,
    )
    phone = models.CharField(_('phone'), max_length=20, blank=True)
    email = models.EmailField(_('email'), blank=True)
    address = models.TextField(_('address'), blank=True)
    status = models.CharField(
        _('status'), max_length=10,
        choices=StatusChoices.choices, default=StatusChoices.ACTIVE,
    )

    class Meta:
        verbose_name = _('customer')
        verbose_name_plural = _('customers')
        ordering = ['first_name', 'last_name']

    def __str__(self):
        return self.full_name

    @property
    def full_name(self) -> str:
        return f'{self.first_name} {self.last_name}'.strip()


class RepairOrder(BaseModel):
    """
    A device left for repair.

    status and the four money fields are written only by
    repairs.services.RepairOrderService. pending_balance is derived on
    every read, never stored.
    """

    class PriorityChoices(models.TextChoices):
        LOW = 'low', _('Low')
        NORMAL = 'normal', _('Normal')
        HIGH = 'high', _('High')
        URGENT = 'urgent', _('Urgent')

    order_number = models.CharField(_('order number'), max_length=20, unique=True)
    customer = models.ForeignKey(
        Customer,
        on_delete=models.PROTECT,
        related_name='repair_orders',
        verbose_name=_('customer'),
    )
    received_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True, blank=True,
        on_delete=models.SET_NULL,
        related_name='received_repair_orders',
        verbose_name=_('received by'),
    )
    technician = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True, blank=True,
        on_delete=models.SET_NULL,
        related_name='assigned_repair_orders',
        verbose_name=_('technician'),
    )

    device_brand = models.CharField(_('device brand'), max_length=100)
    device_model = models.CharField(_('device model'), max_length=100)
    device_serial = models.CharField(_('device serial'), max_length=100, blank=True)
    imei = models.CharField(_('IMEI'), max_length=50, blank=True)
    device_color = models.CharField(_('device color'), max_length=50, blank=True)
    unlock_pattern = models.CharField(_('unlock pattern'), max_length=100, blank=True)
    included_accessories = models.TextField(_('included accessories'), blank=True)

    problem_description = models.TextField(_('problem description'))
    customer_notes = models.TextField(_('customer notes'), blank=True)
    technical_notes = models.TextField(_('technical notes'), blank=True)
    initial_diagnosis = models.TextField(_('initial diagnosis'), blank=True)
    final_diagnosis = models.TextField(_('final diagnosis'), blank=True)
    solution_applied = models.TextField(_('solution applied'), blank=True)

    status = models.CharField(
        _('status'), max_length=20,
        choices=RepairStatus.choices, default=RepairStatus.RECEIVED,
        db_index=True,
    )
    priority = models.CharField(
        _('priority'), max_length=10,
        choices=PriorityChoices.choices, default=PriorityChoices.NORMAL,
        db_index=True,
    )

    diagnosis_cost = _money_field(_('diagnosis cost'))
    repair_cost = _money_field(_('repair cost'))
    total_cost = _money_field(_('total cost'))
    advance_payment = _money_field(_('advance payment'))

    received_date = models.DateTimeField(_('received date'), default=timezone.now, db_index=True)
    promised_date = models.DateTimeField(_('promised date'), null=True, blank=True)
    diagnosis_date = models.DateTimeField(_('diagnosis date'), null=True, blank=True)
    repair_date = models.DateTimeField(_('repair date'), null=True, blank=True)
    delivery_date = models.DateTimeField(_('delivery date'), null=True, blank=True)

    class Meta:
        verbose_name = _('repair order')
        verbose_name_plural = _('repair orders')
        ordering = ['-received_date', '-id']
        indexes = [
            models.Index(fields=['status', 'priority'], name='order_status_priority_idx'),
            models.Index(fields=['customer', 'status'], name='order_customer_status_idx'),
        ]
        constraints = [
            models.CheckConstraint(
                condition=(
                    models.Q(diagnosis_cost__gte=0)
                    & models.Q(repair_cost__gte=0)
                    & models.Q(total_cost__gte=0)
                    & models.Q(advance_payment__gte=0)
                ),
                name='repair_order_money_non_negative',
            ),
        ]

    def __str__(self):
        return f'{self.order_number} — {self.device_brand} {self.device_model} ({self.status})'

    @property
    def pending_balance(self) -> Decimal:
        return max(self.total_cost - self.advance_payment, Decimal('0.00'))

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def parts_total(self) -> Decimal:
        return self.parts.aggregate(total=Sum('total_price'))['total'] or Decimal('0.00')


class OrderHistory(InsertOnlyMixin, models.Model):
    """
    One status transition. previous_status is null only for the creation
    record, so replaying the chain from null rebuilds the current status.
    """

    order = models.ForeignKey(
        RepairOrder,
        on_delete=models.PROTECT,
        related_name='history',
        verbose_name=_('repair order'),
    )
    previous_status = models.CharField(
        _('previous status'), max_length=20,
        choices=RepairStatus.choices, null=True, blank=True,
    )
    new_status = models.CharField(
        _('new status'), max_length=20, choices=RepairStatus.choices,
    )
    changed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True, blank=True,
        on_delete=models.SET_NULL,
        related_name='+',
        verbose_name=_('changed by'),
    )
    notes = models.TextField(_('notes'), blank=True)
    created_at = models.DateTimeField(_('changed at'), auto_now_add=True, db_index=True)

    class Meta:
        verbose_name = _('order history')
        verbose_name_plural = _('order history')
        ordering = ['created_at', 'id']
        indexes = [
            models.Index(fields=['order', 'created_at'], name='history_order_created_idx'),
        ]

    def __str__(self):
        return f'{self.order_id}: {self.previous_status or "∅"} → {self.new_status}'


class OrderPart(models.Model):
    """
    A product consumed by a repair order. At most one row per (order,
    product); repeated use updates quantity and books only the delta.
    """

    order = models.ForeignKey(
        RepairOrder,
        on_delete=models.PROTECT,
        related_name='parts',
        verbose_name=_('repair order'),
    )
    product = models.ForeignKey(
        'inventory.Product',
        on_delete=models.PROTECT,
        related_name='order_parts',
        verbose_name=_('product'),
    )
    quantity = models.PositiveIntegerField(_('quantity'))
    unit_price = _money_field(_('unit price'))
    total_price = models.DecimalField(
        _('total price'), max_digits=MONEY_MAX_DIGITS + 2,
        decimal_places=MONEY_DECIMAL_PLACES, default=Decimal('0.00'),
    )
    used_at = models.DateTimeField(_('used at'), auto_now_add=True)
    updated_at = models.DateTimeField(_('updated at'), auto_now=True)

    class Meta:
        verbose_name = _('order part')
        verbose_name_plural = _('order parts')
        ordering = ['order', 'id']
        constraints = [
            models.UniqueConstraint(fields=['order', 'product'], name='unique_order_product'),
            models.CheckConstraint(condition=models.Q(quantity__gte=1), name='order_part_quantity_positive'),
        ]

    def __str__(self):
        return f'{self.order_id} — {self.product_id} × {self.quantity}'
