"""
Commerce — Models

Counter sales and supplier purchases. Neither touches Product.current_stock
directly: finalising a sale and receiving a purchase post through
inventory.services.StockLedger with reference_type/reference_id pointing
back here.

@file commerce/models.py
"""

from decimal import Decimal

from django.conf import settings
from django.db import models
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from core.constants import MONEY_DECIMAL_PLACES, MONEY_MAX_DIGITS
from core.models import BaseModel


def _money_field(verbose_name, **kwargs):
    kwargs.setdefault('default', Decimal('0.00'))
    return models.DecimalField(
        verbose_name,
        max_digits=MONEY_MAX_DIGITS,
        decimal_places=MONEY_DECIMAL_PLACES,
        **kwargs,
    )


# ---------------------------------------------------------------------------
# Sales
# ---------------------------------------------------------------------------

class Sale(BaseModel):
    """
    A finalised counter sale. Created only by SaleService.finalize_sale,
    together with its lines and their `out` movements.
    """

    class SaleType(models.TextChoices):
        CASH = 'cash', _('Cash')
        CREDIT = 'credit', _('Credit')

    class StatusChoices(models.TextChoices):
        PENDING = 'pending', _('Pending')
        PAID = 'paid', _('Paid')
        CANCELLED = 'cancelled', _('Cancelled')

    class PaymentMethod(models.TextChoices):
        CASH = 'cash', _('Cash')
        CARD = 'card', _('Card')
        TRANSFER = 'transfer', _('Transfer')
        QR = 'qr', _('QR')
        MIXED = 'mixed', _('Mixed')

    sale_number = models.CharField(_('sale number'), max_length=20, unique=True)
    customer = models.ForeignKey(
        'repairs.Customer',
        null=True, blank=True,
        on_delete=models.SET_NULL,
        related_name='sales',
        verbose_name=_('customer'),
    )
    seller = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True, blank=True,
        on_delete=models.SET_NULL,
        related_name='sales',
        verbose_name=_('seller'),
    )
    sale_type = models.CharField(
        _('sale type'), max_length=10,
        choices=SaleType.choices, default=SaleType.CASH,
    )
    subtotal = _money_field(_('subtotal'))
    discount = _money_field(_('discount'))
    taxes = _money_field(_('taxes'))
    total = _money_field(_('total'))
    advance_payment = _money_field(_('advance payment'))
    status = models.CharField(
        _('status'), max_length=10,
        choices=StatusChoices.choices, default=StatusChoices.PENDING,
        db_index=True,
    )
    payment_method = models.CharField(
        _('payment method'), max_length=10,
        choices=PaymentMethod.choices, default=PaymentMethod.CASH,
    )
    notes = models.TextField(_('notes'), blank=True)
    sale_date = models.DateTimeField(_('sale date'), default=timezone.now, db_index=True)

    class Meta:
        verbose_name = _('sale')
        verbose_name_plural = _('sales')
        ordering = ['-sale_date', '-id']
        constraints = [
            models.CheckConstraint(
                condition=(
                    models.Q(subtotal__gte=0)
                    & models.Q(discount__gte=0)
                    & models.Q(taxes__gte=0)
                    & models.Q(total__gte=0)
                    & models.Q(advance_payment__gte=0)
                ),
                name='sale_money_non_negative',
            ),
        ]

    def __str__(self):
        return f'{self.sale_number} ({self.status})'

    @property
    def pending_balance(self) -> Decimal:
        return max(self.total - self.advance_payment, Decimal('0.00'))


class SaleLine(models.Model):
    sale = models.ForeignKey(
        Sale,
        on_delete=models.CASCADE,
        related_name='lines',
        verbose_name=_('sale'),
    )
    product = models.ForeignKey(
        'inventory.Product',
        on_delete=models.PROTECT,
        related_name='sale_lines',
        verbose_name=_('product'),
    )
    quantity = models.PositiveIntegerField(_('quantity'))
    unit_price = _money_field(_('unit price'))
    item_discount = _money_field(_('item discount'))
    total_price = models.DecimalField(
        _('total price'), max_digits=MONEY_MAX_DIGITS + 2,
        decimal_places=MONEY_DECIMAL_PLACES, default=Decimal('0.00'),
    )

    class Meta:
        verbose_name = _('sale line')
        verbose_name_plural = _('sale lines')
        ordering = ['sale', 'id']
        constraints = [
            models.CheckConstraint(condition=models.Q(quantity__gte=1), name='sale_line_quantity_positive'),
        ]

    def __str__(self):
        return f'{self.sale_id}: {self.product_id} × {self.quantity}'


# ---------------------------------------------------------------------------
# Purchases
# ---------------------------------------------------------------------------

class Supplier(BaseModel):

    class StatusChoices(models.TextChoices):
        ACTIVE = 'active', _('Active')
        INACTIVE = 'inactive', _('Inactive')

    name = models.CharField(_('name'), max_length=100, db_index=True)
    contact_person = models.CharField(_('contact person'), max_length=100, blank=True)
    phone = models.CharField(_('phone'), max_length=20, blank=True)
    email = models.EmailField(_('email'), blank=True)
    address = models.TextField(_('address'), blank=True)
    tax_id = models.CharField(_('tax ID'), max_length=50, blank=True)
    delivery_time_days = models.PositiveSmallIntegerField(_('delivery time (days)'), default=7)
    status = models.CharField(
        _('status'), max_length=10,
        choices=StatusChoices.choices, default=StatusChoices.ACTIVE,
    )
    notes = models.TextField(_('notes'), blank=True)

    class Meta:
        verbose_name = _('supplier')
        verbose_name_plural = _('suppliers')
        ordering = ['name']

    def __str__(self):
        return self.name


class Purchase(BaseModel):
    """
    A purchase order to a supplier. Creating it has no stock effect; each
    receipt books `in` movements for the quantities actually delivered.
    """

    class StatusChoices(models.TextChoices):
        PENDING = 'pending', _('Pending')
        PARTIAL = 'partial', _('Partially received')
        RECEIVED = 'received', _('Received')
        CANCELLED = 'cancelled', _('Cancelled')

    purchase_number = models.CharField(_('purchase number'), max_length=20, unique=True)
    supplier = models.ForeignKey(
        Supplier,
        on_delete=models.PROTECT,
        related_name='purchases',
        verbose_name=_('supplier'),
    )
    status = models.CharField(
        _('status'), max_length=10,
        choices=StatusChoices.choices, default=StatusChoices.PENDING,
        db_index=True,
    )
    subtotal = _money_field(_('subtotal'))
    discount = _money_field(_('discount'))
    taxes = _money_field(_('taxes'))
    total = _money_field(_('total'))
    order_date = models.DateTimeField(_('order date'), default=timezone.now, db_index=True)
    promised_date = models.DateField(_('promised date'), null=True, blank=True)
    received_date = models.DateField(_('received date'), null=True, blank=True)
    notes = models.TextField(_('notes'), blank=True)

    class Meta:
        verbose_name = _('purchase')
        verbose_name_plural = _('purchases')
        ordering = ['-order_date', '-id']

    def __str__(self):
        return f'{self.purchase_number} ({self.status})'


class PurchaseLine(models.Model):
    purchase = models.ForeignKey(
        Purchase,
        on_delete=models.CASCADE,
        related_name='lines',
        verbose_name=_('purchase'),
    )
    product = models.ForeignKey(
        'inventory.Product',
        on_delete=models.PROTECT,
        related_name='purchase_lines',
        verbose_name=_('product'),
    )
    quantity_ordered = models.PositiveIntegerField(_('quantity ordered'))
    quantity_received = models.PositiveIntegerField(_('quantity received'), default=0)
    unit_cost = _money_field(_('unit cost'))

    class Meta:
        verbose_name = _('purchase line')
        verbose_name_plural = _('purchase lines')
        ordering = ['purchase', 'id']
        constraints = [
            models.CheckConstraint(
                condition=models.Q(quantity_ordered__gte=1),
                name='purchase_line_ordered_positive',
            ),
            models.CheckConstraint(
                condition=models.Q(quantity_received__lte=models.F('quantity_ordered')),
                name='purchase_line_received_within_ordered',
            ),
        ]

    def __str__(self):
        return f'{self.purchase_id}: {self.product_id} {self.quantity_received}/{self.quantity_ordered}'

    @property
    def quantity_pending(self) -> int:
        return self.quantity_ordered - self.quantity_received

    @property
    def line_total(self) -> Decimal:
        return self.unit_cost * self.quantity_ordered
