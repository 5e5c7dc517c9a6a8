"""
Inventory — Models

Product keeps a denormalised current_stock counter for O(1) reads; the
StockMovement chain is the source of truth the counter caches. Both are
written exclusively by inventory.services.StockLedger. Movements are
insert-only.

@file inventory/models.py
"""

from decimal import Decimal

from django.conf import settings
from django.db import models
from django.utils.translation import gettext_lazy as _

from core.constants import MONEY_DECIMAL_PLACES, MONEY_MAX_DIGITS
from core.models import BaseModel, InsertOnlyMixin

LEDGER_FIELDS = ('current_stock', 'version')


STOCK_LEVELS = ('low', 'out', 'in')


class ProductQuerySet(models.QuerySet):

    def low_stock(self):
        return self.filter(current_stock__lte=models.F('minimum_stock'))

    def stock_level(self, level: str):
        """low: at or under minimum_stock; out: nothing on hand; in: anything on hand."""
        if level == 'low':
            return self.low_stock()
        if level == 'out':
            return self.filter(current_stock=0)
        if level == 'in':
            return self.filter(current_stock__gt=0)
        raise ValueError(f'Unknown stock level: {level!r}')


class Product(BaseModel):
    """
    A stocked item: spare part, accessory, tool or consumable.

    current_stock and version are owned by StockLedger; serializers and
    services expose them read-only.
    """

    class ProductType(models.TextChoices):
        PART = 'part', _('Part')
        ACCESSORY = 'accessory', _('Accessory')
        TOOL = 'tool', _('Tool')
        CONSUMABLE = 'consumable', _('Consumable')
        OTHER = 'other', _('Other')

    class StatusChoices(models.TextChoices):
        ACTIVE = 'active', _('Active')
        INACTIVE = 'inactive', _('Inactive')
        DISCONTINUED = 'discontinued', _('Discontinued')

    code = models.CharField(_('code'), max_length=50, unique=True, null=True, blank=True)
    name = models.CharField(_('name'), max_length=200, db_index=True)
    description = models.TextField(_('description'), blank=True)
    product_type = models.CharField(
        _('product type'), max_length=12,
        choices=ProductType.choices, default=ProductType.PART,
    )
    compatible_model = models.CharField(_('compatible model'), max_length=100, blank=True)
    physical_location = models.CharField(_('physical location'), max_length=100, blank=True)

    current_stock = models.IntegerField(_('current stock'), default=0, editable=False)
    minimum_stock = models.PositiveIntegerField(_('minimum stock'), default=0)
    purchase_price = models.DecimalField(
        _('purchase price'), max_digits=MONEY_MAX_DIGITS,
        decimal_places=MONEY_DECIMAL_PLACES, default=Decimal('0.00'),
    )
    sale_price = models.DecimalField(
        _('sale price'), max_digits=MONEY_MAX_DIGITS,
        decimal_places=MONEY_DECIMAL_PLACES, default=Decimal('0.00'),
    )
    status = models.CharField(
        _('status'), max_length=12,
        choices=StatusChoices.choices, default=StatusChoices.ACTIVE,
        db_index=True,
    )
    version = models.PositiveIntegerField(
        _('version'), default=0, editable=False,
        help_text=_('Optimistic concurrency counter, bumped on every ledger write'),
    )

    objects = ProductQuerySet.as_manager()

    class Meta:
        verbose_name = _('product')
        verbose_name_plural = _('products')
        ordering = ['name']
        indexes = [
            models.Index(fields=['current_stock'], name='product_stock_idx'),
            models.Index(fields=['status', 'product_type'], name='product_status_type_idx'),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(current_stock__gte=0),
                name='product_stock_non_negative',
            ),
        ]

    def __str__(self):
        return f'{self.code} {self.name}' if self.code else self.name

    def save(self, *args, **kwargs):
        # Existing rows never write the ledger-owned columns from memory.
        if not self._state.adding:
            update_fields = kwargs.get('update_fields')
            if update_fields is None:
                kwargs['update_fields'] = [
                    field.name for field in self._meta.concrete_fields
                    if not field.primary_key and field.name not in LEDGER_FIELDS
                ]
            elif set(update_fields) & set(LEDGER_FIELDS):
                raise NotImplementedError(
                    'current_stock and version are written only by StockLedger.',
                )
        super().save(*args, **kwargs)

    @property
    def is_low_stock(self) -> bool:
        return self.current_stock <= self.minimum_stock

    @property
    def profit_amount(self) -> Decimal:
        return self.sale_price - self.purchase_price


class StockMovement(InsertOnlyMixin, models.Model):
    """
    A single immutable, signed change to a product's on-hand quantity.

    stock_after = stock_before + quantity. in/return are positive, out is
    negative, adjustment may be either. repair_order links consumption;
    reference_type/reference_id link sales and purchases.
    """

    class MovementType(models.TextChoices):
        IN = 'in', _('In')
        OUT = 'out', _('Out')
        ADJUSTMENT = 'adjustment', _('Adjustment')
        RETURN = 'return', _('Return')

    product = models.ForeignKey(
        Product,
        on_delete=models.PROTECT,
        related_name='movements',
        verbose_name=_('product'),
    )
    movement_type = models.CharField(
        _('movement type'), max_length=12,
        choices=MovementType.choices, db_index=True,
    )
    quantity = models.IntegerField(_('quantity'))
    unit_price = models.DecimalField(
        _('unit price'), max_digits=MONEY_MAX_DIGITS,
        decimal_places=MONEY_DECIMAL_PLACES, default=Decimal('0.00'),
    )
    total_cost = models.DecimalField(
        _('total cost'), max_digits=MONEY_MAX_DIGITS + 2,
        decimal_places=MONEY_DECIMAL_PLACES, default=Decimal('0.00'),
    )
    stock_before = models.IntegerField(_('stock before'))
    stock_after = models.IntegerField(_('stock after'))
    repair_order = models.ForeignKey(
        'repairs.RepairOrder',
        null=True, blank=True,
        on_delete=models.PROTECT,
        related_name='movements',
        verbose_name=_('repair order'),
    )
    reference_type = models.CharField(
        _('reference type'), max_length=50, blank=True,
        help_text=_('Model name of source record: Sale, Purchase'),
    )
    reference_id = models.PositiveBigIntegerField(_('reference ID'), null=True, blank=True)
    reason = models.CharField(_('reason'), max_length=200, blank=True)
    notes = models.TextField(_('notes'), blank=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True, blank=True,
        on_delete=models.SET_NULL,
        related_name='+',
        verbose_name=_('created by'),
    )
    created_at = models.DateTimeField(
        _('created at'), auto_now_add=True, db_index=True,
    )
    # No updated_at: immutable record.

    class Meta:
        verbose_name = _('stock movement')
        verbose_name_plural = _('stock movements')
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['product', 'created_at'], name='movement_product_created_idx'),
            models.Index(fields=['reference_type', 'reference_id'], name='movement_reference_idx'),
        ]
        constraints = [
            models.CheckConstraint(
                condition=~models.Q(quantity=0),
                name='movement_quantity_non_zero',
            ),
            models.CheckConstraint(
                condition=models.Q(stock_after=models.F('stock_before') + models.F('quantity')),
                name='movement_stock_after_consistent',
            ),
            models.CheckConstraint(
                condition=models.Q(stock_after__gte=0),
                name='movement_stock_after_non_negative',
            ),
        ]

    def __str__(self):
        return f'{self.movement_type} {self.quantity:+d} product={self.product_id} ({self.stock_before}→{self.stock_after})'
