"""
Inventory — Service Layer

StockLedger is the single choke point for Product.current_stock: every
write locks the product row, checks its version, updates the counter and
appends exactly one StockMovement inside one savepoint. Version conflicts
and lock errors are retried a bounded number of times, then surfaced as
StorageFailure. AdjustmentService and ProductService are thin producers
on top of the ledger.

@file inventory/services.py
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal

from django.conf import settings
from django.db import OperationalError, transaction
from django.db.models import F, Sum
from django.utils import timezone

from core.constants import AUDIT_ACTION_CREATE, AUDIT_ACTION_UPDATE
from core.exceptions import (
    BusinessRuleViolation,
    ConcurrencyConflict,
    InsufficientStockError,
    InvalidInputError,
    ResourceNotFoundError,
    StorageFailure,
)
from core.services import AuditService

from .models import LEDGER_FIELDS, Product, StockMovement

logger = logging.getLogger('repairshop')

MovementType = StockMovement.MovementType

POSITIVE_TYPES = {MovementType.IN, MovementType.RETURN}
NEGATIVE_TYPES = {MovementType.OUT}


@dataclass(frozen=True)
class LedgerCheck:
    """Result of replaying one product's movement chain against its counter."""

    product_id: int
    current_stock: int
    replayed_stock: int
    movement_count: int
    chain_intact: bool

    @property
    def ok(self) -> bool:
        return self.chain_intact and self.current_stock == self.replayed_stock


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _validate_delta(quantity, movement_type: str) -> None:
    if movement_type not in MovementType.values:
        raise InvalidInputError(detail=f'Invalid movement_type: {movement_type!r}.')
    if not _is_int(quantity) or quantity == 0:
        raise InvalidInputError(detail=f'Quantity must be a non-zero integer, got {quantity!r}.')
    if movement_type in POSITIVE_TYPES and quantity < 0:
        raise InvalidInputError(detail=f'{movement_type!r} movements must be positive.')
    if movement_type in NEGATIVE_TYPES and quantity > 0:
        raise InvalidInputError(detail=f'{movement_type!r} movements must be negative.')


def _assert_can_issue(product: Product, movement_type: str) -> None:
    if movement_type == MovementType.OUT and product.status != Product.StatusChoices.ACTIVE:
        raise BusinessRuleViolation(
            detail=f'Product {product.pk} is {product.status}; it cannot be issued.',
        )


def _lock_product(product_id) -> Product:
    product = Product.objects.select_for_update().filter(pk=product_id).first()
    if product is None:
        raise ResourceNotFoundError(detail=f'Product {product_id} not found.')
    return product


def _default_unit_price(product: Product, movement_type: str) -> Decimal:
    if movement_type == MovementType.IN:
        return product.purchase_price
    return product.sale_price


def _write_movement(
    product: Product,
    *,
    quantity: int,
    movement_type: str,
    actor=None,
    unit_price=None,
    repair_order=None,
    reference_type: str = '',
    reference_id=None,
    reason: str = '',
    notes: str = '',
) -> StockMovement:
    """
    Apply one signed delta to a product already locked by the caller.

    Must run inside a transaction; the conditional UPDATE on version is
    what makes a stale read fail instead of losing an update.
    """
    stock_before = product.current_stock
    stock_after = stock_before + quantity
    if stock_after < 0:
        raise InsufficientStockError(
            product_id=product.pk, requested=-quantity, available=stock_before,
        )

    updated = Product.objects.filter(pk=product.pk, version=product.version).update(
        current_stock=stock_after,
        version=F('version') + 1,
        updated_at=timezone.now(),
    )
    if updated != 1:
        raise ConcurrencyConflict(
            detail=f'Product {product.pk} changed concurrently (version {product.version}).',
        )
    product.current_stock = stock_after
    product.version += 1

    if unit_price is None:
        unit_price = _default_unit_price(product, movement_type)
    unit_price = Decimal(unit_price)

    movement = StockMovement.objects.create(
        product=product,
        movement_type=movement_type,
        quantity=quantity,
        unit_price=unit_price,
        total_cost=unit_price * abs(quantity),
        stock_before=stock_before,
        stock_after=stock_after,
        repair_order=repair_order,
        reference_type=reference_type or '',
        reference_id=reference_id,
        reason=reason or '',
        notes=notes or '',
        created_by=actor,
    )
    logger.info(
        'StockMovement %s %s qty=%+d product=%s stock %s->%s',
        movement.pk, movement_type, quantity, product.pk, stock_before, stock_after,
    )
    return movement


def _run_with_retry(operation, *, label: str):
    """
    Run operation() in its own savepoint, retrying on version conflicts and
    lock errors. Business errors propagate on the first attempt.
    """
    attempts = max(1, getattr(settings, 'STOCK_LEDGER_MAX_RETRIES', 3))
    last_error = None
    for attempt in range(1, attempts + 1):
        try:
            with transaction.atomic():
                return operation()
        except (ConcurrencyConflict, OperationalError) as exc:
            last_error = exc
            logger.warning('%s: attempt %d/%d failed: %s', label, attempt, attempts, exc)
    logger.error('%s: giving up after %d attempts: %s', label, attempts, last_error)
    raise StorageFailure(detail=f'{label} failed after {attempts} attempts: {last_error}')


class StockLedger:
    """Authoritative on-hand quantity and its immutable movement trail."""

    @staticmethod
    def apply(
        *,
        product_id,
        quantity: int,
        movement_type: str,
        actor=None,
        unit_price=None,
        repair_order=None,
        reference_type: str = '',
        reference_id=None,
        reason: str = '',
        notes: str = '',
    ) -> StockMovement:
        """
        Apply a signed delta to one product and append its movement.

        Raises InvalidInputError, ResourceNotFoundError, BusinessRuleViolation
        (issuing an inactive product), InsufficientStockError, or
        StorageFailure once retries are exhausted.
        """
        _validate_delta(quantity, movement_type)

        def operation():
            product = _lock_product(product_id)
            _assert_can_issue(product, movement_type)
            return _write_movement(
                product,
                quantity=quantity,
                movement_type=movement_type,
                actor=actor,
                unit_price=unit_price,
                repair_order=repair_order,
                reference_type=reference_type,
                reference_id=reference_id,
                reason=reason,
                notes=notes,
            )

        return _run_with_retry(operation, label=f'StockLedger.apply product={product_id}')

    @staticmethod
    def set_level(
        *,
        product_id,
        target: int,
        actor=None,
        reason: str = '',
        notes: str = '',
    ) -> StockMovement:
        """Book the adjustment that brings a product to exactly `target` units."""
        if not _is_int(target) or target < 0:
            raise InvalidInputError(detail=f'Target stock must be a non-negative integer, got {target!r}.')

        def operation():
            product = _lock_product(product_id)
            delta = target - product.current_stock
            if delta == 0:
                raise InvalidInputError(
                    detail=f'Product {product_id} already has {target} units; nothing to adjust.',
                )
            return _write_movement(
                product,
                quantity=delta,
                movement_type=MovementType.ADJUSTMENT,
                actor=actor,
                unit_price=Decimal('0.00'),
                reason=reason,
                notes=notes,
            )

        return _run_with_retry(operation, label=f'StockLedger.set_level product={product_id}')

    @staticmethod
    def apply_many(
        *,
        lines: list[dict],
        movement_type: str,
        actor=None,
        repair_order=None,
        reference_type: str = '',
        reference_id=None,
        reason: str = '',
        notes: str = '',
    ) -> list[StockMovement]:
        """
        Post several lines as one unit.

        Each line is {'product_id', 'quantity', 'unit_price'?, 'movement_type'?};
        a line without its own movement_type uses the posting's. Products
        are locked in ascending pk order and every line is validated before
        any is applied, so a posting is either fully applied or not at all.
        """
        if not lines:
            raise InvalidInputError(detail='At least one line is required.')
        lines = [{**line, 'movement_type': line.get('movement_type') or movement_type} for line in lines]
        for line in lines:
            _validate_delta(line.get('quantity'), line['movement_type'])

        def operation():
            product_ids = sorted({line['product_id'] for line in lines})
            products = {
                product.pk: product
                for product in Product.objects.select_for_update().filter(pk__in=product_ids).order_by('pk')
            }
            missing = [pid for pid in product_ids if pid not in products]
            if missing:
                raise ResourceNotFoundError(detail=f'Products not found: {missing}.')

            totals: dict = defaultdict(int)
            types: dict = defaultdict(set)
            for line in lines:
                totals[line['product_id']] += line['quantity']
                types[line['product_id']].add(line['movement_type'])
            for pid in product_ids:
                product = products[pid]
                for line_type in types[pid]:
                    _assert_can_issue(product, line_type)
                if product.current_stock + totals[pid] < 0:
                    raise InsufficientStockError(
                        product_id=pid, requested=-totals[pid], available=product.current_stock,
                    )

            return [
                _write_movement(
                    products[line['product_id']],
                    quantity=line['quantity'],
                    movement_type=line['movement_type'],
                    actor=actor,
                    unit_price=line.get('unit_price'),
                    repair_order=repair_order,
                    reference_type=reference_type,
                    reference_id=reference_id,
                    reason=reason,
                    notes=notes,
                )
                for line in lines
            ]

        return _run_with_retry(operation, label=f'StockLedger.apply_many {reference_type}:{reference_id}')

    # -- read side ---------------------------------------------------------

    @staticmethod
    def get_stock(product_id) -> int:
        stock = Product.objects.filter(pk=product_id).values_list('current_stock', flat=True).first()
        if stock is None:
            raise ResourceNotFoundError(detail=f'Product {product_id} not found.')
        return stock

    @staticmethod
    def replay(product_id) -> int:
        """Rebuild on-hand quantity from the movement chain, starting at zero."""
        total = StockMovement.objects.filter(product_id=product_id).aggregate(total=Sum('quantity'))['total']
        return total or 0

    @staticmethod
    def verify(product_id) -> LedgerCheck:
        current_stock = StockLedger.get_stock(product_id)
        running = 0
        count = 0
        chain_intact = True
        chain = StockMovement.objects.filter(product_id=product_id).order_by('created_at', 'id').values_list(
            'quantity', 'stock_before', 'stock_after',
        )
        for quantity, stock_before, stock_after in chain.iterator():
            if stock_before != running or stock_after != stock_before + quantity:
                chain_intact = False
            running += quantity
            count += 1
        return LedgerCheck(
            product_id=product_id,
            current_stock=current_stock,
            replayed_stock=running,
            movement_count=count,
            chain_intact=chain_intact,
        )

    @staticmethod
    def verify_all() -> list[LedgerCheck]:
        return [StockLedger.verify(pk) for pk in Product.objects.order_by('pk').values_list('pk', flat=True)]


class AdjustmentService:
    """Manual stock corrections, booked as `adjustment` movements."""

    MODES = ('add', 'subtract', 'set')

    @staticmethod
    def adjust(
        *,
        product_id,
        mode: str,
        quantity: int,
        reason: str,
        notes: str = '',
        actor=None,
    ) -> StockMovement:
        if mode not in AdjustmentService.MODES:
            raise InvalidInputError(detail=f'Invalid adjustment mode: {mode!r}.')
        if not reason:
            raise InvalidInputError(detail='A reason is required for manual adjustments.')
        if mode == 'set':
            return StockLedger.set_level(
                product_id=product_id, target=quantity, actor=actor, reason=reason, notes=notes,
            )
        if not _is_int(quantity) or quantity < 1:
            raise InvalidInputError(detail=f'Quantity must be a positive integer, got {quantity!r}.')
        return StockLedger.apply(
            product_id=product_id,
            quantity=quantity if mode == 'add' else -quantity,
            movement_type=MovementType.ADJUSTMENT,
            actor=actor,
            unit_price=Decimal('0.00'),
            reason=reason,
            notes=notes,
        )

    @staticmethod
    @transaction.atomic
    def bulk_adjust(
        *,
        adjustments: list[dict],
        reason: str,
        notes: str = '',
        actor=None,
    ) -> list[StockMovement]:
        """All-or-nothing: any failing adjustment rolls back the whole batch."""
        if not adjustments:
            raise InvalidInputError(detail='At least one adjustment is required.')
        ordered = sorted(adjustments, key=lambda row: row['product_id'])
        return [
            AdjustmentService.adjust(
                product_id=row['product_id'],
                mode=row['mode'],
                quantity=row['quantity'],
                reason=reason,
                notes=notes,
                actor=actor,
            )
            for row in ordered
        ]


class ProductService:
    """Catalogue maintenance. Opening stock goes through the ledger."""

    @staticmethod
    def _reject_ledger_fields(data: dict) -> None:
        forbidden = sorted(set(data) & set(LEDGER_FIELDS))
        if forbidden:
            raise InvalidInputError(
                detail=f'{", ".join(forbidden)} can only change through stock movements.',
            )

    @staticmethod
    @transaction.atomic
    def create_product(*, data: dict, initial_stock: int = 0, actor=None) -> Product:
        ProductService._reject_ledger_fields(data)
        if not _is_int(initial_stock) or initial_stock < 0:
            raise InvalidInputError(detail='Initial stock must be a non-negative integer.')
        product = Product.objects.create(created_by=actor, **data)
        AuditService.log(
            actor=actor,
            action=AUDIT_ACTION_CREATE,
            model_name='Product',
            object_id=product.pk,
            new_values=AuditService.snapshot(product),
        )
        if initial_stock:
            StockLedger.apply(
                product_id=product.pk,
                quantity=initial_stock,
                movement_type=MovementType.IN,
                actor=actor,
                reason='initial_stock',
            )
            product.refresh_from_db()
        return product

    @staticmethod
    @transaction.atomic
    def update_product(*, product_id, data: dict, actor=None) -> Product:
        ProductService._reject_ledger_fields(data)
        product = Product.objects.filter(pk=product_id).first()
        if product is None:
            raise ResourceNotFoundError(detail=f'Product {product_id} not found.')
        old = {field: getattr(product, field) for field in data}
        for field, value in data.items():
            setattr(product, field, value)
        product.updated_by = actor
        product.save(update_fields=[*data, 'updated_by', 'updated_at'])
        AuditService.log(
            actor=actor,
            action=AUDIT_ACTION_UPDATE,
            model_name='Product',
            object_id=product.pk,
            old_values=old,
            new_values=dict(data),
        )
        return product
