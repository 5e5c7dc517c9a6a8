"""
Tests — StockLedger: apply, set_level, apply_many, replay/verify, retry
exhaustion. AdjustmentService add/subtract/set and bulk rollback.
ProductService opening stock and ledger-field protection.

@file inventory/tests/test_services.py
"""

from decimal import Decimal
from unittest import mock

import pytest
from django.db import OperationalError

from core.exceptions import (
    BusinessRuleViolation,
    ConcurrencyConflict,
    InsufficientStockError,
    InvalidInputError,
    ResourceNotFoundError,
    StorageFailure,
)
from core.models import AuditLog
from inventory import services as ledger_module
from inventory.models import Product, StockMovement
from inventory.services import AdjustmentService, ProductService, StockLedger
from tests.factories import ProductFactory, UserFactory


pytestmark = pytest.mark.django_db

IN = StockMovement.MovementType.IN
OUT = StockMovement.MovementType.OUT
RETURN = StockMovement.MovementType.RETURN
ADJUSTMENT = StockMovement.MovementType.ADJUSTMENT


class TestApply:

    def test_debit_updates_counter_and_appends_movement(self):
        product = ProductFactory(stock=10)
        user = UserFactory()
        movement = StockLedger.apply(product_id=product.pk, quantity=-3, movement_type=OUT, actor=user)
        product.refresh_from_db()
        assert product.current_stock == 7
        assert (movement.stock_before, movement.stock_after) == (10, 7)
        assert movement.created_by == user
        assert movement.unit_price == product.sale_price
        assert movement.total_cost == product.sale_price * 3

    def test_in_defaults_to_purchase_price(self):
        product = ProductFactory()
        movement = StockLedger.apply(product_id=product.pk, quantity=4, movement_type=IN)
        assert movement.unit_price == product.purchase_price

    def test_debit_to_exactly_zero_allowed(self):
        product = ProductFactory(stock=2)
        StockLedger.apply(product_id=product.pk, quantity=-2, movement_type=OUT)
        assert StockLedger.get_stock(product.pk) == 0

    def test_insufficient_stock_rejected_without_writes(self):
        product = ProductFactory(stock=2)
        with pytest.raises(InsufficientStockError) as excinfo:
            StockLedger.apply(product_id=product.pk, quantity=-3, movement_type=OUT)
        assert excinfo.value.product_id == product.pk
        assert excinfo.value.requested == 3
        assert excinfo.value.available == 2
        assert StockLedger.get_stock(product.pk) == 2
        assert product.movements.count() == 1

    @pytest.mark.parametrize('quantity', [0, 1.5, '3', True])
    def test_invalid_quantity(self, quantity):
        product = ProductFactory(stock=5)
        with pytest.raises(InvalidInputError):
            StockLedger.apply(product_id=product.pk, quantity=quantity, movement_type=ADJUSTMENT)

    @pytest.mark.parametrize('quantity, movement_type', [(-1, IN), (-1, RETURN), (1, OUT)])
    def test_sign_must_match_movement_type(self, quantity, movement_type):
        product = ProductFactory(stock=5)
        with pytest.raises(InvalidInputError):
            StockLedger.apply(product_id=product.pk, quantity=quantity, movement_type=movement_type)

    def test_unknown_movement_type(self):
        product = ProductFactory(stock=5)
        with pytest.raises(InvalidInputError):
            StockLedger.apply(product_id=product.pk, quantity=1, movement_type='gift')

    def test_unknown_product(self):
        with pytest.raises(ResourceNotFoundError):
            StockLedger.apply(product_id=999999, quantity=1, movement_type=IN)

    def test_out_on_discontinued_product_rejected(self):
        product = ProductFactory(stock=5)
        ProductService.update_product(product_id=product.pk, data={'status': Product.StatusChoices.DISCONTINUED})
        with pytest.raises(BusinessRuleViolation):
            StockLedger.apply(product_id=product.pk, quantity=-1, movement_type=OUT)

    def test_adjustment_on_discontinued_product_allowed(self):
        product = ProductFactory(stock=5)
        ProductService.update_product(product_id=product.pk, data={'status': Product.StatusChoices.DISCONTINUED})
        StockLedger.apply(product_id=product.pk, quantity=-5, movement_type=ADJUSTMENT, reason='write-off')
        assert StockLedger.get_stock(product.pk) == 0

    def test_each_write_bumps_version(self):
        product = ProductFactory(stock=5)
        StockLedger.apply(product_id=product.pk, quantity=-1, movement_type=OUT)
        StockLedger.apply(product_id=product.pk, quantity=2, movement_type=RETURN)
        product.refresh_from_db()
        assert product.version == 3


class TestRetry:

    def test_conflicts_retried_then_storage_failure(self, settings):
        settings.STOCK_LEDGER_MAX_RETRIES = 3
        product = ProductFactory(stock=5)
        with mock.patch.object(
            ledger_module, '_write_movement', side_effect=ConcurrencyConflict(),
        ) as write:
            with pytest.raises(StorageFailure):
                StockLedger.apply(product_id=product.pk, quantity=-1, movement_type=OUT)
        assert write.call_count == 3
        assert StockLedger.get_stock(product.pk) == 5

    def test_transient_lock_error_recovers(self, settings):
        settings.STOCK_LEDGER_MAX_RETRIES = 3
        product = ProductFactory(stock=5)
        real_write = ledger_module._write_movement
        calls = {'n': 0}

        def flaky(*args, **kwargs):
            calls['n'] += 1
            if calls['n'] == 1:
                raise OperationalError('database is locked')
            return real_write(*args, **kwargs)

        with mock.patch.object(ledger_module, '_write_movement', side_effect=flaky):
            StockLedger.apply(product_id=product.pk, quantity=-1, movement_type=OUT)
        assert calls['n'] == 2
        assert StockLedger.get_stock(product.pk) == 4
        assert StockLedger.verify(product.pk).ok

    def test_stale_version_is_a_conflict(self):
        product = ProductFactory(stock=5)
        stale = Product.objects.get(pk=product.pk)
        StockLedger.apply(product_id=product.pk, quantity=-1, movement_type=OUT)
        with pytest.raises(ConcurrencyConflict):
            ledger_module._write_movement(stale, quantity=-1, movement_type=OUT)

    def test_business_errors_are_not_retried(self):
        product = ProductFactory(stock=1)
        with mock.patch.object(ledger_module, '_lock_product', wraps=ledger_module._lock_product) as lock:
            with pytest.raises(InsufficientStockError):
                StockLedger.apply(product_id=product.pk, quantity=-2, movement_type=OUT)
        assert lock.call_count == 1


class TestSetLevel:

    def test_set_level_books_difference(self):
        product = ProductFactory(stock=10)
        movement = StockLedger.set_level(product_id=product.pk, target=4, reason='count')
        assert movement.quantity == -6
        assert movement.movement_type == ADJUSTMENT
        assert StockLedger.get_stock(product.pk) == 4

    def test_set_level_same_value_rejected(self):
        product = ProductFactory(stock=10)
        with pytest.raises(InvalidInputError):
            StockLedger.set_level(product_id=product.pk, target=10)

    def test_set_level_negative_rejected(self):
        product = ProductFactory(stock=10)
        with pytest.raises(InvalidInputError):
            StockLedger.set_level(product_id=product.pk, target=-1)


class TestApplyMany:

    def test_all_lines_applied(self):
        a = ProductFactory(stock=5)
        b = ProductFactory(stock=5)
        movements = StockLedger.apply_many(
            lines=[
                {'product_id': b.pk, 'quantity': -2},
                {'product_id': a.pk, 'quantity': -1},
                {'product_id': a.pk, 'quantity': -3},
            ],
            movement_type=OUT,
            reference_type='Sale',
            reference_id=1,
        )
        assert len(movements) == 3
        assert StockLedger.get_stock(a.pk) == 1
        assert StockLedger.get_stock(b.pk) == 3
        assert StockLedger.verify(a.pk).ok

    def test_one_short_line_rejects_everything(self):
        a = ProductFactory(stock=5)
        b = ProductFactory(stock=1)
        with pytest.raises(InsufficientStockError):
            StockLedger.apply_many(
                lines=[
                    {'product_id': a.pk, 'quantity': -2},
                    {'product_id': b.pk, 'quantity': -2},
                ],
                movement_type=OUT,
            )
        assert StockLedger.get_stock(a.pk) == 5
        assert StockLedger.get_stock(b.pk) == 1
        assert not StockMovement.objects.filter(movement_type=OUT).exists()

    def test_aggregated_lines_checked_against_stock(self):
        a = ProductFactory(stock=3)
        with pytest.raises(InsufficientStockError):
            StockLedger.apply_many(
                lines=[{'product_id': a.pk, 'quantity': -2}, {'product_id': a.pk, 'quantity': -2}],
                movement_type=OUT,
            )
        assert StockLedger.get_stock(a.pk) == 3

    def test_missing_product(self):
        a = ProductFactory(stock=3)
        with pytest.raises(ResourceNotFoundError):
            StockLedger.apply_many(
                lines=[{'product_id': a.pk, 'quantity': -1}, {'product_id': 999999, 'quantity': -1}],
                movement_type=OUT,
            )
        assert StockLedger.get_stock(a.pk) == 3

    def test_empty_lines(self):
        with pytest.raises(InvalidInputError):
            StockLedger.apply_many(lines=[], movement_type=OUT)


class TestReplayAndVerify:

    def test_replay_matches_counter_after_mixed_movements(self):
        product = ProductFactory(stock=50)
        for _ in range(20):
            StockLedger.apply(product_id=product.pk, quantity=-2, movement_type=OUT)
        for _ in range(5):
            StockLedger.apply(product_id=product.pk, quantity=1, movement_type=RETURN)
        StockLedger.set_level(product_id=product.pk, target=30, reason='count')
        assert StockLedger.replay(product.pk) == StockLedger.get_stock(product.pk) == 30
        check = StockLedger.verify(product.pk)
        assert check.ok
        assert check.movement_count == 27

    def test_verify_detects_tampered_counter(self):
        product = ProductFactory(stock=5)
        Product.objects.filter(pk=product.pk).update(current_stock=8)
        check = StockLedger.verify(product.pk)
        assert check.chain_intact
        assert check.replayed_stock == 5
        assert check.current_stock == 8
        assert not check.ok

    def test_verify_all(self):
        ProductFactory.create_batch(3, stock=2)
        checks = StockLedger.verify_all()
        assert len(checks) == 3
        assert all(check.ok for check in checks)

    def test_replay_of_product_without_movements(self):
        assert StockLedger.replay(ProductFactory().pk) == 0


class TestAdjustmentService:

    @pytest.mark.parametrize('mode, quantity, expected', [
        ('add', 3, 13),
        ('subtract', 4, 6),
        ('set', 2, 2),
    ])
    def test_modes(self, mode, quantity, expected):
        product = ProductFactory(stock=10)
        movement = AdjustmentService.adjust(
            product_id=product.pk, mode=mode, quantity=quantity, reason='stock count',
        )
        assert movement.movement_type == ADJUSTMENT
        assert movement.unit_price == Decimal('0.00')
        assert StockLedger.get_stock(product.pk) == expected

    def test_subtract_below_zero_rejected(self):
        product = ProductFactory(stock=1)
        with pytest.raises(InsufficientStockError):
            AdjustmentService.adjust(product_id=product.pk, mode='subtract', quantity=2, reason='broken')

    def test_reason_required(self):
        product = ProductFactory(stock=1)
        with pytest.raises(InvalidInputError):
            AdjustmentService.adjust(product_id=product.pk, mode='add', quantity=1, reason='')

    def test_invalid_mode(self):
        product = ProductFactory(stock=1)
        with pytest.raises(InvalidInputError):
            AdjustmentService.adjust(product_id=product.pk, mode='multiply', quantity=2, reason='x')

    def test_add_zero_rejected(self):
        product = ProductFactory(stock=1)
        with pytest.raises(InvalidInputError):
            AdjustmentService.adjust(product_id=product.pk, mode='add', quantity=0, reason='x')

    def test_bulk_adjust_is_all_or_nothing(self):
        a = ProductFactory(stock=5)
        b = ProductFactory(stock=1)
        with pytest.raises(InsufficientStockError):
            AdjustmentService.bulk_adjust(
                adjustments=[
                    {'product_id': a.pk, 'mode': 'add', 'quantity': 5},
                    {'product_id': b.pk, 'mode': 'subtract', 'quantity': 3},
                ],
                reason='annual count',
            )
        assert StockLedger.get_stock(a.pk) == 5
        assert StockLedger.get_stock(b.pk) == 1
        assert not StockMovement.objects.filter(movement_type=ADJUSTMENT).exists()


class TestProductService:

    def test_create_with_initial_stock(self):
        user = UserFactory()
        product = ProductService.create_product(
            data={'name': 'Battery', 'purchase_price': Decimal('10.00'), 'sale_price': Decimal('18.00')},
            initial_stock=12,
            actor=user,
        )
        assert product.current_stock == 12
        movement = product.movements.get()
        assert movement.reason == 'initial_stock'
        assert StockLedger.verify(product.pk).ok
        assert AuditLog.objects.filter(model_name='Product', object_id=str(product.pk)).exists()

    def test_create_rejects_ledger_fields(self):
        with pytest.raises(InvalidInputError):
            ProductService.create_product(data={'name': 'Battery', 'current_stock': 5})

    def test_update_rejects_ledger_fields(self):
        product = ProductFactory(stock=1)
        with pytest.raises(InvalidInputError):
            ProductService.update_product(product_id=product.pk, data={'version': 9})

    def test_update_catalogue_fields(self):
        product = ProductFactory(stock=4)
        updated = ProductService.update_product(
            product_id=product.pk, data={'sale_price': Decimal('70.00')}, actor=UserFactory(),
        )
        assert updated.sale_price == Decimal('70.00')
        assert StockLedger.get_stock(product.pk) == 4
        log = AuditLog.objects.get(model_name='Product', object_id=str(product.pk), action='UPDATE')
        assert log.new_values == {'sale_price': '70.00'}
