"""
Commerce — Service Layer

Sales and purchases are producers on top of the stock ledger. A sale
posts all of its lines as one multi-line `out` posting, so a single short
line rejects the whole sale and no sale row survives. Editing a sale posts
only the net change per product, again as one posting. Purchases only
touch stock when goods are received.

@file commerce/services.py
"""

import logging
from collections import defaultdict
from decimal import Decimal

from django.db import IntegrityError, transaction
from django.utils import timezone

from core.constants import (
    AUDIT_ACTION_CREATE,
    AUDIT_ACTION_STATUS_CHANGE,
    AUDIT_ACTION_UPDATE,
    PURCHASE_NUMBER_PREFIX,
    SALE_NUMBER_PREFIX,
)
from core.exceptions import (
    BusinessRuleViolation,
    ConcurrencyConflict,
    InvalidInputError,
    ResourceNotFoundError,
)
from core.services import AuditService, to_money
from inventory.models import Product, StockMovement
from inventory.services import StockLedger
from repairs.models import Customer

from .models import Purchase, PurchaseLine, Sale, SaleLine, Supplier

logger = logging.getLogger('repairshop')

NUMBER_ATTEMPTS = 5
NUMBER_WIDTH = 6


def _positive_int(value, *, field: str = 'quantity') -> int:
    if not isinstance(value, int) or isinstance(value, bool) or value < 1:
        raise InvalidInputError(detail=f'{field} must be a positive integer, got {value!r}.')
    return value


def _next_number(model, field: str, prefix: str) -> str:
    last = (
        model.objects.filter(**{f'{field}__startswith': prefix})
        .order_by(f'-{field}')
        .values_list(field, flat=True)
        .first()
    )
    sequence = int(last[len(prefix):]) + 1 if last else 1
    return f'{prefix}{sequence:0{NUMBER_WIDTH}d}'


def _create_numbered(model, *, field: str, prefix: str, **values):
    """Insert a row with the next sequential document number, retrying on collision."""
    for attempt in range(1, NUMBER_ATTEMPTS + 1):
        try:
            with transaction.atomic():
                return model.objects.create(**{field: _next_number(model, field, prefix)}, **values)
        except IntegrityError:
            logger.warning('%s number collision, attempt %d/%d.', model.__name__, attempt, NUMBER_ATTEMPTS)
    raise ConcurrencyConflict(detail=f'Could not allocate a unique {field}, please retry.')


def _load_products(product_ids) -> dict:
    product_ids = set(product_ids)
    if None in product_ids:
        raise InvalidInputError(detail='Every line needs a product_id.')
    products = Product.objects.in_bulk(product_ids)
    missing = sorted(pid for pid in product_ids if pid not in products)
    if missing:
        raise ResourceNotFoundError(detail=f'Products not found: {missing}.')
    return products


def _append_note(existing: str, note: str) -> str:
    return f'{existing}\n\n{note}' if existing else note


def _price_lines(lines: list[dict]) -> list[dict]:
    """Resolve products and price each sale line; unit_price defaults to the sale price."""
    products = _load_products(line.get('product_id') for line in lines)
    priced = []
    for line in lines:
        product = products[line['product_id']]
        quantity = _positive_int(line.get('quantity'))
        unit_price = line.get('unit_price')
        unit_price = product.sale_price if unit_price is None else to_money(unit_price, field='unit_price')
        item_discount = to_money(line.get('item_discount', 0), field='item_discount')
        gross = unit_price * quantity
        if item_discount > gross:
            raise InvalidInputError(
                detail=f'item_discount {item_discount} exceeds line amount {gross} for product {product.pk}.',
            )
        priced.append({
            'product': product,
            'quantity': quantity,
            'unit_price': unit_price,
            'item_discount': item_discount,
            'total_price': gross - item_discount,
        })
    return priced


def _sale_totals(priced: list[dict], discount, taxes) -> tuple[Decimal, Decimal, Decimal, Decimal]:
    subtotal = sum((row['total_price'] for row in priced), Decimal('0.00'))
    discount = to_money(discount, field='discount')
    taxes = to_money(taxes, field='taxes')
    total = subtotal - discount + taxes
    if total < 0:
        raise InvalidInputError(detail=f'Discount {discount} exceeds the sale amount {subtotal + taxes}.')
    return subtotal, discount, taxes, total


def _line_snapshot(rows) -> list[dict]:
    return [
        {'product_id': row.product_id, 'quantity': row.quantity, 'unit_price': str(row.unit_price)}
        for row in rows
    ]


class SaleService:

    @staticmethod
    @transaction.atomic
    def finalize_sale(
        *,
        lines: list[dict],
        actor,
        customer_id=None,
        sale_type: str = Sale.SaleType.CASH,
        discount=0,
        taxes=0,
        advance_payment=0,
        payment_method: str = Sale.PaymentMethod.CASH,
        notes: str = '',
    ) -> Sale:
        """
        Record a sale and debit stock for every line.

        lines: [{'product_id', 'quantity', 'unit_price'?, 'item_discount'?}].
        unit_price defaults to the product's sale price. Cash sales are paid
        in full; credit sales stay pending until advance_payment covers the
        total.
        """
        if not lines:
            raise InvalidInputError(detail='A sale needs at least one line.')
        if sale_type not in Sale.SaleType.values:
            raise InvalidInputError(detail=f'Invalid sale_type: {sale_type!r}.')
        if payment_method not in Sale.PaymentMethod.values:
            raise InvalidInputError(detail=f'Invalid payment_method: {payment_method!r}.')

        customer = None
        if customer_id is not None:
            customer = Customer.objects.filter(pk=customer_id).first()
            if customer is None:
                raise ResourceNotFoundError(detail=f'Customer {customer_id} not found.')

        priced = _price_lines(lines)
        subtotal, discount, taxes, total = _sale_totals(priced, discount, taxes)

        if sale_type == Sale.SaleType.CASH:
            advance = total
        else:
            advance = to_money(advance_payment, field='advance_payment')
            if advance > total:
                raise InvalidInputError(detail=f'advance_payment {advance} exceeds the total {total}.')
        status = Sale.StatusChoices.PAID if advance >= total else Sale.StatusChoices.PENDING

        sale = _create_numbered(
            Sale,
            field='sale_number',
            prefix=SALE_NUMBER_PREFIX,
            customer=customer,
            seller=actor,
            sale_type=sale_type,
            subtotal=subtotal,
            discount=discount,
            taxes=taxes,
            total=total,
            advance_payment=advance,
            status=status,
            payment_method=payment_method,
            notes=notes or '',
            created_by=actor,
        )
        SaleLine.objects.bulk_create([SaleLine(sale=sale, **row) for row in priced])

        StockLedger.apply_many(
            lines=[
                {'product_id': row['product'].pk, 'quantity': -row['quantity'], 'unit_price': row['unit_price']}
                for row in priced
            ],
            movement_type=StockMovement.MovementType.OUT,
            actor=actor,
            reference_type='Sale',
            reference_id=sale.pk,
            reason='sale',
            notes=f'Sale {sale.sale_number}',
        )
        logger.info('Sale %s finalised: %d lines, total=%s, status=%s.', sale.sale_number, len(priced), total, status)
        return sale

    @staticmethod
    @transaction.atomic
    def update_sale(
        *,
        sale_id,
        lines: list[dict],
        actor,
        discount=None,
        taxes=None,
        notes: str | None = None,
    ) -> Sale:
        """
        Replace a sale's lines and re-post stock by the net difference.

        Per product, the old quantity comes back and the new quantity goes
        out as one net `return` or `out` line of a single posting. The
        posting is validated as a whole, so a short line rejects the edit and
        leaves the sale, its lines and stock as they were. discount, taxes
        and notes keep their current values when omitted.
        """
        if not lines:
            raise InvalidInputError(detail='A sale needs at least one line.')
        sale = Sale.objects.select_for_update().filter(pk=sale_id).first()
        if sale is None:
            raise ResourceNotFoundError(detail=f'Sale {sale_id} not found.')
        if sale.status == Sale.StatusChoices.CANCELLED:
            raise BusinessRuleViolation(detail=f'Sale {sale.sale_number} is cancelled; it cannot be edited.')

        priced = _price_lines(lines)
        subtotal, discount, taxes, total = _sale_totals(
            priced,
            sale.discount if discount is None else discount,
            sale.taxes if taxes is None else taxes,
        )
        if sale.sale_type == Sale.SaleType.CASH:
            advance = total
        else:
            advance = sale.advance_payment
            if advance > total:
                raise InvalidInputError(
                    detail=f'Sale {sale.sale_number} has {advance} paid, more than the new total {total}.',
                )

        old_lines = list(sale.lines.all())
        net: dict = defaultdict(int)
        prices = {}
        for row in old_lines:
            net[row.product_id] += row.quantity
            prices.setdefault(row.product_id, row.unit_price)
        for row in priced:
            net[row['product'].pk] -= row['quantity']
            if net[row['product'].pk] < 0:
                prices[row['product'].pk] = row['unit_price']
        postings = [
            {
                'product_id': pid,
                'quantity': quantity,
                'unit_price': prices[pid],
                'movement_type': StockMovement.MovementType.RETURN if quantity > 0 else StockMovement.MovementType.OUT,
            }
            for pid, quantity in sorted(net.items())
            if quantity
        ]
        if postings:
            StockLedger.apply_many(
                lines=postings,
                movement_type=StockMovement.MovementType.OUT,
                actor=actor,
                reference_type='Sale',
                reference_id=sale.pk,
                reason='sale_updated',
                notes=f'Edit of sale {sale.sale_number}',
            )

        old_values = {
            'subtotal': sale.subtotal,
            'discount': sale.discount,
            'taxes': sale.taxes,
            'total': sale.total,
            'advance_payment': sale.advance_payment,
            'status': sale.status,
            'lines': _line_snapshot(old_lines),
        }
        sale.lines.all().delete()
        new_lines = SaleLine.objects.bulk_create([SaleLine(sale=sale, **row) for row in priced])

        sale.subtotal = subtotal
        sale.discount = discount
        sale.taxes = taxes
        sale.total = total
        sale.advance_payment = advance
        sale.status = Sale.StatusChoices.PAID if advance >= total else Sale.StatusChoices.PENDING
        if notes is not None:
            sale.notes = notes
        sale.updated_by = actor
        sale.save(update_fields=[
            'subtotal', 'discount', 'taxes', 'total', 'advance_payment', 'status', 'notes',
            'updated_by', 'updated_at',
        ])
        AuditService.log(
            actor=actor,
            action=AUDIT_ACTION_UPDATE,
            model_name='Sale',
            object_id=sale.pk,
            old_values=old_values,
            new_values={
                'subtotal': subtotal,
                'discount': discount,
                'taxes': taxes,
                'total': total,
                'advance_payment': advance,
                'status': sale.status,
                'lines': _line_snapshot(new_lines),
            },
        )
        logger.info('Sale %s edited: %d lines, %d net stock postings, total=%s.',
                    sale.sale_number, len(new_lines), len(postings), total)
        return sale

    @staticmethod
    @transaction.atomic
    def cancel_sale(*, sale_id, reason: str, actor) -> Sale:
        """Void a sale and put every line back into stock as a `return`."""
        if not reason:
            raise InvalidInputError(detail='A cancellation reason is required.')
        sale = Sale.objects.select_for_update().filter(pk=sale_id).first()
        if sale is None:
            raise ResourceNotFoundError(detail=f'Sale {sale_id} not found.')
        if sale.status == Sale.StatusChoices.CANCELLED:
            raise BusinessRuleViolation(detail=f'Sale {sale.sale_number} is already cancelled.')

        StockLedger.apply_many(
            lines=[
                {'product_id': line.product_id, 'quantity': line.quantity, 'unit_price': line.unit_price}
                for line in sale.lines.all()
            ],
            movement_type=StockMovement.MovementType.RETURN,
            actor=actor,
            reference_type='Sale',
            reference_id=sale.pk,
            reason='sale_cancelled',
            notes=f'Cancellation of sale {sale.sale_number}: {reason}',
        )

        previous_status = sale.status
        sale.status = Sale.StatusChoices.CANCELLED
        sale.notes = _append_note(sale.notes, f'Cancelled: {reason}')
        sale.updated_by = actor
        sale.save(update_fields=['status', 'notes', 'updated_by', 'updated_at'])
        AuditService.log(
            actor=actor,
            action=AUDIT_ACTION_STATUS_CHANGE,
            model_name='Sale',
            object_id=sale.pk,
            old_values={'status': previous_status},
            new_values={'status': sale.status, 'reason': reason},
        )
        logger.info('Sale %s cancelled: %s', sale.sale_number, reason)
        return sale

    @staticmethod
    @transaction.atomic
    def register_payment(*, sale_id, amount, payment_method: str, actor, notes: str = '') -> Sale:
        """Apply a payment against a credit sale's pending balance."""
        if payment_method not in Sale.PaymentMethod.values:
            raise InvalidInputError(detail=f'Invalid payment_method: {payment_method!r}.')
        amount = to_money(amount)
        if amount <= 0:
            raise InvalidInputError(detail='Payment amount must be greater than zero.')

        sale = Sale.objects.select_for_update().filter(pk=sale_id).first()
        if sale is None:
            raise ResourceNotFoundError(detail=f'Sale {sale_id} not found.')
        if sale.status == Sale.StatusChoices.CANCELLED:
            raise BusinessRuleViolation(detail=f'Sale {sale.sale_number} is cancelled.')
        pending = sale.pending_balance
        if amount > pending:
            raise InvalidInputError(
                detail=f'Payment {amount} exceeds the pending balance {pending} of sale {sale.sale_number}.',
            )

        old_values = {'advance_payment': sale.advance_payment, 'status': sale.status}
        sale.advance_payment += amount
        if sale.pending_balance == 0:
            sale.status = Sale.StatusChoices.PAID
        payment_note = f'Payment {amount} via {payment_method}'
        sale.notes = _append_note(sale.notes, f'{payment_note} - {notes}' if notes else payment_note)
        sale.updated_by = actor
        sale.save(update_fields=['advance_payment', 'status', 'notes', 'updated_by', 'updated_at'])
        AuditService.log(
            actor=actor,
            action=AUDIT_ACTION_UPDATE,
            model_name='Sale',
            object_id=sale.pk,
            old_values=old_values,
            new_values={
                'advance_payment': sale.advance_payment,
                'status': sale.status,
                'payment_method': payment_method,
            },
        )
        return sale


class SupplierService:

    @staticmethod
    @transaction.atomic
    def create_supplier(*, data: dict, actor=None) -> Supplier:
        supplier = Supplier.objects.create(created_by=actor, **data)
        AuditService.log(
            actor=actor,
            action=AUDIT_ACTION_CREATE,
            model_name='Supplier',
            object_id=supplier.pk,
            new_values=AuditService.snapshot(supplier),
        )
        return supplier

    @staticmethod
    @transaction.atomic
    def update_supplier(*, supplier_id, data: dict, actor=None) -> Supplier:
        supplier = Supplier.objects.select_for_update().filter(pk=supplier_id).first()
        if supplier is None:
            raise ResourceNotFoundError(detail=f'Supplier {supplier_id} not found.')
        old_values = {field: getattr(supplier, field) for field in data}
        for field, value in data.items():
            setattr(supplier, field, value)
        supplier.updated_by = actor
        supplier.save(update_fields=[*data, 'updated_by', 'updated_at'])
        AuditService.log(
            actor=actor,
            action=AUDIT_ACTION_UPDATE,
            model_name='Supplier',
            object_id=supplier.pk,
            old_values=old_values,
            new_values=dict(data),
        )
        return supplier


class PurchaseService:

    @staticmethod
    @transaction.atomic
    def create_purchase(
        *,
        supplier_id,
        lines: list[dict],
        actor,
        discount=0,
        taxes=0,
        promised_date=None,
        notes: str = '',
    ) -> Purchase:
        """lines: [{'product_id', 'quantity', 'unit_cost'?}]. No stock effect."""
        if not lines:
            raise InvalidInputError(detail='A purchase needs at least one line.')
        supplier = Supplier.objects.filter(pk=supplier_id).first()
        if supplier is None:
            raise ResourceNotFoundError(detail=f'Supplier {supplier_id} not found.')

        products = _load_products(line.get('product_id') for line in lines)
        rows = []
        for line in lines:
            product = products[line['product_id']]
            unit_cost = line.get('unit_cost')
            rows.append({
                'product': product,
                'quantity_ordered': _positive_int(line.get('quantity')),
                'unit_cost': product.purchase_price if unit_cost is None else to_money(unit_cost, field='unit_cost'),
            })

        subtotal = sum((row['unit_cost'] * row['quantity_ordered'] for row in rows), Decimal('0.00'))
        discount = to_money(discount, field='discount')
        taxes = to_money(taxes, field='taxes')
        total = subtotal - discount + taxes
        if total < 0:
            raise InvalidInputError(detail=f'Discount {discount} exceeds the purchase amount {subtotal + taxes}.')

        purchase = _create_numbered(
            Purchase,
            field='purchase_number',
            prefix=PURCHASE_NUMBER_PREFIX,
            supplier=supplier,
            subtotal=subtotal,
            discount=discount,
            taxes=taxes,
            total=total,
            promised_date=promised_date,
            notes=notes or '',
            created_by=actor,
        )
        PurchaseLine.objects.bulk_create([PurchaseLine(purchase=purchase, **row) for row in rows])
        AuditService.log(
            actor=actor,
            action=AUDIT_ACTION_CREATE,
            model_name='Purchase',
            object_id=purchase.pk,
            new_values={'purchase_number': purchase.purchase_number, 'supplier': supplier.pk, 'total': total},
        )
        logger.info('Purchase %s created for supplier %s.', purchase.purchase_number, supplier.pk)
        return purchase

    @staticmethod
    @transaction.atomic
    def receive(*, purchase_id, receipts: list[dict], actor) -> Purchase:
        """
        Book delivered goods. receipts: [{'line_id', 'quantity'}]. A receipt
        may cover part of a line; the purchase stays `partial` until every
        line is complete.
        """
        if not receipts:
            raise InvalidInputError(detail='At least one receipt line is required.')
        purchase = Purchase.objects.select_for_update().filter(pk=purchase_id).first()
        if purchase is None:
            raise ResourceNotFoundError(detail=f'Purchase {purchase_id} not found.')
        if purchase.status not in (Purchase.StatusChoices.PENDING, Purchase.StatusChoices.PARTIAL):
            raise BusinessRuleViolation(
                detail=f'Purchase {purchase.purchase_number} is {purchase.status}; nothing can be received.',
            )

        purchase_lines = {line.pk: line for line in purchase.lines.select_for_update()}
        received: dict = defaultdict(int)
        for receipt in receipts:
            line = purchase_lines.get(receipt.get('line_id'))
            if line is None:
                raise ResourceNotFoundError(
                    detail=f'Line {receipt.get("line_id")} does not belong to purchase {purchase.purchase_number}.',
                )
            received[line.pk] += _positive_int(receipt.get('quantity'))
        for line_id, quantity in received.items():
            line = purchase_lines[line_id]
            if quantity > line.quantity_pending:
                raise InvalidInputError(
                    detail=f'Line {line_id}: receiving {quantity} exceeds the {line.quantity_pending} still pending.',
                )

        StockLedger.apply_many(
            lines=[
                {
                    'product_id': purchase_lines[line_id].product_id,
                    'quantity': quantity,
                    'unit_price': purchase_lines[line_id].unit_cost,
                }
                for line_id, quantity in received.items()
            ],
            movement_type=StockMovement.MovementType.IN,
            actor=actor,
            reference_type='Purchase',
            reference_id=purchase.pk,
            reason='purchase',
            notes=f'Purchase {purchase.purchase_number}',
        )
        for line_id, quantity in received.items():
            line = purchase_lines[line_id]
            line.quantity_received += quantity
            line.save(update_fields=['quantity_received'])

        previous_status = purchase.status
        if all(line.quantity_pending == 0 for line in purchase_lines.values()):
            purchase.status = Purchase.StatusChoices.RECEIVED
            purchase.received_date = timezone.localdate()
        else:
            purchase.status = Purchase.StatusChoices.PARTIAL
        purchase.updated_by = actor
        purchase.save(update_fields=['status', 'received_date', 'updated_by', 'updated_at'])
        if purchase.status != previous_status:
            AuditService.log(
                actor=actor,
                action=AUDIT_ACTION_STATUS_CHANGE,
                model_name='Purchase',
                object_id=purchase.pk,
                old_values={'status': previous_status},
                new_values={'status': purchase.status},
            )
        logger.info(
            'Purchase %s: received %d lines, status %s.',
            purchase.purchase_number, len(received), purchase.status,
        )
        return purchase

    @staticmethod
    @transaction.atomic
    def cancel_purchase(*, purchase_id, actor) -> Purchase:
        purchase = Purchase.objects.select_for_update().filter(pk=purchase_id).first()
        if purchase is None:
            raise ResourceNotFoundError(detail=f'Purchase {purchase_id} not found.')
        if purchase.status != Purchase.StatusChoices.PENDING or purchase.lines.filter(quantity_received__gt=0).exists():
            raise BusinessRuleViolation(
                detail=f'Purchase {purchase.purchase_number} is {purchase.status}; only untouched purchases can be cancelled.',
            )
        purchase.status = Purchase.StatusChoices.CANCELLED
        purchase.updated_by = actor
        purchase.save(update_fields=['status', 'updated_by', 'updated_at'])
        AuditService.log(
            actor=actor,
            action=AUDIT_ACTION_STATUS_CHANGE,
            model_name='Purchase',
            object_id=purchase.pk,
            old_values={'status': Purchase.StatusChoices.PENDING},
            new_values={'status': purchase.status},
        )
        return purchase
