"""
Repairs — Service Layer

RepairOrderService owns the order status machine and money fields: every
transition updates the order and appends its OrderHistory row in one
transaction, then hands the notification to Celery after commit.
PartConsumptionService debits the stock ledger and records the OrderPart
in the same transaction. A database error in any of these writes surfaces
as StorageFailure after the transaction has rolled back.

@file repairs/services.py
"""

import logging
from functools import partial

from django.contrib.auth import get_user_model
from django.db import DatabaseError, IntegrityError, transaction
from django.utils import timezone

from core.constants import AUDIT_ACTION_CREATE, AUDIT_ACTION_UPDATE, ORDER_NUMBER_PREFIX
from core.exceptions import (
    ConcurrencyConflict,
    InvalidInputError,
    InvalidStateTransition,
    ResourceNotFoundError,
    StorageFailure,
)
from core.services import AuditService, to_money
from inventory.models import Product, StockMovement
from inventory.services import StockLedger

from .models import TERMINAL_STATUSES, Customer, OrderHistory, OrderPart, RepairOrder, RepairStatus
from .notifications import schedule_status_notification

logger = logging.getLogger('repairshop')

S = RepairStatus

# Valid status transitions: from_status -> set of allowed to_status
ORDER_TRANSITIONS = {
    S.RECEIVED: {S.DIAGNOSING, S.CANCELLED},
    S.DIAGNOSING: {S.WAITING_PARTS, S.REPAIRING, S.CANCELLED},
    S.WAITING_PARTS: {S.REPAIRING, S.REPAIRED, S.UNREPAIRABLE, S.CANCELLED},
    S.REPAIRING: {S.REPAIRED, S.UNREPAIRABLE, S.CANCELLED},
    S.REPAIRED: {S.WAITING_CUSTOMER, S.CANCELLED},
    S.UNREPAIRABLE: {S.WAITING_CUSTOMER, S.CANCELLED},
    S.WAITING_CUSTOMER: {S.DELIVERED, S.CANCELLED},
    S.DELIVERED: set(),
    S.CANCELLED: set(),
}

# Milestone date stamped when an order enters a status.
MILESTONE_FIELDS = {
    S.DIAGNOSING: 'diagnosis_date',
    S.REPAIRED: 'repair_date',
    S.UNREPAIRABLE: 'repair_date',
    S.DELIVERED: 'delivery_date',
}

COST_FIELDS = ('diagnosis_cost', 'repair_cost', 'total_cost', 'advance_payment')

ORDER_DATA_FIELDS = frozenset({
    'device_brand', 'device_model', 'device_serial', 'imei', 'device_color',
    'unlock_pattern', 'included_accessories', 'problem_description',
    'customer_notes', 'technical_notes', 'initial_diagnosis', 'final_diagnosis',
    'solution_applied', 'priority', 'promised_date', 'technician_id', *COST_FIELDS,
})

# Descriptive fields editable after intake; status, money and technician
# have their own operations.
ORDER_EDITABLE_FIELDS = ORDER_DATA_FIELDS - {'technician_id', *COST_FIELDS}

ORDER_NUMBER_ATTEMPTS = 5


def _assert_transition(order: RepairOrder, new_status: str) -> None:
    allowed = ORDER_TRANSITIONS.get(order.status, set())
    if new_status not in allowed:
        raise InvalidStateTransition(
            detail=f'Cannot transition order {order.order_number} from {order.status} to {new_status}.',
            order_id=order.pk,
            from_status=order.status,
            to_status=new_status,
        )


def _storage_failure(exc: DatabaseError, action: str) -> StorageFailure:
    logger.error('%s failed in the database: %s', action, exc)
    return StorageFailure(detail=f'{action} could not be stored, please retry.')


def _get_locked_order(order_id) -> RepairOrder:
    order = RepairOrder.objects.select_for_update().filter(pk=order_id).first()
    if order is None:
        raise ResourceNotFoundError(detail=f'Repair order {order_id} not found.')
    return order


def _get_user(user_id):
    if user_id is None:
        return None
    user = get_user_model().objects.filter(pk=user_id).first()
    if user is None:
        raise ResourceNotFoundError(detail=f'User {user_id} not found.')
    return user


def _next_order_number() -> str:
    """ORD-YYYYMM####; the sequence restarts every month."""
    now = timezone.localtime()
    prefix = f'{ORDER_NUMBER_PREFIX}-{now:%Y%m}'
    last = (
        RepairOrder.objects.filter(order_number__startswith=prefix)
        .order_by('-order_number')
        .values_list('order_number', flat=True)
        .first()
    )
    sequence = int(last[-4:]) + 1 if last else 1
    return f'{prefix}{sequence:04d}'


class CustomerService:

    @staticmethod
    @transaction.atomic
    def create_customer(*, data: dict, actor=None) -> Customer:
        customer = Customer.objects.create(created_by=actor, **data)
        AuditService.log(
            actor=actor,
            action=AUDIT_ACTION_CREATE,
            model_name='Customer',
            object_id=customer.pk,
            new_values=AuditService.snapshot(customer),
        )
        return customer

    @staticmethod
    @transaction.atomic
    def update_customer(*, customer_id, data: dict, actor=None) -> Customer:
        customer = Customer.objects.select_for_update().filter(pk=customer_id).first()
        if customer is None:
            raise ResourceNotFoundError(detail=f'Customer {customer_id} not found.')
        old_values = {field: getattr(customer, field) for field in data}
        for field, value in data.items():
            setattr(customer, field, value)
        customer.updated_by = actor
        customer.save(update_fields=[*data, 'updated_by', 'updated_at'])
        AuditService.log(
            actor=actor,
            action=AUDIT_ACTION_UPDATE,
            model_name='Customer',
            object_id=customer.pk,
            old_values=old_values,
            new_values=dict(data),
        )
        return customer


class RepairOrderService:
    """Repair order lifecycle: intake, edits, transitions, costs, technician."""

    @staticmethod
    def create_order(*, customer_id, data: dict, actor=None) -> RepairOrder:
        """Create an order in `received` with its creation history record."""
        unknown = sorted(set(data) - ORDER_DATA_FIELDS)
        if unknown:
            raise InvalidInputError(detail=f'Unsupported repair order fields: {", ".join(unknown)}.')
        customer = Customer.objects.filter(pk=customer_id).first()
        if customer is None:
            raise ResourceNotFoundError(detail=f'Customer {customer_id} not found.')

        values = dict(data)
        priority = values.get('priority', RepairOrder.PriorityChoices.NORMAL)
        if priority not in RepairOrder.PriorityChoices.values:
            raise InvalidInputError(detail=f'Invalid priority: {priority!r}.')
        for field in COST_FIELDS:
            if field in values:
                values[field] = to_money(values[field], field=field)
        technician = _get_user(values.pop('technician_id', None))

        for attempt in range(1, ORDER_NUMBER_ATTEMPTS + 1):
            try:
                with transaction.atomic():
                    order = RepairOrder.objects.create(
                        order_number=_next_order_number(),
                        customer=customer,
                        received_by=actor,
                        technician=technician,
                        status=S.RECEIVED,
                        created_by=actor,
                        **values,
                    )
                    OrderHistory.objects.create(
                        order=order,
                        previous_status=None,
                        new_status=S.RECEIVED,
                        changed_by=actor,
                        notes='Order received.',
                    )
                break
            except IntegrityError:
                # Two intakes raced for the same monthly sequence number.
                logger.warning('Order number collision, attempt %d/%d.', attempt, ORDER_NUMBER_ATTEMPTS)
            except DatabaseError as exc:
                raise _storage_failure(exc, f'Repair order intake for customer {customer.pk}') from exc
        else:
            raise ConcurrencyConflict(detail='Could not allocate a unique order number, please retry.')

        logger.info('Repair order %s created for customer %s.', order.order_number, customer.pk)
        return order

    @staticmethod
    def transition(*, order_id, new_status: str, actor=None, note: str = '') -> OrderHistory:
        """
        Move an order along ORDER_TRANSITIONS and append the history row.

        InvalidInputError for an unknown status, InvalidStateTransition for
        an edge not in the table (same-status included).
        """
        if new_status not in RepairStatus.values:
            raise InvalidInputError(detail=f'Invalid status: {new_status!r}.')

        try:
            with transaction.atomic():
                order = _get_locked_order(order_id)
                _assert_transition(order, new_status)
                previous_status = order.status

                order.status = new_status
                order.updated_by = actor
                update_fields = ['status', 'updated_by', 'updated_at']
                milestone = MILESTONE_FIELDS.get(new_status)
                if milestone and getattr(order, milestone) is None:
                    setattr(order, milestone, timezone.now())
                    update_fields.append(milestone)
                order.save(update_fields=update_fields)

                entry = OrderHistory.objects.create(
                    order=order,
                    previous_status=previous_status,
                    new_status=new_status,
                    changed_by=actor,
                    notes=note or '',
                )
                transaction.on_commit(
                    partial(schedule_status_notification, order.pk, previous_status, new_status),
                )
        except DatabaseError as exc:
            raise _storage_failure(exc, f'Transition of order {order_id} to {new_status}') from exc

        logger.info(
            'Repair order %s: %s -> %s by %s.',
            order.order_number, previous_status, new_status, getattr(actor, 'pk', None),
        )
        return entry

    @staticmethod
    def cancel(*, order_id, actor=None, note: str = '') -> OrderHistory:
        return RepairOrderService.transition(
            order_id=order_id, new_status=S.CANCELLED, actor=actor, note=note,
        )

    @staticmethod
    @transaction.atomic
    def update_order(*, order_id, data: dict, actor=None) -> RepairOrder:
        """
        Edit the descriptive fields of an order: device, notes, diagnoses,
        priority and promised date. Status, money and technician are not
        accepted here; they go through transition, update_costs and
        assign_technician.
        """
        unknown = sorted(set(data) - ORDER_EDITABLE_FIELDS)
        if unknown or not data:
            raise InvalidInputError(
                detail=f'Expected one or more editable order fields; got {", ".join(unknown) or "nothing"}.',
            )
        if 'priority' in data and data['priority'] not in RepairOrder.PriorityChoices.values:
            raise InvalidInputError(detail=f'Invalid priority: {data["priority"]!r}.')

        order = _get_locked_order(order_id)
        old_values = {field: getattr(order, field) for field in data}
        for field, value in data.items():
            setattr(order, field, value)
        order.updated_by = actor
        order.save(update_fields=[*data, 'updated_by', 'updated_at'])
        AuditService.log(
            actor=actor,
            action=AUDIT_ACTION_UPDATE,
            model_name='RepairOrder',
            object_id=order.pk,
            old_values=old_values,
            new_values=dict(data),
        )
        logger.info('Repair order %s edited: %s.', order.order_number, ', '.join(sorted(data)))
        return order

    @staticmethod
    @transaction.atomic
    def update_costs(*, order_id, actor=None, **costs) -> RepairOrder:
        """Update any subset of the money fields; status is untouched."""
        unknown = sorted(set(costs) - set(COST_FIELDS))
        if unknown or not costs:
            raise InvalidInputError(
                detail=f'Expected one or more of {", ".join(COST_FIELDS)}; got {", ".join(unknown) or "nothing"}.',
            )
        values = {field: to_money(value, field=field) for field, value in costs.items()}

        order = _get_locked_order(order_id)
        old_values = {field: getattr(order, field) for field in values}
        for field, value in values.items():
            setattr(order, field, value)
        order.updated_by = actor
        order.save(update_fields=[*values, 'updated_by', 'updated_at'])

        AuditService.log(
            actor=actor,
            action=AUDIT_ACTION_UPDATE,
            model_name='RepairOrder',
            object_id=order.pk,
            old_values=old_values,
            new_values={**values, 'pending_balance': order.pending_balance},
        )
        return order

    @staticmethod
    @transaction.atomic
    def assign_technician(*, order_id, technician_id, actor=None) -> RepairOrder:
        order = _get_locked_order(order_id)
        if order.is_terminal:
            raise InvalidStateTransition(
                detail=f'Order {order.order_number} is {order.status}; it cannot be reassigned.',
                order_id=order.pk,
                from_status=order.status,
            )
        old_technician = order.technician_id
        order.technician = _get_user(technician_id)
        order.updated_by = actor
        order.save(update_fields=['technician', 'updated_by', 'updated_at'])
        AuditService.log(
            actor=actor,
            action=AUDIT_ACTION_UPDATE,
            model_name='RepairOrder',
            object_id=order.pk,
            old_values={'technician': old_technician},
            new_values={'technician': order.technician_id},
        )
        return order

    @staticmethod
    def replay_history(order_id) -> str | None:
        """
        Rebuild the status by replaying OrderHistory from null. Raises
        BusinessRuleViolation-derived InvalidStateTransition if a record's
        previous_status does not match the replayed state.
        """
        status = None
        chain = OrderHistory.objects.filter(order_id=order_id).order_by('created_at', 'id')
        for entry in chain.values_list('id', 'previous_status', 'new_status'):
            entry_id, previous_status, new_status = entry
            if previous_status != status:
                raise InvalidStateTransition(
                    detail=f'History of order {order_id} broken at record {entry_id}: '
                           f'expected previous {status!r}, found {previous_status!r}.',
                    order_id=order_id,
                    from_status=previous_status,
                    to_status=new_status,
                )
            status = new_status
        return status


class PartConsumptionService:
    """Links parts usage to a repair order and the stock ledger atomically."""

    @staticmethod
    def use_item(*, order_id, product_id, quantity: int, unit_price=None, actor=None) -> OrderPart:
        """
        Record that an order uses `quantity` units of a product in total.

        First use debits the full quantity; later calls debit (or return)
        only the difference from the recorded quantity. The ledger write
        and the OrderPart write commit or roll back together.
        """
        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 1:
            raise InvalidInputError(detail=f'Quantity must be a positive integer, got {quantity!r}.')
        price = to_money(unit_price, field='unit_price') if unit_price is not None else None

        try:
            with transaction.atomic():
                order = _get_locked_order(order_id)
                if order.status in TERMINAL_STATUSES:
                    raise InvalidStateTransition(
                        detail=f'Order {order.order_number} is {order.status}; parts can no longer be used.',
                        order_id=order.pk,
                        from_status=order.status,
                    )
                product = Product.objects.filter(pk=product_id).first()
                if product is None:
                    raise ResourceNotFoundError(detail=f'Product {product_id} not found.')
                part = OrderPart.objects.select_for_update().filter(order=order, product=product).first()
                if price is None:
                    # Without an explicit price a recorded part keeps the price it was booked at.
                    price = product.sale_price if part is None else part.unit_price

                ledger_context = {
                    'product_id': product.pk,
                    'actor': actor,
                    'unit_price': price,
                    'repair_order': order,
                    'reason': 'repair',
                    'notes': f'Repair order {order.order_number}',
                }
                if part is None:
                    StockLedger.apply(
                        quantity=-quantity,
                        movement_type=StockMovement.MovementType.OUT,
                        **ledger_context,
                    )
                    part = OrderPart.objects.create(
                        order=order,
                        product=product,
                        quantity=quantity,
                        unit_price=price,
                        total_price=price * quantity,
                    )
                else:
                    delta = quantity - part.quantity
                    if delta > 0:
                        StockLedger.apply(
                            quantity=-delta,
                            movement_type=StockMovement.MovementType.OUT,
                            **ledger_context,
                        )
                    elif delta < 0:
                        StockLedger.apply(
                            quantity=-delta,
                            movement_type=StockMovement.MovementType.RETURN,
                            **ledger_context,
                        )
                    part.quantity = quantity
                    part.unit_price = price
                    part.total_price = price * quantity
                    part.save(update_fields=['quantity', 'unit_price', 'total_price', 'updated_at'])
        except IntegrityError as exc:
            raise ConcurrencyConflict(
                detail=f'Product {product_id} was recorded on order {order_id} concurrently, please retry.',
            ) from exc
        except DatabaseError as exc:
            raise _storage_failure(exc, f'Part usage of product {product_id} on order {order_id}') from exc

        logger.info(
            'Order %s uses product %s qty=%s unit_price=%s.',
            order.order_number, product.pk, quantity, price,
        )
        return part
