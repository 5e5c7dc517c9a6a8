"""
Repairs — Celery Tasks

@file repairs/tasks.py
"""

import logging

from celery import shared_task

logger = logging.getLogger('repairshop')


@shared_task(name='repairs.send_status_notification')
def send_status_notification_task(order_id, previous_status, new_status):
    """
    Deliver one status-change notification. Errors are logged and the task
    reports failure; the transition that triggered it is already committed.
    """
    from .models import RepairOrder
    from .notifications import StatusNotifier

    order = RepairOrder.objects.select_related('customer').filter(pk=order_id).first()
    if order is None:
        logger.warning('send_status_notification_task: order %s no longer exists.', order_id)
        return {'order_id': order_id, 'sent': False}
    try:
        sent = StatusNotifier.notify(order, previous_status, new_status)
    except Exception:
        logger.exception('send_status_notification_task: delivery failed for order %s.', order_id)
        sent = False
    return {'order_id': order_id, 'sent': sent}
