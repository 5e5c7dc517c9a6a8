"""
Repairs — Customer Notifications

Status-change messages to the customer. schedule_status_notification runs
from transaction.on_commit, after the transition is durable, so nothing
here can roll a transition back: failures are logged and dropped.

@file repairs/notifications.py
"""

import logging

from django.conf import settings
from django.core.mail import send_mail

logger = logging.getLogger('repairshop')

STATUS_MESSAGES = {
    'diagnosing': 'Your device is being diagnosed.',
    'waiting_parts': 'We are waiting for parts to repair your device.',
    'repairing': 'Your device is being repaired.',
    'repaired': 'Your device has been repaired.',
    'unrepairable': 'Unfortunately your device could not be repaired.',
    'waiting_customer': 'Your device is ready for pickup.',
    'delivered': 'Your device has been delivered. Thank you!',
    'cancelled': 'Your repair order has been cancelled.',
}


def schedule_status_notification(order_id, previous_status, new_status) -> None:
    """Queue the notification task; broker errors never reach the caller."""
    if not getattr(settings, 'REPAIR_STATUS_NOTIFICATIONS', True):
        return
    from .tasks import send_status_notification_task

    try:
        send_status_notification_task.delay(order_id, previous_status, new_status)
    except Exception:
        logger.exception(
            'Could not queue status notification for order %s (%s -> %s).',
            order_id, previous_status, new_status,
        )


class StatusNotifier:

    @staticmethod
    def notify(order, previous_status, new_status) -> bool:
        """Email the customer. Returns False when there is nobody to tell."""
        email = order.customer.email
        if not email:
            logger.info('Order %s: customer has no email, notification skipped.', order.order_number)
            return False
        message = STATUS_MESSAGES.get(new_status, f'Your repair order is now {new_status}.')
        send_mail(
            subject=f'Repair order {order.order_number}: {order.get_status_display()}',
            message=(
                f'Hello {order.customer.full_name},\n\n'
                f'{message}\n\n'
                f'Device: {order.device_brand} {order.device_model}\n'
                f'Pending balance: {order.pending_balance}\n'
            ),
            from_email=settings.DEFAULT_FROM_EMAIL,
            recipient_list=[email],
        )
        logger.info(
            'Order %s: notified %s of %s -> %s.',
            order.order_number, email, previous_status, new_status,
        )
        return True
