"""
Core — Shared Services

Audit log writer used by every app, and money coercion shared by the
service layers.

@file core/services.py
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Any

from django.forms.models import model_to_dict

from core.exceptions import InvalidInputError
from core.models import AuditLog

logger = logging.getLogger('repairshop')

MONEY_QUANT = Decimal('0.01')


class AuditService:
    """Centralised audit logging for writes without a dedicated history table."""

    @staticmethod
    def log(
        *,
        actor,
        action: str,
        model_name: str,
        object_id,
        old_values: dict[str, Any] | None = None,
        new_values: dict[str, Any] | None = None,
    ) -> AuditLog:
        return AuditLog.objects.create(
            actor=actor,
            action=action,
            model_name=model_name,
            object_id=str(object_id),
            old_values=AuditService.clean(old_values),
            new_values=AuditService.clean(new_values),
        )

    @staticmethod
    def clean(values: dict[str, Any] | None) -> dict[str, Any] | None:
        """Make a dict JSON-safe: Decimals and dates become strings."""
        if values is None:
            return None
        cleaned: dict[str, Any] = {}
        for key, value in values.items():
            if isinstance(value, Decimal):
                cleaned[key] = str(value)
            elif hasattr(value, 'isoformat'):
                cleaned[key] = value.isoformat()
            else:
                cleaned[key] = value
        return cleaned

    @staticmethod
    def snapshot(instance, fields=None) -> dict[str, Any]:
        """Serialise a model instance to a plain dict suitable for JSON storage."""
        return AuditService.clean(model_to_dict(instance, fields=fields))


def to_money(value, *, field: str = 'amount') -> Decimal:
    """Coerce to a non-negative 2-dp Decimal or raise InvalidInputError."""
    try:
        amount = Decimal(str(value)).quantize(MONEY_QUANT)
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidInputError(detail=f'{field} must be a decimal amount, got {value!r}.')
    if not amount.is_finite() or amount < 0:
        raise InvalidInputError(detail=f'{field} must be zero or positive, got {value!r}.')
    return amount
