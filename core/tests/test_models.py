"""
Core — Model Tests

AuditLog immutability, AuditService value cleaning and money coercion.

@file core/tests/test_models.py
"""

import datetime
from decimal import Decimal

import pytest

from core.exceptions import InvalidInputError
from core.models import AuditLog
from core.services import AuditService, to_money
from tests.factories import AuditLogFactory, UserFactory


@pytest.mark.django_db
class TestAuditLog:
    def test_create_audit_log(self):
        user = UserFactory()
        log = AuditService.log(
            actor=user,
            action=AuditLog.ActionChoices.UPDATE,
            model_name='RepairOrder',
            object_id=42,
            old_values={'total_cost': Decimal('10.00')},
            new_values={'total_cost': Decimal('12.50')},
        )
        log.refresh_from_db()
        assert log.object_id == '42'
        assert log.old_values == {'total_cost': '10.00'}
        assert log.new_values == {'total_cost': '12.50'}

    def test_audit_log_cannot_be_updated(self):
        log = AuditLogFactory()
        log.model_name = 'Other'
        with pytest.raises(NotImplementedError):
            log.save()

    def test_audit_log_cannot_be_deleted(self):
        log = AuditLogFactory()
        with pytest.raises(NotImplementedError):
            log.delete()
        assert AuditLog.objects.filter(pk=log.pk).exists()


class TestAuditServiceClean:
    def test_clean_none(self):
        assert AuditService.clean(None) is None

    def test_clean_converts_decimals_and_dates(self):
        cleaned = AuditService.clean({
            'amount': Decimal('3.10'),
            'day': datetime.date(2026, 1, 31),
            'name': 'x',
        })
        assert cleaned == {'amount': '3.10', 'day': '2026-01-31', 'name': 'x'}


class TestToMoney:
    @pytest.mark.parametrize('value, expected', [
        (0, Decimal('0.00')),
        ('12.5', Decimal('12.50')),
        (Decimal('7.125'), Decimal('7.12')),
    ])
    def test_valid_amounts(self, value, expected):
        assert to_money(value) == expected

    @pytest.mark.parametrize('value', [-1, '-0.01', 'abc', None, 'NaN'])
    def test_invalid_amounts(self, value):
        with pytest.raises(InvalidInputError):
            to_money(value, field='total_cost')
