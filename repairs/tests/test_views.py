"""
Tests — Repairs API endpoints.

@file repairs/tests/test_views.py
"""

from decimal import Decimal
from unittest import mock

import pytest
from django.db import OperationalError
from django.urls import reverse

from core.models import AuditLog
from inventory.services import StockLedger
from repairs.models import Customer, OrderHistory, RepairOrder, RepairStatus


pytestmark = pytest.mark.django_db


def _order_url(name, order):
    return reverse(f'api-v1:repairs:order-{name}', kwargs={'pk': order.pk})


class TestCustomerEndpoints:

    def test_requires_auth(self, api_client):
        resp = api_client.get(reverse('api-v1:repairs:customer-list'))
        assert resp.status_code == 401

    def test_create_is_audited(self, authenticated_client, user):
        resp = authenticated_client.post(
            reverse('api-v1:repairs:customer-list'),
            {'first_name': 'Lucia', 'last_name': 'Perez', 'phone': '70012345'},
            format='json',
        )
        assert resp.status_code == 201
        assert resp.data['full_name'] == 'Lucia Perez'
        customer = Customer.objects.get(pk=resp.data['id'])
        assert customer.created_by == user
        assert AuditLog.objects.filter(model_name='Customer', object_id=str(customer.pk)).exists()

    def test_partial_update(self, authenticated_client, customer):
        resp = authenticated_client.patch(
            reverse('api-v1:repairs:customer-detail', kwargs={'pk': customer.pk}),
            {'phone': '79999999'},
            format='json',
        )
        assert resp.status_code == 200
        customer.refresh_from_db()
        assert customer.phone == '79999999'


class TestOrderEndpoints:

    def test_create(self, authenticated_client, customer, settings):
        settings.REPAIR_STATUS_NOTIFICATIONS = False
        resp = authenticated_client.post(
            reverse('api-v1:repairs:order-list'),
            {
                'customer_id': customer.pk,
                'device_brand': 'Xiaomi',
                'device_model': 'Redmi Note 10',
                'problem_description': 'Cracked screen',
                'total_cost': '120.00',
                'advance_payment': '20.00',
            },
            format='json',
        )
        assert resp.status_code == 201
        assert resp.data['status'] == RepairStatus.RECEIVED
        assert resp.data['pending_balance'] == Decimal('100.00')
        assert resp.data['order_number'].startswith('ORD-')

    def test_status_is_not_writable_on_create(self, authenticated_client, customer):
        resp = authenticated_client.post(
            reverse('api-v1:repairs:order-list'),
            {
                'customer_id': customer.pk,
                'device_brand': 'Xiaomi',
                'device_model': 'Redmi Note 10',
                'problem_description': 'Cracked screen',
                'status': RepairStatus.DELIVERED,
            },
            format='json',
        )
        assert resp.status_code == 201
        assert resp.data['status'] == RepairStatus.RECEIVED

    def test_transition(self, authenticated_client, order):
        resp = authenticated_client.post(
            _order_url('transition', order), {'status': 'diagnosing', 'note': 'On the bench'}, format='json',
        )
        assert resp.status_code == 200
        assert resp.data['status'] == RepairStatus.DIAGNOSING
        assert resp.data['diagnosis_date'] is not None

    def test_patch_edits_descriptive_fields(self, authenticated_client, order):
        resp = authenticated_client.patch(
            reverse('api-v1:repairs:order-detail', kwargs={'pk': order.pk}),
            {'technical_notes': 'Replaced flex cable', 'priority': 'urgent'},
            format='json',
        )
        assert resp.status_code == 200
        assert resp.data['technical_notes'] == 'Replaced flex cable'
        assert resp.data['priority'] == 'urgent'
        assert resp.data['status'] == RepairStatus.RECEIVED

    def test_patch_cannot_touch_status_or_money(self, authenticated_client, order):
        resp = authenticated_client.patch(
            reverse('api-v1:repairs:order-detail', kwargs={'pk': order.pk}),
            {'status': 'delivered', 'total_cost': '999.00'},
            format='json',
        )
        assert resp.status_code == 400
        assert resp.data['code'] == 'INVALID_INPUT'
        order.refresh_from_db()
        assert order.status == RepairStatus.RECEIVED
        assert order.total_cost == Decimal('0.00')

    def test_database_error_is_503(self, authenticated_client, order):
        with mock.patch.object(
            OrderHistory.objects, 'create', side_effect=OperationalError('server closed the connection'),
        ):
            resp = authenticated_client.post(_order_url('transition', order), {'status': 'diagnosing'}, format='json')
        assert resp.status_code == 503
        assert resp.data['code'] == 'STORAGE_FAILURE'
        order.refresh_from_db()
        assert order.status == RepairStatus.RECEIVED

    def test_illegal_transition_is_400(self, authenticated_client, order):
        resp = authenticated_client.post(_order_url('transition', order), {'status': 'delivered'}, format='json')
        assert resp.status_code == 400
        assert resp.data['success'] is False
        assert resp.data['code'] == 'INVALID_STATE_TRANSITION'
        order.refresh_from_db()
        assert order.status == RepairStatus.RECEIVED

    def test_cancel(self, authenticated_client, order):
        resp = authenticated_client.post(_order_url('cancel', order), {'note': 'Customer withdrew'}, format='json')
        assert resp.status_code == 200
        assert resp.data['status'] == RepairStatus.CANCELLED

    def test_costs(self, authenticated_client, order):
        resp = authenticated_client.post(
            _order_url('costs', order), {'total_cost': '80.00', 'advance_payment': '30.00'}, format='json',
        )
        assert resp.status_code == 200
        assert resp.data['pending_balance'] == Decimal('50.00')

    def test_assign_technician(self, authenticated_client, order, technician):
        resp = authenticated_client.post(
            _order_url('technician', order), {'technician_id': technician.pk}, format='json',
        )
        assert resp.status_code == 200
        assert resp.data['technician'] == technician.pk

    def test_use_part(self, authenticated_client, order, product):
        resp = authenticated_client.post(
            _order_url('parts', order), {'product_id': product.pk, 'quantity': 3}, format='json',
        )
        assert resp.status_code == 201
        assert resp.data['quantity'] == 3
        assert StockLedger.get_stock(product.pk) == 7

    def test_use_part_over_stock_is_409(self, authenticated_client, order, product):
        resp = authenticated_client.post(
            _order_url('parts', order), {'product_id': product.pk, 'quantity': 11}, format='json',
        )
        assert resp.status_code == 409
        assert resp.data['code'] == 'INSUFFICIENT_STOCK'
        assert StockLedger.get_stock(product.pk) == 10
        assert not order.parts.exists()

    def test_history(self, authenticated_client, order):
        authenticated_client.post(_order_url('transition', order), {'status': 'diagnosing'}, format='json')
        resp = authenticated_client.get(_order_url('history', order))
        assert resp.status_code == 200
        assert [(row['previous_status'], row['new_status']) for row in resp.data] == [
            (None, 'received'),
            ('received', 'diagnosing'),
        ]

    def test_filter_by_status(self, authenticated_client, order):
        resp = authenticated_client.get(reverse('api-v1:repairs:order-list'), {'status': 'received'})
        assert resp.status_code == 200
        assert resp.data['count'] == RepairOrder.objects.filter(status='received').count() == 1
