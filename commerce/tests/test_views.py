"""
Tests — Commerce API endpoints.

@file commerce/tests/test_views.py
"""

import pytest
from django.urls import reverse

from commerce.models import Sale
from inventory.services import StockLedger
from tests.factories import ProductFactory, SupplierFactory


pytestmark = pytest.mark.django_db


class TestSaleEndpoints:

    def test_requires_auth(self, api_client):
        assert api_client.get(reverse('api-v1:commerce:sale-list')).status_code == 401

    def test_create_cash_sale(self, authenticated_client, product, user):
        resp = authenticated_client.post(
            reverse('api-v1:commerce:sale-list'),
            {'lines': [{'product_id': product.pk, 'quantity': 2}]},
            format='json',
        )
        assert resp.status_code == 201
        assert resp.data['sale_number'] == 'VEN000001'
        assert resp.data['status'] == Sale.StatusChoices.PAID
        assert resp.data['seller'] == user.pk
        assert len(resp.data['lines']) == 1
        assert StockLedger.get_stock(product.pk) == 8

    def test_empty_lines_rejected(self, authenticated_client):
        resp = authenticated_client.post(reverse('api-v1:commerce:sale-list'), {'lines': []}, format='json')
        assert resp.status_code == 400
        assert 'lines' in resp.data['errors']

    def test_short_stock_is_409(self, authenticated_client):
        product = ProductFactory(stock=1)
        resp = authenticated_client.post(
            reverse('api-v1:commerce:sale-list'),
            {'lines': [{'product_id': product.pk, 'quantity': 2}]},
            format='json',
        )
        assert resp.status_code == 409
        assert resp.data['code'] == 'INSUFFICIENT_STOCK'
        assert not Sale.objects.exists()

    def test_edit_sale(self, authenticated_client, product):
        resp = authenticated_client.post(
            reverse('api-v1:commerce:sale-list'),
            {'lines': [{'product_id': product.pk, 'quantity': 2}]},
            format='json',
        )
        url = reverse('api-v1:commerce:sale-detail', kwargs={'pk': resp.data['id']})

        resp = authenticated_client.put(url, {'lines': [{'product_id': product.pk, 'quantity': 5}]}, format='json')
        assert resp.status_code == 200
        assert resp.data['lines'][0]['quantity'] == 5
        assert StockLedger.get_stock(product.pk) == 5

        resp = authenticated_client.put(url, {'lines': [{'product_id': product.pk, 'quantity': 11}]}, format='json')
        assert resp.status_code == 409
        assert resp.data['code'] == 'INSUFFICIENT_STOCK'
        assert StockLedger.get_stock(product.pk) == 5

    def test_cancel_and_pay(self, authenticated_client, product):
        resp = authenticated_client.post(
            reverse('api-v1:commerce:sale-list'),
            {
                'sale_type': 'credit',
                'advance_payment': '5.00',
                'lines': [{'product_id': product.pk, 'quantity': 1}],
            },
            format='json',
        )
        sale_id = resp.data['id']
        resp = authenticated_client.post(
            reverse('api-v1:commerce:sale-payments', kwargs={'pk': sale_id}),
            {'amount': '60.00', 'payment_method': 'card'},
            format='json',
        )
        assert resp.status_code == 200
        assert resp.data['status'] == Sale.StatusChoices.PAID

        resp = authenticated_client.post(
            reverse('api-v1:commerce:sale-cancel', kwargs={'pk': sale_id}),
            {'reason': 'Customer returned it'},
            format='json',
        )
        assert resp.status_code == 200
        assert resp.data['status'] == Sale.StatusChoices.CANCELLED
        assert StockLedger.get_stock(product.pk) == 10


class TestPurchaseEndpoints:

    def test_create_and_receive(self, authenticated_client, product):
        supplier = SupplierFactory()
        resp = authenticated_client.post(
            reverse('api-v1:commerce:purchase-list'),
            {'supplier_id': supplier.pk, 'lines': [{'product_id': product.pk, 'quantity': 4}]},
            format='json',
        )
        assert resp.status_code == 201
        line_id = resp.data['lines'][0]['id']

        resp = authenticated_client.post(
            reverse('api-v1:commerce:purchase-receive', kwargs={'pk': resp.data['id']}),
            {'receipts': [{'line_id': line_id, 'quantity': 4}]},
            format='json',
        )
        assert resp.status_code == 200
        assert resp.data['status'] == 'received'
        assert resp.data['lines'][0]['quantity_pending'] == 0
        assert StockLedger.get_stock(product.pk) == 14

    def test_supplier_crud(self, authenticated_client):
        resp = authenticated_client.post(
            reverse('api-v1:commerce:supplier-list'),
            {'name': 'Parts Depot', 'phone': '2223344'},
            format='json',
        )
        assert resp.status_code == 201
        resp = authenticated_client.patch(
            reverse('api-v1:commerce:supplier-detail', kwargs={'pk': resp.data['id']}),
            {'delivery_time_days': 3},
            format='json',
        )
        assert resp.status_code == 200
        assert resp.data['delivery_time_days'] == 3
