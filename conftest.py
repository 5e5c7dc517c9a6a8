"""
RepairShop — Root conftest for pytest

Shared fixtures available to all test modules: API clients, users, and a
stocked product plus a freshly received repair order for the scenarios
that cross the inventory and repairs apps.

@file conftest.py
"""

import pytest
from rest_framework.test import APIClient

from repairs.services import RepairOrderService
from tests.factories import CustomerFactory, ProductFactory, SuperuserFactory, UserFactory


@pytest.fixture
def api_client():
    """Unauthenticated DRF test client."""
    return APIClient()


@pytest.fixture
def user(db):
    """Active counter clerk with default password TestPass2026!"""
    return UserFactory()


@pytest.fixture
def technician(db):
    return UserFactory(username='tech')


@pytest.fixture
def admin_user(db):
    return SuperuserFactory(username='admin')


@pytest.fixture
def authenticated_client(api_client, user):
    """API client authenticated as a regular user."""
    api_client.force_authenticate(user=user)
    return api_client


@pytest.fixture
def admin_client(api_client, admin_user):
    api_client.force_authenticate(user=admin_user)
    return api_client


@pytest.fixture
def customer(db):
    return CustomerFactory()


@pytest.fixture
def product(db):
    """Active part with 10 units booked through the ledger."""
    return ProductFactory(stock=10)


@pytest.fixture
def order(customer, user, settings):
    """Order in `received`, created through the service (history included)."""
    settings.REPAIR_STATUS_NOTIFICATIONS = False
    return RepairOrderService.create_order(
        customer_id=customer.pk,
        data={
            'device_brand': 'Samsung',
            'device_model': 'Galaxy A52',
            'problem_description': 'Does not charge.',
        },
        actor=user,
    )
