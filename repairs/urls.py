"""
Repairs — URL Configuration

@file repairs/urls.py
"""

from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .views import CustomerViewSet, RepairOrderViewSet

app_name = 'repairs'

router = DefaultRouter()
router.register('customers', CustomerViewSet, basename='customer')
router.register('orders', RepairOrderViewSet, basename='order')

urlpatterns = [
    path('', include(router.urls)),
]
