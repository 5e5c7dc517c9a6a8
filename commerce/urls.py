"""
Commerce — URL Configuration

@file commerce/urls.py
"""

from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .views import PurchaseViewSet, SaleViewSet, SupplierViewSet

app_name = 'commerce'

router = DefaultRouter()
router.register('sales', SaleViewSet, basename='sale')
router.register('suppliers', SupplierViewSet, basename='supplier')
router.register('purchases', PurchaseViewSet, basename='purchase')

urlpatterns = [
    path('', include(router.urls)),
]
