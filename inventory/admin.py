"""
Inventory — Django Admin Configuration

Products are editable except for the ledger-owned columns. StockMovement
is read-only (insert-only model).

@file inventory/admin.py
"""

from django.contrib import admin
from django.utils.translation import gettext_lazy as _

from core.admin import ReadOnlyAdminMixin

from .models import Product, StockMovement


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = (
        'name', 'code', 'product_type', 'current_stock', 'minimum_stock',
        'sale_price', 'status',
    )
    list_filter = ('product_type', 'status')
    search_fields = ('name', 'code', 'compatible_model')
    readonly_fields = ('current_stock', 'version', 'created_at', 'updated_at')
    list_per_page = 50

    fieldsets = (
        (_('Product'), {
            'fields': ('code', 'name', 'description', 'product_type', 'compatible_model', 'physical_location', 'status'),
        }),
        (_('Stock'), {
            'fields': ('current_stock', 'minimum_stock', 'version'),
        }),
        (_('Pricing'), {
            'fields': ('purchase_price', 'sale_price'),
        }),
        (_('Audit'), {
            'fields': ('created_at', 'updated_at'),
        }),
    )


@admin.register(StockMovement)
class StockMovementAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = (
        'id', 'product', 'movement_type', 'quantity', 'stock_before', 'stock_after',
        'repair_order', 'reference_type', 'reference_id', 'created_by', 'created_at',
    )
    list_filter = ('movement_type', 'created_at')
    search_fields = ('product__name', 'product__code', 'reason')
    list_select_related = ('product', 'repair_order', 'created_by')
    list_per_page = 50
    date_hierarchy = 'created_at'
    ordering = ('-created_at', '-id')
