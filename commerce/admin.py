"""
Commerce — Django Admin Configuration

Sales and purchases are browse-only: their totals and statuses change
through SaleService and PurchaseService, which also move stock.
Suppliers are fully editable.

@file commerce/admin.py
"""

from django.contrib import admin
from django.utils.html import format_html
from django.utils.translation import gettext_lazy as _

from core.admin import ReadOnlyAdminMixin

from .models import Purchase, PurchaseLine, Sale, SaleLine, Supplier

STATUS_COLORS = {
    'pending': '#f59e0b',
    'partial': '#3b82f6',
    'paid': '#22c55e',
    'received': '#22c55e',
    'cancelled': '#dc2626',
}


class StatusBadgeMixin:

    @admin.display(description=_('Status'))
    def status_badge(self, obj):
        color = STATUS_COLORS.get(obj.status, '#6b7280')
        return format_html(
            '<span style="background:{};color:#fff;padding:2px 8px;'
            'border-radius:4px;font-size:11px;font-weight:600;">{}</span>',
            color, obj.get_status_display(),
        )


class SaleLineInline(ReadOnlyAdminMixin, admin.TabularInline):
    model = SaleLine
    extra = 0
    fields = ('product', 'quantity', 'unit_price', 'item_discount', 'total_price')
    readonly_fields = fields


@admin.register(Sale)
class SaleAdmin(StatusBadgeMixin, ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = (
        'sale_number', 'customer', 'seller', 'sale_type', 'total',
        'advance_payment', 'status_badge', 'payment_method', 'sale_date',
    )
    list_filter = ('status', 'sale_type', 'payment_method', 'sale_date')
    search_fields = ('sale_number', 'customer__first_name', 'customer__last_name')
    list_select_related = ('customer', 'seller')
    inlines = [SaleLineInline]
    date_hierarchy = 'sale_date'
    list_per_page = 50
    ordering = ('-sale_date', '-id')


@admin.register(Supplier)
class SupplierAdmin(admin.ModelAdmin):
    list_display = ('name', 'contact_person', 'phone', 'email', 'delivery_time_days', 'status')
    list_filter = ('status',)
    search_fields = ('name', 'contact_person', 'tax_id', 'email')
    readonly_fields = ('created_at', 'updated_at')
    list_per_page = 50
    ordering = ('name',)


class PurchaseLineInline(ReadOnlyAdminMixin, admin.TabularInline):
    model = PurchaseLine
    extra = 0
    fields = ('product', 'quantity_ordered', 'quantity_received', 'unit_cost')
    readonly_fields = fields


@admin.register(Purchase)
class PurchaseAdmin(StatusBadgeMixin, ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = (
        'purchase_number', 'supplier', 'total', 'status_badge',
        'order_date', 'promised_date', 'received_date',
    )
    list_filter = ('status', 'order_date')
    search_fields = ('purchase_number', 'supplier__name')
    list_select_related = ('supplier',)
    inlines = [PurchaseLineInline]
    date_hierarchy = 'order_date'
    list_per_page = 50
    ordering = ('-order_date', '-id')
