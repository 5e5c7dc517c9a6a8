"""
Repairs — Django Admin Configuration

Status and money fields on RepairOrder are read-only here; they change
through RepairOrderService. OrderHistory and OrderPart are browse-only.
The order page shows whether replaying its history reproduces the
current status.

@file repairs/admin.py
"""

from django.contrib import admin
from django.utils.translation import gettext_lazy as _

from core.admin import ReadOnlyAdminMixin
from core.exceptions import InvalidStateTransition

from .models import Customer, OrderHistory, OrderPart, RepairOrder
from .services import RepairOrderService


@admin.register(Customer)
class CustomerAdmin(admin.ModelAdmin):
    list_display = ('full_name', 'document_number', 'phone', 'email', 'status')
    list_filter = ('status',)
    search_fields = ('first_name', 'last_name', 'document_number', 'phone', 'email')
    readonly_fields = ('created_at', 'updated_at')
    list_per_page = 50


class OrderHistoryInline(ReadOnlyAdminMixin, admin.TabularInline):
    model = OrderHistory
    extra = 0
    fields = ('created_at', 'previous_status', 'new_status', 'changed_by', 'notes')
    readonly_fields = fields
    ordering = ('created_at', 'id')


class OrderPartInline(ReadOnlyAdminMixin, admin.TabularInline):
    model = OrderPart
    extra = 0
    fields = ('product', 'quantity', 'unit_price', 'total_price', 'used_at')
    readonly_fields = fields


@admin.register(RepairOrder)
class RepairOrderAdmin(admin.ModelAdmin):
    list_display = (
        'order_number', 'customer', 'device_brand', 'device_model', 'status',
        'priority', 'technician', 'total_cost', 'received_date',
    )
    list_filter = ('status', 'priority', 'received_date')
    search_fields = ('order_number', 'customer__first_name', 'customer__last_name', 'imei', 'device_serial')
    list_select_related = ('customer', 'technician')
    readonly_fields = (
        'order_number', 'status', 'diagnosis_cost', 'repair_cost', 'total_cost',
        'advance_payment', 'diagnosis_date', 'repair_date', 'delivery_date',
        'history_consistent', 'created_at', 'updated_at',
    )
    inlines = [OrderPartInline, OrderHistoryInline]
    date_hierarchy = 'received_date'
    list_per_page = 50

    fieldsets = (
        (_('Order'), {
            'fields': (
                'order_number', 'customer', 'status', 'history_consistent',
                'priority', 'received_by', 'technician',
            ),
        }),
        (_('Device'), {
            'fields': (
                'device_brand', 'device_model', 'device_serial', 'imei', 'device_color',
                'unlock_pattern', 'included_accessories',
            ),
        }),
        (_('Work'), {
            'fields': (
                'problem_description', 'customer_notes', 'technical_notes',
                'initial_diagnosis', 'final_diagnosis', 'solution_applied',
            ),
        }),
        (_('Money'), {
            'fields': ('diagnosis_cost', 'repair_cost', 'total_cost', 'advance_payment'),
        }),
        (_('Dates'), {
            'fields': (
                'received_date', 'promised_date', 'diagnosis_date', 'repair_date',
                'delivery_date', 'created_at', 'updated_at',
            ),
        }),
    )

    @admin.display(description=_('History consistent'), boolean=True)
    def history_consistent(self, obj):
        if obj.pk is None:
            return None
        try:
            return RepairOrderService.replay_history(obj.pk) == obj.status
        except InvalidStateTransition:
            return False


@admin.register(OrderHistory)
class OrderHistoryAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = ('order', 'previous_status', 'new_status', 'changed_by', 'created_at')
    list_filter = ('new_status', 'created_at')
    search_fields = ('order__order_number',)
    list_select_related = ('order', 'changed_by')
    ordering = ('-created_at', '-id')
