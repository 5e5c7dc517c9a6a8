"""
Repairs — Serializers

Order status and money fields are read-only on the order serializers and
absent from the edit serializer; transitions, costs and parts have their
own action serializers.

@file repairs/serializers.py
"""

from rest_framework import serializers

from core.constants import MONEY_DECIMAL_PLACES, MONEY_MAX_DIGITS

from .models import Customer, OrderHistory, OrderPart, RepairOrder

__all__ = [
    'CustomerSerializer',
    'OrderPartSerializer',
    'OrderHistorySerializer',
    'RepairOrderReadSerializer',
    'RepairOrderCreateSerializer',
    'RepairOrderUpdateSerializer',
    'TransitionSerializer',
    'CancelSerializer',
    'CostsSerializer',
    'UsePartSerializer',
    'AssignTechnicianSerializer',
]


class CustomerSerializer(serializers.ModelSerializer):
    full_name = serializers.CharField(read_only=True)

    class Meta:
        model = Customer
        fields = [
            'id', 'first_name', 'last_name', 'full_name', 'document_number',
            'phone', 'email', 'address', 'status', 'created_at', 'updated_at',
        ]
        read_only_fields = ['id', 'full_name', 'created_at', 'updated_at']


class OrderPartSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source='product.name', read_only=True)

    class Meta:
        model = OrderPart
        fields = [
            'id', 'order', 'product', 'product_name', 'quantity',
            'unit_price', 'total_price', 'used_at', 'updated_at',
        ]
        read_only_fields = fields


class OrderHistorySerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderHistory
        fields = ['id', 'order', 'previous_status', 'new_status', 'changed_by', 'notes', 'created_at']
        read_only_fields = fields


class RepairOrderReadSerializer(serializers.ModelSerializer):
    customer_name = serializers.CharField(source='customer.full_name', read_only=True)
    status_display = serializers.CharField(source='get_status_display', read_only=True)
    pending_balance = serializers.DecimalField(
        max_digits=MONEY_MAX_DIGITS, decimal_places=MONEY_DECIMAL_PLACES, read_only=True,
    )
    parts = OrderPartSerializer(many=True, read_only=True)

    class Meta:
        model = RepairOrder
        fields = [
            'id', 'order_number', 'customer', 'customer_name', 'received_by', 'technician',
            'device_brand', 'device_model', 'device_serial', 'imei', 'device_color',
            'unlock_pattern', 'included_accessories',
            'problem_description', 'customer_notes', 'technical_notes',
            'initial_diagnosis', 'final_diagnosis', 'solution_applied',
            'status', 'status_display', 'priority',
            'diagnosis_cost', 'repair_cost', 'total_cost', 'advance_payment', 'pending_balance',
            'received_date', 'promised_date', 'diagnosis_date', 'repair_date', 'delivery_date',
            'parts', 'created_at', 'updated_at',
        ]
        read_only_fields = fields


class RepairOrderCreateSerializer(serializers.Serializer):
    customer_id = serializers.IntegerField()
    technician_id = serializers.IntegerField(required=False, allow_null=True)
    device_brand = serializers.CharField(max_length=100)
    device_model = serializers.CharField(max_length=100)
    device_serial = serializers.CharField(max_length=100, required=False, allow_blank=True)
    imei = serializers.CharField(max_length=50, required=False, allow_blank=True)
    device_color = serializers.CharField(max_length=50, required=False, allow_blank=True)
    unlock_pattern = serializers.CharField(max_length=100, required=False, allow_blank=True)
    included_accessories = serializers.CharField(required=False, allow_blank=True)
    problem_description = serializers.CharField()
    customer_notes = serializers.CharField(required=False, allow_blank=True)
    priority = serializers.ChoiceField(choices=RepairOrder.PriorityChoices.choices, required=False)
    promised_date = serializers.DateTimeField(required=False, allow_null=True)
    diagnosis_cost = serializers.DecimalField(max_digits=MONEY_MAX_DIGITS, decimal_places=2, required=False)
    repair_cost = serializers.DecimalField(max_digits=MONEY_MAX_DIGITS, decimal_places=2, required=False)
    total_cost = serializers.DecimalField(max_digits=MONEY_MAX_DIGITS, decimal_places=2, required=False)
    advance_payment = serializers.DecimalField(max_digits=MONEY_MAX_DIGITS, decimal_places=2, required=False)


class RepairOrderUpdateSerializer(serializers.Serializer):
    device_brand = serializers.CharField(max_length=100, required=False)
    device_model = serializers.CharField(max_length=100, required=False)
    device_serial = serializers.CharField(max_length=100, required=False, allow_blank=True)
    imei = serializers.CharField(max_length=50, required=False, allow_blank=True)
    device_color = serializers.CharField(max_length=50, required=False, allow_blank=True)
    unlock_pattern = serializers.CharField(max_length=100, required=False, allow_blank=True)
    included_accessories = serializers.CharField(required=False, allow_blank=True)
    problem_description = serializers.CharField(required=False)
    customer_notes = serializers.CharField(required=False, allow_blank=True)
    technical_notes = serializers.CharField(required=False, allow_blank=True)
    initial_diagnosis = serializers.CharField(required=False, allow_blank=True)
    final_diagnosis = serializers.CharField(required=False, allow_blank=True)
    solution_applied = serializers.CharField(required=False, allow_blank=True)
    priority = serializers.ChoiceField(choices=RepairOrder.PriorityChoices.choices, required=False)
    promised_date = serializers.DateTimeField(required=False, allow_null=True)


class TransitionSerializer(serializers.Serializer):
    # Unknown statuses are rejected by the service as INVALID_INPUT.
    status = serializers.CharField(max_length=20)
    note = serializers.CharField(required=False, allow_blank=True, default='')


class CancelSerializer(serializers.Serializer):
    note = serializers.CharField(required=False, allow_blank=True, default='')


class CostsSerializer(serializers.Serializer):
    diagnosis_cost = serializers.DecimalField(max_digits=MONEY_MAX_DIGITS, decimal_places=2, required=False)
    repair_cost = serializers.DecimalField(max_digits=MONEY_MAX_DIGITS, decimal_places=2, required=False)
    total_cost = serializers.DecimalField(max_digits=MONEY_MAX_DIGITS, decimal_places=2, required=False)
    advance_payment = serializers.DecimalField(max_digits=MONEY_MAX_DIGITS, decimal_places=2, required=False)


class UsePartSerializer(serializers.Serializer):
    product_id = serializers.IntegerField()
    quantity = serializers.IntegerField(min_value=1)
    unit_price = serializers.DecimalField(
        max_digits=MONEY_MAX_DIGITS, decimal_places=2, required=False, allow_null=True,
    )


class AssignTechnicianSerializer(serializers.Serializer):
    technician_id = serializers.IntegerField(allow_null=True)
