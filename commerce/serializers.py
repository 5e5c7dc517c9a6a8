"""
Commerce — Serializers

Read serializers for sales and purchases; input serializers for the
finalize / edit / payment / create / receive calls. Totals are computed by the
services, never accepted from clients.

@file commerce/serializers.py
"""

from rest_framework import serializers

from core.constants import MONEY_DECIMAL_PLACES, MONEY_MAX_DIGITS

from .models import Purchase, PurchaseLine, Sale, SaleLine, Supplier


def _money(**kwargs):
    return serializers.DecimalField(max_digits=MONEY_MAX_DIGITS, decimal_places=MONEY_DECIMAL_PLACES, **kwargs)


# ---------------------------------------------------------------------------
# Sales
# ---------------------------------------------------------------------------

class SaleLineSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source='product.name', read_only=True)

    class Meta:
        model = SaleLine
        fields = ['id', 'product', 'product_name', 'quantity', 'unit_price', 'item_discount', 'total_price']
        read_only_fields = fields


class SaleReadSerializer(serializers.ModelSerializer):
    lines = SaleLineSerializer(many=True, read_only=True)
    pending_balance = _money(read_only=True)
    status_display = serializers.CharField(source='get_status_display', read_only=True)

    class Meta:
        model = Sale
        fields = [
            'id', 'sale_number', 'customer', 'seller', 'sale_type',
            'subtotal', 'discount', 'taxes', 'total', 'advance_payment', 'pending_balance',
            'status', 'status_display', 'payment_method', 'notes', 'sale_date', 'lines',
            'created_at', 'updated_at',
        ]
        read_only_fields = fields


class SaleLineInputSerializer(serializers.Serializer):
    product_id = serializers.IntegerField()
    quantity = serializers.IntegerField(min_value=1)
    unit_price = _money(required=False, allow_null=True)
    item_discount = _money(required=False, min_value=0)


class SaleCreateSerializer(serializers.Serializer):
    customer_id = serializers.IntegerField(required=False, allow_null=True)
    sale_type = serializers.ChoiceField(choices=Sale.SaleType.choices, default=Sale.SaleType.CASH)
    payment_method = serializers.ChoiceField(choices=Sale.PaymentMethod.choices, default=Sale.PaymentMethod.CASH)
    discount = _money(required=False, default=0)
    taxes = _money(required=False, default=0)
    advance_payment = _money(required=False, default=0)
    notes = serializers.CharField(required=False, allow_blank=True, default='')
    lines = SaleLineInputSerializer(many=True, allow_empty=False)


class SaleUpdateSerializer(serializers.Serializer):
    discount = _money(required=False)
    taxes = _money(required=False)
    notes = serializers.CharField(required=False, allow_blank=True)
    lines = SaleLineInputSerializer(many=True, allow_empty=False)


class SaleCancelSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=500)


class SalePaymentSerializer(serializers.Serializer):
    amount = _money()
    payment_method = serializers.ChoiceField(choices=Sale.PaymentMethod.choices)
    notes = serializers.CharField(required=False, allow_blank=True, default='', max_length=500)


# ---------------------------------------------------------------------------
# Suppliers & purchases
# ---------------------------------------------------------------------------

class SupplierSerializer(serializers.ModelSerializer):
    class Meta:
        model = Supplier
        fields = [
            'id', 'name', 'contact_person', 'phone', 'email', 'address', 'tax_id',
            'delivery_time_days', 'status', 'notes', 'created_at', 'updated_at',
        ]
        read_only_fields = ['id', 'created_at', 'updated_at']


class PurchaseLineSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source='product.name', read_only=True)
    quantity_pending = serializers.IntegerField(read_only=True)

    class Meta:
        model = PurchaseLine
        fields = [
            'id', 'product', 'product_name', 'quantity_ordered', 'quantity_received',
            'quantity_pending', 'unit_cost',
        ]
        read_only_fields = fields


class PurchaseReadSerializer(serializers.ModelSerializer):
    supplier_name = serializers.CharField(source='supplier.name', read_only=True)
    lines = PurchaseLineSerializer(many=True, read_only=True)

    class Meta:
        model = Purchase
        fields = [
            'id', 'purchase_number', 'supplier', 'supplier_name', 'status',
            'subtotal', 'discount', 'taxes', 'total',
            'order_date', 'promised_date', 'received_date', 'notes', 'lines',
            'created_at', 'updated_at',
        ]
        read_only_fields = fields


class PurchaseLineInputSerializer(serializers.Serializer):
    product_id = serializers.IntegerField()
    quantity = serializers.IntegerField(min_value=1)
    unit_cost = _money(required=False, allow_null=True)


class PurchaseCreateSerializer(serializers.Serializer):
    supplier_id = serializers.IntegerField()
    discount = _money(required=False, default=0)
    taxes = _money(required=False, default=0)
    promised_date = serializers.DateField(required=False, allow_null=True, default=None)
    notes = serializers.CharField(required=False, allow_blank=True, default='')
    lines = PurchaseLineInputSerializer(many=True, allow_empty=False)


class ReceiptLineSerializer(serializers.Serializer):
    line_id = serializers.IntegerField()
    quantity = serializers.IntegerField(min_value=1)


class PurchaseReceiveSerializer(serializers.Serializer):
    receipts = ReceiptLineSerializer(many=True, allow_empty=False)
