"""
Inventory — Serializers

Read serializers expose ledger fields; write serializers never accept
current_stock or version.

@file inventory/serializers.py
"""

from rest_framework import serializers

from .models import Product, StockMovement


class ProductReadSerializer(serializers.ModelSerializer):
    is_low_stock = serializers.BooleanField(read_only=True)
    profit_amount = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)

    class Meta:
        model = Product
        fields = [
            'id', 'code', 'name', 'description', 'product_type', 'compatible_model',
            'physical_location', 'current_stock', 'minimum_stock', 'is_low_stock',
            'purchase_price', 'sale_price', 'profit_amount', 'status',
            'created_at', 'updated_at',
        ]
        read_only_fields = fields


class ProductWriteSerializer(serializers.ModelSerializer):
    initial_stock = serializers.IntegerField(min_value=0, default=0, write_only=True)

    class Meta:
        model = Product
        fields = [
            'code', 'name', 'description', 'product_type', 'compatible_model',
            'physical_location', 'minimum_stock', 'purchase_price', 'sale_price',
            'status', 'initial_stock',
        ]


class StockAdjustmentSerializer(serializers.Serializer):
    mode = serializers.ChoiceField(choices=['add', 'subtract', 'set'])
    quantity = serializers.IntegerField(min_value=0)
    reason = serializers.CharField(max_length=200)
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class BulkAdjustmentLineSerializer(serializers.Serializer):
    product_id = serializers.IntegerField()
    mode = serializers.ChoiceField(choices=['add', 'subtract', 'set'])
    quantity = serializers.IntegerField(min_value=0)


class BulkAdjustmentSerializer(serializers.Serializer):
    adjustments = BulkAdjustmentLineSerializer(many=True, allow_empty=False)
    reason = serializers.CharField(max_length=200)
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class StockMovementSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source='product.name', read_only=True)

    class Meta:
        model = StockMovement
        fields = [
            'id', 'product', 'product_name', 'movement_type', 'quantity',
            'unit_price', 'total_cost', 'stock_before', 'stock_after',
            'repair_order', 'reference_type', 'reference_id', 'reason', 'notes',
            'created_by', 'created_at',
        ]
        read_only_fields = fields


class LedgerCheckSerializer(serializers.Serializer):
    product_id = serializers.IntegerField()
    current_stock = serializers.IntegerField()
    replayed_stock = serializers.IntegerField()
    movement_count = serializers.IntegerField()
    chain_intact = serializers.BooleanField()
    ok = serializers.BooleanField()
