"""
Inventory — Views

Products: list (filterable by stock_level), create, retrieve, update
(catalogue fields only) and the adjust / bulk-adjust / movements / verify
actions. Stock movements are read-only.

@file inventory/views.py
"""

from dataclasses import asdict

from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from core.exceptions import InvalidInputError

from .models import STOCK_LEVELS, Product, StockMovement
from .serializers import (
    BulkAdjustmentSerializer,
    LedgerCheckSerializer,
    ProductReadSerializer,
    ProductWriteSerializer,
    StockAdjustmentSerializer,
    StockMovementSerializer,
)
from .services import AdjustmentService, ProductService, StockLedger


class ProductViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    permission_classes = [IsAuthenticated]
    queryset = Product.objects.all()
    filterset_fields = ['product_type', 'status']
    search_fields = ['name', 'code', 'compatible_model']
    ordering_fields = ['name', 'current_stock', 'sale_price']
    ordering = ['name']

    def get_queryset(self):
        queryset = super().get_queryset()
        level = self.request.query_params.get('stock_level')
        if level:
            if level not in STOCK_LEVELS:
                raise InvalidInputError(
                    detail=f'stock_level must be one of {", ".join(STOCK_LEVELS)}; got {level!r}.',
                )
            queryset = queryset.stock_level(level)
        return queryset

    def get_serializer_class(self):
        if self.action in ('create', 'update', 'partial_update'):
            return ProductWriteSerializer
        if self.action == 'adjust':
            return StockAdjustmentSerializer
        if self.action == 'bulk_adjust':
            return BulkAdjustmentSerializer
        return ProductReadSerializer

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)
        initial_stock = data.pop('initial_stock', 0)
        product = ProductService.create_product(data=data, initial_stock=initial_stock, actor=request.user)
        return Response(ProductReadSerializer(product).data, status=status.HTTP_201_CREATED)

    def update(self, request, *args, **kwargs):
        product = self.get_object()
        serializer = self.get_serializer(product, data=request.data, partial=kwargs.get('partial', False))
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)
        data.pop('initial_stock', None)
        product = ProductService.update_product(product_id=product.pk, data=data, actor=request.user)
        return Response(ProductReadSerializer(product).data)

    def partial_update(self, request, *args, **kwargs):
        kwargs['partial'] = True
        return self.update(request, *args, **kwargs)

    @action(detail=True, methods=['post'], url_path='adjust')
    def adjust(self, request, pk=None):
        product = self.get_object()
        ser = StockAdjustmentSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        movement = AdjustmentService.adjust(product_id=product.pk, actor=request.user, **ser.validated_data)
        return Response(StockMovementSerializer(movement).data, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=['post'], url_path='bulk-adjust')
    def bulk_adjust(self, request):
        ser = BulkAdjustmentSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = dict(ser.validated_data)
        adjustments = [dict(row) for row in data.pop('adjustments')]
        movements = AdjustmentService.bulk_adjust(adjustments=adjustments, actor=request.user, **data)
        return Response(StockMovementSerializer(movements, many=True).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['get'], url_path='movements')
    def movements(self, request, pk=None):
        product = self.get_object()
        qs = product.movements.select_related('product').order_by('-created_at', '-id')
        page = self.paginate_queryset(qs)
        if page is not None:
            return self.get_paginated_response(StockMovementSerializer(page, many=True).data)
        return Response(StockMovementSerializer(qs, many=True).data)

    @action(detail=True, methods=['get'], url_path='verify')
    def verify(self, request, pk=None):
        product = self.get_object()
        check = StockLedger.verify(product.pk)
        data = LedgerCheckSerializer({**asdict(check), 'ok': check.ok}).data
        return Response(data)


class StockMovementViewSet(viewsets.ReadOnlyModelViewSet):
    permission_classes = [IsAuthenticated]
    serializer_class = StockMovementSerializer
    queryset = StockMovement.objects.select_related('product')
    filterset_fields = ['product', 'movement_type', 'repair_order', 'reference_type']
    ordering_fields = ['created_at']
    ordering = ['-created_at']
