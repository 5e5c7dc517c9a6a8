"""
Commerce — Views

Sales: finalize, edit, cancel, register payment. Suppliers: list, create,
retrieve, update. Purchases: create, receive, cancel.

@file commerce/views.py
"""

from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from .models import Purchase, Sale, Supplier
from .serializers import (
    PurchaseCreateSerializer,
    PurchaseReadSerializer,
    PurchaseReceiveSerializer,
    SaleCancelSerializer,
    SaleCreateSerializer,
    SalePaymentSerializer,
    SaleReadSerializer,
    SaleUpdateSerializer,
    SupplierSerializer,
)
from .services import PurchaseService, SaleService, SupplierService


class SaleViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    permission_classes = [IsAuthenticated]
    queryset = Sale.objects.select_related('customer', 'seller').prefetch_related('lines__product')
    filterset_fields = ['status', 'sale_type', 'payment_method', 'customer', 'seller']
    search_fields = ['sale_number', 'customer__first_name', 'customer__last_name']
    ordering_fields = ['sale_date', 'total']
    ordering = ['-sale_date']

    def get_serializer_class(self):
        return {
            'create': SaleCreateSerializer,
            'update': SaleUpdateSerializer,
            'cancel': SaleCancelSerializer,
            'payments': SalePaymentSerializer,
        }.get(self.action, SaleReadSerializer)

    def _sale_response(self, sale_id, status_code=status.HTTP_200_OK):
        return Response(SaleReadSerializer(self.get_queryset().get(pk=sale_id)).data, status=status_code)

    def create(self, request, *args, **kwargs):
        ser = SaleCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = dict(ser.validated_data)
        lines = [dict(line) for line in data.pop('lines')]
        sale = SaleService.finalize_sale(lines=lines, actor=request.user, **data)
        return self._sale_response(sale.pk, status.HTTP_201_CREATED)

    def update(self, request, *args, **kwargs):
        sale = self.get_object()
        ser = SaleUpdateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = dict(ser.validated_data)
        lines = [dict(line) for line in data.pop('lines')]
        SaleService.update_sale(sale_id=sale.pk, lines=lines, actor=request.user, **data)
        return self._sale_response(sale.pk)

    @action(detail=True, methods=['post'], url_path='cancel')
    def cancel(self, request, pk=None):
        sale = self.get_object()
        ser = SaleCancelSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        SaleService.cancel_sale(sale_id=sale.pk, reason=ser.validated_data['reason'], actor=request.user)
        return self._sale_response(sale.pk)

    @action(detail=True, methods=['post'], url_path='payments')
    def payments(self, request, pk=None):
        sale = self.get_object()
        ser = SalePaymentSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        SaleService.register_payment(sale_id=sale.pk, actor=request.user, **ser.validated_data)
        return self._sale_response(sale.pk)


class SupplierViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.CreateModelMixin,
    mixins.UpdateModelMixin,
    viewsets.GenericViewSet,
):
    permission_classes = [IsAuthenticated]
    serializer_class = SupplierSerializer
    queryset = Supplier.objects.all()
    filterset_fields = ['status']
    search_fields = ['name', 'contact_person', 'tax_id', 'email']
    ordering_fields = ['name', 'created_at']
    ordering = ['name']

    def perform_create(self, serializer):
        serializer.instance = SupplierService.create_supplier(
            data=dict(serializer.validated_data), actor=self.request.user,
        )

    def perform_update(self, serializer):
        serializer.instance = SupplierService.update_supplier(
            supplier_id=self.get_object().pk,
            data=dict(serializer.validated_data),
            actor=self.request.user,
        )


class PurchaseViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    permission_classes = [IsAuthenticated]
    queryset = Purchase.objects.select_related('supplier').prefetch_related('lines__product')
    filterset_fields = ['status', 'supplier']
    search_fields = ['purchase_number', 'supplier__name']
    ordering_fields = ['order_date', 'total']
    ordering = ['-order_date']

    def get_serializer_class(self):
        return {
            'create': PurchaseCreateSerializer,
            'receive': PurchaseReceiveSerializer,
        }.get(self.action, PurchaseReadSerializer)

    def _purchase_response(self, purchase_id, status_code=status.HTTP_200_OK):
        return Response(PurchaseReadSerializer(self.get_queryset().get(pk=purchase_id)).data, status=status_code)

    def create(self, request, *args, **kwargs):
        ser = PurchaseCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = dict(ser.validated_data)
        lines = [dict(line) for line in data.pop('lines')]
        purchase = PurchaseService.create_purchase(lines=lines, actor=request.user, **data)
        return self._purchase_response(purchase.pk, status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'], url_path='receive')
    def receive(self, request, pk=None):
        purchase = self.get_object()
        ser = PurchaseReceiveSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        receipts = [dict(receipt) for receipt in ser.validated_data['receipts']]
        PurchaseService.receive(purchase_id=purchase.pk, receipts=receipts, actor=request.user)
        return self._purchase_response(purchase.pk)

    @action(detail=True, methods=['post'], url_path='cancel')
    def cancel(self, request, pk=None):
        purchase = self.get_object()
        PurchaseService.cancel_purchase(purchase_id=purchase.pk, actor=request.user)
        return self._purchase_response(purchase.pk)
