"""
Repairs — Views

Customers: list, create, retrieve, update. Repair orders: intake, edit and the
transition / cancel / costs / technician / parts / history actions, each
delegating to the service layer.

@file repairs/views.py
"""

from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from .models import Customer, RepairOrder
from .serializers import (
    AssignTechnicianSerializer,
    CancelSerializer,
    CostsSerializer,
    CustomerSerializer,
    OrderHistorySerializer,
    OrderPartSerializer,
    RepairOrderCreateSerializer,
    RepairOrderReadSerializer,
    RepairOrderUpdateSerializer,
    TransitionSerializer,
    UsePartSerializer,
)
from .services import CustomerService, PartConsumptionService, RepairOrderService


class CustomerViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.CreateModelMixin,
    mixins.UpdateModelMixin,
    viewsets.GenericViewSet,
):
    permission_classes = [IsAuthenticated]
    serializer_class = CustomerSerializer
    queryset = Customer.objects.all()
    filterset_fields = ['status']
    search_fields = ['first_name', 'last_name', 'document_number', 'phone', 'email']
    ordering_fields = ['first_name', 'last_name', 'created_at']
    ordering = ['first_name', 'last_name']

    def perform_create(self, serializer):
        serializer.instance = CustomerService.create_customer(
            data=dict(serializer.validated_data), actor=self.request.user,
        )

    def perform_update(self, serializer):
        serializer.instance = CustomerService.update_customer(
            customer_id=self.get_object().pk,
            data=dict(serializer.validated_data),
            actor=self.request.user,
        )


class RepairOrderViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    """
    Orders are created in `received`; afterwards status moves only through
    the transition and cancel actions. PATCH edits the descriptive fields.
    """

    permission_classes = [IsAuthenticated]
    queryset = RepairOrder.objects.select_related('customer', 'technician').prefetch_related('parts__product')
    filterset_fields = ['status', 'priority', 'customer', 'technician']
    search_fields = ['order_number', 'device_brand', 'device_model', 'imei', 'customer__first_name']
    ordering_fields = ['received_date', 'promised_date', 'priority', 'status']
    ordering = ['-received_date']

    def get_serializer_class(self):
        return {
            'create': RepairOrderCreateSerializer,
            'partial_update': RepairOrderUpdateSerializer,
            'transition': TransitionSerializer,
            'cancel': CancelSerializer,
            'costs': CostsSerializer,
            'technician': AssignTechnicianSerializer,
            'parts': UsePartSerializer,
            'history': OrderHistorySerializer,
        }.get(self.action, RepairOrderReadSerializer)

    def _order_response(self, order_id, status_code=status.HTTP_200_OK):
        order = self.get_queryset().get(pk=order_id)
        return Response(RepairOrderReadSerializer(order).data, status=status_code)

    def create(self, request, *args, **kwargs):
        ser = RepairOrderCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = dict(ser.validated_data)
        customer_id = data.pop('customer_id')
        order = RepairOrderService.create_order(customer_id=customer_id, data=data, actor=request.user)
        return self._order_response(order.pk, status.HTTP_201_CREATED)

    def partial_update(self, request, *args, **kwargs):
        order = self.get_object()
        ser = RepairOrderUpdateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        RepairOrderService.update_order(order_id=order.pk, data=dict(ser.validated_data), actor=request.user)
        return self._order_response(order.pk)

    @action(detail=True, methods=['post'], url_path='transition')
    def transition(self, request, pk=None):
        order = self.get_object()
        ser = TransitionSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        RepairOrderService.transition(
            order_id=order.pk,
            new_status=ser.validated_data['status'],
            actor=request.user,
            note=ser.validated_data['note'],
        )
        return self._order_response(order.pk)

    @action(detail=True, methods=['post'], url_path='cancel')
    def cancel(self, request, pk=None):
        order = self.get_object()
        ser = CancelSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        RepairOrderService.cancel(order_id=order.pk, actor=request.user, note=ser.validated_data['note'])
        return self._order_response(order.pk)

    @action(detail=True, methods=['post'], url_path='costs')
    def costs(self, request, pk=None):
        order = self.get_object()
        ser = CostsSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        RepairOrderService.update_costs(order_id=order.pk, actor=request.user, **ser.validated_data)
        return self._order_response(order.pk)

    @action(detail=True, methods=['post'], url_path='technician')
    def technician(self, request, pk=None):
        order = self.get_object()
        ser = AssignTechnicianSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        RepairOrderService.assign_technician(
            order_id=order.pk, technician_id=ser.validated_data['technician_id'], actor=request.user,
        )
        return self._order_response(order.pk)

    @action(detail=True, methods=['post'], url_path='parts')
    def parts(self, request, pk=None):
        order = self.get_object()
        ser = UsePartSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        part = PartConsumptionService.use_item(order_id=order.pk, actor=request.user, **ser.validated_data)
        return Response(OrderPartSerializer(part).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['get'], url_path='history')
    def history(self, request, pk=None):
        order = self.get_object()
        entries = order.history.order_by('created_at', 'id')
        return Response(OrderHistorySerializer(entries, many=True).data)
