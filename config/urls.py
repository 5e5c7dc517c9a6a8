"""
RepairShop — Root URL Configuration

All API endpoints are namespaced under /api/v1/.
The DRF browsable API is available for route inspection in development.

@file config/urls.py
"""

from django.contrib import admin
from django.urls import include, path
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.reverse import reverse
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

admin.site.site_header = 'RepairShop Administration'
admin.site.site_title = 'RepairShop'
admin.site.index_title = 'Repairs, stock and sales'


@api_view(['GET'])
@permission_classes([AllowAny])
def api_root(request, format=None):
    """RepairShop API v1: endpoint directory."""
    return Response({
        'auth': {
            'token': reverse('api-v1:token-obtain', request=request, format=format),
            'refresh': reverse('api-v1:token-refresh', request=request, format=format),
        },
        'inventory': {
            'products': reverse('api-v1:inventory:product-list', request=request, format=format),
            'movements': reverse('api-v1:inventory:movement-list', request=request, format=format),
        },
        'repairs': {
            'customers': reverse('api-v1:repairs:customer-list', request=request, format=format),
            'orders': reverse('api-v1:repairs:order-list', request=request, format=format),
        },
        'commerce': {
            'sales': reverse('api-v1:commerce:sale-list', request=request, format=format),
            'suppliers': reverse('api-v1:commerce:supplier-list', request=request, format=format),
            'purchases': reverse('api-v1:commerce:purchase-list', request=request, format=format),
        },
    })


api_v1_patterns = [
    path('', api_root, name='api-root'),
    path('auth/token/', TokenObtainPairView.as_view(), name='token-obtain'),
    path('auth/token/refresh/', TokenRefreshView.as_view(), name='token-refresh'),
    path('inventory/', include('inventory.urls', namespace='inventory')),
    path('repairs/', include('repairs.urls', namespace='repairs')),
    path('commerce/', include('commerce.urls', namespace='commerce')),
]

urlpatterns = [
    path('admin/', admin.site.urls),

    # DRF session auth (powers the "Log in" button on the browsable API)
    path('api/auth/', include('rest_framework.urls', namespace='rest_framework')),

    # Versioned API
    path('api/v1/', include((api_v1_patterns, 'api-v1'))),
]
