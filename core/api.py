"""
Core — API Plumbing

Standard paginator and the response renderer that wraps successful
responses in the envelope:
  { "success": true, "data": ..., "meta": ... }

@file core/api.py
"""

from rest_framework.pagination import PageNumberPagination
from rest_framework.renderers import JSONRenderer

from core.constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE


class StandardPagination(PageNumberPagination):
    page_size = DEFAULT_PAGE_SIZE
    page_size_query_param = 'page_size'
    max_page_size = MAX_PAGE_SIZE


class StandardJSONRenderer(JSONRenderer):
    """Error responses and pre-enveloped payloads pass through untouched."""

    def render(self, data, accepted_media_type=None, renderer_context=None):
        response = renderer_context.get('response') if renderer_context else None

        if data is None or (response is not None and response.status_code >= 400):
            return super().render(data, accepted_media_type, renderer_context)
        if isinstance(data, dict) and 'success' in data:
            return super().render(data, accepted_media_type, renderer_context)

        if isinstance(data, dict) and 'results' in data:
            envelope = {
                'success': True,
                'data': data['results'],
                'meta': {key: data.get(key) for key in ('count', 'next', 'previous')},
            }
        else:
            envelope = {'success': True, 'data': data}
        return super().render(envelope, accepted_media_type, renderer_context)
