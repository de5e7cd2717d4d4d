# dx_core/common/api/pagination.py
from __future__ import annotations

from rest_framework.pagination import PageNumberPagination
from rest_framework.response import Response


class DefaultPagination(PageNumberPagination):
    """
    Worklist paging: { count, page, pages, next, previous, results }.
    """
    page_size = 25
    page_size_query_param = "page_size"
    max_page_size = 100

    def get_paginated_response(self, data):
        return Response(
            {
                "count": self.page.paginator.count,
                "page": self.page.number,
                "pages": self.page.paginator.num_pages,
                "next": self.get_next_link(),
                "previous": self.get_previous_link(),
                "results": data,
            }
        )

    def get_paginated_response_schema(self, schema):
        out = super().get_paginated_response_schema(schema)
        out["properties"]["page"] = {"type": "integer", "example": 1}
        out["properties"]["pages"] = {"type": "integer", "example": 3}
        return out


def paginate(request, queryset, serializer_class, *, view=None) -> Response:
    p = DefaultPagination()
    page = p.paginate_queryset(queryset, request, view=view)
    return p.get_paginated_response(serializer_class(page, many=True).data)
