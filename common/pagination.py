from rest_framework.pagination import PageNumberPagination
from rest_framework.response import Response
from rest_framework.utils.urls import remove_query_param, replace_query_param


class StandardResultsSetPagination(PageNumberPagination):
    """Shared pagination behavior for admin list endpoints.

    Clients page with `?page=` and tune the page size with `?page_size=` (or
    the shorter `?limit=` used by the admin dashboard); sizes are capped to
    keep payloads predictable.
    """

    page_size = 10
    page_size_query_param = "page_size"
    max_page_size = 100

    def get_page_size(self, request):
        if self.page_size_query_param not in request.query_params and "limit" in request.query_params:
            try:
                requested = int(request.query_params["limit"])
            except (TypeError, ValueError):
                return self.page_size
            if requested > 0:
                return min(requested, self.max_page_size)
            return self.page_size
        return super().get_page_size(request)

    def get_window_response(self, request, results, *, total, page, page_size):
        """Same envelope as ``get_paginated_response`` for a page the service layer already sliced."""
        url = request.build_absolute_uri()
        next_url = None
        previous_url = None
        if page * page_size < total:
            next_url = replace_query_param(url, self.page_query_param, page + 1)
        if page == 2:
            previous_url = remove_query_param(url, self.page_query_param)
        elif page > 2:
            previous_url = replace_query_param(url, self.page_query_param, page - 1)
        return Response({"count": total, "next": next_url, "previous": previous_url, "results": results})
