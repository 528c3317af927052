import math
from typing import Optional

from django.conf import settings


def paginate(qs, page: Optional[int] = None, limit: Optional[int] = None):
    """Slice ``qs`` for ``page``/``limit`` and return ``(items, pagination)``.

    ``totalPages`` is ``ceil(total / limit)``, so an empty result has zero pages.
    """
    total = qs.count()
    page = max(1, int(page or 1))
    limit = min(settings.APPOINTMENT_MAX_PAGE_SIZE, max(1, int(limit or settings.APPOINTMENT_DEFAULT_PAGE_SIZE)))
    start = (page - 1) * limit
    items = list(qs[start:start + limit])
    return items, {
        'total': total,
        'page': page,
        'limit': limit,
        'totalPages': math.ceil(total / limit),
    }
