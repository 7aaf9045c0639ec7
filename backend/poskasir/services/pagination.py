# Overview: Page metadata shared by the paginated list endpoints.

from __future__ import annotations

import math


def build_pagination(current_page: int, total_data: int, per_page: int) -> dict:
    """Page block: total_page is ceil(total_data / per_page), 0 for an empty set."""
    total_page = math.ceil(total_data / per_page) if per_page > 0 else 0
    return {
        "current_page": current_page,
        "total_page": total_page,
        "total_data": total_data,
        "per_page": per_page,
    }


def page_offset(page: int, per_page: int) -> int:
    return (page - 1) * per_page
