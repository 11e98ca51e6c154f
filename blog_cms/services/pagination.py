# blog_cms/services/pagination.py

"""
Общий контракт постраничного вывода.

Все списки (пользователи, посты, категории, комментарии) проходят через
paginate(): страницы нумеруются с 1, номер за пределами диапазона
даёт пустой список с корректными метаданными, а не ошибку.
"""

import math
from dataclasses import dataclass
from typing import Any, Generic, List, Optional, Type, TypeVar

from sqlalchemy import or_
from sqlalchemy.orm import Query

from blog_cms.schemas import Page, PaginationMeta

T = TypeVar("T")

MAX_PAGE_SIZE = 100


@dataclass
class PageResult(Generic[T]):
    items: List[T]
    pagination: PaginationMeta


def build_pagination(total: int, page: int, page_size: int) -> PaginationMeta:
    """
    Метаданные страницы по общему числу элементов.

    total_pages = ceil(total / page_size); при total == 0 страниц 0,
    и has_next/has_prev ложны.
    """
    page = max(page, 1)
    total_pages = math.ceil(total / page_size) if total > 0 else 0
    return PaginationMeta(
        current_page=page,
        total_pages=total_pages,
        total_items=total,
        page_size=page_size,
        has_next=page < total_pages,
        has_prev=page > 1 and total_pages > 0,
    )


def paginate(query: Query, page: int = 1, page_size: int = 10) -> PageResult:
    """
    Выполнить запрос постранично.

    Сортировку задает вызывающий код, здесь только count + offset/limit.
    """
    page = max(page, 1)
    page_size = min(max(page_size, 1), MAX_PAGE_SIZE)

    # order_by(None) - count не нуждается в сортировке
    total = query.order_by(None).count()
    items = query.offset((page - 1) * page_size).limit(page_size).all()

    return PageResult(items=items, pagination=build_pagination(total, page, page_size))


def search_filter(search: Optional[str], *columns) -> Optional[Any]:
    """
    Регистронезависимый поиск подстроки по нескольким полям (через OR).
    Пустая строка поиска - без фильтра.
    """
    if not search or not search.strip():
        return None
    pattern = f"%{search.strip()}%"
    return or_(*(column.ilike(pattern) for column in columns))


def to_page(result: PageResult, schema: Type[Any]) -> Page:
    """Превратить PageResult с ORM-объектами в Page[schema] для ответа API"""
    return Page[schema](
        items=[schema.model_validate(item) for item in result.items],
        pagination=result.pagination,
    )
