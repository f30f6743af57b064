from dataclasses import dataclass
from typing import Generator, Optional

from fastapi import Query
from sqlmodel import Session

from storefront_orders.core.config import get_settings
from storefront_orders.db.session import session_scope


@dataclass(frozen=True)
class Page:
    limit: int
    offset: int


def get_db() -> Generator[Session, None, None]:
    """One session per request, committed when the handler returns."""
    with session_scope() as session:
        yield session


def pagination_params(
    limit: Optional[int] = Query(default=None, ge=1),
    offset: int = Query(default=0, ge=0),
) -> Page:
    """Resolve ``limit``/``offset`` query parameters against the configured page sizes."""
    settings = get_settings()
    return Page(limit=min(limit or settings.default_page_size, settings.max_page_size), offset=offset)
