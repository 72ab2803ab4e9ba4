"""
Shared FastAPI dependencies.

The order service and database handle are built once in the app lifespan and
kept on app.state; routers get them from here. Tests override these.
"""

from __future__ import annotations

from typing import TypedDict

from fastapi import Query, Request

from database import Database
from domain.enums import OrderStatus
from services.order_service import OrderService


class PageParams(TypedDict):
    page: int
    limit: int
    status: OrderStatus | None


def page_params(
    page: int = Query(1, ge=1, le=100_000),
    limit: int = Query(10, ge=1, le=200),
    status: OrderStatus | None = Query(None),
) -> PageParams:
    return {"page": page, "limit": limit, "status": status}


def get_order_service(request: Request) -> OrderService:
    return request.app.state.order_service


def get_database(request: Request) -> Database:
    return request.app.state.database
