"""
FastAPI dependencies resolving the stores from application state
"""

from fastapi import Request
from sqlalchemy.ext.asyncio import async_sessionmaker
from storage.batch_store import BatchStore
from storage.point_store import PointStore


def get_session_maker(request: Request) -> async_sessionmaker:
    return request.app.state.session_maker


def get_batch_store(request: Request) -> BatchStore:
    return BatchStore(get_session_maker(request))


def get_point_store(request: Request) -> PointStore:
    return PointStore(get_session_maker(request))
