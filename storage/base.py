"""
Shared plumbing for the stores: per-operation sessions and
dialect-aware duplicate-tolerant inserts.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Any
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.dialects import postgresql, sqlite
from core.exceptions import DatabaseError
import logging

logger = logging.getLogger(__name__)


class BaseStore:
    """
    Base class for stores backed by an async session factory.

    Every operation runs in its own short session and commits on exit.
    There are no multi-statement transactions: each write is a
    single-row or single-filter statement that is safe to retry.
    """

    table_name: str = ""

    def __init__(self, session_maker: async_sessionmaker):
        self.session_maker = session_maker

    @asynccontextmanager
    async def _session(self, operation: str, **context: Any) -> AsyncIterator[AsyncSession]:
        """Yield a session, commit on success, wrap driver failures in DatabaseError"""
        async with self.session_maker() as session:
            try:
                yield session
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                raise DatabaseError(
                    f"{operation} on {self.table_name} failed",
                    context={
                        "operation": operation,
                        "table_name": self.table_name,
                        **context
                    },
                    original_exception=e
                )

    def _insert(self, session: AsyncSession, model):
        """INSERT construct supporting ON CONFLICT for the session's dialect"""
        dialect = session.get_bind().dialect.name
        if dialect == "postgresql":
            return postgresql.insert(model)
        if dialect == "sqlite":
            return sqlite.insert(model)
        raise DatabaseError(
            f"Unsupported database dialect: {dialect}",
            context={"table_name": self.table_name}
        )
