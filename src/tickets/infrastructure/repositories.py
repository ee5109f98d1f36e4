"""
Ticket Infrastructure Repositories
==================================

SQLAlchemy implementation of the ticket store.

Each operation runs in its own short transaction. Guarded writes are a
single ``UPDATE ... WHERE ... RETURNING`` statement, so the precondition
check and the write cannot be separated by another writer.

Title search uses PostgreSQL full-text matching when the engine is
PostgreSQL and a case-insensitive substring match elsewhere.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.config import SortOrder, TicketSortField, TicketStatus
from src.core import RepositoryException, ValidationException
from src.tickets.application.services import ITicketRepository
from src.tickets.domain import Ticket, TicketPage, TicketQuery
from src.tickets.infrastructure.models import ENUM_COLUMNS, TicketModel, enum_or_none

IMMUTABLE_FIELDS = frozenset({"id", "title", "content", "user_id", "created_at"})
UPDATABLE_FIELDS = frozenset(TicketModel.__table__.columns.keys()) - IMMUTABLE_FIELDS


def _to_column_value(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def _to_entity(row: Any) -> Ticket:
    """Build a domain Ticket from an ORM instance or a RETURNING row."""
    return Ticket(
        id=row.id,
        title=row.title,
        content=row.content,
        status=TicketStatus(row.status),
        created_at=row.created_at,
        updated_at=row.updated_at,
        user_id=row.user_id,
        category=enum_or_none(ENUM_COLUMNS["category"], row.category),
        sentiment_score=row.sentiment_score,
        urgency=enum_or_none(ENUM_COLUMNS["urgency"], row.urgency),
        response_draft=row.response_draft,
        response=row.response,
        reply_made_by=enum_or_none(ENUM_COLUMNS["reply_made_by"], row.reply_made_by),
        tag=row.tag,
    )


class SQLAlchemyTicketRepository(ITicketRepository):
    """
    SQLAlchemy implementation of ticket repository.

    Takes a session factory rather than a session: the worker and the API
    share one repository instance across many concurrent operations.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get_by_id(self, ticket_id: int) -> Optional[Ticket]:
        """Get ticket by ID."""
        try:
            async with self._session_factory() as session:
                model = await session.get(TicketModel, ticket_id)
                return _to_entity(model) if model is not None else None
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to load ticket {ticket_id}: {e}")

    async def create(
        self,
        title: str,
        content: str,
        user_id: Optional[int] = None,
        tag: Optional[str] = None
    ) -> Ticket:
        """Create new ticket."""
        now = datetime.now(timezone.utc)
        model = TicketModel(
            title=title,
            content=content,
            user_id=user_id,
            tag=tag,
            status=TicketStatus.OPEN.value,
            created_at=now,
            updated_at=now
        )

        try:
            async with self._session_factory() as session:
                async with session.begin():
                    session.add(model)
                    await session.flush()
                    return _to_entity(model)
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to create ticket: {e}")

    async def update(
        self,
        ticket_id: int,
        fields: Dict[str, Any],
        conditions: Optional[Dict[str, Any]] = None
    ) -> Optional[Ticket]:
        """
        Conditional partial update.

        Args:
            ticket_id: Ticket to update
            fields: Column -> new value; enums are stored by value
            conditions: Column -> expected value. A list/tuple/set means
                "any of"; None means the column must be NULL.

        Returns:
            The updated ticket, or None if no row matched
        """
        illegal = set(fields) - UPDATABLE_FIELDS
        if illegal:
            raise ValidationException(
                f"Fields cannot be updated: {', '.join(sorted(illegal))}",
                {"fields": sorted(illegal)}
            )

        values = {name: _to_column_value(value) for name, value in fields.items()}
        values["updated_at"] = datetime.now(timezone.utc)

        clauses = [TicketModel.id == ticket_id]
        for name, expected in (conditions or {}).items():
            column = getattr(TicketModel, name)
            if expected is None:
                clauses.append(column.is_(None))
            elif isinstance(expected, (list, tuple, set, frozenset)):
                clauses.append(column.in_([_to_column_value(v) for v in expected]))
            else:
                clauses.append(column == _to_column_value(expected))

        stmt = (
            update(TicketModel)
            .where(*clauses)
            .values(**values)
            .returning(*TicketModel.__table__.columns)
            .execution_options(synchronize_session=False)
        )

        try:
            async with self._session_factory() as session:
                async with session.begin():
                    result = await session.execute(stmt)
                    row = result.one_or_none()
                    return _to_entity(row) if row is not None else None
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to update ticket {ticket_id}: {e}")

    async def list(self, query: TicketQuery) -> TicketPage:
        """List one window of matching tickets plus the overall match count."""
        try:
            async with self._session_factory() as session:
                clauses = _filter_clauses(query, session.bind.dialect.name)

                count_stmt = select(func.count()).select_from(TicketModel).where(*clauses)
                total = (await session.execute(count_stmt)).scalar_one()

                sort_column = _SORT_COLUMNS[query.sort_by]
                if query.sort_order == SortOrder.ASC:
                    order = (sort_column.asc(), TicketModel.id.asc())
                else:
                    order = (sort_column.desc(), TicketModel.id.desc())

                stmt = (
                    select(TicketModel)
                    .where(*clauses)
                    .order_by(*order)
                    .limit(query.limit)
                    .offset(query.offset)
                )
                result = await session.execute(stmt)
                items = [_to_entity(model) for model in result.scalars().all()]
                return TicketPage(items=items, total=total)
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to list tickets: {e}")


_SORT_COLUMNS = {
    TicketSortField.CREATED_AT: TicketModel.created_at,
    TicketSortField.TITLE: TicketModel.title,
}


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _filter_clauses(query: TicketQuery, dialect: str) -> List[Any]:
    clauses: List[Any] = []
    if query.status is not None:
        clauses.append(TicketModel.status == query.status.value)
    if query.user_id is not None:
        clauses.append(TicketModel.user_id == query.user_id)
    if query.category is not None:
        clauses.append(TicketModel.category == query.category.value)
    if query.sentiment_score is not None:
        clauses.append(TicketModel.sentiment_score == query.sentiment_score)
    if query.urgency is not None:
        clauses.append(TicketModel.urgency == query.urgency.value)

    search = (query.search or "").strip()
    if search:
        if dialect == "postgresql":
            # Word match with English stemming
            clauses.append(
                func.to_tsvector("english", TicketModel.title)
                .op("@@")(func.plainto_tsquery("english", search))
            )
        else:
            clauses.append(TicketModel.title.ilike(f"%{_escape_like(search)}%", escape="\\"))
    return clauses
