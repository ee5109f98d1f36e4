"""
Triage Infrastructure Repositories
====================================

SQLAlchemy implementation of the worker process audit log.
"""

from typing import List

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.config import WorkerProcessStatus
from src.core import RepositoryException
from src.triage.application.services import IWorkerProcessRepository
from src.triage.domain import WorkerProcessRecord
from src.triage.infrastructure.models import WorkerProcessModel


def _to_record(model: WorkerProcessModel) -> WorkerProcessRecord:
    return WorkerProcessRecord(
        id=model.id,
        worker_id=model.worker_id,
        ticket_id=model.ticket_id,
        status=WorkerProcessStatus(model.status),
        attempt=model.attempt,
        reply_text=model.reply_text,
        raw_model_output=model.raw_model_output,
        error_message=model.error_message,
        timestamp=model.timestamp
    )


class SQLAlchemyWorkerProcessRepository(IWorkerProcessRepository):
    """
    SQLAlchemy implementation of the audit log.

    Writes in its own transaction, independent of ticket writes.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def append(self, record: WorkerProcessRecord) -> WorkerProcessRecord:
        """Store one audit record."""
        model = WorkerProcessModel(
            worker_id=record.worker_id,
            ticket_id=record.ticket_id,
            status=record.status.value,
            attempt=record.attempt,
            reply_text=record.reply_text,
            raw_model_output=record.raw_model_output,
            error_message=record.error_message,
            timestamp=record.timestamp
        )

        try:
            async with self._session_factory() as session:
                async with session.begin():
                    session.add(model)
                    await session.flush()
                    return _to_record(model)
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to append worker process record: {e}")

    async def list_for_ticket(self, ticket_id: int, limit: int = 100) -> List[WorkerProcessRecord]:
        """Records for a ticket, oldest first."""
        stmt = (
            select(WorkerProcessModel)
            .where(WorkerProcessModel.ticket_id == ticket_id)
            .order_by(WorkerProcessModel.timestamp.asc(), WorkerProcessModel.id.asc())
            .limit(limit)
        )

        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return [_to_record(model) for model in result.scalars().all()]
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to list worker processes for ticket {ticket_id}: {e}")
