"""Integration tests for the SQLAlchemy repositories on SQLite (aiosqlite)"""
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine

from src.config import (
    ReplyAuthor,
    SortOrder,
    TicketSortField,
    TicketStatus,
    TriageCategory,
    UrgencyLevel,
    WorkerProcessStatus,
)
from src.core import ValidationException
from src.infrastructure.database import Base, create_session_factory
from src.tickets.domain import TicketQuery
from src.tickets.infrastructure import SQLAlchemyTicketRepository
from src.tickets.infrastructure.models import TicketModel  # noqa: F401
from src.triage.domain import WorkerProcessRecord
from src.triage.infrastructure import SQLAlchemyWorkerProcessRepository
from src.triage.infrastructure.models import WorkerProcessModel  # noqa: F401


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'tickets.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield create_session_factory(engine)
    await engine.dispose()


def ids(page):
    return [t.id for t in page.items]


@pytest.fixture
def tickets(session_factory):
    return SQLAlchemyTicketRepository(session_factory)


@pytest.fixture
def processes(session_factory):
    return SQLAlchemyWorkerProcessRepository(session_factory)


class TestTicketRepository:
    @pytest.mark.asyncio
    async def test_create_and_get(self, tickets):
        created = await tickets.create("Login broken", "Cannot sign in", user_id=7, tag="vip")

        loaded = await tickets.get_by_id(created.id)

        assert loaded.id == created.id
        assert loaded.status == TicketStatus.OPEN
        assert loaded.user_id == 7
        assert loaded.tag == "vip"
        assert loaded.category is None
        assert loaded.response_draft is None

    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self, tickets):
        assert await tickets.get_by_id(999) is None

    @pytest.mark.asyncio
    async def test_update_converts_enums(self, tickets):
        created = await tickets.create("t", "c")

        updated = await tickets.update(
            created.id,
            {
                "status": TicketStatus.IN_PROGRESS,
                "category": TriageCategory.BILLING,
                "reply_made_by": ReplyAuthor.AI,
                "response_draft": "Hello",
            },
        )

        assert updated.status == TicketStatus.IN_PROGRESS
        assert updated.category == TriageCategory.BILLING
        assert updated.reply_made_by == ReplyAuthor.AI
        assert updated.updated_at >= updated.created_at

    @pytest.mark.asyncio
    async def test_condition_mismatch_writes_nothing(self, tickets):
        created = await tickets.create("t", "c")

        result = await tickets.update(
            created.id,
            {"response": "done"},
            conditions={"status": TicketStatus.RESOLVED},
        )

        assert result is None
        assert (await tickets.get_by_id(created.id)).response is None

    @pytest.mark.asyncio
    async def test_any_of_condition(self, tickets):
        created = await tickets.create("t", "c")

        result = await tickets.update(
            created.id,
            {"status": TicketStatus.CLOSED},
            conditions={"status": [TicketStatus.OPEN, TicketStatus.IN_PROGRESS]},
        )

        assert result.status == TicketStatus.CLOSED

    @pytest.mark.asyncio
    async def test_null_condition(self, tickets):
        created = await tickets.create("t", "c")

        assert await tickets.update(created.id, {"response_draft": "a"}, conditions={"response_draft": None})
        assert await tickets.update(created.id, {"response_draft": "b"}, conditions={"response_draft": None}) is None
        assert (await tickets.get_by_id(created.id)).response_draft == "a"

    @pytest.mark.asyncio
    async def test_update_missing_ticket_returns_none(self, tickets):
        assert await tickets.update(999, {"tag": "x"}) is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("field", ["title", "content", "user_id", "created_at", "id"])
    async def test_submission_fields_are_immutable(self, tickets, field):
        created = await tickets.create("t", "c")

        with pytest.raises(ValidationException):
            await tickets.update(created.id, {field: None})

    @pytest.mark.asyncio
    async def test_list_filters_and_orders_newest_first(self, tickets):
        first = await tickets.create("a", "c", user_id=1)
        second = await tickets.create("b", "c", user_id=2)
        third = await tickets.create("c", "c", user_id=1)
        await tickets.update(second.id, {"status": TicketStatus.CLOSED})

        everything = await tickets.list(TicketQuery())
        assert ids(everything) == [third.id, second.id, first.id]
        assert everything.total == 3

        assert ids(await tickets.list(TicketQuery(user_id=1))) == [third.id, first.id]
        assert ids(await tickets.list(TicketQuery(status=TicketStatus.CLOSED))) == [second.id]

        window = await tickets.list(TicketQuery(limit=1, offset=1))
        assert ids(window) == [second.id]
        assert window.total == 3

    @pytest.mark.asyncio
    async def test_list_filters_by_triage_fields(self, tickets):
        billing = await tickets.create("Charged twice", "c")
        technical = await tickets.create("App crashes", "c")
        await tickets.create("Untriaged", "c")
        await tickets.update(billing.id, {
            "category": TriageCategory.BILLING, "sentiment_score": 2, "urgency": UrgencyLevel.HIGH,
        })
        await tickets.update(technical.id, {
            "category": TriageCategory.TECHNICAL, "sentiment_score": 6, "urgency": UrgencyLevel.HIGH,
        })

        assert ids(await tickets.list(TicketQuery(category=TriageCategory.BILLING))) == [billing.id]
        assert ids(await tickets.list(TicketQuery(sentiment_score=6))) == [technical.id]

        urgent = await tickets.list(TicketQuery(urgency=UrgencyLevel.HIGH))
        assert ids(urgent) == [technical.id, billing.id]
        assert urgent.total == 2

    @pytest.mark.asyncio
    async def test_list_sorts_by_title_both_ways(self, tickets):
        beta = await tickets.create("Beta", "c")
        alpha = await tickets.create("Alpha", "c")
        gamma = await tickets.create("Gamma", "c")

        ascending = await tickets.list(TicketQuery(sort_by=TicketSortField.TITLE, sort_order=SortOrder.ASC))
        descending = await tickets.list(TicketQuery(sort_by=TicketSortField.TITLE))
        oldest_first = await tickets.list(TicketQuery(sort_order=SortOrder.ASC))

        assert ids(ascending) == [alpha.id, beta.id, gamma.id]
        assert ids(descending) == [gamma.id, beta.id, alpha.id]
        assert ids(oldest_first) == [beta.id, alpha.id, gamma.id]

    @pytest.mark.asyncio
    async def test_title_search_is_case_insensitive(self, tickets):
        refund = await tickets.create("Refund not received", "c")
        await tickets.create("Password reset", "c")

        page = await tickets.list(TicketQuery(search="REFUND"))

        assert ids(page) == [refund.id]
        assert page.total == 1

    @pytest.mark.asyncio
    async def test_title_search_treats_wildcards_literally(self, tickets):
        await tickets.create("Discount of 50 off", "c")
        literal = await tickets.create("Discount of 50% off", "c")

        assert ids(await tickets.list(TicketQuery(search="50%"))) == [literal.id]
        assert (await tickets.list(TicketQuery(search="_"))).total == 0


class TestWorkerProcessRepository:
    @pytest.mark.asyncio
    async def test_append_and_list_in_order(self, processes):
        first = await processes.append(
            WorkerProcessRecord(worker_id="h:1:0", ticket_id=3, status=WorkerProcessStatus.FAILED, error_message="x")
        )
        second = await processes.append(
            WorkerProcessRecord(
                worker_id="h:1:0",
                ticket_id=3,
                status=WorkerProcessStatus.INFO,
                attempt=2,
                reply_text="Hi",
                raw_model_output="{}",
            )
        )
        await processes.append(WorkerProcessRecord(worker_id="h:1:1", ticket_id=4, status=WorkerProcessStatus.INFO))

        history = await processes.list_for_ticket(3)

        assert [r.id for r in history] == [first.id, second.id]
        assert history[1].status == WorkerProcessStatus.INFO
        assert history[1].attempt == 2
        assert history[1].reply_text == "Hi"

    @pytest.mark.asyncio
    async def test_records_for_unknown_ticket_are_kept(self, processes):
        stored = await processes.append(
            WorkerProcessRecord(
                worker_id="h:1:0",
                ticket_id=12345,
                status=WorkerProcessStatus.FAILED,
                error_message="Ticket not found: 12345",
            )
        )

        assert stored.id is not None
        assert (await processes.list_for_ticket(12345))[0].error_message == "Ticket not found: 12345"
