"""
In-memory fakes shared by the test suite
"""
import json
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from src.config import SortOrder, TicketSortField, TicketStatus
from src.infrastructure.llm import ChatCompletionResult, ILLMClient
from src.tickets.application import ITicketRepository
from src.tickets.domain import Ticket, TicketPage, TicketQuery
from src.triage.application import IWorkerProcessRepository
from src.triage.domain import WorkerProcessRecord


# ========== Fakes ==========

class InMemoryTicketRepository(ITicketRepository):
    """Dict-backed ticket store with the same compare-and-set semantics."""

    def __init__(self):
        self.tickets: Dict[int, Ticket] = {}
        self.update_calls: List[tuple] = []
        self._next_id = 1

    def add(self, **fields) -> Ticket:
        now = datetime.now(timezone.utc)
        defaults = {
            "id": self._next_id,
            "title": "Cannot log in",
            "content": "The login page keeps spinning after I enter my password.",
            "status": TicketStatus.OPEN,
            "created_at": now,
            "updated_at": now,
        }
        defaults.update(fields)
        ticket = Ticket(**defaults)
        self.tickets[ticket.id] = ticket
        self._next_id = max(self._next_id, ticket.id) + 1
        return replace(ticket)

    async def get_by_id(self, ticket_id: int) -> Optional[Ticket]:
        ticket = self.tickets.get(ticket_id)
        return replace(ticket) if ticket else None

    async def create(self, title, content, user_id=None, tag=None) -> Ticket:
        return self.add(title=title, content=content, user_id=user_id, tag=tag)

    async def update(self, ticket_id, fields, conditions=None):
        self.update_calls.append((ticket_id, dict(fields), dict(conditions or {})))
        ticket = self.tickets.get(ticket_id)
        if ticket is None:
            return None

        for name, expected in (conditions or {}).items():
            actual = getattr(ticket, name)
            if isinstance(expected, (list, tuple, set, frozenset)):
                if actual not in expected:
                    return None
            elif actual != expected:
                return None

        updated = replace(ticket, **fields, updated_at=datetime.now(timezone.utc))
        self.tickets[ticket_id] = updated
        return replace(updated)

    async def list(self, query: TicketQuery) -> TicketPage:
        search = (query.search or "").strip().lower()
        items = [
            t for t in self.tickets.values()
            if (query.status is None or t.status == query.status)
            and (query.user_id is None or t.user_id == query.user_id)
            and (query.category is None or t.category == query.category)
            and (query.sentiment_score is None or t.sentiment_score == query.sentiment_score)
            and (query.urgency is None or t.urgency == query.urgency)
            and search in t.title.lower()
        ]
        if query.sort_by == TicketSortField.TITLE:
            items.sort(key=lambda t: (t.title, t.id))
        else:
            items.sort(key=lambda t: (t.created_at, t.id))
        if query.sort_order == SortOrder.DESC:
            items.reverse()
        window = items[query.offset:query.offset + query.limit]
        return TicketPage(items=[replace(t) for t in window], total=len(items))


class InMemoryWorkerProcessRepository(IWorkerProcessRepository):
    def __init__(self):
        self.records: List[WorkerProcessRecord] = []

    async def append(self, record: WorkerProcessRecord) -> WorkerProcessRecord:
        stored = replace(record, id=len(self.records) + 1)
        self.records.append(stored)
        return stored

    async def list_for_ticket(self, ticket_id: int, limit: int = 100):
        return [r for r in self.records if r.ticket_id == ticket_id][:limit]


class ScriptedLLMClient(ILLMClient):
    """Returns queued replies in order; an Exception entry is raised instead."""

    def __init__(self, replies: Optional[List[Union[str, Exception]]] = None):
        self.replies: List[Union[str, Exception]] = list(replies or [])
        self.calls: List[Dict[str, Any]] = []

    def push(self, *replies: Union[str, Exception]) -> None:
        self.replies.extend(replies)

    async def chat_completion(self, messages, temperature=0.2, max_tokens=1024, operation="chat_completion"):
        self.calls.append({
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
            "operation": operation,
        })
        if not self.replies:
            raise AssertionError("ScriptedLLMClient has no reply left")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return ChatCompletionResult(
            content=reply,
            model="scripted",
            prompt_tokens=0,
            completion_tokens=0,
            latency_ms=0
        )


def triage_json(**overrides) -> str:
    payload = {
        "ticket_id": "1",
        "category": "Billing",
        "sentiment_score": 3,
        "urgency": "High",
        "response_draft": "We are sorry for the trouble and are looking into your invoice.",
    }
    payload.update(overrides)
    return json.dumps(payload)


