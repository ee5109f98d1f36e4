"""Unit tests for TriageClassifier"""
import asyncio

import pytest

from src.core import LLMTimeoutException, LLMUnavailableException
from src.triage.application import TriageClassifier
from tests.helpers import ScriptedLLMClient, triage_json


class SlowLLMClient(ScriptedLLMClient):
    async def chat_completion(self, *args, **kwargs):
        await asyncio.sleep(10)


class TestClassify:
    @pytest.mark.asyncio
    async def test_sends_prompt_with_fixed_generation_settings(self, classifier, llm):
        llm.push(triage_json(ticket_id="3"))

        await classifier.classify(3, "Refund", "Charged twice", context="vip")

        call = llm.calls[0]
        assert call["temperature"] == 0.2
        assert call["max_tokens"] == 1024
        assert call["messages"][0]["role"] == "system"
        assert call["messages"][1]["content"] == (
            "ticket_id: 3\ntitle: Refund\ncontent: Charged twice\nuser_context: vip"
        )

    @pytest.mark.asyncio
    async def test_valid_reply(self, classifier, llm):
        llm.push(f"```json\n{triage_json(ticket_id='3')}\n```")

        outcome = await classifier.classify(3, "Refund", "Charged twice")

        assert outcome.valid
        assert outcome.result.ticket_id == "3"

    @pytest.mark.asyncio
    async def test_invalid_reply_keeps_raw_text(self, classifier, llm):
        llm.push("I cannot help with that.")

        outcome = await classifier.classify(3, "Refund", "Charged twice")

        assert not outcome.valid
        assert outcome.raw == "I cannot help with that."

    @pytest.mark.asyncio
    async def test_upstream_error_propagates(self, classifier, llm):
        llm.push(LLMUnavailableException("503 from provider"))

        with pytest.raises(LLMUnavailableException) as exc_info:
            await classifier.classify(3, "Refund", "Charged twice")

        assert exc_info.value.retryable

    @pytest.mark.asyncio
    async def test_timeout_raises_retryable_timeout(self):
        classifier = TriageClassifier(SlowLLMClient(), timeout_seconds=0.01)

        with pytest.raises(LLMTimeoutException) as exc_info:
            await classifier.classify(3, "Refund", "Charged twice")

        assert exc_info.value.retryable
        assert exc_info.value.timeout_seconds == 0.01
