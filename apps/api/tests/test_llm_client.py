"""
CoachLLMClient against a mocked AsyncOpenAI client.
"""
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from core.exceptions import LLMUnavailableError
from services.coach_modules import CoachIntent
from services.llm_client import CoachLLMClient, get_llm_client


def _completion(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def _chunk(content):
    return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=content))])


def _client_returning(value):
    openai_client = MagicMock()
    openai_client.chat.completions.create = AsyncMock(return_value=value)
    return CoachLLMClient(client=openai_client), openai_client


class TestClassifyIntent:
    @pytest.mark.asyncio
    async def test_known_intent(self):
        llm, openai_client = _client_returning(_completion(" PROGRESS_CHECK\n"))
        assert await llm.classify_intent("am I getting stronger?") == CoachIntent.PROGRESS_CHECK

        kwargs = openai_client.chat.completions.create.call_args.kwargs
        assert kwargs["temperature"] == 0
        assert kwargs["max_tokens"] == 20
        assert kwargs["messages"][-1] == {"role": "user", "content": "am I getting stronger?"}

    @pytest.mark.asyncio
    async def test_unknown_reply_is_general_coaching(self):
        llm, _ = _client_returning(_completion("I think this is about nutrition"))
        assert await llm.classify_intent("what should I eat?") == CoachIntent.GENERAL_COACHING

    @pytest.mark.asyncio
    async def test_api_error_propagates(self):
        openai_client = MagicMock()
        openai_client.chat.completions.create = AsyncMock(side_effect=RuntimeError("503"))
        with pytest.raises(RuntimeError):
            await CoachLLMClient(client=openai_client).classify_intent("hi")


class TestExtractExercise:
    @pytest.mark.asyncio
    async def test_lists_known_exercises(self):
        llm, openai_client = _client_returning(_completion("Squat"))
        assert await llm.extract_exercise("legs felt heavy", ["Bench Press", "Squat"]) == "Squat"

        system_prompt = openai_client.chat.completions.create.call_args.kwargs["messages"][0]["content"]
        assert "- Bench Press\n- Squat" in system_prompt

    @pytest.mark.asyncio
    async def test_none_reply(self):
        llm, _ = _client_returning(_completion("NONE"))
        assert await llm.extract_exercise("hello", ["Squat"]) is None

    @pytest.mark.asyncio
    async def test_no_known_exercises_skips_the_call(self):
        llm, openai_client = _client_returning(_completion("Squat"))
        assert await llm.extract_exercise("hello", []) is None
        openai_client.chat.completions.create.assert_not_called()


class TestStreamChat:
    @pytest.mark.asyncio
    async def test_yields_non_empty_deltas(self):
        async def stream():
            for chunk in (_chunk("Rest "), _chunk(None), SimpleNamespace(choices=[]), _chunk("well.")):
                yield chunk

        llm, openai_client = _client_returning(stream())
        deltas = [d async for d in llm.stream_chat([{"role": "user", "content": "hi"}])]

        assert deltas == ["Rest ", "well."]
        kwargs = openai_client.chat.completions.create.call_args.kwargs
        assert kwargs["stream"] is True
        assert kwargs["model"] == "gpt-4o-mini"


class TestUnconfigured:
    def test_not_configured_without_key(self):
        assert CoachLLMClient().configured is False

    @pytest.mark.asyncio
    async def test_calls_raise(self):
        llm = CoachLLMClient()
        with pytest.raises(LLMUnavailableError):
            await llm.classify_intent("hi")
        with pytest.raises(LLMUnavailableError):
            async for _ in llm.stream_chat([]):
                pass

    @pytest.mark.asyncio
    async def test_close_without_client(self):
        await CoachLLMClient().close()


class TestDependency:
    def _request(self, **state):
        return SimpleNamespace(app=SimpleNamespace(state=SimpleNamespace(**state)))

    def test_returns_startup_client(self):
        llm = CoachLLMClient()
        assert get_llm_client(self._request(llm_client=llm)) is llm

    def test_missing_client_raises(self):
        with pytest.raises(RuntimeError, match="lifespan"):
            get_llm_client(self._request())

    def test_client_cleared_at_shutdown_raises(self):
        with pytest.raises(RuntimeError):
            get_llm_client(self._request(llm_client=None))
