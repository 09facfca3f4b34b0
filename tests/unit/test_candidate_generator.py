"""Unit tests for multi-strategy candidate generation."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock

import pytest

from src.interfaces.llm_provider import ILLMProvider
from src.models.scoring import EntryType
from src.services.candidate_generator import BASE_STRATEGIES, TYPE_ADAPTED_STRATEGY, CandidateGenerator
from src.services.facet_scoring import build_profile
from src.utils.concurrency import PollPolicy
from src.utils.errors import LLMError, MalformedModelOutputError
from tests.conftest import make_entry

_NO_WAIT = PollPolicy(max_attempts=2, interval_seconds=0.0)


def _array(*titles: str) -> str:
    return json.dumps([{"title": t, "reason": f"like {t}"} for t in titles])


# ======================================================================
# generate
# ======================================================================


class TestGenerate:
    async def test_runs_base_strategies(self, mock_llm_provider: ILLMProvider) -> None:
        mock_llm_provider.complete = AsyncMock(return_value=_array("Inside", "Limbo"))
        generator = CandidateGenerator(mock_llm_provider, retry_policy=_NO_WAIT)

        results = await generator.generate(make_entry(1, "Little Nightmares"))

        assert set(results) == set(BASE_STRATEGIES)
        assert all(r.succeeded for r in results.values())
        assert [c.title for c in results["vibe_focused"].candidates] == ["Inside", "Limbo"]

    async def test_profile_adds_type_adapted(self, mock_llm_provider: ILLMProvider) -> None:
        mock_llm_provider.complete = AsyncMock(return_value=_array("Inside"))
        generator = CandidateGenerator(mock_llm_provider, retry_policy=_NO_WAIT)

        results = await generator.generate(make_entry(1), build_profile(EntryType.COZY))

        assert TYPE_ADAPTED_STRATEGY in results
        assert len(results) == len(BASE_STRATEGIES) + 1

    async def test_malformed_strategy_is_retried_then_recorded(self, mock_llm_provider: ILLMProvider) -> None:
        mock_llm_provider.complete = AsyncMock(return_value="Sorry, I can't list games.")
        generator = CandidateGenerator(mock_llm_provider, retry_policy=_NO_WAIT)

        results = await generator.generate(make_entry(1))

        assert mock_llm_provider.complete.await_count == 2 * len(BASE_STRATEGIES)
        for result in results.values():
            assert not result.succeeded
            assert result.candidates == []
            assert result.attempts == 2

    async def test_retry_recovers(self, mock_llm_provider: ILLMProvider) -> None:
        seen: dict[str, int] = {}

        async def flaky(system_prompt: str, user_prompt: str, temperature: float, max_tokens: int) -> str:
            seen[user_prompt] = seen.get(user_prompt, 0) + 1
            return "garbage" if seen[user_prompt] == 1 else _array("Celeste")

        mock_llm_provider.complete = AsyncMock(side_effect=flaky)
        generator = CandidateGenerator(mock_llm_provider, retry_policy=_NO_WAIT)

        results = await generator.generate(make_entry(1))

        assert all(r.succeeded and r.attempts == 2 for r in results.values())

    async def test_one_failing_strategy_does_not_affect_others(self, mock_llm_provider: ILLMProvider) -> None:
        async def selective(system_prompt: str, user_prompt: str, temperature: float, max_tokens: int) -> str:
            if "GAMEPLAY" in user_prompt:
                raise LLMError(message="timeout")
            return _array("Journey")

        mock_llm_provider.complete = AsyncMock(side_effect=selective)
        generator = CandidateGenerator(mock_llm_provider, retry_policy=_NO_WAIT)

        results = await generator.generate(make_entry(1))

        assert not results["mechanics_focused"].succeeded
        assert "timeout" in (results["mechanics_focused"].error or "")
        assert results["vibe_focused"].succeeded
        assert results["community_driven"].succeeded


# ======================================================================
# Prompts and parsing
# ======================================================================


class TestBuildPrompt:
    def test_includes_title_and_developers(self, mock_llm_provider: ILLMProvider) -> None:
        generator = CandidateGenerator(mock_llm_provider, candidate_count=7)
        prompt = generator.build_prompt("vibe_focused", make_entry(1, "Hylics", developers=["Mason Lindroth"]))

        assert '"Hylics" by Mason Lindroth' in prompt
        assert "Find 7" in prompt
        assert "Do not include Hylics itself" in prompt

    def test_type_adapted_uses_profile(self, mock_llm_provider: ILLMProvider) -> None:
        generator = CandidateGenerator(mock_llm_provider)
        profile = build_profile(EntryType.EXPERIMENTAL, descriptors=["surreal", "short"])
        prompt = generator.build_prompt(TYPE_ADAPTED_STRATEGY, make_entry(1), profile)

        assert "EXPERIMENTAL" in prompt
        assert "surreal, short" in prompt


class TestParseCandidates:
    def test_excludes_source_title(self, mock_llm_provider: ILLMProvider) -> None:
        generator = CandidateGenerator(mock_llm_provider)
        candidates = generator.parse_candidates(_array("Celeste", " celeste ", "Gris"), exclude_title="Celeste")
        assert [c.title for c in candidates] == ["Gris"]

    def test_caps_to_candidate_count(self, mock_llm_provider: ILLMProvider) -> None:
        generator = CandidateGenerator(mock_llm_provider, candidate_count=2)
        candidates = generator.parse_candidates(_array("A", "B", "C"))
        assert len(candidates) == 2

    def test_skips_items_without_title_and_strips_citations(self, mock_llm_provider: ILLMProvider) -> None:
        generator = CandidateGenerator(mock_llm_provider)
        response = json.dumps([{"reason": "no title"}, {"title": "Gris", "reason": "watercolour [1]"}])
        candidates = generator.parse_candidates(response)

        assert len(candidates) == 1
        assert candidates[0].raw_reason == "watercolour"

    def test_no_array_raises(self, mock_llm_provider: ILLMProvider) -> None:
        with pytest.raises(MalformedModelOutputError):
            CandidateGenerator(mock_llm_provider).parse_candidates("nothing here")
