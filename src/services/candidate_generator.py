"""Multi-strategy candidate generation for similar-game suggestions.

Each strategy is one prompt that asks the text model for similar games
from a different angle.  Strategies run concurrently and are independent:
a strategy whose output cannot be parsed is retried a bounded number of
times and then recorded as failed with zero candidates, without touching
the others.

Strategies
----------
vibe_focused       atmosphere, mood, aesthetic, pacing, emotional tone
mechanics_focused  core loop, interaction mechanics, control feel
community_driven   what fans of the game actually recommend
type_adapted       only when a type profile is known; prompt focus comes
                   from ``TYPE_PROMPT_FOCUS`` for the entry's primary type
"""

from __future__ import annotations

import asyncio
import time

from src.config.domain_knowledge import TYPE_PROMPT_FOCUS
from src.interfaces.llm_provider import ILLMProvider
from src.models.catalog import CatalogEntry
from src.models.scoring import EntryTypeProfile
from src.models.suggestion import Candidate, StrategyResult
from src.utils.concurrency import PollPolicy
from src.utils.errors import MalformedModelOutputError, TransientExternalError
from src.utils.llm_json import extract_json_array
from src.utils.logging import get_logger
from src.utils.text_normalizer import normalize_title, strip_citations, truncate

BASE_STRATEGIES: tuple[str, ...] = ("vibe_focused", "mechanics_focused", "community_driven")
TYPE_ADAPTED_STRATEGY = "type_adapted"

_SYSTEM_PROMPT = (
    "You are a games curator with deep knowledge of indie, experimental and "
    "small-studio games on Steam. You only name games that really exist and "
    "are available on Steam. You answer with JSON only."
)

_RESPONSE_FORMAT = (
    "Write SHORT reasons (under 15 words). "
    'Return ONLY valid JSON: [{"title": "Game Name", "reason": "why it matches"}]'
)

_STRATEGY_PROMPTS: dict[str, str] = {
    "vibe_focused": (
        'Find {count} indie games with the SAME VIBE as "{title}"{dev_context}.\n\n'
        "About the game: {description}\n\n"
        "Match: atmosphere, mood, aesthetic, pacing, emotional tone, "
        "WEIRDNESS/EXPERIMENTAL nature. Genre does not matter."
    ),
    "mechanics_focused": (
        'Find {count} games with similar GAMEPLAY to "{title}"{dev_context}.\n\n'
        "About the game: {description}\n\n"
        "Match: core loop, interaction mechanics, control feel, gameplay systems. "
        "Prefer indie games over big-budget titles."
    ),
    "community_driven": (
        'Find {count} games that fans of "{title}"{dev_context} actually recommend '
        "to each other.\n\n"
        "About the game: {description}\n\n"
        'Think of "if you liked this, play..." threads and curator lists, not '
        "marketing similarity."
    ),
    TYPE_ADAPTED_STRATEGY: (
        'Find {count} games similar to "{title}"{dev_context}.\n\n'
        "About the game: {description}\n\n"
        "{focus}{descriptors}"
    ),
}

# Long store descriptions add cost and little signal.
_DESCRIPTION_CHARS = 600


class CandidateGenerator:
    """Runs the generation strategies for one entry.

    Parameters
    ----------
    llm_provider:
        Text-generation backend.
    candidate_count:
        How many games each strategy asks for; parsed output is capped to it.
    retry_policy:
        ``max_attempts`` per strategy and the fixed delay between attempts.
    """

    def __init__(
        self,
        llm_provider: ILLMProvider,
        candidate_count: int = 15,
        retry_policy: PollPolicy | None = None,
        temperature: float = 0.7,
    ) -> None:
        self._llm = llm_provider
        self._count = candidate_count
        self._retry = retry_policy or PollPolicy(max_attempts=2, interval_seconds=1.0)
        self._temperature = temperature
        self._logger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def generate(
        self,
        entry: CatalogEntry,
        profile: EntryTypeProfile | None = None,
    ) -> dict[str, StrategyResult]:
        """Run every applicable strategy concurrently.

        Returns one :class:`StrategyResult` per strategy name, failed ones
        included, so callers can report per-strategy statistics.
        """
        names = list(BASE_STRATEGIES)
        if profile is not None:
            names.append(TYPE_ADAPTED_STRATEGY)

        results = await asyncio.gather(
            *(self._run_strategy(name, entry, self.build_prompt(name, entry, profile)) for name in names)
        )
        by_name = {result.name: result for result in results}

        self._logger.info(
            "candidates_generated",
            external_id=entry.external_id,
            strategies=len(names),
            succeeded=sum(1 for r in results if r.succeeded),
            candidates=sum(len(r.candidates) for r in results),
        )
        return by_name

    def build_prompt(
        self,
        strategy: str,
        entry: CatalogEntry,
        profile: EntryTypeProfile | None = None,
    ) -> str:
        """Render the user prompt for *strategy*."""
        template = _STRATEGY_PROMPTS[strategy]
        dev_context = f" by {', '.join(entry.developers)}" if entry.developers else ""
        focus = ""
        descriptors = ""
        if profile is not None:
            focus = TYPE_PROMPT_FOCUS[profile.primary_type]
            if profile.descriptors:
                descriptors = f"\nIts defining qualities: {', '.join(profile.descriptors)}."
        body = template.format(
            count=self._count,
            title=entry.title,
            dev_context=dev_context,
            description=truncate(entry.description, _DESCRIPTION_CHARS) or "(no description)",
            focus=focus,
            descriptors=descriptors,
        )
        return f"{body}\n\nDo not include {entry.title} itself.\n{_RESPONSE_FORMAT}"

    # ------------------------------------------------------------------
    # Strategy execution
    # ------------------------------------------------------------------

    async def _run_strategy(self, name: str, entry: CatalogEntry, prompt: str) -> StrategyResult:
        start = time.monotonic()
        last_error = ""

        for attempt in range(1, self._retry.max_attempts + 1):
            try:
                response = await self._llm.complete(
                    system_prompt=_SYSTEM_PROMPT,
                    user_prompt=prompt,
                    temperature=self._temperature,
                    max_tokens=2000,
                )
                candidates = self.parse_candidates(response, exclude_title=entry.title)
            except (TransientExternalError, MalformedModelOutputError) as exc:
                last_error = str(exc)
                self._logger.warning(
                    "strategy_attempt_failed",
                    strategy=name,
                    attempt=attempt,
                    error=last_error,
                )
                if attempt < self._retry.max_attempts:
                    await asyncio.sleep(self._retry.interval_seconds)
                continue

            return StrategyResult(
                name=name,
                candidates=candidates,
                attempts=attempt,
                elapsed_ms=(time.monotonic() - start) * 1000,
            )

        self._logger.warning("strategy_failed", strategy=name, error=last_error)
        return StrategyResult(
            name=name,
            attempts=self._retry.max_attempts,
            elapsed_ms=(time.monotonic() - start) * 1000,
            error=last_error or "no attempts made",
        )

    def parse_candidates(self, response: str, exclude_title: str = "") -> list[Candidate]:
        """Parse ``[{title, reason}]`` out of free-form model output.

        Raises
        ------
        MalformedModelOutputError
            No array of objects could be extracted from *response*.
        """
        items = extract_json_array(response)
        if items is None:
            raise MalformedModelOutputError(
                message="no JSON array in strategy response",
                provider_name=self._llm.get_provider_name(),
            )

        excluded = normalize_title(exclude_title)
        candidates: list[Candidate] = []
        for item in items:
            title = item.get("title")
            if not isinstance(title, str) or not title.strip():
                continue
            if excluded and normalize_title(title) == excluded:
                continue
            reason = item.get("reason")
            candidates.append(
                Candidate(
                    title=title.strip(),
                    raw_reason=strip_citations(reason) if isinstance(reason, str) else "",
                )
            )
            if len(candidates) >= self._count:
                break
        return candidates
