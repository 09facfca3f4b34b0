"""Consensus merge and model-assisted curation of generated candidates.

Merging folds every strategy's candidates on the normalized title, so the
result does not depend on the order strategies finished in.  Consensus
ranking is by mention count.  Curation then asks the model to pick the
best ``top_k`` from the top of that ranking; it only refines the order and
falls back to plain consensus whenever its answer is unusable.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from src.interfaces.llm_provider import ILLMProvider
from src.models.catalog import CatalogEntry
from src.models.suggestion import (
    CuratedPick,
    CurationResult,
    MergedCandidate,
    StrategyResult,
)
from src.utils.errors import TransientExternalError
from src.utils.llm_json import extract_json_array
from src.utils.logging import get_logger
from src.utils.text_normalizer import normalize_title, strip_citations, truncate

logger = get_logger(__name__)


def merge_candidates(
    results: Mapping[str, StrategyResult] | Iterable[StrategyResult],
) -> list[MergedCandidate]:
    """Fold all strategies' candidates on their normalized title.

    The first occurrence fixes the display title; every occurrence adds one
    to ``mention_count`` and appends its reason and strategy name.
    """
    strategy_results = list(results.values()) if isinstance(results, Mapping) else list(results)

    order: list[str] = []
    titles: dict[str, str] = {}
    counts: dict[str, int] = {}
    reasons: dict[str, list[str]] = {}
    strategies: dict[str, list[str]] = {}

    for result in strategy_results:
        for candidate in result.candidates:
            key = normalize_title(candidate.title)
            if not key:
                continue
            if key not in titles:
                order.append(key)
                titles[key] = candidate.title
                counts[key] = 0
                reasons[key] = []
                strategies[key] = []
            counts[key] += 1
            if candidate.raw_reason:
                reasons[key].append(candidate.raw_reason)
            if result.name not in strategies[key]:
                strategies[key].append(result.name)

    return [
        MergedCandidate(
            normalized_title=key,
            title=titles[key],
            mention_count=counts[key],
            reasons=reasons[key],
            source_strategies=strategies[key],
        )
        for key in order
    ]


def rank_by_consensus(merged: list[MergedCandidate]) -> list[MergedCandidate]:
    """Order by descending mention count; ties broken by title key."""
    return sorted(merged, key=lambda m: (-m.mention_count, m.normalized_title))


_CURATION_SYSTEM_PROMPT = (
    "You are a games curator picking the best recommendations from a list of "
    "candidates produced by several independent searches. You answer with JSON only."
)


class ConsensusCurator:
    """Selects the final ``top_k`` candidates from the consensus ranking.

    Parameters
    ----------
    llm_provider:
        Text-generation backend.  ``None`` disables model curation.
    pool_size:
        How many consensus-ranked candidates the model is shown.
    enabled:
        When false, curation is skipped and consensus order is used.
    """

    def __init__(
        self,
        llm_provider: ILLMProvider | None,
        pool_size: int = 20,
        enabled: bool = True,
        strategy_count: int = 3,
    ) -> None:
        self._llm = llm_provider
        self._pool_size = pool_size
        self._enabled = enabled and llm_provider is not None
        self._strategy_count = strategy_count

    async def curate(
        self,
        entry: CatalogEntry,
        merged: list[MergedCandidate],
        top_k: int,
    ) -> CurationResult:
        pool = rank_by_consensus(merged)[: self._pool_size]
        fallback = CurationResult(
            picks=[CuratedPick(candidate=c, explanation=c.best_reason) for c in pool[:top_k]],
            curated=False,
        )
        if not pool or not self._enabled:
            return fallback

        assert self._llm is not None
        try:
            response = await self._llm.complete(
                system_prompt=_CURATION_SYSTEM_PROMPT,
                user_prompt=self._build_prompt(entry, pool, top_k),
                temperature=0.3,
                max_tokens=1500,
            )
        except TransientExternalError as exc:
            logger.warning("curation_failed", external_id=entry.external_id, error=str(exc))
            return fallback

        picks = self._parse_picks(response, pool, top_k)
        if not picks:
            logger.warning("curation_unparseable", external_id=entry.external_id)
            return fallback

        # Short answers are topped up from the consensus order.
        chosen = {p.candidate.normalized_title for p in picks}
        for candidate in pool:
            if len(picks) >= top_k:
                break
            if candidate.normalized_title not in chosen:
                picks.append(CuratedPick(candidate=candidate, explanation=candidate.best_reason))
                chosen.add(candidate.normalized_title)

        logger.info("curation_applied", external_id=entry.external_id, picks=len(picks))
        return CurationResult(picks=picks, curated=True)

    def _build_prompt(self, entry: CatalogEntry, pool: list[MergedCandidate], top_k: int) -> str:
        lines = [
            f'{i}. "{c.title}" ({c.mention_count}/{self._strategy_count} strategies) - {c.best_reason}'
            for i, c in enumerate(pool, start=1)
        ]
        return (
            f'Game: "{entry.title}"\n'
            f"About: {truncate(entry.description, 400) or '(no description)'}\n\n"
            "Candidates:\n" + "\n".join(lines) + "\n\n"
            f"Select the TOP {top_k} most similar games from the list. Prioritize:\n"
            "1. Multi-strategy consensus (found by several searches)\n"
            "2. True gameplay/vibe matches, appropriate to the genre\n"
            "3. Indie and lesser-known games over AAA and obvious picks\n"
            "4. Interesting or unique picks\n\n"
            "Only choose titles from the list. Write SHORT reasons (under 15 words). "
            'Return ONLY valid JSON: [{"title": "Game Name", "reason": "why it matches"}]'
        )

    @staticmethod
    def _parse_picks(response: str, pool: list[MergedCandidate], top_k: int) -> list[CuratedPick]:
        items = extract_json_array(response)
        if not items:
            return []

        by_key = {c.normalized_title: c for c in pool}
        picks: list[CuratedPick] = []
        seen: set[str] = set()
        for item in items:
            title = item.get("title")
            if not isinstance(title, str):
                continue
            key = normalize_title(title)
            candidate = by_key.get(key)
            if candidate is None or key in seen:
                # Titles outside the pool were never generated; ignore them.
                continue
            seen.add(key)
            reason = item.get("reason")
            explanation = strip_citations(reason) if isinstance(reason, str) and reason.strip() else ""
            picks.append(CuratedPick(candidate=candidate, explanation=explanation or candidate.best_reason))
            if len(picks) >= top_k:
                break
        return picks
