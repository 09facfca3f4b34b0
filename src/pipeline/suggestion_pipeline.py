"""Suggestion pipeline: from one catalog entry to a validated similar-games list.

Phases, in order:

    1. classify   -- type profile (only when scoring is enabled)
    2. generate   -- base strategies, plus ``type_adapted`` when profiled
    3. merge      -- fold candidates on the normalized title
    4. curate     -- model picks ``top_k`` from the consensus ranking
    5. validate   -- resolve titles to ids, drop hallucinations and self-refs
    6. score      -- optional facet grading and re-rank
    7. cap        -- keep ``suggestion_count`` entries

Model output is treated as untrusted at every step.  A failed strategy,
unparseable curation or a failed grade degrades that step only; the
pipeline always returns a (possibly empty) list.
"""

from __future__ import annotations

import asyncio
import time

from src.interfaces.catalog_store import ICatalogStore
from src.models.catalog import CatalogEntry, SuggestedEntry
from src.models.scoring import EntryTypeProfile
from src.models.suggestion import SuggestionRun, ValidatedSuggestion
from src.services.candidate_generator import CandidateGenerator
from src.services.consensus import ConsensusCurator, merge_candidates
from src.services.facet_scoring import FacetScorer
from src.services.suggestion_validator import SuggestionValidator
from src.utils.concurrency import throttled_gather
from src.utils.errors import MalformedModelOutputError, TransientExternalError
from src.utils.logging import get_logger


class SuggestionPipeline:
    """Composes generation, consensus, validation and scoring.

    Parameters
    ----------
    scorer:
        ``None`` disables classification and facet re-ranking.
    suggestion_count:
        Maximum length of the persisted list (also curation ``top_k``).
    scoring_concurrency:
        Parallel grading calls per run.
    """

    def __init__(
        self,
        generator: CandidateGenerator,
        curator: ConsensusCurator,
        validator: SuggestionValidator,
        store: ICatalogStore,
        scorer: FacetScorer | None = None,
        suggestion_count: int = 10,
        scoring_concurrency: int = 4,
    ) -> None:
        self._generator = generator
        self._curator = curator
        self._validator = validator
        self._store = store
        self._scorer = scorer
        self._count = suggestion_count
        self._scoring_concurrency = scoring_concurrency
        self._logger = get_logger(__name__)

    async def run(self, entry: CatalogEntry) -> SuggestionRun:
        start = time.monotonic()

        profile: EntryTypeProfile | None = None
        if self._scorer is not None:
            profile = await self._scorer.classify(entry)

        strategy_results = await self._generator.generate(entry, profile)
        merged = merge_candidates(strategy_results)
        curation = await self._curator.curate(entry, merged, self._count)
        validated = await self._validator.validate(entry, curation.picks)

        resolved = [v for v in validated if v.is_resolved]
        hallucinated = [v.candidate.title for v in validated if not v.is_resolved]

        if self._scorer is not None and profile is not None and resolved:
            resolved = await self._score_and_rank(entry, profile, resolved)

        suggestions: list[SuggestedEntry] = [v.to_suggested_entry() for v in resolved[: self._count]]
        elapsed_ms = (time.monotonic() - start) * 1000

        self._logger.info(
            "suggestion_pipeline_complete",
            external_id=entry.external_id,
            strategies_ok=sum(1 for r in strategy_results.values() if r.succeeded),
            strategies_total=len(strategy_results),
            merged=len(merged),
            curated=curation.curated,
            suggestions=len(suggestions),
            hallucinated=len(hallucinated),
            elapsed_ms=round(elapsed_ms, 1),
        )
        return SuggestionRun(
            external_id=entry.external_id,
            suggestions=suggestions,
            strategies=list(strategy_results.values()),
            merged_count=len(merged),
            curated=curation.curated,
            hallucinated_titles=hallucinated,
            profile=profile,
            elapsed_ms=elapsed_ms,
        )

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    async def _score_and_rank(
        self,
        entry: CatalogEntry,
        profile: EntryTypeProfile,
        resolved: list[ValidatedSuggestion],
    ) -> list[ValidatedSuggestion]:
        """Grade every resolved suggestion and order by (total, weighted).

        Suggestions whose grading failed keep their curated order after all
        graded ones.
        """
        assert self._scorer is not None
        known = {
            e.external_id: e
            for e in await self._store.get_entries([v.resolved_external_id for v in resolved])
        }

        async def _grade(suggestion: ValidatedSuggestion) -> ValidatedSuggestion:
            stored = known.get(suggestion.resolved_external_id)
            description = stored.description if stored is not None else suggestion.explanation
            facet_score = await self._scorer.grade_candidate(
                entry, profile, suggestion.candidate.title, description
            )
            return suggestion.model_copy(
                update={
                    "score": facet_score.total,
                    "weighted_score": facet_score.weighted,
                    "grade": facet_score.grade,
                }
            )

        outcomes = await throttled_gather(
            [_grade(s) for s in resolved],
            semaphore=asyncio.Semaphore(self._scoring_concurrency),
        )

        graded: list[ValidatedSuggestion] = []
        ungraded: list[ValidatedSuggestion] = []
        for original, outcome in zip(resolved, outcomes):
            if isinstance(outcome, (TransientExternalError, MalformedModelOutputError)):
                self._logger.warning(
                    "facet_grading_failed",
                    external_id=entry.external_id,
                    candidate=original.candidate.title,
                    error=str(outcome),
                )
                ungraded.append(original)
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                graded.append(outcome)

        graded.sort(key=lambda v: (v.score or 0.0, v.weighted_score or 0.0), reverse=True)
        return graded + ungraded
