"""Adaptive facet scoring: entry classification and gated facet scores.

Classification places an entry in a small fixed taxonomy (mainstream,
experimental, cozy, competitive, narrative).  The text model proposes the
type; a curated list of known experimental creators overrides it.  Each
type carries a constant facet weight vector from
:mod:`src.config.domain_knowledge`.

Scoring combines four model-graded facet similarities (tone, presentation,
theme, mechanics) multiplicatively::

    tone < gate  ->  total = tone * penalty            (grade F)
    otherwise    ->  total = tone * presentation * mean(theme, mechanics)

A product means every facet must hold at once: a near-zero facet
suppresses the total, and a tonal mismatch can never be made up for by
matching mechanics.  The profile-weighted mean of the facets is kept as a
secondary ``weighted`` value for tie-breaking.
"""

from __future__ import annotations

from src.config.domain_knowledge import (
    EXPERIMENTAL_OVERRIDE_CONFIDENCE,
    find_experimental_creator,
    weights_for,
)
from src.interfaces.llm_provider import ILLMProvider
from src.models.catalog import CatalogEntry
from src.models.scoring import EntryType, EntryTypeProfile, Facet, FacetScore, FacetScores
from src.utils.errors import MalformedModelOutputError, TransientExternalError
from src.utils.llm_json import coerce_unit_float, extract_json_object
from src.utils.logging import get_logger
from src.utils.text_normalizer import truncate

logger = get_logger(__name__)

DEFAULT_TONE_GATE = 0.4
DEFAULT_GATE_PENALTY = 0.3

# (minimum total, grade), checked top-down.
GRADE_LADDER: tuple[tuple[float, str], ...] = (
    (0.70, "A"),
    (0.50, "B"),
    (0.30, "C"),
    (0.10, "D"),
)

_GRADED_FACETS = (Facet.TONE, Facet.PRESENTATION, Facet.THEME, Facet.MECHANICS)


# ---------------------------------------------------------------------------
# Pure scoring
# ---------------------------------------------------------------------------

def grade_for(total: float) -> str:
    for threshold, grade in GRADE_LADDER:
        if total >= threshold:
            return grade
    return "F"


def build_profile(
    entry_type: EntryType,
    confidence: float = 0.5,
    reasoning: str = "",
    descriptors: list[str] | None = None,
    creator_override: bool = False,
) -> EntryTypeProfile:
    return EntryTypeProfile(
        primary_type=entry_type,
        confidence=confidence,
        reasoning=reasoning,
        facet_weights=weights_for(entry_type),
        descriptors=descriptors or [],
        creator_override=creator_override,
    )


def apply_creator_override(entry: CatalogEntry, profile: EntryTypeProfile) -> EntryTypeProfile:
    """Force the experimental type when a developer is on the allow-list."""
    creator = find_experimental_creator(entry.developers)
    if creator is None:
        return profile
    logger.info(
        "entry_type_overridden",
        external_id=entry.external_id,
        creator=creator,
        model_type=profile.primary_type.value,
    )
    return build_profile(
        EntryType.EXPERIMENTAL,
        confidence=EXPERIMENTAL_OVERRIDE_CONFIDENCE,
        reasoning=f"Known experimental creator: {creator}",
        descriptors=profile.descriptors,
        creator_override=True,
    )


def score(
    profile: EntryTypeProfile,
    facets: FacetScores,
    tone_gate: float = DEFAULT_TONE_GATE,
    gate_penalty: float = DEFAULT_GATE_PENALTY,
) -> FacetScore:
    """Combine per-facet similarities into a gated total and letter grade."""
    per_facet = facets.as_map()

    weights = {f: profile.facet_weights.get(f, 0.0) for f in _GRADED_FACETS}
    weight_sum = sum(weights.values())
    weighted = (
        sum(weights[f] * per_facet[f] for f in _GRADED_FACETS) / weight_sum if weight_sum > 0 else 0.0
    )

    if facets.tone < tone_gate:
        total = round(facets.tone * gate_penalty, 4)
        return FacetScore(
            total=total,
            per_facet=per_facet,
            grade="F",
            gated=True,
            weighted=round(weighted, 4),
        )

    total = round(facets.tone * facets.presentation * ((facets.theme + facets.mechanics) / 2), 4)
    return FacetScore(
        total=total,
        per_facet=per_facet,
        grade=grade_for(total),
        weighted=round(weighted, 4),
    )


# ---------------------------------------------------------------------------
# Model-backed classification and grading
# ---------------------------------------------------------------------------

_CLASSIFY_SYSTEM_PROMPT = (
    "You classify video games for a recommendation engine. You answer with a JSON object only."
)

_GRADE_SYSTEM_PROMPT = (
    "You compare two video games along fixed dimensions and score each from "
    "0.0 (nothing in common) to 1.0 (practically identical). You answer with a "
    "JSON object only."
)


class FacetScorer:
    """Classifies entries and grades candidate similarity with the text model."""

    def __init__(
        self,
        llm_provider: ILLMProvider,
        tone_gate: float = DEFAULT_TONE_GATE,
        gate_penalty: float = DEFAULT_GATE_PENALTY,
    ) -> None:
        self._llm = llm_provider
        self._tone_gate = tone_gate
        self._gate_penalty = gate_penalty

    async def classify(self, entry: CatalogEntry) -> EntryTypeProfile:
        """Return the entry's type profile.

        Model failure or an unknown label falls back to ``mainstream`` with
        low confidence; the creator allow-list is applied last either way.
        """
        prompt = (
            f'Game: "{entry.title}"\n'
            f"Developers: {', '.join(entry.developers) or 'unknown'}\n"
            f"Tags: {', '.join(entry.tags[:15]) or 'none'}\n"
            f"About: {truncate(entry.description, 800) or '(no description)'}\n\n"
            "Classify the game's primary type as one of: mainstream, experimental, "
            "cozy, competitive, narrative. Experimental means art games, avant-garde "
            "or formally unusual work.\n"
            'Return ONLY JSON: {"type": "...", "confidence": 0.0-1.0, '
            '"reasoning": "one sentence", "descriptors": ["3-5 short words"]}'
        )
        profile = build_profile(EntryType.MAINSTREAM, confidence=0.3, reasoning="classification unavailable")
        try:
            response = await self._llm.complete(
                system_prompt=_CLASSIFY_SYSTEM_PROMPT,
                user_prompt=prompt,
                temperature=0.2,
                max_tokens=400,
            )
            profile = self._parse_profile(response)
        except (TransientExternalError, MalformedModelOutputError) as exc:
            logger.warning("classification_failed", external_id=entry.external_id, error=str(exc))

        profile = apply_creator_override(entry, profile)
        logger.info(
            "entry_classified",
            external_id=entry.external_id,
            entry_type=profile.primary_type.value,
            confidence=profile.confidence,
            override=profile.creator_override,
        )
        return profile

    async def grade_candidate(
        self,
        entry: CatalogEntry,
        profile: EntryTypeProfile,
        candidate_title: str,
        candidate_description: str,
    ) -> FacetScore:
        """Grade one candidate against *entry* and combine the facets.

        Raises
        ------
        MalformedModelOutputError
            The model answer has no JSON object.
        src.utils.errors.TransientExternalError
            The model call failed.
        """
        prompt = (
            f'SOURCE: "{entry.title}" ({profile.primary_type.value})\n'
            f"{truncate(entry.description, 500) or '(no description)'}\n\n"
            f'CANDIDATE: "{candidate_title}"\n'
            f"{truncate(candidate_description, 500) or '(no description)'}\n\n"
            "Score how similar the CANDIDATE is to the SOURCE on:\n"
            "- tone: atmosphere, mood, emotional register\n"
            "- presentation: visual and audio style\n"
            "- theme: subject matter and ideas\n"
            "- mechanics: core loop and interaction\n"
            'Return ONLY JSON: {"tone": 0.0, "presentation": 0.0, "theme": 0.0, '
            '"mechanics": 0.0, "reasons": {"tone": "...", "presentation": "...", '
            '"theme": "...", "mechanics": "..."}}'
        )
        response = await self._llm.complete(
            system_prompt=_GRADE_SYSTEM_PROMPT,
            user_prompt=prompt,
            temperature=0.1,
            max_tokens=500,
        )
        data = extract_json_object(response)
        if data is None:
            raise MalformedModelOutputError(
                message=f"no JSON object in facet grading for {candidate_title!r}",
                provider_name=self._llm.get_provider_name(),
            )

        raw_reasons = data.get("reasons")
        reasons = (
            {str(k): str(v) for k, v in raw_reasons.items()} if isinstance(raw_reasons, dict) else {}
        )
        facets = FacetScores(
            tone=coerce_unit_float(data.get("tone")),
            presentation=coerce_unit_float(data.get("presentation")),
            theme=coerce_unit_float(data.get("theme")),
            mechanics=coerce_unit_float(data.get("mechanics")),
            reasons=reasons,
        )
        return score(profile, facets, self._tone_gate, self._gate_penalty)

    def _parse_profile(self, response: str) -> EntryTypeProfile:
        data = extract_json_object(response)
        if data is None:
            raise MalformedModelOutputError(
                message="no JSON object in classification response",
                provider_name=self._llm.get_provider_name(),
            )
        entry_type = EntryType.parse(data.get("type"))
        if entry_type is None:
            raise MalformedModelOutputError(
                message=f"unknown entry type {data.get('type')!r}",
                provider_name=self._llm.get_provider_name(),
            )
        descriptors = data.get("descriptors")
        return build_profile(
            entry_type,
            confidence=coerce_unit_float(data.get("confidence"), default=0.5),
            reasoning=str(data.get("reasoning") or ""),
            descriptors=[str(d) for d in descriptors][:5] if isinstance(descriptors, list) else [],
        )
