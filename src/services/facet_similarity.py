"""Facet embeddings and the nearest-neighbour read path.

Enrichment asks the text model to describe an entry along three facets,
embeds each description and stores texts and vectors on the entry.  The
read path ranks every other entry by cosine similarity on one facet.

Vectors live in the entry row, so the query is a linear scan over the
entries that have the facet.  numpy keeps the scan cheap for catalogs of a
few thousand entries.
"""

from __future__ import annotations

import numpy as np

from src.interfaces.catalog_store import ICatalogStore
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.interfaces.llm_provider import ILLMProvider
from src.models.catalog import CatalogEntry, SimilarEntry
from src.utils.errors import NotFoundError
from src.utils.llm_json import extract_json_object
from src.utils.logging import get_logger
from src.utils.text_normalizer import truncate

FACETS: tuple[str, ...] = ("aesthetics", "gameplay", "narrative_mood")

_SYSTEM_PROMPT = (
    "You describe video games for a similarity search index. Be concrete and "
    "sensory; avoid marketing language. You answer with a JSON object only."
)


class FacetSimilarityService:
    """Extracts, embeds and queries per-facet entry descriptions."""

    def __init__(
        self,
        llm_provider: ILLMProvider,
        embedding_provider: IEmbeddingProvider,
        store: ICatalogStore,
        min_similarity: float = 0.5,
        default_limit: int = 10,
    ) -> None:
        self._llm = llm_provider
        self._embedder = embedding_provider
        self._store = store
        self._min_similarity = min_similarity
        self._default_limit = default_limit
        self._logger = get_logger(__name__)

    async def extract_and_embed(self, entry: CatalogEntry) -> dict[str, str]:
        """Describe, embed and persist the facets of *entry*.

        Returns the stored facet texts; empty when the model answer could not
        be parsed (nothing is written in that case).

        Raises
        ------
        src.utils.errors.TransientExternalError
            The description or embedding call failed.
        """
        prompt = (
            f'Game: "{entry.title}"\n'
            f"Tags: {', '.join(entry.tags[:15]) or 'none'}\n"
            f"About: {truncate(entry.description, 1200) or '(no description)'}\n\n"
            "Write 2-3 sentences for each facet:\n"
            "- aesthetics: art style, colour, sound, presentation\n"
            "- gameplay: what the player does moment to moment, pacing, systems\n"
            "- narrative_mood: themes, story, emotional atmosphere\n"
            'Return ONLY JSON: {"aesthetics": "...", "gameplay": "...", "narrative_mood": "..."}'
        )
        response = await self._llm.complete(
            system_prompt=_SYSTEM_PROMPT,
            user_prompt=prompt,
            temperature=0.3,
            max_tokens=800,
        )
        data = extract_json_object(response) or {}
        texts = {
            facet: data[facet].strip()
            for facet in FACETS
            if isinstance(data.get(facet), str) and data[facet].strip()
        }
        if not texts:
            self._logger.warning("facet_extraction_unparseable", external_id=entry.external_id)
            return {}

        names = list(texts)
        vectors = await self._embedder.embed([texts[name] for name in names])
        embeddings = {name: list(map(float, vector)) for name, vector in zip(names, vectors)}
        await self._store.update_enrichment(
            entry.external_id,
            facet_texts=texts,
            facet_embeddings=embeddings,
        )
        self._logger.info(
            "facets_embedded",
            external_id=entry.external_id,
            facets=names,
            dimension=self._embedder.get_dimension(),
        )
        return texts

    async def find_similar(
        self,
        external_id: int,
        facet: str,
        limit: int | None = None,
        min_similarity: float | None = None,
    ) -> list[SimilarEntry]:
        """Entries most similar to *external_id* on *facet*, best first.

        Raises
        ------
        ValueError
            *facet* is not one of :data:`FACETS`.
        NotFoundError
            *external_id* is not in the store.
        """
        if facet not in FACETS:
            raise ValueError(f"unknown facet {facet!r}; expected one of {', '.join(FACETS)}")
        limit = limit or self._default_limit
        threshold = self._min_similarity if min_similarity is None else min_similarity

        entry = await self._store.get_entry(external_id)
        if entry is None:
            raise NotFoundError(
                message=f"Entry {external_id} has not been ingested",
                external_id=external_id,
            )
        source = entry.facet_embeddings.get(facet)
        if not source:
            return []

        rows = [row for row in await self._store.list_facet_vectors(facet) if row[0] != external_id]
        rows = [row for row in rows if len(row[2]) == len(source)]
        if not rows:
            return []

        matrix = np.asarray([row[2] for row in rows], dtype=np.float32)
        query = np.asarray(source, dtype=np.float32)
        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
        norms[norms == 0] = 1.0
        similarities = (matrix @ query) / norms

        order = np.argsort(-similarities)
        results: list[SimilarEntry] = []
        for index in order:
            similarity = float(similarities[index])
            if similarity < threshold:
                break
            row_id, title, _ = rows[index]
            results.append(SimilarEntry(external_id=row_id, title=title, similarity=round(similarity, 4)))
            if len(results) >= limit:
                break
        return results
