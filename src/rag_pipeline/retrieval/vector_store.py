"""Vector store interfaces and concrete adapters."""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field
from math import sqrt
from typing import Any, Protocol

from rag_pipeline.errors import StoreError
from rag_pipeline.retrieval.filters import Filter, matches_filter
from rag_pipeline.types import EmbeddingVector, PointMetadata, ScoredPoint, UpsertAck

logger = logging.getLogger(__name__)

DEFAULT_QUERY_LIMIT = 5


@dataclass(slots=True)
class StoredPoint:
    point_id: str
    payload: dict[str, Any]
    vector: list[float] | None = None


class VectorStore(Protocol):
    """Collection-scoped vector store contract.

    Every failure is raised as `StoreError`; implementations never retry.
    """

    async def create_collection(self, collection: str, dimension: int) -> None:
        """Create a collection; a no-op if it exists with the same dimension."""

    async def upsert(
        self,
        collection: str,
        points: Sequence[tuple[EmbeddingVector, PointMetadata]],
    ) -> UpsertAck:
        """Store each pair as one point under a store-generated id."""

    async def query(
        self,
        collection: str,
        vector: list[float],
        metadata_filter: Filter | None = None,
        limit: int = DEFAULT_QUERY_LIMIT,
    ) -> list[ScoredPoint]:
        """Return the nearest points by cosine similarity, best first."""

    async def scroll(
        self,
        collection: str,
        metadata_filter: Filter | None = None,
        limit: int = 100,
    ) -> list[StoredPoint]:
        """Enumerate stored points without ranking."""

    async def delete(self, collection: str, metadata_filter: Filter | None = None) -> int:
        """Delete matching points and return how many were removed."""


@dataclass(slots=True)
class _Collection:
    dimension: int
    points: dict[str, StoredPoint] = field(default_factory=dict)


class InMemoryVectorStore:
    """Deterministic vector store used for tests and local prototyping."""

    def __init__(self) -> None:
        self._collections: dict[str, _Collection] = {}

    async def create_collection(self, collection: str, dimension: int) -> None:
        existing = self._collections.get(collection)
        if existing is None:
            self._collections[collection] = _Collection(dimension=dimension)
            logger.info("Created collection %s (dimension=%d)", collection, dimension)
            return
        if existing.dimension != dimension:
            raise StoreError(
                f"Collection {collection} has dimension {existing.dimension}, not {dimension}",
                operation="create_collection",
                collection=collection,
            )

    async def upsert(
        self,
        collection: str,
        points: Sequence[tuple[EmbeddingVector, PointMetadata]],
    ) -> UpsertAck:
        target = self._get(collection, "upsert")
        for vector, _ in points:
            if vector.dimension != target.dimension:
                raise StoreError(
                    f"Vector dimension {vector.dimension} does not match {target.dimension}",
                    operation="upsert",
                    collection=collection,
                )

        point_ids: list[str] = []
        for vector, metadata in points:
            point_id = str(uuid.uuid4())
            target.points[point_id] = StoredPoint(
                point_id=point_id,
                payload=metadata.to_payload(),
                vector=list(vector.values),
            )
            point_ids.append(point_id)
        return UpsertAck(collection=collection, point_ids=point_ids)

    async def query(
        self,
        collection: str,
        vector: list[float],
        metadata_filter: Filter | None = None,
        limit: int = DEFAULT_QUERY_LIMIT,
    ) -> list[ScoredPoint]:
        target = self._get(collection, "query")
        _check_query_dimension(collection, vector, target.dimension)
        ranked = sorted(
            (
                ScoredPoint(
                    point_id=point.point_id,
                    score=_cosine_similarity(vector, point.vector or []),
                    payload=dict(point.payload),
                )
                for point in target.points.values()
                if matches_filter(point.payload, metadata_filter)
            ),
            key=lambda item: item.score,
            reverse=True,
        )
        return [
            ScoredPoint(point_id=item.point_id, score=item.score, payload=item.payload, rank=i + 1)
            for i, item in enumerate(ranked[:limit])
        ]

    async def scroll(
        self,
        collection: str,
        metadata_filter: Filter | None = None,
        limit: int = 100,
    ) -> list[StoredPoint]:
        target = self._get(collection, "scroll")
        matched = [
            point
            for point in target.points.values()
            if matches_filter(point.payload, metadata_filter)
        ]
        return matched[:limit]

    async def delete(self, collection: str, metadata_filter: Filter | None = None) -> int:
        target = self._get(collection, "delete")
        doomed = [
            point_id
            for point_id, point in target.points.items()
            if matches_filter(point.payload, metadata_filter)
        ]
        for point_id in doomed:
            del target.points[point_id]
        return len(doomed)

    def _get(self, collection: str, operation: str) -> _Collection:
        target = self._collections.get(collection)
        if target is None:
            raise StoreError(
                f"Collection not found: {collection}",
                operation=operation,
                collection=collection,
            )
        return target


class FaissVectorStore:
    """FAISS adapter via LangChain community integration.

    One FAISS index per collection, built on first upsert. Vectors are
    L2-normalized before they reach FAISS and compared by inner product,
    which ranks by cosine similarity. FAISS calls are synchronous and run in
    a worker thread; every call touching a collection's index holds that
    collection's lock, so concurrent upserts and deletes apply one at a time
    and an acknowledged point is always in the index.
    """

    def __init__(self) -> None:
        from langchain_community.vectorstores import FAISS
        from langchain_community.vectorstores.utils import DistanceStrategy
        from langchain_core.embeddings import Embeddings

        class _PrecomputedEmbeddings(Embeddings):
            def embed_documents(self, texts: list[str]) -> list[list[float]]:
                raise RuntimeError("vectors are computed by the embedding orchestrator")

            def embed_query(self, text: str) -> list[float]:
                raise RuntimeError("vectors are computed by the embedding orchestrator")

        self._faiss_cls = FAISS
        self._distance = DistanceStrategy.MAX_INNER_PRODUCT
        self._embeddings = _PrecomputedEmbeddings()
        self._dimensions: dict[str, int] = {}
        self._indexes: dict[str, Any] = {}
        self._ids: dict[str, list[str]] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    async def create_collection(self, collection: str, dimension: int) -> None:
        existing = self._dimensions.get(collection)
        if existing is not None and existing != dimension:
            raise StoreError(
                f"Collection {collection} has dimension {existing}, not {dimension}",
                operation="create_collection",
                collection=collection,
            )
        self._dimensions[collection] = dimension
        self._ids.setdefault(collection, [])
        self._locks.setdefault(collection, asyncio.Lock())

    async def upsert(
        self,
        collection: str,
        points: Sequence[tuple[EmbeddingVector, PointMetadata]],
    ) -> UpsertAck:
        dimension = self._require(collection, "upsert")
        if any(vector.dimension != dimension for vector, _ in points):
            raise StoreError(
                f"Vector dimension does not match {dimension}",
                operation="upsert",
                collection=collection,
            )
        if not points:
            return UpsertAck(collection=collection, point_ids=[])

        point_ids = [str(uuid.uuid4()) for _ in points]
        text_embeddings = [
            (metadata.raw_text, _unit(vector.values)) for vector, metadata in points
        ]
        metadatas = [
            {**metadata.to_payload(), "point_id": point_id}
            for point_id, (_, metadata) in zip(point_ids, points, strict=True)
        ]
        async with self._locks[collection]:
            await self._run(
                "upsert", collection, self._add, collection, text_embeddings, metadatas, point_ids
            )
            self._ids[collection].extend(point_ids)
        return UpsertAck(collection=collection, point_ids=point_ids)

    async def query(
        self,
        collection: str,
        vector: list[float],
        metadata_filter: Filter | None = None,
        limit: int = DEFAULT_QUERY_LIMIT,
    ) -> list[ScoredPoint]:
        dimension = self._require(collection, "query")
        _check_query_dimension(collection, vector, dimension)
        query_vector = _unit(vector)

        async with self._locks[collection]:
            index = self._indexes.get(collection)
            if index is None:
                return []

            def _search() -> list[Any]:
                return index.similarity_search_with_score_by_vector(
                    embedding=query_vector,
                    k=limit,
                    filter=(lambda metadata: matches_filter(_payload(metadata), metadata_filter)),
                    fetch_k=max(limit, len(self._ids[collection])),
                )

            docs_and_scores = await self._run("query", collection, _search)

        return [
            ScoredPoint(
                point_id=str(doc.metadata.get("point_id", "")),
                score=float(score),
                payload=_payload(doc.metadata),
                rank=rank,
            )
            for rank, (doc, score) in enumerate(docs_and_scores, start=1)
        ]

    async def scroll(
        self,
        collection: str,
        metadata_filter: Filter | None = None,
        limit: int = 100,
    ) -> list[StoredPoint]:
        self._require(collection, "scroll")
        async with self._locks[collection]:
            matched = self._matching(collection, metadata_filter)
        return matched[:limit]

    async def delete(self, collection: str, metadata_filter: Filter | None = None) -> int:
        self._require(collection, "delete")
        async with self._locks[collection]:
            doomed = [point.point_id for point in self._matching(collection, metadata_filter)]
            if not doomed:
                return 0
            await self._run("delete", collection, self._indexes[collection].delete, doomed)
            remaining = set(doomed)
            self._ids[collection] = [i for i in self._ids[collection] if i not in remaining]
        return len(doomed)

    def _add(
        self,
        collection: str,
        text_embeddings: list[tuple[str, list[float]]],
        metadatas: list[dict[str, Any]],
        ids: list[str],
    ) -> None:
        index = self._indexes.get(collection)
        if index is None:
            self._indexes[collection] = self._faiss_cls.from_embeddings(
                text_embeddings=text_embeddings,
                embedding=self._embeddings,
                metadatas=metadatas,
                ids=ids,
                distance_strategy=self._distance,
            )
            return
        index.add_embeddings(text_embeddings=text_embeddings, metadatas=metadatas, ids=ids)

    def _matching(self, collection: str, metadata_filter: Filter | None) -> list[StoredPoint]:
        index = self._indexes.get(collection)
        if index is None:
            return []
        matched: list[StoredPoint] = []
        for point_id in self._ids[collection]:
            doc = index.docstore.search(point_id)
            metadata = getattr(doc, "metadata", None)
            if metadata is None:
                continue
            payload = _payload(metadata)
            if matches_filter(payload, metadata_filter):
                matched.append(StoredPoint(point_id=point_id, payload=payload))
        return matched

    def _require(self, collection: str, operation: str) -> int:
        dimension = self._dimensions.get(collection)
        if dimension is None:
            raise StoreError(
                f"Collection not found: {collection}",
                operation=operation,
                collection=collection,
            )
        return dimension

    @staticmethod
    async def _run(operation: str, collection: str, func: Any, *args: Any) -> Any:
        try:
            return await asyncio.to_thread(func, *args)
        except StoreError:
            raise
        except Exception as exc:
            raise StoreError(
                f"FAISS {operation} failed: {exc}",
                operation=operation,
                collection=collection,
            ) from exc


def _check_query_dimension(collection: str, vector: list[float], dimension: int) -> None:
    if len(vector) != dimension:
        raise StoreError(
            f"Query vector dimension {len(vector)} does not match {dimension}",
            operation="query",
            collection=collection,
        )


def _unit(values: list[float]) -> list[float]:
    norm = sqrt(sum(value * value for value in values))
    if norm == 0:
        return list(values)
    return [value / norm for value in values]


def _payload(metadata: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in metadata.items() if key != "point_id"}


def _cosine_similarity(a: list[float], b: list[float]) -> float:
    if not a or not b or len(a) != len(b):
        return 0.0
    numerator = sum(x * y for x, y in zip(a, b, strict=True))
    norm_a = sqrt(sum(x * x for x in a))
    norm_b = sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return numerator / (norm_a * norm_b)
