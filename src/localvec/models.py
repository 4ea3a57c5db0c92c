from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Optional, Union

MetadataTypes = Union[str, int, float, bool]

EmbeddingsStatus = Literal["success", "error", "rate_limited", "cancelled"]


@dataclass(frozen=True)
class IndexItem:
    """A stored (vector, metadata) record.

    `norm` is the Euclidean norm of `vector`, cached at insert time.
    `metadata_file` names the side file holding the full metadata when only
    the indexed keys are kept inline.
    """
    id: str
    vector: list[float]
    norm: float
    metadata: dict[str, MetadataTypes] = field(default_factory=dict)
    metadata_file: Optional[str] = None

    def to_json(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "metadata": self.metadata,
            "vector": self.vector,
            "norm": self.norm,
        }
        if self.metadata_file:
            data["metadataFile"] = self.metadata_file
        return data

    @staticmethod
    def from_json(data: dict[str, Any]) -> "IndexItem":
        return IndexItem(
            id=data["id"],
            vector=list(data["vector"]),
            norm=float(data["norm"]),
            metadata=dict(data.get("metadata") or {}),
            metadata_file=data.get("metadataFile"),
        )


@dataclass(frozen=True)
class QueryResult:
    item: IndexItem
    score: float


@dataclass(frozen=True)
class IndexStats:
    version: int
    metadata_config: dict[str, Any]
    items: int


@dataclass(frozen=True)
class CatalogStats:
    version: int
    documents: int
    chunks: int
    metadata_config: dict[str, Any]


@dataclass
class TextChunk:
    """A span of source text produced by the chunker.

    `end_pos` is inclusive. Overlap lists hold tokens borrowed from the
    neighbouring chunks and are empty at the sequence boundaries.
    """
    text: str
    tokens: list[int]
    start_pos: int
    end_pos: int
    start_overlap: list[int] = field(default_factory=list)
    end_overlap: list[int] = field(default_factory=list)


@dataclass(frozen=True)
class Section:
    text: str
    token_count: int
    score: float
    is_bm25: bool = False


@dataclass(frozen=True)
class EmbeddingsResponse:
    status: EmbeddingsStatus
    output: Optional[list[list[float]]] = None
    message: Optional[str] = None
    model: Optional[str] = None
    usage: dict[str, Any] = field(default_factory=dict)
