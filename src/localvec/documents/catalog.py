from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Optional, Sequence

from ..chunking import TextSplitter, TextSplitterConfig
from ..errors import (
    DocumentOperationFailed,
    EmbeddingGenerationFailed,
    EmbeddingsNotConfigured,
    IndexNotFound,
    LocalVecError,
    PersistenceFailed,
)
from ..interfaces import EmbeddingsModel, Tokenizer
from ..metadata_filter import MetadataFilter
from ..models import CatalogStats, EmbeddingsResponse, MetadataTypes, QueryResult, TextChunk
from ..store.local_index import LocalIndex, write_json_atomic
from .keyword import score_texts
from .local_document import LocalDocument
from .sections import DocumentResult

logger = logging.getLogger(__name__)

CATALOG_FILE = "catalog.json"

DEFAULT_DOCUMENT_CHUNKING = TextSplitterConfig(keep_separators=True, chunk_size=512, chunk_overlap=0)


@dataclass
class CatalogData:
    """URI <-> document id mapping. `uri_to_id` and `id_to_uri` are kept inverse."""
    version: int = 1
    count: int = 0
    uri_to_id: dict[str, str] = field(default_factory=dict)
    id_to_uri: dict[str, str] = field(default_factory=dict)

    def clone(self) -> "CatalogData":
        return CatalogData(self.version, self.count, dict(self.uri_to_id), dict(self.id_to_uri))

    def add(self, uri: str, document_id: str) -> None:
        self.uri_to_id[uri] = document_id
        self.id_to_uri[document_id] = uri
        self.count += 1

    def remove(self, uri: str) -> None:
        document_id = self.uri_to_id.pop(uri, None)
        if document_id is not None:
            self.id_to_uri.pop(document_id, None)
            self.count -= 1

    def to_json(self) -> dict[str, Any]:
        return {"version": self.version, "count": self.count, "uriToId": self.uri_to_id, "idToUri": self.id_to_uri}

    @staticmethod
    def from_json(data: dict[str, Any]) -> "CatalogData":
        return CatalogData(
            version=int(data.get("version", 1)),
            count=int(data.get("count", 0)),
            uri_to_id=dict(data.get("uriToId") or {}),
            id_to_uri=dict(data.get("idToUri") or {}),
        )


def infer_doc_type(uri: str) -> Optional[str]:
    """Lower-cased extension of the last path segment, if any."""
    name = uri.rsplit("/", 1)[-1]
    if "." not in name:
        return None
    return name.rsplit(".", 1)[-1].lower() or None


class DocumentCatalog:
    """Documents split into chunks and stored in a :class:`LocalIndex`.

    The folder holds the index files plus:
    - catalog.json: URI <-> document id mapping
    - <documentId>.txt: the document text
    - <documentId>.json: optional caller metadata for the document

    Each chunk is an index item whose metadata carries ``documentId``,
    ``startPos`` and ``endPos`` (inclusive character offsets into the text).
    """

    def __init__(
        self,
        folder_path: str | Path,
        embeddings: Optional[EmbeddingsModel] = None,
        tokenizer: Optional[Tokenizer] = None,
        chunking_config: Optional[TextSplitterConfig] = None,
    ) -> None:
        self.folder_path = Path(folder_path)
        self.index = LocalIndex(self.folder_path)
        self.embeddings = embeddings
        if tokenizer is None:
            from ..tokenizers import get_default_tokenizer
            tokenizer = get_default_tokenizer()
        self.tokenizer = tokenizer
        self.chunking_config = chunking_config or DEFAULT_DOCUMENT_CHUNKING
        self._catalog: Optional[CatalogData] = None
        self._new_catalog: Optional[CatalogData] = None

    @property
    def catalog_path(self) -> Path:
        return self.folder_path / CATALOG_FILE

    # -- index lifecycle -------------------------------------------------

    def is_index_created(self) -> bool:
        return self.index.is_index_created()

    def is_catalog_created(self) -> bool:
        return self.catalog_path.is_file()

    def create_index(
        self,
        version: int = 1,
        indexed_keys: Optional[Sequence[str]] = None,
        delete_if_exists: bool = False,
    ) -> None:
        self.index.create_index(version=version, indexed_keys=indexed_keys, delete_if_exists=delete_if_exists)
        self._catalog = None
        self._load_catalog()

    def delete_index(self) -> None:
        self._catalog = None
        self._new_catalog = None
        self.index.delete_index()

    def _load_catalog(self) -> CatalogData:
        if self._catalog is not None:
            return self._catalog
        if not self.index.is_index_created():
            raise IndexNotFound(str(self.folder_path))

        if self.is_catalog_created():
            self._catalog = CatalogData.from_json(json.loads(self.catalog_path.read_text(encoding="utf-8")))
        else:
            catalog = CatalogData()
            try:
                write_json_atomic(self.catalog_path, catalog.to_json())
            except OSError as e:
                raise PersistenceFailed("document catalog", e) from e
            self._catalog = catalog
        return self._catalog

    # -- transactions ----------------------------------------------------

    def begin_update(self) -> None:
        self.index.begin_update()
        try:
            self._new_catalog = self._load_catalog().clone()
        except BaseException:
            self.index.cancel_update()
            raise

    def end_update(self) -> None:
        try:
            self.index.end_update()
            write_json_atomic(self.catalog_path, self._new_catalog.to_json())
        except OSError as e:
            raise PersistenceFailed("document catalog", e) from e
        else:
            self._catalog = self._new_catalog
        finally:
            self._new_catalog = None

    def cancel_update(self) -> None:
        self.index.cancel_update()
        self._new_catalog = None

    # -- lookups ---------------------------------------------------------

    def get_document_id(self, uri: str) -> Optional[str]:
        return self._load_catalog().uri_to_id.get(uri)

    def get_document_uri(self, document_id: str) -> Optional[str]:
        return self._load_catalog().id_to_uri.get(document_id)

    def get_catalog_stats(self) -> CatalogStats:
        catalog = self._load_catalog()
        stats = self.index.get_stats()
        return CatalogStats(
            version=catalog.version,
            documents=catalog.count,
            chunks=stats.items,
            metadata_config=stats.metadata_config,
        )

    def get_document(self, uri: str) -> Optional[LocalDocument]:
        document_id = self.get_document_id(uri)
        if document_id is None:
            return None
        return LocalDocument(self.folder_path, document_id, uri, self.tokenizer)

    # -- writes ----------------------------------------------------------

    def delete_document(self, uri: str) -> None:
        document_id = self.get_document_id(uri)
        if document_id is None:
            return

        self.begin_update()
        try:
            for item in self.index.list_items_by_metadata({"documentId": document_id}):
                self.index.delete_item(item.id)
            self._new_catalog.remove(uri)
            self.end_update()
        except Exception as e:
            self.cancel_update()
            raise DocumentOperationFailed(uri, e) from e

        try:
            (self.folder_path / f"{document_id}.txt").unlink()
        except OSError as e:
            raise DocumentOperationFailed(uri, e) from e

        try:
            (self.folder_path / f"{document_id}.json").unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove metadata file for {uri}: {e}")

        logger.info(f"Removed document {uri} ({document_id})")

    def upsert_document(
        self,
        uri: str,
        text: str,
        doc_type: Optional[str] = None,
        metadata: Optional[dict[str, MetadataTypes]] = None,
    ) -> LocalDocument:
        """Chunk, embed and store `text` under `uri`, replacing any previous version.

        Embeddings are generated before anything is written, so an embedding
        failure leaves the catalog untouched.
        """
        if self.embeddings is None:
            raise EmbeddingsNotConfigured()

        config = self.chunking_config
        doc_type = doc_type or config.doc_type or infer_doc_type(uri)
        splitter = TextSplitter(replace(config, doc_type=doc_type), tokenizer=self.tokenizer)
        chunks = splitter.split(text)
        vectors = self._embed_chunks(chunks)

        self.delete_document(uri)
        document_id = str(uuid.uuid4())

        self.begin_update()
        try:
            for chunk, vector in zip(chunks, vectors):
                chunk_metadata: dict[str, MetadataTypes] = dict(metadata or {})
                chunk_metadata.update(documentId=document_id, startPos=chunk.start_pos, endPos=chunk.end_pos)
                self.index.insert_item(vector, chunk_metadata)

            if metadata is not None:
                (self.folder_path / f"{document_id}.json").write_text(json.dumps(metadata), encoding="utf-8")
            with open(self.folder_path / f"{document_id}.txt", "w", encoding="utf-8", newline="") as f:
                f.write(text)

            self._new_catalog.add(uri, document_id)
            self.end_update()
        except Exception as e:
            self.cancel_update()
            try:
                # The index may have committed before the catalog write failed.
                self._discard_chunks(document_id)
            except LocalVecError as cleanup_error:
                logger.warning(f"Could not remove chunks of failed upsert {uri} ({document_id}): {cleanup_error}")
            else:
                for suffix in (".txt", ".json"):
                    (self.folder_path / f"{document_id}{suffix}").unlink(missing_ok=True)
            raise DocumentOperationFailed(uri, e) from e

        logger.info(f"Upserted document {uri} ({document_id}): {len(chunks)} chunks, doc_type={doc_type}")
        return LocalDocument(self.folder_path, document_id, uri, self.tokenizer)

    def _discard_chunks(self, document_id: str) -> None:
        items = self.index.list_items_by_metadata({"documentId": document_id})
        if not items:
            return
        self.index.begin_update()
        try:
            for item in items:
                self.index.delete_item(item.id)
        except BaseException:
            self.index.cancel_update()
            raise
        self.index.end_update()
        logger.debug(f"Removed {len(items)} committed chunks of {document_id}")

    def _embed_chunks(self, chunks: list[TextChunk]) -> list[list[float]]:
        # Batch so no single call exceeds the model's token ceiling.
        batches: list[list[str]] = []
        current: list[str] = []
        total = 0
        for chunk in chunks:
            total += len(chunk.tokens)
            if total > self.embeddings.max_tokens and current:
                batches.append(current)
                current = []
                total = len(chunk.tokens)
            current.append(chunk.text.replace("\n", " "))
        if current:
            batches.append(current)

        vectors: list[list[float]] = []
        for batch in batches:
            logger.debug(f"Embedding batch of {len(batch)} chunks")
            output = self._create_embeddings(batch)
            if len(output) != len(batch):
                raise EmbeddingGenerationFailed(f"expected {len(batch)} embeddings, got {len(output)}")
            vectors.extend(output)
        return vectors

    def _create_embeddings(self, inputs: str | list[str]) -> list[list[float]]:
        try:
            response: EmbeddingsResponse = self.embeddings.create_embeddings(inputs)
        except Exception as e:
            raise EmbeddingGenerationFailed(str(e)) from e
        if response.status != "success":
            raise EmbeddingGenerationFailed(response.message or response.status)
        return [list(v) for v in (response.output or [])]

    # -- reads -----------------------------------------------------------

    def list_documents(self) -> list[DocumentResult]:
        """Every document with all of its chunks, each scored 1.0."""
        grouped: dict[str, list[QueryResult]] = {}
        for item in self.index.list_items():
            item = replace(item, metadata=self.index.load_metadata(item))
            grouped.setdefault(str(item.metadata["documentId"]), []).append(QueryResult(item=item, score=1.0))
        return self._results(grouped)

    def query_documents(
        self,
        query: str,
        max_documents: int = 10,
        max_chunks: int = 50,
        filter: Optional[MetadataFilter] = None,
        is_bm25: bool = False,
    ) -> list[DocumentResult]:
        """Documents whose chunks best match `query`, highest mean chunk score first.

        With `is_bm25`, chunks matching the query terms are added to the
        semantic matches and tagged ``isBm25`` so sections can render them
        separately.
        """
        if self.embeddings is None:
            raise EmbeddingsNotConfigured()

        output = self._create_embeddings(query.replace("\n", " "))
        if not output:
            raise EmbeddingGenerationFailed("no embedding returned for query")
        results = self.index.query_items(output[0], max_chunks, filter)
        if is_bm25:
            results.extend(self._keyword_matches(query, max_chunks, filter, {r.item.id for r in results}))

        grouped: dict[str, list[QueryResult]] = {}
        for result in results:
            grouped.setdefault(str(result.item.metadata["documentId"]), []).append(result)

        documents = self._results(grouped)
        documents.sort(key=lambda d: d.score, reverse=True)
        return documents[:max_documents]

    def _keyword_matches(
        self,
        query: str,
        max_chunks: int,
        filter: Optional[MetadataFilter],
        exclude: set[str],
    ) -> list[QueryResult]:
        candidates = []
        texts: dict[str, str] = {}
        for item in self.index.list_items_by_metadata(filter or {}):
            if item.id in exclude:
                continue
            metadata = self.index.load_metadata(item)
            document_id = str(metadata["documentId"])
            if document_id not in texts:
                uri = self.get_document_uri(document_id) or document_id
                texts[document_id] = LocalDocument(self.folder_path, document_id, uri, self.tokenizer).load_text()
            chunk_text = texts[document_id][int(metadata["startPos"]):int(metadata["endPos"]) + 1]
            candidates.append((replace(item, metadata={**metadata, "isBm25": True}), chunk_text))

        scores = score_texts(query, [text for _, text in candidates])
        matched = [QueryResult(item=item, score=score) for (item, _), score in zip(candidates, scores) if score > 0]
        matched.sort(key=lambda r: r.score, reverse=True)
        return matched[:max_chunks]

    def _results(self, grouped: dict[str, list[QueryResult]]) -> list[DocumentResult]:
        documents = []
        for document_id, chunks in grouped.items():
            uri = self.get_document_uri(document_id) or ""
            documents.append(DocumentResult(self.folder_path, document_id, uri, chunks, self.tokenizer))
        return documents
