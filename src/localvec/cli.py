from __future__ import annotations

# Suppress harmless multiprocessing resource tracker warnings (common on macOS)
import warnings
warnings.filterwarnings("ignore", message="resource_tracker: There appear to be.*leaked semaphore")

import dataclasses
import json
import math
from pathlib import Path
from typing import NoReturn, Optional

import typer

from .config import LocalVecConfig
from .documents import DocumentCatalog
from .errors import LocalVecError
from .logging_utils import configure_logging

app = typer.Typer(add_completion=False, no_args_is_help=True)


def _cfg(index: str, config: Optional[str]) -> LocalVecConfig:
    """Load settings from `config` if given; the index argument always wins."""
    if config:
        cfg = dataclasses.replace(LocalVecConfig.from_toml(config), index_dir=Path(index))
    else:
        cfg = LocalVecConfig(index_dir=index)
    configure_logging(cfg.log_level)
    return cfg


def _json_safe(value):
    """Replace NaN scores (zero-norm vectors) with None so the output stays valid JSON."""
    if isinstance(value, float) and math.isnan(value):
        return None
    if isinstance(value, dict):
        return {k: _json_safe(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_json_safe(v) for v in value]
    return value


def _catalog(cfg: LocalVecConfig, with_embeddings: bool = False) -> DocumentCatalog:
    from .tokenizers import get_default_tokenizer

    embeddings = None
    if with_embeddings:
        from .embeddings import SentenceTransformersEmbeddings
        embeddings = SentenceTransformersEmbeddings(
            model_id=cfg.embedding_model,
            device=cfg.embedding_device,
            batch_size=cfg.embedding_batch_size,
            max_tokens=cfg.embedding_max_tokens,
        )
    return DocumentCatalog(
        cfg.index_dir,
        embeddings=embeddings,
        tokenizer=get_default_tokenizer(cfg.tokenizer_encoding),
        chunking_config=cfg.build_chunker_config(),
    )


def _read_list(path: Optional[str]) -> list[str]:
    if not path:
        return []
    lines = Path(path).read_text(encoding="utf-8").splitlines()
    return [line.strip() for line in lines if line.strip()]


def _fail(err: Exception) -> NoReturn:
    typer.echo(f"Error: {err}", err=True)
    raise typer.Exit(code=1)


@app.command()
def create(
    index: str = typer.Argument(..., help="Index folder"),
    config: str = typer.Option(None, help="Optional config.toml"),
    indexed_key: list[str] = typer.Option(None, help="Metadata key to keep inline in index.json (repeatable)"),
    delete_if_exists: bool = typer.Option(False, help="Replace an existing index"),
):
    """Create a new local index."""
    cfg = _cfg(index, config)
    keys = list(indexed_key or cfg.indexed_keys)
    try:
        _catalog(cfg).create_index(version=cfg.index_version, indexed_keys=keys, delete_if_exists=delete_if_exists)
    except LocalVecError as e:
        _fail(e)
    typer.echo(f"Created index at {cfg.index_dir}")


@app.command()
def delete(index: str = typer.Argument(..., help="Index folder")):
    """Delete an existing local index."""
    cfg = _cfg(index, None)
    _catalog(cfg).delete_index()
    typer.echo(f"Deleted index at {cfg.index_dir}")


@app.command()
def add(
    index: str = typer.Argument(..., help="Index folder"),
    config: str = typer.Option(None, help="Optional config.toml"),
    file: list[str] = typer.Option(None, help="Text file to add (repeatable)"),
    list_: str = typer.Option(None, "--list", help="File containing one path per line"),
    doc_type: str = typer.Option(None, help="Document type; inferred from the extension by default"),
    chunk_size: int = typer.Option(None, help="Override chunk size in tokens"),
):
    """Add or replace one or more text files in an index."""
    cfg = _cfg(index, config)
    if chunk_size is not None:
        cfg = dataclasses.replace(cfg, chunk_size=chunk_size)
    paths = list(file or []) + _read_list(list_)
    if not paths:
        raise typer.BadParameter("Provide --file or --list")

    catalog = _catalog(cfg, with_embeddings=True)
    for p in paths:
        path = Path(p)
        try:
            with open(path, encoding="utf-8", newline="") as f:
                text = f.read()
            catalog.upsert_document(str(path), text, doc_type=doc_type)
        except (OSError, LocalVecError) as e:
            _fail(e)
        typer.echo(f"Added {path}")


@app.command()
def remove(
    index: str = typer.Argument(..., help="Index folder"),
    uri: list[str] = typer.Option(None, help="URI of a document to remove (repeatable)"),
    list_: str = typer.Option(None, "--list", help="File containing one URI per line"),
):
    """Remove one or more documents from an index."""
    cfg = _cfg(index, None)
    uris = list(uri or []) + _read_list(list_)
    catalog = _catalog(cfg)
    for u in uris:
        try:
            catalog.delete_document(u)
        except LocalVecError as e:
            _fail(e)
        typer.echo(f"Removed {u}")


@app.command()
def stats(index: str = typer.Argument(..., help="Index folder")):
    """Print the stats for a local index."""
    cfg = _cfg(index, None)
    try:
        s = _catalog(cfg).get_catalog_stats()
    except LocalVecError as e:
        _fail(e)
    typer.echo(json.dumps(dataclasses.asdict(s), indent=2))


@app.command()
def query(
    index: str = typer.Argument(..., help="Index folder"),
    q: str = typer.Argument(..., help="Query text"),
    config: str = typer.Option(None, help="Optional config.toml"),
    document_count: int = typer.Option(10, help="Max number of documents to return"),
    chunk_count: int = typer.Option(50, help="Max number of chunks to retrieve"),
    section_count: int = typer.Option(1, help="Max number of sections to render per document"),
    tokens: int = typer.Option(2000, help="Max tokens per rendered section"),
    format: str = typer.Option("sections", help="sections|chunks|stats"),
    overlap: bool = typer.Option(True, help="Pad sections with surrounding text"),
    bm25: bool = typer.Option(False, help="Add keyword matches to semantic matches"),
    filter: str = typer.Option(None, help="Metadata filter as JSON"),
):
    """Query a local index."""
    if format not in ("sections", "chunks", "stats"):
        raise typer.BadParameter(f"Unknown format: {format}")
    cfg = _cfg(index, config)
    filt = json.loads(filter) if filter else None

    try:
        docs = _catalog(cfg, with_embeddings=True).query_documents(
            q, max_documents=document_count, max_chunks=chunk_count, filter=filt, is_bm25=bm25
        )
        results = []
        for doc in docs:
            entry = {"uri": doc.uri, "id": doc.id, "score": doc.score}
            if format == "sections":
                entry["sections"] = [dataclasses.asdict(s) for s in doc.render_sections(tokens, section_count, overlap)]
            elif format == "chunks":
                entry["chunks"] = [
                    {"id": c.item.id, "score": c.score, "metadata": c.item.metadata} for c in doc.chunks
                ]
            else:
                entry["chunks"] = len(doc.chunks)
            results.append(entry)
    except LocalVecError as e:
        _fail(e)
    typer.echo(json.dumps(_json_safe(results), indent=2))


if __name__ == "__main__":
    app()
