from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path

from .chunking import TextSplitterConfig
from .errors import ConfigurationInvalid


def _expand(p: str) -> str:
    return os.path.expandvars(os.path.expanduser(p))


@dataclass(frozen=True)
class LocalVecConfig:
    """Settings for one index folder and the models used to fill it."""

    index_dir: Path

    # Index
    index_version: int = 1
    indexed_keys: list[str] = field(default_factory=list)

    # Chunking
    chunk_size: int = 512
    chunk_overlap: int = 0
    keep_separators: bool = True

    # Embeddings
    embedding_model: str = "sentence-transformers/all-MiniLM-L6-v2"
    embedding_device: str = "cpu"  # cpu|cuda|mps
    embedding_batch_size: int = 32
    embedding_max_tokens: int = 8000
    offline_mode: bool = False  # Set HF_HUB_OFFLINE and TRANSFORMERS_OFFLINE

    # Tokenizer
    tokenizer_encoding: str = "cl100k_base"

    # Logging
    log_level: str = "INFO"

    def __post_init__(self):
        """Convert string paths to Path objects and expand ~ and environment variables."""
        if isinstance(self.index_dir, str):
            object.__setattr__(self, "index_dir", Path(_expand(self.index_dir)))

    def build_chunker_config(self) -> TextSplitterConfig:
        return TextSplitterConfig(
            keep_separators=self.keep_separators,
            chunk_size=self.chunk_size,
            chunk_overlap=self.chunk_overlap,
        )

    @staticmethod
    def from_toml(path: str | Path) -> "LocalVecConfig":
        data = tomllib.loads(Path(path).read_text(encoding="utf-8"))
        index = data.get("index", {})
        chunking = data.get("chunking", {})
        emb = data.get("embeddings", {})
        tok = data.get("tokenizer", {})
        log = data.get("logging", {})

        if "dir" not in index:
            raise ConfigurationInvalid("Missing [index] dir")

        chunk_size = int(chunking.get("chunk_size", 512))
        chunk_overlap = int(chunking.get("chunk_overlap", 0))
        if chunk_size < 1:
            raise ConfigurationInvalid(f"Invalid chunk_size: {chunk_size}. Must be >= 1.")
        if chunk_overlap < 0 or chunk_overlap > chunk_size:
            raise ConfigurationInvalid(f"Invalid chunk_overlap: {chunk_overlap}. Must be between 0 and {chunk_size}.")

        batch_size = int(emb.get("batch_size", 32))
        if batch_size <= 0 or batch_size > 10000:
            raise ConfigurationInvalid(f"Invalid batch_size: {batch_size}. Must be between 1 and 10000.")

        max_tokens = int(emb.get("max_tokens", 8000))
        if max_tokens < 1:
            raise ConfigurationInvalid(f"Invalid max_tokens: {max_tokens}. Must be >= 1.")

        device = emb.get("device", "cpu")
        valid_devices = ("cpu", "cuda", "mps")
        if device not in valid_devices:
            raise ConfigurationInvalid(f"Invalid device: {device}. Must be one of {valid_devices}.")

        log_level = str(log.get("level", "INFO")).upper()
        valid_levels = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
        if log_level not in valid_levels:
            raise ConfigurationInvalid(f"Invalid log level: {log_level}. Must be one of {valid_levels}.")

        # Environment variable takes precedence if explicitly set
        offline_mode_env = os.environ.get("HF_OFFLINE_MODE")
        if offline_mode_env is not None:
            offline_mode = offline_mode_env.lower() in ("1", "true", "yes")
        else:
            offline_mode = bool(emb.get("offline_mode", False))

        # SIDE EFFECT: affects every later HuggingFace download in this process.
        if offline_mode:
            os.environ.setdefault("HF_HUB_OFFLINE", "1")
            os.environ.setdefault("TRANSFORMERS_OFFLINE", "1")

        return LocalVecConfig(
            index_dir=Path(_expand(index["dir"])).resolve(),
            index_version=int(index.get("version", 1)),
            indexed_keys=list(index.get("indexed_keys", [])),
            chunk_size=chunk_size,
            chunk_overlap=chunk_overlap,
            keep_separators=bool(chunking.get("keep_separators", True)),
            embedding_model=emb.get("model", "sentence-transformers/all-MiniLM-L6-v2"),
            embedding_device=device,
            embedding_batch_size=batch_size,
            embedding_max_tokens=max_tokens,
            offline_mode=offline_mode,
            tokenizer_encoding=tok.get("encoding", "cl100k_base"),
            log_level=log_level,
        )
