from __future__ import annotations

import json
import math
from pathlib import Path
from typing import Optional

from ..errors import MetadataParseFailed, MetadataReadFailed, TextReadFailed
from ..interfaces import Tokenizer
from ..models import MetadataTypes

# Above this many characters the token length is estimated instead of counted.
MAX_EXACT_LENGTH_CHARS = 40_000


class LocalDocument:
    """A document stored in a catalog folder as ``<id>.txt`` (+ optional ``<id>.json``).

    Text and metadata are read lazily and cached on first access.
    """

    def __init__(self, folder_path: str | Path, id: str, uri: str, tokenizer: Tokenizer) -> None:
        self._folder_path = Path(folder_path)
        self._id = id
        self._uri = uri
        self._tokenizer = tokenizer
        self._text: Optional[str] = None
        self._metadata: Optional[dict[str, MetadataTypes]] = None

    @property
    def folder_path(self) -> Path:
        return self._folder_path

    @property
    def id(self) -> str:
        return self._id

    @property
    def uri(self) -> str:
        return self._uri

    @property
    def tokenizer(self) -> Tokenizer:
        return self._tokenizer

    @property
    def text_path(self) -> Path:
        return self._folder_path / f"{self._id}.txt"

    @property
    def metadata_path(self) -> Path:
        return self._folder_path / f"{self._id}.json"

    def get_length(self) -> int:
        """Length of the document in tokens, estimated for very long texts."""
        text = self.load_text()
        if len(text) <= MAX_EXACT_LENGTH_CHARS:
            return len(self._tokenizer.encode(text))
        return math.ceil(len(text) / 4)

    def has_metadata(self) -> bool:
        return self.metadata_path.is_file()

    def load_metadata(self) -> dict[str, MetadataTypes]:
        if self._metadata is None:
            try:
                raw = self.metadata_path.read_text(encoding="utf-8")
            except OSError as e:
                raise MetadataReadFailed(self._uri, e) from e
            try:
                self._metadata = json.loads(raw)
            except ValueError as e:
                raise MetadataParseFailed(self._uri, e) from e
        return self._metadata

    def load_text(self) -> str:
        if self._text is None:
            try:
                # newline="" keeps character offsets identical to the indexed text.
                with open(self.text_path, encoding="utf-8", newline="") as f:
                    self._text = f.read()
            except OSError as e:
                raise TextReadFailed(self._uri, e) from e
        return self._text

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self._id!r}, uri={self._uri!r})"
