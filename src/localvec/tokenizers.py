from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Sequence


@dataclass
class TiktokenTokenizer:
    """Byte-pair tokenizer backed by tiktoken."""
    encoding_name: str = "cl100k_base"

    def __post_init__(self) -> None:
        import tiktoken  # type: ignore
        self._encoding = tiktoken.get_encoding(self.encoding_name)

    def encode(self, text: str) -> list[int]:
        # Treat text that looks like a special token as plain text.
        return self._encoding.encode(text, disallowed_special=())

    def decode(self, tokens: Sequence[int]) -> str:
        return self._encoding.decode(list(tokens))


@lru_cache(maxsize=None)
def get_default_tokenizer(encoding_name: str = "cl100k_base") -> TiktokenTokenizer:
    return TiktokenTokenizer(encoding_name)
