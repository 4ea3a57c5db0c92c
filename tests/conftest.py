"""Shared test doubles: a one-character-per-token tokenizer and a bag-of-letters embeddings model."""

from __future__ import annotations

import string
from typing import Sequence, Union

import pytest

from localvec.models import EmbeddingsResponse


class CharTokenizer:
    """Each character is one token."""

    def encode(self, text: str) -> list[int]:
        return [ord(c) for c in text]

    def decode(self, tokens: Sequence[int]) -> str:
        return "".join(chr(t) for t in tokens)


class ByteTokenizer:
    """Each UTF-8 byte is one token, so accented characters take two."""

    def encode(self, text: str) -> list[int]:
        return list(text.encode("utf-8"))

    def decode(self, tokens: Sequence[int]) -> str:
        return bytes(tokens).decode("utf-8", errors="replace")


def letter_vector(text: str) -> list[float]:
    text = text.lower()
    return [float(text.count(c)) for c in string.ascii_lowercase]


class FakeEmbeddings:
    """Deterministic embeddings: letter counts of each input."""

    def __init__(self, max_tokens: int = 8000, status: str = "success", fail_with: Exception | None = None):
        self.max_tokens = max_tokens
        self.status = status
        self.fail_with = fail_with
        self.calls: list[list[str]] = []

    def create_embeddings(self, inputs: Union[str, Sequence[str]]) -> EmbeddingsResponse:
        texts = [inputs] if isinstance(inputs, str) else list(inputs)
        self.calls.append(texts)
        if self.fail_with is not None:
            raise self.fail_with
        if self.status != "success":
            return EmbeddingsResponse(status=self.status, message="quota exceeded")
        return EmbeddingsResponse(status="success", output=[letter_vector(t) for t in texts])


@pytest.fixture
def tokenizer() -> CharTokenizer:
    return CharTokenizer()


@pytest.fixture
def embeddings() -> FakeEmbeddings:
    return FakeEmbeddings()
