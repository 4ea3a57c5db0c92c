"""Collaborator contracts consumed by the store, chunker and section renderer."""

from __future__ import annotations

from typing import Protocol, Sequence, Union, runtime_checkable

from .models import EmbeddingsResponse


@runtime_checkable
class Tokenizer(Protocol):
    """Text <-> token id codec. `decode(encode(text))` must return `text`."""

    def encode(self, text: str) -> list[int]:
        ...

    def decode(self, tokens: Sequence[int]) -> str:
        ...


@runtime_checkable
class EmbeddingsModel(Protocol):
    """Creates embeddings for one or more inputs.

    Failures are reported through `EmbeddingsResponse.status`; `max_tokens`
    caps the total tokens sent in a single call.
    """

    max_tokens: int

    def create_embeddings(self, inputs: Union[str, Sequence[str]]) -> EmbeddingsResponse:
        ...
