from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

from ..errors import ConfigurationInvalid
from ..interfaces import Tokenizer
from ..models import TextChunk
from .separators import get_separators


def _has_alnum(text: str) -> bool:
    return any(c.isalnum() for c in text)


def _clean_prefix_length(text: str, start: int, tokens: Sequence[int], count: int, tokenizer: Tokenizer) -> int:
    """Characters covered by `tokens[:count]`, or 0 if they end inside a character."""
    prefix = tokenizer.decode(tokens[:count])
    return len(prefix) if prefix and text.startswith(prefix, start) else 0


def _next_cut(text: str, start: int, tokenizer: Tokenizer, max_tokens: int) -> int:
    window = max_tokens * 8
    while True:
        tokens = list(tokenizer.encode(text[start:start + window]))
        if len(tokens) > max_tokens or start + window >= len(text):
            break
        window *= 2
    if len(tokens) <= max_tokens:
        return len(text)

    # Back off until the cut lands between characters.
    count = max_tokens
    length = _clean_prefix_length(text, start, tokens, count, tokenizer)
    while not length and count > 1:
        count -= 1
        length = _clean_prefix_length(text, start, tokens, count, tokenizer)
    # A single character wider than the budget is emitted on its own.
    count = max_tokens
    while not length and count < len(tokens):
        count += 1
        length = _clean_prefix_length(text, start, tokens, count, tokenizer)
    cut = start + max(length, 1)

    # Re-encoding the piece alone may merge tokens differently.
    while cut > start + 1 and len(tokenizer.encode(text[start:cut])) > max_tokens:
        cut -= 1
    return cut


def token_spans(text: str, tokenizer: Tokenizer, max_tokens: int) -> list[tuple[int, int]]:
    """Cut `text` into consecutive ``(start, end)`` character spans of at most `max_tokens` tokens.

    Cuts always fall between characters, so the spans concatenate back to
    `text` even when the tokenizer encodes one character as several tokens.
    """
    spans: list[tuple[int, int]] = []
    start = 0
    while start < len(text):
        end = _next_cut(text, start, tokenizer, max_tokens)
        spans.append((start, end))
        start = end
    return spans


@dataclass(frozen=True)
class TextSplitterConfig:
    separators: Optional[Sequence[str]] = None
    keep_separators: bool = False
    chunk_size: int = 400
    chunk_overlap: int = 40
    doc_type: Optional[str] = None


class TextSplitter:
    """Recursive, separator-driven splitter producing token-bounded chunks.

    Text is split on the highest priority separator, and any part that is
    still larger than `chunk_size` tokens is split again on the remaining
    separators (or cut in half once they run out). Neighbouring leaves are
    then merged greedily up to `chunk_size` tokens, and each chunk receives
    up to `chunk_overlap` tokens of context from its neighbours.
    """

    def __init__(self, config: Optional[TextSplitterConfig] = None, tokenizer: Optional[Tokenizer] = None):
        config = config or TextSplitterConfig()
        if config.chunk_size < 1:
            raise ConfigurationInvalid(f"Invalid chunk_size: {config.chunk_size}. Must be >= 1")
        if config.chunk_overlap < 0:
            raise ConfigurationInvalid(f"Invalid chunk_overlap: {config.chunk_overlap}. Must be >= 0")
        if config.chunk_overlap > config.chunk_size:
            raise ConfigurationInvalid(
                f"Invalid chunk_overlap: {config.chunk_overlap}. Must be <= chunk_size ({config.chunk_size})"
            )

        if tokenizer is None:
            from ..tokenizers import get_default_tokenizer
            tokenizer = get_default_tokenizer()

        self.config = config
        self.tokenizer = tokenizer
        self.separators = list(config.separators) if config.separators else get_separators(config.doc_type)

    def split(self, text: str) -> list[TextChunk]:
        chunks = self._recursive_split(text, self.separators, 0)

        overlap = self.config.chunk_overlap
        if overlap > 0:
            for i, chunk in enumerate(chunks):
                if i > 0:
                    prev_tokens = chunks[i - 1].tokens
                    n = min(overlap, len(prev_tokens))
                    chunk.start_overlap = prev_tokens[len(prev_tokens) - n:]
                if i < len(chunks) - 1:
                    next_tokens = chunks[i + 1].tokens
                    chunk.end_overlap = next_tokens[:min(overlap, len(next_tokens))]

        return chunks

    def _recursive_split(self, text: str, separators: list[str], start_pos: int) -> list[TextChunk]:
        chunks: list[TextChunk] = []
        if not text:
            return chunks

        next_separators = separators[1:]
        if separators and separators[0] == " ":
            # Token spans are contiguous slices of the text, so no separator sits between them.
            separator = ""
            parts = [text[a:b] for a, b in token_spans(text, self.tokenizer, self.config.chunk_size)]
        elif separators:
            separator = separators[0]
            parts = text.split(separator)
        elif len(text) > 1:
            separator = ""
            half = len(text) // 2
            parts = [text[:half], text[half:]]
        else:
            return [self._leaf(text, start_pos, start_pos)]

        for i, part in enumerate(parts):
            last = i == len(parts) - 1
            end_pos = start_pos + len(part) - 1 + (0 if last else len(separator))
            if self.config.keep_separators and not last:
                part += separator

            if not _has_alnum(part):
                start_pos = end_pos + 1
                continue

            # Skip encoding parts that are obviously too large.
            if len(part) / 6 > self.config.chunk_size:
                chunks.extend(self._recursive_split(part, next_separators, start_pos))
            else:
                tokens = self.tokenizer.encode(part)
                if len(tokens) > self.config.chunk_size and (separators or len(part) > 1):
                    chunks.extend(self._recursive_split(part, next_separators, start_pos))
                else:
                    chunks.append(TextChunk(text=part, tokens=list(tokens), start_pos=start_pos, end_pos=end_pos))

            start_pos = end_pos + 1

        return self._combine_chunks(chunks)

    def _leaf(self, text: str, start_pos: int, end_pos: int) -> TextChunk:
        return TextChunk(text=text, tokens=list(self.tokenizer.encode(text)), start_pos=start_pos, end_pos=end_pos)

    def _combine_chunks(self, chunks: list[TextChunk]) -> list[TextChunk]:
        combined: list[TextChunk] = []
        current: Optional[TextChunk] = None
        joiner = "" if self.config.keep_separators else " "

        for chunk in chunks:
            if current is None:
                current = chunk
                continue

            if len(current.tokens) + len(chunk.tokens) > self.config.chunk_size:
                combined.append(current)
                current = chunk
            else:
                current.text += joiner + chunk.text
                current.end_pos = chunk.end_pos
                current.tokens.extend(chunk.tokens)

        if current is not None:
            combined.append(current)
        return combined
