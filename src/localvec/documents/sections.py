from __future__ import annotations

import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Sequence

import numpy as np

from ..chunking import token_spans
from ..errors import ConfigurationInvalid
from ..interfaces import Tokenizer
from ..models import QueryResult, Section
from .local_document import LocalDocument

CONNECTOR = "\n\n...\n\n"
# Minimum heat for a character position to belong to a peak.
HEAT_THRESHOLD = 0.1
# Spare budget required before a section is padded with surrounding text.
MIN_EXPANSION_BUDGET = 40
# Characters of surrounding text encoded per token of expansion budget.
CHARS_PER_TOKEN_WINDOW = 8


@dataclass
class _Span:
    text: str
    start_pos: int
    end_pos: int
    score: float
    token_count: int
    is_bm25: bool = False

    @property
    def midpoint(self) -> float:
        return (self.start_pos + self.end_pos) / 2


@dataclass
class _Peak:
    position: int
    heat: float
    spans: list[_Span] = field(default_factory=list)


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


class SectionBuilder:
    """Turns the chunks retrieved for one document back into token-bounded text.

    `render_all_sections` packs every chunk in document order.
    `render_sections` centres sections on the most relevant regions of the
    document: chunk scores are accumulated into a per-character heatmap,
    peaks are found where the heat stays above a threshold, and each peak
    collects the nearest chunks until the token budget is spent.
    """

    def __init__(
        self,
        text: str,
        chunks: Sequence[QueryResult],
        tokenizer: Tokenizer,
        document_length: Optional[int] = None,
    ) -> None:
        self.text = text
        self.chunks = list(chunks)
        self.tokenizer = tokenizer
        self._document_length = document_length

    @property
    def document_length(self) -> int:
        if self._document_length is None:
            self._document_length = len(self.tokenizer.encode(self.text))
        return self._document_length

    def _span(self, result: QueryResult) -> _Span:
        metadata = result.item.metadata
        start = int(metadata["startPos"])
        end = int(metadata["endPos"])
        text = self.text[start:end + 1]
        return _Span(
            text=text,
            start_pos=start,
            end_pos=end,
            score=result.score,
            token_count=len(self.tokenizer.encode(text)),
            is_bm25=bool(metadata.get("isBm25", False)),
        )

    @staticmethod
    def _check_budget(max_tokens: int) -> None:
        if max_tokens < 1:
            raise ConfigurationInvalid(f"Invalid max_tokens: {max_tokens}. Must be >= 1")

    # -- document order packing ------------------------------------------

    def render_all_sections(self, max_tokens: int) -> list[Section]:
        self._check_budget(max_tokens)

        pieces: list[_Span] = []
        for result in self.chunks:
            span = self._span(result)
            for a, b in token_spans(span.text, self.tokenizer, max_tokens):
                piece_text = span.text[a:b]
                pieces.append(_Span(
                    text=piece_text,
                    start_pos=span.start_pos + a,
                    end_pos=span.start_pos + b - 1,
                    score=span.score,
                    token_count=len(self.tokenizer.encode(piece_text)),
                ))
        pieces.sort(key=lambda p: p.start_pos)

        groups: list[list[_Span]] = []
        used = 0
        for piece in pieces:
            if not groups or used + piece.token_count > max_tokens:
                groups.append([])
                used = 0
            groups[-1].append(piece)
            used += piece.token_count

        return [
            Section(
                text="".join(p.text for p in group),
                token_count=sum(p.token_count for p in group),
                score=_mean([p.score for p in group]),
                is_bm25=False,
            )
            for group in groups
        ]

    # -- relevance windows -----------------------------------------------

    def render_sections(self, max_tokens: int, max_sections: int, overlapping_chunks: bool = True) -> list[Section]:
        self._check_budget(max_tokens)

        if self.document_length <= max_tokens:
            return [Section(text=self.text, token_count=self.document_length, score=1.0, is_bm25=False)]

        spans = [self._span(result) for result in self.chunks]
        semantic = [s for s in spans if not s.is_bm25]
        keyword = [s for s in spans if s.is_bm25]

        sections: list[Section] = []
        for branch, is_bm25 in ((semantic, False), (keyword, True)):
            if branch:
                sections.extend(self._render_branch(branch, is_bm25, max_tokens, max_sections, overlapping_chunks))
        return sections

    def _render_branch(
        self,
        spans: list[_Span],
        is_bm25: bool,
        max_tokens: int,
        max_sections: int,
        overlapping_chunks: bool,
    ) -> list[Section]:
        peaks = self._find_peaks(spans)
        for span in spans:
            nearest = min(peaks, key=lambda p: abs(span.midpoint - p.position))
            nearest.spans.append(span)

        peaks.sort(key=lambda p: p.heat, reverse=True)
        peaks = peaks[:max(max_sections, 0)]

        connector_tokens = len(self.tokenizer.encode(CONNECTOR)) if overlapping_chunks else 0
        sections: list[Section] = []
        for peak in peaks:
            accepted = self._accept_spans(peak, max_tokens, connector_tokens)
            if not accepted:
                return [self._fallback(spans, is_bm25, max_tokens)]
            sections.append(self._assemble(accepted, is_bm25, max_tokens, overlapping_chunks, connector_tokens))

        if not sections:
            return [self._fallback(spans, is_bm25, max_tokens)]
        return sections

    def _find_peaks(self, spans: list[_Span]) -> list[_Peak]:
        heat = np.zeros(len(self.text), dtype=np.float64)
        for span in spans:
            start = max(span.start_pos, 0)
            end = min(span.end_pos, len(self.text) - 1)
            if start <= end:
                heat[start:end + 1] += span.score

        peaks: list[_Peak] = []
        hot = np.flatnonzero(heat >= HEAT_THRESHOLD)
        if hot.size:
            runs = np.split(hot, np.flatnonzero(np.diff(hot) > 1) + 1)
            for run in runs:
                pos = int(run[np.argmax(heat[run])])
                peaks.append(_Peak(position=pos, heat=float(heat[pos])))

        if not peaks:
            top = max(spans, key=lambda s: s.score)
            pos = (top.start_pos + top.end_pos) // 2
            peaks.append(_Peak(position=pos, heat=top.score))
        return peaks

    @staticmethod
    def _cost(spans: list[_Span], connector_tokens: int) -> int:
        """Token count of `spans` joined in document order, connectors included."""
        ordered = sorted(spans, key=lambda s: s.start_pos)
        total = sum(s.token_count for s in ordered)
        end_pos = None
        for span in ordered:
            if end_pos is not None and span.start_pos > end_pos + 1:
                total += connector_tokens
            end_pos = span.end_pos if end_pos is None else max(end_pos, span.end_pos)
        return total

    def _accept_spans(self, peak: _Peak, max_tokens: int, connector_tokens: int) -> list[_Span]:
        accepted: list[_Span] = []
        for span in sorted(peak.spans, key=lambda s: abs(s.midpoint - peak.position)):
            if span.token_count > max_tokens:
                continue
            if self._cost(accepted + [span], connector_tokens) <= max_tokens:
                accepted.append(span)
        return sorted(accepted, key=lambda s: s.start_pos)

    def _assemble(
        self,
        accepted: list[_Span],
        is_bm25: bool,
        max_tokens: int,
        overlapping_chunks: bool,
        connector_tokens: int,
    ) -> Section:
        parts = [accepted[0].text]
        end_pos = accepted[0].end_pos
        for span in accepted[1:]:
            if span.start_pos <= end_pos + 1:
                if span.end_pos > end_pos:
                    parts.append(self.text[end_pos + 1:span.end_pos + 1])
            else:
                if overlapping_chunks:
                    parts.append(CONNECTOR)
                parts.append(span.text)
            end_pos = max(end_pos, span.end_pos)

        token_count = self._cost(accepted, connector_tokens)
        budget = max_tokens - token_count
        if overlapping_chunks and budget > MIN_EXPANSION_BUDGET:
            before_text, before_count = self._tail(self.text[:accepted[0].start_pos], math.ceil(budget / 2))
            if before_count:
                parts.insert(0, before_text)

            after_text, after_count = self._head(self.text[end_pos + 1:], budget - before_count)
            if after_count:
                parts.append(after_text)
            token_count += before_count + after_count

        return Section(
            text="".join(parts),
            token_count=token_count,
            score=_mean([s.score for s in accepted]),
            is_bm25=is_bm25,
        )

    def _fallback(self, spans: list[_Span], is_bm25: bool, max_tokens: int) -> Section:
        top = max(spans, key=lambda s: s.score)
        text, token_count = self._head(top.text, max_tokens)
        return Section(text=text, token_count=token_count, score=top.score, is_bm25=is_bm25)

    def _head(self, text: str, budget: int) -> tuple[str, int]:
        """Longest prefix of `text` within `budget` tokens, cut between characters."""
        window = text[:budget * CHARS_PER_TOKEN_WINDOW]
        spans = token_spans(window, self.tokenizer, budget)
        if not spans:
            return "", 0
        piece = window[:spans[0][1]]
        count = len(self.tokenizer.encode(piece))
        return (piece, count) if count <= budget else ("", 0)

    def _tail(self, text: str, budget: int) -> tuple[str, int]:
        """Longest suffix of `text` within `budget` tokens, cut between characters."""
        window = budget * CHARS_PER_TOKEN_WINDOW
        window_text = text[-window:] if len(text) > window else text
        tokens = list(self.tokenizer.encode(window_text))
        for count in range(min(len(tokens), budget), 0, -1):
            piece = self.tokenizer.decode(tokens[len(tokens) - count:])
            if piece and window_text.endswith(piece):
                piece_count = len(self.tokenizer.encode(piece))
                if piece_count <= budget:
                    return piece, piece_count
        return "", 0


class DocumentResult(LocalDocument):
    """A document matched by a query, with the chunks that matched it.

    `score` is the mean of the chunk scores.
    """

    def __init__(
        self,
        folder_path: str | Path,
        id: str,
        uri: str,
        chunks: Sequence[QueryResult],
        tokenizer: Tokenizer,
    ) -> None:
        super().__init__(folder_path, id, uri, tokenizer)
        self._chunks = list(chunks)
        self._score = _mean([c.score for c in self._chunks])

    @property
    def chunks(self) -> list[QueryResult]:
        return self._chunks

    @property
    def score(self) -> float:
        return self._score

    def _builder(self) -> SectionBuilder:
        return SectionBuilder(self.load_text(), self._chunks, self.tokenizer, document_length=self.get_length())

    def render_all_sections(self, max_tokens: int) -> list[Section]:
        """Render every matched chunk in document order, `max_tokens` per section."""
        return self._builder().render_all_sections(max_tokens)

    def render_sections(self, max_tokens: int, max_sections: int, overlapping_chunks: bool = True) -> list[Section]:
        """Render up to `max_sections` sections centred on the most relevant text."""
        return self._builder().render_sections(max_tokens, max_sections, overlapping_chunks)
