"""Okapi BM25 keyword scoring over candidate chunk texts."""

from __future__ import annotations

import math
import re
from collections import Counter
from typing import Sequence

_TERM_RE = re.compile(r"[A-Za-z0-9_]+")


def tokenize_terms(text: str) -> list[str]:
    return [t.lower() for t in _TERM_RE.findall(text)]


def bm25(tf: int, doc_len: int, avg_len: float, df: int, num_docs: int, k1: float = 1.2, b: float = 0.75) -> float:
    if tf <= 0 or doc_len <= 0 or avg_len <= 0.0 or df <= 0:
        return 0.0
    idf = math.log(1.0 + (num_docs - df + 0.5) / (df + 0.5))
    return idf * (tf * (k1 + 1.0)) / (tf + k1 * (1.0 - b + b * (doc_len / avg_len)))


def score_texts(query: str, texts: Sequence[str]) -> list[float]:
    """BM25 score of each text for `query`, scaled so the best match is 1.0."""
    terms = set(tokenize_terms(query))
    if not terms or not texts:
        return [0.0] * len(texts)

    counts = [Counter(tokenize_terms(t)) for t in texts]
    lengths = [sum(c.values()) for c in counts]
    avg_len = sum(lengths) / len(lengths)
    df = {term: sum(1 for c in counts if term in c) for term in terms}

    scores = [
        sum(bm25(c[term], length, avg_len, df[term], len(texts)) for term in terms)
        for c, length in zip(counts, lengths)
    ]
    best = max(scores)
    if best <= 0:
        return [0.0] * len(texts)
    return [s / best for s in scores]
