# src/core/similarity.py — v3
"""Token-set (Jaccard) similarity between two questions.

Used by the matcher for near-duplicate detection. Both inputs are
lower-cased and split on whitespace; short tokens and stop-words are
dropped before the sets are compared.
"""

from __future__ import annotations

import string

# Token sets larger than this are down-sampled before intersecting.
DEFAULT_TOKEN_CAP = 200
# Pairs whose raw lengths differ by more than this factor score 0.
MAX_LENGTH_RATIO = 3.0
MIN_TOKEN_LENGTH = 3

STOP_WORDS: frozenset[str] = frozenset({
    "the", "and", "for", "are", "but", "not", "you", "all", "any", "can",
    "was", "our", "out", "has", "had", "her", "his", "its", "who", "how",
    "why", "what", "when", "where", "which", "whom", "whose", "some",
    "this", "that", "these", "those", "with", "from", "have", "does", "did",
    "will", "would", "could", "should", "about", "into", "there", "their",
    "them", "they", "then", "than", "your", "just", "also", "very", "much",
    "many", "more", "most", "such", "only", "own", "same", "too", "been",
    "being", "were", "please", "tell", "get", "got",
})

_STRIP_CHARS = string.punctuation + "‘’“”«»"


def tokenize(text: str) -> frozenset[str]:
    """Return the comparison token set of ``text``."""
    tokens = set()
    for raw in text.lower().split():
        token = raw.strip(_STRIP_CHARS)
        if len(token) < MIN_TOKEN_LENGTH or token in STOP_WORDS:
            continue
        tokens.add(token)
    return frozenset(tokens)


def similarity(
    a: object,
    b: object,
    token_cap: int = DEFAULT_TOKEN_CAP,
) -> float:
    """Compute Jaccard similarity of two questions.

    Args:
        a: First question.
        b: Second question.
        token_cap: Max tokens per side; larger sets are sampled with an
            even stride over their sorted tokens.

    Returns:
        Score in [0, 1]. 0 for non-string or empty input on either side.
        Two inputs without any meaningful token score 1.
    """
    if not isinstance(a, str) or not isinstance(b, str) or not a or not b:
        return 0.0

    shorter, longer = sorted((len(a), len(b)))
    if longer > shorter * MAX_LENGTH_RATIO:
        return 0.0

    return jaccard(tokenize(a), tokenize(b), token_cap=token_cap)


def jaccard(
    tokens_a: frozenset[str],
    tokens_b: frozenset[str],
    token_cap: int = DEFAULT_TOKEN_CAP,
) -> float:
    """Intersection over union of two token sets."""
    if not tokens_a and not tokens_b:
        return 1.0
    if not tokens_a or not tokens_b:
        return 0.0

    set_a = _sample(tokens_a, token_cap)
    set_b = _sample(tokens_b, token_cap)
    union = len(set_a | set_b)
    return len(set_a & set_b) / union if union else 0.0


def _sample(tokens: frozenset[str], cap: int) -> frozenset[str]:
    """Deterministic even-stride sample of at most ``cap`` tokens."""
    if cap <= 0 or len(tokens) <= cap:
        return tokens
    ordered = sorted(tokens)
    stride = len(ordered) / cap
    return frozenset(ordered[int(i * stride)] for i in range(cap))
