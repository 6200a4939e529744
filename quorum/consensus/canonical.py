"""
Answer canonicalization and similarity.

Canonical answers are what consensus compares: two expert answers that
differ only in formatting (case, markdown emphasis, whitespace, code fence
language tags) must canonicalize to the same string.
"""

import re

from rapidfuzz.distance import Levenshtein

_CODE_BLOCK_RE = re.compile(r"```[\s\S]*?```")
_FENCE_OPEN_RE = re.compile(r"```\w*\n")
_WHITESPACE_RE = re.compile(r"\s+")

_EMPHASIS_PATTERNS = (
    (re.compile(r"\*\*([^*]+)\*\*"), r"\1"),
    (re.compile(r"__([^_]+)__"), r"\1"),
    (re.compile(r"\*([^*]+)\*"), r"\1"),
    (re.compile(r"_([^_]+)_"), r"\1"),
)

_FINAL_ANSWER_PATTERNS = (
    re.compile(r"\*\*(?:answer|result|solution|final answer)[:\s]*\*\*\s*(.+?)(?:\n|$)", re.IGNORECASE),
    re.compile(r"(?:answer|result|solution|final answer)[:\s]+(.+?)(?:\n|$)", re.IGNORECASE),
    re.compile(r"```\n([^`]+)\n```"),
    re.compile(r"^(.+)$", re.MULTILINE),
)


def _code_placeholder(match: re.Match) -> str:
    code = _FENCE_OPEN_RE.sub("", match.group(0)).replace("```", "").strip()
    return f"[CODE:{code}]"


def canonicalize_answer(answer: str) -> str:
    """
    Normalize an answer for comparison.

    Fenced code becomes ``[CODE:<code>]``, text is lowercased, markdown
    emphasis is removed and whitespace runs collapse to single spaces. The
    passes repeat until nothing changes, since stripping emphasis can expose
    a new fence. Applying it twice gives the same result as once.

    Example:
        >>> canonicalize_answer("The answer is **42**.\\n")
        'the answer is 42.'
    """
    canonical = answer
    previous = None
    while previous != canonical:
        previous = canonical
        canonical = _normalize_once(canonical)
    return canonical


def _normalize_once(text: str) -> str:
    text = _CODE_BLOCK_RE.sub(_code_placeholder, text).lower()
    for pattern, replacement in _EMPHASIS_PATTERNS:
        text = pattern.sub(replacement, text)
    return _WHITESPACE_RE.sub(" ", text).strip()


def extract_final_answer(response: str) -> str:
    """
    Pull the final answer out of a free-text response.

    Tries, in order: a bold ``**Answer:**`` label, a plain ``Answer:`` /
    ``Result:`` / ``Solution:`` label, an untagged fenced block, and the
    first non-empty line. Falls back to the first 200 characters.
    """
    for pattern in _FINAL_ANSWER_PATTERNS:
        match = pattern.search(response)
        if match and match.group(1):
            return match.group(1).strip()
    return response[:200]


def similarity(first: str, second: str) -> float:
    """
    Normalized Levenshtein similarity in [0, 1].

    ``1 - distance / max_length``; two empty strings are identical.
    """
    max_length = max(len(first), len(second))
    if max_length == 0:
        return 1.0
    distance = Levenshtein.distance(first, second)
    return 1.0 - distance / max_length


__all__ = ["canonicalize_answer", "extract_final_answer", "similarity"]
