"""
Review/enhanced response splitting.

Some prompts ask a model to critique an earlier answer under a
``## Review of Previous Response`` heading and then give the improved
answer under ``## Enhanced Response``. Only the enhanced part is the
assistant's answer; the review is surfaced as a reasoning step.
"""

import re
from typing import Optional

from pydantic import BaseModel, Field

_REVIEW_RE = re.compile(
    r"##\s*Review of Previous Response\s*([\s\S]*?)(?=##\s*Enhanced Response|$)",
    re.IGNORECASE,
)
_ENHANCED_RE = re.compile(r"##\s*Enhanced Response\s*([\s\S]*)", re.IGNORECASE)


class ParsedResponse(BaseModel):
    """Split response: optional review plus the answer to keep."""

    review: Optional[str] = Field(None, description="Review section, if present")
    answer: str = Field(..., description="Enhanced section, or the whole text")


def split_review(full_text: str) -> ParsedResponse:
    """
    Split a response into review and enhanced answer.

    Both headings must be present; otherwise the whole text is the answer.

    Example:
        >>> parsed = split_review("## Review of Previous Response\\nok\\n## Enhanced Response\\n42")
        >>> parsed.review, parsed.answer
        ('ok', '42')
    """
    review = _REVIEW_RE.search(full_text)
    enhanced = _ENHANCED_RE.search(full_text)
    if review and enhanced:
        return ParsedResponse(review=review.group(1).strip(), answer=enhanced.group(1).strip())
    return ParsedResponse(review=None, answer=full_text)


__all__ = ["ParsedResponse", "split_review"]
