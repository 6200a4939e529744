"""
Expert execution: one provider working on one task, with or without
code verification.
"""

from quorum.experts.models import ExpertResult, Transcript
from quorum.experts.runner import (
    ExpertRunner,
    ExpertState,
    extract_code,
    format_success_response,
)

__all__ = [
    "ExpertResult",
    "ExpertRunner",
    "ExpertState",
    "Transcript",
    "extract_code",
    "format_success_response",
]
