"""Analysis stages.

Each stage is constructed with a ReasoningService and exposes an async
``run`` taking only its declared inputs.
"""

from .base import AnalysisStage, format_messages_for_llm
from .clinician import ClinicianStage
from .historian import HistorianStage
from .patterns import PatternMatcherStage
from .responders import AnswerStage, ReplySuggestionStage
from .triage import TriageStage
from .verifier import VerifierStage

__all__ = [
    "AnalysisStage",
    "AnswerStage",
    "ClinicianStage",
    "HistorianStage",
    "PatternMatcherStage",
    "ReplySuggestionStage",
    "TriageStage",
    "VerifierStage",
    "format_messages_for_llm",
]
