"""Case orchestration: tiers, stages, state and progress."""

from .orchestrator import PipelineOrchestrator
from .state import CaseStateMachine, ProgressCallback, ProgressReporter

__all__ = ["CaseStateMachine", "PipelineOrchestrator", "ProgressCallback", "ProgressReporter"]
