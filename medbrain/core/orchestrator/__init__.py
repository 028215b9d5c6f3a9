"""
Orchestrator Module - complete-analysis workflow state machine
"""
from .states import WorkflowStatus, CompleteAnalysisRecord
from .complete_analysis import CompleteAnalysisOrchestrator

__all__ = [
    "WorkflowStatus",
    "CompleteAnalysisRecord",
    "CompleteAnalysisOrchestrator",
]
