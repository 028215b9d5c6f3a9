"""
Workflow States

Tagged phase enumeration for the complete-analysis workflow and the
record that tracks it.

    pending -> analyzing_foundation -> analyzing_specialized
            -> generating_synthesis -> generating_products -> completed

`failed` is reachable from every non-terminal state. Transitions never go
backwards and terminal states never change.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from medbrain.models.records import utcnow
from medbrain.utils.exceptions import WorkflowStateError


class WorkflowStatus(str, Enum):
    PENDING               = "pending"
    ANALYZING_FOUNDATION  = "analyzing_foundation"
    ANALYZING_SPECIALIZED = "analyzing_specialized"
    GENERATING_SYNTHESIS  = "generating_synthesis"
    GENERATING_PRODUCTS   = "generating_products"
    COMPLETED             = "completed"
    FAILED                = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (WorkflowStatus.COMPLETED, WorkflowStatus.FAILED)

    def can_transition_to(self, target: "WorkflowStatus") -> bool:
        if self.is_terminal:
            return False
        if target == WorkflowStatus.FAILED:
            return True
        return _NEXT.get(self) == target


_NEXT = {
    WorkflowStatus.PENDING:               WorkflowStatus.ANALYZING_FOUNDATION,
    WorkflowStatus.ANALYZING_FOUNDATION:  WorkflowStatus.ANALYZING_SPECIALIZED,
    WorkflowStatus.ANALYZING_SPECIALIZED: WorkflowStatus.GENERATING_SYNTHESIS,
    WorkflowStatus.GENERATING_SYNTHESIS:  WorkflowStatus.GENERATING_PRODUCTS,
    WorkflowStatus.GENERATING_PRODUCTS:   WorkflowStatus.COMPLETED,
}


@dataclass
class CompleteAnalysisRecord:
    """One complete-analysis workflow invocation."""
    user_id: str
    document_ids: List[str]
    status: WorkflowStatus = WorkflowStatus.PENDING
    analysis_ids: List[str] = field(default_factory=list)
    synthesis: Optional[Dict[str, Any]] = None
    recommendations_id: Optional[str] = None
    weekly_plan_id: Optional[str] = None
    error_message: Optional[str] = None
    warnings: List[str] = field(default_factory=list)
    id: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    completed_at: Optional[datetime] = None

    def transition(self, target: WorkflowStatus) -> None:
        """Move to `target` or raise WorkflowStateError."""
        if not self.status.can_transition_to(target):
            raise WorkflowStateError(self.status.value, target.value)
        self.status = target

    def status_payload(self) -> Dict[str, Any]:
        """Polled view: status plus whatever the current state exposes."""
        payload: Dict[str, Any] = {"status": self.status.value}
        if self.error_message:
            payload["errorMessage"] = self.error_message
        if self.synthesis is not None:
            payload["synthesis"] = self.synthesis
        if self.recommendations_id:
            payload["recommendationsId"] = self.recommendations_id
        if self.weekly_plan_id:
            payload["weeklyPlanId"] = self.weekly_plan_id
        return payload

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "documentIds": list(self.document_ids),
            "status": self.status.value,
            "analysisIds": list(self.analysis_ids),
            "synthesis": self.synthesis,
            "recommendationsId": self.recommendations_id,
            "weeklyPlanId": self.weekly_plan_id,
            "errorMessage": self.error_message,
            "warnings": list(self.warnings),
            "createdAt": self.created_at.isoformat(),
            "completedAt": self.completed_at.isoformat() if self.completed_at else None,
        }
