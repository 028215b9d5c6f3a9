"""
Custom Exception Hierarchy

Specific exception types for each failure category of the Logical Brain
and the complete-analysis workflow, with structured error information.
"""
from typing import Optional, Dict, Any


class MedBrainError(Exception):
    """Base exception for all medbrain errors."""

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details
        }


class ExpressionError(MedBrainError):
    """Errors while parsing or evaluating a formula / trigger condition."""

    def __init__(
        self,
        message: str,
        expression: str = "",
        code: str = "EXPRESSION_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            code=code,
            details={"expression": expression, **(details or {})}
        )
        self.expression = expression


class ExpressionSyntaxError(ExpressionError):
    """Expression uses syntax outside the arithmetic/boolean whitelist."""

    def __init__(self, message: str, expression: str = ""):
        super().__init__(message, expression=expression, code="EXPRESSION_SYNTAX_ERROR")


class UnboundVariableError(ExpressionError):
    """Expression references a name that has no value in the environment."""

    def __init__(self, name: str, expression: str = ""):
        super().__init__(
            f"Unbound variable: {name}",
            expression=expression,
            code="UNBOUND_VARIABLE",
            details={"variable": name}
        )
        self.name = name


class WorkflowInputError(MedBrainError):
    """Invalid workflow input: no usable documents, foreign documents, missing agents."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code="WORKFLOW_INPUT_ERROR", details=details)


class WorkflowStateError(MedBrainError):
    """Illegal status transition on a complete-analysis record."""

    def __init__(self, current: str, target: str):
        super().__init__(
            message=f"Illegal transition {current} -> {target}",
            code="WORKFLOW_STATE_ERROR",
            details={"current": current, "target": target}
        )
        self.current = current
        self.target = target


class GenerationError(MedBrainError):
    """
    Generation gateway failure (timeout, provider error, malformed output).

    `tokens_used` counts provider tokens already spent when the failure
    happened (a malformed response, or sibling calls that completed);
    callers bill it like any other usage.
    """

    def __init__(
        self,
        message: str,
        phase: str = "unknown",
        agent: Optional[str] = None,
        code: str = "GENERATION_ERROR",
        details: Optional[Dict[str, Any]] = None,
        tokens_used: int = 0
    ):
        super().__init__(
            message=message,
            code=code,
            details={"phase": phase, "agent": agent, **(details or {})}
        )
        self.phase = phase
        self.agent = agent
        self.tokens_used = tokens_used


class SynthesisValidationError(GenerationError):
    """Synthesis mentions parameters that are absent from the documents."""

    def __init__(self, hallucinated: list, warnings: Optional[list] = None, tokens_used: int = 0):
        super().__init__(
            message=(
                "Synthesis validation failed: mentioned parameters that don't exist "
                f"in documents: {', '.join(hallucinated)}"
            ),
            phase="synthesis",
            code="SYNTHESIS_VALIDATION_ERROR",
            details={"hallucinated": list(hallucinated), "warnings": list(warnings or [])},
            tokens_used=tokens_used
        )
        self.hallucinated = list(hallucinated)


class KnowledgeRetrievalError(MedBrainError):
    """Knowledge-base retrieval failure (always recoverable)."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code="KNOWLEDGE_RETRIEVAL_ERROR", details=details)


class PersistenceError(MedBrainError):
    """Storage failure for a record or generated artifact."""

    def __init__(
        self,
        message: str,
        entity: str = "unknown",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            code="PERSISTENCE_ERROR",
            details={"entity": entity, **(details or {})}
        )
        self.entity = entity


class BillingError(MedBrainError):
    """Credit debit failure (logged only, never fatal)."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code="BILLING_ERROR", details=details)
