"""
Utilities Package - Logging and Exception Handling
"""
from .logging import get_logger, setup_logging
from .exceptions import (
    MedBrainError,
    ExpressionError,
    ExpressionSyntaxError,
    UnboundVariableError,
    WorkflowInputError,
    WorkflowStateError,
    GenerationError,
    SynthesisValidationError,
    KnowledgeRetrievalError,
    PersistenceError,
    BillingError,
)

__all__ = [
    "get_logger",
    "setup_logging",
    "MedBrainError",
    "ExpressionError",
    "ExpressionSyntaxError",
    "UnboundVariableError",
    "WorkflowInputError",
    "WorkflowStateError",
    "GenerationError",
    "SynthesisValidationError",
    "KnowledgeRetrievalError",
    "PersistenceError",
    "BillingError",
]
