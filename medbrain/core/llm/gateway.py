"""
Generation Gateway Contract

Request/response types shared by every generation call the workflow makes.
A request carries a prompt, an optional system instruction, an optional
output shape (a pydantic model class) and optional model parameters.
A response carries exactly one of `text` / `object`, plus usage.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol, Type, TypeVar, runtime_checkable

from pydantic import BaseModel, ValidationError

from medbrain.utils.exceptions import GenerationError

ShapeT = TypeVar("ShapeT", bound=BaseModel)


@dataclass
class ModelParameters:
    """Per-call overrides; None means "use the client default"."""
    model_name: Optional[str] = None
    temperature: Optional[float] = None
    max_output_tokens: Optional[int] = None
    top_p: Optional[float] = None
    top_k: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ModelParameters":
        data = data or {}
        return cls(
            model_name=data.get("modelName") or data.get("model_name"),
            temperature=data.get("temperature"),
            max_output_tokens=data.get("maxOutputTokens") or data.get("max_output_tokens"),
            top_p=data.get("topP") or data.get("top_p"),
            top_k=data.get("topK") or data.get("top_k"),
        )


@dataclass
class GenerationRequest:
    prompt: str
    system_instruction: Optional[str] = None
    output_shape: Optional[Type[BaseModel]] = None
    model_parameters: Optional[ModelParameters] = None
    label: str = "generation"          # phase/agent tag for logs and errors


@dataclass
class Usage:
    prompt_units: int = 0
    completion_units: int = 0
    total_units: int = 0

    def __add__(self, other: "Usage") -> "Usage":
        return Usage(
            prompt_units=self.prompt_units + other.prompt_units,
            completion_units=self.completion_units + other.completion_units,
            total_units=self.total_units + other.total_units,
        )

    def to_dict(self) -> Dict[str, int]:
        return {
            "promptTokens": self.prompt_units,
            "completionTokens": self.completion_units,
            "totalTokens": self.total_units,
        }


@dataclass
class GenerationResponse:
    text: Optional[str] = None
    object: Optional[Any] = None
    usage: Usage = field(default_factory=Usage)
    model: str = ""
    latency_ms: float = 0.0

    def __post_init__(self):
        if (self.text is None) == (self.object is None):
            raise ValueError("GenerationResponse needs exactly one of text / object")

    def to_dict(self) -> Dict[str, Any]:
        payload = self.object.model_dump() if isinstance(self.object, BaseModel) else self.object
        return {
            "text": self.text,
            "object": payload,
            "usage": self.usage.to_dict(),
            "model": self.model,
            "latency_ms": round(self.latency_ms, 2),
        }


@runtime_checkable
class GenerationGateway(Protocol):
    """Anything that can turn a GenerationRequest into a GenerationResponse."""

    async def generate(self, request: GenerationRequest) -> GenerationResponse:
        ...


def coerce_object(
    response: GenerationResponse,
    shape: Type[ShapeT],
    phase: str,
    agent: Optional[str] = None,
) -> ShapeT:
    """
    Return `response.object` as an instance of `shape`.

    Plain dicts are validated against the shape. Anything that does not fit
    raises GenerationError(GENERATION_SHAPE_ERROR) carrying the tokens the
    response already consumed.
    """
    value = response.object
    if isinstance(value, shape):
        return value

    problem = f"got {type(value).__name__}"
    if isinstance(value, dict):
        try:
            return shape.model_validate(value)
        except ValidationError as e:
            problem = f"{e.error_count()} validation error(s)"

    raise GenerationError(
        f"Output does not match {shape.__name__}: {problem}",
        phase=phase,
        agent=agent,
        code="GENERATION_SHAPE_ERROR",
        tokens_used=response.usage.total_units,
    )
