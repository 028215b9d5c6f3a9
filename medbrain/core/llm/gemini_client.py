"""
Gemini API Client

Generation gateway backed by Google Gemini through LangChain.
Text calls use `ainvoke`; shaped calls use `with_structured_output` with
the pydantic model from the request. Every call is bounded by a timeout.
Failures raise GenerationError; this client never returns placeholder text.
"""
from dataclasses import dataclass, field
from typing import Dict, Any, Optional, Tuple
import asyncio
from datetime import datetime

from langchain_google_genai import ChatGoogleGenerativeAI

from medbrain.config import settings
from medbrain.utils import get_logger, GenerationError
from .gateway import GenerationRequest, GenerationResponse, ModelParameters, Usage

logger = get_logger(__name__)

# Output budget scales with input size: (min input chars, max output tokens)
_OUTPUT_TOKEN_TIERS = (
    (100_000, 32768),
    (50_000, 24576),
    (20_000, 16384),
    (10_000, 12288),
)
DEFAULT_MAX_OUTPUT_TOKENS = 8192


def calculate_max_output_tokens(input_chars: int) -> int:
    """Output token ceiling for a prompt of `input_chars` characters."""
    for threshold, tokens in _OUTPUT_TOKEN_TIERS:
        if input_chars > threshold:
            return tokens
    return DEFAULT_MAX_OUTPUT_TOKENS


@dataclass
class GeminiConfig:
    """Configuration for Gemini client."""
    api_key: Optional[str] = field(default_factory=lambda: settings.gemini_api_key)
    model: str = field(default_factory=lambda: settings.gemini_model)
    temperature: float = field(default_factory=lambda: settings.llm_temperature)
    top_p: float = 0.95
    top_k: int = 40
    request_timeout_seconds: float = field(default_factory=lambda: settings.llm_timeout_seconds)
    max_retries: int = field(default_factory=lambda: settings.llm_max_retries)


class GeminiClient:
    """
    Client for Google Gemini API.

    Implements the GenerationGateway protocol. LangChain model instances
    are cached per (model, temperature, max tokens, top_p, top_k).
    """

    def __init__(self, config: Optional[GeminiConfig] = None):
        self.config = config or GeminiConfig()
        self._models: Dict[Tuple, ChatGoogleGenerativeAI] = {}
        self._request_count = 0
        self._error_count = 0
        self._last_request_time: Optional[datetime] = None

        if not self.config.api_key:
            logger.warning("No Gemini API key provided - generation calls will fail")
        else:
            logger.info(f"Gemini client configured with model: {self.config.model}")

    @property
    def is_available(self) -> bool:
        """Check if Gemini is available for use."""
        return bool(self.config.api_key)

    def _resolve(self, request: GenerationRequest) -> Tuple[str, float, int, float, int]:
        params = request.model_parameters or ModelParameters()
        input_chars = len(request.prompt) + len(request.system_instruction or "")
        return (
            params.model_name or self.config.model,
            params.temperature if params.temperature is not None else self.config.temperature,
            params.max_output_tokens or calculate_max_output_tokens(input_chars),
            params.top_p if params.top_p is not None else self.config.top_p,
            params.top_k if params.top_k is not None else self.config.top_k,
        )

    def _get_llm(self, key: Tuple[str, float, int, float, int]) -> ChatGoogleGenerativeAI:
        llm = self._models.get(key)
        if llm is None:
            model_name, temperature, max_tokens, top_p, top_k = key
            llm = ChatGoogleGenerativeAI(
                model=model_name,
                temperature=temperature,
                max_output_tokens=max_tokens,
                top_p=top_p,
                top_k=top_k,
                timeout=self.config.request_timeout_seconds,
                max_retries=self.config.max_retries,
                google_api_key=self.config.api_key,
            )
            self._models[key] = llm
            logger.debug(f"Gemini: created model {model_name} (max_output_tokens={max_tokens})")
        return llm

    async def generate(self, request: GenerationRequest) -> GenerationResponse:
        """
        Run one generation call.

        Raises:
            GenerationError: missing API key, timeout, provider failure or
                output that does not match `request.output_shape`.
        """
        if not self.is_available:
            raise GenerationError(
                "Gemini API key is not configured",
                phase=request.label,
                code="GENERATION_UNAVAILABLE",
            )

        key = self._resolve(request)
        llm = self._get_llm(key)
        full_prompt = (
            f"{request.system_instruction}\n\n{request.prompt}"
            if request.system_instruction
            else request.prompt
        )

        start_time = datetime.now()
        try:
            if request.output_shape is not None:
                runnable = llm.with_structured_output(request.output_shape, include_raw=True)
                result = await asyncio.wait_for(
                    runnable.ainvoke(full_prompt),
                    timeout=self.config.request_timeout_seconds,
                )
                if result.get("parsing_error") is not None or result.get("parsed") is None:
                    raise GenerationError(
                        f"Structured output did not match {request.output_shape.__name__}: "
                        f"{result.get('parsing_error')}",
                        phase=request.label,
                        code="GENERATION_SHAPE_ERROR",
                    )
                raw = result.get("raw")
                text, obj = None, result["parsed"]
            else:
                raw = await asyncio.wait_for(
                    llm.ainvoke(full_prompt),
                    timeout=self.config.request_timeout_seconds,
                )
                content = raw.content if hasattr(raw, "content") else str(raw)
                text = content if isinstance(content, str) else _join_content(content)
                obj = None

        except GenerationError:
            self._error_count += 1
            raise
        except asyncio.TimeoutError as e:
            self._error_count += 1
            logger.error(
                f"Gemini generation timed out after {self.config.request_timeout_seconds}s "
                f"[{request.label}]"
            )
            raise GenerationError(
                f"Generation timed out after {self.config.request_timeout_seconds}s",
                phase=request.label,
                code="GENERATION_TIMEOUT",
            ) from e
        except Exception as e:
            self._error_count += 1
            logger.error(f"Gemini generation failed [{request.label}]: {e}", exc_info=True)
            raise GenerationError(
                f"Generation failed: {e}",
                phase=request.label,
            ) from e

        latency = (datetime.now() - start_time).total_seconds() * 1000
        self._request_count += 1
        self._last_request_time = datetime.now()

        usage = _usage_from(raw)
        logger.info(
            f"Gemini [{request.label}] {key[0]}: {usage.total_units} tokens in {latency:.0f}ms"
        )
        return GenerationResponse(
            text=text,
            object=obj,
            usage=usage,
            model=key[0],
            latency_ms=latency,
        )

    def get_stats(self) -> Dict[str, Any]:
        """Get client statistics."""
        return {
            "is_available": self.is_available,
            "model": self.config.model,
            "request_count": self._request_count,
            "error_count": self._error_count,
            "cached_models": len(self._models),
            "last_request": self._last_request_time.isoformat() if self._last_request_time else None,
        }


def _usage_from(message: Any) -> Usage:
    metadata = getattr(message, "usage_metadata", None) or {}
    prompt_tokens = metadata.get("input_tokens", 0) or 0
    completion_tokens = metadata.get("output_tokens", 0) or 0
    total = metadata.get("total_tokens") or (prompt_tokens + completion_tokens)
    return Usage(
        prompt_units=prompt_tokens,
        completion_units=completion_tokens,
        total_units=total,
    )


def _join_content(content: Any) -> str:
    """Flatten LangChain list-of-parts content into plain text."""
    parts = []
    for part in content or []:
        if isinstance(part, str):
            parts.append(part)
        elif isinstance(part, dict) and part.get("type") == "text":
            parts.append(part.get("text", ""))
    return "".join(parts)
