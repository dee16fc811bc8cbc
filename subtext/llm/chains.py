"""LangChain chains for reasoning-service calls.

Stages never talk to a model directly. They build a ``StagePrompt`` and hand
it to a ``ReasoningService``, which returns a plain dict recovered from the
model's output (``{}`` when nothing usable came back).
"""

import asyncio
import json
import re
from typing import Any, Callable, Optional, Protocol

import structlog
from langchain_core.output_parsers import StrOutputParser
from langchain_core.prompts import ChatPromptTemplate
from pydantic import BaseModel, Field
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from subtext.errors import UpstreamError
from subtext.llm.client import LLMSettings, create_llm_client, get_llm_settings

logger = structlog.get_logger(__name__)


class StagePrompt(BaseModel):
    """A rendered-on-demand prompt for one stage call."""

    stage: str = Field(..., description="Stage name, used for model selection and logs")
    system: str = Field(..., description="System prompt template")
    user: str = Field(..., description="Human prompt template")
    variables: dict[str, Any] = Field(default_factory=dict)


class ReasoningService(Protocol):
    """Anything that turns a StagePrompt into a JSON-like dict."""

    async def invoke(self, prompt: StagePrompt) -> dict: ...


# =============================================================================
# JSON Recovery
# =============================================================================

def _extract_json_from_text(text: str) -> str | None:
    """Try to extract JSON object from text that may contain other content.

    Handles cases where model outputs thinking/reasoning before JSON,
    or wraps JSON in code blocks or quotes.

    Args:
        text: Text that may contain JSON.

    Returns:
        Extracted JSON string or None.
    """
    brace_count = 0
    start_idx = None
    in_string = False
    escape_next = False

    for i, char in enumerate(text):
        # Braces inside strings do not count
        if escape_next:
            escape_next = False
            continue
        if char == "\\" and in_string:
            escape_next = True
            continue
        if char == '"':
            in_string = not in_string
            continue
        if in_string:
            continue

        if char == "{":
            if brace_count == 0:
                start_idx = i
            brace_count += 1
        elif char == "}" and brace_count > 0:
            brace_count -= 1
            if brace_count == 0 and start_idx is not None:
                return text[start_idx:i + 1]

    return None


def _clean_json_string(text: str) -> str:
    """Clean common issues in JSON strings from LLM output."""
    text = text.strip("\ufeff\u200b\u200c\u200d")
    # Trailing commas before } or ] are a common model mistake
    return re.sub(r",(\s*[}\]])", r"\1", text)


def _loads_object(text: str) -> Optional[dict]:
    try:
        parsed = json.loads(_clean_json_string(text))
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None


_CODE_BLOCK = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```", re.IGNORECASE)
_PREAMBLE_SPLITS = (
    r"(?:here\'?s?\s+(?:the\s+)?(?:json|output|result)\s*:?\s*)",
    r"(?:output\s*:\s*)",
    r"(?:result\s*:\s*)",
    r"(?:response\s*:\s*)",
)


def parse_json_response(response: str) -> dict:
    """Recover a JSON object from free-form model output.

    Tries, in order: fenced code blocks, text after a "here's the JSON"
    style preamble, the whole text, and the first balanced object.

    Args:
        response: Raw LLM response string.

    Returns:
        Parsed dict, or {} if nothing could be recovered.
    """
    if not response or not response.strip():
        logger.warning("empty_llm_response")
        return {}

    text = response.strip()

    for match in _CODE_BLOCK.finditer(text):
        block = match.group(1).strip()
        if block.startswith("{"):
            parsed = _loads_object(block) or _loads_object(_extract_json_from_text(block) or "")
            if parsed is not None:
                return parsed

    if not text.startswith("{"):
        for pattern in _PREAMBLE_SPLITS:
            parts = re.split(pattern, text, flags=re.IGNORECASE)
            if len(parts) > 1 and parts[-1].strip().startswith("{"):
                parsed = _loads_object(parts[-1].strip())
                if parsed is not None:
                    return parsed

    parsed = _loads_object(text)
    if parsed is not None:
        return parsed

    extracted = _extract_json_from_text(text)
    if extracted:
        parsed = _loads_object(extracted)
        if parsed is not None:
            return parsed

    logger.error(
        "json_parse_error",
        error="Could not extract valid JSON",
        response_preview=text[:300],
    )
    return {}


# =============================================================================
# LangChain-backed Service
# =============================================================================

class LangChainReasoningService:
    """Reasoning service backed by a LangChain prompt and an Ollama model."""

    def __init__(
        self,
        settings: Optional[LLMSettings] = None,
        client_factory: Callable[..., Any] = create_llm_client,
    ):
        self.settings = settings or get_llm_settings()
        self._client_factory = client_factory

    async def invoke(self, prompt: StagePrompt) -> dict:
        """Run one stage prompt and recover its JSON.

        Raises:
            UpstreamError: If the model call fails or times out on every attempt.
        """
        template = ChatPromptTemplate.from_messages([
            ("system", prompt.system),
            ("human", prompt.user),
        ])
        # Rendering errors are programming errors and propagate as-is
        messages = template.format_messages(**prompt.variables)

        model = self.settings.model_for(prompt.stage)
        chain = self._client_factory(model, self.settings) | StrOutputParser()

        logger.debug("reasoning_call_start", stage=prompt.stage, model=model)

        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.settings.call_attempts),
            wait=wait_exponential(multiplier=1, min=2, max=30),
            retry=retry_if_exception_type(UpstreamError),
            reraise=True,
        ):
            with attempt:
                response = await self._call(chain, messages, prompt.stage)

        logger.debug("reasoning_call_complete", stage=prompt.stage, model=model, length=len(response))
        return parse_json_response(response)

    async def _call(self, chain: Any, messages: list, stage: str) -> str:
        timeout = self.settings.request_timeout
        try:
            return await asyncio.wait_for(chain.ainvoke(messages), timeout=timeout)
        except asyncio.TimeoutError as e:
            logger.warning("reasoning_call_timeout", stage=stage, timeout=timeout)
            raise UpstreamError(f"{stage} reasoning call timed out after {timeout}s") from e
        except Exception as e:
            logger.warning("reasoning_call_failed", stage=stage, error=str(e), type=type(e).__name__)
            raise UpstreamError(f"{stage} reasoning call failed: {e}") from e
