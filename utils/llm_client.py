"""
LLM Client using LiteLLM for multi-provider support.

Implements the ModelClient interface used by the analyzer. Switch providers
by changing the model string:
    - "gpt-4o" (OpenAI)
    - "claude-haiku-4-5-20251001" (Anthropic)

Cancellation (asyncio.CancelledError) is never retried and propagates
unchanged; other failures are retried, then raised as ModelCallError.
"""

from typing import Any, Dict, List, Optional

import litellm
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from config.settings import settings
from core import ModelCallError, get_logger
from schemas import ModelMessage, ModelResponse
from schemas.chat import as_chat_payload

logger = get_logger(__name__)

# Configure LiteLLM
litellm.set_verbose = False  # Set True for debugging


class LLMClient:
    """
    Analysis model client over litellm.acompletion.

    Usage:
        client = LLMClient()
        response = await client.generate([ModelMessage(role="user", content=prompt)])
    """

    def __init__(
        self,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        **completion_kwargs: Any,
    ):
        # LiteLLM picks up API keys from the environment (OPENAI_API_KEY, ANTHROPIC_API_KEY, ...)
        self.model = model or settings.MODEL_ANALYSIS
        self.temperature = settings.ANALYSIS_TEMPERATURE if temperature is None else temperature
        self.max_tokens = max_tokens or settings.ANALYSIS_MAX_TOKENS
        self.completion_kwargs: Dict[str, Any] = completion_kwargs
        logger.info("LLM client initialized", model=self.model)

    async def generate(self, messages: List[ModelMessage]) -> ModelResponse:
        """
        Generate a completion.

        Raises:
            ModelCallError: after retries are exhausted
            asyncio.CancelledError: when the calling task is cancelled
        """
        try:
            return await self._complete(as_chat_payload(messages))
        except Exception as e:
            raise ModelCallError(model=self.model, details=str(e)) from e

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(Exception),
        reraise=True,
    )
    async def _complete(self, payload: List[Dict[str, Any]]) -> ModelResponse:
        logger.debug(
            "LLM request",
            model=self.model,
            message_count=len(payload),
            temperature=self.temperature,
        )

        try:
            response = await litellm.acompletion(
                model=self.model,
                messages=payload,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                **self.completion_kwargs,
            )
        except Exception as e:
            logger.error("LLM request failed", model=self.model, error=str(e))
            raise

        content = response.choices[0].message.content or ""
        finish_reason = response.choices[0].finish_reason
        usage = response.usage

        input_tokens = usage.prompt_tokens if usage else 0
        output_tokens = usage.completion_tokens if usage else 0

        # Log truncated response for debugging at DEBUG level
        if len(content) > 200:
            truncated = f"{content[:100]}...{content[-100:]}"
        else:
            truncated = content

        logger.debug(
            "LLM response",
            model=self.model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            finish_reason=finish_reason,
            response_preview=truncated,
        )

        return ModelResponse(
            text=content,
            model=self.model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
        )
