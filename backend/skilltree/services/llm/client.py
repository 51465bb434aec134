"""
LLM Client supporting multiple providers via LiteLLM.

LiteLLM provides a unified interface to 100+ LLM providers using
the format "provider/model-name". Used here for free-text answer grading.

Key features:
- Automatic retries with exponential backoff
- JSON mode with parse-failure retries
- Native async support

See: https://docs.litellm.ai/

Usage:
    from skilltree.services.llm import build_messages, get_llm_client

    client = get_llm_client()
    result = await client.complete(
        messages=build_messages("Grade this answer...", system_prompt="You are a grader."),
        json_mode=True,
    )
"""

import json
import logging
import os
from typing import Any, Optional, Union

import litellm
from litellm import acompletion
from tenacity import retry, stop_after_attempt, wait_exponential

from skilltree.config.settings import settings

logger = logging.getLogger(__name__)

# Configure LiteLLM
litellm.drop_params = True  # Drop unsupported params instead of erroring
if settings.DEBUG:
    os.environ["LITELLM_LOG"] = "DEBUG"


def get_default_grading_model() -> str:
    """Get the grading model from settings."""
    return settings.GRADING_MODEL


def build_messages(
    prompt: str,
    system_prompt: Optional[str] = None,
) -> list[dict[str, str]]:
    """
    Build messages list from prompt and optional system prompt.

    Args:
        prompt: User prompt text
        system_prompt: Optional system prompt

    Returns:
        List of message dicts for LLM API
    """
    messages = []
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})
    messages.append({"role": "user", "content": prompt})
    return messages


class LLMClient:
    """
    Thin async LLM client.

    Provides a single completion method with retry and optional JSON
    parsing. Model defaults to GRADING_MODEL.
    """

    def __init__(self):
        """Initialize the LLM client and validate API keys."""
        self._validate_api_keys()

    def _validate_api_keys(self):
        """Log which providers have API keys configured."""
        available_keys = []

        if os.getenv("OPENAI_API_KEY") or settings.OPENAI_API_KEY:
            available_keys.append("OpenAI")
        if os.getenv("ANTHROPIC_API_KEY") or settings.ANTHROPIC_API_KEY:
            available_keys.append("Anthropic")
        if os.getenv("DEEPSEEK_API_KEY") or settings.DEEPSEEK_API_KEY:
            available_keys.append("DeepSeek")

        if not available_keys:
            logger.warning(
                "No LLM API keys configured. Set at least one of: "
                "OPENAI_API_KEY, ANTHROPIC_API_KEY, DEEPSEEK_API_KEY"
            )
        else:
            logger.info(f"LLM client initialized with providers: {available_keys}")

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=30),
        reraise=True,
    )
    async def complete(
        self,
        messages: list[dict],
        temperature: float = 0.1,
        max_tokens: int = 400,
        json_mode: bool = False,
        model: Optional[str] = None,
    ) -> Union[str, Any]:
        """
        Generate a completion.

        Args:
            messages: Chat messages in OpenAI format
                [{"role": "user", "content": "..."}, ...]
            temperature: Sampling temperature (0-1, lower = more deterministic)
            max_tokens: Maximum tokens in response
            json_mode: Request structured JSON output and parse response as JSON.
                Returns parsed dict/list. JSONDecodeError triggers retry.
            model: Optional model override (defaults to GRADING_MODEL)

        Returns:
            Response text, or parsed JSON if json_mode

        Raises:
            json.JSONDecodeError: If json_mode=True and response is not valid JSON
                after all retries
            Exception: If completion fails after retries
        """
        model = model or get_default_grading_model()

        kwargs = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }

        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        try:
            response = await acompletion(**kwargs)
            content = response.choices[0].message.content

            if json_mode:
                # JSONDecodeError will trigger @retry
                content = json.loads(content)

            return content

        except json.JSONDecodeError:
            # Let @retry handle JSON parse failures
            logger.warning(f"JSON decode error, will retry (model={model})")
            raise

        except Exception as e:
            logger.error(f"LLM completion failed: {e} (model={model})")
            raise


# Singleton instance
_llm_client: Optional[LLMClient] = None


def get_llm_client() -> LLMClient:
    """
    Get or create the singleton LLM client.

    Returns:
        LLMClient instance
    """
    global _llm_client
    if _llm_client is None:
        _llm_client = LLMClient()
    return _llm_client


def reset_llm_client() -> None:
    """Reset the singleton (for testing)."""
    global _llm_client
    _llm_client = None
