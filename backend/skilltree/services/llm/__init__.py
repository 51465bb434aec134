"""
LLM Service Module

Provides a unified interface to multiple LLM providers via LiteLLM.

Usage:
    from skilltree.services.llm import get_llm_client, build_messages

    client = get_llm_client()
    result = await client.complete(messages=build_messages("..."), json_mode=True)
"""

from skilltree.services.llm.client import (
    LLMClient,
    build_messages,
    get_default_grading_model,
    get_llm_client,
    reset_llm_client,
)

__all__ = [
    "LLMClient",
    "get_llm_client",
    "reset_llm_client",
    "get_default_grading_model",
    "build_messages",
]
