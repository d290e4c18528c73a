"""
LLM Service — centralized Groq Cloud LLM client.

Used to draft RFQ e-mail bodies. Provides:
  - get_llm()        → returns configured Groq ChatModel
  - llm_text_call()  → raw text response
"""

from __future__ import annotations

import logging
import time

from rfq_engine.config import get_settings

logger = logging.getLogger(__name__)

_llm_instance = None


def get_llm():
    """
    Return a configured Groq LLM client (singleton).
    Uses langchain-groq's ChatGroq.
    """
    global _llm_instance
    if _llm_instance is not None:
        return _llm_instance

    settings = get_settings()

    if not settings.groq_api_key:
        raise ValueError("GROQ_API_KEY is not set in environment / .env file")

    from langchain_groq import ChatGroq

    _llm_instance = ChatGroq(
        api_key=settings.groq_api_key,
        model=settings.llm_model,
        temperature=settings.llm_temperature,
        max_tokens=settings.llm_max_tokens,
    )
    logger.info(f"Initialized Groq LLM: {settings.llm_model}")
    return _llm_instance


def llm_text_call(prompt: str, max_retries: int = 0) -> str:
    """
    Call the LLM and return the raw text response.
    Retries up to *max_retries* times on empty responses.
    """
    logger.debug(f"[LLM-TEXT] Prompt length: {len(prompt)} chars")

    llm = get_llm()
    attempts = max_retries + 1
    content = ""

    for attempt in range(1, attempts + 1):
        t0 = time.perf_counter()
        response = llm.invoke(prompt)
        elapsed = time.perf_counter() - t0
        content = response.content or ""

        meta = getattr(response, "response_metadata", {}) or {}
        finish_reason = meta.get("finish_reason", "unknown")
        logger.info(
            f"[LLM-TEXT] Response received in {elapsed:.2f}s | "
            f"Response length: {len(content)} chars | finish_reason={finish_reason}"
        )

        if content.strip():
            return content

        logger.warning(
            f"[LLM-TEXT] Empty response on attempt {attempt}/{attempts} "
            f"(finish_reason={finish_reason}). "
            f"{'Retrying…' if attempt < attempts else 'No retries left.'}"
        )

    return content
