#!/usr/bin/env python3
"""
AI Client

Gemini-backed document reading and text completion. Both calls carry an
explicit timeout separate from any request timeout; failures surface as
AIServiceUnavailable so callers decide whether to degrade or abort.
"""

import asyncio
import logging
from typing import Protocol

import google.generativeai as genai

from ..core.config import AIConfig
from .errors import AIServiceUnavailable

logger = logging.getLogger(__name__)


class AIClient(Protocol):
    """Capabilities the import pipeline needs from an AI provider."""

    async def read_document(self, prompt: str, data: bytes, mime_type: str) -> str: ...

    async def complete(self, prompt: str, temperature: float) -> str: ...


class GeminiClient:
    """
    Google Gemini client.

    Args:
        config: AI configuration (API key, model names, timeout)
    """

    def __init__(self, config: AIConfig):
        self.config = config
        if config.api_key:
            genai.configure(api_key=config.api_key)

    @property
    def available(self) -> bool:
        return bool(self.config.api_key)

    async def read_document(self, prompt: str, data: bytes, mime_type: str) -> str:
        """
        Ask the document model about an attached document.

        Returns:
            The raw reply text

        Raises:
            AIServiceUnavailable: If no API key is configured, the call fails or times out
        """
        model = self._model(self.config.document_model, temperature=0.1)
        return await self._generate(model, [prompt, {"mime_type": mime_type, "data": data}], "document extraction")

    async def complete(self, prompt: str, temperature: float) -> str:
        """
        Ask the matching model for a text completion.

        Raises:
            AIServiceUnavailable: If no API key is configured, the call fails or times out
        """
        model = self._model(self.config.matching_model, temperature=temperature)
        return await self._generate(model, prompt, "property matching")

    def _model(self, model_name: str, temperature: float):
        if not self.available:
            raise AIServiceUnavailable("AI service is not configured. Set GEMINI_API_KEY and try again.")
        return genai.GenerativeModel(
            model_name,
            generation_config={"temperature": temperature, "response_mime_type": "application/json"},
        )

    async def _generate(self, model, contents, purpose: str) -> str:
        try:
            response = await asyncio.wait_for(
                model.generate_content_async(contents),
                timeout=self.config.timeout_seconds,
            )
        except TimeoutError as e:
            logger.warning("Gemini %s timed out after %.0fs", purpose, self.config.timeout_seconds)
            raise AIServiceUnavailable("AI service timed out. Please try again.") from e
        except Exception as e:
            logger.exception("Gemini %s failed", purpose)
            raise AIServiceUnavailable("AI service is unavailable. Please try again.") from e

        try:
            return response.text or ""
        except ValueError:
            # Blocked or empty candidates have no text part
            logger.warning("Gemini %s returned no text", purpose)
            return ""
