"""
Generative AI access shared by the receipt reader and the report composer.
"""

import json
import logging
from typing import Any, Dict, List, Optional

from .exceptions import AIServiceError, ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4o-mini"


def strip_code_fences(text: str) -> str:
    """Return the JSON payload of a reply that may be wrapped in ``` fences."""
    text = text.strip()
    if not text.startswith("```"):
        return text
    json_lines = []
    in_code = False
    for line in text.split("\n"):
        if line.startswith("```"):
            in_code = not in_code
            continue
        if in_code:
            json_lines.append(line)
    return "\n".join(json_lines)


class AIClient:
    """Thin wrapper over the OpenAI chat completions API returning JSON objects."""

    def __init__(self, api_key: Optional[str] = None, model: str = DEFAULT_MODEL,
                 max_tokens: int = 2000, client=None):
        """
        Args:
            api_key: OpenAI API key
            model: Chat model name
            max_tokens: Completion token limit
            client: Pre-built client (mainly for tests)
        """
        self.api_key = api_key
        self.model = model
        self.max_tokens = max_tokens
        self._client = client

    @classmethod
    def from_settings(cls, settings) -> "AIClient":
        return cls(
            api_key=settings.openai_api_key,
            model=settings.openai_model,
            max_tokens=settings.ai_max_tokens,
        )

    def _get_client(self):
        """Get or create the OpenAI client (lazy initialization)."""
        if self._client is None:
            if not self.api_key:
                raise ConfigurationError(
                    "Missing OPENAI_API_KEY (set it in .env) to use AI features."
                )
            import openai
            self._client = openai.OpenAI(api_key=self.api_key)
        return self._client

    def complete_json(self, content: List[Dict[str, Any]],
                      system_prompt: Optional[str] = None) -> Dict[str, Any]:
        """Send one user message and decode the JSON object it returns.

        Args:
            content: Content parts of the user message (text and image_url parts)
            system_prompt: Optional system instruction

        Returns:
            Decoded JSON object

        Raises:
            AIServiceError: On configuration, network, empty or non-JSON replies
        """
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": content})

        try:
            response = self._get_client().chat.completions.create(
                model=self.model,
                messages=messages,
                max_tokens=self.max_tokens,
                temperature=0.0,
                response_format={"type": "json_object"},
            )
        except ConfigurationError as e:
            raise AIServiceError(str(e)) from e
        except Exception as e:
            logger.error(f"AI request failed: {str(e)}")
            raise AIServiceError(f"AI request failed: {str(e)}") from e

        text = response.choices[0].message.content if response.choices else None
        if not text:
            raise AIServiceError("No response text from AI")

        try:
            result = json.loads(strip_code_fences(text))
        except ValueError as e:
            logger.error(f"AI reply is not valid JSON: {text[:200]!r}")
            raise AIServiceError("AI reply is not valid JSON") from e

        if not isinstance(result, dict):
            raise AIServiceError("AI reply is not a JSON object")
        return result
