"""
Generative AI client

Wraps the OpenAI SDK for the two things the store asks of a model:
JSON-shaped text completions and image generation.

Usage:
    from ai_client import GenerativeClient

    client = GenerativeClient()
    data = client.generate_json("Write a tagline. Return {\"tagline\": ...}")
    data_url = client.generate_image("A mug on a desk")
"""
import json
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

from openai import OpenAI, OpenAIError

logger = logging.getLogger(__name__)


class GenerationError(RuntimeError):
    pass


@dataclass
class GenerativeConfig:
    """Configuration for the generative client."""

    api_key: Optional[str] = None
    text_model: str = "gpt-4o-mini"
    image_model: str = "gpt-image-1"
    image_size: str = "1024x1024"
    temperature: float = 0.7
    timeout_seconds: float = 120.0


class GenerativeClient:
    def __init__(self, config: Optional[GenerativeConfig] = None):
        self.config = config or GenerativeConfig()
        api_key = self.config.api_key or os.getenv("OPENAI_API_KEY")
        if not api_key:
            raise GenerationError(
                "OpenAI API key not found. Set OPENAI_API_KEY environment variable."
            )
        self._client = OpenAI(api_key=api_key, timeout=self.config.timeout_seconds)

    def generate_json(
        self,
        prompt: str,
        system: Optional[str] = None,
        temperature: Optional[float] = None,
    ) -> Dict[str, Any]:
        """
        Ask the text model for a JSON object.

        Args:
            prompt: The user prompt; it must describe the expected JSON keys
            system: Optional system prompt
            temperature: Sampling temperature (defaults to config)

        Returns:
            The decoded JSON object
        """
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        try:
            response = self._client.chat.completions.create(
                model=self.config.text_model,
                messages=messages,
                temperature=self.config.temperature if temperature is None else temperature,
                response_format={"type": "json_object"},
            )
        except OpenAIError as exc:
            logger.error("Text generation failed: %s", exc)
            raise GenerationError(str(exc)) from exc

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise GenerationError("The model returned an empty response.")
        try:
            data = json.loads(content)
        except json.JSONDecodeError as exc:
            raise GenerationError("The model did not return valid JSON.") from exc
        if not isinstance(data, dict):
            raise GenerationError("The model returned JSON that is not an object.")
        return data

    def generate_image(self, prompt: str) -> str:
        """Generate one image and return it as a ``data:`` URI."""
        try:
            response = self._client.images.generate(
                model=self.config.image_model,
                prompt=prompt,
                size=self.config.image_size,
                n=1,
            )
        except OpenAIError as exc:
            logger.error("Image generation failed: %s", exc)
            raise GenerationError(str(exc)) from exc

        if not response.data:
            return ""
        encoded = getattr(response.data[0], "b64_json", None)
        if encoded:
            return f"data:image/png;base64,{encoded}"
        return getattr(response.data[0], "url", None) or ""
