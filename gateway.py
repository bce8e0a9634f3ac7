# gateway.py
import logging
import time
from typing import Optional

from google import genai
from google.genai import types

from errors import BackendError, BackendUnavailable
from settings import Settings

logger = logging.getLogger("farmer_chat.gateway")


class CompletionGateway:
    """Text-in, text-out adapter around the Gemini API."""

    def __init__(self, api_key: str, model_name: str,
                 max_output_tokens: Optional[int] = None,
                 temperature: Optional[float] = None):
        self.api_key = api_key
        self.model_name = model_name
        self.max_output_tokens = max_output_tokens
        self.temperature = temperature
        self._client: Optional[genai.Client] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "CompletionGateway":
        return cls(
            api_key=settings.API_KEY,
            model_name=settings.MODEL_NAME,
            max_output_tokens=settings.MAX_OUTPUT_TOKENS,
            temperature=settings.TEMPERATURE,
        )

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def ensure_configured(self) -> None:
        if not self.configured:
            raise BackendUnavailable()

    @property
    def client(self) -> genai.Client:
        self.ensure_configured()
        if self._client is None:
            self._client = genai.Client(api_key=self.api_key)
        return self._client

    async def complete(self, prompt: str) -> str:
        client = self.client
        t0 = time.time()
        try:
            response = await client.aio.models.generate_content(
                model=self.model_name,
                config=types.GenerateContentConfig(
                    max_output_tokens=self.max_output_tokens,
                    temperature=self.temperature,
                ),
                contents=prompt,
            )
            text = response.text if hasattr(response, "text") else ""
        except Exception as e:
            raise BackendError(details=str(e)) from e

        if not text:
            raise BackendError(details="Empty response from model")

        logger.info("Gemini %s completed in %.0fms (%d chars)",
                    self.model_name, (time.time() - t0) * 1000.0, len(text))
        return text
