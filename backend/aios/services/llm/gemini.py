"""Google Gemini LLM provider."""

import logging
from typing import Sequence

from google import genai
from google.genai import types

from aios.core.config import settings
from aios.services.llm.base import BaseLLMProvider, InlineData, Part
from aios.services.memory import Turn

logger = logging.getLogger(__name__)


class GeminiProvider(BaseLLMProvider):
    def __init__(self):
        self._client: genai.Client | None = None
        self.model = settings.chat_model
        self.embedding_model = settings.embedding_model

    @property
    def client(self) -> genai.Client:
        if self._client is None:
            self._client = genai.Client(api_key=settings.gemini_api_key)
        return self._client

    def _config(self, system_instruction: str | None) -> types.GenerateContentConfig:
        return types.GenerateContentConfig(
            system_instruction=system_instruction,
            temperature=settings.temperature,
            top_k=settings.top_k,
            top_p=settings.top_p,
            max_output_tokens=settings.max_output_tokens,
        )

    @staticmethod
    def _to_part(part: Part) -> types.Part:
        if isinstance(part, InlineData):
            return types.Part.from_bytes(data=part.data, mime_type=part.mime_type)
        return types.Part.from_text(text=part)

    async def chat(
        self,
        history: Sequence[Turn],
        parts: Sequence[Part],
        system_instruction: str | None = None,
    ) -> str:
        contents = [types.Content(**t.to_gemini()) for t in history]
        contents.append(types.Content(role="user", parts=[self._to_part(p) for p in parts]))

        response = await self.client.aio.models.generate_content(
            model=self.model,
            contents=contents,
            config=self._config(system_instruction),
        )

        usage = response.usage_metadata
        if usage:
            logger.info(
                f"Gemini call: {len(contents)} contents, "
                f"prompt tokens {usage.prompt_token_count}, "
                f"response tokens {usage.candidates_token_count}"
            )
        return response.text or ""

    async def embed(self, text: str) -> list[float]:
        result = await self.client.aio.models.embed_content(
            model=self.embedding_model,
            contents=text,
        )
        return list(result.embeddings[0].values)
