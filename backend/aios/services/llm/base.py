"""Abstract LLM provider interface. All providers must implement this."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Sequence

from aios.services.memory import Turn


@dataclass(frozen=True)
class InlineData:
    """Binary content (image, PDF) sent to the model as-is."""
    mime_type: str
    data: bytes


Part = str | InlineData


class BaseLLMProvider(ABC):
    @abstractmethod
    async def chat(
        self,
        history: Sequence[Turn],
        parts: Sequence[Part],
        system_instruction: str | None = None,
    ) -> str:
        """Send prior turns plus a new user message and return the reply text."""
        ...

    @abstractmethod
    async def embed(self, text: str) -> list[float]:
        """Return the embedding vector for a piece of text."""
        ...
