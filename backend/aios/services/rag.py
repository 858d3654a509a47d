"""Deciding when to retrieve documentary context, and building the augmented prompt."""

from typing import Iterable

from aios.core.config import settings


def should_retrieve(
    message: str,
    force: bool = False,
    entity_names: Iterable[str] | None = None,
    phrases: Iterable[str] | None = None,
) -> bool:
    """True if retrieval should run for this message.

    Static substring match on the lower-cased text against known entity names
    and "possessive cabinet" phrases ("our client", "notre cabinet", ...).
    """
    if force:
        return True

    lower = message.lower()
    names = settings.rag_entity_names if entity_names is None else entity_names
    cabinet = settings.rag_cabinet_phrases if phrases is None else phrases

    return any(n.lower() in lower for n in names) or any(p.lower() in lower for p in cabinet)


def build_prompt(message: str, context: str) -> str:
    if not context:
        return message
    return (
        f"CONTEXTE DOCUMENTAIRE :\n{context}\n\n---\n\n"
        f"QUESTION : {message}\n\n"
        "Utilise le contexte ci-dessus pour répondre avec précision."
    )
