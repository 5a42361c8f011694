"""
Context assembly — the model-facing message list for one turn.

    [system: base prompt + CV block] + [prior turns] + [new user message]

The single-shot and streaming paths both go through build_messages(), and
the CV block is recomputed on every call so edits made in the UI between
two turns are visible right away.
"""

import logging
from typing import Iterable

from sqlalchemy.ext.asyncio import AsyncSession

from ..models.conversation import ROLES, Message
from ..services.profile import format_dossier_for_prompt, list_experiences_with_skills

logger = logging.getLogger(__name__)

BASE_SYSTEM_PROMPT = """Tu es un assistant pour une application de gestion de candidatures.
Tu aides l'utilisateur à gérer ses contacts, entreprises et candidatures.

Tu peux:
- Ajouter et lister des contacts (prénom, nom, email, LinkedIn)
- Ajouter et lister des entreprises (nom, description, site web, LinkedIn)
- Ajouter, lister et mettre à jour des candidatures (titre du poste, entreprise, description, URL, statut, notes)

Pour les candidatures, si l'utilisateur mentionne une entreprise qui n'existe pas, elle sera créée automatiquement.
Pour modifier une candidature, liste d'abord les candidatures pour obtenir son ID.

Sois concis et utile. Réponds dans la langue de l'utilisateur (en français par défaut).
Quand tu crées quelque chose, confirme les informations ajoutées."""


async def build_system_prompt(db: AsyncSession, user_id: str) -> str:
    entries = await list_experiences_with_skills(db, user_id)
    return BASE_SYSTEM_PROMPT + format_dossier_for_prompt(entries)


def history_to_messages(history: Iterable[Message]) -> list[dict]:
    """Stored messages → generic two-role chat messages, order preserved."""
    messages = []
    for m in history:
        if m.role not in ROLES:
            logger.warning("Skipping stored message %s with role %r", m.id, m.role)
            continue
        messages.append({"role": m.role, "content": m.content})
    return messages


async def build_messages(
    db: AsyncSession,
    user_id: str,
    history: Iterable[Message],
    message: str,
) -> list[dict]:
    """System instruction, then prior turns, then the new user message."""
    messages = [{"role": "system", "content": await build_system_prompt(db, user_id)}]
    messages.extend(history_to_messages(history))
    messages.append({"role": "user", "content": message})
    return messages
