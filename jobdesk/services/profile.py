"""
Profile (CV) loading and formatting for the assistant's system prompt.

Usage:
    entries = await list_experiences_with_skills(db, user_id)
    block = format_dossier_for_prompt(entries)   # "" when no entries
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.profile import Experience, ExperienceSkill, Skill

logger = logging.getLogger(__name__)

DOSSIER_START = "--- CV DE L'UTILISATEUR ---"
DOSSIER_END = "--- FIN DU CV ---"


@dataclass
class ExperienceEntry:
    title: str
    company: str
    start_date: str
    end_date: Optional[str] = None
    current: bool = False
    location: Optional[str] = None
    description: Optional[str] = None
    skills: list[str] = field(default_factory=list)


async def list_experiences_with_skills(db: AsyncSession, user_id: str) -> list[ExperienceEntry]:
    """Newest start date first. Skills are loaded in a single joined query."""
    result = await db.execute(
        select(Experience)
        .where(Experience.user_id == user_id)
        .order_by(Experience.start_date.desc())
    )
    experiences = list(result.scalars().all())
    if not experiences:
        return []

    skill_rows = await db.execute(
        select(ExperienceSkill.experience_id, Skill.name)
        .join(Skill, ExperienceSkill.skill_id == Skill.id)
        .where(ExperienceSkill.experience_id.in_([e.id for e in experiences]))
        .order_by(Skill.name.asc())
    )
    skills_by_experience: dict[str, list[str]] = {}
    for experience_id, name in skill_rows.all():
        skills_by_experience.setdefault(experience_id, []).append(name)

    return [
        ExperienceEntry(
            title=e.title,
            company=e.company,
            start_date=e.start_date,
            end_date=e.end_date,
            current=e.current,
            location=e.location,
            description=e.description,
            skills=skills_by_experience.get(e.id, []),
        )
        for e in experiences
    ]


def format_dossier_for_prompt(entries: list[ExperienceEntry]) -> str:
    """
    Render the CV block appended to the system prompt.
    Returns "" (no delimiters at all) when the user has no experiences.
    """
    if not entries:
        return ""

    parts = ["", "", DOSSIER_START]

    for entry in entries:
        end = "Présent" if entry.current else (entry.end_date or "")
        parts.append("")
        parts.append(f"**{entry.title}** chez {entry.company}")
        dates = f"{entry.start_date} - {end}"
        if entry.location:
            dates += f" | {entry.location}"
        parts.append(dates)
        if entry.description:
            parts.append(entry.description)
        if entry.skills:
            parts.append(f"Compétences: {', '.join(entry.skills)}")

    # Order of first appearance, newest experience first
    all_skills = list(dict.fromkeys(s for entry in entries for s in entry.skills))
    parts.append("")
    if all_skills:
        parts.append(f"**Toutes les compétences:** {', '.join(all_skills)}")

    parts.extend([DOSSIER_END, ""])
    parts.append(
        "Utilise ces informations pour aider l'utilisateur avec ses candidatures, "
        "par exemple pour identifier les compétences pertinentes pour une offre."
    )
    return "\n".join(parts)
