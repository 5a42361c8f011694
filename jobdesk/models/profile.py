"""
Profile data the assistant reads as the user's CV: work experiences and the
skills attached to each. Edited through the UI, read-only for the agent.
"""

from sqlalchemy import String, Text, Boolean, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from .base import OwnedBase, RecordBase


class Experience(OwnedBase):
    __tablename__ = "experiences"

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    company: Mapped[str] = mapped_column(String(200), nullable=False)
    location: Mapped[str] = mapped_column(String(200), nullable=True)
    start_date: Mapped[str] = mapped_column(String(7), nullable=False)  # YYYY-MM
    end_date: Mapped[str] = mapped_column(String(7), nullable=True)  # YYYY-MM
    current: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    description: Mapped[str] = mapped_column(Text, nullable=True)


class Skill(OwnedBase):
    __tablename__ = "skills"

    name: Mapped[str] = mapped_column(String(100), nullable=False)


class ExperienceSkill(RecordBase):
    __tablename__ = "experience_skills"

    experience_id: Mapped[str] = mapped_column(
        String, ForeignKey("experiences.id", ondelete="CASCADE"), nullable=False, index=True
    )
    skill_id: Mapped[str] = mapped_column(
        String, ForeignKey("skills.id", ondelete="CASCADE"), nullable=False
    )
