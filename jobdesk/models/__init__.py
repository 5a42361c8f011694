"""
All database models. Imported here so Base.metadata sees them for create_all().
"""

from .base import RecordBase, OwnedBase
from .conversation import Conversation, Message
from .company import Company
from .contact import Contact
from .application import JobApplication, ApplicationStatus
from .profile import Experience, Skill, ExperienceSkill

__all__ = [
    "RecordBase", "OwnedBase",
    "Conversation", "Message",
    "Company",
    "Contact",
    "JobApplication", "ApplicationStatus",
    "Experience", "Skill", "ExperienceSkill",
]
