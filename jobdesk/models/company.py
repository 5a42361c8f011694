from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import OwnedBase


class Company(OwnedBase):
    __tablename__ = "companies"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=True)
    logo: Mapped[str] = mapped_column(String(500), nullable=True)  # logo URL
    linkedin: Mapped[str] = mapped_column(String(500), nullable=True)
    website: Mapped[str] = mapped_column(String(500), nullable=True)
