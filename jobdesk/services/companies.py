"""
Company persistence. Every query is scoped to the owning user.
"""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.company import Company

logger = logging.getLogger(__name__)


async def list_companies(db: AsyncSession, user_id: str) -> list[Company]:
    result = await db.execute(
        select(Company)
        .where(Company.user_id == user_id)
        .order_by(Company.name.asc())
    )
    return list(result.scalars().all())


async def get_company(db: AsyncSession, user_id: str, company_id: str) -> Optional[Company]:
    result = await db.execute(
        select(Company).where(Company.id == company_id, Company.user_id == user_id)
    )
    return result.scalar_one_or_none()


async def find_company_by_name(db: AsyncSession, user_id: str, name: str) -> Optional[Company]:
    """Case-insensitive exact match, earliest created wins. Folded in Python, SQLite lower() is ASCII-only."""
    wanted = name.strip().casefold()
    result = await db.execute(
        select(Company)
        .where(Company.user_id == user_id)
        .order_by(Company.created_at.asc())
    )
    return next((c for c in result.scalars() if c.name.casefold() == wanted), None)


async def create_company(
    db: AsyncSession,
    user_id: str,
    name: str,
    description: Optional[str] = None,
    website: Optional[str] = None,
    linkedin: Optional[str] = None,
    logo: Optional[str] = None,
) -> Company:
    company = Company(
        user_id=user_id,
        name=name.strip(),
        description=description,
        website=website,
        linkedin=linkedin,
        logo=logo,
    )
    db.add(company)
    await db.flush()
    logger.info("Created company %s (%s) for user=%s", company.id, company.name, user_id)
    return company
