"""
Contact persistence.
"""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.contact import Contact

logger = logging.getLogger(__name__)


async def list_contacts(db: AsyncSession, user_id: str) -> list[Contact]:
    result = await db.execute(
        select(Contact)
        .where(Contact.user_id == user_id)
        .order_by(Contact.last_name.asc(), Contact.first_name.asc())
    )
    return list(result.scalars().all())


async def create_contact(
    db: AsyncSession,
    user_id: str,
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
    email: Optional[str] = None,
    linkedin: Optional[str] = None,
    company_id: Optional[str] = None,
) -> Contact:
    contact = Contact(
        user_id=user_id,
        first_name=first_name,
        last_name=last_name,
        email=email,
        linkedin=linkedin,
        company_id=company_id,
    )
    db.add(contact)
    await db.flush()
    logger.info("Created contact %s for user=%s", contact.id, user_id)
    return contact
