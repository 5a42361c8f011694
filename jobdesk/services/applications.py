"""
Job application persistence.

Listing joins the company name in one query. Updates only touch the fields
that were supplied; moving an application to "applied" stamps applied_at
the first time.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.application import ApplicationStatus, JobApplication
from ..models.base import utcnow
from ..models.company import Company

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("title", "description", "job_url", "status", "notes")


@dataclass
class ApplicationRow:
    """An application with the name of its company (if any)."""
    application: JobApplication
    company_name: Optional[str] = None


async def list_applications(db: AsyncSession, user_id: str) -> list[ApplicationRow]:
    result = await db.execute(
        select(JobApplication, Company.name)
        .outerjoin(Company, JobApplication.company_id == Company.id)
        .where(JobApplication.user_id == user_id)
        .order_by(JobApplication.updated_at.desc())
    )
    return [ApplicationRow(application=app, company_name=name) for app, name in result.all()]


async def get_application(
    db: AsyncSession, user_id: str, application_id: str
) -> Optional[JobApplication]:
    """Owner-checked lookup. Another user's application reads as missing."""
    result = await db.execute(
        select(JobApplication).where(
            JobApplication.id == application_id,
            JobApplication.user_id == user_id,
        )
    )
    return result.scalar_one_or_none()


async def create_application(
    db: AsyncSession,
    user_id: str,
    title: str,
    description: Optional[str] = None,
    job_url: Optional[str] = None,
    company_id: Optional[str] = None,
    contact_id: Optional[str] = None,
    status: str = ApplicationStatus.DRAFT.value,
    notes: Optional[str] = None,
) -> JobApplication:
    application = JobApplication(
        user_id=user_id,
        title=title,
        description=description,
        job_url=job_url,
        company_id=company_id,
        contact_id=contact_id,
        status=status,
        applied_at=utcnow() if status == ApplicationStatus.APPLIED.value else None,
        notes=notes,
    )
    db.add(application)
    await db.flush()
    logger.info("Created application %s (%s) for user=%s", application.id, status, user_id)
    return application


async def update_application(
    db: AsyncSession,
    user_id: str,
    application_id: str,
    changes: dict,
) -> Optional[JobApplication]:
    """Apply `changes` (keys from UPDATABLE_FIELDS). Returns None if not owned."""
    application = await get_application(db, user_id, application_id)
    if application is None:
        return None

    unknown = set(changes) - set(UPDATABLE_FIELDS)
    if unknown:
        raise ValueError(f"Unknown application fields: {', '.join(sorted(unknown))}")

    for field_name, value in changes.items():
        setattr(application, field_name, value)

    if changes.get("status") == ApplicationStatus.APPLIED.value and application.applied_at is None:
        application.applied_at = utcnow()

    application.updated_at = utcnow()
    await db.flush()
    logger.info("Updated application %s fields=%s", application.id, sorted(changes))
    return application
