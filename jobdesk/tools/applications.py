"""
Job application tools — add, list, update.

add_application upserts its company by name: a case-insensitive match on
the user's companies is reused, otherwise the company is created first.
That is part of the tool's contract, not an error path.
"""

from typing import Literal, Optional

from pydantic import Field

from ..models.application import ApplicationStatus
from ..services import applications as application_service
from ..services import companies as company_service
from .registry import ToolArgs, ToolRisk, tool, tool_result
from .types import WebUrl

Status = Literal["draft", "applied", "interviewing", "offered", "rejected", "accepted"]


class AddApplicationArgs(ToolArgs):
    title: str = Field(min_length=1, max_length=200, description="Titre du poste (ex: Développeur Full Stack)")
    company_name: Optional[str] = Field(default=None, max_length=200, description="Nom de l'entreprise")
    description: Optional[str] = Field(default=None, description="Description de l'offre")
    job_url: Optional[WebUrl] = Field(default=None, description="URL de l'offre d'emploi")
    status: Status = Field(
        default=ApplicationStatus.DRAFT.value,
        description="Statut de la candidature (draft par défaut)",
    )
    notes: Optional[str] = Field(default=None, description="Notes personnelles sur la candidature")


class ListApplicationsArgs(ToolArgs):
    pass


class UpdateApplicationArgs(ToolArgs):
    application_id: str = Field(min_length=1, description="L'ID de la candidature à modifier (UUID)")
    title: Optional[str] = Field(default=None, max_length=200, description="Nouveau titre du poste")
    description: Optional[str] = Field(default=None, description="Nouvelle description")
    job_url: Optional[WebUrl] = Field(default=None, description="Nouvelle URL de l'offre")
    status: Optional[Status] = Field(default=None, description="Nouveau statut de la candidature")
    notes: Optional[str] = Field(default=None, description="Nouvelles notes")


def _application_summary(application, company_name: Optional[str] = None) -> dict:
    summary = {"id": application.id, "title": application.title, "status": application.status}
    if company_name is not None:
        summary["company"] = company_name
    return summary


@tool(
    name="add_application",
    description=(
        "Ajoute une nouvelle candidature/offre d'emploi. Utilise cet outil quand l'utilisateur "
        "veut ajouter une candidature, postuler à une offre, ou tracker une opportunité. "
        "Si l'entreprise n'existe pas encore, elle est créée automatiquement."
    ),
    args_model=AddApplicationArgs,
    risk=ToolRisk.WRITE,
    error_prefix="Erreur lors de la création de la candidature",
)
async def add_application(args: AddApplicationArgs, db, user_id: str) -> dict:
    company = None
    company_created = False
    if args.company_name:
        company = await company_service.find_company_by_name(db, user_id, args.company_name)
        if company is None:
            company = await company_service.create_company(db, user_id, name=args.company_name)
            company_created = True

    application = await application_service.create_application(
        db, user_id,
        title=args.title,
        description=args.description,
        job_url=args.job_url,
        company_id=company.id if company else None,
        status=args.status,
        notes=args.notes,
    )

    where = f" chez {company.name}" if company else ""
    fields = {"application": _application_summary(application, company.name if company else None)}
    if company is not None:
        fields["companyCreated"] = company_created
    return tool_result(True, f'Candidature "{application.title}"{where} créée avec succès', **fields)


@tool(
    name="list_applications",
    description=(
        "Liste toutes les candidatures de l'utilisateur. "
        "Utilise cet outil quand l'utilisateur veut voir ses candidatures "
        "ou a besoin de l'ID d'une candidature à modifier."
    ),
    args_model=ListApplicationsArgs,
)
async def list_applications(args: ListApplicationsArgs, db, user_id: str) -> dict:
    rows = await application_service.list_applications(db, user_id)
    if not rows:
        return tool_result(True, "Aucune candidature trouvée.", applications=[])
    return tool_result(
        True,
        f"{len(rows)} candidature(s) trouvée(s).",
        applications=[
            {**_application_summary(row.application), "company": row.company_name}
            for row in rows
        ],
    )


@tool(
    name="update_application",
    description=(
        "Met à jour une candidature existante. Utilise cet outil quand l'utilisateur veut modifier "
        "le statut, le titre, ou d'autres informations d'une candidature existante. "
        "Tu dois d'abord lister les candidatures pour obtenir l'ID."
    ),
    args_model=UpdateApplicationArgs,
    risk=ToolRisk.WRITE,
    error_prefix="Erreur lors de la mise à jour",
)
async def update_application(args: UpdateApplicationArgs, db, user_id: str) -> dict:
    changes = args.model_dump(exclude_unset=True, exclude={"application_id"})
    if not changes:
        return tool_result(False, "Aucune modification fournie pour cette candidature.")

    updated = await application_service.update_application(db, user_id, args.application_id, changes)
    if updated is None:
        return tool_result(False, "Candidature non trouvée.")

    return tool_result(
        True,
        f'Candidature "{updated.title}" mise à jour avec succès.',
        application=_application_summary(updated),
    )
