"""
Company tools — add a company, list companies.
"""

from typing import Optional

from pydantic import Field

from ..services import companies as company_service
from .registry import ToolArgs, ToolRisk, tool, tool_result
from .types import WebUrl


class AddCompanyArgs(ToolArgs):
    name: str = Field(min_length=1, max_length=200, description="Nom de l'entreprise")
    description: Optional[str] = Field(default=None, description="Description de l'entreprise")
    website: Optional[WebUrl] = Field(
        default=None, description="Site web de l'entreprise (URL complète, ex: https://acme.com)"
    )
    linkedin: Optional[WebUrl] = Field(default=None, description="Page LinkedIn de l'entreprise")


class ListCompaniesArgs(ToolArgs):
    pass


def _company_summary(company) -> dict:
    return {"id": company.id, "name": company.name, "website": company.website}


@tool(
    name="add_company",
    description=(
        "Ajoute une nouvelle entreprise dans la base de données. "
        "Utilise cet outil quand l'utilisateur veut ajouter ou créer une entreprise."
    ),
    args_model=AddCompanyArgs,
    risk=ToolRisk.WRITE,
    error_prefix="Erreur lors de la création de l'entreprise",
)
async def add_company(args: AddCompanyArgs, db, user_id: str) -> dict:
    company = await company_service.create_company(
        db, user_id,
        name=args.name,
        description=args.description,
        website=args.website,
        linkedin=args.linkedin,
    )
    return tool_result(
        True,
        f'Entreprise "{company.name}" créée avec succès',
        company=_company_summary(company),
    )


@tool(
    name="list_companies",
    description=(
        "Liste toutes les entreprises de l'utilisateur. "
        "Utilise cet outil quand l'utilisateur veut voir ses entreprises."
    ),
    args_model=ListCompaniesArgs,
)
async def list_companies(args: ListCompaniesArgs, db, user_id: str) -> dict:
    companies = await company_service.list_companies(db, user_id)
    if not companies:
        return tool_result(True, "Aucune entreprise trouvée.", companies=[])
    return tool_result(
        True,
        f"{len(companies)} entreprise(s) trouvée(s).",
        companies=[_company_summary(c) for c in companies],
    )
