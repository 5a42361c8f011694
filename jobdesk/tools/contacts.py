"""
Contact tools — add a contact, list contacts.
"""

from typing import Optional

from pydantic import EmailStr, Field

from ..services import contacts as contact_service
from .registry import ToolArgs, ToolRisk, tool, tool_result
from .types import WebUrl


class AddContactArgs(ToolArgs):
    first_name: Optional[str] = Field(default=None, max_length=100, description="Prénom du contact")
    last_name: Optional[str] = Field(default=None, max_length=100, description="Nom de famille du contact")
    email: Optional[EmailStr] = Field(default=None, description="Adresse email du contact")
    linkedin: Optional[WebUrl] = Field(default=None, description="URL du profil LinkedIn du contact")


class ListContactsArgs(ToolArgs):
    pass


def _contact_summary(contact) -> dict:
    return {
        "id": contact.id,
        "firstName": contact.first_name,
        "lastName": contact.last_name,
        "email": contact.email,
    }


@tool(
    name="add_contact",
    description=(
        "Ajoute un nouveau contact dans la base de données. "
        "Utilise cet outil quand l'utilisateur veut ajouter ou créer un contact."
    ),
    args_model=AddContactArgs,
    risk=ToolRisk.WRITE,
    error_prefix="Erreur lors de la création du contact",
)
async def add_contact(args: AddContactArgs, db, user_id: str) -> dict:
    if not (args.first_name or args.last_name or args.email or args.linkedin):
        return tool_result(False, "Un contact a besoin d'au moins un nom, un email ou un LinkedIn.")

    contact = await contact_service.create_contact(
        db, user_id,
        first_name=args.first_name,
        last_name=args.last_name,
        email=args.email,
        linkedin=args.linkedin,
    )
    full_name = f"{args.first_name or ''} {args.last_name or ''}".strip()
    return tool_result(
        True,
        f"Contact créé avec succès: {full_name}".strip(),
        contact=_contact_summary(contact),
    )


@tool(
    name="list_contacts",
    description=(
        "Liste tous les contacts de l'utilisateur. "
        "Utilise cet outil quand l'utilisateur veut voir ses contacts."
    ),
    args_model=ListContactsArgs,
)
async def list_contacts(args: ListContactsArgs, db, user_id: str) -> dict:
    contacts = await contact_service.list_contacts(db, user_id)
    if not contacts:
        return tool_result(True, "Aucun contact trouvé.", contacts=[])
    return tool_result(
        True,
        f"{len(contacts)} contact(s) trouvé(s).",
        contacts=[_contact_summary(c) for c in contacts],
    )
