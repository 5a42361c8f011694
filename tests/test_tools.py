"""Tool registry and domain tool tests."""

import json

import pytest

from jobdesk.orchestrator.errors import ToolNotFoundError
from jobdesk.services import applications as application_service
from jobdesk.services import companies as company_service
from jobdesk.services import contacts as contact_service
from jobdesk.tools.registry import build_toolset, get_tool_names

from scripted import OTHER_USER_ID, USER_ID


async def run(db, name: str, args=None, user_id: str = USER_ID) -> dict:
    raw = await build_toolset(db, user_id).get(name).execute(args or {})
    return json.loads(raw)


class TestToolSet:
    """SUT: build_toolset / ToolSet"""

    def test_declared_tools_in_order(self):
        assert get_tool_names() == [
            "add_contact", "list_contacts",
            "add_company", "list_companies",
            "add_application", "list_applications", "update_application",
        ]

    async def test_schemas_use_model_facing_names(self, db):
        schemas = {s["function"]["name"]: s for s in build_toolset(db, USER_ID).schemas()}

        contact = schemas["add_contact"]
        assert contact["type"] == "function"
        params = contact["function"]["parameters"]
        assert params["type"] == "object"
        assert {"firstName", "lastName", "email", "linkedin"} <= set(params["properties"])

        application = schemas["add_application"]["function"]["parameters"]
        assert application["required"] == ["title"]
        assert {"companyName", "jobUrl", "status", "notes"} <= set(application["properties"])

        update = schemas["update_application"]["function"]["parameters"]
        assert "applicationId" in update["required"]

    async def test_unknown_tool_is_a_registry_mismatch(self, db):
        toolset = build_toolset(db, USER_ID)
        with pytest.raises(ToolNotFoundError) as exc:
            toolset.get("delete_everything")
        assert exc.value.name == "delete_everything"
        assert "add_contact" in exc.value.available


class TestToolExecution:
    """SUT: BoundTool.execute"""

    async def test_result_keeps_non_ascii(self, db):
        raw = await build_toolset(db, USER_ID).get("add_company").execute({"name": "Société Générale"})
        assert "Société Générale" in raw
        assert "créée" in raw

    async def test_invalid_arguments_are_reported_not_raised(self, db):
        result = await run(db, "add_contact", {"firstName": "Ada", "email": "not-an-email"})

        assert result["success"] is False
        assert result["message"].startswith("Arguments invalides pour add_contact")
        assert await contact_service.list_contacts(db, USER_ID) == []

    async def test_non_http_url_rejected(self, db):
        result = await run(db, "add_company", {"name": "Acme", "website": "ftp://acme.com"})
        assert result["success"] is False
        assert await company_service.list_companies(db, USER_ID) == []

    async def test_unparseable_arguments_string(self, db):
        result = await run(db, "add_company", "{not json")
        assert result["success"] is False

    async def test_handler_failure_is_isolated(self, db, monkeypatch):
        async def boom(*args, **kwargs):
            raise RuntimeError("disk full")

        monkeypatch.setattr(company_service, "create_company", boom)
        result = await run(db, "add_company", {"name": "Acme"})

        assert result == {
            "success": False,
            "message": "Erreur lors de la création de l'entreprise: disk full",
        }
        # Session still usable afterwards
        assert (await run(db, "list_companies"))["success"] is True

    async def test_failed_tool_rolls_back_its_own_writes(self, db, monkeypatch):
        async def boom(*args, **kwargs):
            raise RuntimeError("constraint violated")

        await run(db, "add_contact", {"firstName": "Ada"})
        monkeypatch.setattr(application_service, "create_application", boom)

        result = await run(db, "add_application", {"title": "Dev", "companyName": "Acme"})

        assert result["success"] is False
        # The company created inside the failing tool is gone, earlier writes are not
        assert await company_service.list_companies(db, USER_ID) == []
        assert len(await contact_service.list_contacts(db, USER_ID)) == 1


class TestContactTools:
    """SUT: add_contact / list_contacts"""

    async def test_add_and_list(self, db):
        created = await run(db, "add_contact", {
            "firstName": "Ada", "lastName": "Lovelace", "email": "ada@example.com",
        })
        assert created["success"] is True
        assert created["message"] == "Contact créé avec succès: Ada Lovelace"
        assert created["contact"]["email"] == "ada@example.com"

        listed = await run(db, "list_contacts")
        assert listed["message"] == "1 contact(s) trouvé(s)."
        assert listed["contacts"][0]["firstName"] == "Ada"

    async def test_contact_needs_something(self, db):
        result = await run(db, "add_contact", {"firstName": "  ", "email": ""})
        assert result["success"] is False

    async def test_list_empty(self, db):
        assert (await run(db, "list_contacts"))["message"] == "Aucun contact trouvé."

    async def test_scoped_to_caller(self, db):
        await run(db, "add_contact", {"firstName": "Ada"})
        listed = await run(db, "list_contacts", user_id=OTHER_USER_ID)
        assert listed["contacts"] == []


class TestCompanyTools:
    """SUT: add_company / list_companies"""

    async def test_add_and_list(self, db):
        created = await run(db, "add_company", {"name": "Acme", "website": "https://acme.com"})
        assert created["success"] is True
        assert created["message"] == 'Entreprise "Acme" créée avec succès'
        assert created["company"]["website"] == "https://acme.com"

        listed = await run(db, "list_companies")
        assert listed["message"] == "1 entreprise(s) trouvée(s)."

    async def test_name_required(self, db):
        result = await run(db, "add_company", {"description": "no name"})
        assert result["success"] is False


class TestApplicationTools:
    """SUT: add_application / list_applications / update_application"""

    async def test_add_creates_missing_company(self, db):
        result = await run(db, "add_application", {"title": "Backend Dev", "companyName": "Acme"})

        assert result["success"] is True
        assert result["message"] == 'Candidature "Backend Dev" chez Acme créée avec succès'
        assert result["companyCreated"] is True
        assert result["application"]["status"] == "draft"

        companies = await company_service.list_companies(db, USER_ID)
        assert [c.name for c in companies] == ["Acme"]

    async def test_add_reuses_company_case_insensitively(self, db):
        await run(db, "add_company", {"name": "Acme"})
        result = await run(db, "add_application", {"title": "Dev", "companyName": "ACME"})

        assert result["companyCreated"] is False
        assert result["application"]["company"] == "Acme"
        assert len(await company_service.list_companies(db, USER_ID)) == 1

    async def test_add_reuses_accented_company(self, db):
        first = await run(db, "add_application", {"title": "Dev", "companyName": "ÉCOLE 42"})
        second = await run(db, "add_application", {"title": "Ops", "companyName": "école 42"})

        assert first["companyCreated"] is True
        assert second["companyCreated"] is False
        assert second["application"]["company"] == "ÉCOLE 42"
        assert [c.name for c in await company_service.list_companies(db, USER_ID)] == ["ÉCOLE 42"]

    async def test_add_without_company(self, db):
        result = await run(db, "add_application", {"title": "Freelance"})
        assert result["message"] == 'Candidature "Freelance" créée avec succès'
        assert "companyCreated" not in result

    async def test_invalid_status_rejected(self, db):
        result = await run(db, "add_application", {"title": "Dev", "status": "ghosted"})
        assert result["success"] is False

    async def test_list(self, db):
        assert (await run(db, "list_applications"))["message"] == "Aucune candidature trouvée."

        await run(db, "add_application", {"title": "Dev", "companyName": "Acme"})
        listed = await run(db, "list_applications")
        assert listed["message"] == "1 candidature(s) trouvée(s)."
        assert listed["applications"][0]["company"] == "Acme"

    async def test_update_status_stamps_applied_at(self, db):
        created = await run(db, "add_application", {"title": "Dev"})
        app_id = created["application"]["id"]

        result = await run(db, "update_application", {"applicationId": app_id, "status": "applied"})

        assert result["success"] is True
        assert result["message"] == 'Candidature "Dev" mise à jour avec succès.'
        application = await application_service.get_application(db, USER_ID, app_id)
        assert application.status == "applied"
        assert application.applied_at is not None

    async def test_update_unknown_application(self, db):
        result = await run(db, "update_application", {"applicationId": "nope", "notes": "x"})
        assert result == {"success": False, "message": "Candidature non trouvée."}

    async def test_update_other_users_application(self, db):
        created = await run(db, "add_application", {"title": "Dev"})
        result = await run(
            db, "update_application",
            {"applicationId": created["application"]["id"], "status": "rejected"},
            user_id=OTHER_USER_ID,
        )
        assert result["message"] == "Candidature non trouvée."

    async def test_update_without_changes(self, db):
        created = await run(db, "add_application", {"title": "Dev"})
        result = await run(db, "update_application", {"applicationId": created["application"]["id"]})
        assert result["success"] is False
