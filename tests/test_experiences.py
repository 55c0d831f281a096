"""
Experience JSON validation, rendering and flow submission.
"""
import copy

import pytest

from portal.core.exceptions import InvalidExperienceError, InvalidInputError
from portal.models.project import Project
from portal.services.experience_renderer import (
    grid_columns,
    map_params,
    render_experience,
    submit_flow_step,
    validate_experience,
)
from portal.services.tools import ToolContext

from conftest import auth_headers

DOCUMENT = {
    "version": "1.0",
    "layout": {"type": "grid"},
    "theme": {"primary": "#0f766e"},
    "blocks": [
        {
            "type": "hero",
            "headline": "Welcome to Acme",
            "actions": [{"label": "Start", "action_id": "start"}],
        },
        {
            "type": "cards.list",
            "title": "Team",
            "items": [
                {
                    "title": "Kari Nordmann",
                    "body": "Account manager",
                    "itemType": "person",
                    "cta": [
                        {"label": "Email", "type": "email", "context": {"email": "kari@acme.no"}},
                        {"label": "Call", "type": "phone", "context": {"phone": "+4712345678"}},
                        {"label": "Contact", "type": "web", "href": "https://acme.no/contact"},
                    ],
                },
            ],
        },
        {
            "type": "table",
            "columns": ["Name", "Status"],
            "rows": [["ERP", "live"], ["CRM", "pilot"]],
        },
    ],
}

FLOW_DOCUMENT = {
    "version": "1.0",
    "layout": {"type": "stack", "gap": "lg"},
    "blocks": [
        {
            "type": "flow",
            "id": "new-project",
            "steps": [
                {
                    "id": "details",
                    "title": "Project details",
                    "form": {
                        "fields": [
                            {"id": "title", "label": "Title", "type": "text", "required": True},
                            {"id": "notes", "label": "Notes", "type": "textarea"},
                        ],
                        "on_submit": {
                            "type": "tool_call",
                            "tool": "create_project",
                            "params_mapping": {"title": "$form.title", "description": "$form.notes"},
                            "on_success": [{"type": "toast", "message": "Created"}],
                        },
                    },
                },
                {
                    "id": "confirm",
                    "title": "Confirm",
                    "form": {
                        "fields": [{"id": "q", "label": "Search", "type": "text"}],
                        "on_submit": {
                            "type": "tool_call",
                            "tool": "list_projects",
                            "params_mapping": {"q": "$form.q"},
                        },
                    },
                },
            ],
        },
    ],
}


class TestValidation:
    def test_valid_document(self):
        doc = validate_experience(DOCUMENT)
        assert [block.type for block in doc.blocks] == ["hero", "cards.list", "table"]

    def test_unknown_block_type(self):
        bad = copy.deepcopy(DOCUMENT)
        bad["blocks"].append({"type": "carousel"})
        with pytest.raises(InvalidExperienceError) as exc_info:
            validate_experience(bad)
        assert exc_info.value.errors[0]["path"].startswith("blocks.3")

    def test_table_row_width(self):
        bad = copy.deepcopy(DOCUMENT)
        bad["blocks"][2]["rows"].append(["only one"])
        with pytest.raises(InvalidExperienceError) as exc_info:
            validate_experience(bad)
        messages = [error["message"] for error in exc_info.value.errors]
        assert any("Row 2 has 1 cells, expected 2" in message for message in messages)

    def test_wrong_version(self):
        bad = dict(DOCUMENT, version="2.0")
        with pytest.raises(InvalidExperienceError) as exc_info:
            validate_experience(bad)
        assert exc_info.value.errors[0]["path"] == "version"


class TestRendering:
    def test_layout(self):
        rendered = render_experience(validate_experience(DOCUMENT))
        assert rendered["layout"] == {"type": "grid", "gap": "md", "columns": 3}
        assert rendered["theme"] == {"primary": "#0f766e"}
        assert [block["key"] for block in rendered["blocks"]] == ["hero-0", "cards.list-1", "table-2"]

    def test_stack_has_no_columns(self):
        rendered = render_experience(validate_experience(FLOW_DOCUMENT))
        assert rendered["layout"] == {"type": "stack", "gap": "lg"}
        assert rendered["theme"] == {}

    def test_grid_columns(self):
        assert grid_columns(0) == 1
        assert grid_columns(1) == 1
        assert grid_columns(2) == 2
        assert grid_columns(7) == 3

    def test_card_items(self):
        rendered = render_experience(validate_experience(DOCUMENT))
        item = rendered["blocks"][1]["props"]["items"][0]
        assert item["fullDescription"] == "Account manager"
        assert item["itemType"] == "person"
        assert [cta["href"] for cta in item["ctas"]] == [
            "mailto:kari@acme.no",
            "tel:+4712345678",
            "https://acme.no/contact",
        ]
        assert item["ctas"][0]["context"] == {"email": "kari@acme.no"}
        assert item["ctas"][2]["context"] == {}

    def test_ctas_key_is_accepted(self):
        doc = copy.deepcopy(DOCUMENT)
        card = doc["blocks"][1]["items"][0]
        card["ctas"] = card.pop("cta")
        rendered = render_experience(validate_experience(doc))
        assert len(rendered["blocks"][1]["props"]["items"][0]["ctas"]) == 3

    def test_table_rows_become_records(self):
        rendered = render_experience(validate_experience(DOCUMENT))
        assert rendered["blocks"][2]["props"]["rows"] == [
            {"Name": "ERP", "Status": "live"},
            {"Name": "CRM", "Status": "pilot"},
        ]

    def test_flow_states(self):
        rendered = render_experience(validate_experience(FLOW_DOCUMENT))
        flow = rendered["blocks"][0]["props"]
        assert flow["state"] == "ready"
        assert flow["step_count"] == 2
        assert flow["current_step"]["tool"] == "create_project"

        empty = copy.deepcopy(FLOW_DOCUMENT)
        empty["blocks"][0]["steps"] = []
        assert render_experience(validate_experience(empty))["blocks"][0]["props"]["state"] == "empty"

        no_fields = copy.deepcopy(FLOW_DOCUMENT)
        no_fields["blocks"][0]["steps"][0]["form"]["fields"] = []
        assert render_experience(validate_experience(no_fields))["blocks"][0]["props"]["state"] == "invalid"


class TestFlowSubmission:
    def test_map_params(self):
        assert map_params(
            {"title": "$form.title", "status": "active", "missing": "$form.nope"},
            {"title": "Hello"},
        ) == {"title": "Hello", "status": "active", "missing": None}

    def test_missing_required_field(self, db, seed):
        ctx = ToolContext(db=db, tenant_id=seed.acme.id, user_id=seed.owner.id)
        outcome = submit_flow_step(validate_experience(FLOW_DOCUMENT), "new-project", 0, {"title": ""}, ctx)
        assert outcome["ok"] is False
        assert outcome["error"]["code"] == "VALIDATION_FAILED"
        assert outcome["error"]["fields"] == ["title"]
        assert outcome["next_step"] == 0

    def test_success_advances(self, db, seed):
        ctx = ToolContext(db=db, tenant_id=seed.acme.id, user_id=seed.owner.id)
        doc = validate_experience(FLOW_DOCUMENT)

        outcome = submit_flow_step(doc, "new-project", 0, {"title": "Launch", "notes": "Q3"}, ctx)
        assert outcome["ok"] is True
        assert outcome["result"]["title"] == "Launch"
        assert outcome["result"]["owner_id"] == seed.owner.id
        assert outcome["next_step"] == 1
        assert outcome["actions"] == [{"type": "toast", "message": "Created"}]

        last = submit_flow_step(doc, "new-project", 1, {"q": "Laun"}, ctx)
        assert last["ok"] is True
        assert last["next_step"] == 1
        assert [p["title"] for p in last["result"]] == ["Launch"]

    def test_unknown_flow_and_step(self, db, seed):
        ctx = ToolContext(db=db, tenant_id=seed.acme.id)
        doc = validate_experience(FLOW_DOCUMENT)
        with pytest.raises(InvalidInputError):
            submit_flow_step(doc, "nope", 0, {}, ctx)
        with pytest.raises(InvalidInputError):
            submit_flow_step(doc, "new-project", 5, {}, ctx)


class TestExperienceEndpoints:
    def test_validate_endpoint(self, client, seed):
        headers = auth_headers(seed.viewer, seed.acme)

        ok = client.post("/api/v1/experiences/validate", json=DOCUMENT, headers=headers)
        assert ok.json() == {"valid": True, "errors": []}

        bad = client.post("/api/v1/experiences/validate", json={"version": "1.0"}, headers=headers)
        assert bad.status_code == 200
        body = bad.json()
        assert body["valid"] is False
        assert {error["path"] for error in body["errors"]} == {"layout", "blocks"}

    def test_render_endpoint(self, client, seed):
        response = client.post(
            "/api/v1/experiences/render", json=DOCUMENT, headers=auth_headers(seed.viewer, seed.acme)
        )
        assert response.status_code == 200
        assert response.json()["layout"]["columns"] == 3

    def test_render_invalid_document(self, client, seed):
        response = client.post(
            "/api/v1/experiences/render",
            json={"version": "1.0", "layout": {"type": "stack"}, "blocks": [{"type": "nope"}]},
            headers=auth_headers(seed.viewer, seed.acme),
        )
        assert response.status_code == 422
        assert response.json()["type"] == "invalid_experience"

    def test_create_and_render_stored(self, client, seed):
        headers = auth_headers(seed.contributor, seed.acme)
        created = client.post(
            "/api/v1/experiences",
            json={"name": "Landing", "app_key": "crm", "document": DOCUMENT},
            headers=headers,
        )
        assert created.status_code == 201
        experience_id = created.json()["id"]
        stored_item = created.json()["document"]["blocks"][1]["items"][0]
        assert stored_item["itemType"] == "person"
        assert len(stored_item["cta"]) == 3

        rendered = client.get(f"/api/v1/experiences/{experience_id}/render", headers=headers)
        assert rendered.status_code == 200
        assert rendered.json()["blocks"][1]["props"]["items"][0]["ctas"][2]["href"] == "https://acme.no/contact"

        listed = client.get("/api/v1/experiences", params={"app_key": "crm"}, headers=headers)
        assert [e["id"] for e in listed.json()] == [experience_id]

    def test_viewer_cannot_create(self, client, seed):
        response = client.post(
            "/api/v1/experiences",
            json={"name": "Landing", "document": DOCUMENT},
            headers=auth_headers(seed.viewer, seed.acme),
        )
        assert response.status_code == 403

    def test_other_tenant_cannot_read(self, client, seed):
        created = client.post(
            "/api/v1/experiences",
            json={"name": "Landing", "document": DOCUMENT},
            headers=auth_headers(seed.owner, seed.acme),
        )
        response = client.get(
            f"/api/v1/experiences/{created.json()['id']}",
            headers=auth_headers(seed.globex_admin, seed.globex),
        )
        assert response.status_code == 404

    def test_submit_flow(self, client, db, seed):
        headers = auth_headers(seed.contributor, seed.acme)
        created = client.post(
            "/api/v1/experiences",
            json={"name": "Wizard", "document": FLOW_DOCUMENT},
            headers=headers,
        )
        experience_id = created.json()["id"]

        response = client.post(
            f"/api/v1/experiences/{experience_id}/flows/new-project/submit",
            json={"step_index": 0, "form_data": {"title": "From flow"}},
            headers=headers,
        )
        assert response.status_code == 200
        assert response.json()["ok"] is True
        assert response.json()["next_step"] == 1

        project = db.query(Project).filter(Project.title == "From flow").one()
        assert project.tenant_id == seed.acme.id
