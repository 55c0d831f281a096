"""
Integration recommendation scoring, persistence and endpoints.
"""
import pytest

from portal.core.exceptions import TenantNotFoundError
from portal.models.app_catalog import AppDefinition, Application
from portal.models.integration import ExternalSystem, IntegrationRecommendation, IntegrationRun
from portal.models.secret import McpTenantSecret
from portal.services.recommendation_service import (
    RecommendationService,
    TenantContext,
    detect_provider,
    round_half_up,
    score_system,
)

from conftest import auth_headers


def make_system(**flags):
    values = dict(
        name="HubSpot",
        slug="hubspot",
        vendor_name="HubSpot Inc",
        rest_api=False,
        graphql=False,
        webhooks=False,
        oauth2=False,
        api_keys=False,
        n8n_node=False,
        zapier_app=False,
        pipedream_support=False,
        mcp_connector=False,
        eu_data_residency=False,
        gdpr_statement_url=None,
        sso=False,
        integration_count=0,
    )
    values.update(flags)
    return ExternalSystem(**values)


RICH = dict(
    rest_api=True,
    webhooks=True,
    oauth2=True,
    n8n_node=True,
    eu_data_residency=True,
    gdpr_statement_url="https://hubspot.com/gdpr",
    integration_count=4,
)


class TestScoring:
    def test_round_half_up(self):
        assert round_half_up(0.5) == 1
        assert round_half_up(2.5) == 3
        assert round_half_up(1.49) == 1

    def test_fully_prepared_tenant(self):
        context = TenantContext(region="EU", workflow_keys=["hubspot-sync"], active_secret_providers=["n8n"])
        scored = score_system(context, make_system(**RICH))

        assert scored["breakdown"] == {
            "capability_fit": 39,
            "integration_readiness": 67,
            "compliance": 67,
            "maturity": 60,
            "total": 55,
        }
        assert scored["score"] == 55
        assert scored["suggestions"] == []

    def test_unprepared_tenant_gets_suggestions(self):
        context = TenantContext(region="EU")
        scored = score_system(context, make_system(**RICH))

        assert scored["breakdown"]["integration_readiness"] == 17
        assert scored["score"] == 40
        assert [s["action"] for s in scored["suggestions"]] == ["add_mapping", "activate_secret"]
        negatives = [e["message"] for e in scored["explain"] if e["impact"] == "negative"]
        assert negatives == ["No workflow mapping configured", "No integration secret found"]

    def test_eu_residency(self):
        system = make_system(integration_count=10)

        eu = score_system(TenantContext(region="EU"), system)
        us = score_system(TenantContext(region="US"), system)

        assert eu["breakdown"]["compliance"] == 0
        assert us["breakdown"]["compliance"] == 33
        assert "review_compliance" in [s["action"] for s in eu["suggestions"]]
        assert "review_compliance" not in [s["action"] for s in us["suggestions"]]
        assert eu["breakdown"]["maturity"] == 100

    def test_detect_provider(self):
        assert detect_provider(make_system(mcp_connector=True, n8n_node=True)) == "mcp"
        assert detect_provider(make_system(n8n_node=True, pipedream_support=True)) == "n8n"
        assert detect_provider(make_system(pipedream_support=True)) == "pipedream"
        assert detect_provider(make_system()) == "native"


@pytest.fixture
def catalogue(db, seed):
    crm = AppDefinition(key="crm", name="CRM")
    helpdesk = AppDefinition(key="helpdesk", name="Helpdesk")
    db.add_all([crm, helpdesk])
    db.flush()

    db.add(Application(tenant_id=seed.acme.id, app_definition_id=crm.id))
    db.add(Application(tenant_id=seed.acme.id, app_definition_id=helpdesk.id, is_active=False))

    hubspot = make_system(**RICH)
    legacy = make_system(name="Legacy Ledger", slug="legacy-ledger", vendor_name=None)
    db.add_all([hubspot, legacy])

    db.add(IntegrationRun(tenant_id=seed.acme.id, workflow_key="hubspot-sync"))
    db.add(McpTenantSecret(tenant_id=seed.acme.id, provider="n8n", secret="s3cret"))
    db.commit()
    return {"hubspot": hubspot, "legacy": legacy}


class TestRecommendationService:
    def test_context(self, db, seed, catalogue):
        context = RecommendationService(db).load_context(seed.acme.id)
        assert context.region == "EU"
        assert context.workflow_keys == ["hubspot-sync"]
        assert context.has_n8n_secret

    def test_missing_tenant(self, db):
        with pytest.raises(TenantNotFoundError):
            RecommendationService(db).load_context("missing")

    def test_installed_apps_skip_inactive(self, db, seed, catalogue):
        assert RecommendationService(db).installed_app_keys(seed.acme.id) == ["crm"]

    def test_compute_filters_low_scores(self, db, seed, catalogue):
        recs = RecommendationService(db).compute_for_app(seed.acme.id, "crm")
        assert [rec["system_id"] for rec in recs] == [catalogue["hubspot"].id]
        assert recs[0]["provider"] == "n8n"
        assert recs[0]["app_key"] == "crm"

    def test_compute_for_tenant(self, db, seed, catalogue):
        result = RecommendationService(db).compute_for_tenant(seed.acme.id)
        assert list(result) == ["crm"]

    def test_refresh_replaces_rows(self, db, seed, catalogue):
        service = RecommendationService(db)
        assert service.refresh(seed.acme.id) == 1
        assert service.refresh(seed.acme.id) == 1
        assert db.query(IntegrationRecommendation).count() == 1

    def test_refresh_without_apps(self, db, seed, catalogue):
        assert RecommendationService(db).refresh(seed.globex.id) == 0
        assert RecommendationService(db).refresh(seed.acme.id, app_keys=["helpdesk"]) == 0

    def test_get_recommendations(self, db, seed, catalogue):
        service = RecommendationService(db)
        service.refresh(seed.acme.id)

        groups = service.get_recommendations(seed.acme.id)
        assert [g["app_key"] for g in groups] == ["crm"]
        item = groups[0]["items"][0]
        assert item["system_name"] == "HubSpot"
        assert item["system_slug"] == "hubspot"
        assert item["vendor"] == "HubSpot Inc"
        assert item["score"] == 55

        assert service.get_recommendations(seed.acme.id, providers=["mcp"]) == []
        assert service.get_recommendations(seed.globex.id) == []

    def test_matrix(self, db, seed, catalogue):
        service = RecommendationService(db)
        service.refresh(seed.acme.id)

        assert service.get_matrix(seed.acme.id) == [{
            "system_id": catalogue["hubspot"].id,
            "system_name": "HubSpot",
            "scores_by_app": {"crm": 55},
        }]


class TestRecommendationEndpoints:
    def test_refresh_requires_admin(self, client, seed, catalogue):
        response = client.post(
            "/api/v1/integration-recommendations/refresh",
            headers=auth_headers(seed.contributor, seed.acme),
        )
        assert response.status_code == 403

    def test_refresh_and_read(self, client, seed, catalogue):
        refreshed = client.post(
            "/api/v1/integration-recommendations/refresh",
            headers=auth_headers(seed.owner, seed.acme),
        )
        assert refreshed.json() == {"refreshed": 1}

        headers = auth_headers(seed.viewer, seed.acme)
        listed = client.get("/api/v1/integration-recommendations", params={"app_key": "crm"}, headers=headers)
        assert listed.status_code == 200
        assert listed.json()[0]["items"][0]["breakdown"]["total"] == 55

        matrix = client.get("/api/v1/integration-recommendations/matrix", headers=headers)
        assert matrix.json()[0]["scores_by_app"] == {"crm": 55}

    def test_refresh_selected_apps(self, client, seed, catalogue):
        response = client.post(
            "/api/v1/integration-recommendations/refresh",
            json={"app_keys": ["unknown-app"]},
            headers=auth_headers(seed.owner, seed.acme),
        )
        assert response.json() == {"refreshed": 0}
