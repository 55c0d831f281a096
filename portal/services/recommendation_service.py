"""
Integration Recommendation Service

Scores external systems against a tenant's installed apps:

    total = 0.4 * capability_fit
          + 0.3 * integration_readiness
          + 0.2 * compliance
          + 0.1 * maturity

Each component is 0..100. Every score comes with explain items
(category, message, impact) and suggested next steps.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import math

from sqlalchemy.orm import Session

from portal.config import get_settings
from portal.core.exceptions import TenantNotFoundError
from portal.models.app_catalog import Application, AppDefinition
from portal.models.integration import ExternalSystem, IntegrationRun, IntegrationRecommendation
from portal.models.secret import McpTenantSecret
from portal.models.tenant import Tenant
from portal.utils.logging import get_logger

logger = get_logger(__name__)
settings = get_settings()

WEIGHTS = {
    "capability_fit": 0.4,
    "integration_readiness": 0.3,
    "compliance": 0.2,
    "maturity": 0.1,
}

API_FEATURES = ("rest_api", "graphql", "webhooks", "oauth2", "api_keys")
CONNECTOR_FEATURES = ("n8n_node", "zapier_app", "pipedream_support", "mcp_connector")

READINESS_MAX = 3.0


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _explain(category: str, message: str, impact: str) -> Dict[str, str]:
    return {"category": category, "message": message, "impact": impact}


@dataclass
class TenantContext:
    """Per-tenant facts scoring depends on; loaded once per refresh."""
    region: str
    workflow_keys: List[str] = field(default_factory=list)
    active_secret_providers: List[str] = field(default_factory=list)

    def has_workflow_for(self, slug: str) -> bool:
        return any(slug in key for key in self.workflow_keys)

    @property
    def has_n8n_secret(self) -> bool:
        return "n8n" in self.active_secret_providers

    @property
    def has_any_secret(self) -> bool:
        return bool(self.active_secret_providers)


# ============================================================================
# SCORING
# ============================================================================

def capability_fit(system: ExternalSystem):
    evidence = []
    matches = 0.0
    for feature in API_FEATURES:
        if getattr(system, feature):
            matches += 1
            evidence.append(_explain("capability", f"Supports {feature.replace('_', ' ')}", "positive"))
    for feature in CONNECTOR_FEATURES:
        if getattr(system, feature):
            matches += 0.5
            evidence.append(_explain("capability", f"Has {feature.replace('_', ' ')} integration", "positive"))

    total = len(API_FEATURES) + len(CONNECTOR_FEATURES)
    return matches / total * 100, evidence


def has_connector(system: ExternalSystem) -> bool:
    return any(getattr(system, feature) for feature in CONNECTOR_FEATURES)


def integration_readiness(context: TenantContext, system: ExternalSystem):
    evidence = []
    points = 0.0

    if context.has_workflow_for(system.slug):
        points += 1
        evidence.append(_explain("integration", "Active workflow mapping exists", "positive"))
    else:
        evidence.append(_explain("integration", "No workflow mapping configured", "negative"))

    if has_connector(system):
        points += 0.5
        evidence.append(_explain("integration", "Integration connector available", "positive"))

    if context.has_n8n_secret:
        points += 0.5
        evidence.append(_explain("integration", "Integration secret configured", "positive"))
    else:
        evidence.append(_explain("integration", "No integration secret found", "negative"))

    return points / READINESS_MAX * 100, evidence


def compliance_score(context: TenantContext, system: ExternalSystem):
    evidence = []
    matches = 0

    if context.region == "EU":
        if system.eu_data_residency:
            matches += 1
            evidence.append(_explain("compliance", "EU data residency available", "positive"))
        else:
            evidence.append(_explain(
                "compliance", "No EU data residency - review data transfer risk", "negative"
            ))
    else:
        matches += 1

    if system.gdpr_statement_url:
        matches += 1
        evidence.append(_explain("compliance", "GDPR documentation available", "positive"))

    if system.sso:
        matches += 1
        evidence.append(_explain("compliance", "SSO support available", "positive"))

    return matches / 3 * 100, evidence


def maturity_score(system: ExternalSystem):
    count = system.integration_count or 0
    if count > 5:
        return 100, [_explain("maturity", f"Rich integration ecosystem ({count} integrations)", "positive")]
    if count > 2:
        return 60, [_explain("maturity", f"Moderate integration support ({count} integrations)", "neutral")]
    return 30, [_explain("maturity", "Limited integration ecosystem", "neutral")]


def derive_suggestions(context: TenantContext, system: ExternalSystem) -> List[Dict[str, Any]]:
    suggestions = []

    if not context.has_workflow_for(system.slug) and (system.n8n_node or system.zapier_app):
        suggestions.append({
            "action": "add_mapping",
            "title": "Add Workflow Mapping",
            "description": f"Configure workflow mapping for {system.name}",
            "priority": "high",
            "metadata": {"system_slug": system.slug},
        })

    if not context.has_any_secret:
        suggestions.append({
            "action": "activate_secret",
            "title": "Activate Integration Secret",
            "description": "Set up authentication for external integrations",
            "priority": "high",
        })

    if context.region == "EU" and not system.eu_data_residency:
        suggestions.append({
            "action": "review_compliance",
            "title": "Review Data Residency",
            "description": "This system may not support EU data residency",
            "priority": "medium",
        })

    return suggestions


def detect_provider(system: ExternalSystem) -> str:
    if system.mcp_connector:
        return "mcp"
    if system.n8n_node:
        return "n8n"
    if system.pipedream_support:
        return "pipedream"
    return "native"


def score_system(context: TenantContext, system: ExternalSystem) -> Dict[str, Any]:
    """Weighted score for one system, with breakdown, explain items and suggestions."""
    cap, cap_evidence = capability_fit(system)
    ready, ready_evidence = integration_readiness(context, system)
    comp, comp_evidence = compliance_score(context, system)
    mat, mat_evidence = maturity_score(system)

    total = round_half_up(
        WEIGHTS["capability_fit"] * cap
        + WEIGHTS["integration_readiness"] * ready
        + WEIGHTS["compliance"] * comp
        + WEIGHTS["maturity"] * mat
    )

    return {
        "score": total,
        "breakdown": {
            "capability_fit": round_half_up(cap),
            "integration_readiness": round_half_up(ready),
            "compliance": round_half_up(comp),
            "maturity": round_half_up(mat),
            "total": total,
        },
        "explain": cap_evidence + ready_evidence + comp_evidence + mat_evidence,
        "suggestions": derive_suggestions(context, system),
    }


# ============================================================================
# SERVICE
# ============================================================================

class RecommendationService:
    def __init__(self, db: Session):
        self.db = db

    def load_context(self, tenant_id: str) -> TenantContext:
        tenant = self.db.query(Tenant).filter(Tenant.id == tenant_id).first()
        if not tenant:
            raise TenantNotFoundError(tenant_id)

        workflow_keys = [
            row.workflow_key for row in
            self.db.query(IntegrationRun.workflow_key).filter(
                IntegrationRun.tenant_id == tenant_id
            ).distinct().all()
        ]
        providers = [
            row.provider for row in
            self.db.query(McpTenantSecret.provider).filter(
                McpTenantSecret.tenant_id == tenant_id,
                McpTenantSecret.is_active == True  # noqa: E712
            ).distinct().all()
        ]
        return TenantContext(
            region=tenant.region,
            workflow_keys=workflow_keys,
            active_secret_providers=providers,
        )

    def installed_app_keys(self, tenant_id: str) -> List[str]:
        rows = self.db.query(AppDefinition.key).join(
            Application, Application.app_definition_id == AppDefinition.id
        ).filter(
            Application.tenant_id == tenant_id,
            Application.is_active == True  # noqa: E712
        ).order_by(AppDefinition.key).all()
        return [row.key for row in rows]

    def compute_for_app(
        self,
        tenant_id: str,
        app_key: str,
        context: Optional[TenantContext] = None,
        systems: Optional[List[ExternalSystem]] = None,
    ) -> List[Dict[str, Any]]:
        """Systems scoring at least the minimum for one app, best first."""
        context = context or self.load_context(tenant_id)
        if systems is None:
            systems = self.db.query(ExternalSystem).all()

        recommendations = []
        for system in systems:
            scored = score_system(context, system)
            if scored["score"] < settings.RECOMMENDATION_MIN_SCORE:
                continue
            scored.update({
                "app_key": app_key,
                "system_id": system.id,
                "provider": detect_provider(system),
                "workflow_key": None,
            })
            recommendations.append(scored)

        recommendations.sort(key=lambda rec: rec["score"], reverse=True)
        return recommendations

    def compute_for_tenant(self, tenant_id: str) -> Dict[str, List[Dict[str, Any]]]:
        context = self.load_context(tenant_id)
        systems = self.db.query(ExternalSystem).all()
        return {
            app_key: self.compute_for_app(tenant_id, app_key, context, systems)
            for app_key in self.installed_app_keys(tenant_id)
        }

    def persist_recommendations(self, tenant_id: str, app_key: str, recommendations: List[Dict[str, Any]]) -> int:
        """Replace an app's stored recommendations with the top entries."""
        self.db.query(IntegrationRecommendation).filter(
            IntegrationRecommendation.tenant_id == tenant_id,
            IntegrationRecommendation.app_key == app_key
        ).delete(synchronize_session=False)

        top = recommendations[:settings.RECOMMENDATION_PERSIST_LIMIT]
        for rec in top:
            self.db.add(IntegrationRecommendation(
                tenant_id=tenant_id,
                app_key=app_key,
                system_id=rec["system_id"],
                provider=rec["provider"],
                workflow_key=rec["workflow_key"],
                score=rec["score"],
                breakdown=rec["breakdown"],
                explain=rec["explain"],
                suggestions=rec["suggestions"],
            ))
        self.db.commit()
        return len(top)

    def get_recommendations(
        self,
        tenant_id: str,
        app_key: Optional[str] = None,
        providers: Optional[List[str]] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Stored recommendations grouped as [{app_key, items}]; limit applies before grouping."""
        query = self.db.query(IntegrationRecommendation, ExternalSystem).join(
            ExternalSystem, ExternalSystem.id == IntegrationRecommendation.system_id
        ).filter(
            IntegrationRecommendation.tenant_id == tenant_id
        )
        if app_key:
            query = query.filter(IntegrationRecommendation.app_key == app_key)
        if providers:
            query = query.filter(IntegrationRecommendation.provider.in_(providers))

        query = query.order_by(IntegrationRecommendation.score.desc())
        if limit:
            query = query.limit(limit)

        grouped: Dict[str, List[Dict[str, Any]]] = {}
        for rec, system in query.all():
            grouped.setdefault(rec.app_key, []).append({
                "id": rec.id,
                "system_id": rec.system_id,
                "system_name": system.name,
                "system_slug": system.slug,
                "vendor": system.vendor_name,
                "provider": rec.provider,
                "workflow_key": rec.workflow_key,
                "score": rec.score,
                "breakdown": rec.breakdown,
                "explain": rec.explain,
                "suggestions": rec.suggestions,
                "updated_at": rec.updated_at,
            })

        return [{"app_key": key, "items": items} for key, items in grouped.items()]

    def get_matrix(self, tenant_id: str, app_keys: Optional[List[str]] = None) -> List[Dict[str, Any]]:
        """System x app score matrix from stored rows."""
        query = self.db.query(IntegrationRecommendation).filter(
            IntegrationRecommendation.tenant_id == tenant_id
        )
        if app_keys:
            query = query.filter(IntegrationRecommendation.app_key.in_(app_keys))
        recs = query.order_by(IntegrationRecommendation.score.desc()).all()

        system_ids = {rec.system_id for rec in recs}
        names = {}
        if system_ids:
            names = dict(
                self.db.query(ExternalSystem.id, ExternalSystem.name).filter(
                    ExternalSystem.id.in_(system_ids)
                ).all()
            )

        rows: Dict[str, Dict[str, Any]] = {}
        for rec in recs:
            row = rows.setdefault(rec.system_id, {
                "system_id": rec.system_id,
                "system_name": names.get(rec.system_id, "Unknown"),
                "scores_by_app": {},
            })
            row["scores_by_app"][rec.app_key] = rec.score

        return list(rows.values())

    def refresh(self, tenant_id: str, app_keys: Optional[List[str]] = None) -> int:
        """Recompute and store recommendations; returns the number of apps refreshed."""
        installed = self.installed_app_keys(tenant_id)
        selected = [key for key in installed if not app_keys or key in app_keys]
        if not selected:
            logger.info(f"No installed apps to refresh for tenant {tenant_id}")
            return 0

        context = self.load_context(tenant_id)
        systems = self.db.query(ExternalSystem).all()
        for app_key in selected:
            recs = self.compute_for_app(tenant_id, app_key, context, systems)
            stored = self.persist_recommendations(tenant_id, app_key, recs)
            logger.info(f"Stored {stored} recommendations for {app_key}", extra={"tenant_id": tenant_id})

        return len(selected)
