"""
Database Models

Every tenant-owned model carries tenant_id; queries must filter on it.
"""
from portal.models.tenant import Tenant
from portal.models.user import User, UserRole, AppRole, RoleScope
from portal.models.company import Company
from portal.models.project import Project, Task
from portal.models.app_catalog import AppDefinition, Application, Experience, ContentItem
from portal.models.integration import (
    ExternalSystem,
    IntegrationRun,
    TenantIntegration,
    IntegrationRecommendation,
)
from portal.models.secret import McpTenantSecret, SecretRevealToken, SecretAuditLog

__all__ = [
    "Tenant",
    "User",
    "UserRole",
    "AppRole",
    "RoleScope",
    "Company",
    "Project",
    "Task",
    "AppDefinition",
    "Application",
    "Experience",
    "ContentItem",
    "ExternalSystem",
    "IntegrationRun",
    "TenantIntegration",
    "IntegrationRecommendation",
    "McpTenantSecret",
    "SecretRevealToken",
    "SecretAuditLog",
]
