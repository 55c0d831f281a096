"""
Role grants, reads and the role overview.
"""
import pytest

from portal.core.exceptions import DuplicateRecordError, InvalidInputError, PermissionDenied
from portal.models.company import Company
from portal.models.user import AppRole, RoleScope, UserRole
from portal.services.role_service import RoleService, badge_variant, short_id

from conftest import auth_headers, grant, make_user


@pytest.fixture
def company(db, seed):
    company = Company(tenant_id=seed.acme.id, name="Fjord Fisk AS", org_number="912345678")
    db.add(company)
    db.commit()
    return company


@pytest.fixture
def globex_company(db, seed):
    company = Company(tenant_id=seed.globex.id, name="Globex Subsidiary")
    db.add(company)
    db.commit()
    return company


class TestRoleService:
    def test_grant_and_has_role(self, db, seed, company):
        roles = RoleService(db)
        user_role = roles.grant_role(
            seed.viewer.id, AppRole.ANALYST, RoleScope.COMPANY, company.id, granted_by=seed.owner.id
        )
        assert user_role.granted_by == seed.owner.id
        assert roles.has_role(seed.viewer.id, AppRole.ANALYST, RoleScope.COMPANY, company.id)
        assert roles.has_any_role_in_company(seed.viewer.id, company.id)
        assert not roles.has_any_role_in_company(seed.contributor.id, company.id)

    def test_scope_rules(self, db, seed, company):
        roles = RoleService(db)
        with pytest.raises(InvalidInputError):
            roles.grant_role(seed.viewer.id, AppRole.PLATFORM_SUPPORT, RoleScope.PLATFORM, company.id)
        with pytest.raises(InvalidInputError):
            roles.grant_role(seed.viewer.id, AppRole.ANALYST, RoleScope.COMPANY, None)

    def test_unknown_user(self, db, seed):
        with pytest.raises(InvalidInputError):
            RoleService(db).grant_role("missing", AppRole.VIEWER, RoleScope.TENANT, seed.acme.id)

    def test_duplicate_grant(self, db, seed):
        with pytest.raises(DuplicateRecordError):
            RoleService(db).grant_role(seed.owner.id, AppRole.TENANT_OWNER, RoleScope.TENANT, seed.acme.id)

    def test_revoke(self, db, seed):
        roles = RoleService(db)
        assert roles.revoke_role(seed.viewer.id, AppRole.VIEWER, RoleScope.TENANT, seed.acme.id) is True
        assert roles.revoke_role(seed.viewer.id, AppRole.VIEWER, RoleScope.TENANT, seed.acme.id) is False
        assert not roles.has_any_role_in_tenant(seed.viewer.id, seed.acme.id)

    def test_update_role(self, db, seed):
        roles = RoleService(db)
        updated = roles.update_role(
            seed.viewer.id, AppRole.VIEWER, AppRole.ANALYST, RoleScope.TENANT, seed.acme.id
        )
        assert updated.role == AppRole.ANALYST
        assert roles.get_tenant_roles(seed.viewer.id, seed.acme.id) == [AppRole.ANALYST]

    def test_failed_update_keeps_old_role(self, db, seed):
        grant(db, seed.contributor, AppRole.ANALYST, RoleScope.TENANT, seed.acme.id)
        db.commit()
        roles = RoleService(db)

        with pytest.raises(DuplicateRecordError):
            roles.update_role(
                seed.contributor.id, AppRole.CONTRIBUTOR, AppRole.ANALYST, RoleScope.TENANT, seed.acme.id
            )
        with pytest.raises(InvalidInputError):
            roles.update_role("missing", AppRole.VIEWER, AppRole.ANALYST, RoleScope.TENANT, seed.acme.id)

        db.expire_all()
        assert roles.has_role(seed.contributor.id, AppRole.CONTRIBUTOR, RoleScope.TENANT, seed.acme.id)
        assert sorted(r.value for r in roles.get_tenant_roles(seed.contributor.id, seed.acme.id)) == [
            "analyst",
            "contributor",
        ]

    def test_admin_checks(self, db, seed):
        roles = RoleService(db)
        assert roles.is_platform_admin(seed.platform.id)
        assert not roles.is_platform_admin(seed.owner.id)
        assert roles.is_tenant_admin(seed.owner.id, seed.acme.id)
        assert not roles.is_tenant_admin(seed.owner.id, seed.globex.id)
        assert roles.is_tenant_admin(seed.globex_admin.id)
        assert not roles.is_tenant_admin(seed.contributor.id)

    def test_company_admin(self, db, seed, company):
        grant(db, seed.contributor, AppRole.PROJECT_OWNER, RoleScope.COMPANY, company.id)
        db.commit()
        roles = RoleService(db)
        assert roles.is_company_admin(seed.contributor.id, company.id)
        assert not roles.is_company_admin(seed.viewer.id, company.id)

    def test_users_in_scope(self, db, seed):
        members = RoleService(db).get_users_in_scope(RoleScope.TENANT, seed.acme.id)
        assert {member.user_id for member in members} == {
            seed.owner.id, seed.contributor.id, seed.viewer.id
        }

    def test_read_own_roles_only(self, db, seed):
        roles = RoleService(db)
        assert len(roles.get_user_roles(seed.viewer.id, seed.viewer.id)) == 1
        with pytest.raises(PermissionDenied):
            roles.get_user_roles(seed.viewer.id, seed.owner.id)
        # Platform admins may read anyone
        assert len(roles.get_user_roles(seed.platform.id, seed.owner.id)) == 1

    def test_scope_id_none_means_unscoped(self, db, seed):
        roles = RoleService(db)
        unscoped = roles.get_user_roles(seed.platform.id, seed.platform.id, scope_id=None)
        assert [r.scope_type for r in unscoped] == [RoleScope.PLATFORM]
        assert roles.get_user_roles(seed.owner.id, seed.owner.id, scope_id=None) == []

    def test_by_scope_has_every_scope_key(self, db, seed):
        grouped = RoleService(db).get_user_roles_by_scope(seed.owner.id, seed.owner.id)
        assert set(grouped) == {"platform", "tenant", "company", "project", "app"}
        assert len(grouped["tenant"]) == 1
        assert grouped["company"] == []


class TestRoleOverview:
    def test_tenant_overview(self, db, seed, company):
        grant(db, seed.viewer, AppRole.ANALYST, RoleScope.COMPANY, company.id)
        db.commit()

        overview = RoleService(db).get_roles_overview(tenant_id=seed.acme.id)
        assert overview["count"] == 3
        assert [u["full_name"] for u in overview["users"]] == [
            "Carl Contributor", "Olivia Owner", "Vera Viewer"
        ]

        vera = overview["users"][2]
        assert vera["role_count"] == 2
        company_role = vera["roles_by_scope"]["company"][0]
        assert company_role["scope_name"] == "Fjord Fisk AS"
        assert company_role["role_label"] == "Analyst"
        assert company_role["scope_label"] == "Company"
        assert company_role["badge_variant"] == "outline"
        assert vera["roles_by_scope"]["tenant"][0]["scope_name"] == "Acme AS"

    def test_platform_overview(self, db, seed):
        overview = RoleService(db).get_roles_overview()
        assert overview["count"] == 5

        pat = next(u for u in overview["users"] if u["email"] == "ops@portalhq.com")
        platform_role = pat["roles_by_scope"]["platform"][0]
        assert platform_role["scope_id"] is None
        assert platform_role["scope_name"] == "Platform"
        assert platform_role["badge_variant"] == "default"

    def test_unresolved_names(self, db, seed):
        nameless = make_user(db, "nameless@acme.no")
        grant(db, nameless, AppRole.VIEWER, RoleScope.TENANT, seed.acme.id)
        grant(db, nameless, AppRole.ANALYST, RoleScope.PROJECT, "0badc0de-0000-0000-0000-000000000000")
        db.commit()

        overview = RoleService(db).get_roles_overview(tenant_id=seed.acme.id)
        entry = next(u for u in overview["users"] if u["email"] == "nameless@acme.no")
        assert entry["full_name"] == "Unknown name"
        assert entry["roles_by_scope"]["project"][0]["scope_name"] == "0badc0de..."

    def test_scope_filter(self, db, seed, company):
        grant(db, seed.viewer, AppRole.ANALYST, RoleScope.COMPANY, company.id)
        db.commit()

        overview = RoleService(db).get_roles_overview(
            tenant_id=seed.acme.id, scope_filter=RoleScope.COMPANY
        )
        assert [u["email"] for u in overview["users"]] == ["viewer@acme.no"]

    def test_helpers(self):
        assert short_id("1234567890") == "12345678..."
        assert badge_variant(AppRole.TENANT_OWNER) == "default"
        assert badge_variant(AppRole.SECURITY_ADMIN) == "secondary"
        assert badge_variant(AppRole.VIEWER) == "outline"


class TestRoleEndpoints:
    def test_overview_requires_admin(self, client, seed):
        response = client.get("/api/v1/roles/overview", headers=auth_headers(seed.contributor, seed.acme))
        assert response.status_code == 403

    def test_overview_for_tenant_admin(self, client, seed):
        response = client.get("/api/v1/roles/overview", headers=auth_headers(seed.owner, seed.acme))
        assert response.status_code == 200
        assert response.json()["count"] == 3

    def test_overview_for_platform_admin(self, client, seed):
        response = client.get("/api/v1/roles/overview", headers=auth_headers(seed.platform, seed.acme))
        assert response.json()["count"] == 5

    def test_grant_in_own_tenant(self, client, db, seed, company):
        response = client.post(
            "/api/v1/roles",
            json={
                "user_id": seed.viewer.id,
                "role": "analyst",
                "scope_type": "company",
                "scope_id": company.id,
            },
            headers=auth_headers(seed.owner, seed.acme),
        )
        assert response.status_code == 201
        assert response.json()["granted_by"] == seed.owner.id

    def test_grant_outside_tenant_is_denied(self, client, seed, globex_company):
        response = client.post(
            "/api/v1/roles",
            json={
                "user_id": seed.viewer.id,
                "role": "analyst",
                "scope_type": "company",
                "scope_id": globex_company.id,
            },
            headers=auth_headers(seed.owner, seed.acme),
        )
        assert response.status_code == 403

    def test_platform_grant_needs_platform_admin(self, client, seed):
        body = {"user_id": seed.viewer.id, "role": "platform_support", "scope_type": "platform"}

        denied = client.post("/api/v1/roles", json=body, headers=auth_headers(seed.owner, seed.acme))
        assert denied.status_code == 403

        allowed = client.post("/api/v1/roles", json=body, headers=auth_headers(seed.platform, seed.acme))
        assert allowed.status_code == 201
        assert allowed.json()["scope_id"] is None

    def test_platform_grant_with_scope_id_is_invalid(self, client, seed):
        response = client.post(
            "/api/v1/roles",
            json={
                "user_id": seed.viewer.id,
                "role": "platform_support",
                "scope_type": "platform",
                "scope_id": seed.acme.id,
            },
            headers=auth_headers(seed.platform, seed.acme),
        )
        assert response.status_code == 422

    def test_duplicate_grant(self, client, seed):
        response = client.post(
            "/api/v1/roles",
            json={
                "user_id": seed.viewer.id,
                "role": "viewer",
                "scope_type": "tenant",
                "scope_id": seed.acme.id,
            },
            headers=auth_headers(seed.owner, seed.acme),
        )
        assert response.status_code == 409

    def test_revoke(self, client, db, seed):
        body = {
            "user_id": seed.viewer.id,
            "role": "viewer",
            "scope_type": "tenant",
            "scope_id": seed.acme.id,
        }
        headers = auth_headers(seed.owner, seed.acme)

        first = client.request("DELETE", "/api/v1/roles", json=body, headers=headers)
        assert first.json() == {"revoked": True}

        second = client.request("DELETE", "/api/v1/roles", json=body, headers=headers)
        assert second.json() == {"revoked": False}

    def test_update(self, client, db, seed):
        response = client.put(
            "/api/v1/roles",
            json={
                "user_id": seed.viewer.id,
                "role": "viewer",
                "new_role": "contributor",
                "scope_type": "tenant",
                "scope_id": seed.acme.id,
            },
            headers=auth_headers(seed.owner, seed.acme),
        )
        assert response.status_code == 200
        assert response.json()["role"] == "contributor"

        db.expire_all()
        roles = db.query(UserRole).filter(UserRole.user_id == seed.viewer.id).all()
        assert [r.role for r in roles] == [AppRole.CONTRIBUTOR]

    def test_user_roles_self_and_others(self, client, seed):
        own = client.get(
            f"/api/v1/roles/users/{seed.viewer.id}", headers=auth_headers(seed.viewer, seed.acme)
        )
        assert own.status_code == 200
        assert own.json()[0]["role"] == "viewer"

        other = client.get(
            f"/api/v1/roles/users/{seed.owner.id}", headers=auth_headers(seed.viewer, seed.acme)
        )
        assert other.status_code == 403

    def test_user_roles_by_scope(self, client, seed):
        response = client.get(
            f"/api/v1/roles/users/{seed.owner.id}/by-scope", headers=auth_headers(seed.owner, seed.acme)
        )
        body = response.json()
        assert body["user_id"] == seed.owner.id
        assert len(body["roles"]["tenant"]) == 1
