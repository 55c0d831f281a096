"""
Role Service

Grants, revokes and reads scoped role assignments, and builds the
read-only role overview.

A grant is (user, role, scope_type, scope_id). Platform grants have no
scope_id; every other scope names the tenant/company/project/app it
applies to.
"""
from typing import Any, Dict, Iterable, List, Optional
from sqlalchemy.orm import Session

from portal.models.user import (
    User,
    UserRole,
    AppRole,
    RoleScope,
    PLATFORM_ADMIN_ROLES,
    TENANT_ADMIN_ROLES,
    ROLE_LABELS,
    SCOPE_LABELS,
)
from portal.models.tenant import Tenant
from portal.models.company import Company
from portal.models.project import Project
from portal.models.app_catalog import AppDefinition
from portal.core.exceptions import (
    DuplicateRecordError,
    InvalidInputError,
    PermissionDenied,
)
from portal.utils.logging import get_logger, log_security_event

logger = get_logger(__name__)

# Distinguishes "no scope_id filter" from "scope_id IS NULL"
UNSET = object()

OWNER_ROLES = (AppRole.PLATFORM_OWNER, AppRole.TENANT_OWNER, AppRole.PROJECT_OWNER)
ADMIN_ROLES = (
    AppRole.PLATFORM_SUPPORT,
    AppRole.TENANT_ADMIN,
    AppRole.SECURITY_ADMIN,
    AppRole.APP_ADMIN,
)

UNKNOWN_NAME = "Unknown name"


def short_id(value: str) -> str:
    """Fallback display name for a scope id that could not be resolved."""
    return f"{value[:8]}..."


def badge_variant(role: AppRole) -> str:
    if role in OWNER_ROLES:
        return "default"
    if role in ADMIN_ROLES:
        return "secondary"
    return "outline"


def _scope_filter(query, scope_id):
    if scope_id is None:
        return query.filter(UserRole.scope_id.is_(None))
    return query.filter(UserRole.scope_id == scope_id)


class RoleService:
    """Role assignments for one database session."""

    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------
    # Grants
    # ------------------------------------------------------------------

    def _check_grant(
        self,
        user_id: str,
        role: AppRole,
        scope_type: RoleScope,
        scope_id: Optional[str],
    ) -> None:
        if scope_type == RoleScope.PLATFORM and scope_id is not None:
            raise InvalidInputError("Platform roles cannot have a scope_id")
        if scope_type != RoleScope.PLATFORM and not scope_id:
            raise InvalidInputError(f"scope_id is required for {scope_type.value} roles")

        if self.db.query(User.id).filter(User.id == user_id).first() is None:
            raise InvalidInputError(f"Unknown user: {user_id}")

        if self._role_query(user_id, role, scope_type, scope_id).first():
            raise DuplicateRecordError("User already has this role")

    def _role_query(self, user_id, role, scope_type, scope_id):
        return _scope_filter(
            self.db.query(UserRole).filter(
                UserRole.user_id == user_id,
                UserRole.role == role,
                UserRole.scope_type == scope_type,
            ),
            scope_id,
        )

    def grant_role(
        self,
        user_id: str,
        role: AppRole,
        scope_type: RoleScope,
        scope_id: Optional[str] = None,
        granted_by: Optional[str] = None,
    ) -> UserRole:
        self._check_grant(user_id, role, scope_type, scope_id)

        user_role = UserRole(
            user_id=user_id,
            role=role,
            scope_type=scope_type,
            scope_id=scope_id,
            granted_by=granted_by,
        )
        self.db.add(user_role)
        self.db.commit()
        self.db.refresh(user_role)

        logger.info(
            f"Role granted: {role.value}@{scope_type.value}:{scope_id} to {user_id} by {granted_by}"
        )
        return user_role

    def revoke_role(
        self,
        user_id: str,
        role: AppRole,
        scope_type: RoleScope,
        scope_id: Optional[str] = None,
    ) -> bool:
        deleted = self._role_query(user_id, role, scope_type, scope_id).delete(synchronize_session=False)
        self.db.commit()

        if deleted:
            logger.info(f"Role revoked: {role.value}@{scope_type.value}:{scope_id} from {user_id}")
        return deleted > 0

    def update_role(
        self,
        user_id: str,
        old_role: AppRole,
        new_role: AppRole,
        scope_type: RoleScope,
        scope_id: Optional[str] = None,
        granted_by: Optional[str] = None,
    ) -> UserRole:
        """Swap one role for another in the same scope, in a single commit."""
        self._check_grant(user_id, new_role, scope_type, scope_id)

        user_role = UserRole(
            user_id=user_id,
            role=new_role,
            scope_type=scope_type,
            scope_id=scope_id,
            granted_by=granted_by,
        )
        try:
            self._role_query(user_id, old_role, scope_type, scope_id).delete(synchronize_session=False)
            self.db.add(user_role)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(user_role)

        logger.info(
            f"Role updated: {old_role.value} -> {new_role.value}@{scope_type.value}:{scope_id} "
            f"for {user_id} by {granted_by}"
        )
        return user_role

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _ensure_can_read(self, viewer_id: str, user_id: str) -> None:
        if viewer_id == user_id or self.is_platform_admin(viewer_id):
            return
        log_security_event(
            "access_denied",
            {"user_id": viewer_id, "target_user_id": user_id, "resource": "user_roles"},
            logger
        )
        raise PermissionDenied("Access denied")

    def get_user_roles(
        self,
        viewer_id: str,
        user_id: str,
        scope_type: Optional[RoleScope] = None,
        scope_id: Any = UNSET,
    ) -> List[UserRole]:
        """
        Roles held by a user, newest first.

        Only the user themself or a platform admin may read them. Passing
        scope_id=None restricts to grants without a scope id.
        """
        self._ensure_can_read(viewer_id, user_id)

        query = self.db.query(UserRole).filter(UserRole.user_id == user_id)
        if scope_type is not None:
            query = query.filter(UserRole.scope_type == scope_type)
        if scope_id is not UNSET:
            query = _scope_filter(query, scope_id)

        return query.order_by(UserRole.created_at.desc()).all()

    def get_user_roles_by_scope(self, viewer_id: str, user_id: str) -> Dict[str, List[UserRole]]:
        grouped: Dict[str, List[UserRole]] = {scope.value: [] for scope in RoleScope}
        for user_role in self.get_user_roles(viewer_id, user_id):
            grouped[user_role.scope_type.value].append(user_role)
        return grouped

    def has_role(
        self,
        user_id: str,
        role: AppRole,
        scope_type: RoleScope,
        scope_id: Optional[str] = None,
    ) -> bool:
        query = _scope_filter(
            self.db.query(UserRole.id).filter(
                UserRole.user_id == user_id,
                UserRole.role == role,
                UserRole.scope_type == scope_type,
            ),
            scope_id,
        )
        return query.first() is not None

    def _has_any(self, user_id: str, roles: Iterable[AppRole], scope_type: RoleScope,
                 scope_id: Any = UNSET) -> bool:
        query = self.db.query(UserRole.id).filter(
            UserRole.user_id == user_id,
            UserRole.role.in_(list(roles)),
            UserRole.scope_type == scope_type,
        )
        if scope_id is not UNSET:
            query = _scope_filter(query, scope_id)
        return query.first() is not None

    def has_any_role_in_company(self, user_id: str, company_id: str) -> bool:
        return self.db.query(UserRole.id).filter(
            UserRole.user_id == user_id,
            UserRole.scope_type == RoleScope.COMPANY,
            UserRole.scope_id == company_id,
        ).first() is not None

    def has_any_role_in_tenant(self, user_id: str, tenant_id: str) -> bool:
        return self.db.query(UserRole.id).filter(
            UserRole.user_id == user_id,
            UserRole.scope_type == RoleScope.TENANT,
            UserRole.scope_id == tenant_id,
        ).first() is not None

    def get_tenant_roles(self, user_id: str, tenant_id: str) -> List[AppRole]:
        rows = self.db.query(UserRole.role).filter(
            UserRole.user_id == user_id,
            UserRole.scope_type == RoleScope.TENANT,
            UserRole.scope_id == tenant_id,
        ).all()
        return [row.role for row in rows]

    def get_users_in_scope(self, scope_type: RoleScope, scope_id: Optional[str] = None) -> List[UserRole]:
        query = _scope_filter(
            self.db.query(UserRole).filter(UserRole.scope_type == scope_type),
            scope_id,
        )
        return query.order_by(UserRole.created_at.desc()).all()

    def is_platform_admin(self, user_id: str) -> bool:
        return self._has_any(user_id, PLATFORM_ADMIN_ROLES, RoleScope.PLATFORM)

    def is_tenant_admin(self, user_id: str, tenant_id: Optional[str] = None) -> bool:
        """Tenant owner/admin; in a specific tenant when tenant_id is given."""
        scope_id = tenant_id if tenant_id is not None else UNSET
        return self._has_any(user_id, TENANT_ADMIN_ROLES, RoleScope.TENANT, scope_id)

    def is_company_admin(self, user_id: str, company_id: str) -> bool:
        return self._has_any(
            user_id,
            (AppRole.TENANT_OWNER, AppRole.TENANT_ADMIN, AppRole.PROJECT_OWNER),
            RoleScope.COMPANY,
            company_id,
        )

    # ------------------------------------------------------------------
    # Overview
    # ------------------------------------------------------------------

    def _resolve_scope_names(self, roles: List[UserRole]) -> Dict[tuple, str]:
        """One lookup per scope type for every scope id in `roles`."""
        ids_by_scope: Dict[RoleScope, set] = {}
        for user_role in roles:
            if user_role.scope_id:
                ids_by_scope.setdefault(user_role.scope_type, set()).add(user_role.scope_id)

        lookups = {
            RoleScope.TENANT: (Tenant.id, Tenant.name),
            RoleScope.COMPANY: (Company.id, Company.name),
            RoleScope.PROJECT: (Project.id, Project.title),
            RoleScope.APP: (AppDefinition.id, AppDefinition.name),
        }

        names: Dict[tuple, str] = {}
        for scope_type, ids in ids_by_scope.items():
            if scope_type not in lookups:
                continue
            id_column, name_column = lookups[scope_type]
            rows = self.db.query(id_column, name_column).filter(id_column.in_(ids)).all()
            for row_id, row_name in rows:
                names[(scope_type, row_id)] = row_name
        return names

    def get_roles_overview(
        self,
        tenant_id: Optional[str] = None,
        scope_filter: Optional[RoleScope] = None,
    ) -> Dict[str, Any]:
        """
        Users with their roles grouped by scope and scope ids resolved
        to display names.

        With tenant_id, only users holding at least one role in that tenant
        are listed. Three queries plus one per scope type; no per-user
        fan-out.
        """
        user_query = self.db.query(User)
        if tenant_id is not None:
            member_ids = self.db.query(UserRole.user_id).filter(
                UserRole.scope_type == RoleScope.TENANT,
                UserRole.scope_id == tenant_id,
            )
            user_query = user_query.filter(User.id.in_(member_ids))
        users = user_query.all()

        user_ids = [user.id for user in users]
        roles = []
        if user_ids:
            roles = self.db.query(UserRole).filter(
                UserRole.user_id.in_(user_ids)
            ).order_by(UserRole.created_at.desc()).all()

        names = self._resolve_scope_names(roles)

        roles_by_user: Dict[str, List[UserRole]] = {}
        for user_role in roles:
            roles_by_user.setdefault(user_role.user_id, []).append(user_role)

        entries = []
        for user in users:
            user_roles = roles_by_user.get(user.id, [])
            if scope_filter is not None and not any(r.scope_type == scope_filter for r in user_roles):
                continue

            grouped: Dict[str, List[Dict[str, Any]]] = {}
            for user_role in user_roles:
                if user_role.scope_id:
                    scope_name = names.get(
                        (user_role.scope_type, user_role.scope_id),
                        short_id(user_role.scope_id)
                    )
                else:
                    scope_name = SCOPE_LABELS[user_role.scope_type]

                grouped.setdefault(user_role.scope_type.value, []).append({
                    "id": user_role.id,
                    "role": user_role.role.value,
                    "role_label": ROLE_LABELS[user_role.role],
                    "scope_type": user_role.scope_type.value,
                    "scope_label": SCOPE_LABELS[user_role.scope_type],
                    "scope_id": user_role.scope_id,
                    "scope_name": scope_name,
                    "badge_variant": badge_variant(user_role.role),
                    "created_at": user_role.created_at,
                })

            entries.append({
                "user_id": user.id,
                "email": user.email,
                "full_name": user.full_name or UNKNOWN_NAME,
                "roles_by_scope": grouped,
                "role_count": len(user_roles),
            })

        entries.sort(key=lambda entry: entry["full_name"].lower())

        return {"users": entries, "count": len(entries)}
