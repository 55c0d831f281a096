"""
Tenant Resolver

Maps an incoming host name to a tenant. Resolution order:
1. exact custom domain match (crm.acme.no)
2. subdomain of a multi-label host (acme.portal.local)
3. legacy host field (localhost:5173 in development)
"""
import re
from typing import List, Optional
from sqlalchemy.orm import Session

from portal.models.tenant import Tenant
from portal.utils.logging import get_logger

logger = get_logger(__name__)

# Bare subdomains that belong to the platform itself
RESERVED_SUBDOMAINS = ("www", "api", "app")

_DOMAIN_RE = re.compile(
    r"^(?:[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?\.)+[a-z0-9][a-z0-9-]{0,61}[a-z0-9]$",
    re.IGNORECASE
)
_SUBDOMAIN_RE = re.compile(r"^[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?$", re.IGNORECASE)


def strip_port(host: str) -> str:
    return host.split(":")[0]


def extract_subdomain(host: str) -> Optional[str]:
    """
    Extract the tenant subdomain from a host name.

    - customer.platform.com      -> customer
    - www.customer.platform.com  -> customer
    - www.platform.com           -> None
    - platform.com / localhost   -> None
    """
    hostname = strip_port(host).lower()
    parts = hostname.split(".")

    if len(parts) < 3:
        return None

    subdomain = parts[0]
    if subdomain == "www":
        if len(parts) >= 4:
            subdomain = parts[1]
        else:
            return None

    if subdomain in RESERVED_SUBDOMAINS:
        return None
    return subdomain


def is_valid_domain(domain: str) -> bool:
    return bool(_DOMAIN_RE.match(domain or ""))


def is_valid_subdomain(subdomain: str) -> bool:
    return bool(_SUBDOMAIN_RE.match(subdomain or ""))


def get_tenant_hosts(tenant: Tenant) -> List[str]:
    """All host names configured for a tenant."""
    hosts = []
    if tenant.domain:
        hosts.append(tenant.domain)
    if tenant.subdomain:
        hosts.append(tenant.subdomain)
    if tenant.host:
        hosts.append(tenant.host)
    return hosts


def resolve_tenant_by_host(db: Session, host: str) -> Optional[Tenant]:
    """Resolve a tenant from the Host header value."""
    if not host:
        return None

    hostname = strip_port(host).lower()

    tenant = db.query(Tenant).filter(Tenant.domain == hostname).first()
    if tenant:
        logger.debug(f"Tenant resolved by custom domain: {hostname} -> {tenant.id}")
        return tenant

    subdomain = extract_subdomain(hostname)
    if subdomain:
        tenant = db.query(Tenant).filter(Tenant.subdomain == subdomain).first()
        if tenant:
            logger.debug(f"Tenant resolved by subdomain: {subdomain} -> {tenant.id}")
            return tenant

    # Legacy host keeps the port (e.g. "localhost:5173")
    tenant = db.query(Tenant).filter(Tenant.host.in_([host, hostname])).first()
    if tenant:
        logger.debug(f"Tenant resolved by legacy host: {host} -> {tenant.id}")
        return tenant

    return None


def resolve_tenant_by_identifier(db: Session, identifier: str) -> Optional[Tenant]:
    """Resolve a tenant by slug, then subdomain, then id."""
    tenant = db.query(Tenant).filter(Tenant.slug == identifier).first()
    if tenant:
        return tenant

    tenant = db.query(Tenant).filter(Tenant.subdomain == identifier).first()
    if tenant:
        return tenant

    return db.query(Tenant).filter(Tenant.id == identifier).first()
