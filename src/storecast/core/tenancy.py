"""Tenant scope resolution.

Manifesto:
    A store's data must never be visible to another store.  Instead of an
    ambient "current tenant" that concurrent operations could overwrite,
    the tenant travels as an explicit, immutable :class:`TenantScope`
    argument on every repository call.  Scoped repositories derive their
    ``tenant_id = ?`` predicate from ``scope.require_tenant()``, so a query
    without a tenant cannot be built: it raises ``ScopeViolation`` first.

    The single exception is the due-item scan, which accepts the explicit
    ``TenantScope.all_tenants()`` escape hatch.  Every other method treats
    that scope as a violation.

Architecture::

    inbound context ─► TenantScopeResolver.resolve() ─► TenantScope
       (X-Store-ID)                                      │
                                                         ▼
                      repository.method(scope, ...) ─► scope.require_tenant()
                                                         │
                            ┌────────────────────────────┴───────────┐
                            ▼                                        ▼
                 WHERE tenant_id = ?                     ScopeViolation
                                                (none / all-tenants scope)

Tags:
    tenancy, isolation, scoping, storecast

Doc-Types:
    api-reference, architecture-diagram
"""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum

from storecast.core.errors import ScopeViolation, ValidationError

STORE_ID_HEADER = "X-Store-ID"


class ScopeKind(str, Enum):
    TENANT = "tenant"
    NONE = "none"
    ALL_TENANTS = "all_tenants"


@dataclass(frozen=True)
class TenantScope:
    """Immutable tenant scope threaded through every data-access call.

    Build one with :meth:`for_tenant`, :meth:`none` or :meth:`all_tenants`.
    """

    kind: ScopeKind
    tenant_id: str | None = None

    @classmethod
    def for_tenant(cls, tenant_id: str) -> TenantScope:
        """Scope limited to one tenant."""
        if not tenant_id:
            raise ScopeViolation("Tenant scope requires a non-empty tenant id")
        return cls(ScopeKind.TENANT, tenant_id)

    @classmethod
    def none(cls) -> TenantScope:
        """No tenant resolved; valid only for tenant-agnostic operations."""
        return cls(ScopeKind.NONE)

    @classmethod
    def all_tenants(cls) -> TenantScope:
        """Cross-tenant escape hatch reserved for the due-item scan."""
        return cls(ScopeKind.ALL_TENANTS)

    @property
    def has_tenant(self) -> bool:
        return self.kind is ScopeKind.TENANT

    @property
    def is_all_tenants(self) -> bool:
        return self.kind is ScopeKind.ALL_TENANTS

    def require_tenant(self) -> str:
        """Return the tenant id or raise ``ScopeViolation``."""
        if self.kind is ScopeKind.TENANT and self.tenant_id:
            return self.tenant_id
        if self.kind is ScopeKind.ALL_TENANTS:
            raise ScopeViolation(
                "All-tenants scope is reserved for the due-item scan"
            )
        raise ScopeViolation("Operation requires a tenant but none was resolved")

    def __str__(self) -> str:
        if self.kind is ScopeKind.TENANT:
            return f"tenant:{self.tenant_id}"
        return self.kind.value


class TenantScopeResolver:
    """Resolves a :class:`TenantScope` from an inbound operation context.

    The context is any string mapping carrying request metadata, such as
    HTTP headers or job arguments.  Header names match case-insensitively.

    Example:
        >>> resolver = TenantScopeResolver()
        >>> resolver.resolve({"x-store-id": "9b2f..."}).has_tenant
        True
        >>> resolver.resolve({}).has_tenant
        False
    """

    def __init__(self, header: str = STORE_ID_HEADER) -> None:
        self.header = header

    def resolve(self, context: Mapping[str, str] | None) -> TenantScope:
        """Resolve the scope; a missing or blank header yields ``TenantScope.none()``.

        Raises:
            ValidationError: If the header is present but not a UUID.
        """
        raw = self._lookup(context or {})
        if raw is None or not raw.strip():
            return TenantScope.none()
        value = raw.strip()
        try:
            tenant_id = str(uuid.UUID(value))
        except ValueError as e:
            raise ValidationError(
                f"Invalid {self.header} header format",
                field=self.header,
                value=value,
                cause=e,
            ) from e
        return TenantScope.for_tenant(tenant_id)

    def require(self, context: Mapping[str, str] | None) -> TenantScope:
        """Resolve the scope and raise ``ScopeViolation`` if no tenant results."""
        scope = self.resolve(context)
        if not scope.has_tenant:
            raise ScopeViolation(f"{self.header} header is required")
        return scope

    def _lookup(self, context: Mapping[str, str]) -> str | None:
        wanted = self.header.lower()
        for key, value in context.items():
            if key.lower() == wanted:
                return value
        return None


__all__ = [
    "STORE_ID_HEADER",
    "ScopeKind",
    "TenantScope",
    "TenantScopeResolver",
]
