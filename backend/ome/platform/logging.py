"""
Tenant-aware log enrichment.

The authentication middleware sets the current tenant id in a ContextVar for
the duration of a request; TenantLogFilter copies it onto every log record as
``record.tenant_id`` so formatters can include it.

Usage:
    handler.addFilter(TenantLogFilter())
    logging.basicConfig(format="%(asctime)s - %(name)s - %(levelname)s - [%(tenant_id)s] %(message)s")
"""

import logging
from contextvars import ContextVar, Token
from typing import Optional

_current_tenant: ContextVar[Optional[str]] = ContextVar("ome_current_tenant", default=None)

NO_TENANT = "-"


def set_log_tenant(tenant_id: Optional[object]) -> Token:
    return _current_tenant.set(str(tenant_id) if tenant_id else None)


def reset_log_tenant(token: Token) -> None:
    _current_tenant.reset(token)


class TenantLogFilter(logging.Filter):
    """Adds tenant_id to every record. An explicit extra={"tenant_id": ...} wins."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "tenant_id", None):
            record.tenant_id = _current_tenant.get() or NO_TENANT
        return True


def install_tenant_filter(logger: Optional[logging.Logger] = None) -> None:
    """Attach TenantLogFilter to every handler of ``logger`` (root by default)."""
    target = logger or logging.getLogger()
    for handler in target.handlers:
        if not any(isinstance(f, TenantLogFilter) for f in handler.filters):
            handler.addFilter(TenantLogFilter())
