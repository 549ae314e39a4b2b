"""
Platform-level modules for multi-tenant enforcement and security.

- tenant_context: Per-request tenant resolution and request context
- tenant_directory: Cached tenant lookups
- rbac: Role checks for routes and services
- errors: Consistent error handling
- logging: Tenant-aware log records
"""
