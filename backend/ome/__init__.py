"""
Ome identity backend.

Keycloak-backed authentication, per-request tenant resolution, tenant-scoped
persistence with audit stamping, and in-process user events.
"""
