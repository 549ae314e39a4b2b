# API routes
from ome.api.routes import auth
from ome.api.routes import health
from ome.api.routes import realtime
from ome.api.routes import tenants
from ome.api.routes import users

__all__ = ["auth", "health", "realtime", "tenants", "users"]
