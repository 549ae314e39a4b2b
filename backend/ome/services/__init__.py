"""
Business logic services.
"""

from ome.services.realtime import TenantEventBroadcaster
from ome.services.user_service import UserService

__all__ = ["TenantEventBroadcaster", "UserService"]
