"""
Tests for UserService: role checks, role assignment, events and soft delete.
"""

import uuid
from unittest.mock import AsyncMock

import pytest

from ome.events.dispatcher import EventDispatcher
from ome.events.user_events import UserCreatedEvent, UserDeletedEvent, UserUpdatedEvent
from ome.platform.errors import AuthenticationError, PermissionDeniedError
from ome.repositories.errors import DuplicateEntity, NotFound
from ome.services.user_service import UserService
from ome.tests.conftest import TENANT_A, TENANT_B


class RecordingDispatcher(EventDispatcher):
    def __init__(self):
        super().__init__()
        self.published = []

    async def publish(self, event):
        self.published.append(event)
        await super().publish(event)


@pytest.fixture
def recorder():
    return RecordingDispatcher()


@pytest.fixture
def make_service(db_session, make_context, recorder):
    def _make(**context_kwargs) -> UserService:
        return UserService(db_session, make_context(**context_kwargs), recorder)

    return _make


async def _create(service: UserService, username: str = "alice", roles=("OmeTechnician",)):
    return await service.create_user(
        keycloak_id=f"kc-{username}",
        username=username,
        email=f"{username}@acme.test",
        first_name=username.title(),
        roles=list(roles),
    )


class TestCreateUser:
    """User creation."""

    @pytest.mark.asyncio
    async def test_admin_creates_user_with_roles(self, make_service, recorder):
        service = make_service(user_id="admin-1")

        user = await _create(service, roles=["OmeTechnician", "NotARole", "OmeTrainee"])

        assert user.tenant_id == TENANT_A
        assert user.created_by == "admin-1"
        assert sorted(user.role_names) == ["OmeTechnician", "OmeTrainee"]
        assert [type(e) for e in recorder.published] == [UserCreatedEvent]
        event = recorder.published[0]
        assert event.user_id == user.id
        assert event.tenant_id == TENANT_A
        assert event.created_by == "admin-1"

    @pytest.mark.asyncio
    async def test_super_user_may_create(self, make_service):
        service = make_service(roles=("OmeSuperUser",))

        assert (await _create(service)).username == "alice"

    @pytest.mark.asyncio
    async def test_non_admin_forbidden(self, make_service, recorder):
        service = make_service(roles=("OmeTechnician",))

        with pytest.raises(PermissionDeniedError):
            await _create(service)

        assert recorder.published == []

    @pytest.mark.asyncio
    async def test_anonymous_unauthorized(self, make_service):
        service = make_service(user_id=None, roles=())

        with pytest.raises(AuthenticationError):
            await _create(service)

    @pytest.mark.asyncio
    async def test_duplicate_publishes_nothing(self, make_service, recorder):
        service = make_service()
        await _create(service)

        with pytest.raises(DuplicateEntity):
            await _create(service)

        assert len(recorder.published) == 1

    @pytest.mark.asyncio
    async def test_handler_failure_after_commit_keeps_user(self, db_session, make_context, session_factory):
        """Publication happens after commit; a failing handler does not undo the write."""
        dispatcher = EventDispatcher()
        dispatcher.subscribe(UserCreatedEvent, AsyncMock(side_effect=RuntimeError("boom")))
        service = UserService(db_session, make_context(), dispatcher)

        with pytest.raises(RuntimeError):
            await _create(service)

        async with session_factory() as other_session:
            users = await UserService(other_session, make_context(), EventDispatcher()).list_users()
        assert [u.username for u in users] == ["alice"]


class TestUpdateUser:
    """User updates."""

    @pytest.mark.asyncio
    async def test_update_fields_and_replace_roles(self, make_service, recorder):
        service = make_service(user_id="admin-1")
        user = await _create(service, roles=["OmeTechnician"])

        updated = await service.update_user(
            user.id,
            last_name="Liddell",
            is_active=False,
            roles=["OmeTechnicianManager"],
        )

        assert updated.last_name == "Liddell"
        assert updated.first_name == "Alice"
        assert updated.is_active is False
        assert updated.role_names == ["OmeTechnicianManager"]
        assert updated.last_modified_by == "admin-1"
        assert isinstance(recorder.published[-1], UserUpdatedEvent)

    @pytest.mark.asyncio
    async def test_roles_untouched_when_omitted(self, make_service):
        service = make_service()
        user = await _create(service, roles=["OmeTrainee"])

        updated = await service.update_user(user.id, first_name="Al")

        assert updated.role_names == ["OmeTrainee"]

    @pytest.mark.asyncio
    async def test_update_other_tenant_user_not_found(self, make_service):
        user = await _create(make_service(tenant_id=TENANT_B))

        with pytest.raises(NotFound):
            await make_service(tenant_id=TENANT_A).update_user(user.id, first_name="X")

    @pytest.mark.asyncio
    async def test_update_to_taken_username(self, make_service):
        service = make_service()
        await _create(service, "alice")
        bob = await _create(service, "bob")

        with pytest.raises(DuplicateEntity):
            await service.update_user(bob.id, username="alice")


class TestDeleteUser:
    """Logical delete."""

    @pytest.mark.asyncio
    async def test_delete_hides_user_and_roles(self, make_service, recorder):
        service = make_service(user_id="admin-1")
        user = await _create(service, roles=["OmeTechnician", "OmeTrainee"])

        await service.delete_user(user.id)

        assert user.is_deleted is True
        assert user.role_names == []
        assert all(role.is_deleted for role in user.roles)
        assert await service.list_users() == []
        with pytest.raises(NotFound):
            await service.get_user(user.id)
        event = recorder.published[-1]
        assert isinstance(event, UserDeletedEvent)
        assert event.deleted_by == "admin-1"

    @pytest.mark.asyncio
    async def test_delete_unknown_user(self, make_service):
        with pytest.raises(NotFound):
            await make_service().delete_user(uuid.uuid4())


class TestReads:
    """Reads are tenant-scoped and open to any authenticated caller."""

    @pytest.mark.asyncio
    async def test_list_is_ordered_and_paged(self, make_service):
        service = make_service()
        for name in ("carol", "alice", "bob"):
            await _create(service, name)

        assert [u.username for u in await service.list_users()] == ["alice", "bob", "carol"]
        assert [u.username for u in await service.list_users(limit=1, offset=1)] == ["bob"]
