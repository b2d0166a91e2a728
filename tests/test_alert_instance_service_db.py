"""Lifecycle service tests over the SQLAlchemy stores and SQLite."""

import asyncio
from unittest.mock import patch

import pytest
from sqlalchemy import Update
from sqlalchemy.exc import OperationalError

from herald.auth.permissions import RoleAuthorizer
from herald.config import AlertsConfig
from herald.db.models import AlertGroup, AlertInstanceType, WarningType
from herald.db.services.alert_instance_service import AlertPluginInstanceService
from herald.db.services.membership_service import GroupLockRegistry
from herald.db.stores import SQLGroupStore, SQLInstanceStore, SQLSchemaProvider
from herald.lib.membership import MembershipList
from herald.lib.results import Status


def _service(session, locks=None, **alerts):
    return AlertPluginInstanceService(
        SQLInstanceStore(session),
        SQLGroupStore(session),
        SQLSchemaProvider(session),
        RoleAuthorizer(),
        config=AlertsConfig(**alerts),
        locks=locks or GroupLockRegistry(),
    )


async def _create_global(service, user, name):
    return await service.create(
        user, 1, name, AlertInstanceType.GLOBAL, WarningType.ALL, {"receivers": "ops@example.com"}
    )


def _group_writes_fail(session):
    """Make every UPDATE of alert_groups on ``session`` fail like a locked SQLite file."""
    execute = session.execute

    async def execute_or_fail(statement, *args, **kwargs):
        if isinstance(statement, Update) and statement.table.name == "alert_groups":
            raise OperationalError(str(statement), {}, Exception("database is locked"))
        return await execute(statement, *args, **kwargs)

    return patch.object(session, "execute", execute_or_fail)


@pytest.fixture
async def database(db_session_maker, plugin_define_factory):
    async with db_session_maker() as session:
        session.add_all([
            plugin_define_factory(),
            AlertGroup(id=1, group_name="default admin warning group", alert_instance_ids=""),
            AlertGroup(id=2, group_name="global alert group", alert_instance_ids="3,7"),
        ])
        await session.commit()
    return db_session_maker


async def _global_members(session_maker):
    async with session_maker() as session:
        group = await SQLGroupStore(session).select_by_id(2)
        return group.members


class TestGroupWriteDatabaseError:
    @pytest.mark.asyncio
    async def test_create_compensates(self, database, manager):
        async with database() as session:
            service = _service(session)
            with _group_writes_fail(session):
                result = await _create_global(service, manager, "pager")

            assert result.status is Status.SAVE_ERROR
            assert result.message.startswith(Status.SAVE_ERROR.message)
            assert await SQLInstanceStore(session).list_all() == []

        assert await _global_members(database) == MembershipList([3, 7])

    @pytest.mark.asyncio
    async def test_create_partial_failure_without_compensation(self, database, manager):
        async with database() as session:
            service = _service(session, compensate_failed_sync=False)
            with _group_writes_fail(session):
                result = await _create_global(service, manager, "pager")

            assert result.status is Status.PARTIAL_FAILURE
            assert result.data["reason"] == "SAVE_ERROR"
            assert result.data["group_sync_failed"] is True
            instance = result.data["instance"]
            assert instance.instance_name == "pager"
            assert [i.id for i in await SQLInstanceStore(session).list_all()] == [instance.id]

        assert instance.id not in await _global_members(database)

    @pytest.mark.asyncio
    async def test_global_delete_keeps_instance(self, database, manager):
        async with database() as session:
            service = _service(session)
            instance_id = (await _create_global(service, manager, "pager")).data.id
            with _group_writes_fail(session):
                result = await service.delete(manager, instance_id)

            assert result.status is Status.SAVE_ERROR
            assert await SQLInstanceStore(session).select_by_id(instance_id) is not None

        assert await _global_members(database) == MembershipList([3, 7, instance_id])


class TestConcurrentGlobalCreates:
    @pytest.mark.asyncio
    async def test_every_instance_joins_global_group(self, database, manager):
        """Each request has its own session and lock registry, like separate processes."""
        sessions = [database() for _ in range(6)]
        try:
            services = [_service(session, membership_retry_limit=20) for session in sessions]
            results = await asyncio.gather(*(
                _create_global(service, manager, f"pager-{n}") for n, service in enumerate(services)
            ))
        finally:
            for session in sessions:
                await session.close()

        assert all(result.ok for result in results), [result.status for result in results]
        created_ids = {result.data.id for result in results}
        members = await _global_members(database)
        assert list(members)[:2] == [3, 7]
        assert set(members) == {3, 7} | created_ids
        assert len(members) == 8
