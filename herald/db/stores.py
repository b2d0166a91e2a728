"""Storage contracts and their SQLAlchemy implementations.

The services in :mod:`herald.db.services` only talk to the ``Protocol``
classes below, so any storage that honours them can be plugged in. The
``SQL*`` classes are the default implementations; each write commits on
its own, like the rest of Herald's services.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Protocol

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from herald.db.models import AlertGroup, AlertInstanceType, AlertPluginInstance, PluginDefine, WarningType
from herald.lib.exceptions import DuplicateInstanceNameError, MembershipWriteError
from herald.lib.membership import MembershipList


class InstanceStore(Protocol):
    async def insert(self, instance: AlertPluginInstance) -> AlertPluginInstance: ...

    async def update_by_id(
        self,
        instance_id: int,
        *,
        instance_name: str,
        warning_type: WarningType | None,
        plugin_instance_params: str,
    ) -> int: ...

    async def delete_by_id(self, instance_id: int) -> int: ...

    async def select_by_id(self, instance_id: int) -> AlertPluginInstance | None: ...

    async def exists_by_name(self, instance_name: str) -> bool: ...

    async def list_all(self) -> list[AlertPluginInstance]: ...

    async def list_page(
        self, page_no: int, page_size: int, search_val: str | None = None
    ) -> tuple[list[AlertPluginInstance], int]: ...

    async def list_ids_by_type(self, instance_type: AlertInstanceType) -> list[int]: ...


class GroupStore(Protocol):
    async def select_by_id(self, group_id: int) -> AlertGroup | None: ...

    async def update_members(self, group_id: int, members: MembershipList, expected_version: int) -> int: ...

    async def list_all_membership_lists(self) -> list[tuple[int, str]]: ...


class SchemaProvider(Protocol):
    async def list_all_definitions(self) -> list[PluginDefine]: ...

    async def get_definition(self, plugin_define_id: int) -> PluginDefine | None: ...


class SQLInstanceStore:
    """Alert plugin instances in the ``alert_plugin_instances`` table."""

    def __init__(self, db_session: AsyncSession) -> None:
        self.db_session = db_session

    async def insert(self, instance: AlertPluginInstance) -> AlertPluginInstance:
        """Persist a new instance.

        Raises:
            DuplicateInstanceNameError: If the name's unique constraint fails.
        """
        self.db_session.add(instance)
        try:
            await self.db_session.commit()
        except IntegrityError as exc:
            await self.db_session.rollback()
            raise DuplicateInstanceNameError(instance.instance_name) from exc
        await self.db_session.refresh(instance)
        return instance

    async def update_by_id(
        self,
        instance_id: int,
        *,
        instance_name: str,
        warning_type: WarningType | None,
        plugin_instance_params: str,
    ) -> int:
        """Update the mutable columns of one instance. Returns rows affected.

        ``instance_type`` and ``plugin_define_id`` are never touched.
        """
        stmt = (
            update(AlertPluginInstance)
            .where(AlertPluginInstance.id == instance_id)
            .values(
                instance_name=instance_name,
                warning_type=warning_type,
                plugin_instance_params=plugin_instance_params,
                updated_at=datetime.now(UTC),
            )
            .execution_options(synchronize_session=False)
        )
        try:
            result = await self.db_session.execute(stmt)
            await self.db_session.commit()
        except IntegrityError as exc:
            await self.db_session.rollback()
            raise DuplicateInstanceNameError(instance_name) from exc
        return result.rowcount

    async def delete_by_id(self, instance_id: int) -> int:
        try:
            result = await self.db_session.execute(
                delete(AlertPluginInstance)
                .where(AlertPluginInstance.id == instance_id)
                .execution_options(synchronize_session=False)
            )
            await self.db_session.commit()
        except SQLAlchemyError:
            await self.db_session.rollback()
            raise
        return result.rowcount

    async def select_by_id(self, instance_id: int) -> AlertPluginInstance | None:
        result = await self.db_session.execute(
            select(AlertPluginInstance)
            .where(AlertPluginInstance.id == instance_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def exists_by_name(self, instance_name: str) -> bool:
        result = await self.db_session.execute(
            select(AlertPluginInstance.id).where(AlertPluginInstance.instance_name == instance_name).limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def list_all(self) -> list[AlertPluginInstance]:
        result = await self.db_session.execute(
            select(AlertPluginInstance).order_by(AlertPluginInstance.id.asc())
        )
        return list(result.scalars().all())

    async def list_page(
        self, page_no: int, page_size: int, search_val: str | None = None
    ) -> tuple[list[AlertPluginInstance], int]:
        """Return one page of instances, most recently updated first, and the total."""
        count_query = select(func.count()).select_from(AlertPluginInstance)
        query = select(AlertPluginInstance)
        if search_val:
            name_filter = AlertPluginInstance.instance_name.contains(search_val, autoescape=True)
            count_query = count_query.where(name_filter)
            query = query.where(name_filter)

        total = (await self.db_session.execute(count_query)).scalar_one()

        query = (
            query
            .order_by(AlertPluginInstance.updated_at.desc(), AlertPluginInstance.id.desc())
            .offset((page_no - 1) * page_size)
            .limit(page_size)
        )
        result = await self.db_session.execute(query)
        return list(result.scalars().all()), total

    async def list_ids_by_type(self, instance_type: AlertInstanceType) -> list[int]:
        result = await self.db_session.execute(
            select(AlertPluginInstance.id)
            .where(AlertPluginInstance.instance_type == instance_type)
            .order_by(AlertPluginInstance.id.asc())
        )
        return list(result.scalars().all())


class SQLGroupStore:
    """Alert groups in the ``alert_groups`` table."""

    def __init__(self, db_session: AsyncSession) -> None:
        self.db_session = db_session

    async def select_by_id(self, group_id: int) -> AlertGroup | None:
        # Always reload: a retry after a lost version race needs the new version
        result = await self.db_session.execute(
            select(AlertGroup)
            .where(AlertGroup.id == group_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def update_members(self, group_id: int, members: MembershipList, expected_version: int) -> int:
        """Write a membership list if the group is still at ``expected_version``.

        Returns rows affected: 0 means the group is gone or was changed by
        someone else since it was read.
        """
        stmt = (
            update(AlertGroup)
            .where(AlertGroup.id == group_id, AlertGroup.version == expected_version)
            .values(
                alert_instance_ids=members.serialize(),
                version=expected_version + 1,
                updated_at=datetime.now(UTC),
            )
            .execution_options(synchronize_session=False)
        )
        try:
            result = await self.db_session.execute(stmt)
            await self.db_session.commit()
        except SQLAlchemyError as exc:
            await self.db_session.rollback()
            raise MembershipWriteError(group_id) from exc
        return result.rowcount

    async def list_all_membership_lists(self) -> list[tuple[int, str]]:
        result = await self.db_session.execute(
            select(AlertGroup.id, AlertGroup.alert_instance_ids).order_by(AlertGroup.id.asc())
        )
        return [(row.id, row.alert_instance_ids or "") for row in result.all()]


class SQLSchemaProvider:
    """Plugin definitions in the ``plugin_defines`` table."""

    def __init__(self, db_session: AsyncSession) -> None:
        self.db_session = db_session

    async def list_all_definitions(self) -> list[PluginDefine]:
        result = await self.db_session.execute(select(PluginDefine).order_by(PluginDefine.id.asc()))
        return list(result.scalars().all())

    async def get_definition(self, plugin_define_id: int) -> PluginDefine | None:
        result = await self.db_session.execute(select(PluginDefine).where(PluginDefine.id == plugin_define_id))
        return result.scalar_one_or_none()
