"""Alert plugin instance lifecycle: create, update, delete and queries.

Every operation returns a :class:`~herald.lib.results.ServiceResult`;
permission, validation and consistency failures are reported as statuses
rather than raised.
"""

from __future__ import annotations

import logging
from typing import Any

from herald.auth.permissions import Authorizer, Principal
from herald.auth.roles import (
    ALERT_INSTANCE_CREATE,
    ALERT_INSTANCE_DELETE,
    ALERT_INSTANCE_MANAGE,
    ALERT_INSTANCE_UPDATE,
)
from herald.config import AlertsConfig
from herald.db.models import AlertInstanceType, AlertPluginInstance, WarningType
from herald.db.services.membership_service import GroupLockRegistry, MembershipSynchronizer
from herald.db.services.view_service import PageInfo, build_instance_views
from herald.db.stores import GroupStore, InstanceStore, SchemaProvider
from herald.lib.exceptions import (
    DuplicateInstanceNameError,
    GroupNotFoundError,
    HeraldError,
    MembershipConflictError,
    SchemaParseError,
)
from herald.lib.params import params_map_json
from herald.lib.results import ServiceResult, Status, failure, success

logger = logging.getLogger(__name__)


def _sync_failure_status(exc: HeraldError) -> Status:
    if isinstance(exc, GroupNotFoundError):
        return Status.GROUP_NOT_FOUND
    if isinstance(exc, MembershipConflictError):
        return Status.MEMBERSHIP_CONFLICT
    return Status.SAVE_ERROR


class AlertPluginInstanceService:
    def __init__(
        self,
        instance_store: InstanceStore,
        group_store: GroupStore,
        schema_provider: SchemaProvider,
        authorize: Authorizer,
        *,
        config: AlertsConfig | None = None,
        locks: GroupLockRegistry | None = None,
    ) -> None:
        config = config or AlertsConfig()
        self.instance_store = instance_store
        self.schema_provider = schema_provider
        self.authorize = authorize
        self.compensate_failed_sync = config.compensate_failed_sync
        self.synchronizer = MembershipSynchronizer(
            group_store,
            instance_store,
            global_group_id=config.global_alert_group_id,
            retry_limit=config.membership_retry_limit,
            locks=locks,
        )

    async def _dehydrate(self, plugin_define_id: int, raw_params: Any) -> ServiceResult | str:
        """Reduce submitted params against the plugin's schema.

        Returns the params JSON, or a failed result to hand back to the caller.
        """
        plugin_define = await self.schema_provider.get_definition(plugin_define_id)
        if plugin_define is None:
            logger.error("Alert plugin definition does not exist, pluginDefineId:%s", plugin_define_id)
            return failure(Status.PLUGIN_DEFINE_NOT_FOUND)
        try:
            return params_map_json(raw_params, plugin_define.field_schema)
        except SchemaParseError as exc:
            logger.error("Invalid alert plugin params, pluginDefineId:%s: %s", plugin_define_id, exc)
            return failure(Status.INVALID_PARAMS, str(exc))

    async def create(
        self,
        user: Principal | None,
        plugin_define_id: int,
        instance_name: str,
        instance_type: AlertInstanceType,
        warning_type: WarningType | None,
        plugin_instance_params: Any,
    ) -> ServiceResult:
        """Create an alert plugin instance.

        GLOBAL instances are also added to the global alert group. If that
        fails the new row is deleted again (when compensation is enabled and
        succeeds) or a PARTIAL_FAILURE is returned carrying the instance.
        """
        if not self.authorize(user, None, ALERT_INSTANCE_CREATE):
            return failure(Status.PERMISSION_DENIED)

        if await self.instance_store.exists_by_name(instance_name):
            logger.error("Plugin instance with the same name already exists, name:%s.", instance_name)
            return failure(Status.DUPLICATE_NAME)

        params = await self._dehydrate(plugin_define_id, plugin_instance_params)
        if isinstance(params, ServiceResult):
            return params

        instance = AlertPluginInstance(
            plugin_define_id=plugin_define_id,
            instance_name=instance_name,
            instance_type=instance_type,
            warning_type=warning_type,
            plugin_instance_params=params,
        )
        try:
            instance = await self.instance_store.insert(instance)
        except DuplicateInstanceNameError:
            logger.error("Plugin instance with the same name already exists, name:%s.", instance_name)
            return failure(Status.DUPLICATE_NAME)

        instance_id = instance.id
        try:
            await self.synchronizer.on_instance_created(instance)
        except HeraldError as exc:
            return await self._handle_failed_sync(instance_id, instance_name, exc)

        logger.info("Create alert plugin instance complete, name:%s", instance.instance_name)
        return success(instance)

    async def _handle_failed_sync(self, instance_id: int, instance_name: str, exc: HeraldError) -> ServiceResult:
        status = _sync_failure_status(exc)
        logger.error(
            "Global alert group update failed after creating alert plugin instance, instanceId:%s, name:%s: %s",
            instance_id, instance_name, exc,
        )

        if self.compensate_failed_sync:
            try:
                rows = await self.instance_store.delete_by_id(instance_id)
            except Exception:
                logger.error("Rolling back alert plugin instance %s failed", instance_id, exc_info=True)
            else:
                if rows:
                    logger.warning("Rolled back alert plugin instance creation, instanceId:%s", instance_id)
                    return failure(status, f"{status.message}: {exc}")

        # A failed group write rolls the session back and expires the inserted row
        instance = await self.instance_store.select_by_id(instance_id)
        return failure(
            Status.PARTIAL_FAILURE,
            f"{Status.PARTIAL_FAILURE.message}: {exc}",
            data={
                "instance": instance,
                "instance_created": True,
                "group_sync_failed": True,
                "reason": status.name,
            },
        )

    async def update(
        self,
        user: Principal | None,
        instance_id: int,
        instance_name: str,
        warning_type: WarningType | None,
        plugin_instance_params: Any,
    ) -> ServiceResult:
        """Update name, warning type and params. The instance type never changes."""
        if not self.authorize(user, instance_id, ALERT_INSTANCE_UPDATE):
            return failure(Status.PERMISSION_DENIED)

        existing = await self.instance_store.select_by_id(instance_id)
        if existing is None:
            logger.error("Update alert plugin instance error, instanceId:%s does not exist", instance_id)
            return failure(Status.SAVE_ERROR)

        params = await self._dehydrate(existing.plugin_define_id, plugin_instance_params)
        if isinstance(params, ServiceResult):
            return params

        try:
            rows = await self.instance_store.update_by_id(
                instance_id,
                instance_name=instance_name,
                warning_type=warning_type,
                plugin_instance_params=params,
            )
        except DuplicateInstanceNameError:
            logger.error("Plugin instance with the same name already exists, name:%s.", instance_name)
            return failure(Status.DUPLICATE_NAME)

        if not rows:
            logger.error("Update alert plugin instance error, instanceId:%s, name:%s", instance_id, instance_name)
            return failure(Status.SAVE_ERROR)

        logger.info("Update alert plugin instance complete, instanceId:%s, name:%s", instance_id, instance_name)
        return success(await self.instance_store.select_by_id(instance_id))

    async def delete(self, user: Principal | None, instance_id: int) -> ServiceResult:
        """Delete an instance after repairing or checking group membership.

        A NORMAL instance that any group still lists is refused before the
        permission check. Permission is always checked before anything is
        modified.
        """
        instance = await self.instance_store.select_by_id(instance_id)
        if instance is None:
            return failure(Status.NOT_FOUND)

        is_global = instance.instance_type is AlertInstanceType.GLOBAL

        if not is_global:
            check = await self.synchronizer.on_instance_deleting(instance)
            if not check.allowed:
                logger.warning(
                    "Delete alert plugin failed because alert group is using it, pluginId:%s, groups:%s.",
                    instance_id, check.referencing_group_ids,
                )
                return failure(
                    Status.ASSOCIATED_GROUP_EXISTS,
                    f"{Status.ASSOCIATED_GROUP_EXISTS.message}, alert groups:{check.referencing_group_ids}",
                )

        if not self.authorize(user, instance_id, ALERT_INSTANCE_DELETE):
            return failure(Status.PERMISSION_DENIED)

        if is_global:
            try:
                await self.synchronizer.on_instance_deleting(instance)
            except HeraldError as exc:
                logger.error("Delete alert plugin instance error, instanceId:%s: %s", instance_id, exc)
                status = _sync_failure_status(exc)
                return failure(status, f"{status.message}: {exc}")

        try:
            rows = await self.instance_store.delete_by_id(instance_id)
        except Exception:
            logger.error("Delete alert plugin instance error, instanceId:%s", instance_id, exc_info=True)
            if is_global:
                await self._restore_global_membership(instance_id)
            return failure(Status.SAVE_ERROR)

        if not rows:
            logger.error("Delete alert plugin instance error, instanceId:%s", instance_id)
            return failure(Status.NOT_FOUND)

        logger.info("Delete alert plugin instance complete, instanceId:%s", instance_id)
        return success()

    async def _restore_global_membership(self, instance_id: int) -> None:
        try:
            await self.synchronizer.add_to_global_group(instance_id)
        except HeraldError:
            logger.error(
                "Could not restore instance %s to the global alert group; run reconcile-global-group",
                instance_id, exc_info=True,
            )

    async def get(self, user: Principal | None, instance_id: int) -> ServiceResult:
        if not self.authorize(user, instance_id, ALERT_INSTANCE_MANAGE):
            return failure(Status.PERMISSION_DENIED)

        instance = await self.instance_store.select_by_id(instance_id)
        if instance is None:
            return failure(Status.NOT_FOUND)
        return success(instance)

    async def query_all(self) -> ServiceResult:
        instances = await self.instance_store.list_all()
        return success(await build_instance_views(self.schema_provider, instances))

    async def list_paging(self, search_val: str | None, page_no: int, page_size: int) -> ServiceResult:
        items, total = await self.instance_store.list_page(page_no, page_size, search_val)
        views = await build_instance_views(self.schema_provider, items)
        return success(PageInfo(total_list=views, total=total, page_no=page_no, page_size=page_size))

    async def verify_instance_name(self, instance_name: str) -> bool:
        """Return True if an instance with exactly this name exists."""
        return await self.instance_store.exists_by_name(instance_name)
