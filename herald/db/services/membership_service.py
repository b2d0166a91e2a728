"""Keeps alert group membership consistent with alert plugin instances.

Every GLOBAL instance must be listed in the configured global alert group,
and a NORMAL instance that any group still lists must not be deleted.
Membership lives in a text column on the group row, so each change is a
read-modify-write. Two things keep concurrent writers from losing updates:

* an in-process ``asyncio.Lock`` per group serializes writers sharing a
  :class:`GroupLockRegistry`;
* every write is conditional on the version that was read, and a write
  that loses the race re-reads and tries again (bounded), which covers
  writers in other processes.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from herald.db.models import AlertInstanceType, AlertPluginInstance
from herald.db.stores import GroupStore, InstanceStore
from herald.lib.exceptions import GroupNotFoundError, MembershipConflictError
from herald.lib.membership import MembershipList, contains_instance

logger = logging.getLogger(__name__)


class GroupLockRegistry:
    """One lock per alert group id, shared by every synchronizer of an app."""

    def __init__(self) -> None:
        self._locks: dict[int, asyncio.Lock] = {}

    def lock_for(self, group_id: int) -> asyncio.Lock:
        lock = self._locks.get(group_id)
        if lock is None:
            lock = self._locks[group_id] = asyncio.Lock()
        return lock


@dataclass
class DeleteCheck:
    """Whether an instance may be deleted, and which groups block it."""

    allowed: bool
    referencing_group_ids: list[int] = field(default_factory=list)


@dataclass
class ReconcileReport:
    added: list[int] = field(default_factory=list)
    removed: list[int] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.added or self.removed)


class MembershipSynchronizer:
    def __init__(
        self,
        group_store: GroupStore,
        instance_store: InstanceStore,
        *,
        global_group_id: int,
        retry_limit: int = 5,
        locks: GroupLockRegistry | None = None,
    ) -> None:
        self.group_store = group_store
        self.instance_store = instance_store
        self.global_group_id = global_group_id
        self.retry_limit = retry_limit
        self.locks = locks or GroupLockRegistry()

    async def _mutate(
        self,
        group_id: int,
        change: Callable[[MembershipList], bool],
    ) -> tuple[MembershipList, MembershipList]:
        """Apply ``change`` to a group's membership and persist it.

        ``change`` edits the list in place and returns whether anything
        changed; unchanged lists are not written.

        Returns:
            The membership before and after the change.

        Raises:
            GroupNotFoundError: If the group does not exist.
            MembershipConflictError: If every versioned write lost a race.
            MembershipWriteError: If the database rejected the write.
        """
        async with self.locks.lock_for(group_id):
            for attempt in range(1, self.retry_limit + 1):
                group = await self.group_store.select_by_id(group_id)
                if group is None:
                    raise GroupNotFoundError(group_id)

                before = group.members
                after = before.copy()
                if not change(after):
                    return before, after

                rows = await self.group_store.update_members(group_id, after, group.version)
                if rows:
                    return before, after

                logger.warning(
                    "Alert group %s changed while updating membership, retrying (attempt %s/%s)",
                    group_id, attempt, self.retry_limit,
                )

        raise MembershipConflictError(group_id, self.retry_limit)

    async def add_to_global_group(self, instance_id: int) -> None:
        await self._mutate(self.global_group_id, lambda members: members.add(instance_id))

    async def remove_from_global_group(self, instance_id: int) -> None:
        await self._mutate(self.global_group_id, lambda members: members.discard(instance_id))

    async def on_instance_created(self, instance: AlertPluginInstance) -> None:
        """Append a new GLOBAL instance to the global alert group."""
        if instance.instance_type is not AlertInstanceType.GLOBAL:
            return
        await self.add_to_global_group(instance.id)
        logger.info(
            "Added global alert plugin instance to global alert group automatically, name:%s",
            instance.instance_name,
        )

    async def on_instance_deleting(self, instance: AlertPluginInstance) -> DeleteCheck:
        """Repair or check group membership ahead of deleting an instance.

        GLOBAL instances are pruned from the global group and never blocked.
        NORMAL instances are blocked while any group references them, and
        nothing is modified in that case.
        """
        if instance.instance_type is AlertInstanceType.GLOBAL:
            await self.remove_from_global_group(instance.id)
            logger.info(
                "Removed global alert plugin instance from global alert group automatically, name:%s",
                instance.instance_name,
            )
            return DeleteCheck(allowed=True)

        group_ids = await self.find_referencing_groups(instance.id)
        if group_ids:
            return DeleteCheck(allowed=False, referencing_group_ids=group_ids)
        return DeleteCheck(allowed=True)

    async def find_referencing_groups(self, instance_id: int) -> list[int]:
        """Return the ids of every alert group whose membership lists ``instance_id``."""
        return [
            group_id
            for group_id, text in await self.group_store.list_all_membership_lists()
            if contains_instance(text, instance_id)
        ]

    async def validate_global_group(self) -> None:
        """Raise GroupNotFoundError unless the configured global group exists."""
        if await self.group_store.select_by_id(self.global_group_id) is None:
            raise GroupNotFoundError(self.global_group_id)

    async def reconcile_global_group(self) -> ReconcileReport:
        """Make the global group list exactly the live GLOBAL instances.

        Surviving ids keep their order; missing ones are appended by id.
        """
        live_ids = await self.instance_store.list_ids_by_type(AlertInstanceType.GLOBAL)
        live = set(live_ids)

        def change(members: MembershipList) -> bool:
            changed = False
            for instance_id in [i for i in members if i not in live]:
                changed |= members.discard(instance_id)
            for instance_id in sorted(live_ids):
                changed |= members.add(instance_id)
            return changed

        before, after = await self._mutate(self.global_group_id, change)
        report = ReconcileReport(
            added=[i for i in after if i not in before],
            removed=[i for i in before if i not in after],
        )
        if report.changed:
            logger.warning(
                "Reconciled global alert group %s: added %s, removed %s",
                self.global_group_id, report.added, report.removed,
            )
        return report
