"""Build list views of alert plugin instances."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any

from herald.db.models import AlertPluginInstance, PluginDefine
from herald.db.stores import SchemaProvider
from herald.lib.exceptions import SchemaParseError
from herald.lib.params import FieldDescriptor, hydrate, load_stored_params

logger = logging.getLogger(__name__)


@dataclass
class AlertPluginInstanceView:
    id: int
    plugin_define_id: int
    alert_plugin_name: str
    instance_name: str
    instance_type: str
    warning_type: str | None
    plugin_instance_params: list[FieldDescriptor]
    create_time: datetime | None
    update_time: datetime | None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class PageInfo:
    total_list: list[AlertPluginInstanceView]
    total: int
    page_no: int
    page_size: int

    @property
    def total_page(self) -> int:
        if self.page_size <= 0:
            return 0
        return (self.total + self.page_size - 1) // self.page_size

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_list": [view.to_dict() for view in self.total_list],
            "total": self.total,
            "page_no": self.page_no,
            "page_size": self.page_size,
            "total_page": self.total_page,
        }


def instance_record(instance: AlertPluginInstance) -> dict[str, Any]:
    """Raw record of one instance with its stored params decoded."""
    return {
        "id": instance.id,
        "plugin_define_id": instance.plugin_define_id,
        "instance_name": instance.instance_name,
        "instance_type": instance.instance_type.value,
        "warning_type": instance.warning_type.value if instance.warning_type else None,
        "plugin_instance_params": load_stored_params(instance.plugin_instance_params),
        "create_time": instance.created_at,
        "update_time": instance.updated_at,
    }


def build_instance_view(instance: AlertPluginInstance, plugin_define: PluginDefine) -> AlertPluginInstanceView:
    """Join one instance to its plugin definition, hydrating its params."""
    stored = load_stored_params(instance.plugin_instance_params)
    return AlertPluginInstanceView(
        id=instance.id,
        plugin_define_id=instance.plugin_define_id,
        alert_plugin_name=plugin_define.plugin_name,
        instance_name=instance.instance_name,
        instance_type=instance.instance_type.label,
        warning_type=instance.warning_type.label if instance.warning_type else None,
        plugin_instance_params=hydrate(stored, plugin_define.field_schema),
        create_time=instance.created_at,
        update_time=instance.updated_at,
    )


async def build_instance_views(
    schema_provider: SchemaProvider,
    instances: list[AlertPluginInstance],
) -> list[AlertPluginInstanceView]:
    """Build views for ``instances``, in order.

    Instances whose plugin definition no longer exists, or whose params or
    definition schema cannot be parsed, are left out of the result.
    """
    if not instances:
        return []

    definitions = {d.id: d for d in await schema_provider.list_all_definitions()}

    views = []
    orphaned = []
    unreadable = []
    for instance in instances:
        plugin_define = definitions.get(instance.plugin_define_id)
        if plugin_define is None:
            orphaned.append(instance.id)
            continue
        try:
            views.append(build_instance_view(instance, plugin_define))
        except SchemaParseError as exc:
            logger.debug("Cannot hydrate alert plugin instance %s: %s", instance.id, exc)
            unreadable.append(instance.id)

    if orphaned:
        logger.warning(
            "Excluded %d alert plugin instance(s) whose plugin definition was removed, ids:%s",
            len(orphaned), orphaned,
        )
    if unreadable:
        logger.warning(
            "Excluded %d alert plugin instance(s) with unreadable params or plugin schema, ids:%s",
            len(unreadable), unreadable,
        )
    return views
