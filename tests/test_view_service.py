"""Tests for alert plugin instance views."""

import json
import logging

import pytest

from herald.db.models import AlertInstanceType, WarningType
from herald.db.services.view_service import PageInfo, build_instance_view, build_instance_views, instance_record


class TestPageInfo:
    @pytest.mark.parametrize("total,page_size,expected", [(0, 10, 0), (10, 10, 1), (11, 10, 2), (5, 0, 0)])
    def test_total_page(self, total, page_size, expected):
        assert PageInfo(total_list=[], total=total, page_no=1, page_size=page_size).total_page == expected


class TestInstanceViews:
    def test_instance_record_decodes_params(self, instance_factory):
        instance = instance_factory(3, "mail", AlertInstanceType.GLOBAL, params='{"receivers": "a@b.c"}')
        instance.warning_type = WarningType.FAILURE

        record = instance_record(instance)

        assert record["instance_type"] == "GLOBAL"
        assert record["warning_type"] == "failure"
        assert record["plugin_instance_params"] == {"receivers": "a@b.c"}

    def test_build_instance_view(self, instance_factory, plugin_define_factory):
        instance = instance_factory(3, "mail", params=json.dumps({"serverHost": "smtp"}))
        view = build_instance_view(instance, plugin_define_factory())

        assert view.alert_plugin_name == "Email"
        assert view.instance_type == "NORMAL"
        assert view.warning_type is None
        assert view.plugin_instance_params[1]["value"] == "smtp"
        assert view.to_dict()["instance_name"] == "mail"

    @pytest.mark.asyncio
    async def test_views_keep_order_and_drop_orphans(self, schema_provider, instance_factory):
        instances = [
            instance_factory(5, "b"),
            instance_factory(6, "orphan", plugin_define_id=7),
            instance_factory(4, "a"),
        ]

        views = await build_instance_views(schema_provider, instances)

        assert [v.id for v in views] == [5, 4]

    @pytest.mark.asyncio
    async def test_no_instances(self, schema_provider):
        assert await build_instance_views(schema_provider, []) == []

    @pytest.mark.asyncio
    async def test_views_drop_unreadable_schema_and_params(
        self, schema_provider, instance_factory, plugin_define_factory, caplog
    ):
        broken = plugin_define_factory(2, "Broken")
        broken.plugin_params = "{not json"
        schema_provider.definitions[2] = broken
        instances = [
            instance_factory(5, "healthy"),
            instance_factory(6, "broken-schema", plugin_define_id=2),
            instance_factory(7, "broken-params", params="[1, 2"),
            instance_factory(8, "list-params", params="[1, 2]"),
        ]

        with caplog.at_level(logging.WARNING, logger="herald.db.services.view_service"):
            views = await build_instance_views(schema_provider, instances)

        assert [v.id for v in views] == [5]
        assert "Excluded 3 alert plugin instance(s) with unreadable params or plugin schema, ids:[6, 7, 8]" in caplog.text
