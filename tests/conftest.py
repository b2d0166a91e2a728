"""Shared pytest fixtures."""

import asyncio
import json
from datetime import UTC, datetime
from unittest.mock import patch

import pytest
import yaml
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from herald.auth.permissions import Principal, RoleAuthorizer
from herald.config import AlertsConfig, get_settings
from herald.db.base import Base
from herald.db.models import AlertGroup, AlertInstanceType, AlertPluginInstance, PluginDefine
from herald.db.services.alert_instance_service import AlertPluginInstanceService
from herald.db.services.membership_service import GroupLockRegistry
from herald.lib.exceptions import DuplicateInstanceNameError

GLOBAL_GROUP_ID = 2

EMAIL_SCHEMA = [
    {"field": "receivers", "name": "Receivers", "type": "input", "value": None,
     "validate": [{"required": True}]},
    {"field": "serverHost", "name": "SMTP Host", "type": "input", "value": None},
    {"field": "serverPort", "name": "SMTP Port", "type": "input", "value": "25"},
    {"field": "enableSmtpAuth", "name": "Auth", "type": "radio", "value": "true"},
]


# ---------------------------------------------------------------------------
# In-memory stores
# ---------------------------------------------------------------------------


class FakeInstanceStore:
    def __init__(self):
        self.rows: dict[int, AlertPluginInstance] = {}
        self._next_id = 1
        self.delete_error: Exception | None = None

    async def insert(self, instance):
        if any(r.instance_name == instance.instance_name for r in self.rows.values()):
            raise DuplicateInstanceNameError(instance.instance_name)
        now = datetime.now(UTC)
        instance.id = self._next_id
        instance.created_at = now
        instance.updated_at = now
        self._next_id += 1
        self.rows[instance.id] = instance
        return instance

    async def update_by_id(self, instance_id, *, instance_name, warning_type, plugin_instance_params):
        instance = self.rows.get(instance_id)
        if instance is None:
            return 0
        if any(r.instance_name == instance_name and r.id != instance_id for r in self.rows.values()):
            raise DuplicateInstanceNameError(instance_name)
        instance.instance_name = instance_name
        instance.warning_type = warning_type
        instance.plugin_instance_params = plugin_instance_params
        instance.updated_at = datetime.now(UTC)
        return 1

    async def delete_by_id(self, instance_id):
        if self.delete_error is not None:
            raise self.delete_error
        return 1 if self.rows.pop(instance_id, None) is not None else 0

    async def select_by_id(self, instance_id):
        return self.rows.get(instance_id)

    async def exists_by_name(self, instance_name):
        return any(r.instance_name == instance_name for r in self.rows.values())

    async def list_all(self):
        return [self.rows[i] for i in sorted(self.rows)]

    async def list_page(self, page_no, page_size, search_val=None):
        items = [r for r in self.rows.values() if not search_val or search_val in r.instance_name]
        items.sort(key=lambda r: (r.updated_at, r.id), reverse=True)
        start = (page_no - 1) * page_size
        return items[start:start + page_size], len(items)

    async def list_ids_by_type(self, instance_type):
        return sorted(i for i, r in self.rows.items() if r.instance_type is instance_type)


class FakeGroupStore:
    """Groups held as (membership text, version); reads yield to the event loop."""

    def __init__(self, groups=None):
        self.groups: dict[int, tuple[str, int]] = {
            group_id: (text, 0) for group_id, text in (groups or {}).items()
        }
        self.writes = 0
        self.conflicts = 0

    async def select_by_id(self, group_id):
        if group_id not in self.groups:
            return None
        text, version = self.groups[group_id]
        # Let other writers interleave between the read and the write
        await asyncio.sleep(0)
        return AlertGroup(id=group_id, group_name=f"group {group_id}", alert_instance_ids=text, version=version)

    async def update_members(self, group_id, members, expected_version):
        if group_id not in self.groups:
            return 0
        _, version = self.groups[group_id]
        if version != expected_version:
            self.conflicts += 1
            return 0
        self.groups[group_id] = (members.serialize(), version + 1)
        self.writes += 1
        return 1

    async def list_all_membership_lists(self):
        return [(group_id, text) for group_id, (text, _) in sorted(self.groups.items())]

    def members_text(self, group_id):
        return self.groups[group_id][0]


class FakeSchemaProvider:
    def __init__(self, definitions=None):
        self.definitions: dict[int, PluginDefine] = {d.id: d for d in (definitions or [])}

    async def list_all_definitions(self):
        return [self.definitions[i] for i in sorted(self.definitions)]

    async def get_definition(self, plugin_define_id):
        return self.definitions.get(plugin_define_id)


def make_plugin_define(plugin_define_id=1, name="Email", schema=None):
    return PluginDefine(
        id=plugin_define_id,
        plugin_name=name,
        plugin_type="alert",
        plugin_params=json.dumps(EMAIL_SCHEMA if schema is None else schema),
    )


def make_instance(instance_id, name, instance_type=AlertInstanceType.NORMAL, plugin_define_id=1, params="{}"):
    now = datetime.now(UTC)
    return AlertPluginInstance(
        id=instance_id,
        plugin_define_id=plugin_define_id,
        instance_name=name,
        instance_type=instance_type,
        warning_type=None,
        plugin_instance_params=params,
        created_at=now,
        updated_at=now,
    )


# ---------------------------------------------------------------------------
# Principals
# ---------------------------------------------------------------------------


@pytest.fixture
def admin():
    return Principal(user_id=1, username="admin", roles=frozenset({"admin"}))


@pytest.fixture
def manager():
    return Principal(user_id=2, username="ops", roles=frozenset({"alert-manager"}))


@pytest.fixture
def viewer():
    return Principal(user_id=3, username="guest", roles=frozenset({"alert-viewer"}))


# ---------------------------------------------------------------------------
# Service wiring
# ---------------------------------------------------------------------------


@pytest.fixture
def instance_store():
    return FakeInstanceStore()


@pytest.fixture
def group_store():
    return FakeGroupStore({1: "", GLOBAL_GROUP_ID: ""})


@pytest.fixture
def schema_provider():
    return FakeSchemaProvider([make_plugin_define()])


@pytest.fixture
def make_service(instance_store, group_store, schema_provider):
    """Factory building a service over the shared fake stores."""

    def _make(authorize=None, locks=None, **alerts):
        return AlertPluginInstanceService(
            instance_store,
            group_store,
            schema_provider,
            authorize or RoleAuthorizer(),
            config=AlertsConfig(global_alert_group_id=GLOBAL_GROUP_ID, **alerts),
            locks=locks or GroupLockRegistry(),
        )

    return _make


@pytest.fixture
def service(make_service):
    return make_service()


# ---------------------------------------------------------------------------
# SQLite database
# ---------------------------------------------------------------------------


@pytest.fixture
def sqlite_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'herald.db'}"


@pytest.fixture
async def db_engine(sqlite_url):
    import herald.db.models  # noqa: F401 register all models on Base

    engine = create_async_engine(sqlite_url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def db_session_maker(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(db_session_maker):
    async with db_session_maker() as session:
        yield session


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


@pytest.fixture
def temp_app_yaml(tmp_path):
    """Create a temporary app.yaml file for testing."""
    config_path = tmp_path / "app.yaml"

    def _create_config(config: dict):
        with open(config_path, "w") as f:
            yaml.safe_dump(config, f)
        return config_path

    return _create_config


@pytest.fixture
def mock_config_path(temp_app_yaml):
    """Patch get_config_path to return a temporary app.yaml."""
    patchers = []

    def _mock(config: dict):
        config_path = temp_app_yaml(config)
        patcher = patch("herald.config.get_config_path", return_value=config_path)
        patcher.start()
        patchers.append(patcher)
        return config_path

    yield _mock
    for patcher in patchers:
        patcher.stop()


@pytest.fixture(autouse=True)
def clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


# ---------------------------------------------------------------------------
# Factories for tests (tests/ is not a package, so helpers are fixtures)
# ---------------------------------------------------------------------------


@pytest.fixture
def email_schema():
    return [dict(d) for d in EMAIL_SCHEMA]


@pytest.fixture
def instance_factory():
    return make_instance


@pytest.fixture
def plugin_define_factory():
    return make_plugin_define


@pytest.fixture
def group_store_factory():
    return FakeGroupStore
