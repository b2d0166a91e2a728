"""JSON API for alert plugin instances."""

from typing import Annotated, Any

from litestar import Controller, Request, delete, get, post, put
from litestar.exceptions import NotAuthorizedException
from litestar.params import Parameter
from litestar.response import Response
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from herald.auth.permissions import Principal
from herald.db.models import AlertInstanceType, AlertPluginInstance, WarningType
from herald.db.services.alert_instance_service import AlertPluginInstanceService
from herald.db.services.view_service import AlertPluginInstanceView, PageInfo, instance_record
from herald.db.stores import SQLGroupStore, SQLInstanceStore, SQLSchemaProvider
from herald.lib.results import ServiceResult, Status, failure, success

STATUS_CODES: dict[Status, int] = {
    Status.SUCCESS: 200,
    Status.PERMISSION_DENIED: 403,
    Status.NOT_FOUND: 404,
    Status.PLUGIN_DEFINE_NOT_FOUND: 404,
    Status.DUPLICATE_NAME: 409,
    Status.ASSOCIATED_GROUP_EXISTS: 409,
    Status.MEMBERSHIP_CONFLICT: 409,
    Status.INVALID_PARAMS: 400,
    Status.SAVE_ERROR: 500,
    Status.GROUP_NOT_FOUND: 500,
    Status.PARTIAL_FAILURE: 207,
}


class _CreateInstance(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    plugin_define_id: int = Field(alias="pluginDefineId")
    instance_name: str = Field(alias="instanceName", min_length=1, max_length=255)
    instance_type: AlertInstanceType = Field(default=AlertInstanceType.NORMAL, alias="instanceType")
    warning_type: WarningType | None = Field(default=WarningType.ALL, alias="warningType")
    plugin_instance_params: Any = Field(default=None, alias="pluginInstanceParams")


class _UpdateInstance(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    instance_name: str = Field(alias="instanceName", min_length=1, max_length=255)
    warning_type: WarningType | None = Field(default=WarningType.ALL, alias="warningType")
    plugin_instance_params: Any = Field(default=None, alias="pluginInstanceParams")


def _serialize(data: Any) -> Any:
    if isinstance(data, AlertPluginInstance):
        return instance_record(data)
    if isinstance(data, (AlertPluginInstanceView, PageInfo)):
        return data.to_dict()
    if isinstance(data, dict):
        return {key: _serialize(value) for key, value in data.items()}
    if isinstance(data, list):
        return [_serialize(item) for item in data]
    return data


def _respond(result: ServiceResult, success_code: int = 200) -> Response:
    status_code = success_code if result.ok else STATUS_CODES[result.status]
    body = result.to_dict()
    body["data"] = _serialize(result.data)
    return Response(content=body, status_code=status_code)


class AlertPluginInstanceController(Controller):
    path = "/alert-plugin-instances"

    def _require_user(self, request: Request) -> Principal:
        """Principal placed in the scope by the deployment's authentication middleware."""
        user = request.scope.get("user")
        if not isinstance(user, Principal):
            raise NotAuthorizedException("Authentication required")
        return user

    def _service(self, request: Request, db_session: AsyncSession) -> AlertPluginInstanceService:
        state = request.app.state
        return AlertPluginInstanceService(
            SQLInstanceStore(db_session),
            SQLGroupStore(db_session),
            SQLSchemaProvider(db_session),
            state.authorizer,
            config=state.settings.alerts,
            locks=state.group_locks,
        )

    @post("/")
    async def create(self, request: Request, db_session: AsyncSession, data: _CreateInstance) -> Response:
        user = self._require_user(request)
        result = await self._service(request, db_session).create(
            user,
            data.plugin_define_id,
            data.instance_name,
            data.instance_type,
            data.warning_type,
            data.plugin_instance_params,
        )
        return _respond(result, success_code=201)

    @put("/{instance_id:int}")
    async def update(
        self, request: Request, db_session: AsyncSession, instance_id: int, data: _UpdateInstance
    ) -> Response:
        user = self._require_user(request)
        result = await self._service(request, db_session).update(
            user,
            instance_id,
            data.instance_name,
            data.warning_type,
            data.plugin_instance_params,
        )
        return _respond(result)

    @delete("/{instance_id:int}", status_code=200)
    async def remove(self, request: Request, db_session: AsyncSession, instance_id: int) -> Response:
        user = self._require_user(request)
        return _respond(await self._service(request, db_session).delete(user, instance_id))

    @get("/{instance_id:int}")
    async def fetch(self, request: Request, db_session: AsyncSession, instance_id: int) -> Response:
        user = self._require_user(request)
        return _respond(await self._service(request, db_session).get(user, instance_id))

    @get("/list")
    async def query_all(self, request: Request, db_session: AsyncSession) -> Response:
        return _respond(await self._service(request, db_session).query_all())

    @get("/")
    async def list_paging(
        self,
        request: Request,
        db_session: AsyncSession,
        page_no: Annotated[int, Parameter(query="pageNo", ge=1)] = 1,
        page_size: Annotated[int, Parameter(query="pageSize", ge=1, le=1000)] = 10,
        search_val: Annotated[str | None, Parameter(query="searchVal")] = None,
    ) -> Response:
        service = self._service(request, db_session)
        return _respond(await service.list_paging(search_val, page_no, page_size))

    @get("/verify-name")
    async def verify_name(
        self,
        request: Request,
        db_session: AsyncSession,
        instance_name: Annotated[str, Parameter(query="alertInstanceName")],
    ) -> Response:
        if await self._service(request, db_session).verify_instance_name(instance_name):
            return _respond(failure(Status.DUPLICATE_NAME))
        return _respond(success())
