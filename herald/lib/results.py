"""Typed results returned by Herald's services."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class Status(Enum):
    """Outcome of a service operation: a stable code plus a default message."""

    SUCCESS = (0, "success")
    PERMISSION_DENIED = (30001, "current user does not have operation permission")
    SAVE_ERROR = (10136, "save error")
    NOT_FOUND = (110003, "alert plugin instance not found")
    DUPLICATE_NAME = (110010, "plugin instance already exists")
    ASSOCIATED_GROUP_EXISTS = (110011, "failed to delete the alert instance, there is an alarm group associated with this alert instance")
    GROUP_NOT_FOUND = (110012, "global alert group does not exist")
    PLUGIN_DEFINE_NOT_FOUND = (110013, "alert plugin definition does not exist")
    MEMBERSHIP_CONFLICT = (110014, "alert group membership was modified concurrently, please retry")
    PARTIAL_FAILURE = (110015, "alert plugin instance was created but the global alert group was not updated")
    INVALID_PARAMS = (110016, "alert plugin instance params are invalid")

    @property
    def code(self) -> int:
        return self.value[0]

    @property
    def message(self) -> str:
        return self.value[1]


@dataclass
class ServiceResult:
    """Status-discriminated result with an optional payload."""

    status: Status
    message: str
    data: Any = None

    @property
    def ok(self) -> bool:
        return self.status is Status.SUCCESS

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.status.code,
            "status": self.status.name,
            "msg": self.message,
            "data": self.data,
        }


def success(data: Any = None) -> ServiceResult:
    return ServiceResult(Status.SUCCESS, Status.SUCCESS.message, data)


def failure(status: Status, message: str | None = None, data: Any = None) -> ServiceResult:
    return ServiceResult(status, message or status.message, data)
