from enum import Enum

from sqlalchemy import Enum as SAEnum, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from herald.db.base import Base


class AlertInstanceType(str, Enum):
    """Whether an instance is attached to one group or to every alert."""

    NORMAL = "NORMAL"
    GLOBAL = "GLOBAL"

    @property
    def label(self) -> str:
        return self.value


class WarningType(str, Enum):
    """Which alert outcomes an instance should receive."""

    NONE = "none"
    SUCCESS = "success"
    FAILURE = "failure"
    ALL = "all"
    GLOBAL = "global"

    @classmethod
    def _missing_(cls, value):
        # Accept member names too ("FAILURE" as well as "failure")
        if isinstance(value, str):
            return cls.__members__.get(value.upper())
        return None

    @property
    def label(self) -> str:
        return self.value.upper()


class AlertPluginInstance(Base):
    """A configured instance of an alert-delivery plugin."""

    __tablename__ = "alert_plugin_instances"

    # Not a foreign key: instances outlive plugin definitions that get removed
    plugin_define_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    instance_name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    instance_type: Mapped[AlertInstanceType] = mapped_column(
        SAEnum(AlertInstanceType, native_enum=False, length=20),
        nullable=False,
        default=AlertInstanceType.NORMAL,
    )
    warning_type: Mapped[WarningType | None] = mapped_column(
        SAEnum(WarningType, native_enum=False, length=20),
        nullable=True,
    )
    # Compact {field: value} JSON map, never the full UI form
    plugin_instance_params: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
