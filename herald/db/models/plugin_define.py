from sqlalchemy import String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from herald.db.base import Base
from herald.lib.params import FieldDescriptor, parse_schema


class PluginDefine(Base):
    """A registered plugin type and its UI parameter schema."""

    __tablename__ = "plugin_defines"

    plugin_name: Mapped[str] = mapped_column(String(255), nullable=False)
    plugin_type: Mapped[str] = mapped_column(String(50), nullable=False, default="alert", server_default="alert")
    # JSON list of field descriptors, in display order
    plugin_params: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint("plugin_name", "plugin_type", name="uq_plugin_defines_name_type"),
    )

    @property
    def field_schema(self) -> list[FieldDescriptor]:
        return parse_schema(self.plugin_params)
