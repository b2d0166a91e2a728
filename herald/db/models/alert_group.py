from sqlalchemy import Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from herald.db.base import Base
from herald.lib.membership import MembershipList


class AlertGroup(Base):
    """Named collection of alert plugin instances that alerts are routed to."""

    __tablename__ = "alert_groups"

    group_name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Comma-separated instance ids, e.g. "3,7,12"; "" is the empty group
    alert_instance_ids: Mapped[str] = mapped_column(Text, nullable=False, default="", server_default="")
    # Bumped on every membership write; writes are conditional on it
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")

    @property
    def members(self) -> MembershipList:
        return MembershipList.parse(self.alert_instance_ids)
