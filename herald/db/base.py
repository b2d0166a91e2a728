from advanced_alchemy.base import BigIntAuditBase


class Base(BigIntAuditBase):
    """Declarative base: integer ``id`` plus ``created_at``/``updated_at``."""

    __abstract__ = True
