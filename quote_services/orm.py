"""
SQLAlchemy ORM persistence model for quotation settings.

Responsibility
--------------
Provide database-backed persistence for each account's settings record
and for the quotation counter that the numbering sequencer consumes.

Architecture position
---------------------
**Services layer** -- ORM model consumed by ``SqlPolicyStore``. Inherits
from ``TimestampedBase`` (kernel db layer).

Invariants enforced
-------------------
* One row per ``user_key``.
* ``quotation_next_number`` is the authoritative counter. The copy inside
  ``record`` is informational and is overwritten from the column on load.
* ``version`` is the optimistic concurrency token for settings writes.
  Counter commits do not change it.
"""

from typing import Any

from sqlalchemy import JSON, BigInteger, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from quote_kernel.db.base import TimestampedBase


class QuotationSettingsModel(TimestampedBase):
    """
    Persisted settings record plus the locked counter column.

    The counter row is selected ``FOR UPDATE`` for every commit, which
    serializes concurrent finalizations sharing one account.
    """

    __tablename__ = "quotation_settings"

    user_key: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)

    # camelCase settings record, already upgraded
    record: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    quotation_next_number: Mapped[int] = mapped_column(BigInteger, nullable=False, default=1)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    schema_version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return (
            f"<QuotationSettingsModel {self.user_key} "
            f"next={self.quotation_next_number} v{self.version}>"
        )
