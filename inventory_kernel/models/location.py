"""
Location model -- physical stock-holding sites.

Locations are reference data.  Movements and projection rows point at them;
the Ledger Writer refuses movements for missing or inactive locations.
"""

from datetime import datetime

from sqlalchemy import Boolean, String, func
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import Base, UTCDateTime


class Location(Base):
    """
    A warehouse, store or other place stock is held.

    The default location is the row flagged ``is_default``; when none is
    flagged, the oldest location (lowest id) is used.
    """

    __tablename__ = "locations"

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    code: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        unique=True,
    )

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Location {self.code}: {self.name}>"
