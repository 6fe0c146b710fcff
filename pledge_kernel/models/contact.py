"""
Module: pledge_kernel.models.contact
Responsibility: ORM persistence for donors and payers.  Contacts own pledges
    and may pay on behalf of other contacts (third-party payments).
Architecture position: Kernel > Models.  May import from db/base.py only.

The ledger reads contacts for display names only; it never writes them.
"""

from sqlalchemy import Index, String
from sqlalchemy.orm import Mapped, mapped_column

from pledge_kernel.db.base import TrackedBase


class Contact(TrackedBase):
    """A person or organization that pledges or pays."""

    __tablename__ = "contacts"

    __table_args__ = (
        Index("idx_contact_name", "last_name", "first_name"),
    )

    first_name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    last_name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    email: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def __repr__(self) -> str:
        return f"<Contact {self.id}: {self.full_name}>"
