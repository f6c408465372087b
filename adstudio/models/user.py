"""
User model.

Represents a studio user who owns projects and a credit balance.
"""
import uuid
from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column
from adstudio.models.base import Base, TimestampMixin


class User(Base, TimestampMixin):
    """
    Studio user.

    Projects and generations are always looked up together with the
    owning user's id.
    """
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4())
    )
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    def __repr__(self):
        return f"<User(id={self.id}, email={self.email})>"
