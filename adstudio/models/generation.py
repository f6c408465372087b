"""
Generation result model.

SECURITY: All queries MUST include the user_id filter.
"""
from sqlalchemy import Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from adstudio.models.base import Base, TimestampMixin


class Generation(Base, TimestampMixin):
    """
    Terminal artifact of a successful generation request.

    The id doubles as the ref_id of the GENERATE ledger row that paid for
    it, so a row here always has exactly one matching debit.
    """
    __tablename__ = "studio_generations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    project_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("studio_projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    prompt_id: Mapped[str] = mapped_column(String(36), nullable=False)
    image_model_id: Mapped[str] = mapped_column(String(128), nullable=False)
    runtime_model_id: Mapped[str] = mapped_column(String(128), nullable=False)
    image_url: Mapped[str] = mapped_column(Text, nullable=False)
    aspect_ratio: Mapped[str] = mapped_column(String(8), nullable=False)
    cost_usd: Mapped[float] = mapped_column(Float, nullable=False)
    cost_krw: Mapped[int] = mapped_column(Integer, nullable=False)
    sell_krw: Mapped[int] = mapped_column(Integer, nullable=False)
    credits_used: Mapped[int] = mapped_column(Integer, nullable=False)
    text_fidelity_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    attempts_used: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    def __repr__(self):
        return f"<Generation(id={self.id}, user_id={self.user_id}, model={self.runtime_model_id})>"
