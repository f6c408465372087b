"""
Studio project models.

A project carries the reference image and product context; prompts and
reference analyses hang off it.

SECURITY: Project lookups MUST include the owning user_id filter.
"""
import uuid
from sqlalchemy import JSON, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from adstudio.models.base import Base, TimestampMixin


class Project(Base, TimestampMixin):
    """Creative project owned by a single user."""
    __tablename__ = "studio_projects"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4())
    )
    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    title: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    reference_image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    product_context: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    # Relationships
    prompts = relationship(
        "PromptRecord",
        back_populates="project",
        cascade="all, delete-orphan"
    )

    def __repr__(self):
        return f"<Project(id={self.id}, user_id={self.user_id}, title={self.title})>"


class PromptRecord(Base, TimestampMixin):
    """
    Stored prompt draft for a project.

    copy_json / visual_json / generation_hints are loosely shaped JSON and
    are normalised by services.prompt_drafts before use.
    """
    __tablename__ = "studio_prompts"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4())
    )
    project_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("studio_projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    role: Mapped[str] = mapped_column(String(32), nullable=False, default="PLANNER")
    title: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    copy_json: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    visual_json: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    generation_hints: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    # Relationships
    project = relationship("Project", back_populates="prompts")

    def __repr__(self):
        return f"<PromptRecord(id={self.id}, project_id={self.project_id}, role={self.role})>"


class ReferenceAnalysisRecord(Base, TimestampMixin):
    """Vision analysis of a project's reference image. The latest row wins."""
    __tablename__ = "studio_reference_analysis"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4())
    )
    project_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("studio_projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    analysis_json: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    def __repr__(self):
        return f"<ReferenceAnalysisRecord(id={self.id}, project_id={self.project_id})>"
