"""initial schema - create all tables

Revision ID: 001
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create users table
    op.create_table(
        'users',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False, unique=True),
        sa.Column('name', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
    )

    # Create user_model_credits table (one row per user and bucket)
    op.create_table(
        'user_model_credits',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), nullable=False, index=True),
        sa.Column('bucket_id', sa.String(64), nullable=False),
        sa.Column('balance', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.UniqueConstraint('user_id', 'bucket_id', name='uq_user_model_credits_user_bucket'),
        sa.CheckConstraint('balance >= 0', name='ck_user_model_credits_balance_non_negative'),
    )

    # Create credit_ledger table (reason as VARCHAR)
    op.create_table(
        'credit_ledger',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), nullable=False, index=True),
        sa.Column('bucket_id', sa.String(64), nullable=False),
        sa.Column('delta', sa.Integer(), nullable=False),
        sa.Column('reason', sa.String(20), nullable=False),
        sa.Column('ref_id', sa.String(64), nullable=True, index=True),
        sa.Column('meta_json', sa.JSON(), nullable=False, server_default=sa.text("'{}'")),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.UniqueConstraint('user_id', 'bucket_id', 'reason', 'ref_id', name='uq_credit_ledger_ref'),
    )

    # Create studio_projects table
    op.create_table(
        'studio_projects',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('title', sa.String(500), nullable=False, server_default=''),
        sa.Column('reference_image_url', sa.Text(), nullable=True),
        sa.Column('product_context', sa.JSON(), nullable=False, server_default=sa.text("'{}'")),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
    )

    # Create studio_prompts table
    op.create_table(
        'studio_prompts',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('project_id', sa.String(36), sa.ForeignKey('studio_projects.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('role', sa.String(32), nullable=False, server_default='PLANNER'),
        sa.Column('title', sa.String(500), nullable=False, server_default=''),
        sa.Column('copy_json', sa.JSON(), nullable=False, server_default=sa.text("'{}'")),
        sa.Column('visual_json', sa.JSON(), nullable=False, server_default=sa.text("'{}'")),
        sa.Column('generation_hints', sa.JSON(), nullable=False, server_default=sa.text("'{}'")),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
    )

    # Create studio_reference_analysis table
    op.create_table(
        'studio_reference_analysis',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('project_id', sa.String(36), sa.ForeignKey('studio_projects.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('analysis_json', sa.JSON(), nullable=False, server_default=sa.text("'{}'")),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
    )

    # Create studio_generations table (id is the ledger ref_id)
    op.create_table(
        'studio_generations',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), nullable=False, index=True),
        sa.Column('project_id', sa.String(36), sa.ForeignKey('studio_projects.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('prompt_id', sa.String(36), nullable=False),
        sa.Column('image_model_id', sa.String(128), nullable=False),
        sa.Column('runtime_model_id', sa.String(128), nullable=False),
        sa.Column('image_url', sa.Text(), nullable=False),
        sa.Column('aspect_ratio', sa.String(8), nullable=False),
        sa.Column('cost_usd', sa.Float(), nullable=False),
        sa.Column('cost_krw', sa.Integer(), nullable=False),
        sa.Column('sell_krw', sa.Integer(), nullable=False),
        sa.Column('credits_used', sa.Integer(), nullable=False),
        sa.Column('text_fidelity_score', sa.Integer(), nullable=True),
        sa.Column('attempts_used', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
    )


def downgrade() -> None:
    op.drop_table('studio_generations')
    op.drop_table('studio_reference_analysis')
    op.drop_table('studio_prompts')
    op.drop_table('studio_projects')
    op.drop_table('credit_ledger')
    op.drop_table('user_model_credits')
    op.drop_table('users')
