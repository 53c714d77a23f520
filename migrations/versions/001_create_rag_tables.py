"""Create personalization RAG tables

Revision ID: create_rag_tables
Revises:
Create Date: 2026-10-17

Adds tables for:
- profiles (credit balance)
- user_posts / user_post_embeddings
- viral_corpus / viral_embeddings
- rag_cache
- generations

Vectors are stored as JSON arrays tagged with the embedding model version.
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = 'create_rag_tables'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'profiles',
        sa.Column('id', sa.String(64), primary_key=True),
        sa.Column('email', sa.String(255), nullable=True, index=True),
        sa.Column('plan', sa.String(50), nullable=False, server_default='free'),
        sa.Column('credits', sa.Integer, nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint('credits >= 0', name='ck_profiles_credits_non_negative'),
    )

    # User corpus
    op.create_table(
        'user_posts',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(64), nullable=False, index=True),
        sa.Column('content', sa.Text, nullable=False),
        sa.Column('linkedin_post_id', sa.String(128), nullable=True),
        sa.Column('published_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('likes', sa.Integer, nullable=False, server_default='0'),
        sa.Column('comments', sa.Integer, nullable=False, server_default='0'),
        sa.Column('shares', sa.Integer, nullable=False, server_default='0'),
        sa.Column('views', sa.Integer, nullable=False, server_default='0'),
        sa.Column('engagement_rate', sa.Float, nullable=True),
        sa.Column('word_count', sa.Integer, nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False, index=True),
    )

    op.create_table(
        'user_post_embeddings',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('post_id', sa.String(36), sa.ForeignKey('user_posts.id', ondelete='CASCADE'), unique=True, nullable=False),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('embedding', sa.JSON, nullable=False),
        sa.Column('model_version', sa.String(100), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_user_post_embeddings_user_model', 'user_post_embeddings', ['user_id', 'model_version'])

    # Viral corpus
    op.create_table(
        'viral_corpus',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('content', sa.Text, nullable=False),
        sa.Column('author_industry', sa.String(100), nullable=True),
        sa.Column('author_follower_range', sa.String(20), nullable=True),
        sa.Column('likes', sa.Integer, nullable=False, server_default='0'),
        sa.Column('comments', sa.Integer, nullable=False, server_default='0'),
        sa.Column('shares', sa.Integer, nullable=False, server_default='0'),
        sa.Column('views', sa.Integer, nullable=True),
        sa.Column('engagement_rate', sa.Float, nullable=False, server_default='0', index=True),
        sa.Column('topics', sa.JSON, nullable=False),
        sa.Column('intent', sa.String(50), nullable=False, index=True),
        sa.Column('post_format', sa.String(20), nullable=True),
        sa.Column('has_hook', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('has_cta', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('uses_emojis', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('uses_hashtags', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('word_count', sa.Integer, nullable=False),
        sa.Column('published_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('source_url', sa.String(1000), nullable=True),
        sa.Column('curated_by', sa.String(64), nullable=False),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true(), index=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        'viral_embeddings',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('viral_post_id', sa.String(36), sa.ForeignKey('viral_corpus.id', ondelete='CASCADE'), unique=True, nullable=False),
        sa.Column('embedding', sa.JSON, nullable=False),
        sa.Column('model_version', sa.String(100), nullable=False, index=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # Retrieval cache
    op.create_table(
        'rag_cache',
        sa.Column('query_hash', sa.String(32), primary_key=True),
        sa.Column('user_id', sa.String(64), nullable=False, index=True),
        sa.Column('query_embedding', sa.JSON, nullable=False),
        sa.Column('top_user_posts', sa.JSON, nullable=False),
        sa.Column('top_viral_posts', sa.JSON, nullable=False),
        sa.Column('viral_fallback', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('hit_count', sa.Integer, nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False, index=True),
    )

    # Generation history
    op.create_table(
        'generations',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(64), nullable=False, index=True),
        sa.Column('topic', sa.Text, nullable=False),
        sa.Column('intent', sa.String(50), nullable=False),
        sa.Column('additional_context', sa.Text, nullable=True),
        sa.Column('variant_a', sa.Text, nullable=False),
        sa.Column('variant_b', sa.Text, nullable=False),
        sa.Column('model_used', sa.String(100), nullable=False),
        sa.Column('temperature', sa.Float, nullable=False),
        sa.Column('user_examples_used', sa.JSON, nullable=False),
        sa.Column('viral_examples_used', sa.JSON, nullable=False),
        sa.Column('variant_selected', sa.String(1), nullable=True),
        sa.Column('was_published', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False, index=True),
    )


def downgrade():
    op.drop_table('generations')
    op.drop_table('rag_cache')
    op.drop_table('viral_embeddings')
    op.drop_table('viral_corpus')
    op.drop_index('ix_user_post_embeddings_user_model', table_name='user_post_embeddings')
    op.drop_table('user_post_embeddings')
    op.drop_table('user_posts')
    op.drop_table('profiles')
