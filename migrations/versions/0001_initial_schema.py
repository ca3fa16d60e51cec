"""initial portfolio schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19 09:00:00

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '0001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
    ]


PHOTO_CATEGORIES = (
    'portrait', 'landscape', 'street', 'wedding', 'fashion', 'nature', 'architecture',
    'abstract', 'documentary', 'sports', 'food', 'travel', 'other',
)


def _enum(name, *values):
    # Enums are stored as VARCHAR, matching native_enum=False on the models
    return sa.Enum(*values, name=name, native_enum=False, length=max(len(v) for v in values))


def upgrade():
    op.create_table(
        'user',
        *_timestamps(),
        sa.Column('username', sa.String(length=30), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('role', _enum('user_role', 'USER', 'ADMIN', 'SUPER_ADMIN'), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_verified', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('first_name', sa.String(length=50), nullable=True),
        sa.Column('last_name', sa.String(length=50), nullable=True),
        sa.Column('bio', sa.String(length=500), nullable=True),
        sa.Column('website', sa.String(length=255), nullable=True),
        sa.Column('location', sa.String(length=100), nullable=True),
        sa.Column('avatar_url', sa.String(length=512), nullable=True),
        sa.Column('avatar_key', sa.String(length=512), nullable=True),
        sa.Column('subscription_plan', _enum('subscription_plan', 'FREE', 'PRO'), nullable=False),
        sa.Column('subscription_started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('subscription_ends_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('theme', _enum('theme_preference', 'LIGHT', 'DARK', 'SYSTEM'), nullable=False),
        sa.Column('email_notifications', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('public_profile', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('total_photos', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_views', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_likes', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_user_username', 'user', ['username'], unique=True)
    op.create_index('ix_user_email', 'user', ['email'], unique=True)

    op.create_table(
        'user_follow',
        sa.Column('follower_id', sa.String(length=36), nullable=False),
        sa.Column('followed_id', sa.String(length=36), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['follower_id'], ['user.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['followed_id'], ['user.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('follower_id', 'followed_id')
    )

    op.create_table(
        'refresh_token',
        *_timestamps(),
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('jti', sa.String(length=64), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['user.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('jti')
    )
    op.create_index('ix_refresh_token_user_id', 'refresh_token', ['user_id'], unique=False)

    op.create_table(
        'portfolio',
        *_timestamps(),
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('title', sa.String(length=100), nullable=False),
        sa.Column('description', sa.String(length=1000), nullable=True),
        sa.Column('slug', sa.String(length=160), nullable=False),
        sa.Column('is_public', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_default', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('cover_photo_id', sa.String(length=36), nullable=True),
        sa.Column('layout_type', _enum('layout_type', 'MASONRY', 'GRID', 'LIST'), nullable=False),
        sa.Column('layout_columns', sa.Integer(), nullable=False, server_default='3'),
        sa.Column('layout_spacing', sa.Integer(), nullable=False, server_default='10'),
        sa.Column('theme', sa.JSON(), nullable=False),
        sa.Column('settings', sa.JSON(), nullable=False),
        sa.Column('custom_domain', sa.String(length=255), nullable=True),
        sa.Column('seo_title', sa.String(length=60), nullable=True),
        sa.Column('seo_description', sa.String(length=160), nullable=True),
        sa.Column('seo_keywords', sa.JSON(), nullable=False),
        sa.Column('category', _enum('photo_category', *(c.upper() for c in PHOTO_CATEGORIES)), nullable=False),
        sa.Column('total_views', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('unique_views', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_viewed_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['user.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_portfolio_user_id', 'portfolio', ['user_id'], unique=False)
    op.create_index('ix_portfolio_slug', 'portfolio', ['slug'], unique=True)
    op.create_index('ix_portfolio_public_created', 'portfolio', ['is_public', 'created_at'], unique=False)
    op.create_index(
        'uq_portfolio_user_default', 'portfolio', ['user_id'], unique=True,
        postgresql_where=sa.text('is_default'), sqlite_where=sa.text('is_default'),
    )

    op.create_table(
        'portfolio_tag',
        sa.Column('portfolio_id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=50), nullable=False),
        sa.ForeignKeyConstraint(['portfolio_id'], ['portfolio.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('portfolio_id', 'name')
    )
    op.create_index('ix_portfolio_tag_name', 'portfolio_tag', ['name'], unique=False)

    op.create_table(
        'photo',
        *_timestamps(),
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('portfolio_id', sa.String(length=36), nullable=False),
        sa.Column('title', sa.String(length=100), nullable=False),
        sa.Column('description', sa.String(length=500), nullable=True),
        sa.Column('alt_text', sa.String(length=125), nullable=True),
        sa.Column('url', sa.String(length=1024), nullable=False),
        sa.Column('storage_key', sa.String(length=512), nullable=False),
        sa.Column('thumbnail_url', sa.String(length=1024), nullable=True),
        sa.Column('thumbnail_key', sa.String(length=512), nullable=True),
        sa.Column('width', sa.Integer(), nullable=True),
        sa.Column('height', sa.Integer(), nullable=True),
        sa.Column('format', sa.String(length=10), nullable=True),
        sa.Column('file_size', sa.Integer(), nullable=True),
        sa.Column('exif', sa.JSON(), nullable=True),
        sa.Column('color_palette', sa.JSON(), nullable=False),
        sa.Column('category', _enum('photo_category', *(c.upper() for c in PHOTO_CATEGORIES)), nullable=False),
        sa.Column('is_public', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_featured', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('allow_download', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('show_metadata', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('views', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('likes', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('downloads', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('shares', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_viewed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('moderation_status', _enum('moderation_status', 'PENDING', 'APPROVED', 'REJECTED'), nullable=False),
        sa.Column('reviewed_by_id', sa.String(length=36), nullable=True),
        sa.Column('reviewed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rejection_reason', sa.String(length=500), nullable=True),
        sa.Column('review_notes', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['user.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['portfolio_id'], ['portfolio.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['reviewed_by_id'], ['user.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_photo_user_id', 'photo', ['user_id'], unique=False)
    op.create_index('ix_photo_portfolio_id', 'photo', ['portfolio_id'], unique=False)
    op.create_index('ix_photo_reviewed_by_id', 'photo', ['reviewed_by_id'], unique=False)
    op.create_index('ix_photo_visibility', 'photo', ['is_public', 'moderation_status', 'created_at'], unique=False)
    op.create_index('ix_photo_portfolio_position', 'photo', ['portfolio_id', 'position'], unique=False)

    op.create_table(
        'photo_tag',
        sa.Column('photo_id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=50), nullable=False),
        sa.ForeignKeyConstraint(['photo_id'], ['photo.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('photo_id', 'name')
    )
    op.create_index('ix_photo_tag_name', 'photo_tag', ['name'], unique=False)


def downgrade():
    op.drop_index('ix_photo_tag_name', table_name='photo_tag')
    op.drop_table('photo_tag')
    op.drop_index('ix_photo_portfolio_position', table_name='photo')
    op.drop_index('ix_photo_visibility', table_name='photo')
    op.drop_index('ix_photo_reviewed_by_id', table_name='photo')
    op.drop_index('ix_photo_portfolio_id', table_name='photo')
    op.drop_index('ix_photo_user_id', table_name='photo')
    op.drop_table('photo')
    op.drop_index('ix_portfolio_tag_name', table_name='portfolio_tag')
    op.drop_table('portfolio_tag')
    op.drop_index('uq_portfolio_user_default', table_name='portfolio')
    op.drop_index('ix_portfolio_public_created', table_name='portfolio')
    op.drop_index('ix_portfolio_slug', table_name='portfolio')
    op.drop_index('ix_portfolio_user_id', table_name='portfolio')
    op.drop_table('portfolio')
    op.drop_index('ix_refresh_token_user_id', table_name='refresh_token')
    op.drop_table('refresh_token')
    op.drop_table('user_follow')
    op.drop_index('ix_user_email', table_name='user')
    op.drop_index('ix_user_username', table_name='user')
    op.drop_table('user')
