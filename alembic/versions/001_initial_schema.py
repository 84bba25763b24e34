"""Initial Mainstream schema

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19

Creates all tables for:
- Users: users, refresh_tokens, user_follows, user_notification_settings
- Streams: streams, stream_members, stream_follows, stream_bookmarks
- Assets: assets, asset_streams, asset_likes, asset_comments, comment_likes, asset_views
- Notifications: notifications
- Drops: drops, drop_posts, drop_blocks, drop_block_gallery_images
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None


ENUMS = {
    'platformrole': ('user', 'admin', 'owner'),
    'streamownertype': ('user', 'team'),
    'streamstatus': ('active', 'archived'),
    'streamrole': ('owner', 'admin', 'member'),
    'assettype': ('image', 'video', 'embed'),
    'assetvisibility': ('public', 'unlisted'),
    'notificationtype': ('like_asset', 'like_comment', 'reply_comment', 'follow', 'mention', 'comment'),
    'resourcetype': ('asset', 'comment', 'user', 'stream'),
    'dropstatus': ('draft', 'published'),
    'displaymode': ('auto', 'fit', 'cover'),
    'blocktype': ('text', 'heading', 'post', 'featured_post', 'divider', 'quote', 'image_gallery'),
    'gallerylayout': ('grid', 'featured'),
}


def enum(name: str) -> sa.Enum:
    """Enum column type; on PostgreSQL the type is created once up front."""
    values = ENUMS[name]
    return sa.Enum(*values, name=name).with_variant(
        postgresql.ENUM(*values, name=name, create_type=False),
        'postgresql',
    )


def upgrade() -> None:
    # ==========================================================================
    # Create Enums
    # ==========================================================================

    bind = op.get_bind()
    if bind.dialect.name == 'postgresql':
        for name, values in ENUMS.items():
            postgresql.ENUM(*values, name=name).create(bind, checkfirst=True)

    # ==========================================================================
    # Users
    # ==========================================================================

    op.create_table(
        'users',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('username', sa.String(length=30), nullable=False),
        sa.Column('display_name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('avatar_url', sa.String(length=500), nullable=True),
        sa.Column('bio', sa.Text(), nullable=True),
        sa.Column('job_title', sa.String(length=100), nullable=True),
        sa.Column('location', sa.String(length=100), nullable=True),
        sa.Column('platform_role', enum('platformrole'), nullable=False, server_default='user'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('last_login', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_username', 'users', ['username'], unique=True)
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_created_at', 'users', ['created_at'], unique=False)

    op.create_table(
        'refresh_tokens',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('user_id', sa.UUID(), nullable=False),
        sa.Column('token_hash', sa.String(length=255), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('revoked', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('token_hash'),
    )
    op.create_index('ix_refresh_tokens_user_id', 'refresh_tokens', ['user_id'], unique=False)

    op.create_table(
        'user_follows',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('follower_id', sa.UUID(), nullable=False),
        sa.Column('following_id', sa.UUID(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['follower_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['following_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('follower_id', 'following_id'),
    )
    op.create_index('ix_user_follows_follower_id', 'user_follows', ['follower_id'], unique=False)
    op.create_index('ix_user_follows_following_id', 'user_follows', ['following_id'], unique=False)

    op.create_table(
        'user_notification_settings',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('user_id', sa.UUID(), nullable=False),
        sa.Column('in_app_enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('likes_enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('comments_enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('follows_enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('mentions_enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id'),
    )

    # ==========================================================================
    # Streams
    # ==========================================================================

    op.create_table(
        'streams',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('name', sa.String(length=50), nullable=False),
        sa.Column('description', sa.String(length=500), nullable=True),
        sa.Column('cover_image_url', sa.String(length=500), nullable=True),
        sa.Column('owner_type', enum('streamownertype'), nullable=False, server_default='user'),
        sa.Column('owner_id', sa.UUID(), nullable=False),
        sa.Column('is_private', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('status', enum('streamstatus'), nullable=False, server_default='active'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_streams_name', 'streams', ['name'], unique=True)
    op.create_index('ix_streams_owner_id', 'streams', ['owner_id'], unique=False)
    op.create_index('ix_streams_created_at', 'streams', ['created_at'], unique=False)

    op.create_table(
        'stream_members',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('stream_id', sa.UUID(), nullable=False),
        sa.Column('user_id', sa.UUID(), nullable=False),
        sa.Column('role', enum('streamrole'), nullable=False, server_default='member'),
        sa.Column('joined_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['stream_id'], ['streams.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('stream_id', 'user_id'),
    )
    op.create_index('ix_stream_members_stream_id', 'stream_members', ['stream_id'], unique=False)
    op.create_index('ix_stream_members_user_id', 'stream_members', ['user_id'], unique=False)

    op.create_table(
        'stream_follows',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('stream_id', sa.UUID(), nullable=False),
        sa.Column('user_id', sa.UUID(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['stream_id'], ['streams.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('stream_id', 'user_id'),
    )
    op.create_index('ix_stream_follows_stream_id', 'stream_follows', ['stream_id'], unique=False)
    op.create_index('ix_stream_follows_user_id', 'stream_follows', ['user_id'], unique=False)

    op.create_table(
        'stream_bookmarks',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('stream_id', sa.UUID(), nullable=False),
        sa.Column('url', sa.String(length=2000), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=True),
        sa.Column('created_by', sa.UUID(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['stream_id'], ['streams.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['created_by'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_stream_bookmarks_stream_id', 'stream_bookmarks', ['stream_id'], unique=False)

    # ==========================================================================
    # Assets
    # ==========================================================================

    op.create_table(
        'assets',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('type', sa.String(length=20), nullable=False, server_default='image'),
        sa.Column('url', sa.String(length=2000), nullable=False),
        sa.Column('thumbnail_url', sa.String(length=2000), nullable=True),
        sa.Column('medium_url', sa.String(length=2000), nullable=True),
        sa.Column('uploader_id', sa.UUID(), nullable=False),
        sa.Column('width', sa.Integer(), nullable=True),
        sa.Column('height', sa.Integer(), nullable=True),
        sa.Column('file_size', sa.BigInteger(), nullable=True),
        sa.Column('mime_type', sa.String(length=100), nullable=True),
        sa.Column('dominant_color', sa.String(length=20), nullable=True),
        sa.Column('color_palette', sa.JSON(), nullable=True),
        sa.Column('asset_type', enum('assettype'), nullable=False, server_default='image'),
        sa.Column('embed_url', sa.String(length=2000), nullable=True),
        sa.Column('embed_provider', sa.String(length=50), nullable=True),
        sa.Column('visibility', enum('assetvisibility'), nullable=False, server_default='public'),
        sa.Column('view_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['uploader_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_assets_uploader_id', 'assets', ['uploader_id'], unique=False)
    op.create_index('ix_assets_created_at', 'assets', ['created_at'], unique=False)

    op.create_table(
        'asset_streams',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('asset_id', sa.UUID(), nullable=False),
        sa.Column('stream_id', sa.UUID(), nullable=False),
        sa.Column('added_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('added_by', sa.UUID(), nullable=True),
        sa.ForeignKeyConstraint(['asset_id'], ['assets.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['stream_id'], ['streams.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['added_by'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('asset_id', 'stream_id'),
    )
    op.create_index('ix_asset_streams_asset_id', 'asset_streams', ['asset_id'], unique=False)
    op.create_index('ix_asset_streams_stream_id', 'asset_streams', ['stream_id'], unique=False)

    op.create_table(
        'asset_likes',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('asset_id', sa.UUID(), nullable=False),
        sa.Column('user_id', sa.UUID(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['asset_id'], ['assets.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('asset_id', 'user_id'),
    )
    op.create_index('ix_asset_likes_asset_id', 'asset_likes', ['asset_id'], unique=False)
    op.create_index('ix_asset_likes_user_id', 'asset_likes', ['user_id'], unique=False)

    op.create_table(
        'asset_comments',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('asset_id', sa.UUID(), nullable=False),
        sa.Column('user_id', sa.UUID(), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('parent_id', sa.UUID(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['asset_id'], ['assets.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['parent_id'], ['asset_comments.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_asset_comments_asset_id', 'asset_comments', ['asset_id'], unique=False)
    op.create_index('ix_asset_comments_user_id', 'asset_comments', ['user_id'], unique=False)
    op.create_index('ix_asset_comments_parent_id', 'asset_comments', ['parent_id'], unique=False)

    op.create_table(
        'comment_likes',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('comment_id', sa.UUID(), nullable=False),
        sa.Column('user_id', sa.UUID(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['comment_id'], ['asset_comments.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('comment_id', 'user_id'),
    )
    op.create_index('ix_comment_likes_comment_id', 'comment_likes', ['comment_id'], unique=False)

    op.create_table(
        'asset_views',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('asset_id', sa.UUID(), nullable=False),
        sa.Column('user_id', sa.UUID(), nullable=False),
        sa.Column('viewed_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['asset_id'], ['assets.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('asset_id', 'user_id'),
    )
    op.create_index('ix_asset_views_asset_id', 'asset_views', ['asset_id'], unique=False)

    # ==========================================================================
    # Notifications
    # ==========================================================================

    op.create_table(
        'notifications',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('type', enum('notificationtype'), nullable=False),
        sa.Column('recipient_id', sa.UUID(), nullable=False),
        sa.Column('actor_id', sa.UUID(), nullable=False),
        sa.Column('resource_id', sa.UUID(), nullable=True),
        sa.Column('resource_type', enum('resourcetype'), nullable=True),
        sa.Column('comment_id', sa.UUID(), nullable=True),
        sa.Column('content', sa.Text(), nullable=True),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['recipient_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['actor_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['comment_id'], ['asset_comments.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_notifications_recipient_id', 'notifications', ['recipient_id'], unique=False)
    op.create_index('ix_notifications_actor_id', 'notifications', ['actor_id'], unique=False)
    op.create_index('ix_notifications_created_at', 'notifications', ['created_at'], unique=False)

    # ==========================================================================
    # Drops
    # ==========================================================================

    op.create_table(
        'drops',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('status', enum('dropstatus'), nullable=False, server_default='draft'),
        sa.Column('created_by', sa.UUID(), nullable=False),
        sa.Column('published_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('date_range_start', sa.DateTime(timezone=True), nullable=False),
        sa.Column('date_range_end', sa.DateTime(timezone=True), nullable=False),
        sa.Column('filter_stream_ids', sa.JSON(), nullable=True),
        sa.Column('filter_user_ids', sa.JSON(), nullable=True),
        sa.Column('is_weekly', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('use_blocks', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('show_date_range', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['created_by'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_drops_created_by', 'drops', ['created_by'], unique=False)
    op.create_index('ix_drops_created_at', 'drops', ['created_at'], unique=False)

    op.create_table(
        'drop_posts',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('drop_id', sa.UUID(), nullable=False),
        sa.Column('asset_id', sa.UUID(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('display_mode', enum('displaymode'), nullable=False, server_default='auto'),
        sa.Column('crop_position_x', sa.Integer(), nullable=False, server_default='50'),
        sa.Column('crop_position_y', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['drop_id'], ['drops.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['asset_id'], ['assets.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('drop_id', 'asset_id'),
    )
    op.create_index('ix_drop_posts_drop_id', 'drop_posts', ['drop_id'], unique=False)

    op.create_table(
        'drop_blocks',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('drop_id', sa.UUID(), nullable=False),
        sa.Column('type', enum('blocktype'), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('content', sa.Text(), nullable=True),
        sa.Column('heading_level', sa.Integer(), nullable=True),
        sa.Column('asset_id', sa.UUID(), nullable=True),
        sa.Column('display_mode', enum('displaymode'), nullable=False, server_default='auto'),
        sa.Column('crop_position_x', sa.Integer(), nullable=False, server_default='50'),
        sa.Column('crop_position_y', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('gallery_layout', enum('gallerylayout'), nullable=False, server_default='grid'),
        sa.Column('gallery_featured_index', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['drop_id'], ['drops.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['asset_id'], ['assets.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_drop_blocks_drop_id', 'drop_blocks', ['drop_id'], unique=False)

    op.create_table(
        'drop_block_gallery_images',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('block_id', sa.UUID(), nullable=False),
        sa.Column('asset_id', sa.UUID(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['block_id'], ['drop_blocks.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['asset_id'], ['assets.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('block_id', 'asset_id'),
    )
    op.create_index('ix_drop_block_gallery_images_block_id', 'drop_block_gallery_images', ['block_id'], unique=False)


def downgrade() -> None:
    # Drop tables in reverse order
    op.drop_table('drop_block_gallery_images')
    op.drop_table('drop_blocks')
    op.drop_table('drop_posts')
    op.drop_table('drops')
    op.drop_table('notifications')
    op.drop_table('asset_views')
    op.drop_table('comment_likes')
    op.drop_table('asset_comments')
    op.drop_table('asset_likes')
    op.drop_table('asset_streams')
    op.drop_table('assets')
    op.drop_table('stream_bookmarks')
    op.drop_table('stream_follows')
    op.drop_table('stream_members')
    op.drop_table('streams')
    op.drop_table('user_notification_settings')
    op.drop_table('user_follows')
    op.drop_table('refresh_tokens')
    op.drop_table('users')

    # Drop enums
    if op.get_bind().dialect.name == 'postgresql':
        for name in reversed(list(ENUMS)):
            op.execute(f"DROP TYPE IF EXISTS {name}")
