"""
Mainstream - Database Models
============================

SQLAlchemy models for all entities.

Relationships are declared only in the many-to-one direction and loaded
eagerly; collections are always fetched with explicit queries so async
sessions never lazy-load.
"""

import enum
from datetime import datetime
from typing import Optional
from uuid import uuid4

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from mainstream.core.database import Base, utcnow


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    return [member.value for member in enum_cls]


def enum_column(enum_cls: type[enum.Enum]) -> Enum:
    """Enum column type persisting the lowercase values."""
    return Enum(enum_cls, name=enum_cls.__name__.lower(), values_callable=_enum_values)


# ==========================================================================
# Enums
# ==========================================================================

class PlatformRole(str, enum.Enum):
    """Platform-wide roles gating the admin dashboard."""
    USER = "user"
    ADMIN = "admin"
    OWNER = "owner"


class StreamOwnerType(str, enum.Enum):
    USER = "user"
    TEAM = "team"


class StreamStatus(str, enum.Enum):
    ACTIVE = "active"
    ARCHIVED = "archived"


class StreamRole(str, enum.Enum):
    """Membership roles inside a single stream."""
    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"


class AssetType(str, enum.Enum):
    IMAGE = "image"
    VIDEO = "video"
    EMBED = "embed"


class AssetVisibility(str, enum.Enum):
    PUBLIC = "public"
    UNLISTED = "unlisted"


class NotificationType(str, enum.Enum):
    LIKE_ASSET = "like_asset"
    LIKE_COMMENT = "like_comment"
    REPLY_COMMENT = "reply_comment"
    FOLLOW = "follow"
    MENTION = "mention"
    COMMENT = "comment"


class ResourceType(str, enum.Enum):
    ASSET = "asset"
    COMMENT = "comment"
    USER = "user"
    STREAM = "stream"


class DropStatus(str, enum.Enum):
    DRAFT = "draft"
    PUBLISHED = "published"


class DisplayMode(str, enum.Enum):
    """How an image is fitted into its frame in a drop."""
    AUTO = "auto"
    FIT = "fit"
    COVER = "cover"


class BlockType(str, enum.Enum):
    TEXT = "text"
    HEADING = "heading"
    POST = "post"
    FEATURED_POST = "featured_post"
    DIVIDER = "divider"
    QUOTE = "quote"
    IMAGE_GALLERY = "image_gallery"


class GalleryLayout(str, enum.Enum):
    GRID = "grid"
    FEATURED = "featured"


# ==========================================================================
# Mixins
# ==========================================================================

class CreatedAtMixin:
    """Mixin that adds a created_at timestamp."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
        index=True,
    )


class TimestampMixin(CreatedAtMixin):
    """Mixin that adds created_at and updated_at timestamps."""

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
        nullable=False,
    )


def uuid_pk() -> Mapped[UUID]:
    return mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid4)


def uuid_fk(target: str, ondelete: str = "CASCADE", nullable: bool = False, index: bool = True):
    return mapped_column(
        UUID(as_uuid=True),
        ForeignKey(target, ondelete=ondelete),
        nullable=nullable,
        index=index,
    )


# ==========================================================================
# Users & Auth
# ==========================================================================

class User(Base, TimestampMixin):
    """Platform user account and public profile."""

    __tablename__ = "users"

    id: Mapped[UUID] = uuid_pk()
    username: Mapped[str] = mapped_column(String(30), unique=True, index=True, nullable=False)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    avatar_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    bio: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    job_title: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    location: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    platform_role: Mapped[PlatformRole] = mapped_column(
        enum_column(PlatformRole),
        default=PlatformRole.USER,
        nullable=False,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    last_login: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    @property
    def is_admin(self) -> bool:
        return self.platform_role in (PlatformRole.ADMIN, PlatformRole.OWNER)

    @property
    def is_owner(self) -> bool:
        return self.platform_role == PlatformRole.OWNER

    def __repr__(self) -> str:
        return f"<User {self.username}>"


class RefreshToken(Base, TimestampMixin):
    """Refresh token storage for JWT authentication."""

    __tablename__ = "refresh_tokens"

    id: Mapped[UUID] = uuid_pk()
    user_id: Mapped[UUID] = uuid_fk("users.id")
    token_hash: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    revoked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    def __repr__(self) -> str:
        return f"<RefreshToken {self.id}>"


class UserFollow(Base, CreatedAtMixin):
    __tablename__ = "user_follows"
    __table_args__ = (UniqueConstraint("follower_id", "following_id"),)

    id: Mapped[UUID] = uuid_pk()
    follower_id: Mapped[UUID] = uuid_fk("users.id")
    following_id: Mapped[UUID] = uuid_fk("users.id")


class UserNotificationSettings(Base, TimestampMixin):
    """Per-user notification preferences. A missing row means everything is on."""

    __tablename__ = "user_notification_settings"

    id: Mapped[UUID] = uuid_pk()
    user_id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    in_app_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    likes_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    comments_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    follows_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    mentions_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class UserIntegration(Base, TimestampMixin):
    """
    A third-party account token connected by a user.

    ``access_token`` holds the encrypted token; ``token_hint`` keeps its
    last four characters so the settings page can show which token is
    connected without decrypting it.
    """

    __tablename__ = "user_integrations"
    __table_args__ = (UniqueConstraint("user_id", "provider"),)

    id: Mapped[UUID] = uuid_pk()
    user_id: Mapped[UUID] = uuid_fk("users.id")
    provider: Mapped[str] = mapped_column(String(32), nullable=False)
    access_token: Mapped[str] = mapped_column(Text, nullable=False)
    token_hint: Mapped[str] = mapped_column(String(4), nullable=False)

    def __repr__(self) -> str:
        return f"<UserIntegration {self.provider} user={self.user_id}>"


# ==========================================================================
# Streams
# ==========================================================================

class Stream(Base, TimestampMixin):
    """A named channel that assets and members belong to."""

    __tablename__ = "streams"

    id: Mapped[UUID] = uuid_pk()
    name: Mapped[str] = mapped_column(String(50), unique=True, index=True, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    cover_image_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    owner_type: Mapped[StreamOwnerType] = mapped_column(
        enum_column(StreamOwnerType),
        default=StreamOwnerType.USER,
        nullable=False,
    )
    owner_id: Mapped[UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    is_private: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    status: Mapped[StreamStatus] = mapped_column(
        enum_column(StreamStatus),
        default=StreamStatus.ACTIVE,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Stream {self.name}>"


class StreamMember(Base):
    __tablename__ = "stream_members"
    __table_args__ = (UniqueConstraint("stream_id", "user_id"),)

    id: Mapped[UUID] = uuid_pk()
    stream_id: Mapped[UUID] = uuid_fk("streams.id")
    user_id: Mapped[UUID] = uuid_fk("users.id")
    role: Mapped[StreamRole] = mapped_column(
        enum_column(StreamRole),
        default=StreamRole.MEMBER,
        nullable=False,
    )
    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )

    user: Mapped["User"] = relationship(lazy="joined")


class StreamFollow(Base, CreatedAtMixin):
    __tablename__ = "stream_follows"
    __table_args__ = (UniqueConstraint("stream_id", "user_id"),)

    id: Mapped[UUID] = uuid_pk()
    stream_id: Mapped[UUID] = uuid_fk("streams.id")
    user_id: Mapped[UUID] = uuid_fk("users.id")


class StreamBookmark(Base, CreatedAtMixin):
    __tablename__ = "stream_bookmarks"

    id: Mapped[UUID] = uuid_pk()
    stream_id: Mapped[UUID] = uuid_fk("streams.id")
    url: Mapped[str] = mapped_column(String(2000), nullable=False)
    title: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_by: Mapped[UUID] = uuid_fk("users.id")
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


# ==========================================================================
# Assets
# ==========================================================================

class Asset(Base, TimestampMixin):
    """An uploaded image, video or embedded design."""

    __tablename__ = "assets"

    id: Mapped[UUID] = uuid_pk()
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    type: Mapped[str] = mapped_column(String(20), default="image", nullable=False)
    url: Mapped[str] = mapped_column(String(2000), nullable=False)
    thumbnail_url: Mapped[Optional[str]] = mapped_column(String(2000), nullable=True)
    medium_url: Mapped[Optional[str]] = mapped_column(String(2000), nullable=True)
    uploader_id: Mapped[UUID] = uuid_fk("users.id")
    width: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    height: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    file_size: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    mime_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    dominant_color: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    color_palette: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    asset_type: Mapped[AssetType] = mapped_column(
        enum_column(AssetType),
        default=AssetType.IMAGE,
        nullable=False,
    )
    embed_url: Mapped[Optional[str]] = mapped_column(String(2000), nullable=True)
    embed_provider: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    visibility: Mapped[AssetVisibility] = mapped_column(
        enum_column(AssetVisibility),
        default=AssetVisibility.PUBLIC,
        nullable=False,
    )
    view_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    uploader: Mapped["User"] = relationship(lazy="joined")

    def __repr__(self) -> str:
        return f"<Asset {self.title}>"


class AssetStream(Base):
    __tablename__ = "asset_streams"
    __table_args__ = (UniqueConstraint("asset_id", "stream_id"),)

    id: Mapped[UUID] = uuid_pk()
    asset_id: Mapped[UUID] = uuid_fk("assets.id")
    stream_id: Mapped[UUID] = uuid_fk("streams.id")
    added_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )
    added_by: Mapped[Optional[UUID]] = uuid_fk("users.id", ondelete="SET NULL", nullable=True, index=False)


class AssetLike(Base, CreatedAtMixin):
    __tablename__ = "asset_likes"
    __table_args__ = (UniqueConstraint("asset_id", "user_id"),)

    id: Mapped[UUID] = uuid_pk()
    asset_id: Mapped[UUID] = uuid_fk("assets.id")
    user_id: Mapped[UUID] = uuid_fk("users.id")


class AssetComment(Base, TimestampMixin):
    __tablename__ = "asset_comments"

    id: Mapped[UUID] = uuid_pk()
    asset_id: Mapped[UUID] = uuid_fk("assets.id")
    user_id: Mapped[UUID] = uuid_fk("users.id")
    content: Mapped[str] = mapped_column(Text, nullable=False)
    parent_id: Mapped[Optional[UUID]] = uuid_fk("asset_comments.id", nullable=True)

    user: Mapped["User"] = relationship(lazy="joined")


class CommentLike(Base, CreatedAtMixin):
    __tablename__ = "comment_likes"
    __table_args__ = (UniqueConstraint("comment_id", "user_id"),)

    id: Mapped[UUID] = uuid_pk()
    comment_id: Mapped[UUID] = uuid_fk("asset_comments.id")
    user_id: Mapped[UUID] = uuid_fk("users.id")


class AssetView(Base):
    """One row per (asset, viewer); repeat views only refresh viewed_at."""

    __tablename__ = "asset_views"
    __table_args__ = (UniqueConstraint("asset_id", "user_id"),)

    id: Mapped[UUID] = uuid_pk()
    asset_id: Mapped[UUID] = uuid_fk("assets.id")
    user_id: Mapped[UUID] = uuid_fk("users.id")
    viewed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )

    user: Mapped["User"] = relationship(lazy="joined")


# ==========================================================================
# Notifications
# ==========================================================================

class Notification(Base, CreatedAtMixin):
    __tablename__ = "notifications"

    id: Mapped[UUID] = uuid_pk()
    type: Mapped[NotificationType] = mapped_column(enum_column(NotificationType), nullable=False)
    recipient_id: Mapped[UUID] = uuid_fk("users.id")
    actor_id: Mapped[UUID] = uuid_fk("users.id")
    resource_id: Mapped[Optional[UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)
    resource_type: Mapped[Optional[ResourceType]] = mapped_column(
        enum_column(ResourceType),
        nullable=True,
    )
    comment_id: Mapped[Optional[UUID]] = uuid_fk("asset_comments.id", nullable=True, index=False)
    content: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    actor: Mapped["User"] = relationship(foreign_keys=[actor_id], lazy="joined")


# ==========================================================================
# Drops
# ==========================================================================

class Drop(Base, TimestampMixin):
    """A curated, date-ranged digest of assets."""

    __tablename__ = "drops"

    id: Mapped[UUID] = uuid_pk()
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[DropStatus] = mapped_column(
        enum_column(DropStatus),
        default=DropStatus.DRAFT,
        nullable=False,
    )
    created_by: Mapped[UUID] = uuid_fk("users.id")
    published_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    date_range_start: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    date_range_end: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    filter_stream_ids: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    filter_user_ids: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    is_weekly: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    use_blocks: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    show_date_range: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    creator: Mapped["User"] = relationship(lazy="joined")

    def __repr__(self) -> str:
        return f"<Drop {self.title}>"


class DropPost(Base, CreatedAtMixin):
    __tablename__ = "drop_posts"
    __table_args__ = (UniqueConstraint("drop_id", "asset_id"),)

    id: Mapped[UUID] = uuid_pk()
    drop_id: Mapped[UUID] = uuid_fk("drops.id")
    asset_id: Mapped[UUID] = uuid_fk("assets.id")
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    display_mode: Mapped[DisplayMode] = mapped_column(
        enum_column(DisplayMode),
        default=DisplayMode.AUTO,
        nullable=False,
    )
    crop_position_x: Mapped[int] = mapped_column(Integer, default=50, nullable=False)
    crop_position_y: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    asset: Mapped["Asset"] = relationship(lazy="joined")


class DropBlock(Base, TimestampMixin):
    __tablename__ = "drop_blocks"

    id: Mapped[UUID] = uuid_pk()
    drop_id: Mapped[UUID] = uuid_fk("drops.id")
    type: Mapped[BlockType] = mapped_column(enum_column(BlockType), nullable=False)
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    content: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    heading_level: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    asset_id: Mapped[Optional[UUID]] = uuid_fk("assets.id", nullable=True, index=False)
    display_mode: Mapped[DisplayMode] = mapped_column(
        enum_column(DisplayMode),
        default=DisplayMode.AUTO,
        nullable=False,
    )
    crop_position_x: Mapped[int] = mapped_column(Integer, default=50, nullable=False)
    crop_position_y: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    gallery_layout: Mapped[GalleryLayout] = mapped_column(
        enum_column(GalleryLayout),
        default=GalleryLayout.GRID,
        nullable=False,
    )
    gallery_featured_index: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    asset: Mapped[Optional["Asset"]] = relationship(lazy="joined")


class DropBlockGalleryImage(Base, CreatedAtMixin):
    __tablename__ = "drop_block_gallery_images"
    __table_args__ = (UniqueConstraint("block_id", "asset_id"),)

    id: Mapped[UUID] = uuid_pk()
    block_id: Mapped[UUID] = uuid_fk("drop_blocks.id")
    asset_id: Mapped[UUID] = uuid_fk("assets.id")
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    asset: Mapped["Asset"] = relationship(lazy="joined")
