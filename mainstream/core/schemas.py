"""
Mainstream - Pydantic Schemas
=============================

Request and response schemas for API validation.

Response fields that the web client reads in camelCase (``likeCount``,
``hasMore``...) are declared with aliases; FastAPI serializes by alias.
"""

from datetime import date, datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from mainstream.core.models import (
    AssetType,
    AssetVisibility,
    BlockType,
    DisplayMode,
    DropStatus,
    GalleryLayout,
    NotificationType,
    PlatformRole,
    ResourceType,
    StreamOwnerType,
    StreamRole,
    StreamStatus,
)
from mainstream.core.validation import COMMENT_MAX_LENGTH


# ==========================================================================
# Base Schemas
# ==========================================================================

class BaseSchema(BaseModel):
    """Base schema with common configuration."""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


class MessageResponse(BaseSchema):
    """Generic message response."""

    message: str
    success: bool = True


class ErrorResponse(BaseSchema):
    """Error response schema."""

    error: str
    detail: Optional[str] = None
    code: Optional[str] = None


class HealthResponse(BaseSchema):
    """Health check response."""

    status: str
    version: str
    environment: str
    database: str


# ==========================================================================
# Auth Schemas
# ==========================================================================

class UserCreate(BaseSchema):
    """Schema for user registration."""

    email: EmailStr
    password: str = Field(min_length=8, max_length=100)
    name: str = Field(min_length=1, max_length=255)

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        """Validate password strength."""
        if not any(c.isupper() for c in v):
            raise ValueError("Password must contain at least one uppercase letter")
        if not any(c.islower() for c in v):
            raise ValueError("Password must contain at least one lowercase letter")
        if not any(c.isdigit() for c in v):
            raise ValueError("Password must contain at least one digit")
        return v


class UserLogin(BaseSchema):
    email: EmailStr
    password: str


class TokenResponse(BaseSchema):
    """Schema for authentication tokens."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int  # seconds until access token expires


class RefreshTokenRequest(BaseSchema):
    refresh_token: str


# ==========================================================================
# User Schemas
# ==========================================================================

class UserSummary(BaseSchema):
    """The slice of a user embedded in other resources."""

    id: UUID
    username: str
    display_name: str
    avatar_url: Optional[str] = None


class UserResponse(UserSummary):
    """The authenticated user's own record (no password)."""

    email: str
    bio: Optional[str] = None
    job_title: Optional[str] = None
    location: Optional[str] = None
    platform_role: PlatformRole
    created_at: datetime


class UserProfileUpdate(BaseSchema):
    """
    Profile edits for ``PUT /users/me``.

    Format rules that the web client reports inline (username pattern,
    avatar host) are checked in the endpoint so they surface as 400s.
    """

    username: Optional[str] = None
    display_name: Optional[str] = Field(None, min_length=1, max_length=255)
    email: Optional[str] = None
    bio: Optional[str] = Field(None, max_length=500)
    location: Optional[str] = Field(None, max_length=100)
    job_title: Optional[str] = Field(None, max_length=100)
    avatar_url: Optional[str] = None


class AccountDelete(BaseSchema):
    password: str = ""


class UserStats(BaseSchema):
    followers: int
    following: int
    assets: int


class PublicProfile(UserSummary):
    bio: Optional[str] = None
    job_title: Optional[str] = None
    location: Optional[str] = None
    created_at: datetime


class UserProfileResponse(BaseSchema):
    user: PublicProfile
    stats: UserStats
    is_following: bool = Field(alias="isFollowing")


class UserListItem(UserSummary):
    bio: Optional[str] = None
    job_title: Optional[str] = None
    recent_assets: list["AssetBrief"] = Field(default_factory=list, alias="recentAssets")
    streams: list["StreamSummary"] = Field(default_factory=list)
    total_streams: int = Field(0, alias="totalStreams")
    follower_count: int = Field(0, alias="followerCount")


class UserListResponse(BaseSchema):
    users: list[UserListItem]
    total: int
    has_more: bool = Field(alias="hasMore")


# ==========================================================================
# Stream Schemas
# ==========================================================================

class StreamSummary(BaseSchema):
    id: UUID
    name: str
    is_private: bool = False


class StreamResponse(BaseSchema):
    id: UUID
    name: str
    description: Optional[str] = None
    cover_image_url: Optional[str] = None
    owner_type: StreamOwnerType
    owner_id: UUID
    is_private: bool
    status: StreamStatus
    created_at: datetime
    updated_at: datetime


class StreamDetail(StreamResponse):
    assets_count: int = Field(0, alias="assetsCount")


class StreamCreate(BaseSchema):
    name: str
    description: Optional[str] = Field(None, max_length=500)
    cover_image_url: Optional[str] = None
    is_private: bool = False
    asset_ids: list[UUID] = Field(default_factory=list)


class StreamUpdate(BaseSchema):
    name: Optional[str] = None
    description: Optional[str] = Field(None, max_length=500)
    cover_image_url: Optional[str] = None
    is_private: Optional[bool] = None


class StreamStatusUpdate(BaseSchema):
    status: str


class StreamFollowInfo(BaseSchema):
    is_following: bool = Field(alias="isFollowing")
    follower_count: int = Field(alias="followerCount")
    followers: list[UserSummary]
    contributor_count: int = Field(alias="contributorCount")
    contributors: list[UserSummary]
    asset_count: int = Field(alias="assetCount")


class MemberAdd(BaseSchema):
    user_id: UUID
    role: str = StreamRole.MEMBER.value


class MemberResponse(BaseSchema):
    user: UserSummary
    role: StreamRole
    joined_at: datetime


class MembersResponse(BaseSchema):
    members: list[MemberResponse]
    member_count: int = Field(alias="memberCount")
    current_user_role: Optional[StreamRole] = Field(None, alias="currentUserRole")
    stream_id: UUID = Field(alias="streamId")


class BookmarkCreate(BaseSchema):
    url: str = Field(min_length=1, max_length=2000)
    title: Optional[str] = Field(None, max_length=255)


class BookmarkResponse(BaseSchema):
    id: UUID
    stream_id: UUID
    url: str
    title: Optional[str] = None
    created_by: UUID
    position: int
    created_at: datetime


class StreamAssetAdd(BaseSchema):
    asset_id: UUID


# ==========================================================================
# Asset Schemas
# ==========================================================================

class AssetBrief(BaseSchema):
    """Compact asset card used inside profiles, drops and galleries."""

    id: UUID
    title: str
    description: Optional[str] = None
    url: str
    thumbnail_url: Optional[str] = None
    medium_url: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    asset_type: AssetType
    embed_provider: Optional[str] = None
    created_at: datetime


class AssetResponse(AssetBrief):
    """A feed item: the asset plus its uploader, streams and like state."""

    type: str
    file_size: Optional[int] = None
    mime_type: Optional[str] = None
    dominant_color: Optional[str] = None
    color_palette: Optional[list] = None
    embed_url: Optional[str] = None
    visibility: AssetVisibility
    view_count: int = 0
    uploader_id: UUID
    uploader: Optional[UserSummary] = None
    streams: list[StreamSummary] = Field(default_factory=list)
    like_count: int = Field(0, alias="likeCount")
    is_liked_by_current_user: bool = Field(False, alias="isLikedByCurrentUser")
    updated_at: datetime


class AssetCreate(BaseSchema):
    """Metadata for an already-stored upload."""

    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    url: str = Field(min_length=1, max_length=2000)
    thumbnail_url: Optional[str] = None
    medium_url: Optional[str] = None
    type: str = "image"
    asset_type: AssetType = AssetType.IMAGE
    width: Optional[int] = Field(None, ge=0)
    height: Optional[int] = Field(None, ge=0)
    file_size: Optional[int] = Field(None, ge=0)
    mime_type: Optional[str] = None
    dominant_color: Optional[str] = None
    color_palette: Optional[list[str]] = None
    visibility: AssetVisibility = AssetVisibility.PUBLIC
    stream_ids: list[UUID] = Field(default_factory=list)


class EmbedCreate(BaseSchema):
    url: str
    title: Optional[str] = None
    description: Optional[str] = None
    stream_ids: list[UUID] = Field(default_factory=list)


class AssetUpdate(BaseSchema):
    title: Optional[str] = None
    description: Optional[str] = None
    stream_ids: Optional[list[UUID]] = None


class AssetPage(BaseSchema):
    assets: list[AssetResponse]
    has_more: bool = Field(alias="hasMore")
    cursor: Optional[str] = None


class WeekGroupResponse(BaseSchema):
    key: str
    label: str
    week_start: date = Field(alias="weekStart")
    week_end: date = Field(alias="weekEnd")
    post_count: int = Field(alias="postCount")
    contributors: list[UserSummary]
    assets: list[AssetResponse]


class WeekGroupPage(BaseSchema):
    groups: list[WeekGroupResponse]
    has_more: bool = Field(alias="hasMore")
    cursor: Optional[str] = None


class ViewerResponse(BaseSchema):
    user: UserSummary
    viewed_at: datetime


class ViewersResponse(BaseSchema):
    viewers: list[ViewerResponse]
    total: int


# ==========================================================================
# Comment Schemas
# ==========================================================================

class CommentCreate(BaseSchema):
    content: str = Field(min_length=1, max_length=COMMENT_MAX_LENGTH)
    parent_id: Optional[UUID] = None


class CommentUpdate(BaseSchema):
    content: str = Field(min_length=1, max_length=COMMENT_MAX_LENGTH)


class CommentResponse(BaseSchema):
    id: UUID
    asset_id: UUID
    user_id: UUID
    content: str
    parent_id: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime
    user: Optional[UserSummary] = None
    likes: int = 0
    has_liked: bool = False


# ==========================================================================
# Notification Schemas
# ==========================================================================

class NotificationResponse(BaseSchema):
    id: UUID
    type: NotificationType
    resource_id: Optional[UUID] = None
    resource_type: Optional[ResourceType] = None
    comment_id: Optional[UUID] = None
    content: Optional[str] = None
    is_read: bool
    created_at: datetime
    actor: Optional[UserSummary] = None


class NotificationListResponse(BaseSchema):
    notifications: list[NotificationResponse]
    unread_count: int = Field(alias="unreadCount")


class NotificationMarkRead(BaseSchema):
    notification_ids: Optional[list[UUID]] = None
    mark_all: bool = False


class NotificationSettingsResponse(BaseSchema):
    in_app_enabled: bool
    likes_enabled: bool
    comments_enabled: bool
    follows_enabled: bool
    mentions_enabled: bool


class NotificationSettingsUpdate(BaseSchema):
    model_config = ConfigDict(extra="forbid")

    in_app_enabled: Optional[bool] = None
    likes_enabled: Optional[bool] = None
    comments_enabled: Optional[bool] = None
    follows_enabled: Optional[bool] = None
    mentions_enabled: Optional[bool] = None


# ==========================================================================
# Integration Schemas
# ==========================================================================

class IntegrationStatus(BaseSchema):
    """Connection state of one provider. The token itself is never returned."""

    connected: bool = False
    connected_at: Optional[datetime] = Field(None, alias="connectedAt")
    token_preview: Optional[str] = Field(None, alias="tokenPreview")


class IntegrationsResponse(BaseSchema):
    integrations: dict[str, IntegrationStatus]


class IntegrationUpdate(BaseSchema):
    """An empty or missing token disconnects the provider."""

    provider: str = Field(min_length=1)
    token: Optional[str] = None


class IntegrationUpdateResponse(MessageResponse):
    integration: IntegrationStatus


# ==========================================================================
# Drop Schemas
# ==========================================================================

class DropCreate(BaseSchema):
    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    date_range_start: datetime
    date_range_end: datetime
    filter_stream_ids: list[UUID] = Field(default_factory=list)
    filter_user_ids: list[UUID] = Field(default_factory=list)
    is_weekly: bool = False


class DropUpdate(BaseSchema):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    show_date_range: Optional[bool] = None

    @field_validator("title", "show_date_range")
    @classmethod
    def not_null(cls, v):
        if v is None:
            raise ValueError("Field cannot be null")
        return v


class DropResponse(BaseSchema):
    id: UUID
    title: str
    description: Optional[str] = None
    status: DropStatus
    created_by: UUID
    published_at: Optional[datetime] = None
    date_range_start: datetime
    date_range_end: datetime
    filter_stream_ids: Optional[list[UUID]] = None
    filter_user_ids: Optional[list[UUID]] = None
    is_weekly: bool
    use_blocks: bool
    show_date_range: bool
    created_at: datetime
    updated_at: datetime
    creator: Optional[UserSummary] = None


class DropListItem(DropResponse):
    post_count: int = 0


class DropListResponse(BaseSchema):
    drops: list[DropListItem]
    total: int


class DropCreateResponse(BaseSchema):
    drop: DropResponse
    post_count: int


class DropPostResponse(BaseSchema):
    id: UUID
    drop_id: UUID
    asset_id: UUID
    position: int
    display_mode: DisplayMode
    crop_position_x: int
    crop_position_y: int
    asset: AssetResponse


class DropDetailResponse(DropResponse):
    posts: list[DropPostResponse]
    contributors: list[UserSummary]
    post_count: int


class DropPostsAdd(BaseSchema):
    asset_ids: list[UUID] = Field(min_length=1)


class DropPostsAdded(BaseSchema):
    added: int


class DisplayModeUpdate(BaseSchema):
    display_mode: Optional[str] = None
    crop_position_x: Optional[int] = None
    crop_position_y: Optional[int] = None


class PublishRequest(BaseSchema):
    notify_team: bool = False


class PublishResponse(BaseSchema):
    drop: DropResponse
    email_sent: bool


class GenerateResponse(BaseSchema):
    description: str


# ==========================================================================
# Drop Block Schemas
# ==========================================================================

class BlockCreate(BaseSchema):
    type: str
    position: Optional[int] = Field(None, ge=0)
    content: Optional[str] = None
    heading_level: Optional[int] = Field(None, ge=1, le=3)
    asset_id: Optional[UUID] = None
    display_mode: DisplayMode = DisplayMode.AUTO
    crop_position_x: int = Field(50, ge=0, le=100)
    crop_position_y: int = Field(0, ge=0, le=100)
    gallery_layout: GalleryLayout = GalleryLayout.GRID
    gallery_featured_index: int = Field(0, ge=0)


class BlockUpdate(BaseSchema):
    content: Optional[str] = None
    heading_level: Optional[int] = Field(None, ge=1, le=3)
    asset_id: Optional[UUID] = None
    display_mode: Optional[DisplayMode] = None
    crop_position_x: Optional[int] = Field(None, ge=0, le=100)
    crop_position_y: Optional[int] = Field(None, ge=0, le=100)
    gallery_layout: Optional[GalleryLayout] = None
    gallery_featured_index: Optional[int] = Field(None, ge=0)

    @field_validator(
        "display_mode",
        "crop_position_x",
        "crop_position_y",
        "gallery_layout",
        "gallery_featured_index",
    )
    @classmethod
    def not_null(cls, v):
        if v is None:
            raise ValueError("Field cannot be null")
        return v


class BlockReorder(BaseSchema):
    block_ids: list[UUID] = Field(min_length=1)


class GalleryImageResponse(BaseSchema):
    id: UUID
    block_id: UUID
    asset_id: UUID
    position: int
    asset: Optional[AssetBrief] = None


class BlockResponse(BaseSchema):
    id: UUID
    drop_id: UUID
    type: BlockType
    position: int
    content: Optional[str] = None
    heading_level: Optional[int] = None
    asset_id: Optional[UUID] = None
    display_mode: DisplayMode
    crop_position_x: int
    crop_position_y: int
    gallery_layout: GalleryLayout
    gallery_featured_index: int
    asset: Optional[AssetBrief] = None
    gallery_images: list[GalleryImageResponse] = Field(default_factory=list)


class GalleryImagesSet(BaseSchema):
    asset_ids: list[UUID] = Field(default_factory=list)


# ==========================================================================
# Search Schemas
# ==========================================================================

class SearchResponse(BaseSchema):
    assets: list[AssetResponse]
    users: list[UserSummary]
    streams: list[StreamResponse]
    total: int


# ==========================================================================
# Admin Schemas
# ==========================================================================

class AdminUser(UserSummary):
    email: str
    platform_role: PlatformRole
    created_at: datetime


class AdminUserList(BaseSchema):
    users: list[AdminUser]
    total: int
    has_more: bool = Field(alias="hasMore")


class RoleUpdate(BaseSchema):
    platform_role: str


class AdminUserEnvelope(BaseSchema):
    user: AdminUser


class AdminUserStats(BaseSchema):
    uploads: int
    likes_given: int
    likes_received: int
    comments: int
    followers: int
    following: int
    streams_owned: int
    total_views: int
    storage_bytes: int
    storage_formatted: str


class AdminUserDetails(BaseSchema):
    user: UserResponse
    stats: AdminUserStats
    recent_uploads: list[AssetBrief]


class ActivityItem(BaseSchema):
    type: str
    timestamp: datetime
    details: dict[str, Any]


class ActivityResponse(BaseSchema):
    activities: list[ActivityItem]
    total: int


class AdminStream(BaseSchema):
    id: UUID
    name: str
    description: Optional[str] = None
    cover_image_url: Optional[str] = None
    is_private: bool
    status: StreamStatus
    created_at: datetime
    owner: Optional[UserSummary] = None
    asset_count: int
    member_count: int


class AdminStreamList(BaseSchema):
    streams: list[AdminStream]
    total: int
    page: int
    limit: int
    total_pages: int = Field(alias="totalPages")


class StreamRename(BaseSchema):
    name: str


class StreamMerge(BaseSchema):
    source_id: UUID = Field(alias="sourceId")
    target_id: UUID = Field(alias="targetId")


class MergeResult(BaseSchema):
    source: StreamSummary
    target: StreamSummary
    assets_moved: int = Field(alias="assetsMoved")
    members_added: int = Field(alias="membersAdded")


class MergeResponse(BaseSchema):
    success: bool = True
    merged: MergeResult


class SignupPoint(BaseSchema):
    date: str
    count: int


class TopContributor(UserSummary):
    upload_count: int
    like_count: int
    comment_count: int


class UserAnalytics(BaseSchema):
    total: int
    active_this_week: int = Field(alias="activeThisWeek")
    signups_over_time: list[SignupPoint] = Field(alias="signupsOverTime")


class ContentAnalytics(BaseSchema):
    total_uploads: int = Field(alias="totalUploads")
    total_likes: int = Field(alias="totalLikes")
    total_comments: int = Field(alias="totalComments")
    total_views: int = Field(alias="totalViews")


class StorageAnalytics(BaseSchema):
    total_bytes: int = Field(alias="totalBytes")
    total_formatted: str = Field(alias="totalFormatted")


class AnalyticsResponse(BaseSchema):
    users: UserAnalytics
    content: ContentAnalytics
    storage: StorageAnalytics
    top_contributors: list[TopContributor] = Field(alias="topContributors")


UserListItem.model_rebuild()
