"""
Mainstream - Drop Email Rendering
=================================

Turns a drop (its blocks, or its posts for drops created before blocks
existed) into email-safe HTML: inline styles, table layouts, black page.

Block data is flattened into plain view dicts here; the Jinja2 templates
in ``mainstream/templates`` only lay them out.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from jinja2 import Environment, PackageLoader, select_autoescape

from mainstream.core.config import settings
from mainstream.core.database import as_utc
from mainstream.core.models import BlockType, DisplayMode, GalleryLayout

GALLERY_MAX_IMAGES = 4
CONTRIBUTOR_AVATARS = 5

_env = Environment(
    loader=PackageLoader("mainstream", "templates"),
    autoescape=select_autoescape(["html"]),
    trim_blocks=True,
    lstrip_blocks=True,
)

STYLES = {
    "text": "font-size: 16px; line-height: 1.7; color: #a0a0a0; margin: 0 0 16px 0;",
    "heading1": "font-size: 28px; font-weight: 700; color: #ffffff; margin: 32px 0 16px 0; line-height: 1.3;",
    "heading2": "font-size: 22px; font-weight: 600; color: #ffffff; margin: 28px 0 12px 0; line-height: 1.3;",
    "heading3": "font-size: 18px; font-weight: 600; color: #ffffff; margin: 24px 0 10px 0; line-height: 1.3;",
    "divider": "border: none; border-top: 1px solid #333333; margin: 32px 0;",
    "quote": (
        "border-left: 3px solid #a78bfa; padding-left: 16px; margin: 24px 0; "
        "font-style: italic; color: #a0a0a0; font-size: 16px; line-height: 1.6;"
    ),
    "post_card": "margin-bottom: 32px;",
    "featured_post_card": "margin-bottom: 40px;",
    "post_image": "width: 100%; height: auto; max-height: 400px; display: block; border-radius: 12px;",
    "featured_image": "width: 100%; height: auto; max-height: 500px; display: block; border-radius: 16px;",
    "post_title": "font-size: 18px; font-weight: 600; color: #ffffff; margin: 0 0 8px 0; line-height: 1.4;",
    "featured_post_title": "font-size: 24px; font-weight: 700; color: #ffffff; margin: 0 0 12px 0; line-height: 1.3;",
    "post_description": "font-size: 15px; color: #a0a0a0; margin: 0 0 12px 0; line-height: 1.5;",
    "post_meta": "font-size: 14px; color: #666666; margin: 0;",
    "gallery_image": "width: 100%; height: auto; aspect-ratio: 1; object-fit: cover; border-radius: 8px;",
    "gallery_featured": "width: 100%; height: auto; border-radius: 12px; margin-bottom: 8px;",
    "container": (
        "max-width: 700px; margin: 0 auto; background-color: #000000; color: #ffffff; "
        "font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;"
    ),
    "brand": "font-size: 12px; color: #888888; letter-spacing: 0.1em; text-transform: uppercase; margin: 0;",
    "title": "font-size: 32px; font-weight: 700; color: #ffffff; margin: 24px 0 8px; line-height: 1.2;",
    "description": (
        "font-size: 16px; line-height: 1.7; color: #a0a0a0; padding: 0 20px 16px; "
        "margin: 0; text-align: center;"
    ),
    "stream_heading": "font-size: 14px; color: #a78bfa; text-transform: uppercase; letter-spacing: 0.05em; margin: 32px 0 16px;",
}


# ==========================================================================
# Formatting Helpers
# ==========================================================================

def format_post_date(created_at: datetime, now: Optional[datetime] = None) -> str:
    """Relative day label: today, yesterday, "3 days ago", then "Nov 5"."""
    now = as_utc(now or datetime.now(timezone.utc))
    created_at = as_utc(created_at)
    diff_days = (now - created_at).days
    if diff_days <= 0:
        return "today"
    if diff_days == 1:
        return "yesterday"
    if diff_days < 7:
        return f"{diff_days} days ago"
    return f"{created_at.strftime('%b')} {created_at.day}"


def format_contributor_names(names: list[str]) -> str:
    if not names:
        return ""
    if len(names) == 1:
        return names[0]
    if len(names) == 2:
        return f"{names[0]} and {names[1]}"
    others = len(names) - 2
    return f"{names[0]}, {names[1]}, and {others} other{'s' if others > 1 else ''}"


def effective_display_mode(display_mode: Optional[DisplayMode], asset: Any) -> DisplayMode:
    """``auto`` letterboxes Figma frames and crops everything else."""
    if display_mode and display_mode != DisplayMode.AUTO:
        return display_mode
    if asset is not None and asset.embed_provider == "figma":
        return DisplayMode.FIT
    return DisplayMode.COVER


def preferred_image_url(asset: Any) -> Optional[str]:
    return asset.medium_url or asset.url or asset.thumbnail_url


def post_meta(asset: Any, now: Optional[datetime] = None) -> str:
    parts = []
    uploader = getattr(asset, "uploader", None)
    if uploader is not None and uploader.display_name:
        parts.append(f"By {uploader.display_name}")
    if asset.created_at is not None:
        parts.append(format_post_date(asset.created_at, now))
    return " • ".join(parts)


# ==========================================================================
# View Models
# ==========================================================================

@dataclass
class PostView:
    title: str
    description: Optional[str]
    image_url: Optional[str]
    image_style: str
    meta: str
    featured: bool = False


@dataclass
class GalleryView:
    layout: str
    rows: list = field(default_factory=list)
    featured: Optional[dict] = None
    thumbnails: list = field(default_factory=list)
    overflow: int = 0


def build_post_view(
    asset: Any,
    display_mode: Optional[DisplayMode] = None,
    crop_x: Optional[int] = None,
    crop_y: Optional[int] = None,
    featured: bool = False,
    now: Optional[datetime] = None,
) -> PostView:
    mode = effective_display_mode(display_mode, asset)
    crop_x = 50 if crop_x is None else crop_x
    crop_y = 0 if crop_y is None else crop_y
    base = STYLES["featured_image"] if featured else STYLES["post_image"]
    fit = "contain" if mode == DisplayMode.FIT else "cover"
    position = f"{crop_x}% {crop_y}%" if mode == DisplayMode.COVER else "center"
    background = "#1a1a1a" if asset.embed_provider == "figma" else "transparent"
    return PostView(
        title=asset.title,
        description=asset.description,
        image_url=preferred_image_url(asset),
        image_style=f"{base} object-fit: {fit}; object-position: {position}; background-color: {background};",
        meta=post_meta(asset, now),
        featured=featured,
    )


def _gallery_image(asset: Any, thumbnail: bool = False) -> dict:
    if thumbnail:
        src = asset.thumbnail_url or asset.url
    else:
        src = preferred_image_url(asset)
    return {"src": src, "alt": asset.title or "Gallery image"}


def build_gallery_view(layout: GalleryLayout, featured_index: int, assets: list) -> Optional[GalleryView]:
    """Grid: up to four images in 2x2. Featured: one hero plus up to four thumbnails."""
    if not assets:
        return None

    if layout == GalleryLayout.FEATURED:
        index = featured_index if 0 <= featured_index < len(assets) else 0
        others = [a for i, a in enumerate(assets) if i != index][:GALLERY_MAX_IMAGES]
        return GalleryView(
            layout=GalleryLayout.FEATURED.value,
            featured=_gallery_image(assets[index]),
            thumbnails=[_gallery_image(a, thumbnail=True) for a in others],
        )

    grid = [_gallery_image(a) for a in assets[:GALLERY_MAX_IMAGES]]
    rows = [grid[i:i + 2] for i in range(0, len(grid), 2)]
    return GalleryView(
        layout=GalleryLayout.GRID.value,
        rows=rows,
        overflow=max(0, len(assets) - GALLERY_MAX_IMAGES),
    )


def build_block_view(block: Any, gallery_assets: Optional[list] = None, now: Optional[datetime] = None) -> Optional[dict]:
    """Flatten one block into what the template needs, or None to skip it."""
    block_type = BlockType(block.type)

    if block_type in (BlockType.TEXT, BlockType.QUOTE):
        return {"type": block_type.value, "content": block.content or ""}
    if block_type == BlockType.HEADING:
        level = block.heading_level if block.heading_level in (1, 2, 3) else 2
        return {"type": "heading", "level": level, "content": block.content or ""}
    if block_type == BlockType.DIVIDER:
        return {"type": "divider"}
    if block_type in (BlockType.POST, BlockType.FEATURED_POST):
        if block.asset is None:
            return None
        post = build_post_view(
            block.asset,
            block.display_mode,
            block.crop_position_x,
            block.crop_position_y,
            featured=block_type == BlockType.FEATURED_POST,
            now=now,
        )
        return {"type": "post", "post": post}
    if block_type == BlockType.IMAGE_GALLERY:
        gallery = build_gallery_view(
            GalleryLayout(block.gallery_layout or GalleryLayout.GRID),
            block.gallery_featured_index or 0,
            gallery_assets or [],
        )
        if gallery is None:
            return None
        return {"type": "gallery", "gallery": gallery}
    return None


# ==========================================================================
# Rendering
# ==========================================================================

@dataclass
class StreamSection:
    """Posts of a legacy drop that share a stream (name None for "Other")."""
    name: Optional[str]
    posts: list


def render_drop_email(
    drop: Any,
    *,
    contributors: list,
    blocks: Optional[list] = None,
    gallery_assets: Optional[dict] = None,
    sections: Optional[list[StreamSection]] = None,
    now: Optional[datetime] = None,
) -> str:
    """
    Render the complete email document for a drop.

    Block drops pass ``blocks`` (plus ``gallery_assets`` keyed by block id);
    legacy drops pass ``sections`` of drop posts grouped by stream.
    """
    now = now or datetime.now(timezone.utc)
    gallery_assets = gallery_assets or {}

    block_views = []
    post_count = 0
    if blocks is not None:
        for block in blocks:
            view = build_block_view(block, gallery_assets.get(block.id), now)
            if view is not None:
                block_views.append(view)
                if view["type"] == "post":
                    post_count += 1

    section_views = []
    for section in sections or []:
        posts = [
            build_post_view(
                post.asset,
                post.display_mode,
                post.crop_position_x,
                post.crop_position_y,
                now=now,
            )
            for post in section.posts
        ]
        post_count += len(posts)
        section_views.append({"name": section.name or "Other", "posts": posts})

    names = [c.display_name for c in contributors]
    template = _env.get_template("drop_email.html")
    return template.render(
        styles=STYLES,
        title=drop.title,
        description=drop.description,
        date_range=_date_range_label(drop),
        contributors=contributors[:CONTRIBUTOR_AVATARS],
        extra_contributors=max(0, len(contributors) - CONTRIBUTOR_AVATARS),
        contributor_names=format_contributor_names(names),
        post_count=post_count,
        use_blocks=blocks is not None,
        blocks=block_views,
        sections=section_views,
        drop_url=f"{settings.APP_URL.rstrip('/')}/drops/{drop.id}",
    )


def _date_range_label(drop: Any) -> Optional[str]:
    if not getattr(drop, "show_date_range", False):
        return None
    start = as_utc(drop.date_range_start)
    end = as_utc(drop.date_range_end)
    return f"{start.strftime('%b')} {start.day} - {end.strftime('%b')} {end.day}, {end.year}"
