"""
Mainstream - Search API
=======================

Case-insensitive substring search over public assets, users and public
active streams.
"""

from typing import Optional

from fastapi import APIRouter, HTTPException, status
from sqlalchemy import or_, select

from mainstream.api.deps import DbSession, OptionalUser
from mainstream.core.feed import enrich_assets
from mainstream.core.models import Asset, AssetVisibility, Stream, StreamStatus, User
from mainstream.core.pagination import PageSizes, parse_limit
from mainstream.core.schemas import SearchResponse, StreamResponse, UserSummary
from mainstream.core.validation import LIKE_ESCAPE, like_pattern

router = APIRouter(prefix="/search", tags=["Search"])

SEARCH_TYPES = ("all", "assets", "users", "streams")


@router.get(
    "",
    response_model=SearchResponse,
    summary="Search assets, users and streams",
    responses={400: {"description": "Missing query or invalid type"}},
)
async def search(
    db: DbSession,
    current_user: OptionalUser,
    q: Optional[str] = None,
    type: str = "all",
    limit: Optional[str] = None,
) -> SearchResponse:
    term = (q or "").strip()
    if not term:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Search query is required",
        )
    if type not in SEARCH_TYPES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"type must be one of: {', '.join(SEARCH_TYPES)}",
        )

    page_size = parse_limit(limit, default=PageSizes.SEARCH_PAGE, maximum=PageSizes.MAX_LIMIT)
    pattern = like_pattern(term)

    assets = []
    if type in ("all", "assets"):
        result = await db.execute(
            select(Asset)
            .where(
                Asset.visibility == AssetVisibility.PUBLIC,
                Asset.title.ilike(pattern, escape=LIKE_ESCAPE),
            )
            .order_by(Asset.created_at.desc())
            .limit(page_size)
        )
        assets = await enrich_assets(
            db, result.scalars().all(), current_user.id if current_user else None
        )

    users = []
    if type in ("all", "users"):
        result = await db.execute(
            select(User)
            .where(
                User.is_active.is_(True),
                or_(
                    User.username.ilike(pattern, escape=LIKE_ESCAPE),
                    User.display_name.ilike(pattern, escape=LIKE_ESCAPE),
                ),
            )
            .order_by(User.username)
            .limit(page_size)
        )
        users = [UserSummary.model_validate(u) for u in result.scalars().all()]

    streams = []
    if type in ("all", "streams"):
        result = await db.execute(
            select(Stream)
            .where(
                Stream.status == StreamStatus.ACTIVE,
                Stream.is_private.is_(False),
                or_(
                    Stream.name.ilike(pattern, escape=LIKE_ESCAPE),
                    Stream.description.ilike(pattern, escape=LIKE_ESCAPE),
                ),
            )
            .order_by(Stream.name)
            .limit(page_size)
        )
        streams = [StreamResponse.model_validate(s) for s in result.scalars().all()]

    return SearchResponse(
        assets=assets,
        users=users,
        streams=streams,
        total=len(assets) + len(users) + len(streams),
    )
