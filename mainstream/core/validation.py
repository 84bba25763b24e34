"""
Mainstream - Field Rules
========================

Name, slug and URL rules shared by the API and the registration flow.
"""

import re
import secrets
from urllib.parse import urlparse
from uuid import uuid4

USERNAME_RE = re.compile(r"^[a-zA-Z0-9_-]+$")
PROFILE_USERNAME_RE = re.compile(r"^[a-z0-9_-]{3,20}$")
STREAM_NAME_RE = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

USERNAME_MIN_LENGTH = 3
USERNAME_MAX_LENGTH = 30
STREAM_NAME_MIN_LENGTH = 2
STREAM_NAME_MAX_LENGTH = 50
STREAM_DESCRIPTION_MAX_LENGTH = 500
COMMENT_MAX_LENGTH = 5000

ALLOWED_AVATAR_PREFIXES = (
    "/uploads/avatars/",
    "https://avatar.vercel.sh/",
    "https://www.gravatar.com/avatar/",
    "https://avatars.githubusercontent.com/",
)


def is_valid_stream_name(name: str) -> bool:
    return (
        STREAM_NAME_MIN_LENGTH <= len(name) <= STREAM_NAME_MAX_LENGTH
        and bool(STREAM_NAME_RE.match(name))
    )


def normalize_stream_name(raw: str) -> str:
    """Turn free text into a stream slug: "My Cool  Stream!" -> "my-cool-stream"."""
    name = raw.strip().lower()
    name = re.sub(r"\s+", "-", name)
    name = re.sub(r"[^a-z0-9-]", "", name)
    name = re.sub(r"-+", "-", name)
    return name.strip("-")


def is_allowed_avatar_url(url: str) -> bool:
    return url.startswith(ALLOWED_AVATAR_PREFIXES)


def is_http_url(url: str) -> bool:
    parsed = urlparse(url)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_RE.match(email))


# ==========================================================================
# Username Generation
# ==========================================================================

def slugify_username(raw: str) -> str:
    """Derive a username candidate from a display name or email local part."""
    candidate = re.sub(r"[^a-z0-9_-]", "_", raw.lower())
    candidate = re.sub(r"_+", "_", candidate).strip("_")
    if len(candidate) < USERNAME_MIN_LENGTH:
        candidate = f"{candidate}_user".lstrip("_")
    return candidate[:USERNAME_MAX_LENGTH]


def username_with_suffix(base: str) -> str:
    suffix = f"_{secrets.randbelow(10000):04d}"
    return base[: USERNAME_MAX_LENGTH - len(suffix)] + suffix


def fallback_username() -> str:
    return f"user_{uuid4().hex[:8]}"


def default_avatar_url(username: str) -> str:
    return f"https://avatar.vercel.sh/{username}.png"


LIKE_ESCAPE = "\\"


def like_pattern(term: str) -> str:
    """Substring pattern for ``ilike(..., escape=LIKE_ESCAPE)``; ``%`` and ``_`` match literally."""
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"
