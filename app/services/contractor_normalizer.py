"""Parse and normalize contractor listings returned by the browsing agent.

The agent replies with free text that should embed a JSON array. Nothing in
it is trusted: every field is coerced, and anything missing or malformed
falls back to a fixed default so one bad listing never breaks a search.

Default table (``normalize_contractor``):

================  ==========================================================
field             default / rule
================  ==========================================================
id                ``"<platform>-<index>-<timestamp ms>"``
name              ``"<Platform display name> Pro #<index + 1>"``
rating            ``4.5``; strings like ``"4.8 (120)"`` use the first
                  number; clamped to 0..5 and rounded to one decimal
review_count      ``0``; ``"1,204 reviews"`` -> 1204
description       ``""``
profile_url       platform home page unless an http(s) URL is given;
                  site-relative paths are joined to the home page
profile_image     ``https://i.pravatar.cc/150?img=<index % 70 + 1>``
price             ``None`` (also for "contact", "quote", "n/a" ...)
needs_quote       ``True`` when price is ``None``
specialties       ``()``; a comma separated string is split
years_experience  ``None``; numbers and "12 years" are accepted
top_rated         ``False``; booleans, "yes"/"true"/"top pro" accepted
reviews           ``()``; strings or dicts, at most 5 each
availability      ``"Contact for availability"``
phone_number      ``None``
email             ``None`` unless it contains "@"
================  ==========================================================
"""
from __future__ import annotations

import json
import re
import time
from typing import Any
from urllib.parse import urljoin

from app.models.quote import Contractor, Review
from app.services.platforms import PLATFORMS

DEFAULT_RATING = 4.5
DEFAULT_AVAILABILITY = "Contact for availability"
MAX_REVIEWS = 5
PLACEHOLDER_IMAGE = "https://i.pravatar.cc/150?img={n}"

_NUMBER = re.compile(r"\d+(?:[.,]\d+)*")
_NO_PRICE = ("contact", "quote", "n/a", "unknown", "not listed", "varies", "none")
_TRUTHY = {"true", "yes", "y", "1", "top rated", "top pro", "elite"}


def _strip_fences(text: str) -> str:
    text = text.strip()
    if text.startswith("```"):
        parts = text.split("```")
        if len(parts) >= 2:
            text = parts[1]
        if text.startswith("json"):
            text = text[4:]
    return text.strip()


def parse_listings(raw_text: str) -> list[dict[str, Any]] | None:
    """Return the dict items of the first JSON array in `raw_text`, or None."""
    if not raw_text:
        return None
    text = _strip_fences(raw_text)
    start = text.find("[")
    end = text.rfind("]")
    if start < 0 or end <= start:
        return None
    try:
        parsed = json.loads(text[start : end + 1])
    except json.JSONDecodeError:
        return None
    if not isinstance(parsed, list):
        return None
    return [item for item in parsed if isinstance(item, dict)]


def _pick(raw: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = raw.get(key)
        if value is not None and value != "":
            return value
    return None


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return ", ".join(_text(v) for v in value if v is not None)
    return " ".join(str(value).split()).strip()


def _first_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    match = _NUMBER.search(_text(value))
    if not match:
        return None
    token = match.group(0)
    # "1,204" is a thousands separator, "4,8" a decimal comma.
    if re.fullmatch(r"\d{1,3}(?:,\d{3})+", token):
        token = token.replace(",", "")
    else:
        token = token.replace(",", ".")
    try:
        return float(token)
    except ValueError:
        return None


def _rating(value: Any) -> float:
    number = _first_number(value)
    if number is None:
        return DEFAULT_RATING
    return round(min(max(number, 0.0), 5.0), 1)


def _count(value: Any) -> int:
    number = _first_number(value)
    if number is None or number < 0:
        return 0
    return int(number)


def _price(value: Any) -> str | None:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return f"${value:g}"
    text = _text(value)
    if not text or any(marker in text.lower() for marker in _NO_PRICE):
        return None
    return text


def _url(value: Any, base_url: str) -> str:
    text = _text(value)
    if text.startswith(("http://", "https://")):
        return text
    if text.startswith("/"):
        return urljoin(base_url + "/", text.lstrip("/"))
    return base_url


def _string_list(value: Any) -> tuple[str, ...]:
    if isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, (list, tuple)):
        items = [_text(v) for v in value]
    else:
        return ()
    return tuple(dict.fromkeys(i.strip() for i in items if i and i.strip()))


def _years(value: Any) -> int | None:
    number = _first_number(value)
    if number is None or number < 0:
        return None
    return int(number)


def _flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value > 0
    return _text(value).lower() in _TRUTHY


def _review(value: Any) -> Review | None:
    if isinstance(value, str):
        text = _text(value)
        return Review(text=text) if text else None
    if not isinstance(value, dict):
        return None
    text = _text(_pick(value, "text", "review", "comment", "content"))
    if not text:
        return None
    rating = _first_number(_pick(value, "rating", "stars"))
    return Review(
        text=text,
        rating=round(min(max(rating, 0.0), 5.0), 1) if rating is not None else None,
        author=_text(_pick(value, "author", "name", "reviewer")) or "Anonymous",
        date=_text(_pick(value, "date", "when", "postedAt")),
    )


def _reviews(value: Any) -> tuple[Review, ...]:
    if isinstance(value, (str, dict)):
        value = [value]
    if not isinstance(value, (list, tuple)):
        return ()
    reviews = [r for r in (_review(v) for v in value) if r is not None]
    return tuple(reviews[:MAX_REVIEWS])


def normalize_contractor(
    raw: dict[str, Any],
    platform: str,
    index: int,
    *,
    timestamp_ms: int | None = None,
) -> Contractor:
    """Coerce one raw listing into a Contractor; see the module table."""
    known = PLATFORMS.get(platform)
    display_name = known.display_name if known else platform.title()
    base_url = known.base_url if known else ""
    stamp = timestamp_ms if timestamp_ms is not None else int(time.time() * 1000)

    price = _price(_pick(raw, "price", "pricing", "hourlyRate", "hourly_rate", "rate"))
    email = _text(_pick(raw, "email"))
    return Contractor(
        id=f"{platform}-{index}-{stamp}",
        name=_text(_pick(raw, "name", "businessName", "title")) or f"{display_name} Pro #{index + 1}",
        platform=platform,
        rating=_rating(_pick(raw, "rating", "stars", "score")),
        review_count=_count(_pick(raw, "reviewCount", "review_count", "reviews_count", "numReviews")),
        description=_text(_pick(raw, "description", "bio", "summary", "about")),
        profile_url=_url(_pick(raw, "profileUrl", "profile_url", "url", "link"), base_url),
        profile_image=_text(_pick(raw, "profileImage", "profile_image", "image", "avatar"))
        or PLACEHOLDER_IMAGE.format(n=index % 70 + 1),
        price=price,
        needs_quote=price is None,
        specialties=_string_list(_pick(raw, "specialties", "skills", "services", "tags")),
        years_experience=_years(_pick(raw, "yearsExperience", "years_experience", "experience")),
        top_rated=_flag(_pick(raw, "topRated", "top_rated", "topPro", "badge")),
        positive_reviews=_reviews(_pick(raw, "positiveReviews", "positive_reviews", "reviews")),
        negative_reviews=_reviews(_pick(raw, "negativeReviews", "negative_reviews")),
        availability=_text(_pick(raw, "availability", "available")) or DEFAULT_AVAILABILITY,
        phone_number=_text(_pick(raw, "phoneNumber", "phone_number", "phone")) or None,
        email=email if "@" in email else None,
    )


def normalize_listings(
    raw_items: list[dict[str, Any]],
    platform: str,
    *,
    timestamp_ms: int | None = None,
) -> list[Contractor]:
    stamp = timestamp_ms if timestamp_ms is not None else int(time.time() * 1000)
    return [
        normalize_contractor(item, platform, idx, timestamp_ms=stamp)
        for idx, item in enumerate(raw_items)
    ]
