"""App category lookup: a built-in table plus per-user overrides.

Resolution order for an app identifier (normalized: trimmed, lower-cased):

1. the user's override map,
2. an exact match in ``DEFAULT_APP_CATEGORIES``,
3. a partial match (either string contains the other) against the same table,
4. ``"utility"``.

Partial matching only considers keys and identifiers of at least
``MIN_PARTIAL_MATCH_LEN`` characters, otherwise one-letter keys such as "x"
would match almost any app.
"""

from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Iterable, Mapping, get_args

from activity_timeline.models import AppCategory, CategoryOverride

logger = logging.getLogger(__name__)

APP_CATEGORIES: tuple[str, ...] = get_args(AppCategory)
DEFAULT_CATEGORY: AppCategory = "utility"
MIN_PARTIAL_MATCH_LEN = 3

_DEFAULT_APP_CATEGORIES: dict[str, AppCategory] = {
    # work: productivity, documents, meetings, design
    "slack": "work",
    "google docs": "work",
    "docs": "work",
    "gmail": "work",
    "google meet": "work",
    "meet": "work",
    "zoom": "work",
    "calendar": "work",
    "google calendar": "work",
    "figma": "work",
    "notion": "work",
    "linear": "work",
    "vs code": "work",
    "visual studio code": "work",
    "code": "work",
    "xcode": "work",
    "android studio": "work",
    "teams": "work",
    "microsoft teams": "work",
    "outlook": "work",
    "google sheets": "work",
    "sheets": "work",
    "excel": "work",
    "microsoft excel": "work",
    "word": "work",
    "microsoft word": "work",
    "powerpoint": "work",
    "microsoft powerpoint": "work",
    "keynote": "work",
    "numbers": "work",
    "pages": "work",
    "jira": "work",
    "asana": "work",
    "trello": "work",
    "monday": "work",
    "clickup": "work",
    "basecamp": "work",
    "confluence": "work",
    "github": "work",
    "gitlab": "work",
    "bitbucket": "work",
    "terminal": "work",
    "iterm": "work",
    "webex": "work",
    "cisco webex": "work",
    "miro": "work",
    "sketch": "work",
    "adobe xd": "work",
    "photoshop": "work",
    "illustrator": "work",
    "premiere pro": "work",
    "after effects": "work",
    "canva": "work",
    "dropbox": "work",
    "google drive": "work",
    "drive": "work",
    "evernote": "work",
    "bear": "work",
    "obsidian": "work",
    "roam": "work",
    "craft": "work",
    "quip": "work",
    "airtable": "work",
    "coda": "work",
    "loom": "work",
    "calendly": "work",

    # social networks
    "instagram": "social",
    "tiktok": "social",
    "x": "social",
    "twitter": "social",
    "reddit": "social",
    "facebook": "social",
    "snapchat": "social",
    "linkedin": "social",
    "threads": "social",
    "mastodon": "social",
    "bluesky": "social",
    "pinterest": "social",
    "tumblr": "social",
    "discord": "social",
    "clubhouse": "social",
    "nextdoor": "social",
    "yelp": "social",
    "strava": "social",
    "untappd": "social",
    "goodreads": "social",
    "letterboxd": "social",

    # media, streaming, games
    "youtube": "entertainment",
    "netflix": "entertainment",
    "spotify": "entertainment",
    "apple music": "entertainment",
    "music": "entertainment",
    "twitch": "entertainment",
    "disney+": "entertainment",
    "disney": "entertainment",
    "disneyplus": "entertainment",
    "podcasts": "entertainment",
    "apple podcasts": "entertainment",
    "overcast": "entertainment",
    "pocket casts": "entertainment",
    "hulu": "entertainment",
    "hbo max": "entertainment",
    "max": "entertainment",
    "prime video": "entertainment",
    "amazon prime video": "entertainment",
    "peacock": "entertainment",
    "paramount": "entertainment",
    "paramount+": "entertainment",
    "apple tv": "entertainment",
    "apple tv+": "entertainment",
    "plex": "entertainment",
    "vlc": "entertainment",
    "audible": "entertainment",
    "kindle": "entertainment",
    "books": "entertainment",
    "apple books": "entertainment",
    "news": "entertainment",
    "apple news": "entertainment",
    "google news": "entertainment",
    "flipboard": "entertainment",
    "feedly": "entertainment",
    "youtube music": "entertainment",
    "pandora": "entertainment",
    "deezer": "entertainment",
    "soundcloud": "entertainment",
    "tidal": "entertainment",
    # games
    "candy crush": "entertainment",
    "clash royale": "entertainment",
    "clash of clans": "entertainment",
    "wordle": "entertainment",
    "pokemon go": "entertainment",
    "roblox": "entertainment",
    "minecraft": "entertainment",
    "among us": "entertainment",
    "call of duty": "entertainment",
    "fortnite": "entertainment",
    "genshin impact": "entertainment",
    "game center": "entertainment",
    "steam": "entertainment",

    # messaging and calls
    "messages": "comms",
    "imessage": "comms",
    "whatsapp": "comms",
    "telegram": "comms",
    "signal": "comms",
    "phone": "comms",
    "facetime": "comms",
    "skype": "comms",
    "viber": "comms",
    "line": "comms",
    "wechat": "comms",
    "kakaotalk": "comms",
    "messenger": "comms",
    "facebook messenger": "comms",
    "mail": "comms",
    "apple mail": "comms",
    "spark": "comms",
    "airmail": "comms",
    "proton mail": "comms",
    "contacts": "comms",

    # system tools, navigation, browsers, shopping
    "maps": "utility",
    "google maps": "utility",
    "apple maps": "utility",
    "waze": "utility",
    "photos": "utility",
    "google photos": "utility",
    "weather": "utility",
    "apple weather": "utility",
    "calculator": "utility",
    "settings": "utility",
    "files": "utility",
    "finder": "utility",
    "notes": "utility",
    "apple notes": "utility",
    "reminders": "utility",
    "google keep": "utility",
    "voice memos": "utility",
    "wallet": "utility",
    "apple wallet": "utility",
    "google pay": "utility",
    "apple pay": "utility",
    "health": "utility",
    "apple health": "utility",
    "fitness": "utility",
    "apple fitness": "utility",
    "activity": "utility",
    "clock": "utility",
    "alarms": "utility",
    "timer": "utility",
    "compass": "utility",
    "measure": "utility",
    "translate": "utility",
    "google translate": "utility",
    "shortcuts": "utility",
    "siri shortcuts": "utility",
    "app store": "utility",
    "google play store": "utility",
    "safari": "utility",
    "chrome": "utility",
    "google chrome": "utility",
    "firefox": "utility",
    "edge": "utility",
    "brave": "utility",
    "arc": "utility",
    "1password": "utility",
    "lastpass": "utility",
    "bitwarden": "utility",
    "authenticator": "utility",
    "google authenticator": "utility",
    "authy": "utility",
    "uber": "utility",
    "lyft": "utility",
    "doordash": "utility",
    "uber eats": "utility",
    "grubhub": "utility",
    "instacart": "utility",
    "amazon": "utility",
    "amazon shopping": "utility",
    "target": "utility",
    "walmart": "utility",
    "ebay": "utility",
    "etsy": "utility",

    # system surfaces, never counted
    "springboard": "ignore",
    "siri": "ignore",
    "screen time": "ignore",
    "control center": "ignore",
    "notification center": "ignore",
    "app switcher": "ignore",
    "system preferences": "ignore",
    "system settings": "ignore",
    "spotlight": "ignore",
    "launchpad": "ignore",
    "dock": "ignore",
    "mission control": "ignore",
    "dashboard": "ignore",
    "login window": "ignore",
    "installer": "ignore",
    "software update": "ignore",
}

DEFAULT_APP_CATEGORIES: Mapping[str, AppCategory] = MappingProxyType(_DEFAULT_APP_CATEGORIES)

CategoryOverrides = Mapping[str, CategoryOverride]


def normalize_app_key(value: str) -> str:
    return value.strip().lower()


def is_app_category(value: str) -> bool:
    return value in APP_CATEGORIES


def build_overrides(rows: Iterable[tuple[str, str] | tuple[str, str, float]]) -> dict[str, CategoryOverride]:
    """Build an override map from ``(app_key, category[, confidence])`` rows.

    Keys are normalized; rows with an empty key or an unknown category are
    skipped with a warning. Later rows win.
    """

    out: dict[str, CategoryOverride] = {}
    for row in rows:
        app_key, category = row[0], row[1]
        key = normalize_app_key(app_key or "")
        cat = normalize_app_key(category or "")
        if not key or not is_app_category(cat):
            logger.warning("Skipping category override %r -> %r", app_key, category)
            continue
        confidence = float(row[2]) if len(row) > 2 else 0.6  # type: ignore[misc]
        out[key] = CategoryOverride(category=cat, confidence=confidence)  # type: ignore[arg-type]
    return out


def get_app_category(
    app_id: str,
    overrides: CategoryOverrides | None = None,
    table: Mapping[str, AppCategory] = DEFAULT_APP_CATEGORIES,
) -> AppCategory:
    """Resolve the category of an app.

    Args:
        app_id: Bundle id or display name.
        overrides: Normalized app key -> user override.
        table: Built-in category table.

    Returns:
        The category; ``"utility"`` for empty or unknown apps.
    """

    key = normalize_app_key(app_id or "")
    if not key:
        return DEFAULT_CATEGORY

    if overrides:
        override = overrides.get(key)
        if override is not None:
            return override.category

    exact = table.get(key)
    if exact is not None:
        return exact

    if len(key) >= MIN_PARTIAL_MATCH_LEN:
        for known, category in table.items():
            if len(known) < MIN_PARTIAL_MATCH_LEN:
                continue
            if known in key or key in known:
                return category

    return DEFAULT_CATEGORY


def is_work_category(category: AppCategory) -> bool:
    return category == "work"


def is_leisure_category(category: AppCategory) -> bool:
    return category in ("social", "entertainment")


def apps_by_category(
    category: AppCategory,
    table: Mapping[str, AppCategory] = DEFAULT_APP_CATEGORIES,
) -> list[str]:
    return [app for app, cat in table.items() if cat == category]
