"""
Category classification

Pure mapping from (url, group, name) to a Category. No I/O, never raises.
Rules are evaluated in priority order and the first match wins:
adult keywords, URL path segments, video file extensions, live URLs,
group-title conventions, then keywords in the combined name and group text.
"""
import enum
import re


class Category(enum.Enum):
    """Channel category with its display label"""

    LIVE_TV = "Live TV"
    MOVIES = "Movies"
    SERIES = "Series"
    ADULT = "Adult"
    OTHER = "Other"

    @property
    def label(self) -> str:
        return self.value


ADULT_KEYWORDS = (
    "adult", "xxx", "porn", "18+", "18 plus", "erotic", "sex",
    "nsfw", "mature", "adults only",
)

VIDEO_EXTENSIONS = (
    ".mp4", ".mkv", ".avi", ".mov", ".flv", ".wmv", ".m4v", ".mpg", ".mpeg", ".ts",
)

MOVIE_KEYWORDS = ("movie", "film", "cinema", "feature")

LIVE_KEYWORDS = (
    "live", "tv", "television", "channel", "channels", "broadcast",
    "streaming", "iptv", "sport", "sports", "news", "music", "radio",
    "hd", "fhd", "4k", "uhd", "bein", "sky", "espn", "cnn", "bbc", "fox",
)

SERIES_URL_SEGMENT = "/series/"
MOVIE_URL_SEGMENT = "/movie/"

# S01E01, Season 1, Episode 1, EP 01, Saison 1 (fr), Episodio 1 (es)
EPISODE_PATTERN = re.compile(
    r"s\d+\s*e\d+|season\s*\d+|episode\s*\d+|ep\s*\d+|saison\s*\d+|episodio\s*\d+",
    re.IGNORECASE,
)


def classify(url: str | None, group: str | None, name: str | None) -> Category:
    """
    Classify a channel.

    Args:
        url: Stream URL
        group: group-title attribute
        name: Display name

    Returns:
        The first matching Category, OTHER when nothing matches
    """
    url_lower = (url or "").lower()
    group_lower = (group or "").lower()
    name_lower = (name or "").lower()

    if _is_adult(url_lower, group_lower, name_lower):
        return Category.ADULT

    if SERIES_URL_SEGMENT in url_lower:
        return Category.SERIES
    if MOVIE_URL_SEGMENT in url_lower:
        return Category.MOVIES

    if has_video_extension(url_lower):
        return _vod_category(name_lower, group_lower)

    # No file extension on a real URL means a live stream
    if url_lower.strip():
        return Category.LIVE_TV

    if "vod" in group_lower or "movie" in group_lower or "film" in group_lower:
        return _vod_category(name_lower, group_lower)
    if "series" in group_lower or "show" in group_lower:
        return Category.SERIES
    if group_lower.startswith("mu|"):
        return _vod_category(name_lower, group_lower)

    if is_episode(name_lower, group_lower):
        return Category.SERIES
    if _is_movie(name_lower, group_lower):
        return Category.MOVIES
    if _is_live(f"{group_lower} {name_lower}"):
        return Category.LIVE_TV

    return Category.OTHER


def has_video_extension(url: str) -> bool:
    return url.lower().endswith(VIDEO_EXTENSIONS)


def is_episode(name: str, group: str) -> bool:
    """Check name and group for an episode marker"""
    return EPISODE_PATTERN.search(f"{name} {group}") is not None


def _vod_category(name: str, group: str) -> Category:
    return Category.SERIES if is_episode(name, group) else Category.MOVIES


def _is_adult(url: str, group: str, name: str) -> bool:
    return any(
        keyword in url or keyword in group or keyword in name
        for keyword in ADULT_KEYWORDS
    )


def _is_movie(name: str, group: str) -> bool:
    combined = f"{name} {group}"
    return any(keyword in combined for keyword in MOVIE_KEYWORDS) and not is_episode(name, group)


def _is_live(text: str) -> bool:
    return any(keyword in text for keyword in LIVE_KEYWORDS)
