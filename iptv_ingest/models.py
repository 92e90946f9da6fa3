from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone, tzinfo

from iptv_ingest.services.category_service import Category, classify


@dataclass(frozen=True, slots=True)
class Channel:
    """One playable entry of a playlist.

    The category is computed once from (url, group, name) and never changes.
    """
    name: str
    url: str
    logo: str | None = None
    group: str | None = None
    tvg_id: str | None = None
    tvg_name: str | None = None
    tvg_logo: str | None = None
    tvg_shift: str | None = None
    radio: bool = False
    catchup: str | None = None
    category: Category = field(init=False, compare=True)

    def __post_init__(self) -> None:
        if not self.url:
            raise ValueError("Channel url must be non-empty")
        if self.tvg_name is None:
            object.__setattr__(self, "tvg_name", self.name)
        object.__setattr__(self, "category", classify(self.url, self.group, self.name))


@dataclass(frozen=True, slots=True)
class EpgProgram:
    """A single programme from an XMLTV guide (times are UTC)."""
    channel_id: str
    start: datetime
    stop: datetime
    title: str
    description: str | None = None

    def is_current(self, now: datetime | None = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return self.start < now < self.stop

    def formatted_time_range(self, tz: tzinfo | None = None) -> str:
        """'HH:MM - HH:MM' in the given timezone (UTC by default)."""
        tz = tz or timezone.utc
        return f"{self.start.astimezone(tz):%H:%M} - {self.stop.astimezone(tz):%H:%M}"


EpgIndex = dict[str, list[EpgProgram]]


__all__ = ["Category", "Channel", "EpgIndex", "EpgProgram"]
