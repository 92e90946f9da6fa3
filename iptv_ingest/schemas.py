from pydantic import BaseModel, ConfigDict, Field, field_validator


class CacheInfo(BaseModel):
    """Server-side playlist cache status reported by the device backend"""
    model_config = ConfigDict(extra="ignore")

    has_cache: bool = False
    cache_valid: bool = False
    cache_updated: str | None = None
    cache_expires_in_hours: int = 0
    cache_size_bytes: int = 0


class DeviceInfoResponse(BaseModel):
    """Response of GET /api/devices/{device_id}/info/"""
    model_config = ConfigDict(extra="ignore")

    mac_address: str
    device_name: str = ""
    m3u_url: str = Field(default="", description="Playlist URL assigned to the device")
    is_active: bool = True
    cache: CacheInfo | None = None

    @field_validator("m3u_url", mode="before")
    @classmethod
    def normalize_url(cls, v):
        """Null or padded URLs from the backend become a stripped string"""
        return (v or "").strip()
