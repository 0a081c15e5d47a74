from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Service health and cache status"""
    status: str
    channels: int = Field(..., description="Channels in the current catalog snapshot")
    genres: int
    catalog_fetched_at: str | None = Field(None, description="ISO8601 UTC time of the last playlist commit")
    playlist_state: str
    playlist_last_error: str | None = None
    next_playlist_refresh: str | None = None
    epg_enabled: bool
    epg_channels: int = Field(..., description="Guide channels with at least one program")
    epg_programs: int
    epg_expires_at: str | None = None
    next_epg_refresh: str | None = None


class CatalogRefreshResponse(BaseModel):
    """Result of a forced playlist refresh"""
    status: str
    channels: int
    genres: list[str]
    epg_urls: list[str]
    skipped_entries: int
    fetched_at: str | None


class MissingChannel(BaseModel):
    id: str
    name: str
    guide_id: str | None = None


class MissingEPGResponse(BaseModel):
    """Channels whose guide identifier has no programs"""
    channels_checked: int
    channels_missing: int
    missing: list[MissingChannel]
