"""Shared fixtures: settings factory, sample playlist and XMLTV builder."""

from datetime import datetime
from xml.sax.saxutils import escape

import pytest

from tests.samples import GUIDE_URL, PLAYLIST_URL
from tvcatalog.config import CatalogSettings
from tvcatalog.dependencies import CatalogRuntime
from tvcatalog.services.cache_scheduler import CacheScheduler
from tvcatalog.services.cache_store import CacheStore
from tvcatalog.services.epg_scheduler import EPGScheduler


@pytest.fixture
def make_settings():
    """Build isolated settings (no .env) with fast retry defaults."""

    def _make(**overrides) -> CatalogSettings:
        values = {
            "_env_file": None,
            "m3u_url": PLAYLIST_URL,
            "epg_url": GUIDE_URL,
            "retry_attempts": 3,
            "retry_delay_sec": 0,
            "fetch_timeout_sec": 1.0,
        }
        values.update(overrides)
        return CatalogSettings(**values)

    return _make


@pytest.fixture
def settings(make_settings) -> CatalogSettings:
    return make_settings()


def xmltv_time(value: datetime) -> str:
    return value.strftime("%Y%m%d%H%M%S +0000")


@pytest.fixture
def build_xmltv():
    """Return a builder producing XMLTV text.

    channels: iterable of (guide_id, display_name)
    programmes: iterable of (guide_id, start, stop, title) where start/stop
    are datetimes or raw XMLTV strings (None omits the attribute)
    """

    def _attr(name, value):
        if value is None:
            return ""
        if isinstance(value, datetime):
            value = xmltv_time(value)
        return f' {name}="{value}"'

    def _build(channels=(), programmes=()) -> str:
        parts = ['<?xml version="1.0" encoding="UTF-8"?>', "<tv>"]
        for guide_id, name in channels:
            parts.append(
                f'<channel id="{escape(guide_id)}"><display-name>{escape(name)}</display-name></channel>'
            )
        for guide_id, start, stop, title in programmes:
            title_xml = f"<title>{escape(title)}</title>" if title is not None else ""
            parts.append(
                f'<programme channel="{escape(guide_id)}"{_attr("start", start)}{_attr("stop", stop)}>'
                f"{title_xml}<desc>About {escape(title or '')}</desc></programme>"
            )
        parts.append("</tv>")
        return "\n".join(parts)

    return _build


@pytest.fixture
def make_runtime(make_settings):
    """Build a CatalogRuntime whose schedulers use the given fetchers."""

    def _make(playlist_fetcher, guide_fetcher, **overrides):
        settings = make_settings(**overrides)
        store = CacheStore()
        return CatalogRuntime(
            settings=settings,
            store=store,
            cache_scheduler=CacheScheduler(settings, store, fetcher=playlist_fetcher),
            epg_scheduler=EPGScheduler(settings, store, fetcher=guide_fetcher),
        )

    return _make
