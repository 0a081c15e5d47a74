"""Tests for settings validation and derived URLs."""

import logging

import pytest
from pydantic import ValidationError

from tests.samples import EXTRA_GUIDE_URL, GUIDE_URL, NOW
from tvcatalog.config import combine_epg_urls, get_base_url, get_manifest_url
from tvcatalog.services.catalog_types import CatalogSnapshot


class TestEpgUrls:
    def test_comma_separated_string(self, make_settings):
        settings = make_settings(epg_url=f"{GUIDE_URL}, {EXTRA_GUIDE_URL} ,")

        assert settings.epg_url == [GUIDE_URL, EXTRA_GUIDE_URL]

    def test_blank_means_no_sources(self, make_settings):
        assert make_settings(epg_url="  ").epg_url == []

    def test_non_http_rejected(self, make_settings):
        with pytest.raises(ValidationError):
            make_settings(epg_url="ftp://guide.test/epg.xml")

    def test_from_environment(self, monkeypatch):
        from tvcatalog.config import CatalogSettings

        monkeypatch.setenv("EPG_URL", f"{GUIDE_URL},{EXTRA_GUIDE_URL}")
        monkeypatch.setenv("UPDATE_INTERVAL_SEC", "60")
        monkeypatch.setenv("ENABLE_EPG", "false")

        settings = CatalogSettings(_env_file=None)

        assert settings.epg_url == [GUIDE_URL, EXTRA_GUIDE_URL]
        assert settings.update_interval_sec == 60
        assert settings.enable_epg is False


class TestValidation:
    @pytest.mark.parametrize(
        "field",
        ["update_interval_sec", "max_age_sec", "fetch_timeout_sec", "cache_expiry_sec"],
    )
    def test_durations_must_be_positive(self, make_settings, field):
        with pytest.raises(ValidationError):
            make_settings(**{field: 0})

    @pytest.mark.parametrize("field", ["retry_attempts", "max_programs_per_channel", "epg_max_concurrency"])
    def test_counters_must_be_positive(self, make_settings, field):
        with pytest.raises(ValidationError):
            make_settings(**{field: 0})

    def test_zero_retry_delay_allowed(self, make_settings):
        assert make_settings(retry_delay_sec=0).retry_delay_sec == 0

    def test_negative_retry_delay_rejected(self, make_settings):
        with pytest.raises(ValidationError):
            make_settings(retry_delay_sec=-1)

    def test_blank_playlist_rejected(self, make_settings):
        with pytest.raises(ValidationError):
            make_settings(m3u_url="  ")

    def test_log_level_normalized(self, make_settings):
        assert make_settings(log_level="debug").log_level == "DEBUG"

    def test_unknown_log_level(self, make_settings):
        with pytest.raises(ValidationError):
            make_settings(log_level="chatty")

    def test_frozen(self, settings):
        with pytest.raises(ValidationError):
            settings.retry_attempts = 10


class TestDerivedUrls:
    def test_local_base_url(self, make_settings):
        settings = make_settings(port=8080)

        assert get_base_url(settings) == "http://localhost:8080"
        assert get_manifest_url(settings) == "http://localhost:8080/manifest.json"

    def test_domain_and_subpath(self, make_settings):
        settings = make_settings(domain="https://tv.example.org/", subpath="/addon/")

        assert get_base_url(settings) == "https://tv.example.org/addon"

    def test_combine_epg_urls_configured_first(self, make_settings):
        settings = make_settings(epg_url=GUIDE_URL)
        snapshot = CatalogSnapshot(epg_urls=(EXTRA_GUIDE_URL, GUIDE_URL), fetched_at=NOW)

        assert combine_epg_urls(settings, snapshot) == [GUIDE_URL, EXTRA_GUIDE_URL]


class TestLoggedConfiguration:
    def test_playlist_credentials_are_masked(self, make_settings, caplog):
        caplog.set_level(logging.INFO, logger="tvcatalog.config")

        make_settings(m3u_url="http://iptv.test/get.php?username=alice&password=s3cret")

        assert "get.php?username=***&password=***" in caplog.text
        assert "s3cret" not in caplog.text
        assert "alice" not in caplog.text
