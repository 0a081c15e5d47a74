"""Tests for M3U playlist parsing into catalog snapshots."""

import pytest

from tests.samples import NOW, SAMPLE_PLAYLIST
from tvcatalog.errors import ParseError
from tvcatalog.services.catalog_types import FALLBACK_GENRE
from tvcatalog.services.playlist_transformer import (
    PlaylistTransformer,
    parse_attributes,
    split_extinf,
)


@pytest.fixture
def transformer():
    return PlaylistTransformer()


# =============================================================================
# ENTRY PARSING
# =============================================================================


class TestEntries:
    def test_sample_playlist(self, transformer):
        snapshot = transformer.transform(SAMPLE_PLAYLIST, source_url="http://p.test", fetched_at=NOW)

        assert [c.name for c in snapshot.channels] == ["Rai 1", "Sky Sport", "Rai 2"]
        assert snapshot.skipped_entries == 0
        assert snapshot.fetched_at == NOW
        assert snapshot.source_url == "http://p.test"

        rai1 = snapshot.channels[0]
        assert rai1.id == "tv|rai1.it"
        assert rai1.guide_id == "rai1.it"
        assert rai1.logo_url == "http://logo.test/rai1.png"
        assert rai1.genre == "Generalisti"
        assert rai1.stream_url == "http://stream.test/rai1.m3u8"

    def test_dangling_metadata_line_is_skipped(self, transformer):
        text = SAMPLE_PLAYLIST + '#EXTINF:-1 tvg-id="orphan",Orphan\n'

        snapshot = transformer.transform(text)

        assert len(snapshot.channels) == 3
        assert snapshot.skipped_entries == 1

    def test_well_formed_and_malformed_mix(self, transformer):
        text = "\n".join([
            "#EXTM3U",
            "http://stream.test/no-metadata.m3u8",
            "#EXTINF:-1,One",
            "http://stream.test/1",
            "#EXTINF:-1,Lost",
            "#EXTINF:-1,Two",
            "http://stream.test/2",
            "http://stream.test/another-orphan",
            "#EXTINF:-1,Three",
            "http://stream.test/3",
        ])

        snapshot = transformer.transform(text)

        assert [c.name for c in snapshot.channels] == ["One", "Two", "Three"]
        assert snapshot.skipped_entries == 3

    def test_directives_between_metadata_and_url_are_ignored(self, transformer):
        text = "\n".join([
            "#EXTM3U",
            '#EXTINF:-1 group-title="News",News 24',
            "#EXTVLCOPT:http-user-agent=Mozilla",
            "",
            "http://stream.test/news",
        ])

        snapshot = transformer.transform(text)

        assert len(snapshot.channels) == 1
        assert snapshot.channels[0].stream_url == "http://stream.test/news"
        assert snapshot.skipped_entries == 0

    def test_crlf_and_bom(self, transformer):
        text = "\ufeff#EXTM3U\r\n#EXTINF:-1,Windows TV\r\nhttp://stream.test/win\r\n"

        snapshot = transformer.transform(text)

        assert snapshot.channels[0].name == "Windows TV"
        assert snapshot.channels[0].stream_url == "http://stream.test/win"

    def test_missing_header_is_tolerated(self, transformer):
        snapshot = transformer.transform("#EXTINF:-1,Solo\nhttp://stream.test/solo\n")

        assert len(snapshot.channels) == 1


# =============================================================================
# FAILURES
# =============================================================================


class TestFailures:
    def test_empty_payload(self, transformer):
        with pytest.raises(ParseError):
            transformer.transform("")

    def test_blank_payload(self, transformer):
        with pytest.raises(ParseError):
            transformer.transform("   \n\n ")

    def test_header_only(self, transformer):
        with pytest.raises(ParseError):
            transformer.transform("#EXTM3U\n")

    def test_only_malformed_entries(self, transformer):
        with pytest.raises(ParseError):
            transformer.transform("#EXTM3U\nhttp://stream.test/orphan\n#EXTINF:-1,Dangling\n")


# =============================================================================
# ATTRIBUTES
# =============================================================================


class TestAttributes:
    def test_unrecognized_keys_are_ignored(self, transformer):
        text = '#EXTM3U\n#EXTINF:-1 tvg-chno="5" catchup="default" tvg-id="x",X\nhttp://s/x\n'

        channel = transformer.transform(text).channels[0]

        assert channel.guide_id == "x"
        assert channel.name == "X"

    def test_comma_inside_quoted_value(self):
        attributes, name = split_extinf('#EXTINF:-1 group-title="News, Italy" tvg-id="n",News, Live')

        assert parse_attributes(attributes)["group-title"] == "News, Italy"
        assert name == "News, Live"

    def test_attribute_keys_are_case_insensitive(self):
        assert parse_attributes('TVG-ID="abc" Group-Title="Kids"') == {"tvg-id": "abc", "group-title": "Kids"}

    def test_tvg_name_used_when_display_name_empty(self, transformer):
        text = '#EXTM3U\n#EXTINF:-1 tvg-name="Named Channel",\nhttp://s/n\n'

        assert transformer.transform(text).channels[0].name == "Named Channel"

    def test_id_from_name_when_no_guide_id(self, transformer):
        text = "#EXTM3U\n#EXTINF:-1,Canale Cinque HD\nhttp://s/5\n"

        channel = transformer.transform(text).channels[0]

        assert channel.guide_id is None
        assert channel.id == "tv|canale-cinque-hd"

    def test_duplicate_ids_get_suffix(self, transformer):
        text = (
            '#EXTM3U\n'
            '#EXTINF:-1 tvg-id="dup",Dup A\nhttp://s/a\n'
            '#EXTINF:-1 tvg-id="dup",Dup B\nhttp://s/b\n'
        )

        ids = [c.id for c in transformer.transform(text).channels]

        assert ids == ["tv|dup", "tv|dup-2"]


# =============================================================================
# GENRES
# =============================================================================


class TestGenres:
    def test_distinct_first_seen_order(self, transformer):
        snapshot = transformer.transform(SAMPLE_PLAYLIST)

        assert snapshot.genres == ["Generalisti", "Sport"]

    def test_missing_genre_falls_back(self, transformer):
        text = '#EXTM3U\n#EXTINF:-1,A\nhttp://s/a\n#EXTINF:-1 group-title="  ",B\nhttp://s/b\n'

        snapshot = transformer.transform(text)

        assert [c.genre for c in snapshot.channels] == [FALLBACK_GENRE, FALLBACK_GENRE]
        assert snapshot.genres == [FALLBACK_GENRE]

    def test_genre_trimmed_case_preserved(self, transformer):
        text = '#EXTM3U\n#EXTINF:-1 group-title="  Kids TV ",A\nhttp://s/a\n#EXTINF:-1 group-title="kids tv",B\nhttp://s/b\n'

        assert transformer.transform(text).genres == ["Kids TV", "kids tv"]

    def test_extgrp_supplies_genre(self, transformer):
        text = "#EXTM3U\n#EXTINF:-1,Docs\n#EXTGRP:Documentary\nhttp://s/d\n"

        assert transformer.transform(text).channels[0].genre == "Documentary"


# =============================================================================
# HEADER GUIDE URLS
# =============================================================================


class TestHeaderGuideUrls:
    def test_url_tvg(self, transformer):
        assert transformer.transform(SAMPLE_PLAYLIST).epg_urls == ("http://guide.test/extra.xml",)

    def test_comma_separated_and_x_tvg_url(self, transformer):
        text = (
            '#EXTM3U url-tvg="http://g/a.xml, http://g/b.xml" x-tvg-url="http://g/b.xml,http://g/c.xml.gz"\n'
            "#EXTINF:-1,A\nhttp://s/a\n"
        )

        assert transformer.transform(text).epg_urls == (
            "http://g/a.xml",
            "http://g/b.xml",
            "http://g/c.xml.gz",
        )

    def test_no_header_urls(self, transformer):
        assert transformer.transform("#EXTM3U\n#EXTINF:-1,A\nhttp://s/a\n").epg_urls == ()

    def test_non_http_urls_ignored(self, transformer):
        text = (
            '#EXTM3U url-tvg="/etc/passwd,file:///etc/hostname,http://g/a.xml"\n'
            "#EXTINF:-1,A\nhttp://s/a\n"
        )

        assert transformer.transform(text).epg_urls == ("http://g/a.xml",)
