"""Tests for runtime start-up: initial load, guide sources and cold start."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from tests.samples import EXTRA_GUIDE_URL, GUIDE_URL, GuideServer, playlist_down, playlist_ok


@pytest.fixture
def live_guide(build_xmltv):
    # timestamps around the real clock: the runtime uses wall time
    now = datetime.now(timezone.utc).replace(microsecond=0)
    hour = timedelta(hours=1)
    return build_xmltv(
        channels=[("rai1.it", "Rai 1")],
        programmes=[("rai1.it", now, now + hour, "Telegiornale")],
    )


def run_started(runtime):
    """Start the runtime, then stop its timers before the loop closes."""

    async def scenario():
        await runtime.start()
        next_runs = (
            runtime.cache_scheduler.get_next_run_time(),
            runtime.epg_scheduler.get_next_run_time(),
        )
        runtime.shutdown()
        await asyncio.sleep(0)
        return next_runs

    return asyncio.run(scenario())


class TestStart:
    def test_playlist_header_guides_are_added(self, make_runtime, live_guide):
        guides = GuideServer({GUIDE_URL: live_guide, EXTRA_GUIDE_URL: live_guide})
        runtime = make_runtime(playlist_ok, guides)

        playlist_next, epg_next = run_started(runtime)

        assert runtime.epg_scheduler.sources == [GUIDE_URL, EXTRA_GUIDE_URL]
        assert sorted(guides.requested) == sorted([GUIDE_URL, EXTRA_GUIDE_URL])
        assert len(runtime.store.get_cached_data().channels) == 3
        assert list(runtime.store.get_epg_index().programs) == ["rai1.it"]
        assert playlist_next is not None
        assert epg_next is not None

    def test_missing_epg_report(self, make_runtime, live_guide):
        runtime = make_runtime(playlist_ok, GuideServer({GUIDE_URL: live_guide}), retry_attempts=1)

        run_started(runtime)

        assert [c.name for c in runtime.report_missing_epg()] == ["Sky Sport", "Rai 2"]

    def test_cold_start_serves_empty_catalog(self, make_runtime, live_guide):
        guides = GuideServer({GUIDE_URL: live_guide})
        runtime = make_runtime(playlist_down, guides, retry_attempts=2)

        playlist_next, _ = run_started(runtime)

        assert runtime.store.get_cached_data().is_empty
        assert playlist_next is not None
        # only the configured source is known without a playlist
        assert runtime.epg_scheduler.sources == [GUIDE_URL]

    def test_all_guides_failing_does_not_abort_start(self, make_runtime):
        runtime = make_runtime(playlist_ok, GuideServer({}), retry_attempts=1)

        run_started(runtime)

        assert len(runtime.store.get_cached_data().channels) == 3
        assert runtime.store.get_epg_index().is_empty

    def test_epg_disabled(self, make_runtime):
        guides = GuideServer({})
        runtime = make_runtime(playlist_ok, guides, enable_epg=False)

        _, epg_next = run_started(runtime)

        assert guides.requested == []
        assert epg_next is None
