"""Tests for DIAL app launching and the Netcast fallback."""

import pytest

from lgcast.dial import DialLauncher, netcast_app_id, parse_app_state, parse_run_link
from tests.fakes import FakeTV, unused_port


def make_launcher(tv, *ports):
    return DialLauncher(tv.host, ports=ports or (tv.port,), netcast_port=tv.port,
                        probe_timeout=1.0, timeout=1.0)


class TestParsing:
    def test_app_state_and_run_link(self):
        text = ('<service xmlns="urn:dial-multiscreen-org:schemas:dial"><name>YouTube</name>'
                '<state>running</state><link rel="run" href="run"/></service>')
        assert parse_app_state(text) == "running"
        assert parse_run_link(text) == "run"

    def test_netcast_app_ids(self):
        assert netcast_app_id("Prime Video") == "amazon"
        assert netcast_app_id("Netflix") == "netflix"
        assert netcast_app_id("My App") == "myapp"


class TestDiscovery:
    @pytest.mark.asyncio
    async def test_probe_skips_dead_port(self):
        async with FakeTV() as tv:
            launcher = make_launcher(tv, unused_port(), tv.port)
            try:
                assert await launcher.discover_app() is True
            finally:
                await launcher.close()

        assert launcher.working_port == tv.port
        assert launcher.is_target_app_running is False
        assert launcher.app_instance_url == f"http://{tv.host}:{tv.port}/apps/YouTube/run"

    @pytest.mark.asyncio
    async def test_undecodable_app_description(self):
        async with FakeTV() as tv:
            tv.garbled = True
            launcher = make_launcher(tv)
            try:
                assert await launcher.discover_app() is True
            finally:
                await launcher.close()

        assert launcher.working_port == tv.port
        assert launcher.is_target_app_running is False

    @pytest.mark.asyncio
    async def test_fallback_tries_browser_first(self):
        async with FakeTV() as tv:
            tv.dial_apps = {}
            tv.netcast_app_ids = {"youtube"}
            launcher = make_launcher(tv, unused_port())
            try:
                assert await launcher.discover_app() is True
            finally:
                await launcher.close()

        # Each id is tried with the <name> and then the <type> command form
        assert tv.app_executes() == [
            "browser", "browser",
            "netcast.browser", "netcast.browser",
            "lge.browser", "lge.browser",
            "youtube.leanback.v4", "youtube.leanback.v4",
            "youtube",
        ]
        assert launcher.working_port == tv.port

    @pytest.mark.asyncio
    async def test_fallback_browser_success_stops_search(self):
        async with FakeTV() as tv:
            tv.dial_apps = {}
            tv.netcast_app_ids = {"netcast.browser"}
            launcher = make_launcher(tv, unused_port())
            try:
                assert await launcher.discover_app() is True
            finally:
                await launcher.close()

        assert tv.app_executes()[-1] == "netcast.browser"
        assert "youtube.leanback.v4" not in tv.app_executes()

    @pytest.mark.asyncio
    async def test_everything_fails(self):
        async with FakeTV() as tv:
            tv.dial_apps = {}
            launcher = make_launcher(tv, unused_port())
            try:
                assert await launcher.discover_app() is False
            finally:
                await launcher.close()
        assert launcher.working_port is None


class TestLaunch:
    @pytest.mark.asyncio
    async def test_launch_captures_instance_url(self):
        async with FakeTV() as tv:
            launcher = make_launcher(tv)
            try:
                await launcher.discover_app()
                launcher.app_instance_url = None
                assert await launcher.launch_target_app("dQw4w9WgXcQ") is True
            finally:
                await launcher.close()

        assert launcher.is_target_app_running
        assert launcher.app_instance_url == f"http://{tv.host}:{tv.port}/apps/YouTube/run"
        launch = [r for r in tv.requests if r[0] == "POST"][-1]
        assert launch[1] == "/apps/YouTube"
        assert launch[2] == "v=dQw4w9WgXcQ"

    @pytest.mark.asyncio
    async def test_push_content_launches_when_not_running(self):
        async with FakeTV() as tv:
            launcher = make_launcher(tv)
            try:
                await launcher.discover_app()
                assert await launcher.push_content("abc") is True
                assert await launcher.push_content("def") is True
            finally:
                await launcher.close()

        posts = [(path, body) for method, path, body in tv.requests if method == "POST"]
        assert posts == [("/apps/YouTube", "v=abc"), ("/apps/YouTube/run", "v=def")]

    @pytest.mark.asyncio
    async def test_launch_other_app_falls_back_to_netcast(self):
        async with FakeTV() as tv:
            tv.netcast_app_ids = {"amazon"}
            launcher = make_launcher(tv)
            try:
                await launcher.discover_app()
                assert await launcher.launch_app("Prime Video") is True
            finally:
                await launcher.close()

        assert ("POST", "/apps/PrimeVideo") in [(m, p) for m, p, _ in tv.requests]
        assert tv.app_executes() == ["amazon"]


class TestStopAndStatus:
    @pytest.mark.asyncio
    async def test_status_and_stop(self):
        async with FakeTV() as tv:
            tv.dial_apps["YouTube"] = "running"
            launcher = make_launcher(tv)
            launcher.working_port = tv.port
            try:
                assert await launcher.query_target_app_status() == (True, True)
                assert await launcher.stop_target_app() is True
                assert await launcher.query_target_app_status() == (True, False)
            finally:
                await launcher.close()
        assert ("DELETE", "/apps/YouTube/run") in [(m, p) for m, p, _ in tv.requests]

    @pytest.mark.asyncio
    async def test_stop_unreachable_counts_as_stopped(self):
        launcher = DialLauncher("127.0.0.1", ports=(unused_port(),), timeout=0.5)
        launcher.working_port = unused_port()
        launcher.is_target_app_running = True
        try:
            assert await launcher.stop_target_app() is True
        finally:
            await launcher.close()
        assert launcher.is_target_app_running is False

    @pytest.mark.asyncio
    async def test_status_unreachable(self):
        launcher = DialLauncher("127.0.0.1", ports=(unused_port(),), timeout=0.5)
        launcher.working_port = unused_port()
        try:
            assert await launcher.query_target_app_status() == (False, False)
        finally:
            await launcher.close()
