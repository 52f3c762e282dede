"""Tests for the DLNA renderer capability."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from async_upnp_client.exceptions import UpnpError

from lgcast.dlna import CastError, CastPlayState, DlnaRenderer, build_didl, candidate_locations


def make_transport(responses=None, failing=()):
    actions = {}

    def action(name):
        if name not in actions:
            call = AsyncMock(return_value=(responses or {}).get(name, {}))
            if name in failing:
                call.side_effect = UpnpError(f"{name} refused")
            actions[name] = MagicMock(async_call=call)
        return actions[name]

    transport = MagicMock()
    transport.action.side_effect = action
    return transport, actions


def test_didl_escapes_metadata():
    didl = build_didl("http://h/a.mp4?x=1&y=2", "video/mp4", title="Tom & Jerry <1>")
    assert "Tom &amp; Jerry &lt;1&gt;" in didl
    assert "http://h/a.mp4?x=1&amp;y=2" in didl
    assert "object.item.videoItem" in didl
    assert 'protocolInfo="http-get:*:video/mp4:*"' in didl
    assert "object.item.imageItem.photo" in build_didl("http://h/a.jpg", "image/jpeg")


def test_candidate_locations():
    assert candidate_locations("10.0.0.5", "http://10.0.0.5:1337/desc.xml") == [
        "http://10.0.0.5:1337/desc.xml",
        "http://10.0.0.5:1337/",
        "http://10.0.0.5:9197/dmr",
        "http://10.0.0.5:7676/dmr",
    ]


class TestDlnaRenderer:
    @pytest.mark.asyncio
    async def test_play_sends_uri_then_play(self):
        transport, actions = make_transport(failing=("Stop",))
        renderer = DlnaRenderer(transport, "TV")
        await renderer.play("http://h/a.mp4", "video/mp4", title="A")

        names = [c.args[0] for c in transport.action.call_args_list]
        assert names == ["Stop", "SetAVTransportURI", "Play"]
        kwargs = actions["SetAVTransportURI"].async_call.call_args.kwargs
        assert kwargs["InstanceID"] == 0
        assert kwargs["CurrentURI"] == "http://h/a.mp4"
        actions["Play"].async_call.assert_awaited_once_with(InstanceID=0, Speed="1")

    @pytest.mark.asyncio
    async def test_failures_become_cast_errors(self):
        transport, _ = make_transport(failing=("Stop",))
        with pytest.raises(CastError):
            await DlnaRenderer(transport).stop()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("transport_state, expected", [
        ("PLAYING", CastPlayState.PLAYING),
        ("TRANSITIONING", CastPlayState.BUFFERING),
        ("PAUSED_PLAYBACK", CastPlayState.PAUSED),
        ("STOPPED", CastPlayState.FINISHED),
        ("NO_MEDIA_PRESENT", CastPlayState.IDLE),
        ("RECORDING", CastPlayState.UNKNOWN),
    ])
    async def test_query_state(self, transport_state, expected):
        transport, _ = make_transport({"GetTransportInfo": {"CurrentTransportState": transport_state}})
        assert await DlnaRenderer(transport).query_state() is expected
