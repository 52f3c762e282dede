"""Tests for the Netcast remote control client."""

import asyncio
from unittest.mock import MagicMock

import pytest

from lgcast.keys import KeyCode
from lgcast.netcast import NetcastClient, build_xml, find_all_text, parse_session_id
from tests.fakes import FakeTV, unused_port


def make_client(tv, session_id=None, listener=None):
    return NetcastClient(tv.host, session_id, port=tv.port, listener=listener)


class TestXml:
    def test_build_command(self):
        body = build_xml('command', ('session', 'abc'), ('type', 'HandleKeyInput'), ('value', 24))
        assert body.startswith('<?xml version="1.0" encoding="utf-8"?>')
        assert '<command><session>abc</session><type>HandleKeyInput</type><value>24</value></command>' in body

    def test_parse_session(self):
        text = '<envelope><ROAPError>200</ROAPError><session>abc123</session></envelope>'
        assert parse_session_id(text) == "abc123"

    def test_malformed_xml(self):
        assert find_all_text("<envelope><session>", "session") == []
        assert parse_session_id("not xml") is None


class TestPairing:
    @pytest.mark.asyncio
    async def test_pairing_flow(self):
        listener = MagicMock()
        async with FakeTV() as tv:
            client = make_client(tv, listener=listener)
            try:
                assert await client.request_pairing_key() is True
                assert await client.complete_pairing("123456") is True
            finally:
                await client.close()

        assert client.session_id == "abc123"
        assert client.is_paired
        listener.on_session_key_acquired.assert_called_once_with("abc123")
        assert tv.paths() == ["/roap/api/auth", "/roap/api/auth"]

    @pytest.mark.asyncio
    async def test_wrong_pin(self):
        listener = MagicMock()
        async with FakeTV() as tv:
            client = make_client(tv, listener=listener)
            try:
                assert await client.complete_pairing("000000") is False
            finally:
                await client.close()

        assert client.session_id is None
        listener.on_session_key_acquired.assert_not_called()

    @pytest.mark.asyncio
    async def test_unreachable_tv(self):
        client = NetcastClient("127.0.0.1", port=unused_port())
        try:
            assert await client.request_pairing_key() is False
        finally:
            await client.close()


class TestCommands:
    @pytest.mark.asyncio
    async def test_unpaired_makes_no_request(self):
        async with FakeTV() as tv:
            client = make_client(tv)
            try:
                assert await client.send_key(KeyCode.VOL_UP) is False
                assert await client.send_mouse_click() is False
                assert await client.send_wheel("up") is False
            finally:
                await client.close()
        assert tv.requests == []

    @pytest.mark.asyncio
    async def test_send_key(self):
        async with FakeTV() as tv:
            client = make_client(tv, session_id="abc123")
            try:
                assert await client.send_key(KeyCode.VOL_UP) is True
            finally:
                await client.close()

        method, path, body = tv.requests[0]
        assert (method, path) == ("POST", "/roap/api/command")
        assert "<type>HandleKeyInput</type>" in body
        assert "<value>24</value>" in body

    @pytest.mark.asyncio
    async def test_wheel_direction_validated(self):
        client = NetcastClient("127.0.0.1", "abc123")
        with pytest.raises(ValueError):
            await client.send_wheel("sideways")
        await client.close()

    @pytest.mark.asyncio
    async def test_cursor_works_without_session(self):
        async with FakeTV() as tv:
            client = make_client(tv)
            try:
                assert await client.set_cursor_visible(False) is True
            finally:
                await client.close()

        method, path, body = tv.requests[0]
        assert path == "/roap/api/event"
        assert "<name>CursorVisible</name>" in body
        assert "<value>false</value>" in body
        assert "<mode>auto</mode>" in body

    @pytest.mark.asyncio
    async def test_move_mouse(self):
        async with FakeTV() as tv:
            client = make_client(tv, session_id="abc123")
            try:
                assert client.move_mouse(0, 0) is None
                task = client.move_mouse(5, -3)
                assert task is not None
                assert await task is True
            finally:
                await client.close()

        assert len(tv.requests) == 1
        body = tv.requests[0][2]
        assert "<type>HandleTouchMove</type>" in body
        assert "<x>5</x>" in body and "<y>-3</y>" in body

    @pytest.mark.asyncio
    async def test_move_mouse_unpaired_is_noop(self):
        client = NetcastClient("127.0.0.1")
        assert client.move_mouse(10, 10) is None
        await client.close()

    @pytest.mark.asyncio
    async def test_app_list(self):
        async with FakeTV() as tv:
            client = make_client(tv, session_id="abc123")
            try:
                apps = await client.get_app_list()
            finally:
                await client.close()
        assert apps == ["netflix", "youtube.leanback.v4"]

    @pytest.mark.asyncio
    async def test_undecodable_body(self):
        async with FakeTV() as tv:
            tv.garbled = True
            client = make_client(tv, session_id="abc123")
            try:
                assert await client.send_key(KeyCode.OK) is True
                assert await client.get_app_list() == []
                assert await client.complete_pairing("123456") is False
            finally:
                await client.close()
        assert client.session_id == "abc123"


class TestSessionInvalidation:
    @pytest.mark.asyncio
    async def test_401_clears_session_and_notifies(self):
        listener = MagicMock()
        async with FakeTV() as tv:
            tv.accept_sessions = False
            client = make_client(tv, session_id="abc123", listener=listener)
            try:
                assert await client.send_key(KeyCode.OK) is False
                # Next command is dropped locally
                assert await client.send_key(KeyCode.OK) is False
            finally:
                await client.close()

        assert client.session_id is None
        listener.on_session_invalid.assert_called_once_with()
        assert len(tv.requests) == 1

    @pytest.mark.asyncio
    async def test_concurrent_401s_notify_once(self):
        listener = MagicMock()
        async with FakeTV() as tv:
            tv.accept_sessions = False
            tv.command_delay = 0.05
            client = make_client(tv, session_id="abc123", listener=listener)
            try:
                results = await asyncio.gather(
                    client.send_key(KeyCode.UP),
                    client.send_key(KeyCode.DOWN),
                    client.send_mouse_click(),
                )
            finally:
                await client.close()

        assert results == [False, False, False]
        assert len(tv.requests) == 3
        listener.on_session_invalid.assert_called_once_with()

    @pytest.mark.asyncio
    async def test_new_session_survives_stale_401(self):
        listener = MagicMock()
        client = NetcastClient("127.0.0.1", "old", listener=listener)
        client.session_id = "new"
        client._invalidate("old")
        assert client.session_id == "new"
        listener.on_session_invalid.assert_not_called()
        await client.close()
