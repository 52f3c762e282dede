"""Tests for the local media file server."""

import aiohttp
import pytest

from lgcast.server import MediaServer, parse_range


class TestParseRange:
    def test_ranges(self):
        assert parse_range("bytes=0-99", 1000) == (0, 99)
        assert parse_range("bytes=500-", 1000) == (500, 999)
        assert parse_range("bytes=-100", 1000) == (900, 999)
        assert parse_range("bytes=900-5000", 1000) == (900, 999)

    def test_unsatisfiable(self):
        assert parse_range("bytes=1000-", 1000) is None
        assert parse_range("bytes=10-5", 1000) is None


@pytest.fixture
def media_server():
    server = MediaServer(host="127.0.0.1", port=0, bind="127.0.0.1")
    yield server
    server.stop()


class TestMediaServer:
    @pytest.mark.asyncio
    async def test_publish_and_fetch(self, tmp_path, media_server):
        video = tmp_path / "clip.mp4"
        video.write_bytes(bytes(range(256)) * 4)

        url = media_server.publish(str(video))
        assert media_server.is_running
        assert url == f"http://127.0.0.1:{media_server.port}/media/clip.mp4"

        async with aiohttp.ClientSession() as http:
            async with http.get(url) as response:
                assert response.status == 200
                assert response.headers["Content-Type"] == "video/mp4"
                assert response.headers["Accept-Ranges"] == "bytes"
                assert len(await response.read()) == 1024

            async with http.get(url, headers={"Range": "bytes=256-511"}) as response:
                assert response.status == 206
                assert response.headers["Content-Range"] == "bytes 256-511/1024"
                assert await response.read() == bytes(range(256))

            async with http.get(url, headers={"Range": "bytes=2000-"}) as response:
                assert response.status == 416

    @pytest.mark.asyncio
    async def test_unknown_key_is_404(self, media_server):
        media_server.start()
        async with aiohttp.ClientSession() as http:
            async with http.get(f"http://127.0.0.1:{media_server.port}/media/nothing.mp4") as response:
                assert response.status == 404
            async with http.get(f"http://127.0.0.1:{media_server.port}/other") as response:
                assert response.status == 404

    def test_same_name_different_files(self, tmp_path, media_server):
        (tmp_path / "a").mkdir()
        (tmp_path / "b").mkdir()
        first = tmp_path / "a" / "photo.jpg"
        second = tmp_path / "b" / "photo.jpg"
        first.write_bytes(b"1")
        second.write_bytes(b"2")

        url1 = media_server.publish(str(first))
        url2 = media_server.publish(str(second))
        assert url1.endswith("/media/photo.jpg")
        assert url2.endswith("/media/photo-1.jpg")
        assert media_server.publish(str(first)) == url1

    def test_publish_missing_file(self, tmp_path, media_server):
        with pytest.raises(FileNotFoundError):
            media_server.publish(str(tmp_path / "gone.mp4"))
        assert not media_server.is_running
