"""Tests for video URL parsing."""

import pytest

from tubestream.core.url_matcher import is_video_id, normalize_url, parse_video_id


class TestYouTubeURLs:
    @pytest.mark.parametrize(
        "url",
        [
            "https://www.youtube.com/watch?v=dQw4w9WgXcQ",
            "https://youtube.com/watch?v=dQw4w9WgXcQ",
            "http://www.youtube.com/watch?v=dQw4w9WgXcQ",
            "https://www.youtube.com/watch?v=dQw4w9WgXcQ&list=PLxyz",
            "https://www.youtube.com/watch?feature=share&v=dQw4w9WgXcQ",
            "https://m.youtube.com/watch?v=dQw4w9WgXcQ",
            "youtube.com/watch?v=dQw4w9WgXcQ",
        ],
    )
    def test_standard_watch_urls(self, url):
        assert parse_video_id(url) == "dQw4w9WgXcQ"

    def test_short_url(self):
        assert parse_video_id("https://youtu.be/dQw4w9WgXcQ") == "dQw4w9WgXcQ"

    def test_short_url_with_timestamp(self):
        assert parse_video_id("https://youtu.be/dQw4w9WgXcQ?t=42") == "dQw4w9WgXcQ"

    def test_embed_url(self):
        assert parse_video_id("https://www.youtube.com/embed/dQw4w9WgXcQ") == "dQw4w9WgXcQ"

    def test_nocookie_embed_url(self):
        assert parse_video_id("https://www.youtube-nocookie.com/embed/dQw4w9WgXcQ") == "dQw4w9WgXcQ"

    def test_shorts_url(self):
        assert parse_video_id("https://www.youtube.com/shorts/dQw4w9WgXcQ") == "dQw4w9WgXcQ"

    def test_live_url(self):
        assert parse_video_id("https://www.youtube.com/live/dQw4w9WgXcQ") == "dQw4w9WgXcQ"

    def test_music_url(self):
        assert parse_video_id("https://music.youtube.com/watch?v=dQw4w9WgXcQ") == "dQw4w9WgXcQ"

    def test_bare_id(self):
        assert parse_video_id("  dQw4w9WgXcQ ") == "dQw4w9WgXcQ"


class TestUnsupportedURLs:
    @pytest.mark.parametrize(
        "url",
        [
            "https://www.youtube.com/",
            "https://www.youtube.com/watch?v=short",
            "https://vimeo.com/123456789",
            "not a url",
            "",
        ],
    )
    def test_no_video_id(self, url):
        with pytest.raises(ValueError):
            parse_video_id(url)


class TestURLUtilities:
    def test_normalize_adds_scheme(self):
        assert normalize_url("youtube.com/watch?v=abc").startswith("https://")

    def test_normalize_strips_www(self):
        assert normalize_url("https://www.youtube.com/watch?v=abc") == "https://youtube.com/watch?v=abc"

    def test_normalize_rewrites_short_link(self):
        assert normalize_url("https://youtu.be/dQw4w9WgXcQ") == "https://youtube.com/watch?v=dQw4w9WgXcQ"

    def test_is_video_id(self):
        assert is_video_id("dQw4w9WgXcQ")
        assert is_video_id("a-b_c-d_e-f")
        assert not is_video_id("dQw4w9WgXc")
        assert not is_video_id("dQw4w9WgXcQ!")
