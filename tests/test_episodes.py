from __future__ import annotations

import os
import xml.etree.ElementTree as ET
from datetime import datetime, timezone
from pathlib import Path

import pytest

from tubecast.episodes import check_episode_name, delete_episode, format_duration, list_episodes
from tubecast.errors import ValidationError
from tubecast.feed import ITUNES_NS, render_feed


def _touch(path: Path, data: bytes, mtime: float) -> Path:
    path.write_bytes(data)
    os.utime(path, (mtime, mtime))
    return path


@pytest.fixture
def library(tmp_path: Path) -> Path:
    _touch(tmp_path / "Old Show_20240101_000000.mp3", b"a" * 10, 1_700_000_000)
    _touch(tmp_path / "New & <Loud>_NORM_20240102_000000.mp3", b"b" * 20, 1_700_100_000)
    _touch(tmp_path / "notes.txt", b"ignored", 1_700_200_000)
    return tmp_path


class TestFormatDuration:
    def test_minutes_seconds(self):
        assert format_duration(0) == "0:00"
        assert format_duration(65.9) == "1:05"
        assert format_duration(3725) == "62:05"

    def test_unknown(self):
        assert format_duration(None) == "unknown"


class TestListEpisodes:
    def test_lists_mp3s_newest_first(self, library: Path):
        episodes = list_episodes(library, probe_duration=lambda p: 61.0)
        assert [ep.file for ep in episodes] == [
            "New & <Loud>_NORM_20240102_000000.mp3",
            "Old Show_20240101_000000.mp3",
        ]
        new, old = episodes
        assert new.is_normalized and not old.is_normalized
        assert new.title == "New & <Loud>_NORM_20240102_000000"
        assert new.size == 20
        assert new.duration == "1:01"
        assert old.pub_date.endswith("+0000")

    def test_without_probe(self, library: Path):
        assert all(ep.duration == "unknown" for ep in list_episodes(library))

    def test_missing_directory(self, tmp_path: Path):
        assert list_episodes(tmp_path / "nope") == []


class TestDeleteEpisode:
    @pytest.mark.parametrize("name", ["", "../x.mp3", "a/b.mp3", "a\\b.mp3", "notes.txt"])
    def test_rejects_bad_names(self, library: Path, name):
        with pytest.raises(ValidationError):
            delete_episode(library, name)

    def test_missing_file(self, library: Path):
        with pytest.raises(FileNotFoundError):
            delete_episode(library, "absent.mp3")

    def test_deletes(self, library: Path):
        delete_episode(library, "Old Show_20240101_000000.mp3")
        assert not (library / "Old Show_20240101_000000.mp3").exists()

    def test_check_name_accepts_upper_case_extension(self):
        assert check_episode_name("Show.MP3") == "Show.MP3"


class TestRenderFeed:
    def test_feed_structure_and_escaping(self, library: Path):
        episodes = list_episodes(library, probe_duration=lambda p: 90.0)
        xml = render_feed(
            episodes,
            base_url="http://podcasts.local:8080/",
            title="My <Feed>",
            description="Converted & kept",
            now=datetime(2024, 1, 3, tzinfo=timezone.utc),
        )

        assert xml.startswith('<?xml version="1.0" encoding="UTF-8"?>')
        assert "&lt;Loud&gt;" in xml
        root = ET.fromstring(xml.split("\n", 1)[1])
        channel = root.find("channel")
        assert channel.findtext("title") == "My <Feed>"
        assert channel.findtext("link") == "http://podcasts.local:8080"

        items = channel.findall("item")
        assert len(items) == 2
        first = items[0]
        enclosure = first.find("enclosure")
        assert enclosure.get("type") == "audio/mpeg"
        assert enclosure.get("length") == "20"
        assert enclosure.get("url") == "http://podcasts.local:8080/mp3s/New%20%26%20%3CLoud%3E_NORM_20240102_000000.mp3"
        assert first.findtext("guid") == enclosure.get("url")
        assert first.findtext("isNormalized") == "true"
        assert first.findtext(f"{{{ITUNES_NS}}}duration") == "1:30"
        assert items[1].findtext("isNormalized") == "false"

    def test_empty_feed(self):
        xml = render_feed([], base_url="http://h", title="t", description="d")
        root = ET.fromstring(xml.split("\n", 1)[1])
        assert root.find("channel").findall("item") == []
