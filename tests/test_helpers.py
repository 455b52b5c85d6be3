"""Tests for system_utils helpers and image utilities"""
import asyncio
import os

import pytest

from conftest import make_image, oversized_png
from system_utils import state
from system_utils.helpers import (
    _normalize_track_id,
    create_tracked_task,
    drain_background_tasks,
    process_template_placeholders,
    run_in_daemon_executor,
    search_for,
)
from system_utils.image import get_image_extension, icon_path_for, probe_image, prune_icons, write_icon


@pytest.fixture
def library(tmp_path):
    """tmp/Owl City/Cinematic/08 - Always.flac with covers and lyrics around it"""
    album = tmp_path / "Owl City" / "Cinematic"
    album.mkdir(parents=True)
    (album / "08 - Always.flac").write_bytes(b"")
    (album / "08 - Always.lrc").write_text("[00:01.00]hi")
    (tmp_path / "Owl City" / "artist.jpg").write_bytes(b"")
    return album


class TestSearchFor:
    def test_finds_in_start_directory(self, library):
        found = search_for(library, 0, r".\.lrc$")
        assert found == library / "08 - Always.lrc"

    def test_start_can_be_a_file(self, library):
        found = search_for(library / "08 - Always.flac", 0, r".\.lrc$")
        assert found.name == "08 - Always.lrc"

    def test_walks_up_to_max_depth(self, library):
        assert search_for(library, 0, r".*\.jpg$") is None
        assert search_for(library, 1, r".*\.jpg$").name == "artist.jpg"

    def test_case_insensitive(self, library):
        assert search_for(library, 0, r"\.LRC$") is not None

    def test_missing_directory(self, tmp_path):
        assert search_for(tmp_path / "nope", 0, r".*") is None

    def test_name_order_is_stable(self, tmp_path):
        for name in ("b.png", "a.png", "c.png"):
            (tmp_path / name).write_bytes(b"")
        assert search_for(tmp_path, 0, r"\.png$").name == "a.png"


class TestTemplates:
    def test_known_keys(self):
        assert process_template_placeholders("{artist} - {title}", {"artist": "A", "title": "T"}) == "A - T"

    def test_unknown_and_empty_keys(self):
        assert process_template_placeholders("{title} ({year})", {"title": "T"}) == "T ()"
        assert process_template_placeholders("{artist} - {album}", {"artist": "A", "album": None}) == "A"
        assert process_template_placeholders("{artist} - {album}", {"album": "Al"}) == "Al"

    def test_literal_text_kept(self):
        assert process_template_placeholders("Now playing", {}) == "Now playing"


def test_normalize_track_id():
    assert _normalize_track_id("The Band!", "Song (Live)") == "theband_songlive"
    assert _normalize_track_id(None, "x") == "_x"


class TestTasks:
    async def test_run_in_daemon_executor(self):
        assert await run_in_daemon_executor(sum, [1, 2, 3]) == 6

    async def test_tracked_task_is_forgotten_when_done(self):
        task = create_tracked_task(asyncio.sleep(0))
        assert task in state._background_tasks
        await task
        await asyncio.sleep(0)
        assert task not in state._background_tasks

    async def test_failed_task_is_logged(self, caplog):
        async def boom():
            raise RuntimeError("kaboom")

        task = create_tracked_task(boom())
        with pytest.raises(RuntimeError):
            await task
        await asyncio.sleep(0)
        assert "kaboom" in caplog.text

    async def test_drain_cancels_slow_tasks(self):
        task = create_tracked_task(asyncio.sleep(30))
        await drain_background_tasks(timeout=0.05)
        assert task.cancelled()
        assert task not in state._background_tasks


class TestImages:
    def test_extension_sniffing(self):
        assert get_image_extension(make_image(fmt="PNG")) == ".png"
        assert get_image_extension(make_image(fmt="JPEG")) == ".jpg"
        assert get_image_extension(b"GIF89a....") == ".gif"

    def test_probe(self):
        assert probe_image(make_image((12, 7), fmt="JPEG")) == ("image/jpeg", 12, 7)
        assert probe_image(b"") is None
        assert probe_image(b"definitely not an image") is None
        assert probe_image(oversized_png()) is None

    def test_write_icon_resizes_and_reuses(self, tmp_path):
        from PIL import Image

        data = make_image((600, 300))
        path = write_icon(data, tmp_path, size=128)
        assert path == icon_path_for(data, tmp_path, 128)
        with Image.open(path) as img:
            assert img.format == "PNG"
            assert max(img.size) == 128

        mtime = path.stat().st_mtime_ns
        assert write_icon(data, tmp_path, size=128) == path
        assert path.stat().st_mtime_ns == mtime
        assert not list(tmp_path.glob("*.tmp"))

    def test_new_artwork_gets_new_icon(self, tmp_path):
        old = write_icon(make_image(color=(0, 0, 0)), tmp_path)
        new = write_icon(make_image(color=(255, 255, 255)), tmp_path)
        assert old != new
        assert old.is_file() and new.is_file()

    def test_write_icon_rejects_garbage(self, tmp_path):
        assert write_icon(b"garbage", tmp_path) is None
        assert write_icon(oversized_png(), tmp_path) is None
        assert not list(tmp_path.iterdir())

    def test_prune_keeps_newest(self, tmp_path):
        for i in range(5):
            icon = tmp_path / f"{i}.png"
            icon.write_bytes(b"")
            os.utime(icon, (i, i))
        prune_icons(tmp_path, keep=2)
        assert sorted(p.name for p in tmp_path.iterdir()) == ["3.png", "4.png"]
