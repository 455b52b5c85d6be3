"""Tests for the cmus and playerctl status sources"""
import subprocess
from unittest.mock import Mock, patch

import pytest

from system_utils.sources import (
    CmusSource,
    LinuxSource,
    PlayerStatus,
    PlayerUnavailable,
    SourceOptions,
    available_sources,
    get_source,
)
from system_utils.sources.cmus import parse_cmus_status
from system_utils.sources.linux import parse_playerctl_metadata

CMUS_PLAYING = """status playing
file /music/Owl City/Cinematic/08 - Always.flac
duration 245
position 12
tag artist Owl City
tag album Cinematic
tag title Always
tag tracknumber 8
set aaa_mode all
set continue true
set repeat false
set shuffle tracks
set vol_left 80
set vol_right 70
"""


def completed(stdout="", returncode=0, stderr=""):
    return Mock(stdout=stdout, returncode=returncode, stderr=stderr)


class TestCmusParsing:
    def test_playing_track(self):
        sample = parse_cmus_status(CMUS_PLAYING, sampled_at=5.0)
        assert sample.track_identity == "/music/Owl City/Cinematic/08 - Always.flac"
        assert sample.playing is True
        assert sample.elapsed_ms == 12000
        assert sample.duration_ms == 245000
        assert sample.sampled_at == 5.0
        assert sample.tags["title"] == "Always"
        assert sample.tags["artist"] == "Owl City"

    def test_settings(self):
        settings = parse_cmus_status(CMUS_PLAYING).settings
        assert settings.shuffle is True
        assert settings.repeat is False
        assert settings.volume == 75

    def test_paused(self):
        sample = parse_cmus_status(CMUS_PLAYING.replace("status playing", "status paused"))
        assert sample.playing is False
        assert sample.track_identity is not None

    def test_stopped_without_file(self):
        sample = parse_cmus_status("status stopped\nset shuffle false\n")
        assert sample.track_identity is None
        assert sample.playing is False
        assert sample.elapsed_ms == 0

    def test_stream_title(self):
        sample = parse_cmus_status(
            "status playing\nfile http://radio.example/live\nstream Station - Song\nduration -1\nposition 30\n"
        )
        assert sample.track_identity == "http://radio.example/live"
        assert sample.tags["title"] == "Station - Song"
        assert sample.duration_ms is None
        assert sample.settings is None


class TestCmusSource:
    async def test_poll(self):
        source = CmusSource()
        with patch("system_utils.sources.base.subprocess.run", return_value=completed(CMUS_PLAYING)) as run:
            sample = await source.poll()
        assert isinstance(sample, PlayerStatus)
        assert sample.elapsed_ms == 12000
        assert run.call_args[0][0] == ["cmus-remote", "-Q"]

    async def test_not_running(self):
        source = CmusSource()
        result = completed(returncode=1, stderr="cmus-remote: cmus is not running\n")
        with patch("system_utils.sources.base.subprocess.run", return_value=result):
            sample = await source.poll()
        assert isinstance(sample, PlayerUnavailable)
        assert "not running" in sample.reason

    async def test_missing_binary(self):
        with patch("system_utils.sources.base.subprocess.run", side_effect=FileNotFoundError()):
            sample = await CmusSource().poll()
        assert isinstance(sample, PlayerUnavailable)
        assert "not installed" in sample.reason

    async def test_timeout(self):
        error = subprocess.TimeoutExpired(cmd="cmus-remote", timeout=2)
        with patch("system_utils.sources.base.subprocess.run", side_effect=error):
            sample = await CmusSource().poll()
        assert isinstance(sample, PlayerUnavailable)
        assert "timed out" in sample.reason

    def test_command_with_socket(self):
        source = CmusSource(SourceOptions(cmus_socket="localhost:3000", cmus_password="secret"))
        assert source._command() == ["cmus-remote", "--server", "localhost:3000", "--passwd", "secret", "-Q"]


class TestPlayerctl:
    def test_local_file_url(self):
        metadata = "file:///music/My%20Band/song.flac\nMy Band\nSong\nAlbum\n12500000\n245000000\n"
        sample = parse_playerctl_metadata("Playing\n", metadata, sampled_at=1.0)
        assert sample.track_identity == "/music/My Band/song.flac"
        assert sample.elapsed_ms == 12500
        assert sample.duration_ms == 245000
        assert sample.playing is True
        assert sample.tags == {"artist": "My Band", "title": "Song", "album": "Album"}

    def test_remote_url(self):
        metadata = "https://open.spotify.com/track/1\nArtist\nTitle\n\n0\n\n"
        sample = parse_playerctl_metadata("Paused", metadata)
        assert sample.track_identity == "https://open.spotify.com/track/1"
        assert sample.playing is False
        assert sample.duration_ms is None

    def test_no_url_uses_artist_title(self):
        metadata = "\nThe Artist\nA Title!\n\n\n"
        sample = parse_playerctl_metadata("Playing", metadata)
        assert sample.track_identity == "theartist_atitle"
        assert "album" not in sample.tags

    def test_stopped(self):
        sample = parse_playerctl_metadata("Stopped", "")
        assert sample.track_identity is None

    async def test_no_players(self):
        result = completed(returncode=1, stderr="No players found")
        with patch("system_utils.sources.base.subprocess.run", return_value=result):
            sample = await LinuxSource().poll()
        assert isinstance(sample, PlayerUnavailable)
        assert sample.reason == "No players found"

    async def test_poll_runs_status_then_metadata(self):
        responses = [completed("Playing\n"), completed("file:///a.flac\nA\nT\nAl\n1000000\n2000000\n")]
        with patch("system_utils.sources.base.subprocess.run", side_effect=responses) as run:
            sample = await LinuxSource(SourceOptions(playerctl_player="mpd")).poll()
        assert sample.track_identity == "/a.flac"
        assert run.call_args_list[0][0][0] == ["playerctl", "--player", "mpd", "status"]
        assert run.call_args_list[1][0][0][:4] == ["playerctl", "--player", "mpd", "metadata"]


def test_registry():
    assert available_sources() == ["cmus", "playerctl"]
    with patch("system_utils.sources.base.shutil.which", return_value="/usr/bin/cmus-remote"):
        assert isinstance(get_source("cmus"), CmusSource)
    with pytest.raises(KeyError):
        get_source("winamp")
