"""Tests for the playback change detector"""
import pytest

from conftest import status, unavailable
from detector import (
    ChangeDetector,
    DetectorState,
    LyricLineChanged,
    PlaybackChanged,
    PlayerSettingsChanged,
    TrackChanged,
    TrackCleared,
)
from system_utils.sources.base import PlayerSettings


def of_type(events, cls):
    return [e for e in events if isinstance(e, cls)]


def feed_all(detector, samples):
    events = []
    for sample in samples:
        events.extend(detector.feed(sample))
    return events


def test_first_identity_announces_track():
    detector = ChangeDetector()
    events = detector.feed(status("A"))
    assert len(events) == 1
    assert isinstance(events[0], TrackChanged)
    assert events[0].identity == "A"
    assert events[0].previous is None
    assert detector.state is DetectorState.TRACK_ACTIVE


def test_identity_sequence_with_debounce():
    detector = ChangeDetector(loss_debounce_samples=2)
    events = feed_all(detector, [status("A"), status("A"), status("B"), status("B")])
    changes = of_type(events, TrackChanged)
    assert [e.identity for e in changes] == ["A", "B"]
    assert changes[1].previous == "A"
    assert not of_type(events, TrackCleared)
    assert detector.state is DetectorState.TRACK_ACTIVE


def test_identity_change_emits_exactly_one_track_changed():
    detector = ChangeDetector()
    detector.feed(status("A"))
    events = detector.feed(status("B", elapsed_ms=0))
    assert len(of_type(events, TrackChanged)) == 1


def test_loss_below_threshold_does_not_clear():
    detector = ChangeDetector(loss_debounce_samples=3)
    events = feed_all(detector, [status("A"), unavailable(), unavailable()])
    assert not of_type(events, TrackCleared)
    assert detector.state is DetectorState.TRACK_ACTIVE
    assert detector.loss_count == 2


def test_good_sample_resets_loss_counter():
    detector = ChangeDetector(loss_debounce_samples=2)
    events = feed_all(detector, [status("A"), unavailable(), status("A"), unavailable(), status("A")])
    assert not of_type(events, TrackCleared)
    assert len(of_type(events, TrackChanged)) == 1
    assert detector.loss_count == 0


def test_loss_at_threshold_clears_exactly_once():
    detector = ChangeDetector(loss_debounce_samples=2)
    events = feed_all(detector, [status("A"), unavailable(), unavailable(), unavailable(), unavailable()])
    cleared = of_type(events, TrackCleared)
    assert len(cleared) == 1
    assert cleared[0].previous == "A"
    assert detector.state is DetectorState.NO_TRACK
    assert detector.identity is None


def test_status_without_identity_counts_as_loss():
    detector = ChangeDetector(loss_debounce_samples=1)
    events = feed_all(detector, [status("A"), status(None, playing=False)])
    assert of_type(events, TrackCleared)


def test_same_track_after_clear_is_announced_again():
    detector = ChangeDetector(loss_debounce_samples=1)
    events = feed_all(detector, [status("A"), unavailable(), status("A")])
    changes = of_type(events, TrackChanged)
    assert len(changes) == 2
    assert changes[1].previous is None


def test_loss_while_idle_is_ignored():
    detector = ChangeDetector()
    assert feed_all(detector, [unavailable(), unavailable(), unavailable()]) == []
    assert detector.state is DetectorState.NO_TRACK


def test_seek_backwards_is_not_a_track_change():
    detector = ChangeDetector()
    events = feed_all(detector, [status("A", 60000), status("A", 1000), status("A", 0)])
    assert len(of_type(events, TrackChanged)) == 1


def test_pause_and_resume_emit_playback_changed():
    detector = ChangeDetector()
    events = feed_all(detector, [status("A"), status("A", playing=False), status("A", playing=True)])
    playback = of_type(events, PlaybackChanged)
    assert [e.playing for e in playback] == [False, True]
    assert len(of_type(events, TrackChanged)) == 1


def test_invalid_debounce():
    with pytest.raises(ValueError):
        ChangeDetector(loss_debounce_samples=0)


class TestLyrics:
    def test_bind_announces_active_line(self, three_line_track):
        detector = ChangeDetector()
        detector.feed(status("A", 2500))
        events = detector.bind_lyrics("A", three_line_track, status("A", 2500))
        assert len(events) == 1
        assert events[0] == LyricLineChanged("A", 1, three_line_track.lines[1], True)

    def test_bind_for_stale_identity_is_ignored(self, three_line_track):
        detector = ChangeDetector()
        detector.feed(status("A"))
        detector.feed(status("B"))
        assert detector.bind_lyrics("A", three_line_track, status("A")) == []
        assert detector.cursor is None

    def test_no_lyric_events_without_binding(self):
        detector = ChangeDetector()
        events = feed_all(detector, [status("A", t) for t in range(0, 10000, 500)])
        assert not of_type(events, LyricLineChanged)

    def test_line_changes_are_monotonic(self, three_line_track):
        detector = ChangeDetector()
        detector.feed(status("A", 0))
        events = detector.bind_lyrics("A", three_line_track, status("A", 0))
        events += feed_all(detector, [status("A", t) for t in range(250, 8000, 250)])
        lyric_events = of_type(events, LyricLineChanged)
        assert [e.index for e in lyric_events] == [0, 1, 2]
        assert [e.line.text for e in lyric_events] == ["a", "b", "c"]

    def test_rewind_reannounces_earlier_line(self, three_line_track):
        detector = ChangeDetector()
        detector.feed(status("A", 6000))
        detector.bind_lyrics("A", three_line_track, status("A", 6000))
        events = detector.feed(status("A", 2100))
        assert of_type(events, LyricLineChanged)[0].line.text == "b"
        assert not of_type(events, TrackChanged)

    def test_track_change_drops_cursor(self, three_line_track):
        detector = ChangeDetector()
        detector.feed(status("A", 0))
        detector.bind_lyrics("A", three_line_track, status("A", 0))
        events = feed_all(detector, [status("B", 2500), status("B", 6000)])
        assert detector.cursor is None
        assert not of_type(events, LyricLineChanged)

    def test_paused_changes_wait_for_resume(self, three_line_track):
        detector = ChangeDetector(notify_while_paused=False)
        detector.feed(status("A", 500))
        detector.bind_lyrics("A", three_line_track, status("A", 500))

        paused = detector.feed(status("A", 2500, playing=False))
        assert not of_type(paused, LyricLineChanged)
        assert detector.cursor.last_index == 1

        resumed = detector.feed(status("A", 2600, playing=True))
        lyric_events = of_type(resumed, LyricLineChanged)
        assert [e.index for e in lyric_events] == [1]

    def test_paused_changes_announced_when_enabled(self, three_line_track):
        detector = ChangeDetector(notify_while_paused=True)
        detector.feed(status("A", 500))
        detector.bind_lyrics("A", three_line_track, status("A", 500))
        events = detector.feed(status("A", 2500, playing=False))
        lyric_events = of_type(events, LyricLineChanged)
        assert len(lyric_events) == 1
        assert lyric_events[0].playing is False

    def test_moving_before_first_line_is_silent(self):
        from lyrics import LyricLine, LyricTrack
        track = LyricTrack(lines=(LyricLine(3000, "first"), LyricLine(6000, "second")))
        detector = ChangeDetector()
        detector.feed(status("A", 3500))
        assert len(detector.bind_lyrics("A", track, status("A", 3500))) == 1

        assert detector.feed(status("A", 1000)) == []
        assert detector.announced_index == -1

        events = detector.feed(status("A", 3100))
        assert [e.line.text for e in of_type(events, LyricLineChanged)] == ["first"]


class TestSettings:
    def test_first_settings_are_silent(self):
        detector = ChangeDetector()
        events = detector.feed(status("A", settings=PlayerSettings(shuffle=False, volume=50)))
        assert not of_type(events, PlayerSettingsChanged)

    def test_settings_change_is_reported(self):
        detector = ChangeDetector()
        detector.feed(status("A", settings=PlayerSettings(shuffle=False, volume=50)))
        events = detector.feed(status("A", settings=PlayerSettings(shuffle=True, volume=50)))
        changed = of_type(events, PlayerSettingsChanged)
        assert len(changed) == 1
        assert changed[0].settings.shuffle is True
        assert changed[0].previous.shuffle is False
