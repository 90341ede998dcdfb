"""
Tests for Proctoring Detectors

Face, audio, pointer motion, screen-share, monitor and input guards.
"""

import asyncio
import pytest
import numpy as np
from unittest.mock import AsyncMock

from conftest import FakeAudioTrack, FakeDisplay, FakePage, FakeVideoTrack, face_frame, solid_frame

from examguard.proctor.capabilities import CapabilityRegistry, DisplayReport
from examguard.proctor.detectors import (
    AudioDetector,
    FaceDetector,
    InputGuard,
    MonitorDetector,
    MotionTracker,
    PeriodicDetector,
    ScreenShareDetector,
    byte_frequency_data,
    evaluate_display,
    find_indicator,
)
from examguard.proctor.detectors.face_detector import bright_cell_count, center_region, skin_ratio
from examguard.proctor.exceptions import CapabilityDenied
from examguard.proctor.infractions import InfractionType


def skin_patch_frame(skin_pixels: int) -> np.ndarray:
    """200x200 dark frame whose 50x50 centre square holds `skin_pixels` skin pixels"""
    frame = solid_frame((20, 20, 20))
    rows, cols = divmod(skin_pixels, 50)
    frame[75:75 + rows, 75:125] = (200, 120, 90)
    frame[75 + rows, 75:75 + cols] = (200, 120, 90)
    return frame


class TestFaceDetector:
    """Tests for FaceDetector heuristics"""

    def test_center_region_is_quarter_of_short_side(self):
        region = center_region(solid_frame(width=400, height=200))
        assert region.shape[:2] == (50, 50)

    def test_skin_ratio(self):
        assert skin_ratio(face_frame()) == 1.0
        assert skin_ratio(solid_frame()) == 0.0

    def test_skin_ratio_at_threshold_is_no_face(self):
        detector = FaceDetector(None, AsyncMock())
        at_threshold = skin_patch_frame(250)  # 250 of 2500 centre pixels
        just_above = skin_patch_frame(251)

        assert skin_ratio(at_threshold) == pytest.approx(0.10)
        assert detector.has_face(at_threshold) is False
        assert detector.has_face(just_above) is True

    def test_bright_cells(self):
        assert bright_cell_count(solid_frame((200, 200, 200))) == 16
        assert bright_cell_count(face_frame()) == 0

    def test_no_face_needs_three_frames(self):
        detector = FaceDetector(None, AsyncMock())
        empty = solid_frame()

        assert detector.observe(empty) == []
        assert detector.observe(empty) == []
        assert detector.observe(empty) == [(InfractionType.NO_FACE, "Face not visible in camera")]
        assert detector.consecutive_no_face == 0

    def test_face_resets_streak(self):
        detector = FaceDetector(None, AsyncMock())
        detector.observe(solid_frame())
        detector.observe(solid_frame())
        detector.observe(face_frame())

        assert detector.consecutive_no_face == 0
        assert detector.observe(solid_frame()) == []

    def test_multiple_faces_every_frame(self):
        detector = FaceDetector(None, AsyncMock())
        bright = solid_frame((200, 200, 200))

        found = detector.observe(bright)

        assert (InfractionType.MULTIPLE_FACES, "Multiple faces detected") in found

    def test_rgba_frames_accepted(self):
        detector = FaceDetector(None, AsyncMock())
        rgba = np.dstack([face_frame(), np.full((200, 200), 255, dtype=np.uint8)])
        assert detector.observe(rgba) == []

    def test_unusable_frame_raises(self):
        detector = FaceDetector(None, AsyncMock())
        with pytest.raises(ValueError):
            detector.observe(np.zeros((10, 10), dtype=np.uint8))

    @pytest.mark.asyncio
    async def test_check_reports_through_callback(self):
        report = AsyncMock()
        detector = FaceDetector(FakeVideoTrack(solid_frame()), report, missing_frames=1)

        await detector.check()

        report.assert_awaited_once_with(InfractionType.NO_FACE, "Face not visible in camera")

    @pytest.mark.asyncio
    async def test_runs_on_its_own_task(self):
        report = AsyncMock()
        detector = FaceDetector(FakeVideoTrack(solid_frame()), report, interval=0.01)

        detector.start()
        await asyncio.sleep(0.1)
        detector.stop()

        assert report.await_count >= 1
        assert report.await_args_list[0].args == (InfractionType.NO_FACE, "Face not visible in camera")
        assert not detector.running


class TestAudioDetector:
    """Tests for AudioDetector"""

    def test_initialization(self):
        detector = AudioDetector(None, AsyncMock())
        assert detector.threshold == 30.0
        assert detector.consecutive_hits == 3

    def test_three_loud_checks_report(self):
        detector = AudioDetector(None, AsyncMock())
        loud = np.full(128, 100, dtype=np.uint8)

        assert detector.observe(loud) is None
        assert detector.observe(loud) is None
        assert detector.observe(loud) == "Audio level: 100"
        assert detector.observe(loud) is None

    def test_quiet_check_resets(self):
        detector = AudioDetector(None, AsyncMock())
        loud = np.full(128, 100, dtype=np.uint8)
        quiet = np.full(128, 10, dtype=np.uint8)

        detector.observe(loud)
        detector.observe(loud)
        detector.observe(quiet)

        assert detector.observe(loud) is None

    def test_level_at_threshold_is_quiet(self):
        detector = AudioDetector(None, AsyncMock(), consecutive_hits=1)
        assert detector.observe(np.full(128, 30, dtype=np.uint8)) is None

    def test_dip_below_threshold_breaks_streak(self):
        detector = AudioDetector(None, AsyncMock())
        levels = [31, 31, 29, 31]

        results = [detector.observe(np.full(128, level, dtype=np.uint8)) for level in levels]

        assert results == [None, None, None, None]
        assert detector.get_metrics()["current_consecutive_suspicious"] == 1

    def test_metrics(self):
        detector = AudioDetector(None, AsyncMock())
        detector.observe(np.full(128, 100, dtype=np.uint8))
        detector.observe(np.full(128, 0, dtype=np.uint8))

        metrics = detector.get_metrics()
        assert metrics["total_samples"] == 2
        assert metrics["suspicious_samples"] == 1
        assert metrics["suspicious_ratio"] == 0.5

    def test_empty_buffer_is_noise(self):
        with pytest.raises(ValueError):
            AudioDetector.level(np.array([]))

    @pytest.mark.asyncio
    async def test_check_reads_audio_track(self):
        report = AsyncMock()
        detector = AudioDetector(FakeAudioTrack(level=120), report, consecutive_hits=1)

        await detector.check()

        report.assert_awaited_once_with(InfractionType.AUDIO_DETECTED, "Audio level: 120")

    def test_byte_frequency_data_silence(self):
        data = byte_frequency_data(np.zeros(512, dtype=np.float32))
        assert data.shape == (128,)
        assert data.dtype == np.uint8
        assert data.max() == 0

    def test_byte_frequency_data_tone(self):
        t = np.arange(256) / 16000.0
        tone = (0.8 * np.sin(2 * np.pi * 1000 * t) * 32767).astype(np.int16)
        data = byte_frequency_data(tone)
        assert data.max() > 200

    def test_byte_frequency_data_rejects_small_fft(self):
        with pytest.raises(ValueError):
            byte_frequency_data(np.zeros(128), fft_size=128)


class TestMotionTracker:
    """Pointer velocity heuristic"""

    def feed_zigzag(self, tracker, count=12, start_ms=0):
        for i in range(count):
            tracker.record_move(0 if i % 2 == 0 else 100, 0, start_ms + i * 10)

    def test_too_few_samples_skips_interval(self):
        tracker = MotionTracker(AsyncMock())
        self.feed_zigzag(tracker, count=9)

        assert tracker.observe() is None
        assert tracker.suspicious_streak == 0

    def test_two_suspicious_intervals_report(self):
        tracker = MotionTracker(AsyncMock())
        self.feed_zigzag(tracker)

        assert tracker.observe() is None
        assert tracker.suspicious_streak == 1
        assert tracker.observe() == "Suspicious rapid eye/mouse movements"
        assert tracker.suspicious_streak == 0
        assert len(tracker.samples) == 0

    def test_slow_interval_resets_streak(self):
        tracker = MotionTracker(AsyncMock())
        self.feed_zigzag(tracker)
        tracker.observe()

        tracker.samples.clear()
        for i in range(12):
            tracker.record_move(i, i, i * 100)

        assert tracker.observe() is None
        assert tracker.suspicious_streak == 0

    def test_window_is_bounded(self):
        tracker = MotionTracker(AsyncMock(), window_size=50)
        self.feed_zigzag(tracker, count=80)
        assert len(tracker.samples) == 50

    def test_zero_dt_pairs_ignored(self):
        tracker = MotionTracker(AsyncMock())
        for i in range(12):
            tracker.record_move(i * 100, 0, 5)
        assert tracker.count_rapid_pairs(list(tracker.samples)) == 0

    @pytest.mark.asyncio
    async def test_check_reports_eye_movement(self):
        report = AsyncMock()
        tracker = MotionTracker(report, suspicious_cycles=1)
        self.feed_zigzag(tracker)

        await tracker.check()

        report.assert_awaited_once_with(InfractionType.EYE_MOVEMENT, "Suspicious rapid eye/mouse movements")


class TestScreenShareDetector:

    def test_find_indicator_in_text(self):
        assert find_indicator("Exam", "https://exam", "Connected via AnyDesk") == "anydesk"

    def test_find_indicator_in_title_and_url(self):
        assert find_indicator("TeamViewer session", "", "") == "teamviewer"
        assert find_indicator("", "https://join.me/abc", "") == "join.me"

    def test_text_beyond_limit_ignored(self):
        text = "x" * 5000 + "anydesk"
        assert find_indicator("", "", text) is None

    @pytest.mark.asyncio
    async def test_check_reports_and_notifies(self):
        report = AsyncMock()
        notices = []
        detector = ScreenShareDetector(
            FakePage(text="Remote Desktop connection active"),
            report,
            notify=lambda message, severity: notices.append(severity),
        )

        await detector.check()

        report.assert_awaited_once_with(InfractionType.SCREEN_SHARE, "Detected: remote desktop")
        assert notices == ["error"]

    @pytest.mark.asyncio
    async def test_clean_page(self):
        report = AsyncMock()
        await ScreenShareDetector(FakePage(), report).check()
        report.assert_not_awaited()


class TestMonitorDetector:

    def test_ultrawide(self):
        result = evaluate_display(DisplayReport(5120, 1440))
        assert result.detected
        assert result.reason == "Ultra-wide display detected (possible multiple monitors)"
        assert result.details["aspectRatio"] == 3.56

    def test_window_out_of_bounds(self):
        result = evaluate_display(DisplayReport(1920, 1080, window_x=2500))
        assert result.reason == "Window positioned outside primary screen bounds"

    def test_extended_flag(self):
        result = evaluate_display(DisplayReport(1920, 1080, is_extended=True))
        assert result.reason == "Extended display mode detected"

    def test_screen_count(self):
        result = evaluate_display(DisplayReport(1920, 1080, screen_count=3))
        assert result.reason == "Multiple displays detected: 3 screens"

    def test_single_display(self):
        assert not evaluate_display(DisplayReport(1920, 1080, screen_count=1)).detected

    def test_ultrawide_wins_over_other_signals(self):
        result = evaluate_display(DisplayReport(5120, 1440, is_extended=True, screen_count=2))
        assert result.reason.startswith("Ultra-wide")

    @pytest.mark.asyncio
    async def test_initial_check_sets_baseline(self):
        report = AsyncMock()
        detector = MonitorDetector(FakeDisplay(DisplayReport(1920, 1080, screen_count=2)), report)

        result = await detector.initial_check()

        assert result.detected
        assert detector.baseline_screen_count == 2
        report.assert_awaited_once_with(InfractionType.MULTIPLE_MONITORS, "Multiple displays detected: 2 screens")

    @pytest.mark.asyncio
    async def test_initial_check_clean(self):
        report = AsyncMock()
        detector = MonitorDetector(FakeDisplay(), report)

        await detector.initial_check()

        assert detector.baseline_screen_count == 1
        report.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_provider_errors_fail_open(self):
        display = FakeDisplay()
        display.report = AsyncMock(side_effect=RuntimeError("permission denied"))
        report = AsyncMock()

        await MonitorDetector(display, report).check()

        report.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_resize_reports_configuration_change(self):
        report = AsyncMock()
        detector = MonitorDetector(FakeDisplay(DisplayReport(1920, 1080, is_extended=True)), report)

        await detector.on_resize()

        report.assert_awaited_once_with(
            InfractionType.MULTIPLE_MONITORS,
            "Screen configuration changed: Extended display mode detected",
        )

    @pytest.mark.asyncio
    async def test_window_move_to_other_display(self):
        report = AsyncMock()
        display = FakeDisplay(position=(0, 0))
        detector = MonitorDetector(display, report)
        await detector.initial_check()

        display.position = (2500, 0)
        display.current = DisplayReport(1920, 1080, window_x=2500)
        await detector.check_move()

        report.assert_awaited_once_with(InfractionType.MULTIPLE_MONITORS, "Window moved to different display")

    @pytest.mark.asyncio
    async def test_small_move_ignored(self):
        report = AsyncMock()
        display = FakeDisplay(DisplayReport(1920, 1080, is_extended=True), position=(0, 0))
        detector = MonitorDetector(display, report)
        detector.observe_move((0, 0))

        display.position = (50, 50)
        await detector.check_move()

        report.assert_not_awaited()


class TestPeriodicDetector:

    class Exploding(PeriodicDetector):
        name = "exploding"

        async def check(self):
            raise RuntimeError("sensor glitch")

    @pytest.mark.asyncio
    async def test_errors_are_swallowed(self):
        report = AsyncMock()
        detector = self.Exploding(1.0, report, identity="s1")

        await detector.tick()
        await detector.tick()

        assert detector.errors == 2
        report.assert_not_awaited()


class TestInputGuard:

    def make_guard(self):
        emitted = []
        guard = InputGuard(lambda t, d: emitted.append((t, d)), FakePage())
        return guard, emitted

    def test_clipboard(self):
        guard, emitted = self.make_guard()
        assert guard.on_clipboard("paste") is True
        assert emitted == [(InfractionType.COPY_PASTE, "Action: paste")]

    def test_shortcuts(self):
        guard, emitted = self.make_guard()

        assert guard.on_key("c", ctrl=True) is True
        assert guard.on_key("p", meta=True) is True
        assert guard.on_key("F12") is True
        assert guard.on_key("I", ctrl=True, shift=True) is True
        assert guard.on_key("k", ctrl=True) is False
        assert guard.on_key("c") is False

        assert emitted == [
            (InfractionType.COPY_PASTE, "Keyboard shortcut: Ctrl+c"),
            (InfractionType.COPY_PASTE, "Keyboard shortcut: Ctrl+p"),
            (InfractionType.COPY_PASTE, "Dev tools attempt"),
            (InfractionType.COPY_PASTE, "Dev tools attempt"),
        ]

    def test_context_menu(self):
        guard, emitted = self.make_guard()
        assert guard.on_context_menu() is True
        assert emitted == [(InfractionType.COPY_PASTE, "Context menu attempt")]

    def test_external_link_blocked(self):
        guard, emitted = self.make_guard()

        assert guard.on_link_click("https://google.com/search?q=answers") is True
        assert guard.on_link_click("/test/1/question/2") is False
        assert guard.on_link_click("https://exam.example.com/other") is False

        assert emitted == [(InfractionType.NAVIGATION, "External link blocked: google.com")]

    def test_external_form_blocked(self):
        guard, emitted = self.make_guard()
        assert guard.on_form_submit("http://exam.example.com/submit") is True
        assert emitted == [(InfractionType.NAVIGATION, "External form submission blocked: exam.example.com")]

    def test_before_unload(self):
        guard, emitted = self.make_guard()
        assert guard.on_before_unload() is True
        assert emitted == [(InfractionType.NAVIGATION, "Attempted to leave page")]

    def test_installed_capabilities(self):
        guard, emitted = self.make_guard()
        registry = CapabilityRegistry()
        guard.install(registry)

        assert registry.invoke(CapabilityRegistry.WINDOW_OPEN, "https://chat.example") is None
        assert registry.invoke(CapabilityRegistry.EXEC_COMMAND, "copy") is False
        with pytest.raises(CapabilityDenied):
            registry.invoke(CapabilityRegistry.SCREEN_CAPTURE)

        assert emitted == [
            (InfractionType.NEW_TAB, "window.open blocked"),
            (InfractionType.COPY_PASTE, "execCommand blocked"),
            (InfractionType.SCREEN_SHARE, "Screen capture API called"),
        ]

    def test_missing_capability(self):
        with pytest.raises(KeyError):
            CapabilityRegistry().invoke("geolocation")
