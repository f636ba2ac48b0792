"""
Tests for the media layer: ffmpeg command construction, last-frame extraction
and segment concatenation with its codec-mismatch fallback.
"""

import shutil
import subprocess
from types import SimpleNamespace

import pytest

from app.services.chain import media_tool as media_tool_module
from app.services.chain.concatenator import Concatenator, is_codec_mismatch
from app.services.chain.errors import ConcatenationFailed, ContinuityExtractionFailed
from app.services.chain.frame_extractor import FrameExtractor
from app.services.chain.media_tool import (
    FfmpegMediaTool,
    MediaToolError,
    build_concat_list,
    build_reencode_filter,
)
from app.utils.ffmpeg_helper import missing_encoders
from conftest import FakeMediaTool


def write_segments(tmp_path, count=3):
    paths = []
    for i in range(1, count + 1):
        path = tmp_path / f"segment_{i:02d}.mp4"
        path.write_bytes(b"clip-%d" % i)
        paths.append(str(path))
    return paths


# -----------------------------------------------------------------------------
# FfmpegMediaTool
# -----------------------------------------------------------------------------

class TestFfmpegMediaTool:

    @pytest.fixture
    def recorded(self, monkeypatch):
        calls = []

        def fake_run(cmd, **kwargs):
            calls.append((cmd, kwargs))
            return SimpleNamespace(returncode=0, stdout="", stderr="")

        monkeypatch.setattr(media_tool_module.subprocess, "run", fake_run)
        return calls

    def test_extract_last_frame_seeks_from_end(self, recorded):
        FfmpegMediaTool(ffmpeg_path="ffmpeg").extract_last_frame("in.mp4", "out.jpg")
        cmd, kwargs = recorded[0]

        assert cmd == ["ffmpeg", "-y", "-sseof", "-0.1", "-i", "in.mp4", "-vframes", "1", "-q:v", "2", "out.jpg"]
        assert kwargs["capture_output"] is True
        assert kwargs["timeout"] == 600

    def test_concat_copy_uses_demuxer_without_reencode(self, recorded):
        FfmpegMediaTool(ffmpeg_path="ffmpeg").concat_copy("list.txt", "out.mp4")
        cmd, _ = recorded[0]

        assert cmd == ["ffmpeg", "-y", "-f", "concat", "-safe", "0", "-i", "list.txt", "-c", "copy", "out.mp4"]

    def test_concat_reencode_normalizes_streams(self, recorded):
        FfmpegMediaTool(ffmpeg_path="ffmpeg").concat_reencode(["a.mp4", "b.mp4"], "out.mp4")
        cmd, _ = recorded[0]

        assert cmd[:6] == ["ffmpeg", "-y", "-i", "a.mp4", "-i", "b.mp4"]
        assert cmd[cmd.index("-filter_complex") + 1] == "[0:v][0:a][1:v][1:a]concat=n=2:v=1:a=1[outv][outa]"
        assert cmd[cmd.index("-r") + 1] == "24"
        assert cmd[cmd.index("-c:v") + 1] == "libx264"
        assert cmd[cmd.index("-crf") + 1] == "18"
        assert cmd[cmd.index("-pix_fmt") + 1] == "yuv420p"
        assert cmd[cmd.index("-c:a") + 1] == "aac"
        assert cmd[cmd.index("-b:a") + 1] == "192k"
        assert cmd[-1] == "out.mp4"

    def test_nonzero_exit_keeps_stderr(self, monkeypatch):
        monkeypatch.setattr(
            media_tool_module.subprocess,
            "run",
            lambda cmd, **kwargs: SimpleNamespace(returncode=1, stdout="", stderr="Invalid data found"),
        )

        with pytest.raises(MediaToolError) as exc_info:
            FfmpegMediaTool(ffmpeg_path="ffmpeg").concat_copy("list.txt", "out.mp4")

        assert exc_info.value.returncode == 1
        assert exc_info.value.stderr == "Invalid data found"

    def test_timeout_is_reported(self, monkeypatch):
        def fake_run(cmd, **kwargs):
            raise subprocess.TimeoutExpired(cmd, kwargs["timeout"])

        monkeypatch.setattr(media_tool_module.subprocess, "run", fake_run)

        with pytest.raises(MediaToolError, match="timed out after 5s"):
            FfmpegMediaTool(ffmpeg_path="ffmpeg", timeout_seconds=5).extract_last_frame("in.mp4", "out.jpg")


class TestConcatList:

    def test_lines_use_absolute_paths(self, tmp_path):
        content = build_concat_list([str(tmp_path / "a.mp4"), str(tmp_path / "b.mp4")])
        assert content == f"file '{tmp_path / 'a.mp4'}'\nfile '{tmp_path / 'b.mp4'}'\n"

    def test_single_quotes_are_escaped(self, tmp_path):
        content = build_concat_list([str(tmp_path / "it's.mp4")])
        assert content == f"file '{tmp_path}/it'\\''s.mp4'\n"

    def test_reencode_filter_for_three_inputs(self):
        assert build_reencode_filter(3) == "[0:v][0:a][1:v][1:a][2:v][2:a]concat=n=3:v=1:a=1[outv][outa]"


# -----------------------------------------------------------------------------
# FrameExtractor
# -----------------------------------------------------------------------------

class TestFrameExtractor:

    def test_writes_default_output_next_to_video(self, tmp_path):
        video = tmp_path / "segment_01.mp4"
        video.write_bytes(b"clip")

        output = FrameExtractor(FakeMediaTool()).extract_last_frame(str(video))

        assert output == str(tmp_path / "segment_01_last.jpg")
        assert (tmp_path / "segment_01_last.jpg").read_bytes() == b"jpeg-last-frame-of-segment_01.mp4"

    def test_missing_video_fails(self, tmp_path):
        with pytest.raises(ContinuityExtractionFailed, match="missing or empty"):
            FrameExtractor(FakeMediaTool()).extract_last_frame(str(tmp_path / "nope.mp4"))

    def test_decoder_error_surfaces_last_stderr_line(self, tmp_path):
        video = tmp_path / "segment_01.mp4"
        video.write_bytes(b"clip")

        with pytest.raises(ContinuityExtractionFailed) as exc_info:
            FrameExtractor(FakeMediaTool(extract_fails=True)).extract_last_frame(str(video))

        assert exc_info.value.reason == "moov atom not found"

    def test_no_frame_written_fails(self, tmp_path):
        class SilentTool(FakeMediaTool):
            def extract_last_frame(self, video_path, output_path):
                pass

        video = tmp_path / "segment_01.mp4"
        video.write_bytes(b"clip")

        with pytest.raises(ContinuityExtractionFailed, match="no frame was decoded"):
            FrameExtractor(SilentTool()).extract_last_frame(str(video))


# -----------------------------------------------------------------------------
# Concatenator
# -----------------------------------------------------------------------------

class TestConcatenator:

    def test_single_segment_is_copied_byte_for_byte(self, tmp_path):
        [path] = write_segments(tmp_path, 1)
        tool = FakeMediaTool()

        output = Concatenator(tool).concat([path], str(tmp_path / "combined.mp4"))

        assert (tmp_path / "combined.mp4").read_bytes() == b"clip-1"
        assert output == str(tmp_path / "combined.mp4")
        assert tool.copy_lists == []

    def test_stream_copy_fast_path(self, tmp_path):
        paths = write_segments(tmp_path)
        tool = FakeMediaTool()

        output = Concatenator(tool).concat(paths)

        assert output == str(tmp_path / "combined.mp4")
        assert tool.copy_lists == [build_concat_list(paths)]
        assert tool.reencoded == []

    def test_list_file_is_removed(self, tmp_path):
        paths = write_segments(tmp_path)
        Concatenator(FakeMediaTool()).concat(paths)
        assert not (tmp_path / "concat_list.txt").exists()

    def test_codec_mismatch_falls_back_to_reencode(self, tmp_path):
        paths = write_segments(tmp_path)
        tool = FakeMediaTool(copy_stderr="[concat] Input #1 has different codec parameters")

        Concatenator(tool).concat(paths)

        assert tool.reencoded == [paths]
        assert (tmp_path / "combined.mp4").read_bytes() == b"reencoded"
        assert not (tmp_path / "concat_list.txt").exists()

    def test_other_failures_do_not_reencode(self, tmp_path):
        paths = write_segments(tmp_path)
        tool = FakeMediaTool(copy_stderr="No space left on device")

        with pytest.raises(ConcatenationFailed) as exc_info:
            Concatenator(tool).concat(paths)

        assert not exc_info.value.codec_mismatch
        assert "No space left on device" in str(exc_info.value)
        assert tool.reencoded == []
        assert not (tmp_path / "concat_list.txt").exists()

    @pytest.mark.parametrize("stderr", [
        "Non-monotonous DTS in output stream 0:0\nav_interleaved_write_frame(): No space left on device",
        "Could not find codec parameters for stream 0 (Video: h264)\nsegment_02.mp4: Invalid data found when processing input",
    ])
    def test_unrelated_failures_with_codec_noise_do_not_reencode(self, tmp_path, stderr):
        paths = write_segments(tmp_path)
        tool = FakeMediaTool(copy_stderr=stderr)

        with pytest.raises(ConcatenationFailed) as exc_info:
            Concatenator(tool).concat(paths)

        assert tool.reencoded == []
        assert not exc_info.value.codec_mismatch
        assert stderr.splitlines()[-1] in str(exc_info.value)

    def test_single_segment_copy_failure_is_reported(self, tmp_path):
        with pytest.raises(ConcatenationFailed, match="could not copy"):
            Concatenator(FakeMediaTool()).concat(
                [str(tmp_path / "segment_01.mp4")], str(tmp_path / "combined.mp4")
            )

    def test_failed_reencode_is_reported_as_mismatch(self, tmp_path):
        paths = write_segments(tmp_path)
        tool = FakeMediaTool(copy_stderr="Input #1 has different codec parameters", reencode_fails=True)

        with pytest.raises(ConcatenationFailed) as exc_info:
            Concatenator(tool).concat(paths)

        assert exc_info.value.codec_mismatch

    def test_empty_input_fails(self):
        with pytest.raises(ConcatenationFailed, match="no video paths"):
            Concatenator(FakeMediaTool()).concat([])

    @pytest.mark.parametrize("stderr,expected", [
        ("Stream has different codec", True),
        ("Filtergraph 'concat' was specified", True),
        ("Non-monotonous DTS", False),
        ("Could not find codec parameters for stream 0", False),
        ("No space left on device", False),
        ("Permission denied", False),
        ("", False),
    ])
    def test_codec_mismatch_detection(self, stderr, expected):
        assert is_codec_mismatch(stderr) is expected


# -----------------------------------------------------------------------------
# Startup check
# -----------------------------------------------------------------------------

ENCODER_LISTING = """Encoders:
 V..... = Video
 ------
 V....D libx264              libx264 H.264 / AVC / MPEG-4 AVC
 A....D aac                  AAC (Advanced Audio Coding)
"""


class TestFfmpegCheck:

    def test_full_build_has_no_missing_encoders(self):
        assert missing_encoders(ENCODER_LISTING) == []

    def test_build_without_x264_is_reported(self):
        listing = ENCODER_LISTING.replace("libx264", "mpeg4")
        assert missing_encoders(listing) == ["libx264"]


# -----------------------------------------------------------------------------
# Real ffmpeg
# -----------------------------------------------------------------------------

requires_ffmpeg = pytest.mark.skipif(
    shutil.which("ffmpeg") is None or shutil.which("ffprobe") is None,
    reason="ffmpeg and ffprobe are required",
)


def make_clip(path, seconds=1.0, video_codec="libx264", audio_codec="aac", frequency=440):
    subprocess.run(
        [
            "ffmpeg", "-y", "-hide_banner", "-loglevel", "error",
            "-f", "lavfi", "-i", f"testsrc=size=320x240:rate=24:duration={seconds}",
            "-f", "lavfi", "-i", f"sine=frequency={frequency}:duration={seconds}",
            "-c:v", video_codec, "-pix_fmt", "yuv420p",
            "-c:a", audio_codec, "-shortest",
            str(path),
        ],
        check=True,
        capture_output=True,
    )
    return str(path)


def media_duration(path):
    result = subprocess.run(
        ["ffprobe", "-v", "error", "-show_entries", "format=duration", "-of", "csv=p=0", str(path)],
        check=True,
        capture_output=True,
        text=True,
    )
    return float(result.stdout.strip())


def media_video_codec(path):
    result = subprocess.run(
        [
            "ffprobe", "-v", "error", "-select_streams", "v:0",
            "-show_entries", "stream=codec_name", "-of", "csv=p=0", str(path),
        ],
        check=True,
        capture_output=True,
        text=True,
    )
    return result.stdout.strip()


class MismatchOnCopyTool(FfmpegMediaTool):
    """Real ffmpeg, except that stream copy always reports a codec mismatch"""

    def __init__(self):
        super().__init__(ffmpeg_path="ffmpeg", timeout_seconds=120)
        self.reencoded = []

    def concat_copy(self, list_file, output_path):
        raise MediaToolError("concat_copy", "ffmpeg exited with code 1", 1, "Input #1 has different codec parameters")

    def concat_reencode(self, video_paths, output_path):
        self.reencoded.append(list(video_paths))
        super().concat_reencode(video_paths, output_path)


@requires_ffmpeg
class TestConcatenatorWithFfmpeg:

    def test_stream_copy_keeps_total_duration(self, tmp_path):
        paths = [make_clip(tmp_path / f"segment_{i:02d}.mp4") for i in (1, 2)]
        expected = sum(media_duration(p) for p in paths)

        output = Concatenator(FfmpegMediaTool(ffmpeg_path="ffmpeg", timeout_seconds=120)).concat(paths)

        assert media_duration(output) == pytest.approx(expected, abs=0.25)

    def test_mismatched_codecs_are_reencoded_into_playable_output(self, tmp_path):
        paths = [
            make_clip(tmp_path / "segment_01.mp4"),
            make_clip(tmp_path / "segment_02.mp4", video_codec="mpeg4", frequency=880),
        ]
        expected = sum(media_duration(p) for p in paths)
        tool = MismatchOnCopyTool()

        output = Concatenator(tool).concat(paths)

        assert tool.reencoded == [paths]
        assert media_video_codec(output) == "h264"
        assert media_duration(output) == pytest.approx(expected, abs=0.25)

    def test_last_frame_is_a_jpeg(self, tmp_path):
        video = make_clip(tmp_path / "segment_01.mp4")

        frame = FrameExtractor(FfmpegMediaTool(ffmpeg_path="ffmpeg", timeout_seconds=120)).extract_last_frame(video)

        with open(frame, "rb") as f:
            assert f.read(2) == b"\xff\xd8"
