"""
Media operations used by the chain pipeline.

MediaTool is the narrow seam between pipeline logic and the media toolkit:
the pipeline only ever needs a last frame, a stream-copy join, and a
re-encode join. FfmpegMediaTool shells out to ffmpeg for all three.
"""

import logging
import os
import subprocess
from abc import ABC, abstractmethod
from typing import List, Optional

from app.config.constants import (
    LAST_FRAME_OFFSET_SECONDS,
    LAST_FRAME_JPEG_QUALITY,
    REENCODE_FRAME_RATE,
    REENCODE_VIDEO_CODEC,
    REENCODE_PRESET,
    REENCODE_CRF,
    REENCODE_PIXEL_FORMAT,
    REENCODE_AUDIO_CODEC,
    REENCODE_AUDIO_BITRATE,
)
from app.utils.ffmpeg_helper import get_ffmpeg_path

logger = logging.getLogger(__name__)


class MediaToolError(Exception):
    """A media command exited unsuccessfully; stderr is kept for diagnosis."""

    def __init__(self, operation: str, message: str, returncode: Optional[int] = None, stderr: str = ""):
        self.operation = operation
        self.returncode = returncode
        self.stderr = stderr or ""
        super().__init__(f"{operation} failed: {message}")


class MediaTool(ABC):
    @abstractmethod
    def extract_last_frame(self, video_path: str, output_path: str) -> None:
        """Write one still frame from near the end of video_path to output_path."""

    @abstractmethod
    def concat_copy(self, list_file: str, output_path: str) -> None:
        """Join the files named in a concat-demuxer list without re-encoding."""

    @abstractmethod
    def concat_reencode(self, video_paths: List[str], output_path: str) -> None:
        """Join heterogeneous files through a normalizing filter graph."""


def build_concat_list(video_paths: List[str]) -> str:
    """Concat demuxer manifest; single quotes inside paths are escaped for ffmpeg"""
    lines = []
    for path in video_paths:
        escaped = os.path.abspath(path).replace("'", "'\\''")
        lines.append(f"file '{escaped}'")
    return "\n".join(lines) + "\n"


def build_reencode_filter(num_inputs: int) -> str:
    """[0:v][0:a][1:v][1:a]...concat=n=N:v=1:a=1[outv][outa]"""
    streams = "".join(f"[{i}:v][{i}:a]" for i in range(num_inputs))
    return f"{streams}concat=n={num_inputs}:v=1:a=1[outv][outa]"


class FfmpegMediaTool(MediaTool):

    def __init__(self, ffmpeg_path: Optional[str] = None, timeout_seconds: int = 600):
        self._ffmpeg_path = ffmpeg_path
        self.timeout_seconds = timeout_seconds

    @property
    def ffmpeg(self) -> str:
        if self._ffmpeg_path is None:
            self._ffmpeg_path = get_ffmpeg_path() or "ffmpeg"
        return self._ffmpeg_path

    def _run(self, operation: str, cmd: List[str]) -> subprocess.CompletedProcess:
        logger.debug(f"Running {operation}: {' '.join(cmd)}")
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout_seconds)
        except FileNotFoundError as e:
            raise MediaToolError(operation, f"ffmpeg executable not found ({e})")
        except subprocess.TimeoutExpired:
            raise MediaToolError(operation, f"ffmpeg timed out after {self.timeout_seconds}s")

        if result.returncode != 0:
            logger.error(f"{operation} exited with code {result.returncode}")
            logger.error(f"FFmpeg stderr: {result.stderr}")
            raise MediaToolError(
                operation,
                f"ffmpeg exited with code {result.returncode}",
                returncode=result.returncode,
                stderr=result.stderr,
            )
        return result

    def extract_last_frame(self, video_path: str, output_path: str) -> None:
        # -sseof is reliable across codecs, frame-count based seeking is not
        cmd = [
            self.ffmpeg, '-y',
            '-sseof', f'-{LAST_FRAME_OFFSET_SECONDS}',
            '-i', video_path,
            '-vframes', '1',
            '-q:v', str(LAST_FRAME_JPEG_QUALITY),
            output_path,
        ]
        self._run("extract_last_frame", cmd)

    def concat_copy(self, list_file: str, output_path: str) -> None:
        cmd = [
            self.ffmpeg, '-y',
            '-f', 'concat',
            '-safe', '0',
            '-i', list_file,
            '-c', 'copy',
            output_path,
        ]
        self._run("concat_copy", cmd)

    def concat_reencode(self, video_paths: List[str], output_path: str) -> None:
        cmd = [self.ffmpeg, '-y']
        for path in video_paths:
            cmd.extend(['-i', path])
        cmd.extend([
            '-filter_complex', build_reencode_filter(len(video_paths)),
            '-map', '[outv]',
            '-map', '[outa]',
            '-r', str(REENCODE_FRAME_RATE),
            '-c:v', REENCODE_VIDEO_CODEC,
            '-preset', REENCODE_PRESET,
            '-crf', str(REENCODE_CRF),
            '-pix_fmt', REENCODE_PIXEL_FORMAT,
            '-c:a', REENCODE_AUDIO_CODEC,
            '-b:a', REENCODE_AUDIO_BITRATE,
            '-movflags', '+faststart',
            output_path,
        ])
        self._run("concat_reencode", cmd)
