import logging
import os
from typing import Optional

from app.services.chain.errors import ContinuityExtractionFailed
from app.services.chain.media_tool import MediaTool, MediaToolError

logger = logging.getLogger(__name__)


class FrameExtractor:
    """Pulls the final still of a clip so the next segment can start from it"""

    def __init__(self, media_tool: MediaTool):
        self.media_tool = media_tool

    def extract_last_frame(self, video_path: str, output_path: Optional[str] = None) -> str:
        if output_path is None:
            output_path = f"{os.path.splitext(video_path)[0]}_last.jpg"

        if not os.path.exists(video_path) or os.path.getsize(video_path) == 0:
            raise ContinuityExtractionFailed(video_path, "video file is missing or empty")

        logger.info(f"Extracting last frame from {video_path} to {output_path}")
        try:
            self.media_tool.extract_last_frame(video_path, output_path)
        except MediaToolError as e:
            stderr_lines = e.stderr.strip().splitlines()
            reason = stderr_lines[-1] if stderr_lines else "decoder error"
            raise ContinuityExtractionFailed(video_path, reason, cause=e)

        # ffmpeg exits 0 without writing anything for zero-duration inputs
        if not os.path.exists(output_path) or os.path.getsize(output_path) == 0:
            raise ContinuityExtractionFailed(video_path, "no frame was decoded")

        return output_path
