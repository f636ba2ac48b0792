import logging
import os
import shutil
from typing import List, Optional

from app.config.constants import CODEC_MISMATCH_MARKERS, CONCAT_LIST_FILENAME, FINAL_VIDEO_FILENAME
from app.services.chain.errors import ConcatenationFailed
from app.services.chain.media_tool import MediaTool, MediaToolError, build_concat_list

logger = logging.getLogger(__name__)


def is_codec_mismatch(stderr: str) -> bool:
    return any(marker in stderr for marker in CODEC_MISMATCH_MARKERS)


class Concatenator:
    """Joins segment clips in order.

    Stream copy is tried first. Only a codec-mismatch failure falls back to a
    single re-encode pass; every other failure is raised as-is so unrelated
    defects stay visible.
    """

    def __init__(self, media_tool: MediaTool):
        self.media_tool = media_tool

    def concat(self, video_paths: List[str], output_path: Optional[str] = None) -> str:
        if not video_paths:
            raise ConcatenationFailed("no video paths provided")

        if output_path is None:
            output_path = os.path.join(os.path.dirname(video_paths[0]), FINAL_VIDEO_FILENAME)

        if len(video_paths) == 1:
            try:
                shutil.copyfile(video_paths[0], output_path)
            except OSError as e:
                raise ConcatenationFailed(f"could not copy {video_paths[0]} to {output_path}", cause=e)
            logger.info(f"Single video, copied to {output_path}")
            return output_path

        logger.info(f"Concatenating {len(video_paths)} videos to {output_path}")
        list_file = os.path.join(os.path.dirname(output_path), CONCAT_LIST_FILENAME)
        try:
            with open(list_file, "w", encoding="utf-8") as f:
                f.write(build_concat_list(video_paths))
            self.media_tool.concat_copy(list_file, output_path)
        except MediaToolError as e:
            if not is_codec_mismatch(e.stderr):
                stderr_lines = e.stderr.strip().splitlines()
                reason = f"{e}: {stderr_lines[-1]}" if stderr_lines else str(e)
                raise ConcatenationFailed(reason, cause=e)
            logger.warning("Stream copy failed on codec mismatch, re-encoding instead")
            self._concat_reencode(video_paths, output_path)
        except OSError as e:
            raise ConcatenationFailed(f"could not write concat list {list_file}", cause=e)
        finally:
            try:
                os.remove(list_file)
            except FileNotFoundError:
                pass

        logger.info(f"Successfully concatenated {len(video_paths)} videos to {output_path}")
        return output_path

    def _concat_reencode(self, video_paths: List[str], output_path: str) -> None:
        try:
            self.media_tool.concat_reencode(video_paths, output_path)
        except MediaToolError as e:
            raise ConcatenationFailed(f"re-encode fallback failed: {e}", codec_mismatch=True, cause=e)
        logger.info("Successfully concatenated with re-encoding")
