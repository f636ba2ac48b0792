"""
FFmpeg discovery and startup checks for the chain media pipeline
"""
import os
import shutil
import subprocess
import logging
from functools import lru_cache

logger = logging.getLogger(__name__)

# Needed by the re-encode concat fallback
REQUIRED_ENCODERS = ("libx264", "aac")


@lru_cache(maxsize=1)
def get_ffmpeg_path():
    """FFMPEG_PATH from settings wins over a PATH lookup"""
    from app.config.settings import settings

    explicit = settings.FFMPEG_PATH
    if explicit:
        if os.path.exists(explicit):
            return explicit
        logger.warning(f"FFMPEG_PATH {explicit} does not exist, falling back to PATH")

    found = shutil.which("ffmpeg")
    if not found:
        logger.warning("FFmpeg not found in PATH")
    return found


def _run(ffmpeg_path, *args):
    return subprocess.run([ffmpeg_path, "-hide_banner", *args], capture_output=True, text=True, timeout=10)


def missing_encoders(encoder_listing: str):
    available = set()
    for line in encoder_listing.splitlines():
        parts = line.split()
        if len(parts) >= 2 and len(parts[0]) == 6:
            available.add(parts[1])
    return [name for name in REQUIRED_ENCODERS if name not in available]


def verify_ffmpeg():
    """Return (ok, message) after checking the binary runs and can re-encode segments"""
    ffmpeg_path = get_ffmpeg_path()
    if not ffmpeg_path:
        return False, "FFmpeg not found"

    try:
        version = _run(ffmpeg_path, "-version")
        if version.returncode != 0:
            return False, f"FFmpeg execution failed: {version.stderr.strip()}"
        encoders = _run(ffmpeg_path, "-encoders")
    except (OSError, subprocess.TimeoutExpired) as e:
        return False, f"FFmpeg verification error: {e}"

    version_line = version.stdout.split("\n")[0]
    missing = missing_encoders(encoders.stdout)
    if missing:
        return False, f"{version_line} is missing encoders: {', '.join(missing)}"
    return True, f"FFmpeg available: {version_line}"
