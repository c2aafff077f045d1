"""Media transcoding for Trellis.

Implements the Transcoder protocol. Images are re-encoded (and shrunk when
both oversized and heavy) with Pillow; videos are re-encoded with the
ffmpeg command line tool when it is installed.

Key classes:
- MediaOptions: Optimization settings of the ``[media]`` namespace.
- MediaTranscoder: Pillow and ffmpeg backed transcoder.

Key functions:
- find_executable: Locate an executable in PATH.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
import tempfile
from dataclasses import dataclass
from io import BytesIO
from pathlib import Path, PurePosixPath

from PIL import Image

from .errors import TrellisError

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = {".png", ".jpg", ".jpeg", ".webp"}
VIDEO_EXTENSIONS = {".mp4", ".webm"}

# Encoder arguments per output container.
VIDEO_CODECS = {
    ".mp4": ["-c:v", "libx264", "-preset", "slow", "-c:a", "aac", "-movflags", "+faststart"],
    ".webm": ["-c:v", "libvpx-vp9", "-b:v", "0", "-c:a", "libopus"],
}


class TranscodeError(TrellisError):
    """Raised when a media file cannot be transcoded."""


@dataclass
class MediaOptions:
    """Options of the ``[media]`` namespace.

    Attributes:
        optimize_images: Re-encode images.
        image_quality: Encoder quality for lossy formats, 1 to 100.
        max_width: Images wider than this are scaled down.
        max_height: Images taller than this are scaled down.
        resize_threshold_bytes: Only images larger than this are scaled.
        optimize_videos: Re-encode videos with ffmpeg.
        video_crf: Constant rate factor passed to ffmpeg.
    """

    optimize_images: bool = True
    image_quality: int = 85
    max_width: int = 1920
    max_height: int = 1080
    resize_threshold_bytes: int = 1_000_000
    optimize_videos: bool = True
    video_crf: int = 25


def find_executable(name: str) -> str | None:
    """Find an executable in PATH.

    Args:
        name: Name of the executable to find (e.g., 'ffmpeg').

    Returns:
        Full path to the executable if found, None otherwise.
    """
    return shutil.which(name)


class MediaTranscoder:
    """Optimizes images with Pillow and videos with ffmpeg.

    ``transcode`` returns None whenever the original bytes should be kept:
    the format is disabled in the options, no encoder is available, or the
    result would not be smaller.
    """

    def __init__(self, ffmpeg: str | None = None):
        self._ffmpeg = ffmpeg
        self._ffmpeg_missing_logged = False

    def can_transcode(self, name: str) -> bool:
        suffix = PurePosixPath(name).suffix.lower()
        return suffix in IMAGE_EXTENSIONS or suffix in VIDEO_EXTENSIONS

    def transcode(self, data: bytes, name: str, options: MediaOptions) -> bytes | None:
        """Optimize a media file.

        Args:
            data: Original file content.
            name: File name, used to pick the format.
            options: Optimization settings.

        Returns:
            The optimized content, or None to keep the original.

        Raises:
            TranscodeError: If the file cannot be decoded or encoded.
        """
        suffix = PurePosixPath(name).suffix.lower()
        if suffix in IMAGE_EXTENSIONS:
            if not options.optimize_images:
                return None
            return self._image(data, name, options)
        if suffix in VIDEO_EXTENSIONS:
            if not options.optimize_videos:
                return None
            return self._video(data, suffix, options)
        return None

    def _image(self, data: bytes, name: str, options: MediaOptions) -> bytes | None:
        try:
            with Image.open(BytesIO(data)) as img:
                image_format = img.format
                if getattr(img, "is_animated", False):
                    logger.debug("Keeping animated image %s unchanged", name)
                    return None
                exif = img.info.get("exif")
                resized = (
                    (img.width > options.max_width or img.height > options.max_height)
                    and len(data) > options.resize_threshold_bytes
                )
                if resized:
                    img.thumbnail((options.max_width, options.max_height), Image.Resampling.LANCZOS)
                output = BytesIO()
                save_options: dict = {"optimize": True}
                if image_format in ("JPEG", "WEBP"):
                    save_options["quality"] = options.image_quality
                if exif:
                    save_options["exif"] = exif
                img.save(output, format=image_format, **save_options)
        except (OSError, ValueError, Image.DecompressionBombError) as exc:
            raise TranscodeError(f"cannot optimize image {name}: {exc}") from exc
        result = output.getvalue()
        if not resized and len(result) >= len(data):
            return None
        logger.debug("Optimized %s: %d -> %d bytes", name, len(data), len(result))
        return result

    def _video(self, data: bytes, suffix: str, options: MediaOptions) -> bytes | None:
        ffmpeg = self._ffmpeg or find_executable("ffmpeg")
        if not ffmpeg:
            if not self._ffmpeg_missing_logged:
                logger.warning("ffmpeg not found; videos are copied unchanged")
                self._ffmpeg_missing_logged = True
            return None
        with tempfile.TemporaryDirectory(prefix="trellis-video-") as tmp:
            source = Path(tmp) / f"input{suffix}"
            dest = Path(tmp) / f"output{suffix}"
            source.write_bytes(data)
            cmd = [
                ffmpeg,
                "-y",
                "-loglevel",
                "error",
                "-i",
                str(source),
                *VIDEO_CODECS[suffix],
                "-crf",
                str(options.video_crf),
                str(dest),
            ]
            result = subprocess.run(cmd, capture_output=True, text=True)
            if result.returncode != 0:
                raise TranscodeError(f"ffmpeg failed: {result.stderr.strip()}")
            encoded = dest.read_bytes()
        if len(encoded) >= len(data):
            return None
        return encoded
