"""
Clip Extractor Service
FFmpeg-based extraction of a time window from the source game video
"""

import asyncio
import os
import shutil
import subprocess
from typing import List, Optional
from pathlib import Path
from dataclasses import dataclass

from ..config import Settings
from ..utils.exceptions import ExtractionTimeoutError, FFmpegError
from ..utils.logger import get_logger

logger = get_logger()


@dataclass
class ExtractionConfig:
    """Encoding profile for highlight clips"""
    resolution: str = "1280x720"
    video_bitrate: str = "2500k"
    audio_bitrate: str = "128k"
    codec: str = "libx264"
    audio_codec: str = "aac"
    audio_channels: int = 2
    preset: str = "fast"
    user_agent: str = "Mozilla/5.0 (compatible; StatJam/1.0)"


def format_offset(milliseconds: int) -> str:
    """FFmpeg seconds offset with millisecond precision"""
    return f"{milliseconds / 1000:.3f}"


class ClipExtractor:
    """Runs FFmpeg as a black box: source + window in, local MP4 out"""

    def __init__(
        self,
        temp_dir: str = "temp",
        ffmpeg_binary: str = "ffmpeg",
        timeout_seconds: float = 300,
        config: Optional[ExtractionConfig] = None
    ):
        self.temp_dir = Path(temp_dir)
        self.temp_dir.mkdir(parents=True, exist_ok=True)
        self.ffmpeg_binary = ffmpeg_binary
        self.timeout_seconds = timeout_seconds
        self.config = config or ExtractionConfig()

    @classmethod
    def from_settings(cls, settings: Settings) -> "ClipExtractor":
        return cls(
            temp_dir=settings.temp_dir,
            ffmpeg_binary=settings.ffmpeg_binary,
            timeout_seconds=settings.extraction_timeout_seconds,
            config=ExtractionConfig(
                resolution=settings.output_resolution,
                video_bitrate=settings.video_bitrate,
                audio_bitrate=settings.audio_bitrate,
                preset=settings.ffmpeg_preset,
            ),
        )

    def ffmpeg_available(self) -> bool:
        """Verify FFmpeg is available"""
        if shutil.which(self.ffmpeg_binary) is None:
            return False
        try:
            result = subprocess.run(
                [self.ffmpeg_binary, "-version"],
                capture_output=True,
                text=True,
                timeout=10
            )
        except (OSError, subprocess.TimeoutExpired):
            return False
        return result.returncode == 0

    def build_command(
        self,
        source_url: str,
        start_ms: int,
        end_ms: int,
        output_path: str
    ) -> List[str]:
        """FFmpeg command for one clip, seeking before the input for speed"""
        return [
            self.ffmpeg_binary, "-y",
            "-user_agent", self.config.user_agent,
            "-ss", format_offset(start_ms),
            "-i", source_url,
            "-t", format_offset(end_ms - start_ms),
            "-c:v", self.config.codec,
            "-s", self.config.resolution,
            "-b:v", self.config.video_bitrate,
            "-c:a", self.config.audio_codec,
            "-b:a", self.config.audio_bitrate,
            "-ac", str(self.config.audio_channels),
            "-preset", self.config.preset,
            "-movflags", "+faststart",
            "-pix_fmt", "yuv420p",
            output_path
        ]

    async def extract(
        self,
        source_url: str,
        start_ms: int,
        end_ms: int,
        output_filename: str
    ) -> str:
        """
        Cut [start_ms, end_ms] from the source into a local file.

        Args:
            source_url: Playable source video reference
            start_ms: Window start in milliseconds
            end_ms: Window end in milliseconds
            output_filename: Output filename (without path)

        Returns:
            Path to the extracted clip

        Raises:
            FFmpegError: FFmpeg missing, failed, or produced no output
            ExtractionTimeoutError: FFmpeg exceeded the timeout
        """
        output_path = str(self.temp_dir / output_filename)
        cmd = self.build_command(source_url, start_ms, end_ms, output_path)

        logger.info(
            f"Extracting clip: {format_offset(start_ms)}s - {format_offset(end_ms)}s "
            f"({(end_ms - start_ms) / 1000:.1f}s) -> {output_filename}"
        )

        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._run_ffmpeg, cmd)
            if not os.path.exists(output_path) or os.path.getsize(output_path) == 0:
                raise FFmpegError("FFmpeg produced no output", command=" ".join(cmd))
        except BaseException:
            self._discard(output_path)
            raise

        logger.info(f"Clip extracted: {output_path}")
        return output_path

    def _run_ffmpeg(self, cmd: List[str]):
        """Execute FFmpeg, killing it once the timeout passes"""
        command = " ".join(cmd)
        logger.debug(f"FFmpeg command: {command}")

        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.timeout_seconds
            )
        except subprocess.TimeoutExpired as exc:
            logger.error(f"FFmpeg timed out after {self.timeout_seconds}s")
            raise ExtractionTimeoutError(self.timeout_seconds, command=command) from exc
        except OSError as exc:
            logger.error(f"FFmpeg could not be started: {exc}")
            raise FFmpegError(f"FFmpeg could not be started: {exc}", command=command) from exc

        if result.returncode != 0:
            error_msg = "".join(result.stderr.splitlines(keepends=True)[-10:])
            logger.error(f"FFmpeg failed: {error_msg}")
            raise FFmpegError(
                f"FFmpeg exited with code {result.returncode}",
                command=command,
                stderr=result.stderr
            )

    def _discard(self, path: str):
        try:
            if os.path.exists(path):
                os.remove(path)
                logger.debug(f"Removed partial clip: {path}")
        except OSError as exc:
            logger.warning(f"Failed to remove partial clip {path}: {exc}")
