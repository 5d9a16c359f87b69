"""
Audio assembly: stitching synthesized segments into one file, probing its
duration and encoding the result as a self-contained data URI.

Every scratch file created here (segments, probe inputs and the merge output)
is registered before it is written and removed in a `finally` block, so no
exit path leaves files behind.
"""

import asyncio
import base64
import logging
import os
import secrets
import uuid
from pathlib import Path
from typing import List, Optional, Protocol, Sequence

from podcastgen.core.errors import AssemblyError

logger = logging.getLogger(__name__)


class AudioTools(Protocol):
    async def merge(self, files: Sequence[str], output: str) -> None: ...

    async def probe(self, file: str) -> Optional[float]: ...


class FfmpegTools:
    """`ffmpeg`/`ffprobe` invoked as asynchronous subprocesses."""

    def __init__(self, ffmpeg_binary: str = "ffmpeg", ffprobe_binary: str = "ffprobe"):
        self.ffmpeg_binary = ffmpeg_binary
        self.ffprobe_binary = ffprobe_binary

    async def _run(self, *args: str):
        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise AssemblyError(f"{args[0]} not found. Please install it.") from e
        stdout, stderr = await process.communicate()
        return process.returncode, stdout.decode(errors="replace"), stderr.decode(errors="replace")

    async def merge(self, files: Sequence[str], output: str) -> None:
        """Concatenate `files` in order into `output` using the concat filter."""
        if not files:
            raise AssemblyError("ffmpeg merge requires at least one input file.")
        args: List[str] = [self.ffmpeg_binary, "-y", "-hide_banner", "-loglevel", "error"]
        for file in files:
            args += ["-i", file]
        streams = "".join(f"[{i}:a]" for i in range(len(files)))
        args += ["-filter_complex", f"{streams}concat=n={len(files)}:v=0:a=1[out]", "-map", "[out]", output]

        logger.info(f"FfmpegTools: ffmpeg merge process started for {len(files)} inputs -> {output}")
        returncode, _, stderr = await self._run(*args)
        if returncode != 0:
            logger.error(f"FfmpegTools: ffmpeg merge failed (exit {returncode}): {stderr.strip()}")
            raise AssemblyError(f"ffmpeg merge failed (exit {returncode}): {stderr.strip()}")
        logger.info("FfmpegTools: ffmpeg merge finished successfully.")

    async def probe(self, file: str) -> Optional[float]:
        """Return the duration of `file` in seconds, or None if ffprobe reports none."""
        returncode, stdout, stderr = await self._run(
            self.ffprobe_binary,
            "-v", "error",
            "-show_entries", "format=duration",
            "-of", "default=noprint_wrappers=1:nokey=1",
            file,
        )
        if returncode != 0:
            raise AssemblyError(f"ffprobe failed (exit {returncode}): {stderr.strip()}")
        try:
            return float(stdout.strip())
        except ValueError:
            return None


def round_half_up(value: float) -> int:
    return int(value + 0.5) if value >= 0 else -int(-value + 0.5)


class AudioAssembler:
    """
    Stitches, probes and encodes audio for one pipeline run.

    Args:
        tools: merge/probe implementation (`FfmpegTools` in production).
        scratch_dir: directory for temporary files.
        audio_format: container/extension of every buffer handled here.
    """

    def __init__(self, tools: AudioTools, scratch_dir: str, audio_format: str = "mp3"):
        self.tools = tools
        self.scratch_dir = Path(scratch_dir)
        self.audio_format = audio_format

    def _scratch_path(self, name: str) -> Path:
        return self.scratch_dir / f"{name}.{self.audio_format}"

    async def stitch(self, buffers: Sequence[Optional[bytes]], job_id: str) -> bytes:
        """
        Merge the non-null `buffers`, in order, into a single audio buffer.

        Raises:
            AssemblyError: if no valid buffers are given or the merge fails.
        """
        valid = [b for b in buffers if b]
        if not valid:
            logger.error(f"AudioAssembler: No valid audio buffers provided for stitching (job {job_id}).")
            raise AssemblyError("Cannot stitch audio: No valid audio buffers available.")
        logger.info(f"AudioAssembler: Stitching {len(valid)} audio segments for job {job_id}.")

        scratch: List[Path] = []
        try:
            segment_paths = []
            for i, buffer in enumerate(valid):
                path = self._scratch_path(f"audio-{job_id}-segment-{i}-{secrets.token_hex(4)}")
                scratch.append(path)
                await asyncio.to_thread(path.write_bytes, buffer)
                segment_paths.append(str(path))
                logger.debug(f"AudioAssembler: Written temporary audio file: {path}")

            output_path = self._scratch_path(f"audio-{job_id}-final-{secrets.token_hex(4)}")
            scratch.append(output_path)
            await self.tools.merge(segment_paths, str(output_path))

            try:
                merged = await asyncio.to_thread(output_path.read_bytes)
            except OSError as e:
                raise AssemblyError(f"Could not read merged audio for job {job_id}: {e}") from e
            logger.info(f"AudioAssembler: Read final merged audio file ({len(merged)} bytes) for job {job_id}.")
            return merged
        except AssemblyError:
            logger.error(f"AudioAssembler: Audio stitching process failed for job {job_id}.")
            raise
        except OSError as e:
            logger.error(f"AudioAssembler: Audio stitching process failed for job {job_id}: {e}")
            raise AssemblyError(f"Audio stitching failed for job {job_id}: {e}") from e
        finally:
            await self._cleanup(scratch)

    async def duration(self, buffer: bytes) -> int:
        """Probe `buffer` and return its rounded duration in seconds, or 0 on any failure."""
        path = self._scratch_path(f"duration-probe-{uuid.uuid4()}")
        try:
            await asyncio.to_thread(path.write_bytes, buffer)
            seconds = await self.tools.probe(str(path))
            if seconds is None:
                logger.warning("AudioAssembler: Could not find duration in ffprobe output.")
                return 0
            logger.info(f"AudioAssembler: Got duration from ffprobe: {seconds} seconds.")
            return round_half_up(seconds)
        except Exception as e:
            logger.warning(f"AudioAssembler: ffprobe failed to get audio duration: {e}")
            return 0
        finally:
            await self._cleanup([path])

    def encode(self, buffer: bytes) -> str:
        """Encode `buffer` as a base64 data URI."""
        data_uri = f"data:audio/{self.audio_format};base64,{base64.b64encode(buffer).decode('ascii')}"
        logger.info(f"AudioAssembler: Encoded audio buffer to base64 data URI (length: {len(data_uri)}).")
        return data_uri

    async def _cleanup(self, paths: Sequence[Path]) -> None:
        if not paths:
            return
        logger.debug(f"AudioAssembler: Cleaning up {len(paths)} temporary audio files.")
        for path in paths:
            try:
                await asyncio.to_thread(os.remove, path)
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.error(f"AudioAssembler: Failed to delete temporary audio file {path}: {e}")
