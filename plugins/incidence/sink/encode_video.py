#!/usr/bin/env python3
"""
encode_video.py — Sink: numbered PNG frames → MP4.

- Frames are addressed by a printf pattern, e.g. dayPics/districts/districts_F-%04d.png
- Only frames [start .. end] are used, at a fixed frame rate
- The video is written under a temporary name and renamed when complete,
  so an existing output file is always a finished video
"""

from __future__ import annotations
import os
import subprocess
from abc import abstractmethod
from pathlib import Path
from typing import Iterable, List

import imageio.v2 as imageio
from imageio_ffmpeg import get_ffmpeg_exe

from mapvid.core.base import Context, Record, Sink
from mapvid.core.errors import RenderFailure


def _partial_path(output: Path) -> Path:
    return output.with_name(f".{output.stem}.{os.getpid()}.part{output.suffix}")


class VideoEncoder(Sink):
    """Encodes an ordered frame range into one video file."""

    @abstractmethod
    def encode(self, ctx: Context, pattern: str, start: int, end: int, frame_rate: int, output: Path) -> Path:
        raise NotImplementedError

    def run(self, ctx: Context, rows: Iterable[Record]) -> List[Path]:
        return [
            self.encode(ctx, r["pattern"], r["start"], r["end"], r["frame_rate"], Path(r["output"]))
            for r in rows
        ]


class FfmpegEncoder(VideoEncoder):
    """
    kw:
      ffmpeg: path to the ffmpeg binary (default: the one bundled with imageio-ffmpeg)
      codec: video codec (default libx264)
    """
    def encode(self, ctx: Context, pattern: str, start: int, end: int, frame_rate: int, output: Path) -> Path:
        ffmpeg = self.kw.get("ffmpeg") or get_ffmpeg_exe()
        output.parent.mkdir(parents=True, exist_ok=True)
        tmp = _partial_path(output)
        cmd = [
            ffmpeg,
            "-y",
            "-nostdin",
            "-framerate", str(frame_rate),
            "-start_number", str(start),
            "-i", str(pattern),
            "-frames:v", str(end - start + 1),
            "-c:v", self.kw.get("codec", "libx264"),
            "-pix_fmt", "yuv420p",
            str(tmp),
        ]
        ctx.log.debug(f"Running: {' '.join(cmd)}")
        proc = subprocess.run(cmd, capture_output=True, text=True)
        if proc.returncode != 0:
            tmp.unlink(missing_ok=True)
            ctx.log.error(f"ffmpeg stdout:\n{proc.stdout[-2000:]}")
            ctx.log.error(f"ffmpeg stderr:\n{proc.stderr[-2000:]}")
            raise RenderFailure(f"ffmpeg failed for {output} (exit {proc.returncode})", stderr=proc.stderr)
        os.replace(tmp, output)
        return output


class ImageioEncoder(VideoEncoder):
    """
    Same contract as FfmpegEncoder, driving ffmpeg through imageio's writer.

    kw:
      bitrate: optional target bitrate, e.g. "8M"
    """
    def encode(self, ctx: Context, pattern: str, start: int, end: int, frame_rate: int, output: Path) -> Path:
        output.parent.mkdir(parents=True, exist_ok=True)
        tmp = _partial_path(output)
        try:
            writer = imageio.get_writer(
                tmp,
                fps=frame_rate,
                codec="libx264",
                bitrate=self.kw.get("bitrate"),
                ffmpeg_log_level="error",
                output_params=["-pix_fmt", "yuv420p"],
            )
            try:
                for index in range(start, end + 1):
                    writer.append_data(imageio.imread(str(pattern) % index))
            finally:
                writer.close()
        except Exception as e:
            tmp.unlink(missing_ok=True)
            raise RenderFailure(f"imageio failed for {output}: {e}") from e
        os.replace(tmp, output)
        return output
