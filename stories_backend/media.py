"""
Uploaded asset helpers: the ``Asset`` value and audio transcoding.
"""

from __future__ import annotations

import os
import subprocess
import tempfile
from dataclasses import dataclass
from typing import Optional

AAC_EXTENSION = ".m4a"
AAC_CONTENT_TYPE = "audio/mp4"


@dataclass(frozen=True)
class Asset:
    """An uploaded file already read into memory."""

    data: bytes
    filename: str = ""
    content_type: Optional[str] = None

    @property
    def extension(self) -> str:
        return os.path.splitext(self.filename)[1].lower()

    def __bool__(self) -> bool:
        return bool(self.data)


class AudioConversionError(RuntimeError):
    pass


def convert_to_aac(asset: Asset, *, timeout: float = 120.0) -> Asset:
    """Transcode ``asset`` to 128 kbit/s AAC in an MP4 container via ffmpeg."""
    with tempfile.TemporaryDirectory(prefix="stories-audio-") as workdir:
        src_path = os.path.join(workdir, "input" + (asset.extension or ".bin"))
        dest_path = os.path.join(workdir, "output" + AAC_EXTENSION)
        with open(src_path, "wb") as f:
            f.write(asset.data)

        command = [
            "ffmpeg", "-nostdin", "-y", "-i", src_path,
            "-vn", "-c:a", "aac", "-b:a", "128k", dest_path,
        ]
        try:
            subprocess.run(command, check=True, capture_output=True, timeout=timeout)
        except FileNotFoundError as exc:
            raise AudioConversionError("ffmpeg is not installed") from exc
        except subprocess.CalledProcessError as exc:
            stderr = exc.stderr.decode("utf-8", errors="replace")[-500:]
            raise AudioConversionError(f"ffmpeg failed: {stderr}") from exc
        except subprocess.TimeoutExpired as exc:
            raise AudioConversionError("ffmpeg timed out") from exc

        with open(dest_path, "rb") as f:
            converted = f.read()

    base = os.path.splitext(asset.filename)[0] or "audio"
    return Asset(data=converted, filename=base + AAC_EXTENSION, content_type=AAC_CONTENT_TYPE)
