import io
import threading
from pathlib import Path

from PIL import Image


def write_video(root: Path, video_id: str = "1700000000000-0a1b2c3d__clip.mp4", data: bytes = b"0000") -> Path:
    root.mkdir(parents=True, exist_ok=True)
    p = root / video_id
    p.write_bytes(data)
    return p


def image_bytes(fmt: str = "PNG", size=(32, 18), color=(200, 40, 40)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color=color).save(buf, format=fmt)
    return buf.getvalue()


def video_files(*names: str, data: bytes = b"fake video bytes"):
    return [("files", (n, data, "video/mp4")) for n in names]


class FakeFrameSource:
    """Writes a small JPEG for every request and records what it was asked."""
    name = "fake"

    def __init__(self, ok: bool = True):
        self.ok = ok
        self.calls: list[tuple[Path, Path]] = []
        self._lock = threading.Lock()

    def extract(self, source: Path, out: Path) -> bool:
        with self._lock:
            self.calls.append((source, out))
        if not self.ok:
            return False
        out.write_bytes(image_bytes("JPEG"))
        return True


class RaisingFrameSource:
    name = "raising"

    def extract(self, source: Path, out: Path) -> bool:
        raise RuntimeError("decoder exploded")
