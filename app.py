from __future__ import annotations
import os
import re
import io
import time
import logging
import shutil
import subprocess
import concurrent.futures
import uuid
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Dict, List, Optional, Callable
from urllib.parse import quote

from pydantic import BaseModel
from PIL import Image, UnidentifiedImageError

from fastapi import FastAPI, APIRouter, HTTPException, Query, Body, Request, UploadFile, File
from fastapi.responses import JSONResponse, FileResponse
from fastapi.middleware.cors import CORSMiddleware

import sidecar
import slates

# -----------------------------
# Global state and env tunables
# -----------------------------
def _env_int(name: str, default: int) -> int:
    try:
        v = os.environ.get(name)
        return int(v) if v is not None and str(v).strip() != "" else int(default)
    except Exception:
        return int(default)

def _upload_dir_from_env() -> Path:
    return Path(os.environ.get("UPLOAD_DIR", "uploads")).expanduser().resolve()

STATE: Dict[str, Any] = {}
STATE["root"] = _upload_dir_from_env()
STATE["root"].mkdir(parents=True, exist_ok=True)
sidecar.configure(STATE["root"] / sidecar.META_FILENAME)

MAX_UPLOAD_BYTES = max(1, _env_int("MAX_UPLOAD_BYTES", 2 * 1024 * 1024 * 1024))
# Cover cap is always below the video cap
MAX_COVER_BYTES = max(1, min(_env_int("MAX_COVER_BYTES", 10 * 1024 * 1024), MAX_UPLOAD_BYTES - 1))

COVER_MIME_TYPES = {"image/jpeg", "image/png", "image/webp"}
_COVER_FORMATS = {"JPEG", "PNG", "WEBP"}

SUFFIX_COVER_JPG = ".cover.jpg"
SUFFIX_FRAME_JPG = ".jpg"
SUFFIX_SLATE_SVG = ".svg"
SUFFIX_PART = ".part"

# Thumbnail resolution order, highest priority first
ARTIFACT_RULES: tuple[tuple[str, str], ...] = (
    ("cover", SUFFIX_COVER_JPG),
    ("frame", SUFFIX_FRAME_JPG),
    ("slate", SUFFIX_SLATE_SVG),
)

# ------------------------------------------------------------
# Logging categories (coarse grained, opt-in / opt-out)
#   Set LOG_ALL=0 to disable all unless explicitly enabled.
#   Per-category env vars override: LOG_UPLOAD, LOG_FRAME, LOG_SLATE,
#   LOG_COVER, LOG_LIFECYCLE, LOG_META. Values: 1 enable, 0 disable.
# ------------------------------------------------------------
def _log_enabled(cat: str) -> bool:
    try:
        base = os.environ.get("LOG_ALL", "1")
        base_on = str(base).lower() not in ("0", "false", "no")
        specific = os.environ.get(f"LOG_{cat.upper()}")
        if specific is not None:
            return str(specific).lower() in ("1", "true", "yes")
        return base_on
    except Exception:
        return True

def _log(cat: str, msg: str) -> None:
    """Emit an application log line for a given category."""
    if not _log_enabled(cat):
        return
    logging.info("[%s] %s", cat, msg)

def _media_exts() -> set[str]:
    """
    Allowed video extensions (lowercased with dot).
    Configure via MEDIA_EXTS env (comma-separated).
    """
    env = os.environ.get("MEDIA_EXTS")
    if env:
        out: set[str] = set()
        for part in env.split(","):
            s = part.strip().lower()
            if not s:
                continue
            if not s.startswith("."):
                s = "." + s
            out.add(s)
        if out:
            return out
    return {".mp4", ".mov", ".webm", ".mkv", ".avi", ".m4v"}

MEDIA_EXTS = _media_exts()


class UploadTooLarge(Exception):
    pass


class CoverTooLarge(UploadTooLarge):
    pass


class UnsupportedCover(Exception):
    pass


class NotFound(FileNotFoundError):
    """The video (or the artifact asked for) does not exist. Maps to 404."""
    pass


# -----------------------------
# Paths and artifact naming
# -----------------------------
def _root() -> Path:
    root = Path(STATE.get("root") or _upload_dir_from_env())
    root.mkdir(parents=True, exist_ok=True)
    return root

def _video_path(video_id: str) -> Path:
    """Map an id to its source file. Ids are plain filenames inside the upload dir."""
    vid = str(video_id or "")
    if (not vid or vid in (".", "..") or "/" in vid or "\\" in vid or "\x00" in vid
            or vid.startswith(".") or vid == sidecar.META_FILENAME):
        raise ValueError(f"invalid video id: {video_id!r}")
    return _root() / vid

def _require_source(video_id: str) -> Path:
    p = _video_path(video_id)
    if p.suffix.lower() not in MEDIA_EXTS or not p.is_file():
        raise NotFound(video_id)
    return p

def artifact_path(video_id: str, kind: str) -> Path:
    for k, suffix in ARTIFACT_RULES:
        if k == kind:
            return _video_path(video_id).with_name(video_id + suffix)
    raise KeyError(kind)

def artifact_paths(video_id: str) -> list[Path]:
    return [artifact_path(video_id, k) for k, _ in ARTIFACT_RULES]

def _tmp_path(p: Path) -> Path:
    """Per-call hidden sibling used for write-then-rename; keeps the real suffix for ffmpeg."""
    return p.with_name(f".{p.name}.{uuid.uuid4().hex[:8]}.tmp{p.suffix}")

def _tmp_leftovers(p: Path) -> list[Path]:
    """Temp siblings of p left behind by interrupted writes."""
    pat = re.compile(r"\." + re.escape(p.name) + r"\.[0-9a-f]{8}\.tmp" + re.escape(p.suffix) + r"\Z")
    try:
        return [q for q in p.parent.iterdir() if pat.match(q.name)]
    except FileNotFoundError:
        return []

def _part_path(video_id: str) -> Path:
    return _video_path(video_id).with_name(f".{video_id}{SUFFIX_PART}")

def _cleanup_paths(video_id: str) -> list[Path]:
    """Every file that may exist for an id besides its source."""
    out = artifact_paths(video_id)
    for p in list(out):
        out.extend(_tmp_leftovers(p))
    out.append(_part_path(video_id))
    return out

def _file_nonempty(p: Path, min_size: int = 1) -> bool:
    """
    Return True if file exists and has at least min_size bytes (guards against zero-byte stubs).
    """
    try:
        return p.is_file() and p.stat().st_size >= int(min_size)
    except OSError:
        return False

def _discard(p: Path) -> None:
    try:
        p.unlink()
    except FileNotFoundError:
        pass
    except OSError as e:
        _log("lifecycle", f"discard fail path={p} err={e}")

def public_url(name: str) -> str:
    return f"/uploads/{quote(name, safe='')}"


# -----------------------------
# Asset resolution
# -----------------------------
def resolve_artifact(video_id: str) -> Optional[tuple[str, Path]]:
    """First (kind, path) in ARTIFACT_RULES order whose file is present and non-empty."""
    for kind, _suffix in ARTIFACT_RULES:
        p = artifact_path(video_id, kind)
        if _file_nonempty(p):
            return kind, p
    return None

def resolve(video_id: str) -> dict:
    hit = resolve_artifact(video_id)
    return {
        "url": public_url(video_id),
        "thumb": public_url(hit[1].name) if hit else None,
    }

def _is_video_file(p: Path) -> bool:
    try:
        # Rejects dot-files, the sidecar and names no id can take (backslash, NUL)
        _video_path(p.name)
    except ValueError:
        return False
    if p.suffix.lower() not in MEDIA_EXTS:
        return False
    return p.is_file()

def _uploaded_at_ms(st: os.stat_result) -> int:
    born = getattr(st, "st_birthtime", None)
    return int((born or st.st_ctime) * 1000)

def _video_item(p: Path, items: sidecar.Items) -> dict:
    st = p.stat()
    return {
        "id": p.name,
        "title": sidecar.title_for(items, p.name),
        **resolve(p.name),
        "size": st.st_size,
        "uploadedAt": _uploaded_at_ms(st),
    }

def list_videos() -> list[dict]:
    items = sidecar.load()
    out: list[dict] = []
    for p in _root().iterdir():
        if not _is_video_file(p):
            continue
        try:
            out.append(_video_item(p, items))
        except FileNotFoundError:
            # Deleted between listing and stat
            continue
    out.sort(key=lambda it: (-it["uploadedAt"], it["id"]))
    return out

def get_video(video_id: str) -> dict:
    src = _require_source(video_id)
    try:
        return _video_item(src, sidecar.load())
    except FileNotFoundError:
        raise NotFound(video_id)


# -----------------------------
# Frame extraction
# -----------------------------
class UnavailableFrameSource:
    """Frame source used when no decoder is installed; every attempt fails."""
    name = "unavailable"

    def extract(self, source: Path, out: Path) -> bool:
        return False


class FfmpegFrameSource:
    """Pull one frame a few seconds in and write it as a scaled JPEG."""
    name = "ffmpeg"

    def __init__(self, executable: str):
        self.executable = executable

    def command(self, source: Path, out: Path) -> list[str]:
        seek = max(0, _env_int("FRAME_SEEK_SECONDS", 3))
        width = max(16, _env_int("THUMBNAIL_WIDTH", 640))
        quality = max(2, min(31, _env_int("THUMBNAIL_QUALITY", 4)))
        return [
            self.executable, "-y",
            "-hide_banner", "-loglevel", "error",
            "-ss", str(seek),
            "-i", str(source),
            "-frames:v", "1",
            # Scale by width keeping aspect ratio; -2 keeps height even
            "-vf", f"scale={width}:-2",
            "-q:v", str(quality),
            str(out),
        ]

    def extract(self, source: Path, out: Path) -> bool:
        tmp = _tmp_path(out)
        cmd = self.command(source, tmp)
        tl = _env_int("FFMPEG_TIMELIMIT", 600)
        _log("frame", f"frame exec path={source} timelimit={tl}s cmd={' '.join(cmd)}")
        t0 = time.time()
        try:
            proc = subprocess.run(cmd, capture_output=True, text=True, timeout=tl if tl > 0 else None)
        except subprocess.TimeoutExpired:
            _log("frame", f"frame fail path={source} reason=timeout after={tl}s")
            _discard(tmp)
            return False
        except OSError as e:
            _log("frame", f"frame fail path={source} reason=exec err={e}")
            _discard(tmp)
            return False
        elapsed = time.time() - t0
        if proc.returncode != 0 or not _file_nonempty(tmp):
            err = (proc.stderr or "").strip()
            if len(err) > 600:
                err = err[:600] + "..."
            _log("frame", f"frame fail path={source} code={proc.returncode} elapsed={elapsed:.3f}s stderr={err!r}")
            _discard(tmp)
            return False
        try:
            tmp.replace(out)
        except OSError as e:
            _log("frame", f"frame fail path={source} reason=rename err={e}")
            _discard(tmp)
            return False
        _log("frame", f"frame end path={source} size={out.stat().st_size} elapsed={elapsed:.3f}s out={out}")
        return True


def _ffmpeg_executable() -> Optional[str]:
    cmd = os.environ.get("FFMPEG") or "ffmpeg"
    found = shutil.which(cmd)
    if found:
        return found
    if Path(cmd).is_file() and os.access(cmd, os.X_OK):
        return cmd
    return None

def ffmpeg_available() -> bool:
    return _ffmpeg_executable() is not None

def probe_frame_source():
    exe = _ffmpeg_executable()
    if exe:
        return FfmpegFrameSource(exe)
    return UnavailableFrameSource()

STATE["frame_source"] = probe_frame_source()

try:
    _CPU_CT = os.cpu_count() or 2
except Exception:
    _CPU_CT = 2

_FRAME_WORKERS = max(1, _env_int("FRAME_WORKERS", min(4, max(2, _CPU_CT))))
_FRAME_EXEC = concurrent.futures.ThreadPoolExecutor(
    max_workers=_FRAME_WORKERS,
    thread_name_prefix="frame-extract",
)

def _run_batch_items(items: list[str], fn: Callable[[str], None]) -> None:
    """Run per-item work on the shared bounded pool and wait for all of it."""
    if not items:
        return
    futs: list[concurrent.futures.Future] = []
    for it in items:
        try:
            futs.append(_FRAME_EXEC.submit(fn, it))
        except RuntimeError:
            # Executor shut down (interpreter exit); run inline
            fn(it)
    for fu in futs:
        try:
            fu.result()
        except Exception as e:
            _log("frame", f"batch item error err={e}")

def extract_frame(video_id: str) -> bool:
    source = STATE.get("frame_source") or UnavailableFrameSource()
    try:
        ok = bool(source.extract(_video_path(video_id), artifact_path(video_id, "frame")))
    except Exception as e:
        _log("frame", f"frame fail id={video_id} source={getattr(source, 'name', '?')} err={e}")
        ok = False
    if not ok:
        _log("frame", f"frame fallback id={video_id} using=slate")
    return ok

def extract_frames(video_ids: list[str]) -> int:
    """Fan out frame extraction and join; returns how many succeeded."""
    results: dict[str, bool] = {}

    def _one(vid: str) -> None:
        results[vid] = extract_frame(vid)

    _run_batch_items(list(video_ids), _one)
    return sum(1 for ok in results.values() if ok)


# -----------------------------
# Slates
# -----------------------------
def _slate_brand() -> str:
    return os.environ.get("SLATE_BRAND") or slates.DEFAULT_BRAND

def _upload_theme() -> str:
    return slates.normalize_theme(os.environ.get("SLATE_THEME"))

def write_slate(video_id: str, title: Optional[str], theme: Optional[str] = None) -> Path:
    out = artifact_path(video_id, "slate")
    t = slates.normalize_theme(theme) if theme else _upload_theme()
    slates.write_slate(out, title, t, brand=_slate_brand(), tmp=_tmp_path(out))
    _log("slate", f"slate written id={video_id} theme={t} out={out}")
    return out

def regenerate_slate(video_id: str, theme: Optional[str]) -> str:
    """Rewrite the slate from the current title. Write errors propagate."""
    _require_source(video_id)
    title = sidecar.title_for(sidecar.load(), video_id)
    out = write_slate(video_id, title, slates.normalize_theme(theme))
    return public_url(out.name)


# -----------------------------
# Uploads
# -----------------------------
_UNSAFE_NAME_RE = re.compile(r"[^\w.\-]+", re.ASCII)

def new_video_id(filename: str) -> str:
    """<epoch-ms>-<nonce>__<sanitized name>; the nonce separates same-ms duplicates."""
    safe = _UNSAFE_NAME_RE.sub("_", filename) or "video"
    return f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}__{safe}"

def default_title(filename: str) -> str:
    stem, dot, _ext = filename.rpartition(".")
    return stem if dot and stem else filename

def store_upload(upload: UploadFile, filename: str) -> str:
    """Stream one upload into place under a fresh id, enforcing MAX_UPLOAD_BYTES."""
    vid = new_video_id(filename)
    part = _part_path(vid)
    written = 0
    try:
        with part.open("wb") as out:
            while True:
                chunk = upload.file.read(1024 * 1024)
                if not chunk:
                    break
                written += len(chunk)
                if written > MAX_UPLOAD_BYTES:
                    raise UploadTooLarge(f"{filename} exceeds {MAX_UPLOAD_BYTES} bytes")
                out.write(chunk)
        part.replace(_video_path(vid))
    except BaseException:
        _discard(part)
        raise
    finally:
        try:
            upload.file.close()
        except Exception:
            pass
    _log("upload", f"upload stored id={vid} size={written}")
    return vid

def handle_uploads(files: List[UploadFile]) -> dict:
    accepted: list[tuple[str, str]] = []
    skipped: list[dict] = []
    for uf in files:
        original = Path(str(getattr(uf, "filename", "") or "").replace("\\", "/")).name
        if Path(original).suffix.lower() not in MEDIA_EXTS:
            skipped.append({"name": original, "reason": "unsupported file type"})
            _log("upload", f"upload skip name={original!r} reason=extension")
            continue
        try:
            vid = store_upload(uf, original)
        except UploadTooLarge:
            skipped.append({"name": original, "reason": "file too large"})
            _log("upload", f"upload skip name={original!r} reason=too_large limit={MAX_UPLOAD_BYTES}")
            continue
        except OSError as e:
            skipped.append({"name": original, "reason": "write failed"})
            _log("upload", f"upload skip name={original!r} reason=io err={e}")
            continue
        title = default_title(original)
        try:
            write_slate(vid, title)
        except OSError as e:
            _log("slate", f"slate fail id={vid} err={e}")
        accepted.append((vid, title))

    # Titles are persisted before any extraction starts
    if accepted:
        try:
            with sidecar.session() as items:
                for vid, title in accepted:
                    if not (items.get(vid) or {}).get("title"):
                        items[vid] = {"title": title}
        except OSError as e:
            _log("meta", f"metadata save fail count={len(accepted)} err={e}")

    ids = [vid for vid, _ in accepted]
    t0 = time.time()
    frames = extract_frames(ids)
    _log("upload", f"upload batch done count={len(ids)} frames={frames} skipped={len(skipped)} elapsed={time.time() - t0:.3f}s")
    return {"ok": True, "count": len(ids), "ids": ids, "skipped": skipped}


# -----------------------------
# Covers
# -----------------------------
def ingest_cover(video_id: str, data: bytes, mime: str) -> str:
    """Install a user image as <id>.cover.jpg (re-encoded JPEG). Overwrites any previous cover."""
    _require_source(video_id)
    mt = (mime or "").split(";", 1)[0].strip().lower()
    if mt not in COVER_MIME_TYPES:
        raise UnsupportedCover(f"unsupported cover type: {mt or 'unknown'}")
    if len(data) > MAX_COVER_BYTES:
        raise CoverTooLarge(f"cover exceeds {MAX_COVER_BYTES} bytes")
    try:
        with Image.open(io.BytesIO(data)) as img:
            if img.format not in _COVER_FORMATS:
                raise UnsupportedCover(f"unsupported image format: {img.format}")
            img.load()
            rgb = img.convert("RGB")
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
        raise UnsupportedCover(f"unreadable cover image: {e}") from e
    out = artifact_path(video_id, "cover")
    tmp = _tmp_path(out)
    try:
        rgb.save(tmp, format="JPEG", quality=90)
        tmp.replace(out)
    except OSError:
        _discard(tmp)
        raise
    if not _file_nonempty(out):
        raise OSError("Cover not saved")
    _log("cover", f"cover saved id={video_id} size={out.stat().st_size} src_type={mt}")
    return public_url(out.name)

def remove_cover(video_id: str) -> None:
    _require_source(video_id)
    out = artifact_path(video_id, "cover")
    try:
        out.unlink()
    except FileNotFoundError:
        raise NotFound(out.name)
    _log("cover", f"cover removed id={video_id}")


# -----------------------------
# Lifecycle
# -----------------------------
def rename_video(video_id: str, title: Any) -> str:
    clean = title.strip() if isinstance(title, str) else ""
    if not clean:
        raise ValueError("Title is required")
    _require_source(video_id)
    with sidecar.session() as items:
        entry = dict(items.get(video_id) or {})
        entry["title"] = clean
        items[video_id] = entry
    _log("lifecycle", f"rename id={video_id} title={clean!r}")
    return clean

def delete_video(video_id: str) -> int:
    """Remove the source (errors propagate), then artifacts and the title, best-effort."""
    src = _require_source(video_id)
    try:
        src.unlink()
    except FileNotFoundError:
        # Lost a race with another delete
        raise NotFound(video_id)
    removed = 0
    for p in _cleanup_paths(video_id):
        try:
            p.unlink()
            removed += 1
        except FileNotFoundError:
            continue
        except OSError as e:
            _log("lifecycle", f"delete artifact fail id={video_id} path={p} err={e}")
    try:
        with sidecar.session() as items:
            items.pop(video_id, None)
    except OSError as e:
        _log("meta", f"metadata cleanup fail id={video_id} err={e}")
    _log("lifecycle", f"delete id={video_id} artifacts_removed={removed}")
    return removed


# -----------------------------
# HTTP layer
# -----------------------------
def raise_api_error(message: str, status_code: int = 400, data=None):
    raise HTTPException(status_code=status_code, detail={"status": "error", "message": message, "data": data})


@asynccontextmanager
async def lifespan(app_obj: FastAPI):  # type: ignore[override]
    source = probe_frame_source()
    STATE["frame_source"] = source
    logging.info("[startup] UPLOAD_DIR=%s frame_source=%s", STATE.get("root"), getattr(source, "name", "none"))
    yield


app = FastAPI(title="Roniz Uploader", version="1.0", lifespan=lifespan)
api = APIRouter(prefix="/api")


def _cors_origins() -> list[str]:
    v = os.environ.get("CORS_ALLOW_ORIGINS")
    if not v or not v.strip():
        return ["*"]
    out = [part.strip() for part in v.split(",") if part.strip()]
    return out or ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    if isinstance(exc.detail, dict) and exc.detail.get("status") == "error":
        return JSONResponse(exc.detail, status_code=exc.status_code)
    return JSONResponse({"status": "error", "message": str(exc.detail)}, status_code=exc.status_code)


class TitleUpdate(BaseModel):  # type: ignore
    title: Optional[str] = None


@api.get("/health")
def health():
    source = STATE.get("frame_source")
    return {
        "ok": True,
        "time": time.time(),
        "root": str(STATE.get("root")),
        "ffmpeg": ffmpeg_available(),
        "frame_source": getattr(source, "name", None),
        "version": app.version,
        "pid": os.getpid(),
    }


@api.get("/config")
def config_info():
    try:
        from PIL import __version__ as pil_version
    except Exception:
        pil_version = None
    return {
        "root": str(STATE.get("root")),
        "media_exts": sorted(MEDIA_EXTS),
        "limits": {"upload_bytes": MAX_UPLOAD_BYTES, "cover_bytes": MAX_COVER_BYTES},
        "cover_types": sorted(COVER_MIME_TYPES),
        "slate": {"theme": _upload_theme(), "brand": _slate_brand(), "themes": sorted(slates.THEMES)},
        "frames": {
            "seek_seconds": _env_int("FRAME_SEEK_SECONDS", 3),
            "width": _env_int("THUMBNAIL_WIDTH", 640),
            "timelimit": _env_int("FFMPEG_TIMELIMIT", 600),
            "workers": _FRAME_WORKERS,
        },
        "deps": {"ffmpeg": ffmpeg_available(), "pillow": pil_version},
    }


@api.get("/themes")
def themes_list():
    return {"default": slates.DEFAULT_THEME, "themes": slates.THEMES}


@api.get("/videos")
def videos_list():
    return {"items": list_videos()}


@api.get("/videos/{video_id}")
def videos_get(video_id: str):
    try:
        return get_video(video_id)
    except ValueError as e:
        raise_api_error(str(e), status_code=400)
    except NotFound:
        raise_api_error("Not found", status_code=404)


@api.post("/upload")
def videos_upload(files: List[UploadFile] = File(..., description="Video files")):
    return handle_uploads(files)


@api.patch("/videos/{video_id}")
def videos_rename(video_id: str, payload: dict = Body(default_factory=dict)):
    try:
        upd = TitleUpdate(**payload)
    except Exception:
        raise_api_error("Title is required", status_code=400)
    try:
        rename_video(video_id, upd.title)
    except ValueError as e:
        raise_api_error(str(e), status_code=400)
    except NotFound:
        raise_api_error("Not found", status_code=404)
    return {"ok": True}


@api.delete("/videos/{video_id}")
def videos_delete(video_id: str):
    try:
        delete_video(video_id)
    except ValueError as e:
        raise_api_error(str(e), status_code=400)
    except NotFound:
        raise_api_error("Not found", status_code=404)
    return {"ok": True}


@api.post("/videos/{video_id}/slate")
def videos_slate(video_id: str, theme: str = Query(default=slates.DEFAULT_THEME)):
    try:
        url = regenerate_slate(video_id, theme)
    except ValueError as e:
        raise_api_error(str(e), status_code=400)
    except NotFound:
        raise_api_error("Not found", status_code=404)
    except OSError as e:
        _log("slate", f"slate regen fail id={video_id} err={e}")
        raise_api_error("Slate generation failed", status_code=500)
    return {"ok": True, "slate": url}


@api.post("/videos/{video_id}/cover")
def videos_cover(video_id: str, cover: UploadFile = File(..., description="Cover image")):
    try:
        data = cover.file.read(MAX_COVER_BYTES + 1)
    finally:
        try:
            cover.file.close()
        except Exception:
            pass
    try:
        url = ingest_cover(video_id, data, cover.content_type or "")
    except ValueError as e:
        raise_api_error(str(e), status_code=400)
    except NotFound:
        raise_api_error("Not found", status_code=404)
    except UnsupportedCover as e:
        raise_api_error(str(e), status_code=415)
    except CoverTooLarge as e:
        raise_api_error(str(e), status_code=413)
    except OSError as e:
        _log("cover", f"cover fail id={video_id} err={e}")
        raise_api_error("Cover not saved", status_code=500)
    return {"ok": True, "cover": url}


@api.delete("/videos/{video_id}/cover")
def videos_cover_delete(video_id: str):
    try:
        remove_cover(video_id)
    except ValueError as e:
        raise_api_error(str(e), status_code=400)
    except NotFound:
        raise_api_error("Not found", status_code=404)
    return {"ok": True}


app.include_router(api)


@app.get("/uploads/{name}")
def serve_upload(name: str):
    try:
        p = _video_path(name)
    except ValueError:
        raise_api_error("Not found", status_code=404)
    if not p.is_file():
        raise_api_error("Not found", status_code=404)
    resp = FileResponse(str(p))
    resp.headers["Cache-Control"] = "no-store, max-age=0"
    return resp


if __name__ == "__main__":
    # Require an explicit opt-in to start the server when running this file directly
    run_flag = os.environ.get("RUN_SERVER") or os.environ.get("RUN_STANDALONE")
    if str(run_flag).strip().lower() not in {"1", "true", "yes", "y"}:
        sys.stderr.write(
            "[app] Not starting server. To run directly, set RUN_SERVER=1 (or RUN_STANDALONE=1).\n"
        )
        sys.exit(0)
    try:
        import uvicorn  # type: ignore
    except Exception:
        sys.stderr.write("[app] Missing dependency: uvicorn. Install with: pip install uvicorn\n")
        sys.exit(1)
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    host = os.environ.get("HOST", "0.0.0.0")
    port = _env_int("PORT", 3000)
    uvicorn.run("app:app", host=host, port=port)
