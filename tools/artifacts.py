#!/usr/bin/env python3
"""
CLI to (re)generate thumbnails for every uploaded video without running the server.

Artifacts covered:
- slate SVG (placeholder cover, themed)
- extracted frame JPG (needs ffmpeg)

Usage:
    python tools/artifacts.py \
        --root /path/to/uploads \
        [--what all|slate|frame] [--theme midnight|chalk|paper] \
        [--force] [--concurrency 4]

Notes:
- Respects UPLOAD_DIR if set; --root overrides.
- Titles come from the upload directory's metadata.json, like the server.
- Without --force only missing (or empty) artifacts are written.
"""

from __future__ import annotations

import argparse
import concurrent.futures as cf
import importlib
import os
import sys
from pathlib import Path


def import_app_module():
    """
    Import the top-level app.py regardless of current working directory.

    Running `python tools/artifacts.py` puts tools/ on sys.path[0], so the
    project root has to be added before `app` can be imported.
    """
    root = Path(__file__).resolve().parents[1]
    sroot = str(root)
    if sroot not in sys.path:
        sys.path.insert(0, sroot)
    return importlib.import_module("app")


def find_videos(m, base: Path) -> list[str]:
    """Ids of every source video in base, using the server's own filter."""
    return sorted((p.name for p in base.iterdir() if m._is_video_file(p)), key=str.lower)


def task_slate(m, vid: str, theme: str, force: bool) -> bool:
    out = m.artifact_path(vid, "slate")
    if not force and m._file_nonempty(out):
        return False
    title = m.sidecar.title_for(m.sidecar.load(), vid)
    m.write_slate(vid, title, theme)
    return True


def task_frame(m, vid: str, force: bool) -> bool:
    out = m.artifact_path(vid, "frame")
    if not force and m._file_nonempty(out):
        return False
    return m.extract_frame(vid)


def main(argv: list[str]) -> int:
    ap = argparse.ArgumentParser(description="Generate video thumbnails without running the server")
    ap.add_argument("--root", default=os.environ.get("UPLOAD_DIR", "uploads"), help="Upload directory")
    ap.add_argument("--what", default="all", choices=["all", "slate", "frame"], help="Which artifact(s) to generate")
    ap.add_argument("--theme", default=None, help="Slate theme (default: SLATE_THEME or midnight)")
    ap.add_argument("--force", action="store_true", help="Overwrite artifacts that already exist")
    ap.add_argument("--concurrency", type=int, default=int(os.environ.get("FRAME_WORKERS", "4")), help="Max parallel workers")
    args = ap.parse_args(argv)

    root = Path(args.root).expanduser().resolve()
    if not root.exists() or not root.is_dir():
        print(f"[cli] Root not found or not a dir: {root}", file=sys.stderr)
        return 2

    os.environ["UPLOAD_DIR"] = str(root)
    m = import_app_module()
    if Path(m.STATE["root"]) != root:
        # app was imported earlier against another directory
        m.STATE["root"] = root
        m.sidecar.configure(root / m.sidecar.META_FILENAME)

    videos = find_videos(m, root)
    if not videos:
        print(f"[cli] No video files found (extensions: {','.join(sorted(m.MEDIA_EXTS))}).")
        return 0

    theme = m.slates.normalize_theme(args.theme) if args.theme else m._upload_theme()
    source = m.STATE.get("frame_source")
    if args.what in ("all", "frame") and getattr(source, "name", "") == "unavailable":
        print("[cli] ffmpeg not found; frames will be skipped and slates kept.", file=sys.stderr)

    def run_job(vid: str) -> tuple[str, list[str]]:
        done: list[str] = []
        if args.what in ("all", "slate") and task_slate(m, vid, theme, args.force):
            done.append("slate")
        if args.what in ("all", "frame") and task_frame(m, vid, args.force):
            done.append("frame")
        return vid, done

    workers = max(1, int(args.concurrency))
    print(f"[cli] Processing {len(videos)} video(s) with concurrency={workers}")
    failures = 0
    with cf.ThreadPoolExecutor(max_workers=workers) as ex:
        for fut in cf.as_completed([ex.submit(run_job, v) for v in videos]):
            try:
                vid, done = fut.result()
            except Exception as e:
                failures += 1
                print(f"[cli] error: {e}", file=sys.stderr)
                continue
            print(f"[cli] {vid}: {', '.join(done) if done else 'up to date'}")
    if failures:
        print(f"[cli] {failures} video(s) failed", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
