# -*- coding: utf-8 -*-

from __future__ import annotations

import argparse
import json
import os
import sys
import traceback
from pathlib import Path
from typing import Optional

from vpa.analysis_types import RunConfig

from .api import WordBatch
from .logconf import configure_logging
from .runner import llm_status
from .workspace import Workspace


def _print_json(obj) -> None:
    print(json.dumps(obj, ensure_ascii=False, indent=2))


def _read_text(path: str) -> str:
    if path == "-":
        return sys.stdin.read()
    with open(path, "r", encoding="utf-8", errors="replace") as f:
        return f.read()


def _print_progress(stage: str, done: int, total: int, detail: str) -> None:
    s = str(stage or "").strip()
    d = str(detail or "").replace("\n", " ").strip()
    if total > 0:
        pct = int(max(0.0, min(1.0, float(done) / float(total))) * 100)
        print(f"[{pct:3d}%] {s}: {d}")
    else:
        print(f"[---] {s}: {d}")


def _cmd_extract(args: argparse.Namespace) -> int:
    wb = WordBatch(data_dir=str(args.data_dir or ""))
    res = wb.extract(_read_text(str(args.file)), mode=str(args.mode))
    _print_json(res.to_dict())
    return 0


def _cmd_analyze(args: argparse.Namespace) -> int:
    cfg = RunConfig(
        batch_size=int(args.batch_size),
        max_concurrent_batches=int(args.max_concurrent),
        retry_failed_words=bool(args.retry),
        max_retries=int(args.max_retries),
        timeout_per_batch_seconds=float(args.timeout),
        extraction_mode=str(args.mode),
    ).validate()
    wb = WordBatch(data_dir=str(args.data_dir or ""))
    text = _read_text(str(args.file))

    handle = wb.start(text, cfg)
    last_line = ""
    try:
        while not handle.done:
            snap = wb.get_progress()
            if snap.analysis is not None:
                a = snap.analysis
                line = (snap.overall_status, a.completed_words + a.failed_words, a.total_words, snap.current_step)
            elif snap.extraction is not None:
                e = snap.extraction
                line = (snap.overall_status, e.extracted_words, e.total_words, snap.current_step)
            else:
                line = (snap.overall_status, 0, 0, snap.current_step)
            if repr(line) != last_line:
                _print_progress(*line)
                last_line = repr(line)
            handle.wait(float(args.poll_s))
    except KeyboardInterrupt:
        print("Canceling (in-flight batches will finish)...")
        wb.cancel()
        handle.wait()

    if handle.error is not None:
        raise handle.error
    res = handle.result
    if res is None:
        return 1
    print("")
    if args.json:
        _print_json(res.to_dict())
    else:
        print(f"completed: {res.completed_words}/{res.total_words}  failed: {res.failed_words}  pending: {res.pending_words}")
        for w in res.words:
            print(f"  {w.word:<20} {w.ipa:<18} {w.syllables:<18} {w.chinese_translation}")
        snap = wb.get_progress()
        for ws in snap.word_statuses.values():
            if ws.status == "failed":
                print(f"  ! {ws.word}: {ws.error}")
    if res.error:
        print(f"Error: {res.error}")
        return 1
    return 0


def _cmd_llm_status(args: argparse.Namespace) -> int:
    ws = Workspace(Path(args.data_dir)) if str(args.data_dir or "").strip() else Workspace.from_env()
    st = llm_status(ws)
    _print_json(st)
    return 0 if st.get("api_key_present") else 2


def build_parser() -> argparse.ArgumentParser:
    d = RunConfig()
    ap = argparse.ArgumentParser(prog="wordbatch", description="Batch vocabulary (phonics) analysis CLI.")
    ap.add_argument("--data-dir", default="", help="Data dir (default: $WORDBATCH_DATA_DIR or ~/.wordbatch)")
    ap.add_argument("--log-file", default="", help="Also write logs to this file")
    ap.add_argument("--log-level", default="WARNING", help="Log level for wordbatch loggers")
    sub = ap.add_subparsers(dest="cmd", required=True)

    sp_ex = sub.add_parser("extract", help="Extract candidate words (no provider call).")
    sp_ex.add_argument("file", help="Text file path, or - for stdin")
    sp_ex.add_argument("--mode", default=d.extraction_mode, choices=["focus", "all"])
    sp_ex.set_defaults(func=_cmd_extract)

    sp_an = sub.add_parser("analyze", help="Extract words and analyze them in batches.")
    sp_an.add_argument("file", help="Text file path, or - for stdin")
    sp_an.add_argument("--mode", default=d.extraction_mode, choices=["focus", "all"])
    sp_an.add_argument("--batch-size", type=int, default=d.batch_size, help="Words per batch (5-20)")
    sp_an.add_argument("--max-concurrent", type=int, default=d.max_concurrent_batches, help="Batches in flight (1-5)")
    sp_an.add_argument("--max-retries", type=int, default=d.max_retries)
    sp_an.add_argument("--retry", action="store_true", default=d.retry_failed_words)
    sp_an.add_argument("--no-retry", dest="retry", action="store_false")
    sp_an.add_argument("--timeout", type=float, default=d.timeout_per_batch_seconds, help="Seconds per batch")
    sp_an.add_argument("--poll-s", type=float, default=0.5, dest="poll_s")
    sp_an.add_argument("--json", action="store_true", help="Print the full result as JSON")
    sp_an.set_defaults(func=_cmd_analyze)

    sp_llm = sub.add_parser("llm-status", help="Show the resolved LLM API config (key masked).")
    sp_llm.set_defaults(func=_cmd_llm_status)

    return ap


def main(argv: Optional[list] = None) -> int:
    ap = build_parser()
    args = ap.parse_args(argv)
    fn = getattr(args, "func", None)
    if fn is None:
        ap.print_help()
        return 2
    log_path = Path(str(args.log_file)).expanduser() if str(args.log_file or "").strip() else None
    configure_logging(log_path, level=str(args.log_level or "WARNING"))
    try:
        return int(fn(args) or 0)
    except KeyboardInterrupt:
        print("Canceled.")
        return 130
    except Exception as e:
        msg = str(e or "").strip() or e.__class__.__name__
        print(f"Error: {msg}")
        if (os.environ.get("WORDBATCH_DEBUG", "") or "").strip():
            traceback.print_exc()
        return 1


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main(sys.argv[1:]))
