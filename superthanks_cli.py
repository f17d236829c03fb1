#!/usr/bin/env python3
"""CLI for scanning captured YouTube comment blocks for Super Thanks amounts."""

from __future__ import annotations

import argparse
import json
import sys
from datetime import datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import IO, Dict, List, Optional

from superthanks_logging import configure_logging, get_logger
from superthanks_parser import (
    CommentBlock,
    Finding,
    ScanState,
    VideoUrlError,
    build_report,
    canonical_watch_url,
    money_text,
)


logger = get_logger("superthanks.cli")


class CaptureError(RuntimeError):
    pass


def non_negative_decimal(raw: str) -> Decimal:
    try:
        value = Decimal(raw)
    except InvalidOperation:
        raise argparse.ArgumentTypeError(f"not a number: {raw!r}")
    if not value.is_finite() or value < 0:
        raise argparse.ArgumentTypeError(f"must be a non-negative number: {raw!r}")
    return value


def block_from_json(raw, context: str) -> CommentBlock:
    if isinstance(raw, str):
        return CommentBlock(text=raw)
    if not isinstance(raw, dict):
        raise CaptureError(f"Expected a block object or string at {context}")
    badge = raw.get("badge", False)
    if not isinstance(badge, bool):
        raise CaptureError(f"Field 'badge' must be true or false at {context}")
    content = raw.get("content")
    return CommentBlock(
        text=str(raw.get("text") or ""),
        author=str(raw.get("author") or ""),
        badge=badge,
        content=str(content) if content is not None else None,
    )


def load_capture(path: Path) -> List[List[CommentBlock]]:
    """Read a capture file into batches of blocks.

    The file holds a JSON array. Nested arrays are batches (one per scroll
    cycle); consecutive loose blocks at the top level form one batch. Batches
    keep the order they have in the file.
    """
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise CaptureError(f"Cannot read capture file {path}: {exc}") from exc
    except ValueError as exc:
        raise CaptureError(f"Invalid JSON in capture file {path}: {exc}") from exc
    if not isinstance(raw, list):
        raise CaptureError(f"Capture file {path} must contain a JSON array")

    batches: List[List[CommentBlock]] = []
    loose: List[CommentBlock] = []
    for idx, item in enumerate(raw):
        if isinstance(item, list):
            if loose:
                batches.append(loose)
                loose = []
            batches.append(
                [block_from_json(b, f"item {idx}, block {j}") for j, b in enumerate(item)]
            )
        else:
            loose.append(block_from_json(item, f"item {idx}"))
    if loose:
        batches.append(loose)
    return batches


def time_stamp(moment: Optional[datetime] = None) -> str:
    return (moment or datetime.now()).strftime("%Y%m%d-%H%M%S")


def output_path(prefix: str, video_id: str, moment: Optional[datetime] = None) -> Path:
    name = f"{prefix or 'super-thanks'}-{video_id}-{time_stamp(moment)}"
    if not name.lower().endswith(".json"):
        name += ".json"
    return Path(name)


def format_tr(amount: Decimal) -> str:
    """Turkish grouping with at most two fraction digits: ``2.199,99``."""
    text = f"{Decimal(money_text(amount)):,.2f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text.translate(str.maketrans({",": ".", ".": ","}))


def totals_line(totals: Dict[str, Decimal], prefix: str = "Totals") -> str:
    parts = [f"{currency}: {money_text(amount)}" for currency, amount in totals.items()]
    return f"{prefix}: {' | '.join(parts) or '—'}"


def print_new_findings(new: List[Finding], state: ScanState, out: IO[str]) -> None:
    for f in new:
        print(f"Found: {f.currency} {money_text(f.amount)} — {f.author} | {f.snippet}", file=out)
    if new:
        print(totals_line(state.snapshot_totals(), "Live totals"), file=out)


def print_summary(state: ScanState, json_path: Optional[Path], out: IO[str]) -> None:
    print("\n=== Summary / Analysis ===", file=out)
    totals = state.snapshot_totals()
    if not totals:
        print("Totals: none found.", file=out)
    for currency, amount in totals.items():
        print(f"{currency}: {format_tr(amount)}", file=out)
    print(f"Matched comments: {state.count}", file=out)
    if json_path is not None:
        print(f"JSON saved: {json_path}", file=out)


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Scan captured YouTube comment blocks for Super Thanks amounts."
    )
    parser.add_argument("url", help="YouTube video URL (watch, youtu.be, live or shorts)")
    parser.add_argument("blocks_path", type=Path, help="JSON capture of comment blocks")
    parser.add_argument(
        "-o", "--out", default="super-thanks", help="Output file prefix (may include directories)"
    )
    parser.add_argument(
        "--min",
        dest="min_amount",
        type=non_negative_decimal,
        default=Decimal("0"),
        help="Ignore amounts below this value",
    )
    parser.add_argument("--stdout", action="store_true", help="Print JSON instead of writing a file")
    parser.add_argument("--log-level", default=None, help="Logging level (default INFO)")
    args = parser.parse_args(argv)

    configure_logging(args.log_level)

    try:
        video_id, url = canonical_watch_url(args.url)
    except VideoUrlError as exc:
        print(f"ERROR: Invalid YouTube URL: {exc}", file=sys.stderr)
        return 1

    try:
        batches = load_capture(args.blocks_path)
    except CaptureError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1

    # Keep stdout clean for the JSON document when --stdout is set.
    console = sys.stderr if args.stdout else sys.stdout
    logger.info(
        "Scanning %d batch(es), %d block(s) for video %s",
        len(batches),
        sum(len(b) for b in batches),
        video_id,
    )

    print(">>> Scan started\n", file=console)
    state = ScanState(min_amount=args.min_amount)
    for batch in batches:
        print_new_findings(state.ingest_batch(batch), state, console)

    report = build_report(state, url, video_id)
    rendered = json.dumps(report, ensure_ascii=False, indent=2)

    if args.stdout:
        print(rendered)
        print_summary(state, None, console)
        return 0

    json_path = output_path(args.out, video_id)
    json_path.parent.mkdir(parents=True, exist_ok=True)
    json_path.write_text(rendered + "\n", encoding="utf-8")
    print_summary(state, json_path, console)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
