"""Group the keywords of a CSV file and write the groups as JSON.

Status and progress lines go to stderr so stdout stays parseable JSON.
"""

from __future__ import annotations

import argparse
import asyncio
import csv
import json
import sys
from pathlib import Path

from keygroup import KeywordProcessor, KeywordRecord, Settings
from keygroup.enrichment import build_metadata_map
from keygroup.grouping import grouping_stats
from keygroup.processor import CompleteMessage, ErrorMessage, ProgressMessage


def load_rows(path: Path) -> list[dict[str, str]]:
    with path.open("r", encoding="utf-8-sig", newline="") as handle:
        return list(csv.DictReader(handle))


async def run(input_path: Path, output_path: Path | None, keyword_column: str, volume_column: str | None) -> int:
    settings = Settings.from_env()
    rows = load_rows(input_path)
    if rows and keyword_column not in rows[0]:
        print(f"[group] Column '{keyword_column}' not found in {input_path}", file=sys.stderr)
        return 1

    records = [
        KeywordRecord(keyword=str(row[keyword_column]).strip())
        for row in rows
        if str(row.get(keyword_column) or "").strip()
    ]
    meta = build_metadata_map(rows, keyword_column, volume_column)
    print(
        f"[group] Loaded {len(records)} keywords ({len(meta)} with search volume) from {input_path}.",
        file=sys.stderr,
    )

    def on_progress(message: ProgressMessage) -> None:
        print(f"[group] {message.progress:3d}% {message.message}", file=sys.stderr)

    processor = KeywordProcessor.from_settings(settings)
    response = await processor.process(records, meta, on_progress=on_progress)
    if isinstance(response, ErrorMessage):
        print(f"[group] Grouping failed: {response.error}", file=sys.stderr)
        return 1
    if not isinstance(response, CompleteMessage):
        print("[group] Grouping cancelled.", file=sys.stderr)
        return 1

    stats = grouping_stats(response.groups)
    payload = {
        "stats": stats.to_payload(),
        "groups": [group.to_payload() for group in response.groups],
    }
    text = json.dumps(payload, indent=2)
    if output_path is None:
        print(text)
    else:
        output_path.write_text(text, encoding="utf-8")
        print(f"[group] Wrote {stats.total_groups} groups to {output_path}.", file=sys.stderr)
    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("input", type=Path, help="CSV file with a keyword column")
    parser.add_argument("--output", type=Path, default=None, help="Write JSON here instead of stdout")
    parser.add_argument("--keyword-column", default="Keyword", help="Name of the keyword column")
    parser.add_argument(
        "--volume-column",
        default="Search Volume",
        help="Name of the search volume column (empty string to ignore volumes)",
    )
    args = parser.parse_args()
    sys.exit(
        asyncio.run(
            run(
                args.input,
                args.output,
                keyword_column=args.keyword_column,
                volume_column=args.volume_column or None,
            )
        )
    )
