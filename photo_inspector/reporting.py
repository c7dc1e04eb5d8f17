import csv
import logging
from pathlib import Path
from typing import List, Sequence

from .models import AestheticMatch, ExifField

FIELD_HEADERS = ["IFD", "Tag", "Value"]
MATCH_HEADERS = ["Path", "Score"]


def field_rows(fields: Sequence[ExifField]) -> List[List[str]]:
    return [[f.ifd, f.tag, f.value] for f in fields]


def match_rows(matches: Sequence[AestheticMatch]) -> List[List[str]]:
    # Three decimals, as the results table shows them
    return [[m.path, f"{m.score:.3f}"] for m in matches]


def format_table(headers: List[str], rows: List[List[str]]) -> str:
    """
    Renders rows as a left-aligned plain-text table.
    """
    widths = [len(h) for h in headers]
    for row in rows:
        for i, cell in enumerate(row):
            widths[i] = max(widths[i], len(cell))

    def render(cells):
        return "  ".join(cell.ljust(widths[i]) for i, cell in enumerate(cells)).rstrip()

    lines = [render(headers), render(["-" * w for w in widths])]
    lines.extend(render(row) for row in rows)
    return "\n".join(lines)


def write_csv(output_csv: Path, headers: List[str], rows: List[List[str]]) -> None:
    output_csv.parent.mkdir(parents=True, exist_ok=True)
    with open(output_csv, "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(headers)
        writer.writerows(rows)
    logging.info(f"Wrote {len(rows)} rows to {output_csv}")
