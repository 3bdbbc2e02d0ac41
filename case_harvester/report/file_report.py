"""File based report supporting JSON lines, CSV and plain text."""

from __future__ import annotations

import csv
import json
import re
from datetime import datetime, timezone
from pathlib import Path

from ..engine.models import ResultRecord, Timeline
from .base import ReportAssembler

FIELDNAMES = (
    "kind",
    "title",
    "author",
    "occurred_at",
    "visibility",
    "recipients",
    "body_content",
    "source_locator",
    "error_message",
)
FORMATS = ("json", "csv", "txt")


class FileReportAssembler(ReportAssembler):
    """Write the ordered records, then the unparsed ones, to one file."""

    def __init__(self, output_dir: Path, label: str, fmt: str, run_tag: str | None = None) -> None:
        if fmt not in FORMATS:
            raise ValueError(f"Unsupported report format: {fmt}")
        self.output_dir = output_dir
        self.label = label
        self.format = fmt
        self.run_tag = run_tag or datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
        slug = re.sub(r"[^0-9A-Za-z_-]+", "_", label.strip()) or "harvest"
        self.path = self.output_dir / f"{slug}-{self.run_tag}.{self._extension}"

    @property
    def _extension(self) -> str:
        if self.format == "json":
            return "jsonl"
        return self.format

    def assemble(self, timeline: Timeline) -> Path:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        with self.path.open("w", encoding="utf-8", newline="") as stream:
            if self.format == "json":
                for record in timeline.ordered:
                    stream.write(json.dumps(self._row(record, parsed=True), ensure_ascii=False))
                    stream.write("\n")
                for record in timeline.unparsed:
                    stream.write(json.dumps(self._row(record, parsed=False), ensure_ascii=False))
                    stream.write("\n")
            elif self.format == "csv":
                writer = csv.DictWriter(stream, fieldnames=(*FIELDNAMES, "unparsed"))
                writer.writeheader()
                for record in timeline.ordered:
                    writer.writerow(self._row(record, parsed=True))
                for record in timeline.unparsed:
                    writer.writerow(self._row(record, parsed=False))
            else:
                index = 0
                for record in timeline.ordered:
                    index += 1
                    stream.write(self._format_txt(record, index))
                if timeline.unparsed:
                    stream.write("Entries without a usable date\n\n")
                for record in timeline.unparsed:
                    index += 1
                    stream.write(self._format_txt(record, index))
        return self.path

    @staticmethod
    def _row(record: ResultRecord, *, parsed: bool) -> dict[str, object]:
        row = record.as_dict()
        row["unparsed"] = not parsed
        return row

    @staticmethod
    def _format_txt(record: ResultRecord, index: int) -> str:
        marker = "[ERROR] " if record.is_error else ""
        lines = [f"{index}. {marker}{record.kind.value.upper()}: {record.title}"]
        when = record.occurred_at.strftime("%Y-%m-%d %H:%M UTC") if record.occurred_at else "unknown"
        lines.append(f"By: {record.author} | Date: {when}")
        if record.recipients:
            lines.append(f"To: {record.recipients}")
        if record.visibility is not None:
            lines.append(f"Visibility: {'public' if record.visibility else 'internal'}")
        body = record.body_content.strip()
        if body:
            lines.append(body)
        lines.append(f"Link: {record.source_locator}")
        # Separate records with a blank line
        return "\n".join(lines) + "\n\n"


__all__ = ["FileReportAssembler", "FORMATS"]
