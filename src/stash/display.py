"""Human-readable sizes, ages and entry summaries for CLI output."""

from __future__ import annotations

from datetime import datetime

from stash.models import Entry, EntryMetadata, utcnow

_UNITS = ("B", "KB", "MB", "GB", "TB")


def format_bytes(size: int) -> str:
    value = float(size)
    unit = 0
    while value >= 1024 and unit < len(_UNITS) - 1:
        value /= 1024
        unit += 1
    if unit == 0:
        return f"{size} B"
    return f"{value:.2f} {_UNITS[unit]}"


def humanize_age(created: datetime, now: datetime | None = None) -> str:
    seconds = int(((now or utcnow()) - created).total_seconds())
    for label, span in (("day", 86400), ("hour", 3600), ("minute", 60)):
        if seconds >= span:
            n = seconds // span
            return f"{n} {label}{'' if n == 1 else 's'} ago"
    return "just now"


def summary_line(meta: EntryMetadata) -> str:
    return (
        f"{meta.display_name()} [{str(meta.uuid)[:8]}] "
        f"({meta.item_count} files, {format_bytes(meta.total_size_bytes)}, "
        f"{humanize_age(meta.created)})"
    )


def entry_details(entry: Entry) -> str:
    lines = [
        f"Entry: {entry.display_name()}",
        f"UUID: {entry.uuid}",
        f"Created: {entry.created.astimezone():%Y-%m-%d %H:%M:%S}",
        f"Working directory: {entry.working_directory}",
        f"Mode: {entry.mode}",
        f"Total size: {format_bytes(entry.total_size_bytes)}",
        f"Files: {len(entry.items)}",
        "",
    ]
    for item in entry.items:
        lines.append(f"  [{item.kind:<9}] {item.original_path}")
    return "\n".join(lines)
