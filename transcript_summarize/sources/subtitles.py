"""Subtitle file (.srt / .vtt) to plain-text transcript conversion."""

import re
from dataclasses import dataclass
from pathlib import Path

from ..errors import DataError, StorageError

SUBTITLE_FORMATS = {".srt", ".vtt"}

_TIMESTAMP = re.compile(
    r"(?:(\d+):)?(\d{2}):(\d{2})[,.](\d{3})\s*-->\s*(?:(\d+):)?(\d{2}):(\d{2})[,.](\d{3})"
)

# Labels of the timed record format written by format_timed()
_RECORD_PREFIX = "Script: "
_RECORD_TIMES = ("Start Time:", "End Time:")


@dataclass
class Cue:
    """One subtitle entry."""

    start_ms: int
    end_ms: int
    text: str


def _to_ms(hours: str | None, minutes: str, seconds: str, millis: str) -> int:
    return ((int(hours or 0) * 60 + int(minutes)) * 60 + int(seconds)) * 1000 + int(millis)


def _clean_line(line: str) -> str:
    # Remove tags like <i> </i> <c> <00:00:00.000>
    clean = re.sub(r"<[^>]+>", "", line)
    # Remove sound labels like [Music] or (applause)
    clean = re.sub(r"\[[^\]]*\]|\([^)]*\)", "", clean)
    return clean.strip()


def parse_cues(content: str) -> list[Cue]:
    """
    Parse SRT or WebVTT content into cues.

    Index lines, cue identifiers, WEBVTT headers and NOTE blocks are skipped;
    only lines following a timestamp line (up to the next blank line) are text.
    """
    cues: list[Cue] = []
    current: Cue | None = None
    lines: list[str] = []

    def flush() -> None:
        if current is not None and lines:
            current.text = " ".join(lines)
            cues.append(current)

    for raw in content.splitlines():
        line = raw.strip()

        match = _TIMESTAMP.search(line)
        if match:
            flush()
            g = match.groups()
            current = Cue(start_ms=_to_ms(*g[0:4]), end_ms=_to_ms(*g[4:8]), text="")
            lines = []
            continue

        if not line:
            flush()
            current = None
            lines = []
            continue

        if current is None:
            continue

        clean = _clean_line(line)
        if clean:
            lines.append(clean)

    flush()
    return cues


def cues_to_text(cues: list[Cue]) -> str:
    """Join cue texts into one transcript, dropping consecutive repeats."""
    deduped: list[str] = []
    for cue in cues:
        if not deduped or deduped[-1] != cue.text:
            deduped.append(cue.text)
    return " ".join(deduped)


def format_timed(cues: list[Cue]) -> str:
    """Render cues as `Script:` / `Start Time:` / `End Time:` records."""
    return "".join(
        f"{_RECORD_PREFIX}{cue.text}\nStart Time: {cue.start_ms}\nEnd Time: {cue.end_ms}\n\n"
        for cue in cues
    )


def clean_transcript(text: str) -> str:
    """
    Strip timed-record labels from a transcript.

    Transcripts in the format written by format_timed() lose their
    `Start Time:` / `End Time:` lines and `Script:` prefixes; other text is
    returned unchanged.
    """
    lines = text.splitlines()
    if not any(line.startswith(_RECORD_PREFIX) for line in lines):
        return text

    kept = []
    for line in lines:
        line = line.strip()
        if line.startswith(_RECORD_TIMES):
            continue
        if line.startswith(_RECORD_PREFIX):
            line = line[len(_RECORD_PREFIX):]
        if line:
            kept.append(line)
    return " ".join(kept)


def extract_subtitles(path: Path, timed: bool = False) -> str:
    """
    Convert a subtitle file to transcript text.

    Args:
        path: Path to a .srt or .vtt file
        timed: Emit timed records instead of plain text

    Raises:
        StorageError: File cannot be read
        DataError: Unsupported extension or no cues found
    """
    path = Path(path)
    if path.suffix.lower() not in SUBTITLE_FORMATS:
        raise DataError(
            f"Unsupported subtitle format: {path.suffix}. "
            f"Supported: {', '.join(sorted(SUBTITLE_FORMATS))}"
        )

    try:
        content = path.read_text(encoding="utf-8-sig")
    except (OSError, UnicodeDecodeError) as e:
        raise StorageError(f"Cannot read subtitle file {path}: {e}") from e

    cues = parse_cues(content)
    if not cues:
        raise DataError(f"No subtitle cues found in {path}")

    return format_timed(cues) if timed else cues_to_text(cues)
