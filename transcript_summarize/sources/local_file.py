"""Local transcript loading."""

from dataclasses import dataclass
from pathlib import Path

from ..errors import DataError, StorageError
from .subtitles import SUBTITLE_FORMATS, clean_transcript, extract_subtitles

TEXT_FORMATS = {".txt"}


@dataclass
class LocalTranscriptResult:
    """Result of local file load."""

    text: str
    file_path: Path
    title: str
    method: str  # "file" | "subtitles"


def load_local_transcript(file_path: Path, title: str | None = None) -> LocalTranscriptResult:
    """
    Load a transcript from a .txt or subtitle file as plain text.

    Raises:
        StorageError: File doesn't exist or can't be read
        DataError: Unsupported file type
    """
    file_path = Path(file_path)
    if not file_path.exists():
        raise StorageError(f"File not found: {file_path}")

    suffix = file_path.suffix.lower()
    if suffix in SUBTITLE_FORMATS:
        text = extract_subtitles(file_path)
        method = "subtitles"
    elif suffix in TEXT_FORMATS:
        try:
            text = clean_transcript(file_path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError) as e:
            raise StorageError(f"Cannot read transcript {file_path}: {e}") from e
        method = "file"
    else:
        supported = ", ".join(sorted(TEXT_FORMATS | SUBTITLE_FORMATS))
        raise DataError(f"Expected one of {supported}, got: {file_path.suffix or 'no extension'}")

    return LocalTranscriptResult(
        text=text,
        file_path=file_path,
        title=title or file_path.stem,
        method=method,
    )
