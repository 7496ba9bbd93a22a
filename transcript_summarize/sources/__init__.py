"""Source modules for loading transcripts."""

from .local_file import LocalTranscriptResult, load_local_transcript
from .subtitles import (
    Cue,
    clean_transcript,
    cues_to_text,
    extract_subtitles,
    format_timed,
    parse_cues,
)

__all__ = [
    "Cue",
    "LocalTranscriptResult",
    "clean_transcript",
    "cues_to_text",
    "extract_subtitles",
    "format_timed",
    "load_local_transcript",
    "parse_cues",
]
