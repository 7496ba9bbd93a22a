"""Tests for transcript sources."""

from pathlib import Path

import pytest

from transcript_summarize.errors import DataError, StorageError
from transcript_summarize.sources import (
    Cue,
    clean_transcript,
    cues_to_text,
    extract_subtitles,
    format_timed,
    load_local_transcript,
    parse_cues,
)

SRT = """1
00:00:01,000 --> 00:00:04,500
Welcome to the show.

2
00:00:04,500 --> 00:00:07,250
<i>Today</i> we talk about [Music]
summarization.

3
01:02:03,004 --> 01:02:05,000
Thanks for listening.
"""

VTT = """WEBVTT
Kind: captions

NOTE this block is ignored
and so is this line

intro
00:01.000 --> 00:03.000 align:start
Hello <c>there</c>

00:03.000 --> 00:05.000
Hello <c>there</c>

00:05.000 --> 00:06.000
(laughs) General Kenobi
"""


class TestParseCues:
    """Tests for subtitle parsing."""

    def test_srt(self) -> None:
        cues = parse_cues(SRT)

        assert [c.text for c in cues] == [
            "Welcome to the show.",
            "Today we talk about summarization.",
            "Thanks for listening.",
        ]
        assert cues[0].start_ms == 1000
        assert cues[1].end_ms == 7250
        assert cues[2].start_ms == 3_723_004

    def test_vtt(self) -> None:
        cues = parse_cues(VTT)

        assert [c.text for c in cues] == ["Hello there", "Hello there", "General Kenobi"]
        assert cues[0].start_ms == 1000
        assert cues[2].end_ms == 6000

    def test_no_cues(self) -> None:
        assert parse_cues("just some text\nwith no timestamps\n") == []


class TestCueFormatting:
    """Tests for cue rendering."""

    def test_consecutive_repeats_dropped(self) -> None:
        assert cues_to_text(parse_cues(VTT)) == "Hello there General Kenobi"

    def test_timed_records(self) -> None:
        cues = [Cue(start_ms=0, end_ms=1500, text="Hi."), Cue(start_ms=1500, end_ms=2000, text="Bye.")]
        assert format_timed(cues) == (
            "Script: Hi.\nStart Time: 0\nEnd Time: 1500\n\n"
            "Script: Bye.\nStart Time: 1500\nEnd Time: 2000\n\n"
        )


class TestCleanTranscript:
    """Tests for timed-record cleanup."""

    def test_strips_record_labels(self) -> None:
        timed = "Script: Hi there.\nStart Time: 0\nEnd Time: 1500\n\nScript: Bye.\nStart Time: 1500\n"
        assert clean_transcript(timed) == "Hi there. Bye."

    def test_plain_text_unchanged(self) -> None:
        text = "Plain transcript.\n\nSecond paragraph.\n"
        assert clean_transcript(text) == text

    def test_round_trip_from_cues(self) -> None:
        assert clean_transcript(format_timed(parse_cues(SRT))) == cues_to_text(parse_cues(SRT))


class TestExtractSubtitles:
    """Tests for subtitle file extraction."""

    def test_srt_file(self, tmp_path: Path) -> None:
        path = tmp_path / "talk.srt"
        path.write_text(SRT, encoding="utf-8")

        text = extract_subtitles(path)
        assert text.startswith("Welcome to the show. Today we talk")

    def test_byte_order_mark(self, tmp_path: Path) -> None:
        path = tmp_path / "talk.srt"
        path.write_text("\ufeff" + SRT, encoding="utf-8")

        assert not extract_subtitles(path).startswith("\ufeff")

    def test_timed(self, tmp_path: Path) -> None:
        path = tmp_path / "talk.vtt"
        path.write_text(VTT, encoding="utf-8")

        assert extract_subtitles(path, timed=True).startswith("Script: Hello there\nStart Time: 1000\n")

    def test_unsupported_extension(self, tmp_path: Path) -> None:
        path = tmp_path / "talk.ass"
        path.write_text(SRT)

        with pytest.raises(DataError, match="Unsupported subtitle format"):
            extract_subtitles(path)

    def test_no_cues(self, tmp_path: Path) -> None:
        path = tmp_path / "empty.srt"
        path.write_text("nothing here")

        with pytest.raises(DataError, match="No subtitle cues"):
            extract_subtitles(path)

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(StorageError):
            extract_subtitles(tmp_path / "missing.srt")


class TestLoadLocalTranscript:
    """Tests for local transcript loading."""

    def test_text_file(self, tmp_path: Path) -> None:
        path = tmp_path / "talk.txt"
        path.write_text("This is the transcript.")

        result = load_local_transcript(path)
        assert result.text == "This is the transcript."
        assert result.method == "file"
        assert result.title == "talk"

    def test_timed_text_file(self, tmp_path: Path) -> None:
        path = tmp_path / "talk.txt"
        path.write_text("Script: One.\nStart Time: 0\nEnd Time: 10\n\nScript: Two.\n")

        assert load_local_transcript(path).text == "One. Two."

    def test_subtitle_file(self, tmp_path: Path) -> None:
        path = tmp_path / "talk.srt"
        path.write_text(SRT)

        result = load_local_transcript(path, title="My Talk")
        assert result.method == "subtitles"
        assert result.title == "My Talk"
        assert "summarization" in result.text

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(StorageError, match="File not found"):
            load_local_transcript(tmp_path / "missing.txt")

    def test_unsupported_format(self, tmp_path: Path) -> None:
        path = tmp_path / "talk.mp3"
        path.write_bytes(b"ID3")

        with pytest.raises(DataError, match="Expected one of"):
            load_local_transcript(path)
