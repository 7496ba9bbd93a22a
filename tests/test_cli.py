"""Tests for CLI."""

import json
from pathlib import Path
from unittest.mock import MagicMock, patch

from typer.testing import CliRunner

from transcript_summarize.cli import app
from transcript_summarize.errors import BackendError, StageFailed
from transcript_summarize.summarize.inference import InferenceResult

runner = CliRunner()


class TestApp:
    """Tests for top-level behaviour."""

    def test_help(self) -> None:
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        for command in ("extract", "split", "infer", "merge", "run"):
            assert command in result.output


class TestExtractCommand:
    """Tests for extract command."""

    def test_writes_text(self, tmp_path: Path) -> None:
        srt = tmp_path / "talk.srt"
        srt.write_text("1\n00:00:01,000 --> 00:00:02,000\nHello world\n")
        out = tmp_path / "talk.txt"

        result = runner.invoke(app, ["extract", str(srt), "--out", str(out)])

        assert result.exit_code == 0
        assert out.read_text() == "Hello world"

    def test_file_not_found(self) -> None:
        result = runner.invoke(app, ["extract", "/nonexistent/talk.srt"])
        assert result.exit_code == 1
        assert "File not found" in result.output

    def test_no_cues(self, tmp_path: Path) -> None:
        srt = tmp_path / "talk.srt"
        srt.write_text("no timestamps here")

        result = runner.invoke(app, ["extract", str(srt)])
        assert result.exit_code == 1
        assert "Extraction failed" in result.output


class TestSplitCommand:
    """Tests for split command."""

    def test_split(self, tmp_path: Path) -> None:
        transcript = tmp_path / "talk.txt"
        transcript.write_text("one two three four five")
        config = tmp_path / "config.json"
        config.write_text(json.dumps({"header": "<", "footer": ">"}))
        out_dir = tmp_path / "splits"

        result = runner.invoke(
            app,
            ["split", "-i", str(transcript), "-o", str(out_dir), "-s", "2", "-c", str(config)],
        )

        assert result.exit_code == 0
        assert sorted(p.name for p in out_dir.iterdir()) == [
            "talk_part_000.txt",
            "talk_part_001.txt",
            "talk_part_002.txt",
        ]
        assert (out_dir / "talk_part_001.txt").read_text() == "<three four>"

    def test_single_shot(self, tmp_path: Path) -> None:
        transcript = tmp_path / "talk.txt"
        transcript.write_text("one two three")
        out_dir = tmp_path / "splits"

        result = runner.invoke(
            app, ["split", "-i", str(transcript), "-o", str(out_dir), "--single-shot"]
        )

        assert result.exit_code == 0
        assert [p.name for p in out_dir.iterdir()] == ["talk_part_000.txt"]

    def test_missing_max_tokens(self, tmp_path: Path) -> None:
        transcript = tmp_path / "talk.txt"
        transcript.write_text("one two three")

        result = runner.invoke(app, ["split", "-i", str(transcript), "-o", str(tmp_path / "s")])

        assert result.exit_code == 1
        assert "Split failed" in result.output
        assert not (tmp_path / "s").exists()


class TestInferCommand:
    """Tests for infer command."""

    @patch("transcript_summarize.cli.run_inference")
    def test_success(self, mock_run: MagicMock, tmp_path: Path) -> None:
        mock_run.return_value = [InferenceResult(source_id="a_0.txt", generated_text="A")]

        result = runner.invoke(
            app,
            ["infer", "-d", str(tmp_path), "-o", str(tmp_path / "r.json"), "-b", "koboldai"],
        )

        assert result.exit_code == 0
        assert "All files processed" in result.output
        backend = mock_run.call_args.kwargs["backend"]
        assert backend.backend == "koboldai"
        assert mock_run.call_args.kwargs["model"] == "llama3.1"

    @patch("transcript_summarize.cli.run_inference")
    def test_backend_failure(self, mock_run: MagicMock, tmp_path: Path) -> None:
        mock_run.side_effect = BackendError("Request failed with status: 500")

        result = runner.invoke(app, ["infer", "-d", str(tmp_path), "-o", str(tmp_path / "r.json")])

        assert result.exit_code == 1
        assert "Inference failed" in result.output

    def test_bad_params_file(self, tmp_path: Path) -> None:
        params = tmp_path / "params.json"
        params.write_text("[]")

        result = runner.invoke(
            app,
            ["infer", "-d", str(tmp_path), "-o", str(tmp_path / "r.json"), "-p", str(params)],
        )

        assert result.exit_code == 1
        assert "Inference failed" in result.output

    def test_model_from_environment(self, tmp_path: Path) -> None:
        with patch("transcript_summarize.cli.run_inference") as mock_run:
            mock_run.return_value = []
            result = runner.invoke(
                app,
                ["infer", "-d", str(tmp_path), "-o", str(tmp_path / "r.json")],
                env={"TRANSCRIPT_SUMMARIZE_MODEL": "mistral"},
            )

        assert result.exit_code == 0
        assert mock_run.call_args.kwargs["model"] == "mistral"


class TestMergeCommand:
    """Tests for merge command."""

    def test_merge(self, tmp_path: Path) -> None:
        results = tmp_path / "results.json"
        results.write_text(json.dumps({"c_2.txt": "C", "c_0.txt": "A", "c_1.txt": "B"}))
        out = tmp_path / "merged.txt"

        result = runner.invoke(app, ["merge", str(results), str(out)])

        assert result.exit_code == 0
        assert out.read_text() == "A\nB\nC\n"

    def test_separator_escapes(self, tmp_path: Path) -> None:
        results = tmp_path / "results.json"
        results.write_text(json.dumps({"c_1.txt": "B", "c_0.txt": "A"}))
        out = tmp_path / "merged.txt"

        result = runner.invoke(app, ["merge", str(results), str(out), "--separator", "\\n\\n"])

        assert result.exit_code == 0
        assert out.read_text() == "A\n\nB\n\n"

    def test_non_ascii_separator(self, tmp_path: Path) -> None:
        results = tmp_path / "results.json"
        results.write_text(json.dumps({"c_1.txt": "B", "c_0.txt": "A"}))
        out = tmp_path / "merged.txt"

        result = runner.invoke(app, ["merge", str(results), str(out), "--separator", " → "])

        assert result.exit_code == 0
        assert out.read_text(encoding="utf-8") == "A → B → "

    def test_duplicate_indices(self, tmp_path: Path) -> None:
        results = tmp_path / "results.json"
        results.write_text(json.dumps({"chunk_1.txt": "A", "chunk_01.txt": "B"}))
        out = tmp_path / "merged.txt"

        result = runner.invoke(app, ["merge", str(results), str(out)])

        assert result.exit_code == 1
        assert "Merge failed" in result.output
        assert not out.exists()


class TestRunCommand:
    """Tests for run command."""

    def test_file_not_found(self) -> None:
        result = runner.invoke(app, ["run", "/nonexistent/talk.txt"])
        assert result.exit_code == 1
        assert "File not found" in result.output

    @patch("transcript_summarize.cli.SummaryPipeline")
    def test_success(self, mock_pipeline: MagicMock, tmp_path: Path) -> None:
        transcript = tmp_path / "talk.txt"
        transcript.write_text("one two three")
        out = tmp_path / "summary.txt"

        result = runner.invoke(app, ["run", str(transcript), "-o", str(out), "-s", "200"])

        assert result.exit_code == 0
        assert "Summary generated" in result.output
        assert "Done!" in result.output
        options = mock_pipeline.call_args.args[0]
        assert options.chunk_tokens == 200
        assert options.model == "llama3.1"
        mock_pipeline.return_value.run.assert_called_once_with(transcript, out)

    @patch("transcript_summarize.cli.SummaryPipeline")
    def test_stage_failure(self, mock_pipeline: MagicMock, tmp_path: Path) -> None:
        transcript = tmp_path / "talk.txt"
        transcript.write_text("one two three")
        mock_pipeline.return_value.run.side_effect = StageFailed(
            "Summarizing chunks", BackendError("boom")
        )

        result = runner.invoke(app, ["run", str(transcript), "-o", str(tmp_path / "o.txt")])

        assert result.exit_code == 1
        assert "Summarizing chunks failed" in result.output

    def test_unknown_backend(self, tmp_path: Path) -> None:
        transcript = tmp_path / "talk.txt"
        transcript.write_text("one two three")

        result = runner.invoke(app, ["run", str(transcript), "-b", "nope"])

        assert result.exit_code == 1
        assert "Configuration error" in result.output

    @patch("transcript_summarize.cli.SummaryPipeline")
    def test_templates_and_params(self, mock_pipeline: MagicMock, tmp_path: Path) -> None:
        transcript = tmp_path / "talk.txt"
        transcript.write_text("one two three")
        start = tmp_path / "start.json"
        start.write_text(json.dumps({"header": "S:", "footer": ""}))
        final = tmp_path / "final.json"
        final.write_text(json.dumps({"header": "F:", "footer": ""}))
        params = tmp_path / "params.json"
        params.write_text(json.dumps({"temperature": 0.2}))

        result = runner.invoke(
            app,
            [
                "run",
                str(transcript),
                "-o",
                str(tmp_path / "o.txt"),
                "--start-config",
                str(start),
                "--final-config",
                str(final),
                "-p",
                str(params),
            ],
        )

        assert result.exit_code == 0
        options = mock_pipeline.call_args.args[0]
        assert options.stage1_template.header == "S:"
        assert options.final_template.header == "F:"
        assert options.sampling_params == {"temperature": 0.2}
        assert options.final_sampling_params is None
