"""Two-pass map-reduce summarization pipeline."""

import logging
import shutil
import tempfile
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

import requests

from ..errors import DataError, PipelineError, StageFailed, StorageError
from ..sources.local_file import load_local_transcript
from .inference import BackendConfig, ProgressCallback, run_inference
from .merger import merge
from .prompts import FINAL_TEMPLATE, STAGE1_TEMPLATE
from .schema import ChunkTemplate
from .splitter import ChunkConfig, count_tokens, count_words, split

logger = logging.getLogger(__name__)


class Stage(str, Enum):
    START = "start"
    STAGE1_SPLIT = "stage1_split"
    STAGE1_INFER = "stage1_infer"
    STAGE1_MERGE = "stage1_merge"
    STAGE2_SPLIT = "stage2_split"
    STAGE2_INFER = "stage2_infer"
    STAGE2_MERGE = "stage2_merge"
    DONE = "done"
    ABORTED = "aborted"


STAGE_LABELS = {
    Stage.STAGE1_SPLIT: "Splitting transcript",
    Stage.STAGE1_INFER: "Summarizing chunks",
    Stage.STAGE1_MERGE: "Merging chunk summaries",
    Stage.STAGE2_SPLIT: "Preparing final pass",
    Stage.STAGE2_INFER: "Generating final summary",
    Stage.STAGE2_MERGE: "Writing final summary",
}


@dataclass
class ScratchDirs:
    """Working directories owned by one pipeline run."""

    chunks: Path
    final: Path


@contextmanager
def scratch_dirs(work_dir: Path | None = None) -> Iterator[ScratchDirs]:
    """
    Create the two scratch directories and remove them on every exit path.

    With no work_dir a fresh temporary directory is used. With an explicit
    work_dir, leftovers of an interrupted run are removed first.
    """
    if work_dir is None:
        with tempfile.TemporaryDirectory(prefix="transcript-summarize-") as tmpdir:
            yield _create_dirs(Path(tmpdir))
        return

    work_dir = Path(work_dir)
    dirs = ScratchDirs(chunks=work_dir / "tmp", final=work_dir / "tmp_final")
    _remove_dirs(dirs)
    try:
        yield _create_dirs(work_dir, dirs)
    finally:
        _remove_dirs(dirs)


def _create_dirs(root: Path, dirs: ScratchDirs | None = None) -> ScratchDirs:
    dirs = dirs or ScratchDirs(chunks=root / "tmp", final=root / "tmp_final")
    try:
        dirs.chunks.mkdir(parents=True)
        dirs.final.mkdir(parents=True)
    except OSError as e:
        raise StorageError(f"Cannot create scratch directories in {root}: {e}") from e
    logger.debug("Created scratch directories %s and %s", dirs.chunks, dirs.final)
    return dirs


def _remove_dirs(dirs: ScratchDirs) -> None:
    for path in (dirs.chunks, dirs.final):
        shutil.rmtree(path, ignore_errors=True)


@dataclass
class PipelineOptions:
    """Options for a full summarization run."""

    model: str = "llama3.1"
    backend: BackendConfig = field(default_factory=BackendConfig)
    chunk_tokens: int = 500
    stage1_template: ChunkTemplate = STAGE1_TEMPLATE
    final_template: ChunkTemplate = FINAL_TEMPLATE
    sampling_params: dict[str, Any] | None = None
    final_sampling_params: dict[str, Any] | None = None  # None: reuse sampling_params
    separator: str = "\n"
    work_dir: Path | None = None
    context_tokens: int | None = None
    on_stage: Callable[[Stage], None] | None = None
    on_progress: ProgressCallback | None = None


class SummaryPipeline:
    """
    Split -> infer -> merge, twice.

    The first pass summarizes every chunk of the transcript; the second pass
    condenses the merged chunk summaries in a single request. Any stage
    failure aborts the run with StageFailed and no output file is written.
    """

    def __init__(self, options: PipelineOptions, session: requests.Session | None = None) -> None:
        self.options = options
        self.session = session
        self.state = Stage.START
        self.history = [Stage.START]

    def _advance(self, stage: Stage) -> None:
        self.state = stage
        self.history.append(stage)
        logger.info("Pipeline stage: %s", stage.value)
        if self.options.on_stage is not None:
            self.options.on_stage(stage)

    def _run_stage(self, stage: Stage, func: Callable[..., Any], *args: Any) -> Any:
        self._advance(stage)
        try:
            return func(*args)
        except Exception as e:
            self._advance(Stage.ABORTED)
            raise StageFailed(STAGE_LABELS[stage], e) from e

    def run(self, transcript_path: Path, output_path: Path) -> Path:
        """
        Summarize a transcript file into output_path.

        Raises:
            StageFailed: A stage failed; `stage` names it and `error` holds the cause
        """
        if self.state is not Stage.START:
            raise PipelineError("A SummaryPipeline can only run once")

        opts = self.options
        transcript_path = Path(transcript_path)
        output_path = Path(output_path)
        stem = transcript_path.stem
        final_params = (
            opts.final_sampling_params
            if opts.final_sampling_params is not None
            else opts.sampling_params
        )

        with scratch_dirs(opts.work_dir) as dirs:
            stage1 = ChunkConfig.from_template(opts.stage1_template, max_tokens=opts.chunk_tokens)
            self._run_stage(
                Stage.STAGE1_SPLIT,
                self._split_transcript,
                transcript_path,
                stage1,
                dirs.chunks,
                stem,
            )

            stage1_results = dirs.chunks / "results.json"
            self._run_stage(
                Stage.STAGE1_INFER,
                run_inference,
                dirs.chunks,
                stage1_results,
                opts.backend,
                opts.model,
                opts.sampling_params,
                self.session,
                opts.on_progress,
            )

            # Written after stage 1 inference, so it is never sent as a chunk
            intermediate = dirs.chunks / f"{stem}_merged.txt"
            self._run_stage(
                Stage.STAGE1_MERGE, self._merge_intermediate, stage1_results, intermediate
            )

            final = ChunkConfig.from_template(opts.final_template, single_shot=True)
            self._run_stage(Stage.STAGE2_SPLIT, split, intermediate, final, dirs.final, stem)

            final_results = dirs.final / "results.json"
            self._run_stage(
                Stage.STAGE2_INFER,
                run_inference,
                dirs.final,
                final_results,
                opts.backend,
                opts.model,
                final_params,
                self.session,
                opts.on_progress,
            )

            self._run_stage(
                Stage.STAGE2_MERGE,
                self._merge_final,
                final_results,
                dirs.final / f"{stem}_summary.out",
                output_path,
            )

        self._advance(Stage.DONE)
        return output_path

    def _split_transcript(
        self, transcript_path: Path, config: ChunkConfig, out_dir: Path, stem: str
    ) -> list[Path]:
        transcript = load_local_transcript(transcript_path)
        paths = split(transcript.text, config, out_dir, stem)
        if not paths:
            raise DataError(f"Transcript {transcript_path} contains no words")
        logger.info(
            "Split %s (%d words) into %d chunk(s)",
            transcript_path,
            count_words(transcript.text),
            len(paths),
        )
        return paths

    def _merge_intermediate(self, results_path: Path, out_path: Path) -> str:
        text = merge(results_path, out_path, self.options.backend.backend, self.options.separator)
        self._check_context(text)
        return text

    def _merge_final(self, results_path: Path, scratch_path: Path, output_path: Path) -> str:
        text = merge(results_path, scratch_path, self.options.backend.backend, self.options.separator)
        partial = output_path.with_name(output_path.name + ".partial")
        try:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(scratch_path, partial)
            partial.replace(output_path)
        except OSError as e:
            partial.unlink(missing_ok=True)
            raise StorageError(f"Cannot write final summary {output_path}: {e}") from e
        return text

    def _check_context(self, merged: str) -> None:
        limit = self.options.context_tokens
        if limit is None:
            return
        tokens = count_tokens(merged, self.options.model)
        if tokens > limit:
            # Only one reduce pass is made regardless of size
            logger.warning(
                "Merged chunk summaries are ~%d tokens, above the %d token context; "
                "the final pass may be truncated by the backend",
                tokens,
                limit,
            )


def summarize_file(
    transcript_path: Path,
    output_path: Path,
    options: PipelineOptions | None = None,
) -> Path:
    """Run the two-pass pipeline with the given (or default) options."""
    return SummaryPipeline(options or PipelineOptions()).run(transcript_path, output_path)
