"""Batch inference over a directory of chunk files."""

import json
import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

import requests

from ..errors import BackendError, ConfigError, DataError, StorageError
from .backends import BackendAdapter, InferenceRequest, get_adapter
from .splitter import CHUNK_SUFFIX

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, str], None]


class ResultStatus(str, Enum):
    OK = "ok"
    FAILED = "failed"


@dataclass
class InferenceResult:
    """Generated text for one chunk file."""

    source_id: str
    generated_text: str
    status: ResultStatus = ResultStatus.OK


@dataclass
class BackendConfig:
    """Connection settings for the generation backend."""

    backend: str = "ollama"
    url: str | None = None
    timeout: float = 300.0
    max_retries: int = 3
    backoff: float = 2.0

    def adapter(self) -> BackendAdapter:
        return get_adapter(self.backend)

    def resolved_url(self) -> str:
        """Configured URL, or the adapter's default endpoint."""
        return self.url or self.adapter().default_url


def load_sampling_params(path: Path) -> dict[str, Any]:
    """Load backend sampling parameters from a JSON object file."""
    path = Path(path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigError(f"Cannot read sampling parameters {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"Sampling parameters {path} are not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Sampling parameters {path} must be a JSON object")
    return data


def list_chunk_files(chunk_dir: Path) -> list[Path]:
    """Chunk files directly inside chunk_dir, in filesystem order."""
    chunk_dir = Path(chunk_dir)
    try:
        return [p for p in chunk_dir.iterdir() if p.is_file() and p.suffix == CHUNK_SUFFIX]
    except OSError as e:
        raise StorageError(f"Cannot list chunk directory {chunk_dir}: {e}") from e


def _generate_with_retry(
    adapter: BackendAdapter,
    request: InferenceRequest,
    backend: BackendConfig,
    url: str,
    session: requests.Session,
) -> tuple[str, Any]:
    """Call the backend with exponential backoff retry."""
    last_error = None

    for attempt in range(backend.max_retries):
        try:
            return adapter.generate(request, url, backend.timeout, session)
        except BackendError as e:
            last_error = e
            if attempt < backend.max_retries - 1:
                wait_time = backend.backoff ** (attempt + 1)
                logger.warning(
                    "Attempt %d/%d for %s failed (%s), retrying in %.1fs",
                    attempt + 1,
                    backend.max_retries,
                    request.source_id,
                    e,
                    wait_time,
                )
                time.sleep(wait_time)

    raise BackendError(
        f"{request.source_id}: request failed after {backend.max_retries} attempts: {last_error}",
        source_id=request.source_id,
        attempts=backend.max_retries,
    )


def _write_artifact(out_path: Path, artifact: dict[str, Any]) -> None:
    out_path = Path(out_path)
    tmp_path = out_path.with_name(out_path.name + ".partial")
    try:
        out_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path.write_text(json.dumps(artifact, indent=2, ensure_ascii=False), encoding="utf-8")
        tmp_path.replace(out_path)
    except OSError as e:
        tmp_path.unlink(missing_ok=True)
        raise StorageError(f"Cannot write results artifact {out_path}: {e}") from e


def run_inference(
    chunk_dir: Path,
    out_path: Path,
    backend: BackendConfig,
    model: str,
    sampling_params: Mapping[str, Any] | None = None,
    session: requests.Session | None = None,
    on_progress: ProgressCallback | None = None,
) -> list[InferenceResult]:
    """
    Generate text for every chunk file in chunk_dir and write the results artifact.

    Chunks are sent one at a time. The artifact is only written once every
    chunk has a result, so a failed run leaves no artifact behind.

    Args:
        chunk_dir: Directory containing `.txt` chunk files
        out_path: Results artifact path (overwritten)
        backend: Backend connection settings
        model: Model name passed to the backend
        sampling_params: Extra request fields, passed through verbatim
        session: Optional requests session to reuse
        on_progress: Called with (done, total, source_id) after each chunk

    Returns:
        One result per chunk, in processing order

    Raises:
        BackendError: A chunk still failed after all retry attempts; its
            `results` attribute lists the chunks processed so far
        ConfigError: Unknown backend or invalid retry settings
        DataError: No chunk files in chunk_dir
        StorageError: Chunk unreadable or artifact not writable
    """
    if backend.max_retries < 1:
        raise ConfigError(f"max_retries must be at least 1, got {backend.max_retries}")

    adapter = backend.adapter()
    url = backend.resolved_url()
    files = list_chunk_files(chunk_dir)
    if not files:
        raise DataError(f"No {CHUNK_SUFFIX} chunk files found in {chunk_dir}")

    total = len(files)
    logger.info("Sending %d chunk(s) to %s backend at %s", total, adapter.name, url)

    owns_session = session is None
    session = session or requests.Session()
    artifact: dict[str, Any] = {}
    results = []

    try:
        for done, file_path in enumerate(files, start=1):
            source_id = file_path.name
            try:
                prompt = file_path.read_text(encoding="utf-8").strip()
            except (OSError, UnicodeDecodeError) as e:
                raise StorageError(f"Cannot read chunk {file_path}: {e}") from e

            request = InferenceRequest(
                source_id=source_id,
                prompt=prompt,
                model=model,
                sampling_params=sampling_params or {},
            )
            logger.debug("Generating %s (%d/%d)", source_id, done, total)
            try:
                text, entry = _generate_with_retry(adapter, request, backend, url, session)
            except BackendError as e:
                results.append(
                    InferenceResult(
                        source_id=source_id, generated_text="", status=ResultStatus.FAILED
                    )
                )
                e.results = results
                raise

            artifact[source_id] = entry
            results.append(InferenceResult(source_id=source_id, generated_text=text))
            if on_progress is not None:
                on_progress(done, total, source_id)
    finally:
        adapter.close()
        if owns_session:
            session.close()

    _write_artifact(out_path, artifact)
    logger.info("Wrote %d result(s) to %s", len(artifact), out_path)
    return results
