"""Order-preserving merge of a results artifact into one document."""

import logging
import re
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from ..errors import DataError, StorageError
from .backends import get_adapter
from .schema import ResultsArtifact

logger = logging.getLogger(__name__)

_LAST_NUMBER = re.compile(r"(\d+)(?!.*\d)")


def extract_index(source_id: str) -> int:
    """
    Return the chunk index embedded in a chunk filename.

    The index is the last run of digits in the name without its extension,
    so `meeting2024_part_007.txt` -> 7 and `chunk_01.txt` -> 1.
    """
    stem = Path(source_id).stem
    match = _LAST_NUMBER.search(stem)
    if match is None:
        raise DataError(f"No chunk number in source id '{source_id}'")
    return int(match.group(1))


def load_results(results_path: Path) -> dict[str, Any]:
    """Load a results artifact (a JSON object keyed by chunk filename)."""
    results_path = Path(results_path)
    try:
        raw = results_path.read_text(encoding="utf-8")
    except OSError as e:
        raise StorageError(f"Cannot read results artifact {results_path}: {e}") from e

    try:
        return ResultsArtifact.model_validate_json(raw).root
    except ValidationError as e:
        raise DataError(f"Results artifact {results_path} is not a JSON object: {e}") from e


def merge_results(
    results: dict[str, Any],
    backend_tag: str = "ollama",
    separator: str = "\n",
) -> str:
    """Merge artifact entries in chunk-number order, independent of storage order."""
    adapter = get_adapter(backend_tag)
    ordered: dict[int, tuple[str, str]] = {}

    for source_id, entry in results.items():
        index = extract_index(source_id)
        if index in ordered:
            raise DataError(
                f"Ambiguous order: '{source_id}' and '{ordered[index][0]}' "
                f"both have chunk number {index}"
            )
        try:
            text = adapter.entry_text(entry)
        except DataError as e:
            raise DataError(f"{source_id}: {e}") from e
        ordered[index] = (source_id, text)

    parts = []
    for index in sorted(ordered):
        text = ordered[index][1]
        if separator and text.endswith(separator):
            parts.append(text)
        else:
            parts.append(text + separator)
    return "".join(parts)


def merge(
    results_path: Path,
    out_path: Path,
    backend_tag: str = "ollama",
    separator: str = "\n",
) -> str:
    """
    Merge a results artifact into a text file.

    Every entry is validated before anything is written, so a malformed
    artifact never leaves a partial output file.

    Args:
        results_path: Results artifact written by the inference client
        out_path: Merged document path (overwritten)
        backend_tag: Backend whose entry shape the artifact uses
        separator: Text placed after each entry

    Returns:
        The merged text

    Raises:
        DataError: Missing chunk numbers, duplicate numbers, or missing text
        StorageError: Artifact unreadable or output not writable
    """
    merged = merge_results(load_results(results_path), backend_tag, separator)

    out_path = Path(out_path)
    try:
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(merged, encoding="utf-8")
    except OSError as e:
        raise StorageError(f"Cannot write merged document {out_path}: {e}") from e

    logger.debug("Merged %s into %s", results_path, out_path)
    return merged
