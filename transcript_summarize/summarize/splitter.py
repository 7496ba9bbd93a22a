"""Word-bounded splitting of transcripts into numbered chunk files."""

import json
import logging
from dataclasses import dataclass
from pathlib import Path

import tiktoken
from pydantic import ValidationError

from ..errors import ConfigError, StorageError
from .schema import ChunkTemplate

logger = logging.getLogger(__name__)

CHUNK_SUFFIX = ".txt"


@dataclass(frozen=True)
class ChunkConfig:
    """Settings for one split."""

    header: str = ""
    footer: str = ""
    max_tokens: int | None = None
    single_shot: bool = False

    @classmethod
    def from_template(
        cls,
        template: ChunkTemplate,
        max_tokens: int | None = None,
        single_shot: bool = False,
    ) -> "ChunkConfig":
        return cls(
            header=template.header,
            footer=template.footer,
            max_tokens=max_tokens,
            single_shot=single_shot,
        )


@dataclass(frozen=True)
class Chunk:
    """One numbered slice of a document."""

    index: int
    text: str
    wrapped: bool = False

    def filename(self, stem: str) -> str:
        return chunk_filename(stem, self.index)


def chunk_filename(stem: str, index: int) -> str:
    """Name of the chunk file for `index`; the index is the last number in the name."""
    return f"{stem}_part_{index:03d}{CHUNK_SUFFIX}"


def count_words(text: str) -> int:
    """Count whitespace-separated words, the unit used for chunk budgets."""
    return len(text.split())


def count_tokens(text: str, model: str = "gpt-4o-mini") -> int:
    """Estimate model tokens in text using tiktoken."""
    try:
        enc = tiktoken.encoding_for_model(model)
    except KeyError:
        enc = tiktoken.get_encoding("cl100k_base")
    return len(enc.encode(text))


def load_chunk_template(path: Path) -> ChunkTemplate:
    """Load a `{"header": ..., "footer": ...}` config file."""
    path = Path(path)
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read chunk config {path}: {e}") from e

    try:
        return ChunkTemplate(**json.loads(raw))
    except json.JSONDecodeError as e:
        raise ConfigError(f"Chunk config {path} is not valid JSON: {e}") from e
    except (TypeError, ValidationError) as e:
        raise ConfigError(f"Chunk config {path} needs string 'header' and 'footer': {e}") from e


def chunk_words(text: str, max_tokens: int) -> list[str]:
    """
    Greedily pack the words of text into chunks of at most max_tokens words.

    Words are never split, so a chunk always holds at least one word.
    """
    chunks = []
    current: list[str] = []

    for word in text.split():
        if len(current) + 1 > max_tokens and current:
            chunks.append(" ".join(current))
            current = []
        current.append(word)

    if current:
        chunks.append(" ".join(current))

    return chunks


def _check_config(config: ChunkConfig) -> None:
    if config.single_shot:
        return
    if config.max_tokens is None:
        raise ConfigError("max_tokens is required unless single-shot mode is enabled")
    if config.max_tokens <= 0:
        raise ConfigError(f"max_tokens must be a positive integer, got {config.max_tokens}")


def wrap(text: str, config: ChunkConfig) -> str:
    """Surround text with the configured header and footer."""
    return f"{config.header}{text}{config.footer}"


def build_chunks(text: str, config: ChunkConfig) -> list[Chunk]:
    """Split text into wrapped chunks without touching the filesystem."""
    _check_config(config)

    if config.single_shot:
        return [Chunk(index=0, text=wrap(text, config), wrapped=True)]

    return [
        Chunk(index=i, text=wrap(part, config), wrapped=True)
        for i, part in enumerate(chunk_words(text, config.max_tokens))
    ]


def split(
    document: str | Path,
    config: ChunkConfig,
    out_dir: Path,
    stem: str = "transcript",
) -> list[Path]:
    """
    Split a document into chunk files in out_dir.

    Args:
        document: Transcript text, or a Path to a UTF-8 transcript file
        config: Chunk settings
        out_dir: Directory for the chunk files (created if missing)
        stem: Filename prefix for the chunk files

    Returns:
        Chunk file paths in index order

    Raises:
        ConfigError: max_tokens missing in split mode
        StorageError: Document unreadable or out_dir not writable
    """
    _check_config(config)

    if isinstance(document, Path):
        try:
            text = document.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise StorageError(f"Cannot read document {document}: {e}") from e
    else:
        text = document

    chunks = build_chunks(text, config)

    out_dir = Path(out_dir)
    try:
        out_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise StorageError(f"Cannot create output directory {out_dir}: {e}") from e

    paths = []
    for chunk in chunks:
        path = out_dir / chunk.filename(stem)
        try:
            path.write_text(chunk.text, encoding="utf-8")
        except OSError as e:
            raise StorageError(f"Cannot write chunk {path}: {e}") from e
        paths.append(path)

    logger.debug(
        "Split %d words into %d chunk(s) in %s", count_words(text), len(paths), out_dir
    )
    return paths
