"""Split / infer / merge stages and the two-pass pipeline."""

from .backends import (
    BackendAdapter,
    InferenceRequest,
    KoboldAIAdapter,
    OllamaAdapter,
    OpenAIAdapter,
    get_adapter,
)
from .inference import (
    BackendConfig,
    InferenceResult,
    ResultStatus,
    load_sampling_params,
    run_inference,
)
from .merger import extract_index, load_results, merge, merge_results
from .pipeline import PipelineOptions, Stage, SummaryPipeline, scratch_dirs, summarize_file
from .schema import ChunkTemplate
from .splitter import (
    Chunk,
    ChunkConfig,
    build_chunks,
    chunk_words,
    count_tokens,
    count_words,
    load_chunk_template,
    split,
)

__all__ = [
    "BackendAdapter",
    "BackendConfig",
    "Chunk",
    "ChunkConfig",
    "ChunkTemplate",
    "InferenceRequest",
    "InferenceResult",
    "KoboldAIAdapter",
    "OllamaAdapter",
    "OpenAIAdapter",
    "PipelineOptions",
    "ResultStatus",
    "Stage",
    "SummaryPipeline",
    "build_chunks",
    "chunk_words",
    "count_tokens",
    "count_words",
    "extract_index",
    "get_adapter",
    "load_chunk_template",
    "load_results",
    "load_sampling_params",
    "merge",
    "merge_results",
    "run_inference",
    "scratch_dirs",
    "split",
    "summarize_file",
]
