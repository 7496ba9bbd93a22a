"""Pydantic schemas for the JSON files read and written by the pipeline."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, RootModel


class ChunkTemplate(BaseModel):
    """Header and footer wrapped around every chunk sent to the backend."""

    model_config = ConfigDict(frozen=True)

    header: str
    footer: str


class KoboldResult(BaseModel):
    """A single generation in a KoboldAI response."""

    text: str


class KoboldResponse(BaseModel):
    """Body returned by the KoboldAI generate endpoint."""

    results: list[KoboldResult] = Field(min_length=1)


class ResultsArtifact(RootModel[dict[str, Any]]):
    """Results artifact: chunk filename -> backend-specific entry."""
