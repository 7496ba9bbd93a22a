"""Adapters for the generation backends the inference client can talk to."""

import copy
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import requests
from openai import OpenAI, OpenAIError
from pydantic import ValidationError

from ..errors import BackendError, ConfigError, DataError
from .schema import KoboldResponse


@dataclass(frozen=True)
class InferenceRequest:
    """A single prompt to send to the backend."""

    source_id: str
    prompt: str
    model: str
    sampling_params: Mapping[str, Any] = field(default_factory=dict)


def merge_params(base: dict[str, Any], overrides: Mapping[str, Any]) -> dict[str, Any]:
    """Recursively merge overrides into base (in place); nested objects merge key by key."""
    for key, value in overrides.items():
        if isinstance(value, Mapping) and isinstance(base.get(key), dict):
            merge_params(base[key], value)
        else:
            base[key] = copy.deepcopy(value)
    return base


class BackendAdapter:
    """
    Request building and response parsing for one backend family.

    Subclasses describe where the generated text lives in the backend's
    response and in the results artifact entries written for it.
    """

    name = ""
    default_url = ""
    default_params: dict[str, Any] = {}

    def build_payload(self, request: InferenceRequest) -> dict[str, Any]:
        payload = merge_params(copy.deepcopy(self.default_params), request.sampling_params)
        payload.update(self._request_fields(request))
        return payload

    def _request_fields(self, request: InferenceRequest) -> dict[str, Any]:
        return {"model": request.model, "prompt": request.prompt}

    def parse_response(self, body: Any) -> tuple[str, Any]:
        """Return (generated_text, artifact_entry) for a response body."""
        raise NotImplementedError

    def entry_text(self, entry: Any) -> str:
        """Return the generated text stored in a results artifact entry."""
        if not isinstance(entry, str):
            raise DataError(
                f"Expected generated text to be a string for backend '{self.name}', "
                f"got {type(entry).__name__}"
            )
        return entry

    def generate(
        self,
        request: InferenceRequest,
        url: str,
        timeout: float,
        session: requests.Session,
    ) -> tuple[str, Any]:
        """Send one request; any failure is raised as BackendError."""
        payload = self.build_payload(request)
        try:
            response = session.post(
                url,
                json=payload,
                headers={"accept": "application/json"},
                timeout=timeout,
            )
        except requests.RequestException as e:
            raise BackendError(f"Request to {url} failed: {e}") from e

        if not response.ok:
            raise BackendError(f"Request failed with status: {response.status_code}")

        try:
            body = response.json()
        except ValueError as e:
            raise BackendError(f"Response from {url} is not valid JSON: {e}") from e

        return self.parse_response(body)

    def close(self) -> None:
        """Release any client held by the adapter."""


class OllamaAdapter(BackendAdapter):
    """Ollama `/api/generate`; text under `response`."""

    name = "ollama"
    default_url = "http://localhost:11434/api/generate"

    def _request_fields(self, request: InferenceRequest) -> dict[str, Any]:
        return {"model": request.model, "prompt": request.prompt, "stream": False}

    def parse_response(self, body: Any) -> tuple[str, Any]:
        text = body.get("response") if isinstance(body, dict) else None
        if not isinstance(text, str):
            raise BackendError("No 'response' field found in JSON")
        return text, text


class KoboldAIAdapter(BackendAdapter):
    """KoboldAI `/api/v1/generate`; text under `results[*].text`."""

    name = "koboldai"
    default_url = "http://localhost:5001/api/v1/generate"
    default_params = {
        "max_context_length": 512,
        "max_length": 100,
        "quiet": False,
        "rep_pen": 1.1,
        "rep_pen_range": 256,
        "rep_pen_slope": 1,
        "temperature": 0.5,
    }

    def _request_fields(self, request: InferenceRequest) -> dict[str, Any]:
        # The KoboldAI API serves one loaded model and takes no model field
        return {"prompt": request.prompt}

    def parse_response(self, body: Any) -> tuple[str, Any]:
        try:
            parsed = KoboldResponse.model_validate(body)
        except ValidationError as e:
            raise BackendError(f"Malformed KoboldAI response: {e}") from e
        return "".join(r.text for r in parsed.results), body

    def entry_text(self, entry: Any) -> str:
        try:
            parsed = KoboldResponse.model_validate(entry)
        except ValidationError as e:
            raise DataError(f"Entry has no 'results[].text' for backend 'koboldai': {e}") from e
        return "".join(r.text for r in parsed.results)


def _get_client(base_url: str, timeout: float) -> OpenAI:
    """Get OpenAI client for an OpenAI-compatible server."""
    # Local servers accept any key
    api_key = os.environ.get("OPENAI_API_KEY") or "not-needed"
    return OpenAI(base_url=base_url, api_key=api_key, timeout=timeout, max_retries=0)


class OpenAIAdapter(BackendAdapter):
    """OpenAI-compatible chat completions (Ollama `/v1`, llama.cpp, vLLM...)."""

    name = "openai"
    default_url = "http://localhost:11434/v1"

    def __init__(self) -> None:
        self._client: OpenAI | None = None
        self._client_key: tuple[str, float] | None = None

    def _request_fields(self, request: InferenceRequest) -> dict[str, Any]:
        return {
            "model": request.model,
            "messages": [{"role": "user", "content": request.prompt}],
            "stream": False,
        }

    def build_payload(self, request: InferenceRequest) -> dict[str, Any]:
        """
        Build `chat.completions.create` keyword arguments.

        Sampling params go in `extra_body` so fields the SDK does not declare
        (`top_k`, `repeat_penalty`, Ollama's `options`...) still reach the server.
        """
        fields = self._request_fields(request)
        params = merge_params(copy.deepcopy(self.default_params), request.sampling_params)
        extra_body = {k: v for k, v in params.items() if k not in fields}
        if extra_body:
            fields["extra_body"] = extra_body
        return fields

    def _client_for(self, url: str, timeout: float) -> OpenAI:
        if self._client is None or self._client_key != (url, timeout):
            self.close()
            self._client = _get_client(url, timeout)
            self._client_key = (url, timeout)
        return self._client

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
            self._client_key = None

    def parse_response(self, body: Any) -> tuple[str, Any]:
        try:
            text = body.choices[0].message.content
        except (AttributeError, IndexError, TypeError) as e:
            raise BackendError(f"Malformed chat completion: {e}") from e
        if not isinstance(text, str):
            raise BackendError("Chat completion has no message content")
        return text, text

    def generate(
        self,
        request: InferenceRequest,
        url: str,
        timeout: float,
        session: requests.Session,
    ) -> tuple[str, Any]:
        client = self._client_for(url, timeout)
        try:
            response = client.chat.completions.create(**self.build_payload(request))
        except OpenAIError as e:
            raise BackendError(f"Chat completion request to {url} failed: {e}") from e
        return self.parse_response(response)


BACKENDS: dict[str, type[BackendAdapter]] = {
    OllamaAdapter.name: OllamaAdapter,
    KoboldAIAdapter.name: KoboldAIAdapter,
    OpenAIAdapter.name: OpenAIAdapter,
}


def get_adapter(tag: str) -> BackendAdapter:
    """Return the adapter registered under tag."""
    try:
        return BACKENDS[tag.lower()]()
    except KeyError:
        raise ConfigError(
            f"Unknown backend '{tag}'. Supported: {', '.join(sorted(BACKENDS))}"
        ) from None
