"""Vision model backed by the Workers AI REST API (default: llama-3.2-11b-vision-instruct).

Set CLOUDFLARE_ACCOUNT_ID and CLOUDFLARE_API_TOKEN (or account_id / api_token in
guardian_config.yml). model_endpoint overrides the base URL, e.g. for a gateway or a local stub.

Uses a persistent requests.Session with connection pooling so concurrent requests share
connections to the API.
"""

from collections.abc import Iterator
from typing import Any

import requests

from guardian.ai.schema import CompletionOutcome, ModelCard
from guardian.ai.vision_base import BaseVisionModel
from guardian.core.config import Settings
from guardian.core.errors import UpstreamModelError


class WorkersAIVisionModel(BaseVisionModel):
    """Calls {endpoint}/{model_id} with the prompt and data-URI image."""

    def __init__(self, settings: Settings) -> None:
        self._endpoint = settings.resolved_model_endpoint()
        self._api_token = settings.api_token
        self._model_id = settings.model_id
        self._max_tokens = settings.max_tokens
        self._timeout = settings.model_timeout_seconds
        self._session = requests.Session()
        adapter = requests.adapters.HTTPAdapter(pool_connections=10, pool_maxsize=20)
        self._session.mount("http://", adapter)
        self._session.mount("https://", adapter)

    def get_model_card(self) -> ModelCard:
        return ModelCard(name=self._model_id, version="workers-ai")

    def _url(self) -> str:
        if not self._endpoint:
            raise UpstreamModelError(
                "Model endpoint is not configured. Set CLOUDFLARE_ACCOUNT_ID or model_endpoint."
            )
        return f"{self._endpoint}/{self._model_id.lstrip('/')}"

    def _headers(self, streaming: bool) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if streaming:
            headers["Accept"] = "text/event-stream"
        if self._api_token:
            headers["Authorization"] = f"Bearer {self._api_token}"
        return headers

    def _post(self, payload: dict, streaming: bool) -> requests.Response:
        """POST to the model; raise UpstreamModelError on transport errors or non-2xx."""
        url = self._url()
        try:
            resp = self._session.post(
                url,
                json=payload,
                headers=self._headers(streaming),
                timeout=self._timeout,
                stream=streaming,
            )
        except requests.RequestException as e:
            raise UpstreamModelError(f"Model request failed: {e}") from e
        if not resp.ok:
            detail = resp.text[:300] if not streaming else ""
            resp.close()
            raise UpstreamModelError(f"Model returned HTTP {resp.status_code}: {detail}".rstrip(": "))
        return resp

    def invoke(self, prompt: str, image: str, streaming: bool) -> CompletionOutcome:
        payload = {
            "prompt": prompt,
            "image": image,
            "max_tokens": self._max_tokens,
            "stream": streaming,
        }
        resp = self._post(payload, streaming)
        if streaming:
            return CompletionOutcome(chunks=_iter_chunks(resp))
        try:
            data = resp.json()
        except ValueError as e:
            raise UpstreamModelError("Model returned a non-JSON body") from e
        return CompletionOutcome(payload=_unwrap(data))


def _unwrap(data: Any) -> Any:
    """Strip the {"success", "result": {"response": ...}} envelope down to the model output."""
    if isinstance(data, dict):
        if data.get("success") is False:
            errors = data.get("errors") or []
            raise UpstreamModelError(f"Model call unsuccessful: {errors}")
        result = data.get("result", data)
        if isinstance(result, dict) and "response" in result:
            return result["response"]
        return result
    return data


def _iter_chunks(resp: requests.Response) -> Iterator[bytes]:
    """Yield raw body chunks in arrival order; the response is closed when iteration ends."""
    try:
        for chunk in resp.iter_content(chunk_size=None):
            if chunk:
                yield chunk
    except requests.RequestException as e:
        raise UpstreamModelError(f"Model stream interrupted: {e}") from e
    finally:
        resp.close()
