from __future__ import annotations

import json
import threading
from dataclasses import dataclass
from typing import Any, Dict, List

import requests
from requests import RequestException

from ..config import OllamaConfig
from ..errors import BackendError


@dataclass
class BackendResponse:
    content: str
    raw: Dict[str, Any]


class OllamaClient:
    """Lightweight adapter for a local Ollama daemon.

    Only the two endpoints the tool needs are wrapped: ``/api/embed`` for
    dense vectors and ``/api/generate`` for non-streaming completions. Each
    call is attempted once; failures surface as :class:`BackendError`.

    Unless a session is injected, every thread gets its own
    ``requests.Session`` so parallel reranking never shares one.
    """

    def __init__(self, config: OllamaConfig, session: requests.Session | None = None):
        self.config = config
        self._shared = session
        self._local = threading.local()
        self._sessions: List[requests.Session] = []
        self._lock = threading.Lock()

    @property
    def session(self) -> requests.Session:
        if self._shared is not None:
            return self._shared
        session = getattr(self._local, "session", None)
        if session is None:
            session = requests.Session()
            self._local.session = session
            with self._lock:
                self._sessions.append(session)
        return session

    @property
    def headers(self) -> Dict[str, str]:
        return {"Content-Type": "application/json"}

    def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = self.session.post(
                f"{self.config.base_url}{path}",
                data=json.dumps(payload),
                headers=self.headers,
                timeout=self.config.request_timeout,
            )
        except RequestException as exc:
            raise BackendError(f"Model host unreachable at {self.config.base_url}: {exc}") from exc
        if not response.ok:
            raise BackendError(
                f"Model host returned {response.status_code} for {path}: {response.text}"
            )
        try:
            return response.json()
        except ValueError as exc:
            raise BackendError(f"Model host returned invalid JSON for {path}") from exc

    def embed(self, model: str, text: str) -> List[List[float]]:
        data = self._post("/api/embed", {"model": model, "input": text})
        return data.get("embeddings") or []

    def generate(self, model: str, prompt: str) -> BackendResponse:
        payload = {
            "model": model,
            "prompt": prompt,
            "stream": False,
        }
        data = self._post("/api/generate", payload)
        return BackendResponse(content=data.get("response", ""), raw=data)

    def close(self):
        if self._shared is not None:
            self._shared.close()
        with self._lock:
            sessions, self._sessions = self._sessions, []
        for session in sessions:
            session.close()
