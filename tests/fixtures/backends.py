"""Local stand-ins for remote backends."""

import hashlib
import json
import threading
from typing import Dict, List, Optional

import requests

from blob_propagator.errors import BackendUnavailableError


def make_response(status: int, content: bytes = b"", json_body: Optional[dict] = None) -> requests.Response:
    """Build a real requests.Response without network access."""
    response = requests.Response()
    response.status_code = status
    response._content = json.dumps(json_body).encode() if json_body is not None else content
    return response


class FakeBeeSession:
    """In-memory stand-in for a Bee node's /bytes API.

    Content-addressed like Swarm: the reference is derived from the bytes.
    """

    def __init__(self):
        self.chunks: Dict[str, bytes] = {}
        self.uploads: List[dict] = []
        self.closed = False

    def post(self, url, data=None, headers=None, timeout=None):
        self.uploads.append({"url": url, "headers": dict(headers or {})})
        reference = hashlib.sha256(data).hexdigest()
        self.chunks[reference] = data
        return make_response(201, json_body={"reference": reference})

    def get(self, url, timeout=None):
        reference = url.rsplit("/", 1)[-1]
        if reference not in self.chunks:
            return make_response(404, json_body={"code": 404, "message": "Not Found"})
        return make_response(200, content=self.chunks[reference])

    def close(self):
        self.closed = True


class FlakyStore:
    """Driver wrapper that fails a given number of times before delegating."""

    def __init__(self, inner, failures: int = 1, error: Optional[Exception] = None):
        self.inner = inner
        self.storage = inner.storage
        self.failures = failures
        self.error = error
        self.calls = 0
        self._lock = threading.Lock()

    def store(self, versioned_hash: str, data: bytes) -> str:
        with self._lock:
            self.calls += 1
            failing = self.calls <= self.failures
        if failing:
            raise self.error or BackendUnavailableError(self.storage.value, "simulated outage")
        return self.inner.store(versioned_hash, data)

    def retrieve(self, reference: str) -> bytes:
        return self.inner.retrieve(reference)

    def close(self) -> None:
        self.inner.close()
