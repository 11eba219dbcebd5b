import io
import json
import threading
import time
import zipfile
from collections.abc import Callable
from urllib.parse import urlencode

import pytest


class FakeResponse:
    def __init__(self, status_code: int = 200, content: bytes = b"", chunks: list[bytes] | None = None, delay: float = 0):
        self.status_code = status_code
        self.content = content
        self.chunks = chunks
        self.delay = delay
        self.closed = threading.Event()

    @classmethod
    def of_json(cls, data, status_code: int = 200, **kwargs) -> "FakeResponse":
        return cls(status_code, json.dumps(data).encode(), **kwargs)

    @property
    def text(self) -> str:
        return self.content.decode()

    def json(self):
        return json.loads(self.content)

    def iter_content(self, chunk_size: int = 1):
        chunks = self.chunks if self.chunks is not None else [self.content]
        for chunk in chunks:
            if self.delay:
                time.sleep(self.delay)
            yield chunk

    def close(self):
        self.closed.set()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()


type Route = FakeResponse | BaseException | Callable[[], FakeResponse]


class FakeSession:
    """Stands in for ``requests.Session``; unknown urls answer 404."""

    def __init__(self, routes: dict[str, Route] | None = None):
        self.routes = dict(routes or {})
        self.calls: list[str] = []
        self.closed = False

    def get(self, url: str, params=None, **kwargs):
        key = f"{url}?{urlencode(params)}" if params else url
        self.calls.append(key)
        route = self.routes.get(key, FakeResponse(404))
        if isinstance(route, BaseException):
            raise route
        if callable(route):
            return route()
        return route

    def close(self):
        self.closed = True


def make_zip(files: dict[str, bytes]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zip_file:
        for name, content in files.items():
            zip_file.writestr(name, content)
    return buffer.getvalue()


KEY_VDF = b"""
"depots"
{
    "731"
    {
        "DecryptionKey"    "aabbccdd"
    }
}
"""


@pytest.fixture
def session():
    return FakeSession()
