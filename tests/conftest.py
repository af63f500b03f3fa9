import io
import threading

import pytest
import requests
from rich.console import Console

from webhook_listener.output import Output


class FakeResponse:
    def __init__(self, status_code=200):
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Server Error", response=self)


class FakeSession:
    """Records forwarded requests instead of sending them."""

    def __init__(self, fail=(), statuses=None, on_post=None):
        self.fail = set(fail)
        self.statuses = statuses or {}
        self.on_post = on_post
        self.calls = []
        self._lock = threading.Lock()

    def post(self, url, data=None, headers=None, timeout=None):
        with self._lock:
            self.calls.append({'url': url, 'data': data, 'headers': headers, 'timeout': timeout})
        if self.on_post:
            self.on_post(url)
        if url in self.fail:
            raise requests.ConnectionError(f"Connection refused: {url}")
        return FakeResponse(self.statuses.get(url, 200))

    @property
    def urls(self):
        return [call['url'] for call in self.calls]


def make_output(debug=True):
    return Output(
        debug=debug,
        console=Console(file=io.StringIO(), width=200),
        error_console=Console(file=io.StringIO(), width=200),
    )


def stdout_of(output):
    return output.console.file.getvalue()


def stderr_of(output):
    return output.error_console.file.getvalue()


@pytest.fixture
def output():
    return make_output()


@pytest.fixture
def session():
    return FakeSession()
