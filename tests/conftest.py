"""Pytest configuration and fixtures."""

from typing import Any, Dict, List, Optional, Tuple

import pytest

from pve_mgr.output import OutputFormatter
from pve_mgr.pve_api import ProxmoxVEError

DEFAULT_TASK = 'UPID:pve1:0000:task'


class FakeClient:
    """Stand-in for ProxmoxVEClient that serves canned data per (method, path).

    A route value may be plain data (wrapped in a {'data': ...} envelope), an
    exception instance (raised) or a callable taking the params/data dict.
    Unrouted GETs raise; unrouted changes return a task id.
    """

    def __init__(self, routes: Optional[Dict[Tuple[str, str], Any]] = None):
        self.routes: Dict[Tuple[str, str], Any] = dict(routes or {})
        self.calls: List[Tuple[str, str, Optional[Dict[str, Any]]]] = []
        self.closed = False

    def route(self, method: str, path: str, value: Any) -> None:
        self.routes[(method, path)] = value

    def _call(self, method: str, path: str, payload: Optional[Dict[str, Any]]):
        self.calls.append((method, path, payload))
        if (method, path) not in self.routes:
            if method == 'GET':
                raise ProxmoxVEError(f"No route for GET {path}")
            return {'data': DEFAULT_TASK}
        value = self.routes[(method, path)]
        if isinstance(value, Exception):
            raise value
        if callable(value):
            value = value(payload)
        return {'data': value}

    def get(self, path, params=None):
        return self._call('GET', path, params)

    def post(self, path, data=None):
        return self._call('POST', path, data)

    def put(self, path, data=None):
        return self._call('PUT', path, data)

    def delete(self, path, params=None):
        return self._call('DELETE', path, params)

    def close(self):
        self.closed = True

    def calls_to(self, method: str, path: str) -> List[Optional[Dict[str, Any]]]:
        return [payload for m, p, payload in self.calls if m == method and p == path]

    def paths(self, method: str) -> List[str]:
        return [p for m, p, _ in self.calls if m == method]


@pytest.fixture
def fake_client() -> FakeClient:
    return FakeClient()


@pytest.fixture
def cluster() -> FakeClient:
    """Two nodes with a few containers and VMs."""
    return FakeClient({
        ('GET', '/nodes'): [{'node': 'pve1'}, {'node': 'pve2'}],
        ('GET', '/nodes/pve1/lxc'): [
            {'vmid': '101', 'name': 'web', 'status': 'running'},
            {'vmid': 102, 'hostname': 'db', 'status': 'stopped'},
        ],
        ('GET', '/nodes/pve2/lxc'): [
            {'vmid': 101, 'name': 'web-replica', 'status': 'running'},
            {'vmid': 201, 'name': 'web', 'status': 'running'},
            203,
        ],
        ('GET', '/nodes/pve1/qemu'): [
            {'vmid': 100, 'name': 'win', 'status': 'running', 'mem': 1073741824, 'maxmem': 4294967296},
        ],
        ('GET', '/nodes/pve2/qemu'): [],
    })


@pytest.fixture
def formatter() -> OutputFormatter:
    return OutputFormatter('pretty')
