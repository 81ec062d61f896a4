"""Tests for the Proxmox VE transport client and error classification."""

import json
from urllib.parse import parse_qs

import httpx
import pytest

import pve_mgr
from pve_mgr.pve_api import (
    ErrorKind,
    ProxmoxVEClient,
    ProxmoxVEError,
    ResourceNotFoundError,
    classify,
    classify_message,
    response_data,
)

HOST = 'https://pve.example:8006'


def make_client(handler, **kwargs):
    kwargs.setdefault('api_token_id', 'root@pam!cli')
    kwargs.setdefault('api_token_secret', 'secret')
    return ProxmoxVEClient(HOST, transport=httpx.MockTransport(handler), **kwargs)


def test_token_auth_header_and_base_url():
    seen = {}

    def handler(request):
        seen['url'] = str(request.url)
        seen['auth'] = request.headers.get('Authorization')
        return httpx.Response(200, json={'data': [{'node': 'pve1'}]})

    with make_client(handler) as client:
        envelope = client.get('/nodes')

    assert response_data(envelope) == [{'node': 'pve1'}]
    assert seen['url'] == f'{HOST}/api2/json/nodes'
    assert seen['auth'] == 'PVEAPIToken=root@pam!cli=secret'


def test_user_agent_carries_package_version():
    seen = {}

    def handler(request):
        seen['agent'] = request.headers.get('User-Agent')
        return httpx.Response(200, json={'data': []})

    with make_client(handler) as client:
        client.get('/version')

    assert seen['agent'] == f'PVE-Resource-Manager/{pve_mgr.__version__}'


def test_ticket_auth_sets_cookie_and_csrf_token():
    requests = []

    def handler(request):
        requests.append(request)
        if request.url.path.endswith('/access/ticket'):
            return httpx.Response(200, json={'data': {'ticket': 'T1', 'CSRFPreventionToken': 'C1'}})
        return httpx.Response(200, json={'data': 'UPID:x'})

    client = make_client(handler, api_token_id=None, api_token_secret=None,
                         username='root@pam', password='pw')
    client.post('/nodes/pve1/lxc/101/status/start')
    client.close()

    login, action = requests
    assert parse_qs(login.content.decode()) == {'username': ['root@pam'], 'password': ['pw']}
    assert 'PVEAuthCookie=T1' in action.headers.get('Cookie', '')
    assert action.headers.get('CSRFPreventionToken') == 'C1'


def test_expired_ticket_is_renewed_once():
    counts = {'login': 0, 'get': 0}

    def handler(request):
        if request.url.path.endswith('/access/ticket'):
            counts['login'] += 1
            return httpx.Response(200, json={'data': {'ticket': f"T{counts['login']}"}})
        counts['get'] += 1
        if counts['get'] == 1:
            return httpx.Response(401)
        return httpx.Response(200, json={'data': []})

    client = make_client(handler, api_token_id=None, api_token_secret=None,
                         username='root@pam', password='pw')
    assert response_data(client.get('/nodes')) == []
    assert counts == {'login': 2, 'get': 2}


def test_none_form_values_are_dropped():
    bodies = []

    def handler(request):
        bodies.append(parse_qs(request.content.decode()))
        return httpx.Response(200, json={'data': None})

    client = make_client(handler)
    client.post('/nodes/pve1/vzdump', {'vmid': 101, 'notes-template': None})
    assert bodies == [{'vmid': ['101']}]


@pytest.mark.parametrize('status, kind', [
    (403, ErrorKind.PERMISSION_DENIED),
    (404, ErrorKind.NOT_FOUND),
    (400, ErrorKind.INVALID),
])
def test_http_status_sets_error_kind(status, kind):
    client = make_client(lambda request: httpx.Response(status, json={'data': None}))
    with pytest.raises(ProxmoxVEError) as exc_info:
        client.get('/nodes')
    assert exc_info.value.kind is kind
    assert str(status) in str(exc_info.value)


def test_server_error_is_classified_from_message():
    def handler(request):
        return httpx.Response(500, json={'data': None},
                              extensions={'reason_phrase': b"Configuration file does not exist"})

    client = make_client(handler)
    with pytest.raises(ProxmoxVEError) as exc_info:
        client.get('/nodes/pve1/qemu/999/config')
    assert classify(exc_info.value) is ErrorKind.NOT_FOUND


def test_in_band_errors_raise():
    client = make_client(lambda request: httpx.Response(200, json={'data': None, 'errors': {'vmid': 'invalid'}}))
    with pytest.raises(ProxmoxVEError, match='invalid'):
        client.post('/nodes/pve1/lxc', {'vmid': 'x'})


def test_non_json_body_raises():
    client = make_client(lambda request: httpx.Response(200, content=b'<html>'))
    with pytest.raises(ProxmoxVEError, match='Invalid JSON'):
        client.get('/nodes')


def test_network_error_is_wrapped():
    def handler(request):
        raise httpx.ConnectError('connection refused', request=request)

    client = make_client(handler)
    with pytest.raises(ProxmoxVEError, match='Network error'):
        client.get('/nodes')


def test_query_params_are_sent():
    seen = {}

    def handler(request):
        seen.update(parse_qs(request.url.query.decode()))
        return httpx.Response(200, content=json.dumps({'data': []}).encode())

    client = make_client(handler)
    client.get('/nodes/pve1/lxc/101/rrddata', {'timeframe': 'hour', 'cf': 'AVERAGE'})
    assert seen == {'timeframe': ['hour'], 'cf': ['AVERAGE']}


@pytest.mark.parametrize('message, kind', [
    ("VM 100 not found", ErrorKind.NOT_FOUND),
    ("Configuration file 'x.conf' does not exist", ErrorKind.NOT_FOUND),
    ("Permission denied (403)", ErrorKind.PERMISSION_DENIED),
    ("invalid format - value 'x'", ErrorKind.INVALID),
    ("timeout", ErrorKind.OTHER),
    (None, ErrorKind.OTHER),
])
def test_classify_message(message, kind):
    assert classify_message(message) is kind


def test_classify_prefers_explicit_kind():
    assert classify(ResourceNotFoundError("gone")) is ErrorKind.NOT_FOUND
    assert classify(RuntimeError("permission denied")) is ErrorKind.PERMISSION_DENIED


def test_response_data_tolerates_missing_envelope():
    assert response_data(None) is None
    assert response_data({'data': 5}) == 5
