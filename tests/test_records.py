"""Tests for listing-item parsing and the shared record types."""

import pytest

from pve_mgr.records import (
    ActionResult, HistorySample, ResolvedTarget, ResourceRecord, first_present, to_float, to_int
)


@pytest.mark.parametrize('value, expected', [
    (101, 101),
    ('101', 101),
    (' 7 ', 7),
    ('101.0', 101),
    (3.0, 3),
    (3.5, None),
    ('abc', None),
    ('', None),
    (None, None),
    (True, None),
    (False, None),
    ([1], None),
])
def test_to_int(value, expected):
    assert to_int(value) == expected


@pytest.mark.parametrize('value, expected', [
    ('0.25', 0.25),
    (2, 2.0),
    (None, 0.0),
    (True, 0.0),
    ('n/a', 0.0),
])
def test_to_float(value, expected):
    assert to_float(value) == expected


def test_to_float_custom_default():
    assert to_float(None, default=-1.0) == -1.0


@pytest.mark.parametrize('doc, expected', [
    ({'vmid': 101, 'id': 5}, 101),
    ({'vmid': None, 'id': 5}, 5),
    ({'id': 0}, 0),
    ({'name': 'web'}, 'fallback'),
    ({}, 'fallback'),
    (None, 'fallback'),
])
def test_first_present_skips_missing_and_none(doc, expected):
    assert first_present(doc, ('vmid', 'id'), default='fallback') == expected


@pytest.mark.parametrize('item, vmid', [
    ({'vmid': 101}, 101),
    ({'vmid': '101'}, 101),
    ({'id': '202'}, 202),
    ({'vmid': None, 'id': 303}, 303),
    ({'vmid': 'lxc/101'}, None),
    ({'name': 'orphan'}, None),
    (404, 404),
    ('405', 405),
])
def test_from_payload_vmid(item, vmid):
    assert ResourceRecord.from_payload(item).vmid == vmid


@pytest.mark.parametrize('item', ['abc', None, True, ['101'], 2.5])
def test_from_payload_rejects_unusable_items(item):
    assert ResourceRecord.from_payload(item) is None


def test_from_payload_keeps_fields_as_strings():
    item = {'vmid': 101, 'name': 7, 'status': 'running'}
    record = ResourceRecord.from_payload(item)

    assert (record.name, record.hostname, record.status) == ('7', None, 'running')
    assert record.raw == item
    assert record.raw is not item


def test_bare_id_payload_gets_minimal_raw():
    assert ResourceRecord.from_payload('405').raw == {'vmid': 405}


@pytest.mark.parametrize('record, expected', [
    (ResourceRecord(vmid=101, name='web', hostname='web.lan'), 'web'),
    (ResourceRecord(vmid=102, hostname='db'), 'db'),
    (ResourceRecord(vmid=103, name=''), ''),
    (ResourceRecord(vmid=104), 'ct-104'),
    (ResourceRecord(vmid=None), 'ct-?'),
])
def test_label_falls_back_to_prefixed_id(record, expected):
    assert record.label('ct') == expected


def test_resolved_target_key():
    target = ResolvedTarget('pve1', 101, 'web')
    assert target.key == ('pve1', 101)
    assert {target, ResolvedTarget('pve1', 101, 'web')} == {target}


def test_history_sample_empty():
    assert HistorySample().empty
    assert not HistorySample(cpu_pct=0.0).empty


def test_action_result_dict():
    result = ActionResult.for_target(ResolvedTarget('pve2', 201, 'web'))
    result.message = 'UPID:pve2:task'
    assert result.to_dict() == {'ok': True, 'node': 'pve2', 'id': 201, 'name': 'web',
                                'message': 'UPID:pve2:task'}

    result.fail('CT 201 already running')
    assert result.to_dict() == {'ok': False, 'node': 'pve2', 'id': 201, 'name': 'web',
                                'error': 'CT 201 already running'}
