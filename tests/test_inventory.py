"""Tests for node-by-node inventory collection."""

import logging

import pytest

from pve_mgr.inventory import InventoryAggregator, StorageContentAggregator
from pve_mgr.pve_api import ProxmoxVEError


def test_inventory_walks_every_node_in_order(cluster):
    entries = InventoryAggregator(cluster, 'lxc').list_inventory()

    assert [(e.node, e.record.vmid) for e in entries] == [
        ('pve1', 101), ('pve1', 102), ('pve2', 101), ('pve2', 201), ('pve2', 203)
    ]
    assert entries[1].record.display_name == 'db'


def test_bare_number_items_become_minimal_records(cluster):
    entries = InventoryAggregator(cluster, 'lxc').list_inventory('pve2')
    bare = entries[-1].record
    assert bare.vmid == 203
    assert bare.name is None and bare.status is None
    assert bare.label('ct') == 'ct-203'


def test_node_filter_skips_node_listing(cluster):
    InventoryAggregator(cluster, 'lxc').list_inventory('pve1')
    assert cluster.paths('GET') == ['/nodes/pve1/lxc']


def test_failing_node_is_skipped_and_logged(cluster, caplog):
    cluster.route('GET', '/nodes/pve1/lxc', ProxmoxVEError("node offline"))

    with caplog.at_level(logging.WARNING):
        entries = InventoryAggregator(cluster, 'lxc').list_inventory()

    assert {e.node for e in entries} == {'pve2'}
    assert 'Skipping node pve1 while listing lxc' in caplog.text


def test_every_node_failing_yields_empty_inventory(cluster):
    cluster.route('GET', '/nodes/pve1/lxc', ProxmoxVEError("down"))
    cluster.route('GET', '/nodes/pve2/lxc', ProxmoxVEError("down"))
    assert InventoryAggregator(cluster, 'lxc').list_inventory() == []


def test_node_list_failure_propagates(fake_client):
    fake_client.route('GET', '/nodes', ProxmoxVEError("Permission denied"))
    with pytest.raises(ProxmoxVEError):
        InventoryAggregator(fake_client).list_inventory()


def test_node_entries_without_name_are_ignored(fake_client):
    fake_client.route('GET', '/nodes', [{'node': 'pve1'}, {'status': 'online'}, 'junk'])
    assert InventoryAggregator(fake_client).list_nodes() == ['pve1']


def test_unknown_kind_is_rejected(fake_client):
    with pytest.raises(ValueError):
        InventoryAggregator(fake_client, 'docker')


@pytest.fixture
def storage_cluster(fake_client):
    fake_client.route('GET', '/nodes', [{'node': 'pve1'}, {'node': 'pve2'}])
    fake_client.route('GET', '/nodes/pve1/storage', [
        {'storage': 'local', 'content': 'iso,vztmpl,backup'},
        {'storage': 'local-lvm', 'content': 'images,rootdir'},
    ])
    fake_client.route('GET', '/nodes/pve2/storage', ProxmoxVEError("node offline"))
    fake_client.route('GET', '/nodes/pve1/storage/local/content',
                      lambda params: [{'volid': f"local:{params['content']}/a", 'vmid': params.get('vmid')}])
    return fake_client


def test_content_is_annotated_with_node_and_storage(storage_cluster):
    items = StorageContentAggregator(storage_cluster).list_content('iso')

    assert items == [{'volid': 'local:iso/a', 'vmid': None, '_node': 'pve1', '_storage': 'local'}]
    assert '/nodes/pve1/storage/local-lvm/content' not in storage_cluster.paths('GET')


def test_content_extra_params_are_passed_through(storage_cluster):
    StorageContentAggregator(storage_cluster).list_content('backup', extra_params={'vmid': 101})
    assert storage_cluster.calls_to('GET', '/nodes/pve1/storage/local/content') == [
        {'content': 'backup', 'vmid': 101}
    ]


def test_content_filters_by_storage(storage_cluster):
    assert StorageContentAggregator(storage_cluster).list_content('iso', storage='nas') == []


def test_middle_node_failure_keeps_outer_nodes(fake_client):
    fake_client.route('GET', '/nodes', [{'node': 'a'}, {'node': 'b'}, {'node': 'c'}])
    fake_client.route('GET', '/nodes/a/qemu', [{'vmid': 1}])
    fake_client.route('GET', '/nodes/b/qemu', ProxmoxVEError("unreachable"))
    fake_client.route('GET', '/nodes/c/qemu', [{'vmid': 3}])

    entries = InventoryAggregator(fake_client, 'qemu').list_inventory()

    assert [(e.node, e.record.vmid) for e in entries] == [('a', 1), ('c', 3)]


def test_malformed_storage_entry_skips_only_that_entry(fake_client, caplog):
    fake_client.route('GET', '/nodes', [{'node': 'pve1'}, {'node': 'pve2'}])
    fake_client.route('GET', '/nodes/pve1/storage', ['garbage'])
    fake_client.route('GET', '/nodes/pve2/storage', [{'storage': 'local', 'content': 'iso'}])
    fake_client.route('GET', '/nodes/pve2/storage/local/content', [{'volid': 'local:iso/a.iso'}, 'junk'])

    with caplog.at_level(logging.WARNING):
        items = StorageContentAggregator(fake_client).list_content('iso')

    assert items == [{'volid': 'local:iso/a.iso', '_node': 'pve2', '_storage': 'local'}]
    assert 'Skipping unexpected storage entry on pve1' in caplog.text
