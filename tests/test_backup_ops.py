"""Tests for backup operations."""

import json

import pytest

from pve_mgr.backup_ops import BackupOperations, is_container_archive
from pve_mgr.pve_api import ProxmoxVEError

CONTENT = '/nodes/pve1/storage/nas/content'


@pytest.fixture
def backups(fake_client):
    fake_client.route('GET', '/nodes', [{'node': 'pve1'}])
    fake_client.route('GET', '/nodes/pve1/storage', [
        {'storage': 'local', 'content': 'iso,vztmpl'},
        {'storage': 'nas', 'content': 'backup'},
    ])
    fake_client.route('GET', CONTENT, [
        {'volid': 'nas:backup/vzdump-lxc-101-old.tar.zst', 'vmid': 101, 'ctime': 1000,
         'size': 1048576, 'format': 'tar.zst'},
        {'volid': 'nas:backup/vzdump-qemu-100-new.vma.zst', 'vmid': 100, 'ctime': 2000,
         'size': 2048, 'format': 'vma.zst', 'notes': 'nightly', 'protected': 1},
    ])
    return fake_client


@pytest.fixture
def ops(backups, formatter):
    return BackupOperations(backups, formatter)


def test_list_newest_first(ops):
    text = ops.list_backups()
    lines = text.splitlines()

    assert lines[0] == 'Available Backups'
    assert text.index('vzdump-qemu-100-new') < text.index('vzdump-lxc-101-old')
    assert '     Size: 1.00 MiB' in lines
    assert '     Storage: nas @ pve1' in lines
    assert '     Notes: nightly' in lines
    assert '     Protected' in lines
    assert lines[-1] == "Use the Volume ID with 'pve-mgr backup restore' to restore."


def test_list_passes_vmid_filter(ops, backups):
    ops.list_backups(vmid=101)
    assert backups.calls_to('GET', CONTENT) == [{'content': 'backup', 'vmid': 101}]


@pytest.mark.parametrize('kwargs, message', [
    ({'storage': 'local'}, 'No backups found in storage local'),
    ({'node': 'pve1', 'storage': 'usb', 'vmid': 7}, 'No backups found on node pve1 in storage usb for VM/CT 7'),
])
def test_list_empty_messages(ops, kwargs, message):
    assert ops.list_backups(**kwargs) == message


def test_list_failure_is_an_error_payload(fake_client, formatter):
    fake_client.route('GET', '/nodes', ProxmoxVEError("Network error"))
    payload = json.loads(BackupOperations(fake_client, formatter).list_backups())
    assert payload['action'] == 'list backups'


def test_create_backup(ops, backups):
    text = ops.create_backup('pve1', 101, 'nas', notes='{{guestname}} manual')

    assert backups.calls_to('POST', '/nodes/pve1/vzdump') == [{
        'vmid': 101, 'storage': 'nas', 'compress': 'zstd', 'mode': 'snapshot',
        'notes-template': '{{guestname}} manual'
    }]
    assert text.startswith('Backup Started')
    assert '  Notes: {{guestname}} manual' in text


@pytest.mark.parametrize('archive, expected', [
    ('nas:backup/vzdump-lxc-101-2024_01_01.tar.zst', True),
    ('pbs:backup/ct/101/2024-01-01T00:00:00Z', True),
    ('nas:backup/vzdump-qemu-100-2024_01_01.vma.zst', False),
    ('pbs:backup/vm/100/2024-01-01T00:00:00Z', False),
])
def test_is_container_archive(archive, expected):
    assert is_container_archive(archive) is expected


def test_restore_container_archive(ops, backups):
    text = ops.restore_backup('pve1', 'nas:backup/vzdump-lxc-101-old.tar.zst', 301, storage='local-lvm')

    assert backups.calls_to('POST', '/nodes/pve1/lxc') == [{
        'archive': 'nas:backup/vzdump-lxc-101-old.tar.zst', 'vmid': 301,
        'storage': 'local-lvm', 'unique': 1
    }]
    assert text.startswith('Container Restore Started')


def test_restore_vm_archive(ops, backups):
    text = ops.restore_backup('pve1', 'nas:backup/vzdump-qemu-100-new.vma.zst', 300, unique=False)

    assert backups.calls_to('POST', '/nodes/pve1/qemu')[0]['unique'] is None
    assert '  Unique MACs: No' in text


def test_delete_protected_backup_is_refused(ops, backups):
    backups.route('GET', CONTENT, [{'volid': 'nas:backup/a', 'protected': 1}])

    text = ops.delete_backup('pve1', 'nas', 'nas:backup/a')

    assert text.startswith("Error: Backup 'nas:backup/a' is protected")
    assert backups.paths('DELETE') == []


def test_delete_backup(ops, backups):
    text = ops.delete_backup('pve1', 'nas', 'nas:backup/vzdump-lxc-101-old.tar.zst')

    assert backups.paths('DELETE') == [f'{CONTENT}/nas:backup/vzdump-lxc-101-old.tar.zst']
    assert text.startswith('Backup Deleted')
