#!/usr/bin/env python3
"""
PVE Resource Manager - CLI for managing Proxmox VE containers, VMs,
snapshots, backups and ISO images across all cluster nodes.

Usage:
    pve-mgr ct list [--node=<node>] [--no-stats] [--raw]
    pve-mgr ct start <selector>
    pve-mgr ct stop <selector> [--hard] [--timeout=<sec>]
    pve-mgr ct restart <selector>
    pve-mgr ct create <node> <vmid> <ostemplate> [options]
    pve-mgr ct delete <selector> [--force]
    pve-mgr ct update <selector> [--cores=<n>] [--memory=<mib>] [--swap=<mib>] [--disk-gb=<gb>]

    pve-mgr vm list
    pve-mgr vm create <node> <vmid> <name> [--cpus=<n>] [--memory=<mib>] [--disk-size=<gb>]
    pve-mgr vm start|stop|shutdown|reset <node> <vmid>
    pve-mgr vm delete <node> <vmid> [--force]
    pve-mgr vm exec <node> <vmid> <command>

    pve-mgr snapshot list|create|delete|rollback <node> <vmid> [<name>] [--type=qemu|lxc]
    pve-mgr backup list|create|restore|delete ...
    pve-mgr iso list|templates|download|delete ...

Selectors:
    101             id on any node
    pve1:101        id on one node
    pve1/web        name on one node
    web             name on any node
    101,pve2:102    comma-separated combination

Environment Variables:
    PVE_HOST, PVE_USERNAME, PVE_PASSWORD, PVE_API_TOKEN_ID,
    PVE_API_TOKEN_SECRET, PVE_VERIFY_SSL, PVE_TIMEOUT
"""

import argparse
import logging
import sys
from typing import Optional

from . import __version__
from .backup_ops import BackupOperations
from .config import Config, get_config
from .container_ops import ContainerOperations
from .iso_ops import IsoOperations
from .output import get_formatter
from .pve_api import ProxmoxVEClient
from .snapshot_ops import SnapshotOperations
from .vm_ops import VmOperations

logger = logging.getLogger(__name__)


class PveManager:
    """Main application class."""

    def __init__(self, config: Optional[Config] = None, config_path: Optional[str] = None,
                 output_format: Optional[str] = None, client: Optional[ProxmoxVEClient] = None,
                 assume_yes: bool = False):
        """Initialize the manager.

        Args:
            config: Config instance. If None, loaded from config_path/defaults.
            config_path: Path to config file
            output_format: Output format (pretty, json); defaults to config
            client: API client. If None, built from config.
            assume_yes: Skip confirmation prompts
        """
        self.config = config or get_config(config_path)
        self.output_format = (output_format or self.config.output_format).lower()
        self.client = client or ProxmoxVEClient.from_config(self.config)
        self.formatter = get_formatter(self.output_format)
        self.assume_yes = assume_yes
        self.ct_ops = ContainerOperations(self.client, self.formatter)
        self.vm_ops = VmOperations(self.client, self.formatter)
        self.snapshot_ops = SnapshotOperations(self.client, self.formatter)
        self.backup_ops = BackupOperations(self.client, self.formatter)
        self.iso_ops = IsoOperations(self.client, self.formatter)

    def close(self) -> None:
        self.client.close()

    def _confirmed(self, message: str) -> bool:
        if self.assume_yes:
            return True
        if self.formatter.confirm(message):
            return True
        self.formatter.print_warning("Cancelled")
        return False

    # ============ Container Commands ============

    def ct_list(self, node: str = None, stats: bool = True, raw: bool = False):
        """List containers."""
        print(self.ct_ops.get_containers(node=node, include_stats=stats, include_raw=raw,
                                         format_style=self.output_format))

    def ct_start(self, selector: str):
        print(self.ct_ops.start_container(selector, self.output_format))

    def ct_stop(self, selector: str, hard: bool = False, timeout: int = 10):
        print(self.ct_ops.stop_container(selector, graceful=not hard, timeout_seconds=timeout,
                                         format_style=self.output_format))

    def ct_restart(self, selector: str):
        print(self.ct_ops.restart_container(selector, self.output_format))

    def ct_create(self, args: argparse.Namespace):
        """Create a container from parsed arguments."""
        print(self.ct_ops.create_container(
            args.node, args.vmid, args.ostemplate,
            hostname=args.hostname, cores=args.cores, memory=args.memory, swap=args.swap,
            disk_size=args.disk_size, storage=args.storage, password=args.password,
            ssh_public_keys=args.ssh_keys, network_bridge=args.bridge,
            start_after_create=args.start, unprivileged=not args.privileged,
            format_style=self.output_format
        ))

    def ct_delete(self, selector: str, force: bool = False):
        """Delete containers after confirmation."""
        if not self._confirmed(f"Delete containers matching '{selector}'?"):
            return
        print(self.ct_ops.delete_container(selector, force=force, format_style=self.output_format))

    def ct_update(self, args: argparse.Namespace):
        print(self.ct_ops.update_container_resources(
            args.selector, cores=args.cores, memory=args.memory, swap=args.swap,
            disk_gb=args.disk_gb, disk=args.disk, format_style=self.output_format
        ))

    # ============ VM Commands ============

    def vm_list(self):
        print(self.vm_ops.get_vms(self.output_format))

    def vm_create(self, args: argparse.Namespace):
        print(self.vm_ops.create_vm(
            args.node, args.vmid, args.name, cpus=args.cpus, memory=args.memory,
            disk_size=args.disk_size, storage=args.storage, ostype=args.ostype,
            network_bridge=args.bridge
        ))

    def vm_power(self, action: str, node: str, vmid: int):
        """Run start/stop/shutdown/reset on one VM."""
        handler = {
            'start': self.vm_ops.start_vm,
            'stop': self.vm_ops.stop_vm,
            'shutdown': self.vm_ops.shutdown_vm,
            'reset': self.vm_ops.reset_vm
        }[action]
        print(handler(node, vmid))

    def vm_delete(self, node: str, vmid: int, force: bool = False):
        if not self._confirmed(f"Delete VM {vmid} on {node}? This cannot be undone"):
            return
        print(self.vm_ops.delete_vm(node, vmid, force=force))

    def vm_exec(self, node: str, vmid: int, command: str):
        print(self.vm_ops.execute_command(node, vmid, command))

    # ============ Snapshot Commands ============

    def snapshot_list(self, node: str, vmid: int, vm_type: str):
        print(self.snapshot_ops.list_snapshots(node, vmid, vm_type))

    def snapshot_create(self, node: str, vmid: int, name: str, description: str = None,
                        vmstate: bool = False, vm_type: str = 'qemu'):
        print(self.snapshot_ops.create_snapshot(node, vmid, name, description=description,
                                                vmstate=vmstate, vm_type=vm_type))

    def snapshot_delete(self, node: str, vmid: int, name: str, vm_type: str):
        if not self._confirmed(f"Delete snapshot '{name}' of {vm_type} {vmid}?"):
            return
        print(self.snapshot_ops.delete_snapshot(node, vmid, name, vm_type))

    def snapshot_rollback(self, node: str, vmid: int, name: str, vm_type: str):
        """Roll back after confirmation; newer child snapshots are removed."""
        if not self._confirmed(f"Roll back {vm_type} {vmid} to '{name}'? Newer snapshots will be deleted"):
            return
        print(self.snapshot_ops.rollback_snapshot(node, vmid, name, vm_type))

    # ============ Backup Commands ============

    def backup_list(self, node: str = None, storage: str = None, vmid: int = None):
        print(self.backup_ops.list_backups(node=node, storage=storage, vmid=vmid))

    def backup_create(self, args: argparse.Namespace):
        print(self.backup_ops.create_backup(args.node, args.vmid, args.storage,
                                            compress=args.compress, mode=args.mode,
                                            notes=args.notes))

    def backup_restore(self, args: argparse.Namespace):
        print(self.backup_ops.restore_backup(args.node, args.archive, args.vmid,
                                             storage=args.storage, unique=not args.keep_macs))

    def backup_delete(self, node: str, storage: str, volid: str):
        if not self._confirmed(f"Delete backup '{volid}'?"):
            return
        print(self.backup_ops.delete_backup(node, storage, volid))

    # ============ ISO Commands ============

    def iso_list(self, node: str = None, storage: str = None):
        print(self.iso_ops.list_isos(node=node, storage=storage))

    def iso_templates(self, node: str = None, storage: str = None):
        print(self.iso_ops.list_templates(node=node, storage=storage))

    def iso_download(self, args: argparse.Namespace):
        print(self.iso_ops.download_iso(args.node, args.storage, args.url, args.filename,
                                        checksum=args.checksum,
                                        checksum_algorithm=args.checksum_algorithm))

    def iso_delete(self, node: str, storage: str, filename: str):
        if not self._confirmed(f"Delete '{filename}' from {storage} on {node}?"):
            return
        print(self.iso_ops.delete_iso(node, storage, filename))


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser."""
    parser = argparse.ArgumentParser(
        prog='pve-mgr',
        description='PVE Resource Manager - manage Proxmox VE resources across cluster nodes'
    )
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    parser.add_argument('--config', help='Path to config file')
    parser.add_argument('-f', '--format', choices=['pretty', 'json'], default=None,
                        help='Output format for container commands and vm list; other commands '
                             'print text, or a JSON error payload on failure (default: from config, else pretty)')
    parser.add_argument('-v', '--verbose', action='store_true', help='Enable debug logging')
    parser.add_argument('-y', '--yes', action='store_true', help='Do not ask for confirmation')

    subparsers = parser.add_subparsers(dest='command', help='Commands')

    # Container commands
    ct_parser = subparsers.add_parser('ct', help='LXC container operations')
    ct_sub = ct_parser.add_subparsers(dest='ct_action')

    ct_list = ct_sub.add_parser('list', help='List containers')
    ct_list.add_argument('--node', help='Only list this node')
    ct_list.add_argument('--no-stats', action='store_true', help='Skip CPU/memory statistics')
    ct_list.add_argument('--raw', action='store_true', help='Include raw status/config (json only)')

    ct_start = ct_sub.add_parser('start', help='Start containers')
    ct_start.add_argument('selector', help='Container selector')

    ct_stop = ct_sub.add_parser('stop', help='Stop containers')
    ct_stop.add_argument('selector', help='Container selector')
    ct_stop.add_argument('--hard', action='store_true', help='Hard stop instead of shutdown')
    ct_stop.add_argument('--timeout', type=int, default=10, help='Shutdown timeout (default: 10)')

    ct_restart = ct_sub.add_parser('restart', help='Reboot containers')
    ct_restart.add_argument('selector', help='Container selector')

    ct_create = ct_sub.add_parser('create', help='Create a container')
    ct_create.add_argument('node', help='Target node')
    ct_create.add_argument('vmid', type=int, help='New container ID')
    ct_create.add_argument('ostemplate', help='Template volume ID')
    ct_create.add_argument('--hostname', help='Hostname (default: ct-<vmid>)')
    ct_create.add_argument('--cores', type=int, default=1, help='CPU cores (default: 1)')
    ct_create.add_argument('--memory', type=int, default=512, help='Memory MiB (default: 512)')
    ct_create.add_argument('--swap', type=int, default=512, help='Swap MiB (default: 512)')
    ct_create.add_argument('--disk-size', type=int, default=8, help='Root disk GB (default: 8)')
    ct_create.add_argument('--storage', help='Root disk storage (default: auto)')
    ct_create.add_argument('--password', help='Root password')
    ct_create.add_argument('--ssh-keys', help='SSH public keys for root')
    ct_create.add_argument('--bridge', help='Network bridge (default: vmbr0)')
    ct_create.add_argument('--start', action='store_true', help='Start after creation')
    ct_create.add_argument('--privileged', action='store_true', help='Create a privileged container')

    ct_delete = ct_sub.add_parser('delete', help='Delete containers')
    ct_delete.add_argument('selector', help='Container selector')
    ct_delete.add_argument('--force', action='store_true', help='Stop running containers first')

    ct_update = ct_sub.add_parser('update', help='Update container resources')
    ct_update.add_argument('selector', help='Container selector')
    ct_update.add_argument('--cores', type=int, help='CPU cores')
    ct_update.add_argument('--memory', type=int, help='Memory MiB')
    ct_update.add_argument('--swap', type=int, help='Swap MiB')
    ct_update.add_argument('--disk-gb', type=int, help='GiB to add to the disk')
    ct_update.add_argument('--disk', help='Disk to grow (default: rootfs)')

    # VM commands
    vm_parser = subparsers.add_parser('vm', help='QEMU VM operations')
    vm_sub = vm_parser.add_subparsers(dest='vm_action')

    vm_sub.add_parser('list', help='List VMs')

    vm_create = vm_sub.add_parser('create', help='Create a VM')
    vm_create.add_argument('node', help='Target node')
    vm_create.add_argument('vmid', type=int, help='New VM ID')
    vm_create.add_argument('name', help='VM name')
    vm_create.add_argument('--cpus', type=int, default=2, help='CPU cores (default: 2)')
    vm_create.add_argument('--memory', type=int, default=2048, help='Memory MiB (default: 2048)')
    vm_create.add_argument('--disk-size', type=int, default=32, help='Disk GB (default: 32)')
    vm_create.add_argument('--storage', help='Disk storage (default: auto)')
    vm_create.add_argument('--ostype', help='OS type (default: l26)')
    vm_create.add_argument('--bridge', help='Network bridge (default: vmbr0)')

    for action, help_text in (('start', 'Start a VM'), ('stop', 'Hard-stop a VM'),
                              ('shutdown', 'Gracefully shut down a VM'), ('reset', 'Reset a VM')):
        power = vm_sub.add_parser(action, help=help_text)
        power.add_argument('node', help='Node name')
        power.add_argument('vmid', type=int, help='VM ID')

    vm_delete = vm_sub.add_parser('delete', help='Delete a VM')
    vm_delete.add_argument('node', help='Node name')
    vm_delete.add_argument('vmid', type=int, help='VM ID')
    vm_delete.add_argument('--force', action='store_true', help='Stop a running VM first')

    vm_exec = vm_sub.add_parser('exec', help='Run a command via the guest agent')
    vm_exec.add_argument('node', help='Node name')
    vm_exec.add_argument('vmid', type=int, help='VM ID')
    vm_exec.add_argument('exec_command', metavar='command', help='Command to run')

    # Snapshot commands
    snap_parser = subparsers.add_parser('snapshot', help='Snapshot operations')
    snap_sub = snap_parser.add_subparsers(dest='snapshot_action')

    for action, help_text, named in (('list', 'List snapshots', False),
                                     ('create', 'Create a snapshot', True),
                                     ('delete', 'Delete a snapshot', True),
                                     ('rollback', 'Roll back to a snapshot', True)):
        snap = snap_sub.add_parser(action, help=help_text)
        snap.add_argument('node', help='Node name')
        snap.add_argument('vmid', type=int, help='VM or container ID')
        if named:
            snap.add_argument('name', help='Snapshot name')
        snap.add_argument('--type', dest='vm_type', choices=['qemu', 'lxc'], default='qemu',
                          help='Resource type (default: qemu)')
        if action == 'create':
            snap.add_argument('--description', help='Snapshot description')
            snap.add_argument('--vmstate', action='store_true', help='Include RAM state (VMs only)')

    # Backup commands
    backup_parser = subparsers.add_parser('backup', help='Backup operations')
    backup_sub = backup_parser.add_subparsers(dest='backup_action')

    backup_list = backup_sub.add_parser('list', help='List backups')
    backup_list.add_argument('--node', help='Node filter')
    backup_list.add_argument('--storage', help='Storage filter')
    backup_list.add_argument('--vmid', type=int, help='VM/CT ID filter')

    backup_create = backup_sub.add_parser('create', help='Start a backup')
    backup_create.add_argument('node', help='Node name')
    backup_create.add_argument('vmid', type=int, help='VM/CT ID')
    backup_create.add_argument('--storage', required=True, help='Backup storage')
    backup_create.add_argument('--compress', default='zstd', help='Compression (default: zstd)')
    backup_create.add_argument('--mode', default='snapshot', choices=['snapshot', 'suspend', 'stop'],
                               help='Backup mode (default: snapshot)')
    backup_create.add_argument('--notes', help='Backup notes')

    backup_restore = backup_sub.add_parser('restore', help='Restore a backup')
    backup_restore.add_argument('node', help='Target node')
    backup_restore.add_argument('archive', help='Backup volume ID')
    backup_restore.add_argument('vmid', type=int, help='New VM/CT ID')
    backup_restore.add_argument('--storage', help='Target storage')
    backup_restore.add_argument('--keep-macs', action='store_true', help='Keep original MAC addresses')

    backup_delete = backup_sub.add_parser('delete', help='Delete a backup')
    backup_delete.add_argument('node', help='Node name')
    backup_delete.add_argument('storage', help='Storage name')
    backup_delete.add_argument('volid', help='Backup volume ID')

    # ISO commands
    iso_parser = subparsers.add_parser('iso', help='ISO image and template operations')
    iso_sub = iso_parser.add_subparsers(dest='iso_action')

    for action, help_text in (('list', 'List ISO images'), ('templates', 'List OS templates')):
        listing = iso_sub.add_parser(action, help=help_text)
        listing.add_argument('--node', help='Node filter')
        listing.add_argument('--storage', help='Storage filter')

    iso_download = iso_sub.add_parser('download', help='Download an ISO from a URL')
    iso_download.add_argument('node', help='Node name')
    iso_download.add_argument('storage', help='Target storage')
    iso_download.add_argument('url', help='Source URL')
    iso_download.add_argument('filename', help='Target file name')
    iso_download.add_argument('--checksum', help='Expected checksum')
    iso_download.add_argument('--checksum-algorithm', default='sha256',
                              help='Checksum algorithm (default: sha256)')

    iso_delete = iso_sub.add_parser('delete', help='Delete an ISO image or template')
    iso_delete.add_argument('node', help='Node name')
    iso_delete.add_argument('storage', help='Storage name')
    iso_delete.add_argument('filename', help='File name or volume ID')

    return parser


def setup_logging(level: str, verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else getattr(logging, level, logging.WARNING),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def route(mgr: PveManager, parser: argparse.ArgumentParser, args: argparse.Namespace) -> None:
    """Dispatch parsed arguments to the manager."""
    if args.command == 'ct':
        if args.ct_action == 'list':
            mgr.ct_list(node=args.node, stats=not args.no_stats, raw=args.raw)
        elif args.ct_action == 'start':
            mgr.ct_start(args.selector)
        elif args.ct_action == 'stop':
            mgr.ct_stop(args.selector, hard=args.hard, timeout=args.timeout)
        elif args.ct_action == 'restart':
            mgr.ct_restart(args.selector)
        elif args.ct_action == 'create':
            mgr.ct_create(args)
        elif args.ct_action == 'delete':
            mgr.ct_delete(args.selector, force=args.force)
        elif args.ct_action == 'update':
            mgr.ct_update(args)
        else:
            parser.parse_args(['ct', '-h'])

    elif args.command == 'vm':
        if args.vm_action == 'list':
            mgr.vm_list()
        elif args.vm_action == 'create':
            mgr.vm_create(args)
        elif args.vm_action in ('start', 'stop', 'shutdown', 'reset'):
            mgr.vm_power(args.vm_action, args.node, args.vmid)
        elif args.vm_action == 'delete':
            mgr.vm_delete(args.node, args.vmid, force=args.force)
        elif args.vm_action == 'exec':
            mgr.vm_exec(args.node, args.vmid, args.exec_command)
        else:
            parser.parse_args(['vm', '-h'])

    elif args.command == 'snapshot':
        if args.snapshot_action == 'list':
            mgr.snapshot_list(args.node, args.vmid, args.vm_type)
        elif args.snapshot_action == 'create':
            mgr.snapshot_create(args.node, args.vmid, args.name, description=args.description,
                                vmstate=args.vmstate, vm_type=args.vm_type)
        elif args.snapshot_action == 'delete':
            mgr.snapshot_delete(args.node, args.vmid, args.name, args.vm_type)
        elif args.snapshot_action == 'rollback':
            mgr.snapshot_rollback(args.node, args.vmid, args.name, args.vm_type)
        else:
            parser.parse_args(['snapshot', '-h'])

    elif args.command == 'backup':
        if args.backup_action == 'list':
            mgr.backup_list(node=args.node, storage=args.storage, vmid=args.vmid)
        elif args.backup_action == 'create':
            mgr.backup_create(args)
        elif args.backup_action == 'restore':
            mgr.backup_restore(args)
        elif args.backup_action == 'delete':
            mgr.backup_delete(args.node, args.storage, args.volid)
        else:
            parser.parse_args(['backup', '-h'])

    elif args.command == 'iso':
        if args.iso_action == 'list':
            mgr.iso_list(node=args.node, storage=args.storage)
        elif args.iso_action == 'templates':
            mgr.iso_templates(node=args.node, storage=args.storage)
        elif args.iso_action == 'download':
            mgr.iso_download(args)
        elif args.iso_action == 'delete':
            mgr.iso_delete(args.node, args.storage, args.filename)
        else:
            parser.parse_args(['iso', '-h'])


def main(argv=None):
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    # Show help if no command
    if not args.command:
        parser.print_help()
        return

    # Initialize manager
    try:
        config = get_config(args.config)
        setup_logging(config.log_level, args.verbose)
        mgr = PveManager(config=config, output_format=args.format, assume_yes=args.yes)
    except Exception as e:
        print(f"Error initializing: {e}", file=sys.stderr)
        sys.exit(1)

    # Route commands
    try:
        route(mgr, parser, args)
    except KeyboardInterrupt:
        print("\nCancelled")
        sys.exit(130)
    except Exception as e:
        logger.debug("Command failed", exc_info=True)
        mgr.formatter.print_error(str(e))
        sys.exit(1)
    finally:
        mgr.close()


if __name__ == '__main__':
    main()
