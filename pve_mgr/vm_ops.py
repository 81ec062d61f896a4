#!/usr/bin/env python3
"""Virtual machine (QEMU) operations for PVE Resource Manager."""

import time
from typing import Any, Callable, Dict, List, Optional

from .base_ops import BaseOperations
from .inventory import InventoryAggregator
from .output import OutputFormatter, bytes_to_human
from .pve_api import (
    ErrorKind,
    InvalidInputError,
    ProxmoxVEClient,
    ProxmoxVEError,
    ResourceNotFoundError,
    classify,
    response_data,
)
from .records import to_int

# Storage types that hold qcow2 images and a cloud-init drive
FILE_STORAGE_TYPES = ('dir', 'nfs', 'cifs')
BLOCK_STORAGE_TYPES = ('lvm', 'lvmthin')


class VmOperations(BaseOperations):
    """High-level VM operations."""

    def __init__(self, client: ProxmoxVEClient, formatter: Optional[OutputFormatter] = None,
                 poll_interval: float = 1.0, sleep: Callable[[float], None] = time.sleep):
        """Initialize VmOperations.

        Args:
            client: Proxmox VE API client
            formatter: Output formatter
            poll_interval: Seconds to wait between agent exec and exec-status
            sleep: Sleep function (replaceable in tests)
        """
        super().__init__(client, formatter)
        self.inventory = InventoryAggregator(client, 'qemu')
        self.poll_interval = poll_interval
        self.sleep = sleep

    def _path(self, node: str, vmid: int, suffix: str = '') -> str:
        return f'/nodes/{node}/qemu/{vmid}{suffix}'

    def _raise_for(self, operation: str, node: str, vmid: int, error: Exception):
        if isinstance(error, (InvalidInputError, ResourceNotFoundError)):
            raise error
        if classify(error) is ErrorKind.NOT_FOUND:
            self.logger.error(f"Failed to {operation}: {error}")
            raise ResourceNotFoundError(f"VM {vmid} not found on node {node}") from error
        self.handle_error(operation, error)

    def _current_status(self, node: str, vmid: int) -> Dict[str, Any]:
        return self.get_data(self._path(node, vmid, '/status/current')) or {}

    # ============ Listing ============

    def list_vms(self) -> List[Dict[str, Any]]:
        """List VMs on every node with their configured core count."""
        vms = []
        for entry in self.inventory.list_inventory():
            record = entry.record
            if record.vmid is None:
                continue
            raw = record.raw
            try:
                config = self.get_data(self._path(entry.node, record.vmid, '/config')) or {}
                cpus = config.get('cores', 'N/A')
            except Exception as e:
                self.logger.debug(f"No config for VM {record.vmid} on {entry.node}: {e}")
                cpus = 'N/A'
            vms.append({
                'vmid': record.vmid,
                'name': record.label('vm'),
                'status': record.status or '',
                'node': entry.node,
                'cpus': cpus,
                'mem_used': to_int(raw.get('mem')) or 0,
                'mem_total': to_int(raw.get('maxmem')) or 0
            })
        return vms

    def get_vms(self, format_style: str = 'pretty') -> str:
        """Render the VM list as a table or JSON."""
        try:
            vms = self.list_vms()
        except Exception as e:
            self.handle_error("get VMs", e)

        if (format_style or '').lower() == 'json':
            return self.formatter.format_json(vms)
        if not vms:
            return "No VMs found"

        rows = []
        for vm in vms:
            total = vm['mem_total']
            pct = vm['mem_used'] / total * 100 if total > 0 else 0.0
            rows.append({
                'vmid': vm['vmid'],
                'name': vm['name'],
                'node': vm['node'],
                'status': str(vm['status']).upper(),
                'cpu_cores': vm['cpus'],
                'memory': f"{bytes_to_human(vm['mem_used'])} / {bytes_to_human(total)} ({pct:.1f}%)"
            })
        return self.formatter.format_table(rows, title="Virtual Machines")

    # ============ Lifecycle ============

    @staticmethod
    def _pick_storage(storages: List[Dict[str, Any]]) -> Optional[str]:
        for preferred in ('local-lvm', 'vm-storage'):
            for store in storages:
                if store.get('storage') == preferred and 'images' in str(store.get('content') or ''):
                    return preferred
        for store in storages:
            if 'images' in str(store.get('content') or ''):
                return store.get('storage')
        return None

    def create_vm(self, node: str, vmid: int, name: str, cpus: int, memory: int, disk_size: int,
                  storage: Optional[str] = None, ostype: Optional[str] = None,
                  network_bridge: Optional[str] = None) -> str:
        """Create a new VM.

        Args:
            node: Target node
            vmid: New VM id; must not already exist on the node
            name: VM name
            cpus: CPU cores
            memory: Memory in MiB
            disk_size: Disk size in GB
            storage: Disk storage; picked automatically when empty
            ostype: Guest OS type (default l26)
            network_bridge: Bridge for net0 (default vmbr0)

        Returns:
            Creation summary

        Raises:
            InvalidInputError: If the id exists or the storage is unusable
        """
        try:
            try:
                self.client.get(self._path(node, vmid, '/config'))
            except Exception as e:
                if classify(e) is not ErrorKind.NOT_FOUND:
                    raise
            else:
                raise InvalidInputError(f"VM {vmid} already exists on node {node}")

            storages = self.get_data(f'/nodes/{node}/storage') or []
            storage_info = {s.get('storage'): s for s in storages}

            if not storage:
                storage = self._pick_storage(storages)
                if storage is None:
                    raise InvalidInputError("No suitable storage found for VM images")

            selected = storage_info.get(storage)
            if selected is None:
                raise InvalidInputError(f"Storage '{storage}' not found on node {node}")
            if 'images' not in str(selected.get('content') or ''):
                raise InvalidInputError(f"Storage '{storage}' does not support VM images")

            storage_type = selected.get('type') or 'unknown'
            disk_format = 'qcow2' if storage_type in FILE_STORAGE_TYPES else 'raw'
            ostype = ostype or 'l26'
            network_bridge = network_bridge or 'vmbr0'

            vm_config = {
                'vmid': vmid,
                'name': name,
                'cores': cpus,
                'memory': memory,
                'ostype': ostype,
                'scsihw': 'virtio-scsi-pci',
                'boot': 'order=scsi0',
                'agent': 1,
                'vga': 'std',
                'net0': f"virtio,bridge={network_bridge}",
                'scsi0': f"{storage}:{disk_size},format={disk_format}"
            }
            if storage_type in FILE_STORAGE_TYPES:
                vm_config['ide2'] = f"{storage}:cloudinit"

            task = response_data(self.client.post(f'/nodes/{node}/qemu', vm_config))
        except InvalidInputError:
            raise
        except Exception as e:
            self.handle_error(f"create VM {vmid}", e)

        agent_line = "Enabled"
        if storage_type in BLOCK_STORAGE_TYPES:
            agent_line += "\n  Note: LVM storage does not support cloud-init image"

        return self.formatter.render_block(f"VM {vmid} created successfully.", {
            'Name': name,
            'Node': node,
            'VM ID': vmid,
            'CPU Cores': cpus,
            'Memory': f"{memory} MB ({memory / 1024.0:.1f} GB)",
            'Disk': f"{disk_size} GB ({storage}, {disk_format} format)",
            'Storage Type': storage_type,
            'OS Type': ostype,
            'Network': f"virtio (bridge={network_bridge})",
            'QEMU Agent': agent_line
        }, footer=(f"Task ID: {task}\n\n"
                   "Next steps:\n"
                   "  1. Upload an ISO to install the operating system\n"
                   f"  2. Start the VM: pve-mgr vm start {node} {vmid}\n"
                   "  3. Access the console to complete OS installation"))

    def _power(self, action: str, node: str, vmid: int, skip_status: str, skip_message: str,
               done_message: str) -> str:
        try:
            status = self._current_status(node, vmid)
            if str(status.get('status') or '').lower() == skip_status:
                return skip_message
            task = response_data(self.client.post(self._path(node, vmid, f'/status/{action}')))
            return f"{done_message}\nTask ID: {task}"
        except Exception as e:
            self._raise_for(f"{action} VM {vmid}", node, vmid, e)

    def start_vm(self, node: str, vmid: int) -> str:
        """Start a VM unless it is already running."""
        return self._power('start', node, vmid, 'running',
                           f"VM {vmid} is already running",
                           f"VM {vmid} start initiated successfully")

    def stop_vm(self, node: str, vmid: int) -> str:
        """Hard-stop a VM unless it is already stopped."""
        return self._power('stop', node, vmid, 'stopped',
                           f"VM {vmid} is already stopped",
                           f"VM {vmid} stop initiated successfully")

    def shutdown_vm(self, node: str, vmid: int) -> str:
        """Gracefully shut down a VM via ACPI."""
        return self._power('shutdown', node, vmid, 'stopped',
                           f"VM {vmid} is already stopped",
                           f"VM {vmid} graceful shutdown initiated")

    def reset_vm(self, node: str, vmid: int) -> str:
        """Hard-reset a running VM; a stopped VM is refused."""
        return self._power('reset', node, vmid, 'stopped',
                           f"Cannot reset VM {vmid}: VM is currently stopped\n"
                           f"Use 'pve-mgr vm start' to start it first",
                           f"VM {vmid} reset initiated successfully")

    def delete_vm(self, node: str, vmid: int, force: bool = False) -> str:
        """Delete a VM with its disks and snapshots.

        Args:
            node: Node name
            vmid: VM id
            force: Stop a running VM before deleting it

        Returns:
            Deletion summary

        Raises:
            InvalidInputError: If the VM is running and force is not set
        """
        try:
            status = self._current_status(node, vmid)
            vm_name = status.get('name') or f"VM-{vmid}"
            label = f"{vmid} ({vm_name})"

            if str(status.get('status') or '').lower() == 'running':
                if not force:
                    raise InvalidInputError(
                        f"VM {label} is currently running. "
                        f"Please stop it first or use force=true to stop and delete.")
                self.client.post(self._path(node, vmid, '/status/stop'))
                lines = [f"Stopping VM {label} before deletion..."]
            else:
                lines = [f"Deleting VM {label}..."]

            task = response_data(self.client.delete(self._path(node, vmid)))
        except Exception as e:
            self._raise_for(f"delete VM {vmid}", node, vmid, e)

        lines.extend([
            f"VM {label} deletion initiated successfully.",
            "",
            "WARNING: This operation will permanently remove:",
            "  VM configuration",
            "  All virtual disks",
            "  All snapshots",
            "  Cannot be undone!",
            "",
            f"Task ID: {task}",
            "",
            f"VM {label} is being deleted from node {node}"
        ])
        return '\n'.join(lines)

    # ============ Guest agent ============

    def run_agent_command(self, node: str, vmid: int, command: str) -> Dict[str, Any]:
        """Run a command through the QEMU guest agent.

        Returns:
            Dict with success, output, error and exit_code
        """
        status = self._current_status(node, vmid)
        if str(status.get('status') or '').lower() != 'running':
            raise InvalidInputError(f"VM {vmid} on node {node} is not running")

        self.logger.info(f"Executing command on VM {vmid} (node: {node}): {command}")
        result = self.post_data(self._path(node, vmid, '/agent/exec'), {'command': command})
        pid = result.get('pid') if isinstance(result, dict) else None
        if pid is None:
            raise ProxmoxVEError("No PID returned from command execution")

        self.sleep(self.poll_interval)

        console = self.get_data(self._path(node, vmid, '/agent/exec-status'), {'pid': pid})
        if isinstance(console, dict):
            return {
                'success': True,
                'output': console.get('out-data') or '',
                'error': console.get('err-data') or '',
                'exit_code': int(console.get('exitcode') or 0)
            }
        return {
            'success': True,
            'output': '' if console is None else str(console),
            'error': '',
            'exit_code': 0
        }

    def execute_command(self, node: str, vmid: int, command: str) -> str:
        """Run a guest-agent command and render its output."""
        try:
            result = self.run_agent_command(node, vmid, command)
        except Exception as e:
            self._raise_for(f"execute command on VM {vmid}", node, vmid, e)

        lines = [
            "Console Command Result",
            f"  Status: {'SUCCESS' if result['success'] else 'FAILED'}",
            f"  Command: {command}",
            "",
            "Output:",
            str(result['output']).strip()
        ]
        if str(result['error']).strip():
            lines.extend(["", "Error:", str(result['error']).strip()])
        return '\n'.join(lines)
