#!/usr/bin/env python3
"""Container (LXC) operations for PVE Resource Manager."""

from typing import Any, Dict, List, Optional

from .base_ops import ActionRefused, BaseOperations
from .batch import BatchExecutor
from .inventory import InventoryAggregator
from .output import OutputFormatter
from .pve_api import ProxmoxVEClient, response_data
from .selector import SelectorResolver
from .stats import StatsEngine


class ContainerOperations(BaseOperations):
    """High-level container operations."""

    def __init__(self, client: ProxmoxVEClient, formatter: Optional[OutputFormatter] = None):
        super().__init__(client, formatter)
        self.inventory = InventoryAggregator(client, 'lxc')
        self.resolver = SelectorResolver(self.inventory, prefix='ct')
        self.stats = StatsEngine(client, 'lxc')
        self.executor = BatchExecutor(self.resolver, self.formatter, noun='containers')

    def _path(self, node: str, vmid: int, suffix: str = '') -> str:
        return f'/nodes/{node}/lxc/{vmid}{suffix}'

    # ============ Listing ============

    def get_containers(self, node: Optional[str] = None, include_stats: bool = True,
                       include_raw: bool = False, format_style: str = 'pretty') -> str:
        """List containers, optionally with merged runtime statistics.

        Args:
            node: Optional node filter
            include_stats: Add cpu/memory statistics per container
            include_raw: Add raw status/config payloads (JSON output only)
            format_style: 'pretty' or 'json'

        Returns:
            Rendered container list, or a JSON error payload
        """
        json_output = (format_style or '').lower() == 'json'
        try:
            entries = self.inventory.list_inventory(node)
        except Exception as e:
            return self.error_payload("Failed to list containers", e)

        rows: List[Dict[str, Any]] = []
        for entry in entries:
            record = entry.record
            row: Dict[str, Any] = {
                'vmid': record.vmid,
                'name': record.label('ct'),
                'node': entry.node,
                'status': record.status
            }
            if include_stats and record.vmid is not None:
                live, config = self.stats.fetch(entry.node, record.vmid)
                stats = self.stats.stats(entry.node, record.vmid, live, config, record.status)
                row.update(stats.to_dict())
                if include_raw and json_output:
                    row['raw_status'] = live
                    row['raw_config'] = config
            rows.append(row)

        if json_output:
            return self.formatter.format_json(rows)
        if not rows:
            return "No containers found"
        return self.formatter.render_container_list(rows)

    # ============ Power actions ============

    def start_container(self, selector: str, format_style: str = 'pretty') -> str:
        """Start every container matched by the selector."""
        return self.executor.run_batch(
            "Start Containers", selector, format_style,
            lambda node, vmid: response_data(self.client.post(self._path(node, vmid, '/status/start')))
        )

    def stop_container(self, selector: str, graceful: bool = True, timeout_seconds: int = 10,
                       format_style: str = 'pretty') -> str:
        """Stop matched containers.

        Args:
            selector: Container selector
            graceful: Shut down cleanly (with timeout) instead of a hard stop
            timeout_seconds: Shutdown timeout passed to PVE
            format_style: 'pretty' or 'json'

        Returns:
            Rendered batch report
        """
        def stop(node: str, vmid: int):
            if graceful:
                return response_data(self.client.post(self._path(node, vmid, '/status/shutdown'),
                                                      {'timeout': timeout_seconds}))
            return response_data(self.client.post(self._path(node, vmid, '/status/stop')))

        return self.executor.run_batch("Stop Containers", selector, format_style, stop)

    def restart_container(self, selector: str, format_style: str = 'pretty') -> str:
        """Reboot every container matched by the selector."""
        return self.executor.run_batch(
            "Restart Containers", selector, format_style,
            lambda node, vmid: response_data(self.client.post(self._path(node, vmid, '/status/reboot')))
        )

    # ============ Lifecycle ============

    def _pick_storage(self) -> str:
        storages = self.get_data('/storage') or []
        chosen = None
        for store in storages:
            name = store.get('storage')
            content = str(store.get('content') or '')
            if name == 'local-lvm':
                chosen = name
                break
            if 'rootdir' in content or 'images' in content:
                chosen = name
        if not chosen:
            chosen = (storages[0].get('storage') if storages else None) or 'local'
        return chosen

    def create_container(self, node: str, vmid: int, ostemplate: str,
                         hostname: Optional[str] = None, cores: int = 1, memory: int = 512,
                         swap: int = 512, disk_size: int = 8, storage: Optional[str] = None,
                         password: Optional[str] = None, ssh_public_keys: Optional[str] = None,
                         network_bridge: Optional[str] = None, start_after_create: bool = False,
                         unprivileged: bool = True, format_style: str = 'pretty') -> str:
        """Create a new LXC container.

        Args:
            node: Target node
            vmid: New container id; must not exist on any node
            ostemplate: Template volume id, e.g. local:vztmpl/debian-12.tar.zst
            hostname: Defaults to ct-<vmid>
            cores: CPU cores
            memory: Memory in MiB
            swap: Swap in MiB
            disk_size: Root disk size in GB
            storage: Root disk storage; picked automatically when empty
            password: Root password
            ssh_public_keys: Authorized keys for root
            network_bridge: Defaults to vmbr0 (DHCP on eth0)
            start_after_create: Start once created
            unprivileged: Create an unprivileged container
            format_style: 'pretty' or 'json'

        Returns:
            Creation summary, or a JSON error payload
        """
        try:
            for entry in self.inventory.list_inventory():
                if entry.record.vmid == int(vmid):
                    return self.error_payload(
                        f"Container with ID {vmid} already exists on node {entry.node}",
                        ValueError(f"VMID {vmid} already in use"))

            node_names = self.inventory.list_nodes()
            if node not in node_names:
                return self.error_payload(
                    f"Node '{node}' not found",
                    ValueError(f"Available nodes: {', '.join(node_names)}"))

            storage = storage or self._pick_storage()
            hostname = hostname or f"ct-{vmid}"
            network_bridge = network_bridge or 'vmbr0'

            config = {
                'vmid': vmid,
                'ostemplate': ostemplate,
                'hostname': hostname,
                'cores': cores,
                'memory': memory,
                'swap': swap,
                'rootfs': f"{storage}:{disk_size}",
                'net0': f"name=eth0,bridge={network_bridge},ip=dhcp",
                'unprivileged': 1 if unprivileged else 0,
                'start': 1 if start_after_create else 0,
                'password': password or None,
                'ssh-public-keys': ssh_public_keys or None
            }
            task = response_data(self.client.post(f'/nodes/{node}/lxc', config))
        except Exception as e:
            return self.error_payload(f"Failed to create container {vmid}", e)

        summary = {
            'VMID': vmid,
            'Hostname': hostname,
            'Node': node,
            'Template': ostemplate,
            'CPU Cores': cores,
            'Memory': f"{memory} MiB",
            'Swap': f"{swap} MiB",
            'Disk': f"{disk_size} GB on {storage}",
            'Network': f"{network_bridge} (DHCP)",
            'Unprivileged': 'Yes' if unprivileged else 'No',
            'Auto-start': 'Yes' if start_after_create else 'No'
        }
        if (format_style or '').lower() == 'json':
            return self.formatter.format_json({'ok': True, 'task_id': task, **summary})
        return self.formatter.render_block(
            "Container Created Successfully", summary,
            footer=(f"Task ID: {task}\n\nNext steps:\n"
                    f"  - Start container: pve-mgr ct start {vmid}\n"
                    f"  - Check status: pve-mgr ct list")
        )

    def delete_container(self, selector: str, force: bool = False, format_style: str = 'pretty') -> str:
        """Delete matched containers.

        A running container is refused unless force is set; with force it is
        stopped first. Stop and delete form one per-target step.
        """
        def delete(node: str, vmid: int) -> str:
            status = response_data(self.client.get(self._path(node, vmid, '/status/current'))) or {}
            message = "Deleted"
            if str(status.get('status') or '').lower() == 'running':
                if not force:
                    raise ActionRefused("Container is running. Use force=true to stop and delete.")
                self.client.post(self._path(node, vmid, '/status/stop'))
                message = "Stopped and deleted"
            self.client.delete(self._path(node, vmid))
            return message

        return self.executor.run_batch("Delete Containers", selector, format_style, delete)

    def update_container_resources(self, selector: str, cores: Optional[int] = None,
                                   memory: Optional[int] = None, swap: Optional[int] = None,
                                   disk_gb: Optional[int] = None, disk: Optional[str] = None,
                                   format_style: str = 'pretty') -> str:
        """Change cores/memory/swap and grow a disk on matched containers.

        Args:
            selector: Container selector
            cores: New core count
            memory: New memory limit in MiB
            swap: New swap limit in MiB
            disk_gb: GiB to add to the disk
            disk: Disk to grow (default rootfs)
            format_style: 'pretty' or 'json'

        Returns:
            Rendered batch report listing the applied changes
        """
        disk = disk or 'rootfs'

        def update(node: str, vmid: int) -> str:
            changes = []
            params = {}
            if cores is not None:
                params['cores'] = cores
                changes.append(f"cores={cores}")
            if memory is not None:
                params['memory'] = memory
                changes.append(f"memory={memory}MiB")
            if swap is not None:
                params['swap'] = swap
                changes.append(f"swap={swap}MiB")
            if params:
                self.client.put(self._path(node, vmid, '/config'), params)

            if disk_gb is not None:
                self.client.put(self._path(node, vmid, '/resize'),
                                {'disk': disk, 'size': f"+{disk_gb}G"})
                changes.append(f"{disk}+={disk_gb}G")

            return ', '.join(changes) if changes else "no changes"

        return self.executor.run_batch("Update Container Resources", selector, format_style, update)
