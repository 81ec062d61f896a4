#!/usr/bin/env python3
"""Snapshot operations for VMs and containers."""

from typing import Optional

from .base_ops import BaseOperations, format_timestamp
from .inventory import RESOURCE_KINDS


class SnapshotOperations(BaseOperations):
    """List, create, delete and roll back snapshots."""

    def _base(self, node: str, vmid: int, vm_type: str) -> str:
        vm_type = (vm_type or '').lower()
        if vm_type not in RESOURCE_KINDS:
            raise ValueError(f"Invalid vm_type '{vm_type}', expected qemu or lxc")
        return f'/nodes/{node}/{vm_type}/{vmid}/snapshot'

    def list_snapshots(self, node: str, vmid: int, vm_type: str = 'qemu') -> str:
        """List snapshots, skipping the 'current' pseudo snapshot."""
        kind = (vm_type or '').upper()
        try:
            snapshots = self.get_data(self._base(node, vmid, vm_type))
        except Exception as e:
            return self.error_payload(f"list snapshots for {vm_type} {vmid}", e)

        snapshots = [s for s in snapshots or [] if isinstance(s, dict) and s.get('name') != 'current']
        if not snapshots:
            return f"No snapshots found for {kind} {vmid} on node {node}"

        lines = [f"Snapshots for {kind} {vmid} on {node}"]
        for snap in snapshots:
            lines.append('')
            lines.append(f"  {snap.get('name') or 'unknown'}")
            if snap.get('description') is not None:
                lines.append(f"     Description: {snap['description']}")
            if snap.get('snaptime') is not None:
                created = format_timestamp(snap['snaptime'])
                lines.append(f"     Created: {created if created != 'N/A' else snap['snaptime']}")
            if snap.get('parent') is not None:
                lines.append(f"     Parent: {snap['parent']}")
            if snap.get('vmstate'):
                lines.append("     RAM State: Included")
        return '\n'.join(lines).strip()

    def create_snapshot(self, node: str, vmid: int, snapname: str,
                        description: Optional[str] = None, vmstate: bool = False,
                        vm_type: str = 'qemu') -> str:
        """Create a snapshot.

        Args:
            node: Node name
            vmid: VM or container id
            snapname: Snapshot name
            description: Optional description
            vmstate: Include RAM state (VMs only, ignored for containers)
            vm_type: 'qemu' or 'lxc'

        Returns:
            Summary text, or a JSON error payload
        """
        include_ram = vmstate and (vm_type or '').lower() != 'lxc'
        try:
            task = self.post_data(self._base(node, vmid, vm_type), {
                'snapname': snapname,
                'description': description or None,
                'vmstate': 1 if include_ram else None
            })
        except Exception as e:
            return self.error_payload(f"create snapshot '{snapname}' for {vm_type} {vmid}", e)

        items = {'Name': snapname, f"{vm_type.upper()} ID": vmid, 'Node': node}
        if description:
            items['Description'] = description
        if include_ram:
            items['RAM State'] = 'Included'
        return self.formatter.render_block(
            "Snapshot Created Successfully", items,
            footer=(f"Task ID: {task}\n\n"
                    "Next steps:\n"
                    f"  - List snapshots: pve-mgr snapshot list {node} {vmid} --type {vm_type}\n"
                    f"  - Rollback: pve-mgr snapshot rollback {node} {vmid} {snapname} --type {vm_type}")
        )

    def delete_snapshot(self, node: str, vmid: int, snapname: str, vm_type: str = 'qemu') -> str:
        """Delete a snapshot."""
        try:
            task = self.delete_data(f"{self._base(node, vmid, vm_type)}/{snapname}")
        except Exception as e:
            return self.error_payload(f"delete snapshot '{snapname}' for {vm_type} {vmid}", e)

        return self.formatter.render_block(
            "Snapshot Deleted",
            {'Name': snapname, f"{vm_type.upper()} ID": vmid, 'Node': node},
            footer=f"Task ID: {task}"
        )

    def rollback_snapshot(self, node: str, vmid: int, snapname: str, vm_type: str = 'qemu') -> str:
        """Roll back to a snapshot.

        PVE refuses a rollback while newer snapshots depend on the target, so
        direct children of the target are deleted first. A child that cannot
        be deleted is logged and left for PVE to report.
        """
        try:
            base = self._base(node, vmid, vm_type)
            deleted = []
            for snap in self.get_data(base) or []:
                if not isinstance(snap, dict):
                    continue
                name = snap.get('name') or ''
                if name == 'current' or snap.get('parent') != snapname:
                    continue
                try:
                    self.client.delete(f"{base}/{name}")
                    deleted.append(name)
                except Exception as e:
                    self.logger.warning(f"Could not delete child snapshot {name} of {snapname}: {e}")

            task = self.post_data(f"{base}/{snapname}/rollback")
        except Exception as e:
            return self.error_payload(f"rollback to snapshot '{snapname}' for {vm_type} {vmid}", e)

        items = {'Restoring to': snapname, f"{vm_type.upper()} ID": vmid, 'Node': node}
        if deleted:
            items['Deleted newer snapshots'] = ', '.join(deleted)
        return self.formatter.render_block(
            "Snapshot Rollback Initiated", items,
            footer=("WARNING: VM/container will be stopped during rollback!\n\n"
                    f"Task ID: {task}\n\n"
                    "The VM/container will be restored to its state at the time of the snapshot.")
        )
