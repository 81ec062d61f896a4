#!/usr/bin/env python3
"""Backup (vzdump) operations for PVE Resource Manager."""

from typing import Optional

from .base_ops import BaseOperations, format_timestamp
from .inventory import StorageContentAggregator
from .output import OutputFormatter, bytes_to_human
from .pve_api import ProxmoxVEClient
from .records import to_int


def is_container_archive(archive: str) -> bool:
    """Guess whether a backup archive holds a container rather than a VM."""
    lower = archive.lower()
    return '/ct/' in lower or 'vzdump-lxc' in lower


class BackupOperations(BaseOperations):
    """List, create, restore and delete backups."""

    def __init__(self, client: ProxmoxVEClient, formatter: Optional[OutputFormatter] = None):
        super().__init__(client, formatter)
        self.content = StorageContentAggregator(client)

    def list_backups(self, node: Optional[str] = None, storage: Optional[str] = None,
                     vmid: Optional[int] = None) -> str:
        """List backups across nodes and storages, newest first.

        Args:
            node: Optional node filter
            storage: Optional storage filter
            vmid: Optional VM/CT id filter

        Returns:
            Rendered backup list, or a JSON error payload
        """
        try:
            backups = self.content.list_content(
                'backup', node=node, storage=storage,
                extra_params={'vmid': vmid} if vmid is not None else None
            )
        except Exception as e:
            return self.error_payload("list backups", e)

        if not backups:
            msg = "No backups found"
            if node:
                msg += f" on node {node}"
            if storage:
                msg += f" in storage {storage}"
            if vmid is not None:
                msg += f" for VM/CT {vmid}"
            return msg

        backups.sort(key=lambda b: to_int(b.get('ctime')) or 0, reverse=True)

        lines = ["Available Backups"]
        for backup in backups:
            created = format_timestamp(backup.get('ctime'))
            lines.append('')
            lines.append(f"  VM/CT {backup.get('vmid', '?')} - {created if created != 'N/A' else 'Unknown'}")
            lines.append(f"     Size: {bytes_to_human(to_int(backup.get('size')) or 0)}")
            lines.append(f"     Format: {backup.get('format') or ''}")
            lines.append(f"     Storage: {backup.get('_storage', '?')} @ {backup.get('_node', '?')}")
            lines.append(f"     Volume ID: {backup.get('volid') or 'unknown'}")
            if backup.get('notes'):
                lines.append(f"     Notes: {backup['notes']}")
            if backup.get('protected'):
                lines.append("     Protected")
        lines.append('')
        lines.append("Use the Volume ID with 'pve-mgr backup restore' to restore.")
        return '\n'.join(lines).strip()

    def create_backup(self, node: str, vmid: int, storage: str, compress: str = 'zstd',
                      mode: str = 'snapshot', notes: Optional[str] = None) -> str:
        """Start a vzdump backup of one VM or container."""
        compress = compress or 'zstd'
        mode = mode or 'snapshot'
        try:
            task = self.post_data(f'/nodes/{node}/vzdump', {
                'vmid': vmid,
                'storage': storage,
                'compress': compress,
                'mode': mode,
                'notes-template': notes or None
            })
        except Exception as e:
            return self.error_payload(f"create backup for {vmid}", e)

        items = {
            'VM/CT ID': vmid,
            'Node': node,
            'Storage': storage,
            'Compression': compress,
            'Mode': mode
        }
        if notes:
            items['Notes'] = notes
        return self.formatter.render_block(
            "Backup Started", items,
            footer=(f"Task ID: {task}\n\n"
                    "The backup is running in the background.\n"
                    "Use 'pve-mgr backup list' to verify when complete.")
        )

    def restore_backup(self, node: str, archive: str, vmid: int,
                       storage: Optional[str] = None, unique: bool = True) -> str:
        """Restore an archive into a new VM or container.

        Args:
            node: Target node
            archive: Backup volume id
            vmid: New id for the restored guest
            storage: Target storage for disks
            unique: Assign new MAC addresses

        Returns:
            Summary text, or a JSON error payload
        """
        is_lxc = is_container_archive(archive)
        try:
            task = self.post_data(f"/nodes/{node}/{'lxc' if is_lxc else 'qemu'}", {
                'archive': archive,
                'vmid': vmid,
                'storage': storage or None,
                'unique': 1 if unique else None
            })
        except Exception as e:
            return self.error_payload(f"restore backup to {vmid}", e)

        vm_type = 'Container' if is_lxc else 'VM'
        items = {'New ID': vmid, 'From': archive, 'Target Node': node}
        if storage:
            items['Target Storage'] = storage
        items['Unique MACs'] = 'Yes' if unique else 'No'
        return self.formatter.render_block(
            f"{vm_type} Restore Started", items,
            footer=(f"Task ID: {task}\n\n"
                    "The restore is running in the background.\n"
                    f"The {vm_type.lower()} will be available once the task completes.")
        )

    def delete_backup(self, node: str, storage: str, volid: str) -> str:
        """Delete a backup volume; protected backups are refused."""
        try:
            content = self.get_data(f'/nodes/{node}/storage/{storage}/content',
                                    {'content': 'backup'}) or []
            info = next((item for item in content if item.get('volid') == volid), None)
            if info is not None and info.get('protected'):
                return (f"Error: Backup '{volid}' is protected and cannot be deleted.\n"
                        "Remove protection first if you want to delete it.")

            task = self.delete_data(f'/nodes/{node}/storage/{storage}/content/{volid}')
        except Exception as e:
            return self.error_payload(f"delete backup '{volid}'", e)

        return self.formatter.render_block(
            "Backup Deleted",
            {'Volume': volid, 'Storage': storage, 'Node': node},
            footer=f"Task ID: {task}" if task is not None else None
        )
