#!/usr/bin/env python3
"""ISO image and OS template operations."""

from typing import Any, Dict, List, Optional

from .base_ops import BaseOperations
from .inventory import StorageContentAggregator
from .output import OutputFormatter, bytes_to_human
from .pve_api import ProxmoxVEClient
from .records import to_int


class IsoOperations(BaseOperations):
    """List, download and delete ISO images and container templates."""

    def __init__(self, client: ProxmoxVEClient, formatter: Optional[OutputFormatter] = None):
        super().__init__(client, formatter)
        self.content = StorageContentAggregator(client)

    @staticmethod
    def _not_found(what: str, node: Optional[str], storage: Optional[str]) -> str:
        msg = f"No {what} found"
        if node:
            msg += f" on node {node}"
        if storage:
            msg += f" in storage {storage}"
        return msg

    @staticmethod
    def _render_items(title: str, items: List[Dict[str, Any]], footer: Optional[str] = None) -> str:
        lines = [title]
        for item in sorted(items, key=lambda i: str(i.get('volid') or '')):
            volid = item.get('volid') or 'unknown'
            lines.append('')
            lines.append(f"  {volid.rsplit('/', 1)[-1]}")
            lines.append(f"     Size: {bytes_to_human(to_int(item.get('size')) or 0)}")
            lines.append(f"     Storage: {item.get('_storage', '?')} @ {item.get('_node', '?')}")
            lines.append(f"     Volume ID: {volid}")
        if footer:
            lines.append('')
            lines.append(footer)
        return '\n'.join(lines).strip()

    def list_isos(self, node: Optional[str] = None, storage: Optional[str] = None) -> str:
        """List ISO images sorted by volume id."""
        try:
            isos = self.content.list_content('iso', node=node, storage=storage)
        except Exception as e:
            return self.error_payload("list ISOs", e)
        if not isos:
            return self._not_found("ISO images", node, storage)
        return self._render_items("Available ISO Images", isos)

    def list_templates(self, node: Optional[str] = None, storage: Optional[str] = None) -> str:
        """List container templates sorted by volume id."""
        try:
            templates = self.content.list_content('vztmpl', node=node, storage=storage)
        except Exception as e:
            return self.error_payload("list templates", e)
        if not templates:
            return self._not_found("OS templates", node, storage)
        return self._render_items(
            "Available OS Templates", templates,
            footer="Use the Volume ID as the ostemplate of 'pve-mgr ct create'."
        )

    def download_iso(self, node: str, storage: str, url: str, filename: str,
                     checksum: Optional[str] = None, checksum_algorithm: str = 'sha256') -> str:
        """Have PVE download an ISO image from a URL.

        Args:
            node: Node doing the download
            storage: Target storage (must allow iso content)
            url: Source URL
            filename: Target file name
            checksum: Optional expected checksum
            checksum_algorithm: Checksum algorithm, used only with a checksum

        Returns:
            Summary text, or a JSON error payload
        """
        algorithm = checksum_algorithm or 'sha256'
        params = {'url': url, 'filename': filename, 'content': 'iso'}
        if checksum:
            params['checksum'] = checksum
            params['checksum-algorithm'] = algorithm
        try:
            task = self.post_data(f'/nodes/{node}/storage/{storage}/download-url', params)
        except Exception as e:
            return self.error_payload(f"download ISO '{filename}'", e)

        items = {'Filename': filename, 'URL': url, 'Storage': f"{storage} @ {node}"}
        if checksum:
            items['Checksum'] = algorithm.upper()
        return self.formatter.render_block(
            "ISO Download Started", items,
            footer=(f"Task ID: {task}\n\n"
                    "The download is running in the background.\n"
                    "Use 'pve-mgr iso list' to verify when complete.")
        )

    def delete_iso(self, node: str, storage: str, filename: str) -> str:
        """Delete an ISO image or template.

        A value without ':' is treated as a file name and resolved to the
        first volume id containing it.
        """
        try:
            volid = filename
            if ':' not in filename:
                content = self.get_data(f'/nodes/{node}/storage/{storage}/content') or []
                volid = next((item['volid'] for item in content
                              if filename in str(item.get('volid') or '')), None)
                if volid is None:
                    return f"Error: Could not find '{filename}' in {storage} on {node}"

            task = self.delete_data(f'/nodes/{node}/storage/{storage}/content/{volid}')
        except Exception as e:
            return self.error_payload(f"delete ISO/template '{filename}'", e)

        return self.formatter.render_block(
            "ISO/Template Deleted",
            {'Volume': volid, 'Storage': storage, 'Node': node},
            footer=f"Task ID: {task}" if task is not None else None
        )
