#!/usr/bin/env python3
"""Cluster-wide inventory collection for PVE Resource Manager."""

import logging
from typing import Any, Dict, List, Optional

from .pve_api import response_data
from .records import InventoryEntry, ResourceRecord

logger = logging.getLogger(__name__)

RESOURCE_KINDS = ('lxc', 'qemu')


def content_types(store: Dict[str, Any]) -> List[str]:
    """Split a storage's comma-separated content list."""
    return [c.strip() for c in str(store.get('content') or '').split(',') if c.strip()]


class InventoryAggregator:
    """Collect resources of one kind across all cluster nodes."""

    def __init__(self, client, kind: str = 'lxc'):
        """Initialize InventoryAggregator.

        Args:
            client: ProxmoxVEClient (or anything with the same get())
            kind: Resource kind, 'lxc' or 'qemu'
        """
        if kind not in RESOURCE_KINDS:
            raise ValueError(f"Unsupported resource kind: {kind}")
        self.client = client
        self.kind = kind

    def list_nodes(self) -> List[str]:
        """List cluster node names.

        Returns:
            Node names in API order

        Raises:
            ProxmoxVEError: If the node list itself cannot be fetched
        """
        nodes = []
        for entry in response_data(self.client.get('/nodes')) or []:
            name = entry.get('node') if isinstance(entry, dict) else None
            if not name:
                logger.warning(f"Skipping unexpected node entry: {entry}")
                continue
            nodes.append(name)
        return nodes

    def list_node(self, node: str) -> List[InventoryEntry]:
        """List resources of a single node. Errors propagate."""
        entries = []
        for item in response_data(self.client.get(f'/nodes/{node}/{self.kind}')) or []:
            record = ResourceRecord.from_payload(item)
            if record is None:
                logger.debug(f"Ignoring unrecognised {self.kind} item on {node}: {item!r}")
                continue
            entries.append(InventoryEntry(node, record))
        return entries

    def list_inventory(self, node: Optional[str] = None) -> List[InventoryEntry]:
        """List resources for one node or for every node.

        A node whose listing fails is logged and left out; the call as a
        whole only fails when the node list cannot be fetched.

        Args:
            node: Optional node filter

        Returns:
            List of InventoryEntry, node by node, in source order
        """
        nodes = [node] if node else self.list_nodes()

        entries: List[InventoryEntry] = []
        for node_name in nodes:
            try:
                entries.extend(self.list_node(node_name))
            except Exception as e:
                logger.warning(f"Skipping node {node_name} while listing {self.kind}: {e}")
        return entries


class StorageContentAggregator:
    """Collect storage content (backups, ISOs, templates) across nodes."""

    def __init__(self, client):
        self.client = client
        self.nodes = InventoryAggregator(client)

    def list_content(self, content_type: str, node: Optional[str] = None,
                     storage: Optional[str] = None,
                     extra_params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """List content items of one type.

        Args:
            content_type: PVE content type (backup, iso, vztmpl)
            node: Optional node filter
            storage: Optional storage filter
            extra_params: Additional query parameters, e.g. {'vmid': 101}

        Returns:
            Content items, each annotated with '_node' and '_storage'
        """
        results = []
        for node_name in self.nodes.list_nodes():
            if node and node_name != node:
                continue

            try:
                storages = response_data(self.client.get(f'/nodes/{node_name}/storage')) or []
            except Exception as e:
                logger.warning(f"Skipping node {node_name} while listing {content_type} content: {e}")
                continue

            for store in storages:
                if not isinstance(store, dict):
                    logger.warning(f"Skipping unexpected storage entry on {node_name}: {store!r}")
                    continue
                storage_name = store.get('storage')
                if not storage_name:
                    continue
                if storage and storage_name != storage:
                    continue
                if content_type not in content_types(store):
                    continue

                params = {'content': content_type}
                params.update(extra_params or {})
                try:
                    content = response_data(self.client.get(
                        f'/nodes/{node_name}/storage/{storage_name}/content', params)) or []
                except Exception as e:
                    logger.warning(f"Skipping storage {storage_name} on {node_name}: {e}")
                    continue

                for item in content:
                    if not isinstance(item, dict):
                        logger.debug(f"Ignoring unrecognised {content_type} item in {storage_name}: {item!r}")
                        continue
                    annotated = dict(item)
                    annotated['_node'] = node_name
                    annotated['_storage'] = storage_name
                    results.append(annotated)
        return results
