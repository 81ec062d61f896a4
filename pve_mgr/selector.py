#!/usr/bin/env python3
"""Selector parsing: turn 'pve1:101,web,202' into concrete targets.

Tokens are comma-separated and each one is one of:

    node:id     exact node and numeric id
    node/name   exact node and display name (name, else hostname)
    id          numeric id on any node; may match on several nodes
    name        display name on any node
"""

import logging
from typing import Dict, List, Optional, Tuple

from .inventory import InventoryAggregator
from .records import InventoryEntry, ResolvedTarget

logger = logging.getLogger(__name__)


def parse_id(text: str) -> Optional[int]:
    """Parse a non-negative integer id, or return None."""
    text = text.strip()
    if not (text.isascii() and text.isdigit()):
        return None
    return int(text)


class SelectorResolver:
    """Resolve selector strings against a fresh inventory snapshot."""

    def __init__(self, aggregator: InventoryAggregator, prefix: str = 'ct'):
        """Initialize SelectorResolver.

        Args:
            aggregator: Inventory source
            prefix: Label prefix for unnamed resources ('ct' or 'vm')
        """
        self.aggregator = aggregator
        self.prefix = prefix

    def resolve(self, selector: Optional[str]) -> List[ResolvedTarget]:
        """Resolve a selector into unique targets.

        Args:
            selector: Comma-separated selector string

        Returns:
            Targets unique by (node, vmid), in first-match order
        """
        if selector is None or not selector.strip():
            return []

        inventory = self.aggregator.list_inventory()
        resolved: List[ResolvedTarget] = []

        for raw_token in selector.split(','):
            token = raw_token.strip()
            if not token:
                continue
            matches = self._match_token(token, inventory)
            if not matches:
                logger.debug(f"Selector token {token!r} matched nothing")
            resolved.extend(matches)

        unique: Dict[Tuple[str, int], ResolvedTarget] = {}
        for target in resolved:
            unique[target.key] = target
        return list(unique.values())

    def _match_token(self, token: str, inventory: List[InventoryEntry]) -> List[ResolvedTarget]:
        if ':' in token and '/' not in token:
            node, _, id_part = token.partition(':')
            vmid = parse_id(id_part)
            if vmid is None:
                return []
            for entry in inventory:
                if entry.node == node and entry.record.vmid == vmid:
                    return [ResolvedTarget(node, vmid, entry.record.label(self.prefix))]
            return []

        if '/' in token and ':' not in token:
            node, _, name = token.partition('/')
            name = name.strip()
            return [
                ResolvedTarget(node, entry.record.vmid, name)
                for entry in inventory
                if entry.node == node
                and entry.record.display_name == name
                and entry.record.vmid is not None
            ]

        vmid = parse_id(token)
        if vmid is not None:
            return [
                ResolvedTarget(entry.node, vmid, entry.record.label(self.prefix))
                for entry in inventory
                if entry.record.vmid == vmid
            ]

        return [
            ResolvedTarget(entry.node, entry.record.vmid, token)
            for entry in inventory
            if entry.record.display_name == token and entry.record.vmid is not None
        ]
