#!/usr/bin/env python3
"""Runtime statistics for containers and VMs.

Values come from three sources, in priority order: live status
(status/current), configuration (config) and the most recent RRD sample
(rrddata). A live value of exactly zero is treated as "not reported" and
may be replaced by a lower-priority source.
"""

import logging
from typing import Any, Dict, Optional, Tuple

from .inventory import RESOURCE_KINDS
from .pve_api import response_data
from .records import HistorySample, StatsRecord, first_present, to_float, to_int

logger = logging.getLogger(__name__)

MIB = 1024 * 1024

# Config keys carrying a memory limit in MiB, in priority order
MEMORY_MIB_KEYS = ('memory', 'ram', 'maxmem', 'memoryMiB')


class StatsEngine:
    """Merge live status, config and RRD history into a StatsRecord."""

    def __init__(self, client, kind: str = 'lxc'):
        if kind not in RESOURCE_KINDS:
            raise ValueError(f"Unsupported resource kind: {kind}")
        self.client = client
        self.kind = kind

    def _base(self, node: str, vmid: int) -> str:
        return f'/nodes/{node}/{self.kind}/{vmid}'

    def _get_or_empty(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        try:
            return response_data(self.client.get(path, params) if params else self.client.get(path))
        except Exception as e:
            logger.debug(f"Ignoring unavailable stats source {path}: {e}")
            return None

    def fetch(self, node: str, vmid: int) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        """Fetch live status and config; each degrades to {} on failure."""
        live = self._get_or_empty(f'{self._base(node, vmid)}/status/current')
        config = self._get_or_empty(f'{self._base(node, vmid)}/config')
        return (live if isinstance(live, dict) else {},
                config if isinstance(config, dict) else {})

    def last_sample(self, node: str, vmid: int) -> HistorySample:
        """Return the most recent RRD point that carries data."""
        points = self._get_or_empty(f'{self._base(node, vmid)}/rrddata',
                                    {'timeframe': 'hour', 'cf': 'AVERAGE'})
        if not isinstance(points, list):
            return HistorySample()

        for point in reversed(points):
            if not isinstance(point, dict):
                continue
            if not any(point.get(key) is not None for key in ('cpu', 'mem', 'maxmem')):
                continue
            cpu = point.get('cpu')
            return HistorySample(
                cpu_pct=round(to_float(cpu) * 100.0, 2) if cpu is not None else None,
                mem_bytes=int(to_float(point['mem'])) if point.get('mem') is not None else None,
                maxmem_bytes=int(to_float(point['maxmem'])) if point.get('maxmem') is not None else None
            )
        return HistorySample()

    def stats(self, node: str, vmid: int, live: Optional[Dict[str, Any]],
              config: Optional[Dict[str, Any]],
              listed_status: Optional[str] = None) -> StatsRecord:
        """Compute statistics for one resource.

        Args:
            node: Node name
            vmid: Resource id
            live: status/current payload ({} when unavailable)
            config: config payload ({} when unavailable)
            listed_status: Status from the inventory listing, used when the
                live payload has none

        Returns:
            StatsRecord; never raises for missing data
        """
        live = live or {}
        config = config or {}

        cpu_pct = round(to_float(live.get('cpu')) * 100.0, 2)
        mem_bytes = int(to_float(live.get('mem')))
        maxmem_bytes = int(to_float(live.get('maxmem')))

        cores = None
        if config.get('cores') is not None:
            cores = to_float(config['cores'], default=None)
        elif config.get('cpulimit') is not None:
            cpulimit = to_float(config['cpulimit'])
            if cpulimit > 0:
                cores = cpulimit

        memory_mib = to_int(first_present(config, MEMORY_MIB_KEYS)) or 0
        swap = to_int(config.get('swap')) or 0
        unlimited_memory = swap == 0 and memory_mib == 0

        status = str(live.get('status') or listed_status or '').lower()
        stopped = status == 'stopped'
        if stopped:
            mem_bytes = 0

        if maxmem_bytes == 0 and memory_mib > 0:
            maxmem_bytes = memory_mib * MIB

        if cpu_pct == 0 or mem_bytes == 0 or maxmem_bytes == 0:
            sample = self.last_sample(node, vmid)
            if cpu_pct == 0 and sample.cpu_pct is not None:
                cpu_pct = sample.cpu_pct
            if mem_bytes == 0 and not stopped and sample.mem_bytes is not None:
                mem_bytes = sample.mem_bytes
            if maxmem_bytes == 0 and sample.maxmem_bytes:
                maxmem_bytes = sample.maxmem_bytes
                if memory_mib == 0:
                    memory_mib = int(round(maxmem_bytes / MIB))

        mem_pct = round(mem_bytes / maxmem_bytes * 100.0, 2) if maxmem_bytes > 0 else None

        return StatsRecord(
            cpu_pct=cpu_pct,
            mem_bytes=mem_bytes,
            maxmem_bytes=maxmem_bytes,
            mem_pct=mem_pct,
            cores=cores,
            memory_mib=memory_mib,
            unlimited_memory=unlimited_memory
        )

    def collect(self, node: str, vmid: int, listed_status: Optional[str] = None) -> StatsRecord:
        """Fetch sources and compute statistics for one resource."""
        live, config = self.fetch(node, vmid)
        return self.stats(node, vmid, live, config, listed_status)
