#!/usr/bin/env python3
"""Data structures shared by the inventory, selector, stats and batch layers."""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional

_MISSING = object()


def first_present(doc: Optional[Dict[str, Any]], keys: Iterable[str], default: Any = None) -> Any:
    """Return the value of the first key present (and not None) in doc.

    Args:
        doc: Mapping to inspect (None is treated as empty)
        keys: Candidate keys in priority order
        default: Value returned when no key is present

    Returns:
        The first present value, or default
    """
    if not doc:
        return default
    for key in keys:
        value = doc.get(key, _MISSING)
        if value is not _MISSING and value is not None:
            return value
    return default


def to_int(value: Any) -> Optional[int]:
    """Parse an id or counter that may arrive as a string or a number."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except ValueError:
        try:
            number = float(value)
        except (TypeError, ValueError):
            return None
        return int(number) if number.is_integer() else None


def to_float(value: Any, default: float = 0.0) -> float:
    if value is None or isinstance(value, bool):
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


@dataclass
class ResourceRecord:
    """One container or VM as listed by a node."""
    vmid: Optional[int]
    name: Optional[str] = None
    hostname: Optional[str] = None
    status: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, item: Any) -> Optional['ResourceRecord']:
        """Build a record from a listing item.

        Items are normally mappings, but some endpoints return bare ids.
        Anything else yields None.
        """
        if isinstance(item, dict):
            name = item.get('name')
            hostname = item.get('hostname')
            status = item.get('status')
            return cls(
                vmid=to_int(first_present(item, ('vmid', 'id'))),
                name=str(name) if name is not None else None,
                hostname=str(hostname) if hostname is not None else None,
                status=str(status) if status is not None else None,
                raw=dict(item)
            )
        if isinstance(item, (int, float, str)) and not isinstance(item, bool):
            vmid = to_int(item)
            if vmid is None:
                return None
            return cls(vmid=vmid, raw={'vmid': vmid})
        return None

    @property
    def display_name(self) -> Optional[str]:
        """Name, falling back to hostname."""
        return self.name if self.name is not None else self.hostname

    def label(self, prefix: str) -> str:
        name = self.display_name
        if name is not None:
            return name
        return f"{prefix}-{self.vmid if self.vmid is not None else '?'}"


@dataclass
class InventoryEntry:
    """A resource together with the node that listed it."""
    node: str
    record: ResourceRecord


@dataclass(frozen=True)
class ResolvedTarget:
    """A concrete target produced by selector resolution."""
    node: str
    vmid: int
    label: str

    @property
    def key(self):
        return (self.node, self.vmid)


@dataclass
class HistorySample:
    """Most recent RRD data point; any field may be missing."""
    cpu_pct: Optional[float] = None
    mem_bytes: Optional[int] = None
    maxmem_bytes: Optional[int] = None

    @property
    def empty(self) -> bool:
        return self.cpu_pct is None and self.mem_bytes is None and self.maxmem_bytes is None


@dataclass
class StatsRecord:
    """Merged runtime statistics for one resource."""
    cpu_pct: float = 0.0
    mem_bytes: int = 0
    maxmem_bytes: int = 0
    mem_pct: Optional[float] = None
    cores: Optional[float] = None
    memory_mib: int = 0
    unlimited_memory: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'cores': self.cores,
            'memory': self.memory_mib,
            'cpu_pct': self.cpu_pct,
            'mem_bytes': self.mem_bytes,
            'maxmem_bytes': self.maxmem_bytes,
            'mem_pct': self.mem_pct,
            'unlimited_memory': self.unlimited_memory
        }


@dataclass
class ActionResult:
    """Outcome of one action against one target."""
    node: str
    vmid: int
    name: str
    ok: bool = True
    message: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def for_target(cls, target: ResolvedTarget) -> 'ActionResult':
        return cls(node=target.node, vmid=target.vmid, name=target.label)

    def fail(self, error: str) -> None:
        self.ok = False
        self.error = error
        self.message = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        result = {
            'ok': self.ok,
            'node': self.node,
            'id': self.vmid,
            'name': self.name
        }
        if self.ok:
            result['message'] = self.message if self.message is not None else ''
        else:
            result['error'] = self.error if self.error is not None else ''
        return result
