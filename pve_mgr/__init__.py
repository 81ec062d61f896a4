"""PVE Resource Manager: multi-node Proxmox VE resource management."""

__version__ = "1.0.0"

__all__ = ['__version__']
