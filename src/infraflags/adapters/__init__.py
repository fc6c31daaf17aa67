"""Platform adapters implementing ``infraflags.platform.PlatformClient``."""

from __future__ import annotations

from infraflags.adapters.system_initiative import SystemInitiativeClient

__all__ = ["SystemInitiativeClient"]
