"""WhatsApp side: bridge transport, connection supervisor and commands."""

from .supervisor import ConnectionSupervisor
from .commands import WhatsAppCommands

__all__ = ["ConnectionSupervisor", "WhatsAppCommands"]
