"""Source platform adapters."""
