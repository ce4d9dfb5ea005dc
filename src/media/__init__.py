"""Media platform adapters and tool-backed media stages."""
