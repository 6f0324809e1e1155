"""
task-runner — MCP server that walks a single issue through a fixed
six-phase development workflow and records every step in a sequenced
JSON Lines audit log.
"""

__version__ = "0.1.0"
