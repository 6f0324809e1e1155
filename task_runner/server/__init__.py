"""MCP transport and response formatting for the workflow engine."""
