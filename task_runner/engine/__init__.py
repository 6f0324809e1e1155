"""
Workflow Engine — phase state machine and sequenced audit logger.

This package is the engine core. It has no knowledge of the transport: the
MCP server in task_runner.server translates tool calls into WorkflowManager
operations and formats the results.
"""
