"""Run the task runner MCP server: python -m task_runner"""

from task_runner.server.server import main

main()
