"""Read-only hook for agentloop.

Usage:
    agentloop --hook hooks/readonly.py

Removes the tools that can change the filesystem or run commands.
"""

REMOVE_TOOLS = {"write_file", "execute_command"}
