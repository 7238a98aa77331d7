"""MCP server that turns configured prompts into CLI agent tools."""

__version__ = "0.1.0"
