"""MCP data gateway for cockpit."""
