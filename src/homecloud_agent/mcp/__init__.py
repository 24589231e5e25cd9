"""MCP stdio server exposing the sync engine's state to agents."""
