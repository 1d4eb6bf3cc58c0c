"""MCP JSON-RPC transports."""
