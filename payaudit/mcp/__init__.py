"""MCP server exposing pay audit tools."""
