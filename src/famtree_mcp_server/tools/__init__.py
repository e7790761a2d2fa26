"""MCP tools exposing the family-tree repository to callers."""
