"""MCP server exposing the Notetaker core."""
