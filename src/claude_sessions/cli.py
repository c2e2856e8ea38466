"""CLI entry point for claude-sessions."""

import asyncio
import logging
import sys

import click
import uvicorn


@click.group()
def main():
    """Manage Claude Code session transcripts."""
    pass


@main.command()
@click.option("--port", default=5173, help="Port to serve on.")
@click.option("--host", default="127.0.0.1", help="Host to bind to.")
def serve(port: int, host: str):
    """Start the web interface."""
    click.echo(f"Starting claude-sessions on http://{host}:{port}")
    uvicorn.run("claude_sessions.server:app", host=host, port=port, reload=False)


@main.command()
@click.option("--log-level", default="WARNING", help="Logging level (written to stderr).")
def mcp(log_level: str):
    """Run the MCP tool server over stdio."""
    from .mcp_server import create_mcp_server, run_stdio_server

    # stdout carries the protocol
    logging.basicConfig(stream=sys.stderr, level=log_level.upper())
    asyncio.run(run_stdio_server(create_mcp_server()))
