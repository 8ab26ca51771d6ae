"""MCP server exposing story resolution as a tool."""

from __future__ import annotations

import logging

from mcp.server.fastmcp import FastMCP

from .config import load_config
from .resolver import ContentResolver

logger = logging.getLogger("storyfetch.mcp")
logger.setLevel(logging.ERROR)

mcp = FastMCP(name="storyfetch")


@mcp.tool()
def fetch_story(url: str) -> str:
    """Resolve a story URL through the configured sanitizers and return its HTML."""
    config = load_config()
    outcome = ContentResolver.from_config(config).resolve(url, config.chain())
    if outcome.error is not None:
        raise RuntimeError(f"Failed to fetch {url}: {outcome.error.kind}: {outcome.error}")
    return outcome.html or ""


def main() -> None:
    """Entry point for running the MCP server."""
    logging.basicConfig(level=logging.ERROR)
    mcp.run()


if __name__ == "__main__":
    main()
