"""
Cockpit MCP Server - tracker data for Claude Desktop and other MCP clients.

Exposes the tracker database (activities, context snapshots, decisions,
insights, AI interactions) and its search engine as MCP tools.

Security Features:
- JSON Schema validation of every tool call, then per-field sanitization
- Secure error handling with no information disclosure
- Logging to a file only (stdout carries the protocol)

Usage:
    cockpit mcp  # Start MCP server (stdio transport)
"""

import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from jsonschema import Draft7Validator
from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from cockpit.mcp.handlers import HANDLERS, VALIDATORS
from cockpit.mcp.tool_definitions import TOOLS
from cockpit.storage import CockpitStore

logger = logging.getLogger(__name__)

# Initialize MCP server
mcp = Server("efficiency-cockpit")

# Database path for this MCP session (None = default tracker location)
_db_path: Optional[Path] = None

_SCHEMA_VALIDATORS: Dict[str, Draft7Validator] = {
    tool.name: Draft7Validator(tool.inputSchema) for tool in TOOLS
}


def set_db_path(db_path: Optional[Path]) -> None:
    """Set the database path for this MCP session."""
    global _db_path
    _db_path = Path(db_path) if db_path is not None else None
    # Clear cached instance so next get_store uses the new path
    if hasattr(get_store, "_instance"):
        get_store._instance.close()  # type: ignore[attr-defined]
        delattr(get_store, "_instance")


def get_store() -> CockpitStore:
    """Get or create the CockpitStore instance."""
    if not hasattr(get_store, "_instance"):
        get_store._instance = CockpitStore(_db_path)  # type: ignore[attr-defined]
    return get_store._instance  # type: ignore[attr-defined]


# =============================================================================
# INPUT VALIDATION & SANITIZATION
# =============================================================================


def validate_tool_input(name: str, arguments: Dict[str, Any]) -> Dict[str, Any]:
    """Validate and sanitize MCP tool inputs."""
    try:
        if not isinstance(name, str):
            raise ValueError(f"tool name must be a string, got {type(name).__name__}")
        if not name:
            raise ValueError("tool name must not be empty")
        if not isinstance(arguments, dict):
            raise ValueError(f"arguments must be an object, got {type(arguments).__name__}")

        validator = VALIDATORS.get(name)
        schema_validator = _SCHEMA_VALIDATORS.get(name)
        if validator is None or schema_validator is None:
            raise ValueError(f"Unknown tool: {name}")

        errors = sorted(schema_validator.iter_errors(arguments), key=lambda err: list(err.path))
        if errors:
            first = errors[0]
            path = ".".join(str(part) for part in first.path) or "(root)"
            raise ValueError(f"Schema validation failed at {path}: {first.message}")

        return validator(arguments)
    except (ValueError, TypeError) as e:
        logger.warning(f"Input validation failed for tool {name}: {e}")
        raise ValueError(f"Invalid input: {str(e)}")


def handle_tool_error(e: Exception, tool_name: str, arguments: Dict[str, Any]) -> List[TextContent]:
    """Handle tool errors securely."""
    if isinstance(e, ValueError):
        # Input validation or business logic error
        logger.warning(f"Invalid input for tool {tool_name}: {e}")
        message = str(e)
        if not message.startswith("Invalid input:"):
            message = f"Invalid input: {message}"
        return [TextContent(type="text", text=message)]
    elif isinstance(e, PermissionError):
        logger.warning(f"Permission denied for tool {tool_name}")
        return [TextContent(type="text", text="Access denied")]
    elif isinstance(e, ConnectionError):
        logger.error(f"Database connection error for tool {tool_name}")
        return [TextContent(type="text", text="Service temporarily unavailable")]
    else:
        # Unknown error - log full details but return generic message
        argument_keys = list(arguments.keys()) if isinstance(arguments, dict) else []
        logger.error(
            f"Internal error in tool {tool_name}",
            extra={
                "tool_name": tool_name,
                "arguments_keys": argument_keys,
                "error_type": type(e).__name__,
                "error_message": str(e),
            },
            exc_info=True,
        )
        return [TextContent(type="text", text="Internal server error")]


# =============================================================================
# MCP PROTOCOL HANDLERS
# =============================================================================


@mcp.list_tools()
async def list_tools() -> list[Tool]:
    """List available cockpit tools."""
    return list(TOOLS)


@mcp.call_tool()
async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
    """Handle tool calls with validation and error handling."""
    try:
        sanitized_args = validate_tool_input(name, arguments)
        handler = HANDLERS.get(name)
        if handler is None:
            logger.error(f"Unexpected tool name after validation: {name}")
            return [TextContent(type="text", text=f"Tool '{name}' is not available")]
        result = handler(sanitized_args, get_store())
        return [TextContent(type="text", text=result)]
    except Exception as e:
        return handle_tool_error(e, name, arguments)


async def run_server():
    """Run the MCP server."""
    async with stdio_server() as (read_stream, write_stream):
        await mcp.run(
            read_stream,
            write_stream,
            mcp.create_initialization_options(),
        )


def main(db_path: Optional[Path] = None, log_level: Optional[str] = None):
    """Entry point for MCP server."""
    from cockpit.logging_config import setup_cockpit_logging

    setup_cockpit_logging(log_level)
    set_db_path(db_path)
    logger.info(f"Starting MCP server (database: {get_store().db_path})")
    asyncio.run(run_server())


if __name__ == "__main__":
    main()
