"""MCP server exposing the site palette."""
import json
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any, Awaitable, Callable, List, Optional

# Add project root to Python path for absolute imports
_project_root = Path(__file__).parent.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import Tool, TextContent

from sitepalette.context import PaletteContext, open_context
from sitepalette.security import is_valid_url, validate_input


DEFAULT_LIMIT = 10


def _text(text: str) -> List[TextContent]:
    return [TextContent(type="text", text=text)]


def _json(data: Any) -> List[TextContent]:
    return _text(json.dumps(data, indent=2, ensure_ascii=False))


async def search_sites_tool(context: PaletteContext, query: str, limit: int = DEFAULT_LIMIT) -> List[TextContent]:
    """Tool handler for search_sites.

    Args:
        context: Palette context
        query: Raw palette query, e.g. "#dev/tools git"
        limit: Maximum number of results

    Returns:
        List of TextContent with ranked sites
    """
    results = await context.search(query, limit=limit)

    if not results:
        return _text(f"No sites found matching query: {query}")

    return _json([entry.to_dict() for entry in results])


async def list_tags_tool(context: PaletteContext, query: str = "") -> List[TextContent]:
    """Tool handler for list_tags."""
    suggestions = await context.suggest_tags(query)

    if not suggestions:
        return _text(f"No tags found matching: {query}")

    return _json([asdict(suggestion) for suggestion in suggestions])


async def record_visit_tool(context: PaletteContext, site_id: str) -> List[TextContent]:
    """Tool handler for record_visit."""
    result = await context.record_visit(site_id)

    if not result.success:
        return _text(f"Error: could not record visit for {site_id}: {result.error}")

    return _json({"site_id": site_id, "count": result.data})


async def add_site_tool(
    context: PaletteContext,
    name: str,
    url: str,
    tags: Optional[List[str]] = None,
) -> List[TextContent]:
    """Tool handler for add_site."""
    if not validate_input(name) or not is_valid_url(url):
        return _text("Error: a valid 'name' and 'url' are required")

    result = await context.sites.add_site({"name": name, "url": url, "tags": tags or []})

    if not result.success:
        return _text(f"Error: could not add site: {result.error}")

    return _json({"status": "added", "site": result.data.to_dict()})


async def delete_site_tool(context: PaletteContext, site_id: str) -> List[TextContent]:
    """Tool handler for delete_site."""
    result = await context.sites.delete_site(site_id)

    if not result.success:
        return _text(f"Error: could not delete site: {result.error}")

    await context.prune_usage()
    return _json({"status": "deleted", "site_id": site_id})


async def storage_stats_tool(context: PaletteContext) -> List[TextContent]:
    """Tool handler for storage_stats."""
    return _json(await context.get_storage_stats())


TOOLS = [
    Tool(
        name="search_sites",
        description="Rank saved sites for a palette query. Start the query with '#tag' to filter by a (hierarchical) tag.",
        inputSchema={
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "Palette query, e.g. 'git' or '#dev/tools git'"},
                "limit": {"type": "integer", "description": "Maximum number of results", "default": DEFAULT_LIMIT},
            },
            "required": ["query"],
        },
    ),
    Tool(
        name="list_tags",
        description="List tags with usage counts (parents include their children), for autocomplete.",
        inputSchema={
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "Partial tag, e.g. 'dev/to'"},
            },
        },
    ),
    Tool(
        name="record_visit",
        description="Record that a site was opened, boosting it in future rankings.",
        inputSchema={
            "type": "object",
            "properties": {
                "site_id": {"type": "string", "description": "Id of the opened site"},
            },
            "required": ["site_id"],
        },
    ),
    Tool(
        name="add_site",
        description="Save a new site to the palette.",
        inputSchema={
            "type": "object",
            "properties": {
                "name": {"type": "string"},
                "url": {"type": "string"},
                "tags": {"type": "array", "items": {"type": "string"}},
            },
            "required": ["name", "url"],
        },
    ),
    Tool(
        name="delete_site",
        description="Delete a saved site and forget its usage count.",
        inputSchema={
            "type": "object",
            "properties": {
                "site_id": {"type": "string"},
            },
            "required": ["site_id"],
        },
    ),
    Tool(
        name="storage_stats",
        description="Report how many sites, favicon records and usage counts are stored.",
        inputSchema={"type": "object", "properties": {}},
    ),
]


def create_server(
    context_factory: Optional[Callable[[], Awaitable[PaletteContext]]] = None,
) -> Server:
    """Create and configure the MCP server.

    Args:
        context_factory: Coroutine function returning the palette context.
            Defaults to opening the SQLite-backed context on first use.

    Returns:
        Configured Server instance
    """
    server = Server("sitepalette")
    factory = context_factory or open_context
    holder: List[PaletteContext] = []

    async def get_context() -> PaletteContext:
        if not holder:
            holder.append(await factory())
        return holder[0]

    @server.list_tools()
    async def list_tools() -> list[Tool]:
        """List available tools."""
        return TOOLS

    @server.call_tool()
    async def call_tool(name: str, arguments: Any) -> list[TextContent]:
        """Handle tool calls."""
        arguments = arguments or {}
        context = await get_context()

        if name == "search_sites":
            query = arguments.get("query", "")
            if not query:
                return _text("Error: 'query' parameter is required")
            return await search_sites_tool(context, query, int(arguments.get("limit", DEFAULT_LIMIT)))
        elif name == "list_tags":
            return await list_tags_tool(context, arguments.get("query", ""))
        elif name == "record_visit":
            site_id = arguments.get("site_id", "")
            if not site_id:
                return _text("Error: 'site_id' parameter is required")
            return await record_visit_tool(context, site_id)
        elif name == "add_site":
            return await add_site_tool(
                context,
                arguments.get("name", ""),
                arguments.get("url", ""),
                arguments.get("tags"),
            )
        elif name == "delete_site":
            return await delete_site_tool(context, arguments.get("site_id", ""))
        elif name == "storage_stats":
            return await storage_stats_tool(context)
        else:
            raise ValueError(f"Unknown tool: {name}")

    return server


async def main():
    """Main entry point for the MCP server."""
    server = create_server()

    async with stdio_server() as (read_stream, write_stream):
        initialization_options = server.create_initialization_options()
        await server.run(read_stream, write_stream, initialization_options)
