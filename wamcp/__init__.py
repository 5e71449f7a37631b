"""wamcp - headless launcher for the WhatsApp MCP server."""

__version__ = "0.3.0"
__logo__ = "📱"
