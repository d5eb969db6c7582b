"""Model-callable tools."""

from tinman.tools.base import Tool, ToolContext
from tinman.tools.create_document import CREATE_DOCUMENT_TOOL
from tinman.tools.get_weather import GET_WEATHER_TOOL
from tinman.tools.request_suggestions import REQUEST_SUGGESTIONS_TOOL
from tinman.tools.update_document import UPDATE_DOCUMENT_TOOL


def default_tools() -> dict[str, Tool]:
    """All shipped tools keyed by name."""
    tools = [
        CREATE_DOCUMENT_TOOL,
        UPDATE_DOCUMENT_TOOL,
        REQUEST_SUGGESTIONS_TOOL,
        GET_WEATHER_TOOL,
    ]
    return {tool.name: tool for tool in tools}


__all__ = [
    "CREATE_DOCUMENT_TOOL",
    "GET_WEATHER_TOOL",
    "REQUEST_SUGGESTIONS_TOOL",
    "UPDATE_DOCUMENT_TOOL",
    "Tool",
    "ToolContext",
    "default_tools",
]
