"""Custom formatters for termgenie displays."""

from typing import Any
from replkit2.types.core import CommandMeta
from replkit2.textkit.formatter import TextFormatter

from .app import app


@app.formatter.register("codeblock")  # pyright: ignore[reportAttributeAccessIssue]
def format_codeblock(data: Any, meta: CommandMeta, formatter: TextFormatter) -> str:
    """Format command output as a fenced code block.

    Expects data dict with:
    - content: Text to display
    - process: Language hint for the fence (optional)

    Other fields (messages, status) are kept for MCP clients.
    """
    if isinstance(data, dict) and "content" in data:
        process = data.get("process", "text")
        content = data.get("content", "")

        if not content:
            return f"```{process}\n[No output]\n```"

        content = content.rstrip() if isinstance(content, str) else str(content)
        return f"```{process}\n{content}\n```"

    return f"```\n{str(data)}\n```"
