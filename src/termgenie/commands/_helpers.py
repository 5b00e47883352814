"""Shared helper functions for commands.

PUBLIC API:
  - build_tips: Build per-target interaction tips for markdown output
  - cap_output: Keep the tail of long output
  - truncation_hint: Blockquote noting capped output
"""

from typing import Any

__all__ = ["build_tips", "cap_output", "truncation_hint"]

MAX_OUTPUT_LINES = 200


def build_tips(target: str) -> dict[str, str]:
    """Build per-target interaction tips.

    Args:
        target: Target descriptor (pane id, session:window, worker id)

    Returns:
        Markdown text element with interaction tips
    """
    return {
        "type": "text",
        "content": f"""**Tips:**
- Execute: `execute(command="...", target="{target}")`
- Resolve: `resolve(target="{target}")`
- Message: `send(body="...", to="{target}")`""",
    }


def cap_output(output: str) -> tuple[str, int]:
    """Cap output to MAX_OUTPUT_LINES, returning (output, total_lines).

    Returns total_lines=0 when not truncated.
    """
    lines = output.splitlines()
    if len(lines) <= MAX_OUTPUT_LINES:
        return output, 0
    return "\n".join(lines[-MAX_OUTPUT_LINES:]), len(lines)


def truncation_hint(total_lines: int) -> dict[str, Any]:
    return {
        "type": "blockquote",
        "content": f"Output truncated: showing last {MAX_OUTPUT_LINES} of {total_lines} lines.",
    }
