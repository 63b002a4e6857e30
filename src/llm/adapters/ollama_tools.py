# src/llm/adapters/ollama_tools.py - v1
"""Tool-schema injection into the system prompt.

The chat endpoint has no tool field we rely on, so declared tools are described
to the model in plain text: a prefix line, the tool declarations as a JSON
array, and a suffix explaining the expected call format.
"""

from __future__ import annotations

import json
from collections.abc import Sequence

from ollama_provider.llm.models import FunctionTool, ToolChoice

DEFAULT_SCHEMA_PREFIX = "You have access to the following tools:"
DEFAULT_SCHEMA_SUFFIX = """To use a tool, you MUST answer with a JSON object with the following structure:
[
  {
    "name": <name of the called tool>,
    "arguments": <arguments for the tool matching the above JSON schema>
  }
]"""


def select_tools(
    tools: Sequence[FunctionTool] | None,
    tool_choice: ToolChoice | None = None,
) -> list[FunctionTool]:
    """Apply ``tool_choice`` to the declared tools."""
    if not tools:
        return []
    if tool_choice is None or tool_choice.type in ("auto", "required"):
        return list(tools)
    if tool_choice.type == "tool":
        return [t for t in tools if t.name == tool_choice.tool_name]
    return []


def inject_tools_schema_into_system(
    system: str,
    tools: Sequence[FunctionTool] | None = None,
    tool_choice: ToolChoice | None = None,
    *,
    schema_prefix: str = DEFAULT_SCHEMA_PREFIX,
    schema_suffix: str = DEFAULT_SCHEMA_SUFFIX,
) -> str:
    """Append the selected tool declarations to ``system``.

    Returns ``system`` unchanged when no tool is selected.
    """
    selected = select_tools(tools, tool_choice)
    if not selected:
        return system

    declarations = [
        t.model_dump(include={"name", "description", "parameters"}, exclude_none=True)
        for t in selected
    ]
    return "\n".join(
        [system, "", schema_prefix, json.dumps(declarations), schema_suffix]
    )
