"""Assembly of the worker and judge tool surfaces.

The two roles never share a tool list. The worker gets the full read/write
surface plus ``mark_complete``; the judge gets a read-mostly surface
(list/read files, run verification commands, query the dev server) plus its
two verdict tools. Both are bound to the same sandbox through a
``ToolContext``, which is the only thing the tools close over.
"""
from __future__ import annotations

from typing import List

from langchain_core.tools import BaseTool

from .context import ToolContext
from .tools.browser import build_browser_tools
from .tools.commands import build_judge_command_tools, build_worker_command_tools
from .tools.completion import mark_complete, verdict_tools
from .tools.files import build_judge_file_tools, build_worker_file_tools


def get_worker_tools(ctx: ToolContext, *, include_browser: bool = True) -> List[BaseTool]:
    """Returns the worker's tools.

    Includes file list/read/write/edit/delete, ``run_command``,
    ``start_dev_server``, ``curl``, the Playwright tools (unless
    ``include_browser`` is False) and ``mark_complete``.
    """
    tools: List[BaseTool] = []
    tools.extend(build_worker_file_tools(ctx))
    tools.extend(build_worker_command_tools(ctx))
    if include_browser:
        tools.extend(build_browser_tools(ctx))
    tools.append(mark_complete)
    return tools


def get_judge_tools(ctx: ToolContext) -> List[BaseTool]:
    """Returns the judge's read-mostly tools and its verdict tools."""
    tools: List[BaseTool] = []
    tools.extend(build_judge_file_tools(ctx))
    tools.extend(build_judge_command_tools(ctx))
    tools.extend(verdict_tools())
    return tools


__all__ = ["get_worker_tools", "get_judge_tools"]
