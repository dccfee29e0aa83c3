"""Ralph sandbox tools (sandbox collaborators, editor, truncation, tool surfaces).

Public API:
- get_worker_tools(ctx) -> list[BaseTool]
- get_judge_tools(ctx) -> list[BaseTool]
- ToolContext / ToolLimits
- Sandbox, DockerSandbox, LocalSandbox
"""

from .assembly import get_judge_tools, get_worker_tools
from .context import ToolContext, ToolLimits
from .policy import AllowAllPolicy, PrefixAllowListPolicy, policy_from_allowlist
from .sandbox import DockerSandbox, LocalSandbox, Sandbox

__all__ = [
    "get_judge_tools",
    "get_worker_tools",
    "ToolContext",
    "ToolLimits",
    "AllowAllPolicy",
    "PrefixAllowListPolicy",
    "policy_from_allowlist",
    "DockerSandbox",
    "LocalSandbox",
    "Sandbox",
]
