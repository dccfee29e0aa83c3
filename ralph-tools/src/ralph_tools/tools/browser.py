"""Browser-driven verification tools backed by Playwright inside the sandbox."""
from __future__ import annotations

import json
import logging
import shlex
from typing import List, Optional

from langchain_core.tools import BaseTool, tool
from pydantic import BaseModel, Field

from ..context import ToolContext, ToolLimits
from ..truncation import truncate_text
from .payloads import json_exit_status, tool_boundary

LOGGER = logging.getLogger(__name__)

_SCREENSHOT_SCRIPT = """const {{ chromium }} = require('playwright');
(async () => {{
  const browser = await chromium.launch({{ headless: true, args: ['--no-sandbox', '--disable-setuid-sandbox'] }});
  try {{
    const page = await browser.newPage();
    await page.goto({url}, {{ waitUntil: 'networkidle', timeout: 30000 }});
    await page.screenshot({{ path: {path}, fullPage: {full_page} }});
    console.log('Screenshot saved to ' + {path});
  }} catch (err) {{
    console.error('Screenshot error:', err.message);
    process.exitCode = 1;
  }} finally {{
    await browser.close();
  }}
}})();
"""


class BrowserTestRequest(BaseModel):
    test_file: str = Field(..., min_length=1, description="Path to the Playwright test file, e.g. tests/e2e.spec.ts.")
    headed: bool = Field(default=False, description="Run with a visible browser (slower).")


class ScreenshotRequest(BaseModel):
    url: Optional[str] = Field(default=None, description="URL to capture (defaults to the sandbox dev server).")
    output_path: str = Field(default="screenshot.png", min_length=1, description="Where to save the image.")
    full_page: bool = Field(default=False, description="Capture the full scrollable page.")


def _node_env(limits: ToolLimits) -> str:
    parts = []
    if limits.browser_node_path:
        parts.append(f"NODE_PATH={shlex.quote(limits.browser_node_path)}")
    if limits.playwright_browsers_path:
        parts.append(f"PLAYWRIGHT_BROWSERS_PATH={shlex.quote(limits.playwright_browsers_path)}")
    return " ".join(parts) + " " if parts else ""


def screenshot_command(url: str, output_path: str, full_page: bool, limits: ToolLimits) -> str:
    """
    Shell command that runs the Playwright screenshot script with ``node -e``.

    The script is passed as one quoted argument, so the command has no
    heredoc or redirection and a restrictive command policy only needs to
    allow ``node``. ``NODE_PATH`` and ``PLAYWRIGHT_BROWSERS_PATH`` are
    prefixed when the limits configure them.

    Args:
        url: Page to load.
        output_path: Where the PNG is written, relative to the project root.
        full_page: Capture the full scrollable page instead of the viewport.
        limits: Supplies the optional Node and browser paths.
    """
    script = _SCREENSHOT_SCRIPT.format(
        url=json.dumps(url),
        path=json.dumps(output_path),
        full_page="true" if full_page else "false",
    )
    return f"{_node_env(limits)}node -e {shlex.quote(script)}"


def build_browser_tools(ctx: ToolContext) -> List[BaseTool]:
    """
    Builds ``run_browser_test`` and ``take_screenshot`` for the worker.

    Both shell out to Playwright inside the sandbox through
    ``ToolContext.execute``, so the command policy applies to them. Output
    is stdout followed by stderr, capped at ``limits.browser_output_chars``.
    A non-zero exit is reported as ``success: false`` with the exit code.

    Args:
        ctx: The sandbox, limits and command policy the tools close over.
    """
    limits = ctx.limits
    sandbox = ctx.sandbox

    @tool("run_browser_test", args_schema=BrowserTestRequest)
    @tool_boundary
    def run_browser_test(test_file: str, headed: bool = False) -> str:
        """Run a Playwright test file against the app. Write the test first; navigate to the sandbox URL."""
        flag = " --headed" if headed else ""
        command = f"npx playwright test {shlex.quote(test_file)}{flag} --reporter=line"
        LOGGER.info("Running browser test %s", test_file)
        result = ctx.execute(command)
        output = truncate_text(result.stdout + result.stderr, limits.browser_output_chars)
        return json_exit_status(result.exit_code, output=output.text, sandbox_url=sandbox.public_url)

    @tool("take_screenshot", args_schema=ScreenshotRequest)
    @tool_boundary
    def take_screenshot(url: Optional[str] = None, output_path: str = "screenshot.png", full_page: bool = False) -> str:
        """Take a screenshot of the web app for visual verification."""
        target = url.replace(f"localhost:{sandbox.port}", sandbox.domain) if url else sandbox.public_url
        LOGGER.info("Taking screenshot of %s", target)
        result = ctx.execute(screenshot_command(target, output_path, full_page, limits))
        output = truncate_text(result.stdout + result.stderr, limits.browser_output_chars)
        if result.ok:
            return json_exit_status(result.exit_code, path=output_path, url=target)
        LOGGER.warning("Screenshot failed (exit %d)", result.exit_code)
        return json_exit_status(result.exit_code, error=output.text, url=target)

    return [run_browser_test, take_screenshot]


__all__ = ["BrowserTestRequest", "ScreenshotRequest", "build_browser_tools", "screenshot_command"]
