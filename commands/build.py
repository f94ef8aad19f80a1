"""
commands/build.py — /build: template apps.sh and hand it to the orchestrator.

/build ios asvab cdl latest branch dark mode
  → resolve next store version → write apps.sh → checkout branch → ./build.sh i
"""

import time
from typing import Callable, Awaitable, Optional

import config
from build_script import command_for_platform, render_script
from orchestrator import BuildOrchestrator, BuildReport, BuildRequest
from parser import Command

USAGE = "Usage: `/build [android|ios] <app…> [latest] [v=1.2.3] [b=45] [branch <name>]`"


def request_from_command(cmd: Command) -> BuildRequest:
    """Turn a parsed /build into a templated BuildRequest."""
    platform = cmd.platform or "android"
    if cmd.use_latest_version:
        # Placeholders; the orchestrator rewrites them from store data.
        version, build_number = "0.0.0", 0
    else:
        version = cmd.version or config.DEFAULT_VERSION
        build_number = cmd.build_number or config.DEFAULT_BUILD_NUMBER
    return BuildRequest(
        apps=list(cmd.apps),
        platform=platform,
        script=render_script(cmd.apps, version, build_number),
        command=command_for_platform(platform),
        branch=cmd.branch.strip(),
        use_latest_version=cmd.use_latest_version,
    )


class OutputRelay:
    """Collects build output and forwards it in chunks, at most every `interval` seconds."""

    def __init__(self, on_status: Callable[[str, Optional[str]], Awaitable[None]], interval: float):
        self.on_status = on_status
        self.interval = interval
        self._pending: list[str] = []
        self._last_sent = time.time()

    async def __call__(self, stream: str, line: str):
        if not line.strip():
            return
        self._pending.append(line if stream == "stdout" else f"! {line}")
        if time.time() - self._last_sent >= self.interval:
            await self.flush()

    async def flush(self):
        if not self._pending:
            return
        text = "\n".join(self._pending)
        self._pending.clear()
        self._last_sent = time.time()
        limit = config.MAX_DISCORD_MSG_LEN - 20
        if len(text) > limit:
            text = "…" + text[-limit:]
        try:
            await self.on_status(f"```\n{text}\n```", None)
        except Exception as e:
            print(f"[build] ⚠️ Could not relay output: {e}")


async def handle_build(
    cmd: Command,
    orchestrator: BuildOrchestrator,
    on_status: Callable[[str, Optional[str]], Awaitable[None]],
) -> Optional[BuildReport]:
    if not cmd.apps:
        await on_status(USAGE, None)
        return None

    if config.KNOWN_APPS:
        unknown = [a for a in cmd.apps if a not in config.KNOWN_APPS]
        if unknown:
            await on_status(
                f"❌ Unknown app(s): `{', '.join(unknown)}`\n"
                f"Known apps: {', '.join(config.KNOWN_APPS)}",
                None,
            )
            return None

    request = request_from_command(cmd)

    summary = f"📦 Build **{request.platform}** for {', '.join(request.apps)}"
    if not request.use_latest_version:
        summary += f" — `{cmd.version or config.DEFAULT_VERSION}` " \
                   f"({cmd.build_number or config.DEFAULT_BUILD_NUMBER})"
    if request.branch:
        summary += f" on branch **{request.branch}**"
    await on_status(summary, None)

    async def status(msg: str):
        await on_status(msg, None)

    relay = OutputRelay(on_status, config.BUILD_PROGRESS_INTERVAL)
    report = await orchestrator.run(request, on_status=status, on_output=relay)
    await relay.flush()
    await on_status(report.message, None)
    return report
