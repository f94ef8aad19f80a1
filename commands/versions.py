"""
commands/versions.py — /versions: what is live on Google Play / TestFlight.

/versions                  → every known app, both stores
/versions ios asvab cdl    → TestFlight only, two apps
"""

from typing import Callable, Awaitable, Optional

from parser import Command
from versioning import VersionResolver, REPORT_LABELS


async def handle_versions(
    cmd: Command,
    versions: VersionResolver,
    on_status: Callable[[str, Optional[str]], Awaitable[None]],
) -> None:
    platform = cmd.platform or "all"
    apps = list(cmd.apps)
    if not apps:
        try:
            apps = await versions.identities.known_app_names()
        except Exception as e:
            await on_status(f"❌ Could not load the app list: {e}", None)
            return
    if not apps:
        await on_status("No apps configured. Set `KNOWN_APPS` or check the CMS.", None)
        return

    label = REPORT_LABELS.get(platform, REPORT_LABELS["all"])
    await on_status(f"🔍 Checking {label} for {len(apps)} app(s)...", None)
    report = await versions.build_versions_report(apps, platform)
    await on_status(report, None)
