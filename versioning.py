"""
versioning.py — Pick the next version/build number from live store data.

For a build of several apps the highest published version across all of
them wins; the build number and the version name are maximised
independently, then bumped by one.
"""

import asyncio
from dataclasses import dataclass
from typing import Iterable, Optional

from app_identity import AppIdentity, AppIdentityResolver
from store_version import ANDROID, IOS, StoreVersionInfo, VersionStoreClient, leading_int

BOOTSTRAP_VERSION = "1.0.1"
BOOTSTRAP_BUILD_NUMBER = 2

REPORT_LABELS = {
    ANDROID: "Google Play",
    IOS: "TestFlight",
    "all": "Android & iOS",
}


@dataclass(frozen=True)
class ResolvedVersion:
    version_name: str
    build_number: int


def _component(part: str) -> int:
    part = part.strip()
    return int(part) if part.isdigit() else 0


def compare_semver(a: str, b: str) -> int:
    """Negative if a < b, zero if equal, positive if a > b.

    Components compare as integers; missing trailing components count as 0,
    so "1.2" == "1.2.0".
    """
    pa = [_component(p) for p in a.split(".")]
    pb = [_component(p) for p in b.split(".")]
    for i in range(max(len(pa), len(pb))):
        diff = (pa[i] if i < len(pa) else 0) - (pb[i] if i < len(pb) else 0)
        if diff:
            return diff
    return 0


def increment_version(version_name: Optional[str], version_code: int) -> ResolvedVersion:
    """Bump the last version component and the build number.

    "1.2.3", 45 → "1.2.4", 46 and "1.2.3-rc" → "1.2.4". Names with fewer
    than three components, or whose last component has no integer prefix,
    fall back to the bootstrap version; an unknown code (0) to the
    bootstrap build.
    """
    new_version = BOOTSTRAP_VERSION
    if version_name:
        parts = version_name.split(".")
        last = leading_int(parts[-1])
        if len(parts) >= 3 and last is not None:
            parts[-1] = str(last + 1)
            new_version = ".".join(parts)

    new_build = version_code + 1 if version_code > 0 else BOOTSTRAP_BUILD_NUMBER
    return ResolvedVersion(version_name=new_version, build_number=new_build)


def next_version_from(records: Iterable[Optional[StoreVersionInfo]]) -> ResolvedVersion:
    """Next version to build given whatever the stores returned.

    Order-independent: the best code and best name may come from
    different records.
    """
    best_name: Optional[str] = None
    best_code = 0
    for info in records:
        if info is None:
            continue
        best_code = max(best_code, info.version_code)
        if info.version_name and (best_name is None or compare_semver(info.version_name, best_name) > 0):
            best_name = info.version_name

    if best_name is None and best_code == 0:
        return ResolvedVersion(BOOTSTRAP_VERSION, BOOTSTRAP_BUILD_NUMBER)
    return increment_version(best_name, best_code)


@dataclass
class AppVersions:
    app_name: str
    android: Optional[StoreVersionInfo] = None
    ios: Optional[StoreVersionInfo] = None
    error: Optional[str] = None


def _format_platform(label: str, info: Optional[StoreVersionInfo]) -> str:
    if info and info.version_name:
        return f"{label}: `{info.version_name}` ({info.version_code})"
    return f"{label}: —"


def format_versions_report(rows: list[AppVersions], platform: str) -> str:
    check_android = platform in (ANDROID, "all")
    check_ios = platform in (IOS, "all")
    lines = []
    for row in rows:
        if row.error:
            lines.append(f"❌ **{row.app_name}** — Error")
            continue
        parts = []
        if check_android:
            parts.append(_format_platform("Android", row.android))
        if check_ios:
            parts.append(_format_platform("iOS", row.ios))
        lines.append(f"**{row.app_name}** — {' | '.join(parts)}")
    label = REPORT_LABELS.get(platform, REPORT_LABELS["all"])
    return f"📦 **{label}**\n" + "\n".join(lines)


class VersionResolver:
    """Fans store lookups out across apps and folds the results."""

    def __init__(self, identities: AppIdentityResolver, clients: dict[str, VersionStoreClient]):
        self.identities = identities
        self.clients = clients

    async def _lookup(self, identity: AppIdentity, platform: str) -> Optional[StoreVersionInfo]:
        client = self.clients.get(platform)
        if client is None:
            return None
        return await client.latest_version(identity)

    async def _latest_for_app(self, app_name: str, platform: str) -> Optional[StoreVersionInfo]:
        try:
            identity = await self.identities.resolve(app_name)
            print(f"[version] Looking up {self.clients[platform].label} for \"{app_name}\"")
            info = await self._lookup(identity, platform)
        except Exception as e:
            print(f"[version] ❌ Skipping \"{app_name}\": {e}")
            return None
        if info:
            print(f"[version]   {app_name}: {info.version_name} (build {info.version_code})")
        return info

    async def resolve_next_version(self, apps: list[str], platform: str) -> ResolvedVersion:
        """Next version for a build of `apps` on one platform.

        Every app is looked up concurrently; an app that fails contributes
        nothing and never affects the others.
        """
        results = await asyncio.gather(
            *(self._latest_for_app(app, platform) for app in apps),
            return_exceptions=True,
        )
        records = [r for r in results if isinstance(r, StoreVersionInfo)]
        for app, r in zip(apps, results):
            if isinstance(r, BaseException):
                print(f"[version] ❌ Lookup for \"{app}\" raised: {r!r}")

        resolved = next_version_from(records)
        if not records:
            print(f"[version] ⚠️ No store version found for any app – using "
                  f"{resolved.version_name} ({resolved.build_number})")
        else:
            print(f"[version] Next build: {resolved.version_name} ({resolved.build_number})")
        return resolved

    async def _versions_for_app(self, app_name: str, platform: str) -> AppVersions:
        try:
            identity = await self.identities.resolve(app_name)
        except Exception as e:
            print(f"[version] ❌ Error fetching version for \"{app_name}\": {e}")
            return AppVersions(app_name=app_name, error=str(e))

        wanted = [p for p in (ANDROID, IOS) if platform in (p, "all")]
        found = await asyncio.gather(
            *(self._lookup(identity, p) for p in wanted),
            return_exceptions=True,
        )
        row = AppVersions(app_name=app_name)
        for p, info in zip(wanted, found):
            if isinstance(info, StoreVersionInfo):
                setattr(row, p, info)
        return row

    async def build_versions_report(self, apps: list[str], platform: str = "all") -> str:
        """Current store versions per app, without incrementing."""
        results = await asyncio.gather(
            *(self._versions_for_app(app, platform) for app in apps),
            return_exceptions=True,
        )
        rows = [
            r if isinstance(r, AppVersions) else AppVersions(app_name=app, error=str(r))
            for app, r in zip(apps, results)
        ]
        return format_versions_report(rows, platform)
