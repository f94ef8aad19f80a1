"""
app_identity.py — Resolve an internal app name to its store identifiers.

The CMS exposes one JSON map keyed by app name. Each entry carries the
Android package record and a bucket tag; the iOS bundle id reuses the
original package name.
"""

import asyncio
from dataclasses import dataclass
from typing import Optional

import aiohttp

import config
from errors import ConfigNotFoundError, RemoteUnavailableError

CONFIG_MAP_PATH = "/api/app/config/map"

# Some buckets publish their Android builds under a different namespace.
ORIGINAL_NAMESPACE = "com.easypass."
REWRITTEN_NAMESPACE = "com.edupass."


@dataclass(frozen=True)
class AppIdentity:
    app_name: str
    android_package_name: str
    ios_bundle_id: str
    bucket: Optional[str] = None


def identity_from_entry(
    app_name: str,
    entry: Optional[dict],
    rewrite_buckets: Optional[list[str]] = None,
) -> AppIdentity:
    """Build an AppIdentity from one CMS map entry, applying the namespace rule."""
    if not isinstance(entry, dict):
        raise ConfigNotFoundError(app_name)
    android = entry.get("edupassAndroid")
    package_name = android.get("packageName") if isinstance(android, dict) else None
    if not package_name:
        raise ConfigNotFoundError(app_name)

    bucket = entry.get("bucket")
    buckets = config.ANDROID_NAMESPACE_BUCKETS if rewrite_buckets is None else rewrite_buckets
    android_pkg = package_name
    if bucket in buckets:
        android_pkg = package_name.replace(ORIGINAL_NAMESPACE, REWRITTEN_NAMESPACE)

    return AppIdentity(
        app_name=app_name,
        android_package_name=android_pkg,
        ios_bundle_id=package_name,
        bucket=bucket,
    )


class AppIdentityResolver:
    """Looks up app identities in the CMS. Every call hits the network."""

    def __init__(self, cms_domain: Optional[str] = None, timeout: Optional[int] = None):
        self.cms_domain = (cms_domain or config.CMS_DOMAIN).rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=timeout or config.HTTP_TIMEOUT)

    async def fetch_config_map(self) -> dict:
        url = f"{self.cms_domain}{CONFIG_MAP_PATH}"
        try:
            async with aiohttp.ClientSession(timeout=self._timeout) as session:
                async with session.get(url) as resp:
                    if resp.status >= 400:
                        raise RemoteUnavailableError(f"CMS request failed: {resp.status}")
                    data = await resp.json(content_type=None)
        except aiohttp.ClientError as e:
            raise RemoteUnavailableError(f"CMS request failed: {e}") from e
        except asyncio.TimeoutError as e:
            raise RemoteUnavailableError(f"CMS request timed out after {self._timeout.total}s") from e
        except ValueError as e:
            raise RemoteUnavailableError(f"CMS returned invalid JSON: {e}") from e
        if not isinstance(data, dict):
            raise RemoteUnavailableError("CMS returned an unexpected payload")
        return data

    async def resolve(self, app_name: str) -> AppIdentity:
        config_map = await self.fetch_config_map()
        identity = identity_from_entry(app_name, config_map.get(app_name))
        print(f"[cms] {app_name}: android={identity.android_package_name} "
              f"ios={identity.ios_bundle_id} bucket={identity.bucket}")
        return identity

    async def known_app_names(self) -> list[str]:
        """Configured app list, or every app the CMS knows about."""
        if config.KNOWN_APPS:
            return list(config.KNOWN_APPS)
        config_map = await self.fetch_config_map()
        return sorted(name for name, entry in config_map.items()
                      if isinstance(entry, dict) and entry.get("edupassAndroid"))
