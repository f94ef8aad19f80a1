"""
store_version.py — Latest published version per store.

  - GooglePlayClient        → newest release on the internal track
  - AppStoreConnectClient   → newest TestFlight build

Both lookups are soft: missing credentials, empty tracks and request
failures are logged and reported as None so one platform's gaps never
abort resolution for the others.
"""

import json
import re
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import aiohttp
import jwt

import config
from app_identity import AppIdentity
from errors import CredentialMissingError, RemoteUnavailableError

ANDROID = "android"
IOS = "ios"

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_PLAY_SCOPE = "https://www.googleapis.com/auth/androidpublisher"
GOOGLE_PLAY_API = "https://androidpublisher.googleapis.com/androidpublisher/v3/applications"
APP_STORE_API = "https://api.appstoreconnect.apple.com/v1"

# Release names are written by the upload script as "60 (1.1.0)".
_RELEASE_NAME_VERSION = re.compile(r"\((.+)\)")
_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


def leading_int(text: str) -> Optional[int]:
    """Integer prefix of text ("45.1" → 45, "3-rc" → 3), None when there is none."""
    m = _LEADING_INT.match(text or "")
    return int(m.group(1)) if m else None


@dataclass(frozen=True)
class StoreVersionInfo:
    version_name: Optional[str]
    version_code: int = 0
    source: str = ANDROID


def parse_play_release(releases: Optional[list]) -> Optional[StoreVersionInfo]:
    """Version info from a track's release list (newest release first)."""
    if not releases:
        return None
    latest = releases[0]
    codes = [int(c) for c in latest.get("versionCodes") or []]
    version_name = None
    m = _RELEASE_NAME_VERSION.search(latest.get("name") or "")
    if m:
        version_name = m.group(1).strip()
    return StoreVersionInfo(version_name=version_name, version_code=max(codes, default=0), source=ANDROID)


def parse_testflight_builds(payload: dict) -> Optional[StoreVersionInfo]:
    """Version info from a /builds response that includes preReleaseVersion."""
    builds = payload.get("data") or []
    if not builds:
        return None
    build_number = leading_int(str(builds[0].get("attributes", {}).get("version", ""))) or 0
    version_name = None
    for item in payload.get("included") or []:
        if item.get("type") == "preReleaseVersions":
            version_name = item.get("attributes", {}).get("version")
            break
    return StoreVersionInfo(version_name=version_name, version_code=build_number, source=IOS)


class VersionStoreClient:
    """One store authority. Subclasses pick the identifier they need."""

    platform: str = ""
    label: str = ""

    def __init__(self, timeout: Optional[int] = None):
        self._timeout = aiohttp.ClientTimeout(total=timeout or config.HTTP_TIMEOUT)

    async def latest_version(self, identity: AppIdentity) -> Optional[StoreVersionInfo]:
        raise NotImplementedError

    async def _request(
        self,
        session: aiohttp.ClientSession,
        method: str,
        url: str,
        **kwargs,
    ) -> dict:
        async with session.request(method, url, **kwargs) as resp:
            text = await resp.text()
            if resp.status >= 400:
                raise RemoteUnavailableError(f"HTTP {resp.status}: {text[:300]}")
            return json.loads(text) if text.strip() else {}


# ═══════════════════════════════════════════════════════════════════════════════
# GOOGLE PLAY
# ═══════════════════════════════════════════════════════════════════════════════

class GooglePlayClient(VersionStoreClient):
    platform = ANDROID
    label = "Android (Google Play Internal)"

    def __init__(self, service_account_path: str, track: Optional[str] = None, timeout: Optional[int] = None):
        super().__init__(timeout)
        self.service_account_path = Path(service_account_path)
        self.track = track or config.ANDROID_TRACK

    def _load_service_account(self) -> dict:
        if not self.service_account_path.exists():
            raise CredentialMissingError(f"{self.service_account_path.name} not found")
        return json.loads(self.service_account_path.read_text())

    @staticmethod
    def _assertion(service_account: dict) -> str:
        now = int(time.time())
        return jwt.encode(
            {
                "iss": service_account["client_email"],
                "scope": GOOGLE_PLAY_SCOPE,
                "aud": GOOGLE_TOKEN_URL,
                "iat": now,
                "exp": now + 3600,
            },
            service_account["private_key"],
            algorithm="RS256",
        )

    async def _access_token(self, session: aiohttp.ClientSession, service_account: dict) -> str:
        data = await self._request(
            session, "POST", GOOGLE_TOKEN_URL,
            data={
                "grant_type": "urn:ietf:params:oauth:grant-type:jwt-bearer",
                "assertion": self._assertion(service_account),
            },
        )
        token = data.get("access_token")
        if not token:
            raise RemoteUnavailableError(f"Google token exchange failed: {data}")
        return token

    async def latest_version(self, identity: AppIdentity) -> Optional[StoreVersionInfo]:
        return await self.latest_android_version(identity.android_package_name)

    async def latest_android_version(self, package_name: str) -> Optional[StoreVersionInfo]:
        try:
            service_account = self._load_service_account()
        except CredentialMissingError as e:
            print(f"[play] ⚠️ {e} – skipping Android version lookup")
            return None

        try:
            async with aiohttp.ClientSession(timeout=self._timeout) as session:
                token = await self._access_token(session, service_account)
                headers = {"Authorization": f"Bearer {token}"}
                base = f"{GOOGLE_PLAY_API}/{package_name}/edits"

                edit = await self._request(session, "POST", base, headers=headers, json={})
                edit_id = edit.get("id")
                if not edit_id:
                    raise RemoteUnavailableError(f"Create edit failed: {edit}")

                # The edit is only a read session; it is never committed.
                try:
                    track = await self._request(
                        session, "GET", f"{base}/{edit_id}/tracks/{self.track}", headers=headers,
                    )
                    info = parse_play_release(track.get("releases"))
                finally:
                    await self._delete_edit(session, f"{base}/{edit_id}", headers)
        except Exception as e:
            print(f"[play] ❌ Android version lookup failed for {package_name}: {e}")
            return None

        if info is None:
            print(f"[play] No releases on '{self.track}' track for {package_name}")
        return info

    async def _delete_edit(self, session: aiohttp.ClientSession, url: str, headers: dict):
        try:
            await self._request(session, "DELETE", url, headers=headers)
        except Exception as e:
            print(f"[play] ⚠️ Could not delete edit: {e}")


# ═══════════════════════════════════════════════════════════════════════════════
# APP STORE CONNECT (TestFlight)
# ═══════════════════════════════════════════════════════════════════════════════

class AppStoreConnectClient(VersionStoreClient):
    platform = IOS
    label = "iOS (TestFlight)"

    def __init__(self, api_key_dir: str, timeout: Optional[int] = None):
        super().__init__(timeout)
        self.api_key_dir = Path(api_key_dir)

    def _load_api_key(self) -> tuple[str, str, str]:
        """Return (key_id, issuer_id, private_key) from the API key directory."""
        config_path = self.api_key_dir / "api_key_config.json"
        if not config_path.exists():
            raise CredentialMissingError(f"{config_path} not found")
        data = json.loads(config_path.read_text())
        key_id, issuer_id = data.get("key_id"), data.get("issuer_id")
        if not key_id or not issuer_id:
            raise CredentialMissingError("key_id or issuer_id missing in api_key_config.json")
        p8_path = self.api_key_dir / f"AuthKey_{key_id}.p8"
        if not p8_path.exists():
            raise CredentialMissingError(f"Missing API key file: {p8_path}")
        return key_id, issuer_id, p8_path.read_text()

    @staticmethod
    def _token(key_id: str, issuer_id: str, private_key: str) -> str:
        now = int(time.time())
        return jwt.encode(
            {"iss": issuer_id, "iat": now, "exp": now + 20 * 60, "aud": "appstoreconnect-v1"},
            private_key,
            algorithm="ES256",
            headers={"kid": key_id, "typ": "JWT"},
        )

    async def latest_version(self, identity: AppIdentity) -> Optional[StoreVersionInfo]:
        return await self.latest_ios_version(identity.ios_bundle_id)

    async def latest_ios_version(self, bundle_id: str) -> Optional[StoreVersionInfo]:
        try:
            key_id, issuer_id, private_key = self._load_api_key()
        except CredentialMissingError as e:
            print(f"[testflight] ⚠️ {e} – skipping iOS version lookup")
            return None

        try:
            headers = {"Authorization": f"Bearer {self._token(key_id, issuer_id, private_key)}"}
            async with aiohttp.ClientSession(timeout=self._timeout) as session:
                apps = await self._request(
                    session, "GET", f"{APP_STORE_API}/apps",
                    headers=headers, params={"filter[bundleId]": bundle_id},
                )
                if not apps.get("data"):
                    print(f"[testflight] ❌ No iOS app found for bundleId: {bundle_id}")
                    return None
                app_id = apps["data"][0]["id"]

                builds = await self._request(
                    session, "GET", f"{APP_STORE_API}/builds",
                    headers=headers,
                    params={
                        "filter[app]": app_id,
                        "sort": "-uploadedDate",
                        "limit": "1",
                        "include": "preReleaseVersion",
                    },
                )
            info = parse_testflight_builds(builds)
        except Exception as e:
            print(f"[testflight] ❌ iOS version lookup failed for {bundle_id}: {e}")
            return None

        if info is None:
            print(f"[testflight] ❌ No TestFlight builds for {bundle_id}")
        return info


def default_clients(project_dir: Optional[str] = None) -> dict[str, VersionStoreClient]:
    """Store clients reading credentials from the Flutter project directory."""
    root = Path(project_dir or config.PROJECT_DIR)
    return {
        ANDROID: GooglePlayClient(str(root / config.SERVICE_ACCOUNT_FILE)),
        IOS: AppStoreConnectClient(str(root / config.IOS_API_KEY_DIR)),
    }
