"""
config.py — Environment loading for the store-aware build bot.
Builds Android (Google Play internal track) and iOS (TestFlight) flavors
from a single Flutter project.
"""

import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()


def _csv(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


# ── Discord ──────────────────────────────────────────────────────────────────
DISCORD_BOT_TOKEN: str = os.getenv("DISCORD_BOT_TOKEN", "")
TARGET_CHANNEL_ID: int = int(os.getenv("TARGET_CHANNEL_ID", "0"))

# ── Project ──────────────────────────────────────────────────────────────────
# Flutter project root: holds build.sh, apps.sh and the store credentials.
PROJECT_DIR: str = os.getenv("PROJECT_DIR", os.path.expanduser("~/StudioProjects/app"))
APPS_SCRIPT_NAME: str = os.getenv("APPS_SCRIPT_NAME", "apps.sh")
ANDROID_BUILD_COMMAND: str = os.getenv("ANDROID_BUILD_COMMAND", "build.sh a")
IOS_BUILD_COMMAND: str = os.getenv("IOS_BUILD_COMMAND", "build.sh i")
IOS_COMMAND_MARKER: str = os.getenv("IOS_COMMAND_MARKER", "build.sh i")

# ── Apps ─────────────────────────────────────────────────────────────────────
KNOWN_APPS: list[str] = _csv(os.getenv("KNOWN_APPS", ""))
DEFAULT_VERSION: str = os.getenv("DEFAULT_VERSION", "1.1.1")
DEFAULT_BUILD_NUMBER: int = int(os.getenv("DEFAULT_BUILD_NUMBER", "1"))

# ── CMS (app identity map) ──────────────────────────────────────────────────
CMS_DOMAIN: str = os.getenv("CMS_DOMAIN", "https://test-api-cms-v2-dot-micro-enigma-235001.appspot.com")
ANDROID_NAMESPACE_BUCKETS: list[str] = _csv(os.getenv("ANDROID_NAMESPACE_BUCKETS", "ccna,asvab"))

# ── Stores ───────────────────────────────────────────────────────────────────
SERVICE_ACCOUNT_FILE: str = os.getenv("SERVICE_ACCOUNT_FILE", "service_account.json")
IOS_API_KEY_DIR: str = os.getenv("IOS_API_KEY_DIR", "ios_api_key")
ANDROID_TRACK: str = os.getenv("ANDROID_TRACK", "internal")
HTTP_TIMEOUT: int = int(os.getenv("HTTP_TIMEOUT", "30"))

# ── Builds ───────────────────────────────────────────────────────────────────
BUILD_TIMEOUT: int = int(os.getenv("BUILD_TIMEOUT", "0"))  # 0 = wait forever
BUILD_PROGRESS_INTERVAL: int = int(os.getenv("BUILD_PROGRESS_INTERVAL", "20"))

# ── Health server ────────────────────────────────────────────────────────────
HOST: str = os.getenv("HOST", "0.0.0.0")
PORT: int = int(os.getenv("PORT", "8000"))

# ── Limits ───────────────────────────────────────────────────────────────────
MAX_DISCORD_MSG_LEN: int = 1900


def script_path() -> str:
    return str(Path(PROJECT_DIR) / APPS_SCRIPT_NAME)


def validate() -> list[str]:
    problems = []
    if not DISCORD_BOT_TOKEN:
        problems.append("DISCORD_BOT_TOKEN is not set")
    if TARGET_CHANNEL_ID == 0:
        problems.append("TARGET_CHANNEL_ID is not set")
    if not Path(PROJECT_DIR).is_dir():
        problems.append(f"PROJECT_DIR not found at {PROJECT_DIR}")
    return problems


def print_config_summary():
    token_preview = DISCORD_BOT_TOKEN[:8] + "..." if DISCORD_BOT_TOKEN else "(not set)"
    project = Path(PROJECT_DIR)
    has_play = (project / SERVICE_ACCOUNT_FILE).exists()
    has_asc = (project / IOS_API_KEY_DIR / "api_key_config.json").exists()
    print(f"  Discord token:   {token_preview}")
    print(f"  Channel:         {TARGET_CHANNEL_ID}")
    print(f"  Project:         {PROJECT_DIR}")
    print(f"  Script file:     {APPS_SCRIPT_NAME}")
    print(f"  Commands:        android=`{ANDROID_BUILD_COMMAND}` ios=`{IOS_BUILD_COMMAND}`")
    print(f"  Known apps:      {', '.join(KNOWN_APPS) or '(from CMS)'}")
    print(f"  Google Play:     {'configured' if has_play else 'not configured'} (track: {ANDROID_TRACK})")
    print(f"  TestFlight:      {'configured' if has_asc else 'not configured'}")
    print(f"  Health:          http://{HOST}:{PORT}/health")
