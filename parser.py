"""
parser.py — Message grammar for the build bot.

    /build [android|ios] <app…> [latest] [v=<x.y.z>] [b=<n>] [branch <name…>]
                                  → build apps (android by default)
    /versions [android|ios|all] [app…]
                                  → current store versions (all apps if none given)
    /branches                     → list remote branches
    /status                       → is a build running?
    /help
"""

from dataclasses import dataclass, field
from typing import Optional
import re

PLATFORMS = {"android", "ios"}
LATEST_WORDS = {"latest", "next", "auto"}

_VERSION_ARG = re.compile(r"^(?:v|version)=(\S+)$", re.I)
_BUILD_ARG = re.compile(r"^(?:b|build)=(\d+)$", re.I)


@dataclass
class Command:
    name: str
    platform: Optional[str] = None  # "android", "ios", or "all" for /versions
    apps: list[str] = field(default_factory=list)
    use_latest_version: bool = False
    version: Optional[str] = None
    build_number: Optional[int] = None
    branch: str = ""
    raw_cmd: Optional[str] = None


@dataclass
class FallbackPrompt:
    prompt: str


ParseResult = Command | FallbackPrompt


def _parse_platform(text: str, allowed: set[str]) -> tuple[Optional[str], str]:
    """Extract a platform keyword from the start of text, return (platform, rest)."""
    parts = text.split(None, 1)
    if parts and parts[0].lower() in allowed:
        return parts[0].lower(), parts[1] if len(parts) > 1 else ""
    return None, text


def _parse_build(rest: str) -> Command:
    platform, rest = _parse_platform(rest, PLATFORMS)
    cmd = Command(name="build", platform=platform or "android", raw_cmd=rest or None)

    tokens = rest.split()
    for i, token in enumerate(tokens):
        lower = token.lower()
        if lower == "branch":
            # Branch names may be spoken with spaces: "branch dark mode".
            cmd.branch = " ".join(tokens[i + 1:])
            break
        if lower in LATEST_WORDS:
            cmd.use_latest_version = True
        elif m := _VERSION_ARG.match(token):
            cmd.version = m.group(1)
        elif m := _BUILD_ARG.match(token):
            cmd.build_number = int(m.group(1))
        else:
            cmd.apps.append(lower.strip(",\""))
    cmd.apps = [a for a in dict.fromkeys(cmd.apps) if a]
    return cmd


def _parse_versions(rest: str) -> Command:
    platform, rest = _parse_platform(rest, PLATFORMS | {"all"})
    apps = [a.lower().strip(",") for a in rest.split()]
    if apps == ["all"]:
        apps = []
    return Command(name="versions", platform=platform or "all", apps=[a for a in apps if a])


def parse(text: str) -> ParseResult:
    text = text.strip()

    if text.startswith("/"):
        parts = text.split(None, 1)
        cmd = parts[0].lower()
        rest = parts[1].strip() if len(parts) > 1 else ""

        match cmd:
            case "/help":
                return Command(name="help")
            case "/build":
                return _parse_build(rest)
            case "/versions" | "/version":
                return _parse_versions(rest)
            case "/branches":
                return Command(name="branches")
            case "/status":
                return Command(name="status")
            case _:
                return Command(name="unknown", raw_cmd=text)

    return FallbackPrompt(prompt=text)
