"""
build_script.py — Text helpers for the apps.sh build script.

Script format:
    VERSION=1.2.3
    BUILD_NUMBER=45
    LIST_APP={
      "asvab"
      "cdl"
    }

Only substring replacement/extraction is done here; the script is never parsed.
"""

import re

import config
from store_version import ANDROID, IOS

_QUOTED = re.compile(r'"([^"]+)"')
_VERSION = re.compile(r"VERSION=\S+")
_BUILD_NUMBER = re.compile(r"BUILD_NUMBER=\S+")


def extract_app_names_from_script(script: str) -> list[str]:
    """All double-quoted tokens, in order. Empty list if there are none."""
    return _QUOTED.findall(script or "")


def apply_version_to_script(script: str, version_name: str, build_number: int) -> str:
    """Rewrite the first VERSION= and BUILD_NUMBER= assignments."""
    script = _VERSION.sub(lambda _: f"VERSION={version_name}", script, count=1)
    return _BUILD_NUMBER.sub(lambda _: f"BUILD_NUMBER={build_number}", script, count=1)


def render_script(apps: list[str], version_name: str, build_number: int) -> str:
    lines = [f"VERSION={version_name}", f"BUILD_NUMBER={build_number}", "LIST_APP={"]
    lines += [f'  "{app}"' for app in apps]
    lines.append("}")
    return "\n".join(lines) + "\n"


def platform_for_command(command: str) -> str:
    """A command referencing the iOS build path builds iOS, anything else Android."""
    return IOS if config.IOS_COMMAND_MARKER in (command or "") else ANDROID


def command_for_platform(platform: str) -> str:
    return config.IOS_BUILD_COMMAND if platform == IOS else config.ANDROID_BUILD_COMMAND
