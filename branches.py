"""
branches.py — Match a spoken branch name against the real remote branches.

    resolve_branch("dark mode", [...])  → ExactMatch | FuzzyMatch | Ambiguous | NotFound

Matching is an unanchored, case-insensitive substring search over a few
spellings of the user's text, so short tokens can hit unrelated branches.
Callers must ask the user when more than one branch matches.
"""

import asyncio
import re
from dataclasses import dataclass, field


@dataclass(frozen=True)
class ExactMatch:
    name: str


@dataclass(frozen=True)
class FuzzyMatch:
    name: str


@dataclass(frozen=True)
class Ambiguous:
    candidates: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class NotFound:
    pass


BranchMatch = ExactMatch | FuzzyMatch | Ambiguous | NotFound


def branch_variants(user_input: str) -> list[str]:
    """The input as typed, then with whitespace as `_`, as `-`, and removed."""
    variants = [
        user_input,
        re.sub(r"\s+", "_", user_input),
        re.sub(r"\s+", "-", user_input),
        re.sub(r"\s+", "", user_input),
    ]
    return list(dict.fromkeys(variants))


def resolve_branch(user_input: str, remote_branches: list[str]) -> BranchMatch:
    if user_input in remote_branches:
        return ExactMatch(user_input)

    if not user_input.strip():
        return NotFound()

    candidates: list[str] = []
    for variant in branch_variants(user_input.strip()):
        needle = variant.lower()
        candidates += [b for b in remote_branches if needle in b.lower()]
    candidates = list(dict.fromkeys(candidates))

    if len(candidates) == 1:
        return FuzzyMatch(candidates[0])
    if candidates:
        return Ambiguous(candidates)
    return NotFound()


# ── Git collaborator ─────────────────────────────────────────────────────────

@dataclass
class CheckoutResult:
    success: bool
    message: str


async def _git(args: list[str], cwd: str, timeout: int = 120) -> tuple[int, str, str]:
    """Run a git command, return (exit_code, stdout, stderr)."""
    proc = await asyncio.create_subprocess_exec(
        "git", *args,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        cwd=cwd,
    )
    try:
        out, err = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        proc.kill()
        return -1, "", "Timed out."
    return proc.returncode, out.decode(errors="replace").strip(), err.decode(errors="replace").strip()


def parse_remote_branches(output: str, remote: str = "origin") -> list[str]:
    """`git branch -r` output → bare branch names, HEAD pointers dropped."""
    prefix = f"{remote}/"
    names = []
    for line in output.splitlines():
        name = line.strip().lstrip("* ").strip()
        if not name or "HEAD" in name:
            continue
        if name.startswith(prefix):
            name = name[len(prefix):]
        names.append(name)
    return names


class GitRepo:
    """The project checkout the builds run from."""

    def __init__(self, path: str, remote: str = "origin"):
        self.path = path
        self.remote = remote

    async def list_remote_branches(self) -> list[str]:
        rc, _, err = await _git(["fetch", self.remote], self.path)
        if rc != 0:
            print(f"[git] ⚠️ fetch failed: {err[:200]}")
        rc, out, err = await _git(["branch", "-r", "--no-color"], self.path)
        if rc != 0:
            print(f"[git] ❌ branch -r failed: {err[:200]}")
            return []
        return parse_remote_branches(out, self.remote)

    async def checkout_and_pull(self, branch: str) -> CheckoutResult:
        """Discard local changes, switch to `branch`, pull it. Never raises."""
        steps = [
            ["reset", "--hard"],
            ["checkout", branch],
            ["pull", self.remote, branch],
        ]
        try:
            for args in steps:
                rc, out, err = await _git(args, self.path)
                print(f"[git] git {' '.join(args)} → {rc}")
                if rc != 0:
                    return CheckoutResult(False, err or out or f"git {args[0]} failed (exit {rc})")
        except OSError as e:
            return CheckoutResult(False, f"Failed to run git: {e}")
        return CheckoutResult(True, f"Switched to {branch}")
