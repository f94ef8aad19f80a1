"""commands/branches_cmd.py — /branches handler."""

from branches import GitRepo


async def handle_branches(repo: GitRepo) -> str:
    branches = await repo.list_remote_branches()
    if not branches:
        return "No remote branches found (is `origin` reachable?)."
    shown = branches[:40]
    lines = "\n".join(shown)
    more = f"\n…and {len(branches) - len(shown)} more" if len(branches) > len(shown) else ""
    return f"🌿 **{len(branches)}** remote branch(es):\n```\n{lines}{more}\n```"
