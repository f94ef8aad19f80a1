"""
bot.py — store-aware build bot.
Entry point. Discord client, message routing, response dispatch.
"""

import sys
import time

import discord

import config
import parser as msg_parser
from parser import Command
from branches import GitRepo
from commands.build import handle_build
from commands.branches_cmd import handle_branches
from commands.versions import handle_versions
from health import start_health_server
from orchestrator import default_orchestrator

# ── Startup ──────────────────────────────────────────────────────────────────

START_TIME = time.time()

problems = config.validate()
if problems:
    for p in problems:
        print(f"  ❌ {p}")
    sys.exit(1)

print("🤖 store-aware build bot")
config.print_config_summary()

orchestrator = default_orchestrator()
repo: GitRepo = orchestrator.repo

intents = discord.Intents.default()
intents.message_content = True
client = discord.Client(intents=intents)

_health_runner = None


# ── Helpers ──────────────────────────────────────────────────────────────────

async def send(channel, text):
    if len(text) > config.MAX_DISCORD_MSG_LEN:
        text = text[:config.MAX_DISCORD_MSG_LEN] + "\n…(truncated)"
    await channel.send(content=text)


def bot_state() -> dict:
    ready = client.is_ready()
    return {
        "ready": ready,
        "user": str(client.user) if client.user else None,
        "latency": client.latency if ready else None,
        "building": orchestrator.busy,
    }


def help_text():
    return (
        "**build bot** — build store apps from chat\n\n"
        "**Build:**\n"
        "`/build android asvab cdl` — build with the default version\n"
        "`/build ios asvab latest` — next version from TestFlight\n"
        "`/build android cdl v=1.2.3 b=45` — explicit version/build\n"
        "`/build android cdl latest branch dark mode` — build from a branch\n\n"
        "**Stores:**\n"
        "`/versions [android|ios|all] [app…]` — what is live now\n\n"
        "**Repo:**\n"
        "`/branches` — remote branches\n"
        "`/status` — is a build running?"
    )


# ── Events ───────────────────────────────────────────────────────────────────

@client.event
async def setup_hook():
    global _health_runner
    try:
        _health_runner = await start_health_server(bot_state)
    except OSError as e:
        print(f"[health] ⚠️ Could not start health server: {e}")


@client.event
async def on_ready():
    print(f"✅ Logged in as {client.user} (ID: {client.user.id})")
    print(f"  Listening to channel ID: {config.TARGET_CHANNEL_ID}")


@client.event
async def on_message(message: discord.Message):
    if message.author.bot:
        return
    if message.channel.id != config.TARGET_CHANNEL_ID:
        return

    text = message.content.strip()
    if not text:
        return

    parsed = msg_parser.parse(text)
    if not isinstance(parsed, Command):
        return

    channel = message.channel
    mention = message.author.mention

    async def on_status(msg, _fpath=None):
        await send(channel, f"{mention} {msg}")

    cmd = parsed
    try:
        match cmd.name:
            case "help":
                await send(channel, help_text())

            case "build":
                await handle_build(cmd, orchestrator, on_status)

            case "versions":
                await handle_versions(cmd, orchestrator.versions, on_status)

            case "branches":
                await send(channel, await handle_branches(repo))

            case "status":
                uptime = int(time.time() - START_TIME)
                m, s = divmod(uptime, 60)
                h, m = divmod(m, 60)
                await send(channel, (
                    f"**Status**\n"
                    f"  Uptime: {h}h {m}m {s}s\n"
                    f"  Build: {'🔨 in progress' if orchestrator.busy else '💤 idle'}\n"
                    f"  Project: `{config.PROJECT_DIR}`"
                ))

            case "unknown":
                await send(channel, "❓ Unknown command. `/help`")

    except Exception as e:
        print(f"❌ Error handling {cmd.name}: {e!r}")
        try:
            await send(channel, f"{mention} ❌ Something went wrong: {e}")
        except discord.DiscordException as reply_error:
            print(f"Failed to send fallback reply: {reply_error}")


@client.event
async def on_error(event, *args, **kwargs):
    print(f"Discord client error in {event}: {sys.exc_info()[1]!r}")


# ── Run ──────────────────────────────────────────────────────────────────────

if __name__ == "__main__":
    client.run(config.DISCORD_BOT_TOKEN)
