import asyncio
import logging

try:
    import discord
    from discord.ext import commands
except ImportError as e:
    raise SystemExit(
        "Missing dependency: discord.py\n"
        "Install it with: pip install -e ."
    ) from e

import uvicorn

from .aggregate import player_key_for_policy
from .commands import CommandHandler
from .config import Settings, load_settings
from .dataset import LeaderboardStore
from .embeds import standings_embed
from .extract import GeminiExtractor, ImagePart
from .github_api import GitHubContentsClient
from .web import create_app


logger = logging.getLogger(__name__)

# Screenshots only; other attachments are ignored.
_IMAGE_TYPES = ("image/png", "image/jpeg", "image/webp", "image/gif")


def _strip_mention(content: str, user_id: int) -> str | None:
    for prefix in (f"<@{user_id}>", f"<@!{user_id}>"):
        if content.startswith(prefix):
            return content[len(prefix):].strip()
    return None


async def _read_images(attachments: list[discord.Attachment]) -> list[ImagePart]:
    images: list[ImagePart] = []
    for a in attachments:
        mime = (a.content_type or "").split(";", 1)[0].strip().lower()
        if mime not in _IMAGE_TYPES:
            continue
        images.append(ImagePart(data=await a.read(), mime_type=mime))
    return images


class LeaderboardBot(commands.Bot):
    def __init__(self, handler: CommandHandler, *, title: str):
        intents = discord.Intents.default()
        intents.message_content = True
        super().__init__(command_prefix=commands.when_mentioned, intents=intents, help_command=None)
        self.handler = handler
        self.title = title

    async def setup_hook(self):
        # Games published before a restart are part of the running tournament.
        await self.handler.restore()

    async def on_ready(self):
        logger.info("Logged in as %s (%s)", self.user, self.user.id if self.user else "?")

    async def on_message(self, message: discord.Message):
        if message.author.bot or self.user is None:
            return

        text = _strip_mention(message.content or "", self.user.id)
        if text is None:
            return

        try:
            images = await _read_images(list(message.attachments))
            if message.attachments and not images:
                await message.channel.send("Attach the results as images (png/jpg/webp).")
                return

            async with message.channel.typing():
                reply = await self.handler.handle(text, images)
        except discord.DiscordException as e:
            logger.warning("Discord error while handling %r: %r", text, e)
            await message.channel.send("An error occurred")
            return
        except Exception:
            # Extraction failures (Gemini, network) land here.
            logger.exception("Command %r failed", text)
            await message.channel.send("An error occurred")
            return

        kwargs = {"content": reply.text}
        if reply.standings is not None and reply.standings.teams:
            kwargs["embed"] = standings_embed(reply.standings, title=self.title)
        await message.channel.send(**kwargs)


def _web_app(settings: Settings, client: GitHubContentsClient):
    return create_app(
        client,
        leaderboard_path=settings.leaderboard_path,
        leaderboards_dir=settings.leaderboards_dir,
        title=settings.title,
        player_key=player_key_for_policy(settings.player_name_policy),
    )


def build(settings: Settings) -> tuple[LeaderboardBot, uvicorn.Server]:
    client = GitHubContentsClient(settings.github_token, settings.github_repo, settings.github_branch)
    extractor = GeminiExtractor(api_key=settings.gemini_api_key, model_name=settings.gemini_model)
    handler = CommandHandler(
        store=LeaderboardStore(),
        client=client,
        settings=settings,
        extractor=extractor.aextract,
    )
    bot = LeaderboardBot(handler, title=settings.title)
    server = uvicorn.Server(
        uvicorn.Config(_web_app(settings, client), host="0.0.0.0", port=settings.port, log_config=None)
    )
    return bot, server


async def _main(settings: Settings) -> None:
    bot, server = build(settings)
    logger.info("Access the leaderboard at http://localhost:%d/", settings.port)
    async with bot:
        await asyncio.gather(bot.start(settings.discord_token), server.serve())


def run():
    discord.utils.setup_logging(root=True)
    settings = load_settings()
    asyncio.run(_main(settings))


def run_web():
    """Serve the report only (no Discord, no Gemini)."""
    discord.utils.setup_logging(root=True)
    settings = load_settings(require_discord=False)
    client = GitHubContentsClient(settings.github_token, settings.github_repo, settings.github_branch)
    uvicorn.run(_web_app(settings, client), host="0.0.0.0", port=settings.port, log_config=None)
