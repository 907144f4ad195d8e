from __future__ import annotations

import argparse
import asyncio
import logging
import os
from pathlib import Path
from typing import Optional

import discord
from discord import app_commands
from discord.ext import commands

from .config import Config, ConfigError, LoggingConfig, load_config
from .display import DiscordDisplay
from .errors import ValidationError
from .giveaway_manager import GiveawayManager
from .models import Giveaway
from .ports import DisplayPayload
from .storage import GiveawayStorage
from .views import GENERIC_FAILURE, GiveawayPanelView, GiveawayView, is_admin, perform

log = logging.getLogger(__name__)
PERMISSION_LOG = logging.getLogger("giveaway.permissions")
ENV_PATH = Path(".env")


def _load_env_file(path: Path = ENV_PATH) -> None:
    if not path.exists():
        return
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError:
        return
    for line in raw.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#") or "=" not in stripped:
            continue
        key, value = (part.strip() for part in stripped.split("=", 1))
        if not key:
            continue
        if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
            value = value[1:-1]
        os.environ.setdefault(key, value)


LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging(settings: LoggingConfig) -> Path:
    """Console at the configured level, full DEBUG trail in ``<directory>/giveaways.log``."""
    console_level = getattr(logging, settings.level.upper(), logging.INFO)
    formatter = logging.Formatter(LOG_FORMAT)

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.setLevel(logging.DEBUG)

    console = logging.StreamHandler()
    console.setLevel(console_level)
    console.setFormatter(formatter)
    root.addHandler(console)

    settings.directory.mkdir(parents=True, exist_ok=True)
    log_path = settings.directory / "giveaways.log"
    trail = logging.FileHandler(log_path, encoding="utf-8")
    trail.setLevel(logging.DEBUG)
    trail.setFormatter(formatter)
    root.addHandler(trail)

    # discord.py is chatty at DEBUG
    logging.getLogger("discord").setLevel(max(console_level, logging.INFO))
    return log_path


class GiveawayBot(commands.Bot):
    def __init__(self, config: Config, storage: GiveawayStorage) -> None:
        intents = discord.Intents.default()
        intents.members = True

        super().__init__(
            command_prefix=commands.when_mentioned,
            intents=intents,
            application_id=config.application_id,
        )
        self.config = config
        self.storage = storage
        self.display = DiscordDisplay(self, view_factory=self._build_view)
        self.manager = GiveawayManager(storage, self.display, config.giveaway)

    def _build_view(self, payload: DisplayPayload) -> Optional[discord.ui.View]:
        if not payload.controls:
            return None
        return GiveawayView(self.manager, payload.giveaway_id, payload.controls)

    async def setup_hook(self) -> None:
        await self.manager.restore_open_giveaways()
        await self.tree.sync()
        dev_guild_id = self.config.permissions.development_guild_id
        if dev_guild_id:
            await self.tree.sync(guild=discord.Object(dev_guild_id))

    async def on_ready(self) -> None:
        log.info("Logged in as %s (%s)", self.user, getattr(self.user, "id", None))

    async def on_member_update(self, before: discord.Member, after: discord.Member) -> None:
        tag_role_id = self.config.giveaway.eligibility.tag_role_id
        if not tag_role_id:
            return
        had = any(role.id == tag_role_id for role in before.roles)
        has = any(role.id == tag_role_id for role in after.roles)
        if had or not has:
            return
        recorded = await self.storage.record_role_first_seen(
            after.guild.id, after.id, tag_role_id
        )
        if recorded:
            log.info("Recorded first tag role observation for member %s.", after.id)

    async def close(self) -> None:
        self.manager.shutdown()
        await super().close()


async def admin_required(
    interaction: discord.Interaction, admin_role_ids: list[int]
) -> Optional[str]:
    command_name = getattr(getattr(interaction, "command", None), "name", "unknown")
    user = interaction.user
    if interaction.guild is None or not isinstance(user, discord.Member):
        PERMISSION_LOG.debug(
            "Denied command %s for user %s: non-guild context.", command_name, user.id
        )
        return "This command can only be used inside a guild."
    if not is_admin(user, admin_role_ids):
        PERMISSION_LOG.warning(
            "Denied command %s for user %s: missing giveaway admin rights (roles=%s).",
            command_name,
            user.id,
            [role.id for role in user.roles],
        )
        return "You do not have permission to manage giveaways."
    PERMISSION_LOG.debug("Authorized command %s for user %s.", command_name, user.id)
    return None


async def resolve_target(
    manager: GiveawayManager, channel_id: int, giveaway_id: Optional[str]
) -> Optional[Giveaway]:
    """Explicit id first, then the open giveaway in the channel, then the latest one."""
    if giveaway_id:
        return await manager.get_giveaway(giveaway_id.strip())
    active = await manager.get_active_giveaway(channel_id)
    if active:
        return active
    return await manager.get_latest_giveaway(channel_id)


def build_bot(config_path: Path) -> GiveawayBot:
    _load_env_file()
    config = load_config(config_path)
    configure_logging(config.logging)
    storage = GiveawayStorage(config.database_path)
    return GiveawayBot(config, storage)


def register_commands(bot: GiveawayBot) -> None:
    manager = bot.manager
    admin_roles = bot.config.permissions.admin_roles

    @bot.tree.command(name="giveaway", description="Create a giveaway in this channel.")
    @app_commands.describe(
        description="What is the prize or context.",
        duration="How long signups stay open: 10m | 2h | 1d.",
        image="Optional image shown on the giveaway.",
    )
    async def giveaway_create(
        interaction: discord.Interaction,
        description: app_commands.Range[str, 1, 1000],
        duration: app_commands.Range[str, 1, 10],
        image: Optional[discord.Attachment] = None,
    ) -> None:
        error = await admin_required(interaction, admin_roles)
        if error:
            await interaction.response.send_message(error, ephemeral=True)
            return

        await interaction.response.defer(ephemeral=True)

        async def action() -> str:
            if image is not None and not (image.content_type or "").startswith("image/"):
                raise ValidationError("The attachment must be an image.")
            giveaway, ref = await manager.create_giveaway(
                guild_id=interaction.guild.id,  # type: ignore[union-attr]
                channel_id=interaction.channel_id,  # type: ignore[arg-type]
                description=description,
                duration_text=duration,
                created_by=interaction.user.id,
                image_url=image.url if image is not None else None,
            )
            return f"Created giveaway `{giveaway.id}`.\n{ref.jump_url or ''}".rstrip()

        reply = await perform(action, context="create")
        await interaction.followup.send(reply, ephemeral=True)

    @bot.tree.command(
        name="giveaway-manage", description="Manage a giveaway via an ephemeral panel."
    )
    @app_commands.describe(
        giveaway_id="Giveaway to manage. Defaults to the current one in this channel."
    )
    async def giveaway_manage(
        interaction: discord.Interaction, giveaway_id: Optional[str] = None
    ) -> None:
        error = await admin_required(interaction, admin_roles)
        if error:
            await interaction.response.send_message(error, ephemeral=True)
            return

        giveaway = await resolve_target(manager, interaction.channel_id, giveaway_id)  # type: ignore[arg-type]
        if giveaway is None:
            await interaction.response.send_message("No target giveaway.", ephemeral=True)
            return

        controls = await manager.panel_controls(giveaway)
        embed = discord.Embed(
            title="Giveaway Manager",
            description=f"Target: `{giveaway.id}`\nStatus: {giveaway.status.value}",
        )
        await interaction.response.send_message(
            embed=embed,
            view=GiveawayPanelView(manager, giveaway.id, controls, admin_roles),
            ephemeral=True,
        )

    @bot.tree.error
    async def on_app_command_error(
        interaction: discord.Interaction, error: app_commands.AppCommandError
    ) -> None:
        command_name = getattr(interaction.command, "name", "unknown")
        log.error("Command %s failed", command_name, exc_info=error)
        if interaction.response.is_done():
            await interaction.followup.send(GENERIC_FAILURE, ephemeral=True)
        else:
            await interaction.response.send_message(GENERIC_FAILURE, ephemeral=True)


async def main() -> None:
    parser = argparse.ArgumentParser(description="Discord Giveaway Engine")
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("config") / "config.yaml",
        help="Path to the bot configuration file.",
    )
    args = parser.parse_args()

    try:
        bot = build_bot(args.config)
    except ConfigError as exc:
        raise SystemExit(f"Configuration error: {exc}") from exc

    register_commands(bot)

    async with bot:
        await bot.start(bot.config.token)


if __name__ == "__main__":
    asyncio.run(main())
