"""Main module for Katana Slots, a Discord slot machine bot."""

import logging
import logging.config
import os
from typing import Literal, Optional

import aiohttp
import discord
from discord import app_commands
from discord.ext import commands
from dotenv import load_dotenv

from config import Config
from utils.embed_utils import create_error_embed, describe_slot_error
from utils.exceptions import GuardRejection, SlotError

load_dotenv()

# --- Logging Setup ---
logging.config.dictConfig({
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'default': {
            'format': '[%(asctime)s] [%(levelname)-5s] [%(name)-20s] --- %(message)s',
            'datefmt': '%Y-%m-%d %H:%M:%S'
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'default',
            'level': 'INFO',
        },
        'file': {
            'class': 'logging.handlers.RotatingFileHandler',
            'formatter': 'default',
            'level': 'INFO',
            'filename': Config.LOG_FILE,
            'maxBytes': 1024*1024*5, # 5 MB
            'backupCount': 5,
            'encoding': 'utf-8',
        },
    },
    'root': {
        'handlers': ['console', 'file'],
        'level': 'INFO',
    }
})
logger = logging.getLogger(__name__)

# --- Bot Initialization ---
class KatanaBot(commands.Bot):
    """
    Main bot class; owns the shared HTTP session used by every slot machine.
    """
    def __init__(self):
        intents = discord.Intents.default()
        intents.message_content = True
        super().__init__(command_prefix="!", intents=intents)
        self.http_session: Optional[aiohttp.ClientSession] = None

    async def setup_hook(self):
        """
        Opens the shared HTTP session and loads the cogs.
        """
        logger.info("--- Starting Bot Setup ---")
        self.tree.on_error = self.on_app_command_error

        # Session cookies are relayed per player, so the shared jar stays empty.
        self.http_session = aiohttp.ClientSession(cookie_jar=aiohttp.DummyCookieJar())
        logger.info("HTTP session ready for %s", Config.AUTHORITY_BASE_URL)

        # Load cogs recursively and robustly
        cogs_loaded = 0
        cogs_path = "cogs"
        for root, _, files in os.walk(cogs_path):
            for filename in files:
                if filename.endswith(".py") and not filename.startswith("__"):
                    # Construct the full cog path like 'cogs.games.slots'
                    relative_path = os.path.relpath(root, start=os.getcwd())
                    module_path = os.path.join(relative_path, filename[:-3]).replace(os.sep, '.')

                    try:
                        await self.load_extension(module_path)
                        logger.info("Successfully loaded cog: %s", module_path)
                        cogs_loaded += 1
                    except commands.ExtensionError as e:
                        logger.error("Failed to load cog %s: %s", module_path, e, exc_info=True)

        logger.info("--- Loaded %s cogs ---", cogs_loaded)

        for guild_id in Config.DEV_GUILD_IDS:
            guild = discord.Object(id=guild_id)
            self.tree.copy_global_to(guild=guild)
            synced = await self.tree.sync(guild=guild)
            logger.info("Synced %s commands to dev guild %s", len(synced), guild_id)

        logger.info("--- Bot Setup Complete ---")

    async def on_ready(self):
        """
        Called once the bot has connected to Discord.
        """
        await self.change_presence(activity=discord.Game(name=Config.ACTIVITY_NAME))
        logger.info('Logged in as %s (ID: %s)', self.user, self.user.id)
        logger.info('Bot is ready and online!')

    async def on_app_command_error(self, interaction: discord.Interaction, error: app_commands.AppCommandError):
        """Shared error handler for every slash command."""
        command_name = interaction.command.name if interaction.command else "unknown"
        original = getattr(error, "original", error)

        if isinstance(original, GuardRejection):
            logger.info("Command '%s' rejected: %s", command_name, original.message)
        elif isinstance(original, SlotError):
            logger.error(
                "Slot error in command '%s': %s %s", command_name, original.message, original.details
            )
        else:
            # Log the full error for debugging purposes
            logger.error(
                "Error in command '%s': %s", command_name, error, exc_info=True
            )

        user_error_message = "An unexpected error occurred. Please try again later."

        if isinstance(original, SlotError):
            user_error_message = describe_slot_error(original)
        elif isinstance(error, app_commands.errors.CommandOnCooldown):
            user_error_message = (
                f"This command is on cooldown. "
                f"Try again in {error.retry_after:.1f} seconds."
            )
        elif isinstance(error, app_commands.errors.MissingPermissions):
            user_error_message = "You do not have permission to use this command."
        elif isinstance(error, app_commands.errors.CheckFailure):
            user_error_message = "You do not meet the requirements to use this command."

        embed = create_error_embed(user_error_message)

        try:
            # Use followup if the initial response has already been sent
            if interaction.response.is_done():
                await interaction.followup.send(embed=embed, ephemeral=True)
            else:
                await interaction.response.send_message(embed=embed, ephemeral=True)
        except discord.HTTPException as e:
            # Log if sending the error message itself fails
            logger.error("Failed to send error message to interaction: %s", e)

    async def close(self):
        """
        Stops every machine and closes the HTTP session before disconnecting.
        """
        logger.info("Closing bot connection...")
        slots = self.get_cog("SlotsCog")
        if slots is not None:
            await slots.close_all()
        if self.http_session is not None and not self.http_session.closed:
            await self.http_session.close()
        await super().close()

bot = KatanaBot()

@bot.command()
@commands.guild_only()
@commands.is_owner()
async def sync(
    ctx: commands.Context,
    guilds: commands.Greedy[discord.Object],
    scope: Optional[Literal["~", "*", "^"]] = None
) -> None:
    """
    Syncs the application (slash) commands with Discord.

    Only the bot owner can use this command.

    Usage:
    - `!sync`: Sync global commands.
    - `!sync ~`: Sync commands to the current guild.
    - `!sync *`: Copy the global commands to the current guild and sync.
    - `!sync ^`: Clear every command from the current guild and sync.
    - `!sync <guild_id_1> <guild_id_2>`: Sync commands to the given guilds.
    - `!sync ^ <guild_id_1>`: Clear commands from the given guild.
    """
    if not guilds:
        if scope == "~":
            # Sync to the current guild only.
            synced = await ctx.bot.tree.sync(guild=ctx.guild)
            await ctx.send(f"Synced {len(synced)} commands to the current guild.")
        elif scope == "*":
            # Copies all global commands to the current guild and syncs.
            ctx.bot.tree.copy_global_to(guild=ctx.guild)
            synced = await ctx.bot.tree.sync(guild=ctx.guild)
            await ctx.send(
                f"Copied and synced {len(synced)} commands to the current guild."
            )
        elif scope == "^":
            # Clears all commands from the current guild tree and syncs.
            ctx.bot.tree.clear_commands(guild=ctx.guild)
            await ctx.bot.tree.sync(guild=ctx.guild)
            await ctx.send("Cleared all commands from the current guild.")
        else:
            # Syncs all global commands to all guilds.
            synced = await ctx.bot.tree.sync()
            await ctx.send(f"Synced {len(synced)} commands globally.")
        return

    # Handle syncing to specified guilds
    synced_count = 0
    for guild in guilds:
        try:
            if scope == "^":
                # Clear commands for the specified guild before syncing.
                logger.info("Clearing commands for guild %s...", guild.id)
                ctx.bot.tree.clear_commands(guild=guild)
                await ctx.bot.tree.sync(guild=guild) # Sync the clearance
                logger.info("Commands cleared for guild %s.", guild.id)

            # Sync the new tree
            await ctx.bot.tree.sync(guild=guild)
            logger.info("Synced commands for guild %s.", guild.id)
            synced_count += 1
        except discord.HTTPException as e:
            logger.error("Failed to sync commands to guild %s: %s", guild.id, e)

    await ctx.send(f"Synced/Cleared commands for {synced_count}/{len(guilds)} specified guilds.")


if __name__ == "__main__":
    TOKEN = os.getenv('DISCORD_TOKEN')
    if TOKEN is None:
        raise ValueError("DISCORD_TOKEN environment variable not set.")
    bot.run(TOKEN)
