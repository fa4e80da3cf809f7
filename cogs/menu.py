"""
Cog for handling the interactive help menu.
"""
import discord
from discord.ext import commands
from discord import app_commands

from config import Config
from utils.embed_utils import create_embed
from utils.game_config import MEGA_WIN_THRESHOLD, MINOR_WIN_THRESHOLD

class HelpView(discord.ui.View):
    """
    A view that contains the help select menu.
    Dynamically adds the admin option for the bot owner.
    """
    def __init__(self, is_owner: bool = False):
        super().__init__(timeout=180) # View times out after 3 minutes
        self.add_item(HelpSelect(is_owner=is_owner))

class HelpSelect(discord.ui.Select):
    """
    The select menu for navigating help categories.
    """
    def __init__(self, is_owner: bool = False):
        options=[
            discord.SelectOption(
                label="Home", description="Back to the main page.", emoji="🏠"
            ),
            discord.SelectOption(
                label="Playing", description="Spinning, betting and autoplay.", emoji="🎰"
            ),
            discord.SelectOption(
                label="Account", description="Mode, balance and history.", emoji="💰"
            ),
            discord.SelectOption(
                label="Paytable", description="How wins are shown on the reels.", emoji="🏯"
            ),
        ]
        if is_owner:
            options.append(
                discord.SelectOption(
                    label="Admin", description="Commands for the bot owner.", emoji="👑"
                )
            )

        super().__init__(
            placeholder="Pick a category...",
            min_values=1,
            max_values=1,
            options=options
        )

    async def callback(self, interaction: discord.Interaction):
        """Handles the selection from the user."""
        await interaction.response.defer()

        selection = self.values[0]

        if interaction.user.id != interaction.client.owner_id and selection == "Admin":
            await interaction.followup.send("You cannot view this section.", ephemeral=True)
            return

        embed_map = {
            "Home": lambda: self.get_main_embed(interaction.user.id == interaction.client.owner_id),
            "Playing": self.get_playing_embed,
            "Account": self.get_account_embed,
            "Paytable": self.get_paytable_embed,
            "Admin": self.get_admin_embed,
        }
        builder = embed_map.get(selection)
        if builder:
            await interaction.edit_original_response(embed=builder())

    def get_main_embed(self, is_owner: bool) -> discord.Embed:
        """Creates the main help embed."""
        embed = create_embed(
            title=f"👋 Welcome to {Config.BOT_NAME}!",
            description=(
                "A 5x7 slot machine backed by the casino's game server.\n"
                "Use the menu below to explore the commands."
            )
        )

        value_lines = [
            "🎰 **Playing**: Spin the reels and run autoplay.",
            f"💰 **Account**: Switch between demo and real {Config.CURRENCY_NAME}.",
            "🏯 **Paytable**: How winning patterns appear.",
        ]
        if is_owner:
            value_lines.append("👑 **Admin**: Bot management commands.")

        embed.add_field(
            name="Categories",
            value="\n".join(value_lines),
            inline=False
        )
        return embed

    def get_playing_embed(self) -> discord.Embed:
        """Creates the embed for the Playing category."""
        embed = create_embed(
            title="🎰 Help - Playing 🎰",
            description="Every outcome is decided by the game server; the bot only draws it."
        )
        embed.add_field(
            name="`/slot spin [bet]`",
            value="Spin once. The bet is clamped to the table limits.",
            inline=False
        )
        embed.add_field(
            name="`/slot autoplay enabled`",
            value=(
                f"Keep spinning with a {int(Config.AUTOPLAY_PAUSE)}s pause between spins. "
                "Turning it off lets the current spin finish."
            ),
            inline=False
        )
        embed.add_field(
            name="Buttons",
            value="**Spin** and **Autoplay** under your machine work like the commands.",
            inline=False
        )
        return embed

    def get_account_embed(self) -> discord.Embed:
        """Creates the embed for the Account category."""
        embed = create_embed(
            title="💰 Help - Account 💰",
            description="Your balance lives on the game server."
        )
        embed.add_field(
            name="`/slot mode real|demo`",
            value="Switch balances. Real mode requires you to be logged in to the casino.",
            inline=False
        )
        embed.add_field(name="`/slot status`", value="Balance, bet range and machine state.", inline=False)
        embed.add_field(name="`/slot reset`", value="Reset your balance on the server.", inline=False)
        embed.add_field(
            name="`/slot history`",
            value="Chart the winning power of your recent spins.",
            inline=False
        )
        return embed

    def get_paytable_embed(self) -> discord.Embed:
        embed = create_embed(
            title="🏯 Help - Paytable 🏯",
            description=(
                "Each win shows one symbol in a pattern. Stronger wins use rarer symbols "
                "(the katana is the top prize)."
            )
        )
        embed.add_field(
            name="Patterns",
            value=(
                "Horizontal lines, zigzags, vertical lines, crosses, "
                "diagonals and V shapes."
            ),
            inline=False
        )
        embed.add_field(
            name="Celebrations",
            value=(
                f"Power {MINOR_WIN_THRESHOLD}+ shakes the screen. "
                f"Power {MEGA_WIN_THRESHOLD}+ adds an extra burst."
            ),
            inline=False
        )
        return embed

    def get_admin_embed(self) -> discord.Embed:
        """Creates the embed for the Admin category."""
        embed = create_embed(
            title="👑 Help - Owner Commands 👑",
            description="Commands reserved for the bot owner."
        )
        embed.add_field(
            name="`!sync [~|*|^] [guilds...]`",
            value="Sync the slash commands globally or to specific guilds.",
            inline=False
        )
        return embed

class Menu(commands.Cog):
    """
    Cog that handles the /help command and its interactive menu.
    """
    def __init__(self, bot: commands.Bot):
        self.bot = bot

    @app_commands.command(name="help", description="Show the help menu with every command.")
    async def help(self, interaction: discord.Interaction):
        """Displays the interactive help menu."""
        is_owner = await self.bot.is_owner(interaction.user)
        view = HelpView(is_owner=is_owner)

        select_menu: HelpSelect = view.children[0]
        initial_embed = select_menu.get_main_embed(is_owner)
        await interaction.response.send_message(
            embed=initial_embed, view=view, ephemeral=True
        )

async def setup(bot: commands.Bot):
    """Loads the Menu cog."""
    await bot.add_cog(Menu(bot))
