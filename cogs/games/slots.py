"""
A cog for the Katana slot machine: a 5x7 grid whose outcomes come from the
remote casino backend and whose presentation is rendered here.
"""
import asyncio
import logging
import time
from typing import Literal, Optional

import discord
from discord import app_commands
from discord.ext import commands

from config import Config
from utils.audio import generate_tone_wav
from utils.authority import AuthorityClient, SessionCookieStore
from utils.embed_utils import (
    create_embed, create_error_embed, create_success_embed, create_warning_embed,
    describe_slot_error, format_currency
)
from utils.exceptions import GuardRejection, SlotError
from utils.feedback import TIER_MAJOR
from utils.graph_utils import generate_history_image
from utils.slot_graphics import (
    build_settle_frames, draw_banner_on_image, generate_animation_gif, generate_slot_image
)
from utils.spin_machine import MachineSettings, SpinMachine, SpinPresenter, SpinState

logger = logging.getLogger(__name__)

GRID_FILENAME = "slot.png"
SETTLE_FILENAME = "slot.gif"
AUDIO_FILENAME = "slot.wav"


# --- Views ---
class SlotControlsView(discord.ui.View):
    """Spin and Autoplay buttons under the machine message."""

    def __init__(self, table):
        super().__init__(timeout=None)
        self.table = table

        self.spin_button = discord.ui.Button(label="Spin", style=discord.ButtonStyle.green, emoji="🎰")
        self.autoplay_button = discord.ui.Button(style=discord.ButtonStyle.blurple)

        self.spin_button.callback = self.spin_callback
        self.autoplay_button.callback = self.autoplay_callback

        self.add_item(self.spin_button)
        self.add_item(self.autoplay_button)
        self.refresh()

    def refresh(self):
        """Syncs the button labels with the machine state."""
        machine = self.table.machine
        self.spin_button.disabled = machine.spinning or (
            machine.autoplay_pending and machine.session.autoplay_enabled
        )
        if machine.session.autoplay_enabled:
            self.autoplay_button.label = "Stop Autoplay"
            self.autoplay_button.style = discord.ButtonStyle.red
        else:
            self.autoplay_button.label = "Autoplay"
            self.autoplay_button.style = discord.ButtonStyle.blurple

    async def interaction_check(self, interaction: discord.Interaction) -> bool:
        """Ensures only the owner of the machine can press its buttons."""
        if interaction.user.id == self.table.user.id:
            return True
        await interaction.response.send_message(
            "This is not your slot machine! Use `/slot spin` to get your own.", ephemeral=True
        )
        return False

    async def on_error(self, interaction: discord.Interaction, error: Exception, item):
        if not isinstance(error, SlotError):
            logger.error("Error in slot controls for %s", interaction.user.id, exc_info=error)
        embed = create_error_embed(describe_slot_error(error))
        try:
            if interaction.response.is_done():
                await interaction.followup.send(embed=embed, ephemeral=True)
            else:
                await interaction.response.send_message(embed=embed, ephemeral=True)
        except discord.HTTPException as e:
            logger.error("Failed to send slot control error: %s", e)

    async def spin_callback(self, interaction: discord.Interaction):
        """Callback for the 'Spin' button."""
        await interaction.response.defer()
        self.table.presenter.interaction = interaction
        await self.table.spin()

    async def autoplay_callback(self, interaction: discord.Interaction):
        """Callback for the 'Autoplay' button."""
        await interaction.response.defer()
        self.table.presenter.interaction = interaction
        await self.table.machine.set_autoplay(not self.table.machine.session.autoplay_enabled)
        await self.table.presenter.refresh_controls()


# --- Presenter ---
class DiscordSlotPresenter(SpinPresenter):
    """
    Draws the machine into one Discord message. Animation frames are throttled
    to `MIN_EDIT_INTERVAL`; state changes and the settle animation always go out.
    """

    def __init__(self, table):
        self.table = table
        self.interaction: Optional[discord.Interaction] = None
        self.message: Optional[discord.Message] = None
        self.view = SlotControlsView(table)
        self._last_edit = 0.0
        self._image_name = GRID_FILENAME

    def bind(self, interaction: discord.Interaction, *, new_message: bool):
        self.interaction = interaction
        if new_message:
            self.message = None

    def _due(self) -> bool:
        return time.monotonic() - self._last_edit >= Config.MIN_EDIT_INTERVAL

    def _machine_embed(self, title, description, color=Config.COLOR_PRIMARY) -> discord.Embed:
        session = self.table.machine.session
        embed = create_embed(title, description, color=color)
        embed.add_field(name="Balance", value=format_currency(session.balance))
        embed.add_field(name="Bet", value=format_currency(session.bet_amount))
        embed.add_field(name="Mode", value="Real" if session.real_mode else "Demo")
        embed.set_author(
            name=f"{self.table.user.display_name}'s machine",
            icon_url=self.table.user.display_avatar.url
        )
        embed.set_image(url=f"attachment://{self._image_name}")
        return embed

    async def _publish(self, embed: discord.Embed, files=None, *, force: bool = False) -> bool:
        """
        Sends or edits the machine message. `files=None` keeps the current
        attachments. Returns False when throttled or when Discord refused.
        """
        if not force and not self._due():
            return False
        self._last_edit = time.monotonic()
        self.view.refresh()
        try:
            if self.message is None:
                if self.interaction is None:
                    return False
                extra = {'files': files} if files else {}
                self.message = await self.interaction.followup.send(
                    embed=embed, view=self.view, wait=True, **extra
                )
            elif files is None:
                await self.message.edit(embed=embed, view=self.view)
            else:
                await self.message.edit(embed=embed, attachments=files, view=self.view)
        except discord.HTTPException as e:
            logger.error("Failed to update slot message for %s: %s", self.table.user.id, e)
            return False
        return True

    def _grid_file(self, grid, highlights=frozenset(), glow=None) -> discord.File:
        self._image_name = GRID_FILENAME
        image_bytes = generate_slot_image({'grid': grid, 'highlights': highlights, 'glow': glow})
        return discord.File(image_bytes, filename=GRID_FILENAME)

    async def refresh_controls(self):
        if self.message is not None:
            await self._publish(self._machine_embed("🎰 Katana Slots", self._status_line()), force=True)

    async def _refresh_view(self):
        """Updates the buttons without touching the embed or attachments."""
        if self.message is None:
            return
        self.view.refresh()
        try:
            await self.message.edit(view=self.view)
        except discord.HTTPException as e:
            logger.error("Failed to update slot controls for %s: %s", self.table.user.id, e)

    def _status_line(self) -> str:
        machine = self.table.machine
        if machine.session.autoplay_enabled:
            return "Autoplay is **on**."
        return "Press **Spin** to play."

    async def on_state(self, state: SpinState):
        if state is SpinState.IDLE:
            await self._refresh_view()
            return
        if state is SpinState.SPINNING:
            machine = self.table.machine
            embed = self._machine_embed("🎰 Spinning...", "Good luck!", color=Config.COLOR_INFO)
            await self._publish(embed, [self._grid_file(machine.grid)], force=True)

    async def on_frame(self, grid, highlights=frozenset()):
        if not self._due():
            return
        embed = self._machine_embed("🎰 Spinning...", "Good luck!", color=Config.COLOR_INFO)
        await self._publish(embed, [self._grid_file(grid, highlights)])

    @staticmethod
    def _render_settle(report) -> tuple:
        frames = build_settle_frames(report.grid, report.highlights, report.feedback)
        if report.outcome.is_win and frames:
            banner = "MEGA WIN!" if report.feedback.tier == TIER_MAJOR else "WIN!"
            draw_banner_on_image(frames[-1], banner)
        gif = generate_animation_gif(frames)
        wav = None
        if Config.ATTACH_AUDIO and report.feedback.tones:
            wav = generate_tone_wav(report.feedback.tones)
        return gif, wav

    async def on_settled(self, report):
        outcome = report.outcome
        gif, wav = await asyncio.to_thread(self._render_settle, report)
        self._image_name = SETTLE_FILENAME
        files = [discord.File(gif, filename=SETTLE_FILENAME)]
        if wav is not None:
            files.append(discord.File(wav, filename=AUDIO_FILENAME))

        if outcome.is_win:
            major = report.feedback.tier == TIER_MAJOR
            title = "💥 MEGA WIN! 💥" if major else "🎉 You won! 🎉"
            description = (
                f"You won **{format_currency(outcome.payout)}** "
                f"with **{report.symbol}** ({report.pattern}), power {outcome.winning_power}."
            )
            color = Config.COLOR_SUCCESS
        else:
            title = "No win this time"
            description = "The reels did not line up."
            color = Config.COLOR_ERROR
        if outcome.message:
            description += f"\n{outcome.message}"
        if self.table.machine.session.autoplay_enabled and outcome.can_continue:
            description += f"\nNext spin in {int(Config.AUTOPLAY_PAUSE)}s..."

        await self._publish(self._machine_embed(title, description, color), files, force=True)

    async def on_countdown(self, seconds_left: int):
        if not self._due() or self.message is None:
            return
        embed = self._machine_embed(
            "🎰 Autoplay", f"Next spin in **{seconds_left}s**. Press **Stop Autoplay** to cancel."
        )
        await self._publish(embed)

    async def on_error(self, error: SlotError):
        embed = self._machine_embed("⚠️ Spin failed", describe_slot_error(error), Config.COLOR_ERROR)
        await self._publish(embed, [self._grid_file(self.table.machine.grid)], force=True)

    async def on_notice(self, message: str):
        # Sent on its own so the last result stays on the machine message.
        await self._refresh_view()
        if self.interaction is None:
            return
        try:
            await self.interaction.followup.send(
                embed=create_warning_embed(f"Autoplay stopped: {message}"), ephemeral=True
            )
        except discord.HTTPException as e:
            logger.error("Failed to send autoplay notice to %s: %s", self.table.user.id, e)

    async def on_idle_glow(self, cell):
        if not self._due() or self.message is None:
            return
        machine = self.table.machine
        embed = self._machine_embed("🎰 Katana Slots", self._status_line())
        await self._publish(embed, [self._grid_file(machine.grid, machine.highlights, {cell})])


# --- Per-player machine ---
class SlotTable:
    """One player's machine, its authority client and its presenter."""

    def __init__(self, bot: commands.Bot, user: discord.abc.User):
        self.user = user
        self.authority = AuthorityClient(
            Config.AUTHORITY_BASE_URL, timeout=Config.AUTHORITY_TIMEOUT,
            session=getattr(bot, "http_session", None), cookies=SessionCookieStore()
        )
        self.machine = SpinMachine(self.authority, settings=MachineSettings.from_config(Config))
        self.presenter = DiscordSlotPresenter(self)
        self.machine.presenter = self.presenter
        self.status_loaded = False

    async def ensure_status(self):
        if not self.status_loaded:
            await self.machine.refresh_status()
            self.status_loaded = True
            await self.machine.start()

    async def spin(self):
        await self.ensure_status()
        return await self.machine.spin()

    async def close(self):
        await self.machine.shutdown()
        await self.authority.close()


class SlotsCog(commands.Cog):
    """Cog for the /slot command group."""

    def __init__(self, bot: commands.Bot):
        self.bot = bot
        self.tables = {}  # user_id: SlotTable

    slot_group = app_commands.Group(name="slot", description="Play the Katana slot machine.")

    def _get_table(self, user) -> SlotTable:
        table = self.tables.get(user.id)
        if table is None:
            table = SlotTable(self.bot, user)
            self.tables[user.id] = table
            logger.info("Created slot machine for user %s", user.id)
        return table

    async def close_all(self):
        """Stops every machine; called when the bot shuts down."""
        tables, self.tables = list(self.tables.values()), {}
        for table in tables:
            await table.close()

    async def cog_unload(self):
        await self.close_all()

    @slot_group.command(name="spin", description="Spin the reels.")
    @app_commands.describe(bet="Amount to bet. Clamped to the table limits.")
    async def spin(
        self, interaction: discord.Interaction,
        bet: Optional[app_commands.Range[float, 0.01]] = None
    ):
        """Spins the player's machine once, posting a fresh machine message."""
        table = self._get_table(interaction.user)
        machine = table.machine
        # Reject before deferring publicly so the refusal stays private.
        if machine.spinning or machine.autoplay_pending:
            raise GuardRejection("Your machine is busy. Wait for it to stop first.")

        await interaction.response.defer()
        await table.ensure_status()
        if bet is not None:
            machine.set_bet(bet)
        table.presenter.bind(interaction, new_message=True)
        await table.spin()

    @slot_group.command(name="autoplay", description="Turn autoplay on or off.")
    @app_commands.describe(enabled="Whether autoplay should be on.")
    async def autoplay(self, interaction: discord.Interaction, enabled: bool):
        table = self._get_table(interaction.user)
        machine = table.machine
        await interaction.response.defer()
        await table.ensure_status()

        if enabled:
            idle = not machine.spinning and not machine.autoplay_pending
            table.presenter.bind(interaction, new_message=idle)
            await machine.set_autoplay(True)
            if not idle:
                await interaction.followup.send(
                    embed=create_success_embed("Autoplay is on."), ephemeral=True
                )
        else:
            await machine.set_autoplay(False)
            await table.presenter.refresh_controls()
            await interaction.followup.send(
                embed=create_success_embed("Autoplay will stop after the current spin."),
                ephemeral=True
            )

    @slot_group.command(name="mode", description="Switch between demo and real-money play.")
    @app_commands.describe(mode="Which balance to play with.")
    async def mode(self, interaction: discord.Interaction, mode: Literal["real", "demo"]):
        table = self._get_table(interaction.user)
        await interaction.response.defer(ephemeral=True)
        status = await table.machine.switch_mode(mode == "real")
        table.status_loaded = True

        description = f"Now playing in **{mode}** mode. Balance: **{format_currency(status.balance)}**."
        if mode == "real" and not status.is_logged_in:
            await interaction.followup.send(
                embed=create_warning_embed(description + "\nYou must log in to play the real game!"),
                ephemeral=True
            )
            return
        await interaction.followup.send(embed=create_success_embed(description), ephemeral=True)

    @slot_group.command(name="reset", description="Reset your balance on the game server.")
    async def reset(self, interaction: discord.Interaction):
        table = self._get_table(interaction.user)
        await interaction.response.defer(ephemeral=True)
        status = await table.machine.reset_balance()
        table.status_loaded = True
        await interaction.followup.send(
            embed=create_success_embed(
                f"Balance reset. New balance: **{format_currency(status.balance)}**."
            ),
            ephemeral=True
        )

    @slot_group.command(name="status", description="Show your balance, bet limits and machine state.")
    async def status(self, interaction: discord.Interaction):
        table = self._get_table(interaction.user)
        machine = table.machine
        await interaction.response.defer(ephemeral=True)
        await machine.refresh_status()
        table.status_loaded = True

        session = machine.session
        embed = create_embed("🎰 Machine Status", f"State: **{machine.state.value}**")
        embed.add_field(name="Balance", value=format_currency(session.balance))
        embed.add_field(name="Bet", value=format_currency(session.bet_amount))
        embed.add_field(
            name="Bet Range",
            value=f"{format_currency(session.min_bet)} - {format_currency(session.max_bet)}"
        )
        embed.add_field(name="Mode", value="Real" if session.real_mode else "Demo")
        embed.add_field(name="Logged In", value="Yes" if session.logged_in else "No")
        embed.add_field(name="Autoplay", value="On" if session.autoplay_enabled else "Off")
        if session.last_outcome is not None:
            embed.add_field(name="Last Spin", value=session.last_outcome.value.title())
        if session.last_error is not None:
            embed.add_field(
                name="Last Error", value=describe_slot_error(session.last_error), inline=False
            )
        await interaction.followup.send(embed=embed, ephemeral=True)

    @slot_group.command(name="history", description="Chart the winning power of your recent spins.")
    async def history(self, interaction: discord.Interaction):
        table = self._get_table(interaction.user)
        await interaction.response.defer(ephemeral=True)
        records = list(table.machine.history)
        image_bytes = await asyncio.to_thread(generate_history_image, records)

        wins = [record for record in records if record.is_win]
        embed = create_embed(
            "📈 Spin History",
            f"{len(records)} spins, {len(wins)} wins. "
            f"Total payout: **{format_currency(sum(record.payout for record in wins))}**."
        )
        embed.set_image(url="attachment://history.png")
        await interaction.followup.send(
            embed=embed, file=discord.File(image_bytes, filename="history.png"), ephemeral=True
        )


async def setup(bot: commands.Bot):
    """Sets up the cog."""
    await bot.add_cog(SlotsCog(bot))
