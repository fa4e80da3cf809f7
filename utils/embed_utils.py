"""
Utility functions for creating standardized Discord embeds.
"""
import discord
from config import Config
from utils.exceptions import (
    AuthorityUnreachable, GuardRejection, MalformedResponse, SessionLost
)

def create_embed(title, description, color=Config.COLOR_PRIMARY, **kwargs):
    """Creates a standard Discord embed."""
    embed = discord.Embed(title=title, description=description, color=color, **kwargs)
    embed.set_footer(text=f"{Config.BOT_NAME} v{Config.BOT_VERSION}")
    return embed

def create_error_embed(description):
    """Creates a standard error embed."""
    return create_embed("Error", description, color=Config.COLOR_ERROR)

def create_success_embed(description):
    """Creates a standard success embed."""
    return create_embed("Success", description, color=Config.COLOR_SUCCESS)

def create_warning_embed(description):
    return create_embed("Heads up", description, color=Config.COLOR_WARNING)

def format_currency(amount):
    """Formats a balance or bet; None means the authority has not reported one yet."""
    if amount is None:
        return "?"
    if float(amount).is_integer():
        return f"{int(amount):,} {Config.CURRENCY_SYMBOL}"
    return f"{amount:,.2f} {Config.CURRENCY_SYMBOL}"

def describe_slot_error(error):
    """Turns a slot machine error into a message for the player."""
    if isinstance(error, GuardRejection):
        return error.message
    if isinstance(error, SessionLost):
        return "Your casino session expired. Log in again, then retry."
    if isinstance(error, AuthorityUnreachable):
        return "The game server could not be reached. Your balance was not changed, try again."
    if isinstance(error, MalformedResponse):
        return "The game server sent an unexpected answer. Your balance was not changed."
    return getattr(error, "message", None) or "Something went wrong with the slot machine."
