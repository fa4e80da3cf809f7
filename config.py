"""
Central configuration file for Katana Slots.

Loads environment variables from the .env file and defines the configuration
constants used across the application.
"""
import os
from dotenv import load_dotenv

load_dotenv()

# pylint: disable=too-few-public-methods
class Config:
    """
    Configuration class holding all settings and constants for the bot.
    """
    # Discord Settings
    DISCORD_TOKEN = os.getenv('DISCORD_TOKEN')
    # A comma-separated list of guild IDs for instant command syncing
    DEV_GUILD_IDS = [
        int(x.strip())
        for x in os.getenv('DEV_GUILD_IDS', '').split(',')
        if x.strip()
    ]

    # Outcome Authority (remote casino backend)
    AUTHORITY_BASE_URL = os.getenv(
        'AUTHORITY_BASE_URL', 'https://cryptocasino.vegas/win/games-save-play.php'
    )
    AUTHORITY_TIMEOUT = float(os.getenv('AUTHORITY_TIMEOUT', '10'))

    # Currency Settings
    CURRENCY_NAME = os.getenv('CURRENCY_NAME', 'Credits')
    CURRENCY_SYMBOL = os.getenv('CURRENCY_SYMBOL', '🪙')
    DEFAULT_BET = int(os.getenv('DEFAULT_BET', '10'))

    # Machine layout
    GRID_ROWS = int(os.getenv('GRID_ROWS', '5'))
    GRID_COLS = int(os.getenv('GRID_COLS', '7'))
    # "columns" stops reels left to right, "drop" clears the grid and drops cells in
    REVEAL_MODE = os.getenv('REVEAL_MODE', 'columns')
    # "pattern" embeds a named shape, "cluster" scatters separated shapes
    WIN_LAYOUT = os.getenv('WIN_LAYOUT', 'pattern')

    # Spin timings (seconds)
    COLUMN_SPIN_STAGGER = float(os.getenv('COLUMN_SPIN_STAGGER', '0.1'))
    COLUMN_SPIN_TICK = float(os.getenv('COLUMN_SPIN_TICK', '0.07'))
    FRAME_INTERVAL = float(os.getenv('FRAME_INTERVAL', '1.0'))
    COLUMN_SETTLE_DELAY = float(os.getenv('COLUMN_SETTLE_DELAY', '0.15'))
    COLUMN_SETTLE_JITTER = float(os.getenv('COLUMN_SETTLE_JITTER', '0.05'))
    DROP_CLEAR_PAUSE = float(os.getenv('DROP_CLEAR_PAUSE', '0.3'))
    DROP_COLUMN_STAGGER = float(os.getenv('DROP_COLUMN_STAGGER', '0.08'))
    DROP_ROW_STAGGER = float(os.getenv('DROP_ROW_STAGGER', '0.04'))
    AUTOPLAY_PAUSE = float(os.getenv('AUTOPLAY_PAUSE', '5'))
    # 0 disables the ambient glow while idle
    IDLE_GLOW_INTERVAL = float(os.getenv('IDLE_GLOW_INTERVAL', '0'))
    # Minimum gap between two message edits, Discord rate-limits edits
    MIN_EDIT_INTERVAL = float(os.getenv('MIN_EDIT_INTERVAL', '1.2'))

    # Feedback
    ATTACH_AUDIO = os.getenv("ATTACH_AUDIO", "False").lower() in ("true", "1", "t")
    SPIN_HISTORY_SIZE = int(os.getenv('SPIN_HISTORY_SIZE', '50'))

    # Bot Settings
    BOT_NAME = 'Katana Slots'
    BOT_VERSION = '1.0.0'
    ACTIVITY_NAME = os.getenv('ACTIVITY_NAME', '/slot spin')
    LOG_FILE = os.getenv('LOG_FILE', 'katana_slots.log')

    # Colors for embeds
    COLOR_SUCCESS = 0x00ff00
    COLOR_ERROR = 0xff0000
    COLOR_WARNING = 0xffff00
    COLOR_INFO = 0x0099ff
    COLOR_PRIMARY = 0xa837e2  # Katana purple

# Create a singleton instance of the config
Config = Config()
