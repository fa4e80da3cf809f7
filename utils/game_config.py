"""
Configuration constants for the Katana slot machine.
This includes the symbol catalog, pattern families, grid synthesis bounds
and the feedback thresholds.
"""

# --- Symbol Catalog ---
# Ordered; the order decides which power bucket each symbol owns.
SYMBOLS = (
    "amor-hand", "amor", "blue-diamond", "dagger", "diamond",
    "flower", "fox", "gift-scroll", "grenade", "lamp",
    "male-masked", "masked", "medal", "pink-diamond", "ruby",
    "sack-treasure", "scroll", "spikes", "sword", "katana",
)

# Display style per symbol: (emoji, short label, tile color)
SYMBOL_STYLES = {
    "amor-hand":     ("🫴", "AH", (214, 96, 142)),
    "amor":          ("💘", "AM", (231, 76, 120)),
    "blue-diamond":  ("🔷", "BD", (52, 152, 219)),
    "dagger":        ("🗡️", "DG", (127, 140, 141)),
    "diamond":       ("💎", "DI", (93, 173, 226)),
    "flower":        ("🌸", "FL", (245, 160, 200)),
    "fox":           ("🦊", "FX", (230, 126, 34)),
    "gift-scroll":   ("🎁", "GS", (46, 204, 113)),
    "grenade":       ("💣", "GR", (60, 60, 60)),
    "lamp":          ("🪔", "LP", (241, 196, 15)),
    "male-masked":   ("🥷", "MM", (52, 73, 94)),
    "masked":        ("🎭", "MS", (155, 89, 182)),
    "medal":         ("🏅", "MD", (212, 172, 13)),
    "pink-diamond":  ("💗", "PD", (255, 105, 180)),
    "ruby":          ("🔴", "RB", (192, 57, 43)),
    "sack-treasure": ("💰", "ST", (160, 110, 50)),
    "scroll":        ("📜", "SC", (222, 184, 135)),
    "spikes":        ("✴️", "SP", (211, 84, 0)),
    "sword":         ("⚔️", "SW", (149, 165, 166)),
    "katana":        ("🏯", "KT", (168, 55, 226)),
}

# --- Pattern Families ---
# Selected by (power - bucket center) mod 3; the variant inside a family is
# picked by (remainder // 3) mod len(family).
FAMILY_HORIZONTAL = "horizontal"
FAMILY_VERTICAL = "vertical"
FAMILY_DIAGONAL = "diagonal"
FAMILY_ORDER = (FAMILY_HORIZONTAL, FAMILY_VERTICAL, FAMILY_DIAGONAL)

PATTERN_FAMILIES = {
    FAMILY_HORIZONTAL: ("horizontal-5", "horizontal-3", "zigzag"),
    FAMILY_VERTICAL: ("vertical-3", "cross"),
    FAMILY_DIAGONAL: ("diagonal-main", "diagonal-reverse", "v-shape"),
}
CLUSTER_PATTERN = "cluster"

# --- Grid Synthesis ---
FILL_ATTEMPTS = 10
REPAIR_STEPS = 200
SWAP_TRIES = 12
MAX_CLUSTER_SHAPES = 4
CLUSTER_PLACEMENT_ATTEMPTS = 40
MIN_CLUSTER_SEPARATION = 2.3
CLUSTER_RUN_LENGTHS = (3, 4, 5)

# --- Feedback Thresholds ---
MINOR_WIN_THRESHOLD = 40  # below this a win gets the minor burst
MEGA_WIN_THRESHOLD = 85   # at or above this an extra one-shot burst fires

TONE_BASE_FREQUENCY = 440.0
TONE_FREQUENCY_PER_POWER = 4.4
TONE_BASE_GAIN = 0.25
TONE_GAIN_PER_POWER = 0.005
TONE_MAX_GAIN = 0.8
TONE_NOTE_RATIOS = (1.0, 1.25, 1.5)
TONE_NOTE_DURATION = 0.12
TONE_DURATION_PER_POWER = 0.001
LOSS_TONES = ((330.0, 0.2, 0.09), (220.0, 0.18, 0.12))  # (frequency, gain, duration)

MINOR_BURST_BASE = 20
MINOR_BURST_PER_POWER = 1.5
MINOR_SPREAD_BASE = 60.0
MINOR_DURATION_BASE = 1.0
MINOR_DURATION_PER_POWER = 0.015
MAJOR_BURST_BASE = 60
MAJOR_BURST_PER_POWER = 3.0
MAJOR_SPREAD = 360.0
MAJOR_DURATION_BASE = 2.0
MAJOR_DURATION_PER_POWER = 0.03
EXTRA_BURST_PARTICLES = 150
EXTRA_BURST_DURATION = 1.5
BURST_WAVE_INTERVAL = 0.25

SHAKE_BASE_DURATION = 0.3
SHAKE_DURATION_SPAN = 0.7
SHAKE_BASE_AMPLITUDE = 4.0
SHAKE_AMPLITUDE_SPAN = 12.0
FLASH_BASE_DURATION = 0.15
FLASH_DURATION_SPAN = 0.35
FLASH_BASE_OFFSET = 2.0
FLASH_OFFSET_SPAN = 6.0
