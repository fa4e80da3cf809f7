"""
Generates the spin history chart (winning power per spin) using Matplotlib and Pillow.
"""

import io

import matplotlib as mpl
import matplotlib.pyplot as plt
import numpy as np
from PIL import Image, ImageDraw, ImageFont

from utils.game_config import MEGA_WIN_THRESHOLD, MINOR_WIN_THRESHOLD

# --- Style Configuration ---
# Set a backend that doesn't require a GUI
mpl.use('Agg')

plt.style.use('dark_background')
mpl.rcParams['axes.edgecolor'] = '#555555'
mpl.rcParams['axes.linewidth'] = 1.5
mpl.rcParams['axes.labelcolor'] = '#AAAAAA'
mpl.rcParams['xtick.color'] = '#AAAAAA'
mpl.rcParams['ytick.color'] = '#AAAAAA'
mpl.rcParams['grid.color'] = '#333333'
mpl.rcParams['figure.facecolor'] = 'none'
mpl.rcParams['savefig.facecolor'] = 'none'
mpl.rcParams['axes.facecolor'] = '#1E1E1E'

LOSS_COLOR = "#E74C3C"
WIN_COLOR = "#2ECC71"
MAJOR_COLOR = "#F1C40F"


def _bar_color(record) -> str:
    if not record.is_win:
        return LOSS_COLOR
    return MAJOR_COLOR if record.power >= MINOR_WIN_THRESHOLD else WIN_COLOR

def _plot_history_to_buffer(history: list) -> io.BytesIO:
    """Handles all Matplotlib plotting and returns a buffer with the image."""
    fig, ax = plt.subplots(figsize=(6, 3), dpi=100)

    x_values = np.arange(1, len(history) + 1)
    # Losses still get a stub so they are visible on the chart.
    y_values = np.array([max(record.power, 2) for record in history])
    colors = [_bar_color(record) for record in history]

    ax.bar(x_values, y_values, color=colors, width=0.8)
    ax.axhline(MINOR_WIN_THRESHOLD, color=MAJOR_COLOR, linestyle='--', linewidth=0.8, alpha=0.6)
    ax.axhline(MEGA_WIN_THRESHOLD, color="#A837E2", linestyle='--', linewidth=0.8, alpha=0.6)

    ax.grid(True, axis='y', linestyle='--', linewidth=0.5)
    ax.spines['top'].set_visible(False)
    ax.spines['right'].set_visible(False)

    ax.set_xlim(left=0.3, right=max(10, len(history)) + 0.7)
    ax.set_ylim(bottom=0, top=100)
    ax.set_xlabel("Spin", fontsize=10)
    ax.set_ylabel("Winning power", fontsize=10)

    wins = sum(1 for record in history if record.is_win)
    ax.set_title(f"{wins}/{len(history)} wins", fontsize=14, color=WIN_COLOR, weight='bold')

    buf = io.BytesIO()
    plt.savefig(buf, format='png', transparent=True, bbox_inches='tight', pad_inches=0.1)
    plt.close(fig)
    buf.seek(0)
    return buf

def _add_empty_overlay(image: Image.Image) -> Image.Image:
    """Adds a 'NO SPINS YET' caption to an empty chart."""
    draw = ImageDraw.Draw(image)
    try:
        font = ImageFont.truetype("arial.ttf", size=int(image.height / 8))
    except IOError:
        font = ImageFont.load_default()
    draw.text(
        (image.width / 2, image.height / 2), "NO SPINS YET",
        font=font, fill="white", anchor="mm"
    )
    return image

def generate_history_image(history: list) -> io.BytesIO:
    """
    Generates a PNG bar chart of the recorded spins (`SpinRecord` items).
    """
    records = list(history)
    buf = _plot_history_to_buffer(records)
    image = Image.open(buf).convert("RGBA")

    if not records:
        image = _add_empty_overlay(image)

    final_buf = io.BytesIO()
    image.save(final_buf, 'PNG')
    final_buf.seek(0)
    return final_buf
