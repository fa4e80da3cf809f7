"""
This module handles the generation of all graphics for the Katana slot machine,
including rendering the symbol grid, the power meter, and the settle animation
(confetti, screen shake and chromatic flash) using the Pillow library.
"""
import io
import math
import os
import random

from PIL import Image, ImageChops, ImageDraw, ImageFont

from utils.easing import ease_in_cubic, ease_in_out_quad, ease_out_bounce, ease_out_quad
from utils.game_config import SYMBOL_STYLES

# --- Constants ---
CELL_SIZE = 80
CELL_INSET = 6
PADDING = 20
METER_HEIGHT = 18
METER_GAP = 16
GRID_LINE_COLOR = (80, 80, 80)
BACKGROUND_COLOR = (21, 8, 33)  # Katana night purple
EMPTY_CELL_COLOR = (40, 24, 56)
HIGHLIGHT_COLOR_WIN = (255, 215, 0, 110)  # Semi-transparent gold
GLOW_COLOR = (255, 255, 255, 60)
METER_TRACK_COLOR = (223, 168, 255)
METER_FILL_COLOR = (152, 80, 251)
CONFETTI_COLORS = (
    (255, 87, 87), (255, 196, 0), (87, 255, 140), (87, 180, 255), (214, 87, 255)
)
FRAME_MS = 100
MAX_SETTLE_FRAMES = 30
MIN_SETTLE_FRAMES = 10
METER_SWEEP_SECONDS = 0.8

# --- Font Loading ---
def get_font_path(font_name="DejaVuSans-Bold.ttf"):
    """Finds a font, preferring system paths but falling back to a local directory."""
    for folder in (
        os.path.join("C:", os.sep, "Windows", "Fonts"),
        "/usr/share/fonts/truetype/dejavu",
    ):
        font_path = os.path.join(folder, font_name)
        if os.path.exists(font_path):
            return font_path
    return os.path.join(os.path.dirname(__file__), font_name)

def load_font(size: int):
    try:
        return ImageFont.truetype(get_font_path(), size)
    except IOError:
        return ImageFont.load_default()

LABEL_FONT = load_font(26)
BANNER_FONT = load_font(40)


def image_size(rows: int, cols: int) -> tuple:
    width = cols * CELL_SIZE + 2 * PADDING
    height = rows * CELL_SIZE + 2 * PADDING + METER_GAP + METER_HEIGHT
    return width, height


def _draw_static_grid(draw, grid, y_offsets=None):
    """Draws the symbol tiles, applying drop offsets if provided."""
    for r, row in enumerate(grid):
        for c, symbol in enumerate(row):
            x0 = PADDING + c * CELL_SIZE
            y0 = PADDING + r * CELL_SIZE
            if not symbol:
                draw.rectangle(
                    [x0 + CELL_INSET, y0 + CELL_INSET,
                     x0 + CELL_SIZE - CELL_INSET, y0 + CELL_SIZE - CELL_INSET],
                    fill=EMPTY_CELL_COLOR
                )
                continue
            if y_offsets and (r, c) in y_offsets:
                y0 += y_offsets[(r, c)]
            _, label, color = SYMBOL_STYLES.get(symbol, ("?", symbol[:2].upper(), (120, 120, 120)))
            draw.rounded_rectangle(
                [x0 + CELL_INSET, y0 + CELL_INSET,
                 x0 + CELL_SIZE - CELL_INSET, y0 + CELL_SIZE - CELL_INSET],
                radius=12, fill=color
            )
            draw.text(
                (x0 + CELL_SIZE / 2, y0 + CELL_SIZE / 2), label,
                font=LABEL_FONT, fill=(255, 255, 255), anchor="mm"
            )

def _draw_grid_lines(draw, rows, cols):
    """Draws the grid lines over the symbols."""
    right = PADDING + cols * CELL_SIZE
    bottom = PADDING + rows * CELL_SIZE
    for r in range(rows + 1):
        y = PADDING + r * CELL_SIZE
        draw.line([(PADDING, y), (right, y)], fill=GRID_LINE_COLOR, width=2)
    for c in range(cols + 1):
        x = PADDING + c * CELL_SIZE
        draw.line([(x, PADDING), (x, bottom)], fill=GRID_LINE_COLOR, width=2)

def _draw_cell_overlay(draw, cells, color):
    """Fills the given cells with a translucent color."""
    for r, c in cells or ():
        x0, y0 = PADDING + c * CELL_SIZE, PADDING + r * CELL_SIZE
        draw.rectangle([x0, y0, x0 + CELL_SIZE, y0 + CELL_SIZE], fill=color)

def _draw_highlights(draw, highlights, alpha_override=None):
    """Draws highlights over winning cells."""
    if not highlights:
        return
    alpha = alpha_override if alpha_override is not None else HIGHLIGHT_COLOR_WIN[3]
    color = (HIGHLIGHT_COLOR_WIN[0], HIGHLIGHT_COLOR_WIN[1], HIGHLIGHT_COLOR_WIN[2], alpha)
    _draw_cell_overlay(draw, highlights, color)

def _draw_power_meter(draw, rows, cols, power):
    """Draws the winning-power progress bar under the grid."""
    left = PADDING
    right = PADDING + cols * CELL_SIZE
    top = PADDING + rows * CELL_SIZE + METER_GAP
    draw.rectangle([left, top, right, top + METER_HEIGHT], fill=METER_TRACK_COLOR)
    fraction = max(0.0, min(1.0, (power or 0) / 100))
    if fraction > 0:
        draw.rectangle(
            [left, top, left + (right - left) * fraction, top + METER_HEIGHT],
            fill=METER_FILL_COLOR
        )

def render_slot_frame(options: dict) -> Image.Image:
    """
    Renders one frame of the slot machine as a PIL image.

    Options: grid (required), highlights, glow, power, y_offsets,
    highlight_alpha_override.
    """
    grid = options['grid']
    rows = len(grid)
    cols = len(grid[0]) if rows else 0
    image = Image.new("RGBA", image_size(rows, cols), BACKGROUND_COLOR)
    draw = ImageDraw.Draw(image, "RGBA")

    _draw_static_grid(draw, grid, options.get('y_offsets'))
    _draw_grid_lines(draw, rows, cols)
    _draw_highlights(draw, options.get('highlights'), options.get('highlight_alpha_override'))
    _draw_cell_overlay(draw, options.get('glow'), GLOW_COLOR)
    if options.get('power') is not None:
        _draw_power_meter(draw, rows, cols, options['power'])
    return image

def image_to_png(image: Image.Image) -> io.BytesIO:
    img_buffer = io.BytesIO()
    image.save(img_buffer, format="PNG")
    img_buffer.seek(0)
    return img_buffer

def generate_slot_image(options: dict) -> io.BytesIO:
    """
    Generates a PNG of the slot machine grid based on the provided options.
    """
    return image_to_png(render_slot_frame(options))

# --- Settle animation ---
def _draw_flashing_border(draw, width, height, progress):
    """Draws a pulsing border on the image."""
    border_pulse = math.sin(progress * 4 * math.pi)
    border_width = int(10 * (0.5 + 0.5 * border_pulse))
    if border_width > 0:
        border_color = (255, 215, 0, 200)
        draw.rectangle([0, 0, width-1, height-1], outline=border_color, width=border_width)

def _draw_confetti(draw, width, height, progress, burst, seed):
    """Draws a falling confetti burst; `spread` (degrees) widens the scatter."""
    rng = random.Random(seed)
    scatter = width * min(1.0, burst.spread / 360) / 2
    for i in range(burst.particles):
        # Alternate between a left and a right launch point.
        origin = width * (rng.uniform(0.1, 0.3) if i % 2 == 0 else rng.uniform(0.7, 0.9))
        x = origin + rng.uniform(-scatter, scatter)
        y_start = rng.uniform(-height, 0)
        speed = rng.uniform(0.5, 1.5)
        y = y_start + (height * 1.5) * ease_in_cubic(progress) * speed + height * progress * 0.5
        if 0 < y < height:
            size = rng.randint(3, 7)
            color = CONFETTI_COLORS[i % len(CONFETTI_COLORS)]
            draw.rectangle([x, y, x + size, y + size * 0.6], fill=color)

def _apply_chromatic_flash(image: Image.Image, offset: int) -> Image.Image:
    """Splits the red and blue channels apart by `offset` pixels."""
    if offset <= 0:
        return image
    red, green, blue, alpha = image.split()
    red = ImageChops.offset(red, -offset, 0)
    blue = ImageChops.offset(blue, offset, 0)
    return Image.merge("RGBA", (red, green, blue, alpha))

def _apply_shake(image: Image.Image, dx: int, dy: int) -> Image.Image:
    if dx == 0 and dy == 0:
        return image
    shaken = Image.new("RGBA", image.size, BACKGROUND_COLOR)
    shaken.paste(image, (dx, dy))
    return shaken

def _settle_duration(plan) -> float:
    durations = [METER_SWEEP_SECONDS]
    for effect in (plan.burst, plan.extra_burst, plan.shake, plan.flash):
        if effect is not None:
            durations.append(effect.duration)
    return max(durations)

def build_settle_frames(grid, highlights, plan) -> list:
    """
    Builds the frames shown when a spin settles: winning cells bounce in, the
    power meter sweeps up, and confetti, shake and chromatic flash play as the
    feedback plan dictates.
    """
    frame_count = max(
        MIN_SETTLE_FRAMES,
        min(MAX_SETTLE_FRAMES, math.ceil(_settle_duration(plan) * 1000 / FRAME_MS))
    )
    drop_frames = max(1, frame_count // 3)
    frames = []
    for i in range(frame_count):
        t = i * FRAME_MS / 1000
        progress = (i + 1) / frame_count

        y_offsets = None
        if highlights and i < drop_frames:
            fall = 1 - ease_out_bounce((i + 1) / drop_frames)
            y_offsets = {cell: int(-fall * CELL_SIZE) for cell in highlights}

        meter = ease_in_out_quad(min(1.0, t / METER_SWEEP_SECONDS)) * plan.power
        image = render_slot_frame({
            'grid': grid,
            'highlights': highlights,
            'power': meter,
            'y_offsets': y_offsets,
            # Pulse the highlight while the feedback plays.
            'highlight_alpha_override': int(80 + 80 * (0.5 + 0.5 * math.sin(progress * 6 * math.pi))),
        })
        draw = ImageDraw.Draw(image, "RGBA")
        width, height = image.size

        if plan.burst and t < plan.burst.duration:
            _draw_confetti(draw, width, height, t / plan.burst.duration, plan.burst, seed=1)
        if plan.extra_burst and t < plan.extra_burst.duration:
            _draw_confetti(
                draw, width, height, t / plan.extra_burst.duration, plan.extra_burst, seed=2
            )
            _draw_flashing_border(draw, width, height, t / plan.extra_burst.duration)

        if plan.flash and t < plan.flash.duration:
            fade = 1 - t / plan.flash.duration
            image = _apply_chromatic_flash(image, int(round(plan.flash.amplitude * fade)))
        if plan.shake and t < plan.shake.duration:
            decay = 1 - ease_out_quad(t / plan.shake.duration)
            amplitude = plan.shake.amplitude * decay
            dx = int(round(amplitude * math.sin(i * 2.7)))
            dy = int(round(amplitude * math.cos(i * 3.1)))
            image = _apply_shake(image, dx, dy)

        frames.append(image)
    return frames

def generate_animation_gif(frames: list, frame_duration_ms: int = FRAME_MS) -> io.BytesIO:
    """Saves a list of PIL Image objects as an animated GIF."""
    gif_buffer = io.BytesIO()
    if not frames:
        return gif_buffer
    rgb_frames = [frame.convert("RGB") for frame in frames]
    rgb_frames[0].save(
        gif_buffer, format="GIF", save_all=True, append_images=rgb_frames[1:],
        duration=frame_duration_ms, loop=0, disposal=2
    )
    gif_buffer.seek(0)
    return gif_buffer

def draw_banner_on_image(image: Image.Image, text: str) -> Image.Image:
    """Draws an outlined banner (e.g. the win amount) onto the image."""
    draw = ImageDraw.Draw(image)
    x, y = image.width / 2, PADDING + CELL_SIZE / 2
    outline_color = "black"
    for x_offset in [-2, 0, 2]:
        for y_offset in [-2, 0, 2]:
            if x_offset != 0 or y_offset != 0:
                draw.text(
                    (x + x_offset, y + y_offset), text, font=BANNER_FONT,
                    fill=outline_color, anchor="mm"
                )
    draw.text((x, y), text, font=BANNER_FONT, fill="white", anchor="mm")
    return image
