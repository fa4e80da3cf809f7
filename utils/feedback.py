"""
Feedback Director: turns (is_win, winning_power) into an audio, particle and
screen-effect plan. Pure; every threshold and slope lives in FeedbackSettings.
"""
from dataclasses import dataclass, field
from typing import Optional

from utils import game_config as gc
from utils.power_buckets import clamp_power

TIER_LOSS = "loss"
TIER_MINOR = "minor"
TIER_MAJOR = "major"


@dataclass(frozen=True)
class FeedbackSettings:
    """Adjustable knobs for the feedback plan. Defaults come from game_config."""
    minor_win_threshold: int = gc.MINOR_WIN_THRESHOLD
    mega_win_threshold: int = gc.MEGA_WIN_THRESHOLD

    tone_base_frequency: float = gc.TONE_BASE_FREQUENCY
    tone_frequency_per_power: float = gc.TONE_FREQUENCY_PER_POWER
    tone_base_gain: float = gc.TONE_BASE_GAIN
    tone_gain_per_power: float = gc.TONE_GAIN_PER_POWER
    tone_max_gain: float = gc.TONE_MAX_GAIN
    tone_note_ratios: tuple = gc.TONE_NOTE_RATIOS
    tone_note_duration: float = gc.TONE_NOTE_DURATION
    tone_duration_per_power: float = gc.TONE_DURATION_PER_POWER
    loss_tones: tuple = gc.LOSS_TONES

    minor_burst_base: int = gc.MINOR_BURST_BASE
    minor_burst_per_power: float = gc.MINOR_BURST_PER_POWER
    minor_spread_base: float = gc.MINOR_SPREAD_BASE
    minor_duration_base: float = gc.MINOR_DURATION_BASE
    minor_duration_per_power: float = gc.MINOR_DURATION_PER_POWER
    major_burst_base: int = gc.MAJOR_BURST_BASE
    major_burst_per_power: float = gc.MAJOR_BURST_PER_POWER
    major_spread: float = gc.MAJOR_SPREAD
    major_duration_base: float = gc.MAJOR_DURATION_BASE
    major_duration_per_power: float = gc.MAJOR_DURATION_PER_POWER
    extra_burst_particles: int = gc.EXTRA_BURST_PARTICLES
    extra_burst_duration: float = gc.EXTRA_BURST_DURATION

    shake_base_duration: float = gc.SHAKE_BASE_DURATION
    shake_duration_span: float = gc.SHAKE_DURATION_SPAN
    shake_base_amplitude: float = gc.SHAKE_BASE_AMPLITUDE
    shake_amplitude_span: float = gc.SHAKE_AMPLITUDE_SPAN
    flash_base_duration: float = gc.FLASH_BASE_DURATION
    flash_duration_span: float = gc.FLASH_DURATION_SPAN
    flash_base_offset: float = gc.FLASH_BASE_OFFSET
    flash_offset_span: float = gc.FLASH_OFFSET_SPAN


@dataclass(frozen=True)
class Tone:
    frequency: float
    gain: float
    duration: float


@dataclass(frozen=True)
class Burst:
    """A confetti burst. `style` is "minor", "major" or "extra"."""
    particles: int
    spread: float
    duration: float
    style: str

    def waves(self, interval: float = gc.BURST_WAVE_INTERVAL) -> list:
        """Particle counts per wave, fading out linearly over the burst duration."""
        if self.duration <= 0 or interval <= 0:
            return [self.particles]
        counts = []
        elapsed = 0.0
        while elapsed < self.duration:
            time_left = self.duration - elapsed
            counts.append(max(1, int(round(self.particles * time_left / self.duration))))
            elapsed += interval
        return counts


@dataclass(frozen=True)
class ScreenEffect:
    """Screen shake (amplitude in px) or chromatic flash (channel offset in px)."""
    duration: float
    amplitude: float


@dataclass(frozen=True)
class FeedbackPlan:
    is_win: bool
    power: int
    tier: str
    tones: list = field(default_factory=list)
    burst: Optional[Burst] = None
    extra_burst: Optional[Burst] = None
    shake: Optional[ScreenEffect] = None
    flash: Optional[ScreenEffect] = None

    @property
    def is_major(self) -> bool:
        return self.tier == TIER_MAJOR


class FeedbackDirector:
    """Scales feedback with the winning power; never looks at anything else."""

    def __init__(self, settings: Optional[FeedbackSettings] = None):
        self.settings = settings or FeedbackSettings()

    def tier_for(self, is_win: bool, power: int) -> str:
        if not is_win:
            return TIER_LOSS
        if power < self.settings.minor_win_threshold:
            return TIER_MINOR
        return TIER_MAJOR

    def _win_tones(self, power: int) -> list:
        s = self.settings
        base = s.tone_base_frequency + power * s.tone_frequency_per_power
        gain = min(s.tone_max_gain, s.tone_base_gain + power * s.tone_gain_per_power)
        duration = s.tone_note_duration + power * s.tone_duration_per_power
        return [Tone(base * ratio, gain, duration) for ratio in s.tone_note_ratios]

    def _loss_tones(self) -> list:
        return [Tone(freq, gain, duration) for freq, gain, duration in self.settings.loss_tones]

    def _burst(self, tier: str, power: int) -> Burst:
        s = self.settings
        if tier == TIER_MINOR:
            return Burst(
                particles=int(s.minor_burst_base + power * s.minor_burst_per_power),
                spread=s.minor_spread_base + power,
                duration=s.minor_duration_base + power * s.minor_duration_per_power,
                style=TIER_MINOR,
            )
        return Burst(
            particles=int(s.major_burst_base + power * s.major_burst_per_power),
            spread=s.major_spread,
            duration=s.major_duration_base + power * s.major_duration_per_power,
            style=TIER_MAJOR,
        )

    def _major_progress(self, power: int) -> float:
        """0 at the major threshold, 1 at full power."""
        span = 100 - self.settings.minor_win_threshold
        if span <= 0:
            return 1.0
        return max(0.0, min(1.0, (power - self.settings.minor_win_threshold) / span))

    def plan(self, is_win: bool, power) -> FeedbackPlan:
        """Builds the full feedback plan for one settled spin."""
        power = clamp_power(power, 0)
        tier = self.tier_for(is_win, power)
        if tier == TIER_LOSS:
            return FeedbackPlan(is_win=False, power=power, tier=tier, tones=self._loss_tones())

        s = self.settings
        extra = None
        shake = flash = None
        if tier == TIER_MAJOR:
            progress = self._major_progress(power)
            shake = ScreenEffect(
                duration=s.shake_base_duration + progress * s.shake_duration_span,
                amplitude=s.shake_base_amplitude + progress * s.shake_amplitude_span,
            )
            flash = ScreenEffect(
                duration=s.flash_base_duration + progress * s.flash_duration_span,
                amplitude=s.flash_base_offset + progress * s.flash_offset_span,
            )
        if power >= s.mega_win_threshold:
            extra = Burst(
                particles=s.extra_burst_particles,
                spread=s.major_spread,
                duration=s.extra_burst_duration,
                style="extra",
            )

        return FeedbackPlan(
            is_win=True,
            power=power,
            tier=tier,
            tones=self._win_tones(power),
            burst=self._burst(tier, power),
            extra_burst=extra,
            shake=shake,
            flash=flash,
        )
