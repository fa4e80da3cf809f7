"""
Renders a feedback tone plan into a small WAV clip using NumPy.
"""
import io
import wave

import numpy as np

SAMPLE_RATE = 22050
FADE_SECONDS = 0.01


def _note(frequency: float, gain: float, duration: float, sample_rate: int) -> np.ndarray:
    """A sine note with short linear fades so notes do not click."""
    samples = max(1, int(duration * sample_rate))
    t = np.arange(samples) / sample_rate
    wave_data = np.sin(2 * np.pi * frequency * t) * gain

    fade = min(samples // 2, int(FADE_SECONDS * sample_rate))
    if fade > 0:
        ramp = np.linspace(0.0, 1.0, fade)
        wave_data[:fade] *= ramp
        wave_data[-fade:] *= ramp[::-1]
    return wave_data


def render_tones(tones, sample_rate: int = SAMPLE_RATE) -> np.ndarray:
    """Concatenates the tones of a plan into one float signal in [-1, 1]."""
    if not tones:
        return np.zeros(0)
    signal = np.concatenate([
        _note(tone.frequency, tone.gain, tone.duration, sample_rate) for tone in tones
    ])
    return np.clip(signal, -1.0, 1.0)


def generate_tone_wav(tones, sample_rate: int = SAMPLE_RATE) -> io.BytesIO:
    """Encodes the tone plan as 16-bit mono PCM WAV."""
    pcm = (render_tones(tones, sample_rate) * 32767).astype(np.int16)
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wav_file:
        wav_file.setnchannels(1)
        wav_file.setsampwidth(2)
        wav_file.setframerate(sample_rate)
        wav_file.writeframes(pcm.tobytes())
    buffer.seek(0)
    return buffer
