import wave

import numpy as np

from utils.audio import SAMPLE_RATE, generate_tone_wav, render_tones
from utils.feedback import FeedbackDirector, Tone


def test_render_tones_length_and_range():
    tones = [Tone(440.0, 0.5, 0.1), Tone(660.0, 0.5, 0.2)]
    signal = render_tones(tones)
    assert len(signal) == int(0.1 * SAMPLE_RATE) + int(0.2 * SAMPLE_RATE)
    assert np.max(np.abs(signal)) <= 0.5 + 1e-9


def test_notes_fade_in_and_out():
    signal = render_tones([Tone(440.0, 0.8, 0.2)])
    assert signal[0] == 0.0
    assert abs(signal[-1]) < 0.01


def test_empty_plan_renders_silence():
    assert len(render_tones([])) == 0


def test_generate_tone_wav_is_16bit_mono_pcm():
    plan = FeedbackDirector().plan(True, 60)
    buffer = generate_tone_wav(plan.tones)
    assert buffer.getvalue()[:4] == b"RIFF"
    assert buffer.getvalue()[8:12] == b"WAVE"

    with wave.open(buffer, "rb") as wav_file:
        assert wav_file.getnchannels() == 1
        assert wav_file.getsampwidth() == 2
        assert wav_file.getframerate() == SAMPLE_RATE
        assert wav_file.getnframes() == len(render_tones(plan.tones))
