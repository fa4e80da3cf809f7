from utils.feedback import (
    TIER_LOSS, TIER_MAJOR, TIER_MINOR, FeedbackDirector, FeedbackSettings
)


def test_mega_win_gets_major_burst_shake_and_extra_burst():
    plan = FeedbackDirector().plan(True, 90)
    assert plan.tier == TIER_MAJOR
    assert plan.is_major
    assert plan.burst.style == TIER_MAJOR
    assert plan.shake is not None
    assert plan.flash is not None
    assert plan.extra_burst is not None
    assert plan.extra_burst.style == "extra"


def test_minor_win_has_no_screen_effects():
    plan = FeedbackDirector().plan(True, 20)
    assert plan.tier == TIER_MINOR
    assert plan.burst.style == TIER_MINOR
    assert plan.shake is None
    assert plan.flash is None
    assert plan.extra_burst is None


def test_thresholds_are_inclusive():
    director = FeedbackDirector()
    assert director.plan(True, 39).tier == TIER_MINOR
    assert director.plan(True, 40).tier == TIER_MAJOR
    assert director.plan(True, 84).extra_burst is None
    assert director.plan(True, 85).extra_burst is not None


def test_loss_plan_is_a_short_descending_tone():
    plan = FeedbackDirector().plan(False, 95)
    assert plan.tier == TIER_LOSS
    assert not plan.is_win
    assert plan.burst is None
    assert plan.shake is None
    assert plan.extra_burst is None
    assert len(plan.tones) == 2
    assert plan.tones[0].frequency > plan.tones[1].frequency


def test_win_tones_are_an_ascending_arpeggio():
    tones = FeedbackDirector().plan(True, 50).tones
    assert len(tones) == 3
    frequencies = [tone.frequency for tone in tones]
    assert frequencies == sorted(frequencies)
    assert frequencies[0] == 440.0 + 50 * 4.4


def test_gain_is_capped():
    settings = FeedbackSettings(tone_gain_per_power=0.1)
    tones = FeedbackDirector(settings).plan(True, 100).tones
    assert all(tone.gain == settings.tone_max_gain for tone in tones)


def test_burst_values_are_monotonic_in_power():
    director = FeedbackDirector()
    previous = None
    for power in range(1, 101):
        burst = director.plan(True, power).burst
        if previous is not None:
            assert burst.particles >= previous.particles
            assert burst.spread >= previous.spread
            assert burst.duration >= previous.duration
        previous = burst


def test_major_burst_starts_above_minor_maximum():
    director = FeedbackDirector()
    top_minor = director.plan(True, 39).burst
    low_major = director.plan(True, 40).burst
    assert low_major.particles > top_minor.particles
    assert low_major.spread > top_minor.spread
    assert low_major.duration > top_minor.duration


def test_screen_effects_scale_with_power():
    director = FeedbackDirector()
    low, high = director.plan(True, 45), director.plan(True, 100)
    assert high.shake.amplitude > low.shake.amplitude
    assert high.shake.duration > low.shake.duration
    assert high.flash.amplitude > low.flash.amplitude


def test_burst_waves_decay():
    burst = FeedbackDirector().plan(True, 70).burst
    waves = burst.waves(0.25)
    assert waves[0] == burst.particles
    assert waves == sorted(waves, reverse=True)
    assert waves[-1] >= 1


def test_power_is_clamped():
    plan = FeedbackDirector().plan(True, 500)
    assert plan.power == 100
