import dataclasses

import pytest

from difficulty import PROFILES, Difficulty, UnknownDifficultyError

ORDER = [Difficulty.EASY, Difficulty.MEDIUM, Difficulty.MEDIUM_HARD, Difficulty.HARD, Difficulty.EXPERT]


def test_every_tier_has_a_profile():
    assert set(PROFILES) == set(Difficulty)


def test_profiles_are_monotonic():
    profiles = [d.profile for d in ORDER]
    for weaker, stronger in zip(profiles, profiles[1:]):
        assert stronger.accuracy > weaker.accuracy
        assert stronger.angle_error < weaker.angle_error
        assert stronger.power_error < weaker.power_error
        assert stronger.safety_intelligence > weaker.safety_intelligence


def test_thinking_ranges_are_ordered():
    for d in Difficulty:
        low, high = d.profile.thinking_time
        assert 0 < low < high


@pytest.mark.parametrize("name,expected", [
    ("easy", Difficulty.EASY),
    ("Medium", Difficulty.MEDIUM),
    ("medium-hard", Difficulty.MEDIUM_HARD),
    ("medium_hard", Difficulty.MEDIUM_HARD),
    (" expert ", Difficulty.EXPERT),
    (Difficulty.HARD, Difficulty.HARD),
])
def test_parse(name, expected):
    assert Difficulty.parse(name) is expected


@pytest.mark.parametrize("name", ["impossible", "", None, 3])
def test_parse_rejects_unknown(name):
    with pytest.raises(UnknownDifficultyError):
        Difficulty.parse(name)


def test_unknown_difficulty_is_value_error():
    assert issubclass(UnknownDifficultyError, ValueError)


def test_profiles_are_frozen():
    with pytest.raises(dataclasses.FrozenInstanceError):
        Difficulty.EXPERT.profile.accuracy = 0.1
    with pytest.raises(TypeError):
        PROFILES[Difficulty.EASY] = Difficulty.EXPERT.profile


def test_feature_flags_by_tier():
    assert not Difficulty.EASY.profile.use_spin
    assert not Difficulty.MEDIUM.profile.use_bank_shots
    assert Difficulty.MEDIUM_HARD.profile.use_bank_shots
    assert not Difficulty.MEDIUM_HARD.profile.use_kick_shots
    assert Difficulty.HARD.profile.use_kick_shots
    assert Difficulty.EXPERT.profile.plans_run_out
