import math
import random
from dataclasses import replace

import numpy as np
import pytest

from conftest import FixedRng, make_ball, make_ctx
from difficulty import Difficulty
from obs_utils import Pocket, TableSpec
from selector import (add_smart_spin, apply_difficulty_noise, calculate_safety_shot, evaluate_run_out,
                      fallback_shot, hit_nearest_ball, predict_cue_ball_position, select_shot)
from shots import DirectShot, EmergencyShot, RandomShot, SafetyShot

CORNER = Pocket(880, 40)


def direct(target_ball=1, score=50.0, cut=0.0, ghost=(600, 250), angle=0.0, power=0.5):
    return DirectShot(
        angle=angle, power=power, target_ball=target_ball, score=score, cut_angle=cut,
        pocket=CORNER, ghost_ball=np.array(ghost, dtype=float),
        dist_to_ghost=200.0, dist_to_pocket=200.0,
    )


class TestNoise:

    def test_perfect_accuracy_keeps_angle(self):
        profile = replace(Difficulty.EASY.profile, accuracy=1.0)
        rng = random.Random(3)
        for _ in range(50):
            shot = apply_difficulty_noise(direct(angle=1.0), profile, rng)
            assert shot.angle == 1.0

    @pytest.mark.parametrize("difficulty", list(Difficulty))
    def test_angle_error_bounded(self, difficulty):
        profile = difficulty.profile
        rng = random.Random(5)
        for _ in range(200):
            shot = apply_difficulty_noise(direct(angle=0.5), profile, rng)
            assert abs(shot.angle - 0.5) <= math.radians(profile.angle_error) + 1e-12
            assert 0.25 <= shot.power <= 1.0

    def test_power_clamped(self):
        profile = Difficulty.EASY.profile
        rng = random.Random(9)
        for power in (0.2, 0.95, 1.0):
            for _ in range(50):
                shot = apply_difficulty_noise(direct(power=power), profile, rng)
                assert 0.25 <= shot.power <= 1.0

    def test_original_shot_untouched(self):
        shot = direct(angle=0.3)
        apply_difficulty_noise(shot, Difficulty.EASY.profile, FixedRng(0.99))
        assert shot.angle == 0.3


class TestSpin:

    def _ctx(self, targets=(), eight=False):
        return make_ctx(list(targets), targets=list(targets), eight_ball_time=eight)

    @pytest.mark.parametrize("cut,expected", [
        (0.05, -0.25),
        (0.15, -0.2),
        (0.25, 0.25),
        (0.4, 0.5),
    ])
    def test_spin_bands(self, cut, expected):
        shot = add_smart_spin(direct(cut=cut), None, self._ctx())
        assert shot.spin_y == expected
        assert shot.spin_x == 0.0

    def test_eight_ball_minimal_draw(self):
        shot = add_smart_spin(direct(cut=0.5), None, self._ctx(eight=True))
        assert shot.spin_y == 0.15
        assert shot.spin_x == 0.0

    def test_english_toward_remaining_balls(self):
        right = [make_ball(2, 900, 300), make_ball(3, 800, 200)]
        left = [make_ball(2, 100, 300), make_ball(3, 200, 200)]
        assert add_smart_spin(direct(cut=0.3), None, self._ctx(right)).spin_x == 0.25
        assert add_smart_spin(direct(cut=0.3), None, self._ctx(left)).spin_x == -0.25
        # 切角较小时不加左右塞
        assert add_smart_spin(direct(cut=0.12), None, self._ctx(right)).spin_x == 0.0


class TestPredictCueBall:

    def test_draw_stops_shorter_than_follow(self):
        table = TableSpec()
        cue = (400, 250)
        draw = predict_cue_ball_position(direct(cut=0.2).with_changes(spin_y=0.5), cue, table)
        follow = predict_cue_ball_position(direct(cut=0.2).with_changes(spin_y=-0.25), cue, table)
        assert draw[0] < follow[0]
        assert draw[0] > 600

    def test_landing_clamped_inside_cushions(self):
        table = TableSpec()
        landing = predict_cue_ball_position(direct(cut=1.0, ghost=(950, 250)), (100, 250), table)
        assert landing[0] == pytest.approx(table.width - table.cushion - 20)

    def test_shot_without_ghost_returns_cue(self):
        shot = SafetyShot(angle=0.0, power=0.4)
        assert predict_cue_ball_position(shot, (123, 321), TableSpec()) == pytest.approx([123, 321])


class TestSelectShot:

    def _candidates(self):
        return [direct(target_ball=1, score=90), direct(target_ball=2, score=80), direct(target_ball=3, score=10)]

    def test_hard_takes_top(self):
        ctx = make_ctx([], difficulty=Difficulty.HARD)
        assert select_shot(self._candidates(), (0, 0), ctx, FixedRng(0.99)).target_ball == 1

    def test_easy_prefers_easy_shots(self):
        ctx = make_ctx([], difficulty=Difficulty.EASY)
        assert select_shot(self._candidates(), (0, 0), ctx, FixedRng(0.99)).target_ball == 1

    def test_medium_hard_sometimes_takes_second(self):
        ctx = make_ctx([], difficulty=Difficulty.MEDIUM_HARD)
        assert select_shot(self._candidates(), (0, 0), ctx, FixedRng(0.1)).target_ball == 1
        assert select_shot(self._candidates(), (0, 0), ctx, FixedRng(0.9)).target_ball == 2

    def test_lower_tier_never_goes_past_top_two(self):
        ctx = make_ctx([], difficulty=Difficulty.MEDIUM_HARD)
        rng = random.Random(4)
        picks = {select_shot(self._candidates(), (0, 0), ctx, rng).target_ball for _ in range(200)}
        assert picks <= {1, 2}


class TestRunOut:

    def test_prefers_candidate_with_follow_up(self):
        cue = make_ball(0, 400, 250)
        far_ball = make_ball(1, 100, 450)
        near_pocket = make_ball(3, 820, 80)
        balls = [cue, far_ball, near_pocket]
        ctx = make_ctx(balls, targets=[far_ball, near_pocket], pockets=[CORNER])

        sets_up_next = direct(target_ball=1, score=60, cut=0.0, ghost=(600, 250))
        dead_end = direct(target_ball=3, score=62, cut=0.0, ghost=(600, 250))

        best = evaluate_run_out([dead_end, sets_up_next], cue, ctx)
        assert best is sets_up_next

    def test_no_follow_up_keeps_top(self):
        cue = make_ball(0, 400, 250)
        ball = make_ball(1, 600, 250)
        ctx = make_ctx([cue, ball], targets=[ball], pockets=[CORNER])
        first = direct(target_ball=1, score=70)
        second = direct(target_ball=1, score=60)
        assert evaluate_run_out([first, second], cue, ctx) is first


class TestFallbacks:

    def _board(self):
        cue = make_ball(0, 300, 250)
        own = [make_ball(1, 500, 250), make_ball(2, 700, 400)]
        opp = [make_ball(9, 520, 300)]
        return cue, [cue] + own + opp, own

    def test_safety_shot(self):
        cue, balls, own = self._board()
        ctx = make_ctx(balls, targets=own)
        shot = calculate_safety_shot(cue, ctx, "solids")
        assert isinstance(shot, SafetyShot)
        assert 0.3 <= shot.power <= 0.55
        assert shot.spin_y == 0.4
        assert shot.target_ball in (1, 2)

    def test_chain_uses_safety_when_smart(self):
        cue, balls, own = self._board()
        ctx = make_ctx(balls, targets=own)
        assert isinstance(fallback_shot(cue, ctx, FixedRng(0.0), "solids"), SafetyShot)

    def test_chain_hits_nearest_ball_otherwise(self):
        cue, balls, own = self._board()
        ctx = make_ctx(balls, targets=own)
        shot = fallback_shot(cue, ctx, FixedRng(0.999), "solids")
        assert isinstance(shot, EmergencyShot)
        assert shot.target_ball == 1
        assert shot.power == 0.4

    def test_chain_ends_in_random_shot(self):
        cue = make_ball(0, 300, 250)
        ctx = make_ctx([cue], targets=[])
        shot = fallback_shot(cue, ctx, random.Random(2), "solids")
        assert isinstance(shot, RandomShot)
        assert 0 <= shot.angle < 2 * math.pi
        assert shot.power == 0.35

    def test_nearest_ball_skips_blocked(self):
        cue = make_ball(0, 300, 250)
        near = make_ball(1, 400, 250)
        far = make_ball(2, 300, 450)
        blocker = make_ball(9, 350, 250)
        ctx = make_ctx([cue, near, far, blocker], targets=[near, far])
        assert hit_nearest_ball(cue, ctx).target_ball == 2
