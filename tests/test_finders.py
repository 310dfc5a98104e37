import pytest

from conftest import make_ball, make_ctx
from finders import find_bank_shots, find_combo_shots, find_direct_shots, find_kick_shots
from geometry import cushion_lines, mirror_point
from obs_utils import DEFAULT_POCKETS, Pocket, TableSpec
from shots import BankShot, ComboShot, DirectShot, KickShot

CORNER = Pocket(880, 40)


def test_direct_shots_cover_target_pocket_pairs():
    cue = make_ball(0, 300, 250)
    balls = [cue, make_ball(1, 500, 250), make_ball(2, 200, 400)]
    targets = balls[1:]
    ctx = make_ctx(balls, targets)

    shots = find_direct_shots(cue, targets, DEFAULT_POCKETS, ctx)

    assert shots
    assert all(isinstance(s, DirectShot) for s in shots)
    assert {s.target_ball for s in shots} == {1, 2}


class TestComboShots:

    def test_combo_through_first_ball(self):
        cue = make_ball(0, 500, 250)
        first = make_ball(1, 700, 150)
        second = make_ball(2, 800, 90)
        ctx = make_ctx([cue, first, second])

        shots = find_combo_shots(cue, [first, second], [CORNER], ctx)

        combos = [s for s in shots if s.target_ball == 1 and s.combo_ball == 2]
        assert len(combos) == 1
        combo = combos[0]
        assert isinstance(combo, ComboShot)
        assert combo.score == 65
        assert combo.power == pytest.approx(0.7)

    def test_far_second_ball_is_skipped(self):
        cue = make_ball(0, 200, 250)
        first = make_ball(1, 300, 250)
        second = make_ball(2, 400, 250)
        ctx = make_ctx([cue, first, second])
        assert find_combo_shots(cue, [first, second], [CORNER], ctx) == []

    def test_blocked_leg_rejects_combo(self):
        cue = make_ball(0, 500, 250)
        first = make_ball(1, 700, 150)
        second = make_ball(2, 800, 90)
        blocker = make_ball(12, 600, 205)
        ctx = make_ctx([cue, first, second, blocker], targets=[first, second])
        shots = find_combo_shots(cue, [first, second], [CORNER], ctx)
        assert not [s for s in shots if s.target_ball == 1]


class TestBankShots:

    def test_bank_points_follow_mirror_reflection(self):
        cue = make_ball(0, 480, 100)
        target = make_ball(1, 500, 250)
        ctx = make_ctx([cue, target])
        table = TableSpec()

        shots = find_bank_shots(cue, [target], DEFAULT_POCKETS, ctx)

        assert shots
        lines = cushion_lines(table)
        for shot in shots:
            assert isinstance(shot, BankShot)
            assert 0.5 <= shot.power <= 0.9
            on_lines = [(axis, value) for axis, value in lines
                        if shot.bank_point[axis] == pytest.approx(value)]
            assert on_lines
            axis, value = on_lines[0]
            other = 1 - axis
            span = table.height if other == 1 else table.width
            assert 2 * table.cushion <= shot.bank_point[other] <= span - 2 * table.cushion
            # 目标球、反弹点、镜像袋口共线
            mirrored = mirror_point(shot.pocket, axis, value)
            v1 = shot.bank_point - target.pos
            v2 = mirrored - target.pos
            assert v1[0] * v2[1] - v1[1] * v2[0] == pytest.approx(0, abs=1e-6)

    def test_blocked_cue_leg(self):
        cue = make_ball(0, 480, 100)
        target = make_ball(1, 500, 250)
        wall = [make_ball(9 + i, 440 + 30 * i, 175) for i in range(5)]
        ctx = make_ctx([cue, target] + wall, targets=[target])
        assert find_bank_shots(cue, [target], DEFAULT_POCKETS, ctx) == []


class TestKickShots:

    def test_kick_around_blocker(self):
        cue = make_ball(0, 300, 250)
        target = make_ball(1, 700, 250)
        blocker = make_ball(9, 500, 250)
        ctx = make_ctx([cue, target, blocker], targets=[target])

        shots = find_kick_shots(cue, [target], ctx)

        assert shots
        assert all(isinstance(s, KickShot) for s in shots)
        kick_points = sorted(tuple(round(v, 6) for v in s.kick_point) for s in shots)
        assert (500.0, 25.0) in kick_points
        assert (500.0, 475.0) in kick_points
        for shot in shots:
            assert 0.5 <= shot.power <= 0.85
            assert shot.score < 30

    def test_no_kick_when_cushion_leg_blocked(self):
        cue = make_ball(0, 300, 250)
        target = make_ball(1, 700, 250)
        blockers = [
            make_ball(9, 500, 250),
            make_ball(10, 400, 137),
            make_ball(11, 400, 363),
            make_ball(12, 150, 250),
            make_ball(13, 850, 250),
        ]
        ctx = make_ctx([cue, target] + blockers, targets=[target])
        assert find_kick_shots(cue, [target], ctx) == []
