"""
finders.py - 候选击球生成

- find_direct_shots: 目标球 × 袋口，交给 evaluate_shot 评分
- find_combo_shots: 组合球，母球 -> 第一球 -> 第二球 -> 袋口
- find_bank_shots: 单库翻袋，袋口关于库边做镜像
- find_kick_shots: 单库解球，母球关于库边做镜像
"""

import numpy as np

from evaluator import ShotContext, evaluate_shot
from geometry import (angle_of, cushion_crossing, cushion_lines, cut_angle, distance,
                      ghost_ball, mirror_point, path_blocked, unit_vector)
from obs_utils import as_point
from shots import BankShot, ComboShot, KickShot


COMBO_MAX_POCKET_DISTANCE = 250
COMBO_MAX_BALL_GAP = 180
COMBO_SCORE = 65
COMBO_POWER = 0.7


def find_direct_shots(cue, targets, pockets, ctx: ShotContext):
    shots = []
    for target in targets:
        for pocket in pockets:
            shot = evaluate_shot(cue, target, pocket, ctx)
            if shot is not None:
                shots.append(shot)
    return shots


def find_combo_shots(cue, targets, pockets, ctx: ShotContext):
    """组合球：第一球必须是己方目标球，第二球离袋口足够近"""
    radius = ctx.radius
    balls = ctx.all_balls
    cue_pos = as_point(cue)
    shots = []

    for first in targets:
        for second in targets:
            if first.id == second.id:
                continue
            for pocket in pockets:
                if distance(second, pocket) > COMBO_MAX_POCKET_DISTANCE:
                    continue
                second_ghost = ghost_ball(second, pocket, radius)
                if second_ghost is None:
                    continue
                if distance(first, second_ghost) > COMBO_MAX_BALL_GAP:
                    continue

                # 第一球的行进方向必须能把第二球送向袋口
                unit_second_pocket, _ = unit_vector(as_point(pocket) - second.pos)
                unit_first_ghost, _ = unit_vector(second_ghost - first.pos)
                if unit_first_ghost is None or np.dot(unit_first_ghost, unit_second_pocket) < 0.2:
                    continue

                first_ghost = first.pos - unit_first_ghost * (2 * radius)
                unit_cue_ghost, _ = unit_vector(first_ghost - cue_pos)
                if unit_cue_ghost is None or np.dot(unit_cue_ghost, unit_first_ghost) < 0:
                    continue

                if path_blocked(cue_pos, first_ghost, balls, exclude=first.id, radius=radius):
                    continue
                if path_blocked(first.pos, second_ghost, balls, exclude=(first.id, second.id), radius=radius):
                    continue
                if path_blocked(second.pos, pocket, balls, exclude=second.id, radius=radius):
                    continue

                shots.append(ComboShot(
                    angle=angle_of(cue_pos, first_ghost),
                    power=COMBO_POWER,
                    target_ball=first.id,
                    score=COMBO_SCORE,
                    cut_angle=cut_angle(first_ghost - cue_pos, second_ghost - first.pos),
                    pocket=pocket,
                    ghost_ball=first_ghost,
                    combo_ball=second.id,
                    dist_to_ghost=distance(cue_pos, first_ghost),
                ))
    return shots


def _within_cushion_span(point, axis, table, margin) -> bool:
    """库边上的点是否落在两端 margin 之内（另一轴方向）"""
    other = 1 - axis
    limit = table.height if other == 1 else table.width
    return margin <= point[other] <= limit - margin


def find_bank_shots(cue, targets, pockets, ctx: ShotContext):
    """单库翻袋：目标球瞄准袋口的库边镜像点"""
    table = ctx.table
    radius = ctx.radius
    balls = ctx.all_balls
    cue_pos = as_point(cue)
    shots = []

    for target in targets:
        target_pos = target.pos
        for pocket in pockets:
            for axis, value in cushion_lines(table):
                mirrored = mirror_point(pocket, axis, value)
                crossing = cushion_crossing(target_pos, mirrored, axis, value)
                if crossing is None:
                    continue
                t, bank_point = crossing
                if not 0.1 < t < 0.9:
                    continue
                # 离库角太近的反弹点不可靠
                if not _within_cushion_span(bank_point, axis, table, 2 * table.cushion):
                    continue

                ghost = ghost_ball(target_pos, bank_point, radius)
                if ghost is None:
                    continue
                if path_blocked(cue_pos, ghost, balls, exclude=target.id, radius=radius):
                    continue
                if path_blocked(target_pos, bank_point, balls, exclude=target.id, radius=radius):
                    continue
                if path_blocked(bank_point, pocket, balls, exclude=target.id, radius=radius):
                    continue

                cut = cut_angle(ghost - cue_pos, bank_point - target_pos)
                if cut > ctx.profile.max_cut_angle:
                    continue

                dist_to_bank = distance(target_pos, bank_point)
                total = distance(cue_pos, ghost) + dist_to_bank + distance(bank_point, pocket)
                score = 55 - total / 30
                if dist_to_bank < 150:
                    score += 10

                shots.append(BankShot(
                    angle=angle_of(cue_pos, ghost),
                    power=min(max(total / 600, 0.5), 0.9),
                    target_ball=target.id,
                    score=score,
                    cut_angle=cut,
                    pocket=pocket,
                    ghost_ball=ghost,
                    bank_point=bank_point,
                    dist_to_ghost=distance(cue_pos, ghost),
                ))
    return shots


def find_kick_shots(cue, targets, ctx: ShotContext):
    """单库解球：母球瞄准自身镜像与目标球连线在库边上的交点"""
    table = ctx.table
    radius = ctx.radius
    balls = ctx.all_balls
    cue_pos = as_point(cue)
    shots = []

    for target in targets:
        target_pos = target.pos
        for axis, value in cushion_lines(table):
            mirrored_cue = mirror_point(cue_pos, axis, value)
            crossing = cushion_crossing(mirrored_cue, target_pos, axis, value)
            if crossing is None:
                continue
            t, kick_point = crossing
            if not 0 < t < 1:
                continue
            if not _within_cushion_span(kick_point, axis, table, table.cushion):
                continue
            if path_blocked(cue_pos, kick_point, balls, radius=radius):
                continue
            if path_blocked(kick_point, target_pos, balls, exclude=target.id, radius=radius):
                continue

            total = distance(cue_pos, kick_point) + distance(kick_point, target_pos)
            shots.append(KickShot(
                angle=angle_of(cue_pos, kick_point),
                power=min(max(total / 500, 0.5), 0.85),
                target_ball=target.id,
                score=30 - total / 40,
                kick_point=kick_point,
            ))
    return shots
