"""
selector.py - 候选选择与出杆后处理

流程：候选排序 -> (专家) 清台前瞻 -> 选杆 -> 智能加塞 -> 难度噪声。
没有任何进攻候选时走兜底链：防守 -> 碰最近的球 -> 随机出杆。
"""

import math

import numpy as np

from difficulty import DifficultyProfile
from evaluator import ShotContext, evaluate_shot
from geometry import angle_of, distance, path_blocked, unit_vector
from obs_utils import BallGroup, as_point
from shots import EmergencyShot, POSITIONAL_SHOTS, RandomShot, SafetyShot
from utils import get_logger

logger = get_logger("pool_ai")

RUN_OUT_TOP_N = 5
RUN_OUT_WEIGHT = 0.3
RUN_OUT_MIN_FOLLOW_UP = 50
LOW_TIER_TOP_PICK_PROB = 0.8
SAFETY_PROJECTION = 100


def predict_cue_ball_position(shot, cue, table) -> np.ndarray:
    """估算母球停点

    切角越大母球反弹越远；低杆（spin_y > 0）缩短、高杆（spin_y < 0）拉长。
    没有鬼球点的击球（解球、防守）返回母球当前位置。
    """
    cue_pos = as_point(cue)
    if not isinstance(shot, POSITIONAL_SHOTS):
        return cue_pos

    ghost = as_point(shot.ghost_ball)
    direction, dist_to_ghost = unit_vector(ghost - cue_pos)
    if direction is None:
        return cue_pos

    rebound = 0.3 + shot.cut_angle * 0.5
    if shot.spin_y > 0:
        rebound *= 0.5
    elif shot.spin_y < 0:
        rebound *= 1.5
    travel = dist_to_ghost * rebound

    landing = ghost + direction * travel * 0.5
    margin = table.cushion + 20
    return np.array(table.clamp(landing[0], landing[1], margin))


def add_smart_spin(shot, cue, ctx: ShotContext):
    """根据切角和剩余目标球分布选择杆法，返回新的候选"""
    if ctx.eight_ball_time:
        return shot.with_changes(spin_x=0.0, spin_y=0.15)

    cut = shot.cut_angle
    if cut < 0.1:
        spin_y = -0.25
    elif cut > 0.35:
        spin_y = 0.5
    elif cut > 0.2:
        spin_y = 0.25
    else:
        spin_y = -0.2

    spin_x = 0.0
    remaining = [b for b in ctx.target_balls if b.on_table and b.id != shot.target_ball]
    if remaining and cut > 0.15 and isinstance(shot, POSITIONAL_SHOTS):
        avg_x = sum(b.x for b in remaining) / len(remaining)
        spin_x = 0.25 if avg_x > shot.ghost_ball[0] else -0.25

    return shot.with_changes(spin_x=spin_x, spin_y=spin_y)


def apply_difficulty_noise(shot, profile: DifficultyProfile, rng):
    """按难度叠加出杆误差

    以 1 - accuracy 的概率给角度加 ±angle_error 度的均匀误差；
    力度总是按 ±power_error 比例扰动，最终限制在 [0.25, 1]。
    """
    angle = shot.angle
    if rng.random() > profile.accuracy:
        angle += math.radians(rng.uniform(-profile.angle_error, profile.angle_error))
    power = shot.power * (1 + rng.uniform(-profile.power_error, profile.power_error))
    power = min(max(power, 0.25), 1.0)
    return shot.with_changes(angle=angle, power=power)


def evaluate_run_out(candidates, cue, ctx: ShotContext):
    """清台前瞻：候选分数加上从预测停点出发的最佳下一杆分数的一部分"""
    best = candidates[0]
    best_total = best.score

    for shot in candidates[:RUN_OUT_TOP_N]:
        provisional = add_smart_spin(shot, cue, ctx) if ctx.profile.use_spin else shot
        landing = predict_cue_ball_position(provisional, cue, ctx.table)
        remaining = [b for b in ctx.target_balls
                     if b.on_table and b.id not in (shot.target_ball, getattr(shot, "combo_ball", None))]
        next_ctx = ctx.with_targets(remaining)

        follow_up = 0.0
        for ball in remaining:
            for pocket in ctx.pockets:
                next_shot = evaluate_shot(landing, ball, pocket, next_ctx)
                if next_shot is not None and next_shot.score > follow_up:
                    follow_up = next_shot.score

        total = shot.score
        if follow_up > RUN_OUT_MIN_FOLLOW_UP:
            total += follow_up * RUN_OUT_WEIGHT
        if total > best_total:
            best, best_total = shot, total

    logger.debug(f"[AIPlayer] 清台前瞻选择 {best.describe()}，综合分 {best_total:.1f}")
    return best


def select_shot(candidates, cue, ctx: ShotContext, rng):
    """从已排序的候选中选出一杆"""
    profile = ctx.profile
    if profile.plans_run_out and len(candidates) > 1:
        return evaluate_run_out(candidates, cue, ctx)
    if profile.picks_best:
        return candidates[0]
    if profile.prefer_easy_shots or rng.random() < LOW_TIER_TOP_PICK_PROB:
        return candidates[0]
    return candidates[rng.randrange(min(2, len(candidates)))]


def _opponent_balls(ctx: ShotContext, target_type):
    group = BallGroup.parse(target_type)
    if group is None:
        return []
    return [b for b in ctx.all_balls if b.on_table and b.type is group.opponent]


def calculate_safety_shot(cue, ctx: ShotContext, target_type=None):
    """防守：轻推一颗可直达的目标球，让它贴库或藏到对方球后面"""
    cue_pos = as_point(cue)
    table = ctx.table
    opponents = _opponent_balls(ctx, target_type)
    best = None
    best_score = -math.inf

    for ball in ctx.target_balls:
        if not ball.on_table:
            continue
        if path_blocked(cue_pos, ball, ctx.all_balls, exclude=ball.id, radius=ctx.radius):
            continue
        direction, dist = unit_vector(ball.pos - cue_pos)
        if direction is None:
            continue

        score = 50 - dist / 15
        rest = ball.pos + direction * SAFETY_PROJECTION
        if rest[0] < 80 or rest[0] > table.width - 80:
            score += 15
        if rest[1] < 60 or rest[1] > table.height - 60:
            score += 15
        for opp in opponents:
            if distance(ball, opp) < 150:
                score += 10
        for pocket in ctx.pockets:
            if distance(rest, pocket) < 150:
                score -= 20

        if score > best_score:
            best_score = score
            best = SafetyShot(
                angle=angle_of(cue_pos, ball),
                power=min(max(dist / 600, 0.3), 0.55),
                spin_y=0.4,
                target_ball=ball.id,
                score=score,
            )
    return best


def hit_nearest_ball(cue, ctx: ShotContext):
    """碰最近的一颗可直达目标球，避免无碰球犯规"""
    cue_pos = as_point(cue)
    reachable = [
        b for b in ctx.target_balls
        if b.on_table and not path_blocked(cue_pos, b, ctx.all_balls, exclude=b.id, radius=ctx.radius)
    ]
    if not reachable:
        return None
    nearest = min(reachable, key=lambda b: distance(cue_pos, b))
    return EmergencyShot(
        angle=angle_of(cue_pos, nearest),
        power=0.4,
        spin_y=0.2,
        target_ball=nearest.id,
    )


def random_shot(rng):
    return RandomShot(angle=rng.random() * 2 * math.pi, power=0.35)


def fallback_shot(cue, ctx: ShotContext, rng, target_type=None):
    """兜底链：防守（按 safety_intelligence 概率）-> 碰最近球 -> 随机"""
    if rng.random() < ctx.profile.safety_intelligence:
        shot = calculate_safety_shot(cue, ctx, target_type)
        if shot is not None:
            logger.info(f"[AIPlayer] 无进攻线路，打防守 {shot.describe()}")
            return shot
    shot = hit_nearest_ball(cue, ctx)
    if shot is not None:
        logger.info(f"[AIPlayer] 无进攻线路，碰最近的球 {shot.describe()}")
        return shot
    logger.warning("[AIPlayer] 没有可直达的目标球，随机出杆")
    return random_shot(rng)
