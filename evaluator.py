"""
evaluator.py - 直接进袋评估

对 (母球, 目标球, 袋口) 组合给出评分和推荐力度，不可打时返回 None。
评分越高越好：距离越短、切角越薄越容易；走位加分只在高难度档位启用。
"""

from dataclasses import dataclass, field, replace

from difficulty import DifficultyProfile
from geometry import cut_angle, distance, ghost_ball, path_blocked, unit_vector, angle_of
from obs_utils import DEFAULT_POCKETS, TableSpec, as_point
from shots import DirectShot


MAX_POCKET_DISTANCE = 500
POSITION_BONUS_CAP = 25


@dataclass(frozen=True)
class ShotContext:
    """一次选杆过程中共享的只读上下文"""
    table: TableSpec
    profile: DifficultyProfile
    all_balls: tuple
    target_balls: tuple
    pockets: tuple = field(default=DEFAULT_POCKETS)
    eight_ball_time: bool = False

    @property
    def radius(self) -> float:
        return self.table.ball_radius

    def with_targets(self, target_balls):
        return replace(self, target_balls=tuple(target_balls))


def calculate_optimal_power(dist_to_ghost, dist_to_pocket, cut) -> float:
    """根据总行程和切角估算力度，范围 [0.35, 0.95]"""
    power = 0.4 + (dist_to_ghost + dist_to_pocket) / 800
    if cut > 0.4:
        power *= 1.15
    if cut > 0.6:
        power *= 1.1
    if dist_to_ghost < 80:
        power *= 0.85
    return min(max(power, 0.35), 0.95)


def evaluate_position_play(landing, target_id, ctx: ShotContext) -> float:
    """走位评分：母球停点离下一颗目标球近、远离库边、靠近中心时加分"""
    landing = as_point(landing)
    table = ctx.table
    bonus = 0.0

    for ball in ctx.target_balls:
        if ball.id == target_id or not ball.on_table:
            continue
        d = distance(landing, ball)
        if d < 200:
            bonus += 10
        elif d < 350:
            bonus += 5

    if landing[0] < 60 or landing[0] > table.width - 60:
        bonus -= 8
    if landing[1] < 50 or landing[1] > table.height - 50:
        bonus -= 8

    if distance(landing, table.center) < 150:
        bonus += 8

    return min(bonus, POSITION_BONUS_CAP)


def evaluate_shot(cue, target, pocket, ctx: ShotContext):
    """评估一杆直接进袋

    参数：
        cue: 母球（Ball 或坐标，前瞻时为预测停点）
        target: 目标球
        pocket: 袋口
        ctx: ShotContext

    返回：
        DirectShot 或 None（距离过远、线路被挡、切角过大）
    """
    cue_pos = as_point(cue)
    target_pos = as_point(target)
    radius = ctx.radius

    dist_to_pocket = distance(target_pos, pocket)
    if dist_to_pocket > MAX_POCKET_DISTANCE:
        return None

    ghost = ghost_ball(target_pos, pocket, radius)
    if ghost is None:
        return None
    _, dist_to_ghost = unit_vector(ghost - cue_pos)
    if dist_to_ghost == 0:
        return None

    if path_blocked(cue_pos, ghost, ctx.all_balls, exclude=target.id, radius=radius):
        return None
    if path_blocked(target_pos, pocket, ctx.all_balls, exclude=target.id, radius=radius):
        return None

    cut = cut_angle(ghost - cue_pos, as_point(pocket) - target_pos)
    if cut > ctx.profile.max_cut_angle:
        return None

    score = 100 - dist_to_ghost / 12 - dist_to_pocket / 10 - (cut ** 1.8) * 30
    if cut < 0.12:
        score += 20
    if dist_to_ghost < 120:
        score += 15
    if dist_to_pocket < 150:
        score += 12
    if not pocket.is_center:
        score += 6
    if ctx.profile.consider_position:
        score += evaluate_position_play(ghost, target.id, ctx)

    return DirectShot(
        angle=angle_of(cue_pos, ghost),
        power=calculate_optimal_power(dist_to_ghost, dist_to_pocket, cut),
        target_ball=target.id,
        score=score,
        cut_angle=cut,
        pocket=pocket,
        ghost_ball=ghost,
        dist_to_ghost=dist_to_ghost,
        dist_to_pocket=dist_to_pocket,
    )
