"""
geometry.py - 击球几何工具

所有函数都是纯函数，坐标使用球台坐标单位：
- ghost_ball: 鬼球点（母球击中目标球瞬间的球心位置）
- cut_angle: 切球角度
- path_blocked: 线段阻挡检测
- mirror_point / cushion_crossing: 翻袋、解球使用的库边镜像
"""

import math
from collections.abc import Iterable

import numpy as np

from obs_utils import CUE_BALL_ID, as_point


# 阻挡判定阈值（球半径倍数），略大于两球相切的 2.0
BLOCK_FACTOR = 2.2


def distance(a, b) -> float:
    return float(np.linalg.norm(as_point(b) - as_point(a)))


def unit_vector(vec):
    """返回 (单位向量, 长度)；零向量返回 (None, 0.0)"""
    vec = np.asarray(vec, dtype=float)
    length = float(np.linalg.norm(vec))
    if length == 0:
        return None, 0.0
    return vec / length, length


def angle_of(start, end) -> float:
    """start 指向 end 的方向角（弧度，atan2 约定）"""
    d = as_point(end) - as_point(start)
    return math.atan2(d[1], d[0])


def ghost_ball(target, pocket, radius):
    """计算鬼球点

    目标球 -> 袋口 的反方向上，距离目标球球心 2 倍半径的位置。
    目标球与袋口重合时返回 None。
    """
    target = as_point(target)
    unit, _ = unit_vector(as_point(pocket) - target)
    if unit is None:
        return None
    return target - unit * (2 * radius)


def cut_angle(cue_to_ghost, ball_to_pocket) -> float:
    """两条方向向量之间的夹角，范围 [0, pi]"""
    v1 = np.asarray(cue_to_ghost, dtype=float)
    v2 = np.asarray(ball_to_pocket, dtype=float)
    cross = v1[0] * v2[1] - v1[1] * v2[0]
    dot = float(np.dot(v1, v2))
    return abs(math.atan2(cross, dot))


def _exclude_ids(exclude):
    if exclude is None:
        return frozenset()
    if isinstance(exclude, Iterable) and not isinstance(exclude, (str, bytes)):
        return frozenset(getattr(e, "id", e) for e in exclude)
    return frozenset([getattr(exclude, "id", exclude)])


def path_blocked(start, end, balls, exclude=None, radius=14.0) -> bool:
    """线段阻挡检测

    参数：
        start, end: 线段端点
        balls: Ball 列表
        exclude: 不参与判定的球（球号、Ball 或它们的集合）
        radius: 球半径

    返回：
        bool: 任意在台、非母球、未排除的球心到线段的最近距离小于 2.2 倍半径时为 True
    """
    start = as_point(start)
    end = as_point(end)
    seg = end - start
    seg_len_sq = float(np.dot(seg, seg))
    if seg_len_sq == 0:
        return False

    skip = _exclude_ids(exclude)
    limit = BLOCK_FACTOR * radius
    # bounding box 预筛选
    min_x, max_x = min(start[0], end[0]) - limit, max(start[0], end[0]) + limit
    min_y, max_y = min(start[1], end[1]) - limit, max(start[1], end[1]) + limit

    for ball in balls:
        if not ball.on_table or ball.id == CUE_BALL_ID or ball.id in skip:
            continue
        if not (min_x <= ball.x <= max_x and min_y <= ball.y <= max_y):
            continue
        pos = ball.pos
        t = float(np.dot(pos - start, seg)) / seg_len_sq
        t = min(max(t, 0.0), 1.0)
        closest = start + seg * t
        if float(np.linalg.norm(pos - closest)) < limit:
            return True
    return False


def mirror_point(point, axis: int, value: float) -> np.ndarray:
    """关于库边直线（axis=0 为 x=value，axis=1 为 y=value）做镜像"""
    mirrored = as_point(point).copy()
    mirrored[axis] = 2 * value - mirrored[axis]
    return mirrored


def cushion_crossing(start, end, axis: int, value: float):
    """线段与库边直线的交点

    返回：
        (t, point)；线段与库边平行时返回 None。t 不做范围限制，由调用方判断
    """
    start = as_point(start)
    end = as_point(end)
    span = end[axis] - start[axis]
    if span == 0:
        return None
    t = (value - start[axis]) / span
    return float(t), start + (end - start) * t


def cushion_lines(table):
    """四条库边直线 (axis, value)：左、右、上、下"""
    return (
        (0, table.cushion),
        (0, table.width - table.cushion),
        (1, table.cushion),
        (1, table.height - table.cushion),
    )
