"""
obs_utils.py - 球桌观测数据模块

把服务器 / 物理引擎给出的球桌快照整理成 AI 使用的只读结构：
- Ball / Pocket / TableSpec: 球、袋口、球台尺寸（球台坐标单位）
- BallGroup: 花色分组（全色 / 花色）
- balls_from_snapshot / ball_to_dict: 快照与消息体之间的转换
- ACTION_BOUNDS: 归一化力度 / 杆法映射到 pooltool 击球参数的范围
"""

from dataclasses import dataclass
from enum import Enum

import numpy as np


CUE_BALL_ID = 0
EIGHT_BALL_ID = 8
SOLID_IDS = tuple(range(1, 8))
STRIPE_IDS = tuple(range(9, 16))

ACTION_BOUNDS = {
    "V0": (0.5, 8.0),
    "phi": (0.0, 360.0),
    "theta": (0.0, 90.0),
    "a": (-0.5, 0.5),
    "b": (-0.5, 0.5),
}


class BallGroup(str, Enum):
    """球的花色分组，值与服务器协议中的字符串一致"""
    SOLID = "solid"
    STRIPE = "stripe"

    @property
    def opponent(self) -> "BallGroup":
        return BallGroup.STRIPE if self is BallGroup.SOLID else BallGroup.SOLID

    @classmethod
    def parse(cls, value):
        """兼容 'solid' / 'solids' / 'stripe' / 'stripes' / None 等写法"""
        if value is None or isinstance(value, BallGroup):
            return value
        name = str(value).lower().rstrip("s")
        if name == "solid":
            return cls.SOLID
        if name == "stripe":
            return cls.STRIPE
        return None


def ball_group(ball_id: int):
    """返回球号所属分组；母球与黑8返回 None"""
    if ball_id in SOLID_IDS:
        return BallGroup.SOLID
    if ball_id in STRIPE_IDS:
        return BallGroup.STRIPE
    return None


@dataclass
class Ball:
    id: int
    x: float
    y: float
    active: bool = True
    pocketed: bool = False
    vx: float = 0.0
    vy: float = 0.0

    @property
    def type(self):
        return ball_group(self.id)

    @property
    def pos(self) -> np.ndarray:
        return np.array([self.x, self.y], dtype=float)

    @property
    def on_table(self) -> bool:
        return self.active and not self.pocketed

    @property
    def is_cue(self) -> bool:
        return self.id == CUE_BALL_ID

    @property
    def is_eight(self) -> bool:
        return self.id == EIGHT_BALL_ID


@dataclass(frozen=True)
class Pocket:
    x: float
    y: float
    is_center: bool = False

    @property
    def pos(self) -> np.ndarray:
        return np.array([self.x, self.y], dtype=float)


@dataclass(frozen=True)
class TableSpec:
    """球台尺寸（球台坐标单位，原点在左上角）"""
    width: float = 1000.0
    height: float = 500.0
    cushion: float = 25.0
    ball_radius: float = 14.0

    @property
    def center(self) -> np.ndarray:
        return np.array([self.width / 2, self.height / 2], dtype=float)

    def clamp(self, x, y, margin):
        """把坐标限制在距离台边 margin 的范围内"""
        x = min(max(x, margin), self.width - margin)
        y = min(max(y, margin), self.height - margin)
        return float(x), float(y)


# 物理层没有提供袋口时使用的默认布局
DEFAULT_POCKETS = (
    Pocket(40, 40),
    Pocket(460, 40, is_center=True),
    Pocket(880, 40),
    Pocket(40, 460),
    Pocket(460, 460, is_center=True),
    Pocket(880, 460),
)


def as_point(obj) -> np.ndarray:
    """Ball / Pocket / 坐标序列统一转成 np.ndarray"""
    if hasattr(obj, "pos"):
        return obj.pos
    return np.asarray(obj, dtype=float)


def pockets_or_default(pockets):
    return tuple(pockets) if pockets else DEFAULT_POCKETS


def find_ball(balls, ball_id):
    for ball in balls:
        if ball.id == ball_id:
            return ball
    return None


def balls_from_snapshot(payload):
    """把快照中的球列表（dict）转换为 Ball 列表

    参数：
        payload: [{'id', 'x', 'y', 'active', 'pocketed', ...}, ...]

    返回：
        list[Ball]，缺少 id 或坐标的条目会被跳过
    """
    balls = []
    for item in payload or ():
        if isinstance(item, Ball):
            balls.append(item)
            continue
        if item.get("id") is None or item.get("x") is None or item.get("y") is None:
            continue
        balls.append(Ball(
            id=int(item["id"]),
            x=float(item["x"]),
            y=float(item["y"]),
            active=bool(item.get("active", True)),
            pocketed=bool(item.get("pocketed", False)),
            vx=float(item.get("vx", 0.0)),
            vy=float(item.get("vy", 0.0)),
        ))
    return balls


def ball_to_dict(ball: Ball) -> dict:
    group = ball.type
    return {
        "id": ball.id,
        "x": round(ball.x, 2),
        "y": round(ball.y, 2),
        "active": ball.active,
        "pocketed": ball.pocketed,
        "type": group.value if group else None,
    }
