"""
shots.py - 击球候选类型

所有候选共享 angle / power / spin_x / spin_y / target_ball / score / cut_angle，
不同类型携带各自的几何信息：
- DirectShot: 直接进袋
- ComboShot: 组合球（母球 -> 第一球 -> 第二球 -> 袋口）
- BankShot: 翻袋（目标球吃一库后进袋）
- KickShot: 解球（母球吃一库后碰目标球）
- SafetyShot / EmergencyShot / RandomShot: 无进攻线路时的兜底
"""

import math
from dataclasses import dataclass, replace
from enum import Enum
from typing import ClassVar, Optional

import numpy as np

from obs_utils import Pocket


class ShotType(str, Enum):
    DIRECT = "direct"
    COMBO = "combo"
    BANK = "bank"
    KICK = "kick"
    SAFETY = "safety"
    EMERGENCY = "emergency"
    RANDOM = "random"


@dataclass(kw_only=True, eq=False)
class Shot:
    angle: float
    power: float
    spin_x: float = 0.0
    spin_y: float = 0.0
    target_ball: Optional[int] = None
    score: float = 0.0
    cut_angle: float = 0.0

    type: ClassVar[ShotType]

    @property
    def angle_degrees(self) -> float:
        return math.degrees(self.angle) % 360

    def with_changes(self, **changes):
        return replace(self, **changes)

    def describe(self) -> str:
        return (f"{self.type.value}(ball={self.target_ball}, score={self.score:.1f}, "
                f"angle={self.angle_degrees:.1f}°, power={self.power:.2f}, "
                f"spin=({self.spin_x:+.2f},{self.spin_y:+.2f}))")


@dataclass(kw_only=True, eq=False)
class DirectShot(Shot):
    pocket: Pocket
    ghost_ball: np.ndarray
    dist_to_ghost: float
    dist_to_pocket: float

    type: ClassVar[ShotType] = ShotType.DIRECT


@dataclass(kw_only=True, eq=False)
class ComboShot(Shot):
    pocket: Pocket
    ghost_ball: np.ndarray
    combo_ball: int
    dist_to_ghost: float = 0.0

    type: ClassVar[ShotType] = ShotType.COMBO


@dataclass(kw_only=True, eq=False)
class BankShot(Shot):
    pocket: Pocket
    ghost_ball: np.ndarray
    bank_point: np.ndarray
    dist_to_ghost: float = 0.0

    type: ClassVar[ShotType] = ShotType.BANK


@dataclass(kw_only=True, eq=False)
class KickShot(Shot):
    kick_point: np.ndarray

    type: ClassVar[ShotType] = ShotType.KICK


@dataclass(kw_only=True, eq=False)
class SafetyShot(Shot):
    type: ClassVar[ShotType] = ShotType.SAFETY


@dataclass(kw_only=True, eq=False)
class EmergencyShot(Shot):
    type: ClassVar[ShotType] = ShotType.EMERGENCY


@dataclass(kw_only=True, eq=False)
class RandomShot(Shot):
    type: ClassVar[ShotType] = ShotType.RANDOM


# 带鬼球点的进攻型候选，可用于母球走位预测
POSITIONAL_SHOTS = (DirectShot, ComboShot, BankShot)
