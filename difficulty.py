"""
difficulty.py - AI 难度档位

难度是一个封闭集合，每个档位对应一份不可变的参数表：
- accuracy / angle_error / power_error: 出杆误差
- thinking_time: 思考延迟范围（秒）
- use_* / consider_position: 启用的打法
- safety_intelligence: 无进攻线路时选择防守的概率
"""

import math
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType


class UnknownDifficultyError(ValueError):
    """难度名称不在支持的档位中"""
    pass


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    MEDIUM_HARD = "medium-hard"
    HARD = "hard"
    EXPERT = "expert"

    @classmethod
    def parse(cls, name) -> "Difficulty":
        if isinstance(name, Difficulty):
            return name
        try:
            return cls(str(name).strip().lower().replace("_", "-"))
        except ValueError:
            raise UnknownDifficultyError(
                f"未知难度 {name!r}，可选: {', '.join(d.value for d in cls)}") from None

    @property
    def profile(self) -> "DifficultyProfile":
        return PROFILES[self]


@dataclass(frozen=True)
class DifficultyProfile:
    accuracy: float
    angle_error: float           # 度
    power_error: float
    thinking_time: tuple         # (min, max) 秒
    prefer_easy_shots: bool
    use_spin: bool
    consider_position: bool
    use_bank_shots: bool
    use_kick_shots: bool
    safety_intelligence: float
    max_cut_angle: float = math.pi * 0.45
    picks_best: bool = False     # 总是选最高分候选
    plans_run_out: bool = False  # 清台前瞻


PROFILES = MappingProxyType({
    Difficulty.EASY: DifficultyProfile(
        accuracy=0.55, angle_error=20.0, power_error=0.2,
        thinking_time=(2.0, 4.0),
        prefer_easy_shots=True, use_spin=False, consider_position=False,
        use_bank_shots=False, use_kick_shots=False,
        safety_intelligence=0.3, max_cut_angle=math.pi * 0.44,
    ),
    Difficulty.MEDIUM: DifficultyProfile(
        accuracy=0.72, angle_error=12.0, power_error=0.12,
        thinking_time=(1.5, 3.0),
        prefer_easy_shots=True, use_spin=True, consider_position=False,
        use_bank_shots=False, use_kick_shots=False,
        safety_intelligence=0.5, max_cut_angle=math.pi * 0.44,
    ),
    Difficulty.MEDIUM_HARD: DifficultyProfile(
        accuracy=0.85, angle_error=6.0, power_error=0.08,
        thinking_time=(1.2, 2.5),
        prefer_easy_shots=False, use_spin=True, consider_position=True,
        use_bank_shots=True, use_kick_shots=False,
        safety_intelligence=0.7,
    ),
    Difficulty.HARD: DifficultyProfile(
        accuracy=0.94, angle_error=2.5, power_error=0.04,
        thinking_time=(0.8, 2.0),
        prefer_easy_shots=False, use_spin=True, consider_position=True,
        use_bank_shots=True, use_kick_shots=True,
        safety_intelligence=0.85, picks_best=True,
    ),
    Difficulty.EXPERT: DifficultyProfile(
        accuracy=0.98, angle_error=0.8, power_error=0.015,
        thinking_time=(0.5, 1.2),
        prefer_easy_shots=False, use_spin=True, consider_position=True,
        use_bank_shots=True, use_kick_shots=True,
        safety_intelligence=0.95, picks_best=True, plans_run_out=True,
    ),
})
