"""
agent.py - AI 对手决策模块

AIPlayer 是 AI 选杆的统一入口：
- calculate_shot: 根据当前球桌计算一杆（永不返回 None）
- thinking_time: 按难度抽取思考延迟
- select_targets: 按分组筛选目标球，处理黑8阶段
"""

import random

from difficulty import Difficulty
from evaluator import ShotContext
from finders import find_bank_shots, find_combo_shots, find_direct_shots, find_kick_shots
from obs_utils import BallGroup, TableSpec, pockets_or_default
from shots import RandomShot
from selector import add_smart_spin, apply_difficulty_noise, fallback_shot, random_shot, select_shot
from utils import get_logger

logger = get_logger("pool_ai")

# 候选不足该数量时才考虑翻袋
MIN_CANDIDATES_BEFORE_BANK = 3


def select_targets(balls, target_type):
    """筛选目标球

    参数：
        balls: Ball 列表
        target_type: BallGroup / 'solids' / 'stripes' / None（开放球台）

    返回：
        (targets, eight_ball_time)：己方分组没有剩余球时目标只剩黑8
    """
    group = BallGroup.parse(target_type)
    on_table = [b for b in balls if b.on_table and not b.is_cue]
    if group is None:
        targets = [b for b in on_table if not b.is_eight]
    else:
        targets = [b for b in on_table if b.type is group]

    if not targets:
        eight = [b for b in on_table if b.is_eight]
        return eight, bool(eight)
    return targets, False


class AIPlayer():
    """AI 对手"""

    def __init__(self, difficulty=Difficulty.EXPERT, table=None, rng=None):
        self.difficulty = Difficulty.parse(difficulty)
        self.profile = self.difficulty.profile
        self.table = table or TableSpec()
        self.rng = rng or random.Random()

    def thinking_time(self) -> float:
        """思考延迟（秒），在难度范围内均匀抽取"""
        low, high = self.profile.thinking_time
        return self.rng.uniform(low, high)

    def calculate_shot(self, game_state, balls, cue_ball, pockets, target_type):
        """计算 AI 的下一杆

        参数：
            game_state: 保留参数，暂未使用
            balls: Ball 列表（只读快照）
            cue_ball: 母球
            pockets: 袋口列表，为空时使用默认布局
            target_type: AI 的分组，开放球台时为 None

        返回：
            Shot: 进攻候选（已加塞、已加噪声）或兜底击球
        """
        if cue_ball is None or not cue_ball.on_table:
            logger.warning("[AIPlayer] 母球不在台面上，随机出杆")
            return random_shot(self.rng)

        pockets = pockets_or_default(pockets)
        targets, eight_ball_time = select_targets(balls, target_type)
        ctx = ShotContext(
            table=self.table,
            profile=self.profile,
            all_balls=tuple(balls),
            target_balls=tuple(targets),
            pockets=pockets,
            eight_ball_time=eight_ball_time,
        )

        candidates = find_direct_shots(cue_ball, targets, pockets, ctx)
        candidates += find_combo_shots(cue_ball, targets, pockets, ctx)
        if self.profile.use_bank_shots and len(candidates) < MIN_CANDIDATES_BEFORE_BANK:
            candidates += find_bank_shots(cue_ball, targets, pockets, ctx)
        if self.profile.use_kick_shots and not candidates:
            candidates += find_kick_shots(cue_ball, targets, ctx)

        logger.info(f"[AIPlayer] {self.difficulty.value} 目标球 {[b.id for b in targets]}，"
                    f"候选 {len(candidates)} 个{'（黑8阶段）' if eight_ball_time else ''}")

        if not candidates:
            shot = fallback_shot(cue_ball, ctx, self.rng, target_type)
            if isinstance(shot, RandomShot):
                return shot
            return apply_difficulty_noise(shot, self.profile, self.rng)

        candidates.sort(key=lambda s: s.score, reverse=True)
        shot = select_shot(candidates, cue_ball, ctx, self.rng)
        if self.profile.use_spin:
            shot = add_smart_spin(shot, cue_ball, ctx)
        shot = apply_difficulty_noise(shot, self.profile, self.rng)
        logger.info(f"[AIPlayer] 选择 {shot.describe()}")
        return shot
