"""
rules.py - 8 球对局状态与 AI 击球结果判定

- MatchSession: 客户端维护的对局状态（与服务器快照最终一致）
- classify_ai_shot: AI 击球后按优先级判定结果
- find_best_ball_for_ai / place_cue_ball_for_ai: 自由球摆放
- closest_pocket_index: 黑8叫袋
"""

from dataclasses import dataclass, field
from enum import Enum

import numpy as np

from difficulty import Difficulty
from geometry import distance, unit_vector
from obs_utils import BallGroup, TableSpec, as_point, ball_to_dict


CUE_PLACEMENT_OFFSET = 80
CUE_PLACEMENT_MARGIN = 50


class TableState(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


class GamePhase(str, Enum):
    WAITING = "waiting"
    AIMING = "aiming"
    SHOOTING = "shooting"


class OutcomeKind(str, Enum):
    GAME_OVER = "game_over"
    SCRATCH = "scratch"
    GROUP_ASSIGNED = "group_assigned"
    CONTINUE = "continue"
    TURN_OVER = "turn_over"


@dataclass
class MatchSession:
    my_player_number: int = 1
    is_ai_match: bool = False
    ai_difficulty: Difficulty = Difficulty.EXPERT
    player_types: dict = field(default_factory=lambda: {1: None, 2: None})
    table_state: TableState = TableState.OPEN
    ai_shot_pending: bool = False
    called_pocket: int = None

    room_id: str = None
    current_player: int = 1
    ball_in_hand: bool = False
    phase: GamePhase = GamePhase.WAITING
    needs_pocket_call: bool = False
    game_over: bool = False
    winner: int = None

    @property
    def ai_player_number(self) -> int:
        return 1 if self.my_player_number == 2 else 2

    @property
    def ai_group(self):
        return self.player_types.get(self.ai_player_number)

    @property
    def table_open(self) -> bool:
        return self.table_state is TableState.OPEN

    @property
    def is_ai_turn(self) -> bool:
        return self.current_player != self.my_player_number

    def target_type_for(self, player):
        return self.player_types.get(player)

    def assign_groups(self, player, group):
        """给 player 分配 group，另一方分配相反分组，并关闭球台"""
        group = BallGroup.parse(group)
        other = 2 if player == 1 else 1
        self.player_types = {player: group, other: group.opponent}
        self.table_state = TableState.CLOSED

    def absorb_snapshot(self, current_player=None, game_state=None, game_over=False):
        """合并服务器快照（服务器为准）"""
        game_state = game_state or {}
        if current_player is not None:
            self.current_player = int(current_player)
        if game_over:
            self.game_over = True

        types = game_state.get("playerTypes")
        if types:
            self.player_types = {
                int(k): BallGroup.parse(v) for k, v in types.items()
            }
        if "tableOpen" in game_state:
            self.table_state = TableState.OPEN if game_state["tableOpen"] else TableState.CLOSED
        if "ballInHand" in game_state:
            self.ball_in_hand = bool(game_state["ballInHand"])

    def player_types_payload(self) -> dict:
        return {str(k): (v.value if v else None) for k, v in self.player_types.items()}

    def reset(self):
        self.player_types = {1: None, 2: None}
        self.table_state = TableState.OPEN
        self.ai_shot_pending = False
        self.called_pocket = None
        self.current_player = 1
        self.ball_in_hand = False
        self.phase = GamePhase.WAITING
        self.needs_pocket_call = False
        self.game_over = False
        self.winner = None


@dataclass
class ShotOutcome:
    kind: OutcomeKind
    ai_continues: bool = False
    foul: bool = False
    winner: int = None
    reason: str = None
    assigned_group: BallGroup = None
    pocketed: list = field(default_factory=list)

    def pocketed_payload(self):
        return [ball_to_dict(b) for b in self.pocketed]


def _group_cleared(balls, group) -> bool:
    """group 为 None（开放球台）时要求台面上没有任何全色/花色球"""
    for ball in balls:
        if not ball.on_table or ball.is_cue or ball.is_eight:
            continue
        if group is None or ball.type is group:
            return False
    return True


def classify_ai_shot(session: MatchSession, pocketed, balls) -> ShotOutcome:
    """判定 AI 一杆的结果

    优先级：黑8进袋 > 母球落袋 > 开放球台定色 > 打进己方球 > 交换球权

    参数：
        session: 当前对局状态（只读）
        pocketed: 本杆进袋的 Ball 列表
        balls: 击球后的 Ball 列表
    """
    ai_num = session.ai_player_number
    human_num = session.my_player_number
    ai_group = session.ai_group
    pocketed = list(pocketed)
    scratched = any(b.is_cue for b in pocketed)

    if any(b.is_eight for b in pocketed):
        if _group_cleared(balls, ai_group) and not scratched:
            return ShotOutcome(OutcomeKind.GAME_OVER, winner=ai_num,
                               reason="AI 清台后打进黑8", pocketed=pocketed)
        reason = "AI 黑8与母球同时落袋" if scratched else "AI 提前打进黑8"
        return ShotOutcome(OutcomeKind.GAME_OVER, foul=True, winner=human_num,
                           reason=reason, pocketed=pocketed)

    if scratched:
        return ShotOutcome(OutcomeKind.SCRATCH, foul=True, pocketed=pocketed)

    legal = [b for b in pocketed if b.type is not None]
    if (session.table_open or ai_group is None) and legal:
        return ShotOutcome(OutcomeKind.GROUP_ASSIGNED, ai_continues=True,
                           assigned_group=legal[0].type, pocketed=pocketed)

    if ai_group is not None and any(b.type is ai_group for b in pocketed):
        return ShotOutcome(OutcomeKind.CONTINUE, ai_continues=True, pocketed=pocketed)

    return ShotOutcome(OutcomeKind.TURN_OVER, pocketed=pocketed)


def closest_pocket_index(ball, pockets) -> int:
    return min(range(len(pockets)), key=lambda i: distance(ball, pockets[i]))


def find_best_ball_for_ai(session: MatchSession, balls, pockets):
    """自由球时选择离袋口最近的己方目标球"""
    on_table = [b for b in balls if b.on_table and not b.is_cue]
    group = session.ai_group
    if session.table_open or group is None:
        candidates = [b for b in on_table if not b.is_eight]
    else:
        candidates = [b for b in on_table if b.type is group]
        if not candidates:
            candidates = [b for b in on_table if b.is_eight]
    if not candidates or not pockets:
        return None
    return min(candidates, key=lambda b: min(distance(b, p) for p in pockets))


def place_cue_ball_for_ai(target, pockets, table: TableSpec):
    """把母球放在目标球背离最近袋口的一侧，返回 (x, y)"""
    target_pos = as_point(target)
    nearest = pockets[closest_pocket_index(target, pockets)]
    direction, _ = unit_vector(as_point(nearest) - target_pos)
    if direction is None:
        direction = np.array([1.0, 0.0])
    spot = target_pos - direction * CUE_PLACEMENT_OFFSET
    return table.clamp(spot[0], spot[1], CUE_PLACEMENT_MARGIN)
