"""
network.py - 联机对局的回合同步与 AI 回合状态机

NetworkManager 负责：
- 接收服务器消息（game_start / game_state_update / game_over ...），合并到 MatchSession
- 在 AI 对局中轮到 AI 时驱动一次 AI 回合：
  idle -> awaiting_ai_decision -> ai_executing_shot -> awaiting_physics_settle -> resolving_outcome -> idle
- 把 AI 击球结果按协议发回服务器（shot_result）
- 本地事件订阅：on / off

同一时刻最多只有一个 AI 回合在进行，由 session.ai_shot_pending 保证。
"""

import asyncio
from enum import Enum
from typing import Protocol

from agent import AIPlayer, select_targets
from difficulty import Difficulty, UnknownDifficultyError
from obs_utils import (CUE_BALL_ID, TableSpec, ball_to_dict, balls_from_snapshot, find_ball,
                       pockets_or_default)
from physics import PhysicsEngine, wait_for_balls_stopped
from rules import (GamePhase, MatchSession, OutcomeKind, classify_ai_shot, closest_pocket_index,
                   find_best_ball_for_ai, place_cue_ball_for_ai)
from utils import get_logger

logger = get_logger("pool_network")


class AiTurnState(str, Enum):
    IDLE = "idle"
    AWAITING_AI_DECISION = "awaiting_ai_decision"
    AI_EXECUTING_SHOT = "ai_executing_shot"
    AWAITING_PHYSICS_SETTLE = "awaiting_physics_settle"
    RESOLVING_OUTCOME = "resolving_outcome"


class Transport(Protocol):
    def emit(self, event: str, payload: dict) -> None:
        ...


class NetworkManager():
    """客户端网络管理器"""

    def __init__(self, physics: PhysicsEngine, transport: Transport = None, session=None, player_id=None,
                 table=None, rng=None, settle_interval=0.1, settle_max_interval=0.5,
                 settle_timeout=None, continue_delay=0.5):
        self.physics = physics
        self.transport = transport
        self.session = session or MatchSession()
        self.player_id = player_id
        self.table = table or TableSpec()
        self.rng = rng

        self.settle_interval = settle_interval
        self.settle_max_interval = settle_max_interval
        self.settle_timeout = settle_timeout
        self.continue_delay = continue_delay

        self.state = AiTurnState.IDLE
        self.is_host = False
        self.ai_player = AIPlayer(self.session.ai_difficulty, table=self.table, rng=rng)
        self.last_game_state = None
        self._listeners = {}
        self._ai_task = None

    # ---------- 本地事件 ----------
    def on(self, event, callback):
        self._listeners.setdefault(event, []).append(callback)

    def off(self, event, callback):
        callbacks = self._listeners.get(event, [])
        if callback in callbacks:
            callbacks.remove(callback)

    def emit(self, event, data=None):
        for callback in list(self._listeners.get(event, [])):
            callback(data)

    # ---------- 发往服务器 ----------
    def _send(self, event, payload=None, needs_room=False):
        if self.transport is None:
            logger.debug(f"[Network] 未连接，丢弃 {event}")
            return False
        if needs_room and not self.session.room_id:
            logger.debug(f"[Network] 不在房间内，丢弃 {event}")
            return False
        self.transport.emit(event, payload or {})
        return True

    def create_room(self, wager=0):
        return self._send("create_room", {"wager": wager})

    def join_room(self, room_id):
        return self._send("join_room", {"roomId": str(room_id).upper()})

    def leave_room(self):
        sent = self._send("leave_room")
        self.session.room_id = None
        return sent

    def ready(self):
        return self._send("ready", needs_room=True)

    def send_aim(self, angle, power, spin_x=0.0, spin_y=0.0):
        return self._send("aim_update", {"angle": angle, "power": power, "spinX": spin_x, "spinY": spin_y},
                          needs_room=True)

    def send_shot(self, angle, power, spin_x=0.0, spin_y=0.0):
        return self._send("take_shot", {"angle": angle, "power": power, "spinX": spin_x, "spinY": spin_y},
                          needs_room=True)

    def send_shot_result(self, result):
        return self._send("shot_result", result, needs_room=True)

    def send_cue_ball_position(self, x, y):
        return self._send("cue_ball_placed", {"x": x, "y": y}, needs_room=True)

    # ---------- 服务器消息 ----------
    def handle_message(self, event, data=None):
        """按事件名分发服务器消息，未单独处理的事件直接转发给本地订阅者"""
        data = data or {}
        handler = {
            "game_start": self.on_game_start,
            "game_state_update": self.on_game_state_update,
            "game_over": self.on_game_over,
            "opponent_disconnected": self.on_opponent_disconnected,
            "room_created": self.on_room_created,
            "match_found": self.on_match_found,
            "game_rejoin": self.on_game_rejoin,
        }.get(event)
        if handler is None:
            self.emit(event, data)
            return None
        return handler(data)

    def on_room_created(self, data):
        self.session.room_id = data.get("roomId")
        self.is_host = True
        logger.info(f"[Network] 房间已创建: {self.session.room_id}")
        self.emit("room_created", data)

    def on_match_found(self, data):
        self.session.room_id = data.get("roomId")
        host = (data.get("room") or {}).get("host") or {}
        self.is_host = host.get("id") == self.player_id
        logger.info(f"[Network] 匹配成功: {self.session.room_id}")
        self.emit("match_found", data)

    def on_game_rejoin(self, data):
        self.session.room_id = data.get("roomId")
        logger.info(f"[Network] 重新加入对局: {self.session.room_id}")
        self.emit("game_rejoin", data)

    def on_game_start(self, data):
        """新对局开始：识别 AI 对局、确定自己的玩家编号和 AI 难度"""
        session = self.session
        session.reset()
        if data.get("roomId"):
            session.room_id = data["roomId"]

        host = data.get("host") or {}
        guest = data.get("guest") or {}
        session.is_ai_match = bool(data.get("isAiMatch") or host.get("isBot") or guest.get("isBot"))
        is_host = bool(host) and host.get("id") == self.player_id
        session.my_player_number = 1 if is_host else 2

        if session.is_ai_match:
            opponent = guest if is_host else host
            name = opponent.get("aiDifficulty") or Difficulty.EXPERT.value
            try:
                session.ai_difficulty = Difficulty.parse(name)
            except UnknownDifficultyError as e:
                logger.warning(f"[Network] {e}，使用 expert")
                session.ai_difficulty = Difficulty.EXPERT
            self.ai_player = AIPlayer(session.ai_difficulty, table=self.table, rng=self.rng)
            logger.info(f"[Network] AI 对局：我是 Player {session.my_player_number}，"
                        f"AI 是 Player {session.ai_player_number}（{session.ai_difficulty.value}）")

        self.state = AiTurnState.IDLE
        self.emit("game_start", data)

    def on_game_state_update(self, data):
        """合并服务器快照，轮到 AI 时触发 AI 回合

        返回：
            新建的 AI 回合 asyncio.Task，未触发时为 None
        """
        session = self.session
        game_state = data.get("gameState")
        self.last_game_state = game_state
        current_player = data.get("currentPlayer")
        if current_player is None and game_state:
            current_player = game_state.get("currentPlayer")
        session.absorb_snapshot(current_player, game_state, bool(data.get("gameOver")))
        if game_state and game_state.get("balls") and self._local_table_settled():
            self._sync_balls(game_state["balls"])
        self.emit("game_state_update", data)

        if not session.is_ai_match or game_state is None or session.game_over:
            return None
        if not session.is_ai_turn:
            if self.is_shooting_at_eight_ball() and session.called_pocket is None:
                self.request_pocket_call()
            return None
        return self.trigger_ai_turn()

    def _local_table_settled(self) -> bool:
        """本地球桌没有尚未上报的 AI 击球结果（包括连杆等待期间）"""
        return not self.session.ai_shot_pending and self.state is AiTurnState.IDLE

    def _sync_balls(self, payload):
        """用服务器快照中的球位覆盖本地球桌（AI 出杆过程中不覆盖）"""
        local = {b.id: b for b in self.physics.balls}
        for snap in balls_from_snapshot(payload):
            ball = local.get(snap.id)
            if ball is None:
                continue
            ball.x, ball.y = snap.x, snap.y
            ball.active, ball.pocketed = snap.active, snap.pocketed

    def on_game_over(self, data):
        self.session.game_over = True
        if data.get("winner") is not None:
            self.session.winner = data["winner"]
        self.state = AiTurnState.IDLE
        logger.info(f"[Network] 🏆 对局结束，胜者: {data.get('winnerName', data.get('winner'))}")
        self.emit("game_over", data)

    def on_opponent_disconnected(self, data):
        logger.info("[Network] 对手断开连接")
        self.emit("opponent_disconnected", data)

    # ---------- 叫袋 ----------
    def is_shooting_at_eight_ball(self, player=None) -> bool:
        """player（默认为自己）的分组是否已清空"""
        session = self.session
        player = player or session.my_player_number
        group = session.target_type_for(player)
        if session.table_open or group is None:
            return False
        return not any(b.on_table and b.type is group for b in self.physics.balls)

    def request_pocket_call(self):
        self.session.needs_pocket_call = True
        self.emit("pocket_call_required", {"pockets": list(pockets_or_default(self.physics.pockets))})

    def select_pocket(self, index):
        pockets = pockets_or_default(self.physics.pockets)
        if not 0 <= index < len(pockets):
            raise ValueError(f"袋口编号超出范围: {index}")
        self.session.called_pocket = index
        self.session.needs_pocket_call = False
        self.emit("pocket_selected", {"pocket": index})

    def ai_select_pocket(self, eight_ball):
        """AI 叫离黑8最近的袋口"""
        index = closest_pocket_index(eight_ball, pockets_or_default(self.physics.pockets))
        self.session.called_pocket = index
        logger.info(f"[Network] AI 叫袋: {index}")
        return index

    # ---------- AI 回合 ----------
    def trigger_ai_turn(self):
        """启动一次 AI 回合；已有回合在进行时跳过"""
        session = self.session
        if session.ai_shot_pending or self.state is AiTurnState.RESOLVING_OUTCOME:
            logger.info("[Network] AI 回合已在进行，跳过重复触发")
            return None
        session.ai_shot_pending = True
        self.state = AiTurnState.AWAITING_AI_DECISION
        self._ai_task = asyncio.get_running_loop().create_task(self.execute_ai_turn())
        return self._ai_task

    async def drain(self):
        """等待当前（以及由它接续触发的）AI 回合全部结束"""
        while self._ai_task is not None and not self._ai_task.done():
            await self._ai_task

    def _abort_ai_turn(self, reason):
        logger.warning(f"[Network] AI 回合中止: {reason}")
        self.session.ai_shot_pending = False
        self.state = AiTurnState.IDLE

    def _cue_ball(self):
        cue = find_ball(self.physics.balls, CUE_BALL_ID)
        if cue is None or not cue.active:
            return None
        return cue

    def _place_cue_ball_for_ai(self, cue):
        pockets = pockets_or_default(self.physics.pockets)
        target = find_best_ball_for_ai(self.session, self.physics.balls, pockets)
        if target is not None:
            cue.x, cue.y = place_cue_ball_for_ai(target, pockets, self.table)
            cue.pocketed = False
            logger.info(f"[Network] AI 自由球，母球放在 ({cue.x:.0f}, {cue.y:.0f})，瞄准 {target.id} 号球")
        self.session.ball_in_hand = False

    async def execute_ai_turn(self):
        """执行一次 AI 回合

        返回：
            ShotOutcome，回合中止时为 None
        """
        session = self.session
        session.ai_shot_pending = True
        self.state = AiTurnState.AWAITING_AI_DECISION
        if self._cue_ball() is None:
            self._abort_ai_turn("母球无效")
            return None

        try:
            await asyncio.sleep(self.ai_player.thinking_time())
            if session.game_over:
                self._abort_ai_turn("对局已结束")
                return None
            # 思考延迟期间球桌可能被服务器快照更新，重新读取
            cue = self._cue_ball()
            if cue is None:
                self._abort_ai_turn("思考后母球无效")
                return None

            if session.ball_in_hand:
                self._place_cue_ball_for_ai(cue)

            balls = self.physics.balls
            pockets = pockets_or_default(self.physics.pockets)
            target_type = None if session.table_open else session.ai_group
            targets, eight_ball_time = select_targets(balls, target_type)
            if eight_ball_time:
                self.ai_select_pocket(targets[0])

            shot = self.ai_player.calculate_shot(self.last_game_state, balls, cue, pockets, target_type)

            self.state = AiTurnState.AI_EXECUTING_SHOT
            session.phase = GamePhase.SHOOTING
            self.physics.apply_shot(cue, shot.angle, shot.power, shot.spin_x, shot.spin_y)

            self.state = AiTurnState.AWAITING_PHYSICS_SETTLE
            settled = await wait_for_balls_stopped(
                self.physics, self.settle_interval, self.settle_max_interval, self.settle_timeout)
            if not settled:
                logger.warning("[Network] 等待球静止超时，按当前球位判定")
        except Exception as e:
            logger.exception(f"[Network] AI 回合出错: {e}")
            self._abort_ai_turn("执行异常")
            return None

        session.ai_shot_pending = False
        self.state = AiTurnState.RESOLVING_OUTCOME
        return await self.resolve_ai_shot()

    async def resolve_ai_shot(self):
        """判定 AI 击球结果并推进回合"""
        session = self.session
        if session.game_over:
            logger.info("[Network] 对局已由服务器结束，不再上报本杆结果")
            self.state = AiTurnState.IDLE
            return None
        pocketed = list(self.physics.pocketed_this_shot)
        outcome = classify_ai_shot(session, pocketed, self.physics.balls)
        logger.info(f"[Network] AI 击球结果: {outcome.kind.value}，进袋 {[b.id for b in pocketed]}")

        if outcome.kind is OutcomeKind.GAME_OVER:
            self._finish_game(outcome)
        elif outcome.kind is OutcomeKind.SCRATCH:
            self._restore_cue_ball()
            self.switch_to_human_turn(True, outcome)
        elif outcome.ai_continues:
            if outcome.kind is OutcomeKind.GROUP_ASSIGNED:
                session.assign_groups(session.ai_player_number, outcome.assigned_group)
                logger.info(f"[Network] 定色：AI 打 {outcome.assigned_group.value}")
            self.emit("ai_continue", {"pocketedBalls": outcome.pocketed_payload()})
            await asyncio.sleep(self.continue_delay)
            self.state = AiTurnState.IDLE
            if session.is_ai_match and not session.game_over and session.is_ai_turn:
                self.trigger_ai_turn()
        else:
            self.switch_to_human_turn(False, outcome)
        return outcome

    def _restore_cue_ball(self):
        cue = find_ball(self.physics.balls, CUE_BALL_ID)
        if cue is None:
            return
        cue.x = self.table.width * 0.25
        cue.y = self.table.height / 2
        cue.vx = cue.vy = 0.0
        cue.active = True
        cue.pocketed = False

    def _shot_result(self, outcome, foul):
        session = self.session
        return {
            "roomId": session.room_id,
            "foul": foul,
            "continueTurn": False,
            "pocketedBalls": outcome.pocketed_payload(),
            "tableOpen": session.table_open,
            "playerTypes": session.player_types_payload(),
            "isBreakShot": False,
            "isAiShot": True,
            "ballInHand": foul,
        }

    def switch_to_human_turn(self, foul, outcome):
        """把球权交给玩家，犯规时玩家立即获得自由球"""
        session = self.session
        self.send_shot_result(self._shot_result(outcome, foul))
        session.current_player = session.my_player_number
        session.called_pocket = None
        if foul:
            session.ball_in_hand = True
            session.phase = GamePhase.AIMING
            logger.info("[Network] AI 犯规，玩家获得自由球")
        else:
            session.phase = GamePhase.WAITING
        self.state = AiTurnState.IDLE
        self.emit("turn_changed", {"currentPlayer": session.current_player, "ballInHand": foul})
        if self.is_shooting_at_eight_ball():
            self.request_pocket_call()

    def _finish_game(self, outcome):
        session = self.session
        session.game_over = True
        session.winner = outcome.winner
        result = self._shot_result(outcome, outcome.foul)
        result.update({
            "gameOver": True,
            "winner": outcome.winner,
            "reason": outcome.reason,
            "balls": [ball_to_dict(b) for b in self.physics.balls],
        })
        self.send_shot_result(result)
        self.state = AiTurnState.IDLE
        logger.info(f"[Network] 🎱 {outcome.reason}，Player {outcome.winner} 获胜")
        self.emit("game_over", {"winner": outcome.winner, "reason": outcome.reason})
