"""
poolenv.py - pooltool 物理引擎适配

PoolEnv 实现 physics.PhysicsEngine 协议：
- reset(): 按 8 球规则摆球
- apply_shot(ball, angle, power, spin_x, spin_y): 击球并同步球位置
- all_balls_stopped(balls): 球是否全部静止
- simulate_with_timeout: 带超时保护的 pt.simulate

坐标转换：球台坐标 x（长边）对应 pooltool 的 y 轴，球台坐标 y（短边）对应 pooltool 的 x 轴。
"""

import copy
import math
import signal

import numpy as np
import pooltool as pt

from obs_utils import ACTION_BOUNDS, CUE_BALL_ID, Ball, Pocket, TableSpec
from utils import get_logger

logger = get_logger("poolenv")

# pooltool 中球落袋的状态码
POCKETED_STATE = 4
CENTER_POCKET_IDS = ("lc", "rc")
MAX_EVENTS = 320


# ============ 超时安全模拟机制 ============
class SimulationTimeoutError(Exception):
    """物理模拟超时异常"""
    pass


def _timeout_handler(signum, frame):
    raise SimulationTimeoutError("物理模拟超时")


def simulate_with_timeout(shot, timeout=3):
    """带超时保护的物理模拟

    参数：
        shot: pt.System 对象
        timeout: 超时时间（秒）

    返回：
        bool: True 表示模拟成功，False 表示超时或失败

    说明：
        支持 SIGALRM 的平台上使用硬超时；Windows 或非主线程中降级为 max_events 软上限。
    """
    if not (hasattr(signal, "SIGALRM") and hasattr(signal, "alarm")):
        try:
            pt.simulate(shot, inplace=True, max_events=MAX_EVENTS)
            return True
        except Exception as e:
            logger.warning(f"[PoolEnv] 物理模拟失败（无超时保护降级路径）: {e}")
            return False

    try:
        old_handler = signal.signal(signal.SIGALRM, _timeout_handler)
    except ValueError as e:
        # 非主线程无法注册信号处理器
        logger.debug(f"[PoolEnv] 无法启用SIGALRM超时保护，降级为直接模拟: {e}")
        pt.simulate(shot, inplace=True, max_events=MAX_EVENTS)
        return True

    signal.alarm(timeout)
    try:
        pt.simulate(shot, inplace=True, max_events=MAX_EVENTS)
        return True
    except SimulationTimeoutError:
        logger.warning(f"[PoolEnv] 物理模拟超时（>{timeout}s），本杆球位保持不变")
        return False
    finally:
        signal.alarm(0)
        signal.signal(signal.SIGALRM, old_handler)


def _pt_ball_id(ball_id: int) -> str:
    return "cue" if ball_id == CUE_BALL_ID else str(ball_id)


def _ball_id(pt_id: str) -> int:
    return CUE_BALL_ID if pt_id == "cue" else int(pt_id)


class PoolEnv():
    """基于 pooltool 的物理引擎（需调用 reset() 后才能使用）"""

    def __init__(self, spec=None, table=None, timeout=3):
        self.spec = spec or TableSpec()
        self.table = table or pt.Table.default()
        self.cue = pt.Cue(cue_ball_id="cue")
        self.timeout = timeout

        self.balls = []
        self.pocketed_this_shot = []
        self.pockets = self._convert_pockets()
        # 记录所有shot，用于赛后回放
        self.shot_record = pt.MultiSystem()

    # ---------- 坐标转换 ----------
    def _scale(self):
        play_w = self.spec.width - 2 * self.spec.cushion
        play_h = self.spec.height - 2 * self.spec.cushion
        return self.table.w / play_h, self.table.l / play_w

    def to_pooltool(self, x, y):
        """球台坐标 -> pooltool 坐标（米）"""
        kx, ky = self._scale()
        return (y - self.spec.cushion) * kx, (x - self.spec.cushion) * ky

    def from_pooltool(self, px, py):
        """pooltool 坐标（米）-> 球台坐标"""
        kx, ky = self._scale()
        return float(py / ky + self.spec.cushion), float(px / kx + self.spec.cushion)

    def to_phi(self, angle) -> float:
        """球台坐标系中的出杆角（弧度）-> pooltool phi（度）"""
        kx, ky = self._scale()
        dx = math.sin(angle) * kx
        dy = math.cos(angle) * ky
        return math.degrees(math.atan2(dy, dx)) % 360

    def _convert_pockets(self):
        pockets = []
        for pid, pocket in self.table.pockets.items():
            x, y = self.from_pooltool(pocket.center[0], pocket.center[1])
            pockets.append(Pocket(x, y, is_center=pid in CENTER_POCKET_IDS))
        return pockets

    # ---------- 环境接口 ----------
    def reset(self):
        """按 8 球规则摆球，返回 Ball 列表"""
        rack = pt.get_rack(pt.GameType.EIGHTBALL, self.table)
        self.balls = []
        for pt_id, pt_ball in rack.items():
            x, y = self.from_pooltool(*pt_ball.state.rvw[0][:2])
            self.balls.append(Ball(id=_ball_id(pt_id), x=x, y=y))
        self.balls.sort(key=lambda b: b.id)
        self.pocketed_this_shot = []
        self.shot_record = pt.MultiSystem()
        return self.balls

    def all_balls_stopped(self, balls) -> bool:
        return all(b.vx == 0 and b.vy == 0 for b in balls if b.on_table)

    def _build_system(self):
        pt_balls = {}
        for ball in self.balls:
            if not ball.on_table:
                continue
            pid = _pt_ball_id(ball.id)
            pt_balls[pid] = pt.Ball.create(pid, xy=self.to_pooltool(ball.x, ball.y))
        return pt.System(table=self.table, balls=pt_balls, cue=self.cue)

    def apply_shot(self, ball, angle, power, spin_x, spin_y):
        """击球

        参数：
            ball: 母球
            angle: 出杆方向（弧度，球台坐标系）
            power: 力度 [0, 1]，线性映射到 V0
            spin_x: 左右塞 [-1, 1]，映射到杆头横向偏移 a
            spin_y: 杆法 [-1, 1]，正值为低杆，映射到杆头纵向偏移 b
        """
        self.pocketed_this_shot = []
        if ball.id != CUE_BALL_ID or not ball.on_table:
            logger.warning(f"[PoolEnv] 只能击打在台面上的母球，收到 {ball.id}")
            return

        v_lo, v_hi = ACTION_BOUNDS["V0"]
        a_lo, a_hi = ACTION_BOUNDS["a"]
        b_lo, b_hi = ACTION_BOUNDS["b"]
        action = {
            "V0": v_lo + min(max(power, 0.0), 1.0) * (v_hi - v_lo),
            "phi": self.to_phi(angle),
            "theta": 0.0,
            "a": float(np.clip(spin_x * 0.5, a_lo, a_hi)),
            "b": float(np.clip(-spin_y * 0.5, b_lo, b_hi)),
        }
        logger.info(f"[PoolEnv] 执行击球: V0={action['V0']:.2f}, phi={action['phi']:.2f}, "
                    f"a={action['a']:.3f}, b={action['b']:.3f}")

        shot = self._build_system()
        shot.cue.set_state(**action)
        if not simulate_with_timeout(shot, timeout=self.timeout):
            return
        self.shot_record.append(copy.deepcopy(shot))

        by_id = {b.id: b for b in self.balls}
        for pid, pt_ball in shot.balls.items():
            target = by_id[_ball_id(pid)]
            target.vx = target.vy = 0.0
            if int(pt_ball.state.s) == POCKETED_STATE:
                target.pocketed = True
                target.active = False
                self.pocketed_this_shot.append(target)
                continue
            target.x, target.y = self.from_pooltool(*pt_ball.state.rvw[0][:2])

        if self.pocketed_this_shot:
            logger.info(f"[PoolEnv] 本杆进袋: {[b.id for b in self.pocketed_this_shot]}")
