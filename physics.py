"""
physics.py - 物理引擎协作接口

网络状态机只依赖 PhysicsEngine 协议，具体实现见 poolenv.PoolEnv（pooltool）。
"""

import asyncio
from typing import Protocol


class PhysicsEngine(Protocol):
    balls: list
    pockets: list
    pocketed_this_shot: list

    def all_balls_stopped(self, balls) -> bool:
        ...

    def apply_shot(self, ball, angle: float, power: float, spin_x: float, spin_y: float) -> None:
        ...


async def wait_for_balls_stopped(physics, interval=0.1, max_interval=0.5, timeout=None) -> bool:
    """等待所有球静止

    按 interval 轮询，每次未静止时间隔翻倍，最多 max_interval。

    返回：
        bool: True 表示已静止，False 表示超过 timeout 仍在运动
    """
    loop = asyncio.get_running_loop()
    deadline = None if timeout is None else loop.time() + timeout
    delay = interval
    while not physics.all_balls_stopped(physics.balls):
        if deadline is not None and loop.time() >= deadline:
            return False
        await asyncio.sleep(delay)
        delay = min(delay * 2, max_interval)
    return True
