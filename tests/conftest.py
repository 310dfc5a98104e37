"""Shared fixtures: board builders, a scripted physics double and a recording transport."""

import os
import random
import sys

# 测试时只输出到终端，不写 logs/
os.environ.setdefault("POOL_AI_LOG_DIR", "")

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest

from agent import AIPlayer
from difficulty import Difficulty
from evaluator import ShotContext
from obs_utils import DEFAULT_POCKETS, Ball, TableSpec, find_ball


def make_ball(ball_id, x, y, **kwargs):
    return Ball(id=ball_id, x=float(x), y=float(y), **kwargs)


def make_ctx(balls, targets=None, difficulty=Difficulty.EXPERT, pockets=DEFAULT_POCKETS,
             eight_ball_time=False, profile=None):
    if targets is None:
        targets = [b for b in balls if b.on_table and not b.is_cue]
    return ShotContext(
        table=TableSpec(),
        profile=profile or Difficulty.parse(difficulty).profile,
        all_balls=tuple(balls),
        target_balls=tuple(targets),
        pockets=tuple(pockets),
        eight_ball_time=eight_ball_time,
    )


class FixedRng:
    """random.Random 的替身：random() 固定返回 value，uniform 取区间中点"""

    def __init__(self, value=0.0):
        self.value = value

    def random(self):
        return self.value

    def uniform(self, a, b):
        return (a + b) / 2

    def randrange(self, n):
        return n - 1


class ScriptedPhysics:
    """按脚本决定每一杆进袋结果的物理引擎替身"""

    def __init__(self, balls, pockets=None, outcomes=None, moving_polls=0):
        self.balls = balls
        self.pockets = list(pockets or DEFAULT_POCKETS)
        self.pocketed_this_shot = []
        self.outcomes = list(outcomes or [])
        self.moving_polls = moving_polls
        self.shots = []
        self.stop_checks = 0
        self._moving = 0

    def all_balls_stopped(self, balls):
        self.stop_checks += 1
        if self._moving > 0:
            self._moving -= 1
            return False
        return True

    def apply_shot(self, ball, angle, power, spin_x, spin_y):
        self.shots.append({
            "cue": (ball.x, ball.y),
            "angle": angle,
            "power": power,
            "spin": (spin_x, spin_y),
        })
        self.pocketed_this_shot = []
        for ball_id in (self.outcomes.pop(0) if self.outcomes else []):
            target = find_ball(self.balls, ball_id)
            target.active = False
            target.pocketed = True
            self.pocketed_this_shot.append(target)
        self._moving = self.moving_polls


class RecordingTransport:
    def __init__(self):
        self.sent = []

    def emit(self, event, payload):
        self.sent.append((event, payload))

    def events(self, name):
        return [payload for event, payload in self.sent if event == name]


def rack_balls():
    """一个简单的开局后球型：母球 + 1..15"""
    balls = [make_ball(0, 250, 250)]
    for i in range(1, 16):
        row, col = divmod(i - 1, 5)
        balls.append(make_ball(i, 600 + col * 60, 120 + row * 120))
    return balls


@pytest.fixture()
def rng():
    return random.Random(1234)


@pytest.fixture()
def instant_thinking(monkeypatch):
    monkeypatch.setattr(AIPlayer, "thinking_time", lambda self: 0.0)
