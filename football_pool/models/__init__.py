from football_pool import db  # noqa: F401 - imported for model imports

from .game import Game
from .pick import Pick
from .result import Result
from .survivor_pick import SurvivorPick
from .user import Player, User
from .week import Week

__all__ = [
    "User",
    "Player",
    "Game",
    "Result",
    "Pick",
    "SurvivorPick",
    "Week",
]
