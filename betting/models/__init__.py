from betting.models.account import Account
from betting.models.transaction import Transaction
from betting.models.game import Game, Participant
from betting.models.flip import FlipRound
from betting.models.withdrawal import Withdrawal

__all__ = [
    "Account",
    "Transaction",
    "Game",
    "Participant",
    "FlipRound",
    "Withdrawal",
]
