from betting.views.account import AccountView
from betting.views.transaction import TransactionDetailView, TransactionListView
from betting.views.withdraw import WithdrawView
from betting.views.game import (
    GameDetailView,
    GameListView,
    JoinGameView,
    SettlementClaimView,
)
from betting.views.flip import FlipView
from betting.views.payment import PaymentWebhookView
from betting.views.config import GameConfigView

__all__ = [
    "AccountView",
    "TransactionListView",
    "TransactionDetailView",
    "WithdrawView",
    "GameListView",
    "GameDetailView",
    "JoinGameView",
    "SettlementClaimView",
    "FlipView",
    "PaymentWebhookView",
    "GameConfigView",
]
