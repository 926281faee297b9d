from django.urls import path

from betting.views import (
    AccountView,
    FlipView,
    GameConfigView,
    GameDetailView,
    GameListView,
    JoinGameView,
    PaymentWebhookView,
    SettlementClaimView,
    TransactionDetailView,
    TransactionListView,
    WithdrawView,
)

urlpatterns = [
    path("config/", GameConfigView.as_view(), name="game-config"),
    path("accounts/me/", AccountView.as_view(), name="account-detail"),
    path(
        "accounts/me/transactions/",
        TransactionListView.as_view(),
        name="account-transactions",
    ),
    path(
        "accounts/me/transactions/<int:id>/",
        TransactionDetailView.as_view(),
        name="transaction-detail",
    ),
    path("accounts/me/withdraw/", WithdrawView.as_view(), name="account-withdraw"),
    path("games/", GameListView.as_view(), name="game-list"),
    path("games/join/", JoinGameView.as_view(), name="game-join"),
    path("games/<int:id>/", GameDetailView.as_view(), name="game-detail"),
    path("games/<int:id>/result/", SettlementClaimView.as_view(), name="game-result"),
    path("flips/", FlipView.as_view(), name="flip"),
    path("webhooks/payments/", PaymentWebhookView.as_view(), name="payment-webhook"),
]
