from betting.serializers.account import AccountSerializer
from betting.serializers.transaction import TransactionSerializer
from betting.serializers.game import (
    GameDetailSerializer,
    GameSerializer,
    JoinGameSerializer,
    ParticipantSerializer,
    SettlementClaimSerializer,
)
from betting.serializers.flip import FlipRequestSerializer, FlipRoundSerializer
from betting.serializers.withdraw import WithdrawSerializer, WithdrawalSerializer
from betting.serializers.payment import PaymentConfirmationSerializer

__all__ = [
    "AccountSerializer",
    "TransactionSerializer",
    "GameSerializer",
    "GameDetailSerializer",
    "JoinGameSerializer",
    "ParticipantSerializer",
    "SettlementClaimSerializer",
    "FlipRequestSerializer",
    "FlipRoundSerializer",
    "WithdrawSerializer",
    "WithdrawalSerializer",
    "PaymentConfirmationSerializer",
]
