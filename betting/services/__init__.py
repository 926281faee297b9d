from betting.services.ledger import LedgerService
from betting.services.outcome import OutcomeGenerator
from betting.services.matchmaker import Admission, Matchmaker
from betting.services.settlement import SettlementResult, SettlementService
from betting.services.flip import FlipResult, FlipService
from betting.services.withdrawal import WithdrawalService
from betting.services.game import GameService, JoinResult, SettlementClaim

__all__ = [
    "LedgerService",
    "OutcomeGenerator",
    "Admission",
    "Matchmaker",
    "SettlementResult",
    "SettlementService",
    "FlipResult",
    "FlipService",
    "WithdrawalService",
    "GameService",
    "JoinResult",
    "SettlementClaim",
]
