import secrets

from betting.models import FlipRound


class OutcomeGenerator:
    """
    Source of every random decision that moves money.

    Backed by the `secrets` module (the operating system's CSPRNG), so
    outcomes cannot be reconstructed from timestamps, request order or any
    other client-observable data. No seed is stored and nothing is replayable.
    """

    SIDES = (FlipRound.Side.HEADS, FlipRound.Side.TAILS)

    @staticmethod
    def pick_winner(player_count: int) -> int:
        """Return a winner index drawn uniformly from [0, player_count)."""
        if player_count < 2:
            raise ValueError("A multiplayer round needs at least two players.")
        return secrets.randbelow(player_count)

    @staticmethod
    def flip() -> str:
        """Return heads or tails with equal probability."""
        return OutcomeGenerator.SIDES[secrets.randbelow(2)]
