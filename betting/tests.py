import json
import uuid
from datetime import timedelta
from decimal import Decimal
from io import StringIO
from unittest.mock import MagicMock, patch

import requests
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from django.core.management import call_command
from django.db import IntegrityError, OperationalError
from django.test import TestCase, TransactionTestCase, override_settings
from django.utils import timezone
from rest_framework.test import APIClient

from betting.conf import get_game_config
from betting.exceptions import (
    AlreadyJoined,
    AlreadySettled,
    DuplicateReference,
    GameFull,
    GameNotReady,
    GameNotSettled,
    InsufficientFunds,
    StorageUnavailable,
)
from betting.models import Account, FlipRound, Game, Participant, Transaction, Withdrawal
from betting.services import (
    FlipService,
    GameService,
    LedgerService,
    Matchmaker,
    OutcomeGenerator,
    SettlementService,
    WithdrawalService,
)
from betting.utils import PayoutResult, request_bank_payout, sign_payload

LOBBY_SETTINGS = {"GAME_STAKE_TIERS": [100, 250, 500], "GAME_CAPACITY": 2}


def fund(user_id, amount, unit=Account.Unit.CURRENCY):
    return LedgerService.adjust_balance(
        user_id, amount, Transaction.Kind.DEPOSIT, unit=unit
    )


def balance(user_id, unit=Account.Unit.CURRENCY):
    return LedgerService.get_balance(user_id, unit)


def assert_ledger_consistent(test, user_id, unit=Account.Unit.CURRENCY):
    account = Account.objects.get(user_id=user_id, unit=unit)
    test.assertEqual(Transaction.completed_total(account), account.balance)


# ============================================================
# Model Tests
# ============================================================


class AccountModelTest(TestCase):
    def test_account_starts_at_zero(self):
        account = Account.objects.create(user_id="alice")
        self.assertEqual(account.balance, 0)
        self.assertEqual(account.unit, Account.Unit.CURRENCY)

    def test_one_account_per_user_and_unit(self):
        Account.objects.create(user_id="alice", unit=Account.Unit.CURRENCY)
        Account.objects.create(user_id="alice", unit=Account.Unit.COIN)
        with self.assertRaises(IntegrityError):
            Account.objects.create(user_id="alice", unit=Account.Unit.COIN)

    def test_account_str(self):
        account = Account.objects.create(user_id="alice")
        self.assertIn("alice", str(account))


class TransactionModelTest(TestCase):
    def test_completed_total_ignores_failed_entries(self):
        account = Account.objects.create(user_id="alice")
        Transaction.objects.create(
            account=account,
            kind=Transaction.Kind.DEPOSIT,
            amount=500,
            balance_before=0,
            balance_after=500,
        )
        Transaction.objects.create(
            account=account,
            kind=Transaction.Kind.DEPOSIT,
            amount=999,
            balance_before=500,
            balance_after=1499,
            status=Transaction.Status.FAILED,
        )
        self.assertEqual(Transaction.completed_total(account), 500)

    def test_completed_total_empty(self):
        account = Account.objects.create(user_id="alice")
        self.assertEqual(Transaction.completed_total(account), 0)

    def test_transaction_str(self):
        tx = fund("alice", 700)
        self.assertIn("DEPOSIT", str(tx))
        self.assertIn("700", str(tx))


class GameModelTest(TestCase):
    def make_game(self, stake=100, capacity=3, **kwargs):
        return Game.objects.create(
            stake=stake,
            capacity=capacity,
            win_multiplier=Decimal("1.5"),
            loss_refund_multiplier=Decimal("0.8"),
            **kwargs,
        )

    def test_waiting_is_oldest_first(self):
        first = self.make_game()
        second = self.make_game()
        self.make_game(status=Game.Status.COMPLETED)
        self.assertEqual(list(Game.waiting()), [first, second])

    def test_waiting_filters_by_stake(self):
        self.make_game(stake=100)
        high = self.make_game(stake=500)
        self.assertEqual(list(Game.waiting(500)), [high])

    def test_get_full_unsettled(self):
        full = self.make_game(capacity=2, current_players=2)
        self.make_game(capacity=2, current_players=1)
        self.make_game(capacity=2, current_players=2, status=Game.Status.COMPLETED)
        self.assertEqual(list(Game.get_full_unsettled()), [full])

    def test_get_expired(self):
        old = self.make_game(current_players=1)
        self.make_game(current_players=1)
        old_full = self.make_game(capacity=2, current_players=2)
        Game.objects.filter(pk__in=[old.pk, old_full.pk]).update(
            created_at=timezone.now() - timedelta(hours=2)
        )
        self.assertEqual(list(Game.get_expired(30)), [old])

    def test_participant_payout_rounds_down(self):
        game = self.make_game(stake=25)
        account = Account.objects.create(user_id="alice")
        participant = Participant.objects.create(
            game=game, account=account, amount_paid=25
        )
        self.assertEqual(participant.payout(is_winner=True), 37)
        self.assertEqual(participant.payout(is_winner=False), 20)

    def test_participant_unique_per_game(self):
        game = self.make_game()
        account = Account.objects.create(user_id="alice")
        Participant.objects.create(game=game, account=account, amount_paid=100)
        with self.assertRaises(IntegrityError):
            Participant.objects.create(game=game, account=account, amount_paid=100)


# ============================================================
# Configuration Tests
# ============================================================


class GameConfigTest(TestCase):
    def test_defaults(self):
        config = get_game_config()
        self.assertEqual(config.capacity, settings.GAME_CAPACITY)
        self.assertEqual(config.win_multiplier, Decimal("1.5"))
        self.assertEqual(config.loss_refund_multiplier, Decimal("0.8"))
        self.assertEqual(config.single_flip_multiplier, Decimal("2.0"))

    @override_settings(GAME_CAPACITY=1)
    def test_capacity_below_two_rejected(self):
        with self.assertRaises(ImproperlyConfigured):
            get_game_config()

    @override_settings(GAME_STAKE_TIERS=[])
    def test_empty_tiers_rejected(self):
        with self.assertRaises(ImproperlyConfigured):
            get_game_config()

    @override_settings(SINGLE_FLIP_MIN_BET=50, SINGLE_FLIP_MAX_BET=10)
    def test_min_bet_above_max_rejected(self):
        with self.assertRaises(ImproperlyConfigured):
            get_game_config()


# ============================================================
# Ledger Tests
# ============================================================


class LedgerServiceTest(TransactionTestCase):
    def test_credit_creates_account_and_entry(self):
        tx = fund("alice", 1000)

        self.assertEqual(balance("alice"), 1000)
        self.assertEqual(tx.status, Transaction.Status.COMPLETED)
        self.assertEqual(tx.kind, Transaction.Kind.DEPOSIT)
        self.assertEqual(tx.balance_before, 0)
        self.assertEqual(tx.balance_after, 1000)

    def test_debit(self):
        fund("alice", 1000)
        tx = LedgerService.adjust_balance(
            "alice", -300, Transaction.Kind.GAME_ENTRY, reference_id="42"
        )

        self.assertEqual(balance("alice"), 700)
        self.assertEqual(tx.amount, -300)
        self.assertEqual(tx.balance_before, 1000)
        self.assertEqual(tx.balance_after, 700)
        self.assertEqual(tx.reference_id, "42")

    def test_overdraft_rejected_without_side_effects(self):
        fund("alice", 100)

        with self.assertRaises(InsufficientFunds) as ctx:
            LedgerService.adjust_balance("alice", -101, Transaction.Kind.WITHDRAWAL)

        self.assertEqual(ctx.exception.balance, 100)
        self.assertEqual(ctx.exception.requested, 101)
        self.assertEqual(balance("alice"), 100)
        self.assertEqual(Transaction.objects.count(), 1)

    def test_debit_to_exactly_zero(self):
        fund("alice", 100)
        LedgerService.adjust_balance("alice", -100, Transaction.Kind.WITHDRAWAL)
        self.assertEqual(balance("alice"), 0)

    def test_zero_delta_rejected(self):
        with self.assertRaises(ValueError):
            LedgerService.adjust_balance("alice", 0, Transaction.Kind.DEPOSIT)

    def test_get_balance_unknown_user_does_not_create(self):
        self.assertEqual(balance("ghost"), 0)
        self.assertFalse(Account.objects.filter(user_id="ghost").exists())

    def test_units_are_separate_accounts(self):
        fund("alice", 1000)
        fund("alice", 30, unit=Account.Unit.COIN)

        self.assertEqual(balance("alice"), 1000)
        self.assertEqual(balance("alice", Account.Unit.COIN), 30)
        with self.assertRaises(InsufficientFunds):
            LedgerService.adjust_balance(
                "alice", -31, Transaction.Kind.GAME_ENTRY, unit=Account.Unit.COIN
            )

    def test_entries_chain_and_sum_to_balance(self):
        fund("alice", 1000)
        LedgerService.adjust_balance("alice", -250, Transaction.Kind.GAME_ENTRY)
        with self.assertRaises(InsufficientFunds):
            LedgerService.adjust_balance("alice", -5000, Transaction.Kind.GAME_ENTRY)
        LedgerService.adjust_balance("alice", 375, Transaction.Kind.GAME_WIN)

        entries = list(
            Transaction.objects.filter(account__user_id="alice").order_by("id")
        )
        for previous, current in zip(entries, entries[1:]):
            self.assertEqual(current.balance_before, previous.balance_after)
        for entry in entries:
            self.assertEqual(entry.balance_after, entry.balance_before + entry.amount)
        self.assertEqual(entries[-1].balance_after, 1125)
        assert_ledger_consistent(self, "alice")


class ExternalDepositTest(TransactionTestCase):
    def test_deposit_success(self):
        tx = LedgerService.record_external_deposit("alice", 1000, "pay_001")

        self.assertEqual(balance("alice"), 1000)
        self.assertEqual(tx.external_reference, "pay_001")
        self.assertEqual(tx.reference_id, "pay_001")

    def test_replayed_confirmation_credits_once(self):
        first = LedgerService.record_external_deposit("alice", 1000, "pay_001")

        with self.assertRaises(DuplicateReference) as ctx:
            LedgerService.record_external_deposit("alice", 1000, "pay_001")

        self.assertEqual(ctx.exception.transaction.id, first.id)
        self.assertEqual(balance("alice"), 1000)
        self.assertEqual(Transaction.objects.count(), 1)

    def test_concurrent_duplicate_caught_by_unique_reference(self):
        LedgerService.record_external_deposit("alice", 1000, "pay_001")

        # Simulate a second delivery that passed the pre-check before the
        # first one committed.
        stale_lookup = MagicMock()
        stale_lookup.first.return_value = None
        with patch.object(Transaction.objects, "filter", return_value=stale_lookup):
            with self.assertRaises(DuplicateReference):
                LedgerService.record_external_deposit("alice", 1000, "pay_001")

        self.assertEqual(balance("alice"), 1000)
        self.assertEqual(Transaction.objects.count(), 1)

    def test_non_positive_amount_rejected(self):
        with self.assertRaises(ValueError):
            LedgerService.record_external_deposit("alice", 0, "pay_001")

    def test_missing_reference_rejected(self):
        with self.assertRaises(ValueError):
            LedgerService.record_external_deposit("alice", 100, "")

    def test_long_provider_reference_fits_both_columns(self):
        reference = "pay_" + "x" * 96

        tx = LedgerService.record_external_deposit("alice", 1000, reference)

        tx.refresh_from_db()
        self.assertEqual(tx.reference_id, reference)
        self.assertEqual(tx.external_reference, reference)
        for name in ("reference_id", "external_reference"):
            self.assertGreaterEqual(
                Transaction._meta.get_field(name).max_length, len(reference)
            )


# ============================================================
# Outcome Generator Tests
# ============================================================


class OutcomeGeneratorTest(TestCase):
    def test_pick_winner_in_range(self):
        for _ in range(200):
            self.assertIn(OutcomeGenerator.pick_winner(10), range(10))

    def test_pick_winner_uses_secrets(self):
        with patch("betting.services.outcome.secrets.randbelow", return_value=3) as rb:
            self.assertEqual(OutcomeGenerator.pick_winner(10), 3)
        rb.assert_called_once_with(10)

    def test_pick_winner_needs_two_players(self):
        with self.assertRaises(ValueError):
            OutcomeGenerator.pick_winner(1)

    def test_flip_sides(self):
        with patch("betting.services.outcome.secrets.randbelow", return_value=0):
            self.assertEqual(OutcomeGenerator.flip(), "heads")
        with patch("betting.services.outcome.secrets.randbelow", return_value=1):
            self.assertEqual(OutcomeGenerator.flip(), "tails")

    def test_flip_produces_both_sides(self):
        seen = {OutcomeGenerator.flip() for _ in range(200)}
        self.assertEqual(seen, {"heads", "tails"})


# ============================================================
# Matchmaker Tests
# ============================================================


@override_settings(**LOBBY_SETTINGS)
class MatchmakerTest(TransactionTestCase):
    def test_first_join_creates_game_and_debits(self):
        fund("alice", 1000)

        admission = Matchmaker.join_or_create("alice", 250)

        self.assertEqual(balance("alice"), 750)
        self.assertFalse(admission.filled)
        game = admission.game
        self.assertEqual(game.status, Game.Status.WAITING)
        self.assertEqual(game.current_players, 1)
        self.assertEqual(game.capacity, 2)
        self.assertEqual(game.participants.count(), 1)
        self.assertEqual(admission.participant.amount_paid, 250)
        self.assertEqual(admission.entry.kind, Transaction.Kind.GAME_ENTRY)
        self.assertEqual(admission.entry.amount, -250)
        self.assertEqual(admission.entry.reference_id, str(game.id))

    def test_insufficient_funds_leaves_no_trace(self):
        fund("alice", 50)

        with self.assertRaises(InsufficientFunds):
            Matchmaker.join_or_create("alice", 100)

        self.assertEqual(balance("alice"), 50)
        self.assertFalse(Participant.objects.exists())
        self.assertFalse(Game.objects.exists())
        assert_ledger_consistent(self, "alice")

    def test_unknown_stake_rejected(self):
        fund("alice", 1000)
        with self.assertRaises(ValueError):
            Matchmaker.join_or_create("alice", 333)

    def test_second_player_fills_same_game(self):
        fund("alice", 1000)
        fund("bob", 1000)

        first = Matchmaker.join_or_create("alice", 250)
        second = Matchmaker.join_or_create("bob", 250)

        self.assertEqual(first.game.id, second.game.id)
        self.assertTrue(second.filled)
        self.assertEqual(second.game.current_players, 2)

    def test_same_user_cannot_join_twice(self):
        fund("alice", 1000)
        Matchmaker.join_or_create("alice", 250)

        with self.assertRaises(AlreadyJoined):
            Matchmaker.join_or_create("alice", 250)

        self.assertEqual(balance("alice"), 750)
        self.assertEqual(Participant.objects.count(), 1)
        self.assertEqual(Game.objects.get().current_players, 1)

    def test_concurrent_double_join_caught_by_unique_seat(self):
        fund("alice", 1000)
        game = Matchmaker.join_or_create("alice", 250).game

        # A second request from the same user passed the seat check before
        # the first one committed its Participant row.
        stale_check = MagicMock()
        stale_check.exists.return_value = False
        with patch.object(Participant.objects, "filter", return_value=stale_check):
            with self.assertRaises(AlreadyJoined):
                Matchmaker.admit(game, "alice")

        game.refresh_from_db()
        self.assertEqual(game.current_players, 1)
        self.assertEqual(balance("alice"), 750)
        self.assertEqual(Participant.objects.count(), 1)
        self.assertEqual(
            Transaction.objects.filter(
                account__user_id="alice", kind=Transaction.Kind.GAME_ENTRY
            ).count(),
            1,
        )
        assert_ledger_consistent(self, "alice")

    def test_capacity_change_keeps_filling_existing_game(self):
        fund("alice", 1000)
        fund("bob", 1000)
        fund("carol", 1000)
        existing = Matchmaker.join_or_create("alice", 100).game

        with override_settings(GAME_CAPACITY=3):
            second = GameService.join_game("bob", 100)
            third = GameService.join_game("carol", 100)

        self.assertEqual(second.game.id, existing.id)
        self.assertTrue(second.settled)
        self.assertEqual(second.game.capacity, 2)
        self.assertEqual(second.game.status, Game.Status.COMPLETED)
        self.assertNotEqual(third.game.id, existing.id)
        self.assertEqual(third.game.capacity, 3)

    def test_oldest_open_game_is_selected(self):
        fund("alice", 1000)
        older = Game.objects.create(
            stake=100,
            capacity=2,
            win_multiplier=Decimal("1.5"),
            loss_refund_multiplier=Decimal("0.8"),
        )
        Game.objects.create(
            stake=100,
            capacity=2,
            win_multiplier=Decimal("1.5"),
            loss_refund_multiplier=Decimal("0.8"),
        )

        admission = Matchmaker.join_or_create("alice", 100)

        self.assertEqual(admission.game.id, older.id)

    def test_stakes_do_not_mix(self):
        fund("alice", 1000)
        fund("bob", 1000)

        low = Matchmaker.join_or_create("alice", 100)
        high = Matchmaker.join_or_create("bob", 500)

        self.assertNotEqual(low.game.id, high.game.id)
        self.assertFalse(high.filled)

    def test_full_game_is_skipped(self):
        for user in ("alice", "bob", "carol"):
            fund(user, 1000)
        Matchmaker.join_or_create("alice", 100)
        full = Matchmaker.join_or_create("bob", 100)

        third = Matchmaker.join_or_create("carol", 100)

        self.assertNotEqual(third.game.id, full.game.id)
        self.assertEqual(third.game.current_players, 1)

    @override_settings(GAME_CAPACITY=10)
    def test_race_for_last_seat(self):
        players = [f"player{i}" for i in range(10)]
        for user in players + ["late"]:
            fund(user, 1000)
        for user in players[:9]:
            admission = Matchmaker.join_or_create(user, 100)
        game = admission.game
        self.assertEqual(game.current_players, 9)

        # Both requests selected the game at 9/10; the first one commits.
        stale_view = Game.objects.get(pk=game.pk)
        winner = Matchmaker.admit(game, players[9])
        self.assertTrue(winner.filled)

        with self.assertRaises(GameFull):
            Matchmaker.admit(stale_view, "late")

        game.refresh_from_db()
        self.assertEqual(game.current_players, 10)
        self.assertEqual(game.participants.count(), 10)
        self.assertEqual(balance("late"), 1000)
        assert_ledger_consistent(self, "late")

    @override_settings(GAME_CAPACITY=10)
    def test_race_loser_is_redirected_to_new_game(self):
        for i in range(10):
            fund(f"player{i}", 1000)
            admission = Matchmaker.join_or_create(f"player{i}", 100)
        full_game = admission.game
        fund("late", 1000)

        with patch.object(
            Matchmaker, "_select_game", side_effect=[full_game, None]
        ) as select:
            result = Matchmaker.join_or_create("late", 100)

        self.assertEqual(select.call_count, 2)
        self.assertNotEqual(result.game.id, full_game.id)
        self.assertEqual(result.game.current_players, 1)
        self.assertEqual(balance("late"), 900)
        self.assertEqual(
            Transaction.objects.filter(
                account__user_id="late", kind=Transaction.Kind.GAME_ENTRY
            ).count(),
            1,
        )

    @override_settings(MATCHMAKER_MAX_ATTEMPTS=2)
    def test_gives_up_after_max_attempts(self):
        fund("alice", 1000)
        fund("bob", 1000)
        Matchmaker.join_or_create("alice", 100)
        full_game = Matchmaker.join_or_create("bob", 100).game
        fund("carol", 1000)

        with patch.object(Matchmaker, "_select_game", return_value=full_game):
            with self.assertRaises(GameFull):
                Matchmaker.join_or_create("carol", 100)

        self.assertEqual(balance("carol"), 1000)

    @override_settings(GAME_CAPACITY=3)
    def test_capacity_never_exceeded(self):
        users = [f"user{i}" for i in range(8)]
        for user in users:
            fund(user, 1000)
            Matchmaker.join_or_create(user, 100)

        for game in Game.objects.all():
            self.assertLessEqual(game.current_players, game.capacity)
            self.assertEqual(game.current_players, game.participants.count())
        self.assertEqual(Participant.objects.count(), 8)

    def test_multipliers_snapshotted_on_game(self):
        fund("alice", 1000)
        with override_settings(GAME_WIN_MULTIPLIER=Decimal("1.7")):
            game = Matchmaker.join_or_create("alice", 100).game
        game.refresh_from_db()
        self.assertEqual(game.win_multiplier, Decimal("1.7"))
        self.assertEqual(game.loss_refund_multiplier, Decimal("0.8"))


# ============================================================
# Settlement Tests
# ============================================================


@override_settings(**LOBBY_SETTINGS)
class SettlementServiceTest(TransactionTestCase):
    def setUp(self):
        fund("alice", 1000)
        fund("bob", 1000)
        Matchmaker.join_or_create("alice", 250)
        self.game = Matchmaker.join_or_create("bob", 250).game

    @patch("betting.services.settlement.OutcomeGenerator.pick_winner", return_value=0)
    def test_settle_pays_winner_and_refunds_loser(self, pick_winner):
        result = SettlementService.settle(self.game.id)

        pick_winner.assert_called_once_with(2)
        self.assertEqual(result.winner.user_id, "alice")
        self.assertEqual(result.payouts, {"alice": 375, "bob": 200})
        self.assertEqual(balance("alice"), 1125)
        self.assertEqual(balance("bob"), 950)

        self.game.refresh_from_db()
        self.assertEqual(self.game.status, Game.Status.COMPLETED)
        self.assertEqual(self.game.winner.user_id, "alice")
        self.assertIsNotNone(self.game.completed_at)

        alice = self.game.participants.get(account__user_id="alice")
        bob = self.game.participants.get(account__user_id="bob")
        self.assertTrue(alice.is_winner)
        self.assertEqual(alice.amount_won, 375)
        self.assertFalse(bob.is_winner)
        self.assertEqual(bob.amount_won, 200)

        win = Transaction.objects.get(kind=Transaction.Kind.GAME_WIN)
        loss = Transaction.objects.get(kind=Transaction.Kind.GAME_LOSS)
        self.assertEqual((win.account.user_id, win.amount), ("alice", 375))
        self.assertEqual((loss.account.user_id, loss.amount), ("bob", 200))
        self.assertEqual(win.reference_id, str(self.game.id))
        assert_ledger_consistent(self, "alice")
        assert_ledger_consistent(self, "bob")

    def test_second_settle_is_rejected(self):
        SettlementService.settle(self.game.id)
        balances = (balance("alice"), balance("bob"))

        with self.assertRaises(AlreadySettled):
            SettlementService.settle(self.game.id)

        self.assertEqual((balance("alice"), balance("bob")), balances)
        self.assertEqual(
            Transaction.objects.filter(reference_id=str(self.game.id)).count(), 4
        )

    def test_lost_compare_and_swap_rolls_back_payouts(self):
        def concurrent_settler(player_count):
            # Another settlement commits while this one is computing payouts.
            Game.objects.filter(pk=self.game.pk).update(status=Game.Status.COMPLETED)
            return 0

        with patch(
            "betting.services.settlement.OutcomeGenerator.pick_winner",
            side_effect=concurrent_settler,
        ):
            with self.assertRaises(AlreadySettled):
                SettlementService.settle(self.game.id)

        self.assertEqual(balance("alice"), 750)
        self.assertEqual(balance("bob"), 750)
        self.assertFalse(
            Transaction.objects.filter(
                kind__in=[Transaction.Kind.GAME_WIN, Transaction.Kind.GAME_LOSS]
            ).exists()
        )

    def test_failed_payout_leaves_game_waiting_and_retryable(self):
        original = LedgerService.adjust_balance
        calls = {"count": 0}

        def flaky(*args, **kwargs):
            calls["count"] += 1
            if calls["count"] == 2:
                raise OperationalError("connection lost")
            return original(*args, **kwargs)

        with patch.object(LedgerService, "adjust_balance", side_effect=flaky):
            with self.assertRaises(OperationalError):
                SettlementService.settle(self.game.id)

        self.game.refresh_from_db()
        self.assertEqual(self.game.status, Game.Status.WAITING)
        self.assertIsNone(self.game.winner)
        self.assertEqual(balance("alice"), 750)
        self.assertEqual(balance("bob"), 750)
        self.assertFalse(Participant.objects.filter(amount_won__gt=0).exists())

        SettlementService.settle(self.game.id)
        self.game.refresh_from_db()
        self.assertEqual(self.game.status, Game.Status.COMPLETED)
        self.assertEqual(balance("alice") + balance("bob"), 750 * 2 + 375 + 200)

    def test_settle_open_game_rejected(self):
        fund("carol", 1000)
        open_game = Matchmaker.join_or_create("carol", 100).game

        with self.assertRaises(GameNotReady):
            SettlementService.settle(open_game.id)

    def test_settle_unknown_game(self):
        with self.assertRaises(Game.DoesNotExist):
            SettlementService.settle(999999)

    def test_cancel_refunds_stakes(self):
        fund("carol", 1000)
        open_game = Matchmaker.join_or_create("carol", 100).game

        cancelled = SettlementService.cancel(open_game.id)

        self.assertEqual(cancelled.status, Game.Status.CANCELLED)
        self.assertIsNone(cancelled.winner)
        self.assertEqual(balance("carol"), 1000)
        refund = Transaction.objects.get(kind=Transaction.Kind.REFUND)
        self.assertEqual(refund.amount, 100)
        with self.assertRaises(AlreadySettled):
            SettlementService.settle(open_game.id)

    def test_cancel_completed_game_rejected(self):
        SettlementService.settle(self.game.id)
        with self.assertRaises(AlreadySettled):
            SettlementService.cancel(self.game.id)

    @patch("betting.services.settlement.OutcomeGenerator.pick_winner", return_value=0)
    def test_payouts_credited_in_account_order(self, pick_winner):
        # dave's account is older, but carol takes the first seat.
        fund("dave", 1000)
        fund("carol", 1000)
        Matchmaker.join_or_create("carol", 100)
        game = Matchmaker.join_or_create("dave", 100).game

        original = LedgerService.adjust_balance
        with patch.object(
            LedgerService, "adjust_balance", side_effect=original
        ) as adjust:
            result = SettlementService.settle(game.id)

        credited = [c.args[0] for c in adjust.call_args_list]
        self.assertEqual(credited, ["dave", "carol"])
        self.assertEqual(result.winner.user_id, "carol")
        self.assertEqual(result.payouts, {"carol": 150, "dave": 80})


@override_settings(GAME_STAKE_TIERS=[100], GAME_CAPACITY=10)
class PayoutConservationTest(TransactionTestCase):
    def test_house_keeps_thirteen_percent(self):
        for i in range(10):
            fund(f"player{i}", 100)
            admission = Matchmaker.join_or_create(f"player{i}", 100)
        game = admission.game

        result = SettlementService.settle(game.id)

        game.refresh_from_db()
        self.assertEqual(sum(result.payouts.values()), 870)
        self.assertEqual(game.total_collected, 1000)
        self.assertEqual(game.total_paid_out, 870)
        self.assertEqual(game.house_margin, 130)
        self.assertEqual(game.participants.filter(is_winner=True).count(), 1)
        self.assertEqual(
            sorted(p.amount_won for p in game.participants.all()),
            [80] * 9 + [150],
        )


# ============================================================
# Game Facade Tests
# ============================================================


@override_settings(**LOBBY_SETTINGS)
class GameServiceTest(TransactionTestCase):
    def setUp(self):
        fund("alice", 1000)
        fund("bob", 1000)

    @patch("betting.services.settlement.OutcomeGenerator.pick_winner", return_value=1)
    def test_filling_join_settles_automatically(self, pick_winner):
        first = GameService.join_game("alice", 250)
        self.assertFalse(first.settled)
        self.assertEqual(first.balance, 750)
        self.assertEqual(first.game.status, Game.Status.WAITING)

        second = GameService.join_game("bob", 250)

        self.assertTrue(second.settled)
        self.assertEqual(second.game.status, Game.Status.COMPLETED)
        self.assertEqual(second.game.winner.user_id, "bob")
        self.assertEqual(second.balance, 1125)
        self.assertEqual(balance("alice"), 950)

    def test_claim_is_read_only_and_repeatable(self):
        GameService.join_game("alice", 250)
        game = GameService.join_game("bob", 250).game
        balances = (balance("alice"), balance("bob"))
        entries = Transaction.objects.count()

        first = GameService.claim_settlement_result(game.id, "alice")
        again = GameService.claim_settlement_result(game.id, "alice")

        self.assertEqual(first.participant.amount_won, again.participant.amount_won)
        self.assertIn(first.participant.amount_won, (375, 200))
        self.assertEqual((balance("alice"), balance("bob")), balances)
        self.assertEqual(Transaction.objects.count(), entries)

    def test_claim_before_settlement(self):
        game = GameService.join_game("alice", 250).game
        with self.assertRaises(GameNotSettled):
            GameService.claim_settlement_result(game.id, "alice")

    def test_claim_by_non_participant(self):
        game = GameService.join_game("alice", 250).game
        with self.assertRaises(Participant.DoesNotExist):
            GameService.claim_settlement_result(game.id, "bob")

    def test_failed_settlement_is_left_for_sweep(self):
        GameService.join_game("alice", 250)
        with patch.object(
            SettlementService, "settle", side_effect=OperationalError("timeout")
        ):
            result = GameService.join_game("bob", 250)

        self.assertFalse(result.settled)
        self.assertEqual(result.game.status, Game.Status.WAITING)
        self.assertEqual(result.game.current_players, 2)

        from betting.tasks import settle_full_games

        summary = settle_full_games.apply().get()
        self.assertEqual(summary, {"found": 1, "settled": 1})
        result.game.refresh_from_db()
        self.assertEqual(result.game.status, Game.Status.COMPLETED)

    def test_settle_race_loser_is_silent(self):
        GameService.join_game("alice", 250)
        with patch.object(SettlementService, "settle", side_effect=AlreadySettled()):
            result = GameService.join_game("bob", 250)
        self.assertFalse(result.settled)

    def test_storage_outage_reported_as_retryable(self):
        with patch.object(
            Matchmaker, "join_or_create", side_effect=OperationalError("down")
        ):
            with self.assertRaises(StorageUnavailable):
                GameService.join_game("alice", 250)


# ============================================================
# Single Flip Tests
# ============================================================


class FlipServiceTest(TransactionTestCase):
    def setUp(self):
        fund("alice", 100, unit=Account.Unit.COIN)

    @patch("betting.services.flip.OutcomeGenerator.flip", return_value="heads")
    def test_win_pays_double(self, flip):
        result = FlipService.play("alice", "heads", 10)

        self.assertTrue(result.round.is_winner)
        self.assertEqual(result.round.payout, 20)
        self.assertEqual(result.balance, 110)
        self.assertEqual(balance("alice", Account.Unit.COIN), 110)

        reference = f"flip-{result.round.id}"
        entries = list(
            Transaction.objects.filter(reference_id=reference).order_by("id")
        )
        self.assertEqual([e.amount for e in entries], [-10, 20])
        self.assertEqual([e.balance_after for e in entries], [90, 110])
        assert_ledger_consistent(self, "alice", Account.Unit.COIN)

    @patch("betting.services.flip.OutcomeGenerator.flip", return_value="tails")
    def test_loss_keeps_bet(self, flip):
        result = FlipService.play("alice", "heads", 10)

        self.assertFalse(result.round.is_winner)
        self.assertEqual(result.round.payout, 0)
        self.assertEqual(result.balance, 90)
        self.assertEqual(
            Transaction.objects.filter(reference_id=f"flip-{result.round.id}").count(),
            1,
        )

    @patch("betting.services.flip.OutcomeGenerator.flip", return_value="heads")
    def test_lower_multiplier_rounds_down(self, flip):
        result = FlipService.play("alice", "HEADS", 11, multiplier=Decimal("1.5"))
        self.assertEqual(result.round.payout, 16)
        self.assertEqual(result.round.choice, "heads")

    def test_currency_balance_not_used(self):
        fund("bob", 1000)
        with self.assertRaises(InsufficientFunds):
            FlipService.play("bob", "heads", 10)
        self.assertFalse(FlipRound.objects.exists())
        self.assertEqual(balance("bob"), 1000)

    def test_insufficient_coins_leaves_no_round(self):
        with self.assertRaises(InsufficientFunds):
            FlipService.play("alice", "tails", 101)
        self.assertFalse(FlipRound.objects.exists())
        self.assertEqual(balance("alice", Account.Unit.COIN), 100)

    def test_invalid_choice(self):
        with self.assertRaises(ValueError):
            FlipService.play("alice", "edge", 10)

    @override_settings(SINGLE_FLIP_MAX_BET=50)
    def test_bet_above_limit(self):
        with self.assertRaises(ValueError):
            FlipService.play("alice", "heads", 51)

    def test_multiplier_above_configured_rejected(self):
        with self.assertRaises(ValueError):
            FlipService.play("alice", "heads", 10, multiplier=Decimal("3.0"))


# ============================================================
# Withdrawal Tests
# ============================================================


class WithdrawalServiceTest(TransactionTestCase):
    def setUp(self):
        fund("alice", 10000)

    def test_schedule_does_not_debit(self):
        withdrawal = WithdrawalService.schedule("alice", 3000)

        self.assertEqual(withdrawal.status, Withdrawal.Status.PENDING)
        self.assertEqual(balance("alice"), 10000)

    def test_schedule_below_minimum(self):
        with self.assertRaises(ValueError):
            WithdrawalService.schedule("alice", 99)

    def test_schedule_more_than_balance(self):
        with self.assertRaises(InsufficientFunds):
            WithdrawalService.schedule("alice", 10001)

    def test_schedule_in_past_rejected(self):
        with self.assertRaises(ValueError):
            WithdrawalService.schedule(
                "alice", 500, scheduled_for=timezone.now() - timedelta(minutes=5)
            )

    def test_schedule_idempotency(self):
        key = str(uuid.uuid4())
        first = WithdrawalService.schedule("alice", 500, idempotency_key=key)
        second = WithdrawalService.schedule("alice", 500, idempotency_key=key)
        self.assertEqual(first.id, second.id)
        self.assertEqual(Withdrawal.objects.count(), 1)

    @patch("betting.services.withdrawal.request_bank_payout")
    def test_execute_success(self, payout):
        payout.return_value = PayoutResult(True, {"data": "success", "status": 200})
        withdrawal = WithdrawalService.schedule("alice", 3000)

        result = WithdrawalService.execute(withdrawal.id)

        self.assertEqual(result.status, Withdrawal.Status.COMPLETED)
        self.assertIsNotNone(result.executed_at)
        self.assertEqual(balance("alice"), 7000)
        entry = Transaction.objects.get(kind=Transaction.Kind.WITHDRAWAL)
        self.assertEqual(entry.amount, -3000)
        self.assertEqual(entry.reference_id, f"withdrawal-{withdrawal.id}")
        payout.assert_called_once_with(user_id="alice", amount=3000)

    @patch("betting.services.withdrawal.request_bank_payout")
    def test_bank_failure_leaves_no_debit(self, payout):
        payout.return_value = PayoutResult(False, {"data": "failed", "status": 503})
        withdrawal = WithdrawalService.schedule("alice", 3000)

        result = WithdrawalService.execute(withdrawal.id)

        self.assertEqual(result.status, Withdrawal.Status.FAILED)
        self.assertEqual(result.retry_count, 1)
        self.assertEqual(balance("alice"), 10000)
        self.assertFalse(
            Transaction.objects.filter(kind=Transaction.Kind.WITHDRAWAL).exists()
        )
        assert_ledger_consistent(self, "alice")

    @patch("betting.services.withdrawal.request_bank_payout")
    def test_balance_rechecked_at_execution(self, payout):
        withdrawal = WithdrawalService.schedule("alice", 3000)
        LedgerService.adjust_balance("alice", -9000, Transaction.Kind.GAME_ENTRY)

        result = WithdrawalService.execute(withdrawal.id)

        self.assertEqual(result.status, Withdrawal.Status.FAILED)
        self.assertIn("Insufficient balance", str(result.third_party_response))
        self.assertEqual(balance("alice"), 1000)
        payout.assert_not_called()

    @patch("betting.services.withdrawal.request_bank_payout")
    def test_completed_withdrawal_not_executed_again(self, payout):
        payout.return_value = PayoutResult(True, {"status": 200})
        withdrawal = WithdrawalService.schedule("alice", 3000)
        WithdrawalService.execute(withdrawal.id)

        with self.assertRaises(Withdrawal.DoesNotExist):
            WithdrawalService.execute(withdrawal.id)
        self.assertEqual(balance("alice"), 7000)


class BankPayoutTest(TestCase):
    @patch("betting.utils.bank.requests.post")
    def test_accepted(self, post):
        post.return_value.json.return_value = {"status": 200, "data": "ok"}

        result = request_bank_payout("alice", 500)

        self.assertTrue(result.success)
        post.assert_called_once()
        self.assertEqual(post.call_args.kwargs["json"], {"account_id": "alice", "amount": 500})

    @patch("betting.utils.bank.requests.post")
    def test_refused(self, post):
        post.return_value.json.return_value = {"status": 503, "data": "failed"}
        result = request_bank_payout("alice", 500)
        self.assertFalse(result.success)
        self.assertEqual(result.response["status"], 503)

    @patch("betting.utils.bank.requests.post")
    def test_connection_error(self, post):
        post.side_effect = requests.exceptions.ConnectionError("refused")
        result = request_bank_payout("alice", 500)
        self.assertFalse(result.success)
        self.assertEqual(result.response["error"], "connection_error")

    @patch("betting.utils.bank.requests.post")
    def test_timeout(self, post):
        post.side_effect = requests.exceptions.ReadTimeout("slow")
        result = request_bank_payout("alice", 500)
        self.assertFalse(result.success)
        self.assertEqual(result.response["error"], "timeout")


# ============================================================
# Celery Task Tests
# ============================================================


class WithdrawalTaskTest(TransactionTestCase):
    def setUp(self):
        fund("alice", 10000)

    def test_process_pending_withdrawals_dispatches_due(self):
        due = WithdrawalService.schedule("alice", 2000)
        WithdrawalService.schedule(
            "alice", 1000, scheduled_for=timezone.now() + timedelta(hours=1)
        )

        from betting.tasks import process_pending_withdrawals, process_single_withdrawal

        with patch.object(process_single_withdrawal, "delay") as delay:
            result = process_pending_withdrawals.apply()

        self.assertEqual(result.get()["dispatched"], 1)
        delay.assert_called_once_with(due.id)

    @patch("betting.services.withdrawal.request_bank_payout")
    def test_process_single_withdrawal(self, payout):
        payout.return_value = PayoutResult(True, {"status": 200})
        withdrawal = WithdrawalService.schedule("alice", 2000)

        from betting.tasks import process_single_withdrawal

        result = process_single_withdrawal.apply(args=[withdrawal.id])

        self.assertEqual(result.get()["status"], Withdrawal.Status.COMPLETED)
        self.assertEqual(balance("alice"), 8000)

    def test_process_missing_withdrawal(self):
        from betting.tasks import process_single_withdrawal

        result = process_single_withdrawal.apply(args=[123456])
        self.assertEqual(result.get()["status"], "NOT_FOUND")

    @override_settings(WITHDRAWAL_MAX_RETRIES=3)
    def test_retry_failed_withdrawals(self):
        account = Account.objects.get(user_id="alice")
        retryable = Withdrawal.objects.create(
            account=account, amount=2000, status=Withdrawal.Status.FAILED, retry_count=1
        )
        Withdrawal.objects.create(
            account=account, amount=2000, status=Withdrawal.Status.FAILED, retry_count=3
        )

        from betting.tasks import process_single_withdrawal, retry_failed_withdrawals

        with patch.object(process_single_withdrawal, "delay") as delay:
            result = retry_failed_withdrawals.apply()

        self.assertEqual(result.get()["dispatched"], 1)
        delay.assert_called_once_with(retryable.id)


@override_settings(**LOBBY_SETTINGS)
class GameTaskTest(TransactionTestCase):
    def setUp(self):
        fund("alice", 1000)
        fund("bob", 1000)

    def test_settle_full_games(self):
        Matchmaker.join_or_create("alice", 100)
        game = Matchmaker.join_or_create("bob", 100).game

        from betting.tasks import settle_full_games

        result = settle_full_games.apply().get()

        self.assertEqual(result, {"found": 1, "settled": 1})
        game.refresh_from_db()
        self.assertEqual(game.status, Game.Status.COMPLETED)

    def test_expiry_disabled_by_default(self):
        game = Matchmaker.join_or_create("alice", 100).game
        Game.objects.filter(pk=game.pk).update(
            created_at=timezone.now() - timedelta(days=7)
        )

        from betting.tasks import expire_stale_games

        self.assertEqual(expire_stale_games.apply().get(), {"expired": 0})
        game.refresh_from_db()
        self.assertEqual(game.status, Game.Status.WAITING)

    @override_settings(GAME_EXPIRY_MINUTES=30)
    def test_stale_game_cancelled_and_refunded(self):
        stale = Matchmaker.join_or_create("alice", 100).game
        Game.objects.filter(pk=stale.pk).update(
            created_at=timezone.now() - timedelta(hours=1)
        )
        fresh = Matchmaker.join_or_create("bob", 250).game

        from betting.tasks import expire_stale_games

        self.assertEqual(expire_stale_games.apply().get(), {"expired": 1})
        stale.refresh_from_db()
        fresh.refresh_from_db()
        self.assertEqual(stale.status, Game.Status.CANCELLED)
        self.assertEqual(fresh.status, Game.Status.WAITING)
        self.assertEqual(balance("alice"), 1000)
        self.assertEqual(balance("bob"), 750)

    @override_settings(GAME_EXPIRY_MINUTES=30)
    def test_sweep_command(self):
        Matchmaker.join_or_create("alice", 100)
        Matchmaker.join_or_create("bob", 100)
        out = StringIO()

        call_command("sweep_games", stdout=out)

        self.assertIn("settled: 1", out.getvalue())
        self.assertIn("No stale games", out.getvalue())
        self.assertEqual(Game.objects.get().status, Game.Status.COMPLETED)

    def test_settle_sweep_continues_after_failed_game(self):
        fund("carol", 1000)
        fund("dave", 1000)
        Matchmaker.join_or_create("alice", 100)
        broken = Matchmaker.join_or_create("bob", 100).game
        Matchmaker.join_or_create("carol", 250)
        healthy = Matchmaker.join_or_create("dave", 250).game

        original = SettlementService.settle

        def settle(game_id):
            if game_id == broken.id:
                raise RuntimeError("unexpected")
            return original(game_id)

        from betting.tasks import settle_full_games

        with patch.object(SettlementService, "settle", side_effect=settle):
            result = settle_full_games.apply().get()

        self.assertEqual(result, {"found": 2, "settled": 1})
        broken.refresh_from_db()
        healthy.refresh_from_db()
        self.assertEqual(broken.status, Game.Status.WAITING)
        self.assertEqual(healthy.status, Game.Status.COMPLETED)

    @override_settings(GAME_EXPIRY_MINUTES=30)
    def test_expiry_continues_after_storage_error(self):
        first = Matchmaker.join_or_create("alice", 100).game
        second = Matchmaker.join_or_create("bob", 250).game
        Game.objects.filter(pk__in=[first.pk, second.pk]).update(
            created_at=timezone.now() - timedelta(hours=1)
        )

        original = SettlementService.cancel

        def cancel(game_id):
            if game_id == first.id:
                raise OperationalError("lock timeout")
            return original(game_id)

        from betting.tasks import expire_stale_games

        with patch.object(SettlementService, "cancel", side_effect=cancel):
            result = expire_stale_games.apply().get()

        self.assertEqual(result, {"expired": 1})
        first.refresh_from_db()
        second.refresh_from_db()
        self.assertEqual(first.status, Game.Status.WAITING)
        self.assertEqual(second.status, Game.Status.CANCELLED)
        self.assertEqual(balance("alice"), 900)
        self.assertEqual(balance("bob"), 1000)


# ============================================================
# API Tests
# ============================================================


class AccountAPITest(TransactionTestCase):
    def setUp(self):
        self.client = APIClient()
        fund("alice", 1000)
        fund("alice", 20, unit=Account.Unit.COIN)

    def test_identity_required(self):
        response = self.client.get("/api/accounts/me/")
        self.assertEqual(response.status_code, 401)

    def test_balances(self):
        response = self.client.get("/api/accounts/me/", HTTP_X_ACCOUNT_ID="alice")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["balances"], {"CURRENCY": 1000, "COIN": 20})

    def test_account_rows(self):
        response = self.client.get("/api/accounts/me/", HTTP_X_ACCOUNT_ID="alice")
        accounts = {a["unit"]: a for a in response.data["accounts"]}
        self.assertEqual(set(accounts), {"CURRENCY", "COIN"})
        self.assertEqual(accounts["COIN"]["balance"], 20)
        self.assertEqual(accounts["CURRENCY"]["user_id"], "alice")

    def test_new_user_sees_zero(self):
        response = self.client.get("/api/accounts/me/", HTTP_X_ACCOUNT_ID="newbie")
        self.assertEqual(response.data["balances"], {"CURRENCY": 0, "COIN": 0})

    def test_transactions_filtered_by_kind(self):
        LedgerService.adjust_balance("alice", -100, Transaction.Kind.GAME_ENTRY)
        response = self.client.get(
            "/api/accounts/me/transactions/?kind=game_entry", HTTP_X_ACCOUNT_ID="alice"
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.data), 1)
        self.assertEqual(response.data[0]["amount"], -100)

    def test_transactions_filtered_by_unit(self):
        response = self.client.get(
            "/api/accounts/me/transactions/?unit=coin", HTTP_X_ACCOUNT_ID="alice"
        )
        self.assertEqual(len(response.data), 1)
        self.assertEqual(response.data[0]["unit"], "COIN")

    def test_transactions_are_private(self):
        fund("bob", 500)
        tx = Transaction.objects.get(account__user_id="bob")
        response = self.client.get(
            f"/api/accounts/me/transactions/{tx.id}/", HTTP_X_ACCOUNT_ID="alice"
        )
        self.assertEqual(response.status_code, 404)

    def test_transaction_detail(self):
        tx = Transaction.objects.filter(account__user_id="alice").first()
        response = self.client.get(
            f"/api/accounts/me/transactions/{tx.id}/", HTTP_X_ACCOUNT_ID="alice"
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["id"], tx.id)


@override_settings(**LOBBY_SETTINGS)
class GameAPITest(TransactionTestCase):
    def setUp(self):
        self.client = APIClient()
        fund("alice", 1000)
        fund("bob", 1000)
        fund("poor", 50)

    def join(self, user, stake=250):
        return self.client.post(
            "/api/games/join/", {"stake": stake}, format="json", HTTP_X_ACCOUNT_ID=user
        )

    def test_join(self):
        response = self.join("alice")
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["balance"], 750)
        self.assertFalse(response.data["settled"])
        self.assertEqual(response.data["game"]["current_players"], 1)

    @patch("betting.services.settlement.OutcomeGenerator.pick_winner", return_value=0)
    def test_filling_join_returns_settled_game(self, pick_winner):
        self.join("alice")
        response = self.join("bob")

        self.assertEqual(response.status_code, 201)
        self.assertTrue(response.data["settled"])
        game = response.data["game"]
        self.assertEqual(game["status"], "COMPLETED")
        self.assertEqual(game["winner_id"], "alice")
        payouts = {p["user_id"]: p["amount_won"] for p in game["participants"]}
        self.assertEqual(payouts, {"alice": 375, "bob": 200})
        self.assertEqual(response.data["balance"], 950)

    def test_join_insufficient_funds(self):
        response = self.join("poor", stake=100)
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["code"], "insufficient_funds")
        self.assertEqual(balance("poor"), 50)

    def test_join_twice(self):
        self.join("alice")
        response = self.join("alice")
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data["code"], "already_joined")

    def test_join_invalid_stake(self):
        response = self.join("alice", stake=333)
        self.assertEqual(response.status_code, 400)

    def test_join_requires_identity(self):
        response = self.client.post("/api/games/join/", {"stake": 250}, format="json")
        self.assertEqual(response.status_code, 401)

    def test_list_waiting_games(self):
        self.join("alice", stake=100)
        self.join("bob", stake=500)

        response = self.client.get("/api/games/")
        self.assertEqual(len(response.data), 2)

        response = self.client.get("/api/games/?stake=500")
        self.assertEqual(len(response.data), 1)
        self.assertEqual(response.data[0]["stake"], 500)
        self.assertEqual(response.data[0]["capacity"], 2)

    def test_list_rejects_non_numeric_stake(self):
        self.join("alice", stake=100)
        response = self.client.get("/api/games/?stake=abc")
        self.assertEqual(response.status_code, 400)
        self.assertIn("stake", response.data)

    def test_result_lifecycle(self):
        game_id = self.join("alice").data["game"]["id"]

        response = self.client.get(
            f"/api/games/{game_id}/result/", HTTP_X_ACCOUNT_ID="alice"
        )
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data["code"], "game_not_settled")

        self.join("bob")
        response = self.client.get(
            f"/api/games/{game_id}/result/", HTTP_X_ACCOUNT_ID="alice"
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["amount_paid"], 250)
        self.assertIn(response.data["amount_won"], (375, 200))
        self.assertEqual(response.data["game"]["status"], "COMPLETED")

    def test_result_for_non_participant(self):
        game_id = self.join("alice").data["game"]["id"]
        response = self.client.get(
            f"/api/games/{game_id}/result/", HTTP_X_ACCOUNT_ID="bob"
        )
        self.assertEqual(response.status_code, 404)

    def test_game_detail(self):
        game_id = self.join("alice").data["game"]["id"]
        response = self.client.get(f"/api/games/{game_id}/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.data["participants"]), 1)
        self.assertIsNone(response.data["winner_id"])

    def test_config(self):
        response = self.client.get("/api/config/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["stake_tiers"], [100, 250, 500])
        self.assertEqual(response.data["capacity"], 2)
        self.assertEqual(Decimal(response.data["win_multiplier"]), Decimal("1.5"))


class FlipAPITest(TransactionTestCase):
    def setUp(self):
        self.client = APIClient()
        fund("alice", 100, unit=Account.Unit.COIN)

    @patch("betting.services.flip.OutcomeGenerator.flip", return_value="heads")
    def test_flip(self, flip):
        response = self.client.post(
            "/api/flips/",
            {"choice": "heads", "bet": 10},
            format="json",
            HTTP_X_ACCOUNT_ID="alice",
        )
        self.assertEqual(response.status_code, 201)
        self.assertTrue(response.data["round"]["is_winner"])
        self.assertEqual(response.data["round"]["payout"], 20)
        self.assertEqual(response.data["balance"], 110)

    def test_flip_insufficient_coins(self):
        response = self.client.post(
            "/api/flips/",
            {"choice": "heads", "bet": 500},
            format="json",
            HTTP_X_ACCOUNT_ID="alice",
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["code"], "insufficient_funds")

    def test_flip_invalid_choice(self):
        response = self.client.post(
            "/api/flips/",
            {"choice": "edge", "bet": 10},
            format="json",
            HTTP_X_ACCOUNT_ID="alice",
        )
        self.assertEqual(response.status_code, 400)

    def test_flip_missing_bet(self):
        response = self.client.post(
            "/api/flips/", {"choice": "heads"}, format="json", HTTP_X_ACCOUNT_ID="alice"
        )
        self.assertEqual(response.status_code, 400)


@override_settings(PAYMENT_WEBHOOK_SECRET="test-secret", COIN_PRICE=10)
class PaymentWebhookAPITest(TransactionTestCase):
    def setUp(self):
        self.client = APIClient()

    def deliver(self, payload, secret="test-secret"):
        body = json.dumps(payload).encode("utf-8")
        return self.client.post(
            "/api/webhooks/payments/",
            data=body,
            content_type="application/json",
            HTTP_X_SIGNATURE=sign_payload(body, secret),
        )

    def test_verified_payment_credits(self):
        response = self.deliver(
            {"reference": "pay_1", "account_id": "alice", "amount": 1000}
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["status"], "credited")
        self.assertEqual(balance("alice"), 1000)

    def test_replayed_payment_credits_once(self):
        payload = {"reference": "pay_1", "account_id": "alice", "amount": 1000}
        first = self.deliver(payload)
        second = self.deliver(payload)

        self.assertEqual(second.status_code, 200)
        self.assertEqual(second.data["status"], "already_processed")
        self.assertEqual(second.data["transaction_id"], first.data["transaction_id"])
        self.assertEqual(balance("alice"), 1000)

    def test_coin_purchase_converted(self):
        response = self.deliver(
            {"reference": "pay_2", "account_id": "alice", "amount": 105, "unit": "COIN"}
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(balance("alice", Account.Unit.COIN), 10)
        self.assertEqual(balance("alice"), 0)

    def test_bad_signature_rejected(self):
        response = self.deliver(
            {"reference": "pay_1", "account_id": "alice", "amount": 1000},
            secret="wrong",
        )
        self.assertEqual(response.status_code, 403)
        self.assertEqual(balance("alice"), 0)

    def test_invalid_payload(self):
        response = self.deliver({"reference": "pay_1", "amount": 1000})
        self.assertEqual(response.status_code, 400)


class WithdrawAPITest(TransactionTestCase):
    def setUp(self):
        self.client = APIClient()
        fund("alice", 10000)

    def withdraw(self, data, **extra):
        return self.client.post(
            "/api/accounts/me/withdraw/",
            data,
            format="json",
            HTTP_X_ACCOUNT_ID="alice",
            **extra,
        )

    def test_withdraw(self):
        response = self.withdraw({"amount": 3000})
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["status"], "PENDING")
        self.assertEqual(balance("alice"), 10000)

    def test_withdraw_with_idempotency_key(self):
        key = str(uuid.uuid4())
        first = self.withdraw({"amount": 3000}, HTTP_IDEMPOTENCY_KEY=key)
        second = self.withdraw({"amount": 3000}, HTTP_IDEMPOTENCY_KEY=key)
        self.assertEqual(first.data["id"], second.data["id"])

    def test_withdraw_bad_idempotency_key(self):
        response = self.withdraw({"amount": 3000}, HTTP_IDEMPOTENCY_KEY="not-a-uuid")
        self.assertEqual(response.status_code, 400)

    def test_withdraw_below_minimum(self):
        response = self.withdraw({"amount": 50})
        self.assertEqual(response.status_code, 400)

    def test_withdraw_more_than_balance(self):
        response = self.withdraw({"amount": 20000})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["code"], "insufficient_funds")
