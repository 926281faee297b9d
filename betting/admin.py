from django.contrib import admin

from betting.models import Account, FlipRound, Game, Participant, Transaction, Withdrawal


class ReadOnlyAdminMixin:
    """
    Keeps money-bearing rows browsable but immutable from the admin.

    Balances and ledger entries may only change through the services, which
    keep each balance and its ledger entry in step.
    """

    def has_add_permission(self, request, obj=None):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


class ParticipantInline(ReadOnlyAdminMixin, admin.TabularInline):
    model = Participant
    extra = 0
    fields = ("account", "amount_paid", "amount_won", "is_winner", "created_at")
    readonly_fields = fields


@admin.register(Account)
class AccountAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = ("id", "user_id", "unit", "balance", "created_at")
    list_filter = ("unit",)
    search_fields = ("user_id",)


@admin.register(Transaction)
class TransactionAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = (
        "id",
        "account",
        "kind",
        "amount",
        "balance_before",
        "balance_after",
        "status",
        "reference_id",
        "created_at",
    )
    list_filter = ("kind", "status", "account__unit")
    search_fields = ("account__user_id", "reference_id", "external_reference")


@admin.register(Game)
class GameAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = (
        "id",
        "stake",
        "current_players",
        "capacity",
        "status",
        "winner",
        "house_margin_display",
        "created_at",
        "completed_at",
    )
    list_filter = ("status", "stake")
    inlines = [ParticipantInline]

    @admin.display(description="House margin")
    def house_margin_display(self, obj):
        if obj.status != Game.Status.COMPLETED:
            return "-"
        return obj.house_margin


@admin.register(FlipRound)
class FlipRoundAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = ("id", "account", "choice", "result", "is_winner", "bet", "payout")
    list_filter = ("is_winner",)
    search_fields = ("account__user_id",)


@admin.register(Withdrawal)
class WithdrawalAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = (
        "id",
        "account",
        "amount",
        "status",
        "scheduled_for",
        "executed_at",
        "retry_count",
    )
    list_filter = ("status",)
    search_fields = ("account__user_id",)
