from django.core.management.base import BaseCommand

from betting.tasks import expire_stale_games, settle_full_games


class Command(BaseCommand):
    help = (
        "Settles waiting games that are already full and, when GAME_EXPIRY_MINUTES "
        "is set, cancels and refunds games that waited too long. For deployments "
        "that run cron instead of Celery Beat."
    )

    def add_arguments(self, parser):
        parser.add_argument(
            "--skip-expiry",
            action="store_true",
            help="Only settle full games; leave stale games waiting.",
        )

    def handle(self, *args, **options):
        settled = settle_full_games()
        self.stdout.write(
            f"Full games found: {settled['found']}, settled: {settled['settled']}"
        )

        if options["skip_expiry"]:
            return

        expired = expire_stale_games()
        if expired["expired"]:
            self.stdout.write(
                self.style.WARNING(f"Stale games cancelled: {expired['expired']}")
            )
        else:
            self.stdout.write(self.style.SUCCESS("No stale games."))
