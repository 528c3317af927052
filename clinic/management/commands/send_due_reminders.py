from django.core.management.base import BaseCommand

from clinic.services.reminders import send_due_reminders


class Command(BaseCommand):
    help = "Send every pending appointment reminder whose scheduled time has passed."

    def add_arguments(self, parser):
        parser.add_argument("--limit", type=int, default=None, help="Send at most this many reminders")

    def handle(self, *args, **options):
        sent = send_due_reminders(limit=options["limit"])
        self.stdout.write(self.style.SUCCESS(f"sent {sent} reminder(s)"))
