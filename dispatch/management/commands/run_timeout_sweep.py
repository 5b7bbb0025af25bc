import json

from django.core.management.base import BaseCommand

from dispatch.conf import load_dispatch_config
from dispatch.sweep import run_timeout_sweep


class Command(BaseCommand):
    help = 'Escalate or decline bookings whose provider response window has expired.'

    def add_arguments(self, parser):
        parser.add_argument('--json', action='store_true', help='Print the full summary as JSON.')

    def handle(self, *args, **options):
        summary = run_timeout_sweep(load_dispatch_config())
        if options['json']:
            self.stdout.write(json.dumps(summary.as_dict(), indent=2))
            return
        for result in summary.results:
            line = f'{result.booking} [{result.stage}] {result.action}'
            if result.error:
                self.stdout.write(self.style.ERROR(f'{line}: {result.error}'))
            else:
                self.stdout.write(line)
        self.stdout.write(
            self.style.SUCCESS(
                f'Processed {summary.processed} bookings, {summary.transitioned} transitioned, {summary.failed} failed.'
            )
        )
