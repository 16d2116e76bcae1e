import logging
import signal
import sys
import time

from django.core.management.base import BaseCommand

from yield_engine.workers.rebalance_monitor_worker import RebalanceMonitorWorker

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = 'Run the rebalance monitor: analyze monitored accounts, gate recommended actions and send alerts'

    def add_arguments(self, parser):
        parser.add_argument(
            '--daemon',
            action='store_true',
            help='Run as a daemon process',
        )
        parser.add_argument(
            '--interval',
            type=int,
            default=300,  # 5 minutes by default
            help='Interval between monitoring cycles in seconds',
        )

    def handle(self, *args, **options):
        self.stdout.write(self.style.SUCCESS('Starting rebalance monitor...'))
        self.worker = None

        signal.signal(signal.SIGINT, self.handle_shutdown)
        signal.signal(signal.SIGTERM, self.handle_shutdown)

        try:
            self.worker = RebalanceMonitorWorker(interval=options['interval'])

            if options['daemon']:
                self.worker.start()
                self.stdout.write(
                    self.style.SUCCESS(f'Rebalance monitor running in daemon mode (every {options["interval"]} seconds). Press Ctrl+C to stop.')
                )
                while True:
                    time.sleep(1)
            else:
                results = self.worker.start(loop=False)
                failed = [r for r in results if r.error]
                for result in results:
                    line = (f'{result.address}: {len(result.recommended)} recommended, '
                            f'{len(result.approved)} approved, {len(result.alerted)} alerted')
                    self.stdout.write(self.style.ERROR(f'{result.address}: {result.error}') if result.error else line)
                self.stdout.write(self.style.SUCCESS(f'Rebalance monitor cycle executed ({len(failed)} failures). Exiting.'))
        except Exception as e:
            self.stdout.write(self.style.ERROR(f'Error running rebalance monitor: {str(e)}'))
            if self.worker is not None:
                self.worker.stop()
            sys.exit(1)

    def handle_shutdown(self, signum, frame):
        self.stdout.write(self.style.WARNING('\nShutting down rebalance monitor...'))
        if self.worker is not None:
            self.worker.stop()
        sys.exit(0)
