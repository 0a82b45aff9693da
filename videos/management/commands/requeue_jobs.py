from django.core.management.base import BaseCommand

from videos.queue import requeue_stale_jobs, resubmit_failed_videos


class Command(BaseCommand):
    help = "Re-dispatch stale video jobs; optionally resubmit failed videos."

    def add_arguments(self, parser):
        parser.add_argument("--stale-minutes", type=int, default=30,
                            help="Only touch jobs idle for at least this long.")
        parser.add_argument("--failed", action="store_true",
                            help="Also start new jobs for failed videos whose input is still on disk.")

    def handle(self, *args, **options):
        requeued = requeue_stale_jobs(options["stale_minutes"] * 60)
        self.stdout.write(f"Re-dispatched {len(requeued)} stale job(s)")
        for job_id in requeued:
            self.stdout.write(f"  {job_id}")

        if options["failed"]:
            resubmitted = resubmit_failed_videos()
            self.stdout.write(f"Resubmitted {len(resubmitted)} failed video(s)")
            for job_id in resubmitted:
                self.stdout.write(f"  {job_id}")
