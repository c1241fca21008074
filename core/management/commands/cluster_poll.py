"""
Management command to cluster a poll from a JSON export.

Usage:
    python manage.py cluster_poll poll.json
    python manage.py cluster_poll poll.json --output result.json --timeout 60
    python manage.py cluster_poll poll.json --async

Input format:
    {
        "poll_id": "...",
        "statements": [{"statement_id": "...", "created_at": "...", "text": "..."}],
        "votes": [{"user_id": "...", "statement_id": "...", "value": 1}]
    }
"""

import json

from django.core.management.base import BaseCommand, CommandError

from core.clustering.conf import get_setting
from core.clustering.pipeline import (
    ClusteringEngine,
    Clustered,
    ColdStart,
    FullRecompute,
    outcome_to_dict,
)
from core.tasks import recompute_poll_clustering


class Command(BaseCommand):
    help = 'Compute opinion groups, statement classifications and weights for a poll'

    def add_arguments(self, parser):
        parser.add_argument(
            'input',
            help='Path to the poll JSON export'
        )
        parser.add_argument(
            '--output',
            help='Write the outcome as JSON to this file'
        )
        parser.add_argument(
            '--timeout',
            type=float,
            default=None,
            help='Time limit in seconds (default: RECOMPUTE_TIMEOUT_SECONDS)'
        )
        parser.add_argument(
            '--async',
            action='store_true',
            dest='run_async',
            help='Run as Celery task (async)'
        )

    def handle(self, *args, **options):
        try:
            with open(options['input'], encoding='utf-8') as f:
                payload = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise CommandError(f"Cannot read {options['input']}: {e}")

        if 'poll_id' not in payload:
            raise CommandError('Input is missing "poll_id"')

        poll_id = str(payload['poll_id'])
        timeout = options['timeout'] or get_setting('RECOMPUTE_TIMEOUT_SECONDS')

        self.stdout.write(
            f"Clustering poll {poll_id}: "
            f"{len(payload.get('statements', []))} statements, "
            f"{len(payload.get('votes', []))} votes"
        )

        if options['run_async']:
            result = recompute_poll_clustering.delay(poll_id, payload)
            self.stdout.write(self.style.SUCCESS(f'Task dispatched: {result.id}'))
            return

        try:
            engine = ClusteringEngine.from_settings()
            outcome = engine.run_with_timeout(
                FullRecompute(
                    poll_id=poll_id,
                    votes=payload.get('votes', []),
                    statements=payload.get('statements', []),
                ),
                timeout,
            )
        except Exception as e:
            self.stdout.write(self.style.ERROR(f'Clustering failed: {e}'))
            raise

        if isinstance(outcome, Clustered):
            meta = outcome.result.metadata
            self.stdout.write(
                self.style.SUCCESS(
                    f"Clustering complete:\n"
                    f"  Users: {meta.total_users}\n"
                    f"  Groups: {meta.num_coarse_groups}\n"
                    f"  Variance explained: {meta.total_variance_explained:.3f}\n"
                    f"  Silhouette: {meta.silhouette_score:.3f}\n"
                    f"  Quality: {meta.quality_tier}\n"
                    f"  Time: {meta.computation_time:.2f}s"
                )
            )
        elif isinstance(outcome, ColdStart):
            self.stdout.write(
                self.style.WARNING(
                    f"Cold start ({outcome.reason}): "
                    f"{len(outcome.weights)} statements weighted"
                )
            )
        else:
            self.stdout.write(self.style.WARNING(f"Not enough signal: {outcome.reason}"))

        if options['output']:
            with open(options['output'], 'w', encoding='utf-8') as f:
                json.dump(outcome_to_dict(outcome), f, indent=2)
            self.stdout.write(f"Wrote {options['output']}")
