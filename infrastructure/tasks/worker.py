"""Entry point for a Celery worker that also runs the beat scheduler.

Production deployments usually run ``celery -A infrastructure.tasks worker``
and a separate ``celery -A infrastructure.tasks beat``; this script is for
local runs where one process is enough.
"""
from __future__ import annotations

from .config.celery import celery_app


def main() -> None:
    celery_app.worker_main(argv=["worker", "--beat", "--loglevel=INFO", "--hostname=worker@%h"])


if __name__ == "__main__":
    main()
