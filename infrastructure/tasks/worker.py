"""Convenience entry point for running the Celery worker.

Deployments usually invoke the Celery CLI directly; this keeps local runs and
Procfile-style runners to a single command:

    python -m infrastructure.tasks.worker
"""
from __future__ import annotations

import sys

from .config.celery import QUEUE_DEFAULT, QUEUE_HIGH, QUEUE_LOW, celery_app

# 邮件投递走 high 队列，对账扫描走 low 队列
DEFAULT_QUEUES = ",".join((QUEUE_HIGH, QUEUE_DEFAULT, QUEUE_LOW))


def main(argv: list[str] | None = None) -> None:
    args = [
        "worker",
        "--hostname=storefront@%h",
        f"--queues={DEFAULT_QUEUES}",
        "--loglevel=INFO",
    ]
    args.extend(argv if argv is not None else sys.argv[1:])
    celery_app.worker_main(argv=args)


if __name__ == "__main__":
    main()
