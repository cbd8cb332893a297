"""Celery beat schedule: reconciliation and side-effect recovery sweeps."""
from __future__ import annotations

CELERY_BEAT_SCHEDULE = {
    # razorpay 订单 pending 超过 15 分钟即向网关拉取支付状态
    "reconcile-pending-razorpay": {
        "task": "payments.reconcile_pending",
        "schedule": 600,  # every 10 minutes
        "kwargs": {"gateway": "razorpay", "older_than_minutes": 15},
    },
    # 支付成功后副作用未完成（进程中断等）的订单
    "resume-stalled-side-effects": {
        "task": "payments.resume_side_effects",
        "schedule": 600,
        "kwargs": {"older_than_minutes": 10},
    },
}
