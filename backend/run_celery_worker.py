#!/usr/bin/env python3
# backend/run_celery_worker.py
"""
Local Celery worker runner for the booking sweeps, ledger reconciliation and
notification delivery queues.
"""
import os
from pathlib import Path
import subprocess
import sys

backend_dir = Path(__file__).parent
sys.path.insert(0, str(backend_dir))
os.chdir(backend_dir)

os.environ.setdefault("ENVIRONMENT", "development")

if __name__ == "__main__":
    # CELERY_QUEUES wins over CELERY_QUEUE when both are set
    queues = os.getenv("CELERY_QUEUES") or os.getenv("CELERY_QUEUE") or "celery,maintenance,notifications"
    print(f"Starting Celery worker (ENVIRONMENT={os.environ['ENVIRONMENT']}), queues: {queues}")

    cmd = [
        sys.executable,
        "-m",
        "celery",
        "-A",
        "classcredits.tasks.celery_app",
        "worker",
        "--loglevel=info",
        "--concurrency=2",
        "--max-tasks-per-child=100",
        "--pool=prefork",
        "-Q",
        queues,
    ]

    subprocess.run(cmd)
