"""Gunicorn configuration for the cluster daemon."""
import os
import sys

from dyncluster.config import load_config

_daemon_config = load_config()

# Gunicorn config variables
wsgi_app = "app:build_app()"
bind = os.getenv("DYNCLUSTER_BIND", "0.0.0.0:8080")
# In-memory metadata lives in one process, so only a metadata file allows more workers
workers = int(os.getenv("DYNCLUSTER_WORKERS", "2" if _daemon_config.meta_store_path else "1"))
# Allocation waits for every node to start, which can take minutes
timeout = 600
worker_class = "gthread"
threads = 4
preload_app = False


def check_worker_count(daemon_config, worker_count):
    """Refuse configurations where workers would keep separate cluster metadata."""
    if worker_count > 1 and not daemon_config.meta_store_path:
        raise RuntimeError(
            f"{worker_count} workers need a shared metadata file; set meta_store_path or use a single worker"
        )


def on_starting(server):
    """Called just before the master process is initialized."""
    check_worker_count(_daemon_config, server.cfg.workers)


def post_worker_init(worker):
    """Called just after a worker has initialized the application."""
    app = worker.wsgi
    daemon_config = app.config.get('daemon_config') if hasattr(app, 'config') else None
    if daemon_config is None:
        print(f"[Worker {worker.pid}] WARNING: daemon config not found on app", file=sys.stderr, flush=True)
        return
    print(f"[Worker {worker.pid}] Serving with {daemon_config.runtime} runtime", file=sys.stderr, flush=True)
