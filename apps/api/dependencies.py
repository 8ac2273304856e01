from fastapi import Request

from workers.generator.worker import Worker


def get_worker(request: Request) -> Worker:
    worker = getattr(request.app.state, "worker", None)
    if worker is None:
        raise RuntimeError("worker not initialized")
    return worker
