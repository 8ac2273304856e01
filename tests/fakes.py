import os
import tempfile
from io import BytesIO
from types import SimpleNamespace

from PIL import Image

from apps.api.config import Settings
from apps.api.db.base import Base
from apps.api.db.session import create_db_engine, make_session_factory
from workers.generator.store import JobStore


def make_settings(**overrides) -> Settings:
    values = {
        "database_url": "sqlite://",
        "gemini_api_key": "test-key",
        "assets_bucket": "assets",
        "worker_secret": "s3cret",
        "signed_url_ttl": 0,
        "generation_timeout_seconds": 0,
    }
    values.update(overrides)
    return Settings(**values)


class TempStore:
    """JobStore on a throwaway SQLite file (a file, so threads share it)."""

    def __init__(self):
        self._dir = tempfile.TemporaryDirectory()
        url = f"sqlite:///{os.path.join(self._dir.name, 'jobs.db')}"
        self.engine = create_db_engine(make_settings(database_url=url))
        Base.metadata.create_all(self.engine)
        self.store = JobStore(make_session_factory(self.engine))

    def close(self):
        self.engine.dispose()
        self._dir.cleanup()


def png_bytes(color=(200, 10, 10)) -> bytes:
    out = BytesIO()
    Image.new("RGB", (4, 4), color).save(out, format="PNG")
    return out.getvalue()


def image_response(data: bytes):
    part = SimpleNamespace(text=None, inline_data=SimpleNamespace(data=data, mime_type="image/png"))
    return SimpleNamespace(candidates=[SimpleNamespace(content=SimpleNamespace(parts=[part]))], text=None)


def text_response(text: str):
    part = SimpleNamespace(text=text, inline_data=None)
    return SimpleNamespace(candidates=[SimpleNamespace(content=SimpleNamespace(parts=[part]))], text=text)


class FakeModels:
    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    def generate_content(self, **kwargs):
        self.calls.append(kwargs)
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class FakeGenaiClient:
    def __init__(self, *outcomes):
        self.models = FakeModels(outcomes)


class FakeBlobStore:
    def __init__(self, files=None):
        self.files = dict(files or {})
        self.uploads = []

    def put(self, path, data, content_type):
        self.uploads.append((path, content_type))
        self.files[path] = data

    def get(self, path):
        from workers.generator.errors import StorageError

        if path not in self.files:
            raise StorageError(f"missing {path}")
        return self.files[path]

    def url_for(self, path, ttl=0):
        return f"https://store/{path}"
