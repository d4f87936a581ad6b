"""In-memory stand-ins for the compression, storage and metadata stages."""
import asyncio
import io
import threading
import time

from PIL import Image

from sitephotos.core.retry_utils import RetryConfig
from sitephotos.services.error_handling import CompressionError
from sitephotos.services.metadata import RecordResult
from sitephotos.services.upload_models import CompressedFile, SourceFile

# Same shape as production backoff, fast enough for unit tests.
FAST_RETRY = RetryConfig(max_attempts=3, base_delay=0.01, exponential_base=2.0, jitter=False)


def make_jpeg(width: int = 64, height: int = 48, color=(200, 80, 40), fmt: str = "JPEG", mode: str = "RGB") -> bytes:
    """Encode a solid-colour test image."""
    buffer = io.BytesIO()
    Image.new(mode, (width, height), color).save(buffer, format=fmt)
    return buffer.getvalue()


def source_files(*names: str) -> list:
    return [SourceFile(name=name, data=make_jpeg()) for name in names]


class FakeCompressor:
    """Passes files straight through, optionally pausing or failing."""

    def __init__(self, delay: float = 0.0, fail_names=()):
        self.delay = delay
        self.fail_names = set(fail_names)
        self.calls = []

    async def compress(self, source: SourceFile) -> CompressedFile:
        self.calls.append(source.name)
        if self.delay:
            await asyncio.sleep(self.delay)
        if source.name in self.fail_names:
            raise CompressionError(f"Unsupported or corrupt image: {source.name}")
        return CompressedFile(name=source.name, data=source.data)


class FakeObjectStore:
    """In-memory object store.

    ``failures`` maps a key fragment to the number of uploads that should fail
    for matching keys; ``None`` fails every attempt.
    """

    def __init__(self, failures=None):
        self.failures = dict(failures or {})
        self.objects = {}
        self.attempts = []
        self.attempt_times = []
        self._lock = threading.Lock()

    def upload(self, key: str, data: bytes, content_type: str) -> None:
        with self._lock:
            self.attempts.append(key)
            self.attempt_times.append(time.monotonic())
            for fragment, remaining in self.failures.items():
                if fragment not in key:
                    continue
                if remaining is None:
                    raise ConnectionError(f"storage unavailable for {key}")
                if remaining > 0:
                    self.failures[fragment] = remaining - 1
                    raise ConnectionError(f"connection reset while uploading {key}")
            self.objects[key] = data

    def public_url(self, key: str) -> str:
        return f"https://storage.test/site-photos/{key}"

    def attempts_for(self, fragment: str) -> list:
        return [k for k in self.attempts if fragment in k]


class FakeRecorder:
    """Collects metadata inserts; fails those whose URL contains a fragment."""

    def __init__(self, fail_fragments=()):
        self.fail_fragments = set(fail_fragments)
        self.calls = []

    async def record(self, site_id: str, url: str, category: str, user_id=None) -> RecordResult:
        self.calls.append({"site_id": site_id, "url": url, "category": category, "user_id": user_id})
        if any(fragment in url for fragment in self.fail_fragments):
            return RecordResult(success=False, error="new row violates row-level security policy")
        return RecordResult(success=True)


