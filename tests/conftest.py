import io
import threading
import pytest
import yaml
from pathlib import Path
from ytmp3.config.models import AppConfig
from ytmp3.domain.errors import NotFoundError
from ytmp3.domain.models import TranscodeResult, VideoInfo
from ytmp3.infrastructure.event_bus import EventBus

# ============================================================================
# Configuration Fixtures
# ============================================================================

@pytest.fixture
def sample_config(tmp_path):
    """Returns a sample AppConfig object for testing."""
    return AppConfig(
        general={
            "bitrate": 128,
            "max_queue_size": 2,
            "download_path": str(tmp_path / "downloads"),
            "ffmpeg_binary": "ffmpeg",
            "log_path": str(tmp_path / "logs" / "ytmp3.log"),
            "debug": False,
        },
        access={
            "owner_user_id": 1,
            "owner_username": "owner",
            "whitelist": [42],
        }
    )

@pytest.fixture
def config_yaml_path(tmp_path):
    """Creates a temporary YAML config file."""
    conf_dir = tmp_path / "conf"
    conf_dir.mkdir()
    conf_file = conf_dir / "ytmp3.yaml"

    content = {
        'general': {
            'bitrate': 192,
            'max_queue_size': 3,
            'download_path': str(tmp_path / "downloads"),
            'log_path': str(tmp_path / "ytmp3.log"),
            'debug': False,
        },
        'access': {
            'owner_user_id': 1,
            'owner_username': 'owner',
            'whitelist': [7],
        }
    }

    with open(conf_file, 'w') as f:
        yaml.dump(content, f)

    return conf_file

# ============================================================================
# EventBus Fixtures
# ============================================================================

@pytest.fixture
def event_bus():
    """Returns a fresh EventBus instance."""
    return EventBus()

# ============================================================================
# Collaborator fakes
# ============================================================================

class FakeLookup:
    """fetch_info backed by a dict of video_id -> VideoInfo."""

    def __init__(self, videos=None):
        self.videos = dict(videos or {})
        self.calls = []

    def fetch_info(self, video_id):
        self.calls.append(video_id)
        if video_id not in self.videos:
            raise NotFoundError(video_id)
        return self.videos[video_id]


class FakeSource:
    def __init__(self, payload=b"fake audio bytes"):
        self.payload = payload
        self.opened = []

    def open_audio_stream(self, video_id):
        self.opened.append(video_id)
        return io.BytesIO(self.payload)


class FakeTranscoder:
    """Scripted stand-in for FFmpegAdapter.transcode.

    Args:
        marks: time marks reported through on_progress before finishing.
        error: exception to raise after the marks.
        block_until_cancel: wait for the cancel token, then return CANCELED.
        killed: return CANCELED without a token (process killed by SIGKILL).
    """

    def __init__(self, marks=(), error=None, block_until_cancel=False, killed=False):
        self.marks = list(marks)
        self.error = error
        self.block_until_cancel = block_until_cancel
        self.killed = killed
        self.calls = []
        self.spawned = threading.Event()

    def transcode(self, stream, output_path, bitrate, on_progress=None, cancel_event=None):
        self.calls.append((output_path, bitrate))
        if cancel_event is not None and cancel_event.is_set():
            return TranscodeResult.CANCELED
        self.spawned.set()
        data = stream.read()
        for mark in self.marks:
            if on_progress is not None:
                on_progress(mark)
        if self.block_until_cancel:
            cancel_event.wait(timeout=5)
            return TranscodeResult.CANCELED
        if self.killed:
            return TranscodeResult.CANCELED
        if self.error is not None:
            output_path.with_suffix(".tmp").write_bytes(b"partial")
            raise self.error
        Path(output_path).write_bytes(data)
        return TranscodeResult.COMPLETED


@pytest.fixture
def transcoder_factory():
    return FakeTranscoder


@pytest.fixture
def lookup_factory():
    return FakeLookup


@pytest.fixture
def video_info():
    return VideoInfo(id="abc", title="Some Song", length_seconds=300)


@pytest.fixture
def fake_lookup(video_info):
    return FakeLookup({video_info.id: video_info})


@pytest.fixture
def fake_source():
    return FakeSource()


@pytest.fixture
def fake_transcoder():
    return FakeTranscoder(marks=["00:00:30.00", "00:02:30.50", "00:05:00.00"])


class FakeStatus:
    def __init__(self, channel, requester_id, text):
        self.channel = channel
        self.requester_id = requester_id
        self.history = [text]
        self.deleted = False

    @property
    def text(self):
        return self.history[-1]

    def update(self, text):
        self.history.append(text)

    def delete(self):
        self.deleted = True


class FakeChannel:
    """Records everything a dispatcher sends, keyed by requester."""

    def __init__(self, fail_audio=None):
        self.messages = []
        self.statuses = []
        self.audio = []
        self.fail_audio = fail_audio

    def send_message(self, requester_id, text):
        self.messages.append((requester_id, text))

    def send_status(self, requester_id, text, reply_to=None):
        status = FakeStatus(self, requester_id, text)
        self.statuses.append(status)
        return status

    def send_audio(self, requester_id, audio_path, caption, filename, reply_to=None):
        if self.fail_audio is not None:
            raise self.fail_audio
        self.audio.append((requester_id, Path(audio_path).read_bytes(), caption, filename, reply_to))


@pytest.fixture
def channel_factory():
    return FakeChannel


@pytest.fixture
def fake_channel():
    return FakeChannel()


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )
    config.addinivalue_line(
        "markers", "slow: needs a real ffmpeg binary"
    )
