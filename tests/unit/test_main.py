import yaml
from unittest.mock import MagicMock
from typer.testing import CliRunner

from ytmp3 import main as ytmp3_main
from ytmp3.config.models import AppConfig, GeneralConfig
from ytmp3.domain.models import DispatchResult

VIDEO_URL = "https://youtu.be/abcdefghijk"


def _patch_runtime(monkeypatch, created, result=DispatchResult.DELIVERED):
    def fake_setup_logging(path, debug=False):
        created["log_path"] = path
        created["log_debug"] = debug
        return MagicMock()

    class DummyDispatcher:
        def __init__(self, config, admission, access, lookup, source, transcoder, channel):
            created["config"] = config
            created["admission"] = admission
            created["transcoder"] = transcoder
            created["channel"] = channel

        def handle_convert(self, request):
            created["request"] = request
            return result

        def handle_cancel(self, requester_id):
            created["canceled"] = requester_id
            return True

    monkeypatch.setattr(ytmp3_main, "setup_logging", fake_setup_logging)
    monkeypatch.setattr(ytmp3_main, "YouTubeAdapter", MagicMock())
    monkeypatch.setattr(ytmp3_main, "RequestDispatcher", DummyDispatcher)


def test_convert_applies_overrides(tmp_path, monkeypatch, config_yaml_path):
    runner = CliRunner()
    created = {}
    _patch_runtime(monkeypatch, created)

    result = runner.invoke(ytmp3_main.app, [
        "convert", VIDEO_URL,
        "--config", str(config_yaml_path),
        "--bitrate", "320",
        "--output", str(tmp_path / "out"),
        "--log-path", str(tmp_path / "custom.log"),
        "--debug",
    ])

    assert result.exit_code == 0, result.output
    assert created["config"].general.bitrate == 320
    assert created["config"].general.max_queue_size == 3
    assert created["config"].general.debug is True
    assert created["log_path"] == tmp_path / "custom.log"
    assert created["log_debug"] is True
    assert created["channel"].output_dir == tmp_path / "out"
    assert created["admission"].closed

    request = created["request"]
    assert request.text == VIDEO_URL
    assert request.requester_id == ytmp3_main.LOCAL_REQUESTER_ID
    # The terminal user acts as the owner
    assert request.user_id == 1


def test_convert_uses_defaults_without_config(tmp_path, monkeypatch):
    runner = CliRunner()
    created = {}
    _patch_runtime(monkeypatch, created)
    monkeypatch.chdir(tmp_path)

    result = runner.invoke(ytmp3_main.app, ["convert", VIDEO_URL, "--log-path", str(tmp_path / "x.log")])

    assert result.exit_code == 0, result.output
    assert created["config"].general.bitrate == GeneralConfig().bitrate


def test_convert_missing_explicit_config(tmp_path, monkeypatch):
    runner = CliRunner()
    _patch_runtime(monkeypatch, {})

    result = runner.invoke(ytmp3_main.app, ["convert", VIDEO_URL, "--config", str(tmp_path / "nope.yaml")])

    assert result.exit_code == 1
    assert "Config file not found" in result.output


def test_convert_rejects_non_positive_bitrate(monkeypatch, config_yaml_path):
    runner = CliRunner()
    _patch_runtime(monkeypatch, {})

    result = runner.invoke(ytmp3_main.app, ["convert", VIDEO_URL, "-c", str(config_yaml_path), "-b", "0"])

    assert result.exit_code == 1
    assert "--bitrate must be positive" in result.output


def test_convert_exit_codes(monkeypatch, config_yaml_path):
    runner = CliRunner()
    expected = {
        DispatchResult.DELIVERED: 0,
        DispatchResult.CANCELED: 130,
        DispatchResult.FAILED: 1,
        DispatchResult.NOT_FOUND: 1,
        DispatchResult.TOO_LONG: 1,
        DispatchResult.REJECTED: 1,
        DispatchResult.INVALID_URL: 1,
    }
    for dispatch_result, exit_code in expected.items():
        _patch_runtime(monkeypatch, {}, result=dispatch_result)
        result = runner.invoke(ytmp3_main.app, ["convert", VIDEO_URL, "-c", str(config_yaml_path)])
        assert result.exit_code == exit_code, dispatch_result


def test_convert_invalid_url_message(monkeypatch, config_yaml_path):
    runner = CliRunner()
    _patch_runtime(monkeypatch, {}, result=DispatchResult.INVALID_URL)

    result = runner.invoke(ytmp3_main.app, ["convert", "not-a-link", "-c", str(config_yaml_path)])

    assert result.exit_code == 1
    assert "not a YouTube video link" in result.output


def test_convert_fatal_error(monkeypatch, config_yaml_path):
    runner = CliRunner()
    _patch_runtime(monkeypatch, {})

    def boom(*args, **kwargs):
        raise RuntimeError("disk on fire")

    monkeypatch.setattr(ytmp3_main, "FFmpegAdapter", boom)

    result = runner.invoke(ytmp3_main.app, ["convert", VIDEO_URL, "-c", str(config_yaml_path)])

    assert result.exit_code == 1
    assert "Fatal Error: disk on fire" in result.output


def test_allow_persists_whitelist(config_yaml_path):
    runner = CliRunner()

    result = runner.invoke(ytmp3_main.app, ["allow", "55", "--config", str(config_yaml_path)])

    assert result.exit_code == 0
    assert "Added 55" in result.output
    with open(config_yaml_path) as f:
        saved = yaml.safe_load(f)
    assert saved["access"]["whitelist"] == [7, 55]


def test_allow_existing_user(config_yaml_path):
    runner = CliRunner()

    result = runner.invoke(ytmp3_main.app, ["allow", "7", "--config", str(config_yaml_path)])

    assert result.exit_code == 0
    assert "already allowed" in result.output


def test_allow_requires_config(tmp_path):
    runner = CliRunner()
    result = runner.invoke(ytmp3_main.app, ["allow", "55", "--config", str(tmp_path / "missing.yaml")])
    assert result.exit_code == 1


def test_limits_reports_configured_bitrate(config_yaml_path):
    runner = CliRunner()

    result = runner.invoke(ytmp3_main.app, ["limits", "--config", str(config_yaml_path)])

    assert result.exit_code == 0
    assert "192kbps" in result.output
    # 20000 * 8 / 192
    assert "833.333s" in result.output


def test_limits_bitrate_override(config_yaml_path):
    runner = CliRunner()
    result = runner.invoke(ytmp3_main.app, ["limits", "-c", str(config_yaml_path), "-b", "128"])
    assert "1250s" in result.output


def test_limits_rejects_zero_bitrate(config_yaml_path):
    runner = CliRunner()
    result = runner.invoke(ytmp3_main.app, ["limits", "-c", str(config_yaml_path), "-b", "0"])
    assert result.exit_code == 1
