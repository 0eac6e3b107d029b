from pathlib import Path

from epubenc_backend.config import DEFAULT_MAX_UPLOAD_BYTES, GatewayConfig


def test_defaults():
    config = GatewayConfig.from_env({})
    assert config.max_upload_bytes == DEFAULT_MAX_UPLOAD_BYTES == 50 * 1024 * 1024
    assert config.workspaces_root is None
    assert config.engine_command == "lcpencrypt"
    assert config.engine_timeout_seconds is None
    assert config.log_level == "INFO"


def test_overrides(tmp_path: Path):
    config = GatewayConfig.from_env(
        {
            "EPUBENC_MAX_UPLOAD_BYTES": "1024",
            "EPUBENC_WORKSPACES_ROOT": str(tmp_path),
            "EPUBENC_STALE_WORKSPACE_SECONDS": "5",
            "EPUBENC_ENGINE_COMMAND": "/opt/lcp/lcpencrypt",
            "EPUBENC_ENGINE_TIMEOUT_SECONDS": "120",
            "EPUBENC_STREAM_CHUNK_BYTES": "4096",
            "EPUBENC_LOG_LEVEL": "debug",
        }
    )
    assert config.max_upload_bytes == 1024
    assert config.workspaces_root == tmp_path.resolve()
    assert config.stale_workspace_seconds == 5.0
    assert config.engine_command == "/opt/lcp/lcpencrypt"
    assert config.engine_timeout_seconds == 120.0
    assert config.stream_chunk_bytes == 4096
    assert config.log_level == "DEBUG"


def test_blank_values_fall_back():
    config = GatewayConfig.from_env({"EPUBENC_WORKSPACES_ROOT": "  ", "EPUBENC_ENGINE_TIMEOUT_SECONDS": ""})
    assert config.workspaces_root is None
    assert config.engine_timeout_seconds is None
