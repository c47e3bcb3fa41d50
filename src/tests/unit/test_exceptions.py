"""Tests for supervisor exception context."""

from cliproxy_supervisor.exceptions import (
    BinaryDownloadError,
    LoginFailedError,
    PortAllocationError,
    PrematureExitError,
    ReadinessTimeoutError,
    SpawnError,
    SupervisorError,
)


class TestSupervisorErrors:
    """Test cases for error messages and structured context."""

    def test_all_errors_share_base(self):
        errors = [
            SpawnError("/bin/x"),
            PortAllocationError(),
            PrematureExitError(1),
            ReadinessTimeoutError("http://127.0.0.1:1/v1/models", 3, 0.5),
            LoginFailedError(2),
            BinaryDownloadError("boom"),
        ]

        for error in errors:
            assert isinstance(error, SupervisorError)
            assert error.to_dict()["error_type"] == type(error).__name__

    def test_premature_exit_message(self):
        error = PrematureExitError(2, port=8317, config_path="/tmp/c/config.yaml")

        assert str(error) == "CLIProxyAPI exited before ready (code 2)"
        assert error.details == {
            "exit_code": 2,
            "port": 8317,
            "config_path": "/tmp/c/config.yaml",
        }
        assert error.to_dict()["suggestion"]

    def test_spawn_error_context(self):
        cause = FileNotFoundError(2, "No such file or directory")
        error = SpawnError("/opt/cliproxyapi", ["--config", "c.yaml"], cause)

        assert error.argv == ["--config", "c.yaml"]
        assert error.cause is cause
        assert str(error).startswith("Failed to launch /opt/cliproxyapi")

    def test_readiness_timeout_context(self):
        error = ReadinessTimeoutError(
            "http://127.0.0.1:1/v1/models", 60, 12.3456, last_status=503
        )

        assert error.details["attempts"] == 60
        assert error.details["elapsed_seconds"] == 12.346
        assert error.last_status == 503
        assert error.process is None

    def test_base_error_without_extras(self):
        error = SupervisorError("plain")

        assert error.to_dict() == {"error_type": "SupervisorError", "message": "plain"}
