from chatstream.cli.config import CLIConfig, get_config
from chatstream.core.config import EngineConfig, get_engine_config


class TestCLIConfig:
    def test_defaults(self, monkeypatch) -> None:
        for name in (
            "CHATSTREAM_API_BASE",
            "CHATSTREAM_CLI_TIMEOUT",
            "CHATSTREAM_CLI_OUTPUT_FORMAT",
            "CHATSTREAM_CLI_RETRY_TIMES",
        ):
            monkeypatch.delenv(name, raising=False)

        config = get_config()
        assert config == CLIConfig()
        assert config.to_dict()["api_base"] == "http://127.0.0.1:8000"

    def test_env_overrides_defaults(self, monkeypatch) -> None:
        monkeypatch.setenv("CHATSTREAM_API_BASE", "http://relay:9000")
        monkeypatch.setenv("CHATSTREAM_CLI_TIMEOUT", "12")
        monkeypatch.setenv("CHATSTREAM_CLI_OUTPUT_FORMAT", "JSON")
        monkeypatch.setenv("CHATSTREAM_CLI_RETRY_TIMES", "5")

        config = get_config()
        assert config.api_base == "http://relay:9000"
        assert config.timeout == 12
        assert config.output_format == "json"
        assert config.retry_times == 5

    def test_flags_override_env(self, monkeypatch) -> None:
        monkeypatch.setenv("CHATSTREAM_API_BASE", "http://relay:9000")
        config = get_config(api_base="http://flag:1", timeout=3, output_format="text", verbose=True)
        assert config.api_base == "http://flag:1"
        assert config.timeout == 3
        assert config.verbose is True

    def test_invalid_env_values_fall_back(self, monkeypatch) -> None:
        monkeypatch.setenv("CHATSTREAM_CLI_TIMEOUT", "soon")
        monkeypatch.setenv("CHATSTREAM_CLI_OUTPUT_FORMAT", "yaml")
        config = get_config()
        assert config.timeout == 30
        assert config.output_format == "text"


class TestEngineConfig:
    def test_defaults(self, monkeypatch) -> None:
        for name in (
            "CHATSTREAM_IDLE_TIMEOUT",
            "CHATSTREAM_CHUNK_SIZE",
            "CHATSTREAM_DISPATCH_INTERVAL_MS",
            "CHATSTREAM_SENDER",
            "CHATSTREAM_ENTITY_ID",
        ):
            monkeypatch.delenv(name, raising=False)

        assert get_engine_config() == EngineConfig()
        assert EngineConfig().idle_timeout == 300.0
        assert EngineConfig().max_chunk_size == 9

    def test_env_values(self, monkeypatch) -> None:
        monkeypatch.setenv("CHATSTREAM_IDLE_TIMEOUT", "45")
        monkeypatch.setenv("CHATSTREAM_CHUNK_SIZE", "16")
        monkeypatch.setenv("CHATSTREAM_DISPATCH_INTERVAL_MS", "10")
        monkeypatch.setenv("CHATSTREAM_SENDER", "helper")

        config = get_engine_config()
        assert config.idle_timeout == 45.0
        assert config.max_chunk_size == 16
        assert config.min_dispatch_interval == 0.01
        assert config.sender == "helper"

    def test_arguments_win(self, monkeypatch) -> None:
        monkeypatch.setenv("CHATSTREAM_IDLE_TIMEOUT", "45")
        config = get_engine_config(idle_timeout=2.5, min_dispatch_interval=0)
        assert config.idle_timeout == 2.5
        assert config.min_dispatch_interval == 0

    def test_bad_env_values_ignored(self, monkeypatch) -> None:
        monkeypatch.setenv("CHATSTREAM_IDLE_TIMEOUT", "-1")
        monkeypatch.setenv("CHATSTREAM_CHUNK_SIZE", "zero")
        config = get_engine_config()
        assert config.idle_timeout == 300.0
        assert config.max_chunk_size == 9
