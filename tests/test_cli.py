"""Tests for the CLI entry point, settings and the log-based rule suggestion."""

from pathlib import Path

import pytest
from click.testing import CliRunner

from interceptor import cli
from interceptor.errors import BadTargetUrl
from interceptor.proxy_fallback import reconstruct_target_url
from interceptor.settings import Settings
from interceptor.suggest import NO_SUGGESTION, UNPARSABLE, analyze_log, suggest_rule_prefix


@pytest.fixture
def cli_runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def captured_run(monkeypatch: pytest.MonkeyPatch) -> dict:
    captured: dict = {}

    def fake_run(app, **kwargs):
        captured["app"] = app
        captured.update(kwargs)

    monkeypatch.setattr(cli.uvicorn, "run", fake_run)
    monkeypatch.setattr(cli, "configure_logging", lambda **kwargs: captured.update(logging=kwargs))
    return captured


class TestServe:
    def test_defaults(self, cli_runner: CliRunner, captured_run: dict) -> None:
        result = cli_runner.invoke(cli.main, ["serve"])
        assert result.exit_code == 0, result.output
        assert captured_run["host"] == "0.0.0.0"
        assert captured_run["port"] == 5050
        assert captured_run["app"].state.settings.mode == "intercept"
        assert captured_run["logging"] == {"verbose": False, "log_json": False}

    def test_flags_override(self, cli_runner: CliRunner, captured_run: dict,
                            tmp_path: Path) -> None:
        result = cli_runner.invoke(cli.main, [
            "serve", "--mode", "proxy", "--port", "8080", "--root-dir", str(tmp_path),
            "--data-dir", str(tmp_path), "--verbose", "--log-json",
        ])
        assert result.exit_code == 0, result.output
        settings = captured_run["app"].state.settings
        assert settings.mode == "proxy"
        assert settings.root_dir == tmp_path
        assert captured_run["port"] == 8080
        assert captured_run["logging"] == {"verbose": True, "log_json": True}

    def test_env_vars(self, cli_runner: CliRunner, captured_run: dict,
                      monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("INTERCEPTOR_MODE", "proxy")
        monkeypatch.setenv("INTERCEPTOR_PORT", "9001")
        result = cli_runner.invoke(cli.main, ["serve"])
        assert result.exit_code == 0, result.output
        assert captured_run["port"] == 9001
        assert captured_run["app"].state.settings.mode == "proxy"

    def test_rejects_unknown_mode(self, cli_runner: CliRunner, captured_run: dict) -> None:
        result = cli_runner.invoke(cli.main, ["serve", "--mode", "mirror"])
        assert result.exit_code != 0
        assert "app" not in captured_run


class TestSettings:
    def test_paths(self, tmp_path: Path) -> None:
        settings = Settings(data_dir=tmp_path)
        assert settings.config_path == tmp_path / "config.json"
        assert settings.log_path == tmp_path / "requests.log.json"


class TestReconstructTargetUrl:
    def test_repairs_single_slash(self) -> None:
        url = reconstruct_target_url(["https:", "unconfigured.example.com", "file.bin"])
        assert url == "https://unconfigured.example.com/file.bin"

    def test_accepts_path_string(self) -> None:
        assert reconstruct_target_url("/http:/h.example.com/a/b") == "http://h.example.com/a/b"

    def test_canonical_form_untouched(self) -> None:
        assert reconstruct_target_url("https://h.example.com/a") == "https://h.example.com/a"

    def test_appends_query(self) -> None:
        assert reconstruct_target_url("https:/h.example.com/a", "x=1") == "https://h.example.com/a?x=1"

    @pytest.mark.parametrize("path", ["", "file.bin", "ftp:/h.example.com/a", "https:/"])
    def test_invalid(self, path: str) -> None:
        with pytest.raises(BadTargetUrl):
            reconstruct_target_url(path)


class TestSuggestRulePrefix:
    def test_first_download_url(self) -> None:
        log = (
            "GET https://example.com/index.html\n"
            "GET https://cdn.example.com/repo/blobs/sha256-abc 200\n"
            "GET https://cdn.example.com/other/files/x.bin\n"
        )
        assert suggest_rule_prefix(log) == "https://cdn.example.com/repo/blobs/"

    def test_no_match(self) -> None:
        assert suggest_rule_prefix("GET https://example.com/index.html") is None
        assert suggest_rule_prefix("") is None

    def test_unparsable_url(self) -> None:
        log = "GET https://[broken/models/llama.gguf"
        assert suggest_rule_prefix(log) is None
        assert analyze_log(log) == UNPARSABLE


class TestAnalyzeLog:
    def test_suggestion(self) -> None:
        log = "pulling https://registry.example.com/v2/library/blobs/sha256-1"
        assert analyze_log(log) == "https://registry.example.com/v2/library/blobs/"

    def test_nothing_found(self) -> None:
        assert analyze_log("") == NO_SUGGESTION
        assert analyze_log(None) == NO_SUGGESTION
