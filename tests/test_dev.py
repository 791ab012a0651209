"""Tests for the development utility (dev.py)."""

import dev


class TestDevUtility:

    def test_generated_secret_is_long_enough_for_config(self):
        secret = dev.generate_secret_key()

        assert len(secret) >= 32
        assert secret != dev.generate_secret_key()

    def test_check_env_accepts_valid_environment(self, env, capsys):
        assert dev.check_env() is True
        assert "looks good" in capsys.readouterr().out

    def test_check_env_reports_missing_variables(self, env, capsys):
        env.delenv("OAUTH_CLIENT_SECRET")

        assert dev.check_env() is False
        assert "OAUTH_CLIENT_SECRET" in capsys.readouterr().out

    def test_check_env_reports_invalid_values(self, env, capsys):
        env.setenv("JWT_SECRET", "short")

        assert dev.check_env() is False
        assert "Invalid configuration" in capsys.readouterr().out

    def test_secret_command(self, capsys, monkeypatch):
        monkeypatch.chdir("/")

        assert dev.main(["secret"]) == 0
        assert len(capsys.readouterr().out.strip()) >= 32
