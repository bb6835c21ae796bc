"""
Tests for YAML configuration loading.
"""

import io

import pytest

from finlite import ConfigError, TokenType, execute, tokenize
from finlite.config import FinLiteConfig, load_config, CONFIG_ENV_VAR, CONFIG_FILENAME


@pytest.fixture
def clean_env(tmp_path, monkeypatch):
    """Run in an empty directory with no config override."""
    monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path


class TestDefaults:
    """Test built-in settings."""

    def test_defaults(self):
        config = FinLiteConfig()
        assert config.tab_width == 4
        assert config.max_errors == 20
        assert config.simulation_results_name == "lastSimulation"
        assert config.currencies == []

    def test_default_z_scores(self):
        config = FinLiteConfig()
        assert config.var_z_scores == {0.95: 1.65, 0.99: 2.33}
        assert config.var_default_z == 1.0

    def test_defaults_are_not_shared(self):
        first = FinLiteConfig()
        first.var_z_scores[0.9] = 1.28
        assert 0.9 not in FinLiteConfig().var_z_scores


class TestLoadConfig:
    """Test load_config and its lookup order."""

    def test_load_file(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text(
            "tab_width: 2\n"
            "var_z_scores:\n"
            "  0.9: 1.28\n"
            "currencies: [sek, nok]\n"
        )
        config = load_config(path)
        assert config.tab_width == 2
        assert config.var_z_scores == {0.9: 1.28}
        assert config.currencies == ["SEK", "NOK"]
        assert config.max_errors == 20  # untouched keys keep defaults

    def test_empty_file_gives_defaults(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_config(path) == FinLiteConfig()

    def test_missing_explicit_path(self, tmp_path):
        with pytest.raises(ConfigError) as exc_info:
            load_config(tmp_path / "nope.yaml")
        assert "not found" in str(exc_info.value)

    def test_unknown_key(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("colour: blue\n")
        with pytest.raises(ConfigError) as exc_info:
            load_config(path)
        assert "unknown configuration keys: colour" in str(exc_info.value)

    @pytest.mark.parametrize("text", [
        "tab_width: wide\n",
        "tab_width: 0\n",
        "irr_iterations: -5\n",
        "var_z_scores: {high: 3}\n",
    ])
    def test_bad_values(self, tmp_path, text):
        path = tmp_path / "bad.yaml"
        path.write_text(text)
        with pytest.raises(ConfigError):
            load_config(path)

    def test_not_a_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- 1\n- 2\n")
        with pytest.raises(ConfigError):
            load_config(path)

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("tab_width: [1, 2\n")
        with pytest.raises(ConfigError) as exc_info:
            load_config(path)
        assert "YAML parse error" in str(exc_info.value)

    def test_environment_variable(self, clean_env, monkeypatch):
        path = clean_env / "env.yaml"
        path.write_text("max_errors: 3\n")
        monkeypatch.setenv(CONFIG_ENV_VAR, str(path))
        assert load_config().max_errors == 3

    def test_working_directory_file(self, clean_env):
        (clean_env / CONFIG_FILENAME).write_text("simulation_results_name: sims\n")
        assert load_config().simulation_results_name == "sims"

    def test_nothing_found(self, clean_env):
        assert load_config() == FinLiteConfig()


class TestConfigEffects:
    """Settings reach the lexer and runtime."""

    def test_extra_currency(self):
        config = FinLiteConfig.from_mapping({"currencies": ["sek"]})
        token = tokenize("10 SEK", currencies=config.currencies)[0]
        assert token.type == TokenType.MONEY

    def test_default_z_when_confidence_not_listed(self):
        config = FinLiteConfig(var_default_z=2.0)
        result = execute("VAR([1, 3], 0.5)", config=config, output=io.StringIO())
        assert result.value.data == pytest.approx(2.0)

    def test_from_mapping_rejects_scalars(self):
        with pytest.raises(ConfigError):
            FinLiteConfig.from_mapping(42)
