from pathlib import Path

import pytest

from spend_categorizer.core import settings


def test_read_config_file(tmp_path: Path) -> None:
    config = tmp_path / "config.yaml"
    config.write_text(
        "# thresholds\n"
        "FUZZY_THRESHOLD: 0.75\n"
        "ENABLED_PHASES: '1,2'  # no ML\n"
        "EMPTY:\n"
        "not a pair\n",
        encoding="utf-8",
    )

    values = settings.read_config_file(str(config))

    assert values == {"FUZZY_THRESHOLD": "0.75", "ENABLED_PHASES": "1,2"}
    assert settings.read_config_file(str(tmp_path / "missing.yaml")) == {}


def test_read_config_file_keeps_hash_inside_quotes(tmp_path: Path) -> None:
    config = tmp_path / "config.yaml"
    config.write_text(
        "LOG_DIR: \"logs # archive\"  # where logs go\n"
        "PHASE2_METHODS: 'keyword,fuzzy' # no tfidf\n"
        "LABEL: \"say \\\"hi\\\" # there\"\n",
        encoding="utf-8",
    )

    values = settings.read_config_file(str(config))

    assert values == {
        "LOG_DIR": "logs # archive",
        "PHASE2_METHODS": "keyword,fuzzy",
        "LABEL": 'say "hi" # there',
    }


def test_thresholds_fall_back_on_invalid_values(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FUZZY_THRESHOLD", "0.9")
    assert settings.fuzzy_threshold() == 0.9

    monkeypatch.setenv("FUZZY_THRESHOLD", "high")
    assert settings.fuzzy_threshold() == settings.DEFAULT_FUZZY_THRESHOLD

    monkeypatch.setenv("TFIDF_THRESHOLD", "1.5")
    assert settings.tfidf_threshold() == settings.DEFAULT_TFIDF_THRESHOLD

    monkeypatch.delenv("ML_THRESHOLD", raising=False)
    assert settings.ml_threshold() == settings.DEFAULT_ML_THRESHOLD


def test_phase_selection_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ENABLED_PHASES", "1, 3, 7")
    monkeypatch.setenv("PHASE2_METHODS", "Keyword,pattern,keyword,llm")

    assert settings.get_env_phases() == frozenset({1, 3})
    assert settings.get_env_phase2_methods() == frozenset({"keyword", "pattern"})

    monkeypatch.delenv("ENABLED_PHASES")
    assert settings.get_env_phases() == settings.DEFAULT_ENABLED_PHASES


def test_env_bool_and_int(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("VALIDATE_TAXONOMY", "Yes")
    assert settings.get_env_bool("VALIDATE_TAXONOMY")
    monkeypatch.setenv("VALIDATE_TAXONOMY", "0")
    assert not settings.get_env_bool("VALIDATE_TAXONOMY")

    monkeypatch.setenv("TRAINING_EPOCHS", "0")
    assert settings.get_env_int("TRAINING_EPOCHS", 10, min_value=1) == 10
    monkeypatch.setenv("TRAINING_EPOCHS", "25")
    assert settings.get_env_int("TRAINING_EPOCHS", 10, min_value=1) == 25


def test_load_environment_fills_missing_keys(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    (tmp_path / "config.yaml").write_text("FUZZY_THRESHOLD: 0.65\nTFIDF_THRESHOLD: 0.5\n", encoding="utf-8")
    for name in ("_CONFIG_FILE_PATH", "_CONFIG_FILE_VALUES", "_EXTERNAL_ENV_KEYS"):
        monkeypatch.setattr(settings, name, getattr(settings, name))
    monkeypatch.setenv("CONFIG_DIR", str(tmp_path))
    # setenv first so teardown removes the value load_environment writes
    monkeypatch.setenv("FUZZY_THRESHOLD", "unset")
    monkeypatch.delenv("FUZZY_THRESHOLD")
    monkeypatch.setenv("TFIDF_THRESHOLD", "0.4")

    settings.load_environment()

    assert settings.get_config_path() == str(tmp_path / "config.yaml")
    assert settings.fuzzy_threshold() == 0.65
    # The environment wins over the config file
    assert settings.tfidf_threshold() == 0.4
    assert settings.is_env_override("TFIDF_THRESHOLD")
    assert not settings.is_env_override("FUZZY_THRESHOLD")
