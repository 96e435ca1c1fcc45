"""Tests for configuration loading."""

import pytest
import yaml

from surveylens.config import LLMConfig, SurveyLensConfig, create_default_config


def test_defaults():
    config = SurveyLensConfig()
    assert config.classifier.identifier_ratio == 0.8
    assert config.classifier.max_categories == 50
    assert config.correlation.max_columns == 8
    assert config.llm.temperature == 0.2
    assert config.type_aware_classification is False


def test_from_yaml(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "classifier:\n"
        "  max_categories: 20\n"
        "correlation:\n"
        "  max_columns: 4\n"
        "llm:\n"
        "  model: gpt-4o\n"
        "  api_key: from-file\n"
        "type_aware_classification: true\n",
        encoding="utf-8",
    )
    config = SurveyLensConfig.from_yaml(str(path))

    assert config.classifier.max_categories == 20
    assert config.classifier.identifier_ratio == 0.8
    assert config.correlation.max_columns == 4
    assert config.llm.model == "gpt-4o"
    assert config.llm.api_key == "from-file"
    assert config.type_aware_classification is True


def test_empty_yaml(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("", encoding="utf-8")
    assert SurveyLensConfig.from_yaml(str(path)).llm.model == "gpt-4o-mini"


def test_api_key_from_environment(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "from-env")
    assert LLMConfig().api_key == "from-env"
    assert LLMConfig(api_key="explicit").api_key == "explicit"


def test_to_dict_never_exports_the_key():
    config = SurveyLensConfig(llm=LLMConfig(api_key="secret"))
    assert "secret" not in repr(config.to_dict())


def test_create_default_config():
    config = create_default_config(storage_dir="/tmp/store", model="gpt-4o")
    assert config.registry.storage_dir == "/tmp/store"
    assert config.llm.model == "gpt-4o"


def test_yaml_must_be_a_mapping(tmp_path):
    path = tmp_path / "list.yaml"
    path.write_text("- classifier\n- llm\n", encoding="utf-8")
    with pytest.raises(ValueError):
        SurveyLensConfig.from_yaml(str(path))


def test_malformed_yaml_raises_yaml_error(tmp_path):
    path = tmp_path / "broken.yaml"
    path.write_text("llm: [unclosed\n", encoding="utf-8")
    with pytest.raises(yaml.YAMLError):
        SurveyLensConfig.from_yaml(str(path))


def test_assistant_defaults():
    config = LLMConfig()
    assert config.assistant_temperature == 0.3
    assert config.assistant_max_columns == 15
