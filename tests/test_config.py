from __future__ import annotations

from pathlib import Path

import pytest

from focusflow.config import (
    DEFAULT_CONFIG_TEMPLATE,
    ConfigError,
    config_value,
    load_config,
    resolve_path,
    write_config,
)


def test_missing_file_yields_defaults(tmp_path: Path) -> None:
    config = load_config(tmp_path / "absent.yaml")

    assert config == DEFAULT_CONFIG_TEMPLATE
    assert config is not DEFAULT_CONFIG_TEMPLATE


def test_file_values_override_defaults_section_by_section(tmp_path: Path) -> None:
    path = tmp_path / "focusflow.yaml"
    path.write_text("session:\n  tier: premium\nrefinement:\n  reorder_policy: append\n", encoding="utf-8")

    config = load_config(path)

    assert config["session"] == {"tier": "premium", "owner": "local"}
    assert config["refinement"]["reorder_policy"] == "append"
    assert config["models"]["generation"] == DEFAULT_CONFIG_TEMPLATE["models"]["generation"]
    assert config["paths"]["config"] == path.as_posix()


@pytest.mark.parametrize("content", ["session: [unclosed", "- just\n- a list\n"])
def test_unusable_files_raise_config_error(tmp_path: Path, content: str) -> None:
    path = tmp_path / "focusflow.yaml"
    path.write_text(content, encoding="utf-8")

    with pytest.raises(ConfigError):
        load_config(path)


def test_write_then_load_keeps_values(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "focusflow.yaml"
    data = dict(DEFAULT_CONFIG_TEMPLATE)
    data["session"] = {"tier": "premium", "owner": "alex"}

    write_config(path, data)

    assert load_config(path)["session"]["owner"] == "alex"


def test_config_value_and_resolve_path(tmp_path: Path) -> None:
    config = load_config()

    assert config_value(config, "telemetry.batch_size") == 10
    assert config_value(config, "telemetry.missing", "fallback") == "fallback"
    assert resolve_path(config, "paths.logs", tmp_path) == tmp_path / "data" / "logs"
    with pytest.raises(ConfigError):
        resolve_path(config, "paths.cache")
