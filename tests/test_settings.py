from pathlib import Path

import pytest

from scenekit.api import EditorSettings


def test_defaults_when_environment_is_empty() -> None:
    settings = EditorSettings.from_env({})

    assert settings.project_root is None
    assert settings.scene_store_path is None
    assert settings.scene_dir == "scenes-data"
    assert settings.output_dir == "scenes"
    assert settings.default_preset == "mobile-portrait"
    assert settings.log_level == "INFO"


def test_values_are_read_and_normalised(tmp_path: Path) -> None:
    settings = EditorSettings.from_env(
        {
            "SCENEKIT_PROJECT_ROOT": f"  {tmp_path}  ",
            "SCENEKIT_SCENE_DIR": "data",
            "SCENEKIT_OUTPUT_DIR": "   ",
            "SCENEKIT_DEFAULT_PRESET": "ipad",
            "SCENEKIT_LOG_LEVEL": "debug",
        }
    )

    assert settings.project_root == tmp_path
    assert settings.scene_store_path == tmp_path / "data"
    assert settings.output_dir == "scenes"
    assert settings.default_preset == "ipad"
    assert settings.log_level == "DEBUG"


def test_home_directory_is_expanded(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("HOME", str(tmp_path))

    settings = EditorSettings.from_env({"SCENEKIT_PROJECT_ROOT": "~/game"})

    assert settings.project_root == tmp_path / "game"


@pytest.mark.parametrize(
    "environ",
    [
        {"SCENEKIT_DEFAULT_PRESET": "watch"},
        {"SCENEKIT_LOG_LEVEL": "chatty"},
    ],
)
def test_invalid_values_raise(environ: dict[str, str]) -> None:
    with pytest.raises(ValueError):
        EditorSettings.from_env(environ)
