"""Tests for the configuration module."""

from pathlib import Path

import pytest

from squidcalc._cli.config import ConfigError, SquidCalcConfig, find_pyproject_toml, get_config, load_config


class TestFindPyprojectToml:
    """Tests for find_pyproject_toml function."""

    def test_finds_in_current_directory(self, tmp_path: Path) -> None:
        pyproject = tmp_path / "pyproject.toml"
        pyproject.write_text("[project]\nname = 'test'\n")

        assert find_pyproject_toml(tmp_path) == pyproject

    def test_finds_in_parent_directory(self, tmp_path: Path) -> None:
        """Should find pyproject.toml in parent directory."""
        pyproject = tmp_path / "pyproject.toml"
        pyproject.write_text("[project]\nname = 'test'\n")

        subdir = tmp_path / "data" / "runs"
        subdir.mkdir(parents=True)

        assert find_pyproject_toml(subdir) == pyproject

    def test_ignores_directory_named_pyproject(self, tmp_path: Path) -> None:
        (tmp_path / "pyproject.toml").mkdir()

        assert find_pyproject_toml(tmp_path) != tmp_path / "pyproject.toml"


class TestLoadConfig:
    """Tests for reading the [tool.squidcalc] table."""

    def test_full_config(self, tmp_path: Path) -> None:
        pyproject = tmp_path / "pyproject.toml"
        pyproject.write_text(
            '[tool.squidcalc]\ntask = "task.toml"\noutput = "out/results.toml"\nmax_workers = 4\n',
        )

        config = load_config(pyproject)

        assert config.task == tmp_path / "task.toml"
        assert config.output == tmp_path / "out" / "results.toml"
        assert config.max_workers == 4
        assert config.project_root == tmp_path

    def test_absolute_path_kept(self, tmp_path: Path) -> None:
        task = tmp_path / "elsewhere" / "task.toml"
        pyproject = tmp_path / "pyproject.toml"
        pyproject.write_text(f"[tool.squidcalc]\ntask = '{task.as_posix()}'\n")

        assert load_config(pyproject).task == task

    def test_missing_section(self, tmp_path: Path) -> None:
        pyproject = tmp_path / "pyproject.toml"
        pyproject.write_text("[project]\nname = 'test'\n")

        config = load_config(pyproject)

        assert config == SquidCalcConfig(project_root=tmp_path)

    def test_unknown_key(self, tmp_path: Path) -> None:
        pyproject = tmp_path / "pyproject.toml"
        pyproject.write_text("[tool.squidcalc]\nworkers = 2\n")

        with pytest.raises(ConfigError, match="Unknown \\[tool.squidcalc\\] key\\(s\\): workers"):
            load_config(pyproject)

    @pytest.mark.parametrize("value", ["0", "-1", "true", "'4'", "2.5"])
    def test_invalid_max_workers(self, tmp_path: Path, value: str) -> None:
        pyproject = tmp_path / "pyproject.toml"
        pyproject.write_text(f"[tool.squidcalc]\nmax_workers = {value}\n")

        with pytest.raises(ConfigError, match="max_workers"):
            load_config(pyproject)

    def test_non_string_path(self, tmp_path: Path) -> None:
        pyproject = tmp_path / "pyproject.toml"
        pyproject.write_text("[tool.squidcalc]\ntask = 1\n")

        with pytest.raises(ConfigError, match="expected string path"):
            load_config(pyproject)

    def test_invalid_toml(self, tmp_path: Path) -> None:
        pyproject = tmp_path / "pyproject.toml"
        pyproject.write_text("[tool.squidcalc\n")

        with pytest.raises(ConfigError, match="Invalid TOML"):
            load_config(pyproject)


class TestGetConfig:
    def test_from_working_directory(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        (tmp_path / "pyproject.toml").write_text('[tool.squidcalc]\ntask = "task.toml"\n')
        monkeypatch.chdir(tmp_path)

        assert get_config().task == tmp_path.resolve() / "task.toml"
