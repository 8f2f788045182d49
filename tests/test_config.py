"""Tests for the configuration module."""

from pathlib import Path

import pytest

from adjmap._cli.config import AdjmapConfig, ConfigError, find_pyproject_toml, get_config, load_config


def write_pyproject(tmp_path: Path, body: str) -> Path:
    pyproject = tmp_path / "pyproject.toml"
    pyproject.write_text(body)
    return pyproject


class TestFindPyprojectToml:
    """Tests for find_pyproject_toml function."""

    def test_finds_in_current_directory(self, tmp_path: Path) -> None:
        """Should find pyproject.toml in current directory."""
        pyproject = write_pyproject(tmp_path, "[project]\nname = 'test'\n")

        assert find_pyproject_toml(tmp_path) == pyproject

    def test_finds_in_parent_directory(self, tmp_path: Path) -> None:
        """Should find pyproject.toml in parent directory."""
        pyproject = write_pyproject(tmp_path, "[project]\nname = 'test'\n")
        subdir = tmp_path / "maps" / "nested"
        subdir.mkdir(parents=True)

        assert find_pyproject_toml(subdir) == pyproject

    def test_returns_none_when_not_found(self, tmp_path: Path) -> None:
        """Should return None when no pyproject.toml is found."""
        assert find_pyproject_toml(tmp_path) is None


class TestLoadConfig:
    """Tests for reading the [tool.adjmap] table."""

    def test_no_section(self, tmp_path: Path) -> None:
        """Should return an empty config when the table is missing."""
        pyproject = write_pyproject(tmp_path, "[project]\nname = 'test'\n")

        assert load_config(pyproject) == AdjmapConfig(project_root=tmp_path)

    def test_all_keys(self, tmp_path: Path) -> None:
        """Should read every supported key."""
        pyproject = write_pyproject(
            tmp_path,
            """
[tool.adjmap]
map = "maps/project.json"
scenario = "cheap"
include-hidden = true
""",
        )

        config = load_config(pyproject)

        assert config.map == tmp_path / "maps" / "project.json"
        assert config.scenario == "cheap"
        assert config.include_hidden is True
        assert config.project_root == tmp_path

    def test_absolute_map_path_kept(self, tmp_path: Path) -> None:
        """Should not rebase an absolute map path."""
        absolute = tmp_path / "elsewhere" / "map.toml"
        pyproject = write_pyproject(tmp_path, f'[tool.adjmap]\nmap = "{absolute.as_posix()}"\n')

        assert load_config(pyproject).map == absolute

    def test_unknown_keys(self, tmp_path: Path) -> None:
        """Should reject keys it does not know."""
        pyproject = write_pyproject(tmp_path, '[tool.adjmap]\nmap = "m.json"\nprojekt = "x"\n')

        with pytest.raises(ConfigError, match="Unknown keys in \\[tool.adjmap\\]: projekt"):
            load_config(pyproject)

    @pytest.mark.parametrize(
        ("body", "message"),
        [
            ("map = 3", "map: expected string path"),
            ("scenario = 1", "scenario: expected string"),
            ('include-hidden = "yes"', "include-hidden: expected boolean"),
        ],
    )
    def test_invalid_types(self, tmp_path: Path, body: str, message: str) -> None:
        """Should reject values of the wrong type."""
        pyproject = write_pyproject(tmp_path, f"[tool.adjmap]\n{body}\n")

        with pytest.raises(ConfigError, match=message):
            load_config(pyproject)

    def test_invalid_toml(self, tmp_path: Path) -> None:
        """Should wrap TOML syntax errors."""
        pyproject = write_pyproject(tmp_path, "[tool.adjmap\n")

        with pytest.raises(ConfigError, match="Invalid TOML"):
            load_config(pyproject)


class TestGetConfig:
    """Tests for get_config function."""

    def test_reads_from_cwd(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Should find the config from the working directory."""
        write_pyproject(tmp_path, '[tool.adjmap]\nscenario = "cheap"\n')
        monkeypatch.chdir(tmp_path)

        assert get_config().scenario == "cheap"
