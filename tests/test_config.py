"""
Tests for the install description loader.
"""

from pathlib import Path

import pytest

from installkit.core.config.loader import find_description_file, load_description
from installkit.core.errors import ConfigError

MINIMAL = """\
id: org.example.tool
name: Example Tool
version: 1.2.0
root_location: /opt/example
"""


class TestFindDescriptionFile:
    def test_finds_in_start_dir(self, tmp_path: Path):
        (tmp_path / "install.yml").write_text(MINIMAL)
        assert find_description_file(tmp_path) == (tmp_path / "install.yml").resolve()

    def test_walks_up(self, tmp_path: Path):
        (tmp_path / "install.yml").write_text(MINIMAL)
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        assert find_description_file(nested) == (tmp_path / "install.yml").resolve()

    def test_not_found(self, tmp_path: Path):
        assert find_description_file(tmp_path) is None


class TestLoadDescription:
    def test_minimal(self, tmp_path: Path):
        path = tmp_path / "install.yml"
        path.write_text(MINIMAL)

        description = load_description(path)

        assert description.id == "org.example.tool"
        assert description.root_location == Path("/opt/example")
        assert description.install_location == Path("/opt/example/.installkit")
        assert description.source_location == tmp_path.resolve()

    def test_relative_locations_resolve_against_file(self, tmp_path: Path):
        path = tmp_path / "install.yml"
        path.write_text(MINIMAL.replace("/opt/example", "build/root"))

        description = load_description(path)

        assert description.root_location == tmp_path.resolve() / "build" / "root"

    def test_full_description(self, tmp_path: Path):
        path = tmp_path / "install.yml"
        path.write_text(
            """\
product:
  id: org.example.fix
  name: Example Fix
  version: 1.2.1
  root_location: /opt/example
  patch: true
  requires:
    - org.example.tool [1.2,2.0)
actions:
  - action: installkit.command
    params:
      phase: post_install
      install: ["echo", "hi"]
excluded_actions: [installkit.provision]
uninstall:
  remove_directories: false
  text: Goodbye
uninstall_files: ["bin/remove.sh:uninstall.sh"]
use_registry: true
category: tools
"""
        )

        description = load_description(path)

        assert description.patch is True
        assert description.requires[0].id == "org.example.tool"
        assert description.requires[0].version_range == "[1.2,2.0)"
        assert description.actions[0].action == "installkit.command"
        assert description.actions[0].params["install"] == ["echo", "hi"]
        assert description.excluded_actions == ["installkit.provision"]
        assert description.uninstall.remove_directories is False
        assert description.uninstall.text == "Goodbye"
        assert description.use_registry is True
        assert description.category == "tools"

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(ConfigError, match="not found"):
            load_description(tmp_path / "install.yml")

    def test_invalid_yaml(self, tmp_path: Path):
        path = tmp_path / "install.yml"
        path.write_text("id: [unclosed")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_description(path)

    def test_not_a_mapping(self, tmp_path: Path):
        path = tmp_path / "install.yml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigError, match="mapping"):
            load_description(path)

    def test_missing_required_field(self, tmp_path: Path):
        path = tmp_path / "install.yml"
        path.write_text("id: x\nname: y\n")
        with pytest.raises(ConfigError, match="Invalid install description"):
            load_description(path)

    def test_auto_detect(self, tmp_path: Path, monkeypatch):
        (tmp_path / "install.yml").write_text(MINIMAL)
        monkeypatch.chdir(tmp_path)
        assert load_description().id == "org.example.tool"

    def test_numeric_version_becomes_text(self, tmp_path: Path):
        path = tmp_path / "install.yml"
        path.write_text(MINIMAL.replace("1.2.0", "2.0"))
        assert load_description(path).version == "2.0"
