import pytest

from sourcehunter.config import ScanConfig, load_config, parse_min_confidence
from sourcehunter.errors import ConfigError


FULL_CONFIG = """\
sources:
  javascript: ["getUntrusted"]
sinks:
  java:
    sql: ["rawExecute"]
sanitizers:
  php: ["customSanitize"]
  java:
    sql: ["Escaper.sql"]
exclude_paths:
  - "vendor/"
  - "**/*_test.go"
suppression_keyword: "skipcheck"
min_confidence: MEDIUM
dedup: true
max_workers: 4
file_timeout: 5
"""


def write(path, text):
    path.write_text(text)
    return str(path)


class TestDiscovery:
    """Locating .sourcehunter.yml."""

    def test_defaults_without_file(self, tmp_path):
        config = load_config(str(tmp_path))
        assert config == ScanConfig()
        assert config.suppression_keyword == "nosec"
        assert config.file_timeout == 30.0
        assert config.dedup is False

    def test_walks_up_from_target(self, tmp_path):
        write(tmp_path / ".sourcehunter.yml", "dedup: true\n")
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        config = load_config(str(nested))
        assert config.dedup is True
        assert config.source_path == str(tmp_path / ".sourcehunter.yml")

    def test_yaml_extension(self, tmp_path):
        write(tmp_path / ".sourcehunter.yaml", "min_confidence: 70\n")
        assert load_config(str(tmp_path)).min_confidence == 70

    def test_explicit_path_missing(self, tmp_path):
        with pytest.raises(ConfigError):
            load_config(str(tmp_path), str(tmp_path / "missing.yml"))


class TestParsing:
    """Values and validation."""

    def test_full_config(self, tmp_path):
        config = load_config(str(tmp_path), write(tmp_path / "c.yml", FULL_CONFIG))
        assert config.get_sources("javascript") == ["getUntrusted"]
        assert config.get_sinks("java", "sql") == ["rawExecute"]
        assert config.get_sanitizers("php") == ["customSanitize"]
        assert config.get_sanitizers("php", "xss") == ["customSanitize"]
        assert config.get_sanitizers("java", "sql") == ["Escaper.sql"]
        assert config.suppression_keyword == "skipcheck"
        assert config.min_confidence == 50
        assert config.dedup is True
        assert config.max_workers == 4
        assert config.file_timeout == 5.0

    def test_empty_file(self, tmp_path):
        assert load_config(str(tmp_path), write(tmp_path / "c.yml", "")).exclude_paths == []

    @pytest.mark.parametrize("text", [
        "sources: [unclosed\n",
        "- just\n- a list\n",
        "sinks:\n  java:\n    telepathy: [x]\n",
        "sanitizers:\n  java:\n    telepathy: [x]\n",
        "sources:\n  python: getinput\n",
        "dedup: sometimes\n",
        "file_timeout: -1\n",
        "max_workers: 0\n",
        "min_confidence: 150\n",
    ])
    def test_invalid(self, tmp_path, text):
        with pytest.raises(ConfigError):
            load_config(str(tmp_path), write(tmp_path / "c.yml", text))

    @pytest.mark.parametrize("value,expected", [
        ("HIGH", 80), ("medium", 50), ("LOW", 0), (0, 0), (100, 100), ("65", 65),
    ])
    def test_min_confidence_levels(self, value, expected):
        assert parse_min_confidence(value) == expected

    @pytest.mark.parametrize("value", [150, -1, "extreme", True, None])
    def test_min_confidence_rejects(self, value):
        with pytest.raises(ConfigError):
            parse_min_confidence(value)


class TestExclusion:
    """exclude_paths matching."""

    @pytest.mark.parametrize("path,excluded", [
        ("vendor/lib/a.php", True),
        ("app/vendor/b.php", True),
        ("pkg/server_test.go", True),
        ("pkg/server.go", False),
        ("src\\vendor\\c.php", True),
    ])
    def test_should_exclude(self, path, excluded):
        config = ScanConfig(exclude_paths=["vendor/", "**/*_test.go"])
        assert config.should_exclude(path) is excluded
