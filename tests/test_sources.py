import zipfile

import pytest

from sourcehunter.config import ScanConfig
from sourcehunter.errors import ExtractionError
from sourcehunter.sources import FileCollector, collect, decode, detect_minified, should_skip_file


def names(files):
    return [f.filename for f in files]


class TestDirectory:
    """Walking a project directory."""

    def test_collects_code_and_manifests(self, project):
        assert names(collect(str(project))) == ["package.json", "src/app.js", "src/util.py"]

    def test_scan_all_includes_vendor_dirs(self, project):
        assert "node_modules/lib/index.js" in names(collect(str(project), scan_all=True))

    def test_vendor_library_names_only_skip_web_files(self, tmp_path):
        (tmp_path / "jquery.js").write_text("$(x);\n")
        (tmp_path / "jquery_helpers.py").write_text("x = 1\n")
        (tmp_path / "app.min.js").write_text("a();\n")
        assert names(collect(str(tmp_path))) == ["jquery_helpers.py"]

    def test_config_exclusions(self, project):
        config = ScanConfig(exclude_paths=["src/"])
        assert names(collect(str(project), config)) == ["package.json"]

    def test_max_file_size(self, project):
        config = ScanConfig(max_file_size=60)
        assert "src/app.js" not in names(collect(str(project), config))

    def test_single_file(self, project):
        files = collect(str(project / "src" / "app.js"))
        assert names(files) == ["app.js"]
        assert "eval" in files[0].content

    def test_missing_target(self, tmp_path):
        with pytest.raises(ExtractionError):
            collect(str(tmp_path / "nope"))


class TestArchive:
    """Collecting from .zip archives."""

    def test_zip(self, tmp_path):
        archive = tmp_path / "src.zip"
        with zipfile.ZipFile(archive, "w") as zf:
            zf.writestr("app/main.py", "import os\n")
            zf.writestr("app/node_modules/x/index.js", "eval(x)\n")
            zf.writestr("../escape.py", "print(1)\n")
            zf.writestr("app/readme.txt", "hello")
        assert names(collect(str(archive))) == ["app/main.py"]

    def test_bad_zip(self, tmp_path):
        archive = tmp_path / "broken.zip"
        archive.write_bytes(b"PK\x03\x04 not really a zip")
        with pytest.raises(ExtractionError):
            FileCollector().collect_zip(archive)


class TestHelpers:
    """Decoding and file heuristics."""

    def test_decode_falls_back(self):
        assert decode(b"caf\xe9") == "café"
        assert decode("naïve".encode("utf-8")) == "naïve"

    def test_detect_minified(self):
        assert detect_minified("a;" * 3000, "bundle.js")
        assert detect_minified("x", "lib.min.js")
        assert not detect_minified("const a = 1;\nconst b = 2;\n", "app.js")
        assert not detect_minified("", "app.js")

    @pytest.mark.parametrize("path,skipped", [
        ("node_modules/a/index.js", True),
        ("static/lodash.js", True),
        ("src/lodash_utils.rb", False),
        ("src/app.js", False),
    ])
    def test_should_skip_file(self, path, skipped):
        assert should_skip_file(path) is skipped
