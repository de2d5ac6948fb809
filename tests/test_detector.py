import pytest

from sourcehunter.detector import (
    FrameworkDetector, FrameworkPattern, analyze_project_structure, detect_build_tools,
    detect_codebase, detect_file_language, detect_languages, detect_package_managers,
    glob_to_regex, parse_dependencies, parse_manifest, recommended_tools,
)
from sourcehunter.models import DetectedLanguage, SourceFile


REACT_APP = '''\
import React, { useState } from 'react';

export default function App() {
  const [count] = useState(0);
  return <div className="app" onClick={inc}>{count}</div>;
}
'''

REACT_PACKAGE = '{"dependencies": {"react": "^18.2.0", "react-dom": "^18.2.0"}}'


class TestFileLanguage:
    """Per-file language scoring."""

    @pytest.mark.parametrize("filename,content,expected", [
        ("app.js", "const a = require('x');\n", "javascript"),
        ("main.go", "package main\n\nfunc main() {}\n", "go"),
        ("views.py", "def index(request):\n    return 1\n", "python"),
        ("Main.java", "public class Main {}\n", "java"),
        ("index.php", "<?php echo $x;", "php"),
        ("lib.rs", "fn main() { let x = 1; }\n", "rust"),
    ])
    def test_extension_wins(self, filename, content, expected):
        assert detect_file_language(filename, content).name == expected

    def test_extension_alone(self):
        result = detect_file_language("empty.rb", "")
        assert result.name == "ruby"
        assert result.confidence == 60

    def test_unknown(self):
        result = detect_file_language("notes.xyz", "")
        assert result.name == "unknown"
        assert result.confidence == 0

    def test_content_without_extension(self):
        result = detect_file_language("Dockerfile_script", "package main\n\nfunc main() {\n\tdefer x()\n}\n")
        assert result.name == "go"
        assert result.confidence < 60

    def test_weighted_rollup(self):
        big = SourceFile.from_text("a.py", "def f():\n    pass\n" * 50)
        small = SourceFile.from_text("b.js", "const a = 1;\n")
        analyses = [(big, DetectedLanguage("python", 80)), (small, DetectedLanguage("javascript", 80))]
        languages = detect_languages(analyses)
        assert [l.name for l in languages] == ["python", "javascript"]
        assert languages[0].confidence > languages[1].confidence


class TestFrameworks:
    """Weighted framework detection."""

    def test_react_detected(self):
        detected = FrameworkDetector().detect(
            [SourceFile.from_text("package.json", REACT_PACKAGE),
             SourceFile.from_text("src/App.jsx", REACT_APP)],
            parse_dependencies(REACT_PACKAGE),
        )
        react = [f for f in detected if f.name == "React"]
        assert react and react[0].confidence >= 40

    def test_plain_script_has_no_framework(self):
        detected = FrameworkDetector().detect([SourceFile.from_text("run.sh", "echo hi\n")])
        assert detected == []

    def test_custom_pattern_is_per_instance(self):
        custom = FrameworkPattern("Acme", "javascript", "backend", "web", ["acme.config.js"],
                                  [], [], [], [], 10)
        first = FrameworkDetector()
        first.add_custom_pattern(custom)
        assert "Acme" in first.supported_frameworks()
        assert "Acme" not in FrameworkDetector().supported_frameworks()
        assert [f.name for f in first.detect([SourceFile.from_text("acme.config.js", "")])] == ["Acme"]

    @pytest.mark.parametrize("pattern,name,matches", [
        ("*.jsx", "src/app.jsx", True),
        ("*.jsx", "src/app.js", False),
        ("pages/**", "pages/index.js", True),
        ("pages/**", "src/pages/index.js", False),
        ("next.config.*", "next.config.mjs", True),
    ])
    def test_glob_to_regex(self, pattern, name, matches):
        assert bool(glob_to_regex(pattern).search(name)) is matches


class TestManifests:
    """Declared dependencies."""

    def test_package_json_sections(self):
        deps = parse_dependencies('{"dependencies": {"a": "1"}, "devDependencies": {"b": "2"}}')
        assert [(d.name, d.type, d.ecosystem) for d in deps] == [
            ("a", "dependency", "npm"), ("b", "devDependency", "npm")]

    def test_invalid_package_json(self):
        assert parse_dependencies("{not json") == []

    def test_requirements(self):
        deps = parse_manifest("api/requirements.txt", "flask==2.0.1\n# comment\n-r base.txt\nrequests[socks]>=2\nPyYAML\n")
        assert [(d.name, d.version) for d in deps] == [
            ("flask", "==2.0.1"), ("requests", ">=2"), ("PyYAML", None)]

    def test_composer_skips_platform(self):
        deps = parse_manifest("composer.json", '{"require": {"php": ">=8", "ext-json": "*", "laravel/framework": "^10"}}')
        assert [d.name for d in deps] == ["laravel/framework"]

    def test_unknown_manifest(self):
        assert parse_manifest("Gemfile", "gem 'rails'") == []


class TestProjectShape:
    """Build tools, package managers and project structure."""

    def test_build_tools(self):
        assert detect_build_tools(["pom.xml", "vite.config.ts"]) == ["Vite", "Maven"]

    def test_package_managers(self):
        assert detect_package_managers(["package.json", "yarn.lock", "app.csproj"]) == ["npm", "Yarn", "NuGet"]

    def test_web_structure(self):
        structure = analyze_project_structure(["package.json", "public/index.html"])
        assert structure.type == "web"
        assert structure.confidence == 40

    def test_unknown_structure(self):
        structure = analyze_project_structure(["notes.txt"])
        assert structure.type == "unknown"
        assert structure.confidence == 0


class TestCodebase:
    """The combined detection report."""

    def test_detect_codebase(self):
        result = detect_codebase([
            SourceFile.from_text("package.json", REACT_PACKAGE),
            SourceFile.from_text("src/App.jsx", REACT_APP),
            SourceFile.from_text("src/api.py", "def handler():\n    return 1\n"),
        ])
        assert result.primary_language.name == "javascript"
        assert "React" in result.framework_names
        assert {d.name for d in result.dependencies} == {"react", "react-dom"}
        assert result.file_languages["src/api.py"].name == "python"
        assert result.total_files == 3
        assert "npm" in result.package_managers

    def test_to_dict_uses_milliseconds(self):
        result = detect_codebase([SourceFile.from_text("a.go", "package main\n")])
        data = result.to_dict()
        assert data["primaryLanguage"]["name"] == "go"
        assert data["analysisTime"] >= 0

    def test_recommended_tools(self):
        result = detect_codebase([SourceFile.from_text("app.py", "import os\n")])
        tools = recommended_tools(result)
        assert "Bandit" in tools
        assert tools[-3:] == ["Semgrep", "CodeQL", "Secret Scanner"]
