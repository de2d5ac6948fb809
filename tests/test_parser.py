import pytest

from sourcehunter.models import DeclarationKind, Language, ParserTier
from sourcehunter.parser import (
    DECLARATION_EXTRACTORS, GRAMMAR_CHAINS, SHALLOW_PATTERNS, grammar_chain, parse,
)


def names(unit, kind):
    return [d.name for d in unit.declarations_of(kind)]


class TestTierCoverage:
    """Every language is handled by exactly one parser tier."""

    @pytest.mark.parametrize("language", list(Language))
    def test_language_has_tier_entry(self, language):
        if language.tier is ParserTier.GRAMMAR:
            assert language in GRAMMAR_CHAINS
            assert language in DECLARATION_EXTRACTORS
        else:
            assert language in SHALLOW_PATTERNS

    def test_grammar_chain_for_tsx(self):
        assert grammar_chain(Language.TYPESCRIPT, "App.tsx")[0] == "tsx"

    def test_grammar_chain_for_bare_php(self):
        assert grammar_chain(Language.PHP, "x.php", "echo 1;")[0] == "php_only"
        assert grammar_chain(Language.PHP, "x.php", "<?php echo 1;")[0] == "php"


class TestGrammarTier:
    """tree-sitter parsing and declaration extraction."""

    def test_javascript_declarations(self):
        code = (
            "import fs from 'fs';\n"
            "const cp = require('child_process');\n"
            "function handler(req) { return 1; }\n"
            "const helper = () => 2;\n"
            "class Service {}\n"
        )
        unit = parse(code, Language.JAVASCRIPT, "app.js")
        assert unit.success
        assert unit.tree is not None
        assert unit.errors == []
        assert names(unit, DeclarationKind.IMPORT) == ["fs", "child_process"]
        assert names(unit, DeclarationKind.FUNCTION) == ["handler", "helper"]
        assert names(unit, DeclarationKind.CLASS) == ["Service"]

    def test_python_declarations(self):
        code = (
            "import os\n"
            "from flask import request\n"
            "def view():\n"
            "    pass\n"
            "class Model:\n"
            "    pass\n"
        )
        unit = parse(code, Language.PYTHON, "app.py")
        assert names(unit, DeclarationKind.IMPORT) == ["os", "flask"]
        assert names(unit, DeclarationKind.FUNCTION) == ["view"]
        assert names(unit, DeclarationKind.CLASS) == ["Model"]

    def test_go_declarations(self):
        code = (
            "package main\n\n"
            "import (\n\t\"fmt\"\n\t\"os/exec\"\n)\n\n"
            "type Server struct{}\n\n"
            "func main() {\n\tfmt.Println(exec.Command)\n}\n"
        )
        unit = parse(code, Language.GO, "main.go")
        assert names(unit, DeclarationKind.IMPORT) == ["fmt", "os/exec"]
        assert names(unit, DeclarationKind.FUNCTION) == ["main"]
        assert names(unit, DeclarationKind.CLASS) == ["Server"]

    def test_java_declarations(self):
        code = (
            "import java.io.ObjectInputStream;\n"
            "public class Handler {\n"
            "  public void run() {}\n"
            "}\n"
        )
        unit = parse(code, Language.JAVA, "Handler.java")
        assert names(unit, DeclarationKind.IMPORT) == ["java.io.ObjectInputStream"]
        assert names(unit, DeclarationKind.CLASS) == ["Handler"]
        assert names(unit, DeclarationKind.FUNCTION) == ["run"]

    def test_broken_source_still_parses(self):
        unit = parse("function broken( {\n  let = ;\n", Language.JAVASCRIPT, "broken.js")
        assert unit.success
        assert unit.errors
        assert all(e.line >= 1 for e in unit.errors)

    def test_grammar_records_which_grammar_was_used(self):
        unit = parse("<?php echo 'hi';", Language.PHP, "index.php")
        assert unit.grammar == "php"


class TestShallowTier:
    """Line-oriented declaration capture."""

    def test_c_include_and_function(self):
        unit = parse("#include <stdio.h>\nint main(void) {\n  return 0;\n}\n", Language.C)
        assert unit.success
        assert unit.tree is None
        assert names(unit, DeclarationKind.IMPORT) == ["stdio.h"]
        assert names(unit, DeclarationKind.FUNCTION) == ["main"]

    def test_control_flow_is_not_a_function(self):
        unit = parse("int f(int x) {\n  if (x) {\n  }\n  while (x) {\n  }\n}\n", Language.C)
        assert names(unit, DeclarationKind.FUNCTION) == ["f"]

    def test_rust(self):
        code = "use std::io;\npub fn run() {}\nstruct Config {}\ntrait Runner {}\n"
        unit = parse(code, Language.RUST)
        assert names(unit, DeclarationKind.IMPORT) == ["std::io"]
        assert names(unit, DeclarationKind.FUNCTION) == ["run"]
        assert names(unit, DeclarationKind.CLASS) == ["Config"]
        assert names(unit, DeclarationKind.TYPE) == ["Runner"]

    def test_ruby(self):
        code = "require 'open-uri'\n# def commented\nclass Fetcher\n  def fetch(url)\n  end\nend\n"
        unit = parse(code, Language.RUBY)
        assert names(unit, DeclarationKind.IMPORT) == ["open-uri"]
        assert names(unit, DeclarationKind.CLASS) == ["Fetcher"]
        assert names(unit, DeclarationKind.FUNCTION) == ["fetch"]
        assert unit.declarations_of(DeclarationKind.FUNCTION)[0].line == 4

    def test_kotlin_and_csharp(self):
        kt = parse("import android.content.Intent\nclass Main {\n  fun onCreate() {}\n}\n", Language.KOTLIN)
        assert names(kt, DeclarationKind.IMPORT) == ["android.content.Intent"]
        assert names(kt, DeclarationKind.FUNCTION) == ["onCreate"]
        cs = parse("using System.IO;\npublic class Repo {\n  public void Save() {}\n}\n", Language.CSHARP)
        assert names(cs, DeclarationKind.IMPORT) == ["System.IO"]
        assert names(cs, DeclarationKind.CLASS) == ["Repo"]

    def test_empty_content(self):
        unit = parse("", Language.SWIFT)
        assert unit.success
        assert unit.declarations == []
