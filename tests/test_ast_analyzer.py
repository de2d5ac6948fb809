import pytest

from sourcehunter.ast_analyzer import (
    DECLARATION_CHECKS, EVAL_CALLS, PRNG_CALLS, SPAWN_CALLS, ASTAnalyzer,
)
from sourcehunter.models import Language, ParserTier, Severity


@pytest.fixture
def run(unit_for):
    analyzer = ASTAnalyzer()

    def _run(code, language, filename="test"):
        unit, source = unit_for(code, language, filename)
        return analyzer.analyze(unit, source)
    return _run


def by_rule(issues, rule_id):
    return [i for i in issues if i.rule_id == rule_id]


class TestCoverage:
    """Detector tables cover the languages they apply to."""

    @pytest.mark.parametrize("language", list(Language))
    def test_declaration_checks_for_every_language(self, language):
        assert DECLARATION_CHECKS[language]

    @pytest.mark.parametrize("language", [l for l in Language if l.tier is ParserTier.GRAMMAR])
    def test_call_tables_for_grammar_languages(self, language):
        assert language in EVAL_CALLS
        assert SPAWN_CALLS[language]
        assert PRNG_CALLS[language]


class TestDynamicCode:
    """eval and friends."""

    def test_eval_user_input(self, run):
        issues = run("eval(userInput);\n", Language.JAVASCRIPT)
        found = by_rule(issues, "ast-dynamic-code")
        assert len(found) == 1
        assert found[0].severity == Severity.CRITICAL
        assert found[0].category == "Code Injection"
        assert found[0].tool == "AST Semantic Analyzer"

    def test_method_named_eval_is_not_global_eval(self, run):
        assert not by_rule(run("redis.eval(script);\n", Language.JAVASCRIPT), "ast-dynamic-code")

    def test_string_timer(self, run):
        issues = run('setTimeout("alert(1)", 100);\nsetTimeout(tick, 100);\n', Language.JAVASCRIPT)
        found = by_rule(issues, "ast-string-timer")
        assert [i.line for i in found] == [1]

    def test_python_exec(self, run):
        assert by_rule(run("exec(payload)\n", Language.PYTHON), "ast-dynamic-code")


class TestProcessSpawn:
    """Command execution across languages."""

    def test_python_os_system(self, run):
        found = by_rule(run("import os\nos.system(user_input)\n", Language.PYTHON), "ast-process-spawn")
        assert found and found[0].cwe_id == "CWE-78"
        assert found[0].line == 2

    def test_child_process_alias(self, run):
        code = "const cp = require('child_process');\ncp.exec(cmd);\n"
        found = by_rule(run(code, Language.JAVASCRIPT), "ast-process-spawn")
        assert [i.line for i in found] == [2]

    def test_unrelated_exec_method(self, run):
        assert not by_rule(run("regex.exec(text);\n", Language.JAVASCRIPT), "ast-process-spawn")

    def test_go_exec_command(self, run):
        code = 'package main\n\nimport "os/exec"\n\nfunc run(c string) {\n\texec.Command("sh", "-c", c)\n}\n'
        assert by_rule(run(code, Language.GO), "ast-process-spawn")

    def test_php_backticks(self, run):
        assert by_rule(run("<?php\n$out = `ls $dir`;\n", Language.PHP), "ast-process-spawn")


class TestMarkup:
    """Raw HTML sinks in the DOM and JSX."""

    def test_inner_html_assignment(self, run):
        found = by_rule(run("el.innerHTML = html;\n", Language.JAVASCRIPT), "ast-raw-markup-assignment")
        assert found and found[0].severity == Severity.HIGH

    def test_text_content_is_fine(self, run):
        assert not by_rule(run("el.textContent = html;\n", Language.JAVASCRIPT), "ast-raw-markup-assignment")

    def test_jsx_dangerously_set_inner_html(self, run):
        code = "const a = <div dangerouslySetInnerHTML={{__html: body}} />;\n"
        assert by_rule(run(code, Language.JAVASCRIPT, "a.jsx"), "ast-raw-markup-attribute")


class TestHardcodedSecret:
    """Credential-looking names bound to string literals."""

    def test_password_literal(self, run):
        issues = run('DB_PASSWORD = "hunter2hunter2"\n', Language.PYTHON)
        found = by_rule(issues, "ast-hardcoded-secret")
        assert found and found[0].cwe_id == "CWE-798"
        assert "hunter2hunter2" not in found[0].code_snippet

    def test_placeholder_ignored(self, run):
        assert not by_rule(run('api_key = "your_api_key_here"\n', Language.PYTHON), "ast-hardcoded-secret")

    def test_short_literal_ignored(self, run):
        assert not by_rule(run('const token = "abc";\n', Language.JAVASCRIPT), "ast-hardcoded-secret")

    def test_interpolated_string_ignored(self, run):
        code = "const secretKey = `${prefix}-1234567890`;\n"
        assert not by_rule(run(code, Language.JAVASCRIPT), "ast-hardcoded-secret")


class TestWeakRandom:
    """Non-cryptographic PRNGs in security-sensitive context."""

    def test_token_from_math_random(self, run):
        found = by_rule(run("const token = Math.random().toString(36);\n", Language.JAVASCRIPT), "ast-weak-random")
        assert found and found[0].cwe_id == "CWE-338"

    def test_plain_arithmetic_ignored(self, run):
        assert not by_rule(run("const x = Math.random() * 10;\n", Language.JAVASCRIPT), "ast-weak-random")

    def test_go_crypto_rand_only(self, run):
        code = 'package main\n\nimport "crypto/rand"\n\nfunc f() {\n\tsessionId := rand.Int(r, max)\n}\n'
        assert not by_rule(run(code, Language.GO), "ast-weak-random")


class TestDeclarationChecks:
    """Checks over the declaration list, on both tiers."""

    def test_go_os_exec_import(self, run):
        code = 'package main\n\nimport "os/exec"\n'
        found = by_rule(run(code, Language.GO), "decl-go-exec")
        assert found and found[0].line == 3

    def test_shallow_tier_c(self, run):
        found = by_rule(run("#include <dlfcn.h>\n", Language.C), "decl-c-dlopen")
        assert found and found[0].severity == Severity.LOW

    def test_ruby_open_uri(self, run):
        assert by_rule(run("require 'open-uri'\n", Language.RUBY), "decl-ruby-open-uri")


class TestIsolation:
    """A failing detector does not stop the others."""

    def test_detector_failure_is_logged_and_skipped(self, unit_for, caplog):
        analyzer = ASTAnalyzer()

        def broken(node, ctx):
            raise RuntimeError("boom")

        analyzer.detectors.insert(0, ("broken", broken))
        unit, source = unit_for("eval(userInput);\n", Language.JAVASCRIPT, "a.js")
        issues = analyzer.analyze(unit, source)
        assert by_rule(issues, "ast-dynamic-code")
        assert "detector=broken" in caplog.text
