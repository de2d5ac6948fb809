import pytest

from sourcehunter.config import ScanConfig
from sourcehunter.models import Language, ParserTier, Severity, SinkKind, SourceKind
from sourcehunter.signatures import TAINT_SIGNATURES, signature_matches
from sourcehunter.taint import TaintTracker, flow_confidence


@pytest.fixture
def track(unit_for):
    def _track(code, language, filename="test", config=None):
        unit, source = unit_for(code, language, filename)
        return TaintTracker(config).analyze(unit, source)
    return _track


def categories(issues):
    return [i.category for i in issues]


class TestSignatures:
    """Dotted-name signature matching."""

    @pytest.mark.parametrize("language", [l for l in Language if l.tier is ParserTier.GRAMMAR])
    def test_grammar_languages_have_signatures(self, language):
        assert language in TAINT_SIGNATURES

    def test_bare_signature_matches_last_segment(self):
        assert signature_matches("window.eval", "eval")
        assert not signature_matches("evaluate", "eval")

    def test_leading_dot_requires_receiver(self):
        assert signature_matches("db.query", ".query")
        assert not signature_matches("query", ".query")

    def test_dotted_signature_matches_contiguous_run(self):
        assert signature_matches("req.query.id", "req.query")
        assert not signature_matches("req.body.query", "req.query")

    def test_user_input_roots(self):
        sigs = TAINT_SIGNATURES[Language.JAVASCRIPT]
        assert sigs.source_kind("source.userId") == SourceKind.USER_INPUT
        assert sigs.source_kind("source") is None

    def test_flow_confidence(self):
        assert flow_confidence(SourceKind.USER_INPUT, SinkKind.SQL) == 95
        assert flow_confidence(SourceKind.EXTERNAL, SinkKind.XSS) == 70
        assert flow_confidence(SourceKind.DATABASE, SinkKind.REDIRECT) == 60


class TestJavaScriptFlows:
    """Source-to-sink propagation in JavaScript."""

    def test_sql_injection_through_variable(self, track):
        code = 'const q = source.userId; db.query("SELECT * FROM t WHERE id=" + q);\n'
        issues = track(code, Language.JAVASCRIPT, "app.js")
        sql = [i for i in issues if i.category == "SQL Injection"]
        assert sql
        assert sql[0].severity == Severity.CRITICAL
        assert sql[0].confidence >= 90
        assert sql[0].tool == "Data Flow Analyzer"
        assert sql[0].cwe_id == "CWE-89"

    def test_direct_source_in_sink(self, track):
        issues = track("res.send(req.query.name);\n", Language.JAVASCRIPT)
        assert "Cross-Site Scripting" in categories(issues)

    def test_template_literal_propagates(self, track):
        code = "const id = req.params.id;\nconst sql = `SELECT * FROM t WHERE id=${id}`;\nconn.query(sql);\n"
        issues = track(code, Language.JAVASCRIPT)
        assert [i.line for i in issues if i.category == "SQL Injection"] == [3]

    def test_sanitizer_call_clears_value(self, track):
        code = "const q = parseInt(req.query.id);\ndb.query('SELECT ' + q);\n"
        assert track(code, Language.JAVASCRIPT) == []

    def test_inline_sanitizer(self, track):
        code = "res.send(escapeHtml(req.query.name));\n"
        assert track(code, Language.JAVASCRIPT) == []

    def test_reassignment_clears_taint(self, track):
        code = "let q = req.query.id;\nq = 'static';\ndb.query('SELECT ' + q);\n"
        assert track(code, Language.JAVASCRIPT) == []

    def test_augmented_assignment_keeps_taint(self, track):
        code = "let q = req.query.id;\nq += ' LIMIT 1';\ndb.query('SELECT ' + q);\n"
        assert "SQL Injection" in categories(track(code, Language.JAVASCRIPT))

    def test_inner_html_sink(self, track):
        code = "const h = location.hash;\nel.innerHTML = h;\n"
        issues = track(code, Language.JAVASCRIPT)
        assert [i.category for i in issues] == ["Cross-Site Scripting"]

    def test_clean_code(self, track):
        assert track("const a = 1;\ndb.query('SELECT 1');\n", Language.JAVASCRIPT) == []

    def test_user_input_name_is_a_source(self, track):
        assert categories(track("eval(userInput);\n", Language.JAVASCRIPT)) == ["Code Injection"]

    def test_assigned_user_input_name_is_not_a_source(self, track):
        code = "let userInput = 'constant';\neval(userInput);\n"
        assert track(code, Language.JAVASCRIPT) == []


class TestOtherLanguages:
    """Python, Java, Go and PHP signatures."""

    def test_python_command(self, track):
        code = "from flask import request\nimport os\ncmd = request.args.get('c')\nos.system(cmd)\n"
        issues = track(code, Language.PYTHON, "app.py")
        cmd = [i for i in issues if i.category == "Command Injection"]
        assert cmd and cmd[0].cwe_id == "CWE-78" and cmd[0].line == 4

    def test_python_format_propagates(self, track):
        code = "uid = request.form['id']\nsql = 'SELECT * FROM t WHERE id={}'.format(uid)\ncursor.execute(sql)\n"
        assert "SQL Injection" in categories(track(code, Language.PYTHON))

    def test_java_sql(self, track):
        code = (
            "class A {\n"
            "  void run(HttpServletRequest request, Statement stmt) throws Exception {\n"
            "    String id = request.getParameter(\"id\");\n"
            "    stmt.executeQuery(\"SELECT * FROM u WHERE id=\" + id);\n"
            "  }\n"
            "}\n"
        )
        issues = track(code, Language.JAVA, "A.java")
        assert [i.line for i in issues if i.category == "SQL Injection"] == [4]

    def test_go_sql(self, track):
        code = (
            "package main\n\n"
            "func h(w http.ResponseWriter, r *http.Request) {\n"
            "\tid := r.URL.Query().Get(\"id\")\n"
            "\tdb.Query(\"SELECT * FROM t WHERE id=\" + id)\n"
            "}\n"
        )
        assert "SQL Injection" in categories(track(code, Language.GO, "main.go"))

    def test_php_echo(self, track):
        code = "<?php\n$name = $_GET['name'];\necho $name;\n"
        issues = track(code, Language.PHP, "index.php")
        xss = [i for i in issues if i.category == "Cross-Site Scripting"]
        assert xss and xss[0].line == 3

    def test_php_escaped_echo(self, track):
        code = "<?php\n$name = htmlspecialchars($_GET['name']);\necho $name;\n"
        assert track(code, Language.PHP, "index.php") == []

    def test_shallow_language_not_supported(self):
        assert not TaintTracker().supports(Language.RUBY)


class TestConfiguredSignatures:
    """Custom sources, sinks and sanitizers from ScanConfig."""

    def test_custom_source(self, track):
        config = ScanConfig(custom_sources={"javascript": ["getUntrusted"]})
        issues = track("const v = getUntrusted();\neval(v);\n", Language.JAVASCRIPT, config=config)
        assert "Code Injection" in categories(issues)

    def test_custom_sink(self, track):
        config = ScanConfig(custom_sinks={"js": {"sql": ["runRaw"]}})
        issues = track("runRaw(req.query.filter);\n", Language.JAVASCRIPT, config=config)
        assert "SQL Injection" in categories(issues)

    def test_custom_sanitizer(self, track):
        config = ScanConfig(custom_sanitizers={"javascript": {"universal": ["clean"]}})
        issues = track("db.query('x' + clean(req.query.id));\n", Language.JAVASCRIPT, config=config)
        assert issues == []

    def test_kind_sanitizer_only_clears_its_kind(self, track):
        config = ScanConfig(custom_sanitizers={"javascript": {"sql": ["escapeSql"]}})
        sql = track("db.query('x' + escapeSql(req.query.id));\n", Language.JAVASCRIPT, config=config)
        xss = track("res.send(escapeSql(req.query.name));\n", Language.JAVASCRIPT, config=config)
        assert sql == []
        assert categories(xss) == ["Cross-Site Scripting"]

    def test_kind_sanitizer_follows_assigned_value(self, track):
        config = ScanConfig(custom_sanitizers={"javascript": {"sql": ["escapeSql"]}})
        code = "const q = 'a' + escapeSql(req.query.id);\ndb.query(q);\nres.send(q);\n"
        issues = track(code, Language.JAVASCRIPT, config=config)
        assert categories(issues) == ["Cross-Site Scripting"]
        assert issues[0].line == 3


class TestPerFileState:
    """Taint never leaks between files."""

    def test_context_is_per_file(self, unit_for):
        tracker = TaintTracker()
        unit_a, source_a = unit_for("const q = req.query.id;\n", Language.JAVASCRIPT, "a.js")
        unit_b, source_b = unit_for("db.query('SELECT ' + q);\n", Language.JAVASCRIPT, "b.js")
        assert "q" in tracker.track(unit_a, source_a).tainted
        assert tracker.analyze(unit_b, source_b) == []

    def test_issue_ids_are_distinct(self, track):
        code = "const a = req.query.a;\nconst b = req.query.b;\ndb.query(a + b);\n"
        issues = track(code, Language.JAVASCRIPT)
        assert len(issues) == 2
        assert len({i.id for i in issues}) == 2
