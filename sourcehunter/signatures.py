"""Source, sink and sanitizer signature tables for the grammar-tier languages.

A signature is matched against the dotted name ``nodes.resolve_name`` builds
for a call or member access:

- ``"eval"`` (one segment) matches when it is the last segment of the name;
- ``".exec"`` (leading dot) matches a method of that name on some object,
  never the bare function;
- ``"req.query"`` (several segments) matches when the segments appear as a
  contiguous run anywhere in the name.
"""

from dataclasses import dataclass, field, replace
from typing import Dict, FrozenSet, Iterable, List, Optional, Tuple

from .config import ScanConfig
from .models import Language, SinkKind, SourceKind
from .nodes import contains_segments, last_segment, matches_suffix


def signature_matches(name: Optional[str], signature: str) -> bool:
    if not name:
        return False
    if signature.startswith('.'):
        return '.' in name and matches_suffix(name, signature[1:])
    if '.' not in signature:
        return last_segment(name) == signature
    return contains_segments(name, signature)


def first_match(name: Optional[str], signatures: Iterable[str]) -> Optional[str]:
    for sig in signatures:
        if signature_matches(name, sig):
            return sig
    return None


@dataclass(frozen=True)
class Signatures:
    """Immutable per-language taint tables."""
    sources: Dict[SourceKind, Tuple[str, ...]]
    sinks: Dict[SinkKind, Tuple[str, ...]]
    sanitizers: FrozenSet[str] = frozenset()
    kind_sanitizers: Dict[SinkKind, FrozenSet[str]] = field(default_factory=dict)
    user_input_roots: FrozenSet[str] = frozenset()
    user_input_names: FrozenSet[str] = frozenset()
    markup_properties: FrozenSet[str] = frozenset()
    echo_is_sink: bool = False

    def source_kind(self, name: Optional[str]) -> Optional[SourceKind]:
        """Origin kind of an expression with dotted ``name``, if it is a source."""
        if not name:
            return None
        for kind in SourceKind:
            if first_match(name, self.sources.get(kind, ())):
                return kind
        parts = name.split('.')
        if len(parts) > 1 and parts[0] in self.user_input_roots:
            return SourceKind.USER_INPUT
        return None

    def sink_kind(self, name: Optional[str]) -> Optional[Tuple[SinkKind, str]]:
        """(kind, matched signature) for a callee name, checked in SinkKind order."""
        if not name:
            return None
        for kind in SinkKind:
            sig = first_match(name, self.sinks.get(kind, ()))
            if sig is not None:
                return kind, sig
        return None

    def is_sanitizer(self, name: Optional[str], kind: Optional[SinkKind] = None) -> bool:
        """Universal sanitizers always count; kind-specific ones only for ``kind``."""
        if first_match(name, self.sanitizers) is not None:
            return True
        return kind is not None and first_match(name, self.kind_sanitizers.get(kind, ())) is not None

    def merged(self, language: Language, config: Optional[ScanConfig]) -> "Signatures":
        """Copy extended with the configured sources, sinks and sanitizers."""
        if config is None:
            return self
        keys = _config_keys(language)
        extra_sources: List[str] = []
        extra_sanitizers: List[str] = []
        kind_sanitizers: Dict[SinkKind, List[str]] = {}
        sinks = {kind: list(sigs) for kind, sigs in self.sinks.items()}
        for key in keys:
            extra_sources.extend(config.get_sources(key))
            extra_sanitizers.extend(config.get_sanitizers(key, 'universal'))
            for kind in SinkKind:
                sinks.setdefault(kind, []).extend(config.get_sinks(key, kind.value))
                scoped = config.custom_sanitizers.get(key, {}).get(kind.value, [])
                if scoped:
                    kind_sanitizers.setdefault(kind, []).extend(scoped)
        if not (extra_sources or extra_sanitizers or kind_sanitizers
                or any(config.get_sinks(k) for k in keys)):
            return self
        sources = dict(self.sources)
        sources[SourceKind.USER_INPUT] = tuple(extra_sources) + tuple(sources.get(SourceKind.USER_INPUT, ()))
        return replace(
            self,
            sources=sources,
            sinks={kind: tuple(sigs) for kind, sigs in sinks.items()},
            sanitizers=self.sanitizers | frozenset(extra_sanitizers),
            kind_sanitizers={kind: frozenset(names) for kind, names in kind_sanitizers.items()},
        )


_CONFIG_ALIASES = {
    Language.JAVASCRIPT: ('javascript', 'js'),
    Language.TYPESCRIPT: ('typescript', 'ts', 'js'),
    Language.PYTHON: ('python', 'py'),
}


def _config_keys(language: Language) -> Tuple[str, ...]:
    return _CONFIG_ALIASES.get(language, (language.value,))


_COMMON_ROOTS = frozenset({'req', 'request', 'params', 'source', 'userInput', 'user_input', 'input'})
_COMMON_NAMES = frozenset({'userInput', 'user_input', 'untrusted', 'untrustedInput'})


# ============================================================================
# JavaScript / TypeScript
# ============================================================================

JS_SIGNATURES = Signatures(
    sources={
        SourceKind.USER_INPUT: (
            'req.query', 'req.body', 'req.params', 'req.headers', 'req.cookies',
            'request.query', 'request.body', 'request.params',
            'ctx.query', 'ctx.params', 'ctx.request.body',
            'location.search', 'location.hash', 'location.href', 'document.cookie',
            'document.URL', 'document.documentURI', 'document.referrer', 'window.name',
            'process.argv', 'URLSearchParams', 'prompt',
        ),
        SourceKind.EXTERNAL: (
            'fetch', 'axios', 'axios.get', 'axios.post', 'http.get', 'https.get', 'XMLHttpRequest',
        ),
        SourceKind.FILE_READ: (
            'fs.readFileSync', 'fs.readFile', 'fs.promises.readFile', 'readFileSync',
        ),
        SourceKind.DATABASE: (
            '.findOne', '.findById', '.findUnique', '.findFirst', '.findAll',
        ),
    },
    sinks={
        SinkKind.SQL: (
            '.query', '.execute', '.raw', '.whereRaw', '.$queryRawUnsafe', '.$executeRawUnsafe',
        ),
        SinkKind.XSS: (
            'document.write', 'document.writeln', 'insertAdjacentHTML',
            'res.send', 'res.write', 'response.send', 'response.write', '.html',
        ),
        SinkKind.COMMAND: (
            'exec', 'execSync', 'spawn', 'spawnSync', 'execFile', 'execFileSync', 'fork',
        ),
        SinkKind.EVAL: (
            'eval', 'Function', 'setTimeout', 'setInterval', 'execScript',
            'vm.runInContext', 'vm.runInNewContext', 'vm.runInThisContext', 'vm.Script',
        ),
        SinkKind.FILE_WRITE: (
            'fs.writeFile', 'fs.writeFileSync', 'fs.appendFile', 'fs.appendFileSync',
            'fs.createWriteStream', 'writeFileSync',
        ),
        SinkKind.REDIRECT: (
            'res.redirect', 'response.redirect', 'location.assign', 'location.replace', 'window.open',
        ),
    },
    sanitizers=frozenset({
        'encodeURIComponent', 'encodeURI', 'escape', 'sanitize', 'sanitizeHtml', 'sanitizeHTML',
        'sanitizeUrl', 'escapeHtml', 'escapeHTML', 'htmlEncode', 'htmlEscape',
        'DOMPurify.sanitize', 'xss', 'parseInt', 'parseFloat', 'Number', 'Boolean',
        'mysql.escape', 'validator.escape', 'path.basename',
    }),
    user_input_roots=_COMMON_ROOTS | {'ctx'},
    user_input_names=_COMMON_NAMES,
    markup_properties=frozenset({'innerHTML', 'outerHTML', 'srcdoc'}),
)


# ============================================================================
# Python
# ============================================================================

PYTHON_SIGNATURES = Signatures(
    sources={
        SourceKind.USER_INPUT: (
            'request.args', 'request.form', 'request.values', 'request.json', 'request.data',
            'request.cookies', 'request.headers', 'request.files', 'request.get_json',
            'request.GET', 'request.POST', 'request.body', 'request.query_params',
            'input', 'raw_input', 'sys.argv', 'sys.stdin',
        ),
        SourceKind.EXTERNAL: (
            'requests.get', 'requests.post', 'requests.request', 'urlopen', 'httpx.get', 'httpx.post',
        ),
        SourceKind.FILE_READ: ('open', 'read_text', 'read_bytes', 'json.load'),
        SourceKind.DATABASE: ('.fetchone', '.fetchall', '.fetchmany', 'objects.get', 'objects.filter'),
    },
    sinks={
        SinkKind.SQL: ('.execute', '.executemany', '.executescript', 'objects.raw', '.extra'),
        SinkKind.XSS: ('HttpResponse', 'make_response', 'render_template_string', 'Markup', 'mark_safe'),
        SinkKind.COMMAND: (
            'os.system', 'os.popen', 'subprocess.call', 'subprocess.run', 'subprocess.Popen',
            'subprocess.check_output', 'subprocess.check_call', 'subprocess.getoutput',
        ),
        SinkKind.EVAL: ('eval', 'exec', 'compile'),
        SinkKind.FILE_WRITE: ('open', 'write_text', 'write_bytes', 'send_file', 'shutil.copy', 'os.remove'),
        SinkKind.REDIRECT: ('redirect', 'HttpResponseRedirect'),
    },
    sanitizers=frozenset({
        'escape', 'html.escape', 'markupsafe.escape', 'bleach.clean', 'shlex.quote',
        'int', 'float', 'os.path.basename', 'secure_filename',
    }),
    user_input_roots=_COMMON_ROOTS,
    user_input_names=_COMMON_NAMES,
)


# ============================================================================
# Java
# ============================================================================

JAVA_SIGNATURES = Signatures(
    sources={
        SourceKind.USER_INPUT: (
            'getParameter', 'getParameterValues', 'getParameterMap', 'getHeader', 'getHeaders',
            'getQueryString', 'getCookies', 'getInputStream', 'getReader', 'getPathInfo',
            'getRequestURI',
        ),
        SourceKind.EXTERNAL: ('openConnection', 'openStream', 'getForObject', 'getForEntity', 'HttpClient.send'),
        SourceKind.FILE_READ: ('Files.readAllBytes', 'Files.readString', 'Files.readAllLines', 'readLine'),
        SourceKind.DATABASE: ('.getString', '.getObject'),
    },
    sinks={
        SinkKind.SQL: (
            'executeQuery', 'executeUpdate', '.execute', 'addBatch', 'prepareStatement',
            'createQuery', 'createNativeQuery', 'jdbcTemplate.query', 'queryForObject', 'queryForList',
        ),
        SinkKind.XSS: (
            'getWriter.print', 'getWriter.println', 'getWriter.write', 'getOutputStream.write',
        ),
        SinkKind.COMMAND: ('Runtime.getRuntime.exec', '.exec', 'ProcessBuilder', '.command'),
        SinkKind.EVAL: ('.eval',),
        SinkKind.FILE_WRITE: ('FileOutputStream', 'FileWriter', 'Files.write', 'Files.writeString', 'File'),
        SinkKind.REDIRECT: ('sendRedirect',),
    },
    sanitizers=frozenset({
        'encodeForHTML', 'encodeForSQL', 'encodeForOS', 'escapeHtml4', 'htmlEscape',
        'Integer.parseInt', 'Long.parseLong', 'Encode.forHtml', 'FilenameUtils.getName',
    }),
    user_input_roots=_COMMON_ROOTS,
    user_input_names=_COMMON_NAMES,
)


# ============================================================================
# Go
# ============================================================================

GO_SIGNATURES = Signatures(
    sources={
        SourceKind.USER_INPUT: (
            'URL.Query', 'FormValue', 'PostFormValue', 'r.Form', 'r.PostForm', 'Header.Get',
            'r.Body', 'c.Query', 'c.Param', 'c.PostForm', 'c.DefaultQuery', 'os.Args',
        ),
        SourceKind.EXTERNAL: ('http.Get', 'http.Post', 'http.NewRequest', 'client.Do'),
        SourceKind.FILE_READ: ('os.ReadFile', 'ioutil.ReadFile', 'ioutil.ReadAll', 'io.ReadAll'),
        SourceKind.DATABASE: (),
    },
    sinks={
        SinkKind.SQL: (
            '.Query', '.QueryRow', '.Exec', '.QueryContext', '.QueryRowContext', '.ExecContext', '.Raw',
        ),
        SinkKind.XSS: ('w.Write', 'fmt.Fprintf', 'fmt.Fprint', 'fmt.Fprintln', 'io.WriteString', 'template.HTML'),
        SinkKind.COMMAND: ('exec.Command', 'exec.CommandContext', 'syscall.Exec'),
        SinkKind.EVAL: (),
        SinkKind.FILE_WRITE: ('os.Create', 'os.WriteFile', 'ioutil.WriteFile', 'os.OpenFile'),
        SinkKind.REDIRECT: ('http.Redirect', 'c.Redirect'),
    },
    sanitizers=frozenset({
        'html.EscapeString', 'template.HTMLEscapeString', 'url.QueryEscape', 'strconv.Atoi',
        'filepath.Base', 'filepath.Clean',
    }),
    user_input_roots=_COMMON_ROOTS,
    user_input_names=_COMMON_NAMES,
)


# ============================================================================
# PHP
# ============================================================================

PHP_SIGNATURES = Signatures(
    sources={
        SourceKind.USER_INPUT: (
            '$_GET', '$_POST', '$_REQUEST', '$_COOKIE', '$_FILES', '$_SERVER',
            '$request.input', '$request.get', '$request.query', '$request.all',
        ),
        SourceKind.EXTERNAL: ('curl_exec', 'fsockopen'),
        SourceKind.FILE_READ: ('file_get_contents', 'fread', 'fgets', 'file'),
        SourceKind.DATABASE: ('mysqli_fetch_assoc', 'mysqli_fetch_array', '.fetch', '.fetchAll', '.fetch_assoc'),
    },
    sinks={
        SinkKind.SQL: (
            'mysql_query', 'mysqli_query', 'pg_query', '.query', '.exec', '.prepare',
            'DB.select', 'DB.statement', 'DB.raw', '.whereRaw',
        ),
        SinkKind.XSS: ('printf', 'print_r', 'vprintf'),
        SinkKind.COMMAND: ('exec', 'system', 'shell_exec', 'passthru', 'popen', 'proc_open', 'pcntl_exec'),
        SinkKind.EVAL: ('eval', 'assert', 'create_function'),
        SinkKind.FILE_WRITE: ('file_put_contents', 'fopen', 'fwrite', 'move_uploaded_file', 'unlink'),
        SinkKind.REDIRECT: ('header', '.redirect'),
    },
    sanitizers=frozenset({
        'htmlspecialchars', 'htmlentities', 'strip_tags', 'escapeshellarg', 'escapeshellcmd',
        'intval', 'floatval', 'mysqli_real_escape_string', 'real_escape_string', '.quote',
        'addslashes', 'basename', 'filter_var',
    }),
    user_input_roots=frozenset({'$request', '$params', '$input', '$source', '$userInput', '$user_input'}),
    user_input_names=frozenset({'$userInput', '$user_input', '$input'}),
    echo_is_sink=True,
)


TAINT_SIGNATURES: Dict[Language, Signatures] = {
    Language.JAVASCRIPT: JS_SIGNATURES,
    Language.TYPESCRIPT: JS_SIGNATURES,
    Language.PYTHON: PYTHON_SIGNATURES,
    Language.JAVA: JAVA_SIGNATURES,
    Language.GO: GO_SIGNATURES,
    Language.PHP: PHP_SIGNATURES,
}
