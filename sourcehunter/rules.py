"""Rule engine: regex rules applied to raw file text.

The engine never needs a syntax tree, so it is the one analyzer that still
covers files whose parse failed. Three rule groups are applied:

- per-language rules (``LANGUAGE_RULES``, keyed by ``Language``)
- secret rules, for every language
- framework rules, only when the detector found the framework
"""

import bisect
import logging
import re
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from .deadline import Deadline
from .issues import build_references, build_tags, default_remediation, make_issue, slug
from .models import Language, Remediation, Severity, SecurityIssue

logger = logging.getLogger(__name__)

OWASP = {
    "A01": "A01:2021 – Broken Access Control",
    "A02": "A02:2021 – Cryptographic Failures",
    "A03": "A03:2021 – Injection",
    "A04": "A04:2021 – Insecure Design",
    "A05": "A05:2021 – Security Misconfiguration",
    "A07": "A07:2021 – Identification and Authentication Failures",
    "A08": "A08:2021 – Software and Data Integrity Failures",
}


@dataclass(frozen=True)
class Rule:
    id: str
    name: str
    description: str
    severity: Severity
    patterns: Tuple[re.Pattern, ...]
    category: str
    cwe: Optional[str]
    owasp: Optional[str]
    recommendation: str
    confidence: int = 70
    languages: Tuple[Language, ...] = ()
    frameworks: Tuple[str, ...] = ()
    impact: Optional[str] = None


# Longest run a single repeat may consume, and the longest match the scanner
# expects; together they keep every pattern linear in the input size.
MAX_REPEAT = 256
MAX_MATCH = 4096
SCAN_CHUNK = 16 * 1024

_OPEN_REPEAT = re.compile(r'(?<!\\)(\]|\\[sSwWdD]|\.)([*+])(?![?*+{])')
_OPEN_RANGE = re.compile(r'\{(\d+),\}')


def bounded(pattern: str) -> str:
    """Cap ``*``, ``+`` and ``{n,}`` on classes and escapes at MAX_REPEAT."""
    pattern = _OPEN_REPEAT.sub(
        lambda m: f"{m.group(1)}{{{0 if m.group(2) == '*' else 1},{MAX_REPEAT}}}", pattern)
    return _OPEN_RANGE.sub(lambda m: f"{{{m.group(1)},{MAX_REPEAT}}}", pattern)


def _rule(id: str, name: str, description: str, severity: Severity,
          patterns: Sequence[str], category: str, cwe: Optional[str], owasp: Optional[str],
          recommendation: str, flags: int = 0, **kwargs) -> Rule:
    compiled = tuple(re.compile(bounded(p), flags) for p in patterns)
    return Rule(id, name, description, severity, compiled, category, cwe,
                OWASP.get(owasp, owasp) if owasp else None, recommendation, **kwargs)


C, H, M, L = Severity.CRITICAL, Severity.HIGH, Severity.MEDIUM, Severity.LOW


# ============================================================================
# Language rules
# ============================================================================

_JS_RULES = [
    _rule('js-eval-usage', 'Dangerous eval() Usage',
          'Use of eval() can lead to code injection vulnerabilities', C,
          [r'\beval\s*\('], 'Code Injection', 'CWE-95', 'A03',
          'Avoid using eval(). Use safer alternatives like JSON.parse() or a strictly validated lookup table.',
          confidence=80),
    _rule('js-dangerous-inner-html', 'Dangerous innerHTML Usage',
          'Direct HTML injection can lead to XSS vulnerabilities', H,
          [r'\.innerHTML\s*=(?!=)'], 'Cross-Site Scripting', 'CWE-79', 'A03',
          'Use textContent, createElement, or a sanitization library like DOMPurify.'),
    _rule('js-document-write', 'Dangerous document.write Usage',
          'document.write can be exploited for XSS attacks', H,
          [r'document\.write(?:ln)?\s*\('], 'Cross-Site Scripting', 'CWE-79', 'A03',
          'Avoid document.write. Use DOM manipulation methods instead.'),
]

_PYTHON_RULES = [
    _rule('py-exec-usage', 'Dangerous exec() Usage',
          'exec() can execute arbitrary code and lead to code injection', C,
          [r'(?<![\w.])exec\s*\('], 'Code Injection', 'CWE-95', 'A03',
          'Avoid using exec(). Redesign your code to avoid dynamic code execution.', confidence=80),
    _rule('py-pickle-load', 'Insecure Deserialization with pickle',
          'pickle.load can execute arbitrary code from untrusted data', C,
          [r'\b(?:c?pickle|dill)\.loads?\s*\('], 'Insecure Deserialization', 'CWE-502', 'A08',
          'Use safer serialization formats like JSON. If pickle is required, validate and sign the data.',
          confidence=80),
    _rule('py-sql-format', 'SQL Injection via String Formatting',
          'String formatting in SQL queries can lead to SQL injection', C,
          [r'\.execute\s*\([^)]*%[sdf]', r'\.execute\s*\([^)]*\.format\(', r'\.execute\s*\(\s*f[\'"]'],
          'SQL Injection', 'CWE-89', 'A03',
          'Use parameterized queries with placeholders (?) or named parameters.'),
    _rule('py-yaml-unsafe-load', 'Unsafe YAML Loading',
          'yaml.load without a safe Loader can execute arbitrary code', C,
          [r'yaml\.(?:load|unsafe_load)\s*\([^,)]+\)'], 'Insecure Deserialization', 'CWE-502', 'A08',
          'Use yaml.safe_load() instead of yaml.load().'),
    _rule('py-command-injection', 'Command Injection via os.system',
          'os.system or a shell=True subprocess with user input can lead to command injection', C,
          [r'\bos\.(?:system|popen)\s*\(',
           r'subprocess\.(?:call|run|Popen|check_output|check_call)\s*\([^)]*shell\s*=\s*True'],
          'Command Injection', 'CWE-78', 'A03',
          'Use subprocess with shell=False and pass arguments as a list.'),
]

_JAVA_RULES = [
    _rule('java-sql-injection', 'Potential SQL Injection',
          'String concatenation in SQL queries can lead to SQL injection', C,
          [r'\.execute(?:Query|Update)?\s*\(\s*"[^"]*"\s*\+', r'createStatement\(\)\.execute'],
          'SQL Injection', 'CWE-89', 'A03', 'Use PreparedStatement with parameterized queries.'),
    _rule('java-xxe', 'XML External Entity (XXE) Vulnerability',
          'Insecure XML parsing can lead to XXE attacks', H,
          [r'DocumentBuilderFactory\.newInstance\(\)', r'SAXParserFactory\.newInstance\(\)',
           r'XMLInputFactory\.new(?:Factory|Instance)\(\)'],
          'XML External Entity', 'CWE-611', 'A05',
          'Disable external entity processing in XML parsers.', confidence=60),
    _rule('java-deserialization', 'Insecure Deserialization',
          'Deserializing untrusted data can lead to remote code execution', C,
          [r'ObjectInputStream.*readObject\s*\(', r'\.readObject\s*\(\s*\)'],
          'Insecure Deserialization', 'CWE-502', 'A08',
          'Implement input validation and use serialization filters.'),
    _rule('java-random', 'Weak Random Number Generation',
          'java.util.Random is not cryptographically secure', M,
          [r'new\s+Random\s*\('], 'Weak Randomness', 'CWE-338', 'A02',
          'Use SecureRandom for security-sensitive operations.', confidence=60),
]

_C_RULES = [
    _rule('cpp-buffer-overflow', 'Potential Buffer Overflow',
          'Unsafe string functions can cause buffer overflows', C,
          [r'\b(?:strcpy|strcat|sprintf|vsprintf|gets)\s*\(', r'\bscanf\s*\([^)]*%s'],
          'Buffer Overflow', 'CWE-120', 'A03',
          'Use safer alternatives: strncpy, strncat, snprintf, fgets.'),
    _rule('c-format-string', 'Format String Vulnerability',
          'Passing a non-literal as the format argument lets callers control the format', H,
          [r'\b(?:printf|syslog)\s*\(\s*[A-Za-z_]\w*\s*\)', r'\bfprintf\s*\(\s*\w+\s*,\s*[A-Za-z_]\w*\s*\)'],
          'Format String', 'CWE-134', 'A03',
          'Always pass a literal format string, e.g. printf("%s", value).'),
    _rule('c-command-injection', 'Command Injection Risk',
          'system() and popen() run their argument through the shell', H,
          [r'\b(?:system|popen)\s*\('], 'Command Injection', 'CWE-78', 'A03',
          'Use execve-family calls with an explicit argument vector.'),
]

_CPP_RULES = _C_RULES + [
    _rule('cpp-memory-leak', 'Potential Memory Leak',
          'new without corresponding delete can cause memory leaks', M,
          [r'\bnew\s+\w+'], 'Memory Management', 'CWE-401', 'A04',
          'Use smart pointers (unique_ptr, shared_ptr) to manage memory automatically.', confidence=40),
]

_GO_RULES = [
    _rule('go-sql-injection', 'SQL Injection Risk', 'String concatenation in SQL queries', C,
          [r'\.(?:Query|QueryRow|Exec)(?:Context)?\s*\([^)]*\+',
           r'fmt\.Sprintf\s*\(\s*"[^"]*\b(?:SELECT|INSERT|UPDATE|DELETE)\b'],
          'SQL Injection', 'CWE-89', 'A03', 'Use parameterized queries with $1, $2, etc.'),
    _rule('go-command-injection', 'Command Injection Risk', 'Executing commands with user input', C,
          [r'exec\.Command\s*\([^)]*\+', r'exec\.CommandContext\s*\([^)]*\+'],
          'Command Injection', 'CWE-78', 'A03',
          'Validate and sanitize all user inputs before using in commands.'),
    _rule('go-path-traversal', 'Path Traversal Vulnerability', 'File operations with unsanitized paths', H,
          [r'\bos\.Open(?:File)?\s*\(', r'\bioutil\.ReadFile\s*\(', r'\bos\.ReadFile\s*\('],
          'Path Traversal', 'CWE-22', 'A01',
          'Validate and sanitize file paths. Use filepath.Clean and check for path traversal.',
          confidence=50),
]

_RUST_RULES = [
    _rule('rust-unsafe-block', 'Unsafe Code Block', 'Unsafe blocks bypass Rust safety guarantees', H,
          [r'\bunsafe\s*\{'], 'Memory Safety', 'CWE-119', 'A04',
          'Minimize unsafe code. Ensure thorough review and testing of unsafe blocks.'),
    _rule('rust-unwrap-usage', 'Potential Panic with unwrap()',
          'unwrap() can cause panics if value is None or Err', M,
          [r'\.unwrap\s*\(\s*\)'], 'Error Handling', 'CWE-754', 'A04',
          'Use pattern matching or expect() with descriptive messages. Handle errors explicitly.',
          confidence=50),
    _rule('rust-expect-usage', 'Potential Panic with expect()',
          'expect() can cause panics if value is None or Err', L,
          [r'\.expect\s*\('], 'Error Handling', 'CWE-754', 'A04',
          'Consider proper error handling with match or if let.', confidence=40),
    _rule('rust-command-injection', 'Command Injection Risk',
          'Spawning a shell with a formatted command string', H,
          [r'Command::new\s*\(\s*"(?:sh|bash|cmd)"\s*\)'], 'Command Injection', 'CWE-78', 'A03',
          'Invoke the target program directly and pass arguments with .arg().'),
]

_PHP_RULES = [
    _rule('php-eval-usage', 'Dangerous eval() Usage', 'eval() executes arbitrary PHP code', C,
          [r'\beval\s*\('], 'Code Injection', 'CWE-95', 'A03',
          'Avoid eval(). Redesign code to eliminate need for dynamic code execution.', confidence=80),
    _rule('php-sql-injection', 'SQL Injection Risk', 'String concatenation in SQL queries', C,
          [r'mysqli?_query\s*\([^)]*\$', r'->query\s*\([^)]*\$', r'DB::raw\s*\([^)]*\$'],
          'SQL Injection', 'CWE-89', 'A03', 'Use prepared statements with parameter binding.'),
    _rule('php-xss', 'Cross-Site Scripting (XSS) Risk', 'Direct output of variables without escaping', H,
          [r'\becho\s+\$(?!this->escape)', r'\bprint\s+\$(?!this->escape)'],
          'Cross-Site Scripting', 'CWE-79', 'A03',
          'Use htmlspecialchars() or a templating engine with auto-escaping.', confidence=60),
    _rule('php-command-injection', 'Command Injection Risk', 'Executing system commands with user input', C,
          [r'\b(?:exec|shell_exec|system|passthru|popen|proc_open)\s*\(', r'`[^`]*\$'],
          'Command Injection', 'CWE-78', 'A03',
          'Avoid executing system commands. If necessary, use escapeshellarg() and escapeshellcmd().'),
    _rule('php-file-inclusion', 'File Inclusion Vulnerability', 'Including files based on user input', C,
          [r'\b(?:include|require|include_once|require_once)\s*\(?[^;)]*\$'],
          'File Inclusion', 'CWE-98', 'A03',
          'Use a whitelist of allowed files. Never include files based on direct user input.'),
    _rule('php-unserialize', 'Insecure Deserialization', 'unserialize() on untrusted data can instantiate arbitrary objects', H,
          [r'\bunserialize\s*\(\s*\$'], 'Insecure Deserialization', 'CWE-502', 'A08',
          'Use json_decode() or pass allowed_classes => false.'),
]

_CSHARP_RULES = [
    _rule('cs-sql-injection', 'SQL Injection Risk', 'String concatenation in SQL queries', C,
          [r'SqlCommand\s*\([^)]*\+', r'ExecuteReader\s*\([^)]*\+', r'ExecuteNonQuery\s*\([^)]*\+'],
          'SQL Injection', 'CWE-89', 'A03', 'Use parameterized queries with SqlParameter.'),
    _rule('cs-xxe', 'XML External Entity (XXE) Vulnerability', 'Insecure XML parsing configuration', H,
          [r'new\s+XmlTextReader\s*\(', r'XmlDocument\s*\(\)\.Load'],
          'XML External Entity', 'CWE-611', 'A05',
          'Set XmlReaderSettings.DtdProcessing to DtdProcessing.Prohibit.'),
    _rule('cs-deserialization', 'Insecure Deserialization', 'Deserializing untrusted data', C,
          [r'BinaryFormatter\.Deserialize\s*\(', r'JavaScriptSerializer\.Deserialize\s*\(',
           r'XmlSerializer\.Deserialize\s*\(', r'new\s+BinaryFormatter\s*\('],
          'Insecure Deserialization', 'CWE-502', 'A08',
          'Use secure serialization methods like System.Text.Json with type validation.'),
    _rule('cs-weak-crypto', 'Weak Cryptographic Algorithm',
          'Use of weak or deprecated cryptographic algorithms', H,
          [r'new\s+MD5CryptoServiceProvider\s*\(', r'new\s+SHA1CryptoServiceProvider\s*\(',
           r'new\s+DESCryptoServiceProvider\s*\(', r'\bMD5\.Create\s*\('],
          'Weak Cryptography', 'CWE-327', 'A02', 'Use SHA256 or SHA512 for hashing, AES for encryption.'),
    _rule('cs-command-injection', 'Command Injection Risk', 'Starting processes with concatenated arguments', C,
          [r'Process\.Start\s*\([^)]*\+'], 'Command Injection', 'CWE-78', 'A03',
          'Pass arguments through ProcessStartInfo.ArgumentList and validate them.'),
]

_RUBY_RULES = [
    _rule('ruby-sql-injection', 'SQL Injection Risk', 'String interpolation in SQL queries', C,
          [r'\.where\s*\([^)]*#\{', r'\.find_by_sql\s*\([^)]*#\{',
           r'ActiveRecord::Base\.connection\.execute\s*\([^)]*#\{'],
          'SQL Injection', 'CWE-89', 'A03', 'Use parameterized queries or ActiveRecord query methods.'),
    _rule('ruby-command-injection', 'Command Injection Risk', 'Executing system commands with user input', C,
          [r'(?<![\w.])system\s*\(', r'(?<![\w.])exec\s*\(', r'`[^`]*#\{', r'%x\{[^}]*#\{'],
          'Command Injection', 'CWE-78', 'A03', 'Use safe command execution methods with proper escaping.'),
    _rule('ruby-yaml-load', 'Unsafe YAML Loading', 'YAML.load can execute arbitrary code', C,
          [r'YAML\.load\s*\('], 'Insecure Deserialization', 'CWE-502', 'A08',
          'Use YAML.safe_load instead of YAML.load.'),
    _rule('ruby-mass-assignment', 'Mass Assignment Vulnerability',
          'Unprotected mass assignment can lead to privilege escalation', H,
          [r'\.new\s*\(\s*params\[', r'\.create\s*\(\s*params\[', r'\.update\s*\(\s*params\['],
          'Mass Assignment', 'CWE-915', 'A04', 'Use strong parameters to whitelist allowed attributes.'),
    _rule('ruby-eval-usage', 'Dangerous eval() Usage', 'eval can execute arbitrary Ruby code', C,
          [r'\b(?:eval|instance_eval|class_eval)\s*\(?\s*params'],
          'Code Injection', 'CWE-95', 'A03',
          'Avoid using eval. Use safer alternatives or validate input thoroughly.'),
]

_SWIFT_RULES = [
    _rule('swift-sql-injection', 'SQL Injection Risk', 'String interpolation in SQL queries', C,
          [r'executeQuery\s*\([^)]*\\\(', r'executeUpdate\s*\([^)]*\\\(', r'sqlite3_exec\s*\([^)]*\\\('],
          'SQL Injection', 'CWE-89', 'A03', 'Use parameterized queries with prepared statements.'),
    _rule('swift-force-unwrap', 'Force Unwrap Usage', 'Force unwrapping can cause runtime crashes', M,
          [r'\w[!](?=\s*(?:\.|\)|$))'], 'Error Handling', 'CWE-754', 'A04',
          'Use optional binding (if let, guard let) or optional chaining instead.',
          flags=re.MULTILINE, confidence=40),
    _rule('swift-nsuserdefaults', 'Sensitive Data in UserDefaults', 'UserDefaults stores data unencrypted', M,
          [r'UserDefaults\.standard\.set\(\s*[^,]*,\s*forKey:\s*"[^"]*(?:password|token|secret|key)[^"]*"'],
          'Sensitive Data Exposure', 'CWE-311', 'A02',
          'Use Keychain for sensitive data like passwords and tokens.', flags=re.IGNORECASE),
    _rule('swift-weak-crypto', 'Weak Cryptographic Algorithm', 'MD5 and SHA1 are cryptographically broken', H,
          [r'Insecure\.MD5', r'Insecure\.SHA1', r'CC_MD5\s*\('], 'Weak Cryptography', 'CWE-327', 'A02',
          'Use SHA256 or SHA512 for hashing.'),
]

_KOTLIN_RULES = [
    _rule('kotlin-sql-injection', 'SQL Injection Risk', 'String concatenation in SQL queries', C,
          [r'rawQuery\s*\([^)]*(?:\+|\$\{?\w)', r'execSQL\s*\([^)]*(?:\+|\$\{?\w)'],
          'SQL Injection', 'CWE-89', 'A03', 'Use parameterized queries with placeholders.'),
    _rule('kotlin-intent-injection', 'Intent Injection Risk', 'Untrusted intent data can be exploited', H,
          [r'getIntent\(\)\.get', r'intent\.get(?:String|Int|Boolean|Serializable)(?:Extra)?'],
          'Intent Injection', 'CWE-927', 'A03', 'Validate all data received from intents before use.',
          confidence=50),
    _rule('kotlin-webview-js', 'WebView JavaScript Enabled', 'Enabling JavaScript in WebView can lead to XSS', H,
          [r'javaScriptEnabled\s*=\s*true', r'setJavaScriptEnabled\s*\(\s*true\s*\)'],
          'Cross-Site Scripting', 'CWE-79', 'A03',
          'Only enable JavaScript if necessary and sanitize all content.'),
    _rule('kotlin-insecure-random', 'Weak Random Number Generation', 'Random is not cryptographically secure', M,
          [r'(?<!Secure)Random\(\)'], 'Weak Randomness', 'CWE-338', 'A02',
          'Use SecureRandom for security-sensitive operations.', confidence=50),
    _rule('kotlin-hardcoded-key', 'Hardcoded Encryption Key', 'Hardcoded keys can be extracted from bytecode', C,
          [r'SecretKeySpec\s*\([^)]*"[^"]{8,}"', r'IvParameterSpec\s*\([^)]*"[^"]{8,}"'],
          'Hardcoded Secret', 'CWE-798', 'A02', 'Store encryption keys in Android Keystore.'),
]

LANGUAGE_RULES: Dict[Language, List[Rule]] = {
    Language.JAVASCRIPT: _JS_RULES,
    Language.TYPESCRIPT: _JS_RULES,
    Language.PYTHON: _PYTHON_RULES,
    Language.JAVA: _JAVA_RULES,
    Language.GO: _GO_RULES,
    Language.PHP: _PHP_RULES,
    Language.C: _C_RULES,
    Language.CPP: _CPP_RULES,
    Language.CSHARP: _CSHARP_RULES,
    Language.RUBY: _RUBY_RULES,
    Language.RUST: _RUST_RULES,
    Language.SWIFT: _SWIFT_RULES,
    Language.KOTLIN: _KOTLIN_RULES,
}


# ============================================================================
# Secret rules (every language)
# ============================================================================

SECRET_OWASP = OWASP["A07"]

SECRET_IMPACT = {
    'aws-access-key': "Unauthorized access to AWS resources and potential infrastructure compromise",
    'github-token': "Unauthorized access to repositories and potential code theft",
    'gitlab-token': "Unauthorized access to repositories and potential code theft",
    'jwt-token': "Session hijacking and unauthorized access to user accounts",
    'slack-token': "Unauthorized access to Slack workspace and sensitive communications",
    'slack-webhook': "Unauthorized posting to Slack channels and potential phishing",
    'stripe-key': "Unauthorized access to payment processing and financial data",
    'google-api-key': "Unauthorized access to Google services and potential quota abuse",
    'private-key': "Cryptographic compromise and potential system access",
    'connection-string': "Database access and potential data compromise",
    'api-key': "Unauthorized access to external services and potential data breach",
    'password': "Unauthorized system access and potential privilege escalation",
    'credential-assignment': "Potential unauthorized access depending on secret type",
}

_SECRET_REC = 'Remove the secret from source, rotate it, and load it from environment variables or a secrets manager.'


def _secret(id: str, name: str, pattern: str, confidence: int, flags: int = 0) -> Rule:
    severity = C if confidence >= 90 else H
    return _rule(f'secret-{id}', name, f'{name} found in source code', severity, [pattern],
                 'Secret Detection', 'CWE-798', 'A07', _SECRET_REC, flags=flags,
                 confidence=confidence, impact=SECRET_IMPACT.get(id))


SECRET_RULES: List[Rule] = [
    _secret('aws-access-key', 'AWS Access Key ID', r'\b(?:AKIA|ASIA)[0-9A-Z]{16}\b', 95),
    _secret('github-token', 'GitHub Token', r'\bgh[pousr]_[A-Za-z0-9_]{36,255}', 90),
    _secret('github-token', 'GitHub Fine-grained Token', r'\bgithub_pat_[A-Za-z0-9_]{22,}', 90),
    _secret('gitlab-token', 'GitLab Personal Access Token', r'\bglpat-[A-Za-z0-9_-]{20,}', 90),
    _secret('jwt-token', 'JSON Web Token', r'\beyJ[A-Za-z0-9_-]{5,}\.eyJ[A-Za-z0-9_-]{5,}\.[A-Za-z0-9_-]+', 85),
    _secret('slack-token', 'Slack API Token', r'\bxox[bpars]-[0-9A-Za-z]{10,48}-[0-9A-Za-z]{10,48}(?:-[0-9a-zA-Z]{24,48})?', 90),
    _secret('slack-webhook', 'Slack Webhook URL',
            r'https://hooks\.slack\.com/services/T[A-Z0-9]+/B[A-Z0-9]+/[A-Za-z0-9]+', 90),
    _secret('stripe-key', 'Stripe Secret Key', r'\b(?:sk|rk)_live_[0-9a-zA-Z]{24,}', 95),
    _secret('google-api-key', 'Google API Key', r'\bAIza[0-9A-Za-z_-]{35}', 85),
    _secret('private-key', 'Private Key', r'-----BEGIN (?:[A-Z]+ )*PRIVATE KEY-----', 95),
    _secret('connection-string', 'Database Connection String',
            r'\b(?:mongodb(?:\+srv)?|mysql|postgresql|postgres|redis|mssql)://[^\s"\':@/]+:[^\s"\'@/]+@[^\s"\']+', 80),
    _secret('api-key', 'Generic API Key',
            r'[\'"](?:api[_-]?key|apikey|access[_-]?token|secret[_-]?key|auth[_-]?token)[\'"]\s*[:=]\s*[\'"][A-Za-z0-9_\-]{20,}[\'"]',
            75, flags=re.IGNORECASE),
    _secret('password', 'Hardcoded Password',
            r'[\'"](?:password|passwd|pwd)[\'"]\s*[:=]\s*[\'"][^\'"\s]{8,}[\'"]', 70, flags=re.IGNORECASE),
]


# ============================================================================
# Framework rules (only when the framework was detected)
# ============================================================================

_WEB = (Language.JAVASCRIPT, Language.TYPESCRIPT)

FRAMEWORK_RULES: List[Rule] = [
    _rule('react-xss-dangerouslySetInnerHTML', 'Dangerous innerHTML Usage',
          'Usage of dangerouslySetInnerHTML without proper sanitization can lead to XSS attacks', H,
          [r'dangerouslySetInnerHTML\s*[:=]\s*\{\s*\{?\s*__html\s*:'], 'Cross-Site Scripting', 'CWE-79', 'A03',
          'Use DOMPurify or similar library to sanitize HTML content before rendering',
          confidence=85, languages=_WEB, frameworks=('React', 'Next.js')),
    _rule('react-href-javascript', 'JavaScript URL in href',
          'Using javascript: URLs in href attributes can lead to XSS vulnerabilities', M,
          [r'href\s*=\s*[\'"`{]*javascript:'], 'Cross-Site Scripting', 'CWE-79', 'A03',
          'Use onClick handlers instead of javascript: URLs',
          confidence=85, languages=_WEB, frameworks=('React', 'Next.js')),
    _rule('react-eval-usage', 'Eval Usage in React',
          'Using eval() function can lead to code injection vulnerabilities', C,
          [r'\beval\s*\('], 'Code Injection', 'CWE-95', 'A03',
          'Avoid using eval(). Use JSON.parse() for JSON data',
          confidence=85, languages=_WEB, frameworks=('React', 'Next.js')),
    _rule('angular-bypassSecurityTrust', 'Bypassing Angular Security',
          'Using bypassSecurityTrust methods without proper validation can introduce XSS vulnerabilities', H,
          [r'bypassSecurityTrust(?:Html|Style|Script|Url|ResourceUrl)'], 'Cross-Site Scripting', 'CWE-79', 'A03',
          'Validate and sanitize content before bypassing Angular sanitization',
          confidence=85, languages=_WEB, frameworks=('Angular',)),
    _rule('angular-innerHTML', 'Angular innerHTML Binding',
          'Direct innerHTML assignment bypasses Angular template sanitization', M,
          [r'\.innerHTML\s*=(?!=)'], 'Cross-Site Scripting', 'CWE-79', 'A03',
          'Use Angular property binding with the built-in sanitizer',
          confidence=85, languages=_WEB, frameworks=('Angular',)),
    _rule('vue-v-html-xss', 'Vue v-html Directive',
          'The v-html directive renders raw HTML and can lead to XSS', H,
          [r'v-html\s*=\s*["`\'][^"`\']*["`\']'], 'Cross-Site Scripting', 'CWE-79', 'A03',
          'Sanitize HTML content before using v-html directive',
          confidence=85, languages=_WEB, frameworks=('Vue.js', 'Nuxt.js')),
    _rule('django-sql-injection', 'Django Raw SQL Injection',
          'String formatting inside Model.objects.raw() can lead to SQL injection', C,
          [r'\.raw\s*\(\s*f?["\'][^"\']*%[^"\']*["\']', r'\.raw\s*\(\s*f["\'][^"\']*\{'],
          'SQL Injection', 'CWE-89', 'A03', 'Use Django ORM or parameterized queries',
          confidence=85, languages=(Language.PYTHON,), frameworks=('Django',)),
    _rule('django-debug-true', 'Django Debug Mode Enabled',
          'DEBUG = True in production exposes sensitive information', H,
          [r'^\s*DEBUG\s*=\s*True\b'], 'Information Disclosure', 'CWE-200', 'A01',
          'Set DEBUG = False in production settings', flags=re.MULTILINE,
          confidence=85, languages=(Language.PYTHON,), frameworks=('Django',)),
    _rule('flask-debug-mode', 'Flask Debug Mode Enabled',
          'Running Flask in debug mode in production is dangerous', H,
          [r'app\.run\s*\([^)]*debug\s*=\s*True'], 'Information Disclosure', 'CWE-200', 'A01',
          'Disable debug mode in production',
          confidence=85, languages=(Language.PYTHON,), frameworks=('Flask',)),
    _rule('spring-sql-injection', 'Spring JPQL Injection',
          'String concatenation in JPA queries can lead to SQL injection', C,
          [r'create(?:Native)?Query\s*\(\s*"[^"]*"\s*\+'], 'SQL Injection', 'CWE-89', 'A03',
          'Use parameterized queries or JPA criteria API',
          confidence=85, languages=(Language.JAVA,), frameworks=('Spring Boot',)),
    _rule('node-eval-usage', 'Node.js Eval Usage', 'Using eval() in Node.js can lead to code injection', C,
          [r'\beval\s*\('], 'Code Injection', 'CWE-95', 'A03',
          'Avoid eval(). Use JSON.parse() or safer alternatives',
          confidence=85, languages=_WEB, frameworks=('Express.js', 'NestJS')),
    _rule('laravel-raw-queries', 'Laravel Raw SQL',
          'Raw SQL queries without parameter binding can cause SQL injection', C,
          [r'DB::(?:raw|select|statement)\s*\(\s*["`\'][^"`\']*\$[^"`\']*["`\']',
           r'->(?:whereRaw|selectRaw|orderByRaw)\s*\(\s*["`\'][^"`\']*\$'],
          'SQL Injection', 'CWE-89', 'A03', 'Use Eloquent ORM or parameter binding',
          confidence=85, languages=(Language.PHP,), frameworks=('Laravel',)),
]


def rules_for(language: Language, frameworks: Iterable[str] = ()) -> List[Rule]:
    """Every rule that applies to a file of ``language`` in this codebase."""
    detected = set(frameworks)
    applicable = list(LANGUAGE_RULES[language]) + SECRET_RULES
    for rule in FRAMEWORK_RULES:
        if language in rule.languages and detected.intersection(rule.frameworks):
            applicable.append(rule)
    return applicable


# ============================================================================
# Engine
# ============================================================================

def _tool_for(rule: Rule) -> str:
    if rule.frameworks:
        return f"{rule.frameworks[0]} Security Scanner"
    if rule.category == 'Secret Detection':
        return "Secret Scanner"
    return "Pattern Rule Engine"


def _issue_for(rule: Rule, language: Language, lines: List[str], filename: str,
               line: int, column: int, pattern_index: int, matched: str) -> SecurityIssue:
    if rule.frameworks:
        tags = ['framework-specific', slug(rule.category)]
        impact = rule.impact
        likelihood = "Medium"
        issue_type = rule.name
        remediation = default_remediation(rule.severity, rule.recommendation)
    elif rule.category == 'Secret Detection':
        tags = ['secret', 'credentials', 'security', rule.id[len('secret-'):]]
        impact = rule.impact
        likelihood = "High"
        issue_type = "Secret"
        remediation = Remediation(rule.recommendation, "Medium",
                                  5 if rule.severity == Severity.CRITICAL else 4)
    else:
        tags = build_tags(rule.category, language.value)
        impact = rule.impact
        likelihood = "Medium"
        issue_type = rule.name
        remediation = default_remediation(rule.severity, rule.recommendation)

    secret = rule.category == 'Secret Detection'
    return make_issue(
        tool=_tool_for(rule),
        type=issue_type,
        category=rule.category,
        message=rule.description,
        severity=rule.severity,
        confidence=rule.confidence,
        lines=lines,
        filename=filename,
        line=line,
        column=column,
        recommendation=rule.recommendation,
        remediation=remediation,
        impact=impact,
        likelihood=likelihood,
        cwe=rule.cwe,
        owasp=rule.owasp,
        tags=tags,
        references=build_references(rule.cwe, rule.owasp),
        rule_id=rule.id,
        discriminator=pattern_index,
        redact=matched.split('\n', 1)[0] if secret else None,
    )


def _scan(pattern: re.Pattern, content: str, filename: str,
          deadline: Optional[Deadline]) -> Iterator[re.Match]:
    """``pattern.finditer(content)`` in SCAN_CHUNK slices, checking the deadline per slice.

    A match may start anywhere in its slice and run up to MAX_MATCH past
    the end; the next slice resumes after it, so matches never overlap.
    """
    size = len(content)
    pos = 0
    while pos < size:
        if deadline is not None:
            deadline.check('rules', filename)
        stop = min(size, pos + SCAN_CHUNK)
        resume = stop
        for match in pattern.finditer(content, pos, min(size, stop + MAX_MATCH)):
            if match.start() >= stop:
                break
            resume = max(stop, match.end())
            yield match
        pos = resume


def apply(content: str, language: Language, frameworks: Iterable[str] = (),
          filename: str = "", deadline: Optional[Deadline] = None) -> List[SecurityIssue]:
    """Run every applicable rule over ``content``.

    Each regex match yields one issue, except that a single pattern reports a
    given line at most once. Distinct patterns of one rule matching the same
    line are reported separately.
    """
    if not content:
        return []

    lines = content.split('\n')
    line_starts = [0]
    for idx, ch in enumerate(content):
        if ch == '\n':
            line_starts.append(idx + 1)

    issues: List[SecurityIssue] = []
    for rule in rules_for(language, frameworks):
        for p_index, pattern in enumerate(rule.patterns):
            reported = set()
            for match in _scan(pattern, content, filename, deadline):
                offset = match.start()
                line = bisect.bisect_right(line_starts, offset)
                if line in reported:
                    continue
                reported.add(line)
                column = offset - line_starts[line - 1]
                issues.append(_issue_for(rule, language, lines, filename, line, column,
                                         p_index, match.group(0)))
            if deadline is not None:
                deadline.check('rules', filename)
    logger.debug("Rule engine: %d issue(s) in %s", len(issues), filename or '<memory>')
    return issues
