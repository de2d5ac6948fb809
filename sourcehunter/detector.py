"""
Language & framework detection
==============================
Scores every file against per-language extension, content-pattern and keyword
signatures, then rolls the per-file verdicts up into a codebase report:
languages, frameworks, project structure, build tools, package managers and
declared dependencies.

Detection never blocks analysis. A file whose language cannot be determined
is reported as ``unknown`` and simply gets no language-specific analyzers.
"""

import json
import logging
import os
import re
import time
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .models import (
    DependencyInfo, DetectedFramework, DetectedLanguage, DetectionResult,
    ProjectStructure, SourceFile,
)
from .rules import bounded

logger = logging.getLogger(__name__)


# ============================================================================
# Language Signatures
# ============================================================================

@dataclass(frozen=True)
class LanguageSignature:
    name: str
    extensions: Tuple[str, ...]
    patterns: Tuple[re.Pattern, ...]
    keywords: Tuple[str, ...]
    category: str = "programming"
    ecosystem: str = "backend"


def _lang(name: str, extensions: Sequence[str], patterns: Sequence[str],
          keywords: Sequence[str], ecosystem: str = "backend") -> LanguageSignature:
    return LanguageSignature(
        name=name,
        extensions=tuple(extensions),
        patterns=tuple(re.compile(bounded(p), re.MULTILINE) for p in patterns),
        keywords=tuple(keywords),
        ecosystem=ecosystem,
    )


_INCLUDE = r'#\s*(include|define|ifdef|ifndef)\b'

LANGUAGE_PATTERNS: Dict[str, LanguageSignature] = {s.name: s for s in [
    _lang('javascript', ['.js', '.mjs', '.cjs', '.jsx'], [
        r'\b(function|const|let|var|class|import|export|require)\b',
        r'\b(console\.log|document\.|window\.)',
        r'\b(async|await|Promise)\b',
        r'=>\s*\{',
        r'\$\{.*\}',
    ], ['function', 'const', 'let', 'var', 'class', 'import', 'export', 'async', 'await'], 'web'),
    _lang('typescript', ['.ts', '.tsx', '.d.ts'], [
        r'\b(interface|type|enum|namespace)\b',
        r':\s*(string|number|boolean|any|void|unknown)',
        r'<.*>',
        r'\b(public|private|protected|readonly)\b',
        r'\b(implements|extends)\b',
    ], ['interface', 'type', 'enum', 'namespace', 'implements', 'extends'], 'web'),
    _lang('python', ['.py', '.pyw', '.pyi', '.pyx'], [
        r'\b(def|class|import|from|if __name__ == "__main__")\b',
        r'\b(print|len|range|enumerate)\b',
        r'\bself\.',
        r'\b(try|except|finally|with|as)\b',
        r'#.*$',
    ], ['def', 'class', 'import', 'from', 'if', 'elif', 'else', 'try', 'except']),
    _lang('java', ['.java'], [
        r'\b(public|private|protected|static|final|abstract)\b',
        r'\b(class|interface|enum|package|import)\b',
        r'\b(System\.out\.println|String|int|boolean|void)\b',
        r'\b(extends|implements|throws)\b',
        r'@\w+',
    ], ['public', 'private', 'protected', 'class', 'interface', 'package', 'import']),
    _lang('csharp', ['.cs', '.csx'], [
        r'\b(using|namespace|class|interface|struct|enum)\b',
        r'\b(public|private|protected|internal|static|readonly)\b',
        r'\b(string|int|bool|void|var|object)\b',
        r'\b(Console\.WriteLine|System\.)',
        r'\[.*\]',
    ], ['using', 'namespace', 'class', 'interface', 'public', 'private', 'static']),
    _lang('php', ['.php', '.phtml', '.php3', '.php4', '.php5', '.phps'], [
        r'<\?php',
        r'\$\w+',
        r'\b(function|class|interface|trait|namespace)\b',
        r'\b(echo|print|var_dump|isset|empty)\b',
        r'->',
    ], ['function', 'class', 'interface', 'namespace', 'echo', 'print'], 'web'),
    _lang('ruby', ['.rb', '.rbw', '.rake', '.gemspec'], [
        r'\b(def|class|module|end|require|include)\b',
        r'\b(puts|print|p|gets)\b',
        r'@\w+',
        r'\b(if|unless|while|until|for|in)\b',
        r'#.*$',
    ], ['def', 'class', 'module', 'end', 'require', 'include']),
    _lang('go', ['.go'], [
        r'\b(package|import|func|var|const|type)\b',
        r'\b(fmt\.Print|fmt\.Sprintf)',
        r'\b(if|for|switch|select|go|defer)\b',
        r'\b(struct|interface|map|chan)\b',
        r'//.*$',
    ], ['package', 'import', 'func', 'var', 'const', 'type', 'struct', 'interface']),
    _lang('rust', ['.rs'], [
        r'\b(fn|let|mut|const|static|struct|enum|impl|trait)\b',
        r'\b(println!|print!|panic!)',
        r'\b(match|if|while|for|loop)\b',
        r'\b(pub|use|mod|crate)\b',
        r'//.*$',
    ], ['fn', 'let', 'mut', 'struct', 'enum', 'impl', 'trait', 'match']),
    _lang('cpp', ['.cpp', '.cxx', '.cc', '.c++', '.hpp', '.hxx', '.h++'], [
        _INCLUDE,
        r'\b(class|struct|namespace|template|typename)\b',
        r'(std::|\bcout\b|\bcin\b|\bendl\b)',
        r'\b(public|private|protected|virtual)\b',
        r'//.*$',
    ], ['class', 'struct', 'namespace', 'template', 'public', 'private', 'virtual']),
    _lang('c', ['.c', '.h'], [
        _INCLUDE,
        r'\b(int|char|float|double|void|struct|enum)\b',
        r'\b(printf|scanf|malloc|free)\b',
        r'\b(if|else|while|for|switch|case)\b',
        r'/\*[\s\S]*?\*/',
    ], ['int', 'char', 'float', 'double', 'void', 'struct', 'enum']),
    _lang('kotlin', ['.kt', '.kts'], [
        r'\b(fun|val|var|class|interface|object|companion)\b',
        r'\b(private|public|protected|internal|open|abstract)\b',
        r'\b(if|when|for|while|return|break|continue)\b',
        r'\b(println|print|require|check)\b',
        r'\?:',
        r'\?\.',
        r'\b(suspend|async|coroutine)\b',
    ], ['fun', 'val', 'var', 'class', 'interface', 'object', 'when', 'companion']),
    _lang('swift', ['.swift'], [
        r'\b(func|var|let|class|struct|enum|protocol|extension)\b',
        r'\b(import|public|private|internal|fileprivate|open)\b',
        r'\b(if|guard|for|while|switch|case|return)\b',
        r'\b(print|String|Int|Bool|Array|Dictionary)\b',
        r'->',
        r'\?',
        r'!',
    ], ['func', 'var', 'let', 'class', 'struct', 'enum', 'protocol', 'guard']),
]}

_KEYWORD_RES = {
    name: tuple(re.compile(rf'\b{re.escape(k)}\b') for k in sig.keywords)
    for name, sig in LANGUAGE_PATTERNS.items()
}


def file_extension(filename: str) -> str:
    """Last extension of ``filename``, lowercased, dot included."""
    base = os.path.basename(filename)
    dot = base.rfind('.')
    return base[dot:].lower() if dot != -1 else ''


def detect_file_language(filename: str, content: str) -> DetectedLanguage:
    """Score every known language for one file and return the best candidate.

    Extension match is worth 60, the fraction of content patterns hit up to
    30, and the fraction of keywords present up to 10. A file no language
    scores on comes back as ``unknown`` with confidence 0.
    """
    ext = file_extension(filename)
    best: Optional[Tuple[float, LanguageSignature]] = None

    for name, sig in LANGUAGE_PATTERNS.items():
        score = 0.0
        if ext in sig.extensions:
            score += 60
        if content:
            hits = sum(1 for p in sig.patterns if p.search(content))
            score += hits / len(sig.patterns) * 30
            found = sum(1 for k in _KEYWORD_RES[name] if k.search(content))
            score += found / len(sig.keywords) * 10
        score = min(100.0, score)
        # first-seen wins ties, like a stable sort on the catalog order
        if score > 0 and (best is None or score > best[0]):
            best = (score, sig)

    if best is None:
        return DetectedLanguage('unknown', 0, 'data', None, [ext] if ext else [])

    score, sig = best
    return DetectedLanguage(sig.name, round(score), sig.category, sig.ecosystem, list(sig.extensions))


def detect_languages(analyses: Sequence[Tuple[SourceFile, DetectedLanguage]]) -> List[DetectedLanguage]:
    """Roll per-file verdicts up into codebase languages, best first.

    confidence = max_conf * 0.4 + file_ratio * 30 + byte_ratio * 30
    """
    total_files = len(analyses)
    total_bytes = sum(f.byte_size for f, _ in analyses)
    stats: Dict[str, Dict] = {}

    for source, lang in analyses:
        if lang.name == 'unknown':
            continue
        entry = stats.setdefault(lang.name, {'bytes': 0, 'files': 0, 'max': 0, 'info': lang})
        entry['bytes'] += source.byte_size
        entry['files'] += 1
        entry['max'] = max(entry['max'], lang.confidence)

    languages = []
    for name, entry in stats.items():
        file_ratio = entry['files'] / total_files
        byte_ratio = entry['bytes'] / total_bytes if total_bytes else 0.0
        confidence = round(entry['max'] * 0.4 + file_ratio * 100 * 0.3 + byte_ratio * 100 * 0.3)
        info = entry['info']
        languages.append(DetectedLanguage(name, min(100, confidence), info.category,
                                          info.ecosystem, list(info.extensions)))

    languages.sort(key=lambda l: -l.confidence)
    return languages


def primary_language(languages: Sequence[DetectedLanguage]) -> DetectedLanguage:
    if not languages:
        return DetectedLanguage('unknown', 0, 'data', None, [])
    return languages[0]


# ============================================================================
# Framework Detection
# ============================================================================

@dataclass
class FrameworkPattern:
    name: str
    language: str
    category: str
    ecosystem: str
    file_patterns: List[str]
    content_patterns: List[re.Pattern]
    dependencies: List[str]
    config_files: List[str]
    directory_structure: List[str]
    minimum_confidence: int


def _fw(name, language, category, ecosystem, files, content, deps, configs, dirs, minimum):
    return FrameworkPattern(name, language, category, ecosystem, list(files),
                            [re.compile(p) for p in content], list(deps),
                            list(configs), list(dirs), minimum)


FRAMEWORK_PATTERNS: List[FrameworkPattern] = [
    # Frontend
    _fw('React', 'javascript', 'frontend', 'web',
        ['*.jsx', '*.tsx'],
        [r"import.*from\s+['\"]react['\"]", r'React\.Component|useState|useEffect',
         r'JSX\.Element|ReactNode', r'className=|onClick='],
        ['react', '@types/react', 'react-dom'], ['package.json'],
        ['src/components', 'src/hooks'], 40),
    _fw('Next.js', 'javascript', 'fullstack', 'web',
        ['next.config.*', 'pages/**', 'app/**'],
        [r"import.*from\s+['\"]next/", r'export\s+default\s+function.*Page',
         r'getServerSideProps|getStaticProps'],
        ['next', '@next/'], ['next.config.js', 'next.config.ts'],
        ['pages/', 'app/', 'public/'], 30),
    _fw('Vue.js', 'javascript', 'frontend', 'web',
        ['*.vue'],
        [r"import.*from\s+['\"]vue['\"]", r'<template>|<script>|<style>',
         r'Vue\.createApp|createApp', r'v-if|v-for|v-model'],
        ['vue', '@vue/', 'vue-router'], ['vue.config.js', 'vite.config.js'],
        ['src/components', 'src/views'], 40),
    _fw('Nuxt.js', 'javascript', 'fullstack', 'web',
        ['nuxt.config.*', 'layouts/**', 'middleware/**'],
        [r"import.*from\s+['\"]nuxt", r'export\s+default\s+defineNuxtConfig',
         r'useFetch|useAsyncData'],
        ['nuxt', '@nuxt/', 'nitro'], ['nuxt.config.js', 'nuxt.config.ts'],
        ['pages/', 'layouts/', 'middleware/'], 25),
    _fw('Angular', 'typescript', 'frontend', 'web',
        ['*.component.ts', '*.service.ts', '*.module.ts'],
        [r'@Component|@Injectable|@NgModule', r"import.*from\s+['\"]@angular/",
         r'selector:|templateUrl:|styleUrls:'],
        ['@angular/core', '@angular/common', '@angular/cli'], ['angular.json', 'tsconfig.json'],
        ['src/app/', 'src/environments/'], 40),
    _fw('Svelte', 'javascript', 'frontend', 'web',
        ['*.svelte'],
        [r"import.*from\s+['\"]svelte", r'<script>[\s\S]*</script>', r'\$:|on:|bind:'],
        ['svelte', '@sveltejs/'], ['svelte.config.js', 'vite.config.js'],
        ['src/lib/', 'src/routes/'], 70),

    # Backend
    _fw('Express.js', 'javascript', 'backend', 'web',
        ['app.js', 'server.js', 'index.js'],
        [r"require\(['\"]express['\"]\)|import.*from\s+['\"]express['\"]",
         r'app\.listen|app\.get|app\.post', r'express\(\)'],
        ['express'], ['package.json'],
        ['routes/', 'middleware/', 'controllers/'], 30),
    _fw('NestJS', 'typescript', 'backend', 'web',
        ['*.controller.ts', '*.service.ts', '*.module.ts'],
        [r'@Controller|@Injectable|@Module', r"import.*from\s+['\"]@nestjs/",
         r'@Get|@Post|@Put|@Delete'],
        ['@nestjs/core', '@nestjs/common'], ['nest-cli.json', 'tsconfig.json'],
        ['src/modules/', 'src/controllers/', 'src/services/'], 30),
    _fw('Fastify', 'javascript', 'backend', 'web',
        ['app.js', 'server.js'],
        [r"require\(['\"]fastify['\"]\)|import.*from\s+['\"]fastify['\"]",
         r'fastify\(\)', r'fastify\.register|fastify\.listen'],
        ['fastify', '@fastify/'], ['package.json'],
        ['routes/', 'plugins/'], 75),
    _fw('Django', 'python', 'fullstack', 'web',
        ['manage.py', 'settings.py', 'urls.py', 'models.py'],
        [r'from django import|import django', r'django\.conf|django\.urls',
         r'class.*\(models\.Model\)'],
        ['Django', 'django'], ['requirements.txt', 'pyproject.toml', 'setup.py'],
        ['apps/', 'templates/', 'static/'], 20),
    _fw('Flask', 'python', 'backend', 'web',
        ['app.py', 'main.py', 'run.py'],
        [r'from flask import|import flask', r'Flask\(__name__\)', r'@app\.route'],
        ['Flask', 'flask'], ['requirements.txt', 'pyproject.toml'],
        ['templates/', 'static/'], 30),
    _fw('FastAPI', 'python', 'backend', 'web',
        ['main.py', 'app.py'],
        [r'from fastapi import|import fastapi', r'FastAPI\(\)', r'@app\.get|@app\.post'],
        ['fastapi', 'uvicorn'], ['requirements.txt', 'pyproject.toml'],
        ['routers/', 'models/'], 80),
    _fw('Spring Boot', 'java', 'backend', 'web',
        ['Application.java', '*.java'],
        [r'@SpringBootApplication', r'import org\.springframework', r'@RestController|@Controller'],
        ['spring-boot-starter', 'springframework'], ['pom.xml', 'build.gradle', 'application.properties'],
        ['src/main/java/', 'src/main/resources/'], 40),
    _fw('Laravel', 'php', 'fullstack', 'web',
        ['artisan', '*.php'],
        [r'use Illuminate\\', r'namespace App\\', r'Route::|Eloquent'],
        ['laravel/framework'], ['composer.json', 'artisan'],
        ['app/', 'resources/', 'routes/'], 80),

    # Mobile
    _fw('React Native', 'javascript', 'mobile', 'mobile',
        ['App.js', 'App.tsx', 'index.js'],
        [r"import.*from\s+['\"]react-native['\"]", r'AppRegistry\.registerComponent',
         r'StyleSheet\.create'],
        ['react-native', '@react-native/'], ['metro.config.js', 'app.json'],
        ['android/', 'ios/'], 25),
    _fw('Flutter', 'dart', 'mobile', 'mobile',
        ['*.dart', 'main.dart'],
        [r"import 'package:flutter/", r'class.*extends StatelessWidget|StatefulWidget',
         r'Widget build\(BuildContext context\)'],
        ['flutter'], ['pubspec.yaml'],
        ['lib/', 'android/', 'ios/'], 40),
    _fw('Ionic', 'javascript', 'mobile', 'mobile',
        ['ionic.config.json', '*.page.ts'],
        [r"import.*from\s+['\"]@ionic/", r'IonicModule|IonicPage', r'ion-'],
        ['@ionic/angular', '@ionic/react', '@ionic/vue'], ['ionic.config.json', 'capacitor.config.ts'],
        ['src/pages/', 'src/components/'], 80),
]


def glob_to_regex(pattern: str) -> re.Pattern:
    """Translate a catalog file glob into a case-insensitive search regex."""
    if pattern.startswith('*.'):
        return re.compile(re.escape(pattern[1:]) + '$', re.IGNORECASE)
    if pattern.endswith('/**'):
        return re.compile('^' + re.escape(pattern[:-3]) + '/', re.IGNORECASE)
    escaped = re.escape(pattern)
    if '**' in pattern:
        escaped = escaped.replace(r'\*\*', '.*').replace(r'\*', '[^/]*')
    else:
        escaped = escaped.replace(r'\*', '.*')
    return re.compile(escaped, re.IGNORECASE)


class FrameworkDetector:
    """Weighted framework scoring over file names, content and dependencies.

    Weights: file patterns 30, content patterns 25, dependencies 25 (only
    when dependencies are known), config files 10, directories 10.
    """

    def __init__(self, patterns: Optional[Iterable[FrameworkPattern]] = None):
        self.patterns: List[FrameworkPattern] = list(patterns if patterns is not None else FRAMEWORK_PATTERNS)

    def add_custom_pattern(self, pattern: FrameworkPattern):
        self.patterns.append(pattern)

    def supported_frameworks(self) -> List[str]:
        return [p.name for p in self.patterns]

    def detect(self, files: Sequence[SourceFile],
               dependencies: Optional[Sequence[DependencyInfo]] = None) -> List[DetectedFramework]:
        filenames = [f.filename.replace('\\', '/').lower() for f in files]
        content = '\n'.join(f.content for f in files)

        found = []
        for pattern in self.patterns:
            confidence = self._confidence(pattern, filenames, content, dependencies)
            if confidence >= pattern.minimum_confidence:
                found.append(DetectedFramework(pattern.name, pattern.language, confidence,
                                               pattern.category, pattern.ecosystem))

        found.sort(key=lambda f: -f.confidence)
        seen = set()
        unique = []
        for fw in found:
            key = (fw.name, fw.language)
            if key not in seen:
                seen.add(key)
                unique.append(fw)
        return unique

    def _confidence(self, pattern: FrameworkPattern, filenames: List[str], content: str,
                    dependencies: Optional[Sequence[DependencyInfo]]) -> int:
        score = 0.0

        if pattern.file_patterns:
            score += _match_files(pattern.file_patterns, filenames) / len(pattern.file_patterns) * 30

        if pattern.content_patterns:
            hits = sum(1 for regex in pattern.content_patterns if regex.search(content))
            score += hits / len(pattern.content_patterns) * 25

        if dependencies and pattern.dependencies:
            names = [d.name.lower() for d in dependencies]
            matched = sum(1 for req in pattern.dependencies if any(req.lower() in n for n in names))
            score += matched / len(pattern.dependencies) * 25

        score += _match_files(pattern.config_files, filenames) / max(1, len(pattern.config_files)) * 10

        dirs = sum(1 for d in pattern.directory_structure if any(d.lower() in f for f in filenames))
        score += dirs / max(1, len(pattern.directory_structure)) * 10

        return min(100, round(score))


def _match_files(patterns: Sequence[str], filenames: Sequence[str]) -> int:
    matches = 0
    for pattern in patterns:
        regex = glob_to_regex(pattern)
        if any(regex.search(f) for f in filenames):
            matches += 1
    return matches


def detect_frameworks(files: Sequence[SourceFile],
                      dependencies: Optional[Sequence[DependencyInfo]] = None) -> List[DetectedFramework]:
    return FrameworkDetector().detect(files, dependencies)


# ============================================================================
# Dependency Manifests
# ============================================================================

_NPM_SECTIONS = (
    ('dependencies', 'dependency'),
    ('devDependencies', 'devDependency'),
    ('peerDependencies', 'peerDependency'),
)

_REQUIREMENT_RE = re.compile(r'^\s*([A-Za-z0-9][A-Za-z0-9._-]*)(?:\[[^\]]*\])?\s*(?:([<>=!~]=?=?)\s*([^;\s#]+))?')


def parse_dependencies(content: str) -> List[DependencyInfo]:
    """Parse package.json dependencies, devDependencies and peerDependencies."""
    try:
        data = json.loads(content)
    except ValueError as e:
        logger.warning("Failed to parse package.json: %s", e)
        return []
    if not isinstance(data, dict):
        logger.warning("Failed to parse package.json: top level is not an object")
        return []

    deps = []
    for section, dep_type in _NPM_SECTIONS:
        entries = data.get(section) or {}
        if not isinstance(entries, dict):
            continue
        for name, version in entries.items():
            deps.append(DependencyInfo(name, str(version), dep_type, 'npm'))
    return deps


def _parse_requirements(content: str) -> List[DependencyInfo]:
    deps = []
    for raw in content.splitlines():
        line = raw.split('#', 1)[0].strip()
        if not line or line.startswith('-'):
            continue
        m = _REQUIREMENT_RE.match(line)
        if not m:
            continue
        version = f"{m.group(2)}{m.group(3)}" if m.group(3) else None
        deps.append(DependencyInfo(m.group(1), version, 'dependency', 'pypi'))
    return deps


def _parse_composer(content: str) -> List[DependencyInfo]:
    try:
        data = json.loads(content)
    except ValueError as e:
        logger.warning("Failed to parse composer.json: %s", e)
        return []
    if not isinstance(data, dict):
        logger.warning("Failed to parse composer.json: top level is not an object")
        return []

    deps = []
    for section, dep_type in (('require', 'dependency'), ('require-dev', 'devDependency')):
        entries = data.get(section) or {}
        if not isinstance(entries, dict):
            continue
        for name, version in entries.items():
            # platform requirements are not packages
            if name == 'php' or name.startswith('ext-'):
                continue
            deps.append(DependencyInfo(name, str(version), dep_type, 'composer'))
    return deps


MANIFEST_PARSERS = {
    'package.json': parse_dependencies,
    'requirements.txt': _parse_requirements,
    'composer.json': _parse_composer,
}


def parse_manifest(filename: str, content: str) -> List[DependencyInfo]:
    """Parse a known manifest by its base name. Unknown files yield []."""
    parser = MANIFEST_PARSERS.get(os.path.basename(filename).lower())
    if parser is None:
        return []
    return parser(content)


# ============================================================================
# Build Tools, Package Managers, Project Structure
# ============================================================================

BUILD_TOOL_PATTERNS = {
    'Webpack': ['webpack.config.js', 'webpack.config.ts', 'webpack.dev.js', 'webpack.prod.js'],
    'Vite': ['vite.config.js', 'vite.config.ts'],
    'Rollup': ['rollup.config.js', 'rollup.config.ts'],
    'Parcel': ['parcel.config.js', '.parcelrc'],
    'Gulp': ['gulpfile.js', 'gulpfile.ts'],
    'Grunt': ['gruntfile.js', 'grunt.js'],
    'Maven': ['pom.xml'],
    'Gradle': ['build.gradle', 'build.gradle.kts', 'gradle.properties'],
    'Make': ['makefile', 'cmake.txt', 'cmakelist.txt'],
    'Cargo': ['cargo.toml'],
    'Go Modules': ['go.mod', 'go.sum'],
    'CMake': ['cmakelists.txt', 'cmake.txt'],
}

PACKAGE_MANAGER_PATTERNS = {
    'npm': ['package.json', 'package-lock.json'],
    'Yarn': ['yarn.lock', '.yarnrc'],
    'pnpm': ['pnpm-lock.yaml', '.pnpmrc'],
    'Bun': ['bun.lockb'],
    'pip': ['requirements.txt', 'pyproject.toml', 'setup.py'],
    'Poetry': ['poetry.lock', 'pyproject.toml'],
    'Conda': ['environment.yml', 'conda.yml'],
    'Composer': ['composer.json', 'composer.lock'],
    'Bundler': ['gemfile', 'gemfile.lock'],
    'Cargo': ['cargo.toml', 'cargo.lock'],
    'Go Modules': ['go.mod', 'go.sum'],
    'NuGet': ['packages.config', '*.csproj', '*.nuspec'],
}


def _name_matches(pattern: str, filename: str) -> bool:
    if '*' in pattern:
        return re.search(re.escape(pattern).replace(r'\*', '.*') + '$', filename) is not None
    return pattern in filename


def detect_build_tools(filenames: Sequence[str]) -> List[str]:
    return [tool for tool, patterns in BUILD_TOOL_PATTERNS.items()
            if any(_name_matches(p, f) for p in patterns for f in filenames)]


def detect_package_managers(filenames: Sequence[str]) -> List[str]:
    return [manager for manager, patterns in PACKAGE_MANAGER_PATTERNS.items()
            if any(_name_matches(p, f) for p in patterns for f in filenames)]


def _directories(filenames: Sequence[str]) -> set:
    dirs = set()
    for name in filenames:
        parts = name.split('/')
        for i in range(1, len(parts)):
            dirs.add('/'.join(parts[:i]))
    return dirs


def _any_indicator(indicators, filenames, directories) -> bool:
    return any(
        any(ind in f for f in filenames) or ind.replace('/', '', 1) in directories
        for ind in indicators
    )


WEB_INDICATORS = ['public/', 'static/', 'assets/', 'src/components/', 'src/pages/',
                  'src/views/', 'index.html', 'app.html', 'package.json']
MOBILE_INDICATORS = ['android/', 'ios/', 'lib/', 'pubspec.yaml', 'android/app/',
                     'ios/runner/', 'react-native', 'metro.config.js', 'app.json']
LIBRARY_INDICATORS = ['lib/', 'dist/', 'build/', 'index.js', 'index.ts', 'rollup.config',
                      'webpack.config', 'tsconfig.json', '.npmignore']
MICROSERVICE_INDICATORS = ['dockerfile', 'docker-compose', 'kubernetes/', 'k8s/', 'helm/',
                           'charts/', 'api/', 'routes/', 'controllers/', 'middleware/', 'services/']
MONOREPO_CONFIGS = ['lerna.json', 'nx.json', 'workspace.json', 'pnpm-workspace.yaml']
DESKTOP_INDICATORS = ['electron', 'tauri', 'main.js', 'main.ts', 'src-tauri/',
                      'electron-builder', 'forge.config.js', 'tauri.conf.json']


def _is_web(filenames, dirs):
    return _any_indicator(WEB_INDICATORS, filenames, dirs)


def _is_mobile(filenames, dirs):
    return _any_indicator(MOBILE_INDICATORS, filenames, dirs)


def _is_library(filenames, dirs):
    main_entry = any(f in ('index.js', 'index.ts', 'main.js', 'main.ts') for f in filenames)
    return main_entry and any(ind in f for ind in LIBRARY_INDICATORS for f in filenames)


def _is_microservice(filenames, dirs):
    if any('dockerfile' in f or 'docker-compose' in f for f in filenames):
        return True
    return _any_indicator(MICROSERVICE_INDICATORS, filenames, dirs)


def _is_monorepo(filenames, dirs):
    if any(cfg in f for cfg in MONOREPO_CONFIGS for f in filenames):
        return True
    grouped = [d for d in dirs if 'packages/' in d or 'apps/' in d or 'libs/' in d]
    return len(grouped) > 1


def _is_desktop(filenames, dirs):
    return _any_indicator(DESKTOP_INDICATORS, filenames, dirs)


# Checked in order; a later match overrides the type, every match adds confidence.
STRUCTURE_CHECKS = [
    ('web', 40, 'Web application', _is_web),
    ('mobile', 40, 'Mobile application', _is_mobile),
    ('library', 35, 'Library/package', _is_library),
    ('microservice', 35, 'Microservice', _is_microservice),
    ('monorepo', 30, 'Monorepo', _is_monorepo),
    ('desktop', 30, 'Desktop application', _is_desktop),
]


def analyze_project_structure(filenames: Sequence[str]) -> ProjectStructure:
    dirs = _directories(filenames)
    structure = ProjectStructure()
    confidence = 0
    for kind, weight, label, check in STRUCTURE_CHECKS:
        if check(filenames, dirs):
            structure.type = kind
            confidence += weight
            structure.indicators.append(f"{label} structure detected")
    structure.confidence = min(100, confidence)
    return structure


# ============================================================================
# Codebase Report
# ============================================================================

def detect_codebase(files: Sequence[SourceFile],
                    detector: Optional[FrameworkDetector] = None) -> DetectionResult:
    """Run every detector over the file set."""
    start = time.monotonic()
    filenames = [f.filename.replace('\\', '/').lower() for f in files]

    analyses = [(f, detect_file_language(f.filename, f.content)) for f in files]
    languages = detect_languages(analyses)

    dependencies: List[DependencyInfo] = []
    for f in files:
        dependencies.extend(parse_manifest(f.filename, f.content))

    frameworks = (detector or FrameworkDetector()).detect(files, dependencies or None)
    result = DetectionResult(
        primary_language=primary_language(languages),
        languages=languages,
        frameworks=frameworks,
        project_structure=analyze_project_structure(filenames),
        build_tools=detect_build_tools(filenames),
        package_managers=detect_package_managers(filenames),
        dependencies=dependencies,
        total_files=len(files),
        analysis_time=time.monotonic() - start,
        file_languages={f.filename: lang for f, lang in analyses},
    )
    logger.debug("Detection: %s", language_summary(result))
    return result


def language_summary(result: DetectionResult) -> str:
    primary = result.primary_language
    summary = f"Primary: {primary.name} ({primary.confidence}%)"
    if len(result.languages) > 1:
        others = [f"{l.name} ({l.confidence}%)" for l in result.languages[1:3]]
        summary += f", Others: {', '.join(others)}"
    if result.frameworks:
        summary += f", Frameworks: {', '.join(f.name for f in result.frameworks[:2])}"
    return summary


LANGUAGE_TOOLS = {
    'javascript': ['ESLint', 'SonarJS'],
    'typescript': ['ESLint', 'SonarJS'],
    'python': ['Bandit', 'PyLint', 'Safety'],
    'java': ['SpotBugs', 'SonarJava'],
    'csharp': ['SonarC#', 'Security Code Scan'],
    'php': ['PHPCS Security', 'SonarPHP'],
    'ruby': ['Brakeman', 'RuboCop Security'],
    'go': ['Gosec', 'StaticCheck'],
    'rust': ['Clippy', 'Cargo Audit'],
}

FRAMEWORK_TOOLS = {
    'React': ['React Security', 'JSX A11y'],
    'Next.js': ['React Security', 'JSX A11y'],
    'Angular': ['Angular Security', 'TSLint Security'],
    'Vue.js': ['Vue Security'],
    'Django': ['Django Security', 'Bandit Django'],
    'Spring Boot': ['Spring Security Analyzer'],
}

GENERAL_TOOLS = ['Semgrep', 'CodeQL', 'Secret Scanner']


def recommended_tools(result: DetectionResult) -> List[str]:
    tools: Dict[str, None] = {}
    for lang in result.languages:
        for tool in LANGUAGE_TOOLS.get(lang.name, []):
            tools[tool] = None
    for fw in result.frameworks:
        for tool in FRAMEWORK_TOOLS.get(fw.name, []):
            tools[tool] = None
    for tool in GENERAL_TOOLS:
        tools[tool] = None
    return list(tools)
