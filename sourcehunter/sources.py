"""
File collection
===============
Turns a scan target (a directory, a single file or a .zip archive) into the
in-memory ``SourceFile`` list the pipeline consumes. Filenames are relative to
the target and use forward slashes.

Code files are selected by extension. Dependency manifests and well-known
project files are collected too, since detection reads them.
"""

import logging
import os
import re
import zipfile
from pathlib import Path
from typing import List, Optional

from .config import ScanConfig
from .detector import (
    BUILD_TOOL_PATTERNS, LANGUAGE_PATTERNS, MANIFEST_PARSERS,
    PACKAGE_MANAGER_PATTERNS, file_extension,
)
from .errors import ExtractionError
from .models import SourceFile

logger = logging.getLogger(__name__)


CODE_EXTENSIONS = {ext for sig in LANGUAGE_PATTERNS.values() for ext in sig.extensions}

PROJECT_FILES = (
    set(MANIFEST_PARSERS)
    | {p for patterns in BUILD_TOOL_PATTERNS.values() for p in patterns if '*' not in p}
    | {p for patterns in PACKAGE_MANAGER_PATTERNS.values() for p in patterns if '*' not in p}
    | {'dockerfile', 'docker-compose.yml', 'docker-compose.yaml', 'angular.json',
       'tsconfig.json', 'nest-cli.json', 'pubspec.yaml', 'artisan', 'app.json',
       'ionic.config.json', 'application.properties', 'lerna.json', 'nx.json',
       'pnpm-workspace.yaml', 'index.html'}
)

SKIP_DIRS = {'node_modules', '.git', 'vendor', 'dist', 'build', '.next', '__pycache__',
             'bower_components', 'jspm_packages', 'third_party', 'third-party',
             'external', 'externals', '.bundle', 'venv', '.venv', '.tox',
             'site-packages', '.mypy_cache', '.pytest_cache', 'Pods'}
SKIP_PATTERNS = ['node_modules/', 'vendor/', 'dist/', 'build/',
                 'bundle.js', 'chunk.', '.bundle.', 'polyfill', '.map']

# Vendored web library filenames, only applied to JavaScript/TypeScript files
SKIP_VENDOR_FILES = {
    # Minified files
    '.min.js', '.bundle.js', '.chunk.js', '-min.js', '.prod.js', '.production.js',
    # Common vendor libraries
    'jquery', 'bootstrap', 'lodash', 'underscore', 'moment', 'popper',
    'highcharts', 'socket.io', 'knockout', 'mootools', 'ext-all',
    'tinymce', 'ckeditor', 'codemirror', 'ace-builds', 'select2', 'datatables',
    'fullcalendar', 'sweetalert', 'modernizr', 'html5shiv',
    # Polyfills and shims
    'polyfill', 'core-js', 'babel-polyfill', 'es5-shim', 'es6-shim',
    # Build artifacts
    'webpack-runtime', 'runtime~', 'vendors~', 'vendor.',
}

_WEB_EXTENSIONS = {'.js', '.jsx', '.mjs', '.cjs', '.ts', '.tsx'}


def is_wanted(rel_path: str) -> bool:
    name = os.path.basename(rel_path).lower()
    return file_extension(name) in CODE_EXTENSIONS or name in PROJECT_FILES


def should_skip_file(file_path: str) -> bool:
    path_lower = file_path.replace('\\', '/').lower()
    if any(p in path_lower for p in SKIP_PATTERNS):
        return True
    if file_extension(path_lower) not in _WEB_EXTENSIONS:
        return False
    filename_lower = os.path.basename(path_lower)
    return any(p in filename_lower for p in SKIP_VENDOR_FILES)


def detect_minified(content: str, file_path: str) -> bool:
    if not content:
        return False
    lines = content.split('\n')
    if len(lines) < 10 and len(content) > 5000:
        return True
    non_empty = [l for l in lines if l.strip()]
    if non_empty and sum(len(l) for l in non_empty) / len(non_empty) > 500:
        return True
    if any(len(l) > 1000 for l in lines):
        return True
    sample = content[:5000]
    if sample.count(';') > 50 and sample.count('\n') < 20:
        return True
    filename = os.path.basename(file_path).lower()
    if '.min.' in filename or '-min.' in filename:
        return True
    if (re.search(r'\b[a-z]\s*=\s*[a-z]\s*\(', sample) and
            re.search(r'function\s*\([a-z](,[a-z]){3,}', sample)):
        return True
    return False


def decode(data: bytes) -> str:
    for encoding in ['utf-8', 'cp1252']:
        try:
            return data.decode(encoding)
        except UnicodeDecodeError:
            continue
    return data.decode('latin-1')


def read_file(file_path: str) -> Optional[str]:
    for encoding in ['utf-8', 'latin-1', 'cp1252']:
        try:
            with open(file_path, 'r', encoding=encoding) as f:
                return f.read()
        except UnicodeDecodeError:
            continue
        except OSError as e:
            logger.warning("Cannot read %s: %s", file_path, e)
            return None
    return None


# ============================================================================
# Collection
# ============================================================================

class FileCollector:
    """Collects analyzable files from a target path."""

    def __init__(self, config: Optional[ScanConfig] = None, scan_all: bool = False):
        self.config = config or ScanConfig()
        self.scan_all = scan_all
        self.skipped = 0

    def _accept(self, rel_path: str, size: int) -> bool:
        if not is_wanted(rel_path):
            return False
        if not self.scan_all and should_skip_file(rel_path):
            logger.debug("Skipping vendor/minified file: %s", rel_path)
            self.skipped += 1
            return False
        if self.config.should_exclude(rel_path):
            logger.debug("Excluded by config: %s", rel_path)
            self.skipped += 1
            return False
        if size > self.config.max_file_size:
            logger.warning("Skipping %s: %d bytes exceeds max_file_size %d",
                           rel_path, size, self.config.max_file_size)
            self.skipped += 1
            return False
        return True

    def _make(self, rel_path: str, content: str, size: int) -> SourceFile:
        if file_extension(rel_path) in _WEB_EXTENSIONS and detect_minified(content, rel_path):
            logger.warning("Minified file: %s. Findings may have more false positives.", rel_path)
        return SourceFile(rel_path, content, size)

    def collect(self, target: str) -> List[SourceFile]:
        """Collect a directory, single file or zip archive.

        Raises:
            ExtractionError: the target is missing, unreadable or a corrupt archive.
        """
        path = Path(target)
        if not path.exists():
            raise ExtractionError(f"{target} does not exist")
        if path.is_dir():
            return self.collect_directory(path)
        if zipfile.is_zipfile(path):
            return self.collect_zip(path)
        return self.collect_file(path)

    def collect_file(self, path: Path) -> List[SourceFile]:
        try:
            size = path.stat().st_size
        except OSError as e:
            raise ExtractionError(f"Cannot read {path}: {e}") from e
        if not self._accept(path.name, size):
            return []
        content = read_file(str(path))
        if content is None:
            raise ExtractionError(f"Cannot read {path}")
        return [self._make(path.name, content, size)]

    def collect_directory(self, directory: Path) -> List[SourceFile]:
        if not os.access(directory, os.R_OK | os.X_OK):
            raise ExtractionError(f"Cannot read directory {directory}")

        files = []
        for root, dirs, filenames in os.walk(directory):
            if not self.scan_all:
                dirs[:] = [d for d in dirs if d not in SKIP_DIRS]
            dirs.sort()
            for fname in sorted(filenames):
                full = os.path.join(root, fname)
                rel = os.path.relpath(full, directory).replace(os.sep, '/')
                try:
                    size = os.path.getsize(full)
                except OSError as e:
                    logger.warning("Cannot stat %s: %s", rel, e)
                    continue
                if not self._accept(rel, size):
                    continue
                content = read_file(full)
                if content is None:
                    continue
                files.append(self._make(rel, content, size))
        logger.debug("Collected %d files from %s (%d skipped)", len(files), directory, self.skipped)
        return files

    def collect_zip(self, archive: Path) -> List[SourceFile]:
        files = []
        try:
            with zipfile.ZipFile(archive) as zf:
                for info in zf.infolist():
                    if info.is_dir():
                        continue
                    rel = info.filename.replace('\\', '/').lstrip('/')
                    parts = rel.split('/')
                    if '..' in parts:
                        logger.warning("Skipping unsafe archive entry: %s", info.filename)
                        continue
                    if not self.scan_all and any(p in SKIP_DIRS for p in parts[:-1]):
                        continue
                    if not self._accept(rel, info.file_size):
                        continue
                    files.append(self._make(rel, decode(zf.read(info)), info.file_size))
        except (zipfile.BadZipFile, zipfile.LargeZipFile, OSError) as e:
            raise ExtractionError(f"Cannot extract {archive}: {e}") from e
        logger.debug("Collected %d files from archive %s", len(files), archive)
        return files


def collect(target: str, config: Optional[ScanConfig] = None, scan_all: bool = False) -> List[SourceFile]:
    return FileCollector(config, scan_all).collect(target)
