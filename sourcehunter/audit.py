"""npm audit integration.

Best-effort lookup of known-vulnerable npm dependencies. Anything that stops
the lookup from producing an answer raises DependencyLookupError; the
pipeline reports that as ``unavailable`` rather than failing the scan.
"""

import json
import logging
import shutil
import subprocess
from pathlib import Path
from typing import List, Optional

from .errors import DependencyLookupError
from .models import Severity, VulnerableDependency

logger = logging.getLogger(__name__)

NPM_AUDIT_TIMEOUT = 60

_NPM_SEVERITY_MAP = {
    'critical': Severity.CRITICAL,
    'high': Severity.HIGH,
    'moderate': Severity.MEDIUM,
    'low': Severity.LOW,
}


def has_lockfile(target: str) -> bool:
    return (_target_dir(target) / 'package-lock.json').exists()


def _target_dir(target: str) -> Path:
    target_path = Path(target)
    return target_path if target_path.is_dir() else target_path.parent


def parse_audit_report(data: dict) -> List[VulnerableDependency]:
    """Convert ``npm audit --json`` (v7+ format) into VulnerableDependency records."""
    vulns = data.get('vulnerabilities', {})
    if not isinstance(vulns, dict):
        raise DependencyLookupError("npm audit: unexpected 'vulnerabilities' payload")

    findings: List[VulnerableDependency] = []
    for pkg_name, info in sorted(vulns.items()):
        npm_severity = info.get('severity', 'low')
        advisories = []
        for entry in info.get('via', []):
            if isinstance(entry, dict):
                title = entry.get('title', '')
                url = entry.get('url', '')
                if title:
                    advisories.append(f"{title} ({url})" if url else title)
        findings.append(VulnerableDependency(
            name=pkg_name,
            severity=_NPM_SEVERITY_MAP.get(npm_severity, Severity.LOW),
            version_range=info.get('range', 'unknown'),
            fix_available=bool(info.get('fixAvailable', False)),
            advisories=advisories,
        ))
    return findings


def run_npm_audit(target: str, timeout: Optional[float] = NPM_AUDIT_TIMEOUT) -> List[VulnerableDependency]:
    """Run ``npm audit --json`` next to the target's package-lock.json.

    Raises:
        DependencyLookupError: npm missing, no lockfile, timeout or unreadable output.
    """
    if shutil.which('npm') is None:
        raise DependencyLookupError("npm is not installed")

    target_dir = _target_dir(target)
    if not (target_dir / 'package-lock.json').exists():
        raise DependencyLookupError(f"no package-lock.json in {target_dir}")

    logger.debug("Running npm audit in %s", target_dir)
    try:
        result = subprocess.run(
            ['npm', 'audit', '--json'],
            cwd=str(target_dir),
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as e:
        raise DependencyLookupError(f"npm audit timed out after {timeout}s") from e
    except OSError as e:
        raise DependencyLookupError(f"npm audit failed to start: {e}") from e

    # npm audit exits 1 when it finds vulnerabilities, so only the output matters
    try:
        data = json.loads(result.stdout)
    except ValueError as e:
        raise DependencyLookupError(f"npm audit returned invalid JSON: {e}") from e
    if not isinstance(data, dict):
        raise DependencyLookupError("npm audit returned an unexpected document")
    if 'error' in data and 'vulnerabilities' not in data:
        err = data['error']
        summary = err.get('summary') if isinstance(err, dict) else str(err)
        raise DependencyLookupError(f"npm audit error: {summary}")

    return parse_audit_report(data)
