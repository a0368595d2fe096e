# reconcile/package_resolver.py - which npm packages a response needs, and which are missing

from typing import Iterable, List, Optional, Tuple
import json
import re
import shlex

from config.app_config import appConfig
from reconcile.executor import SandboxUnavailableError

IMPORT_RE = re.compile(
    r"""import\s+(?:(?:\{[^}]*\}|\*\s+as\s+\w+|\w+)(?:\s*,\s*(?:\{[^}]*\}|\*\s+as\s+\w+|\w+))*\s+from\s+)?['"]([^'"]+)['"]"""
)

# Relative paths, project aliases and node: builtins never map to an npm package
INTERNAL_PREFIXES = ('.', '/', '@/', '~/', 'node:')

NODE_BUILTINS = frozenset({
    'assert', 'buffer', 'child_process', 'crypto', 'events', 'fs', 'http', 'https',
    'net', 'os', 'path', 'process', 'querystring', 'stream', 'url', 'util', 'zlib',
})


def base_name(pkg: str) -> str:
    """Strip a version suffix: 'axios@1.6' -> 'axios', '@scope/x@2' -> '@scope/x'."""
    if pkg.startswith('@'):
        return '@' + pkg[1:].split('@')[0]
    return pkg.split('@')[0]


def package_id(specifier: str) -> Optional[str]:
    if not specifier or specifier.startswith(INTERNAL_PREFIXES):
        return None
    parts = specifier.split('/')
    if specifier.startswith('@'):
        if len(parts) < 2 or not parts[1]:
            return None
        return '/'.join(parts[:2])
    if parts[0] in NODE_BUILTINS:
        return None
    return parts[0]


def scan_imports(content: str) -> List[str]:
    """Package ids referenced by ES import statements, in first-seen order."""
    preinstalled = appConfig.packages.preinstalled
    found: List[str] = []
    for m in IMPORT_RE.finditer(content or ''):
        pkg = package_id(m.group(1))
        if pkg and pkg not in preinstalled and pkg not in found:
            found.append(pkg)
    return found


def resolve(explicit_packages: Optional[Iterable], parsed_packages: Optional[Iterable]) -> List[str]:
    """Union of both lists, deduplicated, junk removed, pre-installed runtime filtered out."""
    preinstalled = appConfig.packages.preinstalled
    unique: List[str] = []
    seen = set()
    for source in (explicit_packages or [], parsed_packages or []):
        for pkg in source:
            if not isinstance(pkg, str):
                continue
            pkg = pkg.strip()
            name = base_name(pkg) if pkg else ""
            if not name or name in preinstalled or name in seen:
                continue
            # first spelling wins, versioned or not
            seen.add(name)
            unique.append(pkg)
    return unique


async def _materialized(executor, packages: List[str]) -> List[str]:
    """Names whose node_modules directory already exists in the sandbox."""
    targets = ' '.join(shlex.quote(f"node_modules/{base_name(p)}") for p in packages)
    result = await executor.run_command(f"ls -d {targets} 2>/dev/null")
    present = set()
    for line in result.stdout.splitlines():
        line = line.strip().rstrip('/')
        if line.startswith('node_modules/'):
            present.add(line[len('node_modules/'):])
    return [p for p in packages if base_name(p) in present]


async def partition(executor, packages: List[str]) -> Tuple[List[str], List[str]]:
    """
    Split packages into (already_installed, need_install).

    Declared dependencies in package.json count as installed, then whatever is
    left is checked against node_modules. Any failure sends everything to install.
    """
    if not packages:
        return [], []
    try:
        manifest = json.loads(await executor.read_file('package.json') or '{}')
        declared = {
            **(manifest.get('dependencies') or {}),
            **(manifest.get('devDependencies') or {}),
        }
        already = [p for p in packages if base_name(p) in declared]
        pending = [p for p in packages if p not in already]
        if pending:
            on_disk = await _materialized(executor, pending)
            already.extend(on_disk)
            pending = [p for p in pending if p not in on_disk]
        return already, pending
    except SandboxUnavailableError:
        raise
    except Exception as e:
        print(f"[package-resolver] Install check failed, installing all packages: {e}")
        return [], list(packages)
