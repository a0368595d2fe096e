# reconcile/paths.py - where generated files land in the sandbox project

import posixpath

from config.app_config import appConfig


def is_scaffold_file(path: str) -> bool:
    return posixpath.basename(path) in appConfig.files.scaffoldFiles


def normalize_path(path: str) -> str:
    """
    '/Header.jsx' -> 'src/Header.jsx'; paths already under src/ or public/,
    index.html and scaffold names stay where they are.
    """
    normalized = path.strip().lstrip('/')
    files = appConfig.files
    if normalized.startswith(files.acceptedRoots):
        return normalized
    if normalized in files.acceptedTopLevel or is_scaffold_file(normalized):
        return normalized
    return files.sourceRoot + normalized
