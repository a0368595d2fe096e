# reconcile/response_parser.py - turns raw AI output into files, packages and commands
#
# The primary pass is a small scanner with three states (outside a tag, inside a
# <file> block, inside a singleton tag). Text consumed by the scanner is masked
# out before the fallback passes run, so an <explanation> that quotes
# `<file path=...>` or a code fence never produces a file.

from typing import Dict, List, Optional, Tuple
import re

from config.app_config import appConfig
from reconcile.models import ParsedFile, ParsedResponse
from reconcile.package_resolver import resolve, scan_imports

FILE_OPEN_RE = re.compile(r'<file\s+path\s*=\s*"([^"]+)"\s*>')
FILE_CLOSE = '</file>'
SINGLETON_OPEN_RE = re.compile(r'<(command|packages|package|structure|explanation|template)>')
FIRST_MATCH_TAGS = ('structure', 'explanation', 'template')

# An ellipsis that does not introduce a spread/rest operand
STRAY_ELLIPSIS_RE = re.compile(r'\.\.\.(?![\w$\[{(])')

FENCED_PATH_RE = re.compile(
    r'```(?:file\s+|[\w+-]+\s+)?path\s*=\s*["\']([^"\']+)["\'][^\n]*\n(.*?)```',
    re.DOTALL,
)
GENERATED_FILES_RE = re.compile(r'Generated Files?:\s*([^\n]+)', re.IGNORECASE)
GENERATED_CONTENT_END_RE = re.compile(r'Generated Files?:|Applying code|```', re.IGNORECASE)
GENERATED_EXTENSIONS = ('.jsx', '.js', '.tsx', '.ts', '.css', '.json', '.html')
BARE_FENCE_RE = re.compile(r'```(?:jsx?|tsx?|javascript|typescript)?\n(.*?)```', re.DOTALL)
NAMED_FENCE_RE = re.compile(r'^//\s*(?:File|Component):\s*([^\n]+)')

OUTSIDE, IN_FILE, IN_SINGLETON = 'outside', 'in-file', 'in-singleton'


def is_suspicious(content: str) -> bool:
    """True when the content carries an ellipsis that looks like elided code."""
    return bool(STRAY_ELLIPSIS_RE.search(content))


def _rank(candidate: ParsedFile) -> Tuple[bool, bool, int]:
    return (not candidate.suspicious, candidate.complete, len(candidate.content))


def _offer(files: Dict[str, ParsedFile], path: str, candidate: ParsedFile) -> None:
    existing = files.get(path)
    if existing is None:
        if candidate.suspicious:
            print(f"[response-parser] Warning: {path} contains an ellipsis, may be truncated")
        files[path] = candidate
        return
    if _rank(candidate) > _rank(existing):
        if candidate.complete and not existing.complete:
            print(f"[response-parser] Replacing incomplete {path} with complete version")
        else:
            print(f"[response-parser] Replacing {path} with a better version")
        files[path] = candidate


def _scan(text: str):
    """
    Walk the text once and return (file_blocks, singletons, consumed_spans).
    file_blocks: [(path, raw_content, complete)], singletons: [(tag, raw_content)].
    """
    blocks: List[Tuple[str, str, bool]] = []
    singletons: List[Tuple[str, str]] = []
    spans: List[Tuple[int, int]] = []

    state = OUTSIDE
    pos = 0
    path = ''
    tag = ''
    block_start = 0
    content_start = 0

    while True:
        if state == OUTSIDE:
            lt = text.find('<', pos)
            if lt == -1:
                break
            file_open = FILE_OPEN_RE.match(text, lt)
            if file_open:
                state = IN_FILE
                path = file_open.group(1).strip()
                block_start, content_start = lt, file_open.end()
                pos = content_start
                continue
            singleton_open = SINGLETON_OPEN_RE.match(text, lt)
            if singleton_open:
                state = IN_SINGLETON
                tag = singleton_open.group(1)
                block_start, content_start = lt, singleton_open.end()
                pos = content_start
                continue
            pos = lt + 1

        elif state == IN_FILE:
            close_at = text.find(FILE_CLOSE, pos)
            next_open = FILE_OPEN_RE.search(text, pos)
            if close_at != -1 and (next_open is None or close_at < next_open.start()):
                blocks.append((path, text[content_start:close_at], True))
                pos = close_at + len(FILE_CLOSE)
                spans.append((block_start, pos))
            elif next_open is not None:
                # A new block started before this one closed: the stream was cut
                blocks.append((path, text[content_start:next_open.start()], False))
                pos = next_open.start()
                spans.append((block_start, pos))
            else:
                blocks.append((path, text[content_start:], False))
                spans.append((block_start, len(text)))
                break
            state = OUTSIDE

        else:  # IN_SINGLETON
            closing = f'</{tag}>'
            close_at = text.find(closing, pos)
            if close_at == -1:
                # Unclosed singleton: ignore the opener and keep scanning after it
                pos = content_start
            else:
                singletons.append((tag, text[content_start:close_at]))
                pos = close_at + len(closing)
                spans.append((block_start, pos))
            state = OUTSIDE

    return blocks, singletons, spans


def _mask(text: str, spans: List[Tuple[int, int]]) -> str:
    if not spans:
        return text
    parts = []
    cursor = 0
    for start, end in sorted(spans):
        parts.append(text[cursor:start])
        parts.append('\n')
        cursor = max(cursor, end)
    parts.append(text[cursor:])
    return ''.join(parts)


def _component_path(name: str) -> str:
    name = name.strip()
    return name if '/' in name else f"{appConfig.files.componentsRoot}{name}"


def _fallback_files(residual: str) -> List[Tuple[str, str]]:
    """Recover files the tag scan missed, in priority order."""
    found: List[Tuple[str, str]] = []

    for m in FENCED_PATH_RE.finditer(residual):
        found.append((m.group(1).strip(), m.group(2)))

    manifest = GENERATED_FILES_RE.search(residual)
    if manifest:
        names = [n.strip() for n in manifest.group(1).split(',')]
        names = [n for n in names if n.endswith(GENERATED_EXTENSIONS)]
        if names:
            print(f"[response-parser] Detected generated files from plain text: {', '.join(names)}")
        after_manifest = residual[manifest.end():]
        for name in names:
            at = after_manifest.find(name)
            if at == -1:
                continue
            import_line = re.search(r'^import\b', after_manifest[at:], re.MULTILINE)
            if not import_line:
                continue
            body = after_manifest[at + import_line.start():]
            end = GENERATED_CONTENT_END_RE.search(body)
            if end:
                body = body[:end.start()]
            found.append((_component_path(name), body))

    for m in BARE_FENCE_RE.finditer(residual):
        content = m.group(1).strip()
        named = NAMED_FENCE_RE.match(content)
        if named:
            found.append((_component_path(named.group(1)), content))

    return found


def parse(response_text: Optional[str]) -> ParsedResponse:
    """
    Extract files, commands, packages and metadata from an AI response.
    Never raises; malformed input just yields fewer files.
    """
    text = response_text if isinstance(response_text, str) else ''
    parsed = ParsedResponse()

    blocks, singletons, spans = _scan(text)

    for path, raw, complete in blocks:
        content = raw.strip()
        _offer(parsed.files, path, ParsedFile(
            content=content, complete=complete, suspicious=is_suspicious(content)))

    for path, entry in parsed.files.items():
        if not entry.complete:
            print(f"[response-parser] Warning: File {path} appears to be truncated (no closing tag)")

    primary_paths = set(parsed.files)
    for path, raw in _fallback_files(_mask(text, spans)):
        if path in primary_paths or path in parsed.files:
            continue
        content = raw.strip()
        parsed.files[path] = ParsedFile(content=content, complete=True, suspicious=is_suspicious(content))
        print(f"[response-parser] Recovered {path} from untagged output")

    tagged_packages: List[str] = []
    seen_first: set = set()
    for tag, raw in singletons:
        value = raw.strip()
        if tag == 'command':
            if value:
                parsed.commands.append(value)
        elif tag == 'package':
            tagged_packages.append(value)
        elif tag == 'packages':
            tagged_packages.extend(p.strip() for p in re.split(r'[\n,]+', value))
        elif tag in FIRST_MATCH_TAGS and tag not in seen_first:
            seen_first.add(tag)
            setattr(parsed, tag, value)

    scanned: List[str] = []
    for entry in parsed.files.values():
        scanned.extend(scan_imports(entry.content))
    parsed.packages = resolve(tagged_packages, scanned)

    return parsed
