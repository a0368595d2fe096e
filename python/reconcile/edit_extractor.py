# reconcile/edit_extractor.py - precision edits: <edit> blocks merged into live files
#
# Block shape:
#   <edit target_file="src/components/Header.jsx">
#     <instructions>Make the header sticky</instructions>
#     <update>// ... existing code ...
#     <header className="sticky top-0">
#     // ... existing code ...</update>
#   </edit>

from typing import List, Optional
import re

from langchain_core.messages import HumanMessage
from langchain_openai import ChatOpenAI

from config.app_config import appConfig
from reconcile.executor import SandboxExecutor, SandboxUnavailableError
from reconcile.models import EditInstruction, EditResult
from reconcile.paths import normalize_path

EDIT_BLOCK_RE = re.compile(r'<edit\s+(?:target_file|path)\s*=\s*"([^"]+)"\s*>(.*?)</edit>', re.DOTALL)
INSTRUCTIONS_RE = re.compile(r'<instructions>(.*?)</instructions>', re.DOTALL)
UPDATE_RE = re.compile(r'<update>(.*?)</update>', re.DOTALL)
FENCE_RE = re.compile(r'^```[\w+-]*\n(.*?)\n?```\s*$', re.DOTALL)


def precision_edits_enabled(edit_mode: bool) -> bool:
    """Edit mode was requested and a fast-apply backend is configured."""
    return bool(edit_mode and appConfig.morph.apiKey)


def extract_edits(response_text: Optional[str]) -> List[EditInstruction]:
    edits: List[EditInstruction] = []
    for m in EDIT_BLOCK_RE.finditer(response_text or ''):
        target = m.group(1).strip()
        body = m.group(2)
        update = UPDATE_RE.search(body)
        if not update or not update.group(1).strip():
            print(f"[edit-extractor] Skipping edit for {target}: no <update> snippet")
            continue
        instructions = INSTRUCTIONS_RE.search(body)
        edits.append(EditInstruction(
            targetFile=target,
            instructions=instructions.group(1).strip() if instructions else '',
            updateSnippet=update.group(1).strip('\n'),
        ))
    return edits


def _strip_fence(text: str) -> str:
    m = FENCE_RE.match(text.strip())
    return m.group(1) if m else text


class MorphMerger:
    """Merges an elided update snippet into a file through Morph's OpenAI-compatible API."""

    def __init__(self, llm: Optional[ChatOpenAI] = None) -> None:
        self._llm = llm

    @property
    def llm(self) -> ChatOpenAI:
        if self._llm is None:
            self._llm = ChatOpenAI(
                api_key=appConfig.morph.apiKey,
                base_url=appConfig.morph.baseUrl,
                model=appConfig.morph.model,
                temperature=0,
            )
        return self._llm

    async def merge(self, instructions: str, original: str, snippet: str) -> str:
        prompt = (
            f"<instruction>{instructions}</instruction>\n"
            f"<code>{original}</code>\n"
            f"<update>{snippet}</update>"
        )
        reply = await self.llm.ainvoke([HumanMessage(content=prompt)])
        content = reply.content if isinstance(reply.content, str) else str(reply.content)
        merged = _strip_fence(content)
        if not merged.strip():
            raise ValueError("Fast-apply backend returned empty content")
        return merged


class EditApplier:

    def __init__(self, merger: Optional[MorphMerger] = None) -> None:
        self.merger = merger or MorphMerger()

    async def apply(self, executor: SandboxExecutor, edit: EditInstruction) -> EditResult:
        """Fetch the current file from the sandbox, merge the snippet, write it back."""
        path = normalize_path(edit.targetFile)
        try:
            original = await executor.read_file(path)
        except SandboxUnavailableError:
            raise
        except Exception as e:
            return EditResult(success=False, normalizedPath=path, error=f"Could not read {path}: {e}")

        try:
            merged = await self.merger.merge(edit.instructions, original, edit.updateSnippet)
            await executor.write_file(path, merged)
        except SandboxUnavailableError:
            raise
        except Exception as e:
            return EditResult(success=False, normalizedPath=path, error=str(e))

        print(f"[edit-extractor] Precision edit applied to {path}")
        return EditResult(success=True, normalizedPath=path, content=merged)
