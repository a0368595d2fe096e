from unittest.mock import AsyncMock, Mock

import pytest
from langchain_core.messages import AIMessage

from config.app_config import appConfig
from reconcile.edit_extractor import EditApplier, MorphMerger, extract_edits, precision_edits_enabled
from reconcile.executor import SandboxUnavailableError
from reconcile.models import EditInstruction


EDIT_RESPONSE = """
<edit target_file="components/Header.jsx">
  <instructions>Make the header sticky</instructions>
  <update>// ... existing code ...
<header className="sticky top-0">
// ... existing code ...</update>
</edit>
<edit path="src/Empty.jsx"><instructions>nothing</instructions></edit>
"""


def _merger(reply: str) -> MorphMerger:
    llm = Mock()
    llm.ainvoke = AsyncMock(return_value=AIMessage(content=reply))
    return MorphMerger(llm=llm)


class TestExtractEdits:

    def test_blocks_without_update_are_skipped(self):
        edits = extract_edits(EDIT_RESPONSE)

        assert len(edits) == 1
        assert edits[0].targetFile == "components/Header.jsx"
        assert edits[0].instructions == "Make the header sticky"
        assert 'className="sticky top-0"' in edits[0].updateSnippet

    def test_no_blocks(self):
        assert extract_edits(None) == []
        assert extract_edits("<file path=\"src/A.jsx\">x</file>") == []


class TestGate:

    def test_requires_edit_mode_and_key(self, monkeypatch):
        monkeypatch.setattr(appConfig.morph, "apiKey", "morph-key")
        assert precision_edits_enabled(True) is True
        assert precision_edits_enabled(False) is False

    def test_disabled_without_key(self, monkeypatch):
        monkeypatch.setattr(appConfig.morph, "apiKey", None)
        assert precision_edits_enabled(True) is False


class TestMorphMerger:

    @pytest.mark.asyncio
    async def test_prompt_shape_and_fence_stripping(self):
        merger = _merger("```jsx\nconst merged = true\n```")

        merged = await merger.merge("do it", "const original = 1", "const merged = true")

        assert merged == "const merged = true"
        messages = merger.llm.ainvoke.await_args.args[0]
        assert messages[0].content == (
            "<instruction>do it</instruction>\n"
            "<code>const original = 1</code>\n"
            "<update>const merged = true</update>"
        )

    @pytest.mark.asyncio
    async def test_empty_reply_is_an_error(self):
        with pytest.raises(ValueError):
            await _merger("   ").merge("x", "y", "z")


class TestEditApplier:

    @pytest.mark.asyncio
    async def test_reads_merges_and_writes_normalized_path(self, executor):
        executor.files["src/components/Header.jsx"] = "<header />"
        applier = EditApplier(merger=_merger('<header className="sticky top-0" />'))
        edit = EditInstruction(targetFile="components/Header.jsx", instructions="sticky", updateSnippet="...")

        result = await applier.apply(executor, edit)

        assert result.success is True
        assert result.normalizedPath == "src/components/Header.jsx"
        assert executor.files["src/components/Header.jsx"] == '<header className="sticky top-0" />'

    @pytest.mark.asyncio
    async def test_missing_target_fails_without_writing(self, executor):
        applier = EditApplier(merger=_merger("unused"))
        edit = EditInstruction(targetFile="src/Missing.jsx", updateSnippet="x")

        result = await applier.apply(executor, edit)

        assert result.success is False
        assert "Could not read src/Missing.jsx" in result.error
        assert executor.writes == []

    @pytest.mark.asyncio
    async def test_merge_failure_is_reported(self, executor):
        llm = Mock()
        llm.ainvoke = AsyncMock(side_effect=RuntimeError("rate limited"))
        applier = EditApplier(merger=MorphMerger(llm=llm))
        edit = EditInstruction(targetFile="src/App.jsx", updateSnippet="x")

        result = await applier.apply(executor, edit)

        assert result.success is False
        assert result.error == "rate limited"

    @pytest.mark.asyncio
    async def test_lost_sandbox_propagates(self, executor):
        executor.unavailable = True
        applier = EditApplier(merger=_merger("unused"))
        with pytest.raises(SandboxUnavailableError):
            await applier.apply(executor, EditInstruction(targetFile="src/App.jsx", updateSnippet="x"))
