import pytest

from reconcile.response_parser import is_suspicious, parse


APP = """import { motion } from 'framer-motion'
import Header from './components/Header'

export default function App() {
  return <motion.div><Header /></motion.div>
}"""

HEADER = """export default function Header() {
  return <header className="p-4">Hi</header>
}"""


class TestTaggedFiles:

    def test_extracts_files_commands_and_metadata(self):
        text = (
            "<explanation>Adds a header</explanation>\n"
            f'<file path="src/App.jsx">\n{APP}\n</file>\n'
            f'<file path="src/components/Header.jsx">{HEADER}</file>\n'
            "<command>npm run lint</command>\n"
            "<structure>src/App.jsx\nsrc/components/Header.jsx</structure>"
        )
        parsed = parse(text)

        assert parsed.file_paths() == ["src/App.jsx", "src/components/Header.jsx"]
        assert parsed.files["src/App.jsx"].content == APP
        assert parsed.files["src/App.jsx"].complete is True
        assert parsed.commands == ["npm run lint"]
        assert parsed.explanation == "Adds a header"
        assert parsed.structure.startswith("src/App.jsx")
        assert parsed.packages == ["framer-motion"]

    def test_reparse_is_identical(self):
        text = f'<file path="src/App.jsx">{APP}</file><package>axios</package>'
        assert parse(text) == parse(text)

    def test_unclosed_block_is_kept_as_incomplete(self):
        parsed = parse(f'<file path="src/App.jsx">{APP}')
        assert parsed.files["src/App.jsx"].complete is False
        assert parsed.files["src/App.jsx"].content == APP

    def test_complete_version_beats_truncated_one(self):
        text = (
            '<file path="src/App.jsx">import React from \'react\'\nexport default function App() {\n'
            f'<file path="src/App.jsx">{HEADER}</file>'
        )
        entry = parse(text).files["src/App.jsx"]
        assert entry.complete is True
        assert entry.content == HEADER

    def test_complete_version_wins_even_when_shorter(self):
        text = (
            '<file path="src/A.jsx">const a = 1</file>'
            '<file path="src/A.jsx">const a = 1; const b = 2; const c = 3;'
        )
        assert parse(text).files["src/A.jsx"].content == "const a = 1"

    def test_longer_wins_among_complete_blocks(self):
        text = '<file path="src/A.jsx">short</file><file path="src/A.jsx">much longer body</file>'
        assert parse(text).files["src/A.jsx"].content == "much longer body"

    def test_first_wins_on_equal_length(self):
        text = '<file path="src/A.jsx">first</file><file path="src/A.jsx">secnd</file>'
        assert parse(text).files["src/A.jsx"].content == "first"

    def test_clean_block_beats_longer_elided_one(self):
        text = (
            '<file path="src/A.jsx">const a = 1</file>'
            '<file path="src/A.jsx">const a = 1\n// ...\nconst z = 26</file>'
        )
        entry = parse(text).files["src/A.jsx"]
        assert entry.content == "const a = 1"
        assert entry.suspicious is False

    def test_tags_quoted_inside_explanation_are_not_files(self):
        text = '<explanation>Wrap code in <file path="src/Fake.jsx">...</file> tags</explanation>'
        parsed = parse(text)
        assert parsed.files == {}
        assert '<file path="src/Fake.jsx">' in parsed.explanation

    def test_unclosed_singleton_is_ignored(self):
        parsed = parse('<command>npm i\n<file path="src/A.jsx">x</file>')
        assert parsed.commands == []
        assert "src/A.jsx" in parsed.files

    def test_first_explanation_wins(self):
        parsed = parse("<explanation>one</explanation><explanation>two</explanation>")
        assert parsed.explanation == "one"

    @pytest.mark.parametrize("text", [None, "", "no tags at all", "<file path=>", 42])
    def test_never_raises(self, text):
        parsed = parse(text)
        assert parsed.files == {}


class TestPackages:

    def test_tagged_packages_are_deduped_and_filtered(self):
        text = (
            "<packages>\nreact-router-dom, axios\nreact\n\n</packages>"
            "<package>axios</package><package>react-dom</package>"
        )
        assert parse(text).packages == ["react-router-dom", "axios"]

    def test_imports_add_packages_after_tagged_ones(self):
        text = f'<package>axios</package><file path="src/App.jsx">{APP}</file>'
        assert parse(text).packages == ["axios", "framer-motion"]


class TestFallbacks:

    def test_fenced_block_with_path(self):
        text = 'Here:\n```jsx path="src/components/Card.jsx"\nexport default function Card() {}\n```\n'
        parsed = parse(text)
        assert parsed.files["src/components/Card.jsx"].content == "export default function Card() {}"

    def test_named_bare_fence_goes_to_components(self):
        text = "```jsx\n// File: Footer.jsx\nexport default function Footer() {}\n```"
        parsed = parse(text)
        assert "src/components/Footer.jsx" in parsed.files

    def test_fallback_never_overrides_tagged_file(self):
        text = (
            '<file path="src/components/Card.jsx">tagged</file>\n'
            '```jsx path="src/components/Card.jsx"\nfenced copy\n```\n'
        )
        assert parse(text).files["src/components/Card.jsx"].content == "tagged"


class TestSuspicious:

    @pytest.mark.parametrize("content", [
        "<Button {...props} />",
        "const { a, ...rest } = obj",
        "const next = [...items, item]",
        "fn(...[1, 2])",
    ])
    def test_spread_is_not_suspicious(self, content):
        assert is_suspicious(content) is False

    @pytest.mark.parametrize("content", [
        "// ... existing code ...",
        "return (\n  ...\n)",
        "Loading...",
    ])
    def test_stray_ellipsis_is_suspicious(self, content):
        assert is_suspicious(content) is True
