"""Unit tests for Markdown conversion."""

from pathlib import Path
from typing import Any

import pytest

from docexport.convert.blocks import BlockRenderer, render_rich_text
from docexport.convert.io import AtomicWriter
from docexport.convert.markdown import MarkdownConverter, sanitize_filename
from docexport.processor.protocols import ConversionEngine
from tests.helpers.time import FIXED_NOW, FakeClock


def _text(content: str, **annotations: bool) -> dict[str, Any]:
    return {"plain_text": content, "annotations": annotations}


def _block(block_type: str, text: str = "", **extra: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {"rich_text": [_text(text)] if text else []}
    children = extra.pop("children", None)
    payload.update(extra)
    block: dict[str, Any] = {"type": block_type, block_type: payload}
    if children is not None:
        block["children"] = children
    return block


@pytest.fixture
def renderer() -> BlockRenderer:
    """Create a block renderer."""
    return BlockRenderer()


@pytest.fixture
def converter(tmp_path: Path) -> MarkdownConverter:
    """Create a converter writing into a temporary directory."""
    return MarkdownConverter(tmp_path, clock=FakeClock())


class TestRichText:
    """Tests for inline formatting."""

    def test_annotations(self) -> None:
        """Test bold, italic, strikethrough and code."""
        fragments = [
            _text("bold", bold=True),
            _text(" and "),
            _text("code", code=True),
            _text(" "),
            _text("gone", strikethrough=True),
            _text(" "),
            _text("soft", italic=True),
        ]
        assert render_rich_text(fragments) == "**bold** and `code` ~~gone~~ *soft*"

    def test_link(self) -> None:
        """Test links wrap the formatted text."""
        fragment = {"plain_text": "docs", "href": "https://example.com", "annotations": {}}
        assert render_rich_text([fragment]) == "[docs](https://example.com)"

    def test_empty(self) -> None:
        """Test missing rich text renders empty."""
        assert render_rich_text(None) == ""


class TestBlockRenderer:
    """Tests for block tree rendering."""

    def test_headings_and_paragraphs(self, renderer: BlockRenderer) -> None:
        """Test blocks are separated by blank lines."""
        blocks = [_block("heading_1", "Title"), _block("paragraph", "Body"), _block("heading_3", "Small")]
        assert renderer.render(blocks) == "# Title\n\nBody\n\n### Small"

    def test_numbered_list_counts_and_restarts(self, renderer: BlockRenderer) -> None:
        """Test numbering restarts after a non-list block."""
        blocks = [
            _block("numbered_list_item", "one"),
            _block("numbered_list_item", "two"),
            _block("paragraph", "break"),
            _block("numbered_list_item", "again"),
        ]
        assert renderer.render(blocks) == "1. one\n2. two\n\nbreak\n\n1. again"

    def test_nested_list(self, renderer: BlockRenderer) -> None:
        """Test children are indented under their parent item."""
        blocks = [
            _block("bulleted_list_item", "parent", children=[_block("bulleted_list_item", "child")]),
            _block("bulleted_list_item", "sibling"),
        ]
        assert renderer.render(blocks) == "- parent\n    - child\n- sibling"

    def test_to_do(self, renderer: BlockRenderer) -> None:
        """Test checked and unchecked to-dos."""
        blocks = [_block("to_do", "done", checked=True), _block("to_do", "open", checked=False)]
        assert renderer.render(blocks) == "- [x] done\n- [ ] open"

    def test_code_block(self, renderer: BlockRenderer) -> None:
        """Test code keeps its language and raw text."""
        blocks = [_block("code", "print(1)\nprint(2)", language="python")]
        assert renderer.render(blocks) == "```python\nprint(1)\nprint(2)\n```"

    def test_plain_text_code_has_no_language(self, renderer: BlockRenderer) -> None:
        """Test the plain text language renders as an unlabeled fence."""
        blocks = [_block("code", "x", language="plain text")]
        assert renderer.render(blocks) == "```\nx\n```"

    def test_quote_callout_divider(self, renderer: BlockRenderer) -> None:
        """Test quotes, callouts and dividers."""
        blocks = [
            _block("quote", "wise words"),
            _block("callout", "heads up", icon={"type": "emoji", "emoji": "💡"}),
            {"type": "divider", "divider": {}},
        ]
        assert renderer.render(blocks) == "> wise words\n\n> 💡 heads up\n\n---"

    def test_image_and_bookmark(self, renderer: BlockRenderer) -> None:
        """Test media blocks render as links."""
        blocks = [
            {
                "type": "image",
                "image": {"type": "external", "external": {"url": "https://img/x.png"}, "caption": []},
            },
            {"type": "bookmark", "bookmark": {"url": "https://example.com", "caption": []}},
        ]
        assert renderer.render(blocks) == (
            "![image](https://img/x.png)\n\n[https://example.com](https://example.com)"
        )

    def test_toggle(self, renderer: BlockRenderer) -> None:
        """Test toggles become details elements."""
        blocks = [_block("toggle", "More", children=[_block("paragraph", "hidden")])]
        assert renderer.render(blocks) == (
            "<details>\n<summary>More</summary>\n\nhidden\n\n</details>"
        )

    def test_child_page_and_unsupported(self, renderer: BlockRenderer) -> None:
        """Test sub-pages are referenced and unknown blocks are marked."""
        blocks = [
            {"type": "child_page", "child_page": {"title": "Sub"}},
            {"type": "table", "table": {}},
        ]
        assert renderer.render(blocks) == (
            "- Child page: Sub\n\n<!-- unsupported block: table -->"
        )


class TestSanitizeFilename:
    """Tests for sanitize_filename."""

    @pytest.mark.parametrize(
        ("title", "expected"),
        [
            ("Plain", "Plain"),
            ("a/b\\c", "a_b_c"),
            ('What? "Yes" <no> | *', "What_ _Yes_ _no_ _ _"),
            ("  ", "Untitled"),
            ("..", "Untitled"),
        ],
    )
    def test_sanitize(self, title: str, expected: str) -> None:
        """Test unsafe characters are replaced."""
        assert sanitize_filename(title) == expected


class TestAtomicWriter:
    """Tests for AtomicWriter."""

    def test_write_creates_parents(self, tmp_path: Path) -> None:
        """Test nested targets are created with a relative path."""
        written = AtomicWriter(tmp_path).write(tmp_path / "a" / "b.md", "hello")

        assert written.path == "a/b.md"
        assert written.bytes_written == 5
        assert (tmp_path / "a" / "b.md").read_text() == "hello"
        assert not (tmp_path / "a" / "b.md.tmp").exists()


class TestMarkdownConverter:
    """Tests for MarkdownConverter."""

    def test_satisfies_protocol(self, converter: MarkdownConverter) -> None:
        """Test the converter is a conversion engine."""
        assert isinstance(converter, ConversionEngine)

    def test_render_document(self, converter: MarkdownConverter) -> None:
        """Test front matter, title and body."""
        document = converter.render([_block("paragraph", "Hello")], 'Say "hi"')

        assert document == (
            "---\n"
            'title: "Say \\"hi\\""\n'
            f"exported_at: {FIXED_NOW.isoformat()}\n"
            "---\n"
            "\n"
            '# Say "hi"\n'
            "\n"
            "Hello\n"
        )

    def test_create(self, converter: MarkdownConverter, tmp_path: Path) -> None:
        """Test a new item creates a file named after its title."""
        outcome = converter.upsert([_block("paragraph", "Body")], "My Page", None)

        assert outcome.success
        assert outcome.artifact_ref == "My Page.md"
        assert outcome.message == "Created document"
        assert "Body" in (tmp_path / "My Page.md").read_text()

    def test_update_in_place(self, converter: MarkdownConverter, tmp_path: Path) -> None:
        """Test an existing artifact is overwritten even after a rename."""
        first = converter.upsert([_block("paragraph", "v1")], "Old Title", None)

        outcome = converter.upsert([_block("paragraph", "v2")], "New Title", first.artifact_ref)

        assert outcome.artifact_ref == "Old Title.md"
        assert outcome.message == "Updated existing document"
        assert "v2" in (tmp_path / "Old Title.md").read_text()
        assert not (tmp_path / "New Title.md").exists()

    def test_missing_artifact_recreated(
        self, converter: MarkdownConverter, tmp_path: Path
    ) -> None:
        """Test a deleted artifact is recreated from the title."""
        outcome = converter.upsert([], "Page", "gone.md")

        assert outcome.artifact_ref == "Page.md"
        assert outcome.message == "Created document"
        assert (tmp_path / "Page.md").exists()

    def test_same_name_replaced(self, converter: MarkdownConverter, tmp_path: Path) -> None:
        """Test a file with the same title is replaced."""
        (tmp_path / "Page.md").write_text("stale")

        outcome = converter.upsert([_block("paragraph", "fresh")], "Page", None)

        assert outcome.message == "Replaced same-named document"
        assert "fresh" in (tmp_path / "Page.md").read_text()

    def test_artifact_outside_output_dir_ignored(
        self, converter: MarkdownConverter, tmp_path: Path
    ) -> None:
        """Test references escaping the output directory are not followed."""
        outside = tmp_path.parent / "outside.md"
        outside.write_text("keep")

        outcome = converter.upsert([], "Page", "../outside.md")

        assert outcome.artifact_ref == "Page.md"
        assert outside.read_text() == "keep"
