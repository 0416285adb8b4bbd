"""Notion block to Markdown rendering."""

from collections.abc import Callable
from typing import Any

from docexport.source.models import Block


INDENT = "    "

# Maps an image payload to a local link target, or None to keep the URL
ImageResolver = Callable[[dict[str, Any]], str | None]


def render_rich_text(fragments: list[dict[str, Any]] | None) -> str:
    """Render Notion rich text with its annotations.

    Supports bold, italic, strikethrough, inline code and links.

    Args:
        fragments: Rich text array.

    Returns:
        Markdown inline text.
    """
    parts: list[str] = []
    for fragment in fragments or []:
        text = fragment.get("plain_text") or ""
        if not text:
            continue

        annotations = fragment.get("annotations") or {}
        if annotations.get("code"):
            text = f"`{text}`"
        if annotations.get("bold"):
            text = f"**{text}**"
        if annotations.get("italic"):
            text = f"*{text}*"
        if annotations.get("strikethrough"):
            text = f"~~{text}~~"

        href = fragment.get("href")
        if href:
            text = f"[{text}]({href})"
        parts.append(text)
    return "".join(parts)


def _plain_text(fragments: list[dict[str, Any]] | None) -> str:
    return "".join(fragment.get("plain_text") or "" for fragment in fragments or [])


def _file_url(payload: dict[str, Any]) -> str:
    source = payload.get(payload.get("type", ""), {}) or {}
    return str(source.get("url", ""))


def _indent(lines: list[str], depth: int) -> list[str]:
    prefix = INDENT * depth
    return [f"{prefix}{line}" if line else line for line in lines]


class BlockRenderer:
    """Renders a Notion block tree into Markdown lines.

    Consecutive list items stay in one list; numbered items count from 1
    and restart after any other block.
    """

    def __init__(self, image_resolver: ImageResolver | None = None) -> None:
        """Initialize the renderer.

        Args:
            image_resolver: Optional mapping of image blocks to local files.
        """
        self._image_resolver = image_resolver

    def render(self, blocks: list[Block]) -> str:
        """Render a list of top-level blocks into a Markdown body."""
        return "\n".join(self._render_blocks(blocks, depth=0)).strip("\n")

    def _render_blocks(self, blocks: list[Block], depth: int) -> list[str]:
        lines: list[str] = []
        number = 0
        previous_type: str | None = None

        for block in blocks:
            block_type = str(block.get("type", ""))
            if block_type == "numbered_list_item":
                number = number + 1 if previous_type == block_type else 1

            is_list = block_type in (
                "bulleted_list_item",
                "numbered_list_item",
                "to_do",
            )
            was_list = previous_type in (
                "bulleted_list_item",
                "numbered_list_item",
                "to_do",
            )
            if lines and not (is_list and was_list):
                lines.append("")

            lines.extend(self._render_block(block, block_type, number, depth))
            previous_type = block_type

        return lines

    def _children(self, block: Block, depth: int) -> list[str]:
        children = block.get("children") or []
        if not children:
            return []
        return _indent(self._render_blocks(children, depth + 1), 1)

    def _image_target(self, payload: dict[str, Any]) -> str:
        if self._image_resolver is not None:
            local = self._image_resolver(payload)
            if local:
                return local
        return _file_url(payload)

    def _render_block(  # noqa: PLR0911
        self, block: Block, block_type: str, number: int, depth: int
    ) -> list[str]:
        payload: dict[str, Any] = block.get(block_type) or {}
        text = render_rich_text(payload.get("rich_text"))

        if block_type == "paragraph":
            return [text, *self._children(block, depth)]

        if block_type in ("heading_1", "heading_2", "heading_3"):
            level = int(block_type[-1])
            return [f"{'#' * level} {text}"]

        if block_type == "bulleted_list_item":
            return [f"- {text}", *self._children(block, depth)]

        if block_type == "numbered_list_item":
            return [f"{number}. {text}", *self._children(block, depth)]

        if block_type == "to_do":
            mark = "x" if payload.get("checked") else " "
            return [f"- [{mark}] {text}", *self._children(block, depth)]

        if block_type == "quote":
            return [f"> {line}" for line in text.splitlines() or [""]]

        if block_type == "callout":
            icon = (payload.get("icon") or {}).get("emoji")
            body = f"{icon} {text}" if icon else text
            return [f"> {line}" for line in body.splitlines() or [""]]

        if block_type == "code":
            language = payload.get("language") or ""
            if language == "plain text":
                language = ""
            code = _plain_text(payload.get("rich_text"))
            return [f"```{language}", *code.splitlines(), "```"]

        if block_type == "divider":
            return ["---"]

        if block_type == "image":
            caption = _plain_text(payload.get("caption")) or "image"
            target = self._image_target(payload)
            if not target:
                return ["<!-- image without a source url -->"]
            return [f"![{caption}]({target})"]

        if block_type == "bookmark":
            url = str(payload.get("url", ""))
            caption = _plain_text(payload.get("caption")) or url
            return [f"[{caption}]({url})"]

        if block_type == "toggle":
            children = self._render_blocks(block.get("children") or [], depth + 1)
            return [
                "<details>",
                f"<summary>{text}</summary>",
                "",
                *children,
                "",
                "</details>",
            ]

        if block_type == "child_page":
            return [f"- Child page: {payload.get('title', '')}"]

        return [f"<!-- unsupported block: {block_type} -->"]
