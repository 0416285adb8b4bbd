"""Markdown conversion engine for exported Notion pages."""

from docexport.convert.blocks import BlockRenderer, ImageResolver, render_rich_text
from docexport.convert.images import ImageStore, extension_for, image_key
from docexport.convert.io import AtomicWriter, WrittenFile
from docexport.convert.markdown import MarkdownConverter, sanitize_filename


__all__ = [
    "AtomicWriter",
    "BlockRenderer",
    "ImageResolver",
    "ImageStore",
    "MarkdownConverter",
    "WrittenFile",
    "extension_for",
    "image_key",
    "render_rich_text",
    "sanitize_filename",
]
