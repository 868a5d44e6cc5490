from __future__ import annotations

import typing as typ

from .content import Document, sort_documents

TagIndex = dict[str, list[Document]]


def build_tag_index(documents: typ.Iterable[Document]) -> TagIndex:
    """Group documents by tag.

    Tags are compared exactly as written, so ``Python`` and ``python`` are two
    separate entries. Every bucket is ordered newest first, ties by slug.
    """
    index: TagIndex = {}
    for document in documents:
        for tag in document.tags:
            index.setdefault(tag, []).append(document)
    return {tag: sort_documents(bucket, tie_key="slug") for tag, bucket in index.items()}


def tag_counts(index: TagIndex) -> list[tuple[str, int]]:
    return sorted(((tag, len(docs)) for tag, docs in index.items()), key=lambda x: (-x[1], x[0]))
