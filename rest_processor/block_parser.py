"""Block Parser - Extracts typed fields from a tagged test block.

A test block is free text with optional tagged sections:

    <operation>POST</operation>
    <header>Accept: application/json
    X-Trace: abc</header>
    <media>application/json</media>
    <body>{"name": "widget"}</body>

Only <operation> is mandatory. Each tag is scanned by first occurrence of
the opening tag and first occurrence of the closing tag, so nested or
repeated sections of the same name are not supported.
"""

from __future__ import annotations

import logging
import os

from rest_processor.models import Header, MediaType, ParsedTestBlock, Section

logger = logging.getLogger(__name__)

OPERATION_TAG = "operation"
BODY_TAG = "body"
HEADER_TAG = "header"
MEDIA_TAG = "media"


class BlockParseError(Exception):
    """Raised when a test block is missing its operation or has a broken section."""


def extract_section(text: str, tag: str) -> Section:
    """Scan text for <tag>...</tag> and return the trimmed content.

    Returns an absent Section when the opening tag does not occur.

    Raises:
        BlockParseError: If the opening tag occurs without a closing tag
            after it.
    """
    open_tag = f"<{tag}>"
    close_tag = f"</{tag}>"

    start = text.find(open_tag)
    if start == -1:
        return Section(present=False)

    content_start = start + len(open_tag)
    end = text.find(close_tag)
    if end == -1:
        raise BlockParseError(f"Section {open_tag} has no matching {close_tag}")
    if end < content_start:
        raise BlockParseError(f"Section {close_tag} appears before {open_tag}")

    return Section(present=True, content=text[content_start:end].strip())


def parse_header_line(line: str) -> Header | None:
    """Split one 'Name: Value' line, or return None if it has no colon.

    The value starts two characters after the first colon, so exactly one
    space is expected there. 'Name:Value' loses the first value character.
    The name is not trimmed, so an indented line keeps its leading spaces.
    """
    colon = line.find(":")
    if colon == -1:
        return None
    return Header(name=line[:colon], value=line[colon + 2:])


def parse_headers(header_block: str) -> list[Header]:
    """Parse a header section into ordered Header pairs.

    Lines are split on the platform line separator. Lines without a colon
    are logged and skipped; the rest of the section is still used.
    """
    headers: list[Header] = []
    for line in header_block.split(os.linesep):
        if not line.strip():
            continue
        header = parse_header_line(line)
        if header is None:
            logger.error(
                "Headers must be provided in the following format -> "
                "Header_Type: Header_Value (skipping %r)",
                line,
            )
            continue
        headers.append(header)
    return headers


def format_headers(headers: list[Header]) -> str:
    """Serialize headers back into the 'Name: Value' line format."""
    return os.linesep.join(f"{header.name}: {header.value}" for header in headers)


def parse_media_type(value: str) -> MediaType | None:
    media_type = MediaType.lookup(value)
    if media_type is None:
        logger.debug("Media type %r not recognized, no content type will be set", value)
    return media_type


def parse_test_block(test_block: str) -> ParsedTestBlock:
    """Parse a raw test block.

    Args:
        test_block: Raw tagged text.

    Returns:
        ParsedTestBlock with the operation and any optional sections.

    Raises:
        BlockParseError: If <operation> is missing or any section is malformed.
    """
    operation = extract_section(test_block, OPERATION_TAG)
    if not operation.present:
        raise BlockParseError(
            f"Test block has no <{OPERATION_TAG}>...</{OPERATION_TAG}> section"
        )
    logger.debug("REST Operation: %s", operation.content)

    parsed = ParsedTestBlock(operation=operation.content or "")

    body = extract_section(test_block, BODY_TAG)
    if body.present:
        logger.debug("REST Body: %s", body.content)
        parsed.body = body.content

    header_section = extract_section(test_block, HEADER_TAG)
    if header_section.present:
        logger.debug("REST Header: %s", header_section.content)
        parsed.headers = parse_headers(header_section.content or "")

    media = extract_section(test_block, MEDIA_TAG)
    if media.present:
        logger.debug("Media Type: %s", media.content)
        parsed.media_type = parse_media_type(media.content or "")

    return parsed
