"""JSON-with-comments codec for managed configuration files.

Reading:
    ``parse_jsonc`` strips ``//`` and ``/* */`` comments and trailing commas,
    returning strict JSON text plus a CommentIndex (dotted property path ->
    comment). Both passes are string-literal aware, so ``"http://host"`` stays
    intact.

Writing:
    ``serialize_jsonc`` renders a ConfigData instance as::

        /* CONFIG_SECTION
         * <header lines>
         * Version: <version>
         * Last updated: <timestamp>
         */
        {
          // <section comment>
          // <carried comment>
          "key": value,
          ...
        }
        /*
         * <footer lines>
         * END_CONFIG_SECTION
         */

    Standalone ``//`` lines directly above a property are read back into the
    CommentIndex for that property (minus the section comment, which is
    regenerated from metadata), so serialize -> parse -> serialize is stable.

Usage:
    from cfgkeeper.core.config.jsonc import JsoncCodec

    codec = JsoncCodec(metadata, version="1.0")
    text = codec.serialize(config, comments)
    data, comments = codec.decode(text)
"""

from __future__ import annotations

import json
import re
from datetime import datetime
from typing import Any

from cfgkeeper.core.config.constants import SECTION_END_MARKER, SECTION_START_MARKER
from cfgkeeper.core.config.models import ConfigData, ConfigMetadata
from cfgkeeper.core.exceptions import EmptyFileError, JsonSyntaxError, ParseError

__all__ = [
    "CommentIndex",
    "JsoncCodec",
    "extract_section",
    "parse_jsonc",
    "serialize_jsonc",
]

CommentIndex = dict[str, str]

INDENT = "  "

_SECTION_START = re.compile(r"/\*\s*" + SECTION_START_MARKER + r"\b")
_SECTION_END = re.compile(r"/\*(?:(?!\*/).)*?" + SECTION_END_MARKER, re.DOTALL)


# =============================================================================
# Parsing
# =============================================================================


def _string_end(text: str, start: int) -> int:
    """Return the index just past the string literal opening at ``start``.

    Unterminated literals end at the line break so a stray quote cannot
    swallow the rest of the file.
    """
    i = start + 1
    n = len(text)
    while i < n:
        ch = text[i]
        if ch == "\\":
            i += 2
            continue
        if ch == '"':
            return i + 1
        if ch == "\n":
            return i
        i += 1
    return n


def _decode_key(literal: str) -> str:
    try:
        key = json.loads(literal)
    except ValueError:
        return literal.strip('"')
    return key if isinstance(key, str) else literal.strip('"')


def _property_path(stack: list[list[Any]], key: str) -> str | None:
    """Dotted path of ``key`` in the innermost object, or None inside arrays."""
    if any(kind == "array" for kind, _ in stack):
        return None
    parents = [parent_key for _, parent_key in stack[:-1]]
    if None in parents:
        return None
    return ".".join([*parents, key])


def _add_comment(comments: CommentIndex, path: str, lines: list[str]) -> None:
    if not lines:
        return
    text = "\n".join(lines)
    existing = comments.get(path)
    comments[path] = f"{existing}\n{text}" if existing else text


def _strip_comments(content: str, section_comments: dict[str, str]) -> tuple[str, CommentIndex]:
    """Remove comments and build the CommentIndex in a single scan."""
    out: list[str] = []
    comments: CommentIndex = {}
    # Frames are [kind, current_key]; kind is "object" or "array"
    stack: list[list[Any]] = []
    expect_key = False
    pending: list[str] = []
    line_has_code = False
    line_path: str | None = None

    i = 0
    n = len(content)
    while i < n:
        ch = content[i]

        if ch == '"':
            end = _string_end(content, i)
            literal = content[i:end]
            out.append(literal)
            if expect_key and stack and stack[-1][0] == "object":
                key = _decode_key(literal)
                stack[-1][1] = key
                expect_key = False
                path = _property_path(stack, key)
                line_path = path
                if path is not None:
                    section_lines = {
                        line.strip() for line in section_comments.get(path, "").splitlines()
                    }
                    _add_comment(comments, path, [p for p in pending if p not in section_lines])
                pending = []
            line_has_code = True
            i = end
            continue

        if content.startswith("//", i):
            end = content.find("\n", i)
            if end == -1:
                end = n
            text = content[i + 2 : end].strip()
            if text:
                if line_has_code:
                    if line_path is not None:
                        _add_comment(comments, line_path, [text])
                else:
                    pending.append(text)
            i = end
            continue

        if content.startswith("/*", i):
            end = content.find("*/", i + 2)
            end = n if end == -1 else end + 2
            # Keep line numbers stable for JSON error messages
            out.append("\n" * content.count("\n", i, end) or " ")
            i = end
            continue

        if ch == "\n":
            line_has_code = False
            line_path = None
        elif not ch.isspace():
            line_has_code = True
            if ch == "{":
                stack.append(["object", None])
                expect_key = True
            elif ch == "[":
                stack.append(["array", None])
                expect_key = False
            elif ch in "}]":
                if stack:
                    stack.pop()
                expect_key = False
                pending = []
            elif ch == ",":
                expect_key = bool(stack) and stack[-1][0] == "object"
        out.append(ch)
        i += 1

    return "".join(out), comments


def _drop_trailing_commas(text: str) -> str:
    """Remove commas that directly precede a closing brace or bracket."""
    out: list[str] = []
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if ch == '"':
            end = _string_end(text, i)
            out.append(text[i:end])
            i = end
            continue
        if ch == ",":
            j = i + 1
            while j < n and text[j].isspace():
                j += 1
            if j < n and text[j] in "}]":
                i += 1
                continue
        out.append(ch)
        i += 1
    return "".join(out)


def parse_jsonc(
    content: str,
    section_comments: dict[str, str] | None = None,
) -> tuple[str, CommentIndex]:
    """Convert JSONC text to strict JSON text plus its comment annotations.

    Args:
        content: Raw file content.
        section_comments: Metadata section comments; lines reproducing them are
            not carried into the CommentIndex.

    Returns:
        Tuple of (json_payload, comments). ``json_payload`` is empty when nothing
        but comments and whitespace was present.

    """
    stripped, comments = _strip_comments(content, section_comments or {})
    return _drop_trailing_commas(stripped).strip(), comments


def extract_section(content: str) -> str | None:
    """Return the machine-relevant part of a managed file.

    That is the text between the comment holding the CONFIG_SECTION marker and
    the comment holding END_CONFIG_SECTION (or end of file).

    Returns:
        Stripped section body, or None if there is no start marker.

    """
    start = _SECTION_START.search(content)
    if start is None:
        return None
    close = content.find("*/", start.end())
    body_start = len(content) if close == -1 else close + 2
    end = _SECTION_END.search(content, body_start)
    body_end = end.start() if end else len(content)
    return content[body_start:body_end].strip()


# =============================================================================
# Serialization
# =============================================================================


def _dump_scalar(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False)


def _comment_lines(indent: str, text: str | None) -> list[str]:
    if not text:
        return []
    return [f"{indent}// {line}".rstrip() for line in text.splitlines()]


def _array_lines(items: list[Any], depth: int) -> list[str]:
    indent = INDENT * depth
    lines: list[str] = []
    last = len(items) - 1
    for index, item in enumerate(items):
        comma = "," if index < last else ""
        if isinstance(item, dict | list) and item:
            text = json.dumps(item, ensure_ascii=False, indent=len(INDENT))
            text = text.replace("\n", "\n" + indent)
        else:
            text = _dump_scalar(item)
        lines.append(f"{indent}{text}{comma}")
    return lines


def _object_lines(
    obj: dict[str, Any],
    path: str,
    depth: int,
    section_comments: dict[str, str],
    comments: CommentIndex,
) -> list[str]:
    indent = INDENT * depth
    lines: list[str] = []
    last = len(obj) - 1
    for index, (key, value) in enumerate(obj.items()):
        current = f"{path}.{key}" if path else key
        comma = "," if index < last else ""

        lines.extend(_comment_lines(indent, section_comments.get(current)))
        lines.extend(_comment_lines(indent, comments.get(current)))

        prefix = f"{indent}{_dump_scalar(key)}: "
        if isinstance(value, dict) and value:
            lines.append(prefix + "{")
            lines.extend(_object_lines(value, current, depth + 1, section_comments, comments))
            lines.append(f"{indent}}}{comma}")
        elif isinstance(value, list) and value:
            lines.append(prefix + "[")
            lines.extend(_array_lines(value, depth + 1))
            lines.append(f"{indent}]{comma}")
        else:
            lines.append(f"{prefix}{_dump_scalar(value)}{comma}")
    return lines


def _header_lines(metadata: ConfigMetadata, version: str, now: datetime | None) -> list[str]:
    lines = [f"/* {SECTION_START_MARKER}"]
    lines.extend(f" * {line}" for line in metadata.header_comments)
    if metadata.include_version:
        lines.append(f" * Version: {version}")
    if metadata.include_timestamp:
        stamp = (now or datetime.now()).isoformat(timespec="seconds")
        lines.append(f" * Last updated: {stamp}")
    lines.append(" */")
    return lines


def _footer_lines(metadata: ConfigMetadata) -> list[str]:
    lines = ["/*"]
    lines.extend(f" * {line}" for line in metadata.footer_comments)
    lines.append(f" * {SECTION_END_MARKER}")
    lines.append(" */")
    return lines


def serialize_jsonc(
    config: ConfigData,
    metadata: ConfigMetadata,
    comments: CommentIndex | None = None,
    *,
    version: str | None = None,
    now: datetime | None = None,
) -> str:
    """Render a config as a commented JSONC document.

    Args:
        config: Config instance to write.
        metadata: Header/footer/section comment settings.
        comments: Carried-over per-property comments.
        version: Version for the header banner. Defaults to ``config.version``.
        now: Timestamp for the "Last updated" line. Defaults to now.

    Returns:
        File content, newline terminated. Key order follows field order.

    """
    lines = _header_lines(metadata, version or config.version, now)
    lines.append("{")
    lines.extend(
        _object_lines(config.to_json_dict(), "", 1, metadata.section_comments, comments or {})
    )
    lines.append("}")
    lines.extend(_footer_lines(metadata))
    return "\n".join(lines) + "\n"


# =============================================================================
# Codec
# =============================================================================


class JsoncCodec:
    """JSONC reader/writer bound to one config's metadata and schema version.

    Attributes:
        metadata: Formatting settings used for serialization.
        version: Current schema version written in the header banner.

    """

    def __init__(self, metadata: ConfigMetadata | None = None, version: str | None = None) -> None:
        self.metadata = metadata or ConfigMetadata()
        self.version = version

    def parse(self, content: str) -> tuple[str, CommentIndex]:
        """Strip comments and trailing commas; see parse_jsonc."""
        return parse_jsonc(content, self.metadata.section_comments)

    def decode(self, content: str) -> tuple[dict[str, Any], CommentIndex]:
        """Parse JSONC content all the way to a JSON object.

        Args:
            content: Raw file content.

        Returns:
            Tuple of (data, comments).

        Raises:
            EmptyFileError: If nothing remains after stripping comments.
            JsonSyntaxError: If the remaining text is not valid JSON.
            ParseError: If the JSON value is not an object.

        """
        payload, comments = self.parse(content)
        if not payload:
            raise EmptyFileError("Config content is empty after removing comments")
        try:
            data = json.loads(payload)
        except json.JSONDecodeError as e:
            raise JsonSyntaxError(f"Invalid JSON: {e}") from e
        if not isinstance(data, dict):
            raise ParseError(f"Config must be a JSON object, got {type(data).__name__}")
        return data, comments

    def serialize(
        self,
        config: ConfigData,
        comments: CommentIndex | None = None,
        *,
        now: datetime | None = None,
    ) -> str:
        """Render ``config``; see serialize_jsonc."""
        return serialize_jsonc(config, self.metadata, comments, version=self.version, now=now)

    @staticmethod
    def extract_section(content: str) -> str | None:
        """Return the CONFIG_SECTION body; see extract_section."""
        return extract_section(content)
