from __future__ import annotations

"""
Parsers for Debian control data.

Control data uses an RFC822-like format:
- Field: value
- Continuation lines are indented; a continuation of a lone "." is a blank line
- Blank lines separate stanzas (package records)
"""

import re
from collections.abc import Iterator

from debstow.core.errors import ParseError

FIELD_RE = re.compile(r"^([-\w]+):(.*)$")
CONTINUATION_RE = re.compile(r"^(\s+)(\S.*)$")
VERSION_RE = re.compile(r"^(?:([0-9]+):)?(.+?)(?:-(.*))?$")
DEPENDENCY_RE = re.compile(r"^([^ ]+)(?: \(([<>=]+) ([^)]+)\))?$")


def parse_control(text: str) -> dict[str, str]:
    """
    Parse a single control stanza into an ordered dictionary.

    Args:
        text: Control stanza text

    Returns:
        Dictionary of field names to values, in file order

    Example:
        >>> stanza = '''Package: nginx
        ... Description: Small, powerful, scalable web/proxy server
        ...  This is a multi-line
        ...  .
        ...  description.'''
        >>> parse_control(stanza)['Description']
        'Small, powerful, scalable web/proxy server\\nThis is a multi-line\\n\\ndescription.'
    """
    fields: dict[str, str] = {}
    field: str | None = None
    value = ""

    for line in text.splitlines():
        continuation = CONTINUATION_RE.match(line)
        if continuation:
            indent, rest = continuation.groups()
            if len(indent) == 1 and rest == ".":
                value += "\n"
                rest = ""
            elif value:
                value += "\n"
            value += rest
            continue

        match = FIELD_RE.match(line)
        if match:
            if field:
                fields[field] = value
            field = match.group(1)
            value = match.group(2).strip()

    if field:
        fields[field] = value

    return fields


def iter_stanzas(content: str) -> Iterator[str]:
    """
    Split an index file into stanza texts.

    Args:
        content: Full index file content

    Yields:
        Text of each non-empty stanza
    """
    content = content.replace("\r\n", "\n")
    for stanza_text in content.split("\n\n"):
        if stanza_text.strip():
            yield stanza_text


def format_field(name: str, value: str) -> str:
    """Render one field, using continuation lines for multi-line values."""
    first, *remainder = value.split("\n")
    lines = [f"{name}: {first}".rstrip()]
    for line in remainder:
        lines.append(" ." if not line.strip() else f" {line}")
    return "\n".join(lines)


def parse_version(full_version: str | None) -> tuple[int | None, str, str | None]:
    """
    Split ``[epoch:]version[-iteration]``.

    Args:
        full_version: Debian version string

    Returns:
        Tuple of (epoch, version, iteration)

    Raises:
        ParseError: If the string is missing or malformed
    """
    match = VERSION_RE.match(full_version or "")
    if not match:
        raise ParseError(f"Unsupported version string '{full_version}'")

    epoch, version, iteration = match.groups()
    return (int(epoch) if epoch is not None else None), version, iteration


def parse_depends(data: str | None) -> list[str]:
    """
    Parse a comma separated relationship field.

    Dependencies come in one of two forms, ``name`` or ``name (op version)``;
    anything else (alternatives, architecture qualifiers) passes through
    unchanged.
    """
    if not data or not data.strip():
        return []

    dependencies = []
    for dep in re.split(r", *", data.strip()):
        match = DEPENDENCY_RE.match(dep)
        if not match:
            dependencies.append(dep)
            continue

        name, op, version = match.groups()
        if op and version:
            dependencies.append(f"{name} ({op} {version})".strip())
        else:
            dependencies.append(name.strip())
    return dependencies


def debianize_op(op: str) -> str:
    """Operators in Debian packaging are <<, <=, =, >= and >>."""
    return {"<": "<<", ">": ">>"}.get(op, op)


def _next_version(version: str) -> str:
    parts = [int(p) if p.isdigit() else 0 for p in version.split(".")]
    if len(parts) == 1:
        parts[-1] += 1
    else:
        parts[-2] += 1
        parts[-1] = 0
    return ".".join(str(p) for p in parts)


def fix_dependency(dep: str) -> tuple[list[str], list[str]]:
    """
    Normalize a dependency expression for rendering.

    Converts ``name op version`` into ``name (op version)``, lower-cases the
    package name, replaces underscores, expands ``~>`` into a version range
    and turns ``!=`` into a conflict.

    Returns:
        Tuple of (depends entries, conflicts entries)
    """
    if not re.search(r"[(,|]", dep):
        parts = dep.split()
        if len(parts) >= 3:
            name, op, version = parts[:3]
            dep = f"{name} ({debianize_op(op)} {version})"

    name_match = re.match(r"^[^ (]+", dep)
    if name_match and re.search(r"[A-Z]", name_match.group(0)):
        dep = name_match.group(0).lower() + dep[name_match.end():]

    dep = dep.replace("_", "-")

    if "(~>" in dep:
        name, version = re.sub(r"[()~>]", "", dep).split()[:2]
        return [f"{name} (>= {version})", f"{name} (<< {_next_version(version)})"], []

    if re.search(r"\S+\s+\(!= .+\)", dep):
        return [], [dep.replace("!=", "=")]

    return [dep.rstrip()], []
