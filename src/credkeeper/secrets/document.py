"""Secrets documents and their textual (YAML) form.

A document is an ordered mapping of string keys to values. Values are one of
the types in `Value`, nested arbitrarily.

"""

from typing import Any, Dict, List, Union

import yaml

from credkeeper import ParseError, ValidationError

Scalar = Union[str, int, float, bool, None]
Value = Union[Scalar, "Document", List["Value"]]
Document = Dict[str, Value]

SCALAR_TYPES = (str, int, float, bool, type(None))


class DocumentLoader(yaml.SafeLoader):
    """Safe loader that leaves timestamps as plain strings."""


DocumentLoader.yaml_implicit_resolvers = {
    first: [
        (tag, regexp)
        for tag, regexp in resolvers
        if tag != "tag:yaml.org,2002:timestamp"
    ]
    for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}


class DocumentDumper(yaml.SafeDumper):
    """Safe dumper that indents sequences inside mappings."""

    def increase_indent(self, flow=False, indentless=False):
        return super().increase_indent(flow, False)


def check_value(value: Any, path: str = "") -> Value:
    if isinstance(value, SCALAR_TYPES):
        return value
    if isinstance(value, dict):
        return check_document(value, path)
    if isinstance(value, (list, tuple)):
        return [
            check_value(item, f"{path}[{i}]") for i, item in enumerate(value)
        ]
    raise ValidationError.from_context(
        f"Unsupported value at `{path or '<root>'}`: "
        f"{type(value).__name__}"
    )


def check_document(document: Any, path: str = "") -> Document:
    """Validate `document` and return it as a plain `Document`.

    Raises `ValidationError` for non-mapping documents, non-string keys and
    values outside of the supported types.

    """
    if not isinstance(document, dict):
        raise ValidationError.from_context(
            f"Expected a mapping at `{path or '<root>'}`, "
            f"got {type(document).__name__}"
        )
    result = {}
    for key, value in document.items():
        if not isinstance(key, str):
            raise ValidationError.from_context(
                f"Unsupported key {key!r} at `{path or '<root>'}`: "
                "keys must be strings"
            )
        child = f"{path}.{key}" if path else key
        result[key] = check_value(value, child)
    return result


def _stringify_keys(value):
    if isinstance(value, dict):
        return {str(k): _stringify_keys(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_stringify_keys(v) for v in value]
    return value


def encode(document: Document) -> str:
    """Serialize `document` to YAML, keeping its key order."""
    document = check_document(document)
    if not document:
        return ""
    return yaml.dump(
        document,
        Dumper=DocumentDumper,
        default_flow_style=False,
        sort_keys=False,
        allow_unicode=True,
    )


def decode(text: str) -> Document:
    """Parse YAML produced by `encode` (or written by hand).

    Empty text is the empty document. Anything that is not a YAML mapping at
    the top level raises `ParseError`.

    """
    try:
        data = yaml.load(text, Loader=DocumentLoader)
    except yaml.YAMLError as e:
        raise ParseError.from_context(e) from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ParseError.from_context(
            f"Expected a mapping at the top level, got {type(data).__name__}"
        )
    data = _stringify_keys(data)
    try:
        return check_document(data)
    except ValidationError as e:
        raise ParseError.from_context(e.message) from e
