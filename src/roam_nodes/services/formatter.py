"""Turn nodes into display candidates.

Two display modes exist, chosen once when the formatter is built:

* ``CallbackDisplay`` - a function from Node to label, used verbatim.
* ``TemplateDisplay`` - a ``DisplayTemplate`` of fixed-width fields.

Template labels are plain text. Styling is reported separately as
``StyleSpan`` entries on the candidate.
"""
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import PurePath
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

from roam_nodes.exceptions import ConfigurationError, ErrorCode, FormatError
from roam_nodes.models.schema import Candidate, Node, StyleSpan

logger = logging.getLogger(__name__)

# Width marker for a field that takes whatever space is left
FILL = "*"

ELLIPSIS = "…"

PLACEHOLDER_PATTERN = re.compile(r"\$\{(?P<name>[a-z_]+)(?::(?P<width>\*|\d+))?\}")

FieldRenderer = Callable[[Node, "RenderContext"], str]


class Truncation(str, Enum):
    """What to do with text longer than its field."""

    CLIP = "clip"  # Cut at the field width
    ELLIPSIS = "ellipsis"  # Cut one short and append an ellipsis


@dataclass(frozen=True)
class RenderContext:
    """Values field renderers need besides the node itself."""

    directory: Optional[str] = None


def strip_directory(path: str, directory: Optional[str]) -> str:
    """Make ``path`` relative to the knowledge-base root when it lies inside it."""
    if not directory:
        return path
    try:
        return PurePath(path).relative_to(PurePath(directory)).as_posix()
    except ValueError:
        return path


def fit_to_width(text: str, width: int, truncation: Truncation = Truncation.CLIP) -> str:
    """Truncate or space-pad ``text`` to exactly ``width`` characters."""
    if len(text) <= width:
        return text.ljust(width)
    if truncation is Truncation.ELLIPSIS and width > 1:
        return text[: width - 1] + ELLIPSIS
    return text[:width]


def _optional(attribute: str) -> FieldRenderer:
    def render(node: Node, context: RenderContext) -> str:
        value = getattr(node, attribute)
        return "" if value is None else str(value)

    return render


def _render_tags(node: Node, context: RenderContext) -> str:
    return " ".join(f"#{tag}" for tag in node.tags)


def _render_aliases(node: Node, context: RenderContext) -> str:
    return " ".join(node.aliases)


def _render_refs(node: Node, context: RenderContext) -> str:
    return " ".join(str(ref) for ref in node.refs)


def _render_file(node: Node, context: RenderContext) -> str:
    return strip_directory(node.file, context.directory)


def _render_olp(node: Node, context: RenderContext) -> str:
    return " > ".join(node.olp)


FIELD_RENDERERS: Dict[str, FieldRenderer] = {
    "id": _optional("id"),
    "title": _optional("title"),
    "file_title": _optional("file_title"),
    "todo": _optional("todo"),
    "priority": _optional("priority"),
    "scheduled": _optional("scheduled"),
    "deadline": _optional("deadline"),
    "level": _optional("level"),
    "tags": _render_tags,
    "aliases": _render_aliases,
    "refs": _render_refs,
    "file": _render_file,
    "olp": _render_olp,
}

# Faces applied to fields parsed from a placeholder template
DEFAULT_FACES: Dict[str, str] = {
    "todo": "roam-todo",
    "priority": "roam-priority",
    "tags": "roam-tag",
    "file": "roam-file",
    "olp": "roam-olp",
}


@dataclass(frozen=True)
class TemplateField:
    """One field of a display template.

    Attributes:
        name: Node field to render (a key of FIELD_RENDERERS).
        width: Exact width in characters, FILL for the remaining space, or
            None for the natural width of the value.
        truncation: How over-long values are shortened.
        prefix: Text put in front of a non-empty value (counts toward width).
        face: Style name reported for the field's span.
    """

    name: str
    width: Union[int, str, None] = None
    truncation: Truncation = Truncation.CLIP
    prefix: str = ""
    face: Optional[str] = None

    def __post_init__(self):
        if self.name not in FIELD_RENDERERS:
            raise ConfigurationError(
                f"Unknown template field '{self.name}'. "
                f"Valid fields are: {', '.join(sorted(FIELD_RENDERERS))}",
                config_key="display_template",
                code=ErrorCode.TEMPLATE_INVALID,
            )
        if self.width is not None and self.width != FILL:
            if isinstance(self.width, bool) or not isinstance(self.width, int) or self.width < 1:
                raise ConfigurationError(
                    f"Invalid width {self.width!r} for field '{self.name}'",
                    config_key="display_template",
                    code=ErrorCode.TEMPLATE_INVALID,
                )


@dataclass(frozen=True)
class DisplayTemplate:
    """Ordered fields joined by ``separator``."""

    fields: Tuple[TemplateField, ...]
    separator: str = " "

    @classmethod
    def default(cls) -> "DisplayTemplate":
        """TODO keyword, tags, title, file and outline path."""
        return cls(
            fields=(
                TemplateField("todo", 10, prefix="t:", face=DEFAULT_FACES["todo"]),
                TemplateField("tags", 30, face=DEFAULT_FACES["tags"]),
                TemplateField("title", 40),
                TemplateField("file", face=DEFAULT_FACES["file"]),
                TemplateField("olp", face=DEFAULT_FACES["olp"]),
            )
        )

    @classmethod
    def parse(cls, text: str) -> "DisplayTemplate":
        """Parse a placeholder template such as ``"${title:*} ${tags:10}"``.

        Placeholders are ``${field}``, ``${field:width}`` or ``${field:*}``
        and must be separated by single spaces.

        Raises:
            ConfigurationError: On an empty template, stray text or an
                unknown field.
        """
        fields: List[TemplateField] = []
        position = 0
        for match in PLACEHOLDER_PATTERN.finditer(text):
            between = text[position:match.start()]
            if between != ("" if not fields else " "):
                raise ConfigurationError(
                    f"Unexpected text {between!r} in display template",
                    config_key="display_template",
                    code=ErrorCode.TEMPLATE_INVALID,
                )
            width_text = match.group("width")
            if width_text is None:
                width: Union[int, str, None] = None
            elif width_text == FILL:
                width = FILL
            else:
                width = int(width_text)
            name = match.group("name")
            fields.append(TemplateField(name, width, face=DEFAULT_FACES.get(name)))
            position = match.end()

        if not fields or text[position:]:
            raise ConfigurationError(
                f"Invalid display template {text!r}",
                config_key="display_template",
                code=ErrorCode.TEMPLATE_INVALID,
            )
        return cls(fields=tuple(fields))


@dataclass(frozen=True)
class CallbackDisplay:
    """Display mode that hands each node to a user function."""

    func: Callable[[Node], str]


@dataclass(frozen=True)
class TemplateDisplay:
    """Display mode that renders a fixed-width template."""

    template: DisplayTemplate = field(default_factory=DisplayTemplate.default)


DisplayConfig = Union[CallbackDisplay, TemplateDisplay]


class NodeFormatter:
    """Base class for turning a Node into a Candidate."""

    def format(self, node: Node) -> Candidate:
        raise NotImplementedError

    def format_all(self, nodes: Sequence[Node]) -> List[Candidate]:
        """Format every node, failing on the first node that cannot be formatted."""
        return [self.format(node) for node in nodes]

    @staticmethod
    def from_display(
        display: DisplayConfig,
        directory: Optional[str] = None,
        display_width: int = 120,
    ) -> "NodeFormatter":
        """Build the formatter for a display configuration.

        Args:
            display: Callback or template configuration.
            directory: Knowledge-base root stripped from file paths.
            display_width: Total width shared by FILL fields.
        """
        if isinstance(display, CallbackDisplay):
            return CallbackFormatter(display.func)
        if isinstance(display, TemplateDisplay):
            return TemplateFormatter(
                display.template,
                context=RenderContext(directory=str(directory) if directory else None),
                display_width=display_width,
            )
        raise ConfigurationError(
            f"Unsupported display configuration: {type(display).__name__}",
            config_key="display",
        )


class CallbackFormatter(NodeFormatter):
    """Use a caller-supplied function's result as the label."""

    def __init__(self, func: Callable[[Node], str]):
        self.func = func

    def format(self, node: Node) -> Candidate:
        try:
            label = self.func(node)
        except Exception as e:
            raise FormatError(
                f"Display callback failed: {e}",
                node_id=node.id,
                code=ErrorCode.FORMAT_CALLBACK_FAILED,
            ) from e
        if not isinstance(label, str):
            raise FormatError(
                f"Display callback returned {type(label).__name__}, expected str",
                node_id=node.id,
                code=ErrorCode.FORMAT_CALLBACK_FAILED,
            )
        return Candidate(label=label, node=node)


class TemplateFormatter(NodeFormatter):
    """Render a DisplayTemplate into a fixed-layout label."""

    def __init__(
        self,
        template: DisplayTemplate,
        context: Optional[RenderContext] = None,
        display_width: int = 120,
    ):
        self.template = template
        self.context = context or RenderContext()
        self.display_width = display_width
        self._layout = self._resolve_widths(template, display_width)

    @staticmethod
    def _resolve_widths(
        template: DisplayTemplate, display_width: int
    ) -> Tuple[Tuple[TemplateField, Optional[int]], ...]:
        """Replace FILL widths with a share of the space left by fixed fields."""
        fixed = sum(f.width for f in template.fields if isinstance(f.width, int))
        fixed += len(template.separator) * (len(template.fields) - 1)
        fill_count = sum(1 for f in template.fields if f.width == FILL)
        fill_width = max(1, (display_width - fixed) // fill_count) if fill_count else None
        return tuple(
            (f, fill_width if f.width == FILL else f.width) for f in template.fields
        )

    def format(self, node: Node) -> Candidate:
        separator = self.template.separator
        parts: List[str] = []
        styles: List[StyleSpan] = []
        offset = 0

        for index, (template_field, width) in enumerate(self._layout):
            if index:
                parts.append(separator)
                offset += len(separator)

            try:
                value = FIELD_RENDERERS[template_field.name](node, self.context)
            except Exception as e:
                raise FormatError(
                    f"Failed to render field '{template_field.name}': {e}",
                    node_id=node.id,
                    field=template_field.name,
                ) from e

            # Labels are single-line
            value = value.replace("\n", " ")
            if value:
                value = template_field.prefix + value
            text = value if width is None else fit_to_width(value, width, template_field.truncation)

            visible = min(len(value), len(text))
            if template_field.face and visible:
                styles.append(StyleSpan(offset, offset + visible, template_field.face))

            parts.append(text)
            offset += len(text)

        return Candidate(label="".join(parts), node=node, styles=tuple(styles))
