"""Declaration model consumed by the logger extension generator.

A SourceFile owns its top-level Declarations; each Declaration owns the
declarations nested in its body and points back at its parent. The
scanner builds this tree once per file and nothing downstream mutates it.
"""

from collections.abc import Iterator
from pathlib import Path

# ===--- Visibility levels ---=== #

VISIBILITY_PUBLIC = "public"
VISIBILITY_INTERNAL = "internal"
VISIBILITY_PRIVATE = "private"
VISIBILITY_PROTECTED = "protected"
VISIBILITY_LOCAL = "local"

VALID_VISIBILITIES = frozenset(
    {
        VISIBILITY_PUBLIC,
        VISIBILITY_INTERNAL,
        VISIBILITY_PRIVATE,
        VISIBILITY_PROTECTED,
        VISIBILITY_LOCAL,
    }
)

# ===--- Class kinds ---=== #

KIND_CLASS = "class"
KIND_INTERFACE = "interface"
KIND_OBJECT = "object"
KIND_ENUM_CLASS = "enum_class"
KIND_ENUM_ENTRY = "enum_entry"
KIND_ANNOTATION_CLASS = "annotation_class"

VALID_KINDS = frozenset(
    {
        KIND_CLASS,
        KIND_INTERFACE,
        KIND_OBJECT,
        KIND_ENUM_CLASS,
        KIND_ENUM_ENTRY,
        KIND_ANNOTATION_CLASS,
    }
)


class SourceFile:
    def __init__(self, path: Path | str, package_name: str = ""):
        self.path = Path(path)
        self.package_name = package_name
        self.declarations: list[Declaration] = []

    @property
    def file_name(self) -> str:
        return self.path.name

    def __repr__(self) -> str:
        return f"SourceFile({str(self.path)!r}, package_name={self.package_name!r})"


class Declaration:
    """A class-like declaration: class, interface, object, enum or enum entry.

    qualified_name is None for declarations that cannot be named from
    outside their scope (local classes and anything nested in one).
    type_parameters holds the declared names only, in declaration order.
    """

    def __init__(
        self,
        simple_name: str,
        qualified_name: str | None,
        containing_file: SourceFile,
        parent: "Declaration | None" = None,
        type_parameters: tuple[str, ...] = (),
        visibility: str = VISIBILITY_PUBLIC,
        kind: str = KIND_CLASS,
    ):
        if visibility not in VALID_VISIBILITIES:
            raise ValueError(f"Unknown visibility: {visibility}")
        if kind not in VALID_KINDS:
            raise ValueError(f"Unknown class kind: {kind}")
        self.simple_name = simple_name
        self.qualified_name = qualified_name
        self.containing_file = containing_file
        self.parent = parent
        self.type_parameters = tuple(type_parameters)
        self.visibility = visibility
        self.kind = kind
        self.declarations: list[Declaration] = []

    @property
    def package_name(self) -> str:
        return self.containing_file.package_name

    def enclosing_chain(self) -> Iterator["Declaration"]:
        """Yield this declaration, then each parent up to the top level."""
        current: Declaration | None = self
        while current is not None:
            yield current
            current = current.parent

    def __repr__(self) -> str:
        return (
            f"Declaration({self.simple_name!r}, qualified_name={self.qualified_name!r}, "
            f"kind={self.kind!r}, visibility={self.visibility!r})"
        )
