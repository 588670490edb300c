import sys
from collections.abc import Callable
from pathlib import Path

import pytest

GENERATOR_DIR = Path(__file__).resolve().parent.parent
if str(GENERATOR_DIR) not in sys.path:
    sys.path.insert(0, str(GENERATOR_DIR))

import logext_gen  # noqa: E402
from logext_model import Declaration, SourceFile  # noqa: E402


@pytest.fixture
def make_source_file() -> Callable[..., SourceFile]:
    def _make_source_file(
        package_name: str = "com.example", path: Path | str = "Example.kt"
    ) -> SourceFile:
        return SourceFile(path, package_name)

    return _make_source_file


@pytest.fixture
def make_declaration() -> Callable[..., Declaration]:
    """Build a declaration and attach it to its parent (or file).

    qualified_name defaults to the parent's qualified name (or the package)
    plus the simple name; pass qualified_name=None explicitly for a local one.
    """
    unset = object()

    def _make_declaration(
        simple_name: str,
        *,
        source_file: SourceFile,
        parent: Declaration | None = None,
        type_parameters: tuple[str, ...] = (),
        visibility: str = "public",
        kind: str = "class",
        qualified_name: object = unset,
    ) -> Declaration:
        if qualified_name is unset:
            prefix = parent.qualified_name if parent is not None else source_file.package_name
            qualified_name = f"{prefix}.{simple_name}" if prefix else simple_name
        declaration = Declaration(
            simple_name=simple_name,
            qualified_name=qualified_name,  # type: ignore[arg-type]
            containing_file=source_file,
            parent=parent,
            type_parameters=type_parameters,
            visibility=visibility,
            kind=kind,
        )
        if parent is None:
            source_file.declarations.append(declaration)
        else:
            parent.declarations.append(declaration)
        return declaration

    return _make_declaration


@pytest.fixture
def memory_sink() -> logext_gen.MemorySink:
    return logext_gen.MemorySink()


@pytest.fixture
def write_kotlin(tmp_path: Path) -> Callable[[str, str], Path]:
    def _write_kotlin(relative_path: str, text: str) -> Path:
        path = tmp_path / "src" / relative_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
        return path

    return _write_kotlin
