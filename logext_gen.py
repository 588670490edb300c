"""Kotlin logging extensions generator.

Scans Kotlin sources and writes, for every class-like declaration that can
be referenced from a top-level declaration, a companion file exposing

    val Outer.Nested.log: KLogger
        get() = KotlinLogging.logger("com.example.Outer.Nested")

so that `log` is available inside the class without a hand-written logger
field. Output is deterministic and incremental: only sources whose content
changed since the last run are re-scanned and their outputs regenerated.

Usage:
    python logext_gen.py src/main/kotlin --output-dir build/generated/logext/main/kotlin
"""

import argparse
import hashlib
import json
import logging
import re
from collections import defaultdict
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from logext_identifiers import quote_kotlin_name, quote_kotlin_path
from logext_model import (
    KIND_ENUM_ENTRY,
    VISIBILITY_INTERNAL,
    VISIBILITY_LOCAL,
    VISIBILITY_PRIVATE,
    VISIBILITY_PROTECTED,
    Declaration,
    SourceFile,
)
from logext_scanner import ScanError, scan_file

LOGGER_NAME = "logext_gen"
DEFAULT_OUTPUT_DIR = Path("build") / "generated" / "logext" / "main" / "kotlin"
STATE_FILE_NAME = ".logext-state.json"
SOURCE_SUFFIX = ".kt"

logger = logging.getLogger(LOGGER_NAME)


# ===--- CLI config contracts ---=== #


@dataclass(frozen=True)
class GenerateConfig:
    sources: tuple[Path, ...]
    output_dir: Path
    full: bool = False
    dry_run: bool = False
    verbose: bool = False


@dataclass(frozen=True)
class DiscoveryConfig:
    sources: tuple[Path, ...]
    filter_text: str | None = None
    verbose: bool = False


VALID_ERROR_CODES = {
    "MISSING_SOURCES",
    "PATH_NOT_FOUND",
    "INVALID_SOURCE_FILE",
    "FILTER_WITHOUT_LIST",
    "CONFLICT_GENERATE_DISCOVERY",
}


class ConfigError(Exception):
    def __init__(self, code: str, message: str, suggestion: str | None = None):
        if code not in VALID_ERROR_CODES:
            raise ValueError(f"Unknown config error code: {code}")
        super().__init__(message)
        self.code = code
        self.message = message
        self.suggestion = suggestion


def validate_source_path(path: Path) -> Path:
    if not path.exists():
        raise ConfigError(
            "PATH_NOT_FOUND",
            f"Source path does not exist: {path}",
            "Pass an existing .kt file or a directory containing Kotlin sources.",
        )
    if path.is_file() and path.suffix != SOURCE_SUFFIX:
        raise ConfigError(
            "INVALID_SOURCE_FILE",
            f"Not a Kotlin source file: {path}",
            "Only .kt files are scanned. Pass the file's directory to scan everything in it.",
        )
    return path


def build_argument_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Generate KotlinLogging `log` extension properties for Kotlin classes"
    )

    parser.add_argument("sources", nargs="*", type=Path)
    parser.add_argument("--output-dir", type=Path, default=None)
    parser.add_argument("--full", action="store_true", default=False)
    parser.add_argument("--dry-run", action="store_true", default=False)
    parser.add_argument("--list-declarations", action="store_true", default=False)
    parser.add_argument("--filter", type=str, default=None)
    parser.add_argument("-v", "--verbose", action="store_true", default=False)

    return parser


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = build_argument_parser()
    return parser.parse_args(argv)


def validate_config(args: argparse.Namespace) -> GenerateConfig | DiscoveryConfig:
    if args.filter and not args.list_declarations:
        raise ConfigError(
            "FILTER_WITHOUT_LIST",
            "--filter requires --list-declarations.",
            "Add --list-declarations or remove --filter.",
        )

    has_generate_flags = bool(args.full or args.dry_run or args.output_dir is not None)
    if args.list_declarations and has_generate_flags:
        raise ConfigError(
            "CONFLICT_GENERATE_DISCOVERY",
            "--list-declarations cannot be combined with --output-dir, --full or --dry-run.",
            "Choose either generate mode or --list-declarations.",
        )

    if not args.sources:
        raise ConfigError(
            "MISSING_SOURCES",
            "No Kotlin sources given.",
            "Pass one or more .kt files or source directories, e.g. src/main/kotlin",
        )

    sources = tuple(validate_source_path(Path(path)) for path in args.sources)

    if args.list_declarations:
        return DiscoveryConfig(
            sources=sources,
            filter_text=args.filter,
            verbose=bool(args.verbose),
        )

    return GenerateConfig(
        sources=sources,
        output_dir=args.output_dir if args.output_dir is not None else DEFAULT_OUTPUT_DIR,
        full=bool(args.full),
        dry_run=bool(args.dry_run),
        verbose=bool(args.verbose),
    )


def build_config(argv: list[str] | None = None) -> GenerateConfig | DiscoveryConfig:
    return validate_config(parse_args(argv))


def collect_source_files(paths: Iterable[Path]) -> tuple[Path, ...]:
    """Expand directories to their .kt files, keeping first-seen order.

    Files inside a directory are sorted so that repeated runs visit sources
    in the same order. A file reachable twice (listed and inside a listed
    directory) is returned once.
    """
    seen: set[Path] = set()
    collected: list[Path] = []
    for path in paths:
        if path.is_dir():
            candidates = sorted(p for p in path.rglob(f"*{SOURCE_SUFFIX}") if p.is_file())
        else:
            candidates = [path]
        for candidate in candidates:
            resolved = candidate.resolve()
            if resolved in seen:
                continue
            seen.add(resolved)
            collected.append(candidate)
    return tuple(collected)


# ===--- Constants ---=== #

KLOGGER_TYPE = "KLogger"
KLOGGER_IMPORT = "io.github.oshai.kotlinlogging.KLogger"
LOGGING_FACTORY = "KotlinLogging.logger"
LOGGING_FACTORY_IMPORT = "io.github.oshai.kotlinlogging.KotlinLogging"
FILE_KEY_SUFFIX = "KotlinLoggingExtensions"
_NON_WORD_RE = re.compile(r"\W")
OUTPUT_EXTENSION = "kt"

VISIBILITY_PREFIX_PUBLIC = ""
VISIBILITY_PREFIX_INTERNAL = "internal "

SKIP_NO_QUALIFIED_NAME = "no-qualified-name"
SKIP_ENUM_ENTRY = "enum-entry"
SKIP_PRIVATE = "private"
SKIP_PROTECTED = "protected"
SKIP_LOCAL = "local"

SKIP_REASONS: tuple[str, ...] = (
    SKIP_NO_QUALIFIED_NAME,
    SKIP_ENUM_ENTRY,
    SKIP_PRIVATE,
    SKIP_PROTECTED,
    SKIP_LOCAL,
)
"""Every reason a declaration can be skipped, in report order."""

# No top-level declaration can carry any of these for a nested receiver.
_DISQUALIFYING_VISIBILITIES = {
    VISIBILITY_PRIVATE: SKIP_PRIVATE,
    VISIBILITY_PROTECTED: SKIP_PROTECTED,
    VISIBILITY_LOCAL: SKIP_LOCAL,
}


# ===--- Declaration discovery ---=== #


def iter_declarations(declaration: Declaration) -> Iterator[Declaration]:
    """Yield declaration and everything nested in it, depth-first, pre-order."""
    yield declaration
    for nested in declaration.declarations:
        yield from iter_declarations(nested)


def discover_declarations(files: Iterable[SourceFile]) -> Iterator[Declaration]:
    """Flatten the declarations of every file, in file then source order."""
    for source_file in files:
        for declaration in source_file.declarations:
            yield from iter_declarations(declaration)


# ===--- Eligibility and visibility ---=== #


def resolve_visibility_prefix(declaration: Declaration) -> str | None:
    """Return the visibility prefix for the generated property, or None.

    Walks from the declaration outwards. The first private, protected or
    local level makes the declaration ineligible (None). Otherwise any
    internal level restricts the property to the module.
    """
    is_internal = False
    for level in declaration.enclosing_chain():
        if level.visibility in _DISQUALIFYING_VISIBILITIES:
            return None
        if level.visibility == VISIBILITY_INTERNAL:
            is_internal = True
    return VISIBILITY_PREFIX_INTERNAL if is_internal else VISIBILITY_PREFIX_PUBLIC


def skip_reason(declaration: Declaration) -> str | None:
    """Return why declaration gets no generated unit, or None if it does."""
    if declaration.qualified_name is None:
        return SKIP_NO_QUALIFIED_NAME
    if declaration.kind == KIND_ENUM_ENTRY:
        return SKIP_ENUM_ENTRY
    for level in declaration.enclosing_chain():
        reason = _DISQUALIFYING_VISIBILITIES.get(level.visibility)
        if reason is not None:
            return reason
    return None


# ===--- Receiver expression ---=== #


@dataclass(frozen=True)
class ReceiverDeclaration:
    """Receiver half of the generated extension property.

    Attributes:
        type_parameters: Rendered prefix, e.g. "<T, U> ", or "" when the chain
            declares no type parameters. Includes the trailing space.
        receiver_type: Dotted receiver, e.g. "Outer<T>.Nested<U>".
        type_parameter_names: Deduplicated names in first-introduced order.
    """

    type_parameters: str
    receiver_type: str
    type_parameter_names: tuple[str, ...]


def build_receiver_declaration(declaration: Declaration) -> ReceiverDeclaration:
    """Build the receiver type for declaration, outermost class first.

    A type-parameter name already used further out gets a numeric suffix
    starting at 2 (T, T2, T3, ...). If the suffixed name is itself taken by
    an explicitly declared parameter the suffix keeps counting, so every name
    in one receiver is distinct.
    """
    chain = list(declaration.enclosing_chain())
    chain.reverse()

    used_counts: dict[str, int] = {}
    taken: set[str] = set()
    declared: list[str] = []
    segments: list[str] = []

    for level in chain:
        level_names: list[str] = []
        for base_name in level.type_parameters:
            index = used_counts.get(base_name, 0) + 1
            unique_name = base_name if index == 1 else f"{base_name}{index}"
            while unique_name in taken:
                index += 1
                unique_name = f"{base_name}{index}"
            used_counts[base_name] = index
            taken.add(unique_name)
            declared.append(unique_name)
            level_names.append(unique_name)

        simple_name = quote_kotlin_name(level.simple_name)
        if level_names:
            segments.append(f"{simple_name}<{', '.join(level_names)}>")
        else:
            segments.append(simple_name)

    type_parameters = f"<{', '.join(declared)}> " if declared else ""
    return ReceiverDeclaration(
        type_parameters=type_parameters,
        receiver_type=".".join(segments),
        type_parameter_names=tuple(declared),
    )


# ===--- Emission identity ---=== #


@dataclass(frozen=True)
class EmissionIdentity:
    """Everything needed to render and place one generated unit.

    Attributes:
        visibility_prefix: "" for public, "internal " for module-restricted.
        type_parameters: Generic prefix from ReceiverDeclaration.
        receiver_type: Dotted receiver type from ReceiverDeclaration.
        package_name: Raw package, used for output placement.
        safe_package_name: Package with keyword and non-identifier segments
            backtick-quoted, used for the generated `package` line only.
        class_name: Qualified name relative to the package, e.g. "Outer.Nested".
        file_key: Output file stem, e.g. "Outer_NestedKotlinLoggingExtensions".
        logger_name: Logger key passed to the factory (the qualified name).
    """

    visibility_prefix: str
    type_parameters: str
    receiver_type: str
    package_name: str
    safe_package_name: str
    class_name: str
    file_key: str
    logger_name: str


def derive_class_name(qualified_name: str, package_name: str) -> str:
    if not package_name:
        return qualified_name
    prefix = f"{package_name}."
    if not qualified_name.startswith(prefix):
        raise ValueError(
            f"Qualified name {qualified_name!r} is not inside package {package_name!r}"
        )
    return qualified_name[len(prefix) :]


def derive_file_key(class_name: str) -> str:
    # Dots and anything else a file name should not carry become "_".
    return f"{_NON_WORD_RE.sub('_', class_name)}{FILE_KEY_SUFFIX}"


def build_emission_identity(declaration: Declaration) -> EmissionIdentity | None:
    """Compute the emission identity, or None when declaration is ineligible."""
    if skip_reason(declaration) is not None:
        return None
    visibility_prefix = resolve_visibility_prefix(declaration)
    qualified_name = declaration.qualified_name
    assert visibility_prefix is not None and qualified_name is not None

    receiver = build_receiver_declaration(declaration)
    package_name = declaration.package_name
    class_name = derive_class_name(qualified_name, package_name)

    return EmissionIdentity(
        visibility_prefix=visibility_prefix,
        type_parameters=receiver.type_parameters,
        receiver_type=receiver.receiver_type,
        package_name=package_name,
        safe_package_name=quote_kotlin_path(package_name),
        class_name=class_name,
        file_key=derive_file_key(class_name),
        logger_name=qualified_name,
    )


# ===--- Rendering ---=== #


def kotlin_string_literal(value: str) -> str:
    """Quote value as a Kotlin string literal that evaluates to value verbatim."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"').replace("$", "\\$")
    return f'"{escaped}"'


def render_unit(identity: EmissionIdentity) -> str:
    """Render the generated Kotlin source for one declaration.

    Output format:
        package com.example

        import io.github.oshai.kotlinlogging.KLogger
        import io.github.oshai.kotlinlogging.KotlinLogging

        val Outer.Nested.log: KLogger
            get() = KotlinLogging.logger("com.example.Outer.Nested")

    The package line and its blank line are omitted for the root package.
    Always ends with exactly one newline.
    """
    lines: list[str] = []
    if identity.safe_package_name:
        lines.append(f"package {identity.safe_package_name}")
        lines.append("")

    lines.append(f"import {KLOGGER_IMPORT}")
    lines.append(f"import {LOGGING_FACTORY_IMPORT}")
    lines.append("")
    lines.append(
        f"{identity.visibility_prefix}val {identity.type_parameters}"
        f"{identity.receiver_type}.log: {KLOGGER_TYPE}"
    )
    lines.append(
        f"    get() = {LOGGING_FACTORY}({kotlin_string_literal(identity.logger_name)})"
    )
    return "\n".join(lines) + "\n"


# ===--- Emission sinks ---=== #


class EmissionSink(Protocol):
    def write_unit(
        self,
        package_name: str,
        file_key: str,
        content: str,
        depends_on: SourceFile,
    ) -> object: ...


def relative_output_path(
    package_name: str, file_key: str, extension: str = OUTPUT_EXTENSION
) -> Path:
    """Return <package dirs>/<file_key>.<extension> for the raw package."""
    directory = Path(*package_name.split(".")) if package_name else Path()
    return directory / f"{file_key}.{extension}"


@dataclass(frozen=True)
class EmittedUnit:
    package_name: str
    file_key: str
    content: str
    depends_on: SourceFile

    @property
    def relative_path(self) -> Path:
        return relative_output_path(self.package_name, self.file_key)


class MemorySink:
    """Sink that keeps every unit in memory, in emission order."""

    def __init__(self):
        self.units: list[EmittedUnit] = []

    def write_unit(
        self,
        package_name: str,
        file_key: str,
        content: str,
        depends_on: SourceFile,
    ) -> EmittedUnit:
        unit = EmittedUnit(package_name, file_key, content, depends_on)
        self.units.append(unit)
        return unit

    def contents_by_key(self) -> dict[str, str]:
        return {unit.file_key: unit.content for unit in self.units}


@dataclass(frozen=True)
class FileWriteResult:
    """Result of writing a single generated file.

    Attributes:
        filename: Filename written, e.g. "SimpleClassKotlinLoggingExtensions.kt".
        path: Absolute path of the file.
        line_count: Number of newline characters in the content.
        byte_count: Number of bytes (UTF-8 encoded).
        written: False when an identical file was already on disk and left alone.
    """

    filename: str
    path: Path
    line_count: int
    byte_count: int
    written: bool


class FileSystemSink:
    """Sink writing each unit to <output_dir>/<package dirs>/<file_key>.kt.

    Creating the same file twice through one sink raises FileExistsError:
    two declarations mapping to one output is a duplicate declaration, not
    something to paper over. Filesystem errors propagate unchanged.
    """

    def __init__(self, output_dir: Path):
        self.output_dir = Path(output_dir)
        self.results: list[FileWriteResult] = []
        self.outputs_by_source: dict[Path, list[Path]] = defaultdict(list)
        self._created: set[Path] = set()

    def output_path(self, package_name: str, file_key: str) -> Path:
        return self.output_dir / relative_output_path(package_name, file_key)

    def write_unit(
        self,
        package_name: str,
        file_key: str,
        content: str,
        depends_on: SourceFile,
    ) -> FileWriteResult:
        file_path = self.output_path(package_name, file_key)
        if file_path in self._created:
            raise FileExistsError(f"Generated file already created in this run: {file_path}")

        file_path.parent.mkdir(parents=True, exist_ok=True)
        data = content.encode("utf-8")
        written = not (file_path.is_file() and file_path.read_bytes() == data)
        if written:
            file_path.write_bytes(data)
        self._created.add(file_path)

        result = FileWriteResult(
            filename=file_path.name,
            path=file_path.resolve(),
            line_count=content.count("\n"),
            byte_count=len(data),
            written=written,
        )
        self.results.append(result)
        self.outputs_by_source[depends_on.path].append(file_path)
        return result


# ===--- Processor ---=== #


@dataclass
class ProcessingStats:
    """Running totals across the passes of one LoggerProcessor."""

    declarations_seen: int = 0
    units_emitted: int = 0
    skipped: dict[str, int] = field(default_factory=dict)

    @property
    def skipped_total(self) -> int:
        return sum(self.skipped.values())

    def record_skip(self, reason: str) -> None:
        self.skipped[reason] = self.skipped.get(reason, 0) + 1


def describe_declaration(declaration: Declaration) -> str:
    if declaration.qualified_name is not None:
        return declaration.qualified_name
    return f"<local> {declaration.simple_name}"


class LoggerProcessor:
    """One generation pass per call to process().

    Every declaration is handled independently: nothing computed for one
    declaration is reused for another. The sink is the only side effect.
    """

    def __init__(self, sink: EmissionSink, diagnostics: logging.Logger | None = None):
        self.sink = sink
        self.logger = diagnostics if diagnostics is not None else logger
        self.stats = ProcessingStats()

    def process(self, new_files: Iterable[SourceFile]) -> list[Declaration]:
        """Generate units for every eligible declaration in new_files.

        Returns:
            Declarations deferred to a later pass. Always empty: generated
            units never introduce anything that needs another pass.

        Raises:
            OSError: Propagated from the sink.
        """
        emitted_before = self.stats.units_emitted
        seen_before = self.stats.declarations_seen
        for declaration in discover_declarations(new_files):
            self.generate_logger(declaration)

        seen = self.stats.declarations_seen - seen_before
        emitted = self.stats.units_emitted - emitted_before
        self.logger.info(
            "Processed %d declarations: %d generated, %d skipped",
            seen,
            emitted,
            seen - emitted,
        )
        return []

    def generate_logger(self, declaration: Declaration) -> bool:
        """Emit the unit for one declaration. Returns False if it was skipped."""
        self.stats.declarations_seen += 1
        reason = skip_reason(declaration)
        if reason is not None:
            self.stats.record_skip(reason)
            self.logger.debug("Skipping %s: %s", describe_declaration(declaration), reason)
            return False

        identity = build_emission_identity(declaration)
        assert identity is not None
        self.sink.write_unit(
            identity.package_name,
            identity.file_key,
            render_unit(identity),
            declaration.containing_file,
        )
        self.stats.units_emitted += 1
        self.logger.debug("Generated %s for %s", identity.file_key, identity.logger_name)
        return True


def create_processor(
    sink: EmissionSink, diagnostics: logging.Logger | None = None
) -> LoggerProcessor:
    """Build the processor for one generation session."""
    return LoggerProcessor(sink, diagnostics)


# ===--- Incremental build state ---=== #

STATE_FORMAT_VERSION = 1


@dataclass(frozen=True)
class SourceRecord:
    """What the previous run knew about one source file.

    Attributes:
        digest: SHA-256 hex digest of the file bytes.
        outputs: Generated files owned by this source, as POSIX paths
            relative to the output directory.
    """

    digest: str
    outputs: tuple[str, ...]


@dataclass(frozen=True)
class BuildState:
    files: dict[str, SourceRecord]

    @classmethod
    def empty(cls) -> "BuildState":
        return cls(files={})


def source_key(path: Path) -> str:
    return Path(path).resolve().as_posix()


def file_digest(path: Path) -> str:
    return hashlib.sha256(Path(path).read_bytes()).hexdigest()


def load_state(state_path: Path) -> BuildState:
    """Load the previous run's state; a missing or unreadable file means none.

    An unreadable state only costs a full rebuild, so it is logged rather
    than raised.
    """
    if not state_path.is_file():
        return BuildState.empty()
    try:
        raw = json.loads(state_path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as err:
        logger.warning("Ignoring unreadable state file %s: %s", state_path, err)
        return BuildState.empty()

    if not isinstance(raw, dict) or raw.get("version") != STATE_FORMAT_VERSION:
        logger.warning("Ignoring state file %s with unknown format", state_path)
        return BuildState.empty()

    files: dict[str, SourceRecord] = {}
    for key, entry in raw.get("files", {}).items():
        files[key] = SourceRecord(
            digest=str(entry.get("digest", "")),
            outputs=tuple(str(output) for output in entry.get("outputs", [])),
        )
    return BuildState(files=files)


def save_state(state_path: Path, state: BuildState) -> None:
    payload = {
        "version": STATE_FORMAT_VERSION,
        "files": {
            key: {"digest": record.digest, "outputs": list(record.outputs)}
            for key, record in sorted(state.files.items())
        },
    }
    state_path.parent.mkdir(parents=True, exist_ok=True)
    state_path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")


@dataclass(frozen=True)
class SourcePartition:
    """Sources split by what changed since the previous run.

    Attributes:
        changed: New or modified sources; these are scanned this pass.
        unchanged: Sources whose digest matches the previous run.
        removed: Source keys present last run but not in this one.
        digests: Current digest per source key, for the next state.
    """

    changed: tuple[Path, ...]
    unchanged: tuple[Path, ...]
    removed: tuple[str, ...]
    digests: dict[str, str]


def partition_sources(sources: Iterable[Path], previous: BuildState) -> SourcePartition:
    changed: list[Path] = []
    unchanged: list[Path] = []
    digests: dict[str, str] = {}
    for path in sources:
        key = source_key(path)
        digest = file_digest(path)
        digests[key] = digest
        record = previous.files.get(key)
        if record is not None and record.digest == digest:
            unchanged.append(path)
        else:
            changed.append(path)

    removed = tuple(sorted(key for key in previous.files if key not in digests))
    return SourcePartition(
        changed=tuple(changed),
        unchanged=tuple(unchanged),
        removed=removed,
        digests=digests,
    )


def remove_stale_outputs(
    output_dir: Path,
    previous: BuildState,
    keys: Iterable[str],
    keep: Iterable[Path] = (),
) -> int:
    """Delete the outputs previously generated from the given sources.

    Files in keep were emitted again by this pass and are left in place.

    Returns:
        Number of files actually deleted (already-missing files are skipped).
    """
    kept = {Path(path) for path in keep}
    removed = 0
    for key in keys:
        record = previous.files.get(key)
        if record is None:
            continue
        for output in record.outputs:
            output_path = output_dir / output
            if output_path in kept:
                continue
            if output_path.is_file():
                output_path.unlink()
                removed += 1
    return removed


def build_next_state(
    previous: BuildState,
    partition: SourcePartition,
    output_dir: Path,
    outputs_by_source: dict[Path, list[Path]],
) -> BuildState:
    files: dict[str, SourceRecord] = {}
    for path in partition.unchanged:
        key = source_key(path)
        files[key] = previous.files[key]

    for path in partition.changed:
        key = source_key(path)
        outputs = sorted(
            output.relative_to(output_dir).as_posix()
            for output in outputs_by_source.get(path, [])
        )
        files[key] = SourceRecord(digest=partition.digests[key], outputs=tuple(outputs))

    return BuildState(files=files)


# ===--- Declaration listing ---=== #


@dataclass(frozen=True)
class DeclarationRow:
    """One row of --list-declarations output.

    Attributes:
        name: Qualified name, or "<local> Simple" when there is none.
        kind: Class kind constant, e.g. "class" or "enum_entry".
        visibility: Declared visibility of the declaration itself.
        outcome: Output file key, or "skip: <reason>".
    """

    name: str
    kind: str
    visibility: str
    outcome: str


def gather_declaration_rows(files: Iterable[SourceFile]) -> list[DeclarationRow]:
    rows: list[DeclarationRow] = []
    for declaration in discover_declarations(files):
        reason = skip_reason(declaration)
        if reason is None:
            identity = build_emission_identity(declaration)
            assert identity is not None
            outcome = identity.file_key
        else:
            outcome = f"skip: {reason}"
        rows.append(
            DeclarationRow(
                name=describe_declaration(declaration),
                kind=declaration.kind,
                visibility=declaration.visibility,
                outcome=outcome,
            )
        )
    return rows


def filter_rows_by_text(rows: list[DeclarationRow], text: str) -> list[DeclarationRow]:
    needle = text.lower()
    return [row for row in rows if needle in row.name.lower()]


def format_declarations_table(rows: list[DeclarationRow], file_count: int) -> str:
    """Return the complete --list-declarations output as a string.

    Output format:

        3 declarations in 1 file:

          com.example.Outer         class       public    Outer...Extensions
          com.example.Color.RED     enum_entry  public    skip: enum-entry

    Column widths come from the widest value in rows.
    """
    noun = "file" if file_count == 1 else "files"
    lines = [f"{len(rows)} declarations in {file_count} {noun}:", ""]
    if not rows:
        lines.append("")
        return "\n".join(lines)

    name_width = max(len(row.name) for row in rows)
    kind_width = max(len(row.kind) for row in rows)
    visibility_width = max(len(row.visibility) for row in rows)
    for row in rows:
        lines.append(
            f"  {row.name.ljust(name_width)}  {row.kind.ljust(kind_width)}"
            f"  {row.visibility.ljust(visibility_width)}  {row.outcome}"
        )
    lines.append("")
    return "\n".join(lines)


def run_discovery(config: DiscoveryConfig) -> list[DeclarationRow]:
    source_paths = collect_source_files(config.sources)
    files = [scan_file(path) for path in source_paths]
    rows = gather_declaration_rows(files)
    if config.filter_text is not None:
        rows = filter_rows_by_text(rows, config.filter_text)
    print(format_declarations_table(rows, len(files)), end="")
    return rows


# ===--- Generation run ---=== #


@dataclass(frozen=True)
class GenerationSummary:
    """Data for the post-generation console report.

    Attributes:
        output_dir: Output directory as given.
        source_count: Source files considered this run.
        changed_count: Sources scanned because they are new or modified.
        unchanged_count: Sources skipped because their digest matched.
        removed_count: Sources from the previous run that no longer exist.
        stale_outputs_removed: Previous outputs deleted because this run did not
            emit them again.
        declarations_seen: Declarations discovered in the changed sources.
        units_emitted: Generated units handed to the sink.
        units_unchanged: Emitted units already identical on disk.
        skipped: (reason, count) pairs in SKIP_REASONS order, zero counts omitted.
    """

    output_dir: str
    source_count: int
    changed_count: int
    unchanged_count: int
    removed_count: int
    stale_outputs_removed: int
    declarations_seen: int
    units_emitted: int
    units_unchanged: int
    skipped: tuple[tuple[str, int], ...]


def build_generation_summary(
    output_dir: Path,
    partition: SourcePartition,
    stale_outputs_removed: int,
    stats: ProcessingStats,
    results: list[FileWriteResult],
) -> GenerationSummary:
    skipped = tuple(
        (reason, stats.skipped[reason]) for reason in SKIP_REASONS if stats.skipped.get(reason)
    )
    return GenerationSummary(
        output_dir=str(output_dir),
        source_count=len(partition.changed) + len(partition.unchanged),
        changed_count=len(partition.changed),
        unchanged_count=len(partition.unchanged),
        removed_count=len(partition.removed),
        stale_outputs_removed=stale_outputs_removed,
        declarations_seen=stats.declarations_seen,
        units_emitted=stats.units_emitted,
        units_unchanged=sum(1 for result in results if not result.written),
        skipped=skipped,
    )


def format_generation_summary(summary: GenerationSummary) -> str:
    lines: list[str] = ["Kotlin logging extensions generated:", ""]
    lines.append(
        f"  Sources:    {summary.source_count} scanned"
        f" ({summary.changed_count} changed, {summary.unchanged_count} unchanged,"
        f" {summary.removed_count} removed)"
    )
    lines.append(f"  Output:     {summary.output_dir}")
    lines.append("")
    lines.append("  Declarations:")
    lines.append(f"    {'Discovered:':<13}{summary.declarations_seen:>6}")

    generated_row = f"    {'Generated:':<13}{summary.units_emitted:>6}"
    if summary.units_unchanged:
        generated_row += f"  ({summary.units_unchanged} unchanged on disk)"
    lines.append(generated_row)

    skipped_total = sum(count for _, count in summary.skipped)
    lines.append(f"    {'Skipped:':<13}{skipped_total:>6}")
    for reason, count in summary.skipped:
        lines.append(f"      {reason:<19}{count:>4}")

    if summary.stale_outputs_removed:
        lines.append("")
        lines.append(f"  Stale outputs removed: {summary.stale_outputs_removed}")
    lines.append("")
    return "\n".join(lines)


def print_generation_summary(summary: GenerationSummary) -> None:
    print(format_generation_summary(summary), end="")


def run_dry_run(config: GenerateConfig) -> list[EmittedUnit]:
    """Render every unit to stdout without touching the output directory."""
    files = [scan_file(path) for path in collect_source_files(config.sources)]
    sink = MemorySink()
    create_processor(sink).process(files)
    for unit in sink.units:
        print(f"// {unit.relative_path.as_posix()}")
        print(unit.content)
    return sink.units


def run_generate(config: GenerateConfig) -> GenerationSummary:
    """Execute one incremental generation pass for a GenerateConfig.

    Stages: collect sources -> partition against saved state -> scan
    changed sources -> process -> delete previous outputs of changed and
    removed sources that this pass did not emit again -> save state ->
    print summary. Nothing is deleted if scanning or processing fails.

    Raises:
        OSError: Source not readable or filesystem write failure.
        ScanError: A changed source could not be tokenized.
    """
    output_dir = config.output_dir
    state_path = output_dir / STATE_FILE_NAME

    source_paths = collect_source_files(config.sources)
    print(f"Scanning: {len(source_paths)} Kotlin sources")

    previous = load_state(state_path)
    if config.full:
        partition = partition_sources(source_paths, BuildState.empty())
        stale_keys: list[str] = list(previous.files)
    else:
        partition = partition_sources(source_paths, previous)
        stale_keys = [source_key(path) for path in partition.changed]
        stale_keys.extend(partition.removed)

    new_files = [scan_file(path) for path in partition.changed]
    sink = FileSystemSink(output_dir)
    processor = create_processor(sink)
    processor.process(new_files)

    emitted = [path for paths in sink.outputs_by_source.values() for path in paths]
    stale_removed = remove_stale_outputs(output_dir, previous, stale_keys, keep=emitted)

    next_state = build_next_state(
        previous if not config.full else BuildState.empty(),
        partition,
        output_dir,
        sink.outputs_by_source,
    )
    save_state(state_path, next_state)

    summary = build_generation_summary(
        output_dir, partition, stale_removed, processor.stats, sink.results
    )
    print_generation_summary(summary)
    return summary


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


# ===--- Main ---=== #


def main(argv: list[str] | None = None) -> None:
    try:
        config = build_config(argv)
    except ConfigError as err:
        print(f"Config error [{err.code}]: {err.message}")
        if err.suggestion:
            print(f"Hint: {err.suggestion}")
        raise SystemExit(1) from err

    configure_logging(config.verbose)

    try:
        if isinstance(config, DiscoveryConfig):
            run_discovery(config)
        elif config.dry_run:
            run_dry_run(config)
        else:
            run_generate(config)
    except ScanError as err:
        print(f"Scan error: {err}")
        raise SystemExit(1) from err
    except OSError as err:
        print(f"Error: {err}")
        raise SystemExit(1) from err
    except (RuntimeError, ValueError) as err:
        print(f"Internal error: {err}")
        raise SystemExit(1) from err


if __name__ == "__main__":
    main()
