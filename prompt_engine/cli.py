"""CLI for compiling, compressing and inspecting prompt engine configurations."""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from .compiler import CompilerOptions, PromptCompiler
from .compiler.metrics import PLACEHOLDER_RE, estimate_tokens
from .compression import CompressionEngine, CompressionStrategy
from .config_io import EngineConfig, load_config_file
from .exceptions import PromptEngineError
from .logging import setup_logging
from .slots import topological_order


def _print_table(headers: list[str], rows: list[list[str]]) -> None:
    """Print an aligned text table."""
    if not rows:
        return
    widths = [max(len(h), *(len(row[i]) for row in rows)) for i, h in enumerate(headers)]
    print("  ".join(h.ljust(w) for h, w in zip(headers, widths, strict=True)))
    print("  ".join("-" * w for w in widths))
    for row in rows:
        print("  ".join(val.ljust(w) for val, w in zip(row, widths, strict=True)))


def _load_config(path: Path) -> EngineConfig | None:
    """Load and merge a configuration document, reporting problems on stderr."""
    try:
        return load_config_file(path).resolved_config()
    except (OSError, ValidationError, yaml.YAMLError) as e:
        print(f"Error: cannot load configuration '{path}': {e}", file=sys.stderr)
        return None


def _parse_assignments(assignments: list[str]) -> dict[str, Any]:
    """Turn ``id=value`` pairs into a dict. Values are parsed as YAML scalars, so ``n=4`` yields an int."""
    values: dict[str, Any] = {}
    for assignment in assignments:
        slot_id, sep, raw = assignment.partition("=")
        if not sep or not slot_id:
            raise ValueError(f"Expected id=value, got '{assignment}'")
        values[slot_id.strip()] = yaml.safe_load(raw) if raw else ""
    return values


def _load_values(args: argparse.Namespace) -> dict[str, Any]:
    values: dict[str, Any] = {}
    if args.values is not None:
        loaded = yaml.safe_load(Path(args.values).read_text(encoding="utf-8")) or {}
        if not isinstance(loaded, dict):
            raise ValueError(f"Values file '{args.values}' must contain a mapping")
        values.update(loaded)
    values.update(_parse_assignments(args.set or []))
    return values


# ---------------------------------------------------------------------------
# Subcommands
# ---------------------------------------------------------------------------


def _cmd_compile(args: argparse.Namespace) -> int:
    """Compile the configured template and print the prompt with its diagnostics."""
    config = _load_config(args.config)
    if config is None:
        return 1
    template = config.effective_template()
    if template is None:
        print(f"Error: configuration '{args.config}' has no template", file=sys.stderr)
        return 1
    try:
        values = _load_values(args)
    except (OSError, ValueError, yaml.YAMLError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    compiler = PromptCompiler()
    options = CompilerOptions(strict_mode=args.strict, include_debug_info=args.json)
    try:
        result = asyncio.run(compiler.compile(template, values, config.injection_strategy, config.compression_strategy, options))
    except PromptEngineError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps(result.to_json_dict(), indent=2, ensure_ascii=False))
        return 0

    print(result.compiled_prompt)
    print()
    print(f"Tokens: {result.token_count}  Cost: ${result.estimated_cost:.6f}  Response: ~{result.estimated_response_time:.0f}ms  Quality: {result.quality_score:.2f}")
    if result.compression is not None:
        print(f"Compression: ratio {result.compression.compression_ratio:.2f}, quality {result.compression.quality_score:.2f}")
    if result.issues:
        print()
        _print_table(["Issue", "Severity", "Message"], [[str(i.id), str(i.severity), i.message] for i in result.issues])
    if result.suggestions:
        print()
        _print_table(["Suggestion", "Priority", "Title"], [[s.id, str(s.priority), s.title] for s in result.suggestions])
    return 0


def _cmd_compress(args: argparse.Namespace) -> int:
    """Compress a text file with the configured (or default) compression strategy."""
    strategy = CompressionStrategy()
    if args.config is not None:
        config = _load_config(args.config)
        if config is None:
            return 1
        strategy = config.compression_strategy or strategy
    try:
        text = Path(args.file).read_text(encoding="utf-8")
    except OSError as e:
        print(f"Error: cannot read '{args.file}': {e}", file=sys.stderr)
        return 1

    try:
        result = CompressionEngine().compress(text, strategy)
    except (PromptEngineError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps(result.to_json_dict(), indent=2, ensure_ascii=False))
        return 0

    print(result.compressed_text)
    print()
    print(
        f"Ratio: {result.compression_ratio:.2f}  Quality: {result.quality_score:.2f}  Tokens saved: {result.token_saved}"
        f"  Rules: {', '.join(result.applied_rules) or '-'}"
    )
    return 0


def _cmd_inspect(args: argparse.Namespace) -> int:
    """Show slot resolution order and placeholder usage of the configured template."""
    config = _load_config(args.config)
    if config is None:
        return 1
    template = config.effective_template()
    slots = template.slots if template is not None else config.slots
    try:
        ordered = topological_order(slots)
    except PromptEngineError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if template is not None:
        print(f"Template: {template.name or template.id} ({estimate_tokens(template.base_prompt)} tokens before substitution)")
    print(f"Slots: {len(slots)}")
    print()
    rows = [
        [str(position), slot.id, str(slot.kind), "yes" if slot.required else "no", ", ".join(slot.dependencies) or "-"]
        for position, slot in enumerate(ordered, start=1)
    ]
    _print_table(["#", "Slot", "Kind", "Required", "Depends on"], rows)

    if template is not None:
        declared = {slot.id for slot in slots}
        referenced = dict.fromkeys(name.strip() for name in PLACEHOLDER_RE.findall(template.base_prompt))
        undeclared = [name for name in referenced if name not in declared]
        unused = [slot.id for slot in slots if slot.id not in referenced]
        if undeclared:
            print(f"\nPlaceholders without a slot: {', '.join(undeclared)}")
        if unused:
            print(f"\nSlots not referenced by the template: {', '.join(unused)}")
    return 0


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> int:
    """CLI entry point for prompt engine operations."""
    parser = argparse.ArgumentParser(prog="prompt-engine", description="Prompt engine CLI")
    parser.add_argument("--log-level", default=None, help="Override the log level (DEBUG, INFO, WARNING, ...)")
    subparsers = parser.add_subparsers(dest="command")

    # compile
    compile_parser = subparsers.add_parser("compile", help="Compile a template configuration into a prompt")
    compile_parser.add_argument("config", type=Path, help="Configuration document (.json, .yaml or .yml)")
    compile_parser.add_argument("--values", type=Path, default=None, help="JSON or YAML file with slot values")
    compile_parser.add_argument("--set", action="append", metavar="ID=VALUE", help="Slot value, may be repeated")
    compile_parser.add_argument("--strict", action="store_true", help="Abort on missing or invalid slot values")
    compile_parser.add_argument("--json", action="store_true", help="Print the full preview result as JSON")

    # compress
    compress_parser = subparsers.add_parser("compress", help="Compress a text file")
    compress_parser.add_argument("file", type=Path, help="Text file to compress")
    compress_parser.add_argument("--config", type=Path, default=None, help="Configuration document holding a compressionStrategy")
    compress_parser.add_argument("--json", action="store_true", help="Print the full compression result as JSON")

    # inspect
    inspect_parser = subparsers.add_parser("inspect", help="Show slot resolution order and placeholders")
    inspect_parser.add_argument("config", type=Path, help="Configuration document (.json, .yaml or .yml)")

    args = parser.parse_args(argv)

    handlers = {"compile": _cmd_compile, "compress": _cmd_compress, "inspect": _cmd_inspect}
    handler = handlers.get(args.command)
    if handler is None:
        parser.print_help()
        return 1

    setup_logging(level=args.log_level)
    return handler(args)


__all__ = ["main"]
