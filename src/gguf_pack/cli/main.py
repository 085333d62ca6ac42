#!/usr/bin/env python3
"""
gguf-pack CLI - package model weights and metadata into GGUF containers
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, List, Optional

from gguf_pack.config import LoggingConfig, PackConfig, load_config, load_manifest
from gguf_pack.container.types import MetadataArray, MetadataType, MetadataValue
from gguf_pack.errors import PackError
from gguf_pack.packager import pack_model, read_container_header

logger = logging.getLogger(__name__)

# Array elements shown by ``inspect`` before summarising
ARRAY_PREVIEW = 8


def setup_logging(config: LoggingConfig, verbose: bool = False) -> None:
    """Configure the root logger from the logging configuration."""
    level = logging.DEBUG if verbose else getattr(logging, config.level)
    formatter = logging.Formatter(config.format)

    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, "_gguf_pack", False):
            root.removeHandler(handler)
    root.setLevel(level)

    if config.console:
        console = logging.StreamHandler(sys.stderr)
        console.setFormatter(formatter)
        console._gguf_pack = True
        root.addHandler(console)
    if config.file:
        file_handler = logging.FileHandler(Path(config.file).expanduser())
        file_handler.setFormatter(formatter)
        file_handler._gguf_pack = True
        root.addHandler(file_handler)


def format_error(error: BaseException) -> str:
    """Render an exception followed by its chain of causes."""
    lines = [f"Error: {error}"]
    cause = error.__cause__
    while cause is not None:
        lines.append(f"  caused by: {type(cause).__name__}: {cause}")
        cause = cause.__cause__
    return "\n".join(lines)


def _decode(value: bytes) -> str:
    return value.decode("utf-8", errors="replace")


def _format_scalar(kind: MetadataType, value: Any) -> str:
    if kind == MetadataType.STRING:
        return json.dumps(_decode(value), ensure_ascii=False)
    return str(value)


def format_value(value: MetadataValue) -> str:
    """Human readable form of a metadata value, long arrays summarised."""
    if isinstance(value.value, MetadataArray):
        return _format_array(value.value)
    return _format_scalar(value.type, value.value)


def _format_array(array: MetadataArray) -> str:
    preview = [
        _format_array(item) if isinstance(item, MetadataArray)
        else _format_scalar(array.type, item)
        for item in array.values[:ARRAY_PREVIEW]
    ]
    if len(array) > ARRAY_PREVIEW:
        preview.append(f"... ({len(array)} items)")
    return f"{array.type.name}[" + ", ".join(preview) + "]"


def _to_json(value: Any) -> Any:
    if isinstance(value, bytes):
        return _decode(value)
    if isinstance(value, list):
        return [_to_json(item) for item in value]
    return value


class PackCLI:
    """Main CLI interface for gguf-pack."""

    def __init__(self, config: Optional[PackConfig] = None):
        self.config = config
        self.parser = self._create_parser()

    def _create_parser(self) -> argparse.ArgumentParser:
        """Create the argument parser."""
        parser = argparse.ArgumentParser(
            prog="gguf-pack",
            description="Package model weights and metadata into GGUF containers",
        )
        parser.add_argument(
            "-v", "--verbose", action="store_true", help="Enable debug logging"
        )

        subparsers = parser.add_subparsers(dest="command", help="Available commands")

        # Pack command
        pack_parser = subparsers.add_parser(
            "pack", help="Build a container from a manifest"
        )
        pack_parser.add_argument(
            "--manifest", required=True, help="Manifest TOML file describing the tasks"
        )
        pack_parser.add_argument(
            "--model", required=True, help="Directory task sources are relative to"
        )
        pack_parser.add_argument("output", help="Container file to write")
        pack_parser.add_argument(
            "--progress", action="store_true", help="Show per-tensor progress bars"
        )
        pack_parser.add_argument(
            "--no-overwrite",
            action="store_true",
            help="Fail if the output file already exists",
        )

        # Inspect command
        inspect_parser = subparsers.add_parser(
            "inspect", help="Show the header of a container"
        )
        inspect_parser.add_argument("file", help="Container file to read")
        inspect_parser.add_argument(
            "--json", action="store_true", help="Print the full header as JSON"
        )

        return parser

    def run(self, args: Optional[List[str]] = None) -> int:
        """Run the CLI."""
        args = self.parser.parse_args(args)

        if not args.command:
            self.parser.print_help()
            return 0

        try:
            config = self.config or load_config()
            setup_logging(config.logging, args.verbose)

            if args.command == "pack":
                return self._cmd_pack(args, config)
            elif args.command == "inspect":
                return self._cmd_inspect(args)
            else:
                print(f"Error: Unknown command '{args.command}'", file=sys.stderr)
                return 1
        except PackError as e:
            logger.debug("Command failed", exc_info=True)
            print(format_error(e), file=sys.stderr)
            return 1
        except Exception as e:
            logger.debug("Unexpected failure", exc_info=True)
            print(f"Unexpected {type(e).__name__}", file=sys.stderr)
            print(format_error(e), file=sys.stderr)
            return 1

    def _cmd_pack(self, args: argparse.Namespace, config: PackConfig) -> int:
        """Pack a model into a container."""
        manifest_path = Path(args.manifest)
        model_path = Path(args.model)

        if not manifest_path.is_file():
            print(f"Error: Manifest not found: {manifest_path}", file=sys.stderr)
            return 1
        if not model_path.is_dir():
            print(f"Error: Model directory not found: {model_path}", file=sys.stderr)
            return 1

        manifest = load_manifest(manifest_path)
        header = pack_model(
            manifest,
            model_path,
            Path(args.output),
            atomic=config.output.atomic_write,
            overwrite=config.output.overwrite and not args.no_overwrite,
            show_progress=config.output.show_progress or args.progress,
        )

        print(
            f"Packed {len(header.metadata)} metadata entries and "
            f"{len(header.tensors)} tensors into {args.output}"
        )
        return 0

    def _cmd_inspect(self, args: argparse.Namespace) -> int:
        """Show the header of a container."""
        header, data_start = read_container_header(args.file)

        if args.json:
            document = {
                "data_start": data_start,
                "metadata": [
                    {
                        "key": key,
                        "type": value.type.name,
                        "value": _to_json(value.to_python()),
                    }
                    for key, value in header.metadata
                ],
                "tensors": [tensor.to_dict() for tensor in header.tensors],
            }
            print(json.dumps(document, indent=2, ensure_ascii=False))
            return 0

        print(f"Metadata ({len(header.metadata)} entries):")
        for key, value in header.metadata:
            print(f"  {key}: {format_value(value)}")

        print(f"\nTensors ({len(header.tensors)}, data starts at {data_start}):")
        for tensor in header.tensors:
            print(
                f"  {tensor.name:<40} {tensor.tensor_type.name:<5} "
                f"{str(tensor.dimensions):<24} offset {tensor.offset}"
            )
        return 0


def main():
    """Main entry point."""
    cli = PackCLI()
    sys.exit(cli.run())


if __name__ == "__main__":
    main()
