"""High level packaging entry points.

Example Usage:
    manifest = load_manifest("manifest.toml")
    header = pack_model(manifest, "rwkv-model/", "rwkv.gguf")

    header, data_start = read_container_header("rwkv.gguf")
"""

import logging
import tempfile
from pathlib import Path
from typing import Any, BinaryIO, Callable, Mapping, Tuple, Union

from gguf_pack import tasks as pipeline
from gguf_pack.container.header import read_header, write_header, write_padding
from gguf_pack.container.types import Header, align_offset

logger = logging.getLogger(__name__)


def pack_model(
    manifest: Mapping[str, Mapping[str, Any]],
    source_root: Union[str, Path],
    output_path: Union[str, Path],
    *,
    atomic: bool = True,
    overwrite: bool = True,
    show_progress: bool = False,
) -> Header:
    """Run every task of a manifest and write the resulting container.

    Args:
        manifest: Task tables keyed by task key, in execution order
        source_root: Directory task source paths are resolved against
        output_path: Destination of the container
        atomic: Write to a temporary file and move it into place on success
        overwrite: Replace an existing destination file
        show_progress: Display per-tensor progress bars

    Returns:
        The header that was written

    Raises:
        ConfigError: If the manifest is malformed
        TaskError: If a task fails while processing or writing
        FileExistsError: If the destination exists and overwrite is False
    """
    source_root = Path(source_root)
    output_path = Path(output_path)

    if output_path.exists() and not overwrite:
        raise FileExistsError(f"Output file already exists: {output_path}")

    tasks = pipeline.load(manifest)
    header = pipeline.process(tasks, source_root)
    logger.info(
        f"Packing {len(header.metadata)} metadata entries and "
        f"{len(header.tensors)} tensors into {output_path}"
    )

    def write(stream: BinaryIO) -> None:
        write_header(stream, header)
        data_start = write_padding(stream)
        logger.debug(f"Tensor data starts at {data_start}")
        pipeline.write_tensors(tasks, source_root, stream, data_start, show_progress)

    if atomic:
        _write_with_temp_file(output_path, write)
    else:
        try:
            with open(output_path, "wb") as f:
                write(f)
        except BaseException:
            # A header without its full payload must not be left behind
            output_path.unlink(missing_ok=True)
            raise

    logger.info(f"Wrote {output_path}")
    return header


def _write_with_temp_file(output_path: Path, write: Callable[[BinaryIO], None]) -> None:
    """Write using a temporary file for atomic operation."""
    temp_file = None
    try:
        # Create temporary file in same directory
        temp_file = tempfile.NamedTemporaryFile(
            dir=output_path.parent,
            prefix=f".{output_path.name}.",
            suffix=".tmp",
            delete=False,
        )
        temp_path = Path(temp_file.name)

        with temp_file:
            write(temp_file)

        # Atomic move to final location
        temp_path.replace(output_path)

    except BaseException:
        # Clean up temporary file if it exists
        if temp_file is not None:
            temp_path = Path(temp_file.name)
            if temp_path.exists():
                temp_path.unlink()
        raise


def read_container_header(path: Union[str, Path]) -> Tuple[Header, int]:
    """Read the header of a container file.

    Returns:
        The header and the absolute position of the tensor data region
    """
    with open(path, "rb") as f:
        header = read_header(f)
        data_start = align_offset(f.tell())
    return header, data_start
