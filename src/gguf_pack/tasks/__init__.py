"""
Packaging tasks

Each top-level table of a manifest configures one task. Tasks are loaded in
manifest order, contribute metadata and tensor descriptors during
:func:`process`, and stream tensor payloads during :func:`write_tensors`.

Example Usage:
    tasks = load(manifest)
    header = process(tasks, source_root)
    ...
    write_tensors(tasks, source_root, output, data_start)
"""

import logging
from pathlib import Path
from typing import Any, BinaryIO, Dict, List, Mapping, Type, Union

from gguf_pack.container.types import Header
from gguf_pack.errors import ConfigError, PackError, TaskError, UnknownTaskTypeError

from .add_model_card import AddModelCardTask
from .add_model_config import AddModelConfigTask
from .base import BuildContext, ConfigReader, OutputContext, PackTask
from .convert_rwkv_tokenizer import ConvertRwkvTokenizerTask
from .convert_safetensors import ConversionJob, ConvertSafetensorsTask

logger = logging.getLogger(__name__)

TASK_TYPES: Dict[str, Type[PackTask]] = {
    task.task_type: task
    for task in (
        AddModelCardTask,
        AddModelConfigTask,
        ConvertRwkvTokenizerTask,
        ConvertSafetensorsTask,
    )
}


def load(manifest: Mapping[str, Mapping[str, Any]]) -> List[PackTask]:
    """Instantiate the tasks of a manifest in iteration order.

    Raises:
        ConfigError: If a task table is malformed
        UnknownTaskTypeError: If a task names an unregistered task type
    """
    logger.info("Loading tasks")

    tasks = []
    for key, table in manifest.items():
        if not isinstance(table, Mapping):
            raise ConfigError("task configuration must be a table", key=key)
        if "task" not in table:
            raise ConfigError('missing key "task"', key=key)
        name = table["task"]
        if not isinstance(name, str):
            raise ConfigError('"task" must be a string', key=key)

        task_class = TASK_TYPES.get(name)
        if task_class is None:
            raise UnknownTaskTypeError(f'unknown task type "{name}"', key=key)

        logger.debug(f'Loading task "{key}" -> "{name}"')
        tasks.append(task_class.from_config(key, table))

    return tasks


def process(tasks: List[PackTask], source_root: Union[str, Path]) -> Header:
    """Run the contribute phase of every task and return the finished header.

    Raises:
        TaskError: If a task fails, chained to the original error
    """
    logger.info("Processing tasks")

    ctx = BuildContext(source_root)
    for task in tasks:
        logger.info(f'Processing "{task.key}"')
        ctx.current_task = task.key
        try:
            task.process(ctx)
        except (PackError, OSError) as e:
            raise TaskError(task.key, "process", str(e)) from e
    ctx.current_task = None

    return ctx.to_header()


def write_tensors(
    tasks: List[PackTask],
    source_root: Union[str, Path],
    output: BinaryIO,
    data_start: int,
    show_progress: bool = False,
) -> None:
    """Run the payload phase of every task in order.

    ``output`` must be positioned at ``data_start``.

    Raises:
        TaskError: If a task fails, chained to the original error
    """
    logger.info("Writing tensors")

    out = OutputContext(
        stream=output,
        data_start=data_start,
        source_root=Path(source_root),
        show_progress=show_progress,
    )
    for task in tasks:
        try:
            task.write_tensors(out)
        except (PackError, OSError) as e:
            raise TaskError(task.key, "write_tensors", str(e)) from e


__all__ = [
    "TASK_TYPES",
    "load",
    "process",
    "write_tensors",
    "PackTask",
    "BuildContext",
    "OutputContext",
    "ConfigReader",
    "AddModelCardTask",
    "AddModelConfigTask",
    "ConvertRwkvTokenizerTask",
    "ConvertSafetensorsTask",
    "ConversionJob",
]
