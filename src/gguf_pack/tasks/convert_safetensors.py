"""Task converting tensors of a safetensors file into container tensors."""

import logging
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional

from tqdm import tqdm

from gguf_pack.container.types import MAX_DIMENSIONS, TensorDimensions, TensorInfo, TensorType
from gguf_pack.convert import TARGET_DTYPES, convert_payload
from gguf_pack.errors import ShapeMismatchError, TooManyDimensionsError
from gguf_pack.layout import expand_tensor_table
from gguf_pack.safetensors import SafetensorsReader
from gguf_pack.tasks.base import BuildContext, ConfigReader, OutputContext, PackTask

logger = logging.getLogger(__name__)


@dataclass
class ConversionJob:
    """One tensor to convert, as declared in the manifest."""

    name: str
    source: str
    tensor_type: TensorType
    dimensions: TensorDimensions
    tensor: Optional[TensorInfo] = None  # set once an offset is allocated


class ConvertSafetensorsTask(PackTask):
    """Converts bfloat16 source tensors to F16 or F32 tensors.

    Descriptors and offsets are allocated during :meth:`process`; the source
    file is only opened when the payloads are written.
    """

    task_type = "convert-safetensors"

    def __init__(self, key: str, source: str, jobs: List[ConversionJob]) -> None:
        super().__init__(key)
        self.source = source
        self.jobs = jobs

    @classmethod
    def from_config(
        cls, key: str, table: Mapping[str, Any]
    ) -> "ConvertSafetensorsTask":
        reader = ConfigReader(table, key, cls.task_type)
        reader.warn_unknown(("source", "tensors"))
        source = reader.string("source")

        try:
            entries = expand_tensor_table(reader.subtable("tensors"))
        except ValueError as e:
            raise reader.error(str(e)) from e

        jobs = [cls._parse_job(key, name, entry) for name, entry in entries]
        return cls(key, source, jobs)

    @classmethod
    def _parse_job(cls, key: str, name: str, entry: Mapping[str, Any]) -> ConversionJob:
        reader = ConfigReader(entry, key, cls.task_type)
        reader.warn_unknown(("source", "type", "dimensions"))

        type_name = reader.string("type")
        tensor_type = TensorType.__members__.get(type_name)
        if tensor_type not in TARGET_DTYPES:
            raise reader.error(
                f'tensor "{name}": target type "{type_name}" is not supported, '
                f"expected one of {[t.name for t in TARGET_DTYPES]}"
            )

        values = reader.get("dimensions")
        if (
            not isinstance(values, list)
            or not values
            or not all(isinstance(v, int) and not isinstance(v, bool) for v in values)
        ):
            raise reader.error(
                f'tensor "{name}": "dimensions" must be a non-empty list of integers'
            )
        if len(values) > MAX_DIMENSIONS:
            raise reader.error(
                f'tensor "{name}": {len(values)} dimensions given, '
                f"at most {MAX_DIMENSIONS} supported"
            )
        try:
            dimensions = TensorDimensions.from_width_first(values)
        except ValueError as e:
            raise reader.error(f'tensor "{name}": {e}') from e

        return ConversionJob(
            name=name,
            source=reader.string("source"),
            tensor_type=tensor_type,
            dimensions=dimensions,
        )

    def process(self, ctx: BuildContext) -> None:
        for job in self.jobs:
            job.tensor = ctx.allocate(job.name, job.tensor_type, job.dimensions)
            logger.debug(
                f"Allocated {job.name} {job.tensor_type.name}{job.dimensions} "
                f"at offset {job.tensor.offset}"
            )

    def write_tensors(self, out: OutputContext) -> None:
        if not self.jobs:
            return
        source_path = out.source_root / self.source
        with SafetensorsReader(source_path) as reader:
            for job in tqdm(
                self.jobs,
                desc=f"Converting {self.key}",
                unit="tensor",
                disable=not out.show_progress,
            ):
                logger.info(f"Converting tensor {job.name!r}")
                out.write_tensor(job.tensor, self._convert(reader, job))

    def _convert(self, reader: SafetensorsReader, job: ConversionJob) -> bytes:
        info = reader.get_tensor_info(job.source)

        if len(info.shape) > MAX_DIMENSIONS:
            raise TooManyDimensionsError(
                f"source tensor {job.source!r} has {len(info.shape)} dimensions"
            )
        expected = job.dimensions.total()
        if info.element_count != expected:
            raise ShapeMismatchError(
                f"source tensor {job.source!r} has shape {list(info.shape)} "
                f"({info.element_count} elements), {job.name!r} declares "
                f"{job.dimensions.to_width_last()} ({expected} elements)"
            )

        return convert_payload(
            reader.read_raw(job.source), info.dtype, job.tensor_type, expected
        )
