# cryoprocess/services/builders/base_builder.py
"""
Shared lifecycle for every job builder.

    builder = Class2DBuilder(form_data, project_path)
    result = builder.validate()
    if result.valid:
        command = builder.build_command(output_dir, "Job007")

validate() reports every input problem as a ValidationResult and never
raises for bad input or a missing file. build_command() trusts a prior
successful validate() and refuses to run without one.
"""

import logging
from pathlib import Path
from types import MappingProxyType
from typing import Any, ClassVar, List, Mapping, Optional, Type, Union

from cryoprocess.services.configs.config_service import ConfigService, get_config_service
from cryoprocess.services.models_base import (
    BuildPreconditionError,
    Command,
    CommandSpec,
    CompileResult,
    ExecutionMode,
    JobType,
    ValidationResult,
)
from cryoprocess.services.param_helper import format_number
from cryoprocess.services.parameter_models import AbstractJobParams
from cryoprocess.services.path_resolution_service import PathResolutionService, extract_job_ids

logger = logging.getLogger(__name__)


class BaseJobBuilder:
    JOB_TYPE: ClassVar[JobType]
    STAGE_NAME: ClassVar[str] = "Unknown"
    PARAMS_CLASS: ClassVar[Type[AbstractJobParams]]
    # form fields holding upstream files, used to link the job into the pipeline tree
    INPUT_FIELDS: ClassVar[tuple] = ()

    def __init__(
        self,
        data: Mapping[str, Any],
        project_path: Union[str, Path],
        config: Optional[ConfigService] = None,
    ):
        self.data = MappingProxyType(dict(data or {}))
        self.paths = PathResolutionService(project_path)
        self.config = config or get_config_service()
        self.project_path = self.paths.project_path
        self.params = self.PARAMS_CLASS.from_job_parameters(self.data, self.config)
        self._validated = False

    # -------------------------------------------------------------------------
    # Capabilities
    # -------------------------------------------------------------------------

    @property
    def supports_gpu(self) -> bool:
        return True

    @property
    def supports_mpi(self) -> bool:
        return True

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def validate(self) -> ValidationResult:
        try:
            result = self._validate()
        except OSError as e:
            result = ValidationResult.fail(f"Input files could not be checked: {e}")

        self._validated = result.valid
        if result.valid:
            logger.info("[%s] Validation: Passed", self.STAGE_NAME)
        else:
            logger.warning("[%s] Validation: Failed | %s", self.STAGE_NAME, result.error)
        return result

    def build_command(self, output_dir: Union[str, Path], job_name: str) -> Command:
        if not self._validated:
            raise BuildPreconditionError(
                f"[{self.STAGE_NAME}] build_command() requires a successful validate() first"
            )

        mode = self.execution_mode()
        logger.info("[%s] Command: Building | job_name: %s", self.STAGE_NAME, job_name)
        logger.debug("[%s] Parameters: %s | mode: %s", self.STAGE_NAME, self.params.model_dump(), mode)

        command = self._build(output_dir, job_name, mode)

        logger.info("[%s] Command: Built | output_dir: %s", self.STAGE_NAME, output_dir)
        logger.info("[%s] Command: Full | %s", self.STAGE_NAME, command.render())
        return command

    def compile(self, output_dir: Union[str, Path], job_name: str) -> CompileResult:
        validation = self.validate()
        if not validation.valid:
            return CompileResult(validation=validation)
        return CompileResult(validation=validation, command=self.build_command(output_dir, job_name))

    def _validate(self) -> ValidationResult:
        raise NotImplementedError

    def _build(self, output_dir: Union[str, Path], job_name: str, mode: ExecutionMode) -> Command:
        raise NotImplementedError

    # -------------------------------------------------------------------------
    # Execution mode
    # -------------------------------------------------------------------------

    def is_continuation(self) -> bool:
        return False

    def effective_mpi_procs(self) -> int:
        return self.params.mpi_procs

    def gpu_requested(self) -> bool:
        return self.params.gpu_enabled

    def execution_mode(self) -> ExecutionMode:
        mpi_procs = self.effective_mpi_procs() if self.supports_mpi else 1
        gpu = self.supports_gpu and self.gpu_requested()
        return ExecutionMode(
            continuation = self.is_continuation(),
            parallelism  = "mpi" if mpi_procs > 1 else "single",
            accelerator  = "gpu" if gpu else "cpu",
            mpi_procs    = mpi_procs,
        )

    # -------------------------------------------------------------------------
    # Paths
    # -------------------------------------------------------------------------

    def resolve_input_path(self, ref: Optional[str]) -> Optional[Path]:
        return self.paths.resolve(ref)

    def make_relative(self, path: Union[str, Path, None]) -> str:
        return self.paths.relativize(path)

    def command_path(self, ref: Optional[str]) -> str:
        return self.paths.to_command_path(ref)

    def output_token(self, output_dir: Union[str, Path]) -> str:
        return self.paths.directory_token(output_dir)

    def input_job_ids(self) -> List[str]:
        """Upstream jobs this one reads from, e.g. ["Job002", "Job005"]."""
        explicit = self.data.get("inputJobIds")
        if isinstance(explicit, str):
            explicit = explicit.replace(",", " ").split()
        if explicit:
            return list(explicit)
        return extract_job_ids(self.data, self.INPUT_FIELDS)

    def validate_file_exists(self, ref: Optional[str], field_name: str) -> ValidationResult:
        if not ref:
            return ValidationResult.fail(f"{field_name} is required")
        resolved = self.resolve_input_path(ref)
        if not resolved.exists():
            logger.warning("[%s] File not found: %s", self.STAGE_NAME, resolved)
            return ValidationResult.fail(f"{field_name} not found: {ref}")
        return ValidationResult.ok()

    # -------------------------------------------------------------------------
    # Command pieces
    # -------------------------------------------------------------------------

    def build_mpi_command(self, binary: str, mpi_procs: int, gpu_enabled: bool = False) -> List[str]:
        """
        Seed of the token list.

        Single process: just the binary. Queued runs get the *_mpi binary
        and leave process placement to the scheduler; local runs prepend
        the configured launcher.
        """
        if mpi_procs <= 1:
            return [binary]

        mpi_binary = f"{binary}_mpi"
        if self.params.submit_to_queue:
            logger.info("[%s] MPI command (queue): %s (mpi=%d, gpu=%s)",
                        self.STAGE_NAME, mpi_binary, mpi_procs, gpu_enabled)
            return [mpi_binary]

        cmd = [*self.config.launcher_prefix(mpi_procs), mpi_binary]
        logger.info("[%s] MPI command (local): %s (gpu=%s)", self.STAGE_NAME, " ".join(cmd), gpu_enabled)
        return cmd

    def add_thumbnail_flags(self, cmd: List[str]):
        thumbnails = self.config.thumbnails
        if thumbnails.enabled:
            cmd.extend([
                "--do_thumbnails", "true",
                "--thumbnail_size", str(thumbnails.size),
                "--thumbnail_count", str(thumbnails.count),
            ])

    def add_gpu_flags(self, cmd: List[str], mode: ExecutionMode):
        if mode.uses_gpu:
            cmd.extend(["--gpu", self.params.gpu_ids])
            logger.info("[%s] GPU enabled: --gpu %s", self.STAGE_NAME, self.params.gpu_ids)

    def add_additional_arguments(self, cmd: List[str]):
        """User-supplied extra flags, split on whitespace and appended as given."""
        cmd.extend(self.params.additional_arguments)

    @staticmethod
    def add_optional_param(cmd: List[str], flag: str, value: Any, condition: bool = True):
        if condition and value is not None and str(value) != "":
            cmd.extend([flag, format_number(value)])

    @staticmethod
    def to_spec(cmd: List[str]) -> CommandSpec:
        return CommandSpec(tuple(cmd))
