# cryoprocess/services/builders/dynamight_builder.py
import logging
from typing import List

from cryoprocess.services.builders.base_builder import BaseJobBuilder
from cryoprocess.services.models_base import CommandChain, ExecutionMode, JobType, ValidationResult
from cryoprocess.services.param_helper import format_number
from cryoprocess.services.parameter_models import DynamightParams

logger = logging.getLogger(__name__)

OPTIMIZE_DEFORMATIONS = "optimize-deformations"
EXPLORE_LATENT_SPACE = "explore-latent-space"
OPTIMIZE_INVERSE = "optimize-inverse-deformations"
DEFORMABLE_BACKPROJECTION = "deformable-backprojection"


class DynamightBuilder(BaseJobBuilder):
    """
    DynaMight deformation modelling.

    Without a checkpoint, or with one but no task selected, the job trains
    (or resumes training of) the deformation model. With a checkpoint and
    task flags, each selected task runs as its own invocation, in the order
    explore -> inverse deformations -> backprojection.
    """

    JOB_TYPE = JobType.DYNAMIGHT
    STAGE_NAME = "Dynamight"
    PARAMS_CLASS = DynamightParams
    INPUT_FIELDS = ("micrographs", "inputFile", "checkpointFile", "consensusMap")

    params: DynamightParams

    @property
    def supports_mpi(self) -> bool:
        return False

    def is_continuation(self) -> bool:
        return bool(self.params.checkpoint_file)

    def gpu_requested(self) -> bool:
        # the device is always passed explicitly
        return True

    def subcommands(self) -> List[str]:
        p = self.params
        if not (p.checkpoint_file and p.has_tasks):
            return [OPTIMIZE_DEFORMATIONS]
        selected = []
        if p.do_visualization:
            selected.append(EXPLORE_LATENT_SPACE)
        if p.inverse_deformation:
            selected.append(OPTIMIZE_INVERSE)
        if p.deformed_backprojection:
            selected.append(DEFORMABLE_BACKPROJECTION)
        return selected

    def _validate(self) -> ValidationResult:
        p = self.params
        if p.checkpoint_file:
            result = self.validate_file_exists(p.checkpoint_file, "Checkpoint file")
        elif not p.input_file:
            return ValidationResult.fail("Input particles STAR file is required")
        else:
            result = self.validate_file_exists(p.input_file, "Input particles STAR file")
        if not result.valid:
            return result

        if p.consensus_map:
            return self.validate_file_exists(p.consensus_map, "Consensus map")
        return ValidationResult.ok()

    def _build(self, output_dir, job_name, mode: ExecutionMode):
        out = self.output_token(output_dir)
        builders = {
            OPTIMIZE_DEFORMATIONS     : self._optimize_command,
            EXPLORE_LATENT_SPACE      : self._explore_command,
            OPTIMIZE_INVERSE          : self._inverse_command,
            DEFORMABLE_BACKPROJECTION : self._backprojection_command,
        }
        commands = [builders[name](out) for name in self.subcommands()]

        # extra arguments belong to the last invocation
        self.add_additional_arguments(commands[-1])
        specs = [self.to_spec(cmd) for cmd in commands]
        if len(specs) == 1:
            return specs[0]
        return CommandChain(tuple(specs))

    def _start(self, subcommand: str, out: str) -> List[str]:
        return [self.params.executable, subcommand, "--output-directory", out]

    def _finish(self, cmd: List[str], out: str) -> List[str]:
        p = self.params
        if p.preload_images:
            cmd.append("--preload-images")
        cmd.extend(["--pipeline-control", out])
        return cmd

    def _optimize_command(self, out: str) -> List[str]:
        p = self.params
        cmd = [p.executable, OPTIMIZE_DEFORMATIONS]
        if p.input_file:
            cmd.extend(["--refinement-star-file", self.command_path(p.input_file)])
        cmd.extend(["--output-directory", out])
        if p.consensus_map:
            cmd.extend(["--initial-model", self.command_path(p.consensus_map)])
        cmd.extend(["--n-gaussians", str(p.num_gaussians)])
        self.add_optional_param(cmd, "--initial-threshold", p.initial_threshold)
        cmd.extend(["--regularization-factor", format_number(p.regularization_factor)])
        if p.checkpoint_file:
            cmd.extend(["--checkpoint-file", self.command_path(p.checkpoint_file)])
        cmd.extend([
            "--gpu-id", str(p.gpu_device),
            "--n-threads", str(p.threads),
        ])
        return self._finish(cmd, out)

    def _explore_command(self, out: str) -> List[str]:
        p = self.params
        cmd = self._start(EXPLORE_LATENT_SPACE, out)
        cmd.extend([
            "--checkpoint-file", self.command_path(p.checkpoint_file),
            "--half-set", str(p.half_set),
            "--gpu-id", str(p.gpu_device),
        ])
        return self._finish(cmd, out)

    def _inverse_command(self, out: str) -> List[str]:
        p = self.params
        cmd = self._start(OPTIMIZE_INVERSE, out)
        cmd.extend([
            "--checkpoint-file", self.command_path(p.checkpoint_file),
            "--n-epochs", str(p.num_epochs),
        ])
        if p.store_deformations:
            cmd.append("--save-deformations")
        cmd.extend(["--gpu-id", str(p.gpu_device)])
        return self._finish(cmd, out)

    def _backprojection_command(self, out: str) -> List[str]:
        p = self.params
        cmd = self._start(DEFORMABLE_BACKPROJECTION, out)
        cmd.extend([
            "--checkpoint-file", self.command_path(p.checkpoint_file),
            "--backprojection-batch-size", str(p.backproj_batch_size),
            "--gpu-id", str(p.gpu_device),
        ])
        return self._finish(cmd, out)
