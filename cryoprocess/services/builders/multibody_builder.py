# cryoprocess/services/builders/multibody_builder.py
import logging

from cryoprocess.services.builders.base_builder import BaseJobBuilder
from cryoprocess.services.models_base import CommandSpec, ExecutionMode, JobType, ValidationResult
from cryoprocess.services.param_helper import format_number, healpix_order_from_sampling
from cryoprocess.services.parameter_models import MultiBodyParams

logger = logging.getLogger(__name__)

DEFAULT_MULTIBODY_HEALPIX_ORDER = 4  # 1.8 degrees


class MultiBodyBuilder(BaseJobBuilder):
    """
    Multi-body refinement, always continuing a finished auto-refine run.

    With runFlexibility the job also runs relion_flex_analyse on the
    result, chained so the analysis only starts if the refinement succeeded.
    """

    JOB_TYPE = JobType.MULTIBODY
    STAGE_NAME = "MultiBody"
    PARAMS_CLASS = MultiBodyParams
    INPUT_FIELDS = ("refinementStarFile", "bodyStarFile", "multibodyMasks")

    params: MultiBodyParams

    def is_continuation(self) -> bool:
        return True

    @property
    def healpix_order(self) -> int:
        return healpix_order_from_sampling(self.params.angular_sampling, DEFAULT_MULTIBODY_HEALPIX_ORDER)

    def _validate(self) -> ValidationResult:
        p = self.params
        if not p.refinement_star:
            return ValidationResult.fail("Refinement STAR file (optimiser from a finished refinement) is required")
        if not p.body_star:
            return ValidationResult.fail("Body masks STAR file is required")

        result = self.validate_file_exists(p.refinement_star, "Refinement STAR file")
        if not result.valid:
            return result
        return self.validate_file_exists(p.body_star, "Body masks STAR file")

    def _build(self, output_dir, job_name, mode: ExecutionMode):
        p = self.params
        out = self.output_token(output_dir)
        run_prefix = out + "run"

        cmd = self.build_mpi_command("relion_refine", mode.mpi_procs, mode.uses_gpu)
        cmd.extend([
            "--continue", self.command_path(p.refinement_star),
            "--o", run_prefix,
        ])
        if p.solvent_correct_fsc:
            cmd.append("--solvent_correct_fsc")
        cmd.extend(["--multibody_masks", self.command_path(p.body_star)])
        if p.reconstruct_subtracted:
            cmd.append("--reconstruct_subtracted_bodies")

        cmd.extend([
            "--oversampling", "1",
            "--pad", "1" if p.skip_padding else "2",
            "--healpix_order", str(self.healpix_order),
            "--auto_local_healpix_order", "4",
            "--offset_range", format_number(p.offset_range),
            "--offset_step", format_number(p.offset_step),
        ])
        if not p.combine_iterations:
            cmd.append("--dont_combine_weights_via_disc")
        cmd.extend([
            "--pool", str(p.pooled_particles),
            "--j", str(p.threads),
            "--pipeline_control", out,
        ])

        if p.use_blush:
            cmd.append("--blush")
        self.add_gpu_flags(cmd, mode)
        if not p.parallel_disc_io:
            cmd.append("--no_parallel_disc_io")
        if p.preread_images:
            cmd.append("--preread_images")
        self.add_optional_param(cmd, "--scratch_dir", p.scratch_dir)

        self.add_additional_arguments(cmd)
        refine = self.to_spec(cmd)

        if not p.run_flexibility:
            return refine
        logger.info("[%s] Chaining flexibility analysis (%d eigenvector movies)",
                    self.STAGE_NAME, p.eigenvector_movies)
        return refine.then(self._flex_analyse_command(out))

    def _flex_analyse_command(self, out: str) -> CommandSpec:
        p = self.params
        cmd = [
            "relion_flex_analyse",
            "--PCA_orient",
            "--model", out + "run_model.star",
            "--data", out + "run_data.star",
            "--bodies", self.command_path(p.body_star),
            "--o", out + "analyse",
            "--do_maps",
            "--k", str(p.eigenvector_movies),
        ]
        if p.select_by_eigenvalue:
            cmd.extend([
                "--select_eigenvalue", str(p.eigenvalue_index),
                "--select_eigenvalue_min", format_number(p.eigenvalue_min),
                "--select_eigenvalue_max", format_number(p.eigenvalue_max),
            ])
        return self.to_spec(cmd)
