# cryoprocess/services/builders/class2d_builder.py
import logging

from cryoprocess.services.builders.base_builder import BaseJobBuilder
from cryoprocess.services.models_base import ExecutionMode, JobType, ValidationResult
from cryoprocess.services.param_helper import format_number
from cryoprocess.services.parameter_models import Class2DParams

logger = logging.getLogger(__name__)


class Class2DBuilder(BaseJobBuilder):
    """
    relion_refine 2D classification.

    New jobs run either VDAM mini-batches (default) or classic EM; a job
    continued from an optimiser file only gets the minimal restart flags.
    """

    JOB_TYPE = JobType.CLASS_2D
    STAGE_NAME = "Class2D"
    PARAMS_CLASS = Class2DParams
    INPUT_FIELDS = ("inputStarFile", "inputParticles", "continueFrom")

    params: Class2DParams

    def is_continuation(self) -> bool:
        return bool(self.params.continue_from)

    def _validate(self) -> ValidationResult:
        if self.params.continue_from:
            return self.validate_file_exists(self.params.continue_from, "Continue from file")
        if not self.params.input_star_file:
            return ValidationResult.fail("Input star file is required")
        return self.validate_file_exists(self.params.input_star_file, "Input STAR file")

    def _build(self, output_dir, job_name, mode: ExecutionMode):
        p = self.params
        out = self.output_token(output_dir)

        cmd = self.build_mpi_command("relion_refine", mode.mpi_procs, mode.uses_gpu)
        if mode.continuation:
            logger.info("[%s] Continuing from optimiser file: %s", self.STAGE_NAME, p.continue_from)
            cmd.extend([
                "--o", out,
                "--continue", self.command_path(p.continue_from),
                "--dont_combine_weights_via_disc",
                "--pool", str(p.pooled_particles),
                "--j", str(p.threads),
                "--pipeline_control", out,
            ])
        else:
            self._add_new_job_flags(cmd, out)

        self.add_gpu_flags(cmd, mode)
        if p.preread_images:
            cmd.append("--preread_images")
        self.add_optional_param(cmd, "--scratch_dir", p.scratch_dir)
        if not p.parallel_disc_io:
            cmd.append("--no_parallel_disc_io")

        self.add_additional_arguments(cmd)
        return self.to_spec(cmd)

    def _add_new_job_flags(self, cmd, out):
        p = self.params
        cmd.extend([
            "--o", out,
            "--i", self.command_path(p.input_star_file),
            "--dont_combine_weights_via_disc",
            "--pool", str(p.pooled_particles),
        ])
        if p.ctf_correction:
            cmd.append("--ctf")
        cmd.extend([
            "--iter", str(p.iterations),
            "--tau2_fudge", format_number(p.regularisation),
            "--particle_diameter", str(p.mask_diameter),
            "--K", str(p.number_of_classes),
            "--flatten_solvent",
        ])

        if p.perform_alignment:
            cmd.extend([
                "--zero_mask",
                "--center_classes",
                "--oversampling", "1",
                "--psi_step", format_number(p.psi_step),
                "--offset_range", format_number(p.offset_range),
                "--offset_step", format_number(p.offset_step),
            ])
            if p.allow_coarse_sampling:
                cmd.append("--allow_coarser_sampling")
        else:
            cmd.append("--skip_align")

        cmd.extend([
            "--norm",
            "--scale",
            "--j", str(p.threads),
            "--pipeline_control", out,
        ])

        if p.ignore_ctfs:
            cmd.append("--ctf_intact_first_peak")

        if p.use_vdam:
            cmd.extend([
                "--grad",
                "--class_inactivity_threshold", "0.1",
                "--grad_write_iter", "10",
            ])

        if p.limit_resolution_e_step > 0:
            cmd.extend(["--strict_highres_exp", format_number(p.limit_resolution_e_step)])

        if p.helical:
            cmd.extend(["--helical_outer_diameter", format_number(p.tube_diameter)])
            if p.bimodal_psi:
                cmd.append("--bimodal_psi")
            cmd.extend(["--helical_rise", format_number(p.helical_rise)])
            if p.restrict_helical_offsets:
                cmd.extend(["--helical_offset_step", format_number(p.offset_step)])
