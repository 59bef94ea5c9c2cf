# cryoprocess/services/builders/ctf_builder.py
import logging
import re

from cryoprocess.services.builders.base_builder import BaseJobBuilder
from cryoprocess.services.models_base import ExecutionMode, JobType, ValidationResult
from cryoprocess.services.param_helper import format_number
from cryoprocess.services.parameter_models import CtfFindParams

logger = logging.getLogger(__name__)

# CTFFIND 5 writes a different output format, so no --is_ctffind4 for it
_CTFFIND5 = re.compile(r"ctffind[-_]?5", re.IGNORECASE)


def is_ctffind5(executable: str) -> bool:
    return bool(_CTFFIND5.search(executable or ""))


class CtfEstimationBuilder(BaseJobBuilder):
    """relion_run_ctffind driving either CTFFIND (CPU) or Gctf (GPU)."""

    JOB_TYPE = JobType.CTF_ESTIMATION
    STAGE_NAME = "CtfFind"
    PARAMS_CLASS = CtfFindParams
    INPUT_FIELDS = ("inputStarFile",)

    params: CtfFindParams

    def gpu_requested(self) -> bool:
        return self.params.use_gctf

    def defocus_range(self):
        """(min, max) defocus search range, always ascending."""
        low, high = self.params.min_defocus, self.params.max_defocus
        if low > high:
            logger.warning("[%s] Defocus range inverted: min=%s > max=%s, swapping", self.STAGE_NAME, low, high)
            low, high = high, low
        return low, high

    def _validate(self) -> ValidationResult:
        if not self.params.input_star_file:
            return ValidationResult.fail("Input STAR file is required")
        return self.validate_file_exists(self.params.input_star_file, "Input STAR file")

    def _build(self, output_dir, job_name, mode: ExecutionMode):
        p = self.params
        out = self.output_token(output_dir)

        cmd = self.build_mpi_command("relion_run_ctffind", mode.mpi_procs, mode.uses_gpu)
        cmd.extend([
            "--i", self.command_path(p.input_star_file),
            "--o", out,
            "--dAst", format_number(p.astigmatism),
        ])

        if mode.uses_gpu:
            cmd.extend(["--use_gctf", "--gctf_exe", p.gctf_executable])
        else:
            cmd.extend(["--ctffind_exe", p.ctffind_executable])
            if not is_ctffind5(p.ctffind_executable):
                cmd.append("--is_ctffind4")

        defocus_min, defocus_max = self.defocus_range()
        cmd.extend([
            "--ctfWin", format_number(p.ctf_window),
            "--Box", format_number(p.box_size),
            "--ResMin", format_number(p.min_resolution),
            "--ResMax", format_number(p.max_resolution),
            "--dFMin", format_number(defocus_min),
            "--dFMax", format_number(defocus_max),
            "--FStep", format_number(p.defocus_step),
            "--pipeline_control", out,
        ])

        if p.use_given_ps:
            cmd.append("--use_given_ps")
        if p.use_no_dw:
            cmd.append("--use_noDW")
        if not p.exhaustive_search:
            cmd.append("--fast_search")

        if p.estimate_phase_shift:
            cmd.extend([
                "--do_phaseshift",
                "--phase_min", format_number(p.phase_min),
                "--phase_max", format_number(p.phase_max),
                "--phase_step", format_number(p.phase_step),
            ])

        self.add_gpu_flags(cmd, mode)
        self.add_thumbnail_flags(cmd)
        self.add_additional_arguments(cmd)
        return self.to_spec(cmd)
