# cryoprocess/services/builders/motion_builder.py
import logging

import mrcfile

from cryoprocess.services.builders.base_builder import BaseJobBuilder
from cryoprocess.services.configs.starfile_service import StarfileService
from cryoprocess.services.models_base import ExecutionMode, JobType, ValidationResult
from cryoprocess.services.param_helper import format_number
from cryoprocess.services.parameter_models import MotionCorrParams

logger = logging.getLogger(__name__)

MOVIE_LABEL = "rlnMicrographMovieName"


class MotionCorrectionBuilder(BaseJobBuilder):
    """relion_run_motioncorr, with either RELION's own implementation or MotionCor2."""

    JOB_TYPE = JobType.MOTION_CORRECTION
    STAGE_NAME = "MotionCorr"
    PARAMS_CLASS = MotionCorrParams
    INPUT_FIELDS = ("inputMovies",)

    params: MotionCorrParams

    def __init__(self, data, project_path, config=None, starfile_service=None):
        super().__init__(data, project_path, config)
        self.starfile_service = starfile_service or StarfileService()

    def gpu_requested(self) -> bool:
        # only MotionCor2 runs on the GPU
        return not self.params.use_relion_implementation

    def _validate(self) -> ValidationResult:
        if not self.params.input_movies:
            return ValidationResult.fail("Input movies STAR file is required")
        result = self.validate_file_exists(self.params.input_movies, "Input movies STAR file")
        if not result.valid:
            return result
        if self.params.bin_factor > 1:
            return self._check_binned_dimensions()
        return ValidationResult.ok()

    def _check_binned_dimensions(self) -> ValidationResult:
        """
        RELION needs even movie dimensions after binning. Checked on the
        first movie of the input STAR file; movies that cannot be read
        (TIFF, EER, missing files) skip the check.
        """
        bin_factor = self.params.bin_factor
        try:
            movie = self.starfile_service.first_value(self.resolve_input_path(self.params.input_movies), MOVIE_LABEL)
            if not movie:
                logger.warning("[%s] No movie path in input STAR file, skipping bin check", self.STAGE_NAME)
                return ValidationResult.ok()
            with mrcfile.open(str(self.resolve_input_path(movie)), header_only=True, mode="r") as mrc:
                width, height = int(mrc.header.nx), int(mrc.header.ny)
        except Exception as e:
            logger.warning("[%s] Bin check skipped: %s", self.STAGE_NAME, e)
            return ValidationResult.ok()

        binned_x = width / bin_factor
        binned_y = height / bin_factor
        if binned_x % 2 != 0 or binned_y % 2 != 0:
            return ValidationResult.fail(
                f"Movie dimensions {width}x{height} with bin_factor {bin_factor} produce "
                f"{binned_x:g}x{binned_y:g}. RELION requires even dimensions after binning. "
                f"Use bin_factor 1 instead."
            )
        logger.info("[%s] Bin check: OK | %dx%d / %d", self.STAGE_NAME, width, height, bin_factor)
        return ValidationResult.ok()

    def _build(self, output_dir, job_name, mode: ExecutionMode):
        p = self.params
        out = self.output_token(output_dir)

        cmd = self.build_mpi_command("relion_run_motioncorr", mode.mpi_procs, mode.uses_gpu)
        cmd.extend([
            "--i", self.command_path(p.input_movies),
            "--o", out,
            "--first_frame_sum", format_number(p.first_frame),
            "--last_frame_sum", format_number(p.last_frame),
            "--bin_factor", format_number(p.bin_factor),
            "--bfactor", format_number(p.bfactor),
            "--dose_per_frame", format_number(p.dose_per_frame),
            "--preexposure", format_number(p.pre_exposure),
            "--patch_x", format_number(p.patches_x),
            "--patch_y", format_number(p.patches_y),
            "--eer_grouping", format_number(p.eer_grouping),
            "--pipeline_control", out,
        ])

        if p.gain_reference:
            cmd.extend(["--gainref", self.command_path(p.gain_reference)])
            if p.gain_rotation != 0:
                cmd.extend(["--gain_rot", str(p.gain_rotation)])
            if p.gain_flip != 0:
                cmd.extend(["--gain_flip", str(p.gain_flip)])

        self.add_optional_param(cmd, "--defect_file", self.command_path(p.defect_file) if p.defect_file else None)

        # MotionCor2 can write neither float16 nor power spectra
        use_float16 = not mode.uses_gpu and p.float16_output
        if p.float16_output and mode.uses_gpu:
            logger.warning("[%s] float16 output is not available with MotionCor2, ignoring", self.STAGE_NAME)
        if use_float16:
            cmd.append("--float16")

        if p.dose_weighting:
            cmd.append("--dose_weighting")
            if p.save_non_dose_weighted:
                cmd.append("--save_noDW")

        if not mode.uses_gpu and (p.save_power_spectra or use_float16):
            cmd.extend(["--grouping_for_ps", format_number(p.power_spectra_grouping)])

        if p.threads > 1:
            cmd.extend(["--j", str(p.threads)])

        if not mode.uses_gpu:
            cmd.append("--use_own")
        else:
            cmd.append("--use_motioncor2")
            if p.motioncor2_executable:
                cmd.extend(["--motioncor2_exe", p.motioncor2_executable])
            else:
                logger.warning("[%s] No MotionCor2 executable configured", self.STAGE_NAME)
            cmd.extend(["--gpu", p.gpu_ids])
            cmd.extend(p.motioncor2_arguments)

        self.add_thumbnail_flags(cmd)
        self.add_additional_arguments(cmd)
        return self.to_spec(cmd)
