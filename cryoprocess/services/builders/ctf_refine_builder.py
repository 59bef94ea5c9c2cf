# cryoprocess/services/builders/ctf_refine_builder.py
import logging

from cryoprocess.services.builders.base_builder import BaseJobBuilder
from cryoprocess.services.configs.starfile_service import StarfileService
from cryoprocess.services.models_base import ExecutionMode, JobType, ValidationResult
from cryoprocess.services.param_helper import format_number
from cryoprocess.services.parameter_models import CtfRefineParams

logger = logging.getLogger(__name__)

MASK_LABEL = "rlnMaskName"


class CtfRefineBuilder(BaseJobBuilder):
    """
    relion_ctf_refine: per-particle defocus, magnification, beam tilt and
    higher-order aberrations. CPU only.

    Needs a PostProcess run made with a solvent mask; without one the
    post-process STAR file has no rlnMaskName and RELION fails late with
    an unrelated-looking half-map error.
    """

    JOB_TYPE = JobType.CTF_REFINE
    STAGE_NAME = "CtfRefine"
    PARAMS_CLASS = CtfRefineParams
    INPUT_FIELDS = ("particlesStar", "postProcessStar", "postprocessStar")

    params: CtfRefineParams

    def __init__(self, data, project_path, config=None, starfile_service=None):
        super().__init__(data, project_path, config)
        self.starfile_service = starfile_service or StarfileService()

    @property
    def supports_gpu(self) -> bool:
        return False

    def _validate(self) -> ValidationResult:
        p = self.params
        result = self.validate_file_exists(p.particles_star, "Input particles STAR file")
        if not result.valid:
            return result

        if not p.post_process_star:
            return ValidationResult.fail("Post-process STAR file is required for FSC-weighting")
        result = self.validate_file_exists(p.post_process_star, "Post-process STAR file")
        if not result.valid:
            return result

        result = self._check_solvent_mask()
        if not result.valid:
            return result

        if not p.any_refinement:
            return ValidationResult.fail(
                "At least one refinement mode must be enabled "
                "(magnification, defocus, beam tilt, or aberrations)"
            )
        return ValidationResult.ok()

    def _check_solvent_mask(self) -> ValidationResult:
        path = self.resolve_input_path(self.params.post_process_star)
        try:
            has_mask = self.starfile_service.has_label(path, MASK_LABEL)
        except Exception as e:
            logger.warning("[%s] Could not read post-process STAR file %s: %s", self.STAGE_NAME, path, e)
            return ValidationResult.fail(f"Post-process STAR file could not be read: {self.params.post_process_star}")

        if not has_mask:
            return ValidationResult.fail(
                "The PostProcess job was run without a solvent mask. CTF Refinement requires a "
                "masked PostProcess run - please re-run PostProcess with a solvent mask first."
            )
        return ValidationResult.ok()

    def _build(self, output_dir, job_name, mode: ExecutionMode):
        p = self.params
        out = self.output_token(output_dir)
        k_min = format_number(p.min_resolution_fits)

        cmd = self.build_mpi_command("relion_ctf_refine", mode.mpi_procs, False)
        cmd.extend([
            "--i", self.command_path(p.particles_star),
            "--o", out,
            "--f", self.command_path(p.post_process_star),
            "--j", str(p.threads),
            "--pipeline_control", out,
        ])

        if p.estimate_magnification:
            cmd.extend(["--fit_aniso", "--kmin_mag", k_min])

        if p.fit_ctf_parameters:
            cmd.extend([
                "--fit_defocus",
                "--kmin_defocus", k_min,
                "--fit_mode", p.fit_mode_code,
            ])

        if p.estimate_beamtilt:
            cmd.extend(["--fit_beamtilt", "--kmin_tilt", k_min])
            if p.estimate_trefoil:
                cmd.extend(["--odd_aberr_max_n", "3"])
        elif p.estimate_trefoil:
            logger.warning("[%s] Trefoil requested without beam tilt estimation, ignoring", self.STAGE_NAME)

        if p.fit_aberrations:
            cmd.append("--fit_aberr")

        self.add_additional_arguments(cmd)
        return self.to_spec(cmd)
