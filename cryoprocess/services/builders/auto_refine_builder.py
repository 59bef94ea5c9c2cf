# cryoprocess/services/builders/auto_refine_builder.py
import logging

from cryoprocess.services.builders.base_builder import BaseJobBuilder
from cryoprocess.services.models_base import ExecutionMode, JobType, ValidationResult
from cryoprocess.services.param_helper import format_number, healpix_order_from_sampling
from cryoprocess.services.parameter_models import AutoRefineParams

logger = logging.getLogger(__name__)

# one leader plus one worker per half set
MIN_SPLIT_HALVES_MPI = 3


class AutoRefineBuilder(BaseJobBuilder):
    """Gold-standard 3D auto-refinement (relion_refine --auto_refine --split_random_halves)."""

    JOB_TYPE = JobType.AUTO_REFINE
    STAGE_NAME = "AutoRefine"
    PARAMS_CLASS = AutoRefineParams
    INPUT_FIELDS = ("inputStarFile", "referenceMap", "reference", "referenceMask")

    params: AutoRefineParams

    def effective_mpi_procs(self) -> int:
        requested = self.params.mpi_procs
        if 1 < requested < MIN_SPLIT_HALVES_MPI:
            logger.warning("[%s] MPI procs %d < %d, raising to %d for split_random_halves",
                           self.STAGE_NAME, requested, MIN_SPLIT_HALVES_MPI, MIN_SPLIT_HALVES_MPI)
            return MIN_SPLIT_HALVES_MPI
        return requested

    @property
    def healpix_order(self) -> int:
        return healpix_order_from_sampling(self.params.angular_sampling)

    def _validate(self) -> ValidationResult:
        p = self.params
        if not p.input_star_file:
            return ValidationResult.fail("Input star file is required")
        if not p.reference_map:
            return ValidationResult.fail("Reference map is required")

        result = self.validate_file_exists(p.input_star_file, "Input STAR file")
        if not result.valid:
            return result
        return self.validate_file_exists(p.reference_map, "Reference map")

    def _build(self, output_dir, job_name, mode: ExecutionMode):
        p = self.params
        out = self.output_token(output_dir)

        cmd = self.build_mpi_command("relion_refine", mode.mpi_procs, mode.uses_gpu)
        cmd.extend([
            "--i", self.command_path(p.input_star_file),
            "--o", out,
            "--auto_refine",
            "--split_random_halves",
            "--ref", self.command_path(p.reference_map),
            "--ini_high", format_number(p.initial_low_pass),
            "--sym", p.symmetry,
            "--particle_diameter", str(p.mask_diameter),
            "--healpix_order", str(self.healpix_order),
            "--auto_local_healpix_order", "4",
            "--flatten_solvent",
            "--norm",
            "--scale",
            "--oversampling", "1",
            "--pool", str(p.pooled_particles),
            "--pad", "2",
            "--low_resol_join_halves", "40",
            "--j", str(p.threads),
            "--pipeline_control", out,
        ])

        if not p.resize_reference:
            cmd.append("--trust_ref_size")
        if p.reference_mask:
            cmd.extend(["--solvent_mask", self.command_path(p.reference_mask)])

        cmd.extend([
            "--offset_range", format_number(p.offset_range),
            "--offset_step", format_number(p.offset_step),
        ])
        if p.finer_angular_sampling:
            cmd.extend(["--auto_ignore_angles", "--auto_resol_angles"])
        self.add_optional_param(cmd, "--relax_sym", p.relax_symmetry)

        # a map already on absolute greyscale needs no cross-correlation first iteration
        if not p.absolute_greyscale:
            cmd.append("--firstiter_cc")
        if p.ctf_correction:
            cmd.append("--ctf")
        if p.ignore_ctfs:
            cmd.append("--ctf_intact_first_peak")
        if p.zero_mask:
            cmd.append("--zero_mask")
        if p.use_blush:
            cmd.append("--blush")
        if p.solvent_correct_fsc:
            cmd.append("--solvent_correct_fsc")
        if not p.parallel_disc_io:
            cmd.append("--no_parallel_disc_io")
        if not p.combine_iterations:
            cmd.append("--dont_combine_weights_via_disc")

        self.add_gpu_flags(cmd, mode)

        if p.helical:
            self._add_helical_flags(cmd)

        self.add_additional_arguments(cmd)
        return self.to_spec(cmd)

    def _add_helical_flags(self, cmd):
        p = self.params
        cmd.append("--helix")
        if p.tube_inner_diameter > 0:
            cmd.extend(["--helical_inner_diameter", format_number(p.tube_inner_diameter)])
        cmd.extend([
            "--helical_outer_diameter", format_number(p.tube_outer_diameter),
            "--helical_nr_asu", str(p.nr_asu),
            "--helical_twist_initial", format_number(p.initial_twist),
            "--helical_rise_initial", format_number(p.initial_rise),
            "--helical_z_percentage", format_number(p.central_z_percent / 100.0),
        ])

        # search ranges are given as full widths; RELION takes sigmas
        if p.angular_tilt > 0:
            cmd.extend(["--sigma_tilt", format_number(p.angular_tilt)])
        if p.angular_psi > 0:
            cmd.extend(["--sigma_psi", format_number(p.angular_psi / 3.0)])
        if p.angular_rot > 0:
            cmd.extend(["--sigma_rot", format_number(p.angular_rot / 3.0 / 5.0)])
        if p.local_averaging_range > 0:
            cmd.extend(["--helical_sigma_distance", format_number(p.local_averaging_range / 3.0)])

        if p.keep_tilt_prior_fixed:
            cmd.append("--helical_keep_tilt_prior_fixed")

        if p.helical_symmetry and p.symmetry_local_search:
            cmd.append("--helical_symmetry_search")
            cmd.extend([
                "--helical_twist_min", format_number(p.twist_min),
                "--helical_twist_max", format_number(p.twist_max),
            ])
            if p.twist_step > 0:
                cmd.extend(["--helical_twist_inistep", format_number(p.twist_step)])
            cmd.extend([
                "--helical_rise_min", format_number(p.rise_min),
                "--helical_rise_max", format_number(p.rise_max),
            ])
            if p.rise_step > 0:
                cmd.extend(["--helical_rise_inistep", format_number(p.rise_step)])
