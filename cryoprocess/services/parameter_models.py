# cryoprocess/services/parameter_models.py
"""
Typed per-job parameters.

Each model is built once from the raw form data by `from_job_parameters`,
which is the only place alias lists are consulted. Builders read typed
fields from here and never touch the raw mapping again.
"""

from __future__ import annotations

from typing import Any, ClassVar, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

from cryoprocess.services.configs.config_service import ConfigService
from cryoprocess.services.models_base import FitMode, JobType
from cryoprocess.services.param_helper import (
    extract_option_code,
    get_additional_arguments,
    get_bool_param,
    get_continue_from,
    get_float_param,
    get_gpu_ids,
    get_input_star_file,
    get_int_param,
    get_iterations,
    get_mask_diameter,
    get_mpi_procs,
    get_number_of_classes,
    get_param,
    get_pooled_particles,
    get_reference,
    get_scratch_dir,
    get_str_param,
    get_submit_to_queue,
    get_symmetry,
    get_threads,
    is_gpu_enabled,
)

GAIN_ROTATION_KEYWORDS = {"90": 1, "180": 2, "270": 3}
GAIN_FLIP_KEYWORDS = {"upside": 1, "horizontal": 1, "left": 2, "vertical": 2}


class AbstractJobParams(BaseModel):
    """Fields every stage shares: parallelism, GPU selection, passthrough args."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    JOB_TYPE: ClassVar[JobType]

    mpi_procs            : int       = Field(default=1, ge=1)
    threads              : int       = Field(default=1, ge=1)
    gpu_enabled          : bool      = False
    gpu_ids              : str       = "0"
    submit_to_queue      : bool      = True
    additional_arguments : List[str] = Field(default_factory=list)

    @classmethod
    def common_values(cls, data: Mapping[str, Any], config: ConfigService) -> Dict[str, Any]:
        return dict(
            mpi_procs            = get_mpi_procs(data),
            threads              = get_threads(data),
            gpu_enabled          = is_gpu_enabled(data),
            gpu_ids              = get_gpu_ids(data),
            submit_to_queue      = get_submit_to_queue(data, config.mpi.submit_to_queue),
            additional_arguments = get_additional_arguments(data),
        )

    @classmethod
    def from_job_parameters(cls, data: Mapping[str, Any], config: ConfigService) -> "AbstractJobParams":
        raise NotImplementedError


class MotionCorrParams(AbstractJobParams):
    JOB_TYPE: ClassVar[JobType] = JobType.MOTION_CORRECTION

    input_movies              : Optional[str] = None
    use_relion_implementation : bool          = True
    first_frame               : int           = 1
    last_frame                : int           = -1
    bin_factor                : int           = 1
    bfactor                   : int           = 150
    dose_per_frame            : float         = 1.0
    pre_exposure              : float         = 0.0
    patches_x                 : int           = 1
    patches_y                 : int           = 1
    eer_grouping              : int           = 32
    gain_reference            : Optional[str] = None
    gain_rotation             : int           = 0
    gain_flip                 : int           = 0
    defect_file               : Optional[str] = None
    float16_output            : bool          = False
    dose_weighting            : bool          = False
    save_non_dose_weighted    : bool          = False
    save_power_spectra        : bool          = False
    power_spectra_grouping    : int           = 4
    motioncor2_executable     : Optional[str] = None
    motioncor2_arguments      : List[str]     = Field(default_factory=list)

    @classmethod
    def from_job_parameters(cls, data, config):
        other = get_str_param(data, ["otherMotion"])
        return cls(
            **cls.common_values(data, config),
            input_movies              = get_str_param(data, ["inputMovies"]),
            use_relion_implementation = get_bool_param(data, ["useRelionImplementation"], True),
            first_frame               = get_int_param(data, ["firstFrame"], 1),
            last_frame                = get_int_param(data, ["lastFrame"], -1),
            bin_factor                = get_int_param(data, ["binningFactor"], 1),
            bfactor                   = get_int_param(data, ["bfactor"], 150),
            dose_per_frame            = get_float_param(data, ["dosePerFrame"], 1.0),
            pre_exposure              = get_float_param(data, ["preExposure"], 0.0),
            patches_x                 = get_int_param(data, ["patchesX"], 1),
            patches_y                 = get_int_param(data, ["patchesY"], 1),
            eer_grouping              = get_int_param(data, ["eerFractionation"], 32),
            gain_reference            = get_str_param(data, ["gainReferenceImage"]),
            gain_rotation             = extract_option_code(get_param(data, ["gainRotation"]), 0, GAIN_ROTATION_KEYWORDS),
            gain_flip                 = extract_option_code(get_param(data, ["gainFlip"]), 0, GAIN_FLIP_KEYWORDS),
            defect_file               = get_str_param(data, ["defectFile"]),
            float16_output            = get_bool_param(data, ["float16Output"]),
            dose_weighting            = get_bool_param(data, ["doseWeighting"]),
            save_non_dose_weighted    = get_bool_param(data, ["nonDoseWeighted"]),
            save_power_spectra        = get_bool_param(data, ["savePowerSpectra"]),
            power_spectra_grouping    = get_int_param(data, ["sumPowerSpectra", "powerSpectraEvery"], 4),
            motioncor2_executable     = get_str_param(data, ["motioncor2Executable"], config.get_executable("motioncor2")),
            motioncor2_arguments      = other.split() if other else [],
        )


class CtfFindParams(AbstractJobParams):
    JOB_TYPE: ClassVar[JobType] = JobType.CTF_ESTIMATION

    input_star_file     : Optional[str] = None
    use_gctf            : bool          = False
    gctf_executable     : str           = "gctf"
    ctffind_executable  : str           = "ctffind"
    astigmatism         : int           = 100
    ctf_window          : int           = -1
    box_size            : int           = 512
    min_resolution      : float         = 30.0
    max_resolution      : float         = 5.0
    min_defocus         : float         = 5000.0
    max_defocus         : float         = 50000.0
    defocus_step        : float         = 500.0
    use_given_ps        : bool          = False
    use_no_dw           : bool          = False
    exhaustive_search   : bool          = True
    estimate_phase_shift: bool          = False
    phase_min           : float         = 0.0
    phase_max           : float         = 180.0
    phase_step          : float         = 10.0

    @classmethod
    def from_job_parameters(cls, data, config):
        return cls(
            **cls.common_values(data, config),
            input_star_file      = get_input_star_file(data),
            use_gctf             = get_bool_param(data, ["useGctf", "use_gctf"]),
            gctf_executable      = get_str_param(data, ["gctfExecutable", "gctf_exe"], config.get_executable("gctf")),
            ctffind_executable   = get_str_param(data, ["ctfFindExecutable", "ctffindExecutable", "ctffind_exe"],
                                                 config.get_executable("ctffind")),
            astigmatism          = get_int_param(data, ["astigmatism", "dAst"], 100),
            ctf_window           = get_int_param(data, ["ctfWindowSize"], -1),
            box_size             = get_int_param(data, ["fftBoxSize"], 512),
            min_resolution       = get_float_param(data, ["minResolution"], 30.0),
            max_resolution       = get_float_param(data, ["maxResolution"], 5.0),
            min_defocus          = get_float_param(data, ["minDefocus"], 5000.0),
            max_defocus          = get_float_param(data, ["maxDefocus"], 50000.0),
            defocus_step         = get_float_param(data, ["defocusStepSize"], 500.0),
            use_given_ps         = get_bool_param(data, ["usePowerSpectraFromMotionCorr"]),
            use_no_dw            = get_bool_param(data, ["useMicrographWithoutDoseWeighting"]),
            exhaustive_search    = get_bool_param(data, ["useExhaustiveSearch"], True),
            estimate_phase_shift = get_bool_param(data, ["estimatePhaseShifts"]),
            phase_min            = get_float_param(data, ["phaseShiftMin"], 0.0),
            phase_max            = get_float_param(data, ["phaseShiftMax"], 180.0),
            phase_step           = get_float_param(data, ["phaseShiftStep"], 10.0),
        )


class Class2DParams(AbstractJobParams):
    JOB_TYPE: ClassVar[JobType] = JobType.CLASS_2D

    input_star_file          : Optional[str]   = None
    continue_from            : Optional[str]   = None
    pooled_particles         : int             = 3
    ctf_correction           : bool            = True
    use_vdam                 : bool            = True
    vdam_mini_batches        : int             = 200
    em_iterations            : int             = 25
    regularisation           : float           = 2.0
    mask_diameter            : int             = 200
    number_of_classes        : int             = 1
    perform_alignment        : bool            = True
    psi_step                 : float           = 6.0
    offset_range             : float           = 5.0
    offset_step              : float           = 1.0
    allow_coarse_sampling    : bool            = False
    ignore_ctfs              : bool            = False
    limit_resolution_e_step  : float           = -1.0
    helical                  : bool            = False
    tube_diameter            : float           = 200.0
    bimodal_psi              : bool            = False
    helical_rise             : float           = 4.75
    restrict_helical_offsets : bool            = False
    preread_images           : bool            = False
    scratch_dir              : Optional[str]   = None
    parallel_disc_io         : bool            = True

    @property
    def iterations(self) -> int:
        """Mini-batches in VDAM mode, EM iterations otherwise."""
        return self.vdam_mini_batches if self.use_vdam else self.em_iterations

    @classmethod
    def from_job_parameters(cls, data, config):
        return cls(
            **cls.common_values(data, config),
            input_star_file          = get_input_star_file(data),
            continue_from            = get_continue_from(data),
            pooled_particles         = get_pooled_particles(data),
            ctf_correction           = get_bool_param(data, ["ctfCorrection"], True),
            use_vdam                 = get_bool_param(data, ["useVDAM"], True),
            vdam_mini_batches        = get_int_param(data, ["vdamMiniBatches", "subset_size"], 200),
            em_iterations            = get_iterations(data, 25),
            regularisation           = get_float_param(data, ["regularisationParameter", "regularisationParam", "tau2_fudge"], 2.0),
            mask_diameter            = get_mask_diameter(data, 200),
            number_of_classes        = get_number_of_classes(data, 1),
            perform_alignment        = get_bool_param(data, ["performImageAlignment"], True),
            psi_step                 = get_float_param(data, ["inPlaneAngularSampling", "psi_step"], 6.0),
            offset_range             = get_float_param(data, ["initialOffsetRange", "offsetSearchRange", "offset_range"], 5.0),
            offset_step              = get_float_param(data, ["initialOffsetStep", "offsetSearchStep", "offset_step"], 1.0),
            allow_coarse_sampling    = get_bool_param(data, ["allowCoarseSampling"]),
            ignore_ctfs              = get_bool_param(data, ["ignoreCTFs", "ctf_intact_first_peak"]),
            limit_resolution_e_step  = get_float_param(data, ["limitResolutionEStep", "strict_highres_exp"], -1.0),
            helical                  = get_bool_param(data, ["classify2DHelical", "helical"]),
            tube_diameter            = get_float_param(data, ["tubeDiameter", "helical_outer_diameter"], 200.0),
            bimodal_psi              = get_bool_param(data, ["doBimodalAngular", "bimodal_psi"]),
            helical_rise             = get_float_param(data, ["helicalRise", "helical_rise"], 4.75),
            restrict_helical_offsets = get_bool_param(data, ["restrictHelicalOffsets"]) or bool(get_param(data, ["helical_offset_step"])),
            preread_images           = get_bool_param(data, ["preReadAllParticles", "preread_images"]),
            scratch_dir              = get_scratch_dir(data),
            parallel_disc_io         = get_bool_param(data, ["useParallelIO", "Useparalleldisc"], True),
        )


class AutoRefineParams(AbstractJobParams):
    JOB_TYPE: ClassVar[JobType] = JobType.AUTO_REFINE

    input_star_file        : Optional[str]   = None
    reference_map          : Optional[str]   = None
    reference_mask         : Optional[str]   = None
    initial_low_pass       : float           = 60.0
    symmetry               : str             = "C1"
    mask_diameter          : int             = 200
    angular_sampling       : Optional[float] = None
    pooled_particles       : int             = 3
    resize_reference       : bool            = True
    offset_range           : float           = 5.0
    offset_step            : float           = 1.0
    finer_angular_sampling : bool            = False
    relax_symmetry         : Optional[str]   = None
    absolute_greyscale     : bool            = False
    ctf_correction         : bool            = True
    ignore_ctfs            : bool            = False
    zero_mask              : bool            = True
    use_blush              : bool            = False
    solvent_correct_fsc    : bool            = False
    parallel_disc_io       : bool            = True
    combine_iterations     : bool            = False

    # helical reconstruction
    helical                : bool            = False
    tube_inner_diameter    : float           = -1.0
    tube_outer_diameter    : float           = -1.0
    nr_asu                 : int             = 1
    initial_twist          : float           = 0.0
    initial_rise           : float           = 0.0
    central_z_percent      : float           = 30.0
    angular_tilt           : float           = 15.0
    angular_psi            : float           = 10.0
    angular_rot            : float           = -1.0
    local_averaging_range  : float           = -1.0
    keep_tilt_prior_fixed  : bool            = True
    helical_symmetry       : bool            = True
    symmetry_local_search  : bool            = False
    twist_min              : float           = 0.0
    twist_max              : float           = 0.0
    twist_step             : float           = 0.0
    rise_min               : float           = 0.0
    rise_max               : float           = 0.0
    rise_step              : float           = 0.0

    @classmethod
    def from_job_parameters(cls, data, config):
        return cls(
            **cls.common_values(data, config),
            input_star_file        = get_input_star_file(data),
            reference_map          = get_reference(data),
            reference_mask         = get_str_param(data, ["referenceMask", "solvent_mask"]),
            initial_low_pass       = get_float_param(data, ["initialLowPassFilter", "lowPassFilter", "ini_high"], 60.0),
            symmetry               = get_symmetry(data),
            mask_diameter          = get_mask_diameter(data, 200),
            angular_sampling       = get_float_param(data, ["initialAngularSampling"], None),
            pooled_particles       = get_pooled_particles(data),
            resize_reference       = get_bool_param(data, ["resizeReference"], True),
            offset_range           = get_float_param(data, ["initialOffsetRange", "offSetRange", "offset_range"], 5.0),
            offset_step            = get_float_param(data, ["initialOffsetStep", "offSetStep", "offset_step"], 1.0),
            finer_angular_sampling = get_bool_param(data, ["finerAngularSampling"]),
            relax_symmetry         = get_str_param(data, ["relaxSymmetry", "RelaxSymmetry"]),
            absolute_greyscale     = get_bool_param(data, ["referenceMapAbsolute", "absoluteGreyscale"]),
            ctf_correction         = get_bool_param(data, ["ctfCorrection"], True),
            ignore_ctfs            = get_bool_param(data, ["ignoreCTFs", "igonreCtf", "ctf_intact_first_peak"]),
            zero_mask              = get_bool_param(data, ["maskIndividualparticles", "maskParticlesWithZeros"], True),
            use_blush              = get_bool_param(data, ["useBlushRegularisation"]),
            solvent_correct_fsc    = get_bool_param(data, ["useSolventFlattenedFscs", "solvent_correct_fsc"]),
            parallel_disc_io       = get_bool_param(data, ["useParallelIO", "Useparalleldisc"], True),
            combine_iterations     = get_bool_param(data, ["combineIterations"]),
            helical                = get_bool_param(data, ["helicalReconstruction", "helix"]),
            tube_inner_diameter    = get_float_param(data, ["tubeDiameter1", "innerDiameter"], -1.0),
            tube_outer_diameter    = get_float_param(data, ["tubeDiameter2", "outerDiameter"], -1.0),
            nr_asu                 = get_int_param(data, ["numberOfUniqueAsymmetrical", "uniqueAsymmetricalUnits"], 1),
            initial_twist          = get_float_param(data, ["initialTwist"], 0.0),
            initial_rise           = get_float_param(data, ["rise", "initialRise"], 0.0),
            central_z_percent      = get_float_param(data, ["centralZlength"], 30.0),
            angular_tilt           = get_float_param(data, ["angularTilt"], 15.0),
            angular_psi            = get_float_param(data, ["angularPsi"], 10.0),
            angular_rot            = get_float_param(data, ["angularRot"], -1.0),
            local_averaging_range  = get_float_param(data, ["rangeFactorOfLocal", "localAveraging"], -1.0),
            keep_tilt_prior_fixed  = get_bool_param(data, ["keepTiltPriorFixed", "tiltPrior"], True),
            helical_symmetry       = get_bool_param(data, ["helicalSymmetry"], True),
            symmetry_local_search  = get_bool_param(data, ["localSearches", "localSearchSymmetry"]),
            twist_min              = get_float_param(data, ["twistSearch1", "twistMin"], 0.0),
            twist_max              = get_float_param(data, ["twistSearch2", "twistMax"], 0.0),
            twist_step             = get_float_param(data, ["twistSearch3", "twistStep"], 0.0),
            rise_min               = get_float_param(data, ["riseSearchMin", "riseMin"], 0.0),
            rise_max               = get_float_param(data, ["riseSearchMax", "riseMax"], 0.0),
            rise_step              = get_float_param(data, ["riseSearchStep", "riseStep"], 0.0),
        )


class CtfRefineParams(AbstractJobParams):
    JOB_TYPE: ClassVar[JobType] = JobType.CTF_REFINE

    particles_star        : Optional[str] = None
    post_process_star     : Optional[str] = None
    estimate_magnification: bool          = False
    fit_ctf_parameters    : bool          = False
    estimate_beamtilt     : bool          = False
    estimate_trefoil      : bool          = False
    fit_aberrations       : bool          = False
    min_resolution_fits   : float         = 30.0
    fit_phase_shift       : FitMode       = FitMode.OFF
    fit_defocus           : FitMode       = FitMode.OFF
    fit_astigmatism       : FitMode       = FitMode.OFF
    fit_bfactor           : FitMode       = FitMode.OFF

    @property
    def any_refinement(self) -> bool:
        return any((self.estimate_magnification, self.fit_ctf_parameters,
                    self.estimate_beamtilt, self.fit_aberrations))

    @property
    def fit_mode_code(self) -> str:
        """relion_ctf_refine --fit_mode: phase, defocus, astigmatism, unused 'f', B-factor."""
        return "".join((
            self.fit_phase_shift.value,
            self.fit_defocus.value,
            self.fit_astigmatism.value,
            FitMode.OFF.value,
            self.fit_bfactor.value,
        ))

    @classmethod
    def from_job_parameters(cls, data, config):
        return cls(
            **cls.common_values(data, config),
            particles_star         = get_str_param(data, ["particlesStar", "particlesStarFile"]),
            post_process_star      = get_str_param(data, ["postProcessStar", "postprocessStar"]),
            estimate_magnification = get_bool_param(data, ["estimateMagnification"]),
            fit_ctf_parameters     = get_bool_param(data, ["ctfParameter"]),
            estimate_beamtilt      = get_bool_param(data, ["estimateBeamtilt"]),
            estimate_trefoil       = get_bool_param(data, ["estimateTreFoil", "estimateTrefoil"]),
            fit_aberrations        = get_bool_param(data, ["aberrations"]),
            min_resolution_fits    = get_float_param(data, ["minResolutionFits"], 30.0),
            fit_phase_shift        = FitMode.from_label(get_param(data, ["fitPhaseShift"])),
            fit_defocus            = FitMode.from_label(get_param(data, ["fitDefocus"])),
            fit_astigmatism        = FitMode.from_label(get_param(data, ["fitAstigmatism"])),
            fit_bfactor            = FitMode.from_label(get_param(data, ["fitBFactor"])),
        )


class MultiBodyParams(AbstractJobParams):
    JOB_TYPE: ClassVar[JobType] = JobType.MULTIBODY

    refinement_star          : Optional[str]   = None
    body_star                : Optional[str]   = None
    reconstruct_subtracted   : bool            = True
    solvent_correct_fsc      : bool            = True
    use_blush                : bool            = False
    angular_sampling         : Optional[float] = None
    offset_range             : float           = 3.0
    offset_step              : float           = 1.5
    skip_padding             : bool            = False
    pooled_particles         : int             = 3
    combine_iterations       : bool            = False
    parallel_disc_io         : bool            = True
    preread_images           : bool            = False
    scratch_dir              : Optional[str]   = None

    # flexibility analysis
    run_flexibility          : bool            = False
    eigenvector_movies       : int             = 3
    select_by_eigenvalue     : bool            = False
    eigenvalue_index         : int             = 1
    eigenvalue_min           : float           = -999.0
    eigenvalue_max           : float           = 999.0

    @classmethod
    def from_job_parameters(cls, data, config):
        return cls(
            **cls.common_values(data, config),
            refinement_star        = get_str_param(data, ["refinementStarFile", "refinement_star_file"]),
            body_star              = get_str_param(data, ["bodyStarFile", "multibodyMasks", "body_star_file"]),
            reconstruct_subtracted = get_bool_param(data, ["reconstructSubtractedBodies", "reconstructSubtracted"], True),
            solvent_correct_fsc    = get_bool_param(data, ["solventCorrectFsc", "useSolventFlattenedFscs"], True),
            use_blush              = get_bool_param(data, ["blushRegularisation", "useBlushRegularisation"]),
            angular_sampling       = get_float_param(data, ["initialAngularSampling"], None),
            offset_range           = get_float_param(data, ["initialOffsetRange", "offsetSearchRange"], 3.0),
            offset_step            = get_float_param(data, ["initialOffsetStep", "offsetStep"], 1.5),
            skip_padding           = get_bool_param(data, ["skipPadding"]),
            pooled_particles       = get_pooled_particles(data),
            combine_iterations     = get_bool_param(data, ["combineIterations"]),
            parallel_disc_io       = get_bool_param(data, ["useParallelIO", "Useparalleldisc"], True),
            preread_images         = get_bool_param(data, ["preReadAllParticles", "preread_images"]),
            scratch_dir            = get_scratch_dir(data),
            run_flexibility        = get_bool_param(data, ["runFlexibility"]),
            eigenvector_movies     = get_int_param(data, ["numberOfEigenvectorMovies"], 3),
            select_by_eigenvalue   = get_bool_param(data, ["selectParticlesEigenValue"]),
            eigenvalue_index       = get_int_param(data, ["eigenValue"], 1),
            eigenvalue_min         = get_float_param(data, ["minEigenValue"], -999.0),
            eigenvalue_max         = get_float_param(data, ["maxEigenValue"], 999.0),
        )


class DynamightParams(AbstractJobParams):
    JOB_TYPE: ClassVar[JobType] = JobType.DYNAMIGHT

    executable              : str             = "relion_python_dynamight"
    input_file              : Optional[str]   = None
    checkpoint_file         : Optional[str]   = None
    consensus_map           : Optional[str]   = None
    gpu_device              : int             = 0
    do_visualization        : bool            = False
    inverse_deformation     : bool            = False
    deformed_backprojection : bool            = False
    half_set                : int             = 1
    num_epochs              : int             = 50
    store_deformations      : bool            = False
    backproj_batch_size     : int             = 1
    num_gaussians           : int             = 10000
    initial_threshold       : Optional[str]   = None
    regularization_factor   : float           = 1.0
    preload_images          : bool            = False

    @property
    def has_tasks(self) -> bool:
        return self.do_visualization or self.inverse_deformation or self.deformed_backprojection

    @classmethod
    def from_job_parameters(cls, data, config):
        return cls(
            **cls.common_values(data, config),
            executable              = get_str_param(data, ["dynamightExecutable", "dynamight_executable"],
                                                    config.get_executable("dynamight")),
            input_file              = get_str_param(data, ["micrographs", "input_file", "inputFile"]),
            checkpoint_file         = get_str_param(data, ["checkpointFile", "checkpoint_file"]),
            consensus_map           = get_str_param(data, ["consensusMap", "consensus_map", "initial_model"]),
            gpu_device              = get_int_param(data, ["gpuToUse", "gpu_to_use"], 0),
            do_visualization        = get_bool_param(data, ["doVisulization", "doVisualization", "do_visualization"]),
            inverse_deformation     = get_bool_param(data, ["inverseDeformation", "inverse_deformation"]),
            deformed_backprojection = get_bool_param(data, ["deformedBackProjection", "deformed_back_projection"]),
            half_set                = get_int_param(data, ["halfSetToVisualize", "half_set_to_visualize"], 1),
            num_epochs              = get_int_param(data, ["numEpochs", "num_epochs", "n_epochs"], 50),
            store_deformations      = get_bool_param(data, ["storeDeformations", "store_deformations", "save_deformations"]),
            backproj_batch_size     = get_int_param(data, ["backprojBatchsize", "backproj_batchsize",
                                                          "backprojection_batch_size"], 1),
            num_gaussians           = get_int_param(data, ["numGaussians", "num_gaussians", "n_gaussians"], 10000),
            initial_threshold       = get_str_param(data, ["initialMapThreshold", "initial_map_threshold"]),
            regularization_factor   = get_float_param(data, ["regularizationFactor", "regularization_factor"], 1.0),
            preload_images          = get_bool_param(data, ["preloadImages", "preload_images"]),
        )
