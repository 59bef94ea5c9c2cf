import logging

import pytest

from cryoprocess.services.builders.auto_refine_builder import AutoRefineBuilder
from cryoprocess.services.models_base import JobType

HELICAL_ONLY_FLAGS = ("--helix", "--helical_outer_diameter", "--sigma_psi", "--helical_z_percentage")


@pytest.fixture
def refine(build, valid_data):
    def _refine(**params):
        return build(AutoRefineBuilder, valid_data(JobType.AUTO_REFINE, **params), output_dir="Refine3D/job010")
    return _refine


def test_gold_standard_flags(refine):
    command = refine()
    assert command.binary == "relion_refine"
    assert "--auto_refine" in command
    assert "--split_random_halves" in command
    assert command.flag_value("--i") == "Extract/job003/particles.star"
    assert command.flag_value("--ref") == "InitialModel/job005/initial_model.mrc"
    assert command.flag_value("--o") == "Refine3D/job010/"
    assert command.flag_value("--ini_high") == "60"
    assert command.flag_value("--sym") == "C1"
    assert command.flag_value("--particle_diameter") == "200"
    assert command.flag_value("--auto_local_healpix_order") == "4"
    assert command.flag_value("--low_resol_join_halves") == "40"
    assert "--ctf" in command
    assert "--zero_mask" in command
    assert "--firstiter_cc" in command
    assert "--dont_combine_weights_via_disc" in command


@pytest.mark.parametrize("requested, effective", [
    (0, 1),
    (1, 1),
    (2, 3),
    (3, 3),
    (5, 5),
])
def test_split_halves_mpi_minimum(project, config, valid_data, requested, effective):
    builder = AutoRefineBuilder(valid_data(JobType.AUTO_REFINE, mpiProcs=requested), project, config)
    mode = builder.execution_mode()
    assert mode.mpi_procs == effective
    assert mode.is_mpi is (effective > 1)


def test_two_processes_are_raised_to_three(build, valid_data, caplog):
    data = valid_data(JobType.AUTO_REFINE, mpiProcs=2, submitToQueue="No")
    with caplog.at_level(logging.WARNING):
        command = build(AutoRefineBuilder, data)
    assert list(command[:4]) == ["mpirun", "-np", "3", "relion_refine_mpi"]
    assert "raising to 3" in caplog.text


@pytest.mark.parametrize("sampling, order", [
    (30, "0"),
    (15, "1"),
    (7.5, "2"),
    (3.7, "3"),
    (1.8, "4"),
    (0.9, "5"),
    ("3.7 degrees", "3"),
])
def test_healpix_order_from_sampling(refine, sampling, order):
    assert refine(initialAngularSampling=sampling).flag_value("--healpix_order") == order


def test_healpix_order_default(refine):
    assert refine().flag_value("--healpix_order") == "2"
    assert refine(initialAngularSampling="unknown").flag_value("--healpix_order") == "2"


def test_absolute_greyscale_reference_skips_calibration(refine):
    assert "--firstiter_cc" not in refine(referenceMapAbsolute="Yes")


def test_optional_inputs_and_options(refine):
    command = refine(referenceMask="MaskCreate/job011/mask.mrc", resizeReference="No", symmetry="D7",
                     relaxSymmetry="C7", finerAngularSampling="Yes", useBlushRegularisation="Yes",
                     useSolventFlattenedFscs="Yes", combineIterations="Yes", useParallelIO="No")
    assert command.flag_value("--solvent_mask") == "MaskCreate/job011/mask.mrc"
    assert "--trust_ref_size" in command
    assert command.flag_value("--sym") == "D7"
    assert command.flag_value("--relax_sym") == "C7"
    assert "--auto_ignore_angles" in command
    assert "--auto_resol_angles" in command
    assert "--blush" in command
    assert "--solvent_correct_fsc" in command
    assert "--no_parallel_disc_io" in command
    assert "--dont_combine_weights_via_disc" not in command


def test_gpu_flag(refine):
    assert refine(gpuAcceleration="Yes", gpuToUse="0:1").flag_value("--gpu") == "0:1"
    assert "--gpu" not in refine(gpuAcceleration="No")


def test_helical_group_converts_units(refine):
    command = refine(helicalReconstruction="Yes", tubeDiameter1=-1, tubeDiameter2=200,
                     numberOfUniqueAsymmetrical=3, initialTwist=-1.2, rise=4.75, centralZlength=25,
                     angularTilt=15, angularPsi=9, angularRot=15, rangeFactorOfLocal=6)
    assert "--helix" in command
    assert "--helical_inner_diameter" not in command
    assert command.flag_value("--helical_outer_diameter") == "200"
    assert command.flag_value("--helical_nr_asu") == "3"
    assert command.flag_value("--helical_twist_initial") == "-1.2"
    assert command.flag_value("--helical_rise_initial") == "4.75"
    assert command.flag_value("--helical_z_percentage") == "0.25"
    assert command.flag_value("--sigma_tilt") == "15"
    assert command.flag_value("--sigma_psi") == "3"
    assert command.flag_value("--sigma_rot") == "1"
    assert command.flag_value("--helical_sigma_distance") == "2"
    assert "--helical_keep_tilt_prior_fixed" in command
    assert "--helical_symmetry_search" not in command


def test_helical_symmetry_search(refine):
    command = refine(helicalReconstruction="Yes", tubeDiameter1=50, tubeDiameter2=200, localSearches="Yes",
                     twistSearch1=-1.5, twistSearch2=-0.5, twistSearch3=0.1, riseSearchMin=4, riseSearchMax=5)
    assert command.flag_value("--helical_inner_diameter") == "50"
    assert "--helical_symmetry_search" in command
    assert command.flag_value("--helical_twist_min") == "-1.5"
    assert command.flag_value("--helical_twist_max") == "-0.5"
    assert command.flag_value("--helical_twist_inistep") == "0.1"
    assert command.flag_value("--helical_rise_min") == "4"
    assert command.flag_value("--helical_rise_max") == "5"
    assert "--helical_rise_inistep" not in command


def test_non_helical_job_has_no_helical_flags(refine):
    command = refine()
    for flag in HELICAL_ONLY_FLAGS:
        assert flag not in command


def test_validation_messages(validate, valid_data):
    data = valid_data(JobType.AUTO_REFINE)
    assert validate(AutoRefineBuilder, {"referenceMap": data["referenceMap"]}).error == "Input star file is required"
    assert validate(AutoRefineBuilder, {"inputStarFile": data["inputStarFile"]}).error == "Reference map is required"
    missing = valid_data(JobType.AUTO_REFINE, referenceMap="InitialModel/job099/initial_model.mrc")
    assert validate(AutoRefineBuilder, missing).error == \
        "Reference map not found: InitialModel/job099/initial_model.mrc"
