import pytest

from cryoprocess.services.builders.multibody_builder import MultiBodyBuilder
from cryoprocess.services.models_base import AND_TOKEN, CommandChain, CommandSpec, JobType


@pytest.fixture
def multibody(build, valid_data):
    def _multibody(**params):
        return build(MultiBodyBuilder, valid_data(JobType.MULTIBODY, **params), output_dir="MultiBody/job016")
    return _multibody


def test_single_command_without_flexibility(multibody):
    command = multibody()
    assert isinstance(command, CommandSpec)
    assert command.binary == "relion_refine"
    assert command.flag_value("--continue") == "Refine3D/job010/run_it025_optimiser.star"
    assert command.flag_value("--o") == "MultiBody/job016/run"
    assert command.flag_value("--multibody_masks") == "MultiBody/bodies.star"
    assert command.flag_value("--pipeline_control") == "MultiBody/job016/"
    assert "--reconstruct_subtracted_bodies" in command
    assert "--solvent_correct_fsc" in command
    assert command.flag_value("--pad") == "2"
    assert command.flag_value("--offset_range") == "3"
    assert command.flag_value("--offset_step") == "1.5"


def test_never_a_fresh_refinement(multibody):
    command = multibody(inputStarFile="Extract/job003/particles.star")
    for flag in ("--i", "--auto_refine", "--split_random_halves", "--ref"):
        assert flag not in command


def test_always_a_continuation(project, config, valid_data):
    assert MultiBodyBuilder(valid_data(JobType.MULTIBODY), project, config).execution_mode().continuation


@pytest.mark.parametrize("sampling, order", [(None, "4"), (3.7, "3"), (0.9, "5")])
def test_healpix_order(multibody, sampling, order):
    params = {} if sampling is None else {"initialAngularSampling": sampling}
    command = multibody(**params)
    assert command.flag_value("--healpix_order") == order
    assert command.flag_value("--auto_local_healpix_order") == "4"


def test_optional_flags(multibody):
    command = multibody(reconstructSubtractedBodies="No", solventCorrectFsc="No", skipPadding="Yes",
                        blushRegularisation="Yes", combineIterations="Yes", useParallelIO="No",
                        preReadAllParticles="Yes", copyParticlesToScratch="/scratch", gpuAcceleration="Yes")
    assert "--reconstruct_subtracted_bodies" not in command
    assert "--solvent_correct_fsc" not in command
    assert command.flag_value("--pad") == "1"
    assert "--blush" in command
    assert "--dont_combine_weights_via_disc" not in command
    assert "--no_parallel_disc_io" in command
    assert "--preread_images" in command
    assert command.flag_value("--scratch_dir") == "/scratch"
    assert command.flag_value("--gpu") == "0"


def test_flexibility_analysis_is_chained(multibody):
    chain = multibody(runFlexibility="Yes", additionalArguments="--maxsig 100")
    assert isinstance(chain, CommandChain)
    assert len(chain) == 2

    refine, analyse = chain
    assert refine.binary == "relion_refine"
    assert analyse.binary == "relion_flex_analyse"
    assert chain.tokens.count(AND_TOKEN) == 1
    assert " && relion_flex_analyse " in chain.render()

    assert "--PCA_orient" in analyse
    assert "--do_maps" in analyse
    assert analyse.flag_value("--model") == "MultiBody/job016/run_model.star"
    assert analyse.flag_value("--data") == "MultiBody/job016/run_data.star"
    assert analyse.flag_value("--bodies") == "MultiBody/bodies.star"
    assert analyse.flag_value("--o") == "MultiBody/job016/analyse"
    assert analyse.flag_value("--k") == "3"
    assert "--select_eigenvalue" not in analyse

    assert list(refine[-2:]) == ["--maxsig", "100"]
    assert "--maxsig" not in analyse


def test_eigenvalue_selection(multibody):
    chain = multibody(runFlexibility="Yes", numberOfEigenvectorMovies=5, selectParticlesEigenValue="Yes",
                      eigenValue=2, minEigenValue=-15, maxEigenValue=12.5)
    analyse = chain.last
    assert analyse.flag_value("--k") == "5"
    assert analyse.flag_value("--select_eigenvalue") == "2"
    assert analyse.flag_value("--select_eigenvalue_min") == "-15"
    assert analyse.flag_value("--select_eigenvalue_max") == "12.5"


def test_mpi_applies_to_refinement_only(multibody):
    chain = multibody(runFlexibility="Yes", mpiProcs=8)
    assert chain[0].binary == "relion_refine_mpi"
    assert chain[1].binary == "relion_flex_analyse"


def test_validation_messages(validate, valid_data):
    result = validate(MultiBodyBuilder, {"bodyStarFile": "MultiBody/bodies.star"})
    assert result.error.startswith("Refinement STAR file")
    assert "required" in result.error
    assert validate(MultiBodyBuilder, valid_data(JobType.MULTIBODY, bodyStarFile=None)).error == \
        "Body masks STAR file is required"
    missing = valid_data(JobType.MULTIBODY, bodyStarFile="MultiBody/missing.star")
    assert validate(MultiBodyBuilder, missing).error == "Body masks STAR file not found: MultiBody/missing.star"
