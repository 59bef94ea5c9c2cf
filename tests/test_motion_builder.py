import logging

import mrcfile
import numpy as np
import pytest

from cryoprocess.services.builders.motion_builder import MotionCorrectionBuilder
from cryoprocess.services.configs.config_service import ConfigService
from cryoprocess.services.models_base import JobType


@pytest.fixture
def motion(build, valid_data):
    def _motion(**params):
        return build(MotionCorrectionBuilder, valid_data(JobType.MOTION_CORRECTION, **params),
                     output_dir="MotionCorr/job002")
    return _motion


def test_defaults(motion):
    command = motion()
    assert command.binary == "relion_run_motioncorr"
    assert command.flag_value("--i") == "Import/job001/movies.star"
    assert command.flag_value("--o") == "MotionCorr/job002/"
    assert command.flag_value("--first_frame_sum") == "1"
    assert command.flag_value("--last_frame_sum") == "-1"
    assert command.flag_value("--bfactor") == "150"
    assert command.flag_value("--dose_per_frame") == "1"
    assert command.flag_value("--eer_grouping") == "32"
    assert "--use_own" in command
    assert "--gpu" not in command
    assert "--dose_weighting" not in command
    assert command.flag_value("--thumbnail_size") == "512"


def test_gain_rotation_code_from_label(motion):
    command = motion(gainReferenceImage="/data/gain.mrc", gainRotation="90 degrees (1)")
    assert command.flag_value("--gainref") == "/data/gain.mrc"
    assert command.flag_value("--gain_rot") == "1"


def test_no_rotation_emits_no_flag(motion):
    command = motion(gainReferenceImage="/data/gain.mrc", gainRotation="No rotation (0)",
                     gainFlip="No flipping (0)")
    assert "--gain_rot" not in command
    assert "--gain_flip" not in command


def test_gain_flip_code(motion):
    command = motion(gainReferenceImage="Import/gain.mrc", gainFlip="Flip left to right (2)")
    assert command.flag_value("--gainref") == "Import/gain.mrc"
    assert command.flag_value("--gain_flip") == "2"


def test_gain_options_need_a_gain_file(motion):
    command = motion(gainRotation="180 degrees (2)", gainFlip="Flip upside down (1)")
    assert "--gainref" not in command
    assert "--gain_rot" not in command
    assert "--gain_flip" not in command


def test_defect_file(motion):
    assert motion(defectFile="/data/defects.txt").flag_value("--defect_file") == "/data/defects.txt"
    assert "--defect_file" not in motion()


def test_dose_weighting_with_non_dose_weighted_sums(motion):
    command = motion(doseWeighting="Yes", nonDoseWeighted="Yes")
    assert command.index("--save_noDW") == command.index("--dose_weighting") + 1


def test_non_dose_weighted_needs_dose_weighting(motion):
    assert "--save_noDW" not in motion(nonDoseWeighted="Yes")


def test_float16_implies_power_spectra_grouping(motion):
    command = motion(float16Output="Yes", sumPowerSpectra=8)
    assert "--float16" in command
    assert command.flag_value("--grouping_for_ps") == "8"


def test_power_spectra_grouping_default(motion):
    assert motion(savePowerSpectra="Yes").flag_value("--grouping_for_ps") == "4"
    assert "--grouping_for_ps" not in motion()


def test_threads_flag_only_above_one(motion):
    assert motion(numberOfThreads=12).flag_value("--j") == "12"
    assert "--j" not in motion(numberOfThreads=1)


def test_motioncor2_backend(motion):
    command = motion(useRelionImplementation="No", gpuToUse="0,1", otherMotion="-Iter 10 -Tol 0.5")
    assert "--use_own" not in command
    assert "--use_motioncor2" in command
    assert command.flag_value("--motioncor2_exe") == "/opt/motioncor2/MotionCor2_1.6.4"
    assert command.flag_value("--gpu") == "0,1"
    gpu_at = command.index("--gpu")
    assert list(command[gpu_at + 2:gpu_at + 6]) == ["-Iter", "10", "-Tol", "0.5"]


def test_motioncor2_executable_from_form(motion):
    command = motion(useRelionImplementation="No", motioncor2Executable="/sw/MotionCor2_1.4.0")
    assert command.flag_value("--motioncor2_exe") == "/sw/MotionCor2_1.4.0"


def test_motioncor2_drops_float16(motion, caplog):
    with caplog.at_level(logging.WARNING):
        command = motion(useRelionImplementation="No", float16Output="Yes", savePowerSpectra="Yes")
    assert "--float16" not in command
    assert "--grouping_for_ps" not in command
    assert "float16" in caplog.text


def test_own_implementation_ignores_gpu_request(motion):
    command = motion(gpuAcceleration="Yes", gpuToUse="0")
    assert "--gpu" not in command
    assert "--use_own" in command


def test_thumbnails_can_be_disabled(project, write_config, valid_data):
    config = ConfigService(write_config("thumbnails:\n  enabled: false\n", name="nothumbs.yaml"))
    builder = MotionCorrectionBuilder(valid_data(JobType.MOTION_CORRECTION), project, config)
    assert builder.validate()
    assert "--do_thumbnails" not in builder.build_command("MotionCorr/job002", "job002")


def test_validation_messages(validate):
    assert validate(MotionCorrectionBuilder, {}).error == "Input movies STAR file is required"
    result = validate(MotionCorrectionBuilder, {"inputMovies": "Import/job009/movies.star"})
    assert result.error == "Input movies STAR file not found: Import/job009/movies.star"


MOVIES_STAR = """
data_movies

loop_
_rlnMicrographMovieName #1
_rlnOpticsGroup #2
{movie} 1
"""


@pytest.fixture
def movies(project):
    """Import STAR pointing at one movie of the given size (width x height)."""
    def _movies(name, width=None, height=None):
        movie = project / "Movies" / name
        movie.parent.mkdir(exist_ok=True)
        if width is None:
            movie.write_text("not a movie")
        else:
            with mrcfile.new(str(movie), overwrite=True) as mrc:
                mrc.set_data(np.zeros((2, height, width), dtype=np.float32))
        star = project / "Import" / "job001" / "binned_movies.star"
        star.write_text(MOVIES_STAR.format(movie=f"Movies/{name}"))
        return "Import/job001/binned_movies.star"
    return _movies


def test_binning_to_odd_dimensions_is_rejected(validate, movies):
    result = validate(MotionCorrectionBuilder, {"inputMovies": movies("odd.mrc", 12, 10), "binningFactor": 2})
    assert not result.valid
    assert "12x10 with bin_factor 2 produce 6x5" in result.error


def test_binning_to_even_dimensions_passes(validate, movies):
    assert validate(MotionCorrectionBuilder, {"inputMovies": movies("even.mrc", 16, 12), "binningFactor": 2}).valid


def test_unreadable_movie_skips_bin_check(validate, movies):
    assert validate(MotionCorrectionBuilder, {"inputMovies": movies("movie.tif"), "binningFactor": 2}).valid


def test_no_bin_check_without_binning(validate, movies):
    assert validate(MotionCorrectionBuilder, {"inputMovies": movies("odd.mrc", 12, 10)}).valid
