"""
Shared fixtures for the command compiler tests.

Every test gets a throw-away RELION-style project tree under tmp_path and
an explicit configuration file, so nothing depends on the machine the
tests run on.
"""

from pathlib import Path

import pytest

from cryoprocess.services.configs import config_service
from cryoprocess.services.configs.config_service import ConfigService
from cryoprocess.services.models_base import JobType

POSTPROCESS_WITH_MASK = """
# version 30001

data_general

_rlnFinalResolution                    3.210000
_rlnBfactorUsedForSharpening         -85.400000
_rlnMaskName                         MaskCreate/job011/mask.mrc
_rlnRandomiseFrom                     32.400000

# version 30001

data_fsc

loop_
_rlnSpectralIndex #1
_rlnResolution #2
_rlnFourierShellCorrelationCorrected #3
           0     0.000000     1.000000
           1     0.004167     0.999871
           2     0.008333     0.999420
"""

POSTPROCESS_WITHOUT_MASK = """
# version 30001

data_general

_rlnFinalResolution                    3.900000
_rlnBfactorUsedForSharpening         -92.100000
_rlnRandomiseFrom                     32.400000
"""

CONFIG_YAML = """
mpi:
  launcher: mpirun
  launcher_args: ["-np", "{n}"]
  submit_to_queue: true

executables:
  ctffind: /opt/ctffind/ctffind-4.1.14/bin/ctffind
  gctf: /opt/gctf/Gctf_v1.18_sm30-75_cu10.1
  motioncor2: /opt/motioncor2/MotionCor2_1.6.4
  dynamight: relion_python_dynamight

thumbnails:
  enabled: true
  size: 512
  count: -1
"""

PROJECT_FILES = {
    "Import/job001/movies.star": "data_movies\n",
    "MotionCorr/job002/corrected_micrographs.star": "data_micrographs\n",
    "Extract/job003/particles.star": "data_particles\n",
    "Class2D/job004/run_it100_optimiser.star": "data_optimiser_general\n",
    "InitialModel/job005/initial_model.mrc": "",
    "Refine3D/job010/run_it025_optimiser.star": "data_optimiser_general\n",
    "Refine3D/job010/run_data.star": "data_particles\n",
    "Refine3D/job010/run_class001.mrc": "",
    "MaskCreate/job011/mask.mrc": "",
    "MultiBody/bodies.star": "data_\n",
    "PostProcess/job012/postprocess.star": POSTPROCESS_WITH_MASK,
    "PostProcess/job013/postprocess.star": POSTPROCESS_WITHOUT_MASK,
    "Dynamight/job014/forward_deformations/checkpoints/checkpoint_final.pth": "",
}

VALID_DATA = {
    JobType.MOTION_CORRECTION: {"inputMovies": "Import/job001/movies.star"},
    JobType.CTF_ESTIMATION: {"inputStarFile": "MotionCorr/job002/corrected_micrographs.star"},
    JobType.CLASS_2D: {"inputStarFile": "Extract/job003/particles.star"},
    JobType.AUTO_REFINE: {
        "inputStarFile": "Extract/job003/particles.star",
        "referenceMap": "InitialModel/job005/initial_model.mrc",
    },
    JobType.CTF_REFINE: {
        "particlesStar": "Refine3D/job010/run_data.star",
        "postProcessStar": "PostProcess/job012/postprocess.star",
        "ctfParameter": "Yes",
    },
    JobType.MULTIBODY: {
        "refinementStarFile": "Refine3D/job010/run_it025_optimiser.star",
        "bodyStarFile": "MultiBody/bodies.star",
    },
    JobType.DYNAMIGHT: {"micrographs": "Extract/job003/particles.star"},
}


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch):
    """No test may pick up a developer's conf.yaml or a cached singleton."""
    monkeypatch.delenv(config_service.CONFIG_ENV_VAR, raising=False)
    config_service.reset_config_service()
    yield
    config_service.reset_config_service()


@pytest.fixture
def project(tmp_path) -> Path:
    root = tmp_path / "project"
    for relative, content in PROJECT_FILES.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
    return root


@pytest.fixture
def write_config(tmp_path):
    def _write(text: str = CONFIG_YAML, name: str = "conf.yaml") -> Path:
        path = tmp_path / "config" / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text)
        return path
    return _write


@pytest.fixture
def config(write_config) -> ConfigService:
    return ConfigService(write_config())


@pytest.fixture
def valid_data():
    def _valid(job_type: JobType, **overrides):
        data = dict(VALID_DATA[job_type])
        data.update(overrides)
        return data
    return _valid


@pytest.fixture
def build(project, config):
    """Validate (asserting success) and build; returns the command."""
    def _build(builder_class, data, output_dir="Out/job099", job_name="job099", **kwargs):
        builder = builder_class(data, project, config, **kwargs)
        result = builder.validate()
        assert result.valid, result.error
        return builder.build_command(output_dir, job_name)
    return _build


@pytest.fixture
def validate(project, config):
    """Run validate() only; returns the ValidationResult."""
    def _validate(builder_class, data, **kwargs):
        return builder_class(data, project, config, **kwargs).validate()
    return _validate
