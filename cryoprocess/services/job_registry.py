# cryoprocess/services/job_registry.py
"""
Entry point used by the surrounding service.

    result = compile_job("class2d", form_data, project_path, "Class2D/Job007", "Job007")
    if result.ok:
        submit(result.command.render())
    else:
        report(result.validation.error)
"""

import logging
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Type, Union

from cryoprocess.services.builders.auto_refine_builder import AutoRefineBuilder
from cryoprocess.services.builders.base_builder import BaseJobBuilder
from cryoprocess.services.builders.class2d_builder import Class2DBuilder
from cryoprocess.services.builders.ctf_builder import CtfEstimationBuilder
from cryoprocess.services.builders.ctf_refine_builder import CtfRefineBuilder
from cryoprocess.services.builders.dynamight_builder import DynamightBuilder
from cryoprocess.services.builders.motion_builder import MotionCorrectionBuilder
from cryoprocess.services.builders.multibody_builder import MultiBodyBuilder
from cryoprocess.services.configs.config_service import ConfigService
from cryoprocess.services.models_base import CompileResult, JobType

logger = logging.getLogger(__name__)

_BUILDERS: Dict[JobType, Type[BaseJobBuilder]] = {
    JobType.MOTION_CORRECTION : MotionCorrectionBuilder,
    JobType.CTF_ESTIMATION    : CtfEstimationBuilder,
    JobType.CLASS_2D          : Class2DBuilder,
    JobType.AUTO_REFINE       : AutoRefineBuilder,
    JobType.CTF_REFINE        : CtfRefineBuilder,
    JobType.MULTIBODY         : MultiBodyBuilder,
    JobType.DYNAMIGHT         : DynamightBuilder,
}


def get_builder_class(job_type: Union[str, JobType]) -> Type[BaseJobBuilder]:
    return _BUILDERS[JobType.from_string(job_type)]


def create_builder(
    job_type: Union[str, JobType],
    data: Mapping[str, Any],
    project_path: Union[str, Path],
    config: Optional[ConfigService] = None,
) -> BaseJobBuilder:
    builder_class = get_builder_class(job_type)
    logger.debug("[REGISTRY] %s -> %s", job_type, builder_class.__name__)
    return builder_class(data, project_path, config)


def compile_job(
    job_type: Union[str, JobType],
    data: Mapping[str, Any],
    project_path: Union[str, Path],
    output_dir: Union[str, Path],
    job_name: str,
    config: Optional[ConfigService] = None,
) -> CompileResult:
    """Validate and, when valid, build the command for one job submission."""
    builder = create_builder(job_type, data, project_path, config)
    return builder.compile(output_dir, job_name)
