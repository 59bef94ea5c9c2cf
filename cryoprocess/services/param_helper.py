# cryoprocess/services/param_helper.py
"""
Alias-tolerant accessors over the raw parameter bag submitted by the web form.

The same logical parameter has been sent under several names over time
(`mpiProcs`, `runningmpi`, `numberOfMpiProcs`, ...), so every accessor takes
a precedence-ordered list of names. Keys holding None or "" count as absent.

Numeric accessors never raise: text that does not parse falls back to the
default, the way the form has always been treated.
"""

import math
import re
from typing import Any, Dict, Mapping, Optional, Sequence

TRUE_STRINGS = frozenset({"yes", "true"})

DEFAULT_MPI_PROCS = 1
DEFAULT_THREADS = 1
DEFAULT_POOL_SIZE = 3
DEFAULT_HEALPIX_ORDER = 2

# (degrees, healpix order), coarsest first
HEALPIX_LADDER = (
    (30.0, 0),
    (15.0, 1),
    (7.5, 2),
    (3.7, 3),
    (1.8, 4),
    (0.9, 5),
    (0.5, 6),
    (0.2, 7),
    (0.1, 8),
)

_LEADING_INT = re.compile(r"^\s*([-+]?\d+)")
_LEADING_FLOAT = re.compile(r"^\s*([-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?)")
_GPU_ID_LIST = re.compile(r"^[\d,]+$")
_OPTION_CODE = re.compile(r"\(\s*(-?\d+)\s*\)\s*$")


def get_param(data: Mapping[str, Any], names: Sequence[str], default: Any = None) -> Any:
    for name in names:
        value = data.get(name)
        if value is None or (isinstance(value, str) and value == ""):
            continue
        return value
    return default


def get_str_param(data: Mapping[str, Any], names: Sequence[str], default: Optional[str] = None) -> Optional[str]:
    """Like get_param, but always text; whitespace-only values count as absent."""
    value = get_param(data, names)
    if value is None:
        return default
    text = format_number(value) if isinstance(value, (int, float)) and not isinstance(value, bool) else str(value)
    text = text.strip()
    return text if text else default


def parse_bool(value: Any, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in TRUE_STRINGS
    if isinstance(value, (int, float)):
        return value == 1
    return False


def parse_int(value: Any, default: Optional[int]) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else default
    match = _LEADING_INT.match(str(value))
    return int(match.group(1)) if match else default


def parse_float(value: Any, default: Optional[float]) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        match = _LEADING_FLOAT.match(str(value))
        if not match:
            return default
        number = float(match.group(1))
    return number if math.isfinite(number) else default


def get_bool_param(data: Mapping[str, Any], names: Sequence[str], default: bool = False) -> bool:
    return parse_bool(get_param(data, names), default)


def get_int_param(data: Mapping[str, Any], names: Sequence[str], default: Optional[int] = 0) -> Optional[int]:
    return parse_int(get_param(data, names), default)


def get_float_param(data: Mapping[str, Any], names: Sequence[str], default: Optional[float] = 0.0) -> Optional[float]:
    return parse_float(get_param(data, names), default)


def format_number(value: Any) -> str:
    """Render a number the way the form displays it: 1.0 -> "1", 0.3 -> "0.3"."""
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return repr(value)
    return str(value)


def extract_option_code(value: Any, default: int = 0, keywords: Optional[Dict[str, int]] = None) -> int:
    """
    Numeric code of a dropdown choice such as "90 degrees (1)".

    The trailing "(n)" wins; bare numbers pass through; otherwise the first
    keyword found in the label decides.
    """
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return parse_int(value, default)
    text = str(value).strip()
    match = _OPTION_CODE.search(text)
    if match:
        return int(match.group(1))
    if re.fullmatch(r"-?\d+", text):
        return int(text)
    lowered = text.lower()
    for keyword, code in (keywords or {}).items():
        if keyword in lowered:
            return code
    return default


def healpix_order_from_sampling(degrees: Optional[float], default: int = DEFAULT_HEALPIX_ORDER) -> int:
    """Largest ladder step not above `degrees`; finer than the last step maps to the last order."""
    if degrees is None or degrees <= 0:
        return default
    for threshold, order in HEALPIX_LADDER:
        if degrees >= threshold - 1e-6:
            return order
    return HEALPIX_LADDER[-1][1]


# ---------------------------------------------------------------------------
# Domain wrappers
# ---------------------------------------------------------------------------

def get_mpi_procs(data: Mapping[str, Any]) -> int:
    return max(1, get_int_param(data, ["mpiProcs", "runningmpi", "numberOfMpiProcs"], DEFAULT_MPI_PROCS))


def get_threads(data: Mapping[str, Any]) -> int:
    return max(1, get_int_param(data, ["numberOfThreads", "threads"], DEFAULT_THREADS))


def is_gpu_enabled(data: Mapping[str, Any]) -> bool:
    toggle = get_param(data, ["gpuAcceleration", "GpuAcceleration"])
    if toggle is not None:
        return parse_bool(toggle)

    ids = get_param(data, ["gpuToUse", "useGPU"])
    if ids is not None and ids != "No":
        text = str(ids).strip()
        if _GPU_ID_LIST.match(text) or text.lower() == "yes":
            return True
    return False


def get_gpu_ids(data: Mapping[str, Any]) -> str:
    value = get_param(data, ["gpuToUse", "useGPU", "gpu"], "0")
    if isinstance(value, bool) or value in ("Yes", "No"):
        value = "0"
    return re.sub(r"\s", "", format_number(value))


def get_input_star_file(data: Mapping[str, Any]) -> Optional[str]:
    return get_str_param(data, ["inputStarFile", "input_star_file", "inputParticles"])


def get_continue_from(data: Mapping[str, Any]) -> Optional[str]:
    return get_str_param(data, ["continueFrom"])


def get_mask_diameter(data: Mapping[str, Any], default: int = 200) -> int:
    return get_int_param(data, ["maskDiameter"], default)


def get_number_of_classes(data: Mapping[str, Any], default: int = 1) -> int:
    return get_int_param(data, ["numberOfClasses"], default)


def get_iterations(data: Mapping[str, Any], default: int = 25) -> int:
    return get_int_param(data, ["numberOfIterations", "numberEMIterations"], default)


def get_pooled_particles(data: Mapping[str, Any], default: int = DEFAULT_POOL_SIZE) -> int:
    return max(1, get_int_param(data, ["pooledParticles", "numberOfPooledParticle"], default))


def get_scratch_dir(data: Mapping[str, Any]) -> Optional[str]:
    return get_str_param(data, ["copyParticlesToScratch", "copyParticles", "copyParticle"])


def get_reference(data: Mapping[str, Any]) -> Optional[str]:
    return get_str_param(data, ["referenceMap", "reference"])


def get_symmetry(data: Mapping[str, Any], default: str = "C1") -> str:
    return get_str_param(data, ["symmetry", "Symmetry"], default)


def get_submit_to_queue(data: Mapping[str, Any], default: bool = True) -> bool:
    return get_bool_param(data, ["submitToQueue", "SubmitToQueue"], default)


def get_additional_arguments(data: Mapping[str, Any]) -> list:
    raw = get_str_param(data, ["additionalArguments", "arguments"])
    return raw.split() if raw else []
