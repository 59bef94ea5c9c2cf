# cryoprocess/services/models_base.py
from __future__ import annotations
import shlex
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Iterator, Literal, Optional, Tuple, Union
from pydantic import BaseModel, ConfigDict, Field


AND_TOKEN = "&&"


class CommandCompilerError(Exception):
    """Base class for errors raised by the command compiler itself."""


class BuildPreconditionError(CommandCompilerError):
    """build_command() was called without a successful validate() first."""


class JobType(str, Enum):
    MOTION_CORRECTION = "motion_correction"
    CTF_ESTIMATION    = "ctf_estimation"
    CLASS_2D          = "class_2d"
    AUTO_REFINE       = "auto_refine"
    CTF_REFINE        = "ctf_refine"
    MULTIBODY         = "multibody"
    DYNAMIGHT         = "dynamight"

    @classmethod
    def from_string(cls, value: Union[str, "JobType"]) -> "JobType":
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower()
        key = _JOB_TYPE_ALIASES.get(key, key)
        try:
            return cls(key)
        except ValueError:
            valid = [e.value for e in cls]
            raise ValueError(f"Unknown job type '{value}'. Valid types: {valid}")


_JOB_TYPE_ALIASES = {
    "motioncorr"        : JobType.MOTION_CORRECTION.value,
    "motion"            : JobType.MOTION_CORRECTION.value,
    "ctf"               : JobType.CTF_ESTIMATION.value,
    "ctffind"           : JobType.CTF_ESTIMATION.value,
    "class2d"           : JobType.CLASS_2D.value,
    "classification_2d" : JobType.CLASS_2D.value,
    "autorefine"        : JobType.AUTO_REFINE.value,
    "refine3d"          : JobType.AUTO_REFINE.value,
    "ctfrefine"         : JobType.CTF_REFINE.value,
    "multi_body"        : JobType.MULTIBODY.value,
}


class FitMode(str, Enum):
    """Per-parameter fit selection for relion_ctf_refine --fit_mode."""
    OFF            = "f"
    PER_MICROGRAPH = "m"
    PER_PARTICLE   = "p"

    @classmethod
    def from_label(cls, value) -> "FitMode":
        if isinstance(value, cls):
            return value
        if value is None:
            return cls.OFF
        text = str(value).strip().lower()
        if text in ("m", "p"):
            return cls(text)
        if "micrograph" in text:
            return cls.PER_MICROGRAPH
        if "particle" in text:
            return cls.PER_PARTICLE
        return cls.OFF


class ValidationResult(BaseModel):
    model_config = ConfigDict(frozen=True)
    valid : bool
    error : Optional[str] = None

    @classmethod
    def ok(cls) -> "ValidationResult":
        return cls(valid=True, error=None)

    @classmethod
    def fail(cls, error: str) -> "ValidationResult":
        return cls(valid=False, error=error)

    def __bool__(self) -> bool:
        return self.valid


class ExecutionMode(BaseModel):
    """Execution shape of one build, derived once from the resolved parameters."""
    model_config = ConfigDict(frozen=True)
    continuation : bool                       = False
    parallelism  : Literal["single", "mpi"]   = "single"
    accelerator  : Literal["cpu", "gpu"]      = "cpu"
    mpi_procs    : int                        = Field(default=1, ge=1)

    @property
    def is_mpi(self) -> bool:
        return self.parallelism == "mpi"

    @property
    def uses_gpu(self) -> bool:
        return self.accelerator == "gpu"


@dataclass(frozen=True)
class CommandSpec:
    """One argv: the binary followed by its flags, in emission order."""
    tokens: Tuple[str, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "tokens", tuple(str(t) for t in self.tokens))

    @property
    def binary(self) -> str:
        return self.tokens[0] if self.tokens else ""

    def __len__(self) -> int:
        return len(self.tokens)

    def __iter__(self) -> Iterator[str]:
        return iter(self.tokens)

    def __getitem__(self, index):
        return self.tokens[index]

    def __contains__(self, token) -> bool:
        return token in self.tokens

    def index(self, token: str) -> int:
        return self.tokens.index(token)

    def flag_value(self, flag: str) -> Optional[str]:
        """Token following `flag`, or None when the flag is absent or valueless."""
        if flag not in self.tokens:
            return None
        position = self.tokens.index(flag) + 1
        if position >= len(self.tokens) or self.tokens[position].startswith("--"):
            return None
        return self.tokens[position]

    def then(self, other: Union["CommandSpec", "CommandChain"]) -> "CommandChain":
        return CommandChain.of(self, other)

    def render(self) -> str:
        return shlex.join(self.tokens)


@dataclass(frozen=True)
class CommandChain:
    """Commands that run in order; each one only if the previous succeeded."""
    commands: Tuple[CommandSpec, ...]

    def __post_init__(self):
        commands = tuple(self.commands)
        if len(commands) < 2:
            raise ValueError("A command chain needs at least two commands")
        object.__setattr__(self, "commands", commands)

    @classmethod
    def of(cls, *parts: Union[CommandSpec, "CommandChain"]) -> "CommandChain":
        return cls(tuple(_flatten(parts)))

    def then(self, other: Union[CommandSpec, "CommandChain"]) -> "CommandChain":
        return CommandChain.of(self, other)

    @property
    def tokens(self) -> Tuple[str, ...]:
        flat = []
        for position, command in enumerate(self.commands):
            if position:
                flat.append(AND_TOKEN)
            flat.extend(command.tokens)
        return tuple(flat)

    @property
    def last(self) -> CommandSpec:
        return self.commands[-1]

    def __len__(self) -> int:
        return len(self.commands)

    def __iter__(self) -> Iterator[CommandSpec]:
        return iter(self.commands)

    def __getitem__(self, index) -> CommandSpec:
        return self.commands[index]

    def render(self) -> str:
        return f" {AND_TOKEN} ".join(command.render() for command in self.commands)


def _flatten(parts: Iterable[Union[CommandSpec, CommandChain]]) -> Iterator[CommandSpec]:
    for part in parts:
        if isinstance(part, CommandChain):
            yield from part.commands
        else:
            yield part


Command = Union[CommandSpec, CommandChain]


@dataclass(frozen=True)
class CompileResult:
    validation : ValidationResult
    command    : Optional[Command] = None

    @property
    def ok(self) -> bool:
        return self.validation.valid and self.command is not None
