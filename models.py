from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Dict, List, Literal, Optional, Sequence

from ansi import ELLIPSIS, display_width

DEFAULT_LABEL_MAX_LENGTH = 32
DEFAULT_COLUMNS = 80

# Forced onto the child so tools keep their colors even though stdout is a pipe.
DEFAULT_COLOR_ENV: Dict[str, str] = {
    "TERM": "xterm-256color",
    "FORCE_COLOR": "1",
    "CLICOLOR_FORCE": "1",
}


class CapturedLine(BaseModel):
    model_config = ConfigDict(frozen=True)

    stream: Literal["stdout", "stderr"]
    text: str


class ChildStatus(BaseModel):
    """Exit status of the child, produced once when the wait completes."""
    model_config = ConfigDict(frozen=True)

    code: Optional[int] = None
    signal: Optional[int] = None

    @classmethod
    def from_returncode(cls, returncode: int) -> "ChildStatus":
        # Popen reports death-by-signal as a negative return code.
        if returncode < 0:
            return cls(code=None, signal=-returncode)
        return cls(code=returncode)

    @property
    def success(self) -> bool:
        return self.code == 0

    @property
    def exit_code(self) -> int:
        if self.success:
            return 0
        return self.code if self.code is not None else 1


class RenderState(BaseModel):
    """Terminal width (sampled once) and the fixed label for one run."""
    model_config = ConfigDict(frozen=True)

    label: str
    columns: int = DEFAULT_COLUMNS

    @property
    def prefix(self) -> str:
        return f"[{self.label}] "

    @property
    def available_width(self) -> int:
        return max(self.columns - display_width(self.prefix), 0)


class OnelineConfig(BaseModel):
    label_max_length: int = Field(DEFAULT_LABEL_MAX_LENGTH, ge=1)
    fallback_columns: int = Field(DEFAULT_COLUMNS, ge=1)
    color_env: Dict[str, str] = Field(default_factory=dict)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "WARNING"

    @field_validator("color_env", mode="before")
    @classmethod
    def _stringify_env(cls, value):
        # YAML turns FORCE_COLOR: 1 into an int; the environment wants strings.
        if isinstance(value, dict):
            return {str(k): str(v) for k, v in value.items()}
        return value

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_level(cls, value):
        return value.upper() if isinstance(value, str) else value

    def child_env_overrides(self) -> Dict[str, str]:
        """Configured extra variables, with the built-in color overrides applied last."""
        env = dict(self.color_env)
        env.update(DEFAULT_COLOR_ENV)
        return env


def derive_label(command: Sequence[str], label: Optional[str] = None,
                 max_length: int = DEFAULT_LABEL_MAX_LENGTH) -> str:
    """
    Build the status line label.

    Without an explicit label, every leading token of the command that is
    not a flag is used, joined by single spaces. Either way the label is cut
    to `max_length` characters and marked with an ellipsis when it was longer.
    """
    if not label:
        parts: List[str] = []
        for token in command:
            if token.startswith("-"):
                break
            parts.append(token.strip())
        label = " ".join(parts)

    if len(label) > max_length:
        label = label[:max_length] + ELLIPSIS
    return label
