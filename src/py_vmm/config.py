"""Kernel configuration — every tunable of a simulation run.

Geometry (1 KiB pages, 128 frames, 32 pages per process, 18 process
slots) and timing costs are fields of one frozen dataclass, so tests can
shrink memory to two frames while the defaults give every process 32 KiB
of address space over 128 KiB of physical RAM.

Configuration can also come from a JSON file, with command-line options
layered on top via ``with_overrides()``.
"""

from __future__ import annotations

import dataclasses
import json
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from py_vmm.clock import NANOS_PER_MILLI

if TYPE_CHECKING:
    from pathlib import Path

DEFAULT_LOG_FILE = "oss.log"

_INT_FIELDS = frozenset(
    {
        "total_processes",
        "max_concurrent",
        "launch_interval_ms",
        "page_size",
        "total_frames",
        "pages_per_process",
        "max_processes",
        "hit_cost_ns",
        "fault_cost_ns",
        "writeback_cost_ns",
        "tick_ns",
    },
)


class ConfigError(ValueError):
    """Raise when a configuration value is out of range."""


@dataclass(frozen=True)
class KernelConfig:
    """Geometry, timing costs and admission policy for one run."""

    # Admission policy
    total_processes: int = 100
    max_concurrent: int = 18
    launch_interval_ms: int = 1000

    # Memory geometry
    page_size: int = 1024
    total_frames: int = 128
    pages_per_process: int = 32
    max_processes: int = 18

    # Simulated time costs (nanoseconds)
    hit_cost_ns: int = 100
    fault_cost_ns: int = 14_000_000
    writeback_cost_ns: int = 10_000_000
    tick_ns: int = 1000

    # Run control
    wall_clock_limit_s: float = 5.0
    recycle_slots: bool = False
    seed: int | None = None
    log_file: str = DEFAULT_LOG_FILE

    @property
    def launch_interval_ns(self) -> int:
        """Return the admission pacing interval in nanoseconds."""
        return self.launch_interval_ms * NANOS_PER_MILLI

    @property
    def address_space(self) -> int:
        """Return the bytes addressable by one process."""
        return self.page_size * self.pages_per_process

    def validate(self) -> KernelConfig:
        """Check every field, returning self so calls can be chained.

        Raises:
            ConfigError: If any value has the wrong type or is out of range.

        """
        self._check_types()
        positive = (
            "total_processes",
            "launch_interval_ms",
            "page_size",
            "total_frames",
            "pages_per_process",
            "max_processes",
        )
        for name in positive:
            value = getattr(self, name)
            if value <= 0:
                msg = f"{name} must be positive, got {value}"
                raise ConfigError(msg)
        if not 1 <= self.max_concurrent <= self.max_processes:
            msg = f"max_concurrent must be between 1 and {self.max_processes}, got {self.max_concurrent}"
            raise ConfigError(msg)
        for name in ("hit_cost_ns", "fault_cost_ns", "writeback_cost_ns", "tick_ns"):
            value = getattr(self, name)
            if value < 0:
                msg = f"{name} must not be negative, got {value}"
                raise ConfigError(msg)
        if self.wall_clock_limit_s <= 0:
            msg = f"wall_clock_limit_s must be positive, got {self.wall_clock_limit_s}"
            raise ConfigError(msg)
        return self

    def _check_types(self) -> None:
        """Reject values a JSON file or caller supplied with the wrong type."""
        for f in dataclasses.fields(self):
            value = getattr(self, f.name)
            if f.name in _INT_FIELDS:
                valid = isinstance(value, int) and not isinstance(value, bool)
                expected = "an integer"
            elif f.name == "wall_clock_limit_s":
                valid = isinstance(value, (int, float)) and not isinstance(value, bool)
                expected = "a number"
            elif f.name == "recycle_slots":
                valid = isinstance(value, bool)
                expected = "a boolean"
            elif f.name == "seed":
                valid = value is None or (isinstance(value, int) and not isinstance(value, bool))
                expected = "an integer or null"
            else:
                valid = isinstance(value, str)
                expected = "a string"
            if not valid:
                msg = f"{f.name} must be {expected}, got {value!r}"
                raise ConfigError(msg)

    def with_overrides(self, **overrides: Any) -> KernelConfig:
        """Return a copy with the given fields replaced (None values ignored).

        Raises:
            ConfigError: If an override names an unknown field.

        """
        known = {f.name for f in dataclasses.fields(self)}
        unknown = set(overrides) - known
        if unknown:
            msg = f"Unknown configuration field(s): {', '.join(sorted(unknown))}"
            raise ConfigError(msg)
        changes = {k: v for k, v in overrides.items() if v is not None}
        return dataclasses.replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        """Return the configuration as a JSON-compatible dict."""
        return dataclasses.asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> KernelConfig:
        """Build a validated config from a dict of field values.

        Raises:
            ConfigError: If a key is unknown or a value is invalid.

        """
        return cls().with_overrides(**data).validate()

    @classmethod
    def from_json(cls, path: Path) -> KernelConfig:
        """Load a validated config from a JSON file.

        Raises:
            ConfigError: If the file is not a JSON object or holds bad values.
            OSError: If the file cannot be read.

        """
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            msg = f"Invalid configuration file {path}: {e}"
            raise ConfigError(msg) from e
        if not isinstance(data, dict):
            msg = f"Configuration file {path} must contain a JSON object"
            raise ConfigError(msg)
        return cls.from_dict(data)
