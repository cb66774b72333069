from pathlib import Path
from typing import NamedTuple, Optional

try:
    import tomllib
except ImportError:
    import tomli as tomllib  # type: ignore  # noqa

from jdsd.enums import Backend, Flags
from jdsd.io_utils import load_particles


class JdsdConfiguration:
    def __init__(self, physics, interactions, seeds, execution, lubrication, output, particles):
        self.physics = physics
        self.interactions = interactions
        self.seeds = seeds
        self.execution = execution
        self.lubrication = lubrication
        self.output = output
        self.particles = particles

    @classmethod
    def from_toml(cls, config_fp, particles: Optional[Path] = None):
        with open(config_fp, "rb") as handle:
            config_data = tomllib.load(handle)
        try:
            new_config = cls(
                Physics(**config_data.pop("physics", {})),
                Interactions(**config_data.pop("interactions", {})),
                Seeds(**config_data.pop("seeds", {})),
                Execution(**config_data.pop("execution", {})),
                Lubrication(**config_data.pop("lubrication", {})),
                Output(**config_data.pop("output", {})),
                particles,
            )
        except TypeError as error:
            raise ValueError(f"Invalid configuration directive in {config_fp}: {error}") from None
        if len(config_data) > 0:
            raise ValueError(f"Unknown configuration directive(s) detected: {list(config_data)}")
        return new_config

    @property
    def parameters(self):
        if self.particles is None:
            raise ValueError("Please supply a particle file with positions, radii and forces.")
        params = {"frames": load_particles(self.particles)}
        params.update(self.physics.get_parameters())
        params.update(self.interactions.get_parameters())
        params.update(self.seeds.get_parameters())
        params.update(self.execution.get_parameters())
        params.update(self.lubrication.get_parameters())
        params.update(self.output.get_parameters())
        return params


class Physics(NamedTuple):
    viscosity: float = 1.0
    kT: float = 0.0
    dt: float = 0.01

    def get_parameters(self):
        if not self.viscosity > 0:
            raise ValueError(f"Viscosity must be positive, got {self.viscosity}")
        if self.kT < 0:
            raise ValueError(f"Thermal energy kT must be non-negative, got {self.kT}")
        if not self.dt > 0:
            raise ValueError(f"Time step dt must be positive, got {self.dt}")
        return {
            "viscosity": self.viscosity,
            "temperature": self.kT,
            "time_step": self.dt,
        }


class Interactions(NamedTuple):
    self_mobility: bool = True
    pair_mobility: bool = True
    lubrication: bool = False
    stresslet: bool = True

    def get_parameters(self):
        flags = Flags.NONE
        for enabled, flag in zip(
            self, (Flags.SELF_MOBILITY, Flags.PAIR_MOBILITY, Flags.LUBRICATION, Flags.FTS)
        ):
            if enabled:
                flags |= flag
        return {"flags": flags}


class Seeds(NamedTuple):
    thermal: int = 2343095
    offset: int = 0

    def get_parameters(self):
        for name, value in zip(self._fields, self):
            if not 0 <= value < 2**64:
                raise ValueError(f"Seed '{name}' must be an unsigned 64-bit integer, got {value}")
        return {"seed_thermal": self.thermal, "offset": self.offset}


class Execution(NamedTuple):
    backend: str = "auto"

    def get_parameters(self):
        try:
            backend = Backend(self.backend.lower())
        except ValueError:
            raise ValueError(
                f"Unknown execution backend: {self.backend}, choose from: host, accelerator or auto."
            ) from None
        return {"backend": backend}


class Lubrication(NamedTuple):
    table: str = ""

    def get_parameters(self):
        return {"lubrication_table": self.table or None}


class Output(NamedTuple):
    store_operators: bool = False
    debug_log: bool = False

    def get_parameters(self):
        # debug_log only configures logging, it is read by the command line driver
        return {"store_operators": self.store_operators}
