"""OpenFOAM initial-condition files for an averaged velocity field.

The field becomes a non-uniform internal ``U`` on a ``grid_width x
grid_height`` mesh, with an icoFoam case running for the clip duration.
"""

from __future__ import annotations

from pathlib import Path

from jinja2 import Environment, FileSystemLoader, StrictUndefined

from .models import VelocityGrid

TEMPLATE_DIR = Path(__file__).parent / "templates" / "openfoam"

SOLVER_FILE_NAMES: tuple[str, ...] = (
    "U",
    "controlDict",
    "fvSchemes",
    "fvSolution",
    "transportProperties",
)
CASE_LAYOUT: dict[str, str] = {
    "U": "0",
    "controlDict": "system",
    "fvSchemes": "system",
    "fvSolution": "system",
    "transportProperties": "constant",
}
BOUNDARY_PATCHES: tuple[str, ...] = ("walls", "inlet", "outlet")
APPLICATION = "icoFoam"
DELTA_T = 0.005
WRITE_INTERVAL = 20
KINEMATIC_VISCOSITY = 0.01


def _fixed(value: float, digits: int) -> str:
    return f"{value:.{digits}f}"


def _environment() -> Environment:
    env = Environment(
        loader=FileSystemLoader(str(TEMPLATE_DIR)),
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
        undefined=StrictUndefined,
        autoescape=False,
    )
    env.filters["fixed"] = _fixed
    return env


def format_solver_files(
    grid: VelocityGrid, duration_s: float, grid_width: int, grid_height: int
) -> dict[str, str]:
    """Render the solver input set keyed by OpenFOAM file name."""

    if (grid.width, grid.height) != (grid_width, grid_height):
        raise ValueError(
            f"grid is {grid.width}x{grid.height}, expected {grid_width}x{grid_height}"
        )
    if duration_s <= 0:
        raise ValueError("duration_s must be positive")

    context = {
        "num_points": grid_width * grid_height,
        "vectors": [(float(u), float(v)) for u, v in grid.data.reshape(-1, 2)],
        "patches": BOUNDARY_PATCHES,
        "application": APPLICATION,
        "end_time": duration_s,
        "delta_t": DELTA_T,
        "write_interval": WRITE_INTERVAL,
        "nu": KINEMATIC_VISCOSITY,
    }
    env = _environment()
    return {name: env.get_template(f"{name}.j2").render(context) for name in SOLVER_FILE_NAMES}


def write_solver_case(files: dict[str, str], case_dir: str | Path) -> dict[str, Path]:
    """Write files into the standard ``0/``, ``system/``, ``constant/`` layout."""

    root = Path(case_dir)
    written: dict[str, Path] = {}
    for name, content in files.items():
        subdir = CASE_LAYOUT.get(name)
        if subdir is None:
            raise ValueError(f"unknown solver file: {name}")
        target = root / subdir / name
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
        written[name] = target
    return written
