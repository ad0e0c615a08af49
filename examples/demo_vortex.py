from pathlib import Path

import numpy as np

from cfd_flow.models import VelocityGrid
from cfd_flow.openfoam import format_solver_files, write_solver_case
from cfd_flow.render import DISPLAY_MODES, RenderConfig, render_to_image


def _vortex(width: int, height: int) -> VelocityGrid:
    rows, cols = np.mgrid[0:height, 0:width]
    dx = cols - (width - 1) / 2.0
    dy = rows - (height - 1) / 2.0
    radius = np.hypot(dx, dy) + 1e-9
    strength = np.exp(-((radius / (min(width, height) / 3.0)) ** 2))
    return VelocityGrid(np.stack([-dy / radius * strength, dx / radius * strength], axis=-1))


def main() -> None:
    grid = _vortex(20, 15)
    output_dir = Path("demo_vortex")
    output_dir.mkdir(exist_ok=True)

    for mode in DISPLAY_MODES:
        image = render_to_image(grid, config=RenderConfig(mode=mode, density=10))
        path = output_dir / f"vortex_{mode}.png"
        image.save(path)
        print(f"{mode}: {path}")

    files = format_solver_files(grid, 2.0, grid.width, grid.height)
    written = write_solver_case(files, output_dir / "openfoam")
    print(f"OpenFOAM case: {written['U'].parent.parent}")
    print(f"Peak |v|: {float(grid.magnitudes().max()):.3f}")


if __name__ == "__main__":
    main()
