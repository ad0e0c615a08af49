from __future__ import annotations

from pathlib import Path

from pytest import raises

from cfd_flow.models import VelocityGrid
from cfd_flow.openfoam import SOLVER_FILE_NAMES, format_solver_files, write_solver_case


def _grid() -> VelocityGrid:
    return VelocityGrid.from_rows(
        [
            [(1.0, 0.0), (0.5, -0.25)],
            [(0.0, 2.0), (-1.5, 0.125)],
            [(0.0, 0.0), (3.0, 3.0)],
        ]
    )


def test_solver_file_set_is_complete() -> None:
    files = format_solver_files(_grid(), 2.5, 2, 3)

    assert set(files) == set(SOLVER_FILE_NAMES)
    assert all(content.startswith("/*") for content in files.values())


def test_velocity_file_lists_every_cell_in_row_major_order() -> None:
    files = format_solver_files(_grid(), 2.5, 2, 3)
    lines = files["U"].splitlines()

    count_index = lines.index("internalField   nonuniform List<vector>")
    assert lines[count_index + 1] == "6"
    assert lines[count_index + 2] == "("
    assert lines[count_index + 3 : count_index + 9] == [
        "(1.000000 0.000000 0)",
        "(0.500000 -0.250000 0)",
        "(0.000000 2.000000 0)",
        "(-1.500000 0.125000 0)",
        "(0.000000 0.000000 0)",
        "(3.000000 3.000000 0)",
    ]
    assert lines[count_index + 9] == ");"
    assert "class       volVectorField;" in files["U"]
    for patch in ("walls", "inlet", "outlet"):
        assert f"    {patch} {{ type zeroGradient; }}" in lines


def test_control_dict_runs_for_clip_duration() -> None:
    files = format_solver_files(_grid(), 2.5, 2, 3)

    assert "application     icoFoam;" in files["controlDict"]
    assert "endTime 2.50;" in files["controlDict"]
    assert "deltaT 0.005;" in files["controlDict"]


def test_remaining_files_carry_solver_settings() -> None:
    files = format_solver_files(_grid(), 1.0, 2, 3)

    assert "nu" in files["transportProperties"]
    assert "0.01" in files["transportProperties"]
    assert "ddtSchemes" in files["fvSchemes"]
    assert "PISO" in files["fvSolution"]


def test_mismatched_dimensions_are_rejected() -> None:
    with raises(ValueError, match="expected 3x2"):
        format_solver_files(_grid(), 1.0, 3, 2)
    with raises(ValueError):
        format_solver_files(_grid(), 0.0, 2, 3)


def test_write_solver_case_uses_openfoam_layout(tmp_path: Path) -> None:
    files = format_solver_files(_grid(), 1.0, 2, 3)

    written = write_solver_case(files, tmp_path / "case")

    assert written["U"] == tmp_path / "case" / "0" / "U"
    assert written["controlDict"] == tmp_path / "case" / "system" / "controlDict"
    assert written["transportProperties"] == tmp_path / "case" / "constant" / "transportProperties"
    assert written["U"].read_text(encoding="utf-8") == files["U"]


def test_write_solver_case_rejects_unknown_files(tmp_path: Path) -> None:
    with raises(ValueError):
        write_solver_case({"blockMeshDict": ""}, tmp_path)
