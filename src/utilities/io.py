"""Output files of a simulation run and their loaders.

Files written to the output directory:
- forces.txt      step, time, fx, fy (one line per step)
- iterations.txt  step, sub_step, iterations1, iterations2, converged1,
                  converged2, breakdown (one line per sub-step)
- fields_<step>.h5  q, lam and time (every save_interval steps)

Write failures never stop a run: they are logged and collected in
``OutputWriter.errors``.
"""

import logging
from pathlib import Path

import h5py
import numpy as np
import pandas as pd

log = logging.getLogger(__name__)

FORCE_COLUMNS = ["step", "time", "fx", "fy"]
ITERATION_COLUMNS = [
    "step", "sub_step", "iterations1", "iterations2", "converged1", "converged2", "breakdown",
]


class OutputWriter:
    """Text logs and HDF5 snapshots in one output directory."""

    def __init__(self, output_dir):
        self.output_dir = Path(output_dir)
        self.errors = []
        self._forces = None
        self._iterations = None

        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            self._forces = open(self.output_dir / "forces.txt", "w")
            self._iterations = open(self.output_dir / "iterations.txt", "w")
            self._forces.write("# " + " ".join(FORCE_COLUMNS) + "\n")
            self._iterations.write("# " + " ".join(ITERATION_COLUMNS) + "\n")
        except OSError as exc:
            self._failed("open output files", exc)

    def _failed(self, action: str, exc: Exception):
        log.warning(f"Could not {action} in {self.output_dir}: {exc}")
        self.errors.append(f"{action}: {exc}")

    def log_forces(self, step: int, time: float, fx: float, fy: float):
        if self._forces is None:
            return
        try:
            self._forces.write(f"{step} {time:.10g} {fx:.10e} {fy:.10e}\n")
        except (OSError, ValueError) as exc:
            self._failed("write forces", exc)

    def log_iterations(self, step: int, sub_step: int, report1, report2):
        if self._iterations is None:
            return
        breakdown = report1.breakdown or report2.breakdown
        try:
            self._iterations.write(
                f"{step} {sub_step} {report1.iterations} {report2.iterations} "
                f"{int(report1.converged)} {int(report2.converged)} {int(breakdown)}\n"
            )
        except (OSError, ValueError) as exc:
            self._failed("write iterations", exc)

    def write_snapshot(self, step: int, time: float, q: np.ndarray, lam: np.ndarray):
        path = self.output_dir / f"fields_{step:07d}.h5"
        try:
            with h5py.File(path, "w") as f:
                f.create_dataset("q", data=q)
                f.create_dataset("lam", data=lam)
                f.attrs["time"] = time
                f.attrs["step"] = step
        except OSError as exc:
            self._failed(f"write snapshot {path.name}", exc)
            return None
        return path

    def flush(self):
        for stream in (self._forces, self._iterations):
            if stream is None:
                continue
            try:
                stream.flush()
            except (OSError, ValueError) as exc:
                self._failed("flush logs", exc)

    def close(self):
        self.flush()
        for stream in (self._forces, self._iterations):
            if stream is not None:
                stream.close()
        self._forces = self._iterations = None


def _load_table(filepath, columns) -> pd.DataFrame:
    return pd.read_csv(filepath, sep=r"\s+", comment="#", header=None, names=columns)


def load_force_log(filepath) -> pd.DataFrame:
    """Read forces.txt into a DataFrame (step, time, fx, fy)."""
    return _load_table(filepath, FORCE_COLUMNS)


def load_iteration_log(filepath) -> pd.DataFrame:
    """Read iterations.txt; flag columns are returned as booleans."""
    df = _load_table(filepath, ITERATION_COLUMNS)
    for col in ("converged1", "converged2", "breakdown"):
        df[col] = df[col].astype(bool)
    return df


def load_snapshot(filepath) -> dict:
    """Read a fields_<step>.h5 snapshot into a dictionary."""
    with h5py.File(filepath, "r") as f:
        return {
            "q": f["q"][()],
            "lam": f["lam"][()],
            "time": float(f.attrs["time"]),
            "step": int(f.attrs["step"]),
        }
