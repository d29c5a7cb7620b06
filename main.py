"""
Fractional-step solver - hydra entry point.

Usage:
    uv run python main.py                      # lid-driven cavity (default case)
    uv run python main.py case=cylinder        # flow past a cylinder
    uv run python main.py case=cavity solver.nu=0.001 solver.n_steps=5000
"""

import logging
import os
import sys
import tempfile
from pathlib import Path

import hydra
import mlflow
from dotenv import load_dotenv
from hydra.utils import instantiate
from omegaconf import DictConfig, OmegaConf

load_dotenv()
sys.path.insert(0, str(Path(__file__).parent / "src"))

log = logging.getLogger(__name__)


def setup_mlflow(cfg: DictConfig) -> str:
    """Point MLflow at the configured store and select the experiment."""
    mlflow.set_tracking_uri(cfg.mlflow.tracking_uri)
    mlflow.set_experiment(cfg.experiment_name)
    return cfg.experiment_name


def run_solver(cfg: DictConfig) -> str:
    """Run solver and log to MLflow. Returns run_id."""
    from utilities.errors import NumericalBreakdownError

    solver = instantiate(cfg.solver, _convert_="partial")
    run_name = f"{cfg.case_name}_{solver.params.solver_type}"

    parent_run_id = os.environ.get("MLFLOW_PARENT_RUN_ID")
    tags = {"solver": solver.params.solver_type, "case": cfg.case_name}
    if parent_run_id:
        tags.update({"mlflow.parentRunId": parent_run_id, "sweep": "child"})

    with mlflow.start_run(run_name=run_name, tags=tags, nested=bool(parent_run_id)) as run:
        mlflow.log_params(solver.params.to_mlflow())
        mlflow.log_dict(OmegaConf.to_container(cfg), "config.yaml")

        log.info(f"Solving: {cfg.case_name} with {solver.params.solver_type}")
        try:
            solver.solve()
        except NumericalBreakdownError as exc:
            log.error(str(exc))
            mlflow.set_tag("breakdown", "true")

        mlflow.log_metrics(solver.metrics.to_mlflow())
        if solver.time_series:
            batch = solver.time_series.to_mlflow_batch()
            if batch:
                mlflow.tracking.MlflowClient().log_batch(run.info.run_id, metrics=batch)

        output_dir = solver.params.output_dir
        for name in ("forces.txt", "iterations.txt"):
            path = Path(output_dir or "") / name
            if output_dir and path.exists():
                mlflow.log_artifact(str(path))

        with tempfile.TemporaryDirectory() as tmpdir:
            h5_path = Path(tmpdir) / "solution.h5"
            solver.save(h5_path)
            mlflow.log_artifact(str(h5_path))

        log.info(
            f"Done: {solver.metrics.steps} steps, fx={solver.metrics.final_force_x:.6f}, "
            f"fy={solver.metrics.final_force_y:.6f}, time={solver.metrics.wall_time_seconds:.2f}s"
        )
        return run.info.run_id


@hydra.main(config_path="conf", config_name="config", version_base=None)
def main(cfg: DictConfig) -> None:
    """Main entry point."""
    log.info(f"Case: {cfg.case_name}")
    log.info(f"MLflow experiment: {setup_mlflow(cfg)}")
    run_solver(cfg)


if __name__ == "__main__":
    main()
