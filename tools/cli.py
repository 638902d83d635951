#!/usr/bin/env python3
"""
LiDAR Odometry Benchmark - Command Line Interface
"""

from pathlib import Path
from typing import Any, Dict, Optional

import typer
import yaml
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape

from odom_bench.common.config import load_benchmark_config
from odom_bench.common.persistence import load_metrics
from odom_bench.datasets.kitti import KittiDataset
from odom_bench.evaluation.aggregator import finalize_summary
from odom_bench.plotting.trajectory_plot import TrajectorySnapshotRenderer
from odom_bench.runtime.orchestrator import BenchmarkOrchestrator, print_sequence_errors, print_summary
from odom_bench.runtime.registration import engine_builder
from odom_bench.runtime.visualization import build_visualization
from odom_bench.utils.config_loader import ConfigError

app = typer.Typer(
    name="odom-bench",
    help="LiDAR Odometry Benchmark CLI",
    add_completion=False,
)
console = Console()

EXIT_SETUP_ERROR = 2


@app.command()
def run(
    config: Path = typer.Argument(
        ...,
        help="Path to benchmark config YAML file"
    ),
    sequence: Optional[str] = typer.Option(
        None,
        "--sequence", "-s",
        help="Run only this sequence"
    ),
    max_frames: Optional[int] = typer.Option(
        None,
        "--max-frames", "-n",
        help="Frames per sequence (-1 for all)"
    ),
    no_viz: bool = typer.Option(
        False,
        "--no-viz",
        help="Disable the live visualization"
    ),
    output: Optional[Path] = typer.Option(
        None,
        "--output", "-o",
        help="Output directory for poses and metrics"
    ),
):
    """Run the odometry benchmark over the configured sequences."""
    overrides: Dict[str, Any] = {}
    if sequence is not None:
        overrides["all_sequences"] = False
        overrides["sequence"] = sequence
    if max_frames is not None:
        overrides["max_frames"] = max_frames
    if no_viz:
        overrides["visualization"] = {"enabled": False}
    if output is not None:
        overrides["output_dir"] = str(output)

    try:
        bench_config = load_benchmark_config(config, overrides)
        build_engine = engine_builder(
            bench_config.registration,
            viz_mode=bench_config.visualization.mode,
            with_viz=bench_config.visualization.enabled
        )
    except (ValidationError, ConfigError, FileNotFoundError, yaml.YAMLError) as e:
        console.print(f"[red]✗ Invalid configuration: {escape(str(e))}[/red]")
        raise typer.Exit(EXIT_SETUP_ERROR)

    dataset = KittiDataset(bench_config.dataset)
    try:
        dataset.get_sequences()
    except FileNotFoundError as e:
        console.print(f"[red]✗ Error: {escape(str(e))}[/red]")
        raise typer.Exit(EXIT_SETUP_ERROR)

    viz_options = bench_config.visualization
    output_dir = Path(bench_config.output_dir)
    renderer = None
    if viz_options.enabled:
        renderer = TrajectorySnapshotRenderer(
            output_dir / viz_options.snapshot_file,
            max_points_per_cloud=viz_options.max_points_per_slot
        )
        console.print(f"[cyan]Live view: {output_dir / viz_options.snapshot_file}[/cyan]")
        if viz_options.pause_file:
            console.print(f"[cyan]Create {output_dir / viz_options.pause_file} to pause the run[/cyan]")
    visualization = build_visualization(
        viz_options.enabled,
        renderer,
        num_slots=viz_options.num_slots,
        render_interval=viz_options.render_interval,
        poll_interval=viz_options.pause_poll_interval,
        pause_file=output_dir / viz_options.pause_file if viz_options.pause_file else None
    )

    orchestrator = BenchmarkOrchestrator(
        bench_config,
        dataset,
        build_engine,
        visualization=visualization,
        console=console
    )
    exit_code = orchestrator.run()
    if exit_code != 0:
        raise typer.Exit(exit_code)
    console.print(f"[green]✓ Results saved to {output_dir}[/green]")


@app.command()
def summary(
    metrics_file: Path = typer.Argument(
        ...,
        help="Metrics YAML file written by a benchmark run"
    ),
):
    """Print a saved benchmark report and its aggregate metrics."""
    if not metrics_file.exists():
        console.print(f"[red]✗ Error: Metrics file not found: {metrics_file}[/red]")
        raise typer.Exit(1)

    try:
        errors = load_metrics(metrics_file)
    except (yaml.YAMLError, KeyError, TypeError, AttributeError) as e:
        console.print(f"[red]✗ Error loading metrics file: {escape(str(e))}[/red]")
        raise typer.Exit(1)

    if not errors:
        console.print(f"[yellow]No sequence in {metrics_file}[/yellow]")
        return

    for name, seq_errors in errors.items():
        print_sequence_errors(console, name, seq_errors)
    print_summary(console, finalize_summary(errors), show_timing=False)


def main():
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
