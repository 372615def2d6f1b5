"""Terminal rendering of scraped batches."""

from __future__ import annotations

from .metadata import CATALOG
from .model import MetricsBatch, metric_to_dict


def summarize_batch(batch: MetricsBatch) -> dict[str, int]:
    """Count data points per metric name."""
    counts: dict[str, int] = {}
    for metric in batch.metrics:
        counts[metric.name] = counts.get(metric.name, 0) + len(metric.data.data_points)
    return counts


def _fmt_value(value: int | float) -> str:
    if isinstance(value, float):
        return f"{value:.3f}"
    return str(value)


def print_batch(batch: MetricsBatch, *, max_rows: int = 200) -> None:
    """Pretty-print every data point of *batch* using Rich."""
    from rich.console import Console
    from rich.table import Table

    table = Table(title="Host metrics", show_lines=False)
    table.add_column("Metric", style="green", width=30)
    table.add_column("Type", style="magenta", width=6)
    table.add_column("Unit", width=12)
    table.add_column("Attributes", width=36)
    table.add_column("Value", justify="right", style="cyan", width=18)
    table.add_column("Resource", width=24)

    rows = 0
    total = 0
    for entry in batch.entries:
        resource = ""
        if entry.resource:
            resource = f"{entry.resource.get('process.executable.name', '')} ({entry.resource.get('process.pid', '')})"
        for metric in entry.metrics:
            data = metric_to_dict(metric)
            for point in data["data_points"]:
                total += 1
                if rows >= max_rows:
                    continue
                attributes = ", ".join(f"{k}={v}" for k, v in point["attributes"].items())
                table.add_row(
                    data["name"],
                    data["type"],
                    data["unit"],
                    attributes,
                    _fmt_value(point["value"]),
                    resource,
                )
                rows += 1

    console = Console()
    console.print(table)
    if total > max_rows:
        console.print(f"  ... ({total - max_rows} more data points)")


def print_catalog() -> None:
    """List every metric the scrapers can emit."""
    from rich.console import Console
    from rich.table import Table

    table = Table(title="Metric catalog")
    table.add_column("Metric", style="green")
    table.add_column("Type", style="magenta")
    table.add_column("Unit")
    table.add_column("Attributes")
    table.add_column("Description")

    for name, definition in sorted(CATALOG.items()):
        table.add_row(
            name,
            definition.shape.value,
            definition.unit,
            ", ".join(definition.attributes),
            definition.description,
        )
    Console().print(table)
