import sys
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

import rich.traceback
import typer
from PIL import UnidentifiedImageError

from palred import file_utils, legend, palette_tools
from palred.clustering import KMeans
from palred.color_map import create_color_map
from palred.errors import ClusteringStopped, ColorReductionError
from palred.raster import new_output_raster
from palred.reduction import run_kmeans_clustering
from palred.settings import PRESETS, resolve_settings


class OutputFile(Enum):
    REDUCED_IMAGE = "reduced_image"
    PALETTE_LEGEND = "palette_legend"
    COLOR_INDICES = "color_indices"


OUTPUT_FILE_BASENAMES: Dict[OutputFile, str] = {
    OutputFile.REDUCED_IMAGE: "reduced.png",
    OutputFile.PALETTE_LEGEND: "palette-legend.png",
    OutputFile.COLOR_INDICES: "color-indices.npz",
}


class EchoObserver:
    """Prints clustering progress at every yield point."""

    def __init__(self):
        self.updates = 0

    def on_update(self, kmeans: KMeans) -> None:
        self.updates += 1
        typer.echo(
            f"  iteration {kmeans.current_iteration}: "
            f"delta {kmeans.current_delta_distance_difference:.4f}, "
            f"inertia {kmeans.inertia:.4f}"
        )


def validate_output_dir(
    output_dir: Path, overwrite: bool = False, expect: Optional[List[OutputFile]] = None,
) -> Dict[OutputFile, Path]:
    paths = {key: output_dir / name for key, name in OUTPUT_FILE_BASENAMES.items()}
    if not overwrite and expect:
        clobbered = [str(paths[key]) for key in expect if paths[key].exists()]
        if clobbered:
            typer.secho("Error: Files already exist:", fg=typer.colors.RED)
            for path_str in clobbered:
                typer.secho(f"  {path_str}", fg=typer.colors.RED)
            typer.secho("Use --yes (-y) to overwrite.", fg=typer.colors.YELLOW)
            raise typer.Exit(code=1)
    return paths


def palreduce_cli(
    input_path: Path = typer.Argument(
        ...,
        help="Input image file (e.g., image.png).",
        metavar="INPUT_FILE",
        exists=True, file_okay=True, dir_okay=False, readable=True, resolve_path=True,
    ),
    output_dir: Path = typer.Argument(
        ...,
        help="Directory for output files. Will be created if it doesn't exist.",
        metavar="OUTPUT_DIRECTORY",
        file_okay=False, dir_okay=True, resolve_path=True,
    ),
    # --- Clustering Options ---
    preset: Optional[str] = typer.Option(
        None, help=f"Preset complexity level: {', '.join(PRESETS)}."
    ),
    num_colors: Optional[int] = typer.Option(
        None, "--num-colors", "-k", help="Number of color clusters. Default: 16."
    ),
    color_space: Optional[str] = typer.Option(
        None, "--color-space", help="Clustering color space: rgb, hsl or lab. Default: rgb."
    ),
    min_delta: Optional[float] = typer.Option(
        None, "--min-delta",
        help="Stop when the centroids move less than this in total during one step. Default: 1.0."
    ),
    seed: Optional[int] = typer.Option(
        None, "--seed", help="Random seed for centroid initialisation. Default: $PALREDUCE_SEED or 0."
    ),
    init: Optional[str] = typer.Option(
        None, "--init", help="Centroid initialisation: random or kmeans++. Default: random."
    ),
    max_iterations: Optional[int] = typer.Option(
        None, "--max-iterations", min=1, help="Give up if not converged after this many iterations."
    ),
    max_seconds: Optional[float] = typer.Option(
        None, "--max-seconds", help="Give up if not converged after this many seconds."
    ),
    # --- Palette Restriction Options ---
    palette_from: Optional[Path] = typer.Option(
        None, "--palette-from", help="Restrict output colors to a palette extracted from this image.",
        exists=True, file_okay=True, dir_okay=False, readable=True, resolve_path=True,
    ),
    restrict_colors: int = typer.Option(
        24, "--restrict-colors", min=1, help="Number of colors to extract with --palette-from. Default: 24."
    ),
    # --- Output Options ---
    skip_legend: bool = typer.Option(False, "--skip-legend", help="Skip generating the palette legend."),
    save_indices: bool = typer.Option(
        False, "--save-indices", help="Also write the color index grid and palette as .npz."
    ),
    swatch_size: int = typer.Option(40, "--swatch-size", min=10, help="Legend swatch size. Default: 40px."),
    font_path: Optional[Path] = typer.Option(
        None, "--font-path", help="Path to a .ttf font file for the legend.",
        exists=True, file_okay=True, dir_okay=False, readable=True, resolve_path=True,
    ),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Do not report clustering progress."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Overwrite existing files."),
):
    """
    Reduce the colors of an image with k-means clustering.
    """
    command_line_str = " ".join(sys.argv)
    output_dir.mkdir(parents=True, exist_ok=True)

    expected: List[OutputFile] = [OutputFile.REDUCED_IMAGE]
    if not skip_legend:
        expected.append(OutputFile.PALETTE_LEGEND)
    if save_indices:
        expected.append(OutputFile.COLOR_INDICES)
    output_paths = validate_output_dir(output_dir, overwrite=yes, expect=expected)

    restrictions = None
    if palette_from:
        try:
            extracted = palette_tools.extract_palette_from_image(str(palette_from), max_colors=restrict_colors)
        except (OSError, UnidentifiedImageError) as e:
            typer.secho(f"Error extracting palette from {palette_from}: {e}", fg=typer.colors.RED)
            raise typer.Exit(code=1)
        restrictions = [tuple(int(c) for c in color) for color in extracted]
        typer.echo(f"Restricting output to {len(restrictions)} colors from '{palette_from.name}'.")

    try:
        settings = resolve_settings(
            preset,
            kmeans_nr_of_clusters=num_colors,
            kmeans_clustering_color_space=color_space,
            kmeans_min_delta_difference=min_delta,
            random_seed=seed,
            kmeans_init=init,
            max_iterations=max_iterations,
            max_seconds=max_seconds,
            kmeans_color_restrictions=restrictions,
        )
    except ColorReductionError as e:
        typer.secho(f"Error: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    if preset:
        typer.echo(f"Applying preset complexity: '{preset}'")
    typer.echo(
        f"Clustering into {settings.kmeans_nr_of_clusters} colors in "
        f"{settings.kmeans_clustering_color_space.value.upper()} space "
        f"(min delta {settings.kmeans_min_delta_difference})."
    )

    try:
        raster = file_utils.load_raster(input_path)
    except (OSError, UnidentifiedImageError) as e:
        typer.secho(f"Error opening image {input_path}: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    output = new_output_raster(raster)
    observer = None if quiet else EchoObserver()
    try:
        kmeans = run_kmeans_clustering(raster, output, settings, observer)
    except ClusteringStopped as e:
        typer.secho(f"Clustering stopped: {e}", fg=typer.colors.YELLOW)
        raise typer.Exit(code=1)
    except ColorReductionError as e:
        typer.secho(f"Error: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.echo(f"Converged after {kmeans.current_iteration} iterations.")

    color_map = create_color_map(output)
    num_output_colors = len(color_map.colors_by_index)
    reduced_path = output_paths[OutputFile.REDUCED_IMAGE]
    file_utils.save_raster_png(
        output,
        reduced_path,
        command_line_invocation=command_line_str,
        additional_metadata={
            "FileType": "Reduced Image",
            "SourceImage": str(input_path),
            "Clusters": str(settings.kmeans_nr_of_clusters),
            "ColorSpace": settings.kmeans_clustering_color_space.value,
            "Iterations": str(kmeans.current_iteration),
            "PaletteColors": str(num_output_colors),
        }
    )
    typer.echo(f"Reduced image ({num_output_colors} colors) saved to: {reduced_path}")

    if not skip_legend:
        legend_image = legend.create_legend_image(
            color_map.colors_by_index,
            font_path=str(font_path) if font_path else None,
            swatch_size=swatch_size,
        )
        legend_path = output_paths[OutputFile.PALETTE_LEGEND]
        file_utils.save_raster_png(
            legend_image,
            legend_path,
            command_line_invocation=command_line_str,
            additional_metadata={"FileType": "Palette Legend", "PaletteColors": str(num_output_colors)}
        )
        typer.echo(f"Palette legend saved to: {legend_path}")

    if save_indices:
        indices_path = file_utils.save_index_grid(color_map, output_paths[OutputFile.COLOR_INDICES])
        typer.echo(f"Color indices saved to: {indices_path}")

    typer.secho("\nProcessing complete!", fg=typer.colors.GREEN)
    typer.echo(f"Outputs in: {output_dir.resolve()}")


def main():
    rich.traceback.install(show_locals=False, suppress=[typer])
    typer.run(palreduce_cli)


if __name__ == "__main__":
    main()
