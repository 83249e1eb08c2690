import re
from pathlib import Path
from typing import Dict, Optional, Union

import numpy as np
from PIL import Image, PngImagePlugin

from palred.color_map import ColorMapResult
from palred.raster import as_raster

PNG_METADATA_PREFIX = "palreduce:"
SOFTWARE_TAG = "palreduce k-means color reduction"


def load_raster(path) -> np.ndarray:
    """Open an image file and return it as an (H, W, 4) uint8 RGBA raster."""
    with Image.open(path) as image:
        return np.array(image.convert("RGBA"), dtype=np.uint8)


def raster_to_image(raster: np.ndarray) -> Image.Image:
    return Image.fromarray(as_raster(raster))


def _clean_metadata_key(key: str) -> str:
    key_clean = re.sub(r'\s+', '_', key)
    key_clean = re.sub(r'[^a-zA-Z0-9_.-]', '', key_clean)
    if not re.match(r'^[a-zA-Z_]', key_clean):  # must start with letter or underscore
        key_clean = "palreduce_" + key_clean
    # tEXt keywords are limited to 79 bytes, leave room for the prefix
    return key_clean[:68]


def save_raster_png(
    image_to_save: Union[Image.Image, np.ndarray],
    output_path: Path,
    command_line_invocation: Optional[str] = None,
    additional_metadata: Optional[Dict[str, str]] = None
) -> Path:
    """
    Saves a raster or PIL Image as a PNG file, embedding the given metadata as
    tEXt chunks under the "palreduce:" prefix.
    """
    output_path = Path(output_path)
    if not output_path.parent.exists():
        output_path.parent.mkdir(parents=True, exist_ok=True)

    if isinstance(image_to_save, np.ndarray):
        image_to_save = raster_to_image(image_to_save)

    png_info = PngImagePlugin.PngInfo()
    png_info.add_text("Software", SOFTWARE_TAG)
    if command_line_invocation:
        png_info.add_text(f"{PNG_METADATA_PREFIX}command_line", command_line_invocation)
    if additional_metadata:
        for key, value in additional_metadata.items():
            png_info.add_text(f"{PNG_METADATA_PREFIX}{_clean_metadata_key(key)}", str(value))

    image_to_save.save(output_path, "PNG", pnginfo=png_info)
    return output_path


def read_png_metadata(path) -> Dict[str, str]:
    """Return the palreduce metadata of a PNG, keys without their prefix."""
    with Image.open(path) as img:
        info = dict(getattr(img, "text", {}) or img.info)
    return {
        key[len(PNG_METADATA_PREFIX):]: str(value)
        for key, value in info.items()
        if isinstance(key, str) and key.startswith(PNG_METADATA_PREFIX)
    }


def save_index_grid(color_map: ColorMapResult, output_path: Path) -> Path:
    """Write the index grid and palette of a color map to a compressed .npz file."""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    palette = np.asarray(color_map.colors_by_index, dtype=np.uint8).reshape(-1, 3)
    with open(output_path, "wb") as f:
        np.savez_compressed(f, indices=color_map.img_color_indices, palette=palette)
    return output_path
