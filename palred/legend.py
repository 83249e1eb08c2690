from PIL import Image, ImageDraw, ImageFont
import os


def _load_font(font_path, font_size):
    if font_path and os.path.isfile(font_path):
        try:
            return ImageFont.truetype(font_path, font_size)
        except IOError:
            pass  # fall through to the default font
    return ImageFont.load_default(size=font_size)


def create_legend_image(palette, font_path=None, font_size=14, swatch_size=40, padding=10):
    """
    Renders the palette of a color map as a strip of numbered swatches.

    Swatch n shows colors_by_index[n] labelled with n, so the legend can be
    read against the index grid of the same color map.

    Args:
        palette (list or np.ndarray): RGB triples in palette index order.
        font_path (str, optional): Path to a TTF font file.
        font_size (int): Font size for the index numbers.
        swatch_size (int): Width/height of each swatch.
        padding (int): Space around and between swatches.

    Returns:
        PIL.Image.Image: The legend, or None for an empty palette.
    """
    num_colors = len(palette)
    if num_colors == 0:
        return None

    width = (swatch_size * num_colors) + (padding * (num_colors + 1))
    height = swatch_size + (2 * padding)
    image = Image.new("RGB", (width, height), color=(255, 255, 255))
    draw = ImageDraw.Draw(image)
    font = _load_font(font_path, font_size)

    for idx, color in enumerate(palette):
        fill = tuple(int(c) for c in (color.tolist() if hasattr(color, "tolist") else color))[:3]
        x0 = padding + idx * (swatch_size + padding)
        y0 = padding
        draw.rectangle([x0, y0, x0 + swatch_size, y0 + swatch_size], fill=fill, outline=(0, 0, 0))

        # dark text on light swatches, light text on dark ones
        luma = 0.299 * fill[0] + 0.587 * fill[1] + 0.114 * fill[2]
        text_fill = (0, 0, 0) if luma > 128 else (255, 255, 255)

        text = str(idx)
        left, top, right, bottom = draw.textbbox((0, 0), text, font=font)
        text_x = x0 + (swatch_size - (right - left)) / 2.0 - left
        text_y = y0 + (swatch_size - (bottom - top)) / 2.0 - top
        draw.text((text_x, text_y), text, fill=text_fill, font=font)

    return image
