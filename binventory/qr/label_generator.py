"""
Printable bin labels rendered locally with Pillow, qrcode and python-barcode.
"""
import io
import base64
import logging
from PIL import Image, ImageDraw, ImageFont
from typing import Optional
import barcode
from barcode.errors import BarcodeError
from barcode.writer import ImageWriter

from .rendering import render_pil_image

logger = logging.getLogger(__name__)


def _load_fonts():
    try:
        return (
            ImageFont.truetype('/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf', 20),
            ImageFont.truetype('/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf', 14),
        )
    except (OSError, IOError):
        return ImageFont.load_default(), ImageFont.load_default()


def _fit_text(draw, text: str, font, max_width: int) -> str:
    if draw.textlength(text, font=font) <= max_width:
        return text
    while text and draw.textlength(text + '...', font=font) > max_width:
        text = text[:-1]
    return text + '...'


def render_code128(value: str, width: int, height: int) -> Optional[Image.Image]:
    """Code128 barcode scaled into width x height, or None when the value can't be encoded"""
    try:
        code128 = barcode.get_barcode_class('code128')
        barcode_img = code128(value, writer=ImageWriter()).render({
            'write_text': False,
            'module_width': 0.3,
            'module_height': 12.0,
            'quiet_zone': 2.0,
            'background': 'white',
            'foreground': 'black',
        })
    except BarcodeError as e:
        logger.error(f"Barcode generation failed for '{value}': {str(e)}")
        return None
    return barcode_img.resize((width, height), Image.Resampling.BILINEAR)


def generate_bin_label(
    label: str,
    short_link: str,
    location: Optional[str] = None,
    include_barcode: bool = True,
    width: int = 600,  # 3 inches at 200 DPI
    height: int = 300,
) -> str:
    """
    Render a label with the QR code on the left and the bin label, location
    and an optional Code128 barcode of the label on the right.

    Returns:
        Base64-encoded PNG image as data URL string
    """
    margin = 15
    img = Image.new('RGB', (width, height), color='white')
    draw = ImageDraw.Draw(img)
    font_large, font_small = _load_fonts()

    qr_size = height - 2 * margin
    qr_img = render_pil_image(short_link, size=qr_size, border=1).convert('RGB')
    qr_img = qr_img.resize((qr_size, qr_size), Image.Resampling.NEAREST)
    img.paste(qr_img, (margin, margin))

    text_x = margin * 2 + qr_size
    text_width = width - text_x - margin
    draw.text((text_x, margin), _fit_text(draw, label, font_large, text_width), fill='black', font=font_large)
    if location:
        draw.text((text_x, margin + 30), _fit_text(draw, location, font_small, text_width),
                  fill='black', font=font_small)

    if include_barcode:
        barcode_height = 70
        barcode_img = render_code128(label, text_width, barcode_height)
        if barcode_img is not None:
            img.paste(barcode_img, (text_x, height - margin - barcode_height))

    buffer = io.BytesIO()
    img.save(buffer, format='PNG', optimize=False, compress_level=1)
    image_base64 = base64.b64encode(buffer.getvalue()).decode('utf-8')
    buffer.close()
    img.close()
    return f"data:image/png;base64,{image_base64}"
