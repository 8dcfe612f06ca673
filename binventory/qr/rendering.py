"""
QR code image rendering (SVG / PNG) with the qrcode library.
"""
import base64
import io

import qrcode
import qrcode.image.svg
from qrcode.constants import ERROR_CORRECT_M

QR_SIZE = 300
QR_MARGIN = 4


def build_qr(data: str, border: int = QR_MARGIN) -> qrcode.QRCode:
    qr = qrcode.QRCode(
        version=None,
        error_correction=ERROR_CORRECT_M,
        box_size=10,
        border=border,
    )
    qr.add_data(data)
    qr.make(fit=True)
    return qr


def _fit_box_size(qr: qrcode.QRCode, size: int) -> int:
    modules = qr.modules_count + 2 * qr.border
    return max(1, size // modules)


def render_png(data: str, size: int = QR_SIZE, border: int = QR_MARGIN) -> bytes:
    """PNG bytes roughly `size` pixels wide"""
    qr = build_qr(data, border)
    qr.box_size = _fit_box_size(qr, size)
    img = qr.make_image(fill_color="black", back_color="white")
    buffer = io.BytesIO()
    img.save(buffer, format='PNG')
    return buffer.getvalue()


def render_pil_image(data: str, size: int = QR_SIZE, border: int = QR_MARGIN):
    """Pillow image, for composing printable labels"""
    qr = build_qr(data, border)
    qr.box_size = _fit_box_size(qr, size)
    return qr.make_image(fill_color="black", back_color="white").get_image()


def render_svg(data: str, border: int = QR_MARGIN) -> str:
    qr = build_qr(data, border)
    img = qr.make_image(image_factory=qrcode.image.svg.SvgPathImage)
    return img.to_string(encoding='unicode')


def png_data_url(data: str, size: int = QR_SIZE) -> str:
    encoded = base64.b64encode(render_png(data, size)).decode('ascii')
    return f"data:image/png;base64,{encoded}"
