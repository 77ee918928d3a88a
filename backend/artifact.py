import base64

import cv2  # type: ignore
import numpy as np  # type: ignore
import qrcode
from qrcode.constants import ERROR_CORRECT_M
from qrcode.exceptions import DataOverflowError

from backend.config import ARTIFACT_DARK, ARTIFACT_LIGHT, ARTIFACT_MARGIN, ARTIFACT_WIDTH
from backend.errors import EncodingFailure

PNG_DATA_URL_PREFIX = "data:image/png;base64,"


def _hex_to_bgr(color: str) -> tuple[int, int, int]:
    value = (color or "").strip().lstrip("#")
    if len(value) != 6:
        raise EncodingFailure(f"Unsupported color {color!r}; expected #RRGGBB.")
    try:
        r, g, b = (int(value[i:i + 2], 16) for i in (0, 2, 4))
    except ValueError as e:
        raise EncodingFailure(f"Unsupported color {color!r}; expected #RRGGBB.") from e
    return b, g, r


def _qr_modules(data: str) -> np.ndarray:
    qr = qrcode.QRCode(error_correction=ERROR_CORRECT_M, border=0)
    try:
        qr.add_data(data)
        qr.make(fit=True)
    except (DataOverflowError, ValueError) as e:
        raise EncodingFailure(f"Could not encode QR data: {e}") from e
    return np.array(qr.get_matrix(), dtype=bool)


def render_image(
    url: str,
    *,
    width: int = ARTIFACT_WIDTH,
    margin: int = ARTIFACT_MARGIN,
    dark: str = ARTIFACT_DARK,
    light: str = ARTIFACT_LIGHT,
) -> np.ndarray:
    """
    Returns a BGR image of the QR code for `url`.

    `margin` is the quiet zone in modules. Modules are scaled by the
    largest whole factor that fits `width`, then the image is padded with
    the light color to exactly `width` pixels (never smaller than one pixel
    per module).
    """
    if not url:
        raise EncodingFailure("Cannot encode an empty URL.")
    if margin < 0:
        raise EncodingFailure("Margin must be non-negative.")

    dark_bgr = _hex_to_bgr(dark)
    light_bgr = _hex_to_bgr(light)

    modules = np.pad(_qr_modules(url), margin, mode="constant", constant_values=False)
    size = modules.shape[0]
    scale = max(1, int(width) // size)

    palette = np.array([light_bgr, dark_bgr], dtype=np.uint8)
    img = palette[modules.astype(np.uint8)]

    try:
        img = cv2.resize(img, (size * scale, size * scale), interpolation=cv2.INTER_NEAREST)
        extra = max(0, int(width) - size * scale)
        if extra:
            before = extra // 2
            after = extra - before
            img = cv2.copyMakeBorder(
                img, before, after, before, after,
                cv2.BORDER_CONSTANT, value=tuple(int(c) for c in light_bgr),
            )
    except cv2.error as e:
        raise EncodingFailure(f"Could not render QR image: {e}") from e
    return img


def render_png(url: str, **options) -> bytes:
    img = render_image(url, **options)
    try:
        ok, buf = cv2.imencode(".png", img)
    except cv2.error as e:
        raise EncodingFailure(f"PNG encoding failed: {e}") from e
    if not ok:
        raise EncodingFailure("PNG encoding failed.")
    return buf.tobytes()


def encode_artifact(url: str, **options) -> str:
    """Renders `url` as a QR code and returns it as a PNG data URL."""
    png = render_png(url, **options)
    return PNG_DATA_URL_PREFIX + base64.b64encode(png).decode("ascii")
