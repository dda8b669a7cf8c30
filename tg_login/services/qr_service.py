# Renders tg://login URLs as scannable PNG codes.

import base64
import io

import qrcode
from qrcode.constants import ERROR_CORRECT_M


class QRService:
    # Telegram's scanner copes with small codes; medium correction survives screen glare
    BOX_SIZE = 8
    BORDER = 2

    @staticmethod
    def render_png(login_url: str) -> bytes:
        qr = qrcode.QRCode(error_correction=ERROR_CORRECT_M, box_size=QRService.BOX_SIZE, border=QRService.BORDER)
        qr.add_data(login_url)
        qr.make(fit=True)

        out = io.BytesIO()
        qr.make_image().save(out, format="PNG")
        return out.getvalue()

    @staticmethod
    def png_base64(login_url: str) -> str:
        return base64.b64encode(QRService.render_png(login_url)).decode("ascii")

    @staticmethod
    def data_uri(login_url: str) -> str:
        """For inlining in <img src=...>"""
        return f"data:image/png;base64,{QRService.png_base64(login_url)}"
