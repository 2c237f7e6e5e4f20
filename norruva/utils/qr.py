from io import BytesIO
import qrcode
from norruva.core.config import settings


PASSPORT_PATH_PREFIX = "/passport"


def passport_url(product_id: str) -> str:
    return f"{settings.public_url}{PASSPORT_PATH_PREFIX}/{product_id}"


def generate_qr_png(data: str) -> bytes:
    """
    Generates a QR code for the given data and returns the PNG bytes.
    Nothing is written to disk.
    """
    qr = qrcode.QRCode(
        version=1,
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=10,
        border=4,
    )
    qr.add_data(data)
    qr.make(fit=True)

    img = qr.make_image(fill_color="black", back_color="white")

    buffer = BytesIO()
    img.save(buffer)
    return buffer.getvalue()
