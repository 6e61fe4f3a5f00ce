"""
Share links and QR codes for published polls, feedback forms and questionnaires.

Every published item is reachable at ``/<kind>/<id>``; the absolute link is
also encoded as a QR image so it can be printed or shown on a screen.
"""

import base64
from dataclasses import dataclass
import io
import logging

from django.conf import settings
import qrcode
from qrcode.image.pil import PilImage

logger = logging.getLogger(__name__)

SHARE_KINDS = ("polls", "feedback", "questionnaires")


@dataclass
class ShareLink:
    kind: str
    item_id: str
    path: str
    url: str
    qr_code: str  # data URI, empty when the image could not be generated


def share_path(kind: str, item_id: str) -> str:
    if kind not in SHARE_KINDS:
        raise ValueError(f"Unknown share kind: {kind}")
    return f"/{kind}/{item_id}"


def qr_code_data_uri(url: str, size: int = 200) -> str:
    """Encode ``url`` as a ``size`` x ``size`` PNG QR code data URI.

    Returns an empty string when the image cannot be produced; a missing QR
    code never blocks publishing.
    """
    try:
        qr = qrcode.QRCode(
            version=None,
            error_correction=qrcode.constants.ERROR_CORRECT_M,
            box_size=10,
            border=2,
        )
        qr.add_data(url)
        qr.make(fit=True)
        img: PilImage = qr.make_image(fill_color="black", back_color="white")

        buffer = io.BytesIO()
        img.resize((size, size)).save(buffer, format="PNG")
    except Exception as e:
        logger.error(f"Failed to generate QR code for URL {url}: {e}")
        return ""
    encoded = base64.b64encode(buffer.getvalue()).decode("utf-8")
    return f"data:image/png;base64,{encoded}"


def build_share_link(
    kind: str, item_id: str, base_url: str | None = None, qr_size: int = 200
) -> ShareLink:
    path = share_path(kind, item_id)
    url = f"{(base_url or settings.SITE_URL).rstrip('/')}{path}"
    return ShareLink(
        kind=kind,
        item_id=item_id,
        path=path,
        url=url,
        qr_code=qr_code_data_uri(url, size=qr_size),
    )
