# services/pdf_service.py
"""
Turns an uploaded document into an image the vision service accepts.

PDFs are rasterized (first page only) to JPEG; PNG/JPEG/WEBP/GIF images are
passed through unchanged. Any other format Pillow can read (BMP, TIFF, ...) is
re-encoded as JPEG.
"""
import base64
import binascii
import io
import logging
import os
from dataclasses import dataclass

import pypdfium2 as pdfium
from PIL import Image

from certledger.errors import ValidationError

logger = logging.getLogger(__name__)

RENDER_SCALE = 2
JPEG_QUALITY = 90

_MAGIC_TYPES = (
    (b"%PDF", "application/pdf"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"GIF8", "image/gif"),
)

_EXTENSION_TYPES = {
    ".pdf": "application/pdf",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
}

# Pillow format name -> media type the vision service accepts as is.
_PASSTHROUGH_FORMATS = {
    "JPEG": "image/jpeg",
    "PNG": "image/png",
    "GIF": "image/gif",
    "WEBP": "image/webp",
}


@dataclass(frozen=True)
class PreparedDocument:
    image_base64: str
    media_type: str
    page_count: int = 1


def decode_upload(file_base64: str) -> bytes:
    """Decodes a base64 upload, accepting an optional `data:<type>;base64,` prefix."""
    if not isinstance(file_base64, str) or not file_base64.strip():
        raise ValidationError("No file data provided")
    data = file_base64.strip()
    if data.startswith("data:") and "," in data:
        data = data.split(",", 1)[1]
    try:
        raw = base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError("File data is not valid base64.")
    if not raw:
        raise ValidationError("No file data provided")
    return raw


def detect_media_type(raw: bytes, file_name: str = None) -> str:
    for magic, media_type in _MAGIC_TYPES:
        if raw.startswith(magic):
            return media_type
    if raw[:4] == b"RIFF" and raw[8:12] == b"WEBP":
        return "image/webp"
    extension = os.path.splitext(file_name or "")[1].lower()
    return _EXTENSION_TYPES.get(extension, "image/jpeg")


def pdf_to_jpeg(raw: bytes):
    """
    Renders the first page of a PDF to JPEG bytes.
    Returns (jpeg_bytes, page_count). The document is always closed.
    """
    pdf = None
    try:
        pdf = pdfium.PdfDocument(raw)
        page_count = len(pdf)
        if page_count == 0:
            raise ValidationError("The PDF document has no pages.")
        page = pdf[0]
        try:
            pil_image = page.render(scale=RENDER_SCALE).to_pil()
        finally:
            page.close()
        buffer = io.BytesIO()
        pil_image.convert("RGB").save(buffer, format="JPEG", quality=JPEG_QUALITY)
        return buffer.getvalue(), page_count
    except pdfium.PdfiumError as e:
        logger.warning(f"Could not open uploaded PDF: {e}")
        raise ValidationError("The uploaded PDF could not be read.")
    finally:
        if pdf is not None:
            pdf.close()


def image_to_jpeg(raw: bytes) -> bytes:
    try:
        with Image.open(io.BytesIO(raw)) as img:
            buffer = io.BytesIO()
            img.convert("RGB").save(buffer, format="JPEG", quality=JPEG_QUALITY)
    except (OSError, ValueError):
        raise ValidationError("The uploaded image could not be converted.")
    return buffer.getvalue()


def prepare_document(file_base64: str, file_name: str = None) -> PreparedDocument:
    raw = decode_upload(file_base64)
    media_type = detect_media_type(raw, file_name)

    if media_type == "application/pdf":
        jpeg, page_count = pdf_to_jpeg(raw)
        logger.info(f"Rasterized first of {page_count} PDF page(s) for '{file_name}'")
        return PreparedDocument(base64.b64encode(jpeg).decode("ascii"), "image/jpeg", page_count)

    try:
        with Image.open(io.BytesIO(raw)) as img:
            image_format = img.format
            img.verify()
    except Exception:
        raise ValidationError("The uploaded file is not a readable image or PDF.")

    if image_format in _PASSTHROUGH_FORMATS:
        return PreparedDocument(base64.b64encode(raw).decode("ascii"), _PASSTHROUGH_FORMATS[image_format])

    logger.info(f"Re-encoding {image_format} upload '{file_name}' as JPEG")
    return PreparedDocument(base64.b64encode(image_to_jpeg(raw)).decode("ascii"), "image/jpeg")
