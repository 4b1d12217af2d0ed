"""
Image storage.

Images arrive as ``data:`` URLs (browser uploads, generated images, fetched
product photos) and are written under the configured upload folder. They are
served back by the app at ``/uploads/<folder>/<name>``.
"""
import base64
import binascii
import logging
import os
import random
import re
import string
import time
from typing import Callable, Optional, Tuple
from urllib.parse import urlparse

from werkzeug.utils import secure_filename

logger = logging.getLogger(__name__)

DATA_URL_PATTERN = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?P<params>(;[^;,]+)*?),(?P<data>.*)$", re.DOTALL)
ALLOWED_FOLDERS = {"products", "collections", "branding", "generated", "designs"}


class MediaError(ValueError):
    pass


def decode_data_url(data_url: str) -> Tuple[str, bytes]:
    match = DATA_URL_PATTERN.match(str(data_url or "").strip())
    if not match:
        raise MediaError("Images must be sent as a data URL.")
    mime_type = match.group("mime") or "application/octet-stream"
    if not mime_type.startswith("image/"):
        raise MediaError("Only image uploads are supported.")
    payload = match.group("data")
    try:
        if ";base64" in (match.group("params") or ""):
            content = base64.b64decode(payload, validate=True)
        else:
            content = payload.encode("utf-8")
    except (binascii.Error, ValueError) as exc:
        raise MediaError("The image data could not be decoded.") from exc
    if not content:
        raise MediaError("The uploaded image is empty.")
    return mime_type, content


def random_filename() -> str:
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=11))
    return f"{int(time.time() * 1000)}-{suffix}.jpg"


class MediaStorage:
    def __init__(self, root: str, public_base_url: str = ""):
        self.root = root
        self.public_base_url = public_base_url.rstrip("/")

    def public_url(self, relative_path: str) -> str:
        return f"{self.public_base_url}/uploads/{relative_path}"

    def upload_image(self, data_url: str, folder: str, filename: Optional[str] = None) -> str:
        if folder not in ALLOWED_FOLDERS:
            raise MediaError(f"Unknown upload folder: {folder}")
        _, content = decode_data_url(data_url)

        name = secure_filename(filename or "") or random_filename()
        directory = os.path.join(self.root, folder)
        os.makedirs(directory, exist_ok=True)
        destination = os.path.join(directory, name)
        if os.path.exists(destination):
            stem, extension = os.path.splitext(name)
            name = f"{stem}-{random_filename()[:-4]}{extension}"
            destination = os.path.join(directory, name)

        try:
            with open(destination, "wb") as handle:
                handle.write(content)
        except OSError as exc:
            raise MediaError("We could not store the uploaded image. Please try again.") from exc

        return self.public_url(f"{folder}/{name}")

    def upload_image_with_generated_name(
        self,
        data_url: str,
        folder: str,
        filename_context: Optional[str],
        name_generator: Callable[[str], str],
    ) -> str:
        filename = None
        if filename_context:
            try:
                filename = name_generator(filename_context)
            except Exception as exc:
                logger.warning("Failed to generate filename, falling back to random: %s", exc)
        return self.upload_image(data_url, folder, filename)

    def delete_image(self, url: str) -> bool:
        path = urlparse(str(url or "")).path
        marker = "/uploads/"
        if marker not in path:
            return False
        relative = path.split(marker, 1)[1]
        target = os.path.realpath(os.path.join(self.root, relative))
        if not target.startswith(os.path.realpath(self.root) + os.sep):
            return False
        try:
            os.remove(target)
        except FileNotFoundError:
            return False
        return True
