import base64
import binascii
from io import BytesIO

from PIL import Image, UnidentifiedImageError

from errors import ValidationError


def is_image_data_uri(value):
    return isinstance(value, str) and value.startswith('data:image/') and ',' in value


def thumbnail_data_uri(data_uri, max_size=(800, 800)):
    """Decode a base64 image data URI, shrink it to fit ``max_size`` and
    return it re-encoded as a PNG data URI."""
    try:
        header, encoded = data_uri.split(",", 1)
        if ';base64' not in header:
            raise ValidationError("Image data must be base64 encoded")
        binary_data = base64.b64decode(encoded, validate=True)
        img = Image.open(BytesIO(binary_data))
        img.thumbnail(max_size)

        buffer = BytesIO()
        img.save(buffer, format="PNG")
    except (ValueError, binascii.Error, UnidentifiedImageError, OSError) as e:
        raise ValidationError("Failed to process image") from e

    processed_image = base64.b64encode(buffer.getvalue()).decode('utf-8')
    return f"data:image/png;base64,{processed_image}"
