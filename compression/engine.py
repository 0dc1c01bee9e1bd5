"""Image codec wrapper.

compress() is a pure bytes -> bytes function; metadata such as EXIF is not
carried into the output.
"""
import io

from PIL import Image

PIL_FORMATS = {
    "image/jpeg": "JPEG",
    "image/png": "PNG",
    "image/webp": "WEBP",
    "image/avif": "AVIF",
}


class UnsupportedFormat(ValueError):
    pass


def clamp_quality(quality) -> int:
    return max(1, min(100, int(round(quality))))


def png_compress_level(quality: int) -> int:
    # zlib level 0-9, inverse of quality
    return round((1 - quality / 100) * 9)


def compress(data: bytes, mime_type: str, quality: int) -> bytes:
    fmt = PIL_FORMATS.get(mime_type)
    if fmt is None:
        raise UnsupportedFormat(f"Unsupported MIME type: {mime_type}")

    q = clamp_quality(quality)

    with Image.open(io.BytesIO(data)) as img:
        img.load()
        if fmt == "JPEG":
            if img.mode not in ("RGB", "L", "CMYK"):
                img = img.convert("RGB")
            params = {"quality": q, "optimize": True}
        elif fmt == "PNG":
            params = {"compress_level": png_compress_level(q)}
        else:
            params = {"quality": q}

        out = io.BytesIO()
        img.save(out, format=fmt, **params)
    return out.getvalue()
