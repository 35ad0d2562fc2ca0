# utils/barcode.py

import io

from barcode import Code128
from barcode.writer import ImageWriter


def barcode_png(barcode_text: str) -> io.BytesIO:
    """
    Render `barcode_text` as a Code128 PNG in memory.
    The stream is rewound and ready to be embedded in a document.
    """
    if not barcode_text:
        raise ValueError("barcode_text must be a non-empty string")

    stream = io.BytesIO()
    Code128(barcode_text, writer=ImageWriter()).write(
        stream,
        options={"module_height": 8.0, "font_size": 8, "quiet_zone": 2.0},
    )
    stream.seek(0)
    return stream
