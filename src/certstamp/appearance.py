"""
Visible signature stamp.

The stamp is an image stretched over the signature field's rectangle. It is
rendered as the appearance stream of the signature widget, so the rectangle
registered for the signature and the one covered by the image coincide.
"""

import logging

from PIL import Image
from pyhanko.pdf_utils import layout
from pyhanko.pdf_utils.images import PdfImage
from pyhanko.sign import fields
from pyhanko.stamp import StaticStampStyle

from .request import StampRect

__all__ = ['SIGNATURE_FIELD_NAME', 'image_stamp_style', 'signature_field_spec']

logger = logging.getLogger(__name__)

SIGNATURE_FIELD_NAME = 'Signature1'

IMAGE_LAYOUT = layout.SimpleBoxLayoutRule(
    x_align=layout.AxisAlignment.ALIGN_MID,
    y_align=layout.AxisAlignment.ALIGN_MID,
    margins=layout.Margins(),
    inner_content_scaling=layout.InnerScaling.STRETCH_FILL,
)


def image_stamp_style(image_path: str) -> StaticStampStyle:
    """
    Build a stamp style that renders the given image, and nothing else.

    :param image_path:
        Path to a bitmap image readable by Pillow.
    """
    img = Image.open(image_path)
    logger.debug(
        f"Using {image_path} ({img.width}x{img.height}, {img.mode}) as stamp"
    )
    return StaticStampStyle(
        background=PdfImage(img),
        background_layout=IMAGE_LAYOUT,
        background_opacity=1.0,
        border_width=0,
    )


def signature_field_spec(
    rect: StampRect, page_ix: int, media_box
) -> fields.SigFieldSpec:
    """
    Specification for the signature field that carries the stamp.

    :param rect:
        Rectangle of the appearance region.
    :param page_ix:
        Zero-based index of the page holding the field.
    :param media_box:
        Media box of that page, used to position the rectangle.
    """
    return fields.SigFieldSpec(
        sig_field_name=SIGNATURE_FIELD_NAME,
        on_page=page_ix,
        box=rect.pdf_box(media_box),
    )
