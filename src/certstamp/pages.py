"""
Copy the pages of a source document into a new one.

Every source page is imported as a form XObject, and drawn onto a fresh page
with the same media box. The result is a flat document without the source's
form fields, annotations or outline, ready to receive a certification
signature.
"""

import logging
from typing import Optional

from pyhanko.pdf_utils import generic
from pyhanko.pdf_utils.generic import pdf_name
from pyhanko.pdf_utils.reader import PdfFileReader
from pyhanko.pdf_utils.writer import BasePdfFileWriter, PageObject

from .diagnostics import DiagnosticLog
from .errors import PageImportError

__all__ = ['copy_pages', 'copy_page', 'page_media_box']

logger = logging.getLogger(__name__)

_IMPORTED_PAGE_NAME = '/ImportedPage'


def _page_rotation(reader: PdfFileReader, page_ix: int) -> Optional[int]:
    page_ref, _ = reader.find_page_for_modification(page_ix)
    node = page_ref.get_object()
    # /Rotate is inheritable
    while True:
        try:
            return int(node['/Rotate'])
        except KeyError:
            pass
        try:
            node = node['/Parent']
        except KeyError:
            return None


def copy_page(reader: PdfFileReader, writer: BasePdfFileWriter, page_ix: int):
    """
    Import one page from ``reader`` and append it to ``writer``.

    :param reader:
        Reader for the source document.
    :param writer:
        Writer for the output document.
    :param page_ix:
        Zero-based index of the source page.
    :return:
        A reference to the newly inserted page.
    """
    xobj_ref = writer.import_page_as_xobject(reader, page_ix)
    # the imported XObject's bounding box is the source page's media box
    media_box = xobj_ref.get_object()['/BBox']

    resources = generic.DictionaryObject(
        {
            pdf_name('/XObject'): generic.DictionaryObject(
                {pdf_name(_IMPORTED_PAGE_NAME): xobj_ref}
            )
        }
    )
    contents = generic.StreamObject(
        stream_data=f'q {_IMPORTED_PAGE_NAME} Do Q'.encode('ascii')
    )
    page = PageObject(
        contents=writer.add_object(contents),
        media_box=list(media_box),
        resources=resources,
    )
    rotation = _page_rotation(reader, page_ix)
    if rotation:
        page[pdf_name('/Rotate')] = generic.NumberObject(rotation)
    return writer.insert_page(page)


def copy_pages(
    reader: PdfFileReader,
    writer: BasePdfFileWriter,
    page_count: int,
    *,
    log: DiagnosticLog,
    abort_on_error: bool = False,
) -> int:
    """
    Copy the first ``page_count`` pages of ``reader`` into ``writer``, in
    order.

    A page that fails to import is reported to the diagnostic log and
    skipped, unless ``abort_on_error`` is set.

    :return:
        The number of pages that were copied.
    :raises PageImportError:
        if a page fails to import and ``abort_on_error`` is ``True``.
    """
    copied = 0
    for page_ix in range(page_count):
        try:
            copy_page(reader, writer, page_ix)
            copied += 1
        except Exception as e:
            msg = f"Failed to import page {page_ix + 1}: {e}"
            logger.warning(msg, exc_info=e)
            log.record(msg)
            if abort_on_error:
                raise PageImportError(msg, page_ix=page_ix) from e
    logger.debug(f"Copied {copied} of {page_count} page(s)")
    return copied


def page_media_box(handler, page_ix: int):
    """
    Look up the media box of a page, following inheritance through the page
    tree.

    :param handler:
        A PDF reader or writer.
    :param page_ix:
        Zero-based page index.
    """
    page_ref, _ = handler.find_page_for_modification(page_ix)
    node = page_ref.get_object()
    while True:
        try:
            return [float(v) for v in node['/MediaBox']]
        except KeyError:
            pass
        try:
            node = node['/Parent']
        except KeyError:
            raise PageImportError(
                f"Page {page_ix + 1} has no media box", page_ix=page_ix
            )
