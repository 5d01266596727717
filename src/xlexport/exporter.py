import os
from typing import Any

from loguru import logger

from .coercion import create_coercion_context
from .layout import RowEmitter
from .spec import SpecExportOptions, SpecExportReport
from .steps import SpecPipelineState, run_post_process
from .util import generate_records
from .workbook import XlsxWorkbook, get_or_create_worksheet, open_workbook


def export(
    records: Any,
    destination: XlsxWorkbook | os.PathLike[str] | str,
    options: SpecExportOptions | None = None,
    **overrides: Any,
) -> SpecExportReport:
    """
    Write ``records`` into one worksheet of an ``.xlsx`` workbook.

    Parameters
    ----------
    records
        Mappings, dataclasses, namedtuples, plain objects, bare scalars, or a
        polars DataFrame/LazyFrame/Series. Consumed in a single pass.
    destination
        A path (opened or created, saved and closed here) or an open
        :class:`XlsxWorkbook` handle (left open and unsaved for the caller).
    options
        Export options; keyword ``overrides`` are applied on top via
        :meth:`SpecExportOptions.with_`.

    Returns
    -------
    SpecExportReport
        Sheet name, data range, header, row count and non-fatal warnings.
        With ``pass_thru`` the open handle is in ``report.workbook`` and the
        file is not saved.

    Raises
    ------
    ExportConfigurationConflict
        Before anything is opened or written.
    ExportWriteError
        A cell could not be written; nothing is saved.
    ExportPasswordError
        Protection could not be applied; nothing is saved.
    """
    cfg = options or SpecExportOptions()
    if overrides:
        cfg = cfg.with_(**overrides)
    cfg.validate()

    if isinstance(destination, XlsxWorkbook):
        if destination.if_closed:
            raise ValueError(f"Workbook {destination.path} is already closed.")
        book, if_owned = destination, False
    else:
        book, if_owned = open_workbook(destination), True

    report = SpecExportReport(sheet_name=cfg.worksheet_name, path=book.path)
    try:
        ws = get_or_create_worksheet(
            book, cfg.worksheet_name, clear=cfg.clear_sheet, move=cfg.move, report=report
        )
        report.sheet_name = ws.title

        emitter = RowEmitter(
            ws,
            options=cfg,
            context=create_coercion_context(cfg),
            report=report,
            path=book.path,
        )
        for _record in generate_records(records):
            emitter.emit(_record)

        report.data_range = emitter.finish()
        report.header = tuple(emitter.header or ())
        report.rows_written = emitter.n_rows_written
        logger.debug(
            f"[{ws.title}] Wrote {report.rows_written} row(s) at {report.address}"
        )

        run_post_process(
            SpecPipelineState(
                ws=ws,
                options=cfg,
                report=report,
                data_range=report.data_range,
                header=report.header,
            )
        )

        if if_owned and not cfg.pass_thru:
            book.save()
            logger.success(f"Exported [{ws.title}] to {book.path}")
    except BaseException:
        if if_owned:
            book.close()
        raise

    if if_owned and not cfg.pass_thru:
        book.close()
    else:
        report.workbook = book
    return report
