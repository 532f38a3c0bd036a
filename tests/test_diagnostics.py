import logging

from freezegun import freeze_time

from certstamp.diagnostics import (
    FileDiagnosticLog,
    LoggerDiagnosticLog,
    MemoryDiagnosticLog,
)


@freeze_time('2020-08-01 10:20:30')
def test_file_log_format():
    log = FileDiagnosticLog('diag.txt')
    log.record('Something went wrong')
    with open('diag.txt', 'r', encoding='utf-8') as inf:
        assert inf.read() == '01.08.2020 10:20:30 Something went wrong\n'


def test_file_log_appends():
    log = FileDiagnosticLog('diag.txt')
    with freeze_time('2020-08-01 10:20:30'):
        log.record('first')
    with freeze_time('2021-12-31 23:59:59'):
        # another instance writing to the same file
        FileDiagnosticLog('diag.txt').record('second')
    with open('diag.txt', 'r', encoding='utf-8') as inf:
        lines = inf.read().splitlines()
    assert lines == [
        '01.08.2020 10:20:30 first',
        '31.12.2021 23:59:59 second',
    ]


def test_file_log_default_path():
    log = FileDiagnosticLog()
    assert log.path == 'log.txt'
    log.record('hello')
    with open('log.txt', 'r', encoding='utf-8') as inf:
        assert inf.read().endswith(' hello\n')


def test_logger_log(caplog):
    log = LoggerDiagnosticLog(logging.getLogger('certstamp.test'))
    with caplog.at_level(logging.ERROR, logger='certstamp.test'):
        log.record('Something went wrong')
    assert caplog.record_tuples == [
        ('certstamp.test', logging.ERROR, 'Something went wrong')
    ]


def test_memory_log():
    log = MemoryDiagnosticLog()
    log.record('Document cannot be signed')
    assert log.messages == ['Document cannot be signed']
    assert 'cannot be signed' in log
    assert 'exported' not in log
