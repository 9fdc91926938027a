import logging

from zmqimgtransfer.progress import LoggingProgressCallback, ProgressReporter, as_reporter


def test_reporter_without_callback_only_logs(caplog):
    caplog.set_level(logging.INFO, logger="zmqimgtransfer.progress.reporter")
    reporter = ProgressReporter()
    reporter.info("sender started")
    reporter.set_progress(0.5)
    assert "sender started" in caplog.text


def test_reporter_forwards_and_clamps(progress):
    reporter = ProgressReporter(progress)
    reporter.info("receiver waiting")
    reporter.set_progress(1.7)
    reporter.set_progress(-2)

    assert progress.messages == ["receiver waiting"]
    assert progress.fractions == [1.0, 0.0]


def test_image_done_reports_fraction_only_with_a_hint(progress):
    reporter = ProgressReporter(progress)
    reporter.image_done(1, 0)
    reporter.image_done(1, 4)
    reporter.image_done(6, 4)
    assert progress.fractions == [0.25, 1.0]


def test_as_reporter_accepts_reporters_callbacks_and_none(progress):
    reporter = ProgressReporter(progress)
    assert as_reporter(reporter) is reporter
    assert as_reporter(progress).callback is progress
    assert as_reporter(None).callback is None


def test_logging_callback(caplog):
    caplog.set_level(logging.INFO, logger="zmqimgtransfer.progress")
    callback = LoggingProgressCallback()
    callback.info("server hanging up")
    callback.set_progress(0.5)

    assert callback.last_fraction == 0.5
    assert "server hanging up" in caplog.text
    assert "progress: 50%" in caplog.text
