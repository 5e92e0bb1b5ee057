from unittest.mock import MagicMock

from dataform_cli.runner.outputs import LogConsumer, parse_output_marker


def test_parse_marker():
    assert parse_output_marker('::{"outputs":{"a":"1"}}::') == {"outputs": {"a": "1"}}
    assert parse_output_marker('  ::{"outputs":{"a":"1"}}::\n') == {"outputs": {"a": "1"}}


def test_parse_non_marker():
    assert parse_output_marker("hello") is None
    assert parse_output_marker('prefix ::{"outputs":{}}::') is None
    assert parse_output_marker("::{not json}::") is None
    assert parse_output_marker("::[1, 2]::") is None


def test_consumer_merges_outputs_and_counts():
    logger = MagicMock()
    consumer = LogConsumer(logger)
    consumer.accept('::{"outputs":{"a":"1","n":2}}::\n')
    consumer.accept('::{"outputs":{"a":"3"}}::')
    consumer.accept("plain line")
    consumer.accept("warn line", is_std_err=True)

    assert consumer.vars == {"a": "3", "n": 2}
    assert consumer.std_out_count == 3
    assert consumer.std_err_count == 1
    logger.warning.assert_called_once_with("warn line")


def test_consumer_stderr_as_info_when_disabled():
    logger = MagicMock()
    consumer = LogConsumer(logger, warning_on_std_err=False)
    consumer.accept("npm notice", is_std_err=True)
    logger.warning.assert_not_called()
    logger.info.assert_called_once_with("npm notice")


def test_marker_on_stderr_is_captured():
    consumer = LogConsumer(MagicMock())
    consumer.accept('::{"outputs":{"err":"yes"}}::', is_std_err=True)
    assert consumer.vars == {"err": "yes"}


def test_marker_without_outputs_ignored():
    logger = MagicMock()
    consumer = LogConsumer(logger)
    consumer.accept('::{"metrics":[]}::')
    assert consumer.vars == {}
    assert logger.warning.called


def test_accept_text_splits_lines():
    consumer = LogConsumer(MagicMock())
    consumer.accept_text('one\n::{"outputs":{"k":"v"}}::\nthree\n')
    assert consumer.std_out_count == 3
    assert consumer.vars == {"k": "v"}
    consumer.accept_text(None)
    assert consumer.std_out_count == 3


def test_malformed_marker_warned_and_ignored():
    logger = MagicMock()
    consumer = LogConsumer(logger)
    consumer.accept('::{"outputs": {"k": }}::')
    consumer.accept("::{not json}::")
    assert consumer.vars == {}
    assert logger.warning.call_count == 2
    assert "malformed output marker" in logger.warning.call_args_list[0][0][0]


def test_plain_line_not_warned():
    logger = MagicMock()
    LogConsumer(logger).accept("Compiling 12 actions {done}")
    logger.warning.assert_not_called()
