from loguru import logger

from arraysim.util import (
    clear_log,
    get_log_filename,
    shutdown_log,
    start_client_log,
    start_server_log,
)


def test_file_log_reports_its_path(tmp_path):
    log_path = tmp_path / "logs" / "server.log"
    assert start_server_log(log_path=str(log_path)) == log_path
    assert get_log_filename() == str(log_path)
    logger.info("hello from the server")
    shutdown_log()

    text = log_path.read_text()
    assert "Server log started at" in text
    assert "hello from the server" in text
    assert get_log_filename() == ""


def test_previous_log_cleared(tmp_path):
    log_path = tmp_path / "client.log"
    log_path.write_text("stale line\n")
    start_client_log(log_path=log_path, log_level="DEBUG")
    shutdown_log()
    assert "stale line" not in log_path.read_text()

    start_client_log(log_path=log_path, clear_prev=False)
    logger.info("second run")
    shutdown_log()
    text = log_path.read_text()
    assert text.count("Client log started") == 2


def test_stdout_only_has_no_file(tmp_path):
    assert start_client_log(log_to_file=False, log_to_stdout=True) is None
    assert get_log_filename() == ""
    shutdown_log()


def test_clear_missing_log(tmp_path):
    clear_log(tmp_path / "absent.log")
