from quizcore.base_service import BaseService


def test_response_envelope():
    service = BaseService("pytest")
    body = service.response(data={"foo": "bar"}, message="done")
    assert body == {"status": "ok", "message": "done", "data": {"foo": "bar"}}


def test_log_event_and_error(caplog):
    service = BaseService("pytest")
    with caplog.at_level("INFO"):
        logged = service.log_event("pytest_log_event", {"foo": "bar"})
        assert any("pytest_log_event" in m for m in caplog.text.splitlines())
    assert logged["service"] == "pytest"
    assert logged["data"] == {"foo": "bar"}

    with caplog.at_level("ERROR"):
        try:
            raise ValueError("test error")
        except ValueError as e:
            error = service.log_error(e, context="pytest")
        assert any("test error" in m for m in caplog.text.splitlines())
    assert error["error_type"] == "ValueError"
    assert error["context"] == "pytest"
